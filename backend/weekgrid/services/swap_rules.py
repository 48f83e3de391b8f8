from __future__ import annotations

from weekgrid.schemas.conflict import BlockReason, SwapEvaluation
from weekgrid.schemas.timetable import Cell
from weekgrid.services.overlap import find_overlaps
from weekgrid.services.schedule_store import ScheduleStore, Slot
from weekgrid.services.school_calendar import class_number
from weekgrid.services.teacher_registry import TeacherRegistry


def _allowed(cell: Cell, registry: TeacherRegistry) -> list[int]:
    teacher = registry.get(cell.teacher_id)
    return teacher.classes if teacher is not None else []


def _blocked(reason: BlockReason, message: str, **details) -> SwapEvaluation:
    return SwapEvaluation(can_swap=False, block_reason=reason, details={"message": message, **details})


def _busy_elsewhere(store: ScheduleStore, at: Slot, teacher_id: str, other: Slot) -> list[str]:
    # Both ends of the move leave the search so only third-party classes count.
    also_exclude = [other.class_name] if other.same_time(at) else []
    return find_overlaps(
        store,
        at.week,
        at.class_name,
        at.period,
        at.day,
        teacher_id,
        also_exclude=also_exclude,
    )


def evaluate_swap(
    store: ScheduleStore,
    registry: TeacherRegistry,
    source: Slot,
    target: Slot,
    *,
    source_cell: Cell | None = None,
    target_cell: Cell | None = None,
) -> SwapEvaluation:
    """Decide whether exchanging the cells at ``source`` and ``target`` is legal.

    Pure and deterministic: used for hover highlighting over the whole grid and
    again at commit time to decide whether a forced override prompt is needed.
    """
    source_cell = source_cell if source_cell is not None else store.cell(source)
    target_cell = target_cell if target_cell is not None else store.cell(target)

    if source_cell.is_holiday or target_cell.is_holiday:
        return _blocked(BlockReason.holiday, "Holiday cells cannot be swapped")

    if source_cell.is_special:
        if not source_cell.teacher_id:
            return _blocked(BlockReason.missing_teacher, "Source cell has no teacher to verify")

        allowed = _allowed(source_cell, registry)
        if allowed and class_number(target.class_name) not in allowed:
            return _blocked(
                BlockReason.teacher_class_mismatch,
                f"{source_cell.teacher} does not teach {target.class_name}",
                teacher_id=source_cell.teacher_id,
                class_name=target.class_name,
            )

        busy = _busy_elsewhere(store, target, source_cell.teacher_id, source)
        if busy:
            return _blocked(
                BlockReason.source_teacher_busy,
                f"[{target.week}] {source_cell.teacher} is already teaching {', '.join(busy)}",
                teacher_id=source_cell.teacher_id,
                conflicting_classes=busy,
            )

    if target_cell.is_special and target_cell.teacher_id != source_cell.teacher_id:
        allowed = _allowed(target_cell, registry)
        if allowed and class_number(source.class_name) not in allowed:
            return _blocked(
                BlockReason.target_teacher_class_mismatch,
                f"{target_cell.teacher} does not teach {source.class_name}",
                teacher_id=target_cell.teacher_id,
                class_name=source.class_name,
            )

        busy = _busy_elsewhere(store, source, target_cell.teacher_id, target)
        if busy:
            return _blocked(
                BlockReason.target_teacher_busy,
                f"[{source.week}] {target_cell.teacher} is already teaching {', '.join(busy)}",
                teacher_id=target_cell.teacher_id,
                conflicting_classes=busy,
            )

    return SwapEvaluation(can_swap=True)

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from weekgrid.schemas.conflict import ConflictDetail, ConflictReport
from weekgrid.services.schedule_store import ScheduleStore, Slot


def find_overlaps(
    store: ScheduleStore,
    week: str,
    exclude_class: str,
    period: int,
    day: int,
    teacher_id: str | None,
    *,
    also_exclude: Iterable[str] = (),
) -> list[str]:
    """Classes other than ``exclude_class`` holding ``teacher_id`` as a specialist at (week, period, day)."""
    if not teacher_id or not store.has_week(week):
        return []
    excluded = {exclude_class, *also_exclude}
    overlaps: list[str] = []
    for class_label, grid in store.week(week).items():
        if class_label in excluded:
            continue
        occupant = grid[period][day]
        if occupant.is_special and occupant.teacher_id == teacher_id:
            overlaps.append(class_label)
    return overlaps


def count_overlapping_slots(store: ScheduleStore, slots: Iterable[Slot]) -> int:
    total = 0
    for slot in slots:
        occupant = store.cell(slot)
        if not occupant.is_special:
            continue
        if find_overlaps(store, slot.week, slot.class_name, slot.period, slot.day, occupant.teacher_id):
            total += 1
    return total


def detect_double_bookings(store: ScheduleStore, week: str | None = None) -> ConflictReport:
    conflicts: list[ConflictDetail] = []
    week_names = [week] if week is not None else store.week_names

    for week_name in week_names:
        if not store.has_week(week_name):
            continue
        # Bucket by teacher per slot instead of pairwise scanning classes.
        occupancy: dict[tuple[int, int, str], list[tuple[str, bool]]] = defaultdict(list)
        for slot, occupant in store.iter_slots(week_name):
            if occupant.is_special:
                occupancy[(slot.period, slot.day, occupant.teacher_id)].append(
                    (slot.class_name, occupant.forced_conflict)
                )

        for (period, day, teacher_id), holders in occupancy.items():
            if len(holders) < 2:
                continue
            forced = any(flag for _, flag in holders)
            classes = [label for label, _ in holders]
            conflicts.append(
                ConflictDetail(
                    id=f"teacher-{week_name}-{period}-{day}-{teacher_id}",
                    conflict_type="teacher_double_booking",
                    description=f"Teacher {teacher_id} is booked by {', '.join(classes)} at the same time",
                    severity="forced" if forced else "hard",
                    week=week_name,
                    period=period,
                    day=day,
                    teacher_id=teacher_id,
                    classes=classes,
                )
            )

    forced_count = sum(1 for conflict in conflicts if conflict.severity == "forced")
    return ConflictReport(
        conflicts=conflicts,
        forced_count=forced_count,
        unforced_count=len(conflicts) - forced_count,
    )

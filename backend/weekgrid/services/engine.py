from __future__ import annotations

from collections import Counter, defaultdict
from functools import wraps
import logging
import random
import threading
import uuid
from typing import Any, Callable, Iterable

from weekgrid.core.config import Settings, get_settings
from weekgrid.core.exceptions import InputValidationError, ResourceNotFoundError
from weekgrid.schemas.conflict import (
    AssignmentOutcome,
    CellStatus,
    ConflictDetail,
    ConflictPlan,
    ConflictReport,
    PlanFamily,
    SwapEvaluation,
    SwapOutcome,
)
from weekgrid.schemas.teacher import Teacher
from weekgrid.schemas.timetable import Cell, CellType, ChangeLogEntry, OperationResult, TimetableSnapshot
from weekgrid.services.conflict_planner import ConflictPlanner, apply_operations
from weekgrid.services.generator import create_all_schedules, special_cell
from weekgrid.services.history import HistoryManager
from weekgrid.services.mismatch import MismatchClassifier
from weekgrid.services.overlap import detect_double_bookings, find_overlaps
from weekgrid.services.schedule_store import ScheduleStore, Slot, empty_cell, fallback_cell, fallback_grid
from weekgrid.services.school_calendar import (
    ALL_SUBJECTS,
    DAY_COUNT,
    DEFAULT_TEACHERS,
    HOLIDAY_SUBJECT,
    PERIOD_COUNT,
    WeekInfo,
    class_names,
    class_number,
    generate_academic_weeks,
    in_grid,
)
from weekgrid.services.snapshot import EngineState, RepairReport, normalize_snapshot
from weekgrid.services.swap_rules import evaluate_swap
from weekgrid.services.teacher_registry import Expectation, TeacherRegistry, parse_teachers

logger = logging.getLogger(__name__)

ChangeListener = Callable[["TimetableEngine"], None]


def synchronized(method):
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)

    return wrapper


def expected_cell(class_label: str, period: int, day: int, expectation: Expectation) -> Cell:
    return Cell(
        id=Slot("", class_label, period, day).cell_id,
        subject=expectation.subject,
        type=CellType.special,
        teacher_id=expectation.teacher_id,
        teacher=expectation.teacher,
        location=expectation.location,
    )


class TimetableEngine:
    """Engine context owning the schedule, teacher registry, baseline and history.

    Every schedule mutation goes through :meth:`_commit` so that undo always
    reverses exactly the preceding commit. Public operations hold :attr:`lock`
    for their whole run, so one mutation completes before the next starts.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        teachers: Iterable[Teacher | dict] | None = None,
        class_count: int | None = None,
        subject_list: list[str] | None = None,
        rng: random.Random | None = None,
        actor_id: str | None = None,
        capture_baseline: bool = True,
    ) -> None:
        self.lock = threading.RLock()
        self.settings = settings or get_settings()
        self.weeks: list[WeekInfo] = generate_academic_weeks(self.settings.academic_year)
        self.week_names = [week.name for week in self.weeks]
        self.class_count = class_count or self.settings.default_class_count
        self.subject_list = list(subject_list or ALL_SUBJECTS)
        self.registry = TeacherRegistry(parse_teachers(list(teachers if teachers is not None else DEFAULT_TEACHERS)))
        self.rng = rng or random.Random(self.settings.random_seed)
        self.actor_id = actor_id or f"client-{uuid.uuid4().hex[:8]}"
        self.standard_hours: dict[str, float] = {subject: 0 for subject in self.subject_list}
        self.weekly_notices: dict[str, str] = {}

        store = create_all_schedules(self.week_names, self.class_labels, self.registry.teachers, self.rng)
        self.history = HistoryManager(
            store,
            undo_limit=self.settings.undo_limit,
            log_limit=self.settings.change_log_limit,
        )
        self.baseline: ScheduleStore | None = store.clone() if capture_baseline else None

        self.revision = 0
        self._listeners: list[ChangeListener] = []
        self._pending_plans: dict[str, ConflictPlan] = {}
        self._plans_revision = -1

    # -- state ----------------------------------------------------------

    @property
    def store(self) -> ScheduleStore:
        return self.history.current

    @property
    def class_labels(self) -> list[str]:
        return class_names(self.class_count)

    @property
    def pending_plans(self) -> list[ConflictPlan]:
        return list(self._pending_plans.values())

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        self.revision += 1
        for listener in list(self._listeners):
            listener(self)

    def _entry(self, change_type: str, summary: str, week_keys: Iterable[str] = ()) -> ChangeLogEntry:
        return ChangeLogEntry(type=change_type, summary=summary, week_keys=list(dict.fromkeys(week_keys)), actor=self.actor_id)

    def _commit(self, next_store: ScheduleStore, change_type: str, summary: str, week_keys: Iterable[str]) -> None:
        self.history.commit(next_store, self._entry(change_type, summary, week_keys))
        self._pending_plans = {}
        self._notify()

    def _record(self, change_type: str, summary: str, week_keys: Iterable[str] = ()) -> None:
        self.history.record(self._entry(change_type, summary, week_keys))
        self._notify()

    @synchronized
    def capture_baseline(self) -> bool:
        """Freeze the current schedule as the baseline unless one already exists."""
        if self.baseline is not None:
            return False
        self.baseline = self.store.clone()
        logger.info("Captured baseline snapshot with %d week(s)", len(self.baseline))
        return True

    @synchronized
    def classifier(self) -> MismatchClassifier:
        return MismatchClassifier(self.registry, self.class_labels, self.baseline)

    # -- validation -----------------------------------------------------

    @synchronized
    def week_info(self, week: str) -> WeekInfo:
        info = next((item for item in self.weeks if item.name == week), None)
        if info is None:
            raise ResourceNotFoundError("Week", week)
        return info

    def _require_class(self, week: str, class_name: str) -> None:
        self.week_info(week)
        if class_name not in self.class_labels or not self.store.has_class(week, class_name):
            raise ResourceNotFoundError("Class", class_name)

    def _require_slot(self, slot: Slot) -> None:
        self._require_class(slot.week, slot.class_name)
        if not in_grid(slot.period, slot.day):
            raise InputValidationError(
                "Period or day out of range",
                details={"period": slot.period, "day": slot.day},
            )

    @synchronized
    def require_teacher(self, teacher_id: str) -> Teacher:
        teacher = self.registry.get(teacher_id)
        if teacher is None:
            raise ResourceNotFoundError("Teacher", teacher_id)
        return teacher

    def _require_days(self, day_indices: Iterable[int]) -> list[int]:
        days = sorted(set(day_indices))
        if not days:
            raise InputValidationError("Select at least one day")
        invalid = [day for day in days if not 0 <= day < DAY_COUNT]
        if invalid:
            raise InputValidationError("Day index out of range", details={"days": invalid})
        return days

    # -- direct assignment ----------------------------------------------

    def _proposed_cell(self, slot: Slot, subject: str, teacher_id: str | None, force_homeroom: bool) -> Cell:
        current = self.store.cell(slot)
        if not subject:
            return empty_cell(slot.class_name, slot.period, slot.day)
        if subject == HOLIDAY_SUBJECT:
            return Cell(id=slot.cell_id, subject=HOLIDAY_SUBJECT, type=CellType.holiday)

        teacher: Teacher | None = None
        if not force_homeroom:
            if teacher_id:
                teacher = self.require_teacher(teacher_id)
                if not teacher.covers(class_number(slot.class_name)):
                    raise InputValidationError(
                        f"{teacher.name} is not assigned to {slot.class_name}",
                        details={"teacher_id": teacher.id, "class_name": slot.class_name},
                    )
                if teacher.subject != subject:
                    raise InputValidationError(
                        f"{teacher.name} teaches {teacher.subject}, not {subject}",
                        details={"teacher_id": teacher.id, "subject": subject},
                    )
            else:
                teacher = self.registry.find_for(subject, slot.class_name)

        if teacher is not None:
            return special_cell(slot.class_name, slot.period, slot.day, teacher, location=current.location or None)
        return Cell(id=slot.cell_id, subject=subject, type=CellType.homeroom, location=current.location)

    @synchronized
    def assign_subject(
        self,
        slot: Slot,
        subject: str,
        *,
        teacher_id: str | None = None,
        force_homeroom: bool = False,
    ) -> AssignmentOutcome:
        self._require_slot(slot)
        subject = (subject or "").strip()
        if subject and subject not in self.subject_list:
            raise InputValidationError(f"Unknown subject: {subject}")

        proposed = self._proposed_cell(slot, subject, teacher_id, force_homeroom)
        if proposed.is_special:
            blockers = find_overlaps(self.store, slot.week, slot.class_name, slot.period, slot.day, proposed.teacher_id)
            if blockers:
                planner = ConflictPlanner(self.store, self.registry, self.classifier(), limit=self.settings.plan_limit)
                plans = planner.build_plans(slot.week, slot.class_name, slot.period, slot.day, proposed)
                self._pending_plans = {plan.id: plan for plan in plans}
                self._plans_revision = self.revision
                return AssignmentOutcome(
                    committed=False,
                    cell=proposed,
                    conflicting_classes=blockers,
                    plans=plans,
                    message=f"[{slot.week}] {proposed.teacher} is already teaching {', '.join(blockers)}",
                )

        label = proposed.subject or "empty"
        self._commit(
            self.store.with_cell(slot, proposed),
            "assign",
            f"{slot.class_name} {slot.period + 1}교시 → {label}",
            [slot.week],
        )
        return AssignmentOutcome(committed=True, cell=proposed, message=f"Changed to {label}")

    @synchronized
    def apply_plan(self, plan_id: str) -> OperationResult:
        plan = self._pending_plans.get(plan_id)
        if plan is None:
            raise ResourceNotFoundError("Plan", plan_id)
        if self._plans_revision != self.revision:
            self._pending_plans = {}
            raise InputValidationError("The schedule changed since these plans were built; request new plans")

        next_store, changed = apply_operations(self.store, plan.operations)
        if plan.family == PlanFamily.forced:
            logger.info("Applying forced plan %s: %s", plan.id, plan.description)
        self._commit(next_store, "apply_plan", plan.description, [slot.week for slot in changed])
        return OperationResult(
            ok=True,
            message=plan.description,
            affected=len(changed),
            week_keys=sorted({slot.week for slot in changed}),
        )

    # -- swaps ----------------------------------------------------------

    @synchronized
    def evaluate_swap(self, source: Slot, target: Slot) -> SwapEvaluation:
        self._require_slot(source)
        self._require_slot(target)
        return evaluate_swap(self.store, self.registry, source, target)

    @synchronized
    def swap_candidates(self, source: Slot, week: str, class_name: str) -> list[list[SwapEvaluation]]:
        self._require_slot(source)
        self._require_class(week, class_name)
        rows = []
        for period in range(PERIOD_COUNT):
            row = []
            for day in range(DAY_COUNT):
                target = Slot(week, class_name, period, day)
                if target == source:
                    row.append(SwapEvaluation(can_swap=False, details={"message": "Selected cell"}))
                    continue
                row.append(evaluate_swap(self.store, self.registry, source, target))
            rows.append(row)
        return rows

    @synchronized
    def swap_cells(self, source: Slot, target: Slot, *, force: bool = False) -> SwapOutcome:
        self._require_slot(source)
        self._require_slot(target)
        if source == target:
            raise InputValidationError("Source and target are the same slot")

        evaluation = evaluate_swap(self.store, self.registry, source, target)
        if not evaluation.can_swap and not (force and evaluation.overridable):
            return SwapOutcome(committed=False, evaluation=evaluation, message=evaluation.details.get("message", ""))

        forced = not evaluation.can_swap
        to_target = self.store.cell(source).relocated(target.cell_id)
        to_source = self.store.cell(target).relocated(source.cell_id)
        if forced:
            if to_target.is_special:
                to_target = to_target.model_copy(update={"forced_conflict": True})
            if to_source.is_special:
                to_source = to_source.model_copy(update={"forced_conflict": True})
            logger.info("Forced swap %s <-> %s (%s)", source.describe(), target.describe(), evaluation.block_reason.value)

        self._commit(
            self.store.with_cells([(target, to_target), (source, to_source)]),
            "forced_swap" if forced else "swap",
            f"{source.class_name} {source.period + 1}교시 ↔ {target.class_name} {target.period + 1}교시",
            [source.week, target.week],
        )
        message = "Swapped with a forced override" if forced else "Swapped"
        return SwapOutcome(committed=True, forced=forced, evaluation=evaluation, message=message)

    @synchronized
    def set_location(self, slot: Slot, location: str) -> Cell:
        self._require_slot(slot)
        current = self.store.cell(slot)
        if current.is_holiday:
            raise InputValidationError("Holiday cells cannot carry a location")
        updated = current.model_copy(update={"location": location.strip()})
        self._commit(
            self.store.with_cell(slot, updated),
            "location",
            f"{slot.class_name} {slot.period + 1}교시 location → {updated.location or '-'}",
            [slot.week],
        )
        return updated

    # -- bulk operations ------------------------------------------------

    @synchronized
    def apply_template(self, weeks: list[str] | None = None) -> OperationResult:
        if not self.registry.teachers:
            raise InputValidationError("No specialist teachers are registered")
        targets = list(weeks) if weeks else list(self.week_names)
        for week in targets:
            self.week_info(week)

        expectations = self.registry.expectation_map(self.class_labels)
        for class_label, grid in expectations.items():
            for period, row in enumerate(grid):
                for day, entries in enumerate(row):
                    if len(entries) > 1:
                        raise InputValidationError(
                            f"{class_label} {period + 1}교시 is claimed by more than one template",
                            details={
                                "class_name": class_label,
                                "period": period,
                                "day": day,
                                "teacher_ids": [entry.teacher_id for entry in entries],
                            },
                        )

        updates: list[tuple[Slot, Cell]] = []
        for week in targets:
            for slot, current in self.store.iter_slots(week):
                if current.is_holiday:
                    continue
                entries = expectations.get(slot.class_name, [])
                entries = entries[slot.period][slot.day] if entries else []
                if entries:
                    replacement = expected_cell(slot.class_name, slot.period, slot.day, entries[0])
                elif current.is_special:
                    replacement = fallback_cell(slot.class_name, slot.period, slot.day)
                else:
                    continue
                if replacement != current:
                    updates.append((slot, replacement))

        self._commit(
            self.store.with_cells(updates),
            "template_apply",
            f"Applied specialist templates to {len(targets)} week(s)",
            targets,
        )
        return OperationResult(
            ok=True,
            message=f"Applied specialist templates to {len(targets)} week(s)",
            affected=len(updates),
            week_keys=targets,
        )

    @synchronized
    def copy_class_to_future_weeks(self, week: str, class_name: str) -> OperationResult:
        self._require_class(week, class_name)
        later_weeks = self.week_names[self.week_names.index(week) + 1 :]
        if not later_weeks:
            return OperationResult(ok=False, message="There are no later weeks to update")

        source_grid = self.store.grid(week, class_name)
        updates: list[tuple[Slot, Cell]] = []
        for later in later_weeks:
            for period in range(PERIOD_COUNT):
                for day in range(DAY_COUNT):
                    source_cell = source_grid[period][day]
                    existing = self.store.get(later, class_name, period, day)
                    if source_cell.is_holiday or existing is None or existing.is_holiday:
                        continue
                    if existing != source_cell:
                        updates.append((Slot(later, class_name, period, day), source_cell))

        next_store, forced = self._flag_overlaps(self.store.with_cells(updates), [slot for slot, _ in updates])
        self._commit(
            next_store,
            "propagate",
            f"Copied {class_name} from [{week}] to {len(later_weeks)} later week(s)",
            later_weeks,
        )
        message = f"Copied {class_name} to {len(later_weeks)} later week(s)"
        if forced:
            message += f"; {forced} cell(s) double-book a teacher and were marked as forced"
        return OperationResult(ok=True, message=message, affected=len(updates), week_keys=later_weeks)

    @synchronized
    def apply_holiday(self, week: str, day_indices: Iterable[int]) -> OperationResult:
        self.week_info(week)
        days = self._require_days(day_indices)
        updates: list[tuple[Slot, Cell]] = []
        for class_label in self.class_labels:
            for period in range(PERIOD_COUNT):
                for day in days:
                    slot = Slot(week, class_label, period, day)
                    updates.append((slot, Cell(id=slot.cell_id, subject=HOLIDAY_SUBJECT, type=CellType.holiday)))

        self._commit(self.store.with_cells(updates), "holiday_apply", f"Marked day(s) {days} as holiday", [week])
        return OperationResult(ok=True, message="Holiday applied", affected=len(updates), week_keys=[week])

    def _flag_overlaps(self, store: ScheduleStore, slots: Iterable[Slot]) -> tuple[ScheduleStore, int]:
        """Mark placed specialist cells that now double-book their teacher as forced."""
        flagged: list[tuple[Slot, Cell]] = []
        count = 0
        for slot in slots:
            placed = store.cell(slot)
            if not placed.is_special:
                continue
            if not find_overlaps(store, slot.week, slot.class_name, slot.period, slot.day, placed.teacher_id):
                continue
            count += 1
            if not placed.forced_conflict:
                flagged.append((slot, placed.model_copy(update={"forced_conflict": True})))
        if count:
            logger.warning("Bulk edit left %d double-booked specialist cell(s); marked as forced", count)
        return store.with_cells(flagged), count

    def _restored_cell(self, slot: Slot, classifier: MismatchClassifier) -> Cell:
        entries = classifier.expected(slot.class_name, slot.period, slot.day)
        if len(entries) == 1:
            return expected_cell(slot.class_name, slot.period, slot.day, entries[0])
        if not classifier.templates_configured and self.baseline is not None:
            original = self.baseline.get(slot.week, slot.class_name, slot.period, slot.day)
            if original is not None and not original.is_holiday:
                return original.model_copy(update={"id": slot.cell_id, "forced_conflict": False})
        return fallback_cell(slot.class_name, slot.period, slot.day)

    @synchronized
    def clear_holiday(self, week: str, day_indices: Iterable[int]) -> OperationResult:
        self.week_info(week)
        days = self._require_days(day_indices)
        classifier = self.classifier()
        updates: list[tuple[Slot, Cell]] = []
        for class_label in self.class_labels:
            for period in range(PERIOD_COUNT):
                for day in days:
                    slot = Slot(week, class_label, period, day)
                    if self.store.cell(slot).type == CellType.holiday:
                        updates.append((slot, self._restored_cell(slot, classifier)))

        if not updates:
            return OperationResult(ok=False, message="No holiday cells on the selected day(s)", week_keys=[week])
        next_store, forced = self._flag_overlaps(self.store.with_cells(updates), [slot for slot, _ in updates])
        self._commit(next_store, "holiday_clear", f"Cleared holiday on day(s) {days}", [week])
        message = "Holiday cleared"
        if forced:
            message += f"; {forced} cell(s) double-book a teacher and were marked as forced"
        return OperationResult(ok=True, message=message, affected=len(updates), week_keys=[week])

    @synchronized
    def regenerate(self, rng: random.Random | None = None) -> OperationResult:
        store = create_all_schedules(self.week_names, self.class_labels, self.registry.teachers, rng or self.rng)
        self._commit(store, "regenerate", "Regenerated the whole schedule", self.week_names)
        return OperationResult(ok=True, message="Schedule regenerated", affected=len(self.week_names), week_keys=self.week_names)

    @synchronized
    def undo(self) -> OperationResult:
        result = self.history.undo(actor=self.actor_id)
        if result.ok:
            self._pending_plans = {}
            self._notify()
        return result

    @synchronized
    def redo(self) -> OperationResult:
        result = self.history.redo(actor=self.actor_id)
        if result.ok:
            self._pending_plans = {}
            self._notify()
        return result

    # -- teacher & class configuration ------------------------------------

    def _validated_teacher_fields(self, name: str, subject: str, classes: Iterable[int]) -> tuple[str, str, list[int]]:
        trimmed = (name or "").strip()
        subject = (subject or "").strip()
        selected = sorted(set(classes))
        if not trimmed:
            raise InputValidationError("Teacher name is required")
        if not subject:
            raise InputValidationError("Select the subject this teacher teaches")
        if subject == HOLIDAY_SUBJECT or subject not in self.subject_list:
            raise InputValidationError(f"Unknown subject: {subject}")
        if not selected:
            raise InputValidationError("Select at least one class")
        out_of_range = [number for number in selected if not 1 <= number <= self.class_count]
        if out_of_range:
            raise InputValidationError("Class number out of range", details={"classes": out_of_range})
        return trimmed, subject, selected

    @synchronized
    def add_teacher(self, *, name: str, subject: str, classes: Iterable[int]) -> Teacher:
        name, subject, selected = self._validated_teacher_fields(name, subject, classes)
        teacher = self.registry.add(name=name, subject=subject, classes=selected)
        self._record("teacher_add", f"Added teacher {teacher.name} ({teacher.subject})")
        return teacher

    @synchronized
    def update_teacher(self, teacher_id: str, *, name: str, subject: str, classes: Iterable[int]) -> Teacher:
        self.require_teacher(teacher_id)
        name, subject, selected = self._validated_teacher_fields(name, subject, classes)
        teacher = self.registry.update(teacher_id, name=name, subject=subject, classes=selected)
        self._record("teacher_update", f"Updated teacher {teacher.name}")
        return teacher

    @synchronized
    def remove_teacher(self, teacher_id: str) -> None:
        teacher = self.require_teacher(teacher_id)
        self.registry.remove(teacher_id)
        self._record("teacher_remove", f"Removed teacher {teacher.name}")

    @synchronized
    def set_template_cell(self, teacher_id: str, period: int, day: int, class_name: str) -> None:
        teacher = self.require_teacher(teacher_id)
        if not in_grid(period, day):
            raise InputValidationError("Period or day out of range")
        class_name = (class_name or "").strip()
        if class_name and not teacher.covers(class_number(class_name)):
            raise InputValidationError(f"{class_name} is not one of {teacher.name}'s classes")
        self.registry.set_template_cell(teacher_id, period, day, class_name)
        self._record("template_edit", f"{teacher.name} template {period + 1}교시/{day} → {class_name or '-'}")

    @synchronized
    def set_template_location(self, teacher_id: str, period: int, day: int, location: str) -> None:
        teacher = self.require_teacher(teacher_id)
        if not in_grid(period, day):
            raise InputValidationError("Period or day out of range")
        self.registry.set_template_location(teacher_id, period, day, location or "")
        self._record("template_edit", f"{teacher.name} template location {period + 1}교시/{day}")

    @synchronized
    def clear_template(self, teacher_id: str) -> None:
        teacher = self.require_teacher(teacher_id)
        self.registry.clear_template(teacher_id)
        self._record("template_clear", f"Cleared {teacher.name}'s template")

    @synchronized
    def configure_classes(self, class_count: int, subject_list: list[str] | None = None) -> OperationResult:
        if not 1 <= class_count <= self.settings.max_class_count:
            raise InputValidationError(
                f"Class count must be between 1 and {self.settings.max_class_count}",
                details={"class_count": class_count},
            )
        if subject_list is not None:
            subjects = list(dict.fromkeys(item.strip() for item in subject_list if item and item.strip()))
            if not subjects:
                raise InputValidationError("Subject list cannot be empty")
            if HOLIDAY_SUBJECT not in subjects:
                subjects.append(HOLIDAY_SUBJECT)
            self.subject_list = subjects
            self.standard_hours = {subject: self.standard_hours.get(subject, 0) for subject in subjects}

        self.class_count = class_count
        labels = self.class_labels
        changed_teachers = self.registry.restrict_classes(class_count)

        weeks = {}
        for week in self.week_names:
            weeks[week] = {
                label: (
                    [list(row) for row in self.store.grid(week, label)]
                    if self.store.has_class(week, label)
                    else fallback_grid(label)
                )
                for label in labels
            }
        self.history.reset(
            ScheduleStore(weeks),
            self._entry("classes_configure", f"Configured {class_count} class(es)", self.week_names),
        )
        self._pending_plans = {}
        self._notify()
        return OperationResult(
            ok=True,
            message=f"Configured {class_count} class(es); {len(changed_teachers)} teacher(s) updated",
            affected=len(changed_teachers),
        )

    @synchronized
    def set_standard_hours(self, subject: str, hours: float) -> None:
        if subject not in self.subject_list:
            raise InputValidationError(f"Unknown subject: {subject}")
        self.standard_hours[subject] = hours
        self._notify()

    @synchronized
    def set_weekly_notice(self, week: str, text: str) -> None:
        self.week_info(week)
        if text.strip():
            self.weekly_notices[week] = text.strip()
        else:
            self.weekly_notices.pop(week, None)
        self._notify()

    # -- queries --------------------------------------------------------

    @synchronized
    def class_grid(self, week: str, class_name: str) -> list[list[Cell]]:
        self._require_class(week, class_name)
        return [list(row) for row in self.store.grid(week, class_name)]

    @synchronized
    def cell_status(self, week: str, class_name: str) -> list[list[CellStatus]]:
        self._require_class(week, class_name)
        classifier = self.classifier()
        grid = self.store.grid(week, class_name)
        rows = []
        for period in range(PERIOD_COUNT):
            row = []
            for day in range(DAY_COUNT):
                current = grid[period][day]
                overlaps = (
                    find_overlaps(self.store, week, class_name, period, day, current.teacher_id)
                    if current.is_special
                    else []
                )
                row.append(
                    CellStatus(
                        cell=current,
                        mismatched=classifier.is_mismatched(week, class_name, period, day, current),
                        overlaps=overlaps,
                        forced_conflict=current.forced_conflict,
                    )
                )
            rows.append(row)
        return rows

    @synchronized
    def detect_conflicts(self, week: str | None = None) -> ConflictReport:
        if week is not None:
            self.week_info(week)
        report = detect_double_bookings(self.store, week)
        expectations = self.registry.expectation_map(self.class_labels) if self.registry.has_any_template() else {}
        for class_label, grid in expectations.items():
            for period, row in enumerate(grid):
                for day, entries in enumerate(row):
                    if len(entries) < 2:
                        continue
                    report.conflicts.append(
                        ConflictDetail(
                            id=f"template-{class_label}-{period}-{day}",
                            conflict_type="template_overlap",
                            description=(
                                f"{class_label} {period + 1}교시 is claimed by "
                                f"{', '.join(entry.teacher for entry in entries)}"
                            ),
                            severity="hard",
                            week="*",
                            period=period,
                            day=day,
                            teacher_id=entries[0].teacher_id,
                            classes=[class_label],
                        )
                    )
                    report.unforced_count += 1
        return report

    @synchronized
    def subject_hour_summary(self) -> dict[str, dict[str, int]]:
        """Per-class lesson counts by subject across every week, holidays and empty slots excluded."""
        counts: dict[str, Counter] = {label: Counter() for label in self.class_labels}
        for slot, current in self.store.iter_slots():
            if current.is_holiday or not current.subject or slot.class_name not in counts:
                continue
            counts[slot.class_name][current.subject] += 1
        return {label: dict(counter) for label, counter in counts.items()}

    @synchronized
    def teacher_load_summary(self) -> dict[str, dict[str, int]]:
        loads: dict[str, dict[str, int]] = {teacher.id: defaultdict(int) for teacher in self.registry.teachers}
        for slot, current in self.store.iter_slots():
            if current.is_special and current.teacher_id in loads:
                loads[current.teacher_id][slot.week] += 1
        return {teacher_id: dict(weeks) for teacher_id, weeks in loads.items()}

    # -- snapshot -------------------------------------------------------

    @synchronized
    def state(self) -> EngineState:
        return EngineState(
            class_count=self.class_count,
            subject_list=list(self.subject_list),
            store=self.store,
            registry=self.registry,
            standard_hours=dict(self.standard_hours),
            change_log=self.history.change_log,
            weekly_notices=dict(self.weekly_notices),
        )

    @synchronized
    def to_snapshot(self) -> dict[str, Any]:
        snapshot = TimetableSnapshot(
            class_count=self.class_count,
            subject_list=self.subject_list,
            all_schedules=self.store.to_payload(),
            standard_hours=self.standard_hours,
            teacher_configs=self.registry.teachers_payload(),
            special_templates=self.registry.templates_payload(),
            change_logs=[entry.model_dump(mode="json", by_alias=True) for entry in self.history.change_log],
            weekly_notices=self.weekly_notices,
        )
        return snapshot.model_dump(mode="json", by_alias=True)

    @synchronized
    def load_snapshot(self, payload: Any) -> RepairReport:
        """Replace the whole in-memory state with a normalized inbound snapshot."""
        state, report = normalize_snapshot(
            payload,
            self.state(),
            self.week_names,
            max_class_count=self.settings.max_class_count,
        )
        self.class_count = state.class_count
        self.subject_list = state.subject_list
        self.registry = state.registry
        self.standard_hours = state.standard_hours
        self.weekly_notices = state.weekly_notices
        self.history.reset(state.store)
        self.history.replace_log(state.change_log)
        self._pending_plans = {}
        self.capture_baseline()
        self._notify()
        return report

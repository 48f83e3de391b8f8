from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable

from weekgrid.schemas.conflict import ConflictPlan, PlanFamily, PlanOperation
from weekgrid.schemas.timetable import Cell, SlotRef
from weekgrid.services.mismatch import MismatchClassifier
from weekgrid.services.overlap import count_overlapping_slots, find_overlaps
from weekgrid.services.schedule_store import ScheduleStore, Slot
from weekgrid.services.school_calendar import DAY_COUNT, DAYS, PERIOD_COUNT, default_location
from weekgrid.services.swap_rules import evaluate_swap
from weekgrid.services.teacher_registry import TeacherRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanWeights:
    operation: int = 10
    overlap: int = 18
    mismatch: int = 6
    forced: int = 120


DEFAULT_WEIGHTS = PlanWeights()


def slot_ref(slot: Slot) -> SlotRef:
    return SlotRef(week=slot.week, class_name=slot.class_name, period=slot.period, day=slot.day)


def slot_from_ref(ref: SlotRef) -> Slot:
    return Slot(ref.week, ref.class_name, ref.period, ref.day)


def slot_label(period: int, day: int) -> str:
    return f"{DAYS[day]} {period + 1}교시"


def apply_operations(store: ScheduleStore, operations: Iterable[PlanOperation]) -> tuple[ScheduleStore, list[Slot]]:
    """Apply plan operations in order; returns the new store and every slot touched."""
    changed: list[Slot] = []
    for operation in operations:
        target = slot_from_ref(operation.target)
        if operation.action == "swap":
            source = slot_from_ref(operation.source)
            moving = store.cell(source).relocated(target.cell_id)
            displaced = store.cell(target).relocated(source.cell_id)
            store = store.with_cells([(target, moving), (source, displaced)])
            changed.extend([source, target])
        else:
            store = store.with_cell(target, operation.cell.relocated(target.cell_id))
            changed.append(target)
    return store, list(dict.fromkeys(changed))


@dataclass
class _Candidate:
    family: PlanFamily
    description: str
    operations: list[PlanOperation]


class ConflictPlanner:
    """Proposes ranked corrective operation sequences for a conflicting direct assignment.

    Candidates are generated against the current schedule only (local, bounded
    search) and scored by simulating each one on a copy of the schedule.
    """

    def __init__(
        self,
        store: ScheduleStore,
        registry: TeacherRegistry,
        classifier: MismatchClassifier,
        *,
        limit: int = 10,
        weights: PlanWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self.store = store
        self.registry = registry
        self.classifier = classifier
        self.limit = max(1, limit)
        self.weights = weights

    def build_plans(self, week: str, class_name: str, period: int, day: int, proposed: Cell) -> list[ConflictPlan]:
        if not proposed.is_special:
            return []
        target = Slot(week, class_name, period, day)
        blockers = find_overlaps(self.store, week, class_name, period, day, proposed.teacher_id)
        if not blockers:
            return []

        candidates = [
            *self._relocate_blockers(target, blockers, proposed),
            *self._relocate_assignment(target, proposed),
        ]
        scored = [self._score(candidate) for candidate in candidates]
        scored.sort(key=lambda item: item.score)

        forced = self._score(self._forced(target, proposed, blockers))
        ranked = scored[: self.limit - 1] + [forced]
        ranked.sort(key=lambda item: item.score)
        for rank, plan in enumerate(ranked, start=1):
            plan.id = f"plan-{rank}"

        logger.info(
            "Built %d plan(s) for %s at %s (%d candidate(s) before truncation)",
            len(ranked),
            proposed.teacher,
            target.describe(),
            len(candidates) + 1,
        )
        return ranked

    def _place(self, slot: Slot, cell: Cell, description: str) -> PlanOperation:
        return PlanOperation(action="place", target=slot_ref(slot), cell=cell.relocated(slot.cell_id), description=description)

    def _relocate_blockers(self, target: Slot, blockers: list[str], proposed: Cell) -> list[_Candidate]:
        candidates: list[_Candidate] = []
        for blocker_class in blockers:
            blocker_slot = Slot(target.week, blocker_class, target.period, target.day)
            for period in range(PERIOD_COUNT):
                for day in range(DAY_COUNT):
                    if (period, day) == (target.period, target.day):
                        continue
                    destination = Slot(target.week, blocker_class, period, day)
                    occupant = self.store.cell(destination)
                    if occupant.is_special or occupant.is_holiday:
                        continue
                    if not evaluate_swap(self.store, self.registry, blocker_slot, destination).can_swap:
                        continue
                    move = PlanOperation(
                        action="swap",
                        source=slot_ref(blocker_slot),
                        target=slot_ref(destination),
                        description=(
                            f"Move {blocker_class} {proposed.subject} from "
                            f"{slot_label(target.period, target.day)} to {slot_label(period, day)}"
                        ),
                    )
                    place = self._place(
                        target,
                        proposed,
                        f"Assign {proposed.subject} to {target.class_name} {slot_label(target.period, target.day)}",
                    )
                    candidates.append(
                        _Candidate(
                            family=PlanFamily.relocate_blocker,
                            description=f"Relocate {blocker_class}'s lesson, then assign {target.class_name}",
                            operations=[move, place],
                        )
                    )
        return candidates

    def _relocate_assignment(self, target: Slot, proposed: Cell) -> list[_Candidate]:
        candidates: list[_Candidate] = []
        keeps_default = proposed.location == default_location(proposed.subject, target.day, target.period)
        for period in range(PERIOD_COUNT):
            for day in range(DAY_COUNT):
                if (period, day) == (target.period, target.day):
                    continue
                destination = Slot(target.week, target.class_name, period, day)
                occupant = self.store.cell(destination)
                if occupant.is_special or occupant.is_holiday:
                    continue
                if find_overlaps(self.store, target.week, target.class_name, period, day, proposed.teacher_id):
                    continue
                moved = proposed
                if keeps_default:
                    moved = proposed.model_copy(update={"location": default_location(proposed.subject, day, period)})
                candidates.append(
                    _Candidate(
                        family=PlanFamily.relocate_new,
                        description=f"Assign {proposed.subject} to {target.class_name} {slot_label(period, day)} instead",
                        operations=[
                            self._place(
                                destination,
                                moved,
                                f"Assign {proposed.subject} to {target.class_name} {slot_label(period, day)}",
                            )
                        ],
                    )
                )
        return candidates

    def _forced(self, target: Slot, proposed: Cell, blockers: list[str]) -> _Candidate:
        forced_cell = proposed.model_copy(update={"forced_conflict": True})
        return _Candidate(
            family=PlanFamily.forced,
            description=f"Force {proposed.subject} into {target.class_name} despite {', '.join(blockers)}",
            operations=[
                self._place(
                    target,
                    forced_cell,
                    f"Force {proposed.subject} into {target.class_name} {slot_label(target.period, target.day)}",
                )
            ],
        )

    def _score(self, candidate: _Candidate) -> ConflictPlan:
        simulated, changed = apply_operations(self.store, candidate.operations)
        overlaps = count_overlapping_slots(simulated, changed)
        mismatches = sum(
            1
            for slot in changed
            if self.classifier.is_mismatched(slot.week, slot.class_name, slot.period, slot.day, simulated.cell(slot))
        )
        is_forced = candidate.family == PlanFamily.forced
        score = (
            self.weights.operation * len(candidate.operations)
            + self.weights.overlap * overlaps
            + self.weights.mismatch * mismatches
            + self.weights.forced * int(is_forced)
        )

        warnings: list[str] = []
        if overlaps:
            warnings.append(f"{overlaps} changed slot(s) still double-book a teacher")
        if mismatches:
            warnings.append(f"{mismatches} changed slot(s) deviate from the intended placement")
        if is_forced:
            warnings.append("Forced apply: the teacher stays double-booked and the cell is flagged")

        return ConflictPlan(
            id="",
            family=candidate.family,
            description=candidate.description,
            operations=candidate.operations,
            score=score,
            remaining_overlaps=overlaps,
            remaining_mismatches=mismatches,
            warnings=warnings,
        )

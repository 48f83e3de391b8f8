from __future__ import annotations

from typing import Iterable

from weekgrid.schemas.timetable import Cell, CellType
from weekgrid.services.schedule_store import ScheduleStore
from weekgrid.services.school_calendar import FLEX_SUBJECTS
from weekgrid.services.teacher_registry import Expectation, TeacherRegistry


def _identity(cell: Cell | None) -> tuple[str, str] | None:
    if cell is None or not cell.is_special:
        return None
    return (cell.teacher_id or cell.teacher, cell.subject)


class MismatchClassifier:
    """Decides whether a cell deviates from its intended placement.

    The intended placement comes from the teachers' templates; when no template
    is configured at all, the baseline snapshot stands in for it. The result is
    advisory and never gates a mutation.
    """

    def __init__(
        self,
        registry: TeacherRegistry,
        class_labels: Iterable[str],
        baseline: ScheduleStore | None = None,
        *,
        flex_subjects: frozenset[str] = FLEX_SUBJECTS,
    ) -> None:
        self.baseline = baseline
        self.flex_subjects = flex_subjects
        self.templates_configured = registry.has_any_template()
        self.expectations = registry.expectation_map(class_labels) if self.templates_configured else {}

    def expected(self, class_name: str, period: int, day: int) -> list[Expectation]:
        grid = self.expectations.get(class_name)
        if grid is None:
            return []
        return grid[period][day]

    def is_mismatched(self, week: str, class_name: str, period: int, day: int, cell: Cell | None) -> bool:
        actual = cell or Cell(type=CellType.empty)
        if not self.templates_configured:
            return self._differs_from_baseline(week, class_name, period, day, actual)

        # Exempt from the template, still tracked against the original placement.
        if actual.is_holiday or (actual.type == CellType.homeroom and actual.subject in self.flex_subjects):
            return self._differs_from_baseline(week, class_name, period, day, actual)

        expected = self.expected(class_name, period, day)
        if len(expected) > 1:
            return True
        if not expected:
            return actual.is_special

        entry = expected[0]
        if not actual.is_special:
            return True
        if actual.teacher_id != entry.teacher_id:
            return True
        if (actual.subject or "") != entry.subject:
            return True
        return actual.location.strip() != entry.location.strip()

    def _differs_from_baseline(self, week: str, class_name: str, period: int, day: int, actual: Cell) -> bool:
        if self.baseline is None:
            return False
        original = self.baseline.get(week, class_name, period, day)
        if original is None:
            return False

        original_identity = _identity(original)
        actual_identity = _identity(actual)
        if actual.type == CellType.homeroom and actual.subject in self.flex_subjects:
            # A homeroom-taught flex lesson is a legitimate stand-in for the same subject.
            return original_identity is not None and original_identity[1] != actual.subject
        if original_identity is None:
            return actual_identity is not None
        return original_identity != actual_identity

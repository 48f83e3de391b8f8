from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable

from pydantic import ValidationError

from weekgrid.schemas.teacher import Teacher, TemplateCell
from weekgrid.services.school_calendar import (
    DAY_COUNT,
    PERIOD_COUNT,
    class_name,
    class_number,
    default_location,
)

logger = logging.getLogger(__name__)

Template = list[list[TemplateCell]]


@dataclass(frozen=True)
class Expectation:
    teacher_id: str
    teacher: str
    subject: str
    location: str


def empty_template() -> Template:
    return [[TemplateCell() for _ in range(DAY_COUNT)] for _ in range(PERIOD_COUNT)]


def _coerce_template_class(raw: Any) -> str:
    if isinstance(raw, bool):
        return ""
    if isinstance(raw, int):
        return class_name(raw)
    if isinstance(raw, str):
        return raw.strip()
    return ""


def normalize_template(teacher: Teacher, raw: Any) -> Template:
    """Reshape a raw template to 6x5, dropping entries for classes the teacher does not cover.

    Entries may be plain class numbers/names or ``{"className", "location"}`` objects.
    """
    allowed = {class_name(number) for number in teacher.classes}
    template = empty_template()
    if not isinstance(raw, list):
        return template
    for period in range(PERIOD_COUNT):
        row = raw[period] if period < len(raw) and isinstance(raw[period], list) else []
        for day in range(DAY_COUNT):
            entry = row[day] if day < len(row) else None
            location = ""
            if isinstance(entry, TemplateCell):
                label, location = entry.class_name, entry.location
            elif isinstance(entry, dict):
                label = _coerce_template_class(entry.get("className", ""))
                raw_location = entry.get("location")
                location = raw_location if isinstance(raw_location, str) else ""
            else:
                label = _coerce_template_class(entry)
            if label in allowed:
                template[period][day] = TemplateCell(class_name=label, location=location.strip())
    return template


def parse_teachers(raw: Any) -> list[Teacher]:
    """Validate raw teacher configs one at a time; malformed entries are skipped."""
    if not isinstance(raw, list):
        return []
    teachers: list[Teacher] = []
    seen: set[str] = set()
    for item in raw:
        if isinstance(item, Teacher):
            candidate = item
        else:
            try:
                candidate = Teacher.model_validate(item)
            except ValidationError:
                logger.warning("Dropping malformed teacher config: %r", item)
                continue
        if candidate.id in seen:
            continue
        seen.add(candidate.id)
        teachers.append(candidate)
    return teachers


class TeacherRegistry:
    """Ordered teacher configs plus each teacher's weekly placement template."""

    def __init__(self, teachers: Iterable[Teacher] = (), templates: dict[str, Any] | None = None) -> None:
        self._teachers: list[Teacher] = list(teachers)
        raw_templates = templates or {}
        self._templates: dict[str, Template] = {
            teacher.id: normalize_template(teacher, raw_templates.get(teacher.id)) for teacher in self._teachers
        }

    @property
    def teachers(self) -> list[Teacher]:
        return list(self._teachers)

    def get(self, teacher_id: str | None) -> Teacher | None:
        if not teacher_id:
            return None
        return next((teacher for teacher in self._teachers if teacher.id == teacher_id), None)

    def find_for(self, subject: str, class_label: str) -> Teacher | None:
        number = class_number(class_label)
        return next(
            (teacher for teacher in self._teachers if teacher.subject == subject and teacher.covers(number)),
            None,
        )

    def add(self, *, name: str, subject: str, classes: list[int]) -> Teacher:
        teacher = Teacher(id=f"t{uuid.uuid4().hex[:8]}", name=name, subject=subject, classes=classes)
        self._teachers.append(teacher)
        self._templates[teacher.id] = empty_template()
        return teacher

    def update(self, teacher_id: str, *, name: str, subject: str, classes: list[int]) -> Teacher:
        updated = Teacher(id=teacher_id, name=name, subject=subject, classes=classes)
        self._teachers = [updated if teacher.id == teacher_id else teacher for teacher in self._teachers]
        self._templates[teacher_id] = normalize_template(updated, self._templates.get(teacher_id))
        return updated

    def remove(self, teacher_id: str) -> None:
        self._teachers = [teacher for teacher in self._teachers if teacher.id != teacher_id]
        self._templates.pop(teacher_id, None)

    def restrict_classes(self, max_class: int) -> list[str]:
        """Drop allowed-class entries above ``max_class``; returns ids of teachers that changed."""
        changed: list[str] = []
        restricted: list[Teacher] = []
        for teacher in self._teachers:
            kept = [number for number in teacher.classes if number <= max_class]
            if kept != teacher.classes:
                changed.append(teacher.id)
                teacher = teacher.model_copy(update={"classes": kept})
            restricted.append(teacher)
        self._teachers = restricted
        for teacher in self._teachers:
            self._templates[teacher.id] = normalize_template(teacher, self._templates.get(teacher.id))
        return changed

    def template(self, teacher_id: str) -> Template:
        return [list(row) for row in self._templates.get(teacher_id, empty_template())]

    def set_template_cell(self, teacher_id: str, period: int, day: int, class_label: str) -> None:
        template = self.template(teacher_id)
        previous = template[period][day]
        template[period][day] = TemplateCell(
            class_name=class_label,
            location=previous.location if class_label else "",
        )
        self._templates[teacher_id] = normalize_template(self.get(teacher_id), template)

    def set_template_location(self, teacher_id: str, period: int, day: int, location: str) -> None:
        template = self.template(teacher_id)
        previous = template[period][day]
        template[period][day] = TemplateCell(class_name=previous.class_name, location=location)
        self._templates[teacher_id] = normalize_template(self.get(teacher_id), template)

    def clear_template(self, teacher_id: str) -> None:
        self._templates[teacher_id] = empty_template()

    def has_any_template(self) -> bool:
        return any(
            entry.class_name for template in self._templates.values() for row in template for entry in row
        )

    def expectation_map(self, class_labels: Iterable[str]) -> dict[str, list[list[list[Expectation]]]]:
        """Expected specialist occupancy per class slot, derived from every teacher's template.

        A slot with more than one expectation is a template authoring conflict.
        """
        expectations: dict[str, list[list[list[Expectation]]]] = {
            label: [[[] for _ in range(DAY_COUNT)] for _ in range(PERIOD_COUNT)] for label in class_labels
        }
        for teacher in self._teachers:
            template = self._templates.get(teacher.id) or empty_template()
            for period in range(PERIOD_COUNT):
                for day in range(DAY_COUNT):
                    entry = template[period][day]
                    if not entry.class_name or entry.class_name not in expectations:
                        continue
                    expectations[entry.class_name][period][day].append(
                        Expectation(
                            teacher_id=teacher.id,
                            teacher=teacher.name,
                            subject=teacher.subject,
                            location=entry.location.strip() or default_location(teacher.subject, day, period),
                        )
                    )
        for label, grid in expectations.items():
            for period, row in enumerate(grid):
                for day, entries in enumerate(row):
                    if len(entries) > 1:
                        logger.warning(
                            "Template authoring conflict: %s period %d day %d claimed by teachers %s",
                            label,
                            period,
                            day,
                            ", ".join(entry.teacher_id for entry in entries),
                        )
        return expectations

    def templates_payload(self) -> dict[str, list[list[dict]]]:
        return {
            teacher_id: [[entry.model_dump(by_alias=True) for entry in row] for row in template]
            for teacher_id, template in self._templates.items()
        }

    def teachers_payload(self) -> list[dict]:
        return [teacher.model_dump() for teacher in self._teachers]

from __future__ import annotations

import logging
import random
from collections import defaultdict

from weekgrid.schemas.teacher import Teacher
from weekgrid.schemas.timetable import Cell, CellType
from weekgrid.services.schedule_store import Grid, ScheduleStore, empty_cell
from weekgrid.services.school_calendar import (
    DAY_COUNT,
    DEFAULT_HOMEROOM_SUBJECTS,
    PERIOD_COUNT,
    RESERVED_FREE_SLOT,
    cell_id,
    class_number,
    default_location,
)

logger = logging.getLogger(__name__)

LESSONS_PER_SPECIAL_SUBJECT = 2
MAX_PLACEMENT_ATTEMPTS = 100


def special_cell(class_label: str, period: int, day: int, teacher: Teacher, location: str | None = None) -> Cell:
    return Cell(
        id=cell_id(class_label, period, day),
        subject=teacher.subject,
        type=CellType.special,
        teacher_id=teacher.id,
        teacher=teacher.name,
        location=location if location is not None else default_location(teacher.subject, day, period),
    )


def generate_base_schedule(
    class_labels: list[str],
    teachers: list[Teacher],
    rng: random.Random | None = None,
) -> dict[str, Grid]:
    """Random but constrained single-week fill: specialists first, then homeroom subjects."""
    rng = rng or random.Random()
    grids: dict[str, list[list[Cell | None]]] = {
        label: [[None] * DAY_COUNT for _ in range(PERIOD_COUNT)] for label in class_labels
    }
    teacher_occupied: dict[str, set[tuple[int, int]]] = defaultdict(set)
    special_subjects = list(dict.fromkeys(teacher.subject for teacher in teachers))

    for label in class_labels:
        number = class_number(label)
        for subject in special_subjects:
            teacher = next((item for item in teachers if item.subject == subject and item.covers(number)), None)
            if teacher is None:
                continue
            assigned = 0
            attempts = 0
            while assigned < LESSONS_PER_SPECIAL_SUBJECT and attempts < MAX_PLACEMENT_ATTEMPTS:
                attempts += 1
                day = rng.randrange(DAY_COUNT)
                period = rng.randrange(PERIOD_COUNT)
                if (period, day) == RESERVED_FREE_SLOT:
                    continue
                if grids[label][period][day] is not None or (period, day) in teacher_occupied[teacher.id]:
                    continue
                grids[label][period][day] = special_cell(label, period, day, teacher)
                teacher_occupied[teacher.id].add((period, day))
                assigned += 1
            if assigned < LESSONS_PER_SPECIAL_SUBJECT:
                logger.debug("Placed %d/%d %s lessons for %s", assigned, LESSONS_PER_SPECIAL_SUBJECT, subject, label)

    filled: dict[str, Grid] = {}
    for label, grid in grids.items():
        rows: Grid = []
        for period in range(PERIOD_COUNT):
            row: list[Cell] = []
            for day in range(DAY_COUNT):
                current = grid[period][day]
                if current is None and (period, day) == RESERVED_FREE_SLOT:
                    current = empty_cell(label, period, day)
                elif current is None:
                    current = Cell(
                        id=cell_id(label, period, day),
                        subject=rng.choice(DEFAULT_HOMEROOM_SUBJECTS),
                        type=CellType.homeroom,
                    )
                row.append(current)
            rows.append(row)
        filled[label] = rows
    return filled


def create_all_schedules(
    week_names: list[str],
    class_labels: list[str],
    teachers: list[Teacher],
    rng: random.Random | None = None,
) -> ScheduleStore:
    base = generate_base_schedule(class_labels, teachers, rng)
    return ScheduleStore(
        {week: {label: [list(row) for row in grid] for label, grid in base.items()} for week in week_names}
    )

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Iterator, NamedTuple

from weekgrid.schemas.timetable import Cell, CellType
from weekgrid.services.school_calendar import (
    DAY_COUNT,
    PERIOD_COUNT,
    cell_id,
    fallback_homeroom_subject,
)

Grid = list[list[Cell]]
WeekGrids = dict[str, Grid]


class Slot(NamedTuple):
    week: str
    class_name: str
    period: int
    day: int

    @property
    def cell_id(self) -> str:
        return cell_id(self.class_name, self.period, self.day)

    def same_time(self, other: "Slot") -> bool:
        return self.week == other.week and self.period == other.period and self.day == other.day

    def describe(self) -> str:
        return f"[{self.week}] {self.class_name} {self.period + 1}교시/{self.day}"


def empty_cell(class_label: str, period: int, day: int) -> Cell:
    return Cell(id=cell_id(class_label, period, day), subject="", type=CellType.empty)


def fallback_cell(class_label: str, period: int, day: int) -> Cell:
    return Cell(
        id=cell_id(class_label, period, day),
        subject=fallback_homeroom_subject(period, day),
        type=CellType.homeroom,
    )


def fallback_grid(class_label: str) -> Grid:
    return [[fallback_cell(class_label, period, day) for day in range(DAY_COUNT)] for period in range(PERIOD_COUNT)]


class ScheduleStore:
    """Nested ``week -> class -> [period][day]`` grid of immutable cells.

    Updates never touch the receiver: every ``with_*`` method copies the
    containers along the mutated path and returns a new store, so snapshots
    held elsewhere (undo stack, baseline) are never changed retroactively.
    """

    def __init__(self, weeks: dict[str, WeekGrids] | None = None) -> None:
        self._weeks: dict[str, WeekGrids] = weeks if weeks is not None else {}

    @property
    def week_names(self) -> list[str]:
        return list(self._weeks)

    def has_week(self, week: str) -> bool:
        return week in self._weeks

    def has_class(self, week: str, class_name: str) -> bool:
        return class_name in self._weeks.get(week, {})

    def class_names(self, week: str) -> list[str]:
        return list(self._weeks.get(week, {}))

    def week(self, week: str) -> WeekGrids:
        return self._weeks[week]

    def grid(self, week: str, class_name: str) -> Grid:
        return self._weeks[week][class_name]

    def get(self, week: str, class_name: str, period: int, day: int) -> Cell | None:
        grid = self._weeks.get(week, {}).get(class_name)
        if grid is None:
            return None
        return grid[period][day]

    def cell(self, slot: Slot) -> Cell:
        return self._weeks[slot.week][slot.class_name][slot.period][slot.day]

    def iter_slots(self, week: str | None = None) -> Iterator[tuple[Slot, Cell]]:
        week_names = [week] if week is not None else self.week_names
        for week_name in week_names:
            for class_label, grid in self._weeks.get(week_name, {}).items():
                for period, row in enumerate(grid):
                    for day, value in enumerate(row):
                        yield Slot(week_name, class_label, period, day), value

    def with_cells(self, updates: Iterable[tuple[Slot, Cell]]) -> "ScheduleStore":
        grouped: dict[str, dict[str, list[tuple[int, int, Cell]]]] = defaultdict(lambda: defaultdict(list))
        for slot, value in updates:
            grouped[slot.week][slot.class_name].append((slot.period, slot.day, value))
        if not grouped:
            return self

        weeks = dict(self._weeks)
        for week_name, class_updates in grouped.items():
            week_copy = dict(weeks[week_name])
            for class_label, cells in class_updates.items():
                grid = list(week_copy[class_label])
                copied_rows: set[int] = set()
                for period, day, value in cells:
                    if period not in copied_rows:
                        grid[period] = list(grid[period])
                        copied_rows.add(period)
                    grid[period][day] = value
                week_copy[class_label] = grid
            weeks[week_name] = week_copy
        return ScheduleStore(weeks)

    def with_cell(self, slot: Slot, value: Cell) -> "ScheduleStore":
        return self.with_cells([(slot, value)])

    def clone(self) -> "ScheduleStore":
        # Cells are frozen, so copying the containers is a full clone.
        return ScheduleStore(
            {
                week_name: {label: [list(row) for row in grid] for label, grid in grids.items()}
                for week_name, grids in self._weeks.items()
            }
        )

    def to_payload(self) -> dict[str, dict[str, list[list[dict]]]]:
        return {
            week_name: {
                label: [[value.to_payload() for value in row] for row in grid] for label, grid in grids.items()
            }
            for week_name, grids in self._weeks.items()
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScheduleStore):
            return NotImplemented
        return self._weeks == other._weeks

    def __len__(self) -> int:
        return len(self._weeks)

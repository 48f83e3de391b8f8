from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

from pydantic import ValidationError

from weekgrid.schemas.timetable import Cell, CellType, ChangeLogEntry
from weekgrid.services.schedule_store import Grid, ScheduleStore, fallback_cell, fallback_grid
from weekgrid.services.school_calendar import (
    DAY_COUNT,
    HOLIDAY_SUBJECT,
    PERIOD_COUNT,
    cell_id,
    class_names,
)
from weekgrid.services.teacher_registry import TeacherRegistry, parse_teachers

logger = logging.getLogger(__name__)


@dataclass
class EngineState:
    class_count: int
    subject_list: list[str]
    store: ScheduleStore
    registry: TeacherRegistry
    standard_hours: dict[str, float] = field(default_factory=dict)
    change_log: list[ChangeLogEntry] = field(default_factory=list)
    weekly_notices: dict[str, str] = field(default_factory=dict)


@dataclass
class RepairReport:
    fallback_fields: list[str] = field(default_factory=list)
    repaired_cells: int = 0
    dropped_teachers: int = 0


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_cell(raw: Any, class_label: str, period: int, day: int) -> tuple[Cell, bool]:
    """Ingest one raw cell; returns the cell and whether it had to be repaired.

    This is the only place legacy shapes are interpreted: a cell carrying a
    teacherId but no type is a specialist cell, an untyped 휴업일 is a holiday.
    """
    identifier = cell_id(class_label, period, day)
    if not isinstance(raw, dict):
        return fallback_cell(class_label, period, day), True

    subject = _text(raw.get("subject"))
    teacher_id = _text(raw.get("teacherId")) or None
    raw_type = raw.get("type")
    try:
        cell_type = CellType(raw_type) if raw_type else None
    except ValueError:
        cell_type = None

    if cell_type is None:
        if teacher_id:
            cell_type = CellType.special
        elif subject == HOLIDAY_SUBJECT:
            cell_type = CellType.holiday
        elif subject:
            cell_type = CellType.homeroom
        else:
            cell_type = CellType.empty

    repaired = False
    if cell_type == CellType.holiday:
        return Cell(id=identifier, subject=HOLIDAY_SUBJECT, type=CellType.holiday), False
    if cell_type == CellType.special and not teacher_id:
        cell_type = CellType.homeroom if subject else CellType.empty
        repaired = True
    if cell_type != CellType.special:
        teacher_id = None

    try:
        cell = Cell(
            id=identifier,
            subject=subject,
            type=cell_type,
            teacher_id=teacher_id,
            teacher=_text(raw.get("teacher")) if cell_type == CellType.special else "",
            location=_text(raw.get("location")),
            forced_conflict=bool(raw.get("forcedConflict", False)),
        )
    except ValidationError:
        return fallback_cell(class_label, period, day), True
    return cell, repaired


def normalize_grid(raw: Any, class_label: str, report: RepairReport) -> Grid:
    if not isinstance(raw, list):
        report.repaired_cells += PERIOD_COUNT * DAY_COUNT
        return fallback_grid(class_label)
    grid: Grid = []
    for period in range(PERIOD_COUNT):
        row = raw[period] if period < len(raw) and isinstance(raw[period], list) else []
        cells = []
        for day in range(DAY_COUNT):
            value, repaired = normalize_cell(row[day] if day < len(row) else None, class_label, period, day)
            report.repaired_cells += int(repaired)
            cells.append(value)
        grid.append(cells)
    return grid


def reshape_store(
    raw: Any,
    week_names: list[str],
    class_labels: list[str],
    fallback: ScheduleStore | None,
    report: RepairReport,
) -> ScheduleStore:
    """Reshape a raw ``week -> class -> grid`` mapping to exactly the given weeks and classes."""
    raw_weeks = raw if isinstance(raw, dict) else {}
    weeks: dict[str, dict[str, Grid]] = {}
    for week in week_names:
        raw_week = raw_weeks.get(week)
        grids: dict[str, Grid] = {}
        for label in class_labels:
            if isinstance(raw_week, dict) and label in raw_week:
                grids[label] = normalize_grid(raw_week[label], label, report)
            elif fallback is not None and fallback.has_class(week, label):
                grids[label] = [list(row) for row in fallback.grid(week, label)]
            else:
                grids[label] = fallback_grid(label)
        weeks[week] = grids
    return ScheduleStore(weeks)


def normalize_snapshot(
    raw: Any,
    current: EngineState,
    week_names: list[str],
    *,
    max_class_count: int,
) -> tuple[EngineState, RepairReport]:
    """Repair an inbound snapshot field by field, falling back to ``current`` where needed."""
    report = RepairReport()
    payload = raw if isinstance(raw, dict) else {}
    if not isinstance(raw, dict):
        report.fallback_fields.append("*")

    class_count = payload.get("classCount")
    if isinstance(class_count, bool) or not isinstance(class_count, int) or not 1 <= class_count <= max_class_count:
        if "classCount" in payload:
            report.fallback_fields.append("classCount")
        class_count = current.class_count

    subject_list = payload.get("subjectList")
    if not isinstance(subject_list, list) or not all(isinstance(item, str) and item.strip() for item in subject_list) or not subject_list:
        if "subjectList" in payload:
            report.fallback_fields.append("subjectList")
        subject_list = list(current.subject_list)
    else:
        subject_list = list(dict.fromkeys(item.strip() for item in subject_list))

    raw_teachers = payload.get("teacherConfigs")
    if isinstance(raw_teachers, list):
        teachers = parse_teachers(raw_teachers)
        report.dropped_teachers = len(raw_teachers) - len(teachers)
        teachers = [
            teacher.model_copy(update={"classes": [number for number in teacher.classes if number <= class_count]})
            for teacher in teachers
        ]
    else:
        if "teacherConfigs" in payload:
            report.fallback_fields.append("teacherConfigs")
        teachers = current.registry.teachers

    raw_templates = payload.get("specialTemplates")
    if not isinstance(raw_templates, dict):
        raw_templates = current.registry.templates_payload()
    registry = TeacherRegistry(teachers, raw_templates)

    standard_hours = payload.get("standardHours")
    if isinstance(standard_hours, dict):
        standard_hours = {
            str(subject): float(hours)
            for subject, hours in standard_hours.items()
            if isinstance(hours, (int, float)) and not isinstance(hours, bool) and hours >= 0
        }
    else:
        standard_hours = dict(current.standard_hours)

    raw_logs = payload.get("changeLogs")
    change_log = list(current.change_log)
    if isinstance(raw_logs, list):
        change_log = []
        for item in raw_logs:
            try:
                change_log.append(ChangeLogEntry.model_validate(item))
            except ValidationError:
                continue

    notices = payload.get("weeklyNotices")
    if isinstance(notices, dict):
        weekly_notices = {week: text for week, text in notices.items() if week in week_names and isinstance(text, str)}
    else:
        weekly_notices = dict(current.weekly_notices)

    labels = class_names(class_count)
    store = reshape_store(payload.get("allSchedules"), week_names, labels, current.store, report)

    if report.fallback_fields or report.repaired_cells or report.dropped_teachers:
        logger.warning(
            "Repaired inbound snapshot: fallback fields=%s, repaired cells=%d, dropped teachers=%d",
            report.fallback_fields,
            report.repaired_cells,
            report.dropped_teachers,
        )

    state = EngineState(
        class_count=class_count,
        subject_list=subject_list,
        store=store,
        registry=registry,
        standard_hours=standard_hours,
        change_log=change_log,
        weekly_notices=weekly_notices,
    )
    return state, report

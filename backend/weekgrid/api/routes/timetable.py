from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session, sessionmaker

from weekgrid.api.deps import get_db, get_engine, get_sync
from weekgrid.core.config import get_settings
from weekgrid.core.exceptions import ResourceNotFoundError
from weekgrid.schemas.conflict import AssignmentOutcome, CellStatus, SwapEvaluation, SwapOutcome
from weekgrid.schemas.timetable import (
    AssignSubjectRequest,
    Cell,
    HistoryOut,
    HolidayRequest,
    LocationUpdate,
    OperationResult,
    PropagateRequest,
    RepairReportOut,
    StandardHoursUpdate,
    SwapCandidatesRequest,
    SwapRequest,
    SyncStatusOut,
    TemplateApplyRequest,
    WeekOut,
    WeeklyNoticeUpdate,
)
from weekgrid.services.conflict_planner import slot_from_ref
from weekgrid.services.engine import TimetableEngine
from weekgrid.services.school_calendar import day_labels
from weekgrid.services.snapshot import RepairReport
from weekgrid.services.sync import DatabaseSnapshotStore, SyncCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


def _repair_out(report: RepairReport) -> RepairReportOut:
    return RepairReportOut(
        fallback_fields=report.fallback_fields,
        repaired_cells=report.repaired_cells,
        dropped_teachers=report.dropped_teachers,
    )


def _database_store(db: Session) -> DatabaseSnapshotStore:
    return DatabaseSnapshotStore(sessionmaker(bind=db.get_bind()), row_id=settings.sync_state_row_id)


@router.get("/weeks", response_model=list[WeekOut])
def list_weeks(engine: TimetableEngine = Depends(get_engine)) -> list[WeekOut]:
    return [
        WeekOut(name=week.name, term=week.term, number=week.number, start=week.start, days=day_labels(week))
        for week in engine.weeks
    ]


@router.get("/grid", response_model=list[list[Cell]])
def get_class_grid(
    week: str = Query(min_length=1),
    class_name: str = Query(alias="className", min_length=1),
    engine: TimetableEngine = Depends(get_engine),
) -> list[list[Cell]]:
    return engine.class_grid(week, class_name)


@router.get("/status", response_model=list[list[CellStatus]])
def get_cell_status(
    week: str = Query(min_length=1),
    class_name: str = Query(alias="className", min_length=1),
    engine: TimetableEngine = Depends(get_engine),
) -> list[list[CellStatus]]:
    return engine.cell_status(week, class_name)


@router.post("/assign", response_model=AssignmentOutcome)
def assign_subject(
    payload: AssignSubjectRequest,
    engine: TimetableEngine = Depends(get_engine),
) -> AssignmentOutcome:
    return engine.assign_subject(
        slot_from_ref(payload),
        payload.subject,
        teacher_id=payload.teacher_id,
        force_homeroom=payload.force_homeroom,
    )


@router.post("/swap/evaluate", response_model=SwapEvaluation)
def evaluate_swap(payload: SwapRequest, engine: TimetableEngine = Depends(get_engine)) -> SwapEvaluation:
    return engine.evaluate_swap(slot_from_ref(payload.source), slot_from_ref(payload.target))


@router.post("/swap/candidates", response_model=list[list[SwapEvaluation]])
def swap_candidates(
    payload: SwapCandidatesRequest,
    engine: TimetableEngine = Depends(get_engine),
) -> list[list[SwapEvaluation]]:
    return engine.swap_candidates(slot_from_ref(payload.source), payload.week, payload.class_name)


@router.post("/swap", response_model=SwapOutcome)
def swap_cells(payload: SwapRequest, engine: TimetableEngine = Depends(get_engine)) -> SwapOutcome:
    return engine.swap_cells(slot_from_ref(payload.source), slot_from_ref(payload.target), force=payload.force)


@router.put("/location", response_model=Cell)
def set_location(payload: LocationUpdate, engine: TimetableEngine = Depends(get_engine)) -> Cell:
    return engine.set_location(slot_from_ref(payload), payload.location)


@router.post("/propagate", response_model=OperationResult)
def copy_to_future_weeks(payload: PropagateRequest, engine: TimetableEngine = Depends(get_engine)) -> OperationResult:
    return engine.copy_class_to_future_weeks(payload.week, payload.class_name)


@router.post("/holidays", response_model=OperationResult)
def apply_holiday(payload: HolidayRequest, engine: TimetableEngine = Depends(get_engine)) -> OperationResult:
    return engine.apply_holiday(payload.week, payload.day_indices)


@router.post("/holidays/clear", response_model=OperationResult)
def clear_holiday(payload: HolidayRequest, engine: TimetableEngine = Depends(get_engine)) -> OperationResult:
    return engine.clear_holiday(payload.week, payload.day_indices)


@router.post("/templates/apply", response_model=OperationResult)
def apply_templates(
    payload: TemplateApplyRequest | None = Body(default=None),
    engine: TimetableEngine = Depends(get_engine),
) -> OperationResult:
    return engine.apply_template(payload.weeks if payload is not None else None)


@router.post("/regenerate", response_model=OperationResult)
def regenerate(engine: TimetableEngine = Depends(get_engine)) -> OperationResult:
    return engine.regenerate()


@router.post("/undo", response_model=OperationResult)
def undo(engine: TimetableEngine = Depends(get_engine)) -> OperationResult:
    return engine.undo()


@router.post("/redo", response_model=OperationResult)
def redo(engine: TimetableEngine = Depends(get_engine)) -> OperationResult:
    return engine.redo()


@router.get("/history", response_model=HistoryOut)
def get_history(engine: TimetableEngine = Depends(get_engine)) -> HistoryOut:
    return HistoryOut(
        can_undo=engine.history.can_undo,
        can_redo=engine.history.can_redo,
        change_logs=list(reversed(engine.history.change_log)),
    )


@router.get("/summary/subjects", response_model=dict[str, dict[str, int]])
def subject_summary(engine: TimetableEngine = Depends(get_engine)) -> dict[str, dict[str, int]]:
    return engine.subject_hour_summary()


@router.get("/summary/teachers", response_model=dict[str, dict[str, int]])
def teacher_summary(engine: TimetableEngine = Depends(get_engine)) -> dict[str, dict[str, int]]:
    return engine.teacher_load_summary()


@router.get("/standard-hours", response_model=dict[str, float])
def get_standard_hours(engine: TimetableEngine = Depends(get_engine)) -> dict[str, float]:
    return engine.standard_hours


@router.put("/standard-hours", response_model=dict[str, float])
def set_standard_hours(
    payload: StandardHoursUpdate,
    engine: TimetableEngine = Depends(get_engine),
) -> dict[str, float]:
    engine.set_standard_hours(payload.subject, payload.hours)
    return engine.standard_hours


@router.get("/notices", response_model=dict[str, str])
def get_notices(engine: TimetableEngine = Depends(get_engine)) -> dict[str, str]:
    return engine.weekly_notices


@router.put("/notices", response_model=dict[str, str])
def set_notice(payload: WeeklyNoticeUpdate, engine: TimetableEngine = Depends(get_engine)) -> dict[str, str]:
    engine.set_weekly_notice(payload.week, payload.text)
    return engine.weekly_notices


@router.get("/snapshot")
def get_snapshot(engine: TimetableEngine = Depends(get_engine)) -> dict[str, Any]:
    return engine.to_snapshot()


@router.put("/snapshot", response_model=RepairReportOut)
def load_snapshot(
    payload: dict[str, Any] = Body(...),
    engine: TimetableEngine = Depends(get_engine),
) -> RepairReportOut:
    return _repair_out(engine.load_snapshot(payload))


@router.get("/sync", response_model=SyncStatusOut)
def get_sync_status(
    engine: TimetableEngine = Depends(get_engine),
    sync: SyncCoordinator | None = Depends(get_sync),
) -> SyncStatusOut:
    if sync is None:
        return SyncStatusOut(enabled=False, status="local", actor=engine.actor_id)
    return SyncStatusOut(
        enabled=True,
        status=sync.status.value,
        pending_save=sync.has_pending_save,
        last_error=sync.last_error,
        actor=engine.actor_id,
    )


@router.post("/sync/flush", response_model=SyncStatusOut)
def flush_sync(
    engine: TimetableEngine = Depends(get_engine),
    sync: SyncCoordinator | None = Depends(get_sync),
) -> SyncStatusOut:
    if sync is not None:
        sync.flush()
    return get_sync_status(engine, sync)


@router.post("/publish", response_model=OperationResult)
def publish_snapshot(
    engine: TimetableEngine = Depends(get_engine),
    db: Session = Depends(get_db),
) -> OperationResult:
    _database_store(db).save(engine.to_snapshot(), engine.actor_id)
    logger.info("Published timetable snapshot as %s", engine.actor_id)
    return OperationResult(ok=True, message="Timetable saved", affected=len(engine.week_names))


@router.post("/pull", response_model=RepairReportOut)
def pull_snapshot(
    engine: TimetableEngine = Depends(get_engine),
    db: Session = Depends(get_db),
) -> RepairReportOut:
    payload = _database_store(db).load()
    if payload is None:
        raise ResourceNotFoundError("Timetable snapshot", settings.sync_state_row_id)
    return _repair_out(engine.load_snapshot(payload))

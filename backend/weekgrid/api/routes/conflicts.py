from fastapi import APIRouter, Depends, Query

from weekgrid.api.deps import get_engine
from weekgrid.schemas.conflict import ApplyPlanRequest, ConflictPlan, ConflictReport
from weekgrid.schemas.timetable import OperationResult
from weekgrid.services.engine import TimetableEngine

router = APIRouter()


@router.get("/detect", response_model=ConflictReport)
def detect_conflicts(
    week: str | None = Query(default=None, min_length=1),
    engine: TimetableEngine = Depends(get_engine),
):
    return engine.detect_conflicts(week)


@router.get("/plans", response_model=list[ConflictPlan])
def list_pending_plans(engine: TimetableEngine = Depends(get_engine)):
    # Plans from the latest rejected assignment; cleared by any commit.
    return engine.pending_plans


@router.post("/apply", response_model=OperationResult)
def apply_plan(request: ApplyPlanRequest, engine: TimetableEngine = Depends(get_engine)):
    return engine.apply_plan(request.plan_id)

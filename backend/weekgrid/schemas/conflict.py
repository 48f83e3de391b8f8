from __future__ import annotations

from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from weekgrid.schemas.timetable import Cell, SlotRef


class BlockReason(str, Enum):
    holiday = "holiday"
    missing_teacher = "missing_teacher"
    teacher_class_mismatch = "teacher_class_mismatch"
    source_teacher_busy = "source_teacher_busy"
    target_teacher_class_mismatch = "target_teacher_class_mismatch"
    target_teacher_busy = "target_teacher_busy"


# Block reasons a user may not override with a forced swap.
HARD_BLOCK_REASONS = frozenset({BlockReason.holiday, BlockReason.missing_teacher})


class SwapEvaluation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    can_swap: bool = Field(alias="canSwap")
    block_reason: Optional[BlockReason] = Field(default=None, alias="blockReason")
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def overridable(self) -> bool:
        return not self.can_swap and self.block_reason not in HARD_BLOCK_REASONS


class SwapOutcome(BaseModel):
    committed: bool
    forced: bool = False
    evaluation: SwapEvaluation
    message: str


class PlanFamily(str, Enum):
    relocate_blocker = "relocate_blocker"
    relocate_new = "relocate_new"
    forced = "forced"


class PlanOperation(BaseModel):
    action: Literal["swap", "place"]
    target: SlotRef
    source: Optional[SlotRef] = None
    cell: Optional[Cell] = None
    description: str


class ConflictPlan(BaseModel):
    id: str
    family: PlanFamily
    description: str
    operations: List[PlanOperation]
    score: int
    remaining_overlaps: int = Field(alias="remainingOverlaps")
    remaining_mismatches: int = Field(alias="remainingMismatches")
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class AssignmentOutcome(BaseModel):
    committed: bool
    cell: Cell
    conflicting_classes: List[str] = Field(default_factory=list, alias="conflictingClasses")
    plans: List[ConflictPlan] = Field(default_factory=list)
    message: str

    model_config = ConfigDict(populate_by_name=True)


class ApplyPlanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: str = Field(alias="planId", min_length=1)


class ConflictDetail(BaseModel):
    id: str
    conflict_type: Literal["teacher_double_booking", "template_overlap"]
    description: str
    severity: Literal["hard", "forced"]
    week: str
    period: int
    day: int
    teacher_id: str
    classes: List[str]


class ConflictReport(BaseModel):
    conflicts: List[ConflictDetail]
    forced_count: int = 0
    unforced_count: int = 0


class CellStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cell: Cell
    mismatched: bool
    overlaps: List[str] = Field(default_factory=list)
    forced_conflict: bool = Field(default=False, alias="forcedConflict")

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from weekgrid.services.school_calendar import DAY_COUNT, PERIOD_COUNT


class CellType(str, Enum):
    empty = "empty"
    homeroom = "homeroom"
    special = "special"
    holiday = "holiday"


class Cell(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = ""
    subject: str = ""
    type: CellType = CellType.empty
    teacher_id: str | None = Field(default=None, alias="teacherId")
    teacher: str = ""
    location: str = ""
    forced_conflict: bool = Field(default=False, alias="forcedConflict")

    @model_validator(mode="after")
    def validate_occupancy(self) -> "Cell":
        if self.type == CellType.special and not self.teacher_id:
            raise ValueError("Specialist cells require a teacherId")
        if self.type == CellType.holiday and (self.teacher_id or self.teacher or self.location):
            raise ValueError("Holiday cells cannot carry teacher or location data")
        if self.type != CellType.special and self.teacher_id:
            raise ValueError("Only specialist cells may carry a teacherId")
        return self

    @property
    def is_special(self) -> bool:
        return self.type == CellType.special

    @property
    def is_holiday(self) -> bool:
        return self.type == CellType.holiday

    def relocated(self, new_id: str) -> "Cell":
        return self.model_copy(update={"id": new_id})

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SlotRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    week: str = Field(min_length=1)
    class_name: str = Field(alias="className", min_length=1)
    period: int = Field(ge=0, lt=PERIOD_COUNT)
    day: int = Field(ge=0, lt=DAY_COUNT)


class ChangeLogEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    summary: str
    week_keys: list[str] = Field(default_factory=list, alias="weekKeys")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor: str | None = None


class OperationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    message: str
    affected: int = 0
    week_keys: list[str] = Field(default_factory=list, alias="weekKeys")


class TimetableSnapshot(BaseModel):
    """Serializable form of the shared document exchanged with the snapshot store."""

    model_config = ConfigDict(populate_by_name=True)

    class_count: int = Field(alias="classCount")
    subject_list: list[str] = Field(alias="subjectList")
    all_schedules: dict[str, dict[str, list[list[dict[str, Any]]]]] = Field(alias="allSchedules")
    standard_hours: dict[str, float] = Field(default_factory=dict, alias="standardHours")
    teacher_configs: list[dict[str, Any]] = Field(default_factory=list, alias="teacherConfigs")
    special_templates: dict[str, list[list[dict[str, Any]]]] = Field(default_factory=dict, alias="specialTemplates")
    change_logs: list[dict[str, Any]] = Field(default_factory=list, alias="changeLogs")
    weekly_notices: dict[str, str] = Field(default_factory=dict, alias="weeklyNotices")


class AssignSubjectRequest(SlotRef):
    subject: str = ""
    teacher_id: str | None = Field(default=None, alias="teacherId")
    force_homeroom: bool = Field(default=False, alias="forceHomeroom")


class SwapRequest(BaseModel):
    source: SlotRef
    target: SlotRef
    force: bool = False


class LocationUpdate(SlotRef):
    location: str = Field(default="", max_length=100)


class PropagateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    week: str = Field(min_length=1)
    class_name: str = Field(alias="className", min_length=1)


class HolidayRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    week: str = Field(min_length=1)
    day_indices: list[int] = Field(alias="dayIndices", min_length=1, max_length=DAY_COUNT)

    @field_validator("day_indices")
    @classmethod
    def validate_days(cls, value: list[int]) -> list[int]:
        invalid = [day for day in value if not 0 <= day < DAY_COUNT]
        if invalid:
            raise ValueError(f"Invalid day index(es): {', '.join(str(day) for day in invalid)}")
        return sorted(set(value))


class TemplateApplyRequest(BaseModel):
    weeks: list[str] | None = None


class WeeklyNoticeUpdate(BaseModel):
    week: str = Field(min_length=1)
    text: str = Field(default="", max_length=2000)


class StandardHoursUpdate(BaseModel):
    subject: str = Field(min_length=1)
    hours: float = Field(ge=0, le=2000)


class SwapCandidatesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: SlotRef
    week: str = Field(min_length=1)
    class_name: str = Field(alias="className", min_length=1)


class WeekOut(BaseModel):
    name: str
    term: int
    number: int
    start: date
    days: list[str]


class HistoryOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    can_undo: bool = Field(alias="canUndo")
    can_redo: bool = Field(alias="canRedo")
    change_logs: list[ChangeLogEntry] = Field(alias="changeLogs")


class RepairReportOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fallback_fields: list[str] = Field(default_factory=list, alias="fallbackFields")
    repaired_cells: int = Field(default=0, alias="repairedCells")
    dropped_teachers: int = Field(default=0, alias="droppedTeachers")


class SyncStatusOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool
    status: str
    pending_save: bool = Field(default=False, alias="pendingSave")
    last_error: str | None = Field(default=None, alias="lastError")
    actor: str

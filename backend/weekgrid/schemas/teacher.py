from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from weekgrid.services.school_calendar import DAY_COUNT, PERIOD_COUNT


class Teacher(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=100)
    subject: str = Field(min_length=1, max_length=50)
    classes: list[int] = Field(default_factory=list)

    @field_validator("name", "subject")
    @classmethod
    def strip_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Value cannot be blank")
        return stripped

    @field_validator("classes")
    @classmethod
    def normalize_classes(cls, value: list[int]) -> list[int]:
        invalid = [number for number in value if number < 1]
        if invalid:
            raise ValueError(f"Invalid class number(s): {', '.join(str(number) for number in invalid)}")
        return sorted(set(value))

    def covers(self, number: int | None) -> bool:
        return number is not None and number in self.classes


class TemplateCell(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    class_name: str = Field(default="", alias="className")
    location: str = ""


class TeacherCreate(BaseModel):
    name: str = ""
    subject: str = ""
    classes: list[int] = Field(default_factory=list)


class TeacherUpdate(TeacherCreate):
    pass


class TemplateCellUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    period: int = Field(ge=0, lt=PERIOD_COUNT)
    day: int = Field(ge=0, lt=DAY_COUNT)
    class_name: str | None = Field(default=None, alias="className")
    location: str | None = Field(default=None, max_length=100)


class ClassConfigurationUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    class_count: int = Field(alias="classCount", ge=1)
    subject_list: list[str] | None = Field(default=None, alias="subjectList")


class ClassConfigurationOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    class_count: int = Field(alias="classCount")
    max_class_count: int = Field(alias="maxClassCount")
    class_names: list[str] = Field(alias="classNames")
    subject_list: list[str] = Field(alias="subjectList")

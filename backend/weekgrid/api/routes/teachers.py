from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from weekgrid.api.deps import get_engine
from weekgrid.schemas.teacher import Teacher, TeacherCreate, TeacherUpdate, TemplateCell, TemplateCellUpdate
from weekgrid.services.engine import TimetableEngine

router = APIRouter()


@router.get("/", response_model=list[Teacher])
def list_teachers(engine: TimetableEngine = Depends(get_engine)) -> list[Teacher]:
    return engine.registry.teachers


@router.post("/", response_model=Teacher, status_code=status.HTTP_201_CREATED)
def create_teacher(payload: TeacherCreate, engine: TimetableEngine = Depends(get_engine)) -> Teacher:
    return engine.add_teacher(name=payload.name, subject=payload.subject, classes=payload.classes)


@router.get("/{teacher_id}", response_model=Teacher)
def get_teacher(teacher_id: str, engine: TimetableEngine = Depends(get_engine)) -> Teacher:
    return engine.require_teacher(teacher_id)


@router.put("/{teacher_id}", response_model=Teacher)
def update_teacher(
    teacher_id: str,
    payload: TeacherUpdate,
    engine: TimetableEngine = Depends(get_engine),
) -> Teacher:
    return engine.update_teacher(teacher_id, name=payload.name, subject=payload.subject, classes=payload.classes)


@router.delete("/{teacher_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_teacher(teacher_id: str, engine: TimetableEngine = Depends(get_engine)) -> Response:
    engine.remove_teacher(teacher_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{teacher_id}/template", response_model=list[list[TemplateCell]])
def get_template(teacher_id: str, engine: TimetableEngine = Depends(get_engine)) -> list[list[TemplateCell]]:
    engine.require_teacher(teacher_id)
    return engine.registry.template(teacher_id)


@router.put("/{teacher_id}/template", response_model=list[list[TemplateCell]])
def update_template_cell(
    teacher_id: str,
    payload: TemplateCellUpdate,
    engine: TimetableEngine = Depends(get_engine),
) -> list[list[TemplateCell]]:
    if payload.class_name is not None:
        engine.set_template_cell(teacher_id, payload.period, payload.day, payload.class_name)
    if payload.location is not None:
        engine.set_template_location(teacher_id, payload.period, payload.day, payload.location)
    return engine.registry.template(teacher_id)


@router.delete("/{teacher_id}/template", response_model=list[list[TemplateCell]])
def clear_template(teacher_id: str, engine: TimetableEngine = Depends(get_engine)) -> list[list[TemplateCell]]:
    engine.clear_template(teacher_id)
    return engine.registry.template(teacher_id)

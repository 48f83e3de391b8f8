from fastapi import APIRouter, Depends

from weekgrid.api.deps import get_engine
from weekgrid.schemas.teacher import ClassConfigurationOut, ClassConfigurationUpdate
from weekgrid.services.engine import TimetableEngine

router = APIRouter()


def _configuration(engine: TimetableEngine) -> ClassConfigurationOut:
    return ClassConfigurationOut(
        class_count=engine.class_count,
        max_class_count=engine.settings.max_class_count,
        class_names=engine.class_labels,
        subject_list=engine.subject_list,
    )


@router.get("/settings/classes", response_model=ClassConfigurationOut)
def get_class_configuration(engine: TimetableEngine = Depends(get_engine)) -> ClassConfigurationOut:
    return _configuration(engine)


@router.put("/settings/classes", response_model=ClassConfigurationOut)
def update_class_configuration(
    payload: ClassConfigurationUpdate,
    engine: TimetableEngine = Depends(get_engine),
) -> ClassConfigurationOut:
    engine.configure_classes(payload.class_count, payload.subject_list)
    return _configuration(engine)

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from weekgrid.api.routes import conflicts, health, settings as settings_routes, teachers, timetable
from weekgrid.core.config import get_settings
from weekgrid.core.exceptions import AppError
from weekgrid.db.bootstrap import ensure_schema
from weekgrid.db.session import SessionLocal
from weekgrid.services.engine import TimetableEngine
from weekgrid.services.sync import DatabaseSnapshotStore, SyncCoordinator

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_schema()
    # With sync on, the baseline is taken from the first shared snapshot instead.
    engine = TimetableEngine(settings=settings, capture_baseline=not settings.sync_enabled)
    app.state.engine = engine
    app.state.sync = None
    if settings.sync_enabled:
        store = DatabaseSnapshotStore(SessionLocal, row_id=settings.sync_state_row_id)
        coordinator = SyncCoordinator(engine, store, debounce_seconds=settings.sync_debounce_seconds)
        coordinator.start()
        app.state.sync = coordinator
        logger.info("Timetable sync started as %s (%s)", engine.actor_id, coordinator.status.value)
    yield
    if app.state.sync is not None:
        app.state.sync.stop()


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(timetable.router, prefix=f"{settings.api_prefix}/timetable", tags=["timetable"])
app.include_router(conflicts.router, prefix=f"{settings.api_prefix}/conflicts", tags=["conflicts"])
app.include_router(teachers.router, prefix=f"{settings.api_prefix}/teachers", tags=["teachers"])
app.include_router(settings_routes.router, prefix=settings.api_prefix, tags=["settings"])

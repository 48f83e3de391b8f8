from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from weekgrid.api.deps import get_db, get_engine, get_sync
from weekgrid.db.bootstrap import REQUIRED_COLUMNS
from weekgrid.services.engine import TimetableEngine
from weekgrid.services.sync import SyncCoordinator

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
def health_ready(
    db: Session = Depends(get_db),
    engine: TimetableEngine = Depends(get_engine),
    sync: SyncCoordinator | None = Depends(get_sync),
) -> JSONResponse:
    db_ok = True
    db_error: str | None = None
    missing_tables: list[str] = []
    try:
        db.execute(text("SELECT 1"))
        bind = db.get_bind()
        with bind.connect() as connection:
            table_names = set(inspect(connection).get_table_names())
        missing_tables = sorted(name for name in REQUIRED_COLUMNS if name not in table_names)
    except SQLAlchemyError as exc:  # pragma: no cover - environment dependent
        db_ok = False
        db_error = str(exc)

    ready = db_ok and not missing_tables
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {"ok": db_ok, "missing_tables": missing_tables, "error": db_error},
        "engine": {
            "weeks": len(engine.week_names),
            "classes": engine.class_count,
            "teachers": len(engine.registry.teachers),
            "revision": engine.revision,
        },
        "sync": {"enabled": sync is not None, "status": sync.status.value if sync is not None else "local"},
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)

from collections.abc import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from weekgrid.db.session import SessionLocal
from weekgrid.services.engine import TimetableEngine
from weekgrid.services.sync import SyncCoordinator


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_engine(request: Request) -> TimetableEngine:
    return request.app.state.engine


def get_sync(request: Request) -> SyncCoordinator | None:
    return getattr(request.app.state, "sync", None)

import os

# The app reads its database URL at import time; keep test runs off the working tree.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

import random

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from weekgrid.api.deps import get_db
from weekgrid.core.config import Settings
from weekgrid.db.base import Base
from weekgrid.main import app
from weekgrid.services.engine import TimetableEngine
from weekgrid.services.generator import special_cell
from weekgrid.services.schedule_store import ScheduleStore, Slot, fallback_grid


def homeroom_store(engine: TimetableEngine) -> ScheduleStore:
    grids = {label: fallback_grid(label) for label in engine.class_labels}
    return ScheduleStore(
        {week: {label: [list(row) for row in grid] for label, grid in grids.items()} for week in engine.week_names}
    )


@pytest.fixture()
def settings():
    return Settings(_env_file=None, academic_year=2026, default_class_count=12, plan_limit=10)


@pytest.fixture()
def engine(settings):
    """Seeded engine with a generated schedule and baseline."""
    return TimetableEngine(settings=settings, rng=random.Random(7), actor_id="client-test")


@pytest.fixture()
def make_blank_engine(settings):
    """Factory for engines whose every slot starts as a fallback homeroom lesson.

    The blank grid is also the baseline, so any specialist placed afterwards
    deviates from it.
    """

    def factory(teachers=None, class_count=None, actor_id="client-test"):
        engine = TimetableEngine(
            settings=settings,
            teachers=teachers,
            class_count=class_count,
            rng=random.Random(11),
            actor_id=actor_id,
        )
        store = homeroom_store(engine)
        engine.history.reset(store)
        engine.baseline = store.clone()
        return engine

    return factory


@pytest.fixture()
def blank_engine(make_blank_engine):
    return make_blank_engine()


@pytest.fixture()
def place():
    """Write specialist cells straight into the current schedule, bypassing history."""

    def put(engine, class_name, period, day, teacher_id, *, week=None, forced=False):
        week = week or engine.week_names[0]
        teacher = engine.registry.get(teacher_id)
        cell = special_cell(class_name, period, day, teacher)
        if forced:
            cell = cell.model_copy(update={"forced_conflict": True})
        engine.history.reset(engine.store.with_cell(Slot(week, class_name, period, day), cell))
        return cell

    return put


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def client(session_factory, make_blank_engine):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        app.state.engine = make_blank_engine(actor_id="client-api")
        yield test_client

    app.dependency_overrides.clear()

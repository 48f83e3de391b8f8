from __future__ import annotations

import logging

from sqlalchemy import Engine, inspect

from weekgrid.db.base import Base
from weekgrid.db.session import engine as default_engine
import weekgrid.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "timetable_state": {"id", "payload", "updated_by", "updated_at"},
}


def missing_schema(bind: Engine | None = None) -> dict[str, list[str]]:
    """Return required tables/columns absent from the database, keyed by table name."""
    bind = bind or default_engine
    missing: dict[str, list[str]] = {}
    with bind.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        for table_name, columns in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                missing[table_name] = sorted(columns)
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            absent = sorted(columns - existing)
            if absent:
                missing[table_name] = absent
    return missing


def ensure_schema(bind: Engine | None = None) -> None:
    bind = bind or default_engine
    Base.metadata.create_all(bind=bind)
    missing = missing_schema(bind)
    if missing:
        logger.error("Database schema is missing columns: %s", missing)
        raise RuntimeError(f"Database schema bootstrap failed: missing {missing}")

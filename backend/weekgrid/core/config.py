from functools import lru_cache
import json
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    # Resolve to backend/.env so `uvicorn --app-dir backend` works from any cwd.
    model_config = SettingsConfigDict(env_file=str(BACKEND_ENV_FILE), env_file_encoding="utf-8")

    project_name: str = "WeekGrid API"
    api_prefix: str = "/api"

    database_url: str = "sqlite+pysqlite:///./weekgrid.db"

    academic_year: int = 2026
    default_class_count: int = 12
    max_class_count: int = 30

    undo_limit: int = 50
    change_log_limit: int = 200
    plan_limit: int = 10

    sync_enabled: bool = False
    sync_state_row_id: str = "main"
    sync_debounce_seconds: float = 1.2

    random_seed: int | None = None

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_cors_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("["):
                try:
                    parsed = json.loads(stripped)
                    if isinstance(parsed, list):
                        return [str(item).strip() for item in parsed if str(item).strip()]
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("undo_limit", "change_log_limit", "plan_limit", "default_class_count", "max_class_count")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Value must be at least 1")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()

"""
Service settings, read from the environment (and a .env file when present).

get_settings() is cached; handlers receive it through Depends so tests can
override it with app.dependency_overrides.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    environment: str = "dev"

    database_url: Optional[str] = None
    api_key: Optional[str] = None

    # Connection pool
    db_min_connections: int = 0
    db_max_connections: int = 10
    db_max_waiting: int = 50
    db_acquire_timeout: float = 5.0
    db_statement_timeout_ms: int = 10000

    # Pagination
    default_limit: int = 10
    max_limit: int = 100

    # "column": sections.instructors holds a ", "-delimited string.
    # "table": one section_instructors row per (section, instructor).
    instructor_source: Literal["column", "table"] = "column"

    cors_origins: List[str] = ["*"]
    expose_error_details: bool = True
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv()  # no-op if .env not present
    environment = os.getenv("ENVIRONMENT", "dev")
    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    return Settings(
        environment=environment,
        database_url=os.getenv("DATABASE_URL"),
        api_key=os.getenv("API_KEY"),
        db_min_connections=int(os.getenv("DB_MIN_CONNECTIONS", "0")),
        db_max_connections=int(os.getenv("DB_MAX_CONNECTIONS", "10")),
        db_max_waiting=int(os.getenv("DB_MAX_WAITING", "50")),
        db_acquire_timeout=float(os.getenv("DB_ACQUIRE_TIMEOUT", "5.0")),
        db_statement_timeout_ms=int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "10000")),
        default_limit=int(os.getenv("DEFAULT_LIMIT", "10")),
        max_limit=int(os.getenv("MAX_LIMIT", "100")),
        instructor_source=os.getenv("INSTRUCTOR_SOURCE", "column").strip().lower(),
        cors_origins=origins or ["*"],
        expose_error_details=_env_bool("EXPOSE_ERROR_DETAILS", environment == "dev"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

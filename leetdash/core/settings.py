from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Tuple, TypeVar

from leetdash.core.env import load_env


DEFAULT_USER_DATA_DIR = Path.home() / ".leetdash" / "data"

ENVIRONMENTS = {"development", "production", "staging", "test"}
WARMUP_SELECTIONS = {"first", "last"}

N = TypeVar("N", int, float)


@dataclass(frozen=True)
class Settings:
    environment: str  # development, production, staging, test
    data_dir: Path
    database_url: str
    sql_echo: bool
    log_level: str
    log_json: bool
    log_file: str
    metrics_enabled: bool
    db_pool_size: int
    db_max_overflow: int
    db_pool_timeout: int
    db_pool_recycle: int
    cache_default_ttl_seconds: float
    cache_cleanup_interval_seconds: float
    cache_warmup_limit_production: int
    cache_warmup_limit_development: int
    cache_warmup_selection: str
    cache_warmup_batches: Tuple[str, ...]
    cache_warmup_on_startup: bool

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cache_warmup_limit(self) -> int:
        if self.is_production:
            return self.cache_warmup_limit_production
        return self.cache_warmup_limit_development


def _get_number(name: str, default: N, *, minimum: N) -> N:
    """Numeric env var; unparsable or below-minimum values fall back to ``default``."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = type(default)(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    items = tuple(item.strip() for item in raw.split(",") if item.strip())
    return items


load_env()


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir and env_dir.strip():
        return Path(env_dir).expanduser()
    return DEFAULT_USER_DATA_DIR


def _normalize_sqlite_url(url: str) -> str:
    if url.startswith("sqlite") and "+aiosqlite" not in url.split("://", 1)[0]:
        path = url.split("///", maxsplit=1)[-1]
        return f"sqlite+aiosqlite:///{path}"
    return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Unknown environments fall back to development
    environment = os.getenv("ENVIRONMENT", "development").strip().lower()
    if environment not in ENVIRONMENTS:
        environment = "development"

    data_dir = _default_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    db_url_env = (os.getenv("DATABASE_URL") or "").strip()
    if db_url_env:
        database_url = _normalize_sqlite_url(db_url_env)
    else:
        database_url = f"sqlite+aiosqlite:///{data_dir / 'leetdash.db'}"

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    log_json = _get_bool("LOG_JSON", default=False)
    log_file = os.getenv("LOG_FILE", "").strip()
    if not log_file:
        log_dir = data_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = str(log_dir / "app.log")

    # Pool settings only apply to PostgreSQL
    db_pool_size = _get_number("DB_POOL_SIZE", 10, minimum=1)
    db_max_overflow = _get_number("DB_MAX_OVERFLOW", 20, minimum=0)
    db_pool_timeout = _get_number("DB_POOL_TIMEOUT", 30, minimum=1)
    db_pool_recycle = _get_number("DB_POOL_RECYCLE", 1800, minimum=60)

    cache_default_ttl_seconds = _get_number("CACHE_DEFAULT_TTL_SECONDS", 15 * 60.0, minimum=0.001)
    cache_cleanup_interval_seconds = _get_number("CACHE_CLEANUP_INTERVAL_SECONDS", 30 * 60.0, minimum=1.0)
    cache_warmup_limit_production = _get_number("CACHE_WARMUP_LIMIT_PRODUCTION", 20, minimum=0)
    cache_warmup_limit_development = _get_number("CACHE_WARMUP_LIMIT_DEVELOPMENT", 50, minimum=0)
    cache_warmup_selection = os.getenv("CACHE_WARMUP_SELECTION", "first").strip().lower() or "first"
    if cache_warmup_selection not in WARMUP_SELECTIONS:
        cache_warmup_selection = "first"

    return Settings(
        environment=environment,
        data_dir=data_dir,
        database_url=database_url,
        sql_echo=_get_bool("SQL_ECHO", default=False),
        log_level=log_level,
        log_json=log_json,
        log_file=log_file,
        metrics_enabled=_get_bool("METRICS_ENABLED", default=False),
        db_pool_size=db_pool_size,
        db_max_overflow=db_max_overflow,
        db_pool_timeout=db_pool_timeout,
        db_pool_recycle=db_pool_recycle,
        cache_default_ttl_seconds=cache_default_ttl_seconds,
        cache_cleanup_interval_seconds=cache_cleanup_interval_seconds,
        cache_warmup_limit_production=cache_warmup_limit_production,
        cache_warmup_limit_development=cache_warmup_limit_development,
        cache_warmup_selection=cache_warmup_selection,
        cache_warmup_batches=_get_list("CACHE_WARMUP_BATCHES", ("2027", "2028")),
        cache_warmup_on_startup=_get_bool("CACHE_WARMUP_ON_STARTUP", default=True),
    )


__all__ = ["Settings", "get_settings"]

"""Async engine and session factory for the dashboard cache database."""

from __future__ import annotations

import importlib
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from leetdash.core.settings import Settings, get_settings
from leetdash.migrations import apply_migrations

logger = logging.getLogger(__name__)

# drivername -> module that must be importable
DRIVERS = {
    "postgresql+asyncpg": "asyncpg",
    "sqlite+aiosqlite": "aiosqlite",
}


def resolve_driver(url: str) -> str:
    """Validate ``DATABASE_URL`` and return its SQLAlchemy driver name."""
    try:
        parsed = make_url(url)
    except ArgumentError as exc:  # pragma: no cover - configuration guard
        raise RuntimeError(f"Invalid DATABASE_URL: {exc}") from exc

    driver = (parsed.drivername or "").lower()
    module_name = DRIVERS.get(driver)
    if module_name is None:
        supported = ", ".join(sorted(DRIVERS))
        raise RuntimeError(f"Unsupported database driver {driver!r}; expected one of: {supported}")
    try:
        importlib.import_module(module_name)
    except ImportError as exc:  # pragma: no cover - depends on local env
        raise RuntimeError(f"DATABASE_URL uses {driver} but {module_name} is not installed") from exc

    logger.info("Dashboard cache database: %s", parsed.render_as_string(hide_password=True))
    return driver


def engine_options(driver: str, settings: Settings) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.sql_echo}
    if driver.startswith("sqlite"):
        # One connection per session; nothing is shared across event loops
        options["poolclass"] = NullPool
        return options
    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,
    )
    return options


def _create_engine(settings: Settings) -> AsyncEngine:
    driver = resolve_driver(settings.database_url)
    return create_async_engine(settings.database_url, **engine_options(driver, settings))


async_engine: AsyncEngine = _create_engine(get_settings())
SessionLocal = async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)


async def init_models() -> None:
    """Bring the schema up to date."""
    async with async_engine.begin() as conn:
        applied = await conn.run_sync(apply_migrations)
    if applied:
        logger.info("Database migrated (%d migration(s) applied)", applied)


async def dispose_engine() -> None:
    await async_engine.dispose()


@asynccontextmanager
async def async_session() -> AsyncIterator[AsyncSession]:
    """Session that is rolled back on error and always closed."""
    session = SessionLocal()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


__all__ = ["async_engine", "async_session", "dispose_engine", "engine_options", "init_models", "resolve_driver"]

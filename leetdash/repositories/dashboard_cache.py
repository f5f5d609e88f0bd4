"""
Persistent store for dashboard cache entries.

Every operation opens its own session and reports its outcome as a
``Result``: database faults never raise out of this module, they come back as
``Failure(DatabaseError)`` and the caller decides how to degrade.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncContextManager, Callable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leetdash.core.result import DatabaseError, Result, failure, success
from leetdash.domain.models import DashboardCache

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]

# Driver errors (e.g. a vanished SQLite file or a dropped socket) surface as OSError
_STORE_ERRORS = (SQLAlchemyError, OSError)


@dataclass(frozen=True)
class EntrySummary:
    cache_key: str
    expires_at: datetime
    has_data: bool


def _default_session_factory() -> AsyncContextManager[AsyncSession]:
    from leetdash.core.db import async_session

    return async_session()


class DashboardCacheStore:
    """
    Key-value access to the ``dashboard_cache`` table.

    Implements the storage contract the cache service relies on:
    find-by-key, upsert-by-key, delete-by-key, delete-where-expired-before
    and delete-all, plus a payload-free listing for the status surface.
    """

    model = DashboardCache

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory or _default_session_factory

    def _fail(self, operation: str, exc: Exception) -> Result[Any, DatabaseError]:
        logger.error("Database error in DashboardCache.%s", operation, exc_info=True)
        return failure(
            DatabaseError(
                operation=f"DashboardCache.{operation}",
                message=str(exc),
                original_exception=exc,
            )
        )

    async def find_by_key(self, cache_key: str) -> Result[Optional[DashboardCache], DatabaseError]:
        """Return the entry for ``cache_key`` or ``None`` when absent."""
        try:
            async with self._session_factory() as session:
                stmt = select(DashboardCache).where(DashboardCache.cache_key == cache_key).limit(1)
                entry = (await session.execute(stmt)).scalar_one_or_none()
                return success(entry)
        except _STORE_ERRORS as exc:
            return self._fail("find_by_key", exc)

    async def list_summaries(self) -> Result[List[EntrySummary], DatabaseError]:
        """Key, expiry and payload presence of every entry, ordered by key; payloads are not loaded."""
        stmt = select(
            DashboardCache.cache_key,
            DashboardCache.expires_at,
            DashboardCache.cache_data.is_not(None).label("has_data"),
        ).order_by(DashboardCache.cache_key)
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except _STORE_ERRORS as exc:
            return self._fail("list_summaries", exc)
        return success(
            [
                EntrySummary(cache_key=row.cache_key, expires_at=row.expires_at, has_data=bool(row.has_data))
                for row in rows
            ]
        )

    async def upsert(
        self,
        cache_key: str,
        cache_data: Any,
        *,
        last_updated: datetime,
        expires_at: datetime,
    ) -> Result[bool, DatabaseError]:
        """
        Insert or overwrite the entry for ``cache_key`` in one statement.

        PostgreSQL and SQLite use ``INSERT ... ON CONFLICT DO UPDATE``; other
        dialects fall back to update-then-insert inside one transaction.
        """
        values = {
            "cache_key": cache_key,
            "cache_data": cache_data,
            "last_updated": last_updated,
            "expires_at": expires_at,
        }
        try:
            async with self._session_factory() as session:
                bind = session.get_bind()
                dialect_name = bind.dialect.name if bind is not None else ""

                if dialect_name in {"sqlite", "postgresql"}:
                    insert_factory = sqlite_insert if dialect_name == "sqlite" else pg_insert
                    stmt = insert_factory(DashboardCache).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[DashboardCache.cache_key],
                        set_={
                            "cache_data": stmt.excluded.cache_data,
                            "last_updated": stmt.excluded.last_updated,
                            "expires_at": stmt.excluded.expires_at,
                        },
                    )
                    await session.execute(stmt)
                else:
                    result = await session.execute(
                        update(DashboardCache)
                        .where(DashboardCache.cache_key == cache_key)
                        .values(
                            cache_data=cache_data,
                            last_updated=last_updated,
                            expires_at=expires_at,
                        )
                    )
                    if not result.rowcount:
                        session.add(DashboardCache(**values))
                await session.commit()
                return success(True)
        except _STORE_ERRORS as exc:
            return self._fail("upsert", exc)

    async def delete_by_key(self, cache_key: str) -> Result[int, DatabaseError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(DashboardCache).where(DashboardCache.cache_key == cache_key)
                )
                await session.commit()
                return success(result.rowcount or 0)
        except _STORE_ERRORS as exc:
            return self._fail("delete_by_key", exc)

    async def delete_expired_before(self, moment: datetime) -> Result[int, DatabaseError]:
        """Delete entries whose ``expires_at`` is strictly before ``moment``."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(DashboardCache).where(DashboardCache.expires_at < moment)
                )
                await session.commit()
                return success(result.rowcount or 0)
        except _STORE_ERRORS as exc:
            return self._fail("delete_expired_before", exc)

    async def delete_all(self) -> Result[int, DatabaseError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(DashboardCache))
                await session.commit()
                return success(result.rowcount or 0)
        except _STORE_ERRORS as exc:
            return self._fail("delete_all", exc)


__all__ = ["DashboardCacheStore", "EntrySummary", "SessionFactory"]

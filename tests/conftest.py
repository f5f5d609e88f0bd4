import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Isolated data dir + SQLite database for the whole session
_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="leetdash-tests-"))

TEST_ENV = {
    "ENVIRONMENT": "test",
    "DATA_DIR": str(_TEST_DATA_DIR),
    "DATABASE_URL": f"sqlite+aiosqlite:///{_TEST_DATA_DIR / 'test.db'}",
    "LOG_LEVEL": "WARNING",
    "METRICS_ENABLED": "0",
    "CACHE_WARMUP_ON_STARTUP": "0",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value

from leetdash.core.db import async_session, init_models
from leetdash.domain import models  # noqa: F401  registers tables on Base.metadata
from leetdash.domain.base import Base


@pytest.fixture(scope="session", autouse=True)
def _set_test_env():
    """Force deterministic env for tests and reset cached settings."""

    for key, value in TEST_ENV.items():
        os.environ[key] = value

    from leetdash.core import settings as settings_module

    settings_module.get_settings.cache_clear()
    yield
    settings_module.get_settings.cache_clear()


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_db(_set_test_env):
    """Apply migrations once per session."""
    asyncio.run(init_models())
    yield


async def _wipe_db():
    async with async_session() as session:
        for table in reversed(Base.metadata.sorted_tables):
            await session.execute(table.delete())
        await session.commit()


@pytest.fixture(autouse=True)
async def _clean_database_between_tests(request):
    """Wipe all tables before each test to avoid cross-test pollution."""
    if "no_db_cleanup" in request.keywords:
        return
    await _wipe_db()


class FakeClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_service(clock):
    from leetdash.services.cache import CacheService

    service = CacheService(clock=clock)
    yield service
    service.shutdown()


class FakeDashboardSource:
    """In-memory producers for admin, university, batch and student dashboards."""

    def __init__(self, student_ids=(1, 2, 3)) -> None:
        self.student_ids = list(student_ids)
        self.calls: list[str] = []

    async def admin_dashboard(self):
        self.calls.append("admin")
        return {"view": "admin", "students": len(self.student_ids)}

    async def university_dashboard(self):
        self.calls.append("university")
        return {"view": "university"}

    async def batch_dashboard(self, batch):
        self.calls.append(f"batch_{batch}")
        return {"view": "batch", "batch": batch}

    async def list_student_ids(self):
        return list(self.student_ids)

    async def student_dashboard(self, student_id):
        self.calls.append(f"student_{student_id}")
        return {"view": "student", "id": student_id}


@pytest.fixture
def dashboard_source() -> FakeDashboardSource:
    return FakeDashboardSource()

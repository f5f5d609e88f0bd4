"""Forward-only schema migrations for the dashboard cache database.

Each module in ``leetdash.migrations.versions`` defines ``revision``,
``down_revision`` and ``upgrade(conn)``. Modules are ordered by revision, must
form a single chain, and the last applied revision is recorded in
``leetdash_schema_version``. ``upgrade`` receives a synchronous connection so
the runner works both from ``AsyncConnection.run_sync`` and plain engines.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from types import ModuleType
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection

VERSIONS_PACKAGE = "leetdash.migrations.versions"
VERSION_TABLE = "leetdash_schema_version"

logger = logging.getLogger(__name__)


def discover() -> List[ModuleType]:
    """Migration modules in apply order; raises if the chain is broken."""
    package = importlib.import_module(VERSIONS_PACKAGE)
    modules = [
        importlib.import_module(f"{VERSIONS_PACKAGE}.{info.name}")
        for info in pkgutil.iter_modules(package.__path__)
        if not info.ispkg and not info.name.startswith("_")
    ]
    for module in modules:
        if not hasattr(module, "revision") or not hasattr(module, "upgrade"):
            raise RuntimeError(f"{module.__name__} must define 'revision' and 'upgrade'")
    modules.sort(key=lambda module: module.revision)

    previous: Optional[str] = None
    for module in modules:
        down = getattr(module, "down_revision", None)
        if down != previous:
            raise RuntimeError(
                f"Migration {module.revision} follows {down!r}, expected {previous!r}"
            )
        previous = module.revision
    return modules


def current_revision(conn: Connection) -> Optional[str]:
    conn.execute(text(f"CREATE TABLE IF NOT EXISTS {VERSION_TABLE} (revision VARCHAR(64) NOT NULL)"))
    return conn.execute(text(f"SELECT revision FROM {VERSION_TABLE}")).scalar()


def _record(conn: Connection, revision: str) -> None:
    conn.execute(text(f"DELETE FROM {VERSION_TABLE}"))
    conn.execute(text(f"INSERT INTO {VERSION_TABLE} (revision) VALUES (:revision)"), {"revision": revision})


def apply_migrations(conn: Connection) -> int:
    """Apply pending migrations on an open connection; returns how many ran."""
    modules = discover()
    revisions = [module.revision for module in modules]
    current = current_revision(conn)
    if current is not None and current not in revisions:
        raise RuntimeError(f"Database is at unknown migration revision {current!r}")

    pending = modules if current is None else modules[revisions.index(current) + 1 :]
    for module in pending:
        module.upgrade(conn)
        _record(conn, module.revision)
        logger.info("Applied migration %s", module.revision)
    return len(pending)


__all__ = ["apply_migrations", "current_revision", "discover"]

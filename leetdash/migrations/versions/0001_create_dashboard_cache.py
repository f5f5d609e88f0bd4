"""Create dashboard_cache table for persisted dashboard payloads."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Connection

from leetdash.migrations.utils import index_exists, table_exists


revision = "0001_create_dashboard_cache"
down_revision = None
branch_labels = None
depends_on = None


TABLE_NAME = "dashboard_cache"
EXPIRES_INDEX = "ix_dashboard_cache_expires_at"


def _table() -> sa.Table:
    metadata = sa.MetaData()
    return sa.Table(
        TABLE_NAME,
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("cache_key", sa.String(255), nullable=False),
        sa.Column(
            "cache_data",
            sa.JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql"),
            nullable=True,
        ),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("cache_key", name="uq_dashboard_cache_cache_key"),
    )


def upgrade(conn: Connection) -> None:
    table = _table()
    if not table_exists(conn, TABLE_NAME):
        table.create(conn)
    if not index_exists(conn, TABLE_NAME, EXPIRES_INDEX):
        sa.Index(EXPIRES_INDEX, table.c.expires_at).create(conn)


def downgrade(conn: Connection) -> None:  # pragma: no cover
    if table_exists(conn, TABLE_NAME):
        _table().drop(conn)

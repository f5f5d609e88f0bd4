from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.engine import Connection


def table_exists(conn: Connection, table_name: str) -> bool:
    return inspect(conn).has_table(table_name)


def index_exists(conn: Connection, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspect(conn).get_indexes(table_name)}

"""SQLAlchemy adapter – dialect-specific upsert and insert-if-absent statements.

Only SQLite, PostgreSQL and MySQL/MariaDB expose conflict clauses through
SQLAlchemy; for any other dialect the builders return ``None`` (upsert) or a
plain ``INSERT`` (insert-if-absent) and the stores fall back accordingly.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import Table, insert
from sqlalchemy.sql.dml import Insert

_MYSQL = ("mysql", "mariadb")


def _dialect_insert(dialect_name: str, table: Table) -> Insert | None:
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert

        return sqlite_insert(table)
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert

        return pg_insert(table)
    if dialect_name in _MYSQL:
        from sqlalchemy.dialects.mysql import insert as mysql_insert

        return mysql_insert(table)
    return None


def upsert(
    dialect_name: str,
    table: Table,
    values: dict[str, Any],
    update_columns: Sequence[str],
) -> Insert | None:
    """``INSERT`` that overwrites *update_columns* when the primary key exists."""
    stmt: Any = _dialect_insert(dialect_name, table)
    if stmt is None:
        return None
    stmt = stmt.values(**values)
    if dialect_name in _MYSQL:
        return stmt.on_duplicate_key_update({name: stmt.inserted[name] for name in update_columns})
    return stmt.on_conflict_do_update(
        index_elements=list(table.primary_key.columns),
        set_={name: stmt.excluded[name] for name in update_columns},
    )


def insert_ignore(dialect_name: str, table: Table, rows: list[dict[str, Any]]) -> Insert:
    """Multi-row ``INSERT`` that skips rows whose key already exists."""
    stmt: Any = _dialect_insert(dialect_name, table)
    if stmt is None:
        return insert(table).values(rows)
    stmt = stmt.values(rows)
    if dialect_name in _MYSQL:
        return stmt.prefix_with("IGNORE")
    return stmt.on_conflict_do_nothing()


__all__ = ["insert_ignore", "upsert"]

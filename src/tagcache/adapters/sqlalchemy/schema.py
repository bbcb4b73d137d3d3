"""SQLAlchemy adapter – cache table definitions and the tag expiration migration.

Two tables are involved::

    <data_table>   id PK | data | create_time | update_time | expire_time
    <tags_table>   tag, cache_id (composite PK) | expire_time (indexed)

``expire_time`` holds absolute epoch seconds; ``0`` (and ``NULL`` on the
tags table) means the row never expires. The index on the tags table's
``expire_time`` is what keeps the expired-association sweep cheap, so
databases created before per-tag expiration existed must run
:func:`add_tag_expiration` once before the tag-lifetime backend is used.
"""
from __future__ import annotations

import dataclasses
from typing import Any

from sqlalchemy import (
    Column,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    inspect,
)
from sqlalchemy.ext.asyncio import AsyncEngine

from tagcache.observability.logging import get_logger

log = get_logger(__name__)

ID_LENGTH = 200
TAG_LENGTH = 100
EXPIRE_COLUMN = "expire_time"


@dataclasses.dataclass(frozen=True)
class CacheTables:
    """The pair of tables one backend works against."""

    metadata: MetaData
    data: Table
    tags: Table


def expire_index_name(tags_table: str) -> str:
    return f"ix_{tags_table}_{EXPIRE_COLUMN}"


def build_tables(
    data_table: str = "core_cache",
    tags_table: str = "core_cache_tag",
    metadata: MetaData | None = None,
) -> CacheTables:
    """Describe both cache tables on *metadata* (a fresh one by default)."""
    meta = metadata if metadata is not None else MetaData()
    data = Table(
        data_table,
        meta,
        Column("id", String(ID_LENGTH), primary_key=True),
        Column("data", LargeBinary, nullable=True),
        Column("create_time", Integer, nullable=True),
        Column("update_time", Integer, nullable=True),
        Column(EXPIRE_COLUMN, Integer, nullable=True, index=True),
    )
    tags = Table(
        tags_table,
        meta,
        Column("tag", String(TAG_LENGTH), nullable=False),
        Column("cache_id", String(ID_LENGTH), nullable=False, index=True),
        Column(EXPIRE_COLUMN, Integer, nullable=True),
        PrimaryKeyConstraint("tag", "cache_id", name=f"pk_{tags_table}"),
        Index(expire_index_name(tags_table), EXPIRE_COLUMN),
    )
    return CacheTables(metadata=meta, data=data, tags=tags)


async def create_tables(bind: AsyncEngine, tables: CacheTables) -> None:
    """Create both tables (and their indexes) if they do not exist yet."""
    async with bind.begin() as conn:
        await conn.run_sync(tables.metadata.create_all)


def _add_tag_expiration(sync_conn: Any, tags_table: str) -> list[str]:
    applied: list[str] = []
    inspector = inspect(sync_conn)
    columns = {col["name"] for col in inspector.get_columns(tags_table)}
    if EXPIRE_COLUMN not in columns:
        preparer = sync_conn.dialect.identifier_preparer
        type_ddl = Integer().compile(dialect=sync_conn.dialect)
        sync_conn.exec_driver_sql(
            f"ALTER TABLE {preparer.quote(tags_table)} "
            f"ADD COLUMN {preparer.quote(EXPIRE_COLUMN)} {type_ddl}"
        )
        applied.append("column")

    index_name = expire_index_name(tags_table)
    indexes = {ix["name"] for ix in inspect(sync_conn).get_indexes(tags_table)}
    if index_name not in indexes:
        reflected = Table(tags_table, MetaData(), autoload_with=sync_conn)
        Index(index_name, reflected.c[EXPIRE_COLUMN]).create(sync_conn)
        applied.append("index")
    return applied


async def add_tag_expiration(bind: AsyncEngine, tags_table: str = "core_cache_tag") -> list[str]:
    """Add ``expire_time`` and its index to an existing tags table.

    Idempotent: steps already present are skipped. Returns what was applied
    (``"column"`` and/or ``"index"``).
    """
    async with bind.begin() as conn:
        applied = await conn.run_sync(_add_tag_expiration, tags_table)
    log.info("cache.schema.tag_expiration", table=tags_table, applied=applied)
    return applied


__all__ = [
    "CacheTables",
    "add_tag_expiration",
    "build_tables",
    "create_tables",
    "expire_index_name",
]

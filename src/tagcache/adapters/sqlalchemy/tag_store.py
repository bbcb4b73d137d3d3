"""SQLAlchemy adapter – SqlAlchemyTagStore."""
from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import Table, delete, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncConnection

from tagcache.adapters.sqlalchemy.dialect import insert_ignore


class SqlAlchemyTagStore:
    """(tag, cache_id) associations, each with its own ``expire_time``.

    A pair is stored at most once. Writing a pair that already exists never
    refreshes its expiration: the first ``save`` to introduce a tag for an
    id decides when that association expires.

    Empty tag lists select nothing: ``ids_matching_all_tags([])`` and
    ``ids_matching_any_tag([])`` are empty, so ``ids_not_matching_any_tag([])``
    is the whole universe.
    """

    def __init__(self, table: Table) -> None:
        self._table = table

    @property
    def table(self) -> Table:
        return self._table

    async def upsert_associations(
        self,
        conn: AsyncConnection,
        id: str,
        tags: Iterable[str],
        expire_at: int | None,
    ) -> int:
        """Associate *id* with every tag not yet associated with it.

        One ``SELECT`` for the pairs already present, then one multi-row
        insert-if-absent for the rest; a concurrent writer inserting the same
        pair in between is absorbed by the conflict clause. Returns the number
        of pairs sent for insertion.
        """
        wanted = list(dict.fromkeys(tags))
        if not wanted:
            return 0
        t = self._table
        existing = set(
            (
                await conn.execute(
                    select(t.c.tag).where(t.c.cache_id == id, t.c.tag.in_(wanted))
                )
            ).scalars().all()
        )
        missing = [tag for tag in wanted if tag not in existing]
        if not missing:
            return 0
        rows = [{"tag": tag, "cache_id": id, "expire_time": expire_at} for tag in missing]
        await conn.execute(insert_ignore(conn.dialect.name, t, rows))
        return len(rows)

    async def delete_all(self, conn: AsyncConnection) -> int:
        return (await conn.execute(delete(self._table))).rowcount

    async def delete_expired(self, conn: AsyncConnection, now: int) -> int:
        t = self._table
        stmt = delete(t).where(t.c.expire_time > 0, t.c.expire_time <= now)
        return (await conn.execute(stmt)).rowcount

    async def ids_matching_all_tags(self, conn: AsyncConnection, tags: Iterable[str]) -> set[str]:
        wanted = set(tags)
        if not wanted:
            return set()
        t = self._table
        stmt = (
            select(t.c.cache_id)
            .where(t.c.tag.in_(wanted))
            .group_by(t.c.cache_id)
            .having(func.count(distinct(t.c.tag)) == len(wanted))
        )
        return set((await conn.execute(stmt)).scalars().all())

    async def ids_matching_any_tag(self, conn: AsyncConnection, tags: Iterable[str]) -> set[str]:
        wanted = set(tags)
        if not wanted:
            return set()
        t = self._table
        stmt = select(t.c.cache_id).where(t.c.tag.in_(wanted)).distinct()
        return set((await conn.execute(stmt)).scalars().all())

    async def ids_not_matching_any_tag(
        self,
        conn: AsyncConnection,
        tags: Iterable[str],
        universe: Iterable[str] | None = None,
    ) -> set[str]:
        """*universe* minus the ids tagged with any of *tags*.

        Without a universe every id that has at least one tag is considered.
        """
        if universe is None:
            universe = await self.all_ids(conn)
        return set(universe) - await self.ids_matching_any_tag(conn, tags)

    async def all_ids(self, conn: AsyncConnection) -> set[str]:
        stmt = select(self._table.c.cache_id).distinct()
        return set((await conn.execute(stmt)).scalars().all())

    async def all_tags(self, conn: AsyncConnection) -> list[str]:
        t = self._table
        stmt = select(t.c.tag).distinct().order_by(t.c.tag)
        return list((await conn.execute(stmt)).scalars().all())

    async def tags_for_id(self, conn: AsyncConnection, id: str) -> list[str]:
        t = self._table
        stmt = select(t.c.tag).where(t.c.cache_id == id).order_by(t.c.tag)
        return list((await conn.execute(stmt)).scalars().all())


__all__ = ["SqlAlchemyTagStore"]

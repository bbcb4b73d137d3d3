"""SQLAlchemy adapter – SqlAlchemyEntryStore."""
from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import Table, delete, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from tagcache.adapters.sqlalchemy.dialect import upsert
from tagcache.kernel.errors import StorageWriteError


class SqlAlchemyEntryStore:
    """Rows of the cache entries table, one per cache id.

    Every method takes the :class:`~sqlalchemy.ext.asyncio.AsyncConnection`
    of the caller's transaction; the store itself holds nothing but the
    table description and is safe to share between concurrent calls.
    """

    DELETE_BATCH_SIZE = 100

    def __init__(self, table: Table) -> None:
        self._table = table

    @property
    def table(self) -> Table:
        return self._table

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(
        self,
        conn: AsyncConnection,
        id: str,
        data: bytes,
        created_at: int,
        updated_at: int,
        expire_at: int,
    ) -> None:
        """Insert the entry, or overwrite data and expiration of an existing one.

        ``create_time`` of an existing row is left as it was. Raises
        :class:`StorageWriteError` when the statement affects no rows.
        """
        t = self._table
        values = {
            "id": id,
            "data": data,
            "create_time": created_at,
            "update_time": updated_at,
            "expire_time": expire_at,
        }
        stmt = upsert(conn.dialect.name, t, values, ("data", "update_time", "expire_time"))
        if stmt is None:
            affected = await self._update_then_insert(conn, values)
        else:
            affected = (await conn.execute(stmt)).rowcount
        if not affected:
            raise StorageWriteError(t.name, "upsert", detail={"cache_id": id})

    async def _update_then_insert(self, conn: AsyncConnection, values: dict[str, Any]) -> int:
        t = self._table
        result = await conn.execute(
            update(t)
            .where(t.c.id == values["id"])
            .values(data=values["data"], update_time=values["update_time"], expire_time=values["expire_time"])
        )
        if result.rowcount:
            return result.rowcount
        return (await conn.execute(insert(t).values(**values))).rowcount

    async def touch(self, conn: AsyncConnection, id: str, extra_lifetime: int, now: int) -> bool:
        """Push a still-valid, finite expiration forward by *extra_lifetime*."""
        t = self._table
        result = await conn.execute(
            update(t)
            .where(t.c.id == id, t.c.expire_time > now)
            .values(expire_time=t.c.expire_time + extra_lifetime, update_time=now)
        )
        return bool(result.rowcount)

    async def delete_one(self, conn: AsyncConnection, id: str) -> int:
        t = self._table
        return (await conn.execute(delete(t).where(t.c.id == id))).rowcount

    async def delete_all(self, conn: AsyncConnection) -> int:
        return (await conn.execute(delete(self._table))).rowcount

    async def delete_expired(self, conn: AsyncConnection, now: int) -> int:
        t = self._table
        stmt = delete(t).where(t.c.expire_time > 0, t.c.expire_time <= now)
        return (await conn.execute(stmt)).rowcount

    async def delete_by_ids(self, conn: AsyncConnection, ids: Iterable[str]) -> int:
        """Delete the given ids, ``DELETE_BATCH_SIZE`` per statement."""
        t = self._table
        pending = sorted(set(ids))
        removed = 0
        for start in range(0, len(pending), self.DELETE_BATCH_SIZE):
            batch = pending[start:start + self.DELETE_BATCH_SIZE]
            removed += (await conn.execute(delete(t).where(t.c.id.in_(batch)))).rowcount
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _valid(self, now: int) -> Any:
        t = self._table
        return or_(t.c.expire_time == 0, t.c.expire_time.is_(None), t.c.expire_time > now)

    async def get(self, conn: AsyncConnection, id: str, now: int | None = None) -> Any:
        """Return the row for *id*, or ``None``.

        With *now* given, expired rows are treated as missing.
        """
        t = self._table
        stmt = select(t).where(t.c.id == id)
        if now is not None:
            stmt = stmt.where(self._valid(now))
        return (await conn.execute(stmt)).first()

    async def all_ids(self, conn: AsyncConnection) -> set[str]:
        return set((await conn.execute(select(self._table.c.id))).scalars().all())


__all__ = ["SqlAlchemyEntryStore"]

"""SQLAlchemy adapter – DatabaseCacheBackend and TagLifetimeCacheBackend.

:class:`DatabaseCacheBackend` is a plain relational cache: entries expire,
tag associations never do, so the tags table keeps growing with rows that
point at long-expired entries. :class:`TagLifetimeCacheBackend` wraps one and
stamps every tag association with the expiration of the ``save`` that wrote
it, which lets ``clean(CleaningMode.OLD)`` sweep stale associations together
with stale entries.

Both backends own their transactions: each ``save``/``clean`` call runs in a
single ``AsyncEngine.begin()`` block and reads the clock once.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from tagcache.adapters.sqlalchemy.entry_store import SqlAlchemyEntryStore
from tagcache.adapters.sqlalchemy.schema import CacheTables, build_tables, create_tables
from tagcache.adapters.sqlalchemy.tag_store import SqlAlchemyTagStore
from tagcache.application.cache import (
    DEFAULT,
    CleaningMode,
    Lifetime,
    Tags,
    compute_expire_at,
    normalize_tags,
)
from tagcache.config import CacheBackendSettings
from tagcache.kernel.errors import StorageWriteError
from tagcache.kernel.time import Clock, SystemClock, epoch_seconds
from tagcache.observability.logging import get_logger

log = get_logger(__name__)

_STORAGE_ERRORS = (StorageWriteError, SQLAlchemyError)


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


class DatabaseCacheBackend:
    """Relational cache backend over an injected :class:`AsyncEngine`.

    Parameters
    ----------
    engine:
        Engine for the database holding both cache tables.
    settings:
        Table names, default lifetime and whether entries are stored at all.
    clock:
        Time source; :class:`SystemClock` by default.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        settings: CacheBackendSettings | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._engine = engine
        self._settings = settings or CacheBackendSettings()
        self._clock: Clock = clock or SystemClock()
        self._tables = build_tables(self._settings.data_table, self._settings.tags_table)
        self._entries = SqlAlchemyEntryStore(self._tables.data)
        self._tags = SqlAlchemyTagStore(self._tables.tags)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def settings(self) -> CacheBackendSettings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def tables(self) -> CacheTables:
        return self._tables

    @property
    def entry_store(self) -> SqlAlchemyEntryStore:
        return self._entries

    @property
    def tag_store(self) -> SqlAlchemyTagStore:
        return self._tags

    def now(self) -> int:
        return epoch_seconds(self._clock)

    async def create_schema(self) -> None:
        """Create both cache tables if they are missing."""
        await create_tables(self._engine, self._tables)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(
        self,
        data: bytes | str,
        id: str,
        tags: Tags = (),
        specific_lifetime: Lifetime = DEFAULT,
    ) -> bool:
        """Store *data* under *id*; tag associations are written without expiration."""
        now = self.now()
        expire_at = compute_expire_at(specific_lifetime, self._settings.lifetime, now)
        try:
            async with self._engine.begin() as conn:
                if self._settings.store_data:
                    await self._entries.put(conn, id, _as_bytes(data), now, now, expire_at)
                await self._tags.upsert_associations(conn, id, normalize_tags(tags), None)
        except _STORAGE_ERRORS as exc:
            log.warning("cache.save.failed", cache_id=id, error=exc)
            return False
        return True

    async def clean(self, mode: CleaningMode | str = CleaningMode.ALL, tags: Tags = ()) -> bool:
        """Delete rows selected by *mode*.

        ``OLD`` only removes expired entries here; their tag associations stay.
        Raises :class:`~tagcache.kernel.errors.InvalidModeError` for an unknown
        mode before touching the database.
        """
        mode = CleaningMode.parse(mode)
        tag_list = normalize_tags(tags)
        now = self.now()
        try:
            async with self._engine.begin() as conn:
                rows = await self._clean(conn, mode, tag_list, now)
        except _STORAGE_ERRORS as exc:
            log.warning("cache.clean.failed", mode=mode.value, error=exc)
            return False
        log.info("cache.clean", mode=mode.value, rows=rows)
        return True

    async def _clean(self, conn: AsyncConnection, mode: CleaningMode, tags: list[str], now: int) -> int:
        if mode.uses_tags:
            return await self.clean_by_tags(conn, mode, tags)
        store_data = self._settings.store_data
        if mode is CleaningMode.ALL:
            rows = await self._entries.delete_all(conn) if store_data else 0
            return rows + await self._tags.delete_all(conn)
        return await self._entries.delete_expired(conn, now) if store_data else 0

    async def clean_by_tags(self, conn: AsyncConnection, mode: CleaningMode, tags: list[str]) -> int:
        """Delete the entries selected by a tag-matching *mode*.

        Only the entries table is touched; tag associations of the removed
        ids stay until their own expiration or a full flush.
        """
        if not mode.uses_tags:
            raise ValueError(f"clean_by_tags() needs a tag mode, got {mode.value!r}")
        if not self._settings.store_data:
            return 0
        if mode is CleaningMode.MATCHING_TAG:
            ids = await self._tags.ids_matching_all_tags(conn, tags)
        elif mode is CleaningMode.MATCHING_ANY_TAG:
            ids = await self._tags.ids_matching_any_tag(conn, tags)
        else:
            universe = await self._entries.all_ids(conn)
            ids = await self._tags.ids_not_matching_any_tag(conn, tags, universe)
        return await self._entries.delete_by_ids(conn, ids)

    async def remove(self, id: str) -> bool:
        """Delete the entry for *id*; ``True`` when a row was removed."""
        if not self._settings.store_data:
            return False
        async with self._engine.begin() as conn:
            return bool(await self._entries.delete_one(conn, id))

    async def touch(self, id: str, extra_lifetime: int) -> bool:
        if not self._settings.store_data:
            return True
        async with self._engine.begin() as conn:
            return await self._entries.touch(conn, id, extra_lifetime, self.now())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load(self, id: str, do_not_test_validity: bool = False) -> bytes | None:
        if not self._settings.store_data:
            return None
        now = None if do_not_test_validity else self.now()
        async with self._engine.connect() as conn:
            row = await self._entries.get(conn, id, now)
        return None if row is None else bytes(row.data)

    async def test(self, id: str) -> int | None:
        """``update_time`` of a valid entry, ``None`` when missing or expired."""
        if not self._settings.store_data:
            return None
        async with self._engine.connect() as conn:
            row = await self._entries.get(conn, id, self.now())
        return None if row is None else row.update_time

    async def get_ids(self) -> list[str]:
        if not self._settings.store_data:
            return []
        async with self._engine.connect() as conn:
            return sorted(await self._entries.all_ids(conn))

    async def get_tags(self) -> list[str]:
        async with self._engine.connect() as conn:
            return await self._tags.all_tags(conn)

    async def get_ids_matching_tags(self, tags: Tags = ()) -> list[str]:
        async with self._engine.connect() as conn:
            return sorted(await self._tags.ids_matching_all_tags(conn, normalize_tags(tags)))

    async def get_ids_matching_any_tags(self, tags: Tags = ()) -> list[str]:
        async with self._engine.connect() as conn:
            return sorted(await self._tags.ids_matching_any_tag(conn, normalize_tags(tags)))

    async def get_ids_not_matching_tags(self, tags: Tags = ()) -> list[str]:
        """Ids carrying none of *tags*.

        With ``store_data`` the candidates are the stored entries; without it
        they are the ids that have at least one tag association.
        """
        async with self._engine.connect() as conn:
            universe = await self._entries.all_ids(conn) if self._settings.store_data else None
            return sorted(await self._tags.ids_not_matching_any_tag(conn, normalize_tags(tags), universe))

    async def get_metadatas(self, id: str) -> dict[str, Any] | None:
        if not self._settings.store_data:
            return None
        async with self._engine.connect() as conn:
            row = await self._entries.get(conn, id)
            if row is None:
                return None
            tags = await self._tags.tags_for_id(conn, id)
        return {"expire": row.expire_time, "tags": tags, "mtime": row.update_time}

    def get_filling_percentage(self) -> int:
        return 1

    def get_capabilities(self) -> dict[str, bool]:
        return {
            "automatic_cleaning": False,
            "tags": True,
            "expired_read": True,
            "priority": False,
            "infinite_lifetime": True,
            "get_list": True,
        }


class TagLifetimeCacheBackend:
    """Cache backend whose tag associations expire with the entry that created them.

    Wraps a :class:`DatabaseCacheBackend` and overrides ``save`` and
    ``clean``; every other operation is forwarded unchanged.

    * ``save`` computes one ``expire_at`` and writes it to the entry and to
      each newly created tag association, in one transaction. Associations
      that already exist keep their original expiration.
    * ``clean(CleaningMode.OLD)`` also sweeps expired tag associations.
    """

    def __init__(self, inner: DatabaseCacheBackend) -> None:
        self._inner = inner

    @classmethod
    def from_engine(
        cls,
        engine: AsyncEngine,
        settings: CacheBackendSettings | None = None,
        *,
        clock: Clock | None = None,
    ) -> "TagLifetimeCacheBackend":
        return cls(DatabaseCacheBackend(engine, settings, clock=clock))

    @property
    def inner(self) -> DatabaseCacheBackend:
        return self._inner

    @property
    def settings(self) -> CacheBackendSettings:
        return self._inner.settings

    async def create_schema(self) -> None:
        await self._inner.create_schema()

    async def save(
        self,
        data: bytes | str,
        id: str,
        tags: Tags = (),
        specific_lifetime: Lifetime = DEFAULT,
    ) -> bool:
        """Store *data* under *id* and tag it, returning ``False`` on storage failure.

        *specific_lifetime* is :data:`DEFAULT` for the configured lifetime,
        ``None`` for an infinite one, or a number of seconds. When the entry
        write fails no tag association is written.
        """
        inner = self._inner
        now = inner.now()
        expire_at = compute_expire_at(specific_lifetime, inner.settings.lifetime, now)
        try:
            async with inner.engine.begin() as conn:
                if inner.settings.store_data:
                    await inner.entry_store.put(conn, id, _as_bytes(data), now, now, expire_at)
                await inner.tag_store.upsert_associations(conn, id, normalize_tags(tags), expire_at)
        except _STORAGE_ERRORS as exc:
            log.warning("cache.save.failed", cache_id=id, expire_at=expire_at, error=exc)
            return False
        return True

    async def clean(self, mode: CleaningMode | str = CleaningMode.ALL, tags: Tags = ()) -> bool:
        """Like :meth:`DatabaseCacheBackend.clean`, plus the tag sweep for ``OLD``.

        The sweep runs in its own transaction after the entries sweep, with
        the same ``now``; its failure is logged and does not change the
        result.
        """
        mode = CleaningMode.parse(mode)
        if mode is not CleaningMode.OLD:
            return await self._inner.clean(mode, tags)

        inner = self._inner
        now = inner.now()
        try:
            async with inner.engine.begin() as conn:
                rows = await inner.entry_store.delete_expired(conn, now) if inner.settings.store_data else 0
        except _STORAGE_ERRORS as exc:
            log.warning("cache.clean.failed", mode=mode.value, error=exc)
            return False
        log.info("cache.clean", mode=mode.value, rows=rows)
        await self._sweep_tags(now)
        return True

    async def _sweep_tags(self, now: int) -> None:
        inner = self._inner
        try:
            async with inner.engine.begin() as conn:
                rows = await inner.tag_store.delete_expired(conn, now)
        except SQLAlchemyError as exc:
            log.warning("cache.tags.sweep_failed", error=str(exc))
            return
        log.info("cache.tags.sweep", rows=rows)

    async def load(self, id: str, do_not_test_validity: bool = False) -> bytes | None:
        return await self._inner.load(id, do_not_test_validity)

    async def test(self, id: str) -> int | None:
        return await self._inner.test(id)

    async def remove(self, id: str) -> bool:
        return await self._inner.remove(id)

    async def touch(self, id: str, extra_lifetime: int) -> bool:
        return await self._inner.touch(id, extra_lifetime)

    async def get_ids(self) -> list[str]:
        return await self._inner.get_ids()

    async def get_tags(self) -> list[str]:
        return await self._inner.get_tags()

    async def get_ids_matching_tags(self, tags: Tags = ()) -> list[str]:
        return await self._inner.get_ids_matching_tags(tags)

    async def get_ids_not_matching_tags(self, tags: Tags = ()) -> list[str]:
        return await self._inner.get_ids_not_matching_tags(tags)

    async def get_ids_matching_any_tags(self, tags: Tags = ()) -> list[str]:
        return await self._inner.get_ids_matching_any_tags(tags)

    async def get_metadatas(self, id: str) -> dict[str, Any] | None:
        return await self._inner.get_metadatas(id)

    def get_filling_percentage(self) -> int:
        return self._inner.get_filling_percentage()

    def get_capabilities(self) -> dict[str, bool]:
        return self._inner.get_capabilities()


__all__ = ["DatabaseCacheBackend", "TagLifetimeCacheBackend"]

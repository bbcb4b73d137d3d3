"""Unit tests for the SQLAlchemy cache backends (save / clean / reads).

Uses an in-memory SQLite database via *aiosqlite* — no running server needed.
"""
from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from tagcache.adapters.sqlalchemy import (
    CacheTables,
    DatabaseCacheBackend,
    TagLifetimeCacheBackend,
)
from tagcache.application.cache import CacheBackend, CleaningMode
from tagcache.config import CacheBackendSettings
from tagcache.kernel.errors import InvalidModeError, StorageWriteError
from tagcache.kernel.time import FrozenClock

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
T0 = int(NOW.timestamp())


# ---------------------------------------------------------------------------
# Harness
# ---------------------------------------------------------------------------


class _Db:
    """Raw row access, bypassing the backend under test."""

    def __init__(self, engine: AsyncEngine, tables: CacheTables) -> None:
        self.engine = engine
        self.tables = tables

    async def entries(self) -> dict[str, int]:
        t = self.tables.data
        async with self.engine.connect() as conn:
            rows = (await conn.execute(select(t.c.id, t.c.expire_time))).all()
        return {row.id: row.expire_time for row in rows}

    async def payload(self, id: str) -> bytes | None:
        t = self.tables.data
        async with self.engine.connect() as conn:
            value = (await conn.execute(select(t.c.data).where(t.c.id == id))).scalar()
        return None if value is None else bytes(value)

    async def tags(self) -> dict[tuple[str, str], int | None]:
        t = self.tables.tags
        async with self.engine.connect() as conn:
            rows = (await conn.execute(select(t.c.tag, t.c.cache_id, t.c.expire_time))).all()
        return {(row.tag, row.cache_id): row.expire_time for row in rows}


Scenario = Callable[[Any, FrozenClock, _Db], Awaitable[Any]]


def _run(
    scenario: Scenario,
    *,
    store_data: bool = True,
    lifetime: int | None = 3600,
    tag_lifetime: bool = True,
) -> Any:
    async def run() -> Any:
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
        clock = FrozenClock(NOW)
        settings = CacheBackendSettings(store_data=store_data, lifetime=lifetime)
        inner = DatabaseCacheBackend(engine, settings, clock=clock)
        await inner.create_schema()
        backend = TagLifetimeCacheBackend(inner) if tag_lifetime else inner
        try:
            return await scenario(backend, clock, _Db(engine, inner.tables))
        finally:
            await engine.dispose()

    return asyncio.run(run())


def _locked(*_args: Any, **_kwargs: Any) -> OperationalError:
    return OperationalError("statement", {}, Exception("database is locked"))


# ---------------------------------------------------------------------------
# save
# ---------------------------------------------------------------------------


class TestSave:
    def test_entry_and_tags_share_expiration(self) -> None:
        async def scenario(backend, clock, db):
            assert await backend.save(b"payload", "k1", ["a", "b"], 100) is True
            assert await db.entries() == {"k1": T0 + 100}
            assert await db.tags() == {("a", "k1"): T0 + 100, ("b", "k1"): T0 + 100}

        _run(scenario)

    def test_none_lifetime_stores_zero(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["a"], None)
            assert await db.entries() == {"k1": 0}
            assert await db.tags() == {("a", "k1"): 0}

        _run(scenario)

    def test_zero_lifetime_stores_zero(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["a"], 0)
            assert await db.tags() == {("a", "k1"): 0}

        _run(scenario)

    def test_default_lifetime_from_settings(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["a"])
            assert await db.entries() == {"k1": T0 + 3600}
            assert await db.tags() == {("a", "k1"): T0 + 3600}

        _run(scenario)

    def test_false_override_means_default(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["a"], False)
            assert await db.tags() == {("a", "k1"): T0 + 60}

        _run(scenario, lifetime=60)

    def test_infinite_default_lifetime(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["a"])
            assert await db.entries() == {"k1": 0}

        _run(scenario, lifetime=None)

    def test_resave_keeps_existing_tag_expiration(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save("v1", "k1", ["t1", "t2"], 100)
            await backend.save("v2", "k1", ["t1"], 50)
            assert await db.payload("k1") == b"v2"
            assert await db.entries() == {"k1": T0 + 50}
            assert await db.tags() == {("t1", "k1"): T0 + 100, ("t2", "k1"): T0 + 100}

        _run(scenario)

    def test_resave_adds_new_tag_with_new_expiration(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v1", "k1", ["t1"], 100)
            clock.advance(seconds=5)
            await backend.save(b"v2", "k1", ["t1", "t3"], 50)
            assert await db.tags() == {("t1", "k1"): T0 + 100, ("t3", "k1"): T0 + 55}

        _run(scenario)

    def test_resave_keeps_create_time(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v1", "k1", [], 100)
            clock.advance(seconds=30)
            await backend.save(b"v2", "k1", [], 100)
            t = db.tables.data
            async with db.engine.connect() as conn:
                row = (await conn.execute(select(t).where(t.c.id == "k1"))).one()
            assert row.create_time == T0
            assert row.update_time == T0 + 30
            assert row.expire_time == T0 + 130

        _run(scenario)

    def test_duplicate_tags_stored_once(self) -> None:
        async def scenario(backend, clock, db):
            assert await backend.save(b"v", "k1", ["a", "a", "b", "a"], 10) is True
            assert sorted(await db.tags()) == [("a", "k1"), ("b", "k1")]

        _run(scenario)

    def test_single_string_tag(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", "solo", 10)
            assert await db.tags() == {("solo", "k1"): T0 + 10}

        _run(scenario)

    def test_empty_tags_succeeds_without_rows(self) -> None:
        async def scenario(backend, clock, db):
            assert await backend.save(b"v", "k1", [], 10) is True
            assert await db.tags() == {}
            assert await db.entries() == {"k1": T0 + 10}

        _run(scenario)

    def test_str_payload_is_utf8_encoded(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save("héllo", "k1")
            assert await backend.load("k1") == "héllo".encode("utf-8")

        _run(scenario)

    def test_without_store_data_only_tags_are_written(self) -> None:
        async def scenario(backend, clock, db):
            assert await backend.save(b"v", "k1", ["a"], 10) is True
            assert await db.entries() == {}
            assert await db.tags() == {("a", "k1"): T0 + 10}
            assert await backend.load("k1") is None

        _run(scenario, store_data=False)

    def test_negative_lifetime_rejected(self) -> None:
        async def scenario(backend, clock, db):
            with pytest.raises(ValueError):
                await backend.save(b"v", "k1", ["a"], -5)

        _run(scenario)


class TestSaveFailures:
    def test_entry_failure_skips_tags(self) -> None:
        async def scenario(backend, clock, db):
            async def failing_put(*args: Any, **kwargs: Any) -> None:
                raise StorageWriteError("core_cache", "upsert")

            backend.inner.entry_store.put = failing_put
            assert await backend.save(b"v", "k1", ["a"], 10) is False
            assert await db.tags() == {}

        _run(scenario)

    def test_tag_failure_rolls_back_entry(self) -> None:
        async def scenario(backend, clock, db):
            async def failing_upsert(*args: Any, **kwargs: Any) -> int:
                raise _locked()

            backend.inner.tag_store.upsert_associations = failing_upsert
            assert await backend.save(b"v", "k1", ["a"], 10) is False
            assert await db.entries() == {}

        _run(scenario)

    def test_failure_leaves_previous_value(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"old", "k1", ["a"], 10)

            async def failing_upsert(*args: Any, **kwargs: Any) -> int:
                raise _locked()

            backend.inner.tag_store.upsert_associations = failing_upsert
            assert await backend.save(b"new", "k1", ["b"], 10) is False
            assert await backend.load("k1") == b"old"

        _run(scenario)


# ---------------------------------------------------------------------------
# clean
# ---------------------------------------------------------------------------


async def _seed_tagged(backend: Any) -> None:
    await backend.save(b"1", "k1", ["a", "b"], None)
    await backend.save(b"2", "k2", ["a"], None)
    await backend.save(b"3", "k3", ["b", "c"], None)
    await backend.save(b"4", "k4", ["c"], None)
    await backend.save(b"5", "k5", [], None)


class TestCleanAllAndOld:
    def test_all_empties_both_tables(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.clean(CleaningMode.ALL) is True
            assert await db.entries() == {}
            assert await db.tags() == {}

        _run(scenario)

    def test_all_without_store_data_empties_tags(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.clean() is True
            assert await db.tags() == {}

        _run(scenario, store_data=False)

    def test_old_removes_only_expired_rows(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"s", "short", ["t"], 10)
            await backend.save(b"f", "forever", ["t"], None)
            await backend.save(b"l", "long", ["t"], 1000)
            clock.advance(seconds=100)
            assert await backend.clean(CleaningMode.OLD) is True
            assert await db.entries() == {"forever": 0, "long": T0 + 1000}
            assert await db.tags() == {("t", "forever"): 0, ("t", "long"): T0 + 1000}

        _run(scenario)

    def test_old_expiration_boundary_is_inclusive(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["t"], 10)
            clock.advance(seconds=9)
            await backend.clean(CleaningMode.OLD)
            assert list(await db.tags()) == [("t", "k1")]
            clock.advance(seconds=1)
            await backend.clean(CleaningMode.OLD)
            assert await db.tags() == {}
            assert await db.entries() == {}

        _run(scenario)

    def test_old_sweeps_tags_without_store_data(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["t"], 10)
            await backend.save(b"v", "k2", ["t"], None)
            clock.advance(seconds=10)
            assert await backend.clean(CleaningMode.OLD) is True
            assert await db.tags() == {("t", "k2"): 0}

        _run(scenario, store_data=False)

    def test_old_keeps_tag_that_outlives_its_entry(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v1", "k1", ["t"], 1000)
            await backend.save(b"v2", "k1", ["t"], 10)
            clock.advance(seconds=10)
            await backend.clean(CleaningMode.OLD)
            assert await db.entries() == {}
            assert await db.tags() == {("t", "k1"): T0 + 1000}

        _run(scenario)

    def test_old_tag_sweep_failure_does_not_fail_clean(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["t"], 10)
            clock.advance(seconds=20)

            async def failing_sweep(*args: Any, **kwargs: Any) -> int:
                raise _locked()

            backend.inner.tag_store.delete_expired = failing_sweep
            assert await backend.clean(CleaningMode.OLD) is True
            assert await db.entries() == {}
            assert list(await db.tags()) == [("t", "k1")]

        _run(scenario)

    def test_entry_delete_failure_returns_false(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["t"], 10)

            async def failing_delete(*args: Any, **kwargs: Any) -> int:
                raise _locked()

            backend.inner.entry_store.delete_all = failing_delete
            assert await backend.clean(CleaningMode.ALL) is False
            assert list(await db.tags()) == [("t", "k1")]

        _run(scenario)


class TestCleanByTags:
    def test_matching_tag_requires_every_tag(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.clean(CleaningMode.MATCHING_TAG, ["a", "b"]) is True
            assert sorted(await db.entries()) == ["k2", "k3", "k4", "k5"]

        _run(scenario)

    def test_matching_any_tag(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.clean(CleaningMode.MATCHING_ANY_TAG, ["a", "b"]) is True
            assert sorted(await db.entries()) == ["k4", "k5"]

        _run(scenario)

    def test_not_matching_tag_includes_untagged_entries(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.clean(CleaningMode.NOT_MATCHING_TAG, ["a"]) is True
            assert sorted(await db.entries()) == ["k1", "k2"]

        _run(scenario)

    def test_tag_modes_leave_tag_rows(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            before = await db.tags()
            await backend.clean(CleaningMode.MATCHING_ANY_TAG, ["a"])
            assert await db.tags() == before

        _run(scenario)

    def test_empty_tags_match_nothing(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.clean(CleaningMode.MATCHING_TAG, []) is True
            assert await backend.clean(CleaningMode.MATCHING_ANY_TAG, []) is True
            assert len(await db.entries()) == 5

        _run(scenario)

    def test_empty_tags_not_matching_removes_every_entry(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.clean(CleaningMode.NOT_MATCHING_TAG, []) is True
            assert await db.entries() == {}

        _run(scenario)

    def test_string_mode_and_single_tag(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.clean("matchingTag", "c") is True
            assert sorted(await db.entries()) == ["k1", "k2", "k5"]

        _run(scenario)

    def test_large_id_set_deleted_in_batches(self) -> None:
        async def scenario(backend, clock, db):
            for i in range(250):
                await backend.save(b"v", f"k{i:03d}", ["bulk"], None)
            await backend.save(b"v", "keep", ["other"], None)
            assert await backend.clean(CleaningMode.MATCHING_TAG, ["bulk"]) is True
            assert await db.entries() == {"keep": 0}

        _run(scenario)

    def test_tag_modes_are_noops_without_store_data(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            before = await db.tags()
            for mode in (CleaningMode.MATCHING_TAG, CleaningMode.NOT_MATCHING_TAG, CleaningMode.MATCHING_ANY_TAG):
                assert await backend.clean(mode, ["a"]) is True
            assert await db.tags() == before

        _run(scenario, store_data=False)


class TestInvalidMode:
    @pytest.mark.parametrize("mode", ["everything", 42, None, "matching"])
    def test_unknown_mode_raises(self, mode: Any) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["a"], None)
            with pytest.raises(InvalidModeError):
                await backend.clean(mode, ["a"])
            assert await db.entries() == {"k1": 0}

        _run(scenario)

    @pytest.mark.parametrize("mode", [CleaningMode.ALL, CleaningMode.OLD])
    def test_clean_by_tags_rejects_non_tag_modes(self, mode: CleaningMode) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["a"], None)
            async with backend.engine.begin() as conn:
                with pytest.raises(ValueError):
                    await backend.clean_by_tags(conn, mode, ["a"])
            assert await db.entries() == {"k1": 0}

        _run(scenario, tag_lifetime=False)


# ---------------------------------------------------------------------------
# DatabaseCacheBackend without tag lifetimes
# ---------------------------------------------------------------------------


class TestDatabaseCacheBackend:
    def test_tags_written_without_expiration(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["a"], 10)
            assert await db.entries() == {"k1": T0 + 10}
            assert await db.tags() == {("a", "k1"): None}

        _run(scenario, tag_lifetime=False)

    def test_old_leaves_tag_rows_behind(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["a"], 10)
            clock.advance(seconds=60)
            assert await backend.clean(CleaningMode.OLD) is True
            assert await db.entries() == {}
            assert await db.tags() == {("a", "k1"): None}

        _run(scenario, tag_lifetime=False)

    def test_unexpiring_tags_survive_tag_lifetime_sweep(self) -> None:
        async def scenario(backend, clock, db):
            await backend.inner.save(b"v", "legacy", ["a"], 10)
            await backend.save(b"v", "fresh", ["a"], 10)
            clock.advance(seconds=60)
            await backend.clean(CleaningMode.OLD)
            assert await db.tags() == {("a", "legacy"): None}

        _run(scenario)


# ---------------------------------------------------------------------------
# Reads forwarded to the wrapped backend
# ---------------------------------------------------------------------------


class TestReads:
    def test_satisfies_protocol(self) -> None:
        async def scenario(backend, clock, db):
            assert isinstance(backend, CacheBackend)
            assert isinstance(backend.inner, CacheBackend)

        _run(scenario)

    def test_load_respects_expiration(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", [], 10)
            assert await backend.load("k1") == b"v"
            clock.advance(seconds=10)
            assert await backend.load("k1") is None
            assert await backend.load("k1", do_not_test_validity=True) == b"v"
            assert await backend.load("missing") is None

        _run(scenario)

    def test_test_returns_update_time(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", [], None)
            clock.advance(seconds=3)
            assert await backend.test("k1") == T0
            assert await backend.test("missing") is None

        _run(scenario)

    def test_remove(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", [], None)
            assert await backend.remove("k1") is True
            assert await backend.remove("k1") is False
            assert await backend.load("k1") is None

        _run(scenario)

    def test_touch_extends_finite_lifetime(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", [], 100)
            await backend.save(b"v", "k2", [], None)
            assert await backend.touch("k1", 50) is True
            assert await backend.touch("k2", 50) is False
            assert await db.entries() == {"k1": T0 + 150, "k2": 0}

        _run(scenario)

    def test_id_and_tag_listings(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.get_ids() == ["k1", "k2", "k3", "k4", "k5"]
            assert await backend.get_tags() == ["a", "b", "c"]
            assert await backend.get_ids_matching_tags(["a", "b"]) == ["k1"]
            assert await backend.get_ids_matching_any_tags(["a", "c"]) == ["k1", "k2", "k3", "k4"]
            assert await backend.get_ids_not_matching_tags(["a"]) == ["k3", "k4", "k5"]

        _run(scenario)

    @pytest.mark.filterwarnings("error::sqlalchemy.exc.SAWarning")
    def test_listings_compile_without_warnings(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.get_tags() == ["a", "b", "c"]
            assert await backend.get_ids_matching_any_tags(["b"]) == ["k1", "k3"]
            assert await backend.clean(CleaningMode.NOT_MATCHING_TAG, ["a", "b"]) is True
            assert sorted(await db.entries()) == ["k1", "k2", "k3"]

        _run(scenario)

    def test_not_matching_without_store_data_uses_tagged_ids(self) -> None:
        async def scenario(backend, clock, db):
            await _seed_tagged(backend)
            assert await backend.get_ids() == []
            assert await backend.get_ids_not_matching_tags(["a"]) == ["k3", "k4"]
            assert await backend.get_ids_not_matching_tags([]) == ["k1", "k2", "k3", "k4"]

        _run(scenario, store_data=False)

    def test_metadatas(self) -> None:
        async def scenario(backend, clock, db):
            await backend.save(b"v", "k1", ["b", "a"], 100)
            assert await backend.get_metadatas("k1") == {
                "expire": T0 + 100,
                "tags": ["a", "b"],
                "mtime": T0,
            }
            assert await backend.get_metadatas("missing") is None

        _run(scenario)

    def test_capabilities(self) -> None:
        async def scenario(backend, clock, db):
            caps = backend.get_capabilities()
            assert caps["tags"] is True
            assert caps["infinite_lifetime"] is True
            assert caps["automatic_cleaning"] is False
            assert backend.get_filling_percentage() == 1

        _run(scenario)

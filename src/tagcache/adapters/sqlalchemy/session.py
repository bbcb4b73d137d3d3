"""SQLAlchemy adapter – SqlAlchemyEngineFactory."""
from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from tagcache.config import CacheBackendSettings


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite") and (":memory:" in database_url or database_url.endswith("://"))


class SqlAlchemyEngineFactory:
    """Creates the :class:`AsyncEngine` a cache backend is constructed with.

    In-memory SQLite URLs get a :class:`StaticPool` so every connection sees
    the same database.
    """

    def __init__(self, database_url: str, **engine_kwargs: Any) -> None:
        if _is_memory_sqlite(database_url):
            engine_kwargs.setdefault("poolclass", StaticPool)
        self._engine = create_async_engine(database_url, **engine_kwargs)

    @classmethod
    def from_settings(cls, settings: CacheBackendSettings, **engine_kwargs: Any) -> "SqlAlchemyEngineFactory":
        return cls(settings.database_url, **engine_kwargs)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def dispose(self) -> None:
        await self._engine.dispose()


__all__ = ["SqlAlchemyEngineFactory"]

"""SQLAlchemy adapter – cache tables, stores and backends."""
from tagcache.adapters.sqlalchemy.backend import DatabaseCacheBackend, TagLifetimeCacheBackend
from tagcache.adapters.sqlalchemy.entry_store import SqlAlchemyEntryStore
from tagcache.adapters.sqlalchemy.schema import (
    CacheTables,
    add_tag_expiration,
    build_tables,
    create_tables,
)
from tagcache.adapters.sqlalchemy.session import SqlAlchemyEngineFactory
from tagcache.adapters.sqlalchemy.tag_store import SqlAlchemyTagStore

__all__ = [
    "CacheTables",
    "DatabaseCacheBackend",
    "SqlAlchemyEngineFactory",
    "SqlAlchemyEntryStore",
    "SqlAlchemyTagStore",
    "TagLifetimeCacheBackend",
    "add_tag_expiration",
    "build_tables",
    "create_tables",
]

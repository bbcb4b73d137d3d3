"""Application cache – lifetimes, cleaning modes and the backend protocol."""
from tagcache.application.cache.backend import CacheBackend
from tagcache.application.cache.lifetime import (
    DEFAULT,
    NEVER_EXPIRES,
    Lifetime,
    compute_expire_at,
    resolve_lifetime,
)
from tagcache.application.cache.modes import CleaningMode
from tagcache.application.cache.tags import Tags, normalize_tags

__all__ = [
    "CacheBackend",
    "CleaningMode",
    "DEFAULT",
    "Lifetime",
    "NEVER_EXPIRES",
    "Tags",
    "compute_expire_at",
    "normalize_tags",
    "resolve_lifetime",
]

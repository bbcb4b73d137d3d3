"""
tagcache – relational cache backend with per-tag expiration.

Import path convention::

    from tagcache.adapters.sqlalchemy import TagLifetimeCacheBackend
    from tagcache.application.cache import CleaningMode
    from tagcache.config import CacheBackendSettings
"""

__version__ = "0.1.0"
__all__ = ["__version__"]

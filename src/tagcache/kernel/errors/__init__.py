"""Kernel error hierarchy — public re-export surface.

Hierarchy::

    BaseError
    ├── CacheError            (cache.py)
    │   ├── StorageWriteError
    │   └── InvalidModeError
    └── ConfigError           (tagcache.config.validation)
"""

from tagcache.kernel.errors.base import BaseError
from tagcache.kernel.errors.cache import CacheError, InvalidModeError, StorageWriteError

__all__ = [
    "BaseError",
    "CacheError",
    "InvalidModeError",
    "StorageWriteError",
]

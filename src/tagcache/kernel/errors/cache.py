"""Cache errors — storage failures and invalid cleaning requests."""

from __future__ import annotations

from typing import Any

from tagcache.kernel.errors.base import BaseError


class CacheError(BaseError):
    """Any failure raised by a cache backend or one of its stores."""

    default_code = "cache_error"


class StorageWriteError(CacheError):
    """A write touched zero rows or the database driver failed.

    Backends catch this and report ``False`` from ``save``/``clean``; it only
    escapes when a store is used directly.
    """

    default_code = "storage_write_error"

    def __init__(
        self,
        table: str,
        operation: str,
        message: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message or f"{operation} on '{table}' affected no rows", **kwargs)
        self.table = table
        self.operation = operation


class InvalidModeError(CacheError):
    """``clean`` was asked for a mode outside :class:`CleaningMode`."""

    default_code = "invalid_cleaning_mode"

    def __init__(self, mode: object, **kwargs: Any) -> None:
        super().__init__(f"Invalid mode for clean(): {mode!r}", **kwargs)
        self.mode = mode


__all__ = ["CacheError", "InvalidModeError", "StorageWriteError"]

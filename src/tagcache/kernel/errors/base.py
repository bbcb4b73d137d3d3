"""Root error class for the tagcache error hierarchy."""

from __future__ import annotations

from typing import Any


class BaseError(Exception):
    """Root of the error hierarchy.

    Every error carries a stable ``code`` slug and a ``detail`` mapping of
    log-ready context. :class:`~tagcache.observability.logging.CacheErrorProcessor`
    turns both into keys of the structured log event; chain driver errors
    with ``raise ... from exc``.
    """

    default_code: str = "base_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail: dict[str, Any] = dict(detail or {})

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


__all__ = ["BaseError"]

"""Observability – structlog processors and get_logger helper."""
from __future__ import annotations

from typing import Any

import structlog

from tagcache.kernel.errors import BaseError


class CacheErrorProcessor:
    """structlog processor that flattens a bound :class:`BaseError`.

    When an event carries ``error=<BaseError>`` the processor replaces it
    with the error's ``message`` and adds its ``code`` and ``detail`` keys
    (without overwriting keys already bound) so the JSON renderer emits
    stable keys instead of a repr.

    Usage::

        structlog.configure(processors=[CacheErrorProcessor(), ...])
    """

    def __call__(
        self,
        logger: Any,           # noqa: ARG002
        method_name: str,      # noqa: ARG002
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        error = event_dict.get("error")
        if isinstance(error, BaseError):
            event_dict["error"] = error.message
            event_dict.setdefault("error_code", error.code)
            for key, value in error.detail.items():
                event_dict.setdefault(key, value)
        return event_dict


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Return a bound structlog logger.

    Parameters
    ----------
    name:
        Logger name (typically ``__name__`` of the calling module).
    **initial_values:
        Key-value pairs to bind on the returned logger.
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


__all__ = ["CacheErrorProcessor", "get_logger"]

"""Application cache – lifetime resolution and expiration timestamps.

A lifetime override is three-valued:

* :data:`DEFAULT` (or ``False``) – use the backend's configured lifetime
* ``None`` – infinite lifetime
* ``int`` – expire that many seconds from now (``0`` is also infinite)

``expire_at`` values are absolute epoch seconds, with ``0`` meaning "never
expires"; both the entries and the tag associations store them as-is.
"""
from __future__ import annotations

import enum
from typing import Literal, Union

__all__ = [
    "DEFAULT",
    "NEVER_EXPIRES",
    "Lifetime",
    "compute_expire_at",
    "resolve_lifetime",
]


class _DefaultLifetime(enum.Enum):
    DEFAULT = "default"

    def __repr__(self) -> str:
        return "DEFAULT"


DEFAULT = _DefaultLifetime.DEFAULT
NEVER_EXPIRES = 0

Lifetime = Union[int, None, Literal[_DefaultLifetime.DEFAULT]]


def resolve_lifetime(override: Lifetime, default: int | None) -> int | None:
    """Return the effective lifetime in seconds, ``None`` for infinite."""
    if override is DEFAULT or override is False:
        lifetime = default
    else:
        lifetime = override
    if lifetime is None:
        return None
    if isinstance(lifetime, bool) or not isinstance(lifetime, int):
        raise TypeError(f"lifetime must be an int, None or DEFAULT, got {lifetime!r}")
    if lifetime < 0:
        raise ValueError(f"lifetime must be >= 0, got {lifetime}")
    return lifetime


def compute_expire_at(override: Lifetime, default: int | None, now: int) -> int:
    """Absolute expiration for one ``save`` call.

    Computed once per call so the entry and every tag association written
    by it share the same instant.
    """
    lifetime = resolve_lifetime(override, default)
    if not lifetime:
        return NEVER_EXPIRES
    return now + lifetime

"""Application cache – tag argument normalisation."""
from __future__ import annotations

from collections.abc import Iterable

__all__ = ["Tags", "normalize_tags"]

Tags = str | Iterable[str] | None


def normalize_tags(tags: Tags) -> list[str]:
    """Deduplicate *tags* keeping first-seen order.

    A bare string is a single tag, not an iterable of characters.
    """
    if tags is None:
        return []
    if isinstance(tags, str):
        return [tags]
    return list(dict.fromkeys(tags))

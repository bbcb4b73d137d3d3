"""Application cache – CacheBackend protocol."""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from tagcache.application.cache.lifetime import DEFAULT, Lifetime
from tagcache.application.cache.modes import CleaningMode
from tagcache.application.cache.tags import Tags

__all__ = ["CacheBackend"]


@runtime_checkable
class CacheBackend(Protocol):
    """Capability set shared by every cache backend.

    ``save`` and ``clean`` report storage failures as ``False`` rather than
    raising; callers must check the return value. ``clean`` raises
    :class:`~tagcache.kernel.errors.InvalidModeError` for an unknown mode.
    """

    async def save(
        self,
        data: bytes | str,
        id: str,
        tags: Tags = (),
        specific_lifetime: Lifetime = DEFAULT,
    ) -> bool: ...
    async def clean(self, mode: CleaningMode | str = CleaningMode.ALL, tags: Tags = ()) -> bool: ...
    async def load(self, id: str, do_not_test_validity: bool = False) -> bytes | None: ...
    async def test(self, id: str) -> int | None: ...
    async def remove(self, id: str) -> bool: ...
    async def touch(self, id: str, extra_lifetime: int) -> bool: ...
    async def get_ids(self) -> list[str]: ...
    async def get_tags(self) -> list[str]: ...
    async def get_ids_matching_tags(self, tags: Tags = ()) -> list[str]: ...
    async def get_ids_not_matching_tags(self, tags: Tags = ()) -> list[str]: ...
    async def get_ids_matching_any_tags(self, tags: Tags = ()) -> list[str]: ...
    async def get_metadatas(self, id: str) -> dict[str, Any] | None: ...
    def get_capabilities(self) -> dict[str, bool]: ...

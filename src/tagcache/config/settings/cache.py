"""Config settings – CacheBackendSettings."""
from __future__ import annotations

import dataclasses

from tagcache.config.settings.base import Settings
from tagcache.config.validation import InvalidSettingValueError


@dataclasses.dataclass(frozen=True)
class CacheBackendSettings(Settings):
    """Options recognised by the database cache backends.

    ``store_data`` switches the entries table on; when it is off only tag
    bookkeeping is persisted. ``lifetime`` is the default lifetime in
    seconds applied when ``save`` gets no override (``None`` is infinite).
    """

    _prefix: dataclasses.ClassVar[str] = "TAGCACHE"

    store_data: bool = False
    data_table: str = "core_cache"
    tags_table: str = "core_cache_tag"
    lifetime: int | None = 3600
    database_url: str = "sqlite+aiosqlite:///:memory:"

    def _validate(self) -> None:
        for name in ("data_table", "tags_table"):
            if not getattr(self, name).strip():
                raise InvalidSettingValueError(name, getattr(self, name), "table name must not be empty")
        if self.data_table == self.tags_table:
            raise InvalidSettingValueError(
                "tags_table", self.tags_table, "must differ from data_table"
            )
        if self.lifetime is not None and self.lifetime < 0:
            raise InvalidSettingValueError("lifetime", self.lifetime, "must be >= 0 or None")


__all__ = ["CacheBackendSettings"]

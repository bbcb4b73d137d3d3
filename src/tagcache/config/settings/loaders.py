"""Config settings – EnvSettingsLoader, DotenvSettingsLoader."""
from __future__ import annotations

import abc
import dataclasses
import os
from typing import Any, TypeVar

from dotenv import load_dotenv

from tagcache.config.settings.base import Settings
from tagcache.config.validation import ConfigError

T = TypeVar("T", bound=Settings)

_NONE_LITERALS = ("", "none", "null")


class SettingsLoader(abc.ABC):
    """Port: load settings from an external source."""

    @abc.abstractmethod
    def load(self, settings_class: type[T]) -> T: ...


class EnvSettingsLoader(SettingsLoader):
    """Load settings from OS environment variables.

    ``CacheBackendSettings.store_data`` is read from ``TAGCACHE_STORE_DATA``
    and so on: the class ``_prefix`` joined to the upper-cased field name.
    """

    def load(self, settings_class: type[T]) -> T:
        prefix = getattr(settings_class, "_prefix", "").upper()
        kwargs: dict[str, Any] = {}

        for field in dataclasses.fields(settings_class):  # type: ignore[arg-type]
            env_key = f"{prefix}_{field.name}".upper().lstrip("_")
            raw = os.environ.get(env_key)

            if raw is not None:
                kwargs[field.name] = self._coerce(env_key, raw, field.type)

        try:
            return settings_class(**kwargs)
        except ConfigError:
            raise
        except Exception as exc:
            raise ConfigError(f"Failed to load settings: {exc}") from exc

    def _coerce(self, env_key: str, value: str, type_hint: Any) -> Any:
        # annotations arrive as strings under ``from __future__ import annotations``
        hint = type_hint if isinstance(type_hint, str) else getattr(type_hint, "__name__", str(type_hint))
        optional = "None" in hint
        if optional and value.strip().lower() in _NONE_LITERALS:
            return None
        base = hint.replace("| None", "").replace("Optional[", "").rstrip("]").strip()
        try:
            if base == "bool":
                return value.strip().lower() in ("1", "true", "yes", "on")
            if base == "int":
                return int(value)
            if base == "float":
                return float(value)
        except ValueError as exc:
            raise ConfigError(f"Setting '{env_key}' is not a valid {base}: {value!r}") from exc
        return value


class DotenvSettingsLoader(SettingsLoader):
    """Load settings from a ``.env`` file then fall back to ``EnvSettingsLoader``."""

    def __init__(self, env_file: str = ".env", override: bool = False) -> None:
        self._env_file = env_file
        self._override = override

    def load(self, settings_class: type[T]) -> T:
        load_dotenv(self._env_file, override=self._override)
        return EnvSettingsLoader().load(settings_class)


__all__ = ["DotenvSettingsLoader", "EnvSettingsLoader", "SettingsLoader"]

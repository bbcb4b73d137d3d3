"""Config – backend settings, loaders and validation errors."""

from tagcache.config.settings import (
    CacheBackendSettings,
    DotenvSettingsLoader,
    EnvSettingsLoader,
    Settings,
    SettingsLoader,
)
from tagcache.config.validation import (
    ConfigError,
    InvalidSettingValueError,
)

__all__ = [
    "CacheBackendSettings",
    "ConfigError",
    "DotenvSettingsLoader",
    "EnvSettingsLoader",
    "InvalidSettingValueError",
    "Settings",
    "SettingsLoader",
]

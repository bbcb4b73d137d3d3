"""Config settings – 12-factor env-based configuration."""
from tagcache.config.settings.base import Settings
from tagcache.config.settings.cache import CacheBackendSettings
from tagcache.config.settings.loaders import DotenvSettingsLoader, EnvSettingsLoader, SettingsLoader

__all__ = [
    "CacheBackendSettings",
    "DotenvSettingsLoader",
    "EnvSettingsLoader",
    "Settings",
    "SettingsLoader",
]

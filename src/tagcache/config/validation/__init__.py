"""Config validation errors."""
from tagcache.config.validation.errors import ConfigError, InvalidSettingValueError

__all__ = ["ConfigError", "InvalidSettingValueError"]

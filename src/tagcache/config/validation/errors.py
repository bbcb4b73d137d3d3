"""Config validation errors."""
from tagcache.kernel.errors import BaseError


class ConfigError(BaseError):
    """Settings could not be read from their source or did not validate."""
    default_code = "config_error"


class InvalidSettingValueError(ConfigError):
    """One field of a settings object holds a value the backend cannot use."""
    default_code = "invalid_setting_value"

    def __init__(self, setting_name: str, value: object, reason: str) -> None:
        super().__init__(
            f"{setting_name}={value!r} rejected: {reason}",
            detail={"setting": setting_name},
        )
        self.setting_name = setting_name
        self.value = value


__all__ = ["ConfigError", "InvalidSettingValueError"]

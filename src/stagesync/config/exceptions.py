"""Custom exceptions for configuration management."""


class ConfigError(Exception):
    """Raised when configuration data cannot be processed."""


class StoreFactoryError(ConfigError):
    """Raised when the configured content store factory cannot be loaded.

    Attributes:
        path: The ``module:factory`` path that failed.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


__all__ = ["ConfigError", "StoreFactoryError"]

"""Process-wide logging setup driven by configuration."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from stagesync.config import ConfigError, LoggingSettings

PACKAGE_LOGGER = "stagesync"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: LoggingSettings, *, console: Console | None = None) -> logging.Logger:
    """Attach console and optional file handlers to the package logger.

    Calling this again replaces the handlers installed by an earlier call.

    Args:
        settings: Logging section of the loaded configuration.
        console: Rich console for the console handler; stderr when omitted.

    Returns:
        logging.Logger: The configured package logger.

    Raises:
        ConfigError: If ``settings.level`` is not a known level name.
    """
    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        raise ConfigError(f"Unknown logging level: {settings.level}")

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if settings.file:
        path = Path(settings.file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=settings.max_size_mb * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    logger.setLevel(level)
    logger.propagate = False
    return logger


__all__ = ["configure_logging", "PACKAGE_LOGGER"]

"""Logging setup for the command-line entry points."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from mediaindex.config.exceptions import ConfigError
from mediaindex.config.models import LoggingSettings

LOGGER_NAME = "mediaindex"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_MARK = "_mediaindex_handler"


def configure_logging(
    settings: LoggingSettings,
    *,
    console: Optional[Console] = None,
    verbose: bool = False,
) -> logging.Logger:
    """Attach console and rotating file handlers to the package logger.

    Calling this again replaces the handlers installed by a previous call.

    Raises:
        ConfigError: If ``settings.level`` is not a known logging level.
    """
    level = logging.DEBUG if verbose else logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        raise ConfigError(f"Unknown logging level: {settings.level}")

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    console_handler.setLevel(level)
    setattr(console_handler, _HANDLER_MARK, True)
    logger.addHandler(console_handler)

    if settings.file:
        log_path = Path(settings.file).expanduser()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
                backupCount=settings.backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("Unable to open log file %s: %s", log_path, exc)
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
            setattr(file_handler, _HANDLER_MARK, True)
            logger.addHandler(file_handler)

    logger.setLevel(level)
    return logger


__all__ = ["LOGGER_NAME", "configure_logging"]

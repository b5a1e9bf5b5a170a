"""Logging setup for the alert service and the libraries it drives."""

from __future__ import annotations

import logging
import logging.config
from typing import Any

from .config import LoggingSettings

APP_LOGGER = "sdis_alerts"

# Third-party loggers that are noisy below WARNING.
LIBRARY_LOGGERS = ("apscheduler", "uvicorn.access", "urllib3")

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_STRUCTURED_FORMAT = "{asctime} {levelname} {name} {message}"


def _formatter(structured: bool) -> dict[str, Any]:
    if structured:
        return {"format": _STRUCTURED_FORMAT, "style": "{"}
    return {"format": _PLAIN_FORMAT}


def _handlers(settings: LoggingSettings) -> dict[str, dict[str, Any]]:
    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    }
    if settings.file_path is not None:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "default",
            "filename": str(settings.file_path),
            "maxBytes": settings.max_bytes,
            "backupCount": settings.backup_count,
            "encoding": "utf-8",
        }
    return handlers


def build_logging_config(settings: LoggingSettings) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for ``settings``.

    Application loggers follow ``settings.level``; the scheduler, web server
    and HTTP client loggers follow ``settings.library_level``.
    """
    handlers = _handlers(settings)
    loggers: dict[str, dict[str, Any]] = {
        APP_LOGGER: {"level": settings.level},
    }
    for name in LIBRARY_LOGGERS:
        loggers[name] = {"level": settings.library_level}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": _formatter(settings.structured)},
        "handlers": handlers,
        "loggers": loggers,
        "root": {"handlers": sorted(handlers), "level": settings.level},
    }


def configure_logging(settings: LoggingSettings) -> None:
    """Configure application logging according to provided settings."""
    logging.config.dictConfig(build_logging_config(settings))


__all__ = ["APP_LOGGER", "LIBRARY_LOGGERS", "build_logging_config", "configure_logging"]

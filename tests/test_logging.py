"""Tests for logging utilities."""

from __future__ import annotations

import logging
from pathlib import Path

from sdis_alerts.core.config import LoggingSettings
from sdis_alerts.core.logging import build_logging_config, configure_logging


def test_configure_logging_sets_root_level() -> None:
    """configure_logging should set the root logger level according to settings."""

    settings = LoggingSettings(level="DEBUG", structured=False)
    configure_logging(settings)
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("sdis_alerts").level == logging.DEBUG


def test_library_loggers_follow_their_own_level() -> None:
    configure_logging(LoggingSettings(level="DEBUG", library_level="ERROR"))

    assert logging.getLogger("apscheduler").level == logging.ERROR
    assert logging.getLogger("uvicorn.access").level == logging.ERROR
    assert logging.getLogger("urllib3").level == logging.ERROR


def test_structured_format_uses_brace_style() -> None:
    config = build_logging_config(LoggingSettings(structured=True))

    assert config["formatters"]["default"]["style"] == "{"
    assert config["root"]["handlers"] == ["console"]


def test_file_handler_rotates_under_configured_path(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "alerts.log"
    settings = LoggingSettings(file_path=log_file, max_bytes=1024, backup_count=2)

    config = build_logging_config(settings)

    handler = config["handlers"]["file"]
    assert handler["class"] == "logging.handlers.RotatingFileHandler"
    assert handler["filename"] == str(log_file)
    assert handler["maxBytes"] == 1024
    assert handler["backupCount"] == 2
    assert config["root"]["handlers"] == ["console", "file"]
    assert log_file.parent.is_dir()

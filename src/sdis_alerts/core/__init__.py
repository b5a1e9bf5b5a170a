"""Core utilities for configuration, logging, and dependency wiring."""

from .config import AppSettings, ImapSettings, PowerSettings, load_app_settings
from .container import ServiceContainer
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "ImapSettings",
    "PowerSettings",
    "ServiceContainer",
    "configure_logging",
    "load_app_settings",
]

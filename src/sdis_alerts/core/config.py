"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator


class ImapSettings(BaseModel):
    """Settings controlling IMAP connectivity and operation bounds."""

    host: str = Field(default="localhost", description="IMAP hostname")
    port: int = Field(default=993, description="IMAP port, typically 993 for SSL")
    username: str | None = Field(default=None, description="Mailbox username")
    password: str | None = Field(default=None, description="Mailbox password")
    mailbox: str = Field(default="INBOX", description="Mailbox to scan")
    use_ssl: bool = Field(default=True, description="Whether to enforce SSL")
    verify_certificates: bool = Field(
        default=False, description="Validate the server certificate chain"
    )
    socket_timeout: float = Field(
        default=15.0, gt=0, description="Socket timeout for blocking IMAP calls"
    )
    connect_timeout: float = Field(
        default=20.0, gt=0, description="Upper bound for connect and login"
    )
    operation_timeout: float = Field(
        default=60.0, gt=0, description="Upper bound for select and search"
    )
    fetch_timeout: float = Field(
        default=300.0, gt=0, description="Upper bound for a whole fetch batch"
    )
    disconnect_timeout: float = Field(
        default=5.0, gt=0, description="Upper bound for a graceful logout"
    )


class PollingSettings(BaseModel):
    """Settings controlling scan and sweep cadence."""

    enabled: bool = Field(default=True, description="Start the periodic jobs")
    interval_seconds: int = Field(
        default=60, ge=1, description="Delay between mailbox scans"
    )
    window_days: int = Field(
        default=30, ge=1, description="Rolling search window in days"
    )
    initial_delay_seconds: int = Field(
        default=5, ge=0, description="Delay before the startup scan"
    )
    sweep_interval_seconds: int = Field(
        default=3600, ge=1, description="Delay between expiry sweeps"
    )


DEFAULT_POWER_SENDERS = (
    "onduleur.alerte@sdis41.fr",
    "onduleur.administratif@sdis41.fr",
)


class PowerSettings(BaseModel):
    """Filtering rules for UPS notification emails."""

    allowed_senders: list[str] = Field(
        default_factory=lambda: list(DEFAULT_POWER_SENDERS),
        description="Sender addresses accepted as UPS notifications",
    )
    subject: str = Field(
        default="UPS event notification", description="Exact trigger subject"
    )
    administrative_marker: str = Field(
        default="administratif",
        description="Body substring flagging an administrative event",
    )
    history_size: int = Field(default=100, ge=1, description="History capacity")

    @field_validator("allowed_senders", mode="before")
    @classmethod
    def _split_senders(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return [
                str(item).strip().lower() for item in value if str(item).strip()
            ]
        return value


class OperationSettings(BaseModel):
    """Settings for the radio-network operation classifier."""

    history_size: int = Field(default=200, ge=1, description="History capacity")


class NotificationSettings(BaseModel):
    """Push delivery settings."""

    request_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Timeout for a single push request"
    )
    ttl_seconds: int = Field(
        default=60, ge=0, description="TTL header sent with push requests"
    )
    vapid_public_key: str | None = Field(
        default=None, description="Base64url VAPID public key served to browsers"
    )
    vapid_private_key: str | None = Field(
        default=None, description="VAPID private key used to sign push requests"
    )
    vapid_subject: str = Field(
        default="mailto:supervision@sdis41.fr",
        description="Contact claim (mailto: or https:) sent with every push",
    )


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./sdis_alerts.db"), description="SQLite database path"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Level for sdis_alerts loggers")
    library_level: str = Field(
        default="WARNING",
        description="Level for the scheduler, web server and HTTP client loggers",
    )
    structured: bool = Field(
        default=False, description="Toggle brace-style structured logging"
    )
    file_path: Path | None = Field(
        default=None, description="Also write logs to this rotating file"
    )
    max_bytes: int = Field(
        default=5_000_000, ge=1, description="Size at which the log file rotates"
    )
    backup_count: int = Field(
        default=3, ge=0, description="Rotated log files kept on disk"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    imap: ImapSettings = Field(default_factory=ImapSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    power: PowerSettings = Field(default_factory=PowerSettings)
    operations: OperationSettings = Field(default_factory=OperationSettings)
    notifications: NotificationSettings = Field(
        default_factory=NotificationSettings
    )
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "SDIS_ALERTS_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(
        env_file, include_environment=include_environment
    )
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "DEFAULT_POWER_SENDERS",
    "ImapSettings",
    "LoggingSettings",
    "NotificationSettings",
    "OperationSettings",
    "PollingSettings",
    "PowerSettings",
    "StorageSettings",
    "load_app_settings",
]

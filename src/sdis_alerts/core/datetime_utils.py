"""Datetime helpers shared across the application."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime

__all__ = [
    "ensure_utc",
    "format_imap_date",
    "parse_datetime",
    "parse_window_end",
    "serialize_datetime",
    "sort_timestamp",
    "to_local_naive",
]

_IMAP_MONTHS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

_WINDOW_END = re.compile(
    r"(\d{2})/(\d{2})/(\d{4})\s+de\s+\d{2}:\d{2}\s+à\s+(\d{2}):(\d{2})"
)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` converted to UTC, assuming UTC for naive values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to ISO 8601, normalising timezone-aware values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.isoformat()
    return value.astimezone().isoformat()


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string, assuming UTC for naive values."""
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def sort_timestamp(value: datetime | None) -> float:
    """Return a sortable POSIX timestamp; missing dates sort as the epoch."""
    normalized = ensure_utc(value)
    if normalized is None:
        return 0.0
    return normalized.timestamp()


def to_local_naive(value: datetime) -> datetime:
    """Return ``value`` as naive local time; naive values are returned unchanged."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def format_imap_date(value: date) -> str:
    """Format ``value`` as an IMAP ``SINCE`` date independent of locale."""
    return f"{value.day}-{_IMAP_MONTHS[value.month - 1]}-{value.year}"


def parse_window_end(window: str | None) -> datetime | None:
    """Return the end of a ``dd/mm/yyyy de HH:MM à HH:MM`` window.

    The result is naive local time, as written in the notice. ``None`` is
    returned when the text does not follow the window format or names an
    impossible date.
    """
    if not window:
        return None
    match = _WINDOW_END.search(window)
    if match is None:
        return None
    day, month, year, hour, minute = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None

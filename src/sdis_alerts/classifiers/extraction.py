"""Field extraction rules for UPS and radio-network notices.

Each rule is a small function over subject or body text so it can be tested
on its own; classifiers never embed pattern text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sdis_alerts.core.models import OperationKind

# UPS notifications ----------------------------------------------------------
_POWER_MESSAGE = re.compile(r"Message\s*:\s*(.+?)\n\n", re.DOTALL)
_POWER_EVENT = re.compile(r"Event List\s*:\s*(.+?)\n", re.DOTALL)
_POWER_TIMESTAMP = re.compile(r"Timestamp\s*:\s*(.+?)$", re.MULTILINE)

# Radio-network notices --------------------------------------------------------
_KIND_TRIGGERS = (
    ("Operation programmee Tetrapol", OperationKind.OPERATION),
    ("Debut d'incident sur le reseau INPT", OperationKind.INCIDENT_START),
    ("Fin d'incident sur le reseau INPT", OperationKind.INCIDENT_END),
)

_OPERATION_NUMBER = re.compile(r"n°\s*(\d+)")
_OPERATION_SITE = re.compile(r"site de\s*([\w\sÀ-ÿ-]+)")
_OPERATION_WINDOW = re.compile(
    r"(\d{2}/\d{2}/\d{4}\s+de\s+\d{2}:\d{2}\s+à\s+\d{2}:\d{2})"
)

_INCIDENT_START_NUMBER = re.compile(r"incident référencé n°\s*(\d+)")
_INCIDENT_START_AT = re.compile(r"survenu le (\d{2}/\d{2}/\d{4}) à (\d{2}:\d{2})")
_INCIDENT_START_SITE = re.compile(r"impacte le ou les relais de ([^.]+)")

_INCIDENT_END_NUMBER = re.compile(r"fin de l'incident n°\s*(\d+)")
_INCIDENT_END_AT = re.compile(r"apparu le (\d{2}/\d{2}/\d{4}) à (\d{2}:\d{2})")
_INCIDENT_END_SITE = re.compile(r"impactant le site ou artère ([^.]+)")


@dataclass(frozen=True, slots=True)
class PowerFields:
    """Fields found in a UPS notification body; empty when absent."""

    message: str
    event: str
    timestamp: str


@dataclass(frozen=True, slots=True)
class OperationFields:
    """Fields found in a radio-network notice; ``None`` when absent."""

    operation_number: str | None
    site_name: str | None
    window: str | None


def _first_group(pattern: re.Pattern[str], text: str | None) -> str | None:
    if not text:
        return None
    match = pattern.search(text)
    if match is None:
        return None
    return match.group(1).strip()


def _date_and_time(pattern: re.Pattern[str], text: str | None) -> str | None:
    if not text:
        return None
    match = pattern.search(text)
    if match is None:
        return None
    return f"{match.group(1)} à {match.group(2)}"


def is_administrative(body: str | None, marker: str) -> bool:
    """Return ``True`` when the UPS body carries the administrative marker."""
    return bool(body) and marker in body


def extract_power_message(body: str | None) -> str | None:
    """Return the ``Message :`` paragraph of a UPS notification."""
    return _first_group(_POWER_MESSAGE, body)


def extract_power_event(body: str | None) -> str | None:
    """Return the ``Event List :`` line of a UPS notification."""
    return _first_group(_POWER_EVENT, body)


def extract_power_timestamp(body: str | None) -> str | None:
    """Return the ``Timestamp :`` line of a UPS notification."""
    return _first_group(_POWER_TIMESTAMP, body)


def detect_operation_kind(subject: str | None) -> OperationKind | None:
    """Map a notice subject to its kind, or ``None`` when it is unrelated."""
    if not subject:
        return None
    for trigger, kind in _KIND_TRIGGERS:
        if trigger in subject:
            return kind
    return None


def extract_operation_number(
    kind: OperationKind, subject: str | None, body: str | None
) -> str | None:
    """Return the operation or incident number of a notice."""
    if kind is OperationKind.OPERATION:
        return _first_group(_OPERATION_NUMBER, subject)
    if kind is OperationKind.INCIDENT_START:
        return _first_group(_INCIDENT_START_NUMBER, body)
    return _first_group(_INCIDENT_END_NUMBER, body)


def extract_site_name(
    kind: OperationKind, subject: str | None, body: str | None
) -> str | None:
    """Return the site or relays named by a notice."""
    if kind is OperationKind.OPERATION:
        return _first_group(_OPERATION_SITE, subject)
    if kind is OperationKind.INCIDENT_START:
        return _first_group(_INCIDENT_START_SITE, body)
    return _first_group(_INCIDENT_END_SITE, body)


def extract_window(
    kind: OperationKind, subject: str | None, body: str | None
) -> str | None:
    """Return the maintenance window, or the incident start for incidents."""
    if kind is OperationKind.OPERATION:
        return _first_group(_OPERATION_WINDOW, body)
    if kind is OperationKind.INCIDENT_START:
        return _date_and_time(_INCIDENT_START_AT, body)
    return _date_and_time(_INCIDENT_END_AT, body)


def _fields(
    kind: OperationKind, subject: str | None, body: str | None
) -> OperationFields:
    return OperationFields(
        operation_number=extract_operation_number(kind, subject, body),
        site_name=extract_site_name(kind, subject, body),
        window=extract_window(kind, subject, body),
    )


def extract_operation_announcement(
    subject: str | None, body: str | None
) -> OperationFields:
    """Extract number and site from the subject, window from the body."""
    return _fields(OperationKind.OPERATION, subject, body)


def extract_incident_start(body: str | None) -> OperationFields:
    """Extract number, affected relays and start time of an incident."""
    return _fields(OperationKind.INCIDENT_START, None, body)


def extract_incident_end(body: str | None) -> OperationFields:
    """Extract number, affected site and start time of a closed incident."""
    return _fields(OperationKind.INCIDENT_END, None, body)


__all__ = [
    "OperationFields",
    "PowerFields",
    "detect_operation_kind",
    "extract_incident_end",
    "extract_incident_start",
    "extract_operation_announcement",
    "extract_operation_number",
    "extract_power_event",
    "extract_power_message",
    "extract_power_timestamp",
    "extract_site_name",
    "extract_window",
    "is_administrative",
]

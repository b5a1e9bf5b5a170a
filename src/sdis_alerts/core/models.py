"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

SYNTHESIZED_ID_PREFIX = "seqno-"


class SessionState(str, Enum):
    """Lifecycle states of the mailbox session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"


def synthesize_message_id(sequence_number: int) -> str:
    """Return the per-session fallback id for a message without Message-ID."""
    return f"{SYNTHESIZED_ID_PREFIX}{sequence_number}"


def is_synthesized_id(message_id: str | None) -> bool:
    """Return ``True`` when ``message_id`` is missing or a sequence fallback."""
    return not message_id or message_id.startswith(SYNTHESIZED_ID_PREFIX)


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class RawEmailRecord:
    """Parsed message as produced by the fetch loop; never persisted."""

    sequence_number: int
    message_id: str
    synthesized_id: bool
    sender: str | None
    sender_display: str | None
    subject: str | None
    text: str
    date: datetime | None


@dataclass(slots=True)
class EmailReceived:
    """Payload broadcast once per parsed message and poll cycle."""

    sequence_number: int
    message: RawEmailRecord
    message_id: str | None


class PowerEventType(str, Enum):
    """Sub-type of a UPS notification."""

    ADMINISTRATIVE = "administrative"
    ALERT = "alert"


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class PowerEvent:
    """UPS notification extracted from an allow-listed email."""

    id: str
    sequence_number: int
    type: PowerEventType
    message: str
    event: str
    timestamp: str
    sender: str | None
    subject: str | None
    date: datetime | None


class OperationKind(str, Enum):
    """Kind of radio-network notice."""

    OPERATION = "operation"
    INCIDENT_START = "incident_start"
    INCIDENT_END = "incident_end"


class OperationStatus(str, Enum):
    """Derived progress of a scheduled operation."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"

    @property
    def rank(self) -> int:
        """Position in the pending → in_progress → resolved progression."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    OperationStatus.PENDING: 0,
    OperationStatus.IN_PROGRESS: 1,
    OperationStatus.RESOLVED: 2,
}


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class OperationEvent:
    """Radio-network operation or incident notice.

    ``operation_number``, ``site_name`` and ``window`` are ``None`` when the
    corresponding pattern did not match. ``status`` is only carried by
    ``OperationKind.OPERATION`` records.
    """

    id: str
    sequence_number: int
    kind: OperationKind
    operation_number: str | None
    site_name: str | None
    window: str | None
    status: OperationStatus | None
    sender: str | None
    subject: str | None
    date: datetime | None
    body: str


ClassifiedEvent = PowerEvent | OperationEvent


class SubscriberKind(str, Enum):
    """Notification families a subscriber can opt into."""

    TICKET = "ticket"
    EMAIL = "email"


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class Subscriber:
    """Push subscription registered by a dashboard client."""

    id: int
    endpoint: str
    p256dh: str
    auth: str
    user_id: int | None
    notify_on_ticket: bool
    notify_on_email: bool
    created_at: datetime | None


@dataclass(slots=True)
class FetchSummary:
    """Outcome of a fetch-and-parse batch."""

    requested: int
    parsed: int
    failed: int


@dataclass(slots=True)
class PollReport:
    """Outcome summary for a mailbox scan cycle."""

    skipped: bool
    matched: int = 0
    parsed: int = 0
    failed: int = 0
    error: str | None = None


@dataclass(slots=True)
class DispatchReport:
    """Per-notification delivery counts."""

    recipients: int
    delivered: int
    failed: int


__all__ = [
    "ClassifiedEvent",
    "DispatchReport",
    "EmailReceived",
    "FetchSummary",
    "OperationEvent",
    "OperationKind",
    "OperationStatus",
    "PollReport",
    "PowerEvent",
    "PowerEventType",
    "RawEmailRecord",
    "SYNTHESIZED_ID_PREFIX",
    "SessionState",
    "Subscriber",
    "SubscriberKind",
    "is_synthesized_id",
    "synthesize_message_id",
]

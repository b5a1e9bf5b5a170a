"""Ingestion pipeline components."""

from .events import EMAIL_RECEIVED_EVENT, EventBroadcaster
from .parser import EmailParseError, EmailParser
from .poller import MailPoller

__all__ = [
    "EMAIL_RECEIVED_EVENT",
    "EmailParseError",
    "EmailParser",
    "EventBroadcaster",
    "MailPoller",
]

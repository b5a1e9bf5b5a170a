"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

from .models import EmailReceived, RawEmailRecord, Subscriber, SubscriberKind

EmailHandler = Callable[[EmailReceived], Awaitable[None]]


class EmailParseError(ValueError):
    """Raised when a payload cannot be turned into an email record."""


class MessageParser(Protocol):
    """Minimal protocol implemented by email parsers."""

    def parse(self, sequence_number: int, payload: bytes) -> RawEmailRecord:
        """Convert a raw RFC822 payload into a record."""
        raise NotImplementedError


class NotificationSender(Protocol):
    """Narrow notification capability injected into classifiers."""

    async def get_subscribers(self, kind: SubscriberKind) -> Sequence[Subscriber]:
        """Return subscribers that opted into ``kind`` notifications."""
        raise NotImplementedError

    async def send(self, subscriber: Subscriber, payload: str) -> bool:
        """Deliver ``payload`` to one subscriber; ``True`` when delivered."""
        raise NotImplementedError


class SubscriptionStore(Protocol):
    """Abstraction over push subscription persistence."""

    def subscribe(
        self, endpoint: str, p256dh: str, auth: str, user_id: int | None = None
    ) -> Subscriber:
        """Register ``endpoint`` or return the existing subscription."""
        raise NotImplementedError

    def list_subscribers(self) -> list[Subscriber]:
        """Return every stored subscription."""
        raise NotImplementedError

    def find_by_endpoint(self, endpoint: str) -> Subscriber | None:
        """Return the subscription registered for ``endpoint``."""
        raise NotImplementedError

    def delete(self, subscriber_id: int) -> bool:
        """Remove a subscription. Returns ``True`` if a row was deleted."""
        raise NotImplementedError

    def delete_by_endpoint(self, endpoint: str) -> bool:
        """Remove the subscription registered for ``endpoint``."""
        raise NotImplementedError

    def update_preferences(
        self,
        endpoint: str,
        *,
        notify_on_ticket: bool | None = None,
        notify_on_email: bool | None = None,
    ) -> Subscriber | None:
        """Update opt-in flags; ``None`` when the endpoint is unknown."""
        raise NotImplementedError


class PushTransport(Protocol):
    """Delivery mechanism for a rendered notification payload."""

    async def deliver(self, subscriber: Subscriber, payload: str) -> None:
        """Send ``payload``; raise ``PushError`` on failure."""
        raise NotImplementedError


__all__ = [
    "EmailHandler",
    "EmailParseError",
    "MessageParser",
    "NotificationSender",
    "PushTransport",
    "SubscriptionStore",
]

"""Notification dispatch boundary used by the classifiers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from sdis_alerts.core.interfaces import (
    NotificationSender,
    PushTransport,
    SubscriptionStore,
)
from sdis_alerts.core.models import Subscriber, SubscriberKind

from .errors import PushError, SubscriptionGone

LOGGER = logging.getLogger(__name__)


class NotificationService(NotificationSender):
    """Resolve opted-in subscribers and deliver payloads through a transport.

    Store calls are synchronous and run in a worker thread so the event loop
    is never blocked by SQLite.
    """

    def __init__(self, store: SubscriptionStore, transport: PushTransport) -> None:
        self._store = store
        self._transport = transport

    async def get_subscribers(self, kind: SubscriberKind) -> Sequence[Subscriber]:
        subscribers = await asyncio.to_thread(self._store.list_subscribers)
        if kind is SubscriberKind.TICKET:
            return [item for item in subscribers if item.notify_on_ticket]
        return [item for item in subscribers if item.notify_on_email]

    async def send(self, subscriber: Subscriber, payload: str) -> bool:
        try:
            await self._transport.deliver(subscriber, payload)
        except SubscriptionGone:
            LOGGER.info("Subscription %s expired; removing it", subscriber.id)
            await asyncio.to_thread(self._store.delete, subscriber.id)
            return False
        except PushError as exc:
            LOGGER.warning("Push to subscription %s failed: %s", subscriber.id, exc)
            return False
        return True


__all__ = ["NotificationService"]

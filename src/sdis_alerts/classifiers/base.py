"""Shared history and notification behaviour of email classifiers."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from sdis_alerts.core.datetime_utils import sort_timestamp
from sdis_alerts.core.interfaces import NotificationSender
from sdis_alerts.core.models import (
    DispatchReport,
    EmailReceived,
    OperationEvent,
    PowerEvent,
    SubscriberKind,
    is_synthesized_id,
)

LOGGER = logging.getLogger(__name__)

EventT = TypeVar("EventT", PowerEvent, OperationEvent)
ResultT = TypeVar("ResultT")


class EmailClassifier(ABC, Generic[EventT]):
    """Filter broadcast emails into a bounded, date-ordered event history.

    History mutation and the notified-id check happen synchronously before the
    first ``await`` of :meth:`handle_email`, so concurrent deliveries never
    observe a half-applied update.
    """

    label = "email"
    subscriber_kind = SubscriberKind.EMAIL

    def __init__(self, sender: NotificationSender, *, capacity: int) -> None:
        """Store the notification capability and history bound."""
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._sender = sender
        self._capacity = capacity
        self._history: list[EventT] = []
        self._notified_ids: set[str] = set()

    @property
    def capacity(self) -> int:
        """Maximum number of retained events."""
        return self._capacity

    @property
    def notified_ids(self) -> frozenset[str]:
        """Message ids already pushed during this process lifetime."""
        return frozenset(self._notified_ids)

    def list_events(self) -> list[EventT]:
        """Return a snapshot of the history, newest first."""
        return list(self._history)

    async def handle_email(self, event: EmailReceived) -> None:
        """Classify a broadcast email, record it and notify subscribers once."""
        message = event.message
        LOGGER.debug(
            "[%s] Received email #%s (ID: %s)",
            self.label,
            event.sequence_number,
            message.message_id,
        )
        record = self.classify(event)
        if record is None:
            LOGGER.debug("[%s] Email #%s ignored", self.label, event.sequence_number)
            return

        self.record(record)
        if not self._claim_notification(event):
            return
        await self._notify(message.message_id, self.render_notification(record))

    @abstractmethod
    def classify(self, event: EmailReceived) -> EventT | None:
        """Return the event extracted from ``event`` or ``None`` if irrelevant."""

    @abstractmethod
    def record(self, record: EventT) -> None:
        """Merge ``record`` into the history."""

    @abstractmethod
    def render_notification(self, record: EventT) -> dict[str, Any]:
        """Return the notification document for ``record``."""

    # History helpers ---------------------------------------------------------------
    def _upsert(self, record: EventT) -> None:
        for index, existing in enumerate(self._history):
            if existing.id == record.id:
                self._history[index] = record
                LOGGER.debug("[%s] Event %s updated in history", self.label, record.id)
                break
        else:
            self._history.append(record)
            LOGGER.debug("[%s] Event %s added to history", self.label, record.id)
        self._history.sort(key=lambda item: sort_timestamp(item.date), reverse=True)
        if len(self._history) > self._capacity:
            del self._history[self._capacity :]
        LOGGER.debug("[%s] History size: %s", self.label, len(self._history))

    def _find(self, record_id: str) -> EventT | None:
        for existing in self._history:
            if existing.id == record_id:
                return existing
        return None

    def _extract(
        self,
        field: str,
        extractor: Callable[..., ResultT],
        *args: Any,
        default: ResultT,
        sequence_number: int,
    ) -> ResultT:
        try:
            return extractor(*args)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "[%s] Extraction of %s failed for email #%s: %s",
                self.label,
                field,
                sequence_number,
                exc,
                exc_info=True,
            )
            return default

    # Notification helpers ----------------------------------------------------------
    def _claim_notification(self, event: EmailReceived) -> bool:
        message_id = event.message_id
        if message_id is None or is_synthesized_id(message_id):
            LOGGER.warning(
                "[%s] No stable Message-ID for email #%s; notification skipped",
                self.label,
                event.sequence_number,
            )
            return False
        if message_id in self._notified_ids:
            LOGGER.info(
                "[%s] Email %s already notified this session", self.label, message_id
            )
            return False
        self._notified_ids.add(message_id)
        return True

    async def _notify(self, message_id: str, document: dict[str, Any]) -> DispatchReport:
        payload = json.dumps(document, ensure_ascii=False)
        try:
            subscribers = list(await self._sender.get_subscribers(self.subscriber_kind))
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "[%s] Unable to load subscribers for %s: %s",
                self.label,
                message_id,
                exc,
                exc_info=True,
            )
            return DispatchReport(recipients=0, delivered=0, failed=0)

        if not subscribers:
            LOGGER.info("[%s] No subscriber for email notifications", self.label)
            return DispatchReport(recipients=0, delivered=0, failed=0)

        LOGGER.info(
            "[%s] Sending notification %s to %s subscriber(s)",
            self.label,
            message_id,
            len(subscribers),
        )
        results = await asyncio.gather(
            *(self._sender.send(subscriber, payload) for subscriber in subscribers),
            return_exceptions=True,
        )
        for subscriber, result in zip(subscribers, results):
            if isinstance(result, Exception):
                LOGGER.warning(
                    "[%s] Delivery to subscriber %s raised: %s",
                    self.label,
                    subscriber.id,
                    result,
                )
        delivered = sum(1 for result in results if result is True)
        report = DispatchReport(
            recipients=len(results),
            delivered=delivered,
            failed=len(results) - delivered,
        )
        LOGGER.info(
            "[%s] Notification %s finished: delivered=%s, failed=%s",
            self.label,
            message_id,
            report.delivered,
            report.failed,
        )
        return report


__all__ = ["EmailClassifier"]

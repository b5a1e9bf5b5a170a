"""Classifier for UPS (onduleur) event notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from sdis_alerts.core.config import PowerSettings
from sdis_alerts.core.interfaces import NotificationSender
from sdis_alerts.core.models import EmailReceived, PowerEvent, PowerEventType

from .base import EmailClassifier
from .extraction import (
    PowerFields,
    extract_power_event,
    extract_power_message,
    extract_power_timestamp,
    is_administrative,
)

LOGGER = logging.getLogger(__name__)

_TYPE_LABELS = {
    PowerEventType.ADMINISTRATIVE: "Administratif",
    PowerEventType.ALERT: "Alerte",
}


class PowerClassifier(EmailClassifier[PowerEvent]):
    """Keep the history of UPS notifications sent by allow-listed senders."""

    label = "power"

    def __init__(self, sender: NotificationSender, settings: PowerSettings) -> None:
        """Configure filters from ``settings``."""
        super().__init__(sender, capacity=settings.history_size)
        self._settings = settings
        self._allowed_senders = frozenset(
            address.lower() for address in settings.allowed_senders
        )

    def is_relevant(self, sender: str | None, subject: str | None) -> bool:
        """Return ``True`` for the trigger subject from an allow-listed sender."""
        return (
            subject == self._settings.subject
            and sender is not None
            and sender.lower() in self._allowed_senders
        )

    def classify(self, event: EmailReceived) -> PowerEvent | None:
        message = event.message
        if not self.is_relevant(message.sender, message.subject):
            return None

        LOGGER.info("[power] Matching email #%s, processing", event.sequence_number)
        body = message.text
        administrative = self._extract(
            "type",
            is_administrative,
            body,
            self._settings.administrative_marker,
            default=False,
            sequence_number=event.sequence_number,
        )
        fields = PowerFields(
            message=self._field("message", extract_power_message, body, event),
            event=self._field("event", extract_power_event, body, event),
            timestamp=self._field("timestamp", extract_power_timestamp, body, event),
        )
        return PowerEvent(
            id=message.message_id,
            sequence_number=event.sequence_number,
            type=(
                PowerEventType.ADMINISTRATIVE if administrative else PowerEventType.ALERT
            ),
            message=fields.message,
            event=fields.event,
            timestamp=fields.timestamp,
            sender=message.sender_display,
            subject=message.subject,
            date=message.date,
        )

    def record(self, record: PowerEvent) -> None:
        self._upsert(record)

    def render_notification(self, record: PowerEvent) -> dict[str, Any]:
        excerpt = record.message[:50] or "N/A"
        return {
            "title": f"Alerte Onduleur ({_TYPE_LABELS[record.type]})",
            "body": f"Événement: {record.event or 'N/A'}\nMessage: {excerpt}...",
            "data": {"emailType": "Power", "id": record.id},
        }

    def _field(
        self,
        name: str,
        extractor: Callable[[str | None], str | None],
        body: str,
        event: EmailReceived,
    ) -> str:
        value = self._extract(
            name,
            extractor,
            body,
            default=None,
            sequence_number=event.sequence_number,
        )
        return value or ""


__all__ = ["PowerClassifier"]

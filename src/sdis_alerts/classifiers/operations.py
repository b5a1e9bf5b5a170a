"""Classifier for radio-network (INPT/Tetrapol) operation and incident notices."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from sdis_alerts.core.config import OperationSettings
from sdis_alerts.core.interfaces import NotificationSender
from sdis_alerts.core.models import (
    EmailReceived,
    OperationEvent,
    OperationKind,
    OperationStatus,
)

from .base import EmailClassifier
from .extraction import (
    detect_operation_kind,
    extract_operation_number,
    extract_site_name,
    extract_window,
)

LOGGER = logging.getLogger(__name__)

_KIND_LABELS = {
    OperationKind.OPERATION: "Opération programmée",
    OperationKind.INCIDENT_START: "Début d'incident",
    OperationKind.INCIDENT_END: "Fin d'incident",
}


class OperationClassifier(EmailClassifier[OperationEvent]):
    """Correlate scheduled operations with incident start and end notices.

    The status of an ``operation`` record follows the incidents sharing its
    number: resolved once an end notice is known, in progress once a start
    notice is known, pending otherwise. Status only moves forward.
    """

    label = "operations"

    def __init__(
        self, sender: NotificationSender, settings: OperationSettings
    ) -> None:
        """Configure the history bound from ``settings``."""
        super().__init__(sender, capacity=settings.history_size)

    def classify(self, event: EmailReceived) -> OperationEvent | None:
        message = event.message
        kind = detect_operation_kind(message.subject)
        if kind is None:
            return None

        LOGGER.info(
            "[operations] Matching email #%s (kind: %s), processing",
            event.sequence_number,
            kind.value,
        )
        operation_number = self._field(
            "operation_number", extract_operation_number, kind, event
        )
        site_name = self._field("site_name", extract_site_name, kind, event)
        window = self._field("window", extract_window, kind, event)
        LOGGER.debug(
            "[operations] Extracted for #%s: op=%s, site=%s",
            event.sequence_number,
            operation_number,
            site_name,
        )
        return OperationEvent(
            id=message.message_id,
            sequence_number=event.sequence_number,
            kind=kind,
            operation_number=operation_number,
            site_name=site_name,
            window=window,
            status=None,
            sender=message.sender_display,
            subject=message.subject,
            date=message.date,
            body=message.text,
        )

    def record(self, record: OperationEvent) -> None:
        if record.kind is OperationKind.OPERATION:
            status = self.infer_status(record.operation_number)
            existing = self._find(record.id)
            if (
                existing is not None
                and existing.status is not None
                and existing.status.rank > status.rank
            ):
                status = existing.status
            record.status = status
            LOGGER.debug(
                "[operations] Status for operation %s (ID: %s): %s",
                record.operation_number,
                record.id,
                status.value,
            )
            self._upsert(record)
        elif record.kind is OperationKind.INCIDENT_START:
            self._upsert(record)
            for operation in self.operations_for(record.operation_number):
                if operation.status is OperationStatus.PENDING:
                    operation.status = OperationStatus.IN_PROGRESS
                    LOGGER.info(
                        "[operations] Operation %s now in progress (email #%s)",
                        record.operation_number,
                        record.sequence_number,
                    )
        else:
            self._upsert(record)
            for operation in self.operations_for(record.operation_number):
                if operation.status is not OperationStatus.RESOLVED:
                    operation.status = OperationStatus.RESOLVED
                    LOGGER.info(
                        "[operations] Operation %s resolved (email #%s)",
                        record.operation_number,
                        record.sequence_number,
                    )

    def infer_status(self, operation_number: str | None) -> OperationStatus:
        """Derive an operation status from the incidents currently in history."""
        if operation_number is None:
            return OperationStatus.PENDING
        kinds = {
            entry.kind
            for entry in self._history
            if entry.operation_number == operation_number
        }
        if OperationKind.INCIDENT_END in kinds:
            return OperationStatus.RESOLVED
        if OperationKind.INCIDENT_START in kinds:
            return OperationStatus.IN_PROGRESS
        return OperationStatus.PENDING

    def operations_for(self, operation_number: str | None) -> list[OperationEvent]:
        """Return stored ``operation`` records carrying ``operation_number``."""
        if operation_number is None:
            return []
        return [
            entry
            for entry in self._history
            if entry.kind is OperationKind.OPERATION
            and entry.operation_number == operation_number
        ]

    def open_operations(self) -> list[OperationEvent]:
        """Return ``operation`` records that are not resolved yet."""
        return [
            entry
            for entry in self._history
            if entry.kind is OperationKind.OPERATION
            and entry.status in (OperationStatus.PENDING, OperationStatus.IN_PROGRESS)
        ]

    def _field(
        self,
        name: str,
        extractor: Callable[[OperationKind, str | None, str | None], str | None],
        kind: OperationKind,
        event: EmailReceived,
    ) -> str | None:
        return self._extract(
            name,
            extractor,
            kind,
            event.message.subject,
            event.message.text,
            default=None,
            sequence_number=event.sequence_number,
        )

    def render_notification(self, record: OperationEvent) -> dict[str, Any]:
        subject = (record.subject or "")[:60] or "N/A"
        return {
            "title": f"Alerte INPT ({_KIND_LABELS[record.kind]})",
            "body": f"Sujet: {subject}...\nSite: {record.site_name or 'N/A'}",
            "data": {"emailType": "Operation", "id": record.id},
        }


__all__ = ["OperationClassifier"]

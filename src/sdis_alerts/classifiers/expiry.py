"""Periodic resolution of operations whose maintenance window has ended."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sdis_alerts.core.datetime_utils import parse_window_end, to_local_naive
from sdis_alerts.core.models import OperationStatus

from .operations import OperationClassifier

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ExpirySweeper:
    """Resolve open operations once the end of their window is in the past.

    Window ends are naive local times, so the default clock is
    :func:`datetime.now` without a timezone. Aware values are converted to
    local time before the comparison.
    """

    def __init__(
        self, classifier: OperationClassifier, *, clock: Clock = datetime.now
    ) -> None:
        """Bind the sweeper to the operation history and a clock."""
        self._classifier = classifier
        self._clock = clock

    def sweep(self, now: datetime | None = None) -> int:
        """Resolve expired operations and return how many were updated."""
        current = to_local_naive(now or self._clock())
        LOGGER.info("[expiry] Checking open operations against %s", current.isoformat())
        updated = 0
        for operation in self._classifier.open_operations():
            if not operation.window:
                LOGGER.debug(
                    "[expiry] Operation %s (ID: %s) has no window; unchanged",
                    operation.operation_number,
                    operation.id,
                )
                continue
            end = parse_window_end(operation.window)
            if end is None:
                LOGGER.warning(
                    "[expiry] Unrecognised window for operation %s (ID: %s): %s",
                    operation.operation_number,
                    operation.id,
                    operation.window,
                )
                continue
            if end < current:
                operation.status = OperationStatus.RESOLVED
                updated += 1
                LOGGER.info(
                    "[expiry] Operation %s (ID: %s) ended at %s; resolved",
                    operation.operation_number,
                    operation.id,
                    end.isoformat(),
                )

        if updated:
            LOGGER.info("[expiry] %s operation(s) resolved", updated)
        else:
            LOGGER.info("[expiry] No expired operation")
        return updated


__all__ = ["Clock", "ExpirySweeper"]

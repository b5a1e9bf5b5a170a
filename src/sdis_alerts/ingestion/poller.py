"""Mailbox scan orchestration logic."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime, timedelta
from typing import Protocol

from ..core.datetime_utils import format_imap_date
from ..core.models import (
    EmailReceived,
    FetchSummary,
    PollReport,
    RawEmailRecord,
    SessionState,
)
from ..transport.imap_client import ImapError
from .events import EMAIL_RECEIVED_EVENT, EventBroadcaster

LOGGER = logging.getLogger(__name__)


class MailboxSessionProtocol(Protocol):
    """Subset of :class:`~sdis_alerts.transport.MailboxSession` used here."""

    @property
    def state(self) -> SessionState:
        """Current connection state."""
        raise NotImplementedError

    async def connect(self) -> None:
        """Connect and authenticate."""
        raise NotImplementedError

    async def open_mailbox(self) -> int:
        """Select the configured mailbox."""
        raise NotImplementedError

    async def search_since(self, since: date) -> list[int]:
        """Return sequence numbers of messages received on or after ``since``."""
        raise NotImplementedError

    async def fetch_and_parse(
        self,
        sequence_numbers: Sequence[int],
        callback: Callable[[RawEmailRecord], None],
    ) -> FetchSummary:
        """Fetch and parse messages, handing each record to ``callback``."""
        raise NotImplementedError

    async def disconnect(self) -> None:
        """Close the session."""
        raise NotImplementedError

    async def reinitialize(self) -> None:
        """Destroy the connection so the next connect starts fresh."""
        raise NotImplementedError


class MailPoller:
    """Scan a rolling window of the mailbox and broadcast every message.

    A cycle that starts while another one is running returns immediately with
    a skipped report. Errors never leave :meth:`run_cycle`.
    """

    def __init__(
        self,
        session: MailboxSessionProtocol,
        broadcaster: EventBroadcaster,
        *,
        window_days: int = 30,
        clock: Callable[[], datetime] = lambda: datetime.now(tz=UTC),
    ) -> None:
        """Initialise the poller with a session, broadcaster and search window."""
        if window_days <= 0:
            raise ValueError("window_days must be positive")
        self._session = session
        self._broadcaster = broadcaster
        self._window_days = window_days
        self._clock = clock
        self._in_flight = False
        self._last_successful_fetch: datetime | None = None

    @property
    def in_flight(self) -> bool:
        """``True`` while a cycle is running."""
        return self._in_flight

    @property
    def last_successful_fetch(self) -> datetime | None:
        """Completion time of the last cycle that reached the mailbox."""
        return self._last_successful_fetch

    async def run_cycle(self) -> PollReport:
        """Execute one scan cycle and return a summary."""
        if self._in_flight:
            LOGGER.debug("Previous mailbox scan still running; skipping tick")
            return PollReport(skipped=True)

        self._in_flight = True
        report = PollReport(skipped=False)
        deliveries: list[asyncio.Task[int]] = []
        LOGGER.info("Mailbox scan started")
        try:
            await self._scan(report, deliveries)
            self._last_successful_fetch = self._clock()
        except ImapError as exc:
            report.error = str(exc)
            LOGGER.error("Mailbox scan failed: %s", exc)
            await self._session.reinitialize()
        except OSError as exc:
            report.error = str(exc)
            LOGGER.error("Mailbox transport error: %s", exc)
            await self._session.reinitialize()
        except Exception as exc:  # pylint: disable=broad-except
            report.error = str(exc)
            LOGGER.exception("Unexpected error during mailbox scan: %s", exc)
        finally:
            if deliveries:
                await asyncio.gather(*deliveries, return_exceptions=True)
            try:
                await self._session.disconnect()
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.error("Disconnect after scan failed: %s", exc, exc_info=True)
            self._in_flight = False
            LOGGER.info(
                "Mailbox scan finished: matched=%s, parsed=%s, failed=%s",
                report.matched,
                report.parsed,
                report.failed,
            )
        return report

    async def _scan(
        self, report: PollReport, deliveries: list[asyncio.Task[int]]
    ) -> None:
        await self._session.connect()
        await self._session.open_mailbox()

        since = (self._clock() - timedelta(days=self._window_days)).date()
        LOGGER.info("Searching mailbox since %s", format_imap_date(since))
        sequence_numbers = await self._session.search_since(since)
        report.matched = len(sequence_numbers)
        if not sequence_numbers:
            LOGGER.info("No email since %s", format_imap_date(since))
            return

        def publish(record: RawEmailRecord) -> None:
            payload = EmailReceived(
                sequence_number=record.sequence_number,
                message=record,
                message_id=None if record.synthesized_id else record.message_id,
            )
            deliveries.append(
                asyncio.create_task(
                    self._broadcaster.publish(EMAIL_RECEIVED_EVENT, payload)
                )
            )

        summary = await self._session.fetch_and_parse(sequence_numbers, publish)
        report.parsed = summary.parsed
        report.failed = summary.failed


__all__ = ["MailPoller", "MailboxSessionProtocol"]

"""Tests for the mailbox scan orchestration logic."""

from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime

from sdis_alerts.core.datetime_utils import format_imap_date
from sdis_alerts.core.models import (
    EmailReceived,
    FetchSummary,
    RawEmailRecord,
    SessionState,
)
from sdis_alerts.ingestion import EMAIL_RECEIVED_EVENT, EventBroadcaster, MailPoller
from sdis_alerts.transport import ConnectTimeout


def _record(sequence_number: int, *, synthesized: bool = False) -> RawEmailRecord:
    message_id = (
        f"seqno-{sequence_number}" if synthesized else f"<{sequence_number}@x>"
    )
    return RawEmailRecord(
        sequence_number=sequence_number,
        message_id=message_id,
        synthesized_id=synthesized,
        sender="sender@example.org",
        sender_display=None,
        subject=f"Subject {sequence_number}",
        text="",
        date=None,
    )


class FakeSession:
    """In-memory mailbox session recording the commands issued."""

    def __init__(self, records: list[RawEmailRecord]) -> None:
        self.records = records
        self.calls: list[str] = []
        self.criteria: tuple[str, ...] = ()
        self.connect_error: Exception | None = None
        self.search_error: Exception | None = None
        self.search_gate: asyncio.Event | None = None

    @property
    def state(self) -> SessionState:
        return SessionState.DISCONNECTED

    async def connect(self) -> None:
        self.calls.append("connect")
        if self.connect_error is not None:
            raise self.connect_error

    async def open_mailbox(self) -> int:
        self.calls.append("open_mailbox")
        return len(self.records)

    async def search_since(self, since: date) -> list[int]:
        self.calls.append("search")
        self.criteria = ("SINCE", format_imap_date(since))
        if self.search_gate is not None:
            await self.search_gate.wait()
        if self.search_error is not None:
            raise self.search_error
        return [record.sequence_number for record in self.records]

    async def fetch_and_parse(self, sequence_numbers, callback) -> FetchSummary:
        self.calls.append("fetch_and_parse")
        for record in self.records:
            callback(record)
        return FetchSummary(
            requested=len(sequence_numbers), parsed=len(self.records), failed=0
        )

    async def disconnect(self) -> None:
        self.calls.append("disconnect")

    async def reinitialize(self) -> None:
        self.calls.append("reinitialize")


def _clock() -> datetime:
    return datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def _poller(session: FakeSession, broadcaster: EventBroadcaster) -> MailPoller:
    return MailPoller(session, broadcaster, window_days=30, clock=_clock)


def test_cycle_broadcasts_every_parsed_message() -> None:
    session = FakeSession([_record(1), _record(2, synthesized=True)])
    broadcaster = EventBroadcaster()
    received: list[EmailReceived] = []

    async def handler(event: EmailReceived) -> None:
        received.append(event)

    broadcaster.subscribe(EMAIL_RECEIVED_EVENT, handler)
    poller = _poller(session, broadcaster)

    report = asyncio.run(poller.run_cycle())

    assert report.skipped is False
    assert (report.matched, report.parsed, report.failed) == (2, 2, 0)
    assert report.error is None
    assert session.criteria == ("SINCE", "2-Dec-2024")
    assert session.calls == [
        "connect",
        "open_mailbox",
        "search",
        "fetch_and_parse",
        "disconnect",
    ]
    assert [(event.sequence_number, event.message_id) for event in received] == [
        (1, "<1@x>"),
        (2, None),
    ]
    assert poller.last_successful_fetch == _clock()
    assert poller.in_flight is False


def test_empty_search_skips_fetch() -> None:
    session = FakeSession([])
    report = asyncio.run(_poller(session, EventBroadcaster()).run_cycle())

    assert report.matched == 0
    assert "fetch_and_parse" not in session.calls
    assert session.calls[-1] == "disconnect"


def test_overlapping_cycle_is_skipped() -> None:
    session = FakeSession([_record(1)])
    poller = _poller(session, EventBroadcaster())

    async def scenario():
        session.search_gate = asyncio.Event()
        first = asyncio.create_task(poller.run_cycle())
        await asyncio.sleep(0)
        assert poller.in_flight is True
        second = await poller.run_cycle()
        session.search_gate.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert second.skipped is True
    assert first.skipped is False
    assert session.calls.count("connect") == 1


def test_mailbox_error_reinitializes_and_disconnects() -> None:
    session = FakeSession([_record(1)])
    session.connect_error = ConnectTimeout("timed out")
    poller = _poller(session, EventBroadcaster())

    report = asyncio.run(poller.run_cycle())

    assert report.error == "timed out"
    assert session.calls == ["connect", "reinitialize", "disconnect"]
    assert poller.last_successful_fetch is None
    assert poller.in_flight is False


def test_unexpected_error_is_contained() -> None:
    session = FakeSession([_record(1)])
    session.search_error = RuntimeError("bug")
    poller = _poller(session, EventBroadcaster())

    report = asyncio.run(poller.run_cycle())

    assert report.error == "bug"
    assert "reinitialize" not in session.calls
    assert session.calls[-1] == "disconnect"

    session.search_error = None
    assert asyncio.run(poller.run_cycle()).error is None


def test_handler_failure_does_not_fail_cycle() -> None:
    session = FakeSession([_record(1)])
    broadcaster = EventBroadcaster()

    async def broken(event: EmailReceived) -> None:
        raise RuntimeError("classifier bug")

    broadcaster.subscribe(EMAIL_RECEIVED_EVENT, broken)

    report = asyncio.run(_poller(session, broadcaster).run_cycle())

    assert report.error is None
    assert report.parsed == 1

"""Tests for the IMAP session manager."""

# pylint: disable=protected-access

from __future__ import annotations

import asyncio
import imaplib
import time
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from sdis_alerts.core.config import ImapSettings
from sdis_alerts.core.interfaces import EmailParseError
from sdis_alerts.core.models import RawEmailRecord, SessionState
from sdis_alerts.ingestion import EmailParser
from sdis_alerts.transport import (
    ConnectTimeout,
    ImapError,
    MailboxSession,
    NotAuthenticated,
)

FIXTURES = Path(__file__).parent / "fixtures"
MALFORMED_FROM = (
    b"From: :<@\tb>];]\t)>q\"]\t\"==:\r\n"
    b"Subject: UPS event notification\r\n"
    b"\r\n"
    b"Message : broken sender\r\n"
)


class StubParser:
    """Parser turning ``raw-<n>`` payloads into records and rejecting others."""

    def parse(self, sequence_number: int, payload: bytes) -> RawEmailRecord:
        if not payload.startswith(b"raw-"):
            raise EmailParseError(f"bad payload for #{sequence_number}")
        return RawEmailRecord(
            sequence_number=sequence_number,
            message_id=f"<{sequence_number}@example.org>",
            synthesized_id=False,
            sender="sender@example.org",
            sender_display=None,
            subject=payload.decode(),
            text="",
            date=None,
        )


def _settings(**overrides) -> ImapSettings:
    values = {
        "host": "imap.test",
        "username": "user",
        "password": "password",
        "use_ssl": False,
    }
    values.update(overrides)
    return ImapSettings(**values)


def _session(connection: MagicMock, **overrides) -> MailboxSession:
    return MailboxSession(
        _settings(**overrides),
        StubParser(),
        connection_factory=lambda _settings: connection,
    )


def test_connect_authenticates_once_for_concurrent_callers() -> None:
    connection = MagicMock()
    calls: list[str] = []

    def factory(settings: ImapSettings) -> MagicMock:
        calls.append(settings.host)
        time.sleep(0.05)
        return connection

    session = MailboxSession(_settings(), StubParser(), connection_factory=factory)

    async def scenario() -> None:
        await asyncio.gather(session.connect(), session.connect(), session.connect())

    asyncio.run(scenario())

    assert calls == ["imap.test"]
    connection.login.assert_called_once_with("user", "password")
    assert session.state is SessionState.AUTHENTICATED


def test_connect_without_credentials_fails() -> None:
    factory = MagicMock()
    session = MailboxSession(
        _settings(username=None), StubParser(), connection_factory=factory
    )

    with pytest.raises(ImapError):
        asyncio.run(session.connect())

    factory.assert_not_called()
    assert session.state is SessionState.DISCONNECTED


def test_connect_timeout_leaves_session_disconnected() -> None:
    connection = MagicMock()

    def slow_factory(_settings: ImapSettings) -> MagicMock:
        time.sleep(0.3)
        return connection

    session = MailboxSession(
        _settings(connect_timeout=0.05),
        StubParser(),
        connection_factory=slow_factory,
    )

    with pytest.raises(ConnectTimeout):
        asyncio.run(session.connect())

    assert session.state is SessionState.DISCONNECTED
    connection.login.assert_not_called()


def test_commands_require_authentication() -> None:
    session = _session(MagicMock())

    with pytest.raises(NotAuthenticated):
        asyncio.run(session.search("ALL"))
    with pytest.raises(NotAuthenticated):
        asyncio.run(session.open_mailbox())


def test_open_mailbox_and_search() -> None:
    connection = MagicMock()
    connection.select.return_value = ("OK", [b"3"])
    connection.search.return_value = ("OK", [b"1 2 3"])
    session = _session(connection)

    async def scenario() -> tuple[int, list[int]]:
        await session.connect()
        total = await session.open_mailbox()
        return total, await session.search_since(date(2024, 12, 1))

    total, sequence_numbers = asyncio.run(scenario())

    assert total == 3
    assert sequence_numbers == [1, 2, 3]
    connection.select.assert_called_once_with("INBOX", True)
    connection.search.assert_called_once_with(None, "SINCE", "1-Dec-2024")


def test_fetch_skips_messages_that_fail_to_parse() -> None:
    connection = MagicMock()

    def fetch(sequence_number: str, query: str):
        assert query == "(BODY.PEEK[])"
        payload = f"raw-{sequence_number}".encode()
        if sequence_number == "2":
            payload = b"broken"
        return "OK", [(f"{sequence_number} (BODY[] {{6}}".encode(), payload), b")"]

    connection.fetch.side_effect = fetch
    session = _session(connection)
    received: list[RawEmailRecord] = []

    async def scenario():
        await session.connect()
        return await session.fetch_and_parse([1, 2, 3], received.append)

    summary = asyncio.run(scenario())

    assert (summary.requested, summary.parsed, summary.failed) == (3, 2, 1)
    assert [record.sequence_number for record in received] == [1, 3]


def test_callback_errors_do_not_stop_the_batch() -> None:
    connection = MagicMock()
    connection.fetch.side_effect = lambda n, _q: ("OK", [(b"x", f"raw-{n}".encode())])
    session = _session(connection)
    seen: list[int] = []

    def callback(record: RawEmailRecord) -> None:
        seen.append(record.sequence_number)
        raise RuntimeError("handler bug")

    async def scenario():
        await session.connect()
        return await session.fetch_and_parse([1, 2], callback)

    summary = asyncio.run(scenario())

    assert seen == [1, 2]
    assert summary.parsed == 2


def test_lost_connection_resets_state() -> None:
    connection = MagicMock()
    connection.search.side_effect = imaplib.IMAP4.abort("socket closed")
    session = _session(connection)

    async def scenario() -> None:
        await session.connect()
        await session.search("ALL")

    with pytest.raises(ImapError):
        asyncio.run(scenario())

    assert session.state is SessionState.DISCONNECTED
    connection.shutdown.assert_called_once()


def test_disconnect_logs_out_and_is_idempotent() -> None:
    connection = MagicMock()
    session = _session(connection)

    async def scenario() -> None:
        await session.connect()
        await session.disconnect()
        await session.disconnect()

    asyncio.run(scenario())

    connection.logout.assert_called_once()
    connection.shutdown.assert_not_called()
    assert session.state is SessionState.DISCONNECTED


def test_slow_logout_forces_socket_closed() -> None:
    connection = MagicMock()
    connection.logout.side_effect = lambda: time.sleep(0.3)
    session = _session(connection, disconnect_timeout=0.05)

    async def scenario() -> None:
        await session.connect()
        await session.disconnect()

    asyncio.run(scenario())

    connection.shutdown.assert_called_once()
    assert session.state is SessionState.DISCONNECTED


def test_reinitialize_allows_a_fresh_connect() -> None:
    first, second = MagicMock(), MagicMock()
    connections = iter([first, second])
    session = MailboxSession(
        _settings(),
        StubParser(),
        connection_factory=lambda _settings: next(connections),
    )

    async def scenario() -> None:
        await session.connect()
        await session.reinitialize()
        await session.connect()

    asyncio.run(scenario())

    first.shutdown.assert_called_once()
    second.login.assert_called_once()
    assert session.state is SessionState.AUTHENTICATED


def test_malformed_header_does_not_abort_the_batch() -> None:
    payloads = {"1": MALFORMED_FROM, "2": (FIXTURES / "ups_alert.eml").read_bytes()}
    connection = MagicMock()
    connection.fetch.side_effect = lambda n, _q: ("OK", [(b"x", payloads[n])])
    session = MailboxSession(
        _settings(), EmailParser(), connection_factory=lambda _settings: connection
    )
    received: list[RawEmailRecord] = []

    async def scenario():
        await session.connect()
        return await session.fetch_and_parse([1, 2], received.append)

    summary = asyncio.run(scenario())

    assert (summary.parsed, summary.failed) == (1, 1)
    assert [record.message_id for record in received] == ["<ups-0001@sdis41.fr>"]


class CrashingParser(StubParser):
    """Parser failing with an unexpected error on the first message."""

    def parse(self, sequence_number: int, payload: bytes) -> RawEmailRecord:
        if sequence_number == 1:
            raise AttributeError("'Group' object has no attribute 'local_part'")
        return super().parse(sequence_number, payload)


def test_unexpected_parser_errors_are_counted_as_failures() -> None:
    connection = MagicMock()
    connection.fetch.side_effect = lambda n, _q: ("OK", [(b"x", f"raw-{n}".encode())])
    session = MailboxSession(
        _settings(), CrashingParser(), connection_factory=lambda _settings: connection
    )
    received: list[RawEmailRecord] = []

    async def scenario():
        await session.connect()
        return await session.fetch_and_parse([1, 2], received.append)

    summary = asyncio.run(scenario())

    assert (summary.parsed, summary.failed) == (1, 1)
    assert [record.sequence_number for record in received] == [2]

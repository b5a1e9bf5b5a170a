"""IMAP session manager providing bounded, asynchronous mailbox access."""

from __future__ import annotations

import asyncio
import imaplib
import logging
import ssl
import threading
from collections.abc import Callable, Sequence
from datetime import date
from typing import Any

from ..core.config import ImapSettings
from ..core.datetime_utils import format_imap_date
from ..core.interfaces import EmailParseError, MessageParser
from ..core.models import FetchSummary, RawEmailRecord, SessionState

LOGGER = logging.getLogger(__name__)

ConnectionFactory = Callable[[ImapSettings], imaplib.IMAP4]
RecordCallback = Callable[[RawEmailRecord], None]


class ImapError(RuntimeError):
    """Wrap low level IMAP errors with additional context."""


class NotAuthenticated(ImapError):
    """Raised when a mailbox command is issued outside an authenticated session."""


class MailboxTimeout(ImapError):
    """Raised when a bounded mailbox operation does not complete in time."""


class ConnectTimeout(MailboxTimeout):
    """Raised when connecting and authenticating exceeds its bound."""


class FetchTimeout(MailboxTimeout):
    """Raised when a fetch batch does not complete within its bound."""


def open_imap_connection(settings: ImapSettings) -> imaplib.IMAP4:
    """Open a socket to the configured server without authenticating."""
    if settings.use_ssl:
        context = ssl.create_default_context()
        if not settings.verify_certificates:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        LOGGER.debug(
            "Connecting to IMAP host %s:%s via SSL", settings.host, settings.port
        )
        return imaplib.IMAP4_SSL(
            settings.host,
            settings.port,
            ssl_context=context,
            timeout=settings.socket_timeout,
        )
    LOGGER.debug(
        "Connecting to IMAP host %s:%s without SSL", settings.host, settings.port
    )
    return imaplib.IMAP4(settings.host, settings.port, timeout=settings.socket_timeout)


class MailboxSession:
    """Own the lifecycle of a single IMAP connection.

    Blocking ``imaplib`` calls run in worker threads and every call is bounded
    by a timeout. A timed out or broken call tears the socket down and leaves
    the session ``disconnected``; the next :meth:`connect` starts from scratch.

    State transitions happen under ``_lock`` together with a generation check,
    so a worker thread abandoned by a timeout cannot store its connection once
    the session has moved on.
    """

    def __init__(
        self,
        settings: ImapSettings,
        parser: MessageParser,
        *,
        connection_factory: ConnectionFactory = open_imap_connection,
    ) -> None:
        """Initialise the session with configuration, parser and socket factory."""
        self._settings = settings
        self._parser = parser
        self._connection_factory = connection_factory
        self._connection: imaplib.IMAP4 | None = None
        self._state = SessionState.DISCONNECTED
        self._generation = 0
        self._lock = threading.Lock()
        self._connect_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SessionState:
        """Current connection state."""
        return self._state

    @property
    def mailbox(self) -> str:
        """Name of the mailbox opened by :meth:`open_mailbox`."""
        return self._settings.mailbox

    # Lifecycle ---------------------------------------------------------------
    async def connect(self) -> None:
        """Connect and authenticate; concurrent callers share one attempt."""
        if self._state is SessionState.AUTHENTICATED and self._connection is not None:
            LOGGER.debug("IMAP session already authenticated")
            return
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self._connect_bounded())
        else:
            LOGGER.debug("IMAP connect already in flight; waiting on it")
        await asyncio.shield(self._connect_task)

    async def disconnect(self) -> None:
        """Log out, forcing the socket closed after the disconnect timeout."""
        connection = self._connection
        if connection is None:
            if self._state is not SessionState.DISCONNECTED:
                self._abort()
            LOGGER.debug("IMAP session already disconnected")
            return

        LOGGER.debug("Disconnecting IMAP session (state: %s)", self._state.value)
        graceful = False
        try:
            await asyncio.wait_for(
                asyncio.to_thread(connection.logout),
                timeout=self._settings.disconnect_timeout,
            )
            graceful = True
        except asyncio.TimeoutError:
            LOGGER.warning(
                "IMAP logout did not complete within %ss; forcing close",
                self._settings.disconnect_timeout,
            )
        except (imaplib.IMAP4.error, OSError) as exc:
            LOGGER.warning("IMAP logout raised; forcing close: %s", exc)
        finally:
            self._abort(close_socket=not graceful)

    async def reinitialize(self) -> None:
        """Destroy any live connection so the next connect starts fresh."""
        LOGGER.info("Reinitialising IMAP session (state: %s)", self._state.value)
        self._abort()
        self._connect_task = None

    # Mailbox commands ----------------------------------------------------------
    async def open_mailbox(self) -> int:
        """Select the configured mailbox read-only and return its message count."""
        connection = self._require_authenticated()
        data = await self._call(
            "SELECT", connection.select, self._settings.mailbox, True
        )
        total = _first_int(data)
        LOGGER.info("Opened mailbox %s (%s message(s))", self._settings.mailbox, total)
        return total

    async def search(self, *criteria: str) -> list[int]:
        """Return sequence numbers of messages matching ``criteria``."""
        connection = self._require_authenticated()
        data = await self._call("SEARCH", connection.search, None, *criteria)
        raw_ids = data[0].split() if data and data[0] else []
        return [int(raw_id) for raw_id in raw_ids]

    async def search_since(self, since: date) -> list[int]:
        """Return sequence numbers of messages received on or after ``since``."""
        return await self.search("SINCE", format_imap_date(since))

    async def fetch_and_parse(
        self, sequence_numbers: Sequence[int], callback: RecordCallback
    ) -> FetchSummary:
        """Fetch, parse and hand each message to ``callback``.

        Messages that cannot be parsed are logged and skipped. The whole batch
        is bounded by ``fetch_timeout``.
        """
        connection = self._require_authenticated()
        summary = FetchSummary(requested=len(sequence_numbers), parsed=0, failed=0)
        if not sequence_numbers:
            return summary

        LOGGER.info("Fetching %s message(s)", summary.requested)
        try:
            await asyncio.wait_for(
                self._fetch_all(connection, sequence_numbers, callback, summary),
                timeout=self._settings.fetch_timeout,
            )
        except asyncio.TimeoutError as exc:
            done = summary.parsed + summary.failed
            LOGGER.error(
                "Fetch timed out after %s/%s message(s)", done, summary.requested
            )
            self._abort()
            raise FetchTimeout(
                f"Timeout processing emails, only {done}/{summary.requested} finished"
            ) from exc
        LOGGER.info(
            "Fetch finished: parsed=%s, failed=%s", summary.parsed, summary.failed
        )
        return summary

    # Internal helpers ----------------------------------------------------------
    async def _connect_bounded(self) -> None:
        with self._lock:
            generation = self._generation
            self._state = SessionState.CONNECTING
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._open_blocking, generation),
                timeout=self._settings.connect_timeout,
            )
        except asyncio.TimeoutError as exc:
            LOGGER.error("IMAP connect timed out (%ss)", self._settings.connect_timeout)
            self._abort()
            raise ConnectTimeout(
                f"Connecting to {self._settings.host} timed out"
            ) from exc
        except ImapError:
            self._abort()
            raise
        except (imaplib.IMAP4.error, OSError) as exc:
            self._abort()
            raise ImapError("Failed to connect to IMAP server") from exc
        LOGGER.info("IMAP session authenticated as %s", self._settings.username)

    def _open_blocking(self, generation: int) -> None:
        username = self._settings.username
        password = self._settings.password
        if username is None or password is None:
            raise ImapError("IMAP credentials are not configured")

        connection = self._connection_factory(self._settings)
        with self._lock:
            if generation != self._generation:
                _shutdown_quietly(connection)
                raise ImapError("IMAP connect attempt was abandoned")
            self._connection = connection
            self._state = SessionState.CONNECTED

        LOGGER.debug("Authenticating as %s", username)
        connection.login(username, password)
        with self._lock:
            if generation != self._generation:
                raise ImapError("IMAP connect attempt was abandoned")
            self._state = SessionState.AUTHENTICATED

    async def _fetch_all(
        self,
        connection: imaplib.IMAP4,
        sequence_numbers: Sequence[int],
        callback: RecordCallback,
        summary: FetchSummary,
    ) -> None:
        for sequence_number in sequence_numbers:
            payload = await self._fetch_one(connection, sequence_number)
            if payload is None:
                LOGGER.warning("No payload returned for message #%s", sequence_number)
                summary.failed += 1
                continue
            try:
                record = await asyncio.to_thread(
                    self._parser.parse, sequence_number, payload
                )
            except EmailParseError as exc:
                LOGGER.error("Error parsing email #%s: %s", sequence_number, exc)
                summary.failed += 1
                continue
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.error(
                    "Parser crashed on email #%s: %s",
                    sequence_number,
                    exc,
                    exc_info=True,
                )
                summary.failed += 1
                continue
            LOGGER.debug("Email #%s parsed. Subject: %s", sequence_number, record.subject)
            summary.parsed += 1
            try:
                callback(record)
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.error(
                    "Record callback failed for email #%s: %s",
                    sequence_number,
                    exc,
                    exc_info=True,
                )

    async def _fetch_one(
        self, connection: imaplib.IMAP4, sequence_number: int
    ) -> bytes | None:
        try:
            status, data = await asyncio.to_thread(
                connection.fetch, str(sequence_number), "(BODY.PEEK[])"
            )
        except (imaplib.IMAP4.abort, OSError) as exc:
            self._abort()
            raise ImapError(
                f"Connection lost while fetching message #{sequence_number}"
            ) from exc
        except imaplib.IMAP4.error as exc:
            raise ImapError(f"Failed to fetch message #{sequence_number}") from exc
        if status != "OK":
            raise ImapError(f"Failed to fetch message #{sequence_number}")
        return _extract_rfc822(data)

    async def _call(self, command: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            status, data = await asyncio.wait_for(
                asyncio.to_thread(func, *args),
                timeout=self._settings.operation_timeout,
            )
        except asyncio.TimeoutError as exc:
            LOGGER.error(
                "IMAP %s timed out (%ss)", command, self._settings.operation_timeout
            )
            self._abort()
            raise MailboxTimeout(f"IMAP {command} timed out") from exc
        except (imaplib.IMAP4.abort, OSError) as exc:
            self._abort()
            raise ImapError(f"Connection lost during IMAP {command}") from exc
        except imaplib.IMAP4.error as exc:
            raise ImapError(f"IMAP {command} failed") from exc
        if status != "OK":
            raise ImapError(f"IMAP {command} returned {status}")
        return data

    def _require_authenticated(self) -> imaplib.IMAP4:
        connection = self._connection
        if self._state is not SessionState.AUTHENTICATED or connection is None:
            raise NotAuthenticated(
                f"IMAP session is not authenticated (state: {self._state.value})"
            )
        return connection

    def _abort(self, *, close_socket: bool = True) -> None:
        with self._lock:
            self._generation += 1
            connection, self._connection = self._connection, None
            self._state = SessionState.DISCONNECTED
        if close_socket and connection is not None:
            _shutdown_quietly(connection)


def _shutdown_quietly(connection: imaplib.IMAP4) -> None:
    try:
        connection.shutdown()
    except OSError as exc:  # pragma: no cover - depends on socket state
        LOGGER.debug("IMAP socket shutdown raised; ignoring: %s", exc)


def _first_int(data: Sequence[Any] | None) -> int:
    if not data or not data[0]:
        return 0
    raw = data[0]
    try:
        return int(raw.decode() if isinstance(raw, bytes) else raw)
    except ValueError:
        return 0


def _extract_rfc822(fetch_data: list[tuple[bytes, bytes] | bytes]) -> bytes | None:
    """Extract the message payload from ``imaplib`` response chunks."""
    for entry in fetch_data:
        if isinstance(entry, tuple) and len(entry) == 2:
            return entry[1]
    return None


__all__ = [
    "ConnectTimeout",
    "FetchTimeout",
    "ImapError",
    "MailboxSession",
    "MailboxTimeout",
    "NotAuthenticated",
    "open_imap_connection",
]

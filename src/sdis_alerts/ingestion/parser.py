"""Utilities for parsing raw RFC822 messages into email records."""

from __future__ import annotations

import html
import re
from collections.abc import Iterable
from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime

from ..core.interfaces import EmailParseError
from ..core.models import RawEmailRecord, synthesize_message_id

_TAG = re.compile(r"<[^>]+>")
_BLANKS = re.compile(r"[ \t]+")


class EmailParser:
    """Convert raw email payloads into :class:`RawEmailRecord` instances."""

    def __init__(self) -> None:
        """Prepare internal parser instance."""
        self._parser = BytesParser(policy=policy.default)

    def parse(self, sequence_number: int, payload: bytes) -> RawEmailRecord:
        """Parse raw RFC822 bytes fetched under ``sequence_number``."""
        if not payload:
            raise EmailParseError(f"Empty payload for message #{sequence_number}")
        try:
            message = self._parser.parsebytes(payload)
            subject = _header(message, "Subject")
            from_header = _header(message, "From")
            message_id = (_header(message, "Message-ID") or "").strip() or None
            date = _try_parse_datetime(_header(message, "Date"))
            text = _extract_text(message)
            sender = _take_first_address(from_header)
        except Exception as exc:  # pylint: disable=broad-except
            raise EmailParseError(
                f"Unable to parse message #{sequence_number}: {exc}"
            ) from exc

        return RawEmailRecord(
            sequence_number=sequence_number,
            message_id=message_id or synthesize_message_id(sequence_number),
            synthesized_id=message_id is None,
            sender=sender.lower() if sender else None,
            sender_display=from_header,
            subject=subject,
            text=text,
            date=date,
        )


def _header(message: EmailMessage, name: str) -> str | None:
    value = message.get(name)
    if value is None:
        return None
    return str(value)


def _extract_addresses(headers: Iterable[str]) -> Iterable[str]:
    for _, email_address in getaddresses(headers):
        if email_address:
            yield email_address


def _take_first_address(header_value: str | None) -> str | None:
    if header_value is None:
        return None
    addresses = list(_extract_addresses([header_value]))
    return addresses[0] if addresses else None


def _extract_text(message: EmailMessage) -> str:
    plain_chunks: list[str] = []
    html_chunks: list[str] = []

    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue
        try:
            content_obj = part.get_content()
        except LookupError:
            continue
        if not isinstance(content_obj, str):
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain":
            plain_chunks.append(content_obj)
        elif content_type == "text/html":
            html_chunks.append(content_obj)

    if plain_chunks:
        return _normalize_newlines("\n".join(plain_chunks))
    if html_chunks:
        return _html_to_text("\n".join(html_chunks))
    return ""


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _html_to_text(markup: str) -> str:
    markup = re.sub(r"(?i)<br\s*/?>|</p>|</div>", "\n", markup)
    stripped = html.unescape(_TAG.sub("", markup))
    lines = (_BLANKS.sub(" ", line).strip() for line in stripped.splitlines())
    return _normalize_newlines("\n".join(lines)).strip()


def _try_parse_datetime(header_value: str | None) -> datetime | None:
    if header_value is None:
        return None
    try:
        return parsedate_to_datetime(header_value)
    except (TypeError, ValueError):
        return None


__all__ = ["EmailParseError", "EmailParser"]

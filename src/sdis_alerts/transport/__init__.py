"""Transport adapters for the monitored mailbox."""

from .imap_client import (
    ConnectTimeout,
    FetchTimeout,
    ImapError,
    MailboxSession,
    MailboxTimeout,
    NotAuthenticated,
)

__all__ = [
    "ConnectTimeout",
    "FetchTimeout",
    "ImapError",
    "MailboxSession",
    "MailboxTimeout",
    "NotAuthenticated",
]

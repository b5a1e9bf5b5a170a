"""Exceptions raised while delivering push notifications."""

from __future__ import annotations


class PushError(RuntimeError):
    """Raised when a push service rejects or fails to accept a message."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SubscriptionGone(PushError):
    """Raised when the push service reports the subscription no longer exists."""


__all__ = ["PushError", "SubscriptionGone"]

"""Persistence layer for push subscriptions."""

from .sqlite import SqliteSubscriptionStore

__all__ = ["SqliteSubscriptionStore"]

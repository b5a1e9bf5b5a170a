"""SQLite-backed push subscription store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType

from ..core.config import StorageSettings
from ..core.datetime_utils import parse_datetime, serialize_datetime
from ..core.interfaces import SubscriptionStore
from ..core.models import Subscriber

LOGGER = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS push_subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    endpoint TEXT NOT NULL UNIQUE,
    p256dh TEXT NOT NULL,
    auth TEXT NOT NULL,
    user_id INTEGER,
    notify_on_ticket INTEGER NOT NULL DEFAULT 1,
    notify_on_email INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_push_subscriptions_user
    ON push_subscriptions(user_id);
"""

_COLUMNS = (
    "id, endpoint, p256dh, auth, user_id, notify_on_ticket, notify_on_email, "
    "created_at"
)


class SqliteSubscriptionStore(SubscriptionStore):
    """Persist push subscriptions using SQLite."""

    def __init__(self, settings: StorageSettings) -> None:
        """Open the database and create the schema when missing."""
        self._settings = settings
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        with self._connection:
            self._connection.executescript(_SCHEMA)

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteSubscriptionStore:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # SubscriptionStore API ---------------------------------------------------
    def subscribe(
        self, endpoint: str, p256dh: str, auth: str, user_id: int | None = None
    ) -> Subscriber:
        """Register ``endpoint``; an existing endpoint keeps its preferences."""
        if not endpoint:
            raise ValueError("Subscription endpoint is required")
        if not p256dh or not auth:
            raise ValueError("Subscription keys are required")

        created_at = serialize_datetime(datetime.now(tz=UTC))
        with self._lock:
            with self._connection:
                cursor = self._connection.execute(
                    """
                    INSERT INTO push_subscriptions (
                        endpoint, p256dh, auth, user_id, created_at
                    ) VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(endpoint) DO NOTHING
                    """,
                    (endpoint, p256dh, auth, user_id, created_at),
                )
            subscriber = self.find_by_endpoint(endpoint)
        if subscriber is None:
            raise sqlite3.IntegrityError(f"Subscription for {endpoint} vanished")
        if cursor.rowcount > 0:
            LOGGER.info("Registered push subscription %s", subscriber.id)
        else:
            LOGGER.debug("Subscription already registered for %s", endpoint)
        return subscriber

    def list_subscribers(self) -> list[Subscriber]:
        """Return every stored subscription ordered by creation."""
        with self._lock:
            rows = self._connection.execute(
                f"SELECT {_COLUMNS} FROM push_subscriptions ORDER BY id"
            ).fetchall()
        return [_row_to_subscriber(row) for row in rows]

    def find_by_endpoint(self, endpoint: str) -> Subscriber | None:
        """Return the subscription registered for ``endpoint``."""
        with self._lock:
            row = self._connection.execute(
                f"SELECT {_COLUMNS} FROM push_subscriptions WHERE endpoint = ?",
                (endpoint,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_subscriber(row)

    def delete(self, subscriber_id: int) -> bool:
        """Remove a subscription. Returns ``True`` if a row was deleted."""
        with self._lock, self._connection:
            cursor = self._connection.execute(
                "DELETE FROM push_subscriptions WHERE id = ?", (subscriber_id,)
            )
        return cursor.rowcount > 0

    def delete_by_endpoint(self, endpoint: str) -> bool:
        """Remove the subscription registered for ``endpoint``."""
        with self._lock, self._connection:
            cursor = self._connection.execute(
                "DELETE FROM push_subscriptions WHERE endpoint = ?", (endpoint,)
            )
        return cursor.rowcount > 0

    def update_preferences(
        self,
        endpoint: str,
        *,
        notify_on_ticket: bool | None = None,
        notify_on_email: bool | None = None,
    ) -> Subscriber | None:
        """Update opt-in flags; ``None`` when the endpoint is unknown."""
        updates: list[str] = []
        params: list[object] = []
        if notify_on_ticket is not None:
            updates.append("notify_on_ticket = ?")
            params.append(int(notify_on_ticket))
        if notify_on_email is not None:
            updates.append("notify_on_email = ?")
            params.append(int(notify_on_email))

        if updates:
            params.append(endpoint)
            with self._lock, self._connection:
                self._connection.execute(
                    f"UPDATE push_subscriptions SET {', '.join(updates)} "
                    "WHERE endpoint = ?",
                    params,
                )
        return self.find_by_endpoint(endpoint)

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._connection.close()


def _row_to_subscriber(row: sqlite3.Row) -> Subscriber:
    return Subscriber(
        id=int(row["id"]),
        endpoint=row["endpoint"],
        p256dh=row["p256dh"],
        auth=row["auth"],
        user_id=row["user_id"],
        notify_on_ticket=bool(row["notify_on_ticket"]),
        notify_on_email=bool(row["notify_on_email"]),
        created_at=parse_datetime(row["created_at"]),
    )


__all__ = ["SqliteSubscriptionStore"]

"""Tests for the SQLite subscription store."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from sdis_alerts.core.config import StorageSettings
from sdis_alerts.storage import SqliteSubscriptionStore


def _store(tmp_path: Path) -> SqliteSubscriptionStore:
    return SqliteSubscriptionStore(StorageSettings(db_path=tmp_path / "subs.db"))


def test_subscribe_persists_and_defaults_preferences(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        created = store.subscribe("https://push.example.org/a", "key", "secret", 7)

        assert created.id > 0
        assert created.notify_on_ticket is True
        assert created.notify_on_email is True

        stored = store.find_by_endpoint("https://push.example.org/a")
        assert stored is not None
        assert stored.id == created.id
        assert stored.user_id == 7
        assert stored.created_at is not None
        assert stored.created_at.tzinfo is not None


def test_subscribe_is_idempotent_per_endpoint(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        first = store.subscribe("https://push.example.org/a", "key", "secret")
        store.update_preferences("https://push.example.org/a", notify_on_email=False)
        second = store.subscribe("https://push.example.org/a", "key2", "secret2")

        assert second.id == first.id
        assert second.notify_on_email is False
        assert len(store.list_subscribers()) == 1


def test_subscribe_requires_endpoint_and_keys(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        with pytest.raises(ValueError):
            store.subscribe("", "key", "secret")
        with pytest.raises(ValueError):
            store.subscribe("https://push.example.org/a", "", "secret")


def test_update_preferences(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        store.subscribe("https://push.example.org/a", "key", "secret")

        updated = store.update_preferences(
            "https://push.example.org/a", notify_on_ticket=False
        )
        assert updated is not None
        assert updated.notify_on_ticket is False
        assert updated.notify_on_email is True

        assert store.update_preferences("https://unknown", notify_on_email=False) is None


def test_delete_removes_subscription(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        kept = store.subscribe("https://push.example.org/a", "key", "secret")
        removed = store.subscribe("https://push.example.org/b", "key", "secret")

        assert store.delete(removed.id) is True
        assert store.delete(removed.id) is False
        assert [item.id for item in store.list_subscribers()] == [kept.id]
        assert store.delete_by_endpoint("https://push.example.org/a") is True
        assert store.list_subscribers() == []


def test_subscriptions_survive_reopen(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        store.subscribe("https://push.example.org/a", "key", "secret")

    with _store(tmp_path) as reopened:
        assert len(reopened.list_subscribers()) == 1


def test_concurrent_subscribes_share_one_row(tmp_path: Path) -> None:
    endpoint = "https://push.example.org/race"
    with _store(tmp_path) as store:
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(
                    lambda _index: store.subscribe(endpoint, "key", "secret"),
                    range(16),
                )
            )

        assert {item.id for item in results} == {results[0].id}
        assert len(store.list_subscribers()) == 1

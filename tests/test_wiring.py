"""Tests for service container assembly."""

from __future__ import annotations

import asyncio
from pathlib import Path

from sdis_alerts.classifiers import OperationClassifier, PowerClassifier
from sdis_alerts.core.config import AppSettings, StorageSettings
from sdis_alerts.core.models import FetchSummary
from sdis_alerts.ingestion import EMAIL_RECEIVED_EVENT, EmailParser, MailPoller
from sdis_alerts.notifications import NotificationService
from sdis_alerts.scheduling import AlertScheduler
from sdis_alerts.wiring import (
    BROADCASTER,
    NOTIFIER,
    OPERATIONS,
    POLLER,
    POWER,
    SCHEDULER,
    SESSION,
    build_container,
)


def test_container_builds_singletons_and_subscribes_classifiers(
    tmp_path: Path,
) -> None:
    settings = AppSettings(storage=StorageSettings(db_path=tmp_path / "wiring.db"))
    container = build_container(settings)

    assert isinstance(container.resolve(POLLER), MailPoller)
    assert isinstance(container.resolve(SCHEDULER), AlertScheduler)
    assert isinstance(container.resolve(NOTIFIER), NotificationService)
    assert isinstance(container.resolve(POWER), PowerClassifier)
    assert isinstance(container.resolve(OPERATIONS), OperationClassifier)
    assert container.resolve(POWER) is container.resolve(POWER)

    handlers = container.resolve(BROADCASTER).handlers(EMAIL_RECEIVED_EVENT)
    assert len(handlers) == 2


class FixtureSession:
    """Mailbox session serving the bundled UPS fixture as message #1."""

    def __init__(self) -> None:
        fixture = Path(__file__).parent / "fixtures" / "ups_alert.eml"
        self.payload = fixture.read_bytes()

    async def connect(self) -> None:
        return None

    async def open_mailbox(self) -> int:
        return 1

    async def search_since(self, since) -> list[int]:
        return [1]

    async def fetch_and_parse(self, sequence_numbers, callback) -> FetchSummary:
        callback(EmailParser().parse(1, self.payload))
        return FetchSummary(requested=1, parsed=1, failed=0)

    async def disconnect(self) -> None:
        return None

    async def reinitialize(self) -> None:
        return None


def test_scan_cycle_feeds_power_history(tmp_path: Path) -> None:
    settings = AppSettings(storage=StorageSettings(db_path=tmp_path / "wiring.db"))
    container = build_container(settings)
    container.register_instance(SESSION, FixtureSession())

    report = asyncio.run(container.resolve(POLLER).run_cycle())

    assert report.error is None
    [event] = container.resolve(POWER).list_events()
    assert event.id == "<ups-0001@sdis41.fr>"
    assert event.event == "On Battery"
    assert container.resolve(OPERATIONS).list_events() == []

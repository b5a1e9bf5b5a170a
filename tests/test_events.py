"""Tests for the in-process event broadcaster."""

from __future__ import annotations

import asyncio

from sdis_alerts.ingestion import EMAIL_RECEIVED_EVENT, EventBroadcaster


def test_publish_delivers_to_every_handler() -> None:
    broadcaster = EventBroadcaster()
    received: list[tuple[str, object]] = []

    async def first(payload: object) -> None:
        received.append(("first", payload))

    async def second(payload: object) -> None:
        received.append(("second", payload))

    broadcaster.subscribe(EMAIL_RECEIVED_EVENT, first)
    broadcaster.subscribe(EMAIL_RECEIVED_EVENT, second)

    failures = asyncio.run(broadcaster.publish(EMAIL_RECEIVED_EVENT, "payload"))

    assert failures == 0
    assert sorted(received) == [("first", "payload"), ("second", "payload")]


def test_failing_handler_does_not_affect_others() -> None:
    broadcaster = EventBroadcaster()
    received: list[object] = []

    async def broken(payload: object) -> None:
        raise RuntimeError("boom")

    async def healthy(payload: object) -> None:
        received.append(payload)

    broadcaster.subscribe(EMAIL_RECEIVED_EVENT, broken)
    broadcaster.subscribe(EMAIL_RECEIVED_EVENT, healthy)

    failures = asyncio.run(broadcaster.publish(EMAIL_RECEIVED_EVENT, 1))

    assert failures == 1
    assert received == [1]


def test_publish_without_handlers_is_a_no_op() -> None:
    broadcaster = EventBroadcaster()
    assert asyncio.run(broadcaster.publish("unknown", None)) == 0

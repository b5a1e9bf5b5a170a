"""FastAPI web application exposing alert histories and push subscriptions."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import fields
from enum import Enum
from typing import Any

from fastapi import FastAPI, HTTPException, Query, status as http_status
from fastapi.middleware.gzip import GZipMiddleware
from pydantic import BaseModel, ConfigDict, Field

from sdis_alerts.classifiers import OperationClassifier, PowerClassifier
from sdis_alerts.core import AppSettings, ServiceContainer, load_app_settings
from sdis_alerts.core.datetime_utils import serialize_datetime
from sdis_alerts.core.interfaces import SubscriptionStore
from sdis_alerts.core.models import ClassifiedEvent, PollReport, Subscriber
from sdis_alerts.ingestion import MailPoller
from sdis_alerts.scheduling import AlertScheduler
from sdis_alerts.transport import MailboxSession
from sdis_alerts.wiring import (
    OPERATIONS,
    POLLER,
    POWER,
    SCHEDULER,
    SESSION,
    SUBSCRIPTIONS,
    build_container,
)

LOGGER = logging.getLogger(__name__)

SYNC_RATE_LIMIT_MAX_CALLS = 2
SYNC_RATE_LIMIT_WINDOW_SECONDS = 60


class SubscriptionKeys(BaseModel):
    """Keys of a browser push subscription."""

    p256dh: str = Field(min_length=1)
    auth: str = Field(min_length=1)


class SubscribeRequest(BaseModel):
    """Body of ``POST /notifications/subscribe``."""

    endpoint: str = Field(min_length=1)
    keys: SubscriptionKeys
    user_id: int | None = Field(default=None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class EndpointRequest(BaseModel):
    """Body identifying a subscription by its endpoint."""

    endpoint: str = Field(min_length=1)


class PreferencesUpdate(BaseModel):
    """Body of ``PATCH /notifications/preferences``."""

    endpoint: str = Field(min_length=1)
    notify_on_ticket: bool | None = Field(default=None, alias="notifyOnTicket")
    notify_on_email: bool | None = Field(default=None, alias="notifyOnEmail")

    model_config = ConfigDict(populate_by_name=True)


def create_app(
    settings: AppSettings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = settings or load_app_settings()
    services = container or build_container(app_settings)
    app = FastAPI(title="SDIS Alerts")
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.state.container = services

    sync_rate_lock = asyncio.Lock()
    sync_rate_history: deque[float] = deque()

    def power() -> PowerClassifier:
        return services.resolve(POWER)

    def operations() -> OperationClassifier:
        return services.resolve(OPERATIONS)

    def store() -> SubscriptionStore:
        return services.resolve(SUBSCRIPTIONS)

    @app.on_event("startup")
    async def startup_event() -> None:
        """Start periodic polling when enabled."""
        # Building the broadcaster subscribes both classifiers.
        services.resolve(POLLER)
        if app_settings.polling.enabled:
            scheduler: AlertScheduler = services.resolve(SCHEDULER)
            scheduler.start()
        else:
            LOGGER.info("Polling disabled; scheduler not started")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Stop the scheduler, then release the mailbox and the store."""
        await services.aclose()
        LOGGER.info("Services released")

    @app.get("/emails_onduleurs")
    async def power_events() -> list[dict[str, Any]]:
        """Return the UPS notification history, newest first."""
        return [_serialize_event(item) for item in power().list_events()]

    @app.get("/emails_inpt")
    async def operation_events() -> list[dict[str, Any]]:
        """Return the radio-network notice history, newest first."""
        return [_serialize_event(item) for item in operations().list_events()]

    @app.get("/notifications/vapid-public-key")
    async def vapid_public_key() -> dict[str, str]:
        """Return the application server key browsers subscribe with."""
        public_key = app_settings.notifications.vapid_public_key
        if not public_key:
            LOGGER.error("VAPID public key requested but not configured")
            raise HTTPException(
                status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="VAPID public key is not configured",
            )
        return {"publicKey": public_key}

    @app.post("/notifications/subscribe", status_code=http_status.HTTP_201_CREATED)
    async def subscribe(payload: SubscribeRequest) -> dict[str, Any]:
        subscriber = await asyncio.to_thread(
            store().subscribe,
            payload.endpoint,
            payload.keys.p256dh,
            payload.keys.auth,
            payload.user_id,
        )
        return {"success": True, "subscriptionId": subscriber.id}

    @app.post("/notifications/unsubscribe")
    async def unsubscribe(payload: EndpointRequest) -> dict[str, Any]:
        deleted = await asyncio.to_thread(
            store().delete_by_endpoint, payload.endpoint
        )
        if not deleted:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail="Subscription not found",
            )
        return {"success": True}

    @app.get("/notifications/preferences")
    async def get_preferences(
        endpoint: str = Query(min_length=1),
    ) -> dict[str, bool]:
        subscriber = await asyncio.to_thread(store().find_by_endpoint, endpoint)
        if subscriber is None:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail="Subscription not found",
            )
        return _preferences(subscriber)

    @app.patch("/notifications/preferences")
    async def update_preferences(payload: PreferencesUpdate) -> dict[str, Any]:
        if payload.notify_on_ticket is None and payload.notify_on_email is None:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="No preference supplied",
            )
        subscriber = await asyncio.to_thread(
            lambda: store().update_preferences(
                payload.endpoint,
                notify_on_ticket=payload.notify_on_ticket,
                notify_on_email=payload.notify_on_email,
            )
        )
        if subscriber is None:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail="Subscription not found",
            )
        return {"success": True, **_preferences(subscriber)}

    @app.post("/sync")
    async def trigger_sync() -> dict[str, Any]:
        """Run one mailbox scan now, sharing the scheduler's in-flight gate."""
        async with sync_rate_lock:
            now = time.monotonic()
            while (
                sync_rate_history
                and now - sync_rate_history[0] > SYNC_RATE_LIMIT_WINDOW_SECONDS
            ):
                sync_rate_history.popleft()
            if len(sync_rate_history) >= SYNC_RATE_LIMIT_MAX_CALLS:
                raise HTTPException(
                    status_code=http_status.HTTP_429_TOO_MANY_REQUESTS,
                    detail="Too many sync requests. Please wait before trying again.",
                )
            sync_rate_history.append(now)

        poller: MailPoller = services.resolve(POLLER)
        report = await poller.run_cycle()
        return _serialize_report(report)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        session: MailboxSession = services.resolve(SESSION)
        poller: MailPoller = services.resolve(POLLER)
        scheduler = services.peek(SCHEDULER)
        return {
            "session": session.state.value,
            "scanInFlight": poller.in_flight,
            "lastSuccessfulFetch": serialize_datetime(poller.last_successful_fetch),
            "schedulerRunning": bool(scheduler and scheduler.running),
        }

    return app


def _serialize_event(event: ClassifiedEvent) -> dict[str, Any]:
    document: dict[str, Any] = {}
    for field in fields(event):
        value = getattr(event, field.name)
        if isinstance(value, Enum):
            value = value.value
        elif field.name == "date":
            value = serialize_datetime(value)
        document[field.name] = value
    return document


def _serialize_report(report: PollReport) -> dict[str, Any]:
    return {
        "skipped": report.skipped,
        "matched": report.matched,
        "parsed": report.parsed,
        "failed": report.failed,
        "error": report.error,
    }


def _preferences(subscriber: Subscriber) -> dict[str, bool]:
    return {
        "notifyOnTicket": subscriber.notify_on_ticket,
        "notifyOnEmail": subscriber.notify_on_email,
    }


__all__ = ["create_app"]

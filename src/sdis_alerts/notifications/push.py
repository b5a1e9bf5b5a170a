"""Web Push delivery of rendered notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from pywebpush import WebPushException, webpush

from sdis_alerts.core.config import NotificationSettings
from sdis_alerts.core.interfaces import PushTransport
from sdis_alerts.core.models import Subscriber

from .errors import PushError, SubscriptionGone

LOGGER = logging.getLogger(__name__)

_GONE_STATUSES = frozenset({404, 410})

WebPushSender = Callable[..., Any]


class WebPushTransport(PushTransport):
    """Encrypt payloads for each subscription and sign requests with VAPID.

    ``pywebpush`` is blocking, so every delivery runs in a worker thread. The
    subscription's ``p256dh`` and ``auth`` keys drive the aes128gcm payload
    encryption.
    """

    def __init__(
        self,
        settings: NotificationSettings,
        *,
        sender: WebPushSender = webpush,
    ) -> None:
        self._settings = settings
        self._sender = sender

    async def deliver(self, subscriber: Subscriber, payload: str) -> None:
        """Send ``payload`` to ``subscriber``; raise :class:`PushError` on failure."""
        private_key = self._settings.vapid_private_key
        if not private_key:
            raise PushError("VAPID private key is not configured")

        subscription_info = {
            "endpoint": subscriber.endpoint,
            "keys": {"p256dh": subscriber.p256dh, "auth": subscriber.auth},
        }
        try:
            response = await asyncio.to_thread(
                self._sender,
                subscription_info=subscription_info,
                data=payload,
                vapid_private_key=private_key,
                # pywebpush adds "aud" and "exp" to the claims it is given.
                vapid_claims={"sub": self._settings.vapid_subject},
                ttl=self._settings.ttl_seconds,
                timeout=self._settings.request_timeout_seconds,
            )
        except WebPushException as exc:
            status_code = (
                exc.response.status_code if exc.response is not None else None
            )
            if status_code in _GONE_STATUSES:
                raise SubscriptionGone(
                    f"Subscription {subscriber.id} is gone",
                    status_code=status_code,
                ) from exc
            raise PushError(
                f"Push service rejected the request: {exc}",
                status_code=status_code,
            ) from exc
        except (OSError, ValueError) as exc:
            raise PushError(f"Push request failed: {exc}") from exc

        LOGGER.debug(
            "Push delivered to subscription %s (%s)",
            subscriber.id,
            getattr(response, "status_code", "?"),
        )


__all__ = ["WebPushSender", "WebPushTransport"]

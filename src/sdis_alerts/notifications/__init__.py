"""Push notification delivery."""

from .errors import PushError, SubscriptionGone
from .push import WebPushTransport
from .service import NotificationService

__all__ = [
    "NotificationService",
    "PushError",
    "SubscriptionGone",
    "WebPushTransport",
]

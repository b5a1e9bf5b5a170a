"""Assemble the application services into a container."""

from __future__ import annotations

from .classifiers import ExpirySweeper, OperationClassifier, PowerClassifier
from .core.config import AppSettings
from .core.container import ServiceContainer
from .ingestion import EMAIL_RECEIVED_EVENT, EmailParser, EventBroadcaster, MailPoller
from .notifications import WebPushTransport, NotificationService
from .scheduling import AlertScheduler
from .storage import SqliteSubscriptionStore
from .transport import MailboxSession

SETTINGS = "settings"
PARSER = "parser"
SESSION = "session"
BROADCASTER = "broadcaster"
SUBSCRIPTIONS = "subscriptions"
PUSH_TRANSPORT = "push_transport"
NOTIFIER = "notifier"
POWER = "power_classifier"
OPERATIONS = "operation_classifier"
SWEEPER = "sweeper"
POLLER = "poller"
SCHEDULER = "scheduler"


def build_container(settings: AppSettings) -> ServiceContainer:
    """Register every service; instances are built lazily on first resolve.

    The mailbox session, subscription store and scheduler carry shutdown hooks
    run by :meth:`ServiceContainer.aclose`.
    """
    container = ServiceContainer()
    container.register_instance(SETTINGS, settings)
    container.register(PARSER, lambda _c: EmailParser())
    container.register(
        SESSION,
        lambda c: MailboxSession(settings.imap, c.resolve(PARSER)),
        close=lambda session: session.disconnect(),
    )
    container.register(BROADCASTER, _build_broadcaster)
    container.register(
        SUBSCRIPTIONS,
        lambda _c: SqliteSubscriptionStore(settings.storage),
        close=lambda store: store.close(),
    )
    container.register(
        PUSH_TRANSPORT, lambda _c: WebPushTransport(settings.notifications)
    )
    container.register(
        NOTIFIER,
        lambda c: NotificationService(
            c.resolve(SUBSCRIPTIONS), c.resolve(PUSH_TRANSPORT)
        ),
    )
    container.register(
        POWER, lambda c: PowerClassifier(c.resolve(NOTIFIER), settings.power)
    )
    container.register(
        OPERATIONS,
        lambda c: OperationClassifier(c.resolve(NOTIFIER), settings.operations),
    )
    container.register(SWEEPER, lambda c: ExpirySweeper(c.resolve(OPERATIONS)))
    container.register(
        POLLER,
        lambda c: MailPoller(
            c.resolve(SESSION),
            c.resolve(BROADCASTER),
            window_days=settings.polling.window_days,
        ),
    )
    container.register(
        SCHEDULER,
        lambda c: AlertScheduler(
            c.resolve(POLLER), c.resolve(SWEEPER), settings.polling
        ),
        close=lambda scheduler: scheduler.shutdown(),
    )
    return container


def _build_broadcaster(container: ServiceContainer) -> EventBroadcaster:
    broadcaster = EventBroadcaster()
    broadcaster.subscribe(EMAIL_RECEIVED_EVENT, container.resolve(POWER).handle_email)
    broadcaster.subscribe(
        EMAIL_RECEIVED_EVENT, container.resolve(OPERATIONS).handle_email
    )
    return broadcaster


__all__ = [
    "BROADCASTER",
    "NOTIFIER",
    "OPERATIONS",
    "PARSER",
    "POLLER",
    "POWER",
    "PUSH_TRANSPORT",
    "SCHEDULER",
    "SESSION",
    "SETTINGS",
    "SUBSCRIPTIONS",
    "SWEEPER",
    "build_container",
]

"""In-process asynchronous broadcast of named events."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

LOGGER = logging.getLogger(__name__)

EMAIL_RECEIVED_EVENT = "imap.email.received"

EventHandler = Callable[[Any], Awaitable[None]]


class EventBroadcaster:
    """Deliver each published payload to every subscriber of an event name.

    Handlers run concurrently. A failing handler is logged and does not affect
    the other handlers or the publisher.
    """

    def __init__(self) -> None:
        """Initialise the handler registry."""
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Register ``handler`` for ``event_name``."""
        self._handlers[event_name].append(handler)
        LOGGER.debug(
            "Registered handler %s for %s", _handler_name(handler), event_name
        )

    def handlers(self, event_name: str) -> tuple[EventHandler, ...]:
        """Return the handlers currently registered for ``event_name``."""
        return tuple(self._handlers.get(event_name, ()))

    async def publish(self, event_name: str, payload: Any) -> int:
        """Deliver ``payload`` and return the number of failed handlers."""
        handlers = self.handlers(event_name)
        if not handlers:
            LOGGER.debug("No handler registered for %s", event_name)
            return 0
        results = await asyncio.gather(
            *(handler(payload) for handler in handlers), return_exceptions=True
        )
        failures = 0
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                failures += 1
                LOGGER.error(
                    "Handler %s failed for %s: %s",
                    _handler_name(handler),
                    event_name,
                    result,
                    exc_info=result,
                )
            elif isinstance(result, BaseException):
                raise result
        return failures


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", repr(handler))


__all__ = ["EMAIL_RECEIVED_EVENT", "EventBroadcaster", "EventHandler"]

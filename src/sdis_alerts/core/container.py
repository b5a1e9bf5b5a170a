"""Lazy service registry with ordered shutdown hooks."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

LOGGER = logging.getLogger(__name__)

Factory = Callable[["ServiceContainer"], Any]
Closer = Callable[[Any], Awaitable[None] | None]


class ServiceContainer:
    """Build each service once, on first use, and release them in reverse order.

    A service may be registered with a ``close`` hook. :meth:`aclose` calls the
    hooks of the services that were actually built, newest first, so the
    scheduler stops before the mailbox session it drives is disconnected.
    """

    def __init__(self) -> None:
        self._factories: dict[str, Factory] = {}
        self._closers: dict[str, Closer] = {}
        self._instances: dict[str, Any] = {}
        self._built: list[str] = []

    def register(
        self, key: str, factory: Factory, *, close: Closer | None = None
    ) -> None:
        """Register ``factory`` under ``key`` with an optional shutdown hook."""
        self._factories[key] = factory
        if close is not None:
            self._closers[key] = close
        else:
            self._closers.pop(key, None)
        self._forget(key)

    def register_instance(self, key: str, instance: Any) -> None:
        """Replace the service under ``key``; its shutdown hook is kept."""
        self._factories[key] = lambda _container: instance
        self._forget(key)
        self._remember(key, instance)

    def resolve(self, key: str) -> Any:
        """Return the service for ``key``, building it on first use."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            raise KeyError(f"Service '{key}' is not registered")
        instance = self._factories[key](self)
        self._remember(key, instance)
        return instance

    def peek(self, key: str) -> Any | None:
        """Return the service for ``key`` only if it has been built."""
        return self._instances.get(key)

    async def aclose(self) -> None:
        """Run shutdown hooks of built services, newest first."""
        while self._built:
            key = self._built.pop()
            instance = self._instances.pop(key)
            closer = self._closers.get(key)
            if closer is None:
                continue
            try:
                result = closer(instance)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.error("Closing service %s failed: %s", key, exc, exc_info=True)
            else:
                LOGGER.debug("Service %s closed", key)

    def _remember(self, key: str, instance: Any) -> None:
        self._instances[key] = instance
        self._built.append(key)

    def _forget(self, key: str) -> None:
        if key in self._instances:
            del self._instances[key]
            self._built.remove(key)


__all__ = ["Closer", "Factory", "ServiceContainer"]

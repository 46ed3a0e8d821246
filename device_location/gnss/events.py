"""
Snapshot Event Bus - publish/subscribe channel for location events.

The device location service is the only publisher. Subscribers register a
handler (plain function or coroutine function) and receive every event
published after they subscribed, in publication order. A failing handler
is logged and skipped; it never stops delivery to the others.
"""

from __future__ import annotations

import inspect
import itertools
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Union

from device_location.core.logging_utils import get_module_logger

from .parsers.nmea_types import Snapshot

logger = get_module_logger("SnapshotEventBus")


@dataclass(frozen=True)
class SnapshotChangedEvent:
    """A newly accepted snapshot."""
    snapshot: Snapshot


@dataclass(frozen=True)
class ConnectionLostEvent:
    """Terminal event: the open source failed and the service is closing.

    Attributes:
        source_description: Human readable description of the lost source
        error: The error that ended the stream
    """
    source_description: str
    error: BaseException


LocationEvent = Union[SnapshotChangedEvent, ConnectionLostEvent]

LocationEventHandler = Callable[[LocationEvent], Union[Awaitable[None], None]]


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``SnapshotEventBus.subscribe``."""
    token: int
    handler: LocationEventHandler
    _bus: Optional["SnapshotEventBus"] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._bus is not None and self._bus.is_subscribed(self)

    def unsubscribe(self) -> None:
        if self._bus is not None:
            self._bus.unsubscribe(self)


class SnapshotEventBus:
    """Ordered fan-out of location events to subscribers."""

    def __init__(self) -> None:
        self._subscriptions: dict[int, Subscription] = {}
        self._tokens = itertools.count(1)
        self._published = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @property
    def published_count(self) -> int:
        return self._published

    def subscribe(self, handler: LocationEventHandler) -> Subscription:
        """Register ``handler``; delivery starts with the next published event."""
        if not callable(handler):
            raise TypeError("handler must be callable")
        subscription = Subscription(token=next(self._tokens), handler=handler, _bus=self)
        self._subscriptions[subscription.token] = subscription
        logger.debug("Subscriber %d added (total: %d)", subscription.token, len(self._subscriptions))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a subscription. Returns False if it was not registered."""
        removed = self._subscriptions.pop(subscription.token, None)
        if removed is None:
            return False
        logger.debug("Subscriber %d removed (total: %d)", subscription.token, len(self._subscriptions))
        return True

    def is_subscribed(self, subscription: Subscription) -> bool:
        return self._subscriptions.get(subscription.token) is subscription

    def clear(self) -> None:
        self._subscriptions.clear()

    async def publish(self, event: LocationEvent) -> None:
        """Deliver ``event`` to every current subscriber, in subscription order."""
        self._published += 1
        # Dict preserves insertion order; copy so handlers may (un)subscribe.
        for subscription in list(self._subscriptions.values()):
            if subscription.token not in self._subscriptions:
                continue
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Location event handler %d failed on %s",
                    subscription.token,
                    type(event).__name__,
                )


__all__ = [
    "SnapshotChangedEvent",
    "ConnectionLostEvent",
    "LocationEvent",
    "LocationEventHandler",
    "Subscription",
    "SnapshotEventBus",
]

"""Draws the device location on a graphic overlay.

``LocationOverlay`` is an ordinary event bus subscriber: it turns each valid
snapshot into a point graphic on whatever sink it is given.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, Protocol, Tuple, Union

from device_location.core.logging_utils import get_module_logger

from .events import LocationEvent, SnapshotChangedEvent, SnapshotEventBus, Subscription
from .parsers.nmea_types import MapPoint

logger = get_module_logger("LocationOverlay")


@dataclass(frozen=True)
class PointSymbol:
    """Marker used for the location graphic."""
    color: Tuple[int, int, int] = (125, 125, 0)
    size: float = 10.0
    style: str = "triangle"


class GraphicOverlaySink(Protocol):
    """Accepts point graphics. ``add_point`` returns an id used for removal."""

    def add_point(self, point: MapPoint, symbol: PointSymbol) -> Union[Any, Awaitable[Any]]: ...

    def remove(self, graphic_id: Any) -> Union[None, Awaitable[None]]: ...


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class LocationOverlay:
    """Keeps the latest (or every, with ``keep_trail``) location drawn on a sink."""

    def __init__(
        self,
        events: SnapshotEventBus,
        sink: GraphicOverlaySink,
        symbol: Optional[PointSymbol] = None,
        *,
        keep_trail: bool = False,
    ):
        self._events = events
        self._sink = sink
        self._symbol = symbol or PointSymbol()
        self._keep_trail = keep_trail
        self._subscription: Optional[Subscription] = None
        self._last_graphic: Any = None
        self._drawn = 0

    @property
    def is_attached(self) -> bool:
        return self._subscription is not None

    @property
    def drawn_count(self) -> int:
        return self._drawn

    def attach(self) -> None:
        if self._subscription is None:
            self._subscription = self._events.subscribe(self._on_event)

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def _on_event(self, event: LocationEvent) -> None:
        if not isinstance(event, SnapshotChangedEvent):
            logger.info("Location feed ended; keeping last graphic")
            return
        snapshot = event.snapshot
        if not snapshot.is_valid:
            return

        if not self._keep_trail and self._last_graphic is not None:
            await _maybe_await(self._sink.remove(self._last_graphic))
            self._last_graphic = None

        self._last_graphic = await _maybe_await(
            self._sink.add_point(snapshot.position_as_map_point(), self._symbol)
        )
        self._drawn += 1

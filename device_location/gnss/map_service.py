"""
Map Device Location Service - binds maps to the device location feed.

Each map gets a session holding its tracking flag and navigation options.
While tracking is enabled the map follows valid snapshots according to its
navigation mode. Viewport changes for one map are serialized through a
per-map lock so a pan never interleaves with a zoom.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Protocol, Union

from device_location.core.logging_utils import get_module_logger

from .constants import DEFAULT_ZOOM_SCALE
from .errors import InvalidStateError
from .events import LocationEvent, SnapshotChangedEvent, Subscription
from .parsers.nmea_types import MapPoint, Snapshot
from .service import DeviceLocationService
from .spatial import SpatialTransform, get_transform, project_point

logger = get_module_logger("MapDeviceLocationService")


class NavigationMode(Enum):
    """How a map follows the device location."""
    NONE = "none"
    KEEP_AT_CENTER = "keep_at_center"
    TRACK_UP = "track_up"


@dataclass(frozen=True)
class MapDeviceLocationOptions:
    """Per-map display and navigation options."""
    visible: bool = True
    navigation_mode: NavigationMode = NavigationMode.NONE
    track_up: bool = False

    @property
    def follows_location(self) -> bool:
        return self.navigation_mode in (NavigationMode.KEEP_AT_CENTER, NavigationMode.TRACK_UP)

    @property
    def rotates_with_course(self) -> bool:
        return self.track_up or self.navigation_mode is NavigationMode.TRACK_UP


class MapTarget(Protocol):
    """The slice of a map this service drives.

    ``spatial_reference`` is the map's wkid, or None to take positions as
    they come. ``center_at`` may be a plain or a coroutine function.
    """

    spatial_reference: Optional[int]

    def center_at(
        self,
        x: float,
        y: float,
        *,
        scale: Optional[float] = None,
        rotation: Optional[float] = None,
    ) -> Union[Awaitable[None], None]: ...


@dataclass(eq=False)
class _MapSession:
    enabled: bool = False
    options: MapDeviceLocationOptions = field(default_factory=MapDeviceLocationOptions)
    subscription: Optional[Subscription] = None
    viewport_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class MapDeviceLocationService:
    """Per-map device location tracking on top of a DeviceLocationService."""

    def __init__(
        self,
        service: DeviceLocationService,
        *,
        transform_factory: Callable[[int, int], SpatialTransform] = get_transform,
        zoom_scale: float = DEFAULT_ZOOM_SCALE,
    ):
        self._service = service
        self._transform_factory = transform_factory
        self._zoom_scale = zoom_scale
        self._sessions: Dict[Hashable, _MapSession] = {}

    @property
    def service(self) -> DeviceLocationService:
        return self._service

    # ------------------------------------------------------------------
    # Tracking

    def set_device_location_enabled(self, map: MapTarget, enabled: bool) -> None:
        """Turn tracking on or off for ``map``. Needs no open source."""
        session = self._sessions.get(map)
        if session is None:
            session = self._sessions[map] = _MapSession()
        if session.enabled == enabled:
            return

        session.enabled = enabled
        if enabled:
            session.subscription = self._service.events.subscribe(
                functools.partial(self._on_location_event, map)
            )
        elif session.subscription is not None:
            session.subscription.unsubscribe()
            session.subscription = None
        logger.info("Device location %s for map %r", "enabled" if enabled else "disabled", map)

    def is_device_location_enabled(self, map: MapTarget) -> bool:
        session = self._sessions.get(map)
        return session is not None and session.enabled

    def end_map_session(self, map: MapTarget) -> None:
        """Forget ``map``: stop tracking and drop its options."""
        session = self._sessions.pop(map, None)
        if session is not None and session.subscription is not None:
            session.subscription.unsubscribe()

    # ------------------------------------------------------------------
    # Options

    def get_device_location_options(self, map: MapTarget) -> MapDeviceLocationOptions:
        session = self._sessions.get(map)
        return session.options if session is not None else MapDeviceLocationOptions()

    def set_device_location_options(self, map: MapTarget, options: MapDeviceLocationOptions) -> None:
        """Store options for ``map``.

        Raises:
            InvalidStateError: no source is open, or tracking is off for ``map``
        """
        if self._service.get_source() is None:
            raise InvalidStateError("Cannot set device location options: no device location source is open")
        session = self._sessions.get(map)
        if session is None or not session.enabled:
            raise InvalidStateError("Cannot set device location options: device location is not enabled for this map")
        if not isinstance(options, MapDeviceLocationOptions):
            raise TypeError(f"Expected MapDeviceLocationOptions, got {type(options).__name__}")
        session.options = options
        logger.debug("Options for map %r: %s", map, options)

    # ------------------------------------------------------------------
    # Viewport

    async def zoom_or_pan_to_current_location(self, map: MapTarget, zoom: bool) -> bool:
        """Center ``map`` on the latest snapshot, zooming in when ``zoom`` is set.

        Returns False (and leaves the viewport alone) if no snapshot has
        arrived yet.

        Raises:
            InvalidStateError: tracking is off for ``map``
        """
        session = self._sessions.get(map)
        if session is None or not session.enabled:
            raise InvalidStateError("Cannot move to current location: device location is not enabled for this map")

        snapshot = self._service.get_current_snapshot()
        if snapshot is None:
            logger.debug("No snapshot yet; leaving viewport of %r unchanged", map)
            return False

        await self._move_viewport(map, session, snapshot, scale=self._zoom_scale if zoom else None)
        return True

    async def _on_location_event(self, map: MapTarget, event: LocationEvent) -> None:
        if not isinstance(event, SnapshotChangedEvent):
            return
        session = self._sessions.get(map)
        if session is None or not session.enabled or not session.options.follows_location:
            return
        if not event.snapshot.is_valid:
            return
        await self._move_viewport(map, session, event.snapshot, scale=None)

    async def _move_viewport(
        self,
        map: MapTarget,
        session: _MapSession,
        snapshot: Snapshot,
        *,
        scale: Optional[float],
    ) -> None:
        point = self._to_map_reference(map, snapshot.position_as_map_point())
        rotation = snapshot.course_deg if session.options.rotates_with_course else None
        async with session.viewport_lock:
            result = map.center_at(point.x, point.y, scale=scale, rotation=rotation)
            if inspect.isawaitable(result):
                await result

    def _to_map_reference(self, map: Any, point: MapPoint) -> MapPoint:
        target = getattr(map, "spatial_reference", None)
        if target is None or target == point.wkid:
            return point
        return project_point(point, self._transform_factory(point.wkid, target))


__all__ = [
    "NavigationMode",
    "MapDeviceLocationOptions",
    "MapTarget",
    "MapDeviceLocationService",
]

"""
Device Location Service - owns the one open source and its read loop.

Lifecycle: ``CLOSED -> CONNECTED -> CLOSED``. While connected a
reader task pulls sentences from the transport, decodes them and pushes
events into a bounded queue; a dispatcher task drains the queue into the
event bus in order. A full queue blocks the reader (backpressure).

Transient read errors are retried with the configured ``RetryPolicy``. Once
the bound is exceeded (or on end of stream) a ``ConnectionLostEvent`` is
delivered to subscribers after any snapshots still queued, and the service
closes itself.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from device_location.core.logging_utils import StructuredLogger, get_module_logger
from device_location.core.retry_policy import DEFAULT_READ_RETRY_POLICY, RetryPolicy

from .constants import (
    DEFAULT_DATE_WAIT_FIXES,
    DEFAULT_DRAIN_TIMEOUT,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_SNAPSHOT_QUEUE_SIZE,
)
from .errors import (
    AlreadyOpenError,
    ConnectionLostError,
    InvalidStateError,
    TransportReadError,
)
from .events import ConnectionLostEvent, LocationEvent, SnapshotChangedEvent, SnapshotEventBus
from .parsers.nmea_parser import DecoderStats, SnapshotDecoder
from .parsers.nmea_types import Snapshot
from .sources import DeviceLocationProperties, DeviceLocationSource
from .spatial import SpatialTransform
from .transports import BaseLocationTransport, create_transport

logger = get_module_logger("DeviceLocationService")

TransportFactory = Callable[[DeviceLocationSource], BaseLocationTransport]


class ServiceState(Enum):
    """Connection state of the service."""
    CLOSED = "closed"
    CONNECTED = "connected"


@dataclass(eq=False)
class _ActiveConnection:
    source: DeviceLocationSource
    transport: BaseLocationTransport
    decoder: SnapshotDecoder
    queue: "asyncio.Queue[LocationEvent]"
    log: StructuredLogger
    read_task: Optional[asyncio.Task] = None
    dispatch_task: Optional[asyncio.Task] = None
    running: bool = True
    closed: bool = False


class DeviceLocationService:
    """Manages exactly one open device location source.

    Construct one per application and pass it to its consumers; it is not a
    global. ``async with DeviceLocationService() as service`` closes any open
    source on exit.

    Example:
        service = DeviceLocationService()
        subscription = service.events.subscribe(on_event)
        await service.open(SerialPortSource("COM3", baud_rate=4800),
                           DeviceLocationProperties(accuracy_threshold=10))
        ...
        await service.close()
    """

    def __init__(
        self,
        *,
        transport_factory: TransportFactory = create_transport,
        retry_policy: Optional[RetryPolicy] = None,
        queue_size: int = DEFAULT_SNAPSHOT_QUEUE_SIZE,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
        spatial_transform: Optional[SpatialTransform] = None,
        events: Optional[SnapshotEventBus] = None,
        date_wait_fixes: int = DEFAULT_DATE_WAIT_FIXES,
    ):
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self._transport_factory = transport_factory
        self._retry_policy = retry_policy or DEFAULT_READ_RETRY_POLICY
        self._queue_size = queue_size
        self._read_timeout = read_timeout
        self._drain_timeout = drain_timeout
        self._spatial_transform = spatial_transform
        self._date_wait_fixes = date_wait_fixes
        self._events = events if events is not None else SnapshotEventBus()

        self._lock = asyncio.Lock()
        self._conn: Optional[_ActiveConnection] = None
        self._properties: Optional[DeviceLocationProperties] = None
        self._current_snapshot: Optional[Snapshot] = None
        self._state = ServiceState.CLOSED
        self._last_error: Optional[BaseException] = None
        self._closed_event = asyncio.Event()
        self._closed_event.set()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def events(self) -> SnapshotEventBus:
        """The channel new snapshots and connection loss are published on."""
        return self._events

    @property
    def state(self) -> ServiceState:
        """CLOSED until ``open()`` has connected, then CONNECTED."""
        return self._state

    @property
    def last_error(self) -> Optional[BaseException]:
        """The error that ended the most recent connection, if it was lost."""
        return self._last_error

    @property
    def decoder_stats(self) -> Optional[DecoderStats]:
        return self._conn.decoder.stats if self._conn else None

    async def __aenter__(self) -> "DeviceLocationService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(
        self,
        source: DeviceLocationSource,
        properties: Optional[DeviceLocationProperties] = None,
    ) -> None:
        """Open ``source`` and start streaming.

        Raises:
            AlreadyOpenError: a source is already open
            ValidationError: ``properties`` are invalid
            DeviceConnectionError: the device could not be opened
        """
        async with self._lock:
            if self._conn is not None:
                raise AlreadyOpenError(
                    f"A device location source is already open "
                    f"({self._conn.transport.description}); close it first"
                )

            props = copy.copy(properties) if properties is not None else DeviceLocationProperties()
            props.validate()

            transport = self._transport_factory(source)
            await transport.connect()

            self._properties = props
            self._current_snapshot = None
            self._last_error = None
            decoder = SnapshotDecoder(
                accuracy_threshold=self._accuracy_threshold,
                antenna_height=source.antenna_height,
                transform=self._spatial_transform,
                date_wait_fixes=self._date_wait_fixes,
            )
            conn = _ActiveConnection(
                source=source,
                transport=transport,
                decoder=decoder,
                queue=asyncio.Queue(maxsize=self._queue_size),
                log=logger.for_source(transport.description),
            )
            conn.dispatch_task = asyncio.create_task(
                self._dispatch_loop(conn), name="device-location-dispatch"
            )
            conn.read_task = asyncio.create_task(
                self._read_loop(conn), name="device-location-reader"
            )
            self._conn = conn
            self._state = ServiceState.CONNECTED
            self._closed_event.clear()
            logger.info(
                "Opened %s (accuracy threshold %.1f m)",
                transport.description, props.accuracy_threshold,
            )

    async def close(self) -> None:
        """Stop streaming and release the source. Safe to call when closed.

        Snapshots already decoded are delivered before this returns; nothing
        is delivered afterwards.
        """
        async with self._lock:
            conn = self._conn
            if conn is None:
                return
            conn.log.info("Closing")
            await self._shutdown(conn)

    async def wait_closed(self) -> None:
        """Wait until no source is open."""
        await self._closed_event.wait()

    # =========================================================================
    # State access (never blocks)
    # =========================================================================

    def get_source(self) -> Optional[DeviceLocationSource]:
        return self._conn.source if self._conn else None

    def get_properties(self) -> Optional[DeviceLocationProperties]:
        """Return a copy of the active properties, or None when closed."""
        return copy.copy(self._properties) if self._properties is not None else None

    def update_properties(self, properties: DeviceLocationProperties) -> None:
        """Validate and swap the active properties without interrupting the stream.

        Raises:
            ValidationError: the new values are invalid; the old ones stay active
            InvalidStateError: no source is open
        """
        properties.validate()
        if self._conn is None:
            raise InvalidStateError("No device location source is open")
        self._properties = copy.copy(properties)
        logger.info("Accuracy threshold set to %.1f m", properties.accuracy_threshold)

    def is_device_connected(self) -> bool:
        conn = self._conn
        if conn is None or conn.read_task is None or conn.read_task.done():
            return False
        return conn.running and conn.transport.is_connected

    def get_current_snapshot(self) -> Optional[Snapshot]:
        return self._current_snapshot

    def set_spatial_transform(self, transform: Optional[SpatialTransform]) -> None:
        """Emit positions in ``transform``'s reference from the next snapshot on."""
        self._spatial_transform = transform
        if self._conn is not None:
            self._conn.decoder.set_transform(transform)

    def _accuracy_threshold(self) -> float:
        props = self._properties
        return float(props.accuracy_threshold) if props is not None else 0.0

    # =========================================================================
    # Worker tasks
    # =========================================================================

    async def _read_loop(self, conn: _ActiveConnection) -> None:
        """Read, decode and enqueue until stopped or the connection is lost."""
        log = conn.log
        policy = self._retry_policy
        failures = 0
        log.debug("Read loop started")

        while conn.running:
            try:
                line = await conn.transport.read_line(timeout=self._read_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = exc if isinstance(exc, TransportReadError) else TransportReadError(str(exc), cause=exc)
                failures += 1
                if not error.transient or policy.exhausted(failures):
                    log.error("Fatal read error after %d attempt(s): %s", failures, error)
                    await self._connection_lost(conn, error)
                    return
                delay = policy.get_delay(failures)
                log.warning(
                    "Read error (%d/%d), retrying in %.2fs: %s",
                    failures, policy.max_retries, delay, error,
                )
                await asyncio.sleep(delay)
                continue

            failures = 0
            if not line:
                await asyncio.sleep(0)
                continue

            try:
                snapshot = conn.decoder.decode(line)
            except Exception:
                log.exception("Dropping sentence that failed to decode: %r", line)
                continue
            if snapshot is None:
                continue

            self._current_snapshot = snapshot
            await conn.queue.put(SnapshotChangedEvent(snapshot))

        log.debug("Read loop ended")

    async def _dispatch_loop(self, conn: _ActiveConnection) -> None:
        """Publish queued events in order until closed or the connection is lost."""
        while True:
            event = await conn.queue.get()
            try:
                if not conn.closed:
                    await self._events.publish(event)
            finally:
                conn.queue.task_done()
            if conn.closed or isinstance(event, ConnectionLostEvent):
                break

    async def _connection_lost(self, conn: _ActiveConnection, error: TransportReadError) -> None:
        description = conn.transport.description
        lost = ConnectionLostError(f"Connection to {description} lost: {error}")
        lost.__cause__ = error
        self._last_error = lost
        conn.running = False

        await conn.queue.put(ConnectionLostEvent(source_description=description, error=lost))

        async with self._lock:
            if self._conn is conn:
                await self._shutdown(conn)

    async def _shutdown(self, conn: _ActiveConnection) -> None:
        """Tear down ``conn``. Caller holds ``self._lock``."""
        conn.running = False
        current = asyncio.current_task()

        reader = conn.read_task
        if reader is not None and reader is not current and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        dispatcher = conn.dispatch_task
        if dispatcher is not None and dispatcher is not current and not dispatcher.done():
            try:
                await asyncio.wait_for(conn.queue.join(), timeout=self._drain_timeout)
            except asyncio.TimeoutError:
                conn.log.warning("Timed out delivering %d queued location events", conn.queue.qsize())
        conn.closed = True
        if dispatcher is not None and dispatcher is not current and not dispatcher.done():
            dispatcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await dispatcher

        try:
            await conn.transport.disconnect()
        except Exception:
            conn.log.exception("Error releasing the device")

        self._conn = None
        self._properties = None
        self._state = ServiceState.CLOSED
        self._closed_event.set()
        stats = conn.decoder.stats
        conn.log.info(
            "Closed (accepted=%d malformed=%d out_of_order=%d undated=%d transform_failed=%d)",
            stats.accepted, stats.malformed, stats.out_of_order, stats.undated, stats.transform_failed,
        )


__all__ = ["DeviceLocationService", "ServiceState", "TransportFactory"]

"""GNSS device location: decoding, connection lifecycle and map binding."""

from .constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_MAX_READ_RETRIES,
    DEFAULT_SNAPSHOT_QUEUE_SIZE,
    DEFAULT_UERE_M,
    WGS84_WKID,
)
from .errors import (
    AlreadyOpenError,
    ConnectionLostError,
    DeviceConnectionError,
    DeviceLocationError,
    InvalidStateError,
    TransportReadError,
    ValidationError,
)
from .parsers import MapPoint, Snapshot, SnapshotDecoder
from .sources import DeviceLocationProperties, DeviceLocationSource, NmeaFileSource, SerialPortSource
from .transports import (
    BaseLocationTransport,
    FileLocationTransport,
    SerialLocationTransport,
    create_transport,
)
from .events import (
    ConnectionLostEvent,
    LocationEvent,
    SnapshotChangedEvent,
    SnapshotEventBus,
    Subscription,
)
from .spatial import PyprojTransform, SpatialTransform
from .service import DeviceLocationService, ServiceState
from .map_service import MapDeviceLocationOptions, MapDeviceLocationService, MapTarget, NavigationMode
from .overlay import GraphicOverlaySink, LocationOverlay, PointSymbol
from .config import DeviceLocationConfig

__all__ = [
    # Constants
    "DEFAULT_BAUD_RATE",
    "DEFAULT_MAX_READ_RETRIES",
    "DEFAULT_SNAPSHOT_QUEUE_SIZE",
    "DEFAULT_UERE_M",
    "WGS84_WKID",
    # Errors
    "DeviceLocationError",
    "DeviceConnectionError",
    "AlreadyOpenError",
    "ConnectionLostError",
    "ValidationError",
    "InvalidStateError",
    "TransportReadError",
    # Types
    "MapPoint",
    "Snapshot",
    # Decoder
    "SnapshotDecoder",
    # Sources
    "DeviceLocationSource",
    "SerialPortSource",
    "NmeaFileSource",
    "DeviceLocationProperties",
    # Transports
    "BaseLocationTransport",
    "SerialLocationTransport",
    "FileLocationTransport",
    "create_transport",
    # Events
    "SnapshotEventBus",
    "Subscription",
    "LocationEvent",
    "SnapshotChangedEvent",
    "ConnectionLostEvent",
    # Spatial
    "SpatialTransform",
    "PyprojTransform",
    # Services
    "DeviceLocationService",
    "ServiceState",
    "MapDeviceLocationService",
    "MapDeviceLocationOptions",
    "MapTarget",
    "NavigationMode",
    # Overlay
    "LocationOverlay",
    "GraphicOverlaySink",
    "PointSymbol",
    # Config
    "DeviceLocationConfig",
]

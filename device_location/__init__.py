"""Device location: stream GNSS receiver positions to subscribers and maps."""

__version__ = "0.1.0"

from .gnss import (  # noqa: E402
    DeviceLocationProperties,
    DeviceLocationService,
    MapDeviceLocationOptions,
    MapDeviceLocationService,
    NavigationMode,
    NmeaFileSource,
    SerialPortSource,
    Snapshot,
)

__all__ = [
    "__version__",
    "DeviceLocationService",
    "DeviceLocationProperties",
    "MapDeviceLocationService",
    "MapDeviceLocationOptions",
    "NavigationMode",
    "SerialPortSource",
    "NmeaFileSource",
    "Snapshot",
]

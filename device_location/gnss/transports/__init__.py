"""Location transport implementations.

Each source variant maps to exactly one transport; ``create_transport``
performs that dispatch.
"""

from ..sources import DeviceLocationSource, NmeaFileSource, SerialPortSource
from .base_transport import BaseLocationTransport
from .file_transport import FileLocationTransport
from .serial_transport import SerialLocationTransport


def create_transport(source: DeviceLocationSource) -> BaseLocationTransport:
    """Build the transport for ``source``."""
    if isinstance(source, SerialPortSource):
        return SerialLocationTransport(source)
    if isinstance(source, NmeaFileSource):
        return FileLocationTransport(source)
    raise TypeError(f"Unsupported device location source: {type(source).__name__}")


__all__ = [
    "BaseLocationTransport",
    "SerialLocationTransport",
    "FileLocationTransport",
    "create_transport",
]

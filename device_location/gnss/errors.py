"""Error kinds raised by the device location stack."""

from __future__ import annotations

from typing import Optional


class DeviceLocationError(Exception):
    """Base class for device location failures."""


class DeviceConnectionError(DeviceLocationError, ConnectionError):
    """Opening a source failed: device unavailable, already claimed or misconfigured."""


class AlreadyOpenError(DeviceLocationError):
    """open() was called while another source is still open."""


class ConnectionLostError(DeviceLocationError, ConnectionError):
    """The open source failed mid-stream and could not recover."""


class ValidationError(DeviceLocationError, ValueError):
    """A property or option value is out of range."""


class InvalidStateError(DeviceLocationError, RuntimeError):
    """Operation requires an open source and/or enabled map tracking."""


class TransportReadError(DeviceLocationError, IOError):
    """A transport read failed.

    ``transient`` errors are retried by the read loop; anything else (for
    example end of stream) is fatal immediately.
    """

    def __init__(self, message: str, *, transient: bool = True, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.transient = transient
        self.cause = cause


__all__ = [
    "DeviceLocationError",
    "DeviceConnectionError",
    "AlreadyOpenError",
    "ConnectionLostError",
    "ValidationError",
    "InvalidStateError",
    "TransportReadError",
]

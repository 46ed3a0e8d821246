"""Base class for read-only location transports."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from ..constants import DEFAULT_READ_TIMEOUT


class BaseLocationTransport(ABC):
    """A connection that yields NMEA lines from a receiver.

    ``connect()`` raises DeviceConnectionError on failure. ``read_line()``
    returns None on timeout and raises TransportReadError on I/O failure.
    """

    def __init__(self) -> None:
        self._connected = False
        self._last_error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def last_error(self) -> Optional[str]:
        """Get the last error message, if any."""
        return self._last_error

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @abstractmethod
    async def read_line(self, timeout: float = DEFAULT_READ_TIMEOUT) -> Optional[str]:
        ...

    async def read_sentences(self, timeout: float = DEFAULT_READ_TIMEOUT) -> AsyncIterator[str]:
        """Async generator that yields NMEA sentences until disconnected."""
        while self.is_connected:
            line = await self.read_line(timeout=timeout)
            if line and line.startswith("$"):
                yield line

    async def __aenter__(self) -> "BaseLocationTransport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

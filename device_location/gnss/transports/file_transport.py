"""Replay transport that reads a recorded NMEA log."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

import aiofiles

from .base_transport import BaseLocationTransport
from ..constants import DEFAULT_READ_TIMEOUT
from ..errors import DeviceConnectionError, TransportReadError
from ..sources import NmeaFileSource

logger = logging.getLogger(__name__)


class FileLocationTransport(BaseLocationTransport):
    """Replays an NMEA log, optionally paced and looped.

    Reaching the end of a non-repeating log is reported like a receiver
    that went away: a fatal TransportReadError.
    """

    def __init__(self, source: NmeaFileSource):
        super().__init__()
        self.source = source
        self._file = None
        self._lines_read = 0

    @property
    def description(self) -> str:
        return self.source.description

    @property
    def lines_read(self) -> int:
        return self._lines_read

    async def connect(self) -> None:
        if self._connected:
            return
        path = self.source.path
        if self.source.interval_s < 0:
            raise DeviceConnectionError(f"Invalid replay interval {self.source.interval_s}")
        try:
            self._file = await aiofiles.open(path, "r", encoding="ascii", errors="ignore")
        except OSError as exc:
            self._last_error = str(exc)
            logger.warning("Cannot open NMEA log %s: %s", path, exc)
            raise DeviceConnectionError(f"Cannot open NMEA log {path}: {exc}") from exc
        self._connected = True
        self._last_error = None
        logger.info("Replaying NMEA log %s", path)

    async def disconnect(self) -> None:
        handle = self._file
        self._file = None
        self._connected = False
        if handle is None:
            return
        with contextlib.suppress(Exception):
            await handle.close()
        logger.info("Closed NMEA log %s after %d lines", self.source.path, self._lines_read)

    async def read_line(self, timeout: float = DEFAULT_READ_TIMEOUT) -> Optional[str]:
        if not self._connected or self._file is None:
            raise TransportReadError(f"{self.source.path} is not open", transient=False)

        if self.source.interval_s:
            await asyncio.sleep(self.source.interval_s)

        try:
            line = await self._file.readline()
            if not line and self.source.repeat:
                await self._file.seek(0)
                line = await self._file.readline()
        except OSError as exc:
            self._last_error = str(exc)
            raise TransportReadError(f"Read error on {self.source.path}: {exc}", cause=exc) from exc

        if not line:
            self._last_error = "End of log"
            raise TransportReadError(f"End of NMEA log {self.source.path}", transient=False)

        self._lines_read += 1
        decoded = line.strip()
        return decoded if decoded else None

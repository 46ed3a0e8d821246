"""Serial UART transport for GNSS receivers.

Uses serial_asyncio for non-blocking I/O, which suits the continuous NMEA
stream produced by serial and USB-serial receivers.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from .base_transport import BaseLocationTransport
from ..constants import (
    DEFAULT_READ_TIMEOUT,
    VALID_DATA_BITS,
    VALID_PARITIES,
    VALID_STOP_BITS,
)
from ..errors import DeviceConnectionError, TransportReadError
from ..sources import SerialPortSource

logger = logging.getLogger(__name__)

# Optional import - serial may not be available on all platforms
try:
    import serial  # type: ignore
    import serial_asyncio  # type: ignore
    SERIAL_AVAILABLE = True
except ImportError as exc:
    serial = None  # type: ignore
    serial_asyncio = None  # type: ignore
    SERIAL_AVAILABLE = False
    SERIAL_IMPORT_ERROR = exc
else:
    SERIAL_IMPORT_ERROR = None


def _check_serial_settings(source: SerialPortSource) -> None:
    """Raise DeviceConnectionError for settings the port cannot be opened with."""
    if not source.port:
        raise DeviceConnectionError("No serial port given")
    if source.baud_rate <= 0:
        raise DeviceConnectionError(f"Invalid baud rate {source.baud_rate}")
    if source.data_bits not in VALID_DATA_BITS:
        raise DeviceConnectionError(f"Invalid data bits {source.data_bits}")
    if source.parity.upper() not in VALID_PARITIES:
        raise DeviceConnectionError(f"Invalid parity {source.parity!r}")
    if float(source.stop_bits) not in VALID_STOP_BITS:
        raise DeviceConnectionError(f"Invalid stop bits {source.stop_bits}")


class SerialLocationTransport(BaseLocationTransport):
    """Serial UART transport for GNSS receivers.

    Example:
        transport = SerialLocationTransport(SerialPortSource("/dev/ttyUSB0", 4800))
        async with transport:
            async for sentence in transport.read_sentences():
                print(sentence)
    """

    def __init__(self, source: SerialPortSource):
        super().__init__()
        self.source = source
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @property
    def port(self) -> str:
        return self.source.port

    @property
    def baudrate(self) -> int:
        return self.source.baud_rate

    @property
    def description(self) -> str:
        return self.source.description

    @property
    def is_connected(self) -> bool:
        """Check if the serial connection is open."""
        return self._connected and self._reader is not None

    async def connect(self) -> None:
        """Open the serial connection.

        Raises:
            DeviceConnectionError: pyserial is missing, the settings are
                invalid, or the port cannot be opened (absent or claimed).
        """
        if not SERIAL_AVAILABLE:
            self._last_error = f"Serial module not available: {SERIAL_IMPORT_ERROR}"
            logger.error(self._last_error)
            raise DeviceConnectionError(self._last_error)

        if self.is_connected:
            logger.debug("Already connected to %s", self.port)
            return

        try:
            _check_serial_settings(self.source)
        except DeviceConnectionError as exc:
            self._last_error = str(exc)
            logger.warning("Refusing to open %s: %s", self.port, exc)
            raise

        stop_bits = self.source.stop_bits
        if float(stop_bits).is_integer():
            stop_bits = int(stop_bits)

        try:
            self._reader, self._writer = await serial_asyncio.open_serial_connection(
                url=self.port,
                baudrate=self.baudrate,
                bytesize=self.source.data_bits,
                parity=self.source.parity.upper(),
                stopbits=stop_bits,
                exclusive=True,
            )
        except asyncio.CancelledError:
            raise
        except (serial.SerialException, OSError, ValueError) as exc:
            event_type = "serial_exception" if isinstance(exc, serial.SerialException) else "serial_error"
            self._last_error = str(exc)
            self._connected = False
            logger.warning(
                "%s connecting to %s: %s",
                event_type, self.description, exc
            )
            raise DeviceConnectionError(f"Cannot open {self.port}: {exc}") from exc

        self._connected = True
        self._last_error = None
        logger.info("Connected to GNSS receiver on %s", self.description)

    async def disconnect(self) -> None:
        """Close the serial connection. Safe to call repeatedly."""
        if self._writer is None:
            self._connected = False
            return

        writer = self._writer
        self._writer = None
        self._reader = None
        self._connected = False

        with contextlib.suppress(Exception):
            writer.close()

        if hasattr(writer, "wait_closed"):
            try:
                await asyncio.wait_for(writer.wait_closed(), timeout=1.0)
            except asyncio.TimeoutError:
                logger.debug("Timeout waiting for serial close on %s", self.port)
            except Exception:
                logger.debug("Error closing serial on %s", self.port)

        logger.info("Disconnected from GNSS receiver on %s", self.port)

    async def read_line(self, timeout: float = DEFAULT_READ_TIMEOUT) -> Optional[str]:
        """Read a line (NMEA sentence) from the receiver.

        Returns:
            The line read (decoded, stripped), or None on timeout/blank line

        Raises:
            TransportReadError: transient on I/O errors, fatal at end of stream
        """
        if not self.is_connected or self._reader is None:
            raise TransportReadError(f"{self.port} is not connected", transient=False)

        try:
            line = await asyncio.wait_for(self._reader.readline(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._last_error = str(exc)
            logger.warning("Read error on %s: %s", self.port, exc)
            raise TransportReadError(f"Read error on {self.port}: {exc}", cause=exc) from exc

        if not line:
            logger.warning("Serial stream ended on %s (EOF)", self.port)
            self._last_error = "Stream ended (EOF)"
            raise TransportReadError(f"Serial stream ended on {self.port}", transient=False)

        decoded = line.decode("ascii", errors="ignore").strip()
        return decoded if decoded else None

"""Device location source variants and connection properties.

A source is pure configuration. The service turns it into a transport with
:func:`device_location.gnss.transports.create_transport` and owns that
transport for as long as the source is open.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_DATA_BITS,
    DEFAULT_PARITY,
    DEFAULT_STOP_BITS,
)
from .errors import ValidationError


@dataclass(frozen=True)
class SerialPortSource:
    """GNSS receiver on a serial port (e.g. 'COM3', '/dev/ttyUSB0')."""

    port: str
    baud_rate: int = DEFAULT_BAUD_RATE
    data_bits: int = DEFAULT_DATA_BITS
    parity: str = DEFAULT_PARITY
    stop_bits: float = DEFAULT_STOP_BITS
    antenna_height: float = 0.0  # metres above ground

    @property
    def description(self) -> str:
        return (
            f"{self.port} @ {self.baud_rate} baud "
            f"{self.data_bits}{self.parity}{self.stop_bits:g}"
        )


@dataclass(frozen=True)
class NmeaFileSource:
    """Recorded NMEA log replayed line by line."""

    path: Path
    interval_s: float = 0.0
    repeat: bool = False
    antenna_height: float = 0.0

    @property
    def description(self) -> str:
        return f"replay of {self.path}"


DeviceLocationSource = Union[SerialPortSource, NmeaFileSource]


@dataclass
class DeviceLocationProperties:
    """Settings attached to the open connection; changeable without reconnecting."""

    accuracy_threshold: float = 0.0  # metres, 0 disables the check

    def validate(self) -> None:
        try:
            threshold = float(self.accuracy_threshold)
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"accuracy_threshold must be a number, got {self.accuracy_threshold!r}"
            ) from exc
        if threshold != threshold or threshold < 0:
            raise ValidationError(
                f"accuracy_threshold must be >= 0 metres, got {self.accuracy_threshold!r}"
            )


__all__ = [
    "SerialPortSource",
    "NmeaFileSource",
    "DeviceLocationSource",
    "DeviceLocationProperties",
]

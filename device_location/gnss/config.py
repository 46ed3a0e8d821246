"""Typed configuration for the device location service."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

from device_location.core.config_loader import load_config_file
from device_location.core.retry_policy import RetryPolicy

from .constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_DATA_BITS,
    DEFAULT_DATE_WAIT_FIXES,
    DEFAULT_DRAIN_TIMEOUT,
    DEFAULT_MAX_READ_RETRIES,
    DEFAULT_PARITY,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_SNAPSHOT_QUEUE_SIZE,
    DEFAULT_STOP_BITS,
)
from .sources import DeviceLocationProperties, DeviceLocationSource, NmeaFileSource, SerialPortSource

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.txt"


@dataclass(slots=True)
class DeviceLocationConfig:
    """Typed configuration for opening and running a device location source."""

    # Serial configuration
    serial_port: str = "/dev/ttyUSB0"
    baud_rate: int = DEFAULT_BAUD_RATE
    data_bits: int = DEFAULT_DATA_BITS
    parity: str = DEFAULT_PARITY
    stop_bits: float = DEFAULT_STOP_BITS
    antenna_height_m: float = 0.0

    # Replay (used instead of the serial port when set)
    replay_file: str = ""
    replay_interval_s: float = 0.0
    replay_repeat: bool = False

    # Connection properties
    accuracy_threshold_m: float = 0.0

    # Read loop
    read_timeout_s: float = DEFAULT_READ_TIMEOUT
    max_read_retries: int = DEFAULT_MAX_READ_RETRIES
    retry_base_delay_s: float = 0.1
    queue_size: int = DEFAULT_SNAPSHOT_QUEUE_SIZE
    drain_timeout_s: float = DEFAULT_DRAIN_TIMEOUT
    date_wait_fixes: int = DEFAULT_DATE_WAIT_FIXES

    # Output reference (0 keeps native WGS84)
    output_wkid: int = 0

    # Logging
    log_level: str = "info"
    log_file: str = ""
    console_output: bool = True

    @classmethod
    def from_file(cls, config_path: Optional[Path] = None, args: Any = None) -> "DeviceLocationConfig":
        """Load config.txt values over the defaults, then apply CLI overrides."""
        path = config_path or DEFAULT_CONFIG_PATH
        values = load_config_file(path, asdict(cls()))
        config = cls(**values)
        if args is not None:
            config = config._apply_args_override(args)
        return config

    def _apply_args_override(self, args: Any) -> "DeviceLocationConfig":
        """Apply CLI argument overrides to config values."""
        values = asdict(self)
        for name in (f.name for f in fields(self)):
            if hasattr(args, name):
                val = getattr(args, name)
                if val is not None:
                    values[name] = val
        return DeviceLocationConfig(**values)

    def to_source(self) -> DeviceLocationSource:
        if self.replay_file:
            return NmeaFileSource(
                path=Path(self.replay_file).expanduser(),
                interval_s=self.replay_interval_s,
                repeat=self.replay_repeat,
                antenna_height=self.antenna_height_m,
            )
        return SerialPortSource(
            port=self.serial_port,
            baud_rate=self.baud_rate,
            data_bits=self.data_bits,
            parity=self.parity,
            stop_bits=self.stop_bits,
            antenna_height=self.antenna_height_m,
        )

    def to_properties(self) -> DeviceLocationProperties:
        return DeviceLocationProperties(accuracy_threshold=self.accuracy_threshold_m)

    def to_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_read_retries, base_delay=self.retry_base_delay_s)

    def to_dict(self) -> dict[str, Any]:
        """Export config values as dictionary."""
        return asdict(self)


__all__ = ["DeviceLocationConfig", "DEFAULT_CONFIG_PATH"]

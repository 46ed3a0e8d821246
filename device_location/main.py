"""Command-line entry point: stream snapshots from a receiver or a replay log."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import signal
import sys
from pathlib import Path
from typing import Optional

from device_location.core.logging_config import LOG_LEVELS, configure_logging
from device_location.core.logging_utils import get_module_logger
from device_location.core.retry_policy import PATIENT_OPEN_RETRY_POLICY, RetryPolicy

from .gnss.config import DeviceLocationConfig
from .gnss.constants import FIX_QUALITY_DESCRIPTIONS, VALID_DATA_BITS, VALID_PARITIES, WGS84_WKID
from .gnss.errors import DeviceConnectionError, ValidationError
from .gnss.events import LocationEvent, SnapshotChangedEvent
from .gnss.parsers.nmea_types import Snapshot
from .gnss.service import DeviceLocationService
from .gnss.sources import DeviceLocationProperties, DeviceLocationSource
from .gnss.spatial import PyprojTransform

logger = get_module_logger("Main")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments. Unset options fall back to the config file."""
    parser = argparse.ArgumentParser(description="Stream positions from a GNSS receiver")

    parser.add_argument("--config", type=Path, default=None, help="Path to a config.txt file")

    serial_group = parser.add_argument_group("serial receiver")
    serial_group.add_argument("--port", dest="serial_port", type=str, default=None,
                              help="Serial port the receiver is on (e.g. COM3, /dev/ttyUSB0)")
    serial_group.add_argument("--baud-rate", dest="baud_rate", type=int, default=None)
    serial_group.add_argument("--data-bits", dest="data_bits", type=int, choices=VALID_DATA_BITS, default=None)
    serial_group.add_argument("--parity", dest="parity", type=str.upper, choices=VALID_PARITIES, default=None)
    serial_group.add_argument("--stop-bits", dest="stop_bits", type=float, default=None)
    serial_group.add_argument("--antenna-height", dest="antenna_height_m", type=float, default=None,
                              help="Antenna height above ground in metres")

    replay_group = parser.add_argument_group("replay")
    replay_group.add_argument("--replay", dest="replay_file", type=str, default=None,
                              help="Replay a recorded NMEA log instead of opening a serial port")
    replay_group.add_argument("--replay-interval", dest="replay_interval_s", type=float, default=None,
                              help="Seconds to wait between replayed lines")
    replay_group.add_argument("--repeat", dest="replay_repeat", action="store_true", default=None,
                              help="Loop the replay log")

    parser.add_argument("--accuracy-threshold", dest="accuracy_threshold_m", type=float, default=None,
                        help="Flag snapshots whose estimated accuracy exceeds this many metres (0 = off)")
    parser.add_argument("--output-wkid", dest="output_wkid", type=int, default=None,
                        help="EPSG code to reproject positions into")
    parser.add_argument("--open-retries", dest="open_retries", type=int, default=0,
                        help="Retry opening the device this many times before giving up")

    parser.add_argument("--log-level", dest="log_level", choices=sorted(LOG_LEVELS.keys()), default=None,
                        help="Logging verbosity")
    parser.add_argument("--log-file", dest="log_file", type=str, default=None,
                        help="Optional path to write logs")
    console_group = parser.add_mutually_exclusive_group()
    console_group.add_argument("--console", dest="console_output", action="store_true", default=None,
                               help="Log to console")
    console_group.add_argument("--no-console", dest="console_output", action="store_false",
                               help="Log to file only")

    return parser.parse_args(argv)


def format_snapshot(snapshot: Snapshot) -> str:
    """One-line summary of a snapshot for logs."""
    point = snapshot.position
    parts = [
        snapshot.timestamp.isoformat(),
        f"lat={snapshot.latitude:.6f}",
        f"lon={snapshot.longitude:.6f}",
    ]
    if point.wkid != WGS84_WKID:
        parts.append(f"x={point.x:.2f} y={point.y:.2f} (EPSG:{point.wkid})")
    if snapshot.altitude is not None:
        parts.append(f"alt={snapshot.altitude:.1f}m")
    if snapshot.hdop is not None:
        parts.append(f"hdop={snapshot.hdop:.1f}")
    if snapshot.vdop is not None:
        parts.append(f"vdop={snapshot.vdop:.1f}")
    if snapshot.fix_quality is not None:
        parts.append(f"fix={FIX_QUALITY_DESCRIPTIONS.get(snapshot.fix_quality, snapshot.fix_quality)}")
    parts.append("valid" if snapshot.is_valid else "INVALID")
    return " ".join(parts)


async def open_with_retries(
    service: DeviceLocationService,
    source: DeviceLocationSource,
    properties: DeviceLocationProperties,
    retries: int,
    policy: RetryPolicy = PATIENT_OPEN_RETRY_POLICY,
) -> None:
    """Open ``source``, retrying DeviceConnectionError up to ``retries`` times."""
    policy = dataclasses.replace(policy, max_retries=max(0, retries))
    failures = 0
    while True:
        try:
            await service.open(source, properties)
            return
        except DeviceConnectionError as exc:
            failures += 1
            if policy.exhausted(failures):
                raise
            delay = policy.get_delay(failures)
            logger.warning("Open failed (%d/%d), retrying in %.1fs: %s",
                           failures, policy.max_retries, delay, exc)
            await asyncio.sleep(delay)


async def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)
    config = DeviceLocationConfig.from_file(args.config, args)

    configure_logging(config.log_level, console=config.console_output, log_file=config.log_file or None)

    transform = None
    if config.output_wkid and config.output_wkid != WGS84_WKID:
        transform = PyprojTransform(target_wkid=config.output_wkid)

    service = DeviceLocationService(
        retry_policy=config.to_retry_policy(),
        queue_size=config.queue_size,
        read_timeout=config.read_timeout_s,
        drain_timeout=config.drain_timeout_s,
        spatial_transform=transform,
        date_wait_fixes=config.date_wait_fixes,
    )

    def on_event(event: LocationEvent) -> None:
        if isinstance(event, SnapshotChangedEvent):
            logger.info(format_snapshot(event.snapshot))
        else:
            logger.error("Location feed from %s lost: %s", event.source_description, event.error)

    service.events.subscribe(on_event)

    source = config.to_source()
    try:
        await open_with_retries(service, source, config.to_properties(), args.open_retries)
    except (DeviceConnectionError, ValidationError) as exc:
        logger.error("Cannot open %s: %s", source.description, exc)
        return 1

    loop = asyncio.get_running_loop()
    pending: set[asyncio.Task] = set()

    def request_shutdown() -> None:
        task = asyncio.create_task(service.close())
        pending.add(task)
        task.add_done_callback(pending.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, request_shutdown)

    try:
        await service.wait_closed()
    finally:
        await service.close()

    return 1 if service.last_error is not None else 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()

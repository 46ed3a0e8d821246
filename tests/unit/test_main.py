"""Unit tests for the command-line entry point."""

import datetime as dt

import pytest

from device_location.core.retry_policy import RetryPolicy
from device_location.gnss.errors import DeviceConnectionError
from device_location.gnss.parsers.nmea_types import MapPoint, Snapshot
from device_location.gnss.sources import DeviceLocationProperties, SerialPortSource
from device_location.main import format_snapshot, main, open_with_retries, parse_args


class FlakyService:
    """Service stand-in whose open() fails a set number of times."""

    def __init__(self, failures: int):
        self.failures = failures
        self.attempts = 0

    async def open(self, source, properties=None):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise DeviceConnectionError("port busy")


class TestParseArgs:
    """Test CLI argument mapping onto config fields."""

    def test_defaults_are_none(self):
        args = parse_args([])

        assert args.serial_port is None
        assert args.baud_rate is None
        assert args.replay_repeat is None
        assert args.console_output is None
        assert args.open_retries == 0

    def test_serial_options(self):
        args = parse_args([
            "--port", "COM3", "--baud-rate", "9600", "--parity", "e",
            "--stop-bits", "2", "--antenna-height", "1.5", "--accuracy-threshold", "10",
        ])

        assert args.serial_port == "COM3"
        assert args.baud_rate == 9600
        assert args.parity == "E"
        assert args.stop_bits == 2.0
        assert args.antenna_height_m == 1.5
        assert args.accuracy_threshold_m == 10.0

    def test_replay_options(self):
        args = parse_args(["--replay", "track.nmea", "--replay-interval", "0.2", "--repeat", "--no-console"])

        assert args.replay_file == "track.nmea"
        assert args.replay_interval_s == 0.2
        assert args.replay_repeat is True
        assert args.console_output is False

    def test_invalid_parity_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(["--parity", "X"])


class TestFormatSnapshot:
    """Test the log line for a snapshot."""

    def test_format(self):
        snapshot = Snapshot(
            position=MapPoint(x=11.5, y=48.1, z=500.0),
            timestamp=dt.datetime(2024, 6, 15, 12, 0, tzinfo=dt.timezone.utc),
            latitude=48.1,
            longitude=11.5,
            altitude=500.0,
            hdop=0.9,
            fix_valid=True,
            is_valid=True,
        )

        line = format_snapshot(snapshot)

        assert "lat=48.100000" in line
        assert "alt=500.0m" in line
        assert "hdop=0.9" in line
        assert line.endswith("valid")
        assert "EPSG" not in line

    def test_format_projected_invalid(self):
        snapshot = Snapshot(
            position=MapPoint(x=1282000.0, y=6125000.0, wkid=3857),
            timestamp=dt.datetime(2024, 6, 15, 12, 0, tzinfo=dt.timezone.utc),
            latitude=48.1,
            longitude=11.5,
        )

        line = format_snapshot(snapshot)

        assert "EPSG:3857" in line
        assert line.endswith("INVALID")


class TestOpenWithRetries:
    """Test retrying open() from the CLI."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        service = FlakyService(failures=2)

        await open_with_retries(
            service, SerialPortSource("COM3"), DeviceLocationProperties(), retries=3,
            policy=RetryPolicy(base_delay=0.0, jitter=0.0),
        )

        assert service.attempts == 3

    @pytest.mark.asyncio
    async def test_gives_up(self):
        service = FlakyService(failures=5)

        with pytest.raises(DeviceConnectionError):
            await open_with_retries(
                service, SerialPortSource("COM3"), DeviceLocationProperties(), retries=1,
                policy=RetryPolicy(base_delay=0.0, jitter=0.0),
            )

        assert service.attempts == 2


class TestMain:
    """End-to-end runs of main() against a replay log."""

    @pytest.mark.asyncio
    async def test_replay_until_end_of_log(self, nmea_log, tmp_path):
        exit_code = await main([
            "--config", str(tmp_path / "absent.txt"),
            "--replay", str(nmea_log),
            "--no-console",
            "--log-file", str(tmp_path / "logs" / "device_location.log"),
        ])

        assert exit_code == 1
        assert (tmp_path / "logs" / "device_location.log").exists()

    @pytest.mark.asyncio
    async def test_missing_port(self, tmp_path):
        exit_code = await main([
            "--config", str(tmp_path / "absent.txt"),
            "--replay", str(tmp_path / "missing.nmea"),
            "--no-console",
        ])

        assert exit_code == 1

"""Unit tests for the serial transport."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import serial

from device_location.gnss.errors import DeviceConnectionError, TransportReadError
from device_location.gnss.sources import SerialPortSource
from device_location.gnss.transports.serial_transport import SerialLocationTransport

MODULE = "device_location.gnss.transports.serial_transport"


def make_stream(lines=()):
    reader = MagicMock()
    reader.readline = AsyncMock(side_effect=list(lines))
    writer = MagicMock()
    writer.close = MagicMock()
    writer.wait_closed = AsyncMock()
    return reader, writer


class TestSerialLocationTransport:
    """Test SerialLocationTransport functionality."""

    def test_initialization(self):
        transport = SerialLocationTransport(SerialPortSource("/dev/ttyUSB0", baud_rate=9600))

        assert transport.port == "/dev/ttyUSB0"
        assert transport.baudrate == 9600
        assert transport.is_connected is False
        assert transport.last_error is None
        assert transport.description == "/dev/ttyUSB0 @ 9600 baud 8N1"

    @pytest.mark.asyncio
    async def test_connect_opens_port_exclusively(self):
        reader, writer = make_stream()
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(return_value=(reader, writer))
            transport = SerialLocationTransport(
                SerialPortSource("COM3", baud_rate=4800, parity="e", stop_bits=2.0)
            )

            await transport.connect()

            assert transport.is_connected
            mock_serial_asyncio.open_serial_connection.assert_awaited_once_with(
                url="COM3",
                baudrate=4800,
                bytesize=8,
                parity="E",
                stopbits=2,
                exclusive=True,
            )

    @pytest.mark.asyncio
    async def test_connect_keeps_fractional_stop_bits(self):
        reader, writer = make_stream()
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(return_value=(reader, writer))
            transport = SerialLocationTransport(SerialPortSource("COM3", stop_bits=1.5))

            await transport.connect()

            kwargs = mock_serial_asyncio.open_serial_connection.await_args.kwargs
            assert kwargs["stopbits"] == 1.5

    @pytest.mark.asyncio
    async def test_connect_failure_raises_device_connection_error(self):
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(
                side_effect=serial.SerialException("could not open port COM9: busy")
            )
            transport = SerialLocationTransport(SerialPortSource("COM9"))

            with pytest.raises(DeviceConnectionError, match="COM9"):
                await transport.connect()

            assert transport.is_connected is False
            assert "busy" in transport.last_error

    @pytest.mark.asyncio
    async def test_missing_port_raises(self):
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(
                side_effect=FileNotFoundError("No such file or directory: '/dev/ttyUSB7'")
            )
            transport = SerialLocationTransport(SerialPortSource("/dev/ttyUSB7"))

            with pytest.raises(DeviceConnectionError):
                await transport.connect()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "source",
        [
            SerialPortSource(""),
            SerialPortSource("COM3", baud_rate=0),
            SerialPortSource("COM3", data_bits=9),
            SerialPortSource("COM3", parity="X"),
            SerialPortSource("COM3", stop_bits=3.0),
        ],
    )
    async def test_invalid_settings_rejected_before_open(self, source):
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock()
            transport = SerialLocationTransport(source)

            with pytest.raises(DeviceConnectionError):
                await transport.connect()

            mock_serial_asyncio.open_serial_connection.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_serial_unavailable(self):
        with patch(f"{MODULE}.SERIAL_AVAILABLE", False):
            transport = SerialLocationTransport(SerialPortSource("COM3"))

            with pytest.raises(DeviceConnectionError, match="not available"):
                await transport.connect()

    @pytest.mark.asyncio
    async def test_read_line_decodes_and_strips(self):
        reader, writer = make_stream([b"$GPGGA,123519*47\r\n", b"\r\n"])
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(return_value=(reader, writer))
            transport = SerialLocationTransport(SerialPortSource("COM3"))
            await transport.connect()

            assert await transport.read_line() == "$GPGGA,123519*47"
            assert await transport.read_line() is None

    @pytest.mark.asyncio
    async def test_read_line_timeout_returns_none(self):
        reader, writer = make_stream()

        async def never():
            await asyncio.sleep(10)

        reader.readline = never
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(return_value=(reader, writer))
            transport = SerialLocationTransport(SerialPortSource("COM3"))
            await transport.connect()

            assert await transport.read_line(timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_read_error_is_transient(self):
        reader, writer = make_stream([OSError("device reports readiness to read but returned no data")])
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(return_value=(reader, writer))
            transport = SerialLocationTransport(SerialPortSource("COM3"))
            await transport.connect()

            with pytest.raises(TransportReadError) as excinfo:
                await transport.read_line()

            assert excinfo.value.transient is True
            assert isinstance(excinfo.value.cause, OSError)

    @pytest.mark.asyncio
    async def test_eof_is_fatal(self):
        reader, writer = make_stream([b""])
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(return_value=(reader, writer))
            transport = SerialLocationTransport(SerialPortSource("COM3"))
            await transport.connect()

            with pytest.raises(TransportReadError) as excinfo:
                await transport.read_line()

            assert excinfo.value.transient is False

    @pytest.mark.asyncio
    async def test_read_when_not_connected(self):
        transport = SerialLocationTransport(SerialPortSource("COM3"))

        with pytest.raises(TransportReadError):
            await transport.read_line()

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self):
        reader, writer = make_stream()
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(return_value=(reader, writer))
            transport = SerialLocationTransport(SerialPortSource("COM3"))
            await transport.connect()

            await transport.disconnect()
            await transport.disconnect()

            assert transport.is_connected is False
            writer.close.assert_called_once()
            writer.wait_closed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_read_sentences_skips_noise(self):
        reader, writer = make_stream([b"$GPRMC,1*00\r\n", b"noise\r\n", b"$GPGGA,2*00\r\n", b""])
        with patch(f"{MODULE}.serial_asyncio") as mock_serial_asyncio:
            mock_serial_asyncio.open_serial_connection = AsyncMock(return_value=(reader, writer))
            transport = SerialLocationTransport(SerialPortSource("COM3"))
            await transport.connect()

            received = []
            with pytest.raises(TransportReadError):
                async for sentence in transport.read_sentences():
                    received.append(sentence)

            assert received == ["$GPRMC,1*00", "$GPGGA,2*00"]

"""Unit tests for the location overlay."""

import datetime as dt

import pytest

from device_location.gnss.errors import ConnectionLostError
from device_location.gnss.events import ConnectionLostEvent, SnapshotChangedEvent, SnapshotEventBus
from device_location.gnss.overlay import LocationOverlay, PointSymbol
from device_location.gnss.parsers.nmea_types import MapPoint, Snapshot
from tests.infrastructure.helpers import FakeSink


def snapshot_event(second: int, *, valid: bool = True) -> SnapshotChangedEvent:
    return SnapshotChangedEvent(Snapshot(
        position=MapPoint(x=11.5 + second, y=48.1),
        timestamp=dt.datetime(2024, 6, 15, 12, 0, second, tzinfo=dt.timezone.utc),
        latitude=48.1,
        longitude=11.5 + second,
        fix_valid=valid,
        is_valid=valid,
    ))


class TestLocationOverlay:
    """Test drawing snapshots as point graphics."""

    @pytest.mark.asyncio
    async def test_draws_latest_location(self):
        bus, sink = SnapshotEventBus(), FakeSink()
        overlay = LocationOverlay(bus, sink)
        overlay.attach()

        await bus.publish(snapshot_event(0))
        await bus.publish(snapshot_event(1))

        assert overlay.drawn_count == 2
        assert len(sink.graphics) == 1
        point, symbol = next(iter(sink.graphics.values()))
        assert point.x == pytest.approx(12.5)
        assert symbol == PointSymbol()
        assert sink.removed == [1]

    @pytest.mark.asyncio
    async def test_keep_trail(self):
        bus, sink = SnapshotEventBus(), FakeSink()
        LocationOverlay(bus, sink, keep_trail=True).attach()

        for second in range(3):
            await bus.publish(snapshot_event(second))

        assert len(sink.graphics) == 3
        assert sink.removed == []

    @pytest.mark.asyncio
    async def test_invalid_snapshots_skipped(self):
        bus, sink = SnapshotEventBus(), FakeSink()
        overlay = LocationOverlay(bus, sink)
        overlay.attach()

        await bus.publish(snapshot_event(0, valid=False))

        assert overlay.drawn_count == 0
        assert sink.graphics == {}

    @pytest.mark.asyncio
    async def test_connection_lost_keeps_last_graphic(self):
        bus, sink = SnapshotEventBus(), FakeSink()
        LocationOverlay(bus, sink).attach()
        await bus.publish(snapshot_event(0))

        await bus.publish(ConnectionLostEvent(source_description="COM3", error=ConnectionLostError("gone")))

        assert len(sink.graphics) == 1

    @pytest.mark.asyncio
    async def test_detach(self):
        bus, sink = SnapshotEventBus(), FakeSink()
        overlay = LocationOverlay(bus, sink, PointSymbol(color=(255, 0, 0), size=6.0, style="circle"))
        overlay.attach()
        overlay.attach()
        assert bus.subscriber_count == 1

        overlay.detach()
        await bus.publish(snapshot_event(0))

        assert not overlay.is_attached
        assert sink.graphics == {}

"""Test helpers."""

from .generators import generate_nmea_sentence, nmea_latitude, nmea_longitude, with_checksum
from .doubles import EventRecorder, FakeMap, FakeSink, FakeTransport, ScalingTransform

__all__ = [
    "generate_nmea_sentence",
    "nmea_latitude",
    "nmea_longitude",
    "with_checksum",
    "EventRecorder",
    "FakeMap",
    "FakeSink",
    "FakeTransport",
    "ScalingTransform",
]

"""NMEA decoding components."""

from .nmea_types import MapPoint, Snapshot
from .nmea_parser import DecoderStats, SnapshotDecoder, nmea_checksum, validate_checksum

__all__ = [
    "MapPoint",
    "Snapshot",
    "DecoderStats",
    "SnapshotDecoder",
    "nmea_checksum",
    "validate_checksum",
]

"""Location snapshot types."""

from __future__ import annotations

from dataclasses import dataclass
import datetime as dt
from typing import Optional

from ..constants import WGS84_WKID


@dataclass(frozen=True, slots=True)
class MapPoint:
    """A coordinate in a given spatial reference (x=easting/lon, y=northing/lat)."""

    x: float
    y: float
    z: Optional[float] = None
    wkid: int = WGS84_WKID

    @property
    def has_z(self) -> bool:
        return self.z is not None


@dataclass(frozen=True, slots=True)
class Snapshot:
    """One decoded position sample. Never mutated; later samples supersede it."""

    position: MapPoint
    timestamp: dt.datetime
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    hdop: Optional[float] = None
    vdop: Optional[float] = None
    pdop: Optional[float] = None
    fix_quality: Optional[int] = None
    fix_mode: Optional[str] = None
    satellites_in_use: Optional[int] = None
    course_deg: Optional[float] = None
    speed_mps: Optional[float] = None
    horizontal_accuracy: Optional[float] = None
    fix_valid: bool = False
    is_valid: bool = False
    sentence_type: str = ""

    def position_as_map_point(self) -> MapPoint:
        """Return the position in the output spatial reference."""
        return self.position

    def meets_accuracy(self, threshold: float) -> bool:
        """Return True if the estimated accuracy is within ``threshold`` metres.

        A threshold of 0 or an unknown accuracy always passes.
        """
        if threshold <= 0 or self.horizontal_accuracy is None:
            return True
        return self.horizontal_accuracy <= threshold

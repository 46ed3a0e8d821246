"""Spatial reference transforms between the device and consuming maps."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol, Tuple

from .constants import WGS84_WKID
from .parsers.nmea_types import MapPoint


class SpatialTransform(Protocol):
    """Reprojects coordinates from ``source_wkid`` into ``target_wkid``."""

    source_wkid: int
    target_wkid: int

    def transform(
        self, x: float, y: float, z: Optional[float] = None
    ) -> Tuple[float, float, Optional[float]]: ...


@dataclass(frozen=True)
class PyprojTransform:
    """EPSG:<source_wkid> -> EPSG:<target_wkid> using pyproj (x=lon, y=lat order)."""

    target_wkid: int
    source_wkid: int = WGS84_WKID

    def __post_init__(self):
        from pyproj import Transformer

        transformer = Transformer.from_crs(
            f"EPSG:{self.source_wkid}", f"EPSG:{self.target_wkid}", always_xy=True
        )
        object.__setattr__(self, "_transformer", transformer)

    def transform(self, x, y, z=None):
        if z is None:
            tx, ty = self._transformer.transform(x, y)
            return tx, ty, None
        tx, ty, tz = self._transformer.transform(x, y, z)
        return tx, ty, tz


@lru_cache(maxsize=32)
def get_transform(source_wkid: int, target_wkid: int) -> PyprojTransform:
    """Return a cached transform for the given pair of references."""
    return PyprojTransform(target_wkid=target_wkid, source_wkid=source_wkid)


def project_point(point: MapPoint, transform: SpatialTransform) -> MapPoint:
    """Reproject ``point`` with ``transform``; points already in the target pass through."""
    if point.wkid == transform.target_wkid:
        return point
    if point.wkid != transform.source_wkid:
        raise ValueError(
            f"Transform expects wkid {transform.source_wkid}, point is in {point.wkid}"
        )
    x, y, z = transform.transform(point.x, point.y, point.z)
    return MapPoint(x=x, y=y, z=z, wkid=transform.target_wkid)


__all__ = ["SpatialTransform", "PyprojTransform", "get_transform", "project_point"]

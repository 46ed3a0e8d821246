"""NMEA sentence decoding for GNSS receivers.

The decoder is stateful: DOP, altitude, course and speed are accumulated
across sentence types, and every time-stamped position sentence that moves
time forward yields an immutable :class:`Snapshot`.

Only RMC carries a date. Undated fixes (GGA, GLL, GNS) seen before the first
RMC are held back for ``date_wait_fixes`` fixes; after that the host's UTC
date is assumed. An accepted timestamp is never revised, so if a later RMC
contradicts an assumed date, fixes are dropped until the receiver's time
passes the last accepted one.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterable, AsyncIterator, Callable, NamedTuple, Optional, Union

from ..constants import (
    DEFAULT_DATE_WAIT_FIXES,
    DEFAULT_UERE_M,
    FIX_MODE_MAP,
    MAX_SENTENCE_LENGTH,
    MPS_PER_KNOT,
    WGS84_WKID,
)
from .nmea_types import MapPoint, Snapshot

if TYPE_CHECKING:
    from ..spatial import SpatialTransform

logger = logging.getLogger(__name__)

# A time-of-day this far behind the previous fix means midnight passed
_DAY_ROLLOVER_WINDOW = dt.timedelta(hours=12)


class _MalformedSentence(ValueError):
    """Raised by sentence handlers when required fields are missing."""


class _PositionFix(NamedTuple):
    time: Optional[dt.time]
    date: Optional[dt.date]
    latitude: Optional[float]
    longitude: Optional[float]
    fix_valid: bool


def _parse_float(value: str | None) -> Optional[float]:
    """Parse string to float, None on failure."""
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_int(value: str | None) -> Optional[int]:
    """Parse string to int, None on failure."""
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_latlon(
    value: str | None,
    direction: str | None,
    *,
    is_lat: bool
) -> Optional[float]:
    """Parse NMEA lat/lon format (DDMM.MMMM or DDDMM.MMMM) to decimal degrees."""
    if not value or not direction:
        return None
    try:
        deg_len = 2 if is_lat else 3
        if len(value) < deg_len:
            return None
        degrees = int(value[:deg_len])
        minutes = float(value[deg_len:])
    except ValueError:
        return None
    if minutes >= 60.0:
        return None
    decimal = degrees + minutes / 60.0
    if decimal > (90.0 if is_lat else 180.0):
        return None
    if direction.upper() in {"S", "W"}:
        decimal *= -1.0
    return decimal


def _parse_hms(value: str | None) -> Optional[dt.time]:
    """Parse NMEA time format (HHMMSS.sss) to datetime.time."""
    if not value:
        return None
    raw = value.strip()
    if not raw:
        return None
    main, dot, frac = raw.partition(".")
    main = main.rjust(6, "0")
    try:
        hour = int(main[0:2])
        minute = int(main[2:4])
        second = int(main[4:6])
        micro = int((frac[:6] if dot else "0").ljust(6, "0"))
    except ValueError:
        return None
    try:
        return dt.time(hour, minute, second, micro, tzinfo=dt.timezone.utc)
    except ValueError:
        return None


def _parse_date(value: str | None) -> Optional[dt.date]:
    """Parse NMEA date format (DDMMYY) to datetime.date."""
    if not value or len(value) != 6:
        return None
    try:
        day = int(value[0:2])
        month = int(value[2:4])
        year = 2000 + int(value[4:6])
        return dt.date(year, month, day)
    except ValueError:
        return None


def _require(fields: list[str], count: int) -> None:
    if len(fields) < count:
        raise _MalformedSentence(f"expected at least {count} fields, got {len(fields)}")


def nmea_checksum(payload: str) -> str:
    """Return the two-digit hex XOR checksum of ``payload`` (text between $ and *)."""
    calculated = 0
    for char in payload:
        calculated ^= ord(char)
    return f"{calculated:02X}"


def validate_checksum(sentence: str) -> bool:
    """Validate NMEA checksum."""
    if not sentence.startswith("$") or "*" not in sentence:
        return False
    payload, checksum_str = sentence[1:].split("*", 1)
    checksum_str = checksum_str.strip()
    if len(checksum_str) != 2:
        return False
    try:
        expected = int(checksum_str, 16)
    except ValueError:
        return False
    return int(nmea_checksum(payload), 16) == expected


@dataclass
class DecoderStats:
    """Running counters for decoded and dropped frames."""

    accepted: int = 0
    malformed: int = 0
    out_of_order: int = 0
    undated: int = 0
    transform_failed: int = 0
    ignored: int = 0


class SnapshotDecoder:
    """Stateful NMEA decoder producing validated snapshots.

    Malformed frames, unknown sentence types and frames that would move time
    backwards are dropped; decoding never raises for bad input.
    """

    def __init__(
        self,
        *,
        accuracy_threshold: Union[float, Callable[[], float]] = 0.0,
        antenna_height: float = 0.0,
        transform: Optional["SpatialTransform"] = None,
        uere_m: float = DEFAULT_UERE_M,
        validate_checksums: bool = True,
        date_wait_fixes: int = DEFAULT_DATE_WAIT_FIXES,
    ):
        if callable(accuracy_threshold):
            self._accuracy_threshold = accuracy_threshold
        else:
            fixed = float(accuracy_threshold)
            self._accuracy_threshold = lambda: fixed
        self._antenna_height = antenna_height
        self._transform = transform
        self._uere_m = uere_m
        self._validate_checksums = validate_checksums
        self._date_wait_fixes = max(0, date_wait_fixes)
        self._handlers = {
            "RMC": self._parse_rmc,
            "GGA": self._parse_gga,
            "GLL": self._parse_gll,
            "GNS": self._parse_gns,
            "GSA": self._parse_gsa,
            "VTG": self._parse_vtg,
        }
        self.stats = DecoderStats()
        self.reset()

    @property
    def transform(self) -> Optional["SpatialTransform"]:
        return self._transform

    def set_transform(self, transform: Optional["SpatialTransform"]) -> None:
        """Change the output reference; applies to the next snapshot."""
        self._transform = transform

    @property
    def last_timestamp(self) -> Optional[dt.datetime]:
        """Timestamp of the most recently accepted snapshot."""
        return self._last_accepted

    def reset(self) -> None:
        """Reset accumulated stream state."""
        self._last_known_date: Optional[dt.date] = None
        self._date_inferred = False
        self._undated_held = 0
        self._last_resolved: Optional[dt.datetime] = None
        self._last_accepted: Optional[dt.datetime] = None
        self._altitude: Optional[float] = None
        self._hdop: Optional[float] = None
        self._vdop: Optional[float] = None
        self._pdop: Optional[float] = None
        self._fix_quality: Optional[int] = None
        self._fix_mode: Optional[str] = None
        self._satellites_in_use: Optional[int] = None
        self._course_deg: Optional[float] = None
        self._speed_mps: Optional[float] = None

    def decode(self, sentence: str) -> Optional[Snapshot]:
        """Decode one sentence. Returns a new snapshot or None."""
        if not sentence:
            return None
        sentence = sentence.strip()
        if len(sentence) > MAX_SENTENCE_LENGTH or not sentence.startswith("$"):
            self.stats.malformed += 1
            return None

        if self._validate_checksums and not validate_checksum(sentence):
            self.stats.malformed += 1
            logger.debug("Dropping frame with bad checksum: %r", sentence)
            return None

        payload = sentence[1:].split("*", 1)[0]
        parts = payload.split(",")
        header = parts[0]
        if len(header) < 3:
            self.stats.malformed += 1
            return None

        # Last 3 chars of the header, e.g. "RMC" from "GPRMC" or "GNRMC"
        message_type = header[-3:].upper()
        handler = self._handlers.get(message_type)
        if handler is None:
            self.stats.ignored += 1
            return None

        try:
            fix = handler(parts[1:])
        except _MalformedSentence as exc:
            self.stats.malformed += 1
            logger.debug("Dropping malformed %s frame: %s", message_type, exc)
            return None

        if fix is None:
            return None
        return self._accept(fix, message_type)

    async def iter_snapshots(self, sentences: AsyncIterable[str]) -> AsyncIterator[Snapshot]:
        """Lazily decode an async stream of sentences into snapshots."""
        async for sentence in sentences:
            snapshot = self.decode(sentence)
            if snapshot is not None:
                yield snapshot

    # ------------------------------------------------------------------
    # Snapshot assembly
    # ------------------------------------------------------------------

    def _note_date(self, date_obj: dt.date) -> None:
        if self._date_inferred and date_obj != self._last_known_date:
            logger.warning(
                "Receiver date %s differs from assumed date %s; fixes before %s will be dropped",
                date_obj, self._last_known_date,
                self._last_accepted.isoformat() if self._last_accepted else "-",
            )
        self._last_known_date = date_obj
        self._date_inferred = False

    def _resolve_timestamp(self, time_obj: dt.time, date_obj: Optional[dt.date]) -> Optional[dt.datetime]:
        """Full timestamp for a fix, or None while holding back undated fixes."""
        if date_obj is not None:
            self._note_date(date_obj)
            self._last_resolved = dt.datetime.combine(date_obj, time_obj)
            return self._last_resolved

        if self._last_known_date is None:
            if self._undated_held < self._date_wait_fixes:
                self._undated_held += 1
                return None
            self._last_known_date = dt.datetime.now(dt.timezone.utc).date()
            self._date_inferred = True
            logger.info("No RMC date from receiver; assuming %s", self._last_known_date)

        candidate = dt.datetime.combine(self._last_known_date, time_obj)
        if self._last_resolved is not None and candidate < self._last_resolved - _DAY_ROLLOVER_WINDOW:
            candidate += dt.timedelta(days=1)
            self._last_known_date = candidate.date()
        self._last_resolved = candidate
        return candidate

    def _accept(self, fix: _PositionFix, message_type: str) -> Optional[Snapshot]:
        if fix.time is None:
            return None
        if fix.latitude is None or fix.longitude is None:
            if fix.date is not None:
                self._note_date(fix.date)
            return None

        timestamp = self._resolve_timestamp(fix.time, fix.date)
        if timestamp is None:
            self.stats.undated += 1
            logger.debug("Holding back %s at %s until a date is known", message_type, fix.time)
            return None

        if self._last_accepted is not None and timestamp <= self._last_accepted:
            self.stats.out_of_order += 1
            logger.debug(
                "Dropping %s at %s (not after %s)",
                message_type, timestamp.isoformat(), self._last_accepted.isoformat(),
            )
            return None

        altitude = self._altitude
        if altitude is not None:
            altitude -= self._antenna_height

        accuracy = self._hdop * self._uere_m if self._hdop is not None else None
        threshold = self._accuracy_threshold()
        within_threshold = threshold <= 0 or accuracy is None or accuracy <= threshold

        position = MapPoint(x=fix.longitude, y=fix.latitude, z=altitude, wkid=WGS84_WKID)
        transform = self._transform
        if transform is not None:
            try:
                x, y, z = transform.transform(position.x, position.y, position.z)
            except Exception as exc:
                self.stats.transform_failed += 1
                logger.warning(
                    "Dropping %s at %s: cannot project to EPSG:%s: %s",
                    message_type, timestamp.isoformat(), transform.target_wkid, exc,
                )
                return None
            position = MapPoint(x=x, y=y, z=z, wkid=transform.target_wkid)

        snapshot = Snapshot(
            position=position,
            timestamp=timestamp,
            latitude=fix.latitude,
            longitude=fix.longitude,
            altitude=altitude,
            hdop=self._hdop,
            vdop=self._vdop,
            pdop=self._pdop,
            fix_quality=self._fix_quality,
            fix_mode=self._fix_mode,
            satellites_in_use=self._satellites_in_use,
            course_deg=self._course_deg,
            speed_mps=self._speed_mps,
            horizontal_accuracy=accuracy,
            fix_valid=fix.fix_valid,
            is_valid=fix.fix_valid and within_threshold,
            sentence_type=message_type,
        )
        self._last_accepted = timestamp
        self.stats.accepted += 1
        return snapshot

    # ------------------------------------------------------------------
    # Sentence-specific parsers
    # ------------------------------------------------------------------

    def _parse_rmc(self, fields: list[str]) -> _PositionFix:
        """Parse RMC: time, status, position, speed, course, date."""
        _require(fields, 9)

        speed_knots = _parse_float(fields[6])
        if speed_knots is not None:
            self._speed_mps = speed_knots * MPS_PER_KNOT
        course_deg = _parse_float(fields[7])
        if course_deg is not None:
            self._course_deg = course_deg

        return _PositionFix(
            time=_parse_hms(fields[0]),
            date=_parse_date(fields[8]),
            latitude=_parse_latlon(fields[2], fields[3], is_lat=True),
            longitude=_parse_latlon(fields[4], fields[5], is_lat=False),
            fix_valid=(fields[1] or "").upper() == "A",
        )

    def _parse_gga(self, fields: list[str]) -> _PositionFix:
        """Parse GGA: time, position, fix quality, satellites, HDOP, altitude."""
        _require(fields, 9)

        fix_quality = _parse_int(fields[5])
        self._fix_quality = fix_quality
        self._satellites_in_use = _parse_int(fields[6])
        hdop = _parse_float(fields[7])
        if hdop is not None:
            self._hdop = hdop
        self._altitude = _parse_float(fields[8])

        return _PositionFix(
            time=_parse_hms(fields[0]),
            date=None,
            latitude=_parse_latlon(fields[1], fields[2], is_lat=True),
            longitude=_parse_latlon(fields[3], fields[4], is_lat=False),
            fix_valid=(fix_quality or 0) > 0,
        )

    def _parse_gll(self, fields: list[str]) -> _PositionFix:
        """Parse GLL: position, time, status."""
        _require(fields, 5)

        status = (fields[5] or "").upper() if len(fields) > 5 else ""
        return _PositionFix(
            time=_parse_hms(fields[4]),
            date=None,
            latitude=_parse_latlon(fields[0], fields[1], is_lat=True),
            longitude=_parse_latlon(fields[2], fields[3], is_lat=False),
            fix_valid=status == "A",
        )

    def _parse_gns(self, fields: list[str]) -> _PositionFix:
        """Parse GNS: multi-constellation fix data."""
        _require(fields, 9)

        mode = (fields[5] or "").upper()
        self._satellites_in_use = _parse_int(fields[6])
        hdop = _parse_float(fields[7])
        if hdop is not None:
            self._hdop = hdop
        self._altitude = _parse_float(fields[8])

        return _PositionFix(
            time=_parse_hms(fields[0]),
            date=None,
            latitude=_parse_latlon(fields[1], fields[2], is_lat=True),
            longitude=_parse_latlon(fields[3], fields[4], is_lat=False),
            fix_valid=bool(mode) and any(flag != "N" for flag in mode),
        )

    def _parse_gsa(self, fields: list[str]) -> None:
        """Parse GSA: fix mode, PDOP, HDOP, VDOP."""
        _require(fields, 17)

        self._fix_mode = FIX_MODE_MAP.get(_parse_int(fields[1]) or 0)
        pdop = _parse_float(fields[14])
        hdop = _parse_float(fields[15])
        vdop = _parse_float(fields[16])
        if pdop is not None:
            self._pdop = pdop
        if hdop is not None:
            self._hdop = hdop
        if vdop is not None:
            self._vdop = vdop
        return None

    def _parse_vtg(self, fields: list[str]) -> None:
        """Parse VTG: course and ground speed."""
        _require(fields, 7)

        course_deg = _parse_float(fields[0])
        if course_deg is not None:
            self._course_deg = course_deg
        speed_knots = _parse_float(fields[4])
        speed_kmh = _parse_float(fields[6])
        if speed_knots is not None:
            self._speed_mps = speed_knots * MPS_PER_KNOT
        elif speed_kmh is not None:
            self._speed_mps = speed_kmh / 3.6
        return None

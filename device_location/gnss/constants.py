"""GNSS/NMEA protocol constants and configuration defaults."""

# Speed conversion factor
MPS_PER_KNOT = 0.514444

# Fix mode mapping (from NMEA GSA sentence)
FIX_MODE_MAP = {
    1: "No fix",
    2: "2D",
    3: "3D",
}

FIX_QUALITY_DESCRIPTIONS = {
    0: "Invalid",
    1: "GPS",
    2: "DGPS",
    3: "PPS",
    4: "RTK fixed",
    5: "RTK float",
    6: "Estimated",
    7: "Manual",
    8: "Simulation",
}

# Nominal user equivalent range error; horizontal accuracy ~= HDOP * UERE
DEFAULT_UERE_M = 5.0

# Native reference system of NMEA positions
WGS84_WKID = 4326

# Default serial configuration (NMEA-0183 standard line settings)
DEFAULT_BAUD_RATE = 4800
DEFAULT_DATA_BITS = 8
DEFAULT_PARITY = "N"
DEFAULT_STOP_BITS = 1.0
VALID_DATA_BITS = (5, 6, 7, 8)
VALID_PARITIES = ("N", "E", "O", "M", "S")
VALID_STOP_BITS = (1.0, 1.5, 2.0)

# Read loop
DEFAULT_READ_TIMEOUT = 1.0
DEFAULT_MAX_READ_RETRIES = 3
DEFAULT_SNAPSHOT_QUEUE_SIZE = 64
DEFAULT_DRAIN_TIMEOUT = 2.0
MAX_SENTENCE_LENGTH = 256

# Undated position fixes dropped before falling back to the host's UTC date
DEFAULT_DATE_WAIT_FIXES = 3

# Map navigation
DEFAULT_ZOOM_SCALE = 5000.0

"""
Spherical-earth geodesy for check-in verification.

Pure functions over ``GPSCoordinate`` values: haversine distance, initial
bearing, coordinate validation/normalization and travel speed. No state,
no I/O.

Examples:
    >>> detroit = GPSCoordinate(42.3314, -83.0458)
    >>> distance(detroit, detroit)
    0.0
    >>> format_distance(2480)
    '2.5km'

Tags:
    geo, haversine, gps, validation, spotcheck
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

EARTH_RADIUS_M = 6_371_000
MAX_ACCURACY_M = 10_000
COORDINATE_DECIMALS = 8

# Michigan bounding box (Upper Peninsula included)
MICHIGAN_BOUNDS = {
    "north": 48.2388,
    "south": 41.6961,
    "east": -82.1228,
    "west": -90.4186,
}


@dataclass(frozen=True)
class GPSCoordinate:
    """A position fix.

    Attributes:
        latitude: Degrees, [-90, 90]
        longitude: Degrees, [-180, 180]
        accuracy: Horizontal accuracy radius in meters, if known
        timestamp: When the fix was taken, if known
    """

    latitude: float
    longitude: float
    accuracy: float | None = None
    timestamp: datetime | None = None


class InvalidCoordinateError(ValueError):
    """A coordinate failed validation; ``errors`` lists every problem."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def validate(coord: GPSCoordinate) -> list[str]:
    """Return every validation problem with ``coord`` (empty if valid)."""
    errors: list[str] = []
    lat, lon = coord.latitude, coord.longitude

    if not (math.isfinite(lat) and math.isfinite(lon)):
        errors.append("Coordinates must be finite numbers")
    else:
        if not -90 <= lat <= 90:
            errors.append("Latitude must be between -90 and 90 degrees")
        if not -180 <= lon <= 180:
            errors.append("Longitude must be between -180 and 180 degrees")

    if coord.accuracy is not None:
        if not math.isfinite(coord.accuracy):
            errors.append("GPS accuracy must be a finite number")
        elif coord.accuracy < 0:
            errors.append("GPS accuracy must not be negative")
        elif coord.accuracy > MAX_ACCURACY_M:
            errors.append("GPS accuracy is unreasonably large (>10km)")

    return errors


def validate_and_normalize(coord: GPSCoordinate) -> GPSCoordinate:
    """Validate ``coord`` and round latitude/longitude to 8 decimals (~1 mm).

    Raises:
        InvalidCoordinateError: listing every problem found
    """
    errors = validate(coord)
    if errors:
        raise InvalidCoordinateError(errors)
    return GPSCoordinate(
        latitude=round(coord.latitude, COORDINATE_DECIMALS),
        longitude=round(coord.longitude, COORDINATE_DECIMALS),
        accuracy=coord.accuracy,
        timestamp=coord.timestamp,
    )


def distance(a: GPSCoordinate, b: GPSCoordinate) -> float:
    """Great-circle distance in meters (haversine)."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlon = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing(a: GPSCoordinate, b: GPSCoordinate) -> float:
    """Initial bearing from ``a`` to ``b`` in degrees, within [0, 360)."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    result = (math.degrees(math.atan2(y, x)) + 360) % 360
    # -0.0 % 360 and tiny negatives can land on 360.0
    return 0.0 if result >= 360 else result


def speed(a: GPSCoordinate, b: GPSCoordinate) -> float | None:
    """Average speed in m/s between two timestamped fixes.

    ``None`` if either fix has no timestamp, ``0.0`` if both share one.
    """
    if a.timestamp is None or b.timestamp is None:
        return None
    elapsed = abs((b.timestamp - a.timestamp).total_seconds())
    if elapsed == 0:
        return 0.0
    return distance(a, b) / elapsed


def is_within_michigan_bounds(coord: GPSCoordinate) -> bool:
    return (
        MICHIGAN_BOUNDS["south"] <= coord.latitude <= MICHIGAN_BOUNDS["north"]
        and MICHIGAN_BOUNDS["west"] <= coord.longitude <= MICHIGAN_BOUNDS["east"]
    )


def format_distance(meters: float) -> str:
    """Human-readable distance: ``850m``, ``2.5km``, ``12km``."""
    if meters < 1000:
        return f"{round(meters)}m"
    if meters < 10_000:
        return f"{meters / 1000:.1f}km"
    return f"{round(meters / 1000)}km"


def parse_coordinate(text: str, accuracy: float | None = None) -> GPSCoordinate:
    """Parse ``"LAT,LON"`` into a coordinate (no range validation)."""
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 2:
        raise ValueError(f"expected 'LAT,LON', got {text!r}")
    return GPSCoordinate(float(parts[0]), float(parts[1]), accuracy=accuracy)


__all__ = [
    "EARTH_RADIUS_M",
    "GPSCoordinate",
    "InvalidCoordinateError",
    "MAX_ACCURACY_M",
    "MICHIGAN_BOUNDS",
    "bearing",
    "distance",
    "format_distance",
    "is_within_michigan_bounds",
    "parse_coordinate",
    "speed",
    "validate",
    "validate_and_normalize",
]

"""Great-circle distance helpers.

Coordinates travel through the app in GeoJSON order, ``[longitude, latitude]``.
A coordinate of exactly (0, 0) is how an address without a geocode is
stored, so it is treated as missing rather than as a point in the ocean.
"""

from __future__ import annotations

import math
from typing import Any, NamedTuple, Optional

from utils.errors import InvalidCoordinate

EARTH_RADIUS_KM = 6371.0


class Coordinate(NamedTuple):
    longitude: float
    latitude: float


def is_unset(value: Any) -> bool:
    """True for a missing location: None, an empty pair or (0, 0)."""
    if value is None:
        return True
    try:
        if len(value) == 0:
            return True
        if len(value) != 2:
            return False
        return float(value[0]) == 0 and float(value[1]) == 0
    except (TypeError, ValueError):
        return False


def validate_coordinate(value: Any) -> Coordinate:
    if is_unset(value):
        raise InvalidCoordinate("Location is not set")

    try:
        longitude, latitude = value
        longitude, latitude = float(longitude), float(latitude)
    except (TypeError, ValueError) as exc:
        raise InvalidCoordinate(f"Malformed coordinate: {value!r}") from exc

    if math.isnan(longitude) or math.isnan(latitude):
        raise InvalidCoordinate(f"Malformed coordinate: {value!r}")
    if not -180 <= longitude <= 180:
        raise InvalidCoordinate(f"Longitude {longitude} is out of range")
    if not -90 <= latitude <= 90:
        raise InvalidCoordinate(f"Latitude {latitude} is out of range")

    return Coordinate(longitude, latitude)


def distance_km(a: Any, b: Any) -> float:
    """Haversine distance in km between two ``(lng, lat)`` points."""
    a = validate_coordinate(a)
    b = validate_coordinate(b)

    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.latitude))
        * math.cos(math.radians(b.latitude))
        * math.sin(d_lon / 2) ** 2
    )
    h = min(h, 1.0)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def distance_text(buyer: Optional[Any], vendor: Optional[Any]) -> str:
    """Human readable distance, e.g. ``"12.47 km away"``, or ``"N/A"``."""
    try:
        values = [float(v) for v in (*buyer, *vendor)]
    except (TypeError, ValueError):
        return "N/A"

    if len(values) != 4 or any(math.isnan(v) or v == 0 for v in values):
        return "N/A"

    try:
        km = distance_km(values[:2], values[2:])
    except InvalidCoordinate:
        return "N/A"
    return f"{km:.2f} km away"

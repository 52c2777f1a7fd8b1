"""Great-circle distance and walking-time helpers."""

import math
from typing import Optional

from shuttleroute.config import Settings
from shuttleroute.models import GeoPoint

EARTH_RADIUS_M = 6_371_000.0


def distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine distance between two points in meters."""
    lat1_r, lat2_r = math.radians(a.latitude), math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    h = min(1.0, h)  # float noise near antipodes
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def walk_duration_seconds(distance: float, speed_mps: Optional[float] = None) -> int:
    if speed_mps is None:
        speed_mps = Settings.WALKING_SPEED_MPS
    return math.ceil(max(0.0, distance) / speed_mps)


def decode_polyline(encoded: str) -> list[GeoPoint]:
    """Decode a Google-style encoded polyline to a list of points."""
    points = []
    index = 0
    lat = 0
    lng = 0

    while index < len(encoded):
        deltas = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                b = ord(encoded[index]) - 63
                index += 1
                result |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(result >> 1) if (result & 1) else (result >> 1))
        lat += deltas[0]
        lng += deltas[1]
        points.append(GeoPoint(latitude=lat / 1e5, longitude=lng / 1e5))

    return points


def format_duration(seconds: int) -> str:
    """Human-readable duration, rounded up to the minute ("1 hr 5 min")."""
    minutes = math.ceil(seconds / 60)
    if minutes < 60:
        return f"{minutes} min"

    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours} hr"
    return f"{hours} hr {remaining} min"

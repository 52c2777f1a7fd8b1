"""Google Routes API client for walking directions."""

import logging
import math
import re
from typing import Optional

import httpx

from shuttleroute.config import Settings
from shuttleroute.errors import UpstreamError
from shuttleroute.models import GeoPoint

logger = logging.getLogger("shuttleroute.directions")

SERVICE = "directions"

_FIELD_MASK = ",".join([
    "routes.duration",
    "routes.distanceMeters",
    "routes.polyline.encodedPolyline",
])

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*s?\s*$")


def parse_duration_seconds(value) -> Optional[int]:
    """Parse a Routes API duration ("165s", "165.4s", 165) into whole seconds."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            return None
        return math.ceil(value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            return math.ceil(float(match.group(1)))
    return None


def _waypoint(point: GeoPoint) -> dict:
    return {"location": {"latLng": {"latitude": point.latitude, "longitude": point.longitude}}}


async def compute_walking_route(
    origin: GeoPoint,
    destination: GeoPoint,
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
    settings: type[Settings] = Settings,
) -> dict:
    """Fetch the primary walking route between two points.

    Returns the raw route dict ({duration, distanceMeters, polyline}).
    """
    api_key = settings.GOOGLE_MAPS_API_KEY
    if not api_key:
        raise UpstreamError(SERVICE, "GOOGLE_MAPS_API_KEY is not configured")

    body = {
        "origin": _waypoint(origin),
        "destination": _waypoint(destination),
        "travelMode": "WALK",
        "languageCode": "en-US",
        "units": "METRIC",
    }
    headers = {
        "Content-Type": "application/json",
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": _FIELD_MASK,
    }
    if timeout is None:
        timeout = settings.DIRECTIONS_TIMEOUT_SECONDS

    try:
        if http_client:
            resp = await http_client.post(settings.GOOGLE_ROUTES_URL, json=body, headers=headers, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(settings.GOOGLE_ROUTES_URL, json=body, headers=headers)
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPError as e:
        raise UpstreamError(SERVICE, f"walking route failed: {type(e).__name__}: {e}") from e
    except ValueError as e:
        raise UpstreamError(SERVICE, "walking route returned invalid JSON") from e

    routes = data.get("routes") if isinstance(data, dict) else None
    if not routes:
        raise UpstreamError(SERVICE, "no walking route returned")
    return routes[0]

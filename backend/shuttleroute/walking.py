"""Walking legs: authoritative directions with a cached result, heuristic fallback."""

import asyncio
import logging
from typing import Optional

import httpx

from shuttleroute.config import Settings
from shuttleroute.directions_client import compute_walking_route, parse_duration_seconds
from shuttleroute.errors import UpstreamError
from shuttleroute.geo import decode_polyline, distance_meters, walk_duration_seconds
from shuttleroute.models import GeoPoint, WalkSegment, WalkSource

logger = logging.getLogger("shuttleroute.walking")

CacheKey = tuple[float, float, float, float]


def cache_key(
    origin: GeoPoint,
    destination: GeoPoint,
    precision: int = Settings.COORDINATE_PRECISION,
) -> CacheKey:
    return (
        round(origin.latitude, precision),
        round(origin.longitude, precision),
        round(destination.latitude, precision),
        round(destination.longitude, precision),
    )


def heuristic_segment(origin: GeoPoint, destination: GeoPoint, speed_mps: Optional[float] = None) -> WalkSegment:
    distance = distance_meters(origin, destination)
    return WalkSegment(
        distance_meters=distance,
        duration_seconds=walk_duration_seconds(distance, speed_mps),
        source=WalkSource.HEURISTIC,
    )


class WalkingSegmentCache:
    """Directions results keyed by rounded (origin, destination).

    Unbounded and process-scoped for successful results. Lookups still running
    are tracked per key so a burst of identical misses shares one upstream call
    and one outcome; a key is forgotten as soon as its lookup finishes.
    """

    def __init__(self, precision: int = Settings.COORDINATE_PRECISION):
        self.precision = precision
        self._entries: dict[CacheKey, WalkSegment] = {}
        self._pending: dict[CacheKey, asyncio.Future] = {}

    def key(self, origin: GeoPoint, destination: GeoPoint) -> CacheKey:
        return cache_key(origin, destination, self.precision)

    def get(self, key: CacheKey) -> Optional[WalkSegment]:
        return self._entries.get(key)

    def put(self, key: CacheKey, segment: WalkSegment) -> None:
        self._entries[key] = segment

    def pending(self, key: CacheKey) -> Optional[asyncio.Future]:
        return self._pending.get(key)

    def track(self, key: CacheKey, lookup: asyncio.Future) -> None:
        self._pending[key] = lookup

        def _forget(done: asyncio.Future) -> None:
            if self._pending.get(key) is done:
                del self._pending[key]

        lookup.add_done_callback(_forget)

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def segment_from_route(route: dict, origin: GeoPoint, destination: GeoPoint) -> Optional[WalkSegment]:
    """Build a WalkSegment from a Routes API route, or None if it has no usable duration."""
    duration = parse_duration_seconds(route.get("duration"))
    if duration is None:
        return None

    distance = route.get("distanceMeters")
    if isinstance(distance, bool) or not isinstance(distance, (int, float)) or distance < 0:
        distance = distance_meters(origin, destination)

    path = None
    encoded = (route.get("polyline") or {}).get("encodedPolyline")
    if encoded:
        try:
            path = decode_polyline(encoded)
        except (IndexError, ValueError):
            logger.debug("Discarding undecodable walking polyline")

    return WalkSegment(
        distance_meters=float(distance),
        duration_seconds=duration,
        path=path,
        source=WalkSource.DIRECTIONS,
    )


class WalkingSegmentEstimator:
    def __init__(
        self,
        cache: WalkingSegmentCache,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        settings: type[Settings] = Settings,
    ):
        self.cache = cache
        self.http_client = http_client
        self.settings = settings
        self.timeout = settings.DIRECTIONS_TIMEOUT_SECONDS if timeout is None else timeout

    async def walking_segment(self, origin: GeoPoint, destination: GeoPoint) -> WalkSegment:
        key = self.cache.key(origin, destination)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Walking cache hit {key}")
            return cached

        lookup = self.cache.pending(key)
        if lookup is None:
            lookup = asyncio.ensure_future(self._resolve(key, origin, destination))
            self.cache.track(key, lookup)
        # Shielded so one cancelled caller does not cancel the lookup for the others.
        return await asyncio.shield(lookup)

    async def _resolve(self, key: CacheKey, origin: GeoPoint, destination: GeoPoint) -> WalkSegment:
        try:
            route = await asyncio.wait_for(
                compute_walking_route(
                    origin, destination, http_client=self.http_client, timeout=self.timeout, settings=self.settings
                ),
                timeout=self.timeout,
            )
        except (UpstreamError, asyncio.TimeoutError) as e:
            logger.warning(f"Walking directions unavailable, using heuristic: {type(e).__name__}: {e}")
            return heuristic_segment(origin, destination, self.settings.WALKING_SPEED_MPS)

        segment = segment_from_route(route, origin, destination)
        if segment is None:
            logger.warning("Walking directions returned no usable duration, using heuristic")
            return heuristic_segment(origin, destination, self.settings.WALKING_SPEED_MPS)

        self.cache.put(key, segment)
        return segment

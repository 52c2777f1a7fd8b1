"""Decide whether a fixed shuttle route serves two stops in order, and trace the ride between them."""

import asyncio
import logging
from typing import NamedTuple, Optional

import httpx

from shuttleroute.config import Settings
from shuttleroute.errors import UpstreamError
from shuttleroute.geo import distance_meters
from shuttleroute.models import GeoPoint, RouteCode, RouteMembership, Stop
from shuttleroute.nextbus_client import get_checkpoints, get_pickup_points

logger = logging.getLogger("shuttleroute.membership")


class RouteStop(NamedTuple):
    code: str  # matches Stop.id
    display_code: str


def parse_pickup_points(points: list[dict]) -> list[RouteStop]:
    """Ordered stop sequence from raw pickup points; entries without a code are skipped."""
    sequence = []
    for point in points:
        code = point.get("pickupname") or point.get("busstopcode")
        if not code:
            continue
        display = point.get("ShortName") or point.get("busstopcode") or code
        sequence.append(RouteStop(code=str(code), display_code=str(display)))
    return sequence


def membership_from_sequence(
    sequence: list[RouteStop],
    departure_code: str,
    arrival_code: str,
    per_stop_seconds: int = Settings.PER_STOP_SECONDS,
) -> RouteMembership:
    """Forward-only membership check within one pass of the route.

    Loop routes are not wrapped around: an arrival stop that only appears
    before the departure stop does not connect.
    """
    codes = [stop.code for stop in sequence]
    try:
        departure_index = codes.index(departure_code)
        arrival_index = codes.index(arrival_code)
    except ValueError:
        return RouteMembership.not_connected()

    if arrival_index <= departure_index:
        return RouteMembership.not_connected()

    between = sequence[departure_index + 1:arrival_index]
    return RouteMembership(
        connects=True,
        intermediate_stops=[stop.display_code for stop in between],
        estimated_ride_seconds=(arrival_index - departure_index) * per_stop_seconds,
    )


def parse_checkpoints(points: list[dict]) -> list[GeoPoint]:
    """Route geometry from raw checkpoints; entries without usable coordinates are skipped."""
    path = []
    for point in points:
        if not isinstance(point, dict):
            continue
        try:
            path.append(GeoPoint(latitude=float(point["latitude"]), longitude=float(point["longitude"])))
        except (KeyError, TypeError, ValueError):
            continue
    return path


def _closest_index(path: list[GeoPoint], point: GeoPoint) -> int:
    return min(range(len(path)), key=lambda i: (distance_meters(path[i], point), i))


def ride_path_between(path: list[GeoPoint], departure: GeoPoint, arrival: GeoPoint) -> Optional[list[GeoPoint]]:
    """Slice of ``path`` from the checkpoint nearest ``departure`` to the one nearest ``arrival``.

    Forward only, like membership: None when the arrival snaps to the same or
    an earlier checkpoint.
    """
    if not path:
        return None
    start = _closest_index(path, departure)
    end = _closest_index(path, arrival)
    if end <= start:
        return None
    return path[start:end + 1]


class RouteMembershipResolver:
    """Resolves route membership and ride geometry against upstream route topology.

    Stop sequences and checkpoints are cached per route for the lifetime of the
    resolver. Failed fetches are not cached.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        per_stop_seconds: int = Settings.PER_STOP_SECONDS,
        settings: type[Settings] = Settings,
    ):
        self.http_client = http_client
        self.per_stop_seconds = per_stop_seconds
        self.settings = settings
        self._sequences: dict[RouteCode, list[RouteStop]] = {}
        self._checkpoints: dict[RouteCode, list[GeoPoint]] = {}
        self._locks: dict[tuple[str, RouteCode], asyncio.Lock] = {}

    async def _cached(self, kind: str, store: dict, route: RouteCode, fetch):
        cached = store.get(route)
        if cached is not None:
            return cached

        lock = self._locks.setdefault((kind, route), asyncio.Lock())
        async with lock:
            cached = store.get(route)
            if cached is not None:
                return cached
            value = await fetch()
            store[route] = value
            logger.info(f"Route {route.value}: {len(value)} {kind}")
            return value

    async def stop_sequence(self, route: RouteCode) -> list[RouteStop]:
        """Ordered stops served by ``route``. Raises UpstreamError on fetch failure."""

        async def fetch():
            points = await get_pickup_points(route.value, http_client=self.http_client, settings=self.settings)
            return parse_pickup_points(points)

        return await self._cached("stops", self._sequences, route, fetch)

    async def checkpoints(self, route: RouteCode) -> list[GeoPoint]:
        """Ordered waypoints of ``route``. Raises UpstreamError on fetch failure."""

        async def fetch():
            points = await get_checkpoints(route.value, http_client=self.http_client, settings=self.settings)
            return parse_checkpoints(points)

        return await self._cached("checkpoints", self._checkpoints, route, fetch)

    async def route_connects(
        self,
        route: RouteCode,
        departure_code: str,
        arrival_code: str,
    ) -> RouteMembership:
        sequence = await self.stop_sequence(route)
        return membership_from_sequence(sequence, departure_code, arrival_code, self.per_stop_seconds)

    async def ride_path(self, route: RouteCode, departure: Stop, arrival: Stop) -> Optional[list[GeoPoint]]:
        """Bus ride geometry between two stops, or None when it cannot be determined."""
        try:
            path = await self.checkpoints(route)
        except UpstreamError as e:
            logger.warning(f"No ride geometry for {route.value}: {e}")
            return None
        return ride_path_between(path, departure.location, arrival.location)

"""Itinerary optimizer: enumerate route/stop combinations, rank, and compare.

The planner fans out one task per (route, departure stop, arrival stop)
combination. Each task is bounded by ``CANDIDATE_TIMEOUT_SECONDS``; a task that
fails or times out only removes its own combination from the result. Cancelling
the caller cancels every pending task.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

import httpx

from shuttleroute.arrivals import ArrivalProvider
from shuttleroute.config import Settings
from shuttleroute.errors import InvalidPlanRequest, UpstreamError
from shuttleroute.models import GeoPoint, Itinerary, ItineraryComparison, RouteCode, Stop
from shuttleroute.route_membership import RouteMembershipResolver
from shuttleroute.stop_catalog import StopCatalog
from shuttleroute.synthesizer import synthesize
from shuttleroute.walking import WalkingSegmentCache, WalkingSegmentEstimator

logger = logging.getLogger("shuttleroute.planner")


def _sort_key(itinerary: Itinerary) -> tuple:
    return (
        itinerary.total_seconds,
        itinerary.route_code.value,
        itinerary.departure_stop.id,
        itinerary.arrival_stop.id,
    )


def choose_best(itineraries: list[Itinerary]) -> Optional[Itinerary]:
    """First catchable itinerary in time order, else the fastest one overall."""
    if not itineraries:
        return None
    return next((it for it in itineraries if it.catchable), itineraries[0])


def recommend(
    best: Optional[Itinerary],
    baseline_seconds: Optional[int],
    tolerance_seconds: int = Settings.RECOMMEND_TOLERANCE_SECONDS,
) -> bool:
    if best is None:
        return False
    if baseline_seconds is None:
        return True
    return best.total_seconds <= baseline_seconds + tolerance_seconds


def filter_arrive_by(itineraries: list[Itinerary], arrive_by: datetime, now: datetime) -> list[Itinerary]:
    """Keep itineraries that reach the destination by ``arrive_by`` if started at ``now``."""
    if arrive_by.tzinfo is not None and now.tzinfo is None:
        now = now.astimezone()
    elif arrive_by.tzinfo is None and now.tzinfo is not None:
        now = now.replace(tzinfo=None)
    budget = (arrive_by - now).total_seconds()
    return [it for it in itineraries if it.total_seconds <= budget]


def _configured_routes(codes) -> list[RouteCode]:
    routes = []
    for code in codes:
        try:
            routes.append(RouteCode(code))
        except ValueError:
            logger.warning(f"Ignoring unknown shuttle route code {code!r}")
    return routes


def _validate_point(name: str, point) -> GeoPoint:
    if point is None:
        raise InvalidPlanRequest(f"{name} is required")
    if not isinstance(point, GeoPoint):
        raise InvalidPlanRequest(f"{name} must be a GeoPoint, got {type(point).__name__}")
    return point


class ItineraryPlanner:
    def __init__(
        self,
        catalog: StopCatalog,
        resolver: RouteMembershipResolver,
        arrivals: ArrivalProvider,
        walking: WalkingSegmentEstimator,
        settings: type[Settings] = Settings,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.catalog = catalog
        self.resolver = resolver
        self.arrivals = arrivals
        self.walking = walking
        self.settings = settings
        self.clock = clock
        self.routes = _configured_routes(settings.SHUTTLE_ROUTES)

    @classmethod
    def create(
        cls,
        http_client: Optional[httpx.AsyncClient] = None,
        walking_cache: Optional[WalkingSegmentCache] = None,
        settings: type[Settings] = Settings,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "ItineraryPlanner":
        """Wire a planner whose collaborators share one HTTP client and one set of settings."""
        cache = walking_cache if walking_cache is not None else WalkingSegmentCache(settings.COORDINATE_PRECISION)
        return cls(
            catalog=StopCatalog(http_client, settings=settings),
            resolver=RouteMembershipResolver(http_client, per_stop_seconds=settings.PER_STOP_SECONDS, settings=settings),
            arrivals=ArrivalProvider(http_client, max_candidates=settings.MAX_ARRIVALS_PER_STOP, settings=settings),
            walking=WalkingSegmentEstimator(cache, http_client, settings=settings),
            settings=settings,
            clock=clock,
        )

    async def find_itineraries(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        arrive_by: Optional[datetime] = None,
    ) -> list[Itinerary]:
        itineraries, _ = await self._plan(origin, destination, arrive_by)
        return itineraries

    async def compare(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        baseline_seconds: Optional[int] = None,
        arrive_by: Optional[datetime] = None,
    ) -> ItineraryComparison:
        itineraries, warnings = await self._plan(origin, destination, arrive_by)
        best = choose_best(itineraries)
        return ItineraryComparison(
            candidates=itineraries,
            best=best,
            baseline_seconds=baseline_seconds,
            recommend_internal=recommend(best, baseline_seconds, self.settings.RECOMMEND_TOLERANCE_SECONDS),
            warnings=warnings,
        )

    async def _nearby(self, point: GeoPoint, radius: float, warnings: list[str], side: str) -> list[Stop]:
        found, error = await self.catalog.lookup(point, radius, self.settings.MAX_STOPS_PER_SIDE)
        if error is not None:
            warnings.append(f"{side} stops unavailable: {error}")
        return [stop for stop, _ in found]

    async def _plan(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        arrive_by: Optional[datetime],
    ) -> tuple[list[Itinerary], list[str]]:
        origin = _validate_point("origin", origin)
        destination = _validate_point("destination", destination)
        warnings: list[str] = []
        now = self.clock()

        origin_stops, destination_stops = await asyncio.gather(
            self._nearby(origin, self.settings.ORIGIN_RADIUS_METERS, warnings, "origin"),
            self._nearby(destination, self.settings.DESTINATION_RADIUS_METERS, warnings, "destination"),
        )
        if not origin_stops or not destination_stops:
            logger.info(
                f"No candidate stops (origin={len(origin_stops)}, destination={len(destination_stops)})"
            )
            return [], warnings

        combinations = [
            (route, departure, arrival)
            for route in self.routes
            for departure in origin_stops
            for arrival in destination_stops
            if departure.id != arrival.id
        ]
        tasks = [
            asyncio.wait_for(
                self._plan_combination(route, departure, arrival, origin, destination, now),
                timeout=self.settings.CANDIDATE_TIMEOUT_SECONDS,
            )
            for route, departure, arrival in combinations
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        itineraries = []
        for (route, departure, arrival), result in zip(combinations, results):
            label = f"{route.value} {departure.id}->{arrival.id}"
            if isinstance(result, (UpstreamError, asyncio.TimeoutError)):
                logger.warning(f"Dropped {label}: {type(result).__name__}: {result}")
                warnings.append(f"{label} dropped: {str(result) or type(result).__name__}")
            elif isinstance(result, BaseException):
                logger.error(f"Itinerary for {label} failed", exc_info=result)
                warnings.append(f"{label} dropped: {type(result).__name__}")
            elif result is not None:
                itineraries.append(result)

        itineraries.sort(key=_sort_key)
        if arrive_by is not None:
            itineraries = filter_arrive_by(itineraries, arrive_by, now)

        logger.info(f"Planned {len(itineraries)} itineraries from {len(combinations)} combinations")
        return itineraries, warnings

    async def _plan_combination(
        self,
        route: RouteCode,
        departure: Stop,
        arrival: Stop,
        origin: GeoPoint,
        destination: GeoPoint,
        now: datetime,
    ) -> Optional[Itinerary]:
        membership = await self.resolver.route_connects(route, departure.id, arrival.id)
        if not membership.connects:
            return None

        walk_to, walk_from, candidates, ride_path = await asyncio.gather(
            self.walking.walking_segment(origin, departure.location),
            self.walking.walking_segment(arrival.location, destination),
            self.arrivals.arrivals_for(departure.id, route),
            self.resolver.ride_path(route, departure, arrival),
        )
        return synthesize(
            route,
            departure,
            arrival,
            walk_to,
            walk_from,
            candidates,
            membership,
            catch_buffer_seconds=self.settings.CATCH_BUFFER_SECONDS,
            ride_path=ride_path,
            now=now,
        )

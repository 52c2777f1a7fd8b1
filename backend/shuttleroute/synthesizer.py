"""Turn one (route, departure stop, arrival stop) combination into a timed itinerary."""

from datetime import datetime, timedelta
from typing import Optional

from shuttleroute.config import Settings
from shuttleroute.geo import format_duration
from shuttleroute.models import (
    ArrivalCandidate,
    GeoPoint,
    Itinerary,
    RouteCode,
    RouteMembership,
    Stop,
    WalkSegment,
)


def is_catchable(walk_seconds: int, eta_seconds: int, catch_buffer_seconds: int) -> bool:
    return walk_seconds + catch_buffer_seconds <= eta_seconds


def select_candidate(
    candidates: list[ArrivalCandidate],
    walk_seconds: int,
    catch_buffer_seconds: int,
) -> tuple[ArrivalCandidate, bool]:
    """First catchable bus in upstream order, else the last one (marked not catchable)."""
    for candidate in candidates:
        if is_catchable(walk_seconds, candidate.eta_seconds, catch_buffer_seconds):
            return candidate, True
    return candidates[-1], False


def total_journey_seconds(walk_to: int, wait: int, ride: int, walk_from: int) -> int:
    # Walking to the stop overlaps with waiting for the bus.
    return max(walk_to, wait) + ride + walk_from


def synthesize(
    route: RouteCode,
    departure_stop: Stop,
    arrival_stop: Stop,
    walk_to_stop: WalkSegment,
    walk_from_stop: WalkSegment,
    candidates: list[ArrivalCandidate],
    membership: RouteMembership,
    catch_buffer_seconds: int = Settings.CATCH_BUFFER_SECONDS,
    ride_path: Optional[list[GeoPoint]] = None,
    now: Optional[datetime] = None,
) -> Optional[Itinerary]:
    """Build the itinerary for one combination, or None when no bus is reported.

    ``now`` anchors ``bus_arrival_at``; it defaults to the current local time.
    """
    if not candidates:
        return None
    if now is None:
        now = datetime.now()

    selected, catchable = select_candidate(candidates, walk_to_stop.duration_seconds, catch_buffer_seconds)
    wait_seconds = selected.eta_seconds
    ride_seconds = membership.estimated_ride_seconds
    total_seconds = total_journey_seconds(
        walk_to_stop.duration_seconds, wait_seconds, ride_seconds, walk_from_stop.duration_seconds
    )

    return Itinerary(
        route_code=route,
        departure_stop=departure_stop,
        arrival_stop=arrival_stop,
        intermediate_stops=list(membership.intermediate_stops),
        walk_to_stop=walk_to_stop,
        wait_seconds=wait_seconds,
        ride_seconds=ride_seconds,
        ride_path=ride_path,
        walk_from_stop=walk_from_stop,
        total_seconds=total_seconds,
        catchable=catchable,
        selected_vehicle_id=selected.vehicle_id,
        bus_arrival_at=now + timedelta(seconds=selected.eta_seconds),
        all_candidates=list(candidates),
        summary=(
            f"{route.value} from {departure_stop.short_code} to {arrival_stop.short_code}"
            f" · {format_duration(total_seconds)}"
        ),
    )

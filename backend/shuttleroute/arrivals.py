"""Live arrival estimates for a stop + route pair."""

import logging
import math
import re
from typing import Optional

import httpx

from shuttleroute.config import Settings
from shuttleroute.models import ArrivalCandidate, RouteCode
from shuttleroute.nextbus_client import get_shuttle_service

logger = logging.getLogger("shuttleroute.arrivals")

# (minutes field, vehicle plate field) in upstream dispatch order
ARRIVAL_FIELDS = [
    ("arrivalTime", "arrivalTime_veh_plate"),
    ("nextArrivalTime", "nextArrivalTime_veh_plate"),
]

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def parse_arrival_minutes(value) -> Optional[int]:
    """Normalize an upstream arrival field to whole minutes.

    Accepts ints, floats and strings with a leading integer ("12", "12 min").
    Anything else (None, "", "-", "Arr", "N/A", negatives) is absent, never 0.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        minutes = value
    elif isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            return None
        minutes = int(value)
    elif isinstance(value, str):
        match = _LEADING_INT_RE.match(value)
        if not match:
            return None
        minutes = int(match.group(1))
    else:
        return None

    if minutes < 0:
        return None
    return minutes


def extract_candidates(
    shuttle: dict,
    max_candidates: int = Settings.MAX_ARRIVALS_PER_STOP,
) -> list[ArrivalCandidate]:
    """Arrival candidates from one shuttle entry, in upstream order (not re-sorted)."""
    candidates = []
    for minutes_field, plate_field in ARRIVAL_FIELDS[:max_candidates]:
        minutes = parse_arrival_minutes(shuttle.get(minutes_field))
        if minutes is None:
            continue
        candidates.append(ArrivalCandidate(
            eta_seconds=minutes * 60,
            vehicle_id=str(shuttle.get(plate_field) or ""),
        ))
    return candidates


class ArrivalProvider:
    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        max_candidates: int = Settings.MAX_ARRIVALS_PER_STOP,
        settings: type[Settings] = Settings,
    ):
        self.http_client = http_client
        self.max_candidates = max_candidates
        self.settings = settings

    async def arrivals_for(self, stop_code: str, route: RouteCode) -> list[ArrivalCandidate]:
        """Upcoming buses of ``route`` at ``stop_code``. Raises UpstreamError on fetch failure."""
        shuttles = await get_shuttle_service(stop_code, http_client=self.http_client, settings=self.settings)
        entry = next(
            (s for s in shuttles if isinstance(s, dict) and s.get("name") == route.value),
            None,
        )
        if entry is None:
            logger.debug(f"No {route.value} entry at {stop_code}")
            return []
        return extract_candidates(entry, self.max_candidates)

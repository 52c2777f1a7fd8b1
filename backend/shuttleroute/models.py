from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RouteCode(str, Enum):
    A1 = "A1"
    A2 = "A2"
    D1 = "D1"
    D2 = "D2"
    BTC = "BTC"
    L = "L"
    E = "E"
    K = "K"


class WalkSource(str, Enum):
    DIRECTIONS = "directions"
    HEURISTIC = "heuristic"


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class Stop(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str  # upstream system code, e.g. "YIH", "UHC-OPP"
    display_name: str
    short_code: str
    location: GeoPoint


class RouteMembership(BaseModel):
    connects: bool
    intermediate_stops: list[str] = Field(default_factory=list)
    estimated_ride_seconds: int = 0

    @classmethod
    def not_connected(cls) -> RouteMembership:
        return cls(connects=False)


class ArrivalCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    eta_seconds: int = Field(ge=0)
    vehicle_id: str = ""


class WalkSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    distance_meters: float
    duration_seconds: int
    path: Optional[list[GeoPoint]] = None
    source: WalkSource = WalkSource.HEURISTIC


class Itinerary(BaseModel):
    """One walk -> wait -> ride -> walk journey via a single shuttle route."""

    model_config = ConfigDict(frozen=True)

    route_code: RouteCode
    departure_stop: Stop
    arrival_stop: Stop
    intermediate_stops: list[str] = Field(default_factory=list)
    walk_to_stop: WalkSegment
    wait_seconds: int
    ride_seconds: int
    ride_path: Optional[list[GeoPoint]] = None  # checkpoints from departure to arrival stop
    walk_from_stop: WalkSegment
    total_seconds: int
    catchable: bool
    selected_vehicle_id: str = ""
    bus_arrival_at: Optional[datetime] = None  # when the selected bus reaches the departure stop
    all_candidates: list[ArrivalCandidate] = Field(default_factory=list)
    summary: str = ""


class ItineraryComparison(BaseModel):
    candidates: list[Itinerary] = Field(default_factory=list)
    best: Optional[Itinerary] = None
    baseline_seconds: Optional[int] = None
    recommend_internal: bool = False
    warnings: list[str] = Field(default_factory=list)


# --- HTTP request/response models ---


class PlanRequest(BaseModel):
    origin: GeoPoint
    destination: GeoPoint
    baseline_seconds: Optional[int] = Field(default=None, ge=0)
    arrive_by: Optional[datetime] = None  # only keep itineraries that arrive by this time


class ItineraryResponse(BaseModel):
    itineraries: list[Itinerary]
    origin: GeoPoint
    destination: GeoPoint


class NearbyStop(BaseModel):
    stop: Stop
    distance_meters: float


class NearbyStopsResponse(BaseModel):
    stops: list[NearbyStop]
    location: GeoPoint

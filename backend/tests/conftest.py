"""
Pytest configuration and shared fixtures for the ShuttleRoute backend tests.

Upstream services are faked with httpx.MockTransport so no test touches the
network.
"""
import asyncio
import math

import httpx
import pytest

from shuttleroute.config import Settings
from shuttleroute.geo import EARTH_RADIUS_M
from shuttleroute.models import GeoPoint


def offset_north(point: GeoPoint, meters: float) -> GeoPoint:
    """Point ``meters`` due north of ``point`` (negative = south)."""
    return GeoPoint(
        latitude=point.latitude + math.degrees(meters / EARTH_RADIUS_M),
        longitude=point.longitude,
    )


def bus_stop(code: str, location: GeoPoint) -> dict:
    return {
        "name": code,
        "caption": f"{code} Hall",
        "ShortName": f"{code}-S",
        "LongName": f"{code} Hall",
        "latitude": location.latitude,
        "longitude": location.longitude,
    }


def pickup(code: str) -> dict:
    return {"pickupname": code, "busstopcode": code, "ShortName": f"{code}-S", "routeid": 1}


def checkpoint(point_id: str, location: GeoPoint) -> dict:
    return {"PointID": point_id, "latitude": location.latitude, "longitude": location.longitude, "routeid": 1}


def shuttle(route: str, arrival, next_arrival, plate="PA1234", next_plate="PB5678") -> dict:
    return {
        "name": route,
        "arrivalTime": arrival,
        "nextArrivalTime": next_arrival,
        "arrivalTime_veh_plate": plate,
        "nextArrivalTime_veh_plate": next_plate,
        "passengers": "Low",
        "nextPassengers": "Medium",
    }


class FakeUpstream:
    """In-memory stand-in for the NextBus gateway and the Routes API."""

    def __init__(self):
        self.stops: list[dict] = []
        self.pickup_points: dict[str, list[dict]] = {}
        self.shuttles: dict[str, list[dict]] = {}
        self.checkpoints: dict[str, list[dict]] = {}
        self.failing_paths: set[str] = set()
        self.failing_stops: set[str] = set()
        self.slow_stops: dict[str, float] = {}
        self.walking_routes: list[dict] = []
        self.calls: dict[str, int] = {}
        self.hosts: set[str] = set()

    def _count(self, key: str) -> None:
        self.calls[key] = self.calls.get(key, 0) + 1

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = request.url.params
        self.hosts.add(request.url.host)

        if path.endswith("computeRoutes"):
            self._count("directions")
            if "directions" in self.failing_paths:
                return httpx.Response(500, json={"error": "boom"})
            return httpx.Response(200, json={"routes": self.walking_routes})

        if path.endswith("/busstops"):
            self._count("busstops")
            if "busstops" in self.failing_paths:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json={"BusStopsResult": {"busstops": self.stops}})

        if path.endswith("/pickuppoint"):
            route = params.get("route_code")
            self._count(f"pickuppoint:{route}")
            points = self.pickup_points.get(route, [])
            return httpx.Response(200, json={"PickupPointResult": {"pickuppoint": points}})

        if path.endswith("/checkpoint"):
            route = params.get("route_code")
            self._count(f"checkpoint:{route}")
            if "checkpoint" in self.failing_paths:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json={"CheckPointResult": {"CheckPoint": self.checkpoints.get(route, [])}})

        if path.endswith("/shuttleservice"):
            stop = params.get("busstopname")
            self._count(f"shuttleservice:{stop}")
            if stop in self.slow_stops:
                await asyncio.sleep(self.slow_stops[stop])
            if stop in self.failing_stops:
                return httpx.Response(500, json={"error": "internal"})
            return httpx.Response(200, json={
                "ShuttleServiceResult": {
                    "Timestamp": "2026-10-18T09:00:00+08:00",
                    "name": stop,
                    "caption": stop,
                    "shuttles": self.shuttles.get(stop, []),
                }
            })

        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


# ============================================================
# SCENARIO: origin 400m from DEP, destination 200m from ARR,
# route A1 runs DEP -> MID -> ARR
# ============================================================

DEP_LOCATION = GeoPoint(latitude=1.2950, longitude=103.7750)
MID_LOCATION = GeoPoint(latitude=1.2990, longitude=103.7900)
ARR_LOCATION = GeoPoint(latitude=1.3040, longitude=103.7750)


@pytest.fixture
def origin() -> GeoPoint:
    return offset_north(DEP_LOCATION, -400)


@pytest.fixture
def destination() -> GeoPoint:
    return offset_north(ARR_LOCATION, 200)


@pytest.fixture
def upstream() -> FakeUpstream:
    fake = FakeUpstream()
    fake.stops = [
        bus_stop("DEP", DEP_LOCATION),
        bus_stop("MID", MID_LOCATION),
        bus_stop("ARR", ARR_LOCATION),
    ]
    fake.pickup_points = {"A1": [pickup("DEP"), pickup("MID"), pickup("ARR")]}
    fake.shuttles = {"DEP": [shuttle("A1", "5", "15"), shuttle("D2", "1", "8")]}
    return fake


@pytest.fixture
def http_client(upstream) -> httpx.AsyncClient:
    return upstream.client()


@pytest.fixture
def directions_key(monkeypatch):
    monkeypatch.setattr(Settings, "GOOGLE_MAPS_API_KEY", "test-key")
    return "test-key"


@pytest.fixture(autouse=True)
def _no_directions_key(monkeypatch):
    """Walking legs fall back to the heuristic unless a test opts in."""
    monkeypatch.setattr(Settings, "GOOGLE_MAPS_API_KEY", "")

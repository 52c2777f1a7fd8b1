import logging

from fastapi import APIRouter, HTTPException, Query

from shuttleroute.config import Settings
from shuttleroute.errors import InvalidPlanRequest
from shuttleroute.models import (
    GeoPoint,
    ItineraryComparison,
    ItineraryResponse,
    NearbyStop,
    NearbyStopsResponse,
    PlanRequest,
)

logger = logging.getLogger("shuttleroute.routes")

router = APIRouter()


def _get_state():
    from shuttleroute.main import app_state
    return app_state


def _get_planner():
    planner = _get_state().get("planner")
    if planner is None:
        raise HTTPException(status_code=503, detail="Planner not initialized")
    return planner


@router.get("/health")
async def health():
    return {"status": "ok", "service": "ShuttleRoute API"}


@router.get("/config")
async def get_config():
    """Planner tunables currently in effect."""
    return Settings.get_config_dict()


@router.get("/stops/nearby", response_model=NearbyStopsResponse)
async def nearby_stops(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(Settings.ORIGIN_RADIUS_METERS, gt=0, le=5000, description="Radius in meters"),
    limit: int = Query(Settings.MAX_STOPS_PER_SIDE, ge=1, le=50),
):
    """Stops within ``radius`` meters of a point, nearest first."""
    planner = _get_planner()
    location = GeoPoint(latitude=lat, longitude=lng)
    found, error = await planner.catalog.lookup(location, radius, limit)
    if error is not None:
        raise HTTPException(status_code=502, detail=f"Stop catalog unavailable: {error}")

    return NearbyStopsResponse(
        stops=[NearbyStop(stop=stop, distance_meters=round(dist, 1)) for stop, dist in found],
        location=location,
    )


@router.post("/itineraries", response_model=ItineraryResponse)
async def find_itineraries(request: PlanRequest):
    """All shuttle itineraries between two points, fastest first."""
    planner = _get_planner()
    try:
        itineraries = await planner.find_itineraries(
            request.origin, request.destination, arrive_by=request.arrive_by
        )
    except InvalidPlanRequest as e:
        raise HTTPException(status_code=422, detail=str(e))

    return ItineraryResponse(
        itineraries=itineraries,
        origin=request.origin,
        destination=request.destination,
    )


@router.post("/compare", response_model=ItineraryComparison)
async def compare(request: PlanRequest):
    """Best shuttle itinerary and whether to recommend it over the baseline trip."""
    planner = _get_planner()
    try:
        comparison = await planner.compare(
            request.origin,
            request.destination,
            baseline_seconds=request.baseline_seconds,
            arrive_by=request.arrive_by,
        )
    except InvalidPlanRequest as e:
        raise HTTPException(status_code=422, detail=str(e))

    if comparison.warnings:
        logger.info(f"Comparison completed with {len(comparison.warnings)} warnings")
    return comparison

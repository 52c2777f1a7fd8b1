"""Client for the campus NextBus shuttle API (stops, pickup points, checkpoints, live arrivals)."""

import logging
from typing import Optional

import httpx

from shuttleroute.config import Settings
from shuttleroute.errors import UpstreamError

logger = logging.getLogger("shuttleroute.nextbus")

SERVICE = "nextbus"


def _auth(settings: type[Settings]) -> Optional[httpx.BasicAuth]:
    if settings.NEXTBUS_USERNAME:
        return httpx.BasicAuth(settings.NEXTBUS_USERNAME, settings.NEXTBUS_PASSWORD)
    return None


async def _get_json(
    path: str,
    params: Optional[dict] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    settings: type[Settings] = Settings,
) -> dict:
    url = f"{settings.NEXTBUS_BASE_URL.rstrip('/')}{path}"
    timeout = settings.UPSTREAM_TIMEOUT_SECONDS
    try:
        if http_client:
            resp = await http_client.get(url, params=params, auth=_auth(settings), timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.get(url, params=params, auth=_auth(settings))
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPError as e:
        raise UpstreamError(SERVICE, f"GET {path} failed: {type(e).__name__}: {e}") from e
    except ValueError as e:
        raise UpstreamError(SERVICE, f"GET {path} returned invalid JSON") from e

    if not isinstance(data, dict):
        raise UpstreamError(SERVICE, f"GET {path} returned {type(data).__name__}, expected object")
    return data


def _result_list(data: dict, result_key: str, list_key: str) -> Optional[list]:
    result = data.get(result_key)
    if not isinstance(result, dict):
        return None
    items = result.get(list_key)
    return items if isinstance(items, list) else None


async def get_bus_stops(
    http_client: Optional[httpx.AsyncClient] = None,
    settings: type[Settings] = Settings,
) -> list[dict]:
    """All bus stops on campus: [{name, caption, ShortName, LongName, latitude, longitude}]."""
    data = await _get_json("/busstops", http_client=http_client, settings=settings)
    stops = _result_list(data, "BusStopsResult", "busstops")
    if stops is None:
        raise UpstreamError(SERVICE, "bus stop payload missing BusStopsResult.busstops")
    logger.debug(f"Fetched {len(stops)} bus stops")
    return stops


async def get_pickup_points(
    route_code: str,
    http_client: Optional[httpx.AsyncClient] = None,
    settings: type[Settings] = Settings,
) -> list[dict]:
    """Ordered pickup points (stops) served by a route."""
    data = await _get_json("/pickuppoint", {"route_code": route_code}, http_client=http_client, settings=settings)
    points = _result_list(data, "PickupPointResult", "pickuppoint")
    if points is None:
        raise UpstreamError(SERVICE, f"pickup point payload for {route_code} missing pickuppoint list")
    return points


async def get_checkpoints(
    route_code: str,
    http_client: Optional[httpx.AsyncClient] = None,
    settings: type[Settings] = Settings,
) -> list[dict]:
    """Ordered waypoints tracing a route: [{PointID, latitude, longitude, routeid}]."""
    data = await _get_json("/checkpoint", {"route_code": route_code}, http_client=http_client, settings=settings)
    points = _result_list(data, "CheckPointResult", "CheckPoint")
    if points is None:
        raise UpstreamError(SERVICE, f"checkpoint payload for {route_code} missing CheckPoint list")
    return points


async def get_shuttle_service(
    stop_code: str,
    http_client: Optional[httpx.AsyncClient] = None,
    settings: type[Settings] = Settings,
) -> list[dict]:
    """Per-route live arrival entries at a stop.

    ``stop_code`` must be the stop's system code (BusStop.name), not its ShortName.
    """
    data = await _get_json("/shuttleservice", {"busstopname": stop_code}, http_client=http_client, settings=settings)
    shuttles = _result_list(data, "ShuttleServiceResult", "shuttles")
    if shuttles is None:
        raise UpstreamError(SERVICE, f"shuttle service payload for {stop_code} missing shuttles list")
    return shuttles

"""Stop catalog access: all known stops and nearest-stop lookups."""

import asyncio
import logging
import time
from typing import Optional

import httpx
import numpy as np
import pandas as pd

from shuttleroute.config import Settings
from shuttleroute.errors import UpstreamError
from shuttleroute.geo import EARTH_RADIUS_M
from shuttleroute.models import GeoPoint, Stop
from shuttleroute.nextbus_client import get_bus_stops

logger = logging.getLogger("shuttleroute.catalog")


def build_stop_frame(raw_stops: list[dict]) -> pd.DataFrame:
    """Normalize upstream bus stop records into an (id, name, short, lat, lng) frame.

    Non-object entries and records without a code or usable coordinates are
    dropped.
    """
    columns = ["id", "display_name", "short_code", "lat", "lng"]
    records = [r for r in raw_stops if isinstance(r, dict)]
    if len(records) != len(raw_stops):
        logger.warning(f"Skipped {len(raw_stops) - len(records)} bus stop entries that are not objects")
    if not records:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame.from_records(records)
    for col in ("name", "LongName", "caption", "ShortName", "latitude", "longitude"):
        if col not in df.columns:
            df[col] = None

    frame = pd.DataFrame({
        "id": df["name"],
        "display_name": df["LongName"].fillna(df["caption"]).fillna(df["name"]),
        "short_code": df["ShortName"].fillna(df["name"]),
        "lat": pd.to_numeric(df["latitude"], errors="coerce"),
        "lng": pd.to_numeric(df["longitude"], errors="coerce"),
    })
    valid = (
        frame["id"].map(lambda v: isinstance(v, str) and v != "")
        & frame["lat"].between(-90, 90)
        & frame["lng"].between(-180, 180)
    )
    dropped = int((~valid).sum())
    if dropped:
        logger.warning(f"Skipped {dropped} bus stops with missing code or coordinates")
    frame = frame[valid].drop_duplicates(subset="id", keep="first")
    return frame.reset_index(drop=True)


def _haversine_series(point: GeoPoint, lat: pd.Series, lng: pd.Series) -> pd.Series:
    lat_r = np.radians(point.latitude)
    stops_lat_r = np.radians(lat)
    dlat = stops_lat_r - lat_r
    dlng = np.radians(lng) - np.radians(point.longitude)
    a = np.sin(dlat / 2) ** 2 + np.cos(lat_r) * np.cos(stops_lat_r) * np.sin(dlng / 2) ** 2
    a = a.clip(upper=1.0)
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


class StopCatalog:
    """Cached view of the upstream stop catalog.

    The catalog is refetched once it is older than ``ttl_seconds``. Lookups
    never mutate the cached frame.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        ttl_seconds: Optional[float] = None,
        settings: type[Settings] = Settings,
    ):
        self.http_client = http_client
        self.settings = settings
        self.ttl_seconds = settings.STOP_CATALOG_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._frame: Optional[pd.DataFrame] = None
        self._stops: dict[str, Stop] = {}
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return self._frame is not None and (time.monotonic() - self._fetched_at) < self.ttl_seconds

    async def _load(self) -> pd.DataFrame:
        """Return the catalog frame, fetching it if stale. Raises UpstreamError."""
        if self._is_fresh():
            return self._frame

        async with self._lock:
            if self._is_fresh():
                return self._frame

            raw = await get_bus_stops(http_client=self.http_client, settings=self.settings)
            frame = build_stop_frame(raw)
            self._stops = {
                row.id: Stop(
                    id=row.id,
                    display_name=str(row.display_name),
                    short_code=str(row.short_code),
                    location=GeoPoint(latitude=float(row.lat), longitude=float(row.lng)),
                )
                for row in frame.itertuples(index=False)
            }
            self._frame = frame
            self._fetched_at = time.monotonic()
            logger.info(f"Stop catalog loaded: {len(frame)} stops")
            return frame

    def invalidate(self) -> None:
        self._fetched_at = 0.0

    async def all_stops(self) -> list[Stop]:
        frame = await self._load()
        return [self._stops[stop_id] for stop_id in frame["id"]]

    async def lookup(
        self,
        point: GeoPoint,
        max_distance_meters: float,
        max_count: int,
    ) -> tuple[list[tuple[Stop, float]], Optional[UpstreamError]]:
        """Stops within radius with their distances, nearest first, plus the fetch error if any.

        The error belongs to this call only; when it is set the stop list is empty.
        """
        try:
            frame = await self._load()
        except UpstreamError as e:
            logger.warning(f"Stop catalog unavailable: {e}")
            return [], e

        if frame.empty or max_count <= 0:
            return [], None

        with_dist = frame.assign(distance_m=_haversine_series(point, frame["lat"], frame["lng"]))
        nearby = (
            with_dist[with_dist["distance_m"] <= max_distance_meters]
            .sort_values(["distance_m", "id"], kind="mergesort")
            .head(max_count)
        )
        found = [(self._stops[row.id], float(row.distance_m)) for row in nearby.itertuples(index=False)]
        return found, None

    async def stops_within(
        self,
        point: GeoPoint,
        max_distance_meters: float,
        max_count: int,
    ) -> list[tuple[Stop, float]]:
        found, _ = await self.lookup(point, max_distance_meters, max_count)
        return found

    async def nearest_stops(
        self,
        point: GeoPoint,
        max_distance_meters: float,
        max_count: int,
    ) -> list[Stop]:
        return [stop for stop, _ in await self.stops_within(point, max_distance_meters, max_count)]

    async def exact_stop(self, code: str) -> Optional[Stop]:
        try:
            await self._load()
        except UpstreamError as e:
            logger.warning(f"Stop catalog unavailable: {e}")
            return None
        return self._stops.get(code)

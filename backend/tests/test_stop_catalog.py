"""
Tests for stop catalog access and nearest-stop lookups.
"""
import pytest

from shuttleroute.config import Settings
from shuttleroute.models import GeoPoint
from shuttleroute.stop_catalog import StopCatalog, build_stop_frame

from conftest import ARR_LOCATION, DEP_LOCATION, bus_stop, offset_north


class TestBuildStopFrame:

    def test_skips_malformed_records(self):
        frame = build_stop_frame([
            bus_stop("OK", DEP_LOCATION),
            {"name": "NOCOORD", "ShortName": "N"},
            {"name": "BADLAT", "latitude": "abc", "longitude": 103.7},
            {"ShortName": "NONAME", "latitude": 1.3, "longitude": 103.7},
            {"name": "OUTOFRANGE", "latitude": 120.0, "longitude": 103.7},
        ])
        assert list(frame["id"]) == ["OK"]

    def test_skips_non_object_entries(self):
        frame = build_stop_frame([None, "YIH", 7, bus_stop("OK", DEP_LOCATION), ["x"]])
        assert list(frame["id"]) == ["OK"]

    def test_only_non_object_entries(self):
        assert build_stop_frame([None, None]).empty

    def test_empty(self):
        assert build_stop_frame([]).empty

    def test_display_name_fallbacks(self):
        frame = build_stop_frame([{"name": "YIH", "caption": "Yusof Ishak House", "latitude": 1.29, "longitude": 103.77}])
        row = frame.iloc[0]
        assert row["display_name"] == "Yusof Ishak House"
        assert row["short_code"] == "YIH"


class TestNearestStops:

    @pytest.mark.asyncio
    async def test_sorted_by_distance_and_truncated(self, upstream, http_client):
        here = offset_north(DEP_LOCATION, -50)
        upstream.stops = [
            bus_stop("FAR", offset_north(here, 700)),
            bus_stop("NEAR", offset_north(here, 100)),
            bus_stop("MIDDLE", offset_north(here, 300)),
            bus_stop("OUT", offset_north(here, 900)),
        ]
        catalog = StopCatalog(http_client)

        stops = await catalog.nearest_stops(here, 800, 2)
        assert [s.id for s in stops] == ["NEAR", "MIDDLE"]

        stops = await catalog.nearest_stops(here, 800, 10)
        assert [s.id for s in stops] == ["NEAR", "MIDDLE", "FAR"]

    @pytest.mark.asyncio
    async def test_ties_broken_by_id(self, upstream, http_client):
        here = GeoPoint(latitude=1.30, longitude=103.77)
        upstream.stops = [
            bus_stop("ZED", offset_north(here, 100)),
            bus_stop("ALPHA", offset_north(here, 100)),
        ]
        stops = await StopCatalog(http_client).nearest_stops(here, 500, 3)
        assert [s.id for s in stops] == ["ALPHA", "ZED"]

    @pytest.mark.asyncio
    async def test_does_not_mutate_catalog(self, http_client):
        catalog = StopCatalog(http_client)
        before = await catalog.all_stops()
        await catalog.nearest_stops(ARR_LOCATION, 10, 1)
        after = await catalog.all_stops()
        assert before == after
        assert list(catalog._frame.columns) == ["id", "display_name", "short_code", "lat", "lng"]

    @pytest.mark.asyncio
    async def test_catalog_cached_within_ttl(self, upstream, http_client):
        catalog = StopCatalog(http_client, ttl_seconds=600)
        await catalog.nearest_stops(DEP_LOCATION, 100, 3)
        await catalog.nearest_stops(ARR_LOCATION, 100, 3)
        assert upstream.calls["busstops"] == 1

        catalog.invalidate()
        await catalog.all_stops()
        assert upstream.calls["busstops"] == 2

    @pytest.mark.asyncio
    async def test_failure_returns_empty_with_error(self, upstream, http_client):
        upstream.failing_paths.add("busstops")
        catalog = StopCatalog(http_client)

        assert await catalog.nearest_stops(DEP_LOCATION, 800, 3) == []
        found, error = await catalog.lookup(DEP_LOCATION, 800, 3)
        assert found == []
        assert error.service == "nextbus"

        upstream.failing_paths.clear()
        found, error = await catalog.lookup(DEP_LOCATION, 10, 3)
        assert [s.id for s, _ in found] == ["DEP"]
        assert error is None

    @pytest.mark.asyncio
    async def test_error_belongs_to_the_failed_call_only(self, upstream, http_client):
        catalog = StopCatalog(http_client)
        upstream.failing_paths.add("busstops")
        _, error = await catalog.lookup(DEP_LOCATION, 800, 3)
        assert error is not None

        upstream.failing_paths.clear()
        nowhere = GeoPoint(latitude=-33.0, longitude=151.0)
        assert await catalog.lookup(nowhere, 800, 3) == ([], None)

    @pytest.mark.asyncio
    async def test_non_object_entries_do_not_break_lookups(self, upstream, http_client):
        upstream.stops.extend([None, "MID", 42])
        stops = await StopCatalog(http_client).nearest_stops(DEP_LOCATION, 10, 3)
        assert [s.id for s in stops] == ["DEP"]

    @pytest.mark.asyncio
    async def test_uses_given_settings(self, upstream, http_client):
        class GatewaySettings(Settings):
            NEXTBUS_BASE_URL = "http://campus-gateway.test/bus"

        await StopCatalog(http_client, settings=GatewaySettings).all_stops()
        assert upstream.hosts == {"campus-gateway.test"}

    @pytest.mark.asyncio
    async def test_exact_stop(self, http_client):
        catalog = StopCatalog(http_client)
        stop = await catalog.exact_stop("MID")
        assert stop is not None
        assert stop.short_code == "MID-S"
        assert await catalog.exact_stop("NOPE") is None

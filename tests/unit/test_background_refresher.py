"""
Unit tests for BackgroundRefresher.

The weather service and geocoder are replaced by recording stand-ins;
the refresher only needs ``prefetch_weather_data`` and ``geocode``.
"""

import asyncio

import pytest

from weather_station.api.services.errors import NotFoundError
from weather_station.api.services.nws.nws_models import Coordinates
from weather_station.infrastructure.scheduler.background_refresher import (
    BackgroundRefresher,
)
from weather_station.infrastructure.storage.location_store import (
    LocationStore,
)

from tests.conftest import LOCATION_A, LOCATION_B

KNOWN_ZIPS = {
    loc["zip"]: Coordinates(lat=loc["lat"], lon=loc["lon"])
    for loc in (LOCATION_A, LOCATION_B)
}


class RecordingWeatherService:
    def __init__(self, delay: float = 0.0, failing: set | None = None):
        self.calls = []
        self.delay = delay
        self.failing = failing or set()

    async def prefetch_weather_data(self, lat, lon, postal_code=None):
        self.calls.append((lat, lon, postal_code))
        if self.delay:
            await asyncio.sleep(self.delay)
        if (lat, lon) in self.failing:
            raise NotFoundError(f"No grid point for {lat},{lon}")


class SharedFetchWeatherService:
    """Prefetches through ``TTLCache.get_or_fetch`` like WeatherService."""

    def __init__(self, cache, cancelled: set | None = None):
        self.cache = cache
        self.cancelled = cancelled or set()
        self.release = asyncio.Event()
        self.calls = 0
        self.fetches = 0

    async def prefetch_weather_data(self, lat, lon, postal_code=None):
        self.calls += 1
        if (lat, lon) in self.cancelled:
            raise asyncio.CancelledError()
        return await self.cache.get_or_fetch(
            f"points:{lat:.4f},{lon:.4f}", self._fetch
        )

    async def _fetch(self):
        self.fetches += 1
        await self.release.wait()
        return {"gridId": "FWD"}


class FakeGeocoder:
    def __init__(self):
        self.calls = []

    async def geocode(self, postal_code):
        self.calls.append(postal_code)
        if postal_code not in KNOWN_ZIPS:
            raise NotFoundError(f"ZIP code not found: {postal_code}")
        return KNOWN_ZIPS[postal_code]


@pytest.fixture
def service():
    return RecordingWeatherService()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


# ============================================================================
# CYCLES
# ============================================================================


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_each_location_refreshed_once(self, service, geocoder):
        refresher = BackgroundRefresher(
            service, geocoder, locations=["75454", "60601"]
        )
        result = await refresher.run_cycle()

        assert sorted(service.calls) == sorted(
            [
                (LOCATION_A["lat"], LOCATION_A["lon"], "75454"),
                (LOCATION_B["lat"], LOCATION_B["lon"], "60601"),
            ]
        )
        assert (result.succeeded, result.failed) == (2, 0)
        assert result.total == 2
        assert refresher.cycles_completed == 1
        assert refresher.last_result is result

    @pytest.mark.asyncio
    async def test_coordinate_locations_skip_geocoding(
        self, service, geocoder
    ):
        point = Coordinates(lat=LOCATION_B["lat"], lon=LOCATION_B["lon"])
        refresher = BackgroundRefresher(service, geocoder, locations=[point])
        await refresher.run_cycle()

        assert geocoder.calls == []
        assert service.calls == [(point.lat, point.lon, None)]

    @pytest.mark.asyncio
    async def test_failures_are_counted_not_raised(self, geocoder):
        service = RecordingWeatherService(
            failing={(LOCATION_B["lat"], LOCATION_B["lon"])}
        )
        refresher = BackgroundRefresher(
            service, geocoder, locations=["75454", "60601", "00000"]
        )
        result = await refresher.run_cycle()

        assert (result.succeeded, result.failed) == (1, 2)
        assert set(result.errors) == {"60601", "00000"}
        assert "00000" in result.errors["00000"]

    @pytest.mark.asyncio
    async def test_zip_without_geocoder_fails_that_location(self, service):
        point = Coordinates(lat=1.0, lon=2.0)
        refresher = BackgroundRefresher(service, locations=["75454", point])
        result = await refresher.run_cycle()
        assert (result.succeeded, result.failed) == (1, 1)
        assert "75454" in result.errors

    @pytest.mark.asyncio
    async def test_empty_cycle(self, service):
        result = await BackgroundRefresher(service).run_cycle()
        assert result.total == 0
        assert service.calls == []


# ============================================================================
# LOCATIONS
# ============================================================================


class TestLocations:
    def test_store_zip_codes_are_included_and_deduplicated(
        self, service, geocoder, tmp_path
    ):
        store = LocationStore(tmp_path, seed_postal_codes=["60601", "75454"])
        store.initialize()
        refresher = BackgroundRefresher(
            service,
            geocoder,
            locations=["75454", " 75454 ", Coordinates(lat=1, lon=2)],
            location_store=store,
        )
        locations = refresher.get_locations()

        assert locations[0] == "75454"
        assert locations[2] == "60601"
        assert len(locations) == 3

    @pytest.mark.asyncio
    async def test_zip_added_to_store_is_picked_up(
        self, service, geocoder, tmp_path
    ):
        store = LocationStore(tmp_path)
        store.initialize()
        refresher = BackgroundRefresher(
            service, geocoder, location_store=store
        )
        await refresher.run_cycle()
        assert service.calls == []

        store.add("60601")
        await refresher.run_cycle()
        assert service.calls == [
            (LOCATION_B["lat"], LOCATION_B["lon"], "60601")
        ]

    def test_invalid_interval(self, service):
        with pytest.raises(ValueError):
            BackgroundRefresher(service, interval=0)


# ============================================================================
# SCHEDULING
# ============================================================================


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class TestScheduling:
    @pytest.mark.asyncio
    async def test_start_runs_cycles_until_stopped(self, service, geocoder):
        refresher = BackgroundRefresher(
            service, geocoder, locations=["75454"], interval=0.05
        )
        assert refresher.start() is refresher
        assert refresher.is_running

        await _wait_for(lambda: refresher.cycles_completed >= 2)
        await refresher.stop()

        assert not refresher.is_running
        completed = refresher.cycles_completed
        await asyncio.sleep(0.1)
        assert refresher.cycles_completed == completed

    @pytest.mark.asyncio
    async def test_first_cycle_waits_when_not_run_on_start(
        self, service, geocoder
    ):
        refresher = BackgroundRefresher(
            service,
            geocoder,
            locations=["75454"],
            interval=60,
            run_on_start=False,
        ).start()
        await asyncio.sleep(0.05)
        assert refresher.cycles_completed == 0
        await refresher.stop()

    @pytest.mark.asyncio
    async def test_overrun_starts_next_cycle_without_overlap(self, geocoder):
        service = RecordingWeatherService(delay=0.08)
        refresher = BackgroundRefresher(
            service, geocoder, locations=["75454"], interval=0.03
        ).start()

        await _wait_for(lambda: refresher.cycles_completed >= 2)
        await refresher.stop()

        assert refresher.cycles_overrun >= 1
        # one location per cycle, cycles never overlap
        assert len(service.calls) <= refresher.cycles_completed + 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self, service):
        await BackgroundRefresher(service).stop()

    @pytest.mark.asyncio
    async def test_status(self, service, geocoder):
        refresher = BackgroundRefresher(
            service, geocoder, locations=["75454"], interval=120
        )
        status = refresher.get_status()
        assert status["running"] is False
        assert status["lastCycle"] is None

        await refresher.run_cycle()
        status = refresher.get_status()
        assert status["intervalSeconds"] == 120
        assert status["locations"] == ["75454"]
        assert status["cyclesCompleted"] == 1
        assert status["lastCycle"]["succeeded"] == 1
        assert status["lastCycle"]["failed"] == 0


# ============================================================================
# CANCELLATION
# ============================================================================


def _coordinates(loc):
    return Coordinates(lat=loc["lat"], lon=loc["lon"])


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_request_does_not_stop_refresher(self, cache):
        service = SharedFetchWeatherService(cache)
        coords = _coordinates(LOCATION_A)

        request = asyncio.create_task(
            service.prefetch_weather_data(coords.lat, coords.lon)
        )
        refresher = BackgroundRefresher(
            service, locations=[coords], interval=60
        ).start()
        # both the request and the refresher wait on one shared fetch
        await _wait_for(lambda: service.calls == 2)
        assert cache.inflight_count == 1

        request.cancel()
        await asyncio.sleep(0)
        service.release.set()
        await _wait_for(lambda: refresher.cycles_completed == 1)

        assert request.cancelled()
        assert refresher.is_running
        assert refresher.last_result.succeeded == 1
        assert service.fetches == 1
        assert cache.has("points:33.2859,-96.5989")
        await refresher.stop()

    @pytest.mark.asyncio
    async def test_cancelled_location_is_a_failure(self, cache):
        a, b = _coordinates(LOCATION_A), _coordinates(LOCATION_B)
        service = SharedFetchWeatherService(
            cache, cancelled={(a.lat, a.lon)}
        )
        service.release.set()
        refresher = BackgroundRefresher(service, locations=[a, b])

        result = await refresher.run_cycle()

        assert result.succeeded == 1
        assert result.failed == 1
        assert set(result.errors) == {"33.2859,-96.5989"}

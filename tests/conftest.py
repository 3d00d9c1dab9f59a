"""
Shared fixtures and configuration for the weather_station test suite.

Provides:
- FakeClock: injectable TTLCache timer, advanced manually
- Zero-delay NWS/geocoding settings (no real sleeping between retries)
- Canned api.weather.gov / Zippopotam / OpenWeatherMap payloads for two
  locations on different forecast grids
- ``mock_location``: registers every NWS route of a location on respx
"""

from datetime import datetime, timedelta, timezone

import pytest
import respx
from httpx import Response

from weather_station.config.settings import (
    GeocodingSettings,
    NWSSettings,
    UVSettings,
)
from weather_station.infrastructure.cache.ttl_cache import TTLCache

NWS_BASE = "https://api.weather.gov"
ZIP_BASE = "http://api.zippopotam.us/us"
OWM_BASE = "https://api.openweathermap.org/data/3.0"

LOCATION_A = {
    "zip": "75454",
    "lat": 33.2859,
    "lon": -96.5989,
    "office": "FWD",
    "x": 80,
    "y": 108,
    "station": "KTKI",
    "city": "Melissa",
    "state": "TX",
}

LOCATION_B = {
    "zip": "60601",
    "lat": 41.8857,
    "lon": -87.6181,
    "office": "LOT",
    "x": 76,
    "y": 73,
    "station": "KMDW",
    "city": "Chicago",
    "state": "IL",
}


class FakeClock:
    """Monotonic clock stand-in: time only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# PAYLOAD BUILDERS
# ============================================================================


def grid_path(loc: dict) -> str:
    return f"/gridpoints/{loc['office']}/{loc['x']},{loc['y']}"


def points_payload(loc: dict) -> dict:
    office, grid = loc["office"], grid_path(loc)
    return {
        "type": "Feature",
        "properties": {
            "gridId": office,
            "gridX": loc["x"],
            "gridY": loc["y"],
            "forecastOffice": f"{NWS_BASE}/offices/{office}",
            "forecast": f"{NWS_BASE}{grid}/forecast",
            "forecastHourly": f"{NWS_BASE}{grid}/forecast/hourly",
            "observationStations": f"{NWS_BASE}{grid}/stations",
            "forecastZone": f"{NWS_BASE}/zones/forecast/TXZ104",
            "timeZone": "America/Chicago",
            "relativeLocation": {
                "properties": {"city": loc["city"], "state": loc["state"]}
            },
        },
    }


def forecast_payload(count: int = 3, hours: int = 12) -> dict:
    """Forecast periods, deliberately listed newest first."""
    start = datetime(2025, 11, 28, 6, tzinfo=timezone.utc)
    periods = []
    for n in range(count):
        begin = start + timedelta(hours=hours * n)
        periods.append(
            {
                "number": n + 1,
                "name": f"Period {n + 1}",
                "startTime": begin.isoformat(),
                "endTime": (begin + timedelta(hours=hours)).isoformat(),
                "isDaytime": n % 2 == 0,
                "temperature": 70 - n,
                "temperatureUnit": "F",
                "temperatureTrend": None,
                "probabilityOfPrecipitation": {
                    "unitCode": "wmoUnit:percent",
                    "value": 10 * n,
                },
                "windSpeed": "10 mph",
                "windDirection": "S",
                "icon": "https://api.weather.gov/icons/land/day/few",
                "shortForecast": "Sunny",
                "detailedForecast": "Sunny, with a high near 70.",
            }
        )
    return {"type": "Feature", "properties": {"periods": periods[::-1]}}


def stations_payload(*station_ids: str) -> dict:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "geometry": {
                    "type": "Point",
                    "coordinates": [-96.67, 33.18 + i],
                },
                "properties": {
                    "stationIdentifier": station_id,
                    "name": f"Station {station_id}",
                    "elevation": {"unitCode": "wmoUnit:m", "value": 177.1},
                    "timeZone": "America/Chicago",
                },
            }
            for i, station_id in enumerate(station_ids)
        ],
    }


def observation_payload(temperature: float = 21.1) -> dict:
    return {
        "type": "Feature",
        "properties": {
            "timestamp": "2025-11-28T12:53:00+00:00",
            "textDescription": "Clear",
            "temperature": {"unitCode": "wmoUnit:degC", "value": temperature},
            "dewpoint": {"unitCode": "wmoUnit:degC", "value": 10.0},
            "windSpeed": {"unitCode": "wmoUnit:km_h-1", "value": 14.8},
            "windDirection": {
                "unitCode": "wmoUnit:degree_(angle)",
                "value": 180,
            },
            "relativeHumidity": {"unitCode": "wmoUnit:percent", "value": 49.5},
            "presentWeather": [],
        },
    }


def alerts_payload(*events: str) -> dict:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "properties": {
                    "id": f"urn:oid:2.49.0.1.840.0.{i}",
                    "event": event,
                    "headline": f"{event} issued",
                    "severity": "Moderate",
                    "areaDesc": "Collin, TX",
                    "effective": "2025-11-28T10:00:00-06:00",
                    "expires": "2025-11-28T18:00:00-06:00",
                }
            }
            for i, event in enumerate(events)
        ],
    }


def zippopotam_payload(loc: dict) -> dict:
    return {
        "post code": loc["zip"],
        "country": "United States",
        "country abbreviation": "US",
        "places": [
            {
                "place name": loc["city"],
                "longitude": str(loc["lon"]),
                "latitude": str(loc["lat"]),
                "state abbreviation": loc["state"],
            }
        ],
    }


def onecall_payload(uvi: float = 7.5, dt: int = 1764334380) -> dict:
    """One Call response trimmed to what the UV client reads."""
    return {
        "lat": 33.2859,
        "lon": -96.5989,
        "timezone": "America/Chicago",
        "current": {"dt": dt, "temp": 294.2, "uvi": uvi},
    }


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Cache on a fake clock, background sweep disabled."""
    return TTLCache(default_ttl=3600, check_period=0, timer=clock)


@pytest.fixture
def nws_config():
    return NWSSettings(
        base_url=NWS_BASE,
        user_agent="WeatherStationTests/1.0 (tests@example.com)",
        timeout=5,
        max_retries=3,
        backoff_delays=[0, 0, 0],
    )


@pytest.fixture
def geocoding_config():
    return GeocodingSettings(
        base_url=ZIP_BASE,
        timeout=5,
        user_agent="WeatherStationTests/1.0 (tests@example.com)",
    )


@pytest.fixture
def uv_config():
    return UVSettings(
        api_key="test-key",
        base_url=OWM_BASE,
        timeout=5,
        max_retries=1,
        backoff_delays=[0],
    )


@pytest.fixture
def mock_location():
    """
    Register every NWS route of a location on a respx router.

    Routes go on the global router unless ``router`` is given; a
    ``respx.mock(...)`` call with options builds its own router, so pass
    the one bound by ``as``. Any route can be overridden with an explicit
    ``httpx.Response`` or a list of responses (``side_effect``). Returns
    the routes by name.
    """

    def _register(loc: dict, router=respx, **overrides) -> dict:
        grid = grid_path(loc)
        defaults = {
            "points": Response(200, json=points_payload(loc)),
            "forecast": Response(200, json=forecast_payload()),
            "hourly": Response(200, json=forecast_payload(6, hours=1)),
            "stations": Response(200, json=stations_payload(loc["station"])),
            "observation": Response(200, json=observation_payload()),
            "alerts": Response(200, json=alerts_payload()),
        }
        urls = {
            "points": f"{NWS_BASE}/points/{loc['lat']:.4f},{loc['lon']:.4f}",
            "forecast": f"{NWS_BASE}{grid}/forecast",
            "hourly": f"{NWS_BASE}{grid}/forecast/hourly",
            "stations": f"{NWS_BASE}{grid}/stations",
            "observation": (
                f"{NWS_BASE}/stations/{loc['station']}/observations/latest"
            ),
            "alerts": f"{NWS_BASE}/alerts/active",
        }
        routes = {}
        for name, url in urls.items():
            response = overrides.get(name, defaults[name])
            if name == "alerts":
                route = router.get(
                    url,
                    params={"point": f"{loc['lat']:.4f},{loc['lon']:.4f}"},
                )
            else:
                route = router.get(url)
            if isinstance(response, list):
                routes[name] = route.mock(side_effect=response)
            else:
                routes[name] = route.mock(return_value=response)
        return routes

    return _register


# Test configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
    config.addinivalue_line("markers", "api: API related tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "/unit/" in item.nodeid or item.nodeid.startswith("tests/unit"):
            item.add_marker(pytest.mark.unit)
        if "api" in item.nodeid.lower():
            item.add_marker(pytest.mark.api)

"""
Unit tests for OpenWeatherUVClient.

Testes com mocks respx para httpx:
- Disabled client (no API key) never calls upstream
- Query parameters and parsing of ``current.uvi``
- 401 / 429 not retried, network errors and 5xx retried
"""

from datetime import datetime, timezone

import httpx
import pytest
import respx
from httpx import Response

from weather_station.api.services.errors import (
    BadRequestError,
    RateLimitedError,
    UpstreamError,
    UpstreamUnavailableError,
)
from weather_station.api.services.uv import OpenWeatherUVClient, UVIndex
from weather_station.config.settings import UVSettings

from tests.conftest import LOCATION_A, OWM_BASE, onecall_payload

ONECALL_URL = f"{OWM_BASE}/onecall"
LAT, LON = LOCATION_A["lat"], LOCATION_A["lon"]


@pytest.fixture
def uv_client(uv_config):
    return OpenWeatherUVClient(config=uv_config)


class TestUVIndex:
    @pytest.mark.asyncio
    async def test_current_uv_index(self, uv_client):
        with respx.mock:
            route = respx.get(
                ONECALL_URL,
                params={
                    "lat": "33.2859",
                    "lon": "-96.5989",
                    "appid": "test-key",
                    "exclude": "minutely,hourly,daily,alerts",
                },
            ).mock(return_value=Response(200, json=onecall_payload(6.3)))
            uv = await uv_client.get_uv_index(LAT, LON)

        assert route.call_count == 1
        assert isinstance(uv, UVIndex)
        assert uv.value == pytest.approx(6.3)
        assert uv.timestamp == datetime(
            2025, 11, 28, 12, 53, tzinfo=timezone.utc
        )
        assert (uv.latitude, uv.longitude) == (LAT, LON)

    @pytest.mark.asyncio
    async def test_disabled_without_api_key(self):
        client = OpenWeatherUVClient(config=UVSettings(api_key=None))
        assert client.enabled is False
        with respx.mock(assert_all_called=False) as router:
            route = router.get(url__startswith=OWM_BASE)
            assert await client.get_uv_index(LAT, LON) is None
        assert route.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_current_section(self, uv_client):
        with respx.mock:
            respx.get(ONECALL_URL).mock(
                return_value=Response(200, json={"lat": LAT})
            )
            with pytest.raises(UpstreamError):
                await uv_client.get_uv_index(LAT, LON)

    @pytest.mark.asyncio
    async def test_non_json_body(self, uv_client):
        with respx.mock:
            respx.get(ONECALL_URL).mock(return_value=Response(200, text="x"))
            with pytest.raises(UpstreamError):
                await uv_client.get_uv_index(LAT, LON)


class TestUVFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, error", [(401, BadRequestError), (429, RateLimitedError)]
    )
    async def test_not_retried(self, uv_client, status, error):
        with respx.mock:
            route = respx.get(ONECALL_URL).mock(return_value=Response(status))
            with pytest.raises(error):
                await uv_client.get_uv_index(LAT, LON)
        assert route.call_count == 1
        assert uv_client.total_retries == 0

    @pytest.mark.asyncio
    async def test_transient_failure_then_success(self, uv_client):
        with respx.mock:
            route = respx.get(ONECALL_URL).mock(
                side_effect=[
                    httpx.ConnectError("connection refused"),
                    Response(200, json=onecall_payload()),
                ]
            )
            uv = await uv_client.get_uv_index(LAT, LON)
        assert route.call_count == 2
        assert uv_client.total_retries == 1
        assert uv.value == pytest.approx(7.5)

    @pytest.mark.asyncio
    async def test_budget_exhausted(self, uv_client):
        with respx.mock:
            route = respx.get(ONECALL_URL).mock(return_value=Response(503))
            with pytest.raises(UpstreamUnavailableError) as exc_info:
                await uv_client.get_uv_index(LAT, LON)
        assert route.call_count == 2
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_decoding_error_not_retried(self, uv_client):
        with respx.mock:
            route = respx.get(ONECALL_URL).mock(
                side_effect=httpx.DecodingError("invalid gzip stream")
            )
            with pytest.raises(UpstreamError):
                await uv_client.get_uv_index(LAT, LON)
        assert route.call_count == 1

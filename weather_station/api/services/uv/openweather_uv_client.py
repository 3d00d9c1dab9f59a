"""
UV index client for the OpenWeatherMap One Call API 3.0.

API: GET {base_url}/onecall?lat=..&lon=..&appid=..&exclude=...
- Free tier: 1,000 calls/day, API key required
- Only ``current.uvi`` is read; every other section is excluded

Behaviour:
- No OPENWEATHER_API_KEY -> disabled: no request, ``get_uv_index``
  returns None
- 401 (bad key) -> BadRequestError, 429 -> RateLimitedError; neither is
  retried
- Network errors and HTTP 5xx retried with ``backoff_delays`` up to
  ``max_retries`` times, then UpstreamUnavailableError

Caching (1h under ``uv:<lat>,<lon>``) lives in WeatherService, like
every NWS lookup.
"""

import asyncio
import time

import httpx
from loguru import logger

from weather_station.api.middleware.prometheus_metrics import (
    UPSTREAM_REQUEST_DURATION,
    UPSTREAM_REQUESTS_TOTAL,
    UPSTREAM_RETRIES_TOTAL,
)
from weather_station.api.services.errors import (
    BadRequestError,
    RateLimitedError,
    UpstreamError,
    UpstreamUnavailableError,
    classify_request_error,
    is_transient_request_error,
)
from weather_station.api.services.uv.uv_models import UVIndex, parse_uv_index
from weather_station.config.settings import UVSettings
from weather_station.infrastructure.cache.cache_keys import format_coordinate

ENDPOINT = "/onecall"
EXCLUDE = "minutely,hourly,daily,alerts"


class OpenWeatherUVClient:
    """
    Current UV index by coordinates.

    Args:
        config: UV settings (defaults from the environment)
        http_client: Pre-built transport, owned by the caller
    """

    SERVICE = "openweather"

    def __init__(
        self,
        config: UVSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or UVSettings()
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=self.config.timeout,
            headers={"Accept": "application/json"},
        )
        self.total_retries = 0
        if not self.enabled:
            logger.warning(
                "UV index disabled: OPENWEATHER_API_KEY not configured"
            )

    @property
    def enabled(self) -> bool:
        return bool(self.config.api_key)

    async def close(self):
        if self._owns_client:
            await self.client.aclose()
            logger.debug("OpenWeatherUVClient closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _count(self, outcome: str) -> None:
        UPSTREAM_REQUESTS_TOTAL.labels(
            service=self.SERVICE, outcome=outcome
        ).inc()

    def _backoff_delay(self, retry: int) -> float:
        delays = self.config.backoff_delays
        return float(delays[min(retry, len(delays) - 1)]) if delays else 0.0

    async def get_uv_index(self, lat: float, lon: float) -> UVIndex | None:
        """
        Current UV index, or None when the client is disabled.

        Raises:
            BadRequestError: API key rejected (401) or other 4xx
            RateLimitedError: HTTP 429
            UpstreamUnavailableError: Transient failures outlasted retries
            UpstreamError: Malformed body or non-transport request error
        """
        if not self.enabled:
            return None

        url = f"{self.config.base_url.rstrip('/')}{ENDPOINT}"
        params = {
            "lat": format_coordinate(lat),
            "lon": format_coordinate(lon),
            "appid": self.config.api_key,
            "exclude": EXCLUDE,
        }
        attempts = self.config.max_retries + 1
        reason = ""
        start = time.perf_counter()

        try:
            for attempt in range(attempts):
                try:
                    response = await self.client.get(url, params=params)
                except httpx.RequestError as e:
                    if not is_transient_request_error(e):
                        self._count("upstream_error")
                        raise classify_request_error(
                            e, "OpenWeatherMap", ENDPOINT
                        ) from e
                    reason = f"{type(e).__name__}: {e}"
                else:
                    status = response.status_code
                    if status == 200:
                        return self._parse(response, lat, lon)
                    if status == 401:
                        self._count("bad_request")
                        raise BadRequestError(
                            "Invalid OpenWeatherMap API key",
                            endpoint=ENDPOINT,
                            status_code=status,
                        )
                    if status == 429:
                        self._count("rate_limited")
                        raise RateLimitedError(
                            "OpenWeatherMap rate limit exceeded",
                            endpoint=ENDPOINT,
                            status_code=status,
                        )
                    if status < 500:
                        self._count("bad_request")
                        raise BadRequestError(
                            f"OpenWeatherMap returned HTTP {status}",
                            endpoint=ENDPOINT,
                            status_code=status,
                        )
                    reason = f"HTTP {status}"

                if attempt == attempts - 1:
                    break

                delay = self._backoff_delay(attempt)
                self.total_retries += 1
                UPSTREAM_RETRIES_TOTAL.labels(service=self.SERVICE).inc()
                logger.warning(
                    f"OpenWeatherMap transient failure ({reason}) | "
                    f"retry {attempt + 1}/{self.config.max_retries} "
                    f"in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

            self._count("unavailable")
            logger.error(
                f"UV index unavailable after {attempts} attempts: {reason}"
            )
            raise UpstreamUnavailableError(
                f"OpenWeatherMap unavailable after {attempts} attempts "
                f"({reason})",
                attempts=attempts,
                endpoint=ENDPOINT,
            )
        finally:
            UPSTREAM_REQUEST_DURATION.labels(service=self.SERVICE).observe(
                time.perf_counter() - start
            )

    def _parse(
        self, response: httpx.Response, lat: float, lon: float
    ) -> UVIndex:
        try:
            body = response.json()
        except ValueError as e:
            self._count("invalid_body")
            raise UpstreamError(
                "OpenWeatherMap returned a non-JSON body",
                endpoint=ENDPOINT,
                status_code=response.status_code,
            ) from e
        uv_index = parse_uv_index(body, lat, lon)
        self._count("success")
        return uv_index

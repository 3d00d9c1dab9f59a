"""
NWS API client (api.weather.gov).

Thin async wrapper over the GeoJSON endpoints the weather service needs:
- GET /points/{lat},{lon}                     -> grid point metadata
- GET /gridpoints/{office}/{x},{y}/forecast   -> 7-day forecast (12h periods)
- GET /gridpoints/{office}/{x},{y}/forecast/hourly
- GET /gridpoints/{office}/{x},{y}/stations   -> observation stations
- GET /stations/{id}/observations/latest
- GET /alerts/active?point={lat},{lon}

Retry policy (the only place in the pipeline that retries):
- Transient = network/timeout error or HTTP 5xx. Retried with the fixed
  backoff sequence (default 1s, 2s, 4s) up to ``max_retries`` times;
  a Retry-After header on a 5xx can only lengthen that one delay.
- 429 -> RateLimitedError immediately, no retry budget consumed.
- 404 -> NotFoundError, other 4xx -> BadRequestError, immediately.
- Budget exhausted -> UpstreamUnavailableError(attempts=...).

NWS API Terms of Service:
- No authentication required
- User-Agent REQUIRED (identifies the application)
- Public domain data

API Documentation:
https://www.weather.gov/documentation/services-web-api
"""

import asyncio
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
from loguru import logger

from weather_station.api.middleware.prometheus_metrics import (
    UPSTREAM_REQUEST_DURATION,
    UPSTREAM_REQUESTS_TOTAL,
    UPSTREAM_RETRIES_TOTAL,
)
from weather_station.api.services.errors import (
    BadRequestError,
    NotFoundError,
    RateLimitedError,
    UpstreamError,
    UpstreamUnavailableError,
    classify_request_error,
    is_transient_request_error,
)
from weather_station.api.services.nws.nws_models import (
    Alert,
    ForecastPeriod,
    GridPoint,
    Observation,
    Station,
    parse_alerts,
    parse_forecast_periods,
    parse_grid_point,
    parse_observation,
    parse_stations,
)
from weather_station.config.settings import NWSSettings
from weather_station.infrastructure.cache.cache_keys import format_coordinate


class NWSClient:
    """
    Async client for the NWS API.

    Args:
        config: NWS settings (defaults from the environment)
        http_client: Pre-built transport. When given, the caller owns it
            and ``close()`` leaves it open.

    Example:
        async with NWSClient() as client:
            point = await client.get_point_data(33.1581, -96.5989)
            periods = await client.get_forecast(
                point.office, point.grid_x, point.grid_y
            )
    """

    SERVICE = "nws"

    def __init__(
        self,
        config: NWSSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or NWSSettings()
        self.headers = {
            "User-Agent": self.config.user_agent,
            "Accept": "application/geo+json",
        }
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=self.config.timeout,
            headers=self.headers,
            follow_redirects=True,
        )
        self.total_retries = 0
        logger.info(f"NWSClient initialized | base_url={self.config.base_url}")

    async def close(self):
        if self._owns_client:
            await self.client.aclose()
            logger.debug("NWSClient closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Core request with retry
    # ------------------------------------------------------------------

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _backoff_delay(self, retry: int, retry_after: float | None) -> float:
        delays = self.config.backoff_delays
        delay = float(delays[min(retry, len(delays) - 1)]) if delays else 0.0
        if retry_after is not None:
            delay = max(delay, min(retry_after, self.config.max_retry_after))
        return delay

    @staticmethod
    def _retry_after(response: httpx.Response) -> float | None:
        """Retry-After header in seconds (delta-seconds or HTTP-date)."""
        value = response.headers.get("Retry-After")
        if not value:
            return None
        try:
            return max(float(value), 0.0)
        except ValueError:
            pass
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)

    @staticmethod
    def _problem(response: httpx.Response) -> dict[str, Any]:
        """Problem-detail body (correlationId, title, status, detail)."""
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _client_error(
        self, response: httpx.Response, endpoint: str
    ) -> Exception:
        status = response.status_code
        problem = self._problem(response)
        detail = problem.get("detail") or problem.get("title") or ""
        message = f"NWS {endpoint} returned HTTP {status}"
        if detail:
            message = f"{message}: {detail}"

        if status == 429:
            retry_after = self._retry_after(response)
            UPSTREAM_REQUESTS_TOTAL.labels(
                service=self.SERVICE, outcome="rate_limited"
            ).inc()
            return RateLimitedError(
                message,
                retry_after=retry_after,
                endpoint=endpoint,
                status_code=status,
                problem=problem,
            )
        if status == 404:
            UPSTREAM_REQUESTS_TOTAL.labels(
                service=self.SERVICE, outcome="not_found"
            ).inc()
            return NotFoundError(
                message, endpoint=endpoint, status_code=status, problem=problem
            )
        UPSTREAM_REQUESTS_TOTAL.labels(
            service=self.SERVICE, outcome="bad_request"
        ).inc()
        return BadRequestError(
            message, endpoint=endpoint, status_code=status, problem=problem
        )

    def _parse_body(
        self, response: httpx.Response, endpoint: str
    ) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            UPSTREAM_REQUESTS_TOTAL.labels(
                service=self.SERVICE, outcome="invalid_body"
            ).inc()
            raise UpstreamError(
                f"NWS {endpoint} returned a non-JSON body",
                endpoint=endpoint,
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise UpstreamError(
                f"NWS {endpoint} returned unexpected JSON "
                f"({type(body).__name__})",
                endpoint=endpoint,
                status_code=response.status_code,
            )
        UPSTREAM_REQUESTS_TOTAL.labels(
            service=self.SERVICE, outcome="success"
        ).inc()
        return body

    async def request(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """
        GET an NWS endpoint and return the parsed JSON body.

        Args:
            endpoint: Path relative to base_url, or an absolute NWS URL
            params: Query parameters

        Returns:
            Parsed JSON object

        Raises:
            RateLimitedError: HTTP 429 (not retried)
            NotFoundError: HTTP 404
            BadRequestError: Other HTTP 4xx
            UpstreamUnavailableError: Transient failures outlasted retries
            UpstreamError: 2xx with a non-JSON body, unexpected status,
                undecodable response or redirect loop
        """
        url = self._build_url(endpoint)
        attempts = self.config.max_retries + 1
        reason = ""
        last_status: int | None = None
        last_problem: dict[str, Any] = {}
        start = time.perf_counter()

        try:
            for attempt in range(attempts):
                retry_after = None
                try:
                    response = await self.client.get(
                        url, params=params, headers=self.headers
                    )
                except httpx.RequestError as e:
                    if not is_transient_request_error(e):
                        UPSTREAM_REQUESTS_TOTAL.labels(
                            service=self.SERVICE, outcome="upstream_error"
                        ).inc()
                        raise classify_request_error(
                            e, "NWS", endpoint
                        ) from e
                    reason = f"{type(e).__name__}: {e}"
                    last_status = None
                else:
                    status = response.status_code
                    if 200 <= status < 300:
                        return self._parse_body(response, endpoint)
                    if 400 <= status < 500:
                        raise self._client_error(response, endpoint)
                    if status < 500:
                        raise UpstreamError(
                            f"NWS {endpoint} returned unexpected "
                            f"HTTP {status}",
                            endpoint=endpoint,
                            status_code=status,
                        )
                    reason = f"HTTP {status}"
                    last_status = status
                    last_problem = self._problem(response)
                    retry_after = self._retry_after(response)

                if attempt == attempts - 1:
                    break

                delay = self._backoff_delay(attempt, retry_after)
                self.total_retries += 1
                UPSTREAM_RETRIES_TOTAL.labels(service=self.SERVICE).inc()
                logger.warning(
                    f"NWS {endpoint} transient failure ({reason}) | "
                    f"retry {attempt + 1}/{self.config.max_retries} "
                    f"in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

            UPSTREAM_REQUESTS_TOTAL.labels(
                service=self.SERVICE, outcome="unavailable"
            ).inc()
            logger.error(
                f"NWS {endpoint} unavailable after {attempts} attempts: "
                f"{reason}"
            )
            raise UpstreamUnavailableError(
                f"NWS {endpoint} unavailable after {attempts} attempts "
                f"({reason})",
                attempts=attempts,
                endpoint=endpoint,
                status_code=last_status,
                problem=last_problem,
            )
        finally:
            UPSTREAM_REQUEST_DURATION.labels(service=self.SERVICE).observe(
                time.perf_counter() - start
            )

    # ------------------------------------------------------------------
    # Endpoint helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _grid_path(office: str, grid_x: int, grid_y: int) -> str:
        return f"/gridpoints/{office}/{grid_x},{grid_y}"

    async def get_point_data(self, lat: float, lon: float) -> GridPoint:
        """
        GET /points/{lat},{lon} -> grid metadata.

        Coordinates are sent with 4 decimal places; the API redirects
        (301) anything more precise.

        Raises:
            NotFoundError: Point outside NWS coverage
        """
        payload = await self.request(
            f"/points/{format_coordinate(lat)},{format_coordinate(lon)}"
        )
        return parse_grid_point(payload)

    async def get_forecast(
        self, office: str, grid_x: int, grid_y: int
    ) -> list[ForecastPeriod]:
        payload = await self.request(
            f"{self._grid_path(office, grid_x, grid_y)}/forecast"
        )
        return parse_forecast_periods(payload)

    async def get_hourly_forecast(
        self, office: str, grid_x: int, grid_y: int
    ) -> list[ForecastPeriod]:
        payload = await self.request(
            f"{self._grid_path(office, grid_x, grid_y)}/forecast/hourly"
        )
        return parse_forecast_periods(payload)

    async def get_stations(
        self, office: str, grid_x: int, grid_y: int
    ) -> list[Station]:
        """Observation stations for a grid cell, nearest first."""
        payload = await self.request(
            f"{self._grid_path(office, grid_x, grid_y)}/stations"
        )
        return parse_stations(payload)

    async def get_latest_observation(self, station_id: str) -> Observation:
        payload = await self.request(
            f"/stations/{station_id}/observations/latest"
        )
        return parse_observation(payload, station_id)

    async def get_active_alerts(self, lat: float, lon: float) -> list[Alert]:
        payload = await self.request(
            "/alerts/active",
            params={
                "point": f"{format_coordinate(lat)},{format_coordinate(lon)}"
            },
        )
        return parse_alerts(payload)

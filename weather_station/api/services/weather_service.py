"""
Weather service: assembles a complete WeatherPackage for one location.

Workflow (get_weather_data):
    1. Validate coordinates, look up the grid point (cached 24h).
       Failure here is fatal.
    2. Concurrently fetch:
       - 7-day forecast            (cached 1h)      fatal on failure
       - hourly forecast           (cached 1h)      fatal on failure
       - current conditions:
         stations (cached 7d) -> first station's latest
         observation (cached 10min)                 None on failure
       - active alerts             (never cached)   [] on failure
       - UV index, when a UV client is enabled
                                   (cached 1h)      None on failure
    3. Compute sun times locally (astral) for the grid point time zone.
    4. Stamp fetched_at / cache_expiry and return.

Every cached fetch goes through TTLCache.get_or_fetch, so concurrent
requests for the same location share a single upstream call per key.
The service never retries; retries live in the upstream clients.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone

from loguru import logger

from weather_station.api.services.errors import WeatherStationError
from weather_station.api.services.geocoding.zippopotam_client import (
    ZippopotamGeocodingClient,
)
from weather_station.api.services.geographic_utils import (
    require_valid_coordinates,
)
from weather_station.api.services.nws.nws_client import NWSClient
from weather_station.api.services.nws.nws_models import (
    Alert,
    Coordinates,
    ForecastPeriod,
    GridPoint,
    LocationInfo,
    Observation,
    Station,
    WeatherPackage,
)
from weather_station.api.services.sun_service import get_sun_times
from weather_station.api.services.uv.openweather_uv_client import (
    OpenWeatherUVClient,
)
from weather_station.api.services.uv.uv_models import UVIndex
from weather_station.infrastructure.cache.cache_keys import (
    CacheKeyGenerator,
    CacheTTL,
)
from weather_station.infrastructure.cache.ttl_cache import CacheStats, TTLCache


class WeatherService:
    """
    Orchestrates NWS lookups on top of the shared cache.

    Args:
        cache: Shared cache instance (also used by the geocoder)
        nws_client: NWS API client
        geocoder: ZIP code geocoder, required for postal code lookups
        uv_client: UV index client; packages carry no UV index without it
    """

    def __init__(
        self,
        cache: TTLCache,
        nws_client: NWSClient,
        geocoder: ZippopotamGeocodingClient | None = None,
        uv_client: OpenWeatherUVClient | None = None,
    ):
        self.cache = cache
        self.nws_client = nws_client
        self.geocoder = geocoder
        self.uv_client = uv_client

    # ------------------------------------------------------------------
    # Cached building blocks
    # ------------------------------------------------------------------

    async def get_point_data(self, lat: float, lon: float) -> GridPoint:
        lat, lon = require_valid_coordinates(lat, lon)
        return await self.cache.get_or_fetch(
            CacheKeyGenerator.points(lat, lon),
            lambda: self.nws_client.get_point_data(lat, lon),
            ttl=CacheTTL.POINTS,
        )

    async def get_forecast(
        self, office: str, grid_x: int, grid_y: int
    ) -> list[ForecastPeriod]:
        return await self.cache.get_or_fetch(
            CacheKeyGenerator.forecast_7day(office, grid_x, grid_y),
            lambda: self.nws_client.get_forecast(office, grid_x, grid_y),
            ttl=CacheTTL.FORECASTS,
        )

    async def get_hourly_forecast(
        self, office: str, grid_x: int, grid_y: int
    ) -> list[ForecastPeriod]:
        return await self.cache.get_or_fetch(
            CacheKeyGenerator.forecast_hourly(office, grid_x, grid_y),
            lambda: self.nws_client.get_hourly_forecast(
                office, grid_x, grid_y
            ),
            ttl=CacheTTL.FORECASTS,
        )

    async def get_stations(
        self, office: str, grid_x: int, grid_y: int
    ) -> list[Station]:
        return await self.cache.get_or_fetch(
            CacheKeyGenerator.stations(office, grid_x, grid_y),
            lambda: self.nws_client.get_stations(office, grid_x, grid_y),
            ttl=CacheTTL.STATION_METADATA,
        )

    async def get_latest_observation(self, station_id: str) -> Observation:
        return await self.cache.get_or_fetch(
            CacheKeyGenerator.observation(station_id),
            lambda: self.nws_client.get_latest_observation(station_id),
            ttl=CacheTTL.OBSERVATIONS,
        )

    async def get_active_alerts(self, lat: float, lon: float) -> list[Alert]:
        # always live: alerts must never be served stale
        lat, lon = require_valid_coordinates(lat, lon)
        return await self.nws_client.get_active_alerts(lat, lon)

    async def get_uv_index(self, lat: float, lon: float) -> UVIndex | None:
        if self.uv_client is None or not self.uv_client.enabled:
            return None
        lat, lon = require_valid_coordinates(lat, lon)
        return await self.cache.get_or_fetch(
            CacheKeyGenerator.uv_index(lat, lon),
            lambda: self.uv_client.get_uv_index(lat, lon),
            ttl=CacheTTL.UV_INDEX,
        )

    async def get_current_conditions(
        self, grid_point: GridPoint
    ) -> Observation | None:
        """
        Latest observation from the nearest station of a grid cell.

        Returns None (never raises an upstream error) when the station
        list is empty or either lookup fails.
        """
        office, grid_x, grid_y = (
            grid_point.office,
            grid_point.grid_x,
            grid_point.grid_y,
        )
        try:
            stations = await self.get_stations(office, grid_x, grid_y)
            if not stations:
                logger.warning(
                    f"No observation stations for {office}/{grid_x},{grid_y}"
                )
                return None
            return await self.get_latest_observation(stations[0].station_id)
        except WeatherStationError as e:
            logger.warning(
                f"Current conditions unavailable for "
                f"{office}/{grid_x},{grid_y}: {e}"
            )
            return None

    async def _alerts_or_empty(self, lat: float, lon: float) -> list[Alert]:
        try:
            return await self.get_active_alerts(lat, lon)
        except WeatherStationError as e:
            logger.warning(
                f"Active alerts unavailable for ({lat:.4f}, {lon:.4f}): {e}"
            )
            return []

    async def _uv_index_or_none(
        self, lat: float, lon: float
    ) -> UVIndex | None:
        try:
            return await self.get_uv_index(lat, lon)
        except WeatherStationError as e:
            logger.warning(
                f"UV index unavailable for ({lat:.4f}, {lon:.4f}): {e}"
            )
            return None

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def get_weather_data(
        self, lat: float, lon: float, postal_code: str | None = None
    ) -> WeatherPackage:
        """
        Assemble the full weather package for a location.

        Args:
            lat: Latitude (-90 to 90)
            lon: Longitude (-180 to 180)
            postal_code: ZIP code the coordinates came from, if any

        Returns:
            WeatherPackage

        Raises:
            InvalidInputError: Invalid coordinates
            WeatherStationError: Point, forecast or hourly lookup failed
        """
        lat, lon = require_valid_coordinates(lat, lon)
        start = time.perf_counter()

        grid_point = await self.get_point_data(lat, lon)
        office, grid_x, grid_y = (
            grid_point.office,
            grid_point.grid_x,
            grid_point.grid_y,
        )

        results = await asyncio.gather(
            self.get_forecast(office, grid_x, grid_y),
            self.get_hourly_forecast(office, grid_x, grid_y),
            self.get_current_conditions(grid_point),
            self._alerts_or_empty(lat, lon),
            self._uv_index_or_none(lat, lon),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        forecast, hourly, observation, alerts, uv_index = results
        sun_times = get_sun_times(lat, lon, time_zone=grid_point.time_zone)

        ttls = [CacheTTL.POINTS, CacheTTL.FORECASTS, CacheTTL.FORECASTS]
        if observation is not None:
            ttls += [CacheTTL.STATION_METADATA, CacheTTL.OBSERVATIONS]
        if uv_index is not None:
            ttls.append(CacheTTL.UV_INDEX)
        fetched_at = datetime.now(timezone.utc)

        if postal_code:
            display_name = f"ZIP {postal_code}"
        else:
            display_name = grid_point.display_name or f"{lat:.4f}, {lon:.4f}"

        package = WeatherPackage(
            location=LocationInfo(
                postal_code=postal_code,
                coordinates=Coordinates(lat=lat, lon=lon),
                display_name=display_name,
                grid_point=grid_point,
                time_zone=grid_point.time_zone,
            ),
            forecast=forecast,
            hourly_forecast=hourly,
            current_observation=observation,
            alerts=alerts,
            sun_times=sun_times,
            uv_index=uv_index,
            fetched_at=fetched_at,
            cache_expiry=fetched_at + timedelta(seconds=min(ttls)),
        )
        logger.info(
            f"Weather package assembled for {display_name} "
            f"({office}/{grid_x},{grid_y}) in "
            f"{time.perf_counter() - start:.2f}s | "
            f"periods={len(forecast)} hourly={len(hourly)} "
            f"observation={'yes' if observation else 'no'} "
            f"alerts={len(alerts)} "
            f"uv={'yes' if uv_index else 'no'}"
        )
        return package

    async def get_weather_for_postal_code(
        self, postal_code: str
    ) -> WeatherPackage:
        if self.geocoder is None:
            raise RuntimeError("WeatherService has no geocoding client")
        coordinates = await self.geocoder.geocode(postal_code)
        return await self.get_weather_data(
            coordinates.lat, coordinates.lon, postal_code=postal_code.strip()
        )

    async def refresh_weather_for_postal_code(
        self, postal_code: str
    ) -> WeatherPackage:
        """
        Drop the cached data of a ZIP code's location and refetch it.

        The geocode entry is kept: ZIP centroids do not move.
        """
        if self.geocoder is None:
            raise RuntimeError("WeatherService has no geocoding client")
        coordinates = await self.geocoder.geocode(postal_code)
        self.clear_location_cache(coordinates.lat, coordinates.lon)
        logger.info(f"Refreshing weather for ZIP {postal_code.strip()}")
        return await self.get_weather_data(
            coordinates.lat, coordinates.lon, postal_code=postal_code.strip()
        )

    async def prefetch_weather_data(
        self, lat: float, lon: float, postal_code: str | None = None
    ) -> WeatherPackage:
        """Warm every cache entry for a location. Errors propagate."""
        package = await self.get_weather_data(lat, lon, postal_code)
        logger.debug(f"Prefetched weather for {package.location.display_name}")
        return package

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.flush()
        logger.info("Weather cache cleared")

    def clear_location_cache(self, lat: float, lon: float) -> int:
        """
        Invalidate one location's grid point, forecasts, station list
        and UV index.

        Observation entries are keyed by station and may be shared with
        neighbouring grid cells, so they are left to expire.

        Returns:
            Number of cache entries removed
        """
        lat, lon = require_valid_coordinates(lat, lon)
        points_key = CacheKeyGenerator.points(lat, lon)
        keys = [points_key, CacheKeyGenerator.uv_index(lat, lon)]

        grid_point = self.cache.peek(points_key)
        if isinstance(grid_point, GridPoint):
            office, grid_x, grid_y = (
                grid_point.office,
                grid_point.grid_x,
                grid_point.grid_y,
            )
            keys += [
                CacheKeyGenerator.forecast_7day(office, grid_x, grid_y),
                CacheKeyGenerator.forecast_hourly(office, grid_x, grid_y),
                CacheKeyGenerator.stations(office, grid_x, grid_y),
            ]

        removed = self.cache.delete_multiple(keys)
        logger.info(
            f"Cleared {removed} cache entries for ({lat:.4f}, {lon:.4f})"
        )
        return removed

    def get_cache_stats(self) -> CacheStats:
        return self.cache.get_stats()

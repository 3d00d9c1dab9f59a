"""
ZIP code geocoding via Zippopotam.us.

API: http://api.zippopotam.us/us/{zip}
- Free, no API key required
- Returns the ZIP code centroid (first entry of ``places``)

Response shape:
    {
      "post code": "75454",
      "country abbreviation": "US",
      "places": [
        {"place name": "Melissa", "longitude": "-96.5989",
         "latitude": "33.2859", "state abbreviation": "TX"}
      ]
    }

Results live in the shared TTLCache under ``geocode:<zip>`` for 24h.
Failures are never cached.
"""

import httpx
from loguru import logger

from weather_station.api.middleware.prometheus_metrics import (
    UPSTREAM_REQUESTS_TOTAL,
)
from weather_station.api.services.errors import (
    InvalidInputError,
    NetworkError,
    NotFoundError,
    UpstreamError,
    classify_request_error,
)
from weather_station.api.services.geographic_utils import GeographicUtils
from weather_station.api.services.nws.nws_models import Coordinates
from weather_station.config.settings import GeocodingSettings
from weather_station.infrastructure.cache.cache_keys import (
    CacheDataType,
    CacheKeyGenerator,
    CacheTTL,
)
from weather_station.infrastructure.cache.ttl_cache import TTLCache


class ZippopotamGeocodingClient:
    """
    Resolve 5-digit US ZIP codes to coordinates.

    Args:
        cache: Shared cache instance
        config: Geocoding settings (defaults from the environment)
        http_client: Pre-built transport, owned by the caller
    """

    SERVICE = "zippopotam"

    def __init__(
        self,
        cache: TTLCache,
        config: GeocodingSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.cache = cache
        self.config = config or GeocodingSettings()
        self.headers = {"User-Agent": self.config.user_agent}
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=self.config.timeout, headers=self.headers
        )

    async def close(self):
        if self._owns_client:
            await self.client.aclose()
            logger.debug("ZippopotamGeocodingClient closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def geocode(self, postal_code: str) -> Coordinates:
        """
        Resolve a ZIP code to coordinates.

        Args:
            postal_code: 5-digit US ZIP code (surrounding whitespace ok)

        Returns:
            Coordinates of the ZIP centroid

        Raises:
            InvalidInputError: Not exactly 5 digits
            NotFoundError: Unknown ZIP code
            NetworkError: Timeout or connection failure
            UpstreamError: Unexpected status, body or coordinates
        """
        if not isinstance(postal_code, str):
            raise InvalidInputError(
                f"ZIP code must be a string, got {type(postal_code).__name__}"
            )
        code = postal_code.strip()
        if not GeographicUtils.is_valid_postal_code(code):
            raise InvalidInputError(
                "Invalid ZIP code format. Must be 5 digits. "
                f"Received: {postal_code!r}"
            )

        return await self.cache.get_or_fetch(
            CacheKeyGenerator.geocode(code),
            lambda: self._fetch(code),
            ttl=CacheTTL.GEOCODE,
        )

    async def _fetch(self, code: str) -> Coordinates:
        url = f"{self.config.base_url.rstrip('/')}/{code}"
        try:
            response = await self.client.get(url, headers=self.headers)
        except httpx.RequestError as e:
            error = classify_request_error(e, "Zippopotam API", url)
            self._count(
                "network_error"
                if isinstance(error, NetworkError)
                else "upstream_error"
            )
            raise error from e

        if response.status_code == 404:
            self._count("not_found")
            raise NotFoundError(
                f"ZIP code not found: {code}", endpoint=url, status_code=404
            )
        if response.status_code != 200:
            self._count("upstream_error")
            raise UpstreamError(
                f"Zippopotam API returned status {response.status_code}",
                endpoint=url,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            self._count("upstream_error")
            raise UpstreamError(
                "Zippopotam API returned a non-JSON body", endpoint=url
            ) from e

        places = body.get("places") if isinstance(body, dict) else None
        if not places:
            self._count("not_found")
            raise NotFoundError(
                f"No location data found for ZIP code: {code}", endpoint=url
            )

        place = places[0]
        try:
            lat = float(place["latitude"])
            lon = float(place["longitude"])
        except (KeyError, TypeError, ValueError) as e:
            self._count("upstream_error")
            raise UpstreamError(
                f"Malformed coordinates for ZIP code: {code}", endpoint=url
            ) from e

        if not GeographicUtils.is_in_usa(lat, lon):
            self._count("upstream_error")
            raise UpstreamError(
                f"Invalid coordinates returned for ZIP code: {code} "
                f"(lat: {lat}, lon: {lon})",
                endpoint=url,
            )

        self._count("success")
        logger.info(f"Geocoded ZIP {code} -> ({lat:.4f}, {lon:.4f})")
        return Coordinates(lat=lat, lon=lon)

    def _count(self, outcome: str) -> None:
        UPSTREAM_REQUESTS_TOTAL.labels(
            service=self.SERVICE, outcome=outcome
        ).inc()

    def clear_cache(self) -> int:
        """Drop cached geocode results only. Returns the count removed."""
        prefix = f"{CacheDataType.GEOCODE.value}:"
        keys = [key for key in self.cache.keys() if key.startswith(prefix)]
        removed = self.cache.delete_multiple(keys)
        logger.info(f"Geocode cache cleared ({removed} entries)")
        return removed

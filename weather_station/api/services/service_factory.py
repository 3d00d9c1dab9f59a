"""
Service wiring with dependency injection.

Responsibilities:
- Create ONE TTLCache and inject it into every service that caches
  (weather service, geocoder); there is no module-level cache singleton
- Standardize client creation from Settings
- Provide a single async cleanup for application shutdown
"""

from dataclasses import dataclass

from loguru import logger

from weather_station.api.services.geocoding.zippopotam_client import (
    ZippopotamGeocodingClient,
)
from weather_station.api.services.nws.nws_client import NWSClient
from weather_station.api.services.uv.openweather_uv_client import (
    OpenWeatherUVClient,
)
from weather_station.api.services.weather_service import WeatherService
from weather_station.config.settings import Settings, get_settings
from weather_station.infrastructure.cache.ttl_cache import (
    LoggingCacheListener,
    TTLCache,
)
from weather_station.infrastructure.scheduler.background_refresher import (
    BackgroundRefresher,
)
from weather_station.infrastructure.storage.location_store import (
    LocationStore,
)


@dataclass
class ServiceContainer:
    settings: Settings
    cache: TTLCache
    nws_client: NWSClient
    geocoder: ZippopotamGeocodingClient
    uv_client: OpenWeatherUVClient
    weather_service: WeatherService
    location_store: LocationStore
    refresher: BackgroundRefresher

    async def start(self) -> None:
        """Load tracked locations, start the cache sweep and refresher."""
        self.location_store.initialize()
        self.cache.start()
        if self.settings.refresh.enabled:
            self.refresher.start()
        else:
            logger.info("Background refresh disabled by configuration")

    async def close_all(self) -> None:
        """Stop background tasks and close HTTP clients."""
        await self.refresher.stop()
        await self.cache.close()
        await self.nws_client.close()
        await self.geocoder.close()
        await self.uv_client.close()
        logger.info("ServiceContainer: cleanup complete")


class WeatherServiceFactory:
    """
    Builds every service from Settings.

    Usage:
        container = WeatherServiceFactory.build()
        package = await container.weather_service.get_weather_data(
            33.1581, -96.5989
        )
        await container.close_all()
    """

    @staticmethod
    def create_cache(settings: Settings) -> TTLCache:
        cache = TTLCache(
            default_ttl=settings.cache.default_ttl,
            check_period=settings.cache.check_period,
            max_keys=settings.cache.max_keys,
        )
        cache.add_listener(LoggingCacheListener())
        return cache

    @staticmethod
    def create_nws_client(settings: Settings) -> NWSClient:
        return NWSClient(config=settings.nws)

    @staticmethod
    def create_geocoder(
        cache: TTLCache, settings: Settings
    ) -> ZippopotamGeocodingClient:
        return ZippopotamGeocodingClient(cache, config=settings.geocoding)

    @staticmethod
    def create_uv_client(settings: Settings) -> OpenWeatherUVClient:
        return OpenWeatherUVClient(config=settings.uv)

    @staticmethod
    def create_location_store(settings: Settings) -> LocationStore:
        return LocationStore(
            settings.storage.storage_dir,
            seed_postal_codes=settings.refresh.postal_codes,
            file_name=settings.storage.file_name,
        )

    @classmethod
    def build(cls, settings: Settings | None = None) -> ServiceContainer:
        settings = settings or get_settings()
        cache = cls.create_cache(settings)
        nws_client = cls.create_nws_client(settings)
        geocoder = cls.create_geocoder(cache, settings)
        uv_client = cls.create_uv_client(settings)
        weather_service = WeatherService(
            cache, nws_client, geocoder, uv_client=uv_client
        )
        location_store = cls.create_location_store(settings)
        refresher = BackgroundRefresher(
            weather_service,
            geocoder=geocoder,
            locations=settings.refresh.postal_codes,
            location_store=location_store,
            interval=settings.refresh.interval_seconds,
            run_on_start=settings.refresh.run_on_start,
        )
        logger.debug("ServiceContainer built (shared TTLCache)")
        return ServiceContainer(
            settings=settings,
            cache=cache,
            nws_client=nws_client,
            geocoder=geocoder,
            uv_client=uv_client,
            weather_service=weather_service,
            location_store=location_store,
            refresher=refresher,
        )

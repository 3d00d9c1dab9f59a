"""
Weather and cache administration endpoints.

Errors are not handled here: every WeatherStationError propagates to
the application-level handler, which maps it to its HTTP status.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from loguru import logger

from weather_station.api.services.service_factory import ServiceContainer

router = APIRouter(tags=["Weather"])


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


@router.get("/weather/{zipcode}")
async def get_weather_by_zipcode(
    zipcode: str, container: ServiceContainer = Depends(get_container)
) -> dict[str, Any]:
    """
    Complete weather package for a US ZIP code.

    The ZIP code is tracked for background refresh once the lookup
    succeeds.
    """
    package = await container.weather_service.get_weather_for_postal_code(
        zipcode
    )
    if container.location_store.add(zipcode):
        logger.info(f"Tracking ZIP {zipcode.strip()} for background refresh")
    return package.model_dump(mode="json", by_alias=True)


@router.post("/weather/{zipcode}/refresh")
async def refresh_weather_by_zipcode(
    zipcode: str, container: ServiceContainer = Depends(get_container)
) -> dict[str, Any]:
    """
    Clear the cached data of a ZIP code's location and refetch it.

    Backs the manual refresh button; the ZIP code is tracked like a
    regular lookup.
    """
    service = container.weather_service
    package = await service.refresh_weather_for_postal_code(zipcode)
    if container.location_store.add(zipcode):
        logger.info(f"Tracking ZIP {zipcode.strip()} for background refresh")
    return package.model_dump(mode="json", by_alias=True)


@router.get("/weather")
async def get_weather_by_coordinates(
    lat: float = Query(..., description="Latitude"),
    lon: float = Query(..., description="Longitude"),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    package = await container.weather_service.get_weather_data(lat, lon)
    return package.model_dump(mode="json", by_alias=True)


@router.get("/cache/stats", tags=["Cache"])
async def get_cache_stats(
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    return container.weather_service.get_cache_stats().model_dump()


@router.delete("/cache", tags=["Cache"])
async def clear_cache(
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    container.weather_service.clear_cache()
    return {"status": "ok", "message": "Cache cleared"}


@router.delete("/cache/location", tags=["Cache"])
async def clear_location_cache(
    lat: float = Query(..., description="Latitude"),
    lon: float = Query(..., description="Longitude"),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    removed = container.weather_service.clear_location_cache(lat, lon)
    return {"status": "ok", "removed": removed}

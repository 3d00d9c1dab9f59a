import platform
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request

from weather_station.api.routes.weather_routes import get_container
from weather_station.api.services.service_factory import ServiceContainer

router = APIRouter(prefix="/health", tags=["Health"])

SERVICE_NAME = "weather-station"


def _base_status(request: Request) -> dict[str, Any]:
    started = getattr(request.app.state, "started_at", time.monotonic())
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - started, 3),
        "service": SERVICE_NAME,
        "version": request.app.version,
    }


@router.get("")
async def health(request: Request) -> dict[str, Any]:
    """Liveness check."""
    return _base_status(request)


@router.get("/detailed")
async def health_detailed(
    request: Request, container: ServiceContainer = Depends(get_container)
) -> dict[str, Any]:
    """Cache, refresher, tracked locations and optional UV client."""
    return {
        **_base_status(request),
        "system": {
            "python": platform.python_version(),
            "platform": platform.system(),
        },
        "cache": container.cache.get_stats().model_dump(),
        "refresher": container.refresher.get_status(),
        "locations": container.location_store.get_stats(),
        "uvIndex": {"enabled": container.uv_client.enabled},
    }

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ValidationError

from weather_station.api.services.errors import UpstreamError


class UVIndex(BaseModel):
    """Current UV index at a location (OpenWeatherMap ``current.uvi``)."""

    value: float
    timestamp: datetime
    latitude: float
    longitude: float


def parse_uv_index(
    payload: dict[str, Any], lat: float, lon: float
) -> UVIndex:
    current = payload.get("current") if isinstance(payload, dict) else None
    if not isinstance(current, dict) or "dt" not in current:
        raise UpstreamError(
            "OpenWeatherMap response has no current conditions",
            endpoint="/onecall",
        )
    try:
        return UVIndex(
            value=current.get("uvi"),
            timestamp=datetime.fromtimestamp(current["dt"], tz=timezone.utc),
            latitude=lat,
            longitude=lon,
        )
    except (ValidationError, TypeError, ValueError, OverflowError) as e:
        raise UpstreamError(
            f"Malformed OpenWeatherMap current conditions: {e}",
            endpoint="/onecall",
        ) from e

"""
Cache key generation and TTL policy per data type.

Key format (stable, tested verbatim):
    "<dataType>:<params>"

    points:33.1581,-96.5989
    forecast-7day:FWD/80,108
    forecast-hourly:FWD/80,108
    stations:FWD/80,108
    observation:KTKI
    geocode:75454
    uv:33.2859,-96.5989

Coordinates are always fixed to 4 decimal places, which is also the
precision api.weather.gov accepts on /points.
"""

from enum import Enum


class CacheTTL:
    """TTL in seconds for each data kind."""

    POINTS = 86400  # 24h - grid point data barely changes
    FORECASTS = 3600  # 1h
    OBSERVATIONS = 600  # 10min
    STATION_METADATA = 604800  # 7 days
    GEOCODE = 86400  # 24h
    UV_INDEX = 3600  # 1h - UV changes slowly during the day
    ALERTS = 0  # never cached, always fetched live


class CacheDataType(str, Enum):
    POINTS = "points"
    FORECAST_7DAY = "forecast-7day"
    FORECAST_HOURLY = "forecast-hourly"
    OBSERVATION = "observation"
    STATIONS = "stations"
    STATION = "station"
    ZONE = "zone"
    ALERT = "alert"
    GEOCODE = "geocode"
    UV_INDEX = "uv"


_TTL_BY_TYPE = {
    CacheDataType.POINTS: CacheTTL.POINTS,
    CacheDataType.FORECAST_7DAY: CacheTTL.FORECASTS,
    CacheDataType.FORECAST_HOURLY: CacheTTL.FORECASTS,
    CacheDataType.OBSERVATION: CacheTTL.OBSERVATIONS,
    CacheDataType.STATIONS: CacheTTL.STATION_METADATA,
    CacheDataType.STATION: CacheTTL.STATION_METADATA,
    CacheDataType.ZONE: CacheTTL.STATION_METADATA,
    CacheDataType.ALERT: CacheTTL.ALERTS,
    CacheDataType.GEOCODE: CacheTTL.GEOCODE,
    CacheDataType.UV_INDEX: CacheTTL.UV_INDEX,
}


def get_ttl_for_data_type(data_type: CacheDataType | str) -> int:
    """Return the TTL for a data type, 1h for anything unknown."""
    try:
        return _TTL_BY_TYPE[CacheDataType(data_type)]
    except ValueError:
        return CacheTTL.FORECASTS


def format_coordinate(value: float) -> str:
    return f"{value:.4f}"


class CacheKeyGenerator:
    """Pure functions: identical inputs always yield identical keys."""

    @staticmethod
    def points(lat: float, lon: float) -> str:
        return (
            f"{CacheDataType.POINTS.value}:"
            f"{format_coordinate(lat)},{format_coordinate(lon)}"
        )

    @staticmethod
    def forecast_7day(office: str, grid_x: int, grid_y: int) -> str:
        prefix = CacheDataType.FORECAST_7DAY.value
        return f"{prefix}:{office}/{grid_x},{grid_y}"

    @staticmethod
    def forecast_hourly(office: str, grid_x: int, grid_y: int) -> str:
        return (
            f"{CacheDataType.FORECAST_HOURLY.value}:{office}/{grid_x},{grid_y}"
        )

    @staticmethod
    def stations(office: str, grid_x: int, grid_y: int) -> str:
        return f"{CacheDataType.STATIONS.value}:{office}/{grid_x},{grid_y}"

    @staticmethod
    def observation(station_id: str) -> str:
        return f"{CacheDataType.OBSERVATION.value}:{station_id}"

    @staticmethod
    def station(station_id: str) -> str:
        return f"{CacheDataType.STATION.value}:{station_id}"

    @staticmethod
    def zone(zone_id: str) -> str:
        return f"{CacheDataType.ZONE.value}:{zone_id}"

    @staticmethod
    def alert(lat: float, lon: float) -> str:
        # alerts are never cached; kept so every data type has a key
        return (
            f"{CacheDataType.ALERT.value}:"
            f"{format_coordinate(lat)},{format_coordinate(lon)}"
        )

    @staticmethod
    def geocode(postal_code: str) -> str:
        return f"{CacheDataType.GEOCODE.value}:{postal_code}"

    @staticmethod
    def uv_index(lat: float, lon: float) -> str:
        return (
            f"{CacheDataType.UV_INDEX.value}:"
            f"{format_coordinate(lat)},{format_coordinate(lon)}"
        )

    @staticmethod
    def custom(data_type: CacheDataType | str, identifier: str) -> str:
        prefix = (
            data_type.value
            if isinstance(data_type, CacheDataType)
            else data_type
        )
        return f"{prefix}:{identifier}"

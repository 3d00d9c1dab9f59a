"""
Application settings.

Each group is a pydantic model whose defaults come from environment
variables, read once at import time. ``get_settings()`` returns the
cached aggregate; tests build the groups directly with explicit values.

Environment variables:
    NWS_BASE_URL, NWS_USER_AGENT, NWS_TIMEOUT, NWS_MAX_RETRIES
    GEOCODING_BASE_URL, GEOCODING_TIMEOUT
    OPENWEATHER_API_KEY, OPENWEATHER_BASE_URL, OPENWEATHER_TIMEOUT
    CACHE_DEFAULT_TTL, CACHE_CHECK_PERIOD, CACHE_MAX_KEYS
    BACKGROUND_REFRESH_ENABLED, REFRESH_INTERVAL_SECONDS, CACHED_ZIP_CODES
    ZIP_STORAGE_DIR
    LOG_LEVEL, LOG_DIR, JSON_LOGS
    API_PREFIX, CORS_ORIGINS, HOST, PORT, ENVIRONMENT
"""

import os
from functools import lru_cache

from pydantic import BaseModel, Field

DEFAULT_ZIP_CODES = "75454,75070,75035"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class NWSSettings(BaseModel):
    """
    National Weather Service API settings.

    Attributes:
        base_url: API root (api.weather.gov)
        user_agent: User-Agent header (REQUIRED by the NWS API)
        timeout: Per-attempt HTTP timeout (seconds)
        max_retries: Retries after the first attempt for transient errors
        backoff_delays: Delay before retry n (last value reused)
        max_retry_after: Upper bound for a server Retry-After hint
    """

    base_url: str = os.getenv("NWS_BASE_URL", "https://api.weather.gov")
    user_agent: str = os.getenv(
        "NWS_USER_AGENT",
        "WeatherStation/1.0 (weather-station@example.com)",
    )
    timeout: float = float(os.getenv("NWS_TIMEOUT", "10"))
    max_retries: int = int(os.getenv("NWS_MAX_RETRIES", "3"))
    backoff_delays: list[float] = Field(default_factory=lambda: [1, 2, 4])
    max_retry_after: float = 30.0


class GeocodingSettings(BaseModel):
    base_url: str = os.getenv(
        "GEOCODING_BASE_URL", "http://api.zippopotam.us/us"
    )
    timeout: float = float(os.getenv("GEOCODING_TIMEOUT", "10"))
    user_agent: str = os.getenv(
        "NWS_USER_AGENT",
        "WeatherStation/1.0 (weather-station@example.com)",
    )


class UVSettings(BaseModel):
    """
    OpenWeatherMap One Call settings (UV index only).

    Without an API key the UV client is disabled and every package
    carries ``uvIndex: null``.
    """

    api_key: str | None = os.getenv("OPENWEATHER_API_KEY") or None
    base_url: str = os.getenv(
        "OPENWEATHER_BASE_URL", "https://api.openweathermap.org/data/3.0"
    )
    timeout: float = float(os.getenv("OPENWEATHER_TIMEOUT", "5"))
    max_retries: int = 1
    backoff_delays: list[float] = Field(default_factory=lambda: [1, 2])


class CacheSettings(BaseModel):
    default_ttl: float = float(os.getenv("CACHE_DEFAULT_TTL", "3600"))
    check_period: float = float(os.getenv("CACHE_CHECK_PERIOD", "120"))
    max_keys: int = int(os.getenv("CACHE_MAX_KEYS", "1000"))


class RefreshSettings(BaseModel):
    enabled: bool = _env_bool("BACKGROUND_REFRESH_ENABLED", True)
    interval_seconds: float = float(
        os.getenv("REFRESH_INTERVAL_SECONDS", "300")
    )
    postal_codes: list[str] = Field(
        default_factory=lambda: _env_list(
            "CACHED_ZIP_CODES", DEFAULT_ZIP_CODES
        )
    )
    run_on_start: bool = True


class StorageSettings(BaseModel):
    storage_dir: str = os.getenv("ZIP_STORAGE_DIR", "/data")
    file_name: str = "zip-codes.json"


class LoggingSettings(BaseModel):
    level: str = os.getenv("LOG_LEVEL", "INFO")
    log_dir: str | None = os.getenv("LOG_DIR", "logs")
    json_logs: bool = _env_bool("JSON_LOGS", False)


class AppSettings(BaseModel):
    title: str = "Weather Station"
    version: str = "1.0.0"
    api_prefix: str = os.getenv("API_PREFIX", "/api")
    cors_origins: list[str] = Field(
        default_factory=lambda: _env_list(
            "CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
        )
    )
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3001"))
    environment: str = os.getenv("ENVIRONMENT", "development")


class Settings(BaseModel):
    nws: NWSSettings = Field(default_factory=NWSSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    uv: UVSettings = Field(default_factory=UVSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    app: AppSettings = Field(default_factory=AppSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

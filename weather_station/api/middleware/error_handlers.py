from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from weather_station.api.services.errors import (
    RateLimitedError,
    WeatherStationError,
)


async def weather_station_error_handler(
    request: Request, exc: WeatherStationError
) -> JSONResponse:
    """Map the error taxonomy onto HTTP responses."""
    headers = {}
    if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
        headers["Retry-After"] = str(int(round(exc.retry_after)))

    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        f"{request.method} {request.url.path} -> {exc.http_status} "
        f"{exc.error_code}: {exc.message}"
    )
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_dict(), headers=headers
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(
        WeatherStationError, weather_station_error_handler
    )

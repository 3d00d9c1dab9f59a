"""
Error taxonomy for the weather data pipeline.

Every failure that leaves the NWS client, the geocoding client or the
weather service is one of these exceptions. Each carries the HTTP status
the boundary layer should answer with, so route handlers only need a
single exception handler.

Hierarchy:
    WeatherStationError
    ├── InvalidInputError         - bad ZIP code or coordinates (400)
    ├── NotFoundError             - unknown ZIP or uncovered point (404)
    ├── RateLimitedError          - upstream answered 429 (429)
    ├── BadRequestError           - other upstream 4xx (502)
    ├── UpstreamUnavailableError  - retry budget exhausted (503)
    ├── NetworkError              - timeout or connection failure (503)
    └── UpstreamError             - unexpected upstream response (502)

Retries live exclusively inside the upstream clients. Everything above
them either propagates these errors or degrades (current observation,
alerts, UV index).

httpx request failures are mapped through ``classify_request_error`` so
every client reports them the same way.
"""

from typing import Any

import httpx


class WeatherStationError(Exception):
    """Base class for all pipeline errors."""

    http_status: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        status_code: int | None = None,
        problem: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.status_code = status_code
        self.problem = problem or {}

    @property
    def correlation_id(self) -> str | None:
        """Upstream correlation id (problem-detail bodies only)."""
        return self.problem.get("correlationId")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
            "statusCode": self.http_status,
        }
        if self.correlation_id:
            payload["correlationId"] = self.correlation_id
        return payload


class InvalidInputError(WeatherStationError):
    http_status = 400
    error_code = "INVALID_INPUT"


class NotFoundError(WeatherStationError):
    http_status = 404
    error_code = "NOT_FOUND"


class RateLimitedError(WeatherStationError):
    """
    Upstream rate limit (HTTP 429).

    Never retried inside the client. ``retry_after`` holds the server
    hint in seconds when one was sent, so callers can back off.
    """

    http_status = 429
    error_code = "RATE_LIMITED"

    def __init__(
        self, message: str, *, retry_after: float | None = None, **kw
    ):
        super().__init__(message, **kw)
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.retry_after is not None:
            payload["retryAfter"] = self.retry_after
        return payload


class BadRequestError(WeatherStationError):
    http_status = 502
    error_code = "UPSTREAM_BAD_REQUEST"


class UpstreamUnavailableError(WeatherStationError):
    """Transient failures (network / 5xx) outlasted the retry budget."""

    http_status = 503
    error_code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, message: str, *, attempts: int = 0, **kw):
        super().__init__(message, **kw)
        self.attempts = attempts


class NetworkError(WeatherStationError):
    http_status = 503
    error_code = "NETWORK_ERROR"


class UpstreamError(WeatherStationError):
    http_status = 502
    error_code = "UPSTREAM_ERROR"


def is_transient_request_error(exc: httpx.RequestError) -> bool:
    """Timeouts and connection-level failures are worth retrying."""
    return isinstance(exc, httpx.TransportError)


def classify_request_error(
    exc: httpx.RequestError, service: str, endpoint: str
) -> WeatherStationError:
    """
    Map an httpx request failure onto the taxonomy.

    - ``TimeoutException`` -> NetworkError ("... request timed out")
    - any other ``TransportError`` -> NetworkError
    - ``DecodingError``, ``TooManyRedirects`` and the rest -> UpstreamError

    The caller raises the result ``from exc``.
    """
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError(f"{service} request timed out", endpoint=endpoint)
    if isinstance(exc, httpx.TransportError):
        return NetworkError(
            f"Unable to reach {service}: {type(exc).__name__}: {exc}",
            endpoint=endpoint,
        )
    return UpstreamError(
        f"{service} {endpoint} failed: {type(exc).__name__}: {exc}",
        endpoint=endpoint,
    )

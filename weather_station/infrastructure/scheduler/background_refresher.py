"""
Background cache refresher.

Keeps the shared cache warm for known locations so user requests are
served from memory. Runs as an asyncio task on the application's event
loop, next to the request handlers, and shares their cache instance.

Schedule:
    Fixed-rate ticks (default every 5 minutes) measured from each cycle
    start. A cycle that overruns the interval makes the next one start
    immediately; cycles never overlap.

Each cycle:
    1. Collect configured locations (ZIP codes or Coordinates) plus the
       ZIP codes tracked by the LocationStore
    2. For every location, concurrently:
       geocode (ZIP only) -> WeatherService.prefetch_weather_data
    3. Per-location failures are logged and counted; they never abort
       the cycle

Usage:
    refresher = BackgroundRefresher(service, geocoder, ["75454"]).start()
    ...
    await refresher.stop()
"""

import asyncio
import contextlib
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from weather_station.api.middleware.prometheus_metrics import (
    REFRESH_CYCLE_DURATION,
    REFRESH_CYCLES_TOTAL,
    REFRESH_LOCATIONS_TOTAL,
)
from weather_station.api.services.geocoding.zippopotam_client import (
    ZippopotamGeocodingClient,
)
from weather_station.api.services.nws.nws_models import Coordinates
from weather_station.api.services.weather_service import WeatherService
from weather_station.infrastructure.storage.location_store import (
    LocationStore,
)

RefreshLocation = str | Coordinates


class RefreshCycleResult(BaseModel):
    succeeded: int = 0
    failed: int = 0
    duration: float = 0.0
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


def _label(location: RefreshLocation) -> str:
    if isinstance(location, Coordinates):
        return f"{location.lat:.4f},{location.lon:.4f}"
    return location


class BackgroundRefresher:
    """
    Periodically prefetch weather data for known locations.

    Args:
        weather_service: Service whose caches are warmed
        geocoder: Resolves ZIP code locations (required if any exist)
        locations: Configured ZIP codes and/or Coordinates
        location_store: Source of user-tracked ZIP codes
        interval: Seconds between cycle starts
        run_on_start: Run the first cycle immediately on ``start()``
    """

    def __init__(
        self,
        weather_service: WeatherService,
        geocoder: ZippopotamGeocodingClient | None = None,
        locations: Iterable[RefreshLocation] = (),
        location_store: LocationStore | None = None,
        interval: float = 300,
        run_on_start: bool = True,
    ):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.weather_service = weather_service
        self.geocoder = geocoder
        self.locations = list(locations)
        self.location_store = location_store
        self.interval = interval
        self.run_on_start = run_on_start

        self.cycles_completed = 0
        self.cycles_overrun = 0
        self.last_result: RefreshCycleResult | None = None
        self._task: asyncio.Task | None = None
        self._cycle_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_locations(self) -> list[RefreshLocation]:
        """Configured locations plus tracked ZIP codes, de-duplicated."""
        seen: set[str] = set()
        result: list[RefreshLocation] = []
        candidates: list[RefreshLocation] = list(self.locations)
        if self.location_store is not None:
            candidates += self.location_store.list_all()

        for location in candidates:
            if isinstance(location, str):
                location = location.strip()
            label = _label(location)
            if label and label not in seen:
                seen.add(label)
                result.append(location)
        return result

    async def _refresh_location(self, location: RefreshLocation) -> None:
        if isinstance(location, Coordinates):
            await self.weather_service.prefetch_weather_data(
                location.lat, location.lon
            )
            return

        if self.geocoder is None:
            raise RuntimeError(f"No geocoder configured for ZIP {location}")
        coordinates = await self.geocoder.geocode(location)
        await self.weather_service.prefetch_weather_data(
            coordinates.lat, coordinates.lon, postal_code=location
        )

    async def run_cycle(self) -> RefreshCycleResult:
        """Refresh every location once. Never raises for location errors."""
        async with self._cycle_lock:
            locations = self.get_locations()
            result = RefreshCycleResult()
            start = time.perf_counter()
            logger.info(
                f"[Refresher] Cycle started | {len(locations)} locations"
            )

            outcomes = await asyncio.gather(
                *(self._refresh_location(loc) for loc in locations),
                return_exceptions=True,
            )
            for location, outcome in zip(locations, outcomes):
                # A stop() cancels this gather itself; a cancelled
                # location here was cancelled by someone else.
                if isinstance(outcome, (Exception, asyncio.CancelledError)):
                    message = str(outcome) or type(outcome).__name__
                    result.failed += 1
                    result.errors[_label(location)] = message
                    REFRESH_LOCATIONS_TOTAL.labels(status="failure").inc()
                    logger.error(
                        f"[Refresher] Failed to refresh {_label(location)}: "
                        f"{message}"
                    )
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    result.succeeded += 1
                    REFRESH_LOCATIONS_TOTAL.labels(status="success").inc()

            result.duration = time.perf_counter() - start
            self.cycles_completed += 1
            self.last_result = result

            status = "success" if result.failed == 0 else "partial"
            if locations and result.succeeded == 0:
                status = "failure"
            REFRESH_CYCLES_TOTAL.labels(status=status).inc()
            REFRESH_CYCLE_DURATION.observe(result.duration)
            logger.info(
                f"[Refresher] Cycle finished in {result.duration:.2f}s | "
                f"succeeded={result.succeeded} failed={result.failed}"
            )
            return result

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + (0 if self.run_on_start else self.interval)

        while True:
            delay = next_run - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)

            cycle_start = loop.time()
            try:
                await self.run_cycle()
            except Exception as e:
                logger.exception(f"[Refresher] Cycle crashed: {e}")

            next_run = cycle_start + self.interval
            if loop.time() > next_run:
                self.cycles_overrun += 1
                logger.warning(
                    f"[Refresher] Cycle took "
                    f"{loop.time() - cycle_start:.1f}s, longer than the "
                    f"{self.interval}s interval; starting next cycle now"
                )
                next_run = loop.time()

    def start(self) -> "BackgroundRefresher":
        """Schedule refresh cycles. Returns self as the stop handle."""
        if self.is_running:
            logger.warning("[Refresher] Already running")
            return self
        self._task = asyncio.get_running_loop().create_task(
            self._run_loop(), name="background-refresher"
        )
        logger.info(
            f"[Refresher] Started | interval={self.interval}s "
            f"locations={len(self.get_locations())}"
        )
        return self

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("[Refresher] Stopped")

    def get_status(self) -> dict[str, Any]:
        last = self.last_result
        return {
            "running": self.is_running,
            "intervalSeconds": self.interval,
            "locations": [_label(loc) for loc in self.get_locations()],
            "cyclesCompleted": self.cycles_completed,
            "cyclesOverrun": self.cycles_overrun,
            "lastCycle": (
                {
                    "startedAt": last.started_at.isoformat(),
                    "succeeded": last.succeeded,
                    "failed": last.failed,
                    "durationSeconds": round(last.duration, 3),
                }
                if last
                else None
            ),
        }

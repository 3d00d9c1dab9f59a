"""
Sunrise, sunset and twilight times for a location.

Computed locally with astral (no upstream call). The day is the
calendar day at the location, taken from the NWS time zone of the grid
point when one is known and UTC otherwise. Times are returned in that
zone.

Civil dawn/dusk use the 6 degree depression. Near the poles an event
may not happen on a given day (polar day or night); that field is then
None instead of failing the whole package.
"""

from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from astral import Observer
from astral import sun as astral_sun
from loguru import logger
from pydantic import BaseModel, Field


class SunTimes(BaseModel):
    model_config = {"populate_by_name": True}

    sunrise: datetime | None = None
    sunset: datetime | None = None
    solar_noon: datetime | None = Field(None, alias="solarNoon")
    civil_dawn: datetime | None = Field(None, alias="civilDawn")
    civil_dusk: datetime | None = Field(None, alias="civilDusk")


def resolve_time_zone(time_zone: str | None) -> tzinfo:
    """IANA zone by name; UTC when missing or unknown."""
    if not time_zone:
        return timezone.utc
    try:
        return ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown time zone {time_zone!r}, using UTC")
        return timezone.utc


def _event(func, observer: Observer, day: date, tz: tzinfo):
    try:
        return func(observer, date=day, tzinfo=tz)
    except ValueError as e:
        # astral raises when the sun never crosses the required elevation
        logger.debug(f"No {func.__name__} on {day}: {e}")
        return None


def get_sun_times(
    lat: float,
    lon: float,
    on: date | None = None,
    time_zone: str | None = None,
) -> SunTimes:
    """
    Sun times for one day at a location.

    Args:
        lat: Latitude (-90 to 90)
        lon: Longitude (-180 to 180)
        on: Calendar day; today at the location when omitted
        time_zone: IANA zone of the location (e.g. "America/Chicago")

    Returns:
        SunTimes, with None for events that do not occur that day
    """
    tz = resolve_time_zone(time_zone)
    day = on or datetime.now(tz).date()
    observer = Observer(latitude=lat, longitude=lon)

    return SunTimes(
        sunrise=_event(astral_sun.sunrise, observer, day, tz),
        sunset=_event(astral_sun.sunset, observer, day, tz),
        solar_noon=_event(astral_sun.noon, observer, day, tz),
        civil_dawn=_event(astral_sun.dawn, observer, day, tz),
        civil_dusk=_event(astral_sun.dusk, observer, day, tz),
    )

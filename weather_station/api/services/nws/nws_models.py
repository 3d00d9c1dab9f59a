"""
Typed views over the api.weather.gov GeoJSON payloads.

The API wraps most measurements as ``{"unitCode": ..., "value": ...}``;
these models flatten them to the bare value and keep the unit implied by
the field name (``wmoUnit:degC`` for temperatures, ``km_h-1`` for wind).
Field aliases follow the upstream camelCase names so payloads validate
directly and serialize back in the shape the frontend already reads.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from weather_station.api.services.errors import UpstreamError
from weather_station.api.services.sun_service import SunTimes
from weather_station.api.services.uv.uv_models import UVIndex


def _quantity_value(value: Any) -> Any:
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value


def _flatten(props: dict[str, Any]) -> dict[str, Any]:
    return {key: _quantity_value(value) for key, value in props.items()}


class Coordinates(BaseModel):
    lat: float
    lon: float


class GridPoint(BaseModel):
    """
    Result of GET /points/{lat},{lon}.

    Attributes:
        office: Forecast office id (WFO, e.g. "FWD")
        grid_x: Grid column
        grid_y: Grid row
        forecast_url: 7-day forecast endpoint
        forecast_hourly_url: Hourly forecast endpoint
        observation_stations_url: Station list endpoint for the cell
        forecast_zone: Forecast zone URL
        time_zone: IANA time zone of the point
        city: Nearest city (relativeLocation)
        state: State of the nearest city
    """

    model_config = {"populate_by_name": True}

    office: str = Field(..., alias="gridId")
    grid_x: int = Field(..., alias="gridX")
    grid_y: int = Field(..., alias="gridY")
    forecast_office: str | None = Field(None, alias="forecastOffice")
    forecast_url: str | None = Field(None, alias="forecast")
    forecast_hourly_url: str | None = Field(None, alias="forecastHourly")
    observation_stations_url: str | None = Field(
        None, alias="observationStations"
    )
    forecast_zone: str | None = Field(None, alias="forecastZone")
    time_zone: str | None = Field(None, alias="timeZone")
    city: str | None = None
    state: str | None = None

    @property
    def display_name(self) -> str | None:
        if self.city and self.state:
            return f"{self.city}, {self.state}"
        return None


class ForecastPeriod(BaseModel):
    model_config = {"populate_by_name": True}

    number: int
    name: str = ""
    start_time: datetime = Field(..., alias="startTime")
    end_time: datetime = Field(..., alias="endTime")
    is_daytime: bool = Field(True, alias="isDaytime")
    temperature: float | None = None
    temperature_unit: str = Field("F", alias="temperatureUnit")
    temperature_trend: str | None = Field(None, alias="temperatureTrend")
    probability_of_precipitation: float | None = Field(
        None, alias="probabilityOfPrecipitation"
    )
    dewpoint: float | None = None
    relative_humidity: float | None = Field(None, alias="relativeHumidity")
    wind_speed: str | None = Field(None, alias="windSpeed")
    wind_direction: str | None = Field(None, alias="windDirection")
    icon: str | None = None
    short_forecast: str | None = Field(None, alias="shortForecast")
    detailed_forecast: str | None = Field(None, alias="detailedForecast")


class Station(BaseModel):
    model_config = {"populate_by_name": True}

    station_id: str = Field(..., alias="stationIdentifier")
    name: str = "Unknown"
    latitude: float | None = None
    longitude: float | None = None
    elevation_m: float | None = Field(None, alias="elevation")
    time_zone: str | None = Field(None, alias="timeZone")


class Observation(BaseModel):
    """Latest station observation, SI units as delivered by the API."""

    model_config = {"populate_by_name": True}

    station_id: str = Field(..., alias="stationId")
    timestamp: datetime
    text_description: str | None = Field(None, alias="textDescription")
    icon: str | None = None
    temperature: float | None = None  # degC
    dewpoint: float | None = None  # degC
    wind_direction: float | None = Field(None, alias="windDirection")
    wind_speed: float | None = Field(None, alias="windSpeed")  # km/h
    wind_gust: float | None = Field(None, alias="windGust")  # km/h
    barometric_pressure: float | None = Field(
        None, alias="barometricPressure"
    )  # Pa
    visibility: float | None = None  # m
    relative_humidity: float | None = Field(None, alias="relativeHumidity")
    wind_chill: float | None = Field(None, alias="windChill")
    heat_index: float | None = Field(None, alias="heatIndex")
    precipitation_last_hour: float | None = Field(
        None, alias="precipitationLastHour"
    )


class Alert(BaseModel):
    model_config = {"populate_by_name": True}

    id: str
    event: str
    headline: str | None = None
    description: str | None = None
    instruction: str | None = None
    severity: str = "Unknown"
    certainty: str | None = None
    urgency: str | None = None
    status: str | None = None
    message_type: str | None = Field(None, alias="messageType")
    category: str | None = None
    area_desc: str | None = Field(None, alias="areaDesc")
    sender_name: str | None = Field(None, alias="senderName")
    effective: datetime | None = None
    onset: datetime | None = None
    expires: datetime | None = None
    ends: datetime | None = None


class LocationInfo(BaseModel):
    model_config = {"populate_by_name": True}

    postal_code: str | None = Field(None, alias="zipCode")
    coordinates: Coordinates
    display_name: str = Field(..., alias="displayName")
    grid_point: GridPoint = Field(..., alias="gridInfo")
    time_zone: str | None = Field(None, alias="timeZone")


class WeatherPackage(BaseModel):
    """Complete weather picture for one location."""

    model_config = {"populate_by_name": True}

    location: LocationInfo
    forecast: list[ForecastPeriod] = Field(default_factory=list)
    hourly_forecast: list[ForecastPeriod] = Field(
        default_factory=list, alias="hourlyForecast"
    )
    current_observation: Observation | None = Field(
        None, alias="currentConditions"
    )
    alerts: list[Alert] = Field(default_factory=list)
    sun_times: SunTimes | None = Field(None, alias="sunTimes")
    uv_index: UVIndex | None = Field(None, alias="uvIndex")
    fetched_at: datetime = Field(..., alias="fetchedAt")
    cache_expiry: datetime = Field(..., alias="cacheExpiry")


# ----------------------------------------------------------------------
# Payload parsers (raise UpstreamError on malformed bodies)
# ----------------------------------------------------------------------


def parse_grid_point(payload: dict[str, Any]) -> GridPoint:
    props = payload.get("properties") or {}
    relative = (props.get("relativeLocation") or {}).get("properties") or {}
    data = dict(props)
    # Rare API quirk: gridId "grid" instead of the office id
    if data.get("gridId") == "grid" and data.get("forecastOffice"):
        data["gridId"] = data["forecastOffice"].rstrip("/").split("/")[-1]
    data["city"] = relative.get("city")
    data["state"] = relative.get("state")
    try:
        return GridPoint.model_validate(data)
    except ValidationError as e:
        raise UpstreamError(
            f"Incomplete grid point metadata: {e.error_count()} errors",
            endpoint="/points",
        ) from e


def parse_forecast_periods(payload: dict[str, Any]) -> list[ForecastPeriod]:
    """Parse forecast periods, sorted chronologically by start time."""
    periods = (payload.get("properties") or {}).get("periods") or []
    try:
        parsed = [ForecastPeriod.model_validate(_flatten(p)) for p in periods]
    except ValidationError as e:
        raise UpstreamError(
            f"Malformed forecast period: {e.error_count()} errors",
            endpoint="/forecast",
        ) from e
    return sorted(parsed, key=lambda p: p.start_time)


def parse_stations(payload: dict[str, Any]) -> list[Station]:
    """Station list in upstream order (nearest first)."""
    stations = []
    for feature in payload.get("features") or []:
        props = _flatten(feature.get("properties") or {})
        coords = (feature.get("geometry") or {}).get("coordinates") or []
        if len(coords) == 2:
            props["longitude"], props["latitude"] = coords
        try:
            stations.append(Station.model_validate(props))
        except ValidationError as e:
            raise UpstreamError(
                f"Malformed station feature: {e.error_count()} errors",
                endpoint="/stations",
            ) from e
    return stations


def parse_observation(
    payload: dict[str, Any], station_id: str
) -> Observation:
    props = _flatten(payload.get("properties") or {})
    props["stationId"] = station_id
    try:
        return Observation.model_validate(props)
    except ValidationError as e:
        raise UpstreamError(
            f"Malformed observation for {station_id}",
            endpoint=f"/stations/{station_id}/observations/latest",
        ) from e


def parse_alerts(payload: dict[str, Any]) -> list[Alert]:
    try:
        return [
            Alert.model_validate(feature.get("properties") or {})
            for feature in payload.get("features") or []
        ]
    except ValidationError as e:
        raise UpstreamError(
            f"Malformed alert feature: {e.error_count()} errors",
            endpoint="/alerts/active",
        ) from e

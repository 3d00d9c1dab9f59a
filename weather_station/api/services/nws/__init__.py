from .nws_client import NWSClient
from .nws_models import (
    Alert,
    Coordinates,
    ForecastPeriod,
    GridPoint,
    LocationInfo,
    Observation,
    Station,
    WeatherPackage,
)

__all__ = [
    "NWSClient",
    "Alert",
    "Coordinates",
    "ForecastPeriod",
    "GridPoint",
    "LocationInfo",
    "Observation",
    "Station",
    "WeatherPackage",
]

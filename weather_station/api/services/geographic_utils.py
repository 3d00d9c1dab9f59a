"""
Geographic validation shared by the geocoder and the weather service.

Bounding boxes are (lon_min, lat_min, lon_max, lat_max) = (W, S, E, N).

- US_BBOX: -180W to -65W, 18N to 72N. Covers the contiguous states plus
  Alaska, Hawaii and Puerto Rico, i.e. everything a US ZIP code can
  resolve to.
- GLOBAL_BBOX: any valid coordinate.

Usage:
    from weather_station.api.services.geographic_utils import (
        GeographicUtils,
        require_valid_coordinates,
    )

    lat, lon = require_valid_coordinates(lat, lon)
    if not GeographicUtils.is_in_usa(lat, lon):
        ...
"""

import math
import re

from loguru import logger

from weather_station.api.services.errors import InvalidInputError

POSTAL_CODE_PATTERN = re.compile(r"^\d{5}$")


class GeographicUtils:
    US_BBOX = (-180.0, 18.0, -65.0, 72.0)
    GLOBAL_BBOX = (-180.0, -90.0, 180.0, 90.0)

    @staticmethod
    def is_valid_coordinate(lat: float, lon: float) -> bool:
        """True for finite coordinates inside (-90..90, -180..180)."""
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return False
        lon_min, lat_min, lon_max, lat_max = GeographicUtils.GLOBAL_BBOX
        return (lon_min <= lon <= lon_max) and (lat_min <= lat <= lat_max)

    @staticmethod
    def is_in_bbox(lat: float, lon: float, bbox: tuple) -> bool:
        if not GeographicUtils.is_valid_coordinate(lat, lon):
            return False
        west, south, east, north = bbox
        return (west <= lon <= east) and (south <= lat <= north)

    @staticmethod
    def is_in_usa(lat: float, lon: float) -> bool:
        in_usa = GeographicUtils.is_in_bbox(lat, lon, GeographicUtils.US_BBOX)
        if not in_usa:
            logger.debug(
                f"Coordinates ({lat:.4f}, {lon:.4f}) outside US coverage"
            )
        return in_usa

    @staticmethod
    def is_valid_postal_code(postal_code: str) -> bool:
        return bool(POSTAL_CODE_PATTERN.match(postal_code))


def require_valid_coordinates(lat, lon) -> tuple[float, float]:
    """
    Coerce and validate a coordinate pair.

    Returns:
        (lat, lon) as floats

    Raises:
        InvalidInputError: Non-numeric, non-finite or out of range
    """
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(
            f"Coordinates must be numeric: lat={lat!r}, lon={lon!r}"
        ) from e

    if not GeographicUtils.is_valid_coordinate(lat, lon):
        raise InvalidInputError(
            f"Invalid coordinates: lat={lat}, lon={lon}. "
            "Must be within lat (-90 to 90), lon (-180 to 180)"
        )
    return lat, lon

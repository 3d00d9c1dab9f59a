from .openweather_uv_client import OpenWeatherUVClient
from .uv_models import UVIndex

__all__ = ["OpenWeatherUVClient", "UVIndex"]

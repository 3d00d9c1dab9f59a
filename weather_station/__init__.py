"""
Weather Station backend.

Fetches, caches and assembles National Weather Service data for US
locations:
- TTLCache: shared in-memory cache with per-entry expiry
- NWSClient: retrying api.weather.gov client
- ZippopotamGeocodingClient: ZIP code -> coordinates
- WeatherService: assembles the complete WeatherPackage
- BackgroundRefresher: keeps the cache warm for tracked locations
"""

__version__ = "1.0.0"

"""
Weather data services.

ARCHITECTURE OVERVIEW:
======================

Wiring:
└── WeatherServiceFactory     - Builds every service around ONE TTLCache

Orchestration:
└── WeatherService            - Point -> forecasts/observation/alerts/UV

API Clients:
├── NWSClient                 - api.weather.gov (retry + error taxonomy)
├── ZippopotamGeocodingClient - ZIP code -> coordinates (cached 24h)
└── OpenWeatherUVClient       - current UV index (optional, API key)

Shared:
├── errors                    - WeatherStationError hierarchy
├── sun_service               - Sunrise/sunset/twilight (astral)
└── geographic_utils          - Coordinate / ZIP code validation
"""

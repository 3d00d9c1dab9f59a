from fastapi import APIRouter

from weather_station.api.routes.health import router as health_router
from weather_station.api.routes.weather_routes import router as weather_router

api_router = APIRouter()

# Health checks (2 endpoints)
api_router.include_router(health_router)

# Weather lookups + cache administration (5 endpoints)
api_router.include_router(weather_router)

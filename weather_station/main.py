import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from prometheus_fastapi_instrumentator import Instrumentator

from weather_station.api.middleware.error_handlers import (
    register_exception_handlers,
)
from weather_station.api.routes import api_router
from weather_station.api.services.service_factory import (
    ServiceContainer,
    WeatherServiceFactory,
)
from weather_station.config.logging_config import setup_logging
from weather_station.config.settings import Settings, get_settings

settings = get_settings()

setup_logging(
    log_level=settings.logging.level,
    log_dir=settings.logging.log_dir,
    json_logs=settings.logging.json_logs,
)


def create_application(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        settings: Settings (defaults from the environment)
        container: Pre-built services. When omitted, the lifespan builds
            and starts them, and closes them on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            app.state.container = WeatherServiceFactory.build(settings)
        await app.state.container.start()
        logger.info(
            f"Weather API available at {settings.app.api_prefix}"
            "/weather/{zipcode}"
        )
        try:
            yield
        finally:
            await app.state.container.close_all()

    app = FastAPI(
        title=settings.app.title,
        version=settings.app.version,
        openapi_url=f"{settings.app.api_prefix}/openapi.json",
        docs_url=f"{settings.app.api_prefix}/docs",
        redoc_url=f"{settings.app.api_prefix}/redoc",
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.app.api_prefix)

    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    @app.get("/")
    async def root():
        return {
            "message": "Weather Station API",
            "health": f"{settings.app.api_prefix}/health",
            "docs": f"{settings.app.api_prefix}/docs",
        }

    return app


app = create_application()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "weather_station.main:app",
        host=settings.app.host,
        port=settings.app.port,
        reload=settings.app.environment == "development",
    )

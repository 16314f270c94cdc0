"""FastAPI application for click ingestion and analytics."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI

from tinylink_analytics.api import analytics_router
from tinylink_analytics.consumers import get_consumer, start_consumer, stop_consumer
from tinylink_analytics.core.config import get_settings
from tinylink_analytics.core.database import close_db
from tinylink_analytics.core.observability import RequestContextMiddleware, setup_observability
from tinylink_analytics.services import (
    close_geoip_service,
    get_storage_service,
    store_click_handler,
)

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Run the click consumer for the lifetime of the app."""
    logger.info("Starting Tinylink Analytics", version=settings.app_version)

    if settings.consumer_enabled:
        consumer = get_consumer()
        consumer.register_handler(store_click_handler)
        await start_consumer()
    else:
        logger.info("Click event consumer disabled by configuration")

    yield

    logger.info("Shutting down Tinylink Analytics")
    # Unacknowledged entries stay pending and are reclaimed after restart
    await stop_consumer()
    close_geoip_service()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Click ingestion and analytics for Tinylink short links",
    lifespan=lifespan,
)

setup_observability(app)
app.add_middleware(RequestContextMiddleware)

app.include_router(analytics_router)


@app.get("/health")
async def health_check() -> dict:
    consumer = get_consumer()
    return {
        "status": "healthy" if consumer.is_running else "degraded",
        "service": "analytics",
        "consumer_running": consumer.is_running,
    }


@app.get("/stats")
async def service_stats() -> dict:
    """Consumer and storage counters since startup."""
    return {
        "service": "analytics",
        "version": settings.app_version,
        "consumer": get_consumer().stats,
        "storage": get_storage_service().stats,
    }


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Welcome to Tinylink Analytics", "version": settings.app_version}

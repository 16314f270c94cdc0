"""FastAPI application for link management and redirects."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tinylink_api.api.redirect import router as redirect_router
from tinylink_api.api.v1.router import router as v1_router
from tinylink_api.core.config import get_settings
from tinylink_api.core.database import close_db
from tinylink_api.core.exceptions import register_exception_handlers
from tinylink_api.core.observability import RequestContextMiddleware, setup_observability
from tinylink_api.core.redis import close_redis
from tinylink_api.services.click_capture import get_click_capture

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting Tinylink API", version=settings.app_version)
    yield

    logger.info("Shutting down Tinylink API")
    # Flush in-flight click publishes before the Redis client goes away
    await get_click_capture().drain()
    await close_redis()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Workspace-scoped URL shortener with click capture",
    lifespan=lifespan,
)

setup_observability(app)
register_exception_handlers(app)

# Last added runs first: CORS answers preflights inside the request context
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestContextMiddleware)

app.include_router(v1_router)
# Catch-all "/{short_code}" must come after the API routes
app.include_router(redirect_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    return {"message": "Welcome to Tinylink API", "version": settings.app_version}

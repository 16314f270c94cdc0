"""Redirect endpoints for short links."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tinylink_api.core.config import get_settings
from tinylink_api.core.database import AsyncSessionDep
from tinylink_api.core.exceptions import TinylinkError
from tinylink_api.core.observability import record_redirect
from tinylink_api.core.redis import cache_link, get_cached_link
from tinylink_api.schemas.link import CachedLink
from tinylink_api.services import link_service
from tinylink_api.services.click_capture import (
    ClickCapture,
    RequestMetadata,
    get_click_capture,
)

settings = get_settings()
logger = structlog.get_logger()

router = APIRouter(tags=["redirect"])


async def load_snapshot(
    session: AsyncSession,
    workspace_id: int,
    short_code: str,
) -> CachedLink:
    """Get a followable link snapshot, from cache first, then the database."""
    cached = await get_cached_link(workspace_id, short_code)
    if cached:
        logger.debug("Redirect from cache", short_code=short_code)
        return CachedLink.model_validate(cached)

    link = await link_service.resolve_link(session, workspace_id, short_code)
    snapshot = CachedLink.from_link(link)

    # Cache the link for future requests
    await cache_link(workspace_id, short_code, snapshot.model_dump(mode="json"))
    logger.debug("Redirect from database", short_code=short_code)
    return snapshot


async def follow_short_link(
    request: Request,
    workspace_id: int,
    short_code: str,
    session: AsyncSession,
    capture: ClickCapture,
) -> RedirectResponse:
    """Resolve, count and redirect.

    Flow:
    1. Load the link snapshot (Redis cache, then database)
    2. Reject expired links
    3. Atomically count the click, enforcing any click limit
    4. Hand the click event to the capture (not awaited)
    5. Redirect to the original URL
    """
    try:
        snapshot = await load_snapshot(session, workspace_id, short_code)
        link_service.ensure_snapshot_usable(snapshot)
        await link_service.increment_click_count(session, snapshot.link_id, snapshot.max_clicks)
        await session.commit()
    except TinylinkError as e:
        logger.info(
            "Redirect blocked",
            workspace_id=workspace_id,
            short_code=short_code,
            reason=e.error_code,
        )
        record_redirect(e.status_code)
        raise

    capture.record_click(snapshot, RequestMetadata.from_request(request))

    logger.info(
        "Redirect",
        workspace_id=workspace_id,
        short_code=short_code,
        link_id=snapshot.link_id,
    )
    record_redirect(status.HTTP_307_TEMPORARY_REDIRECT)

    return RedirectResponse(
        url=snapshot.redirect_url,
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@router.get("/w/{workspace_id}/{short_code}")
async def redirect_in_workspace(
    request: Request,
    workspace_id: int,
    short_code: str,
    session: AsyncSessionDep,
    capture: Annotated[ClickCapture, Depends(get_click_capture)],
) -> RedirectResponse:
    """Redirect a short code within an explicit workspace."""
    return await follow_short_link(request, workspace_id, short_code, session, capture)


@router.get("/{short_code}")
async def redirect_to_original(
    request: Request,
    short_code: str,
    session: AsyncSessionDep,
    capture: Annotated[ClickCapture, Depends(get_click_capture)],
) -> RedirectResponse:
    """Redirect a short code in the default workspace."""
    return await follow_short_link(
        request, settings.default_workspace_id, short_code, session, capture
    )

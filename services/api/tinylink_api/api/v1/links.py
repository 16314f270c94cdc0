"""Workspace-scoped link endpoints."""

import math
from typing import Annotated

import structlog
from fastapi import APIRouter, Query, Response, status

from tinylink_api.core.config import get_settings
from tinylink_api.core.database import AsyncSessionDep
from tinylink_api.schemas.link import LinkCreate, LinkListResponse, LinkResponse
from tinylink_api.services import link_service
from tinylink_api.services.workspace import require_active_workspace

settings = get_settings()
logger = structlog.get_logger()

router = APIRouter(prefix="/workspaces/{workspace_id}/links", tags=["links"])


def to_response(link, is_newly_created: bool = False) -> LinkResponse:
    return LinkResponse.from_link(
        link,
        base_url=settings.base_url,
        default_workspace_id=settings.default_workspace_id,
        is_newly_created=is_newly_created,
    )


@router.post("", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    workspace_id: int,
    link_data: LinkCreate,
    response: Response,
    session: AsyncSessionDep,
) -> LinkResponse:
    """Create a short link, or return the existing one for an equivalent URL.

    Responds 201 when a link was created and 200 when one was reused.
    """
    result = await link_service.create_or_reuse(
        session,
        workspace_id,
        link_data.url,
        link_service.LinkOptions(
            custom_code=link_data.custom_code,
            expires_at=link_data.expires_at,
            created_by=link_data.created_by,
            metadata=link_data.link_metadata(),
        ),
    )
    await session.commit()

    if not result.is_newly_created:
        response.status_code = status.HTTP_200_OK
    return to_response(result.link, result.is_newly_created)


@router.get("", response_model=LinkResponse | LinkListResponse)
async def list_or_lookup_links(
    workspace_id: int,
    session: AsyncSessionDep,
    url: Annotated[str | None, Query(description="Look up the link for this URL")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
) -> LinkResponse | LinkListResponse:
    """Look up the link for ``url``, or list the workspace's links (paginated)."""
    await require_active_workspace(session, workspace_id)

    if url is not None:
        link = await link_service.find_link_by_url(session, workspace_id, url)
        return to_response(link)

    links, total = await link_service.list_links(
        session,
        workspace_id,
        page=page,
        page_size=page_size,
    )
    return LinkListResponse(
        items=[to_response(link) for link in links],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{short_code}", response_model=LinkResponse)
async def get_link(
    workspace_id: int,
    short_code: str,
    session: AsyncSessionDep,
) -> LinkResponse:
    """Resolve a short code without counting a click."""
    await require_active_workspace(session, workspace_id)
    link = await link_service.resolve_link(session, workspace_id, short_code)
    return to_response(link)


@router.delete("/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_link(
    workspace_id: int,
    link_id: int,
    session: AsyncSessionDep,
) -> None:
    """Soft-delete a link; its code and URL become available again."""
    await require_active_workspace(session, workspace_id)
    await link_service.soft_delete_link(session, workspace_id, link_id)
    await session.commit()

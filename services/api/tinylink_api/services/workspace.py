"""Workspace lookups. Workspaces are administered elsewhere; this is read-only."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tinylink_api.core.exceptions import WorkspaceInactiveError, WorkspaceNotFoundError
from tinylink_api.models.workspace import Workspace


async def get_workspace(session: AsyncSession, workspace_id: int) -> Workspace | None:
    """Get a workspace by ID, including soft-deleted ones."""
    result = await session.execute(select(Workspace).where(Workspace.id == workspace_id))
    return result.scalar_one_or_none()


async def require_active_workspace(session: AsyncSession, workspace_id: int) -> Workspace:
    """Get a workspace that exists and is not soft-deleted.

    Raises:
        WorkspaceNotFoundError: No workspace with this ID.
        WorkspaceInactiveError: The workspace is soft-deleted.
    """
    workspace = await get_workspace(session, workspace_id)
    if workspace is None:
        raise WorkspaceNotFoundError(f"Workspace {workspace_id} not found")
    if workspace.is_deleted:
        raise WorkspaceInactiveError(f"Workspace {workspace_id} is no longer active")
    return workspace

"""Link service: dedup creation with collision retry, resolution, lifecycle."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tinylink_api.core.config import get_settings
from tinylink_api.core.exceptions import (
    CollisionExhaustedError,
    InvalidInputError,
    LinkExceededClickLimitError,
    LinkExpiredError,
    LinkNotFoundError,
    ShortCodeTakenError,
)
from tinylink_api.core.observability import (
    record_collision_exhausted,
    record_link_operation,
    record_short_code_collision,
)
from tinylink_api.core.redis import invalidate_link_cache
from tinylink_api.models.link import ShortLink, as_utc
from tinylink_api.schemas.link import CUSTOM_CODE_PATTERN, CachedLink
from tinylink_api.services.canonicalizer import canonicalize
from tinylink_api.services.short_code import generate_short_code
from tinylink_api.services.workspace import require_active_workspace

settings = get_settings()
logger = structlog.get_logger()


@dataclass
class LinkOptions:
    """Optional attributes for a newly created link."""

    custom_code: str | None = None
    expires_at: datetime | None = None
    created_by: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class LinkResult:
    link: ShortLink
    is_newly_created: bool


async def find_link_by_code(
    session: AsyncSession,
    workspace_id: int,
    short_code: str,
) -> ShortLink | None:
    """Get the non-deleted link holding a code in a workspace."""
    result = await session.execute(
        select(ShortLink).where(
            ShortLink.workspace_id == workspace_id,
            ShortLink.short_code == short_code,
            ShortLink.is_deleted == False,  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def find_link_by_normalized_url(
    session: AsyncSession,
    workspace_id: int,
    normalized_url: str,
) -> ShortLink | None:
    """Get the non-deleted link for a canonical URL in a workspace."""
    result = await session.execute(
        select(ShortLink).where(
            ShortLink.workspace_id == workspace_id,
            ShortLink.normalized_url == normalized_url,
            ShortLink.is_deleted == False,  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def get_link_by_id(
    session: AsyncSession,
    link_id: int,
    workspace_id: int | None = None,
) -> ShortLink | None:
    """Get a link by its ID, soft-deleted or not, optionally within a workspace."""
    query = select(ShortLink).where(ShortLink.id == link_id)
    if workspace_id is not None:
        query = query.where(ShortLink.workspace_id == workspace_id)
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def insert_or_get_owner(session: AsyncSession, link: ShortLink) -> ShortLink | None:
    """Insert ``link`` atomically, or report who beat us to it.

    The partial unique indexes reject a second live row for the same code or
    the same canonical URL. The insert runs in a savepoint, so a rejection
    only undoes the insert itself and the rest of the caller's transaction
    stays intact. On rejection the current owner is returned: first by
    canonical URL, then by code. Returns ``link`` itself when the insert
    succeeded, and None when the conflicting row is gone by the time we look.
    """
    try:
        async with session.begin_nested():
            session.add(link)
            await session.flush()
    except IntegrityError:
        logger.info(
            "Link insert rejected by unique index",
            workspace_id=link.workspace_id,
            short_code=link.short_code,
        )
        owner = await find_link_by_normalized_url(
            session, link.workspace_id, link.normalized_url
        )
        if owner is None:
            owner = await find_link_by_code(session, link.workspace_id, link.short_code)
        return owner

    await session.refresh(link)
    return link


async def create_or_reuse(
    session: AsyncSession,
    workspace_id: int,
    raw_url: str,
    options: LinkOptions | None = None,
) -> LinkResult:
    """Return the link for ``raw_url`` in a workspace, creating it if needed.

    Equivalent URLs always map to the same live link. A custom code is only
    applied when the URL has no link yet.

    Raises:
        InvalidUrlError: The URL cannot be canonicalized.
        WorkspaceNotFoundError: Workspace missing or soft-deleted.
        InvalidInputError: Malformed custom code.
        ShortCodeTakenError: Custom code already maps to a different URL.
        CollisionExhaustedError: Every candidate code collided.
    """
    options = options or LinkOptions()
    normalized_url = canonicalize(raw_url)
    await require_active_workspace(session, workspace_id)

    existing = await find_link_by_normalized_url(session, workspace_id, normalized_url)
    if existing is not None:
        record_link_operation("reuse")
        logger.info(
            "Reusing existing link",
            workspace_id=workspace_id,
            short_code=existing.short_code,
        )
        return LinkResult(link=existing, is_newly_created=False)

    def new_link(short_code: str, is_custom: bool) -> ShortLink:
        return ShortLink(
            workspace_id=workspace_id,
            short_code=short_code,
            original_url=raw_url.strip(),
            normalized_url=normalized_url,
            created_by=options.created_by,
            is_custom=is_custom,
            expires_at=as_utc(options.expires_at) if options.expires_at else None,
            link_metadata=dict(options.metadata),
        )

    if options.custom_code is not None:
        return await _create_with_custom_code(
            session, workspace_id, normalized_url, new_link(options.custom_code, True)
        )

    max_retries = settings.max_collision_retries
    for salt in range(max_retries):
        code = generate_short_code(
            normalized_url, workspace_id, salt, settings.short_code_length
        )

        owner = await find_link_by_code(session, workspace_id, code)
        candidate: ShortLink | None = None
        if owner is None:
            candidate = new_link(code, False)
            owner = await insert_or_get_owner(session, candidate)
            if owner is None:
                # Conflicting row was gone by the time we looked; try the next salt
                record_short_code_collision()
                continue

        if owner.normalized_url == normalized_url:
            is_new = owner is candidate
            record_link_operation("create" if is_new else "reuse")
            logger.info(
                "Link created" if is_new else "Link created concurrently, reusing",
                workspace_id=workspace_id,
                short_code=owner.short_code,
                salt=salt,
            )
            return LinkResult(link=owner, is_newly_created=is_new)

        record_short_code_collision()
        logger.warning(
            "Short code collision",
            workspace_id=workspace_id,
            short_code=code,
            salt=salt,
        )

    record_collision_exhausted()
    logger.error(
        "Short code collision retries exhausted",
        workspace_id=workspace_id,
        normalized_url=normalized_url,
        max_retries=max_retries,
    )
    raise CollisionExhaustedError(
        f"Could not allocate a short code after {max_retries} attempts"
    )


async def _create_with_custom_code(
    session: AsyncSession,
    workspace_id: int,
    normalized_url: str,
    candidate: ShortLink,
) -> LinkResult:
    short_code = candidate.short_code
    if not CUSTOM_CODE_PATTERN.match(short_code):
        raise InvalidInputError(
            "Custom code must be 3-20 characters of letters, digits, '_' or '-'"
        )

    owner = await insert_or_get_owner(session, candidate)
    if owner is candidate:
        record_link_operation("create")
        logger.info("Link created with custom code", workspace_id=workspace_id, short_code=short_code)
        return LinkResult(link=owner, is_newly_created=True)

    if owner is not None and owner.normalized_url == normalized_url:
        record_link_operation("reuse")
        return LinkResult(link=owner, is_newly_created=False)

    logger.info("Custom code already taken", workspace_id=workspace_id, short_code=short_code)
    raise ShortCodeTakenError(f"Short code '{short_code}' is already taken")


def ensure_link_usable(link: ShortLink) -> ShortLink:
    """Reject links that may no longer be followed.

    Raises:
        LinkNotFoundError: Soft-deleted or deactivated.
        LinkExpiredError: Past its expiration time.
        LinkExceededClickLimitError: Click limit reached.
    """
    if link.is_deleted or not link.is_active:
        raise LinkNotFoundError(f"Link '{link.short_code}' not found")
    if link.is_expired:
        raise LinkExpiredError(f"Link '{link.short_code}' has expired")
    if link.click_limit_reached:
        raise LinkExceededClickLimitError(
            f"Link '{link.short_code}' has reached its click limit"
        )
    return link


def ensure_snapshot_usable(snapshot: CachedLink) -> CachedLink:
    """Expiry check for a cached link; the click limit is enforced on increment."""
    if snapshot.expires_at is not None and datetime.now(timezone.utc) >= as_utc(snapshot.expires_at):
        raise LinkExpiredError(f"Link '{snapshot.short_code}' has expired")
    return snapshot


async def resolve_link(
    session: AsyncSession,
    workspace_id: int,
    short_code: str,
) -> ShortLink:
    """Get a followable link by code.

    Raises:
        LinkNotFoundError, LinkExpiredError, LinkExceededClickLimitError
    """
    link = await find_link_by_code(session, workspace_id, short_code)
    if link is None:
        raise LinkNotFoundError(f"Link '{short_code}' not found")
    return ensure_link_usable(link)


async def find_link_by_url(
    session: AsyncSession,
    workspace_id: int,
    raw_url: str,
) -> ShortLink:
    """Look up the live link for any URL equivalent to ``raw_url``."""
    normalized_url = canonicalize(raw_url)
    link = await find_link_by_normalized_url(session, workspace_id, normalized_url)
    if link is None:
        raise LinkNotFoundError(f"No link for '{normalized_url}'")
    return link


async def list_links(
    session: AsyncSession,
    workspace_id: int,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ShortLink], int]:
    """Get paginated live links for a workspace, newest first.

    Returns tuple of (links, total_count).
    """
    conditions = (
        ShortLink.workspace_id == workspace_id,
        ShortLink.is_deleted == False,  # noqa: E712
    )

    total_result = await session.execute(select(func.count(ShortLink.id)).where(*conditions))
    total = total_result.scalar() or 0

    offset = (page - 1) * page_size
    result = await session.execute(
        select(ShortLink)
        .where(*conditions)
        .order_by(ShortLink.created_at.desc(), ShortLink.id.desc())
        .offset(offset)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def soft_delete_link(
    session: AsyncSession,
    workspace_id: int,
    link_id: int,
) -> ShortLink:
    """Soft-delete a link; deleting an already deleted link is a no-op.

    Frees the code and canonical URL for new links in the workspace.
    """
    link = await get_link_by_id(session, link_id, workspace_id)
    if link is None:
        raise LinkNotFoundError(f"Link {link_id} not found")
    if link.is_deleted:
        return link

    link.is_deleted = True
    link.is_active = False
    link.deleted_at = datetime.now(timezone.utc)
    await session.flush()

    # Invalidate cache so redirect returns 404
    await invalidate_link_cache(workspace_id, link.short_code)

    record_link_operation("delete")
    logger.info("Link soft-deleted", workspace_id=workspace_id, short_code=link.short_code)
    return link


async def increment_click_count(
    session: AsyncSession,
    link_id: int,
    max_clicks: int | None = None,
) -> None:
    """Atomically count one click, refusing to pass ``max_clicks``.

    Raises:
        LinkExceededClickLimitError: The limit is reached, or the link is gone.
    """
    statement = (
        update(ShortLink)
        .where(
            ShortLink.id == link_id,
            ShortLink.is_deleted == False,  # noqa: E712
        )
        .values(click_count=ShortLink.click_count + 1)
        .execution_options(synchronize_session=False)
    )
    if max_clicks is not None:
        statement = statement.where(ShortLink.click_count < max_clicks)

    result = await session.execute(statement)
    if result.rowcount == 0:
        raise LinkExceededClickLimitError(f"Link {link_id} has reached its click limit")

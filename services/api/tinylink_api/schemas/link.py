"""Link Pydantic schemas."""

import re
from datetime import datetime
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

from tinylink_api.models.link import ShortLink

CUSTOM_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,20}$")
REDIRECT_SCHEMES = ("http", "https")


class LinkCreate(BaseModel):
    """Schema for creating (or reusing) a short link."""

    url: str = Field(min_length=1, max_length=8192, description="The URL to shorten")
    custom_code: str | None = Field(
        default=None,
        description="Optional custom short code (3-20 of A-Z a-z 0-9 _ -)",
    )
    expires_at: datetime | None = Field(default=None, description="Optional expiration time")
    max_clicks: int | None = Field(default=None, ge=1, description="Optional click limit")
    tags: list[str] = Field(default_factory=list, max_length=50)
    created_by: str | None = Field(default=None, max_length=255)

    @field_validator("custom_code")
    @classmethod
    def validate_custom_code(cls, v: str | None) -> str | None:
        """Validate custom code format."""
        if v is None:
            return v
        if not CUSTOM_CODE_PATTERN.match(v):
            raise ValueError(
                "Custom code must be 3-20 characters of letters, digits, '_' or '-'"
            )
        return v

    def link_metadata(self) -> dict:
        """Build the open-ended metadata bag stored on the link."""
        metadata: dict = {}
        if self.tags:
            metadata["tags"] = self.tags
        if self.max_clicks is not None:
            metadata["max_clicks"] = self.max_clicks
        return metadata


class LinkResponse(BaseModel):
    """Schema for link response."""

    id: int
    workspace_id: int
    code: str
    short_url: str
    original_url: str
    canonical_url: str
    is_custom: bool
    created_at: datetime
    expires_at: datetime | None
    click_count: int
    tags: list[str]
    max_clicks: int | None
    is_newly_created: bool = False

    @classmethod
    def from_link(
        cls,
        link: ShortLink,
        base_url: str,
        default_workspace_id: int,
        is_newly_created: bool = False,
    ) -> "LinkResponse":
        return cls(
            id=link.id,
            workspace_id=link.workspace_id,
            code=link.short_code,
            short_url=build_short_url(
                base_url, link.workspace_id, link.short_code, default_workspace_id
            ),
            original_url=link.original_url,
            canonical_url=link.normalized_url,
            is_custom=link.is_custom,
            created_at=link.created_at,
            expires_at=link.expires_at,
            click_count=link.click_count,
            tags=link.tags,
            max_clicks=link.max_clicks,
            is_newly_created=is_newly_created,
        )


class LinkListResponse(BaseModel):
    """Schema for paginated link list response."""

    items: list[LinkResponse]
    total: int
    page: int
    page_size: int
    pages: int


class CachedLink(BaseModel):
    """Snapshot of a link kept in the redirect cache."""

    link_id: int
    workspace_id: int
    short_code: str
    original_url: str
    normalized_url: str | None = None
    expires_at: datetime | None = None
    max_clicks: int | None = None

    @classmethod
    def from_link(cls, link: ShortLink) -> "CachedLink":
        return cls(
            link_id=link.id,
            workspace_id=link.workspace_id,
            short_code=link.short_code,
            original_url=link.original_url,
            normalized_url=link.normalized_url,
            expires_at=link.expires_at,
            max_clicks=link.max_clicks,
        )

    @property
    def redirect_url(self) -> str:
        """Location for the redirect.

        Links submitted without a scheme (``example.com/page``) redirect to
        their canonical form; a bare host would otherwise resolve against
        the shortener's own origin.
        """
        scheme = urlsplit(self.original_url).scheme.lower()
        if self.normalized_url and scheme not in REDIRECT_SCHEMES:
            return self.normalized_url
        return self.original_url


def build_short_url(
    base_url: str,
    workspace_id: int,
    short_code: str,
    default_workspace_id: int,
) -> str:
    """Public URL for a short code; the default workspace gets the bare form."""
    base = base_url.rstrip("/")
    if workspace_id == default_workspace_id:
        return f"{base}/{short_code}"
    return f"{base}/w/{workspace_id}/{short_code}"

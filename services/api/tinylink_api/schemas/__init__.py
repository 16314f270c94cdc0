"""Pydantic schemas."""

from tinylink_api.schemas.link import (
    CachedLink,
    LinkCreate,
    LinkListResponse,
    LinkResponse,
    build_short_url,
)

__all__ = [
    "CachedLink",
    "LinkCreate",
    "LinkListResponse",
    "LinkResponse",
    "build_short_url",
]

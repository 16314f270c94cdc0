"""Shared Pydantic schemas for inter-service communication."""

from datetime import datetime, timezone
from enum import StrEnum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

CLICK_EVENT_SCHEMA_VERSION = "1"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class DeviceType(StrEnum):
    """Device classification derived from the User-Agent header."""

    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    BOT = "bot"
    UNKNOWN = "unknown"


class ClickEvent(BaseModel):
    """Click event published from API service to Analytics service via Redis Streams.

    One record per resolved redirect. The event id is assigned by the
    producer and travels unchanged through retries and redeliveries, so the
    same id may be persisted more than once.
    """

    event_id: UUID = Field(default_factory=uuid4, description="Producer-assigned event id")
    short_link_id: int = Field(description="Numeric id of the short link (partition key)")
    workspace_id: int = Field(description="Workspace owning the short link")
    short_code: str = Field(description="The short code that was accessed")
    occurred_at: datetime = Field(
        default_factory=utc_now,
        description="Timestamp when the click occurred",
    )
    ip_address: str | None = Field(default=None, description="Client IP address")
    user_agent: str | None = Field(default=None, description="HTTP User-Agent header")
    referrer: str | None = Field(default=None, description="HTTP Referer header")
    country: str | None = Field(default=None, description="ISO 3166-1 alpha-2 country code")
    city: str | None = Field(default=None, description="City name")
    device_type: DeviceType = Field(default=DeviceType.UNKNOWN)
    browser: str | None = Field(default=None, description="Browser name and major.minor version")
    os: str | None = Field(default=None, description="Operating system")
    schema_version: str = Field(default=CLICK_EVENT_SCHEMA_VERSION)

    model_config = {"json_schema_extra": {"example": {
        "event_id": "550e8400-e29b-41d4-a716-446655440000",
        "short_link_id": 42,
        "workspace_id": 1,
        "short_code": "3yQf9Zk2Lm",
        "occurred_at": "2024-01-15T10:30:00Z",
        "ip_address": "203.0.113.7",
        "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        "referrer": "https://google.com",
        "device_type": "desktop",
        "browser": "Chrome 120.0",
        "os": "Windows 10",
        "schema_version": "1",
    }}}

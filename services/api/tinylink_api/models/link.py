"""ShortLink SQLAlchemy model."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from tinylink_api.core.database import BigIntId, Base, JSONDocument


class ShortLink(Base):
    """Short link scoped to a workspace.

    Both (workspace_id, short_code) and (workspace_id, normalized_url) are
    unique among rows that are not soft-deleted. The partial unique indexes
    are what make concurrent creation safe.
    """

    __tablename__ = "short_links"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    workspace_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    short_code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Short code, unique per workspace among live links",
    )
    original_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="URL as submitted",
    )
    normalized_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Canonical URL used as the dedup key",
    )
    created_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Opaque reference to the creator",
    )
    is_custom: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Whether the short code was requested by the caller",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Soft delete flag; rows are never hard-deleted",
    )
    click_count: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        nullable=False,
        comment="Total click count (denormalized, updated atomically)",
    )
    link_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONDocument,
        default=dict,
        nullable=False,
        comment="Open-ended bag: tags, max_clicks",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Optional expiration timestamp",
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("click_count >= 0", name="click_count_non_negative"),
        Index(
            "uq_short_links_workspace_code_live",
            "workspace_id",
            "short_code",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
        Index(
            "uq_short_links_workspace_normalized_url_live",
            "workspace_id",
            "normalized_url",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
        Index("ix_short_links_workspace_created_at", "workspace_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ShortLink {self.workspace_id}/{self.short_code} -> {self.normalized_url[:50]}>"

    @property
    def tags(self) -> list[str]:
        return [tag for tag in (self.link_metadata or {}).get("tags", []) if isinstance(tag, str)]

    @property
    def max_clicks(self) -> int | None:
        value = (self.link_metadata or {}).get("max_clicks")
        return value if isinstance(value, int) else None

    @property
    def is_expired(self) -> bool:
        """Check if the link has expired."""
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) >= as_utc(self.expires_at)

    @property
    def click_limit_reached(self) -> bool:
        return self.max_clicks is not None and self.click_count >= self.max_clicks


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

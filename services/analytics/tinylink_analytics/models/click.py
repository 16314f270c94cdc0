"""Click event SQLAlchemy model for persisted raw click events."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from tinylink_analytics.core.database import BigIntId, Base


class ClickEventRecord(Base):
    """One click on a short link, append-only.

    event_id is indexed but not unique: delivery is at-least-once, so a
    redelivered event may be stored twice.
    """

    __tablename__ = "click_events"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    event_id: Mapped[UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
        comment="Producer-assigned event id",
    )
    short_link_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="References short_links.id",
    )
    workspace_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        index=True,
        comment="Denormalized from the link",
    )
    short_code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Short code that was accessed (denormalized for queries)",
    )
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the redirect happened",
    )
    ip_address: Mapped[str | None] = mapped_column(
        String(45),
        nullable=True,
        comment="Client IP address",
    )
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(
        String(2),
        nullable=True,
        comment="ISO 3166-1 alpha-2 country code (from GeoIP)",
    )
    city: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="City name (from GeoIP)",
    )
    device_type: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")
    browser: Mapped[str | None] = mapped_column(String(100), nullable=True)
    os: Mapped[str | None] = mapped_column(String(100), nullable=True)
    schema_version: Mapped[str] = mapped_column(String(10), nullable=False)
    link_deleted: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Link was soft-deleted when the event was processed",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="When this record was stored",
    )

    # Composite index for per-link time range queries
    __table_args__ = (
        Index("ix_click_events_short_link_id_occurred_at", "short_link_id", "occurred_at"),
    )

    def __repr__(self) -> str:
        return f"<ClickEventRecord {self.event_id} link={self.short_link_id} at={self.occurred_at}>"

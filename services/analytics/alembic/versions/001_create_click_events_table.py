"""Create click_events table.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the click_events table."""
    op.create_table(
        "click_events",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column(
            "event_id",
            sa.Uuid(),
            nullable=False,
            comment="Producer-assigned event id",
        ),
        sa.Column(
            "short_link_id",
            sa.BigInteger(),
            nullable=False,
            comment="References short_links.id",
        ),
        sa.Column(
            "workspace_id",
            sa.BigInteger(),
            nullable=False,
            comment="Denormalized from the link",
        ),
        sa.Column(
            "short_code",
            sa.String(20),
            nullable=False,
            comment="Short code that was accessed (denormalized for queries)",
        ),
        sa.Column(
            "occurred_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="When the redirect happened",
        ),
        sa.Column(
            "ip_address",
            sa.String(45),
            nullable=True,
            comment="Client IP address",
        ),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column(
            "country",
            sa.String(2),
            nullable=True,
            comment="ISO 3166-1 alpha-2 country code (from GeoIP)",
        ),
        sa.Column(
            "city",
            sa.String(255),
            nullable=True,
            comment="City name (from GeoIP)",
        ),
        sa.Column(
            "device_type",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'unknown'"),
        ),
        sa.Column("browser", sa.String(100), nullable=True),
        sa.Column("os", sa.String(100), nullable=True),
        sa.Column("schema_version", sa.String(10), nullable=False),
        sa.Column(
            "link_deleted",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
            comment="Link was soft-deleted when the event was processed",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
            comment="When this record was stored",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_click_events")),
    )

    op.create_index(
        op.f("ix_click_events_event_id"),
        "click_events",
        ["event_id"],
    )
    op.create_index(
        op.f("ix_click_events_workspace_id"),
        "click_events",
        ["workspace_id"],
    )
    op.create_index(
        "ix_click_events_short_link_id_occurred_at",
        "click_events",
        ["short_link_id", "occurred_at"],
    )


def downgrade() -> None:
    """Drop the click_events table."""
    op.drop_index("ix_click_events_short_link_id_occurred_at", table_name="click_events")
    op.drop_index(op.f("ix_click_events_workspace_id"), table_name="click_events")
    op.drop_index(op.f("ix_click_events_event_id"), table_name="click_events")
    op.drop_table("click_events")

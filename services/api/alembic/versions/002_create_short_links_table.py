"""Create short_links table.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the short_links table and its partial unique indexes."""
    op.create_table(
        "short_links",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("workspace_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "short_code",
            sa.String(20),
            nullable=False,
            comment="Short code, unique per workspace among live links",
        ),
        sa.Column(
            "original_url",
            sa.Text(),
            nullable=False,
            comment="URL as submitted",
        ),
        sa.Column(
            "normalized_url",
            sa.Text(),
            nullable=False,
            comment="Canonical URL used as the dedup key",
        ),
        sa.Column(
            "created_by",
            sa.String(255),
            nullable=True,
            comment="Opaque reference to the creator",
        ),
        sa.Column(
            "is_custom",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
            comment="Whether the short code was requested by the caller",
        ),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column(
            "is_deleted",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
            comment="Soft delete flag; rows are never hard-deleted",
        ),
        sa.Column(
            "click_count",
            sa.BigInteger(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Total click count (denormalized, updated atomically)",
        ),
        sa.Column(
            "metadata",
            JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
            comment="Open-ended bag: tags, max_clicks",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "expires_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Optional expiration timestamp",
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_short_links")),
        sa.ForeignKeyConstraint(
            ["workspace_id"],
            ["workspaces.id"],
            name=op.f("fk_short_links_workspace_id_workspaces"),
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "click_count >= 0",
            name=op.f("ck_short_links_click_count_non_negative"),
        ),
    )

    # Uniqueness only among live links; soft-deleted rows free their code and URL
    op.create_index(
        "uq_short_links_workspace_code_live",
        "short_links",
        ["workspace_id", "short_code"],
        unique=True,
        postgresql_where=sa.text("is_deleted = false"),
    )
    op.create_index(
        "uq_short_links_workspace_normalized_url_live",
        "short_links",
        ["workspace_id", "normalized_url"],
        unique=True,
        postgresql_where=sa.text("is_deleted = false"),
    )
    op.create_index(
        "ix_short_links_workspace_created_at",
        "short_links",
        ["workspace_id", "created_at"],
    )


def downgrade() -> None:
    """Drop the short_links table."""
    op.drop_index("ix_short_links_workspace_created_at", table_name="short_links")
    op.drop_index("uq_short_links_workspace_normalized_url_live", table_name="short_links")
    op.drop_index("uq_short_links_workspace_code_live", table_name="short_links")
    op.drop_table("short_links")

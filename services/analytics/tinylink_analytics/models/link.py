"""Read-only view of the API service's short_links table."""

from sqlalchemy import BigInteger, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from tinylink_analytics.core.database import BigIntId, Base


class LinkRef(Base):
    """The columns of a short link that click ingestion needs.

    The table is owned and migrated by the API service.
    """

    __tablename__ = "short_links"
    __table_args__ = {"info": {"owned_by": "api"}}

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    workspace_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    short_code: Mapped[str] = mapped_column(String(20), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<LinkRef {self.id} {self.workspace_id}/{self.short_code}>"

"""Analytics SQLAlchemy models."""

from tinylink_analytics.core.database import Base
from tinylink_analytics.models.click import ClickEventRecord
from tinylink_analytics.models.link import LinkRef

__all__ = ["Base", "ClickEventRecord", "LinkRef"]

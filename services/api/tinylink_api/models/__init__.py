"""SQLAlchemy models.

All models should be imported here for Alembic to detect them.
"""

from tinylink_api.core.database import Base
from tinylink_api.models.link import ShortLink
from tinylink_api.models.workspace import Workspace

__all__ = ["Base", "ShortLink", "Workspace"]

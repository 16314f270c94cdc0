"""Click storage service for persisting click events to the database."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tinylink_shared import ClickEvent

from tinylink_analytics.core.database import async_session_factory
from tinylink_analytics.core.exceptions import UnresolvableClickEventError
from tinylink_analytics.models.click import ClickEventRecord
from tinylink_analytics.models.link import LinkRef
from tinylink_analytics.services.geoip import GeoIPService, get_geoip_service

logger = structlog.get_logger()


class ClickStorageService:
    """Persists one click event per call, committed before returning.

    The consumer acknowledges a stream entry only after ``store_click``
    returns, so nothing is buffered here.

    Usage:
        service = ClickStorageService()
        record = await service.store_click(event)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        geoip: GeoIPService | None = None,
    ):
        self._session_factory = session_factory or async_session_factory
        self._geoip = geoip
        self._clicks_stored = 0
        self._clicks_for_deleted_links = 0

    @property
    def geoip(self) -> GeoIPService:
        if self._geoip is None:
            self._geoip = get_geoip_service()
        return self._geoip

    async def store_click(self, event: ClickEvent) -> ClickEventRecord:
        """Resolve the event's link, derive its location and insert it.

        Raises:
            UnresolvableClickEventError: The link id does not exist, or
                belongs to another workspace.
        """
        async with self._session_factory() as session:
            link = await session.get(LinkRef, event.short_link_id)
            if link is None:
                raise UnresolvableClickEventError(event.short_link_id)
            if link.workspace_id != event.workspace_id:
                raise UnresolvableClickEventError(
                    event.short_link_id,
                    reason=f"belongs to workspace {link.workspace_id}, not {event.workspace_id}",
                )

            location = await self.geoip.lookup(event.ip_address)

            record = ClickEventRecord(
                event_id=event.event_id,
                short_link_id=event.short_link_id,
                workspace_id=event.workspace_id,
                short_code=event.short_code,
                occurred_at=event.occurred_at,
                ip_address=event.ip_address,
                user_agent=event.user_agent,
                referrer=event.referrer,
                country=event.country or location.country,
                city=event.city or location.city,
                device_type=str(event.device_type),
                browser=event.browser,
                os=event.os,
                schema_version=event.schema_version,
                link_deleted=link.is_deleted,
            )
            session.add(record)
            try:
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        self._clicks_stored += 1
        if record.link_deleted:
            self._clicks_for_deleted_links += 1
            logger.info(
                "Click stored for deleted link",
                short_link_id=event.short_link_id,
                event_id=str(event.event_id),
            )
        else:
            logger.debug(
                "Click stored",
                short_link_id=event.short_link_id,
                event_id=str(event.event_id),
            )
        return record

    @property
    def stats(self) -> dict:
        """Get storage statistics."""
        return {
            "clicks_stored": self._clicks_stored,
            "clicks_for_deleted_links": self._clicks_for_deleted_links,
        }


# Global service instance
_storage_service: ClickStorageService | None = None


def get_storage_service() -> ClickStorageService:
    """Get the global storage service instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = ClickStorageService()
    return _storage_service


async def store_click_handler(event: ClickEvent) -> None:
    """Handler function for the click consumer.

    This function is registered with the ClickEventConsumer
    to persist incoming click events.
    """
    service = get_storage_service()
    await service.store_click(event)

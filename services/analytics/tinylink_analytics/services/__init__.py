"""Analytics business logic services."""

from tinylink_analytics.services.click_storage import (
    ClickStorageService,
    get_storage_service,
    store_click_handler,
)
from tinylink_analytics.services.geoip import (
    GeoIPService,
    GeoLocation,
    close_geoip_service,
    get_geoip_service,
)

__all__ = [
    # Click storage
    "ClickStorageService",
    "get_storage_service",
    "store_click_handler",
    # GeoIP
    "GeoIPService",
    "GeoLocation",
    "get_geoip_service",
    "close_geoip_service",
]

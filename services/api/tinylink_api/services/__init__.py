"""Business logic services."""

from tinylink_api.services import link as link_service

__all__ = ["link_service"]

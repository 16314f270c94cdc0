"""Errors raised while ingesting click events.

The consumer decides acknowledgment from the exception type: payload and
resolution errors are permanent and acknowledged, anything else is left
pending for redelivery.
"""


class EventProcessingError(Exception):
    """Base class for click event processing errors."""


class InvalidClickPayloadError(EventProcessingError):
    """Stream entry could not be decoded into a click event."""


class UnresolvableClickEventError(EventProcessingError):
    """The event references a short link that cannot be found."""

    def __init__(self, short_link_id: int, reason: str = "link not found") -> None:
        super().__init__(f"Short link {short_link_id}: {reason}")
        self.short_link_id = short_link_id
        self.reason = reason

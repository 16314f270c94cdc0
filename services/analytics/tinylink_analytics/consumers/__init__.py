"""Redis Streams consumers for click events."""

from tinylink_analytics.consumers.click_consumer import (
    ClickEventConsumer,
    ProcessOutcome,
    get_consumer,
    start_consumer,
    stop_consumer,
)

__all__ = [
    "ClickEventConsumer",
    "ProcessOutcome",
    "get_consumer",
    "start_consumer",
    "stop_consumer",
]

"""Click event publisher for the partitioned Redis Streams channel."""

import asyncio
import time
from enum import StrEnum

import redis.asyncio as redis
import structlog
from tinylink_shared import ClickEvent, dead_letter_key, encode_event, stream_for_link

from tinylink_api.core.config import get_settings
from tinylink_api.core.exceptions import PublishFailure
from tinylink_api.core.observability import (
    record_click_dead_lettered,
    record_click_dropped,
    record_click_publish_failed,
    record_click_published,
)
from tinylink_api.core.redis import get_dead_letter_redis, get_redis

settings = get_settings()
logger = structlog.get_logger()


class PublishOutcome(StrEnum):
    PUBLISHED = "published"
    DEAD_LETTERED = "dead_lettered"
    DROPPED = "dropped"


class ClickEventPublisher:
    """Writes click events to their partition stream.

    A failed write (Redis error or timeout) is retried once against the
    dead-letter stream. If that fails too the event is dropped and counted.
    ``publish`` never raises.

    Usage:
        publisher = ClickEventPublisher()
        outcome = await publisher.publish(event)
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        dead_letter_client: redis.Redis | None = None,
        stream_prefix: str | None = None,
        partitions: int | None = None,
        maxlen: int | None = None,
        timeout: float | None = None,
    ):
        """Initialize the publisher.

        Args:
            redis_client: Client for partition streams. Defaults to the shared client.
            dead_letter_client: Client for the dead-letter stream. Defaults to
                the configured dead-letter Redis.
            stream_prefix: Stream name prefix. Defaults to settings.click_stream_prefix.
            partitions: Partition count. Defaults to settings.click_partitions.
            maxlen: Approximate stream length cap. Defaults to settings.click_stream_maxlen.
            timeout: Seconds allowed per write. Defaults to settings.click_publish_timeout.
        """
        self._redis = redis_client
        self._dead_letter_redis = dead_letter_client
        self.stream_prefix = stream_prefix or settings.click_stream_prefix
        self.partitions = partitions or settings.click_partitions
        self.maxlen = maxlen or settings.click_stream_maxlen
        self.timeout = timeout or settings.click_publish_timeout

    @property
    def dead_letter_stream(self) -> str:
        return dead_letter_key(self.stream_prefix)

    async def publish(self, event: ClickEvent) -> PublishOutcome:
        """Publish an event, falling back to the dead-letter stream."""
        stream = stream_for_link(self.stream_prefix, event.short_link_id, self.partitions)
        fields = encode_event(event)
        start_time = time.perf_counter()

        try:
            client = self._redis or await get_redis()
            await self._write(client, stream, fields)
        except PublishFailure as e:
            record_click_publish_failed()
            logger.warning(
                "Click event publish failed",
                event_id=str(event.event_id),
                stream=stream,
                error=str(e),
            )
            return await self._dead_letter(event, fields, reason=str(e), source_stream=stream)

        record_click_published(time.perf_counter() - start_time)
        logger.debug(
            "Click event published",
            event_id=str(event.event_id),
            short_code=event.short_code,
            stream=stream,
        )
        return PublishOutcome.PUBLISHED

    async def _write(self, client: redis.Redis, stream: str, fields: dict[str, str]) -> None:
        try:
            await asyncio.wait_for(
                client.xadd(stream, fields, maxlen=self.maxlen, approximate=True),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise PublishFailure(f"Timed out after {self.timeout}s writing to {stream}") from e
        except (redis.RedisError, OSError) as e:
            raise PublishFailure(f"{type(e).__name__}: {e}") from e

    async def _dead_letter(
        self,
        event: ClickEvent,
        fields: dict[str, str],
        reason: str,
        source_stream: str,
    ) -> PublishOutcome:
        entry = {**fields, "reason": reason, "source_stream": source_stream}
        try:
            client = self._dead_letter_redis or await get_dead_letter_redis()
            await self._write(client, self.dead_letter_stream, entry)
        except PublishFailure as e:
            record_click_dropped()
            logger.error(
                "Click event dropped, dead-letter write failed",
                event_id=str(event.event_id),
                short_link_id=event.short_link_id,
                error=str(e),
            )
            return PublishOutcome.DROPPED

        record_click_dead_lettered()
        logger.info(
            "Click event dead-lettered",
            event_id=str(event.event_id),
            stream=self.dead_letter_stream,
        )
        return PublishOutcome.DEAD_LETTERED


# Global publisher instance
_publisher: ClickEventPublisher | None = None


def get_publisher() -> ClickEventPublisher:
    """Get the global publisher instance."""
    global _publisher
    if _publisher is None:
        _publisher = ClickEventPublisher()
    return _publisher

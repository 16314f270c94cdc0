"""Redis Streams consumer group for click events."""

import asyncio
import os
import socket
import time
from enum import StrEnum
from typing import Callable, Coroutine

import redis.asyncio as redis
import structlog
from tinylink_shared import (
    ClickEvent,
    all_stream_keys,
    dead_letter_key,
    decode_event,
    stream_key,
)

from tinylink_analytics.core.config import get_settings
from tinylink_analytics.core.exceptions import (
    InvalidClickPayloadError,
    UnresolvableClickEventError,
)
from tinylink_analytics.core.observability import (
    record_click_dead_lettered,
    record_click_failed,
    record_click_processed,
    record_click_received,
    record_click_redelivered,
    set_consumer_running,
)

settings = get_settings()
logger = structlog.get_logger()

# Type alias for click event handler
ClickEventHandler = Callable[[ClickEvent], Coroutine[None, None, None]]


class ProcessOutcome(StrEnum):
    PROCESSED = "processed"
    INVALID_PAYLOAD = "invalid_payload"
    LINK_NOT_FOUND = "link_not_found"
    RETRY = "retry"
    DEAD_LETTERED = "dead_lettered"


def default_consumer_name() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


def iter_stream_entries(response):
    """Flatten an XREAD/XREADGROUP reply into (stream, (id, fields)) pairs.

    RESP2 replies are a list of [stream, entries]; RESP3 replies map each
    stream to a list holding the entries.
    """
    if not response:
        return
    if isinstance(response, dict):
        for stream, nested in response.items():
            for entries in nested:
                for entry in entries:
                    yield stream, entry
        return
    for stream, entries in response:
        for entry in entries:
            yield stream, entry


class ClickEventConsumer:
    """Consumer group member reading the partitioned click streams.

    Every entry is handled on its own and acknowledged only once its
    outcome is final:

    - handlers succeeded: acknowledged
    - payload cannot be decoded: acknowledged, counted as invalid_payload
    - link cannot be resolved: acknowledged, counted as link_not_found
    - any other error: left pending and reclaimed after ``reclaim_idle_ms``

    An entry delivered more than ``max_deliveries`` times is copied to the
    dead-letter stream and acknowledged.

    Usage:
        consumer = ClickEventConsumer()
        consumer.register_handler(my_handler)
        await consumer.start()
        # ... later ...
        await consumer.stop()
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        partitions: list[int] | None = None,
        stream_prefix: str | None = None,
        group: str | None = None,
        consumer_name: str | None = None,
        batch_size: int | None = None,
        block_ms: int | None = None,
        max_deliveries: int | None = None,
        reclaim_idle_ms: int | None = None,
    ):
        """Initialize the consumer.

        Args:
            redis_client: Redis client. Defaults to one built from settings.redis_url.
            partitions: Partitions to consume. Defaults to settings.consumer_partitions,
                or all of them when that is empty.
            stream_prefix: Stream name prefix. Defaults to settings.click_stream_prefix.
            group: Consumer group name. Defaults to settings.consumer_group.
            consumer_name: Name within the group. Defaults to "<hostname>-<pid>".
            batch_size: Max entries per read. Defaults to settings.read_batch_size.
            block_ms: Blocking read timeout. Defaults to settings.read_block_ms.
            max_deliveries: Deliveries before dead-lettering. Defaults to settings.max_deliveries.
            reclaim_idle_ms: Idle time before a pending entry is reclaimed.
                Defaults to settings.reclaim_idle_ms.
        """
        self._client = redis_client
        self._owns_client = redis_client is None
        self.stream_prefix = stream_prefix or settings.click_stream_prefix
        assigned = partitions or settings.consumer_partitions
        if assigned:
            self.streams = [stream_key(self.stream_prefix, partition) for partition in assigned]
        else:
            self.streams = all_stream_keys(self.stream_prefix, settings.click_partitions)
        self.dead_letter_stream = dead_letter_key(self.stream_prefix)
        self.group = group or settings.consumer_group
        self.consumer_name = consumer_name or settings.consumer_name or default_consumer_name()
        self.batch_size = batch_size or settings.read_batch_size
        self.block_ms = settings.read_block_ms if block_ms is None else block_ms
        self.max_deliveries = max_deliveries or settings.max_deliveries
        self.reclaim_idle_ms = settings.reclaim_idle_ms if reclaim_idle_ms is None else reclaim_idle_ms
        self._task: asyncio.Task | None = None
        self._running = False
        self._handlers: list[ClickEventHandler] = []
        self._events_processed = 0
        self._events_failed = 0
        self._events_dead_lettered = 0

    def register_handler(self, handler: ClickEventHandler) -> None:
        """Register a handler function to process click events.

        Handlers are called in order of registration for each event. An
        exception from any handler decides the entry's outcome.
        """
        self._handlers.append(handler)
        logger.debug("Handler registered", handler=handler.__name__)

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def ensure_groups(self) -> None:
        """Create the consumer group on every stream, creating streams as needed."""
        for stream in self.streams:
            try:
                await self.client.xgroup_create(stream, self.group, id="0", mkstream=True)
                logger.info("Consumer group created", stream=stream, group=self.group)
            except redis.ResponseError as e:
                if "BUSYGROUP" not in str(e):
                    raise

    async def start(self) -> None:
        """Start consuming click events."""
        if self._running:
            logger.warning("Consumer already running")
            return

        await self.ensure_groups()

        self._running = True
        set_consumer_running(True)
        self._task = asyncio.create_task(self._consume_loop())

        logger.info(
            "Click event consumer started",
            streams=self.streams,
            group=self.group,
            consumer=self.consumer_name,
        )

    async def stop(self) -> None:
        """Stop consuming click events."""
        if not self._running:
            return

        logger.info(
            "Stopping click event consumer",
            events_processed=self._events_processed,
            events_failed=self._events_failed,
        )

        self._running = False
        set_consumer_running(False)

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

        logger.info("Click event consumer stopped")

    async def _consume_loop(self) -> None:
        """Reclaim stale entries, then read new ones, until stopped."""
        logger.debug("Consumer loop started")

        while self._running:
            try:
                await self.reclaim_pending()
                await self.poll_once()
            except asyncio.CancelledError:
                logger.debug("Consumer loop cancelled")
                raise
            except redis.RedisError as e:
                logger.error("Redis error in consumer loop", error=str(e))
                await asyncio.sleep(settings.error_backoff_seconds)
            except Exception as e:
                # Unacked entries stay pending, so the next pass picks them up again
                logger.exception("Unexpected error in consumer loop", error=str(e))
                await asyncio.sleep(settings.error_backoff_seconds)

    async def poll_once(self) -> int:
        """Read and process one batch of new entries. Returns the entry count."""
        response = await self.client.xreadgroup(
            groupname=self.group,
            consumername=self.consumer_name,
            streams={stream: ">" for stream in self.streams},
            count=self.batch_size,
            block=self.block_ms,
        )

        count = 0
        for stream, (message_id, fields) in iter_stream_entries(response):
            await self.process_entry(stream, message_id, fields)
            count += 1
        return count

    async def reclaim_pending(self) -> int:
        """Take over entries left pending too long by any group member.

        Returns the number of entries reclaimed.
        """
        reclaimed = 0
        for stream in self.streams:
            result = await self.client.xautoclaim(
                stream,
                self.group,
                self.consumer_name,
                min_idle_time=self.reclaim_idle_ms,
                start_id="0-0",
                count=self.batch_size,
            )
            entries = result[1] if result else []
            for message_id, fields in entries:
                reclaimed += 1
                if not fields:
                    # Trimmed from the stream while pending
                    await self.client.xack(stream, self.group, message_id)
                    continue

                deliveries = await self.delivery_count(stream, message_id)
                if deliveries > self.max_deliveries:
                    await self.dead_letter(
                        stream,
                        message_id,
                        fields,
                        reason=f"exceeded {self.max_deliveries} deliveries",
                        deliveries=deliveries,
                    )
                    continue

                record_click_redelivered()
                logger.info(
                    "Redelivering pending click event",
                    stream=stream,
                    message_id=message_id,
                    deliveries=deliveries,
                )
                await self.process_entry(stream, message_id, fields)
        return reclaimed

    async def delivery_count(self, stream: str, message_id: str) -> int:
        pending = await self.client.xpending_range(
            stream,
            self.group,
            min=message_id,
            max=message_id,
            count=1,
        )
        if not pending:
            return 0
        return int(pending[0]["times_delivered"])

    async def process_entry(self, stream: str, message_id: str, fields: dict) -> ProcessOutcome:
        """Process a single stream entry and decide whether to acknowledge it."""
        start_time = time.perf_counter()
        record_click_received()

        try:
            event = self._decode(fields)
            for handler in self._handlers:
                await handler(event)
        except InvalidClickPayloadError as e:
            logger.warning(
                "Invalid click event payload, discarding",
                stream=stream,
                message_id=message_id,
                error=str(e),
            )
            self._events_failed += 1
            record_click_failed(ProcessOutcome.INVALID_PAYLOAD)
            await self.client.xack(stream, self.group, message_id)
            return ProcessOutcome.INVALID_PAYLOAD
        except UnresolvableClickEventError as e:
            logger.warning(
                "Click event references unknown link, discarding",
                stream=stream,
                message_id=message_id,
                short_link_id=e.short_link_id,
                error=str(e),
            )
            self._events_failed += 1
            record_click_failed(ProcessOutcome.LINK_NOT_FOUND)
            await self.client.xack(stream, self.group, message_id)
            return ProcessOutcome.LINK_NOT_FOUND
        except Exception as e:
            logger.error(
                "Click event processing failed, leaving pending",
                stream=stream,
                message_id=message_id,
                error=str(e),
            )
            self._events_failed += 1
            record_click_failed("transient")
            return ProcessOutcome.RETRY

        await self.client.xack(stream, self.group, message_id)

        self._events_processed += 1
        duration = time.perf_counter() - start_time
        record_click_processed(duration)

        logger.debug(
            "Click event processed",
            short_link_id=event.short_link_id,
            short_code=event.short_code,
            duration_ms=round(duration * 1000, 2),
        )
        return ProcessOutcome.PROCESSED

    async def dead_letter(
        self,
        stream: str,
        message_id: str,
        fields: dict,
        reason: str,
        deliveries: int,
    ) -> ProcessOutcome:
        """Copy an entry to the dead-letter stream, then acknowledge it."""
        entry = {
            **fields,
            "reason": reason,
            "source_stream": stream,
            "source_id": message_id,
            "deliveries": str(deliveries),
        }
        await self.client.xadd(
            self.dead_letter_stream,
            entry,
            maxlen=settings.dead_letter_maxlen,
            approximate=True,
        )
        await self.client.xack(stream, self.group, message_id)

        self._events_dead_lettered += 1
        record_click_dead_lettered()
        logger.error(
            "Click event dead-lettered",
            stream=stream,
            message_id=message_id,
            deliveries=deliveries,
            reason=reason,
        )
        return ProcessOutcome.DEAD_LETTERED

    @staticmethod
    def _decode(fields: dict) -> ClickEvent:
        try:
            return decode_event(fields)
        except ValueError as e:
            raise InvalidClickPayloadError(str(e)) from e

    @property
    def is_running(self) -> bool:
        """Check if the consumer is running."""
        return self._running

    @property
    def stats(self) -> dict:
        """Get consumer statistics."""
        return {
            "running": self._running,
            "streams": self.streams,
            "group": self.group,
            "consumer": self.consumer_name,
            "events_processed": self._events_processed,
            "events_failed": self._events_failed,
            "events_dead_lettered": self._events_dead_lettered,
            "handlers_count": len(self._handlers),
        }


# Global consumer instance
_consumer: ClickEventConsumer | None = None


def get_consumer() -> ClickEventConsumer:
    """Get the global consumer instance, creating it if necessary."""
    global _consumer
    if _consumer is None:
        _consumer = ClickEventConsumer()
    return _consumer


async def start_consumer() -> None:
    """Start the global consumer."""
    consumer = get_consumer()
    await consumer.start()


async def stop_consumer() -> None:
    """Stop the global consumer."""
    consumer = get_consumer()
    await consumer.stop()

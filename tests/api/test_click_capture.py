"""Tests for click event publishing and fire-and-forget capture."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from tinylink_shared import DeviceType, decode_event

from tinylink_api.schemas.link import CachedLink
from tinylink_api.services.click_capture import ClickCapture, RequestMetadata
from tinylink_api.services.click_publisher import ClickEventPublisher, PublishOutcome

SNAPSHOT = CachedLink(
    link_id=42,
    workspace_id=1,
    short_code="3yQf9Zk2Lm",
    original_url="https://example.com/",
)
IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
METADATA = RequestMetadata(ip_address="203.0.113.7", user_agent=IPHONE, referrer="https://news.example.com/")


def make_publisher(primary, dead_letter=None) -> ClickEventPublisher:
    return ClickEventPublisher(
        redis_client=primary,
        dead_letter_client=dead_letter or primary,
        stream_prefix="clicks",
        partitions=8,
        maxlen=1000,
        timeout=0.1,
    )


def test_build_event_classifies_request():
    event = ClickCapture.build_event(SNAPSHOT, METADATA)

    assert event.short_link_id == 42
    assert event.workspace_id == 1
    assert event.short_code == "3yQf9Zk2Lm"
    assert event.ip_address == "203.0.113.7"
    assert event.referrer == "https://news.example.com/"
    assert event.device_type is DeviceType.MOBILE
    assert event.browser == "Safari 17.2"
    assert event.os == "iOS (iPhone)"
    assert event.occurred_at.tzinfo is not None


@pytest.mark.asyncio
async def test_publish_writes_to_link_partition():
    client = AsyncMock()
    publisher = make_publisher(client)
    event = ClickCapture.build_event(SNAPSHOT, METADATA)

    outcome = await publisher.publish(event)

    assert outcome is PublishOutcome.PUBLISHED
    client.xadd.assert_awaited_once()
    args, kwargs = client.xadd.call_args
    assert args[0] == "clicks:2"
    assert decode_event(args[1]) == event
    assert kwargs == {"maxlen": 1000, "approximate": True}


@pytest.mark.asyncio
async def test_failed_publish_goes_to_dead_letter_stream():
    primary = AsyncMock()
    primary.xadd.side_effect = RedisConnectionError("connection refused")
    dead_letter = AsyncMock()
    publisher = make_publisher(primary, dead_letter)

    outcome = await publisher.publish(ClickCapture.build_event(SNAPSHOT, METADATA))

    assert outcome is PublishOutcome.DEAD_LETTERED
    args, _ = dead_letter.xadd.call_args
    assert args[0] == "clicks:dlq"
    assert args[1]["source_stream"] == "clicks:2"
    assert "connection refused" in args[1]["reason"]
    assert json.loads(args[1]["event"])["short_link_id"] == 42


@pytest.mark.asyncio
async def test_publish_times_out_to_dead_letter_stream():
    async def hang(*args, **kwargs):
        await asyncio.sleep(10)

    primary = AsyncMock()
    primary.xadd.side_effect = hang
    dead_letter = AsyncMock()
    publisher = make_publisher(primary, dead_letter)

    outcome = await publisher.publish(ClickCapture.build_event(SNAPSHOT, METADATA))

    assert outcome is PublishOutcome.DEAD_LETTERED
    assert "Timed out" in dead_letter.xadd.call_args[0][1]["reason"]


@pytest.mark.asyncio
async def test_event_dropped_when_dead_letter_also_fails():
    client = AsyncMock()
    client.xadd.side_effect = RedisConnectionError("connection refused")
    publisher = make_publisher(client)

    outcome = await publisher.publish(ClickCapture.build_event(SNAPSHOT, METADATA))

    assert outcome is PublishOutcome.DROPPED
    assert client.xadd.await_count == 2


@pytest.mark.asyncio
async def test_record_click_does_not_wait_for_publish():
    release = asyncio.Event()

    async def slow_xadd(*args, **kwargs):
        await release.wait()

    client = AsyncMock()
    client.xadd.side_effect = slow_xadd
    capture = ClickCapture(publisher=make_publisher(client))

    capture.record_click(SNAPSHOT, METADATA)

    assert capture.pending == 1
    release.set()
    await capture.drain(timeout=1.0)
    assert capture.pending == 0
    client.xadd.assert_awaited_once()


@pytest.mark.asyncio
async def test_record_click_survives_unreachable_redis():
    client = AsyncMock()
    client.xadd.side_effect = OSError("network unreachable")
    capture = ClickCapture(publisher=make_publisher(client))

    capture.record_click(SNAPSHOT, METADATA)
    await capture.drain(timeout=1.0)

    assert capture.pending == 0


@pytest.mark.asyncio
async def test_drain_cancels_stuck_publishes():
    async def hang(*args, **kwargs):
        await asyncio.sleep(10)

    client = AsyncMock()
    client.xadd.side_effect = hang
    publisher = ClickEventPublisher(redis_client=client, dead_letter_client=client, timeout=5.0)
    capture = ClickCapture(publisher=publisher)

    capture.record_click(SNAPSHOT, METADATA)
    await capture.drain(timeout=0.05)
    # Let the cancelled task unwind and run its done callback
    await asyncio.sleep(0.05)

    assert capture.pending == 0

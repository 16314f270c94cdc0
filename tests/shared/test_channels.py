"""Tests for the click channel layout and event encoding."""

import json

import pytest
from tinylink_shared import (
    ClickEvent,
    DeviceType,
    all_stream_keys,
    dead_letter_key,
    decode_event,
    encode_event,
    partition_for,
    stream_for_link,
)


def make_event(**overrides) -> ClickEvent:
    data = {
        "short_link_id": 42,
        "workspace_id": 1,
        "short_code": "3yQf9Zk2Lm",
        "ip_address": "203.0.113.7",
        "device_type": DeviceType.MOBILE,
    }
    data.update(overrides)
    return ClickEvent(**data)


def test_events_for_one_link_share_a_partition():
    streams = {stream_for_link("clicks", 42, 8) for _ in range(5)}

    assert streams == {"clicks:2"}


def test_partition_rejects_non_positive_count():
    with pytest.raises(ValueError):
        partition_for(1, 0)


def test_stream_names():
    assert all_stream_keys("clicks", 3) == ["clicks:0", "clicks:1", "clicks:2"]
    assert dead_letter_key("clicks") == "clicks:dlq"


def test_decode_restores_encoded_event():
    event = make_event(referrer="https://news.example.com/")

    decoded = decode_event(encode_event(event))

    assert decoded == event
    assert decoded.device_type is DeviceType.MOBILE


def test_decode_accepts_bytes_fields():
    event = make_event()
    raw = encode_event(event)["event"].encode()

    assert decode_event({b"event": raw}).event_id == event.event_id


def test_decode_rejects_entry_without_event_field():
    with pytest.raises(ValueError, match="no event field"):
        decode_event({"other": "x"})


def test_decode_rejects_payload_missing_required_fields():
    with pytest.raises(ValueError):
        decode_event({"event": json.dumps({"short_code": "abc"})})

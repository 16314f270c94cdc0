"""Tinylink Shared - Common schemas and utilities for Tinylink services."""

from tinylink_shared.channels import (
    DEFAULT_STREAM_PREFIX,
    all_stream_keys,
    dead_letter_key,
    decode_event,
    encode_event,
    partition_for,
    stream_for_link,
    stream_key,
)
from tinylink_shared.schemas import (
    CLICK_EVENT_SCHEMA_VERSION,
    ClickEvent,
    DeviceType,
    utc_now,
)

__all__ = [
    "CLICK_EVENT_SCHEMA_VERSION",
    "ClickEvent",
    "DEFAULT_STREAM_PREFIX",
    "DeviceType",
    "all_stream_keys",
    "dead_letter_key",
    "decode_event",
    "encode_event",
    "partition_for",
    "stream_for_link",
    "stream_key",
    "utc_now",
]

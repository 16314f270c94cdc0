"""Partitioned click-event channel layout on Redis Streams.

Each partition is its own stream, ``{prefix}:{partition}``. Events are routed
by short link id so that all clicks on one link land in the same stream and
are consumed in order; there is no ordering across partitions. Events that
could not be published or processed go to ``{prefix}:dlq``.
"""

from pydantic import ValidationError

from tinylink_shared.schemas import ClickEvent

DEFAULT_STREAM_PREFIX = "tinylink:clicks"
DEAD_LETTER_SUFFIX = "dlq"

# Field name holding the JSON-encoded event inside a stream entry
EVENT_FIELD = "event"


def partition_for(short_link_id: int, partitions: int) -> int:
    """Return the partition number for a short link id."""
    if partitions <= 0:
        raise ValueError(f"partitions must be positive, got {partitions}")
    return short_link_id % partitions


def stream_key(prefix: str, partition: int) -> str:
    """Stream name for one partition."""
    return f"{prefix}:{partition}"


def stream_for_link(prefix: str, short_link_id: int, partitions: int) -> str:
    """Stream name an event for ``short_link_id`` is published to."""
    return stream_key(prefix, partition_for(short_link_id, partitions))


def dead_letter_key(prefix: str) -> str:
    """Dead-letter stream name."""
    return f"{prefix}:{DEAD_LETTER_SUFFIX}"


def all_stream_keys(prefix: str, partitions: int) -> list[str]:
    """All partition stream names, in partition order."""
    return [stream_key(prefix, partition) for partition in range(partitions)]


def encode_event(event: ClickEvent) -> dict[str, str]:
    """Encode an event as stream entry fields."""
    return {EVENT_FIELD: event.model_dump_json()}


def decode_event(fields: dict) -> ClickEvent:
    """Decode stream entry fields back into an event.

    Raises:
        ValueError: If the entry has no event field or the payload does not
            match the ClickEvent schema.
    """
    raw = fields.get(EVENT_FIELD, fields.get(EVENT_FIELD.encode()))
    if raw is None:
        raise ValueError("Stream entry has no event field")
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        return ClickEvent.model_validate_json(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid click event payload: {e}") from e

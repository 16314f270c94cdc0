"""Tests for persisting click events."""

import pytest
from sqlalchemy import select

from tinylink_analytics.core.exceptions import UnresolvableClickEventError
from tinylink_analytics.models import ClickEventRecord
from tinylink_analytics.services.geoip import GeoIPService, is_public_ip

from tests.analytics.conftest import DELETED_LINK_ID, LIVE_LINK_ID, make_event


async def stored_records(session_factory) -> list[ClickEventRecord]:
    async with session_factory() as session:
        result = await session.execute(select(ClickEventRecord).order_by(ClickEventRecord.id))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_store_click(storage, session_factory):
    event = make_event()

    await storage.store_click(event)

    [record] = await stored_records(session_factory)
    assert record.event_id == event.event_id
    assert record.short_link_id == LIVE_LINK_ID
    assert record.short_code == "live000001"
    assert record.ip_address == "203.0.113.7"
    assert record.device_type == "desktop"
    assert record.browser == "Chrome 120.0"
    assert record.country == "DE"
    assert record.city == "Berlin"
    assert record.schema_version == "1"
    assert record.link_deleted is False
    assert storage.stats == {"clicks_stored": 1, "clicks_for_deleted_links": 0}


@pytest.mark.asyncio
async def test_event_location_takes_precedence(storage, session_factory):
    await storage.store_click(make_event(country="FR", city="Paris"))

    [record] = await stored_records(session_factory)
    assert (record.country, record.city) == ("FR", "Paris")


@pytest.mark.asyncio
async def test_click_on_deleted_link_is_flagged(storage, session_factory):
    await storage.store_click(make_event(short_link_id=DELETED_LINK_ID, short_code="gone000001"))

    [record] = await stored_records(session_factory)
    assert record.link_deleted is True
    assert storage.stats["clicks_for_deleted_links"] == 1


@pytest.mark.asyncio
async def test_redelivered_event_is_stored_again(storage, session_factory):
    event = make_event()

    await storage.store_click(event)
    await storage.store_click(event)

    records = await stored_records(session_factory)
    assert [record.event_id for record in records] == [event.event_id, event.event_id]


@pytest.mark.asyncio
async def test_unknown_link_is_unresolvable(storage, session_factory):
    with pytest.raises(UnresolvableClickEventError) as exc_info:
        await storage.store_click(make_event(short_link_id=999))

    assert exc_info.value.short_link_id == 999
    assert await stored_records(session_factory) == []


@pytest.mark.asyncio
async def test_workspace_mismatch_is_unresolvable(storage):
    with pytest.raises(UnresolvableClickEventError, match="belongs to workspace 1"):
        await storage.store_click(make_event(workspace_id=2))


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        ("8.8.8.8", True),
        ("2001:4860:4860::8888", True),
        ("10.0.0.1", False),
        ("127.0.0.1", False),
        ("::1", False),
        ("not-an-ip", False),
    ],
)
def test_is_public_ip(address, expected):
    assert is_public_ip(address) is expected


@pytest.mark.asyncio
async def test_geoip_skips_private_and_missing_addresses():
    service = GeoIPService(api_enabled=False)

    assert (await service.lookup(None)).country is None
    assert (await service.lookup("192.168.1.10")).country is None
    assert (await service.lookup("8.8.8.8")).country is None

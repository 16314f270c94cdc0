"""Shared pytest fixtures for the Analytics service."""

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from tinylink_shared import ClickEvent, DeviceType

from tinylink_analytics.consumers.click_consumer import ClickEventConsumer
from tinylink_analytics.core.database import Base, get_async_session
from tinylink_analytics.main import app
from tinylink_analytics.models import LinkRef
from tinylink_analytics.services import ClickStorageService, GeoIPService, GeoLocation

LIVE_LINK_ID = 10
DELETED_LINK_ID = 11
WORKSPACE_ID = 1


class FixedGeoIP(GeoIPService):
    """GeoIP stand-in that places every public address in one city."""

    def __init__(self, location: GeoLocation | None = None):
        super().__init__(api_enabled=False)
        self.location = location or GeoLocation(country="DE", city="Berlin")

    async def lookup(self, ip_address: str | None) -> GeoLocation:
        if not ip_address:
            return GeoLocation()
        return self.location


def make_event(**overrides) -> ClickEvent:
    data = {
        "short_link_id": LIVE_LINK_ID,
        "workspace_id": WORKSPACE_ID,
        "short_code": "live000001",
        "ip_address": "203.0.113.7",
        "user_agent": "Mozilla/5.0",
        "referrer": "https://news.example.com/",
        "device_type": DeviceType.DESKTOP,
        "browser": "Chrome 120.0",
        "os": "Windows 10",
    }
    data.update(overrides)
    return ClickEvent(**data)


@pytest_asyncio.fixture(scope="function")
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add_all(
            [
                LinkRef(id=LIVE_LINK_ID, workspace_id=WORKSPACE_ID, short_code="live000001"),
                LinkRef(
                    id=DELETED_LINK_ID,
                    workspace_id=WORKSPACE_ID,
                    short_code="gone000001",
                    is_deleted=True,
                ),
            ]
        )
        await session.commit()
    return factory


@pytest.fixture
def storage(session_factory) -> ClickStorageService:
    return ClickStorageService(session_factory=session_factory, geoip=FixedGeoIP())


@pytest.fixture
def redis_client() -> AsyncMock:
    client = AsyncMock()
    client.xautoclaim.return_value = ["0-0", [], []]
    client.xpending_range.return_value = []
    client.xreadgroup.return_value = []
    return client


@pytest.fixture
def consumer(redis_client) -> ClickEventConsumer:
    return ClickEventConsumer(
        redis_client=redis_client,
        partitions=[0, 1],
        stream_prefix="clicks",
        group="click-ingest",
        consumer_name="worker-1",
        batch_size=10,
        block_ms=0,
        max_deliveries=3,
        reclaim_idle_ms=1000,
    )


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_async_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

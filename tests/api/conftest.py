"""Shared pytest fixtures for the API service: in-memory database, mocked Redis, HTTP client."""

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tinylink_api.core import redis as redis_module
from tinylink_api.core.database import Base, get_async_session
from tinylink_api.main import app
from tinylink_api.models import Workspace
from tinylink_api.services.click_capture import ClickCapture, get_click_capture
from tinylink_api.services.click_publisher import ClickEventPublisher

DEFAULT_WORKSPACE_ID = 1
OTHER_WORKSPACE_ID = 2
DELETED_WORKSPACE_ID = 3


@pytest_asyncio.fixture(scope="function")
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN until the first write, which breaks SAVEPOINT;
    # emit BEGIN ourselves so nested transactions behave as on PostgreSQL
    @event.listens_for(test_engine.sync_engine, "connect")
    def disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def workspaces(session_factory) -> None:
    async with session_factory() as session:
        session.add_all(
            [
                Workspace(id=DEFAULT_WORKSPACE_ID, name="Default", slug="default"),
                Workspace(id=OTHER_WORKSPACE_ID, name="Marketing", slug="marketing"),
                Workspace(id=DELETED_WORKSPACE_ID, name="Archived", slug="archived", is_deleted=True),
            ]
        )
        await session.commit()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory, workspaces) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def redis_client(monkeypatch) -> AsyncMock:
    """Stand-in for the shared Redis client: empty cache, accepting writes."""
    client = AsyncMock()
    client.get.return_value = None
    client.xadd.return_value = "1-0"
    monkeypatch.setattr(redis_module, "_redis_client", client)
    return client


@pytest.fixture
def capture(redis_client) -> ClickCapture:
    publisher = ClickEventPublisher(
        redis_client=redis_client,
        dead_letter_client=redis_client,
        timeout=0.5,
    )
    return ClickCapture(publisher=publisher)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, workspaces, capture) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_click_capture] = lambda: capture

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

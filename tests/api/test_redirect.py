"""HTTP tests for redirects and click capture on the redirect path."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from tinylink_shared import DeviceType, decode_event

from tests.api.conftest import OTHER_WORKSPACE_ID

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


async def create_link(client: AsyncClient, url: str, workspace_id: int = 1, **extra) -> dict:
    response = await client.post(
        f"/api/v1/workspaces/{workspace_id}/links",
        json={"url": url, **extra},
    )
    assert response.status_code == 201
    return response.json()


async def get_link(client: AsyncClient, code: str, workspace_id: int = 1) -> dict:
    # Listing skips usability checks, so exhausted links still show up
    response = await client.get(f"/api/v1/workspaces/{workspace_id}/links")
    return next(item for item in response.json()["items"] if item["code"] == code)


@pytest.mark.asyncio
async def test_redirect_to_original_url(client: AsyncClient, redis_client):
    link = await create_link(client, "https://Example.com/Landing/?utm=x")

    response = await client.get(f"/{link['code']}")

    assert response.status_code == 307
    assert response.headers["location"] == "https://Example.com/Landing/?utm=x"
    assert (await get_link(client, link["code"]))["click_count"] == 1
    cache_key, ttl, payload = redis_client.setex.call_args[0]
    assert cache_key == f"link:1:{link['code']}"
    assert ttl == 3600
    assert json.loads(payload)["link_id"] == link["id"]


@pytest.mark.asyncio
async def test_redirect_in_explicit_workspace(client: AsyncClient):
    link = await create_link(client, "https://example.com/team", workspace_id=OTHER_WORKSPACE_ID)

    scoped = await client.get(f"/w/{OTHER_WORKSPACE_ID}/{link['code']}")
    default = await client.get(f"/{link['code']}")

    assert scoped.status_code == 307
    assert scoped.headers["location"] == "https://example.com/team"
    assert default.status_code == 404


@pytest.mark.asyncio
async def test_scheme_less_url_redirects_to_canonical_form(client: AsyncClient):
    link = await create_link(client, "example.com/page")

    response = await client.get(f"/{link['code']}")

    assert link["original_url"] == "example.com/page"
    assert response.status_code == 307
    assert response.headers["location"] == "http://example.com/page"


@pytest.mark.asyncio
async def test_protocol_relative_url_redirects_to_canonical_form(client: AsyncClient):
    link = await create_link(client, "//example.com/Page/")

    response = await client.get(f"/{link['code']}")

    assert response.headers["location"] == "http://example.com/Page"


@pytest.mark.asyncio
async def test_redirect_publishes_click_event(client: AsyncClient, capture, redis_client):
    link = await create_link(client, "https://example.com/")

    await client.get(
        f"/{link['code']}",
        headers={
            "User-Agent": CHROME_WINDOWS,
            "Referer": "https://news.example.com/",
            "X-Forwarded-For": "203.0.113.7, 10.0.0.1",
        },
    )
    await capture.drain(timeout=1.0)

    redis_client.xadd.assert_awaited_once()
    stream, fields = redis_client.xadd.call_args[0]
    event = decode_event(fields)
    assert stream == f"tinylink:clicks:{link['id'] % 8}"
    assert event.short_link_id == link["id"]
    assert event.workspace_id == 1
    assert event.short_code == link["code"]
    assert event.ip_address == "203.0.113.7"
    assert event.referrer == "https://news.example.com/"
    assert event.device_type is DeviceType.DESKTOP
    assert event.browser == "Chrome 120.0"
    assert event.os == "Windows 10"


@pytest.mark.asyncio
async def test_redirect_succeeds_when_redis_is_down(client: AsyncClient, capture, redis_client):
    link = await create_link(client, "https://example.com/")
    redis_client.xadd.side_effect = RedisConnectionError("connection refused")

    response = await client.get(f"/{link['code']}")
    await capture.drain(timeout=1.0)

    assert response.status_code == 307
    # Partition write, then dead-letter write, both on the same client here
    assert redis_client.xadd.await_count == 2


@pytest.mark.asyncio
async def test_redirect_uses_cached_snapshot(client: AsyncClient, redis_client):
    link = await create_link(client, "https://example.com/")
    redis_client.get.return_value = json.dumps(
        {
            "link_id": link["id"],
            "workspace_id": 1,
            "short_code": link["code"],
            "original_url": "https://cached.example.com/",
            "expires_at": None,
            "max_clicks": None,
        }
    )

    response = await client.get(f"/{link['code']}")

    assert response.status_code == 307
    assert response.headers["location"] == "https://cached.example.com/"
    redis_client.setex.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_code_is_not_found(client: AsyncClient, redis_client):
    response = await client.get("/doesnotexist")

    assert response.status_code == 404
    assert response.json()["error_code"] == "link_not_found"
    redis_client.xadd.assert_not_awaited()


@pytest.mark.asyncio
async def test_expired_link_is_gone(client: AsyncClient, redis_client):
    expired_at = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    link = await create_link(client, "https://example.com/old", expires_at=expired_at)

    response = await client.get(f"/{link['code']}")

    assert response.status_code == 410
    assert response.json()["error_code"] == "link_expired"
    redis_client.xadd.assert_not_awaited()


@pytest.mark.asyncio
async def test_click_limit(client: AsyncClient, capture, redis_client):
    link = await create_link(client, "https://example.com/limited", max_clicks=2)

    statuses = [(await client.get(f"/{link['code']}")).status_code for _ in range(3)]
    await capture.drain(timeout=1.0)

    assert statuses == [307, 307, 410]
    assert (await get_link(client, link["code"]))["click_count"] == 2
    assert redis_client.xadd.await_count == 2


@pytest.mark.asyncio
async def test_deleted_link_stops_redirecting(client: AsyncClient):
    link = await create_link(client, "https://example.com/")
    await client.delete(f"/api/v1/workspaces/1/links/{link['id']}")

    response = await client.get(f"/{link['code']}")

    assert response.status_code == 404

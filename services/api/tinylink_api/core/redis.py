"""Redis clients for the redirect cache and the click event streams."""

import json
from typing import Any

import redis.asyncio as redis
import structlog

from tinylink_api.core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()

# Global Redis client instances
_redis_client: redis.Redis | None = None
_dead_letter_client: redis.Redis | None = None

# Cache key prefixes
LINK_CACHE_PREFIX = "link:"
LINK_CACHE_TTL = settings.link_cache_ttl


def _create_client(url: str) -> redis.Redis:
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
    )


async def get_redis() -> redis.Redis:
    """Get the Redis client instance, creating it if necessary."""
    global _redis_client
    if _redis_client is None:
        _redis_client = _create_client(settings.redis_url)
        logger.info("Redis client initialized", url=settings.redis_url)
    return _redis_client


async def get_dead_letter_redis() -> redis.Redis:
    """Get the client for the dead-letter stream.

    Falls back to the primary client when no separate URL is configured.
    """
    global _dead_letter_client
    if not settings.dead_letter_redis_url:
        return await get_redis()
    if _dead_letter_client is None:
        _dead_letter_client = _create_client(settings.dead_letter_redis_url)
        logger.info("Dead-letter Redis client initialized", url=settings.dead_letter_redis_url)
    return _dead_letter_client


async def close_redis() -> None:
    """Close the Redis connections."""
    global _redis_client, _dead_letter_client
    if _dead_letter_client is not None:
        await _dead_letter_client.aclose()
        _dead_letter_client = None
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")


def _link_cache_key(workspace_id: int, short_code: str) -> str:
    """Generate cache key for a link."""
    return f"{LINK_CACHE_PREFIX}{workspace_id}:{short_code}"


async def get_cached_link(workspace_id: int, short_code: str) -> dict[str, Any] | None:
    """Get a link from cache by workspace and short code.

    Returns None if not found in cache or Redis is unavailable.
    """
    client = await get_redis()
    try:
        data = await client.get(_link_cache_key(workspace_id, short_code))
        if data:
            logger.debug("Cache hit", workspace_id=workspace_id, short_code=short_code)
            return json.loads(data)
        logger.debug("Cache miss", workspace_id=workspace_id, short_code=short_code)
        return None
    except redis.RedisError as e:
        logger.warning("Redis get error", short_code=short_code, error=str(e))
        return None


async def cache_link(
    workspace_id: int,
    short_code: str,
    link_data: dict[str, Any],
    ttl: int = LINK_CACHE_TTL,
) -> None:
    """Cache a link by workspace and short code.

    Args:
        workspace_id: Workspace owning the link
        short_code: The short code for the link
        link_data: JSON-serializable snapshot of the link
        ttl: Time to live in seconds (default 1 hour)
    """
    client = await get_redis()
    try:
        await client.setex(
            _link_cache_key(workspace_id, short_code),
            ttl,
            json.dumps(link_data),
        )
        logger.debug("Link cached", short_code=short_code, ttl=ttl)
    except redis.RedisError as e:
        logger.warning("Redis set error", short_code=short_code, error=str(e))


async def invalidate_link_cache(workspace_id: int, short_code: str) -> None:
    """Invalidate (delete) a link from cache."""
    client = await get_redis()
    try:
        await client.delete(_link_cache_key(workspace_id, short_code))
        logger.debug("Cache invalidated", short_code=short_code)
    except redis.RedisError as e:
        logger.warning("Redis delete error", short_code=short_code, error=str(e))

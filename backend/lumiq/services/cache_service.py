"""
Redis caching for room listings.

CACHING STRATEGY
================

What we cache:
  - Room listing responses (filtered, paginated, JSON-serialized)
  - Key pattern: "rooms:list:<sorted query params>"

What we never cache:
  - Single-room lookups, statistics and the vacancy lookahead. Staff act on
    those (move-in, move-out, reserve), so they must show live status

Invalidation strategy:
  - Any room mutation, including reservations made by the booking flow,
    deletes every "rooms:list:*" key (SCAN + DELETE)
  - TTL as a safety net

Redis is advisory. If it is disabled or down, listings are served from the
database and the failure is logged and counted; no request fails because of
the cache.
"""

import json
from typing import Optional

import redis.asyncio as redis
from lumiq.core.config import get_settings
from lumiq.core.logging import get_logger
from lumiq.core.metrics import record_cache_operation, redis_connection_errors

logger = get_logger(__name__)
settings = get_settings()

ROOM_LIST_PREFIX = "rooms:list:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled or unreachable."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            redis_connection_errors.inc()
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def make_room_list_key(**filters) -> str:
    """Stable key for a listing query; unset filters are left out."""
    parts = [f"{name}={filters[name]}" for name in sorted(filters) if filters[name] is not None]
    return ROOM_LIST_PREFIX + "&".join(parts)


async def get_cached_rooms(key: str) -> Optional[dict]:
    """Retrieve a cached room listing response."""
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(key)
        if data:
            record_cache_operation("get", "hit")
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        record_cache_operation("get", "miss")
        logger.debug("cache_miss", key=key)
    except Exception as e:
        record_cache_operation("get", "error")
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_rooms(key: str, data: dict) -> None:
    """Cache a room listing response with TTL."""
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        record_cache_operation("set", "ok")
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        record_cache_operation("set", "error")
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_room_cache() -> None:
    """Drop every cached room listing."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=ROOM_LIST_PREFIX + "*", count=100):
            await client.delete(key)
            deleted += 1
        record_cache_operation("invalidate", "ok")
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        record_cache_operation("invalidate", "error")
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Redis cache statistics for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}

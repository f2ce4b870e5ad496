"""
Redis caching service for trip seat maps.

CACHING STRATEGY
================

What we cache:
  - The seat map of a trip (GET /trips/{id}/seats), JSON-serialized
  - Cache key pattern: "trips:{trip_id}:seats"

Why:
  - Seat maps are polled by every client sitting on the seat picker
  - Serving from Redis keeps those polls off the seat table while checkouts
    are hammering it

Invalidation strategy:
  - Delete the trip's key whenever one of its seats changes state
    (checkout, payment confirmation, cancellation, reaper release)
  - A short TTL (REDIS_CACHE_TTL) as safety net for releases the reaper
    makes across many trips at once

The cache is advisory only. Checkout never reads it: availability is decided
by the conditional UPDATE on the seat row. Every Redis failure is logged and
treated as a miss.
"""

import json
from typing import Optional

import redis.asyncio as redis
from seatline.core.config import get_settings
from seatline.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
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


def _make_seat_map_key(trip_id: int) -> str:
    return f"trips:{trip_id}:seats"


async def get_cached_seat_map(trip_id: int) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _make_seat_map_key(trip_id)
    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_seat_map(trip_id: int, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_seat_map_key(trip_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_seat_map(*trip_ids: int) -> None:
    client = await get_redis()
    if not client or not trip_ids:
        return

    keys = [_make_seat_map_key(t) for t in set(trip_ids)]
    try:
        deleted = await client.delete(*keys)
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
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

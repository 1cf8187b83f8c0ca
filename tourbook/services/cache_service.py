"""
Redis caching for tour listings, plus small Redis-backed helpers for
webhook de-duplication and periodic-task leases.

CACHING STRATEGY
================

What we cache:
  - Tour listing responses (paginated, JSON-serialized)
  - Cache key pattern: "tours:list:page={page}&size={size}&upcoming={upcoming}"

Invalidation strategy:
  - Any change to booked_count (hold, expiry, cancellation, rejection)
    and any tour create/edit/cancel/delete deletes every "tours:list:*" key
  - TTL-based expiry as safety net (5 minutes)

Why NOT cache individual tours:
  - The tour page shows live availability; a stale seat count there
    sends customers into CapacityExceeded errors
  - Reservation always reads the tours row itself, never the cache
"""

import json
from typing import Optional

from tourbook.core.config import get_settings
from tourbook.core.logging import get_logger
from tourbook.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

TOUR_LIST_PREFIX = "tours:list:"
WEBHOOK_EVENT_PREFIX = "webhook:event:"
LEASE_PREFIX = "lease:"


def _make_tour_list_key(page: int, page_size: int, upcoming_only: bool) -> str:
    return f"{TOUR_LIST_PREFIX}page={page}&size={page_size}&upcoming={upcoming_only}"


async def get_cached_tours(page: int, page_size: int, upcoming_only: bool) -> Optional[dict]:
    """Retrieve cached tour list response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_tour_list_key(page, page_size, upcoming_only)
    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_tours(
    page: int,
    page_size: int,
    upcoming_only: bool,
    data: dict,
) -> None:
    """Cache tour list response with TTL."""
    client = await get_redis()
    if not client:
        return

    settings = get_settings()
    key = _make_tour_list_key(page, page_size, upcoming_only)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_tour_cache() -> None:
    """Invalidate all cached tour listings."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{TOUR_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def remember_webhook_event(event_id: str, ttl: int = 86400) -> bool:
    """
    Record a webhook event id. Returns False if it was seen before.
    Without Redis every event is processed; booking transitions are
    idempotent on their own.
    """
    client = await get_redis()
    if not client:
        return True

    try:
        return bool(await client.set(f"{WEBHOOK_EVENT_PREFIX}{event_id}", "processed", nx=True, ex=ttl))
    except Exception as e:
        logger.error("webhook_dedupe_error", event_id=event_id, error=str(e))
        return True


async def forget_webhook_event(event_id: str) -> None:
    """Drop a remembered event id so a redelivery is processed again."""
    client = await get_redis()
    if not client:
        return

    try:
        await client.delete(f"{WEBHOOK_EVENT_PREFIX}{event_id}")
    except Exception as e:
        logger.error("webhook_dedupe_error", event_id=event_id, error=str(e))


async def acquire_lease(name: str, owner: str, ttl: int) -> bool:
    """
    Take a cross-worker lease for a periodic task (SET NX EX).
    Fails open when Redis is unavailable; the in-process lock still
    prevents overlapping runs inside one worker.
    """
    client = await get_redis()
    if not client:
        return True

    try:
        return bool(await client.set(f"{LEASE_PREFIX}{name}", owner, nx=True, ex=max(ttl, 1)))
    except Exception as e:
        logger.error("lease_acquire_error", lease=name, error=str(e))
        return True


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

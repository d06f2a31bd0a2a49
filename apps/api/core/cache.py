"""
Redis cache for read-heavy boards.

Leaderboard pages are cached as JSON for a short TTL and dropped whenever
a lift is submitted for the exercise. Every helper degrades to "no cache"
when Redis is disabled or unreachable.
"""
import json
import logging
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

from core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None

LEADERBOARD_PREFIX = "leaderboard"


def get_redis_client() -> Optional[redis.Redis]:
    """Shared client, or None when caching is off or Redis is down."""
    global _redis_client

    if not settings.CACHE_ENABLED:
        return None
    if _redis_client is not None:
        return _redis_client

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            health_check_interval=30,
        )
        client.ping()
    except RedisError as e:
        logger.warning(f"Redis unavailable: {e}. Caching disabled.")
        return None

    logger.info("Redis connection established")
    _redis_client = client
    return client


def leaderboard_key(exercise: str, gym: Optional[str] = None, limit: int = 20) -> str:
    scope = f"gym:{gym}" if gym else "global"
    return f"{LEADERBOARD_PREFIX}:{exercise.strip().lower()}:{scope}:{limit}"


def get_cache(key: str) -> Optional[Any]:
    client = get_redis_client()
    if client is None:
        return None
    try:
        raw = client.get(key)
    except RedisError as e:
        logger.warning(f"Cache get error for key {key}: {e}")
        return None
    return json.loads(raw) if raw else None


def set_cache(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    client = get_redis_client()
    if client is None:
        return False
    try:
        # default=str covers UUIDs and datetimes in response payloads
        client.setex(key, ttl or settings.CACHE_TTL_DEFAULT, json.dumps(value, default=str))
    except RedisError as e:
        logger.warning(f"Cache set error for key {key}: {e}")
        return False
    return True


def invalidate_leaderboard_cache(exercise: str) -> int:
    """Drop every cached board (global and per-gym) for an exercise."""
    client = get_redis_client()
    if client is None:
        return 0

    pattern = f"{LEADERBOARD_PREFIX}:{exercise.strip().lower()}:*"
    try:
        keys = list(client.scan_iter(match=pattern, count=500))
        return client.delete(*keys) if keys else 0
    except RedisError as e:
        logger.warning(f"Cache invalidation error for pattern {pattern}: {e}")
        return 0

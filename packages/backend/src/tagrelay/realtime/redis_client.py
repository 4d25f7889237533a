"""Redis connection — shared by the rate limiter and the health check.

Learn: Redis is optional. If it is unreachable at startup (or
TAGRELAY_REDIS_URL is empty) the relay still works; only producer rate
limiting is skipped. Relay registrations are never stored in Redis —
relay state is process-local.
"""

from typing import Optional

import redis.asyncio as aioredis

from tagrelay.config import settings

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis(url: Optional[str] = None) -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    client = aioredis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis

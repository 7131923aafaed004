"""Redis connection pool.

Learn: Redis backs the login rate limiter only. It is optional — if it
isn't reachable at startup the app runs without rate limiting rather than
refusing to serve sign-ins. Accounts and sessions never live here; they
need the database's uniqueness guarantees.
"""

from typing import Optional

import redis.asyncio as aioredis

from gatehouse.config import settings

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis(url: Optional[str] = None) -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    _redis = aioredis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    await _redis.ping()
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


def set_redis(client: Optional[aioredis.Redis]) -> None:
    """Install a client directly (tests use a stand-in object)."""
    global _redis
    _redis = client

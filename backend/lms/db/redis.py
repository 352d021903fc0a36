"""
Redis connection shared by the stats cache, rate limiting and sweep locks.

Consumers read ``redis.redis_client`` through the module at call time
because the client is only created during application startup.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from lms.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Set by init_redis() on startup
redis_client: Optional[redis.Redis] = None


async def init_redis() -> redis.Redis:
    """Create the Redis client."""
    global redis_client
    redis_client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
    )
    return redis_client


async def close_redis() -> None:
    """Close the Redis client."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None


def get_redis_client() -> Optional[redis.Redis]:
    """Return the current client, or None when Redis was never initialised."""
    return redis_client


async def check_redis_connection() -> bool:
    """Ping Redis. Returns False on any connection problem."""
    try:
        if redis_client:
            await redis_client.ping()
            return True
        return False
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
        return False

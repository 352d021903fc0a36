"""
Redis cache for the transaction statistics endpoint.

Configured through:
    - CACHE_ENABLED: bool (default: True)
    - CACHE_STATS_TTL_SECONDS: int (default: 30)

Usage:
    data = await cache_service.get_stats()
    if data is None:
        data = await compute_stats()
        await cache_service.set_stats(data)

Invalidation:
    Every issue, return, renew, pay-fine and sweep calls
    ``invalidate_stats()`` after committing.

Redis problems never fail a request: reads miss, writes are skipped.
"""

import json
import logging
from typing import Optional

from lms.core.config import get_settings
from lms.db.redis import get_redis_client

logger = logging.getLogger(__name__)
settings = get_settings()


class CacheService:
    """Read-through cache helpers over the shared Redis client."""

    KEY_STATS = "cache:transactions:stats"

    def __init__(self, ttl: Optional[int] = None):
        self.ttl = ttl or settings.CACHE_STATS_TTL_SECONDS

    def _client(self):
        if not settings.CACHE_ENABLED:
            return None
        return get_redis_client()

    # ==========================================
    # Stats cache
    # ==========================================

    async def get_stats(self) -> Optional[dict]:
        """Return cached stats, or None on a miss."""
        client = self._client()
        if client is None:
            return None

        try:
            data = await client.get(self.KEY_STATS)
            if data:
                return json.loads(data)
            return None
        except Exception as e:
            logger.warning(f"Stats cache read failed: {e}")
            return None

    async def set_stats(self, data: dict, ttl: Optional[int] = None) -> bool:
        """
        Store stats.

        Returns:
            True if written
        """
        client = self._client()
        if client is None:
            return False

        try:
            await client.setex(
                self.KEY_STATS,
                ttl or self.ttl,
                json.dumps(data, default=str),
            )
            return True
        except Exception as e:
            logger.warning(f"Stats cache write failed: {e}")
            return False

    async def invalidate_stats(self) -> bool:
        """Drop cached stats after a mutation."""
        client = self._client()
        if client is None:
            return False

        try:
            await client.delete(self.KEY_STATS)
            return True
        except Exception as e:
            logger.warning(f"Stats cache invalidation failed: {e}")
            return False


cache_service = CacheService()

"""Redis-backed cache for catalog listings.

Entries live under the ``catalog:`` prefix, keyed by the canonical JSON of
the query that produced them. Writes set a TTL; any change to what the
catalog shows clears every entry rather than updating one in place.
"""
import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

PREFIX = 'catalog:'
SCAN_BATCH = 100

def make_key(query: Dict[str, Any]) -> str:
    """Build the cache key for a catalog query.

    Keys are sorted so the same filters always map to the same entry.
    """
    return PREFIX + json.dumps(query, sort_keys=True, separators=(',', ':'), default=str)


class CatalogCache:
    """Catalog query cache on top of redis.asyncio."""

    def __init__(self, redis_url: Optional[str] = None, ttl: int = 60, client=None):
        self.redis_url = redis_url
        self.ttl = ttl
        self.client = client

    async def connect(self) -> None:
        if self.client is None:
            self.client = redis.from_url(self.redis_url, decode_responses=True)
        await self.client.ping()
        logger.info("Connected to Redis")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def get(self, query: Dict[str, Any]) -> Optional[Any]:
        """Return the cached value for a query, or None on a miss."""
        key = make_key(query)
        try:
            raw = await self.client.get(key)
        except Exception as e:
            logger.warning(f"Redis get error for key {key}: {e}")
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, query: Dict[str, Any], value: Any) -> bool:
        key = make_key(query)
        try:
            await self.client.set(key, json.dumps(value, default=str), ex=self.ttl)
            return True
        except Exception as e:
            logger.warning(f"Redis set error for key {key}: {e}")
            return False

    async def clear(self) -> int:
        """Delete every catalog entry.

        Best effort: a Redis failure is logged and reported as zero deletions.

        Returns:
            Number of keys deleted
        """
        deleted = 0
        try:
            batch = []
            async for key in self.client.scan_iter(match=f'{PREFIX}*', count=SCAN_BATCH):
                batch.append(key)
                if len(batch) >= SCAN_BATCH:
                    deleted += await self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self.client.delete(*batch)
        except Exception as e:
            logger.error(f"Failed to clear catalog cache: {e}")
            return deleted
        if deleted:
            logger.info(f"Cleared {deleted} catalog cache entries")
        return deleted


__all__ = ['CatalogCache', 'make_key', 'PREFIX']

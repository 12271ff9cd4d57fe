"""Redis-backed intent cache.

Uses ``redis.asyncio`` for non-blocking I/O.  Each intent is stored as a
JSON blob with a TTL, so entries age out without explicit eviction.

Usage::

    cache = RedisIntentCache(
        url="redis://redis-svc:6379/0",
        key_prefix="qr:intent:",
        ttl=3600,
    )
"""

from __future__ import annotations

import redis.asyncio as aioredis

from query_router.memory.intent_cache import BaseIntentCache


class RedisIntentCache(BaseIntentCache):
    """Intent cache with TTL-based expiry."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        key_prefix: str = "qr:intent:",
        ttl: int = 3600,
        max_connections: int = 50,
        client: aioredis.Redis | None = None,
    ) -> None:
        self._redis = client or aioredis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._prefix = key_prefix
        self._ttl = ttl

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def _get_raw(self, key: str) -> bytes | None:
        return await self._redis.get(self._key(key))

    async def _set_raw(self, key: str, data: bytes) -> None:
        await self._redis.set(self._key(key), data, ex=self._ttl)

    async def close(self) -> None:
        """Close the Redis connection pool.  Call during app shutdown."""
        await self._redis.aclose()

"""Redis-backed daily rate counter.

The check-and-increment runs as a Lua script, so it is atomic across every
worker sharing the Redis instance.  Keys carry the calendar day and expire
at the following midnight.

If Redis cannot be reached the counter fails open: the call is allowed and
the decision is marked ``degraded``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, time, timedelta

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from query_router.memory.rate_counter import ANONYMOUS_USER, BaseRateCounter, RateDecision

logger = logging.getLogger(__name__)

# KEYS[1] counter key; ARGV[1] limit; ARGV[2] unix expiry.
# Returns {allowed, count}.
CHECK_AND_INCREMENT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current >= tonumber(ARGV[1]) then
    return {0, current}
end
current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('EXPIREAT', KEYS[1], ARGV[2])
end
return {1, current}
"""


class RedisRateCounter(BaseRateCounter):
    """Rate counter shared across processes through Redis."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        key_prefix: str = "qr:rate:",
        max_connections: int = 50,
        today: Callable[[], date] = date.today,
        client: aioredis.Redis | None = None,
    ) -> None:
        super().__init__(today)
        self._redis = client or aioredis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._prefix = key_prefix
        self._script = self._redis.register_script(CHECK_AND_INCREMENT)

    def _key(self, user_id: str | None, day: date) -> str:
        return f"{self._prefix}{user_id or ANONYMOUS_USER}:{day.isoformat()}"

    @staticmethod
    def _expiry(day: date) -> int:
        return int(datetime.combine(day + timedelta(days=1), time.min).timestamp())

    async def try_acquire(self, user_id: str | None, limit: int) -> RateDecision:
        day = self._today()
        try:
            allowed, current = await self._script(
                keys=[self._key(user_id, day)], args=[limit, self._expiry(day)]
            )
        except (RedisError, OSError) as e:
            logger.warning(f"Rate counter unavailable, allowing call: {e}")
            return RateDecision(allowed=True, count=0, limit=limit, degraded=True)
        return RateDecision(allowed=bool(allowed), count=int(current), limit=limit)

    async def count(self, user_id: str | None) -> int:
        value = await self._redis.get(self._key(user_id, self._today()))
        return int(value) if value is not None else 0

    async def close(self) -> None:
        """Close the Redis connection pool.  Call during app shutdown."""
        await self._redis.aclose()

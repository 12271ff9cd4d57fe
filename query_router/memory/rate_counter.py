"""Per-user, per-day counters for model-backed invocations.

The check and the increment are one atomic operation: two concurrent
requests can never both observe "under limit" for the last remaining slot.

Implementations
---------------
- ``InMemoryRateCounter``  – asyncio-lock protected dict, single process
- ``RedisRateCounter``     – see :mod:`query_router.memory.redis_rate_counter`
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

ANONYMOUS_USER = "anonymous"


@dataclass(frozen=True)
class RateDecision:
    """Outcome of one check-and-increment.

    ``count`` is the number of calls recorded today including this one when
    allowed.  ``degraded`` marks a decision taken without the backend.
    """

    allowed: bool
    count: int
    limit: int
    degraded: bool = False

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


class BaseRateCounter(ABC):
    """Abstract daily rate counter."""

    def __init__(self, today: Callable[[], date] = date.today) -> None:
        self._today = today

    @abstractmethod
    async def try_acquire(self, user_id: str | None, limit: int) -> RateDecision:
        """Record one call for *user_id* unless today's count has reached *limit*."""
        ...

    @abstractmethod
    async def count(self, user_id: str | None) -> int:
        """Calls recorded today for *user_id*."""
        ...

    async def close(self) -> None:
        """Release backend resources.  No-op by default."""


class InMemoryRateCounter(BaseRateCounter):
    """Counter held in process memory.

    Counts are keyed by ``(day, user)``; entries from previous days are
    purged on the first call after rollover.
    """

    def __init__(self, today: Callable[[], date] = date.today) -> None:
        super().__init__(today)
        self._counts: dict[tuple[date, str], int] = {}
        self._day: date | None = None
        self._lock = asyncio.Lock()

    def _rollover(self, today: date) -> None:
        if self._day != today:
            self._counts = {k: v for k, v in self._counts.items() if k[0] == today}
            self._day = today

    async def try_acquire(self, user_id: str | None, limit: int) -> RateDecision:
        async with self._lock:
            today = self._today()
            self._rollover(today)
            key = (today, user_id or ANONYMOUS_USER)
            current = self._counts.get(key, 0)
            if current >= limit:
                return RateDecision(allowed=False, count=current, limit=limit)
            self._counts[key] = current + 1
            return RateDecision(allowed=True, count=current + 1, limit=limit)

    async def count(self, user_id: str | None) -> int:
        async with self._lock:
            today = self._today()
            self._rollover(today)
            return self._counts.get((today, user_id or ANONYMOUS_USER), 0)

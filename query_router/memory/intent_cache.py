"""Intent cache keyed by user and normalised query.

Stores classified :class:`QueryIntent` objects so repeated questions skip
re-classification and can be inspected for diagnostics.  Serialisation is
the intent's own JSON interchange format.  Questions with relative years
are never cached.

Implementations
---------------
- ``InMemoryIntentCache``  – dictionary-backed LRU, for dev / testing
- ``RedisIntentCache``     – see :mod:`query_router.memory.redis_intent_cache`
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod

import pydantic

from query_router.core.catalog import RELATIVE_YEAR_PATTERN
from query_router.models.domain import QueryIntent

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"


def normalize_query(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(text.lower().split())


def query_hash(text: str) -> str:
    return hashlib.sha256(normalize_query(text).encode("utf-8")).hexdigest()


def cache_key(user_id: str | None, text: str) -> str:
    return f"{user_id or ANONYMOUS_USER}:{query_hash(text)}"


def is_cacheable(text: str) -> bool:
    """Relative years ("last year") resolve against today, so their intents expire."""
    return RELATIVE_YEAR_PATTERN.search(text) is None


class BaseIntentCache(ABC):
    """Abstract intent cache.

    Concrete subclasses implement ``_get_raw`` / ``_set_raw``; the public
    ``get`` / ``set`` methods handle keys and serialisation.
    """

    async def get(self, user_id: str | None, text: str) -> QueryIntent | None:
        """Cached intent for *text*, or ``None``.

        An unreadable entry is treated as a miss.
        """
        if not is_cacheable(text):
            return None
        raw = await self._get_raw(cache_key(user_id, text))
        if raw is None:
            return None
        try:
            return QueryIntent.from_json(raw)
        except pydantic.ValidationError as e:
            logger.warning(f"Discarding unreadable cached intent: {e}")
            return None

    async def set(self, user_id: str | None, text: str, intent: QueryIntent) -> None:
        if not is_cacheable(text):
            return
        await self._set_raw(cache_key(user_id, text), intent.to_json().encode("utf-8"))

    async def close(self) -> None:
        """Release backend resources.  No-op by default."""

    # -- backend hooks ---------------------------------------------------

    @abstractmethod
    async def _get_raw(self, key: str) -> bytes | None:
        """Return raw JSON bytes, or ``None`` on a miss."""

    @abstractmethod
    async def _set_raw(self, key: str, data: bytes) -> None:
        """Store raw JSON bytes."""


class InMemoryIntentCache(BaseIntentCache):
    """Dict-backed intent cache with LRU eviction."""

    def __init__(self, max_entries: int = 10000) -> None:
        self._store: dict[str, bytes] = {}
        self._max_entries = max_entries

    def __len__(self) -> int:
        return len(self._store)

    async def _get_raw(self, key: str) -> bytes | None:
        if key in self._store:
            # Move to end (most recently used)
            value = self._store.pop(key)
            self._store[key] = value
            return value
        return None

    async def _set_raw(self, key: str, data: bytes) -> None:
        if key in self._store:
            del self._store[key]
        elif len(self._store) >= self._max_entries:
            # Evict least recently used (first item)
            del self._store[next(iter(self._store))]
        self._store[key] = data

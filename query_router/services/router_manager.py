"""Router manager: builds the query router and its backends from config.

Creates the record store and language model through the
:class:`ProviderFactory`, picks the rate-counter and intent-cache backends,
and owns their shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from query_router.config.models import CacheConfig, RateLimitConfig, RouterConfig
from query_router.core.http_client_pool import HttpClientPool
from query_router.memory.intent_cache import BaseIntentCache, InMemoryIntentCache
from query_router.memory.rate_counter import BaseRateCounter, InMemoryRateCounter
from query_router.providers.base import BaseLanguageModel, BaseRecordStore
from query_router.providers.factory import ProviderFactory, load_builtin_providers
from query_router.services.query_router import QueryRouter

logger = logging.getLogger(__name__)


@dataclass
class RouterProviders:
    """Capability and backend instances used by one router.

    ``model`` and ``intent_cache`` are optional; without a model every
    analysis step takes its fallback.
    """

    store: BaseRecordStore
    rate_counter: BaseRateCounter
    model: BaseLanguageModel | None = None
    intent_cache: BaseIntentCache | None = None


class RouterManager:
    """Owns the :class:`QueryRouter` for the application lifetime.

    Initialised once at application startup and stored on ``app.state``.
    """

    def __init__(
        self,
        config: RouterConfig,
        http_pool: HttpClientPool,
        providers: RouterProviders | None = None,
    ) -> None:
        self.config = config
        self.providers = providers or self._init_providers(config, http_pool)
        self.router = QueryRouter(
            self.providers.store,
            self.providers.model,
            config=config,
            rate_counter=self.providers.rate_counter,
            intent_cache=self.providers.intent_cache,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def describe(self) -> dict[str, str | None]:
        """Backend names for the health endpoint."""
        capability = self.config.capability_config
        return {
            "store": self.config.store_config.provider,
            "model": capability.provider if capability and self.providers.model else None,
            "rateLimit": self.config.rate_limit_config.backend,
            "cache": (
                self.config.cache_config.backend if self.providers.intent_cache else None
            ),
        }

    async def close(self) -> None:
        """Release backend connections.  Call during app shutdown."""
        await self.providers.store.close()
        await self.providers.rate_counter.close()
        if self.providers.intent_cache:
            await self.providers.intent_cache.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _init_providers(config: RouterConfig, http_pool: HttpClientPool) -> RouterProviders:
        # Import concrete providers so @register_provider decorators fire
        load_builtin_providers()

        store = ProviderFactory.create(
            "store",
            config.store_config.provider,
            config.store_config,
            config,
            http_pool,
        )
        model = None
        if config.capability_config:
            model = ProviderFactory.create(
                "model",
                config.capability_config.provider,
                config.capability_config,
                config,
                http_pool,
            )
        else:
            logger.warning("No modelCapability configured; analysis paths will fall back")

        return RouterProviders(
            store=store,
            model=model,
            rate_counter=build_rate_counter(config.rate_limit_config),
            intent_cache=build_intent_cache(config.cache_config),
        )


def build_rate_counter(config: RateLimitConfig) -> BaseRateCounter:
    match config.backend:
        case "redis":
            from query_router.memory.redis_rate_counter import RedisRateCounter

            return RedisRateCounter(config.redis_url, key_prefix=config.key_prefix)
        case _:
            return InMemoryRateCounter()


def build_intent_cache(config: CacheConfig) -> BaseIntentCache | None:
    if not config.enabled:
        return None
    match config.backend:
        case "redis":
            from query_router.memory.redis_intent_cache import RedisIntentCache

            return RedisIntentCache(
                config.redis_url, key_prefix=config.key_prefix, ttl=config.ttl_seconds
            )
        case _:
            return InMemoryIntentCache(max_entries=config.max_entries)

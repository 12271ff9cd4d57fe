"""Provider factory with decorator-based registry.

New capability implementations are registered with
``@register_provider("component", "provider_name")`` and automatically
discovered when the factory creates instances.

Example::

    @register_provider("store", "http")
    class HttpRecordStore(BaseRecordStore):
        ...

    store = ProviderFactory.create("store", "http", store_config, router_config, pool)
"""

from __future__ import annotations

import importlib
from typing import Any

from pydantic import BaseModel

from query_router.core.http_client_pool import HttpClientPool

# Global registry: (component, provider) → implementation class
_REGISTRY: dict[tuple[str, str], type] = {}

# Modules whose import registers the built-in providers
_BUILTIN_MODULES = (
    "query_router.providers.store.memory_store",
    "query_router.providers.store.http_store",
    "query_router.providers.model.pydantic_ai_model",
)


def register_provider(component: str, provider: str):
    """Class decorator that registers a provider implementation.

    Args:
        component: Component type, e.g. ``"store"``, ``"model"``.
        provider: Provider name, e.g.  ``"memory"``, ``"http"``.
    """

    def wrapper(cls: type) -> type:
        _REGISTRY[(component, provider)] = cls
        return cls

    return wrapper


def load_builtin_providers() -> None:
    """Import concrete providers so their ``@register_provider`` decorators fire."""
    for module in _BUILTIN_MODULES:
        importlib.import_module(module)


class ProviderFactory:
    """Creates provider instances from config using the registry."""

    @staticmethod
    def create(
        component: str,
        provider: str,
        config: BaseModel,
        router_config: BaseModel | None,
        http_pool: HttpClientPool,
    ) -> Any:
        """Instantiate a registered provider.

        Raises:
            ValueError: If no implementation is registered for the
                *(component, provider)* combination.
        """
        key = (component, provider)
        if key not in _REGISTRY:
            available = [k[1] for k in _REGISTRY if k[0] == component]
            raise ValueError(
                f"No provider registered for ({component}, {provider}). Available {component} providers: {available}"
            )
        cls = _REGISTRY[key]
        return cls(config=config, router_config=router_config, http_pool=http_pool)

    @staticmethod
    def available(component: str | None = None) -> list[tuple[str, str]]:
        """List registered (component, provider) pairs."""
        if component:
            return [k for k in _REGISTRY if k[0] == component]
        return list(_REGISTRY)

"""Named pydantic-ai models for the language-model capability.

``llmConfig.models`` maps purpose names (``"fast"``, ``"pro"``) to a
provider and model id.  Each entry is turned into a pydantic-ai
:class:`Model` plus its :class:`ModelSettings` once, at startup; agents are
created on demand by the capability provider.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, NamedTuple, cast

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from query_router.config.models import LLMConfig, ModelConfig
from query_router.core.http_client_pool import HttpClientPool


class NamedModel(NamedTuple):
    model: Model
    settings: ModelSettings


ModelBuilder = Callable[[ModelConfig, dict[str, Any], HttpClientPool], NamedModel]


def _sampling(cfg: ModelConfig) -> dict[str, Any]:
    values: dict[str, Any] = {"max_tokens": cfg.max_tokens}
    if cfg.temperature is not None:
        values["temperature"] = cfg.temperature
    if cfg.top_p is not None:
        values["top_p"] = cfg.top_p
    return values


def _cloud(cloud_configs: dict[str, Any], key: str) -> Any:
    found = cloud_configs.get(key)
    if found is None:
        raise ValueError(f"Model provider '{key}' requires {key}Config")
    return found


def _azure(cfg: ModelConfig, cloud_configs: dict[str, Any], pool: HttpClientPool) -> NamedModel:
    from pydantic_ai.models.openai import OpenAIChatModel, OpenAIChatModelSettings
    from pydantic_ai.providers.azure import AzureProvider

    azure = _cloud(cloud_configs, "azure")
    provider = AzureProvider(
        azure_endpoint=azure.openai_endpoint,
        api_key=azure.api_key,
        api_version=azure.api_version,
        http_client=pool.get("azure", proxy_url=azure.proxy_url),
    )
    settings = OpenAIChatModelSettings(**_sampling(cfg))
    if cfg.thinking_effort:
        from openai.types import ReasoningEffort

        settings["openai_reasoning_effort"] = cast(
            ReasoningEffort, cfg.thinking_effort.lower()
        )
    return NamedModel(OpenAIChatModel(cfg.model_name, provider=provider), settings)


def _gcp(cfg: ModelConfig, cloud_configs: dict[str, Any], pool: HttpClientPool) -> NamedModel:
    from pydantic_ai.models.google import GoogleModel, GoogleModelSettings
    from pydantic_ai.providers.google import GoogleProvider

    gcp = _cloud(cloud_configs, "gcp")
    provider = GoogleProvider(project=gcp.project_id, http_client=pool.get("gcp"))
    settings = GoogleModelSettings(**_sampling(cfg))
    thinking = {
        key: value
        for key, value in (
            ("thinking_level", cfg.thinking_level and cfg.thinking_level.upper()),
            ("thinking_budget", cfg.thinking_budget),
        )
        if value
    }
    if thinking:
        from google.genai.types import ThinkingConfigDict

        settings["google_thinking_config"] = ThinkingConfigDict(**thinking)
    return NamedModel(GoogleModel(cfg.model_name, provider=provider), settings)


def _offline(cfg: ModelConfig, cloud_configs: dict[str, Any], pool: HttpClientPool) -> NamedModel:
    from pydantic_ai.models.test import TestModel

    return NamedModel(TestModel(), ModelSettings(**_sampling(cfg)))


BUILDERS: dict[str, ModelBuilder] = {"azure": _azure, "gcp": _gcp, "test": _offline}


class ModelRegistry:
    """Purpose name -> pydantic-ai model, built from ``llmConfig``.

    Usage::

        registry = ModelRegistry(config.llm_config, config.cloud_configs(), pool)
        agent = registry.create_agent("pro", output_type=str, instructions="...")
    """

    def __init__(
        self,
        llm_config: LLMConfig,
        cloud_configs: dict[str, Any],
        http_pool: HttpClientPool,
    ) -> None:
        self._models: dict[str, NamedModel] = {}
        for name, cfg in llm_config.models.items():
            builder = BUILDERS.get(cfg.provider)
            if builder is None:
                raise ValueError(
                    f"Unknown LLM provider '{cfg.provider}' for model '{name}'. "
                    f"Supported: {', '.join(BUILDERS)}"
                )
            self._models[name] = builder(cfg, cloud_configs, http_pool)

    @property
    def names(self) -> list[str]:
        return sorted(self._models)

    def resolve(self, name: str) -> NamedModel:
        """Return the model registered under *name*; ``KeyError`` otherwise."""
        try:
            return self._models[name]
        except KeyError:
            raise KeyError(
                f"Model '{name}' not found. Available: [{', '.join(self.names)}]"
            ) from None

    def create_agent(self, model_name: str, **agent_kwargs: Any) -> Agent:
        """Build an Agent on a named model; *agent_kwargs* go to the constructor."""
        named = self.resolve(model_name)
        return Agent(named.model, model_settings=named.settings, **agent_kwargs)

"""Unit tests for the provider registry and the pydantic-ai language model."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from pydantic_ai.exceptions import (
    AgentRunError,
    ModelAPIError,
    ModelHTTPError,
    UnexpectedModelBehavior,
)

from query_router.config.models import (
    LLMConfig,
    ModelCapabilityConfig,
    ModelConfig,
    RouterConfig,
    StoreConfig,
)
from query_router.core.http_client_pool import HttpClientPool
from query_router.core.model_registry import ModelRegistry
from query_router.models.domain import CandidateFilters, ThinkingMode
from query_router.providers.factory import ProviderFactory, load_builtin_providers
from query_router.providers.model.pydantic_ai_model import PydanticAILanguageModel
from query_router.providers.store.memory_store import InMemoryRecordStore
from query_router.services.exceptions import (
    MalformedResponseError,
    ModelQuotaExceededError,
    ModelUnavailableError,
)

CAPABILITY = ModelCapabilityConfig(low_model="fast", high_model="pro", extraction_model="fast")


@pytest.fixture
def agent():
    agent = MagicMock()
    agent.run = AsyncMock(return_value=MagicMock(output="Two findings share a cause [F-101]."))
    return agent


@pytest.fixture
def language_model(agent):
    registry = MagicMock(spec=ModelRegistry)
    registry.create_agent.return_value = agent
    return PydanticAILanguageModel(CAPABILITY, None, HttpClientPool(), registry=registry)


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------


def test_builtin_providers_are_registered():
    load_builtin_providers()

    assert ("store", "memory") in ProviderFactory.available("store")
    assert ("store", "http") in ProviderFactory.available("store")
    assert ("model", "pydantic_ai") in ProviderFactory.available()


def test_factory_creates_registered_provider():
    load_builtin_providers()

    store = ProviderFactory.create("store", "memory", StoreConfig(), None, HttpClientPool())

    assert isinstance(store, InMemoryRecordStore)
    assert len(store) == 0


def test_factory_rejects_unknown_provider():
    load_builtin_providers()

    with pytest.raises(ValueError, match="Available store providers"):
        ProviderFactory.create("store", "oracle", StoreConfig(), None, HttpClientPool())


# ------------------------------------------------------------------
# PydanticAILanguageModel
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_generate_uses_model_for_mode(language_model, agent):
    answer = await language_model.generate("prompt", ThinkingMode.HIGH)
    await language_model.generate("prompt again", ThinkingMode.HIGH)

    assert answer == "Two findings share a cause [F-101]."
    language_model.registry.create_agent.assert_called_once()
    assert language_model.registry.create_agent.call_args.args == ("pro",)
    assert agent.run.await_count == 2


@pytest.mark.asyncio
async def test_empty_answer_is_malformed(language_model, agent):
    agent.run.return_value = MagicMock(output="   ")

    with pytest.raises(MalformedResponseError):
        await language_model.generate("prompt")


@pytest.mark.asyncio
async def test_extract_structured_returns_fields(language_model, agent):
    agent.run.return_value = MagicMock(
        output=CandidateFilters(year=2024, category="Hotel")
    )

    fields = await language_model.extract_structured("hotel 2024", CandidateFilters)

    assert fields["year"] == 2024
    assert fields["category"] == "Hotel"
    kwargs = language_model.registry.create_agent.call_args.kwargs
    assert kwargs["output_type"] is CandidateFilters


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ModelHTTPError(status_code=429, model_name="fast"), ModelQuotaExceededError),
        (ModelHTTPError(status_code=503, model_name="fast"), ModelUnavailableError),
        (UnexpectedModelBehavior("not json"), MalformedResponseError),
        (httpx.ConnectError("connection refused"), ModelUnavailableError),
        (ModelAPIError("fast", "Connection error."), ModelUnavailableError),
        (AgentRunError("tool retries exhausted"), MalformedResponseError),
    ],
)
@pytest.mark.asyncio
async def test_errors_are_mapped(language_model, agent, error, expected):
    agent.run.side_effect = error

    with pytest.raises(expected):
        await language_model.generate("prompt")


@pytest.mark.asyncio
async def test_registry_backed_test_model():
    config = RouterConfig(
        llm_config=LLMConfig(models={"fast": ModelConfig(provider="test")}),
        modelCapability=ModelCapabilityConfig(
            low_model="fast", high_model="fast", extraction_model="fast"
        ),
    )
    model = PydanticAILanguageModel(config.capability_config, config, HttpClientPool())

    answer = await model.generate("Summarize [F-101]")
    fields = await model.extract_structured("hotel findings", CandidateFilters)

    assert answer.strip()
    assert isinstance(fields, dict)


def test_registry_rejects_unknown_model():
    registry = ModelRegistry(
        LLMConfig(models={"fast": ModelConfig(provider="test")}), {}, HttpClientPool()
    )

    assert registry.names == ["fast"]
    with pytest.raises(KeyError, match="Available"):
        registry.resolve("pro")


def test_registry_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Unknown LLM provider"):
        ModelRegistry(
            LLMConfig(models={"fast": ModelConfig(provider="openrouter")}),
            {},
            HttpClientPool(),
        )

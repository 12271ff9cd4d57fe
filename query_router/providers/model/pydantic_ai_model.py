"""Language-model capability backed by pydantic-ai agents.

``generate`` runs an analysis agent on the low or high named model;
``extract_structured`` runs an agent whose ``output_type`` is the requested
schema.  pydantic-ai and transport exceptions are mapped onto the
capability failure modes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.exceptions import (
    AgentRunError,
    ModelAPIError,
    ModelHTTPError,
    UnexpectedModelBehavior,
    UsageLimitExceeded,
)

from query_router.config.models import ModelCapabilityConfig, RouterConfig
from query_router.core.http_client_pool import HttpClientPool
from query_router.core.model_registry import ModelRegistry
from query_router.models.domain import ThinkingMode
from query_router.providers.base import BaseLanguageModel
from query_router.providers.factory import register_provider
from query_router.services.exceptions import (
    MalformedResponseError,
    ModelQuotaExceededError,
    ModelUnavailableError,
)

if TYPE_CHECKING:
    from pydantic_ai.agent import AgentRunResult

logger = logging.getLogger(__name__)

ANALYSIS_INSTRUCTIONS = (
    "You are an analyst answering questions about audit records. "
    "Base every statement on the records supplied in the prompt and cite "
    "them by their bracketed id, e.g. [F-102]. If the records do not contain "
    "the answer, say so plainly."
)

EXTRACTION_INSTRUCTIONS = (
    "You convert questions into search filters. Fill only the fields the "
    "question supports and leave the rest empty."
)


@register_provider("model", "pydantic_ai")
class PydanticAILanguageModel(BaseLanguageModel):
    """Language model built on the :class:`ModelRegistry`."""

    def __init__(
        self,
        config: ModelCapabilityConfig,
        router_config: RouterConfig,
        http_pool: HttpClientPool,
        *,
        registry: ModelRegistry | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or ModelRegistry(
            router_config.llm_config, router_config.cloud_configs(), http_pool
        )
        # Agents are stateless, safe to reuse across requests.
        self._agent_cache: dict[tuple[str, str], Agent] = {}

    def model_for(self, mode: ThinkingMode) -> str:
        return self.config.high_model if mode is ThinkingMode.HIGH else self.config.low_model

    def _get_agent(
        self, purpose: str, model_name: str, output_type: Any, instructions: str
    ) -> Agent:
        key = (purpose, model_name)
        if key not in self._agent_cache:
            self._agent_cache[key] = self.registry.create_agent(
                model_name,
                output_type=output_type,
                instructions=instructions,
            )
        return self._agent_cache[key]

    async def generate(self, prompt: str, mode: ThinkingMode = ThinkingMode.LOW) -> str:
        model_name = self.model_for(mode)
        agent = self._get_agent("analysis", model_name, str, ANALYSIS_INSTRUCTIONS)
        result = await self._run(agent, prompt)
        output = result.output
        if not isinstance(output, str) or not output.strip():
            raise MalformedResponseError(f"empty answer from model '{model_name}'")
        return output

    async def extract_structured(
        self, text: str, schema: type[BaseModel]
    ) -> dict[str, Any]:
        agent = self._get_agent(
            f"extract:{schema.__name__}",
            self.config.extraction_model,
            schema,
            EXTRACTION_INSTRUCTIONS,
        )
        result = await self._run(agent, text)
        if not isinstance(result.output, BaseModel):
            raise MalformedResponseError(
                f"expected {schema.__name__}, got {type(result.output).__name__}"
            )
        return result.output.model_dump(exclude_none=True)

    @staticmethod
    async def _run(agent: Agent, prompt: str) -> AgentRunResult:
        try:
            return await agent.run(prompt)
        except ModelHTTPError as e:
            if e.status_code == 429:
                raise ModelQuotaExceededError(str(e)) from e
            raise ModelUnavailableError(f"HTTP {e.status_code}: {e}") from e
        except UsageLimitExceeded as e:
            raise ModelQuotaExceededError(str(e)) from e
        except UnexpectedModelBehavior as e:
            raise MalformedResponseError(str(e)) from e
        except ModelAPIError as e:
            # Connection-level failures that never produced an HTTP status
            logger.warning(f"Model API failure: {e}")
            raise ModelUnavailableError(str(e)) from e
        except AgentRunError as e:
            raise MalformedResponseError(str(e)) from e
        except (httpx.TransportError, OSError) as e:
            logger.warning(f"Model transport failure: {e}")
            raise ModelUnavailableError(str(e)) from e

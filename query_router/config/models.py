"""Pydantic models for config.json router configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# LLM Config
# ---------------------------------------------------------------------------


class ModelConfig(BaseModel):
    """Configuration for a single LLM model."""

    provider: str  # "azure", "gcp", "test"
    model_name: str = Field("test", alias="modelName")
    temperature: float | None = None
    top_p: float | None = Field(None, alias="topP")
    max_tokens: int = Field(8000, alias="maxTokens")
    # GCP (Gemini): thinkingLevel maps to google_thinking_config.thinking_level
    thinking_level: str | None = Field(None, alias="thinkingLevel")
    # GCP (Gemini): thinkingBudget maps to google_thinking_config.thinking_budget
    thinking_budget: int | None = Field(None, alias="thinkingBudget")
    # Azure/OpenAI: thinkingEffort maps to openai_reasoning_effort
    thinking_effort: str | None = Field(None, alias="thinkingEffort")

    model_config = {"populate_by_name": True}


class LLMConfig(BaseModel):
    """Named map of model configurations.

    Keys are purpose names like "fast", "pro".
    """

    models: dict[str, ModelConfig] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class ModelCapabilityConfig(BaseModel):
    """Which named models back the language-model capability.

    ``lowModel`` serves ``thinking_mode=low`` analysis, ``highModel`` serves
    ``high``; ``extractionModel`` runs structured filter extraction.
    """

    provider: str = "pydantic_ai"
    low_model: str = Field("fast", alias="lowModel")
    high_model: str = Field("pro", alias="highModel")
    extraction_model: str = Field("fast", alias="extractionModel")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Store Config
# ---------------------------------------------------------------------------


class StoreConfig(BaseModel):
    """Structured record store configuration."""

    provider: str = "memory"  # "memory", "http"
    # memory: JSON file holding a list of records
    path: str | None = None
    # http: REST record service
    base_url: str | None = Field(None, alias="baseUrl")
    api_key: str | None = Field(None, alias="apiKey")
    timeout: float = 30.0

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Routing / Engine Config
# ---------------------------------------------------------------------------


class RetryConfig(BaseModel):
    """Backoff for transient capability failures."""

    max_attempts: int = Field(3, alias="maxAttempts", ge=1)
    min_wait: float = Field(1.0, alias="minWait")
    max_wait: float = Field(10.0, alias="maxWait")

    model_config = {"populate_by_name": True}


class RoutingConfig(BaseModel):
    """Router state-machine tunables."""

    confidence_floor: float = Field(0.6, alias="confidenceFloor")
    store_timeout_seconds: float = Field(10.0, alias="storeTimeoutSeconds")
    model_timeout_seconds: float = Field(60.0, alias="modelTimeoutSeconds")
    extraction_timeout_seconds: float = Field(8.0, alias="extractionTimeoutSeconds")
    max_data_results: int = Field(500, alias="maxDataResults")
    candidate_pool_size: int = Field(200, alias="candidatePoolSize")
    model_assisted_extraction: bool = Field(True, alias="modelAssistedExtraction")
    retry: RetryConfig = Field(default_factory=RetryConfig)

    model_config = {"populate_by_name": True}


class ClassifierConfig(BaseModel):
    """Decision thresholds for the heuristic classifier."""

    hybrid_threshold: float = Field(0.3, alias="hybridThreshold")
    hybrid_ratio: float = Field(0.5, alias="hybridRatio")
    dual_threshold: float = Field(0.2, alias="dualThreshold")

    model_config = {"populate_by_name": True}


class RelevanceWeights(BaseModel):
    """Additive relevance signals used for context selection."""

    year: float = 20
    category: float = 20
    severity: float = 15
    status: float = 15
    department: float = 10
    keywords: float = 20

    model_config = {"populate_by_name": True}


class ContextConfig(BaseModel):
    """Context-window budget for model reasoning."""

    max_records: int = Field(20, alias="maxRecords", ge=1)
    max_tokens: int = Field(10000, alias="maxTokens")
    weights: RelevanceWeights = Field(default_factory=RelevanceWeights)

    model_config = {"populate_by_name": True}


class ResponseConfig(BaseModel):
    page_size: int = Field(50, alias="pageSize", ge=1)

    model_config = {"populate_by_name": True}


class MaskingConfig(BaseModel):
    """Placeholder substitution of personal data in model-bound text."""

    enabled: bool = True
    # Titles after which a capitalised name is treated as a person
    roles: list[str] = Field(
        default_factory=lambda: ["auditor", "inspector", "manager", "director", "engineer"]
    )

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Key-value backends
# ---------------------------------------------------------------------------


class RateLimitConfig(BaseModel):
    """Per-user daily ceiling on model-backed invocations."""

    daily_model_calls: int = Field(50, alias="dailyModelCalls", ge=0)
    backend: Literal["memory", "redis"] = "memory"
    redis_url: str = Field("redis://localhost:6379/0", alias="redisUrl")
    key_prefix: str = Field("qr:rate:", alias="keyPrefix")

    model_config = {"populate_by_name": True}


class CacheConfig(BaseModel):
    """Intent cache keyed by (user, normalised query hash)."""

    enabled: bool = True
    backend: Literal["memory", "redis"] = "memory"
    redis_url: str = Field("redis://localhost:6379/0", alias="redisUrl")
    key_prefix: str = Field("qr:intent:", alias="keyPrefix")
    ttl_seconds: int = Field(3600, alias="ttlSeconds")
    max_entries: int = Field(10000, alias="maxEntries")

    model_config = {"populate_by_name": True}


class TelemetryConfig(BaseModel):
    service_name: str = Field("query-router-api", alias="serviceName")
    exporter: Literal["console", "cloud", "none"] = "none"

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Cloud Provider Configs
# ---------------------------------------------------------------------------


class AzureConfig(BaseModel):
    """Azure cloud configuration."""

    openai_endpoint: str = Field(alias="openAIEndpoint")
    api_key: str = Field(alias="apiKey")
    api_version: str | None = Field(None, alias="apiVersion")
    proxy_url: str | None = Field(None, alias="proxyUrl")

    model_config = {"populate_by_name": True}


class GCPConfig(BaseModel):
    """GCP cloud configuration."""

    project_id: str = Field(alias="projectId")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Router Config (top-level)
# ---------------------------------------------------------------------------


class RouterConfig(BaseModel):
    """Complete configuration for one router deployment."""

    llm_config: LLMConfig = Field(default_factory=LLMConfig, alias="llmConfig")
    capability_config: ModelCapabilityConfig | None = Field(
        None, alias="modelCapability"
    )
    store_config: StoreConfig = Field(default_factory=StoreConfig, alias="storeConfig")
    routing_config: RoutingConfig = Field(
        default_factory=RoutingConfig, alias="routingConfig"
    )
    classifier_config: ClassifierConfig = Field(
        default_factory=ClassifierConfig, alias="classifierConfig"
    )
    context_config: ContextConfig = Field(
        default_factory=ContextConfig, alias="contextConfig"
    )
    response_config: ResponseConfig = Field(
        default_factory=ResponseConfig, alias="responseConfig"
    )
    masking_config: MaskingConfig = Field(
        default_factory=MaskingConfig, alias="maskingConfig"
    )
    rate_limit_config: RateLimitConfig = Field(
        default_factory=RateLimitConfig, alias="rateLimitConfig"
    )
    cache_config: CacheConfig = Field(default_factory=CacheConfig, alias="cacheConfig")
    telemetry_config: TelemetryConfig = Field(
        default_factory=TelemetryConfig, alias="telemetryConfig"
    )

    # Cloud configs (top-level)
    azure_config: AzureConfig | None = Field(None, alias="azureConfig")
    gcp_config: GCPConfig | None = Field(None, alias="gcpConfig")

    model_config = {"populate_by_name": True}

    def cloud_configs(self) -> dict[str, BaseModel]:
        """Cloud configs keyed by provider name, for the model registry."""
        configs: dict[str, BaseModel] = {}
        if self.azure_config:
            configs["azure"] = self.azure_config
        if self.gcp_config:
            configs["gcp"] = self.gcp_config
        return configs

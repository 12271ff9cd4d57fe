"""Request and response schemas for the API layer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from query_router.models.domain import RouteOptions, ThinkingMode


class QueryRequest(BaseModel):
    """Incoming query request body."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1, description="The user's question")
    thinking_mode: ThinkingMode = Field(
        ThinkingMode.LOW,
        alias="thinkingMode",
        description="Reasoning depth for model-backed answers",
    )
    page: int = Field(1, ge=1, description="Page of data results to return")
    max_results: int | None = Field(
        None, alias="maxResults", ge=1, description="Cap on records fetched"
    )
    session_id: str | None = Field(None, alias="sessionId")

    def to_options(self, user_id: str | None) -> RouteOptions:
        return RouteOptions(
            user_id=user_id,
            session_id=self.session_id,
            thinking_mode=self.thinking_mode,
            page=self.page,
            max_results=self.max_results,
        )


class ClassifyRequest(BaseModel):
    query: str = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    """Body returned for router errors."""

    code: str
    message: str
    suggestion: str


class HealthResponse(BaseModel):
    """Health-check response."""

    status: str = "ok"
    backends: dict[str, str | None] = Field(default_factory=dict)

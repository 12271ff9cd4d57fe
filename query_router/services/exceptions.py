"""Application-specific exceptions.

Two layers:

- *Capability errors* are raised by store and model providers and describe
  what went wrong with an external call.
- *Router errors* are the only errors that cross the router boundary.  Each
  carries a stable ``code`` and a user-facing ``suggestion``.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Capability errors (raised by providers)
# ---------------------------------------------------------------------------


class CapabilityError(Exception):
    """Base for failures of an external capability call."""


class StoreUnavailableError(CapabilityError):
    """The structured store could not be reached or returned a server error."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Record store unavailable: {detail}")


class StoreTimeoutError(CapabilityError):
    """The structured store did not answer within the deadline."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Record store timed out after {timeout:.1f}s")


class ModelUnavailableError(CapabilityError):
    """The language model could not be reached or failed server-side."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Language model unavailable: {detail}")


class ModelQuotaExceededError(CapabilityError):
    """The language model provider rejected the call for quota reasons."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Language model quota exceeded: {detail}")


class MalformedResponseError(CapabilityError):
    """The language model answered with output that could not be used."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Malformed model response: {detail}")


# ---------------------------------------------------------------------------
# Router errors (cross the public interface)
# ---------------------------------------------------------------------------


class QueryRouterError(Exception):
    """Base for errors surfaced by the query router."""

    code = "ROUTER_ERROR"
    suggestion = "Please try again."

    def __init__(self, message: str, *, suggestion: str | None = None) -> None:
        self.message = message
        if suggestion is not None:
            self.suggestion = suggestion
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message, "suggestion": self.suggestion}


class ClassificationError(QueryRouterError):
    """Scoring the query raised."""

    code = "CLASSIFICATION"
    suggestion = "Unable to process query. Please try rephrasing your question."


class StoreError(QueryRouterError):
    """The structured query failed."""

    code = "DATABASE"
    suggestion = "Unable to search records. Please try again in a moment."


class ModelError(QueryRouterError):
    """The model invocation failed."""

    code = "AI"
    suggestion = "AI analysis unavailable. Showing database results only."


class QuotaExceededError(QueryRouterError):
    """The per-user daily ceiling on model calls was reached."""

    code = "RATE_LIMIT"
    suggestion = (
        "AI query limit exceeded. Please try using simpler search queries "
        "or try again later."
    )

    def __init__(self, user_id: str, limit: int) -> None:
        self.user_id = user_id
        self.limit = limit
        super().__init__(f"Daily limit of {limit} AI queries reached for user {user_id}")


class ValidationError(QueryRouterError):
    """Extracted filter values failed catalog checks."""

    code = "VALIDATION"
    suggestion = "Invalid query parameters. Please check your search criteria."

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors) or "Invalid filters")

"""Abstract base classes for the external capabilities the router consumes.

Concrete implementations are registered with the provider factory and
injected into :class:`QueryRouter` at construction time, so tests can
substitute fakes without touching orchestration logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from query_router.models.domain import ExtractedFilters, Record, SortSpec, ThinkingMode


class BaseRecordStore(ABC):
    """Structured store holding the records the router searches.

    Implementations raise :class:`StoreUnavailableError` or
    :class:`StoreTimeoutError` on failure.
    """

    @abstractmethod
    async def query(
        self,
        filters: ExtractedFilters,
        sort: SortSpec | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """Return records matching every populated filter field."""
        ...

    @abstractmethod
    async def get_by_id(self, record_id: str) -> Record | None:
        """Fetch a single record, or ``None`` if it does not exist."""
        ...

    async def close(self) -> None:
        """Release backend resources."""


class BaseLanguageModel(ABC):
    """Text-generation and structured-extraction capability.

    Implementations raise :class:`ModelUnavailableError`,
    :class:`ModelQuotaExceededError` or :class:`MalformedResponseError`.
    """

    @abstractmethod
    async def generate(self, prompt: str, mode: ThinkingMode = ThinkingMode.LOW) -> str:
        """Generate a free-text answer for *prompt*."""
        ...

    @abstractmethod
    async def extract_structured(
        self, text: str, schema: type[BaseModel]
    ) -> dict[str, Any]:
        """Extract the fields of *schema* from *text*."""
        ...

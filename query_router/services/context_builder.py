"""Context selection and serialization for model reasoning.

Selection ranks candidate records with additive, capped relevance signals
and keeps the top ``max_count``.  Serialization appends one record block at a
time and stops before the token budget would be exceeded, leaving an explicit
truncation marker that states how many records were left out.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from query_router.config.models import ContextConfig, RelevanceWeights
from query_router.models.domain import ExtractedFilters, Record

CONTEXT_HEADER = "Relevant Records:\n\n"
EMPTY_CONTEXT = "No records available for analysis."
TRUNCATION_MARKER = (
    "[Context truncated: {count} additional records omitted due to token limit]"
)
# Smallest budget that always fits the empty-context text or a marker
MIN_CONTEXT_TOKENS = 24


def estimate_tokens(text: str) -> int:
    """Approximate token count: ~4 characters per token."""
    return math.ceil(len(text) / 4)


@dataclass(frozen=True)
class ScoredCandidate:
    record: Record
    relevance_score: float


@dataclass(frozen=True)
class ContextWindow:
    """Serialized context plus the records it does and does not contain."""

    text: str
    included: list[Record] = field(default_factory=list)
    omitted: list[Record] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return bool(self.omitted)


class ContextBuilder:
    """Builds the bounded context window handed to the language model."""

    def __init__(self, config: ContextConfig | None = None) -> None:
        self.config = config or ContextConfig()

    @property
    def weights(self) -> RelevanceWeights:
        return self.config.weights

    # ------------------------------------------------------------------
    # Scoring & selection
    # ------------------------------------------------------------------

    def score(self, record: Record, filters: ExtractedFilters) -> float:
        """Additive relevance of *record* to *filters*.

        Each signal is independent and capped at its weight, so the maximum
        is the sum of the weights.
        """
        w = self.weights
        score = 0.0
        if filters.year is not None and record.year == filters.year:
            score += w.year
        if filters.category is not None and record.category == filters.category:
            score += w.category
        if filters.severity_levels and record.severity in filters.severity_levels:
            score += w.severity
        if filters.status_levels and record.status in filters.status_levels:
            score += w.status
        if (
            filters.department
            and record.department
            and filters.department.lower() in record.department.lower()
        ):
            score += w.department
        if filters.keywords:
            text = record.searchable_text()
            matched = sum(1 for keyword in filters.keywords if keyword.lower() in text)
            score += min(w.keywords, matched / len(filters.keywords) * w.keywords)
        return score

    def rank(
        self, candidates: Sequence[Record], filters: ExtractedFilters
    ) -> list[ScoredCandidate]:
        """Score and order all candidates, highest first.

        ``sorted`` is stable, so equal scores keep retrieval order.
        """
        scored = [ScoredCandidate(c, self.score(c, filters)) for c in candidates]
        return sorted(scored, key=lambda s: s.relevance_score, reverse=True)

    def select(
        self,
        candidates: Sequence[Record],
        filters: ExtractedFilters,
        max_count: int | None = None,
    ) -> list[Record]:
        """Keep the ``max_count`` most relevant candidates."""
        limit = self.config.max_records if max_count is None else max_count
        if limit < 0:
            raise ValueError(f"max_count must be >= 0, got {limit}")
        return [s.record for s in self.rank(candidates, filters)[:limit]]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self, records: Sequence[Record], max_tokens: int | None = None) -> str:
        return self.build(records, max_tokens).text

    def build(
        self, records: Sequence[Record], max_tokens: int | None = None
    ) -> ContextWindow:
        """Serialize *records* within ``max_tokens``.

        The estimate of the returned text, marker included, never exceeds
        the budget.

        Raises:
            ValueError: If *max_tokens* is below :data:`MIN_CONTEXT_TOKENS`.
        """
        budget = self.config.max_tokens if max_tokens is None else max_tokens
        if budget < MIN_CONTEXT_TOKENS:
            raise ValueError(
                f"max_tokens must be at least {MIN_CONTEXT_TOKENS}, got {budget}"
            )
        if not records:
            return ContextWindow(text=EMPTY_CONTEXT)

        total = len(records)
        parts: list[str] = []
        length = 0
        included: list[Record] = []

        if estimate_tokens(CONTEXT_HEADER + _marker(total)) <= budget:
            parts.append(CONTEXT_HEADER)
            length = len(CONTEXT_HEADER)

        for index, record in enumerate(records):
            block = format_record(index + 1, record)
            remaining_after = total - index - 1
            # Reserve room for the marker needed if a later block does not fit
            reserve = len(_marker(remaining_after)) if remaining_after else 0
            if math.ceil((length + len(block) + reserve) / 4) > budget:
                break
            parts.append(block)
            length += len(block)
            included.append(record)

        omitted = list(records[len(included):])
        if omitted:
            parts.append(_marker(len(omitted)))

        return ContextWindow(text="".join(parts), included=included, omitted=omitted)


def _marker(count: int) -> str:
    return TRUNCATION_MARKER.format(count=count)


def format_record(position: int, record: Record) -> str:
    """Render one record block.  Empty fields are left out."""
    project = " - ".join(
        part for part in (record.category, record.project_name) if part
    )
    fields = [
        ("Title", record.title),
        ("Severity", record.severity),
        ("Status", record.status),
        ("Project", project),
        ("Department", record.department),
        ("Year", record.year),
        ("Date", record.identified_on.isoformat() if record.identified_on else None),
        ("Description", record.description),
        ("Root Cause", record.root_cause),
        ("Impact", record.impact),
        ("Recommendation", record.recommendation),
        ("Tags", ", ".join(record.tags)),
    ]
    lines = [f"Record {position} [{record.id}]:"]
    lines.extend(f"{label}: {value}" for label, value in fields if value not in (None, ""))
    return "\n".join(lines) + "\n\n"

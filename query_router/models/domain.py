"""Domain models shared across the application."""

from __future__ import annotations

from datetime import date
from enum import StrEnum

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from query_router.core.catalog import (
    YEAR_MAX,
    YEAR_MIN,
    Category,
    Severity,
    Status,
)

CONFIDENCE_FLOOR = 0.6


class QueryKind(StrEnum):
    """Execution path for a query."""

    SIMPLE = "simple"
    COMPLEX = "complex"
    HYBRID = "hybrid"


class ThinkingMode(StrEnum):
    """Reasoning depth requested from the language model."""

    LOW = "low"
    HIGH = "high"


class ExtractionStrategy(StrEnum):
    PATTERN = "pattern"
    MODEL = "model"
    HYBRID = "hybrid"


_CAMEL = ConfigDict(populate_by_name=True, alias_generator=to_camel)
_FROZEN = ConfigDict(
    populate_by_name=True, alias_generator=to_camel, frozen=True, extra="forbid"
)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class DateRange(BaseModel):
    """Inclusive date window; either bound may be open."""

    model_config = _FROZEN

    start: date | None = None
    end: date | None = None

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        if self.start and self.end and self.start > self.end:
            raise ValueError(f"date range start {self.start} is after end {self.end}")
        return self

    def contains(self, day: date | None) -> bool:
        if day is None:
            return False
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


class ExtractedFilters(BaseModel):
    """Sparse, validated filter set derived from a query.

    Every populated field holds a catalog value or an in-range scalar;
    empty collections are normalised to ``None`` so that "not filtered"
    has a single representation.
    """

    model_config = _FROZEN

    year: int | None = Field(None, ge=YEAR_MIN, le=YEAR_MAX)
    category: Category | None = None
    severity_levels: frozenset[Severity] | None = None
    status_levels: frozenset[Status] | None = None
    department: str | None = Field(None, min_length=1)
    keywords: tuple[str, ...] | None = None
    date_range: DateRange | None = None

    @field_validator("severity_levels", "status_levels", "keywords", mode="before")
    @classmethod
    def _empty_to_none(cls, value: object) -> object:
        if value is not None and not value:
            return None
        return value

    @field_serializer("severity_levels", "status_levels")
    def _ordered(self, value: frozenset[StrEnum] | None) -> list[str] | None:
        if value is None:
            return None
        members = list(type(next(iter(value))))
        return [member.value for member in members if member in value]

    def is_empty(self) -> bool:
        return all(
            getattr(self, name) is None for name in type(self).model_fields
        )

    def structural_scope(self) -> ExtractedFilters:
        """Drop the fields that relevance ranking handles (severity, status, keywords)."""
        return self.model_copy(
            update={"severity_levels": None, "status_levels": None, "keywords": None}
        )


class CandidateFilters(BaseModel):
    """Unvalidated filter values as returned by structured extraction.

    Field values are free-form; :meth:`FilterExtractor.validate` checks them
    against the catalog before they become :class:`ExtractedFilters`.
    """

    model_config = ConfigDict(extra="ignore")

    year: int | str | None = Field(None, description="Four-digit year, e.g. 2024")
    category: str | None = Field(None, description="Project category")
    severity_levels: list[str] = Field(default_factory=list)
    status_levels: list[str] = Field(default_factory=list)
    department: str | None = None
    keywords: list[str] = Field(default_factory=list)
    date_start: str | None = Field(None, description="ISO date")
    date_end: str | None = Field(None, description="ISO date")


class FilterValidation(BaseModel):
    """Outcome of validating candidate filters against the catalog."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    sanitized: ExtractedFilters = Field(default_factory=ExtractedFilters)


class ExtractionResult(BaseModel):
    """Merged filters plus the drops and strategy that produced them."""

    filters: ExtractedFilters
    strategy: ExtractionStrategy
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------


class QueryIntent(BaseModel):
    """Classifier output for one query.  Immutable once created."""

    model_config = _FROZEN

    kind: QueryKind
    confidence: float = Field(ge=0.0, le=1.0)
    filters: ExtractedFilters = Field(default_factory=ExtractedFilters)
    requires_model: bool
    trigger_terms: tuple[str, ...] = ()

    def execution_kind(self, floor: float = CONFIDENCE_FLOOR) -> QueryKind:
        """Kind actually executed: low-confidence intents run as ``complex``."""
        if self.confidence < floor:
            return QueryKind.COMPLEX
        return self.kind

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload: str | bytes) -> QueryIntent:
        """Parse an interchange payload.

        Raises:
            pydantic.ValidationError: If the payload is malformed or any
                field fails validation.
        """
        return cls.model_validate_json(payload)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class RecordReference(BaseModel):
    """Pointer back to a record used as model context."""

    model_config = _CAMEL

    id: str
    title: str


class RecordSummary(BaseModel):
    """Compact record view returned in data responses."""

    model_config = _CAMEL

    id: str
    title: str
    severity: Severity
    status: Status
    category: Category | None = None
    department: str | None = None
    year: int | None = None
    identified_on: date | None = None


class Record(BaseModel):
    """A record from the structured store."""

    model_config = _CAMEL

    id: str
    title: str
    severity: Severity
    status: Status
    category: Category | None = None
    project_name: str | None = None
    department: str | None = None
    year: int | None = None
    identified_on: date | None = None
    description: str = ""
    root_cause: str | None = None
    impact: str | None = None
    recommendation: str | None = None
    tags: list[str] = Field(default_factory=list)

    def searchable_text(self) -> str:
        parts = [
            self.title,
            self.description,
            self.root_cause or "",
            self.impact or "",
            self.recommendation or "",
            self.project_name or "",
            " ".join(self.tags),
        ]
        return " ".join(part for part in parts if part).lower()

    def summary(self) -> RecordSummary:
        return RecordSummary(
            id=self.id,
            title=self.title,
            severity=self.severity,
            status=self.status,
            category=self.category,
            department=self.department,
            year=self.year,
            identified_on=self.identified_on,
        )

    def reference(self) -> RecordReference:
        return RecordReference(id=self.id, title=self.title)


class SortSpec(BaseModel):
    """Ordering requested from the structured store."""

    field: str = "year"
    descending: bool = True


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class Pagination(BaseModel):
    model_config = _CAMEL

    paginated: bool
    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_more: bool


class QueryMetadata(BaseModel):
    """Execution envelope attached to every response.

    ``tokens_used`` is set only when the language model was invoked.
    """

    model_config = _CAMEL

    kind: QueryKind
    execution_time_ms: float
    records_analyzed: int
    tokens_used: int | None = Field(None, ge=0)
    confidence: float = Field(ge=0.0, le=1.0)
    filters: ExtractedFilters
    warnings: list[str] | None = None


class DataSection(BaseModel):
    model_config = _CAMEL

    summary: str
    records: list[RecordSummary] = Field(default_factory=list)
    pagination: Pagination | None = None


class AnalysisSection(BaseModel):
    model_config = _CAMEL

    performed: bool
    text: str
    sources: list[RecordReference] = Field(default_factory=list)


class QueryResponse(BaseModel):
    """Response returned by the router.

    Data responses fill ``records``; analysis responses fill ``sources``;
    combined responses keep ``data`` and ``analysis`` as separate sections.
    """

    model_config = _CAMEL

    kind: QueryKind
    answer: str
    records: list[RecordSummary] | None = None
    sources: list[RecordReference] | None = None
    pagination: Pagination | None = None
    data: DataSection | None = None
    analysis: AnalysisSection | None = None
    metadata: QueryMetadata

    def to_payload(self) -> dict:
        """JSON-ready dict with camelCase keys and absent fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Router options
# ---------------------------------------------------------------------------


class RouteOptions(BaseModel):
    """Per-request options accepted by :class:`QueryRouter`."""

    model_config = _CAMEL

    user_id: str | None = None
    session_id: str | None = None
    thinking_mode: ThinkingMode = ThinkingMode.LOW
    page: int = Field(1, ge=1)
    max_results: int | None = Field(None, ge=1)
    force_kind: QueryKind | None = None
    # Pre-fetched candidate pool for the complex path
    candidates: list[Record] | None = None

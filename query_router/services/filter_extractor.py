"""Structured filter extraction from free-text queries.

Two independent strategies:

- **pattern**: deterministic, alias-table driven, no external calls.
- **model-assisted**: a structured-extraction call to the language model
  with a fixed field schema, validated against the catalog afterwards.

:meth:`FilterExtractor.extract` runs both concurrently and merges them with
:func:`merge_filters`.  Any failure of the model path degrades to the
pattern result; extraction as a whole never fails.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import date

import pydantic
from tenacity import AsyncRetrying

from query_router.core.catalog import (
    CATEGORY_ALIASES,
    CATEGORY_PATTERN,
    DEPARTMENT_ACRONYM_PATTERN,
    DEPARTMENT_NAME_PATTERN,
    RELATIVE_YEAR_PATTERN,
    RELATIVE_YEARS,
    SEVERITY_ALIASES,
    SEVERITY_PATTERN,
    STATUS_ALIASES,
    STATUS_PATTERN,
    YEAR_MAX,
    YEAR_MIN,
    YEAR_PATTERN,
    Category,
    Severity,
    Status,
    canonical_department,
    describe_fields,
)
from query_router.core.resilience import call_with_timeout
from query_router.models.domain import (
    CandidateFilters,
    DateRange,
    ExtractedFilters,
    ExtractionResult,
    ExtractionStrategy,
    FilterValidation,
)
from query_router.providers.base import BaseLanguageModel
from query_router.services.exceptions import CapabilityError
from query_router.services.masking import DataMasker

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """\
Extract search filters from the user's question about audit records.
Today's date is {today}. Resolve relative years against it.
Only fill a field when the question states or clearly implies it.

Fields:
{fields}

Question: {query}"""

_EXPLICIT_DEPARTMENT_PATTERNS = (
    re.compile(
        r"\b(?:in|from|at|for|of)\s+(?:the\s+)?"
        r"([A-Za-z&][\w&]*(?:\s+[A-Za-z&][\w&]*)?)\s+(?:department|dept)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:department|dept)\s*[:=]\s*([A-Za-z&][\w&]*(?:\s+[A-Za-z&][\w&]*)?)",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:department|dept)\s+(?:of\s+)?([A-Z][\w&]*(?:\s+[A-Z][\w&]*)?)"),
)
_DEPARTMENT_SUFFIX = re.compile(
    r"\s+(?:team|department|dept|division|unit)\b", re.IGNORECASE
)
_QUOTED = re.compile(r"\"([^\"]+)\"|'([^']+)'")
_WORD = re.compile(r"\b[a-zA-Z][a-zA-Z-]{2,}\b")
_VALID_DEPARTMENT = re.compile(r"[\w&.,'/ -]{1,80}")

STOPWORDS = frozenset(
    """
    the and for with from that this these those show list find get display
    give all every any are was were what which who whom how many much our
    your their findings finding issues issue records record items item
    problems problem please can could would should about there have has had
    been some more most also into over under between year years department
    dept date dates priority severity status level levels project projects
    see you want need tell let know only just where when then than them they
    its not but out per via each audit audits based me us show me count
    """.split()
)

# Words that ask for reasoning rather than name a subject
ANALYSIS_WORDS = frozenset(
    """
    why explain explanation analyze analyse analysis recommend recommendations
    suggest suggestions advise compare comparison pattern patterns trend trends
    insight insights summary summarize summarise overview predict forecast
    prioritize prioritise improve improvement improvements root cause causes
    reason reasons
    """.split()
)


class FilterExtractor:
    """Derives :class:`ExtractedFilters` from query text.

    Args:
        model: Language-model capability for the model-assisted strategy.
            ``None`` disables it.
        today: Clock used for relative-year terms.
        timeout: Wall-clock deadline for the structured-extraction call.
        policy: Retry policy for the structured-extraction call.
        masker: Masks personal data in the question before it reaches the
            model.  ``None`` sends the question unchanged.
    """

    def __init__(
        self,
        model: BaseLanguageModel | None = None,
        *,
        today: Callable[[], date] = date.today,
        timeout: float = 8.0,
        policy: AsyncRetrying | None = None,
        masker: DataMasker | None = None,
    ) -> None:
        self.model = model
        self.today = today
        self.timeout = timeout
        self.policy = policy
        self.masker = masker

    # ------------------------------------------------------------------
    # Pattern strategy
    # ------------------------------------------------------------------

    def extract_pattern(self, text: str) -> ExtractedFilters:
        """Deterministic extraction using the catalog alias tables."""
        consumed: list[str] = []
        values: dict[str, object] = {}

        year = self._extract_year(text, consumed)
        if year is not None and YEAR_MIN <= year <= YEAR_MAX:
            values["year"] = year

        category_match = CATEGORY_PATTERN.search(text)
        if category_match:
            consumed.append(category_match.group(0))
            values["category"] = CATEGORY_ALIASES[category_match.group(0).lower()]

        severities = self._collect(SEVERITY_PATTERN, SEVERITY_ALIASES, text, consumed)
        if severities:
            values["severity_levels"] = frozenset(severities)

        statuses = self._collect(STATUS_PATTERN, STATUS_ALIASES, text, consumed)
        if statuses:
            values["status_levels"] = frozenset(statuses)

        department = self._extract_department(text, consumed)
        if department:
            values["department"] = department

        keywords = self._extract_keywords(text, consumed)
        if keywords:
            values["keywords"] = tuple(keywords)

        return ExtractedFilters(**values)

    def _extract_year(self, text: str, consumed: list[str]) -> int | None:
        relative = RELATIVE_YEAR_PATTERN.search(text)
        if relative:
            consumed.append(relative.group(0))
            return self.today().year + RELATIVE_YEARS[relative.group(0).lower()]
        explicit = YEAR_PATTERN.search(text)
        if explicit:
            consumed.append(explicit.group(1))
            return int(explicit.group(1))
        return None

    @staticmethod
    def _collect(
        pattern: re.Pattern[str],
        aliases: Mapping[str, Severity | Status],
        text: str,
        consumed: list[str],
    ) -> list[Severity | Status]:
        found: list[Severity | Status] = []
        for match in pattern.finditer(text):
            consumed.append(match.group(0))
            value = aliases[match.group(0).lower()]
            if value not in found:
                found.append(value)
        return found

    @staticmethod
    def _extract_department(text: str, consumed: list[str]) -> str | None:
        for pattern in _EXPLICIT_DEPARTMENT_PATTERNS:
            match = pattern.search(text)
            if match:
                phrase = match.group(1).strip()
                known = DEPARTMENT_ACRONYM_PATTERN.search(phrase) or (
                    DEPARTMENT_NAME_PATTERN.search(phrase)
                )
                name = canonical_department(known.group(0)) if known else phrase
                consumed.append(phrase)
                return name

        acronym = DEPARTMENT_ACRONYM_PATTERN.search(text)
        if acronym:
            consumed.append(acronym.group(0))
            return acronym.group(0)

        # Full names need a capital or a "team"/"department" suffix so that
        # topic words ("security findings") are not read as departments.
        for match in DEPARTMENT_NAME_PATTERN.finditer(text):
            term = match.group(0)
            if term[0].isupper() or _DEPARTMENT_SUFFIX.match(text, match.end()):
                consumed.append(term)
                return canonical_department(term)
        return None

    @staticmethod
    def _extract_keywords(text: str, consumed: Iterable[str]) -> list[str]:
        consumed_words = {
            word.lower() for term in consumed for word in re.split(r"[\s-]+", term)
        }
        keywords: list[str] = []
        seen: set[str] = set()

        def add(term: str) -> None:
            key = term.lower()
            if key and key not in seen:
                seen.add(key)
                keywords.append(term)

        for match in _QUOTED.finditer(text):
            add((match.group(1) or match.group(2)).strip())

        remainder = _QUOTED.sub(" ", text)
        for match in _WORD.finditer(remainder):
            word = match.group(0).lower()
            if word in STOPWORDS or word in ANALYSIS_WORDS or word in consumed_words:
                continue
            add(word)
        return keywords

    # ------------------------------------------------------------------
    # Model-assisted strategy
    # ------------------------------------------------------------------

    async def extract_model_assisted(self, text: str) -> ExtractedFilters:
        """Structured extraction via the language model.

        Falls back to :meth:`extract_pattern` when the model is unavailable
        or returns no usable fields.
        """
        validation, _ = await self._model_validation(text)
        if validation is None or validation.sanitized.is_empty():
            return self.extract_pattern(text)
        return validation.sanitized

    async def _model_validation(self, text: str) -> tuple[FilterValidation | None, str | None]:
        """Run the extraction call and validate it.

        Returns the validation result, or ``None`` plus a reason when the
        model path could not produce one.
        """
        if self.model is None:
            return None, None

        session = self.masker.session() if self.masker else None
        prompt = EXTRACTION_PROMPT.format(
            today=self.today().isoformat(),
            fields=describe_fields(),
            query=session.mask(text) if session else text,
        )
        try:
            fields = await call_with_timeout(
                self.model.extract_structured,
                prompt,
                CandidateFilters,
                timeout=self.timeout,
                policy=self.policy,
            )
            if session and isinstance(fields, dict):
                fields = {key: session.unmask_value(value) for key, value in fields.items()}
            candidate = CandidateFilters.model_validate(fields)
        except TimeoutError:
            logger.warning(f"Model-assisted extraction timed out after {self.timeout}s")
            return None, "Model-assisted filter extraction timed out"
        except (CapabilityError, pydantic.ValidationError) as e:
            logger.warning(f"Model-assisted extraction failed: {e}")
            return None, "Model-assisted filter extraction unavailable"

        return self.validate(candidate), None

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    async def extract_hybrid(self, text: str) -> ExtractedFilters:
        """Run both strategies concurrently and merge the results."""
        result = await self.extract(text)
        return result.filters

    async def extract(self, text: str, *, model_assisted: bool = True) -> ExtractionResult:
        """Extract filters and report dropped values and the strategy used."""
        if not model_assisted or self.model is None:
            return ExtractionResult(
                filters=self.extract_pattern(text),
                strategy=ExtractionStrategy.PATTERN,
            )

        async def pattern_task() -> ExtractedFilters:
            return self.extract_pattern(text)

        pattern_filters, (validation, failure) = await asyncio.gather(
            pattern_task(), self._model_validation(text)
        )

        warnings: list[str] = []
        if failure:
            warnings.append(f"{failure}; used pattern matching only.")
        if validation is None:
            return ExtractionResult(
                filters=pattern_filters,
                strategy=ExtractionStrategy.PATTERN,
                warnings=warnings,
            )

        warnings.extend(f"Dropped invalid filter value: {e}" for e in validation.errors)
        if validation.sanitized.is_empty():
            return ExtractionResult(
                filters=pattern_filters,
                strategy=ExtractionStrategy.PATTERN,
                warnings=warnings,
            )
        if pattern_filters.is_empty():
            return ExtractionResult(
                filters=validation.sanitized,
                strategy=ExtractionStrategy.MODEL,
                warnings=warnings,
            )
        return ExtractionResult(
            filters=merge_filters(pattern_filters, validation.sanitized),
            strategy=ExtractionStrategy.HYBRID,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(
        self, filters: CandidateFilters | ExtractedFilters | Mapping[str, object]
    ) -> FilterValidation:
        """Check filter values against the catalog.

        Never raises: invalid entries are removed from ``sanitized`` and
        described in ``errors``.
        """
        if isinstance(filters, ExtractedFilters):
            candidate = _candidate_from(filters)
        elif isinstance(filters, CandidateFilters):
            candidate = filters
        else:
            try:
                candidate = CandidateFilters.model_validate(filters)
            except pydantic.ValidationError as e:
                errors = [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]
                return FilterValidation(valid=False, errors=errors)

        errors: list[str] = []
        values: dict[str, object] = {}

        year = _as_year(candidate.year)
        if candidate.year is not None:
            if year is None or not YEAR_MIN <= year <= YEAR_MAX:
                errors.append(f"year {candidate.year!r} is outside {YEAR_MIN}-{YEAR_MAX}")
            else:
                values["year"] = year

        if candidate.category:
            category = _resolve(candidate.category, Category, CATEGORY_ALIASES)
            if category is None:
                errors.append(f"unknown category {candidate.category!r}")
            else:
                values["category"] = category

        severities = _resolve_all(
            candidate.severity_levels, Severity, SEVERITY_ALIASES, "severity", errors
        )
        if severities:
            values["severity_levels"] = frozenset(severities)

        statuses = _resolve_all(
            candidate.status_levels, Status, STATUS_ALIASES, "status", errors
        )
        if statuses:
            values["status_levels"] = frozenset(statuses)

        if candidate.department is not None:
            department = candidate.department.strip()
            if department and _VALID_DEPARTMENT.fullmatch(department):
                values["department"] = canonical_department(department)
            else:
                errors.append(f"invalid department {candidate.department!r}")

        keywords = _dedupe(k.strip() for k in candidate.keywords if k and k.strip())
        if keywords:
            values["keywords"] = tuple(keywords)

        date_range = _date_range(candidate.date_start, candidate.date_end, errors)
        if date_range is not None:
            values["date_range"] = date_range

        return FilterValidation(
            valid=not errors,
            errors=errors,
            sanitized=ExtractedFilters(**values),
        )


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_filters(pattern: ExtractedFilters, model: ExtractedFilters) -> ExtractedFilters:
    """Merge two filter sets field by field.

    - Scalars (year, category, department, date range): the model-assisted
      value wins when both are set.
    - Sets (severity, status): union.
    - Keywords: union, de-duplicated case-insensitively, pattern order first.
    """

    def union(a: frozenset | None, b: frozenset | None) -> frozenset | None:
        if a is None and b is None:
            return None
        return (a or frozenset()) | (b or frozenset())

    keywords = _dedupe([*(pattern.keywords or ()), *(model.keywords or ())])

    return ExtractedFilters(
        year=model.year if model.year is not None else pattern.year,
        category=model.category or pattern.category,
        department=model.department or pattern.department,
        date_range=model.date_range or pattern.date_range,
        severity_levels=union(pattern.severity_levels, model.severity_levels),
        status_levels=union(pattern.status_levels, model.status_levels),
        keywords=tuple(keywords) or None,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _dedupe(terms: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for term in terms:
        key = term.lower()
        if key not in seen:
            seen.add(key)
            result.append(term)
    return result


def _as_year(value: int | str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _resolve(value: str, enum: type, aliases: Mapping[str, object]):
    key = value.strip().lower()
    for member in enum:
        if member.value.lower() == key:
            return member
    return aliases.get(key)


def _resolve_all(
    values: Iterable[str],
    enum: type,
    aliases: Mapping[str, object],
    label: str,
    errors: list[str],
) -> list:
    resolved = []
    for value in values:
        member = _resolve(value, enum, aliases) if isinstance(value, str) else None
        if member is None:
            errors.append(f"unknown {label} {value!r}")
        elif member not in resolved:
            resolved.append(member)
    return resolved


def _date_range(start: str | None, end: str | None, errors: list[str]) -> DateRange | None:
    parsed: dict[str, date] = {}
    for name, raw in (("start", start), ("end", end)):
        if not raw:
            continue
        try:
            parsed[name] = date.fromisoformat(raw.strip())
        except ValueError:
            errors.append(f"invalid date range {name} {raw!r}")
    if not parsed:
        return None
    if "start" in parsed and "end" in parsed and parsed["start"] > parsed["end"]:
        errors.append(
            f"date range start {parsed['start']} is after end {parsed['end']}"
        )
        return None
    return DateRange(**parsed)


def _candidate_from(filters: ExtractedFilters) -> CandidateFilters:
    date_range = filters.date_range
    return CandidateFilters(
        year=filters.year,
        category=filters.category.value if filters.category else None,
        severity_levels=[s.value for s in filters.severity_levels or ()],
        status_levels=[s.value for s in filters.status_levels or ()],
        department=filters.department,
        keywords=list(filters.keywords or ()),
        date_start=date_range.start.isoformat() if date_range and date_range.start else None,
        date_end=date_range.end.isoformat() if date_range and date_range.end else None,
    )

"""Unit tests for FilterExtractor."""

import asyncio
from datetime import date

import pytest

from query_router.core.catalog import Category, Severity, Status
from query_router.core.resilience import build_retry_policy
from query_router.models.domain import (
    CandidateFilters,
    DateRange,
    ExtractedFilters,
    ExtractionStrategy,
)
from query_router.services.exceptions import ModelUnavailableError
from query_router.services.filter_extractor import FilterExtractor, merge_filters
from query_router.services.masking import DataMasker

TODAY = date(2025, 6, 1)


@pytest.fixture
def extractor():
    return FilterExtractor(today=lambda: TODAY)


@pytest.fixture
def model_extractor(mock_model):
    return FilterExtractor(
        mock_model,
        today=lambda: TODAY,
        timeout=1.0,
        policy=build_retry_policy(attempts=1, min_wait=0, max_wait=0),
    )


# ------------------------------------------------------------------
# Pattern strategy
# ------------------------------------------------------------------


def test_scenario_filters(extractor):
    filters = extractor.extract_pattern("Show Critical findings in Hotel from 2024")

    assert filters == ExtractedFilters(
        year=2024,
        category=Category.HOTEL,
        severity_levels=frozenset({Severity.CRITICAL}),
    )


@pytest.mark.parametrize("year", [2000, 2024, 2042, 2099])
def test_explicit_years(extractor, year):
    assert extractor.extract_pattern(f"Show findings from {year}").year == year


@pytest.mark.parametrize(
    ("phrase", "expected"),
    [
        ("last year", 2024),
        ("this year", 2025),
        ("previous year", 2024),
        ("current year", 2025),
        ("next year", 2026),
    ],
)
def test_relative_years(extractor, phrase, expected):
    assert extractor.extract_pattern(f"Open issues from {phrase}").year == expected


def test_relative_year_wins_over_explicit(extractor):
    assert extractor.extract_pattern("findings in 2022 and last year").year == 2024


def test_out_of_range_years_are_ignored(extractor):
    assert extractor.extract_pattern("Show findings from 1999").year is None
    assert extractor.extract_pattern("Show findings from 2100").year is None


def test_whole_term_matching(extractor):
    filters = extractor.extract_pattern("Show highway maintenance issues")

    assert filters.severity_levels is None
    assert filters.department is None
    assert filters.keywords == ("highway", "maintenance")


def test_severity_and_status_sets(extractor):
    filters = extractor.extract_pattern("urgent or high issues that are open or in progress")

    assert filters.severity_levels == frozenset({Severity.CRITICAL, Severity.HIGH})
    assert filters.status_levels == frozenset({Status.OPEN, Status.IN_PROGRESS})


def test_explicit_department(extractor):
    filters = extractor.extract_pattern("Show open issues in the Finance department")

    assert filters.department == "Finance"
    assert filters.status_levels == frozenset({Status.OPEN})
    assert filters.keywords is None


def test_acronym_department_is_case_sensitive(extractor):
    assert extractor.extract_pattern("IT findings").department == "IT"
    assert extractor.extract_pattern("Is it open?").department is None


def test_quoted_keywords(extractor):
    filters = extractor.extract_pattern('findings about "purchase order" approvals')

    assert filters.keywords == ("purchase order", "approvals")


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


def test_validate_drops_invalid_values(extractor):
    result = extractor.validate(
        CandidateFilters(
            year="2024",
            category="hotels",
            severity_levels=["urgent", "bogus"],
            date_start="2024-05-01",
            date_end="2024-01-01",
        )
    )

    assert result.valid is False
    assert "unknown severity 'bogus'" in result.errors
    assert any("date range start" in e for e in result.errors)
    assert result.sanitized == ExtractedFilters(
        year=2024,
        category=Category.HOTEL,
        severity_levels=frozenset({Severity.CRITICAL}),
    )


def test_validate_mapping_out_of_range_year(extractor):
    result = extractor.validate({"year": 1999, "department": "finance"})

    assert result.valid is False
    assert result.errors == ["year 1999 is outside 2000-2099"]
    assert result.sanitized.department == "Finance"


def test_validate_never_raises_on_wrong_types(extractor):
    result = extractor.validate({"severity_levels": 42})

    assert result.valid is False
    assert result.errors
    assert result.sanitized.is_empty()


def test_validate_accepts_extracted_filters(extractor):
    filters = ExtractedFilters(
        year=2024,
        department="IT",
        date_range=DateRange(start=date(2024, 1, 1), end=date(2024, 3, 31)),
    )
    result = extractor.validate(filters)

    assert result.valid is True
    assert result.sanitized == filters


# ------------------------------------------------------------------
# Merge
# ------------------------------------------------------------------


def test_merge_precedence_and_union():
    pattern = ExtractedFilters(
        year=2023,
        severity_levels={Severity.HIGH},
        keywords=("fire", "exit"),
    )
    model = ExtractedFilters(
        year=2024,
        category=Category.HOTEL,
        severity_levels={Severity.CRITICAL},
        keywords=("Fire", "safety"),
    )

    merged = merge_filters(pattern, model)

    assert merged.year == 2024
    assert merged.category == Category.HOTEL
    assert merged.severity_levels == frozenset({Severity.HIGH, Severity.CRITICAL})
    assert merged.keywords == ("fire", "exit", "safety")


def test_merge_keeps_pattern_values_when_model_silent():
    pattern = ExtractedFilters(year=2023, department="IT")

    assert merge_filters(pattern, ExtractedFilters()) == pattern


# ------------------------------------------------------------------
# Combined extraction
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_extract_merges_model_output(model_extractor, mock_model):
    mock_model.extract_structured.return_value = {
        "year": 2024,
        "category": "Hospital",
        "keywords": ["Invoices", "approval"],
        "severity_levels": ["nope"],
    }

    result = await model_extractor.extract("Show hotel invoices")

    assert result.strategy == ExtractionStrategy.HYBRID
    assert result.filters.year == 2024
    assert result.filters.category == Category.HOSPITAL
    assert result.filters.keywords == ("invoices", "approval")
    assert result.warnings == ["Dropped invalid filter value: unknown severity 'nope'"]
    prompt, schema = mock_model.extract_structured.await_args.args
    assert "Show hotel invoices" in prompt
    assert schema is CandidateFilters


@pytest.mark.asyncio
async def test_extract_model_only(model_extractor, mock_model):
    mock_model.extract_structured.return_value = {"department": "Legal"}

    result = await model_extractor.extract("Show me")

    assert result.strategy == ExtractionStrategy.MODEL
    assert result.filters == ExtractedFilters(department="Legal")


@pytest.mark.asyncio
async def test_extract_falls_back_when_model_unavailable(model_extractor, mock_model):
    mock_model.extract_structured.side_effect = ModelUnavailableError("down")

    result = await model_extractor.extract("Critical hotel findings")

    assert result.strategy == ExtractionStrategy.PATTERN
    assert result.filters.category == Category.HOTEL
    assert result.warnings == [
        "Model-assisted filter extraction unavailable; used pattern matching only."
    ]


@pytest.mark.asyncio
async def test_extract_falls_back_on_timeout(mock_model):
    async def slow(*args, **kwargs):
        await asyncio.sleep(5)

    mock_model.extract_structured.side_effect = slow
    extractor = FilterExtractor(mock_model, today=lambda: TODAY, timeout=0.01)

    result = await extractor.extract("Critical hotel findings")

    assert result.strategy == ExtractionStrategy.PATTERN
    assert "timed out" in result.warnings[0]


@pytest.mark.asyncio
async def test_extract_model_assisted_uses_pattern_when_empty(model_extractor, mock_model):
    mock_model.extract_structured.return_value = {}

    filters = await model_extractor.extract_model_assisted("Critical hotel findings")

    assert filters.category == Category.HOTEL
    assert filters.severity_levels == frozenset({Severity.CRITICAL})


@pytest.mark.asyncio
async def test_extract_hybrid_returns_merged_filters(model_extractor, mock_model):
    mock_model.extract_structured.return_value = {"status_levels": ["resolved"]}

    filters = await model_extractor.extract_hybrid("open hotel findings")

    assert filters.status_levels == frozenset({Status.OPEN, Status.CLOSED})
    assert filters.category == Category.HOTEL


@pytest.mark.asyncio
async def test_pattern_only_skips_model(model_extractor, mock_model):
    result = await model_extractor.extract("Critical hotel findings", model_assisted=False)

    assert result.strategy == ExtractionStrategy.PATTERN
    mock_model.extract_structured.assert_not_awaited()


def test_reasoning_words_are_not_keywords(extractor):
    filters = extractor.extract_pattern("Show open findings and explain the root causes")

    assert filters.keywords is None
    assert filters.status_levels == frozenset({Status.OPEN})


@pytest.mark.asyncio
async def test_model_sees_masked_question(mock_model):
    extractor = FilterExtractor(
        mock_model,
        today=lambda: TODAY,
        timeout=1.0,
        policy=build_retry_policy(attempts=1, min_wait=0, max_wait=0),
        masker=DataMasker(),
    )
    mock_model.extract_structured.return_value = {"keywords": ["[NAME_1]"]}

    result = await extractor.extract("Findings raised by manager Tom Baker")

    prompt = mock_model.extract_structured.await_args.args[0]
    assert "Tom Baker" not in prompt
    assert "manager [NAME_1]" in prompt
    assert "Tom Baker" in result.filters.keywords

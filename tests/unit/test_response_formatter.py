"""Unit tests for ResponseFormatter."""

import time

import pytest

from query_router.config.models import ResponseConfig
from query_router.models.domain import ExtractedFilters, QueryKind
from query_router.services.response_formatter import (
    NO_ANALYSIS_TEXT,
    ResponseFormatter,
    build_metadata,
    sources_footer,
    summary_line,
)


@pytest.fixture
def formatter():
    return ResponseFormatter(ResponseConfig(page_size=50))


def metadata(kind=QueryKind.SIMPLE, **overrides):
    values = {
        "kind": kind,
        "started_at": time.perf_counter(),
        "records_analyzed": 0,
        "confidence": 0.9,
        "filters": ExtractedFilters(year=2024),
    }
    values.update(overrides)
    return build_metadata(**values)


# ------------------------------------------------------------------
# Metadata
# ------------------------------------------------------------------


def test_build_metadata_defaults():
    meta = metadata(confidence=1.7)

    assert meta.confidence == 1.0
    assert meta.execution_time_ms >= 0
    assert meta.tokens_used is None
    assert meta.warnings is None


def test_build_metadata_keeps_warnings():
    meta = metadata(warnings=["first", "second"], tokens_used=12)

    assert meta.warnings == ["first", "second"]
    assert meta.tokens_used == 12


# ------------------------------------------------------------------
# Data responses
# ------------------------------------------------------------------


def test_small_result_is_not_paginated(formatter, record_factory):
    records = [record_factory(f"F-{i}") for i in range(50)]

    response = formatter.format_data(records, metadata())

    assert response.pagination is None
    assert len(response.records) == 50
    assert response.answer == "Found **50** records matching your criteria."


def test_large_result_is_paginated(formatter, record_factory):
    records = [record_factory(f"F-{i}") for i in range(120)]

    response = formatter.format_data(records, metadata(), page=3)

    assert len(response.records) == 20
    assert response.records[0].id == "F-100"
    assert response.pagination.total_count == 120
    assert response.pagination.total_pages == 3
    assert response.pagination.page == 3
    assert response.pagination.has_more is False
    assert "Showing page 3 of 3." in response.answer


def test_page_is_clamped(formatter, record_factory):
    records = [record_factory(f"F-{i}") for i in range(120)]

    response = formatter.format_data(records, metadata(), page=99)

    assert response.pagination.page == 3


def test_first_page_has_more(formatter, record_factory):
    records = [record_factory(f"F-{i}") for i in range(51)]

    response = formatter.format_data(records, metadata())

    assert response.pagination.has_more is True
    assert len(response.records) == 50


def test_empty_result_suggests_broadening(formatter):
    response = formatter.format_data([], metadata())

    assert response.records == []
    assert response.answer.startswith("No records matched your criteria.")
    assert "broadening" in response.answer


def test_note_is_prepended(formatter, sample_records):
    response = formatter.format_data(sample_records, metadata(), note="Heads up.")

    assert response.answer.startswith("Heads up.\n\n")


# ------------------------------------------------------------------
# Analysis and combined responses
# ------------------------------------------------------------------


def test_analysis_lists_sources(formatter, sample_records):
    response = formatter.format_analysis(
        "  Fire exits are the main risk.  ",
        sample_records[:2],
        metadata(QueryKind.COMPLEX, tokens_used=42),
    )

    assert [s.id for s in response.sources] == ["F-101", "F-102"]
    assert response.answer.startswith("Fire exits are the main risk.")
    assert "**Sources referenced (2):**" in response.answer
    assert "- [F-101] Fire exits blocked by stored furniture" in response.answer
    assert response.records is None


def test_combined_without_analysis(formatter):
    response = formatter.format_combined([], None, metadata(QueryKind.HYBRID))

    assert response.analysis.performed is False
    assert response.analysis.text == NO_ANALYSIS_TEXT
    assert response.analysis.sources == []
    assert response.data.records == []


def test_combined_with_analysis(formatter, sample_records):
    response = formatter.format_combined(
        sample_records,
        "Two findings share a root cause.",
        metadata(QueryKind.HYBRID),
        sources=sample_records[:1],
    )

    assert response.data.summary == summary_line(4)
    assert len(response.data.records) == 4
    assert response.analysis.performed is True
    assert [s.id for s in response.analysis.sources] == ["F-101"]
    assert response.answer.endswith(sources_footer([sample_records[0].reference()]))


def test_combined_note_replaces_analysis_text(formatter, sample_records):
    response = formatter.format_combined(
        sample_records, None, metadata(QueryKind.HYBRID), note="Model offline."
    )

    assert response.analysis.performed is False
    assert response.analysis.text == "Model offline."


def test_payload_is_camel_case_and_sparse(formatter, sample_records):
    payload = formatter.format_data(sample_records[:1], metadata()).to_payload()

    assert set(payload) == {"kind", "answer", "records", "metadata"}
    assert "executionTimeMs" in payload["metadata"]
    assert "tokensUsed" not in payload["metadata"]
    assert payload["records"][0]["identifiedOn"] == "2024-03-12"
    assert payload["metadata"]["filters"] == {"year": 2024}


def test_sources_footer_empty():
    assert sources_footer([]) == ""
    assert summary_line(1) == "Found **1** record matching your criteria."

"""Response assembly: data-only, analysis-only and combined shapes."""

from __future__ import annotations

import math
import time
from collections.abc import Iterable, Sequence

from query_router.config.models import ResponseConfig
from query_router.models.domain import (
    AnalysisSection,
    DataSection,
    ExtractedFilters,
    Pagination,
    QueryKind,
    QueryMetadata,
    QueryResponse,
    Record,
    RecordReference,
    RecordSummary,
)

NO_RESULTS_SUGGESTION = (
    "Try broadening your filters, for example remove the year or severity, "
    "or use different keywords."
)
NO_ANALYSIS_TEXT = (
    "No analysis was performed because no records matched your criteria."
)
MODEL_FALLBACK_NOTE = (
    "AI analysis is currently unavailable, so the matching records are shown "
    "without analysis. Please try again later."
)
QUOTA_FALLBACK_NOTE = (
    "You have reached today's limit of AI-assisted queries. Showing database "
    "results only; simpler search queries still work."
)


def build_metadata(
    kind: QueryKind,
    started_at: float,
    records_analyzed: int,
    confidence: float,
    filters: ExtractedFilters,
    tokens_used: int | None = None,
    warnings: Iterable[str] = (),
) -> QueryMetadata:
    """Build the metadata envelope.

    ``started_at`` is a :func:`time.perf_counter` reading taken when the
    request began.
    """
    elapsed_ms = (time.perf_counter() - started_at) * 1000
    collected = list(warnings)
    return QueryMetadata(
        kind=kind,
        execution_time_ms=round(max(elapsed_ms, 0.0), 2),
        records_analyzed=records_analyzed,
        tokens_used=tokens_used,
        confidence=min(max(confidence, 0.0), 1.0),
        filters=filters,
        warnings=collected or None,
    )


def summary_line(count: int) -> str:
    noun = "record" if count == 1 else "records"
    return f"Found **{count}** {noun} matching your criteria."


def sources_footer(sources: Sequence[RecordReference]) -> str:
    if not sources:
        return ""
    listed = "\n".join(f"- [{s.id}] {s.title}" for s in sources)
    return f"\n\n**Sources referenced ({len(sources)}):**\n{listed}"


class ResponseFormatter:
    """Builds :class:`QueryResponse` objects from router results."""

    def __init__(self, config: ResponseConfig | None = None) -> None:
        self.config = config or ResponseConfig()

    @property
    def page_size(self) -> int:
        return self.config.page_size

    # ------------------------------------------------------------------
    # Public builders
    # ------------------------------------------------------------------

    def format_data(
        self,
        records: Sequence[Record],
        metadata: QueryMetadata,
        *,
        page: int = 1,
        note: str | None = None,
    ) -> QueryResponse:
        """Data-only response.

        Result sets larger than the page size are returned one page at a
        time with a pagination object.  ``note`` is prepended to the answer
        when the data response stands in for an analysis that did not run.
        """
        summaries, pagination = self._page(records, page)
        if records:
            answer = summary_line(len(records))
            if pagination:
                answer += (
                    f" Showing page {pagination.page} of {pagination.total_pages}."
                )
        else:
            answer = f"No records matched your criteria. {NO_RESULTS_SUGGESTION}"
        if note:
            answer = f"{note}\n\n{answer}"
        return QueryResponse(
            kind=metadata.kind,
            answer=answer,
            records=summaries,
            pagination=pagination,
            metadata=metadata,
        )

    def format_analysis(
        self,
        answer_text: str,
        source_records: Sequence[Record],
        metadata: QueryMetadata,
    ) -> QueryResponse:
        """Analysis-only response citing the records given as context."""
        sources = [r.reference() for r in source_records]
        return QueryResponse(
            kind=metadata.kind,
            answer=answer_text.strip() + sources_footer(sources),
            sources=sources,
            metadata=metadata,
        )

    def format_combined(
        self,
        records: Sequence[Record],
        answer_text: str | None,
        metadata: QueryMetadata,
        *,
        sources: Sequence[Record] | None = None,
        page: int = 1,
        note: str | None = None,
    ) -> QueryResponse:
        """Combined response with separate data and analysis sections.

        ``answer_text=None`` means the analysis step did not run; the
        analysis section then says so with ``performed=False``.  ``sources``
        defaults to *records*.
        """
        summaries, pagination = self._page(records, page)
        data = DataSection(
            summary=summary_line(len(records)) if records else "No records matched your criteria.",
            records=summaries,
            pagination=pagination,
        )

        if answer_text is None:
            analysis = AnalysisSection(
                performed=False, text=note or NO_ANALYSIS_TEXT
            )
            if records:
                answer = f"{data.summary} {analysis.text}"
            else:
                answer = f"{NO_ANALYSIS_TEXT} {NO_RESULTS_SUGGESTION}"
        else:
            cited = [r.reference() for r in (records if sources is None else sources)]
            analysis = AnalysisSection(
                performed=True, text=answer_text.strip(), sources=cited
            )
            answer = analysis.text + sources_footer(cited)

        return QueryResponse(
            kind=metadata.kind,
            answer=answer,
            data=data,
            analysis=analysis,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _page(
        self, records: Sequence[Record], page: int
    ) -> tuple[list[RecordSummary], Pagination | None]:
        total = len(records)
        size = self.page_size
        if total <= size:
            return [r.summary() for r in records], None

        total_pages = math.ceil(total / size)
        current = min(max(page, 1), total_pages)
        start = (current - 1) * size
        window = records[start:start + size]
        pagination = Pagination(
            paginated=True,
            total_count=total,
            page=current,
            page_size=size,
            total_pages=total_pages,
            has_more=current < total_pages,
        )
        return [r.summary() for r in window], pagination

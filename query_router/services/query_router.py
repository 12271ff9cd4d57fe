"""Query router: three-path execution pipeline.

Classifies a question, then answers it by a structured lookup (``simple``),
by model reasoning over a bounded context window (``complex``), or by a
lookup followed by reasoning over its results (``hybrid``).

State machine::

    start -> classifying -> executing_simple ----------------------> formatting -> done
                         \\-> building_context -> invoking_model -/
    (any non-terminal state) -> failed

Fallbacks
---------
- classification raises          -> ``complex`` at confidence 0.5
- daily model quota exhausted    -> ``simple`` path without keywords, warning attached
- model call fails or times out  -> retrieved records, explanatory note
- store call fails or times out  -> :class:`StoreError` with a retry hint
- empty candidate pool / results -> no model call

Only :class:`QueryRouterError` subclasses leave :meth:`route`,
:meth:`classify` and :meth:`execute_as`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from query_router.config.models import RouterConfig
from query_router.core.resilience import build_retry_policy, call_with_timeout
from query_router.core.telemetry import annotate_span, trace_span
from query_router.memory.intent_cache import BaseIntentCache, query_hash
from query_router.memory.rate_counter import BaseRateCounter
from query_router.models.domain import (
    ExtractedFilters,
    QueryIntent,
    QueryKind,
    QueryMetadata,
    QueryResponse,
    Record,
    RouteOptions,
    SortSpec,
)
from query_router.providers.base import BaseLanguageModel, BaseRecordStore
from query_router.services.classifier import QueryClassifier
from query_router.services.context_builder import ContextBuilder, estimate_tokens
from query_router.services.events import EventEmitter
from query_router.services.exceptions import (
    CapabilityError,
    ClassificationError,
    ModelError,
    ModelQuotaExceededError,
    QueryRouterError,
    QuotaExceededError,
    StoreError,
    ValidationError,
)
from query_router.services.filter_extractor import FilterExtractor
from query_router.services.masking import DataMasker
from query_router.services.response_formatter import (
    MODEL_FALLBACK_NOTE,
    QUOTA_FALLBACK_NOTE,
    ResponseFormatter,
    build_metadata,
)
from query_router.services.route_context import RouteRun, RouteState

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5

ANALYSIS_PROMPT = """Analyze the records below to answer the question.

Question: {query}

{context}

Ground every statement in these records and cite each record you rely on by
its bracketed id, e.g. [F-102]. Point out patterns, risks and concrete
recommendations where the question asks for them."""

NO_CANDIDATES_NOTE = (
    "No records matched the scope of your question, so no analysis was performed."
)


class QueryRouter:
    """Routes free-text questions through the simple, complex or hybrid path.

    Collaborators are injected so tests can substitute fakes for the store
    and the model.

    Usage::

        router = QueryRouter(store, model, config=router_config)
        response = await router.route("Show critical findings in 2024")
    """

    def __init__(
        self,
        store: BaseRecordStore,
        model: BaseLanguageModel | None = None,
        *,
        config: RouterConfig | None = None,
        classifier: QueryClassifier | None = None,
        extractor: FilterExtractor | None = None,
        context_builder: ContextBuilder | None = None,
        formatter: ResponseFormatter | None = None,
        rate_counter: BaseRateCounter | None = None,
        intent_cache: BaseIntentCache | None = None,
        masker: DataMasker | None = None,
    ) -> None:
        self.config = config or RouterConfig()
        routing = self.config.routing_config
        self.store = store
        self.model = model
        self.policy = build_retry_policy(
            routing.retry.max_attempts, routing.retry.min_wait, routing.retry.max_wait
        )
        self.masker = masker or DataMasker(self.config.masking_config)
        self.extractor = extractor or FilterExtractor(
            model,
            timeout=routing.extraction_timeout_seconds,
            policy=self.policy,
            masker=self.masker,
        )
        self.classifier = classifier or QueryClassifier(
            self.config.classifier_config, self.extractor
        )
        self.context_builder = context_builder or ContextBuilder(self.config.context_config)
        self.formatter = formatter or ResponseFormatter(self.config.response_config)
        self.rate_counter = rate_counter
        self.intent_cache = intent_cache

        self._paths: dict[QueryKind, Callable[[RouteRun], Awaitable[QueryResponse]]] = {
            QueryKind.SIMPLE: self._run_simple,
            QueryKind.COMPLEX: self._run_complex,
            QueryKind.HYBRID: self._run_hybrid,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @trace_span("router.classify")
    async def classify(self, text: str, user_id: str | None = None) -> QueryIntent:
        """Classify *text* without executing it.

        Raises:
            ValidationError: If *text* is blank.
            ClassificationError: If scoring fails.
        """
        query = _require_text(text)
        try:
            return await self._lookup_intent(query, user_id)
        except Exception as e:
            logger.error(f"Classification failed for query {query_hash(query)[:12]}: {e}")
            raise ClassificationError(f"Could not classify the query: {e}") from e

    @trace_span("router.route")
    async def route(
        self,
        text: str,
        options: RouteOptions | None = None,
        *,
        emitter: EventEmitter | None = None,
    ) -> QueryResponse:
        """Classify *text* and answer it on the chosen path.

        ``options.force_kind`` bypasses classification.
        """
        run = RouteRun(query=text, options=options or RouteOptions(), emitter=emitter)
        return await self._execute(run)

    async def execute_as(
        self,
        text: str,
        forced_kind: QueryKind,
        options: RouteOptions | None = None,
        *,
        emitter: EventEmitter | None = None,
    ) -> QueryResponse:
        """Answer *text* on *forced_kind*, bypassing classification."""
        base = options or RouteOptions()
        return await self.route(
            text, base.model_copy(update={"force_kind": forced_kind}), emitter=emitter
        )

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def _execute(self, run: RouteRun) -> QueryResponse:
        try:
            query = _require_text(run.query)
            run.query = query
            await run.transition(RouteState.CLASSIFYING)
            run.intent = await self._resolve_intent(run)

            floor = self.config.routing_config.confidence_floor
            run.kind = run.options.force_kind or run.intent.execution_kind(floor)
            if run.kind is not run.intent.kind:
                logger.info(
                    f"Intent {run.intent.kind} at confidence {run.intent.confidence:.2f} "
                    f"executes as {run.kind}"
                )

            extraction = await self.extractor.extract(
                query,
                model_assisted=self.config.routing_config.model_assisted_extraction,
            )
            run.filters = extraction.filters
            for warning in extraction.warnings:
                run.warn(warning)

            annotate_span(
                query_kind=run.kind.value,
                confidence=run.intent.confidence,
                extraction_strategy=extraction.strategy.value,
            )

            response = await self._paths[run.kind](run)
            await run.transition(RouteState.DONE)
            return response
        except QueryRouterError as e:
            await self._fail(run, e)
            raise
        except Exception as e:
            logger.exception(f"Unexpected routing failure for query {query_hash(run.query)[:12]}")
            error = QueryRouterError(
                "Something went wrong while answering your question.",
                suggestion="Please try again, or rephrase your question more simply.",
            )
            await self._fail(run, error)
            raise error from e

    async def _fail(self, run: RouteRun, error: QueryRouterError) -> None:
        if run.state in (RouteState.DONE, RouteState.FAILED):
            return
        await run.transition(RouteState.FAILED, error.to_dict())
        if run.emitter:
            await run.emitter.emit_error(error.to_dict())

    async def _resolve_intent(self, run: RouteRun) -> QueryIntent:
        forced = run.options.force_kind
        if forced is not None:
            return QueryIntent(
                kind=forced,
                confidence=1.0,
                filters=self.extractor.extract_pattern(run.query),
                requires_model=forced is not QueryKind.SIMPLE,
            )
        try:
            return await self._lookup_intent(run.query, run.user_id)
        except Exception as e:
            # Degrade to the most thorough path rather than failing
            logger.warning(
                f"Classification failed for query {query_hash(run.query)[:12]}, "
                f"falling back to complex: {e}"
            )
            return QueryIntent(
                kind=QueryKind.COMPLEX,
                confidence=FALLBACK_CONFIDENCE,
                requires_model=True,
            )

    async def _lookup_intent(self, query: str, user_id: str | None) -> QueryIntent:
        """Read-through intent cache around the classifier."""
        cached = await self._cache_get(query, user_id)
        if cached is not None:
            return cached
        intent = self.classifier.classify(query)
        await self._cache_set(query, user_id, intent)
        return intent

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    async def _run_simple(self, run: RouteRun) -> QueryResponse:
        await run.transition(RouteState.EXECUTING_SIMPLE)
        run.kind = QueryKind.SIMPLE
        run.records = await self._query_store(run.filters, self._result_limit(run))
        await run.transition(RouteState.FORMATTING, {"records": len(run.records)})

        return self.formatter.format_data(
            run.records,
            self._metadata(run, records_analyzed=len(run.records)),
            page=run.options.page,
            note=QUOTA_FALLBACK_NOTE if run.downgraded else None,
        )

    async def _run_complex(self, run: RouteRun) -> QueryResponse:
        await run.transition(RouteState.BUILDING_CONTEXT)
        if run.options.candidates is not None:
            candidates = list(run.options.candidates)
        else:
            candidates = await self._query_store(
                run.filters.structural_scope(),
                self.config.routing_config.candidate_pool_size,
            )

        if not candidates:
            await run.transition(RouteState.FORMATTING, {"candidates": 0})
            return self.formatter.format_data(
                [],
                self._metadata(run, records_analyzed=0),
                page=run.options.page,
                note=NO_CANDIDATES_NOTE,
            )

        selected = self.context_builder.select(candidates, run.filters)
        run.context = self.context_builder.build(selected)

        if not await self._acquire_quota(run):
            # Keywords from analytic phrasing would AND away every record
            run.filters = run.filters.model_copy(update={"keywords": None})
            return await self._run_simple(run)

        await run.transition(
            RouteState.INVOKING_MODEL,
            {"candidates": len(candidates), "included": len(run.context.included)},
        )
        try:
            await self._analyze(run)
        except ModelError as e:
            logger.warning(f"Model call failed, returning records without analysis: {e}")
            run.warn(e.suggestion)
            await run.transition(RouteState.FORMATTING, {"analysis": False})
            return self.formatter.format_data(
                selected,
                self._metadata(run, records_analyzed=len(selected)),
                page=run.options.page,
                note=MODEL_FALLBACK_NOTE,
            )

        await run.transition(RouteState.FORMATTING, {"tokens_used": run.tokens_used})
        return self.formatter.format_analysis(
            run.answer or "",
            run.context.included,
            self._metadata(run, records_analyzed=len(run.context.included)),
        )

    async def _run_hybrid(self, run: RouteRun) -> QueryResponse:
        await run.transition(RouteState.EXECUTING_SIMPLE)
        run.records = await self._query_store(run.filters, self._result_limit(run))

        if not run.records:
            # Never invoke the model on an empty context
            await run.transition(RouteState.FORMATTING, {"records": 0})
            return self.formatter.format_combined(
                [], None, self._metadata(run, records_analyzed=0)
            )

        await run.transition(RouteState.BUILDING_CONTEXT, {"records": len(run.records)})
        selected = self.context_builder.select(run.records, run.filters)
        run.context = self.context_builder.build(selected)

        if not await self._acquire_quota(run):
            run.kind = QueryKind.SIMPLE
            await run.transition(RouteState.FORMATTING, {"analysis": False})
            return self.formatter.format_data(
                run.records,
                self._metadata(run, records_analyzed=len(run.records)),
                page=run.options.page,
                note=QUOTA_FALLBACK_NOTE,
            )

        await run.transition(
            RouteState.INVOKING_MODEL, {"included": len(run.context.included)}
        )
        try:
            await self._analyze(run)
        except ModelError as e:
            logger.warning(f"Model call failed, returning data section only: {e}")
            run.warn(e.suggestion)
            await run.transition(RouteState.FORMATTING, {"analysis": False})
            return self.formatter.format_combined(
                run.records,
                None,
                self._metadata(run, records_analyzed=len(run.records)),
                page=run.options.page,
                note=MODEL_FALLBACK_NOTE,
            )

        await run.transition(RouteState.FORMATTING, {"tokens_used": run.tokens_used})
        return self.formatter.format_combined(
            run.records,
            run.answer,
            self._metadata(run, records_analyzed=len(run.records)),
            sources=run.context.included,
            page=run.options.page,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _analyze(self, run: RouteRun) -> None:
        assert run.context is not None
        session = self.masker.session()
        run.prompt = ANALYSIS_PROMPT.format(
            query=session.mask(run.query), context=session.mask(run.context.text)
        )
        if session.masked_count:
            logger.info(f"Masked {session.masked_count} personal values before the model call")
        run.answer = session.unmask(await self._invoke_model(run.prompt, run))
        run.tokens_used = estimate_tokens(run.prompt) + estimate_tokens(run.answer)
        if run.context.truncated:
            run.warn(
                f"{len(run.context.omitted)} records were left out of the analysis "
                "to stay within the context budget."
            )

    async def _acquire_quota(self, run: RouteRun) -> bool:
        """Check-and-increment the user's daily model budget.

        On refusal the run is switched to the simple path with a warning.
        """
        if self.rate_counter is None:
            return True
        limit = self.config.rate_limit_config.daily_model_calls
        decision = await self.rate_counter.try_acquire(run.user_id, limit)
        if decision.degraded:
            run.warn("Usage tracking is temporarily unavailable.")
        if decision.allowed:
            return True

        error = QuotaExceededError(run.user_id or "anonymous", limit)
        logger.warning(f"{error.message}; downgrading to simple lookup")
        run.warn(f"{error.message}. {error.suggestion}")
        run.kind = QueryKind.SIMPLE
        run.downgraded = True
        return False

    @trace_span("router.store_query")
    async def _query_store(self, filters: ExtractedFilters, limit: int) -> list[Record]:
        timeout = self.config.routing_config.store_timeout_seconds
        try:
            return await call_with_timeout(
                self.store.query,
                filters,
                SortSpec(),
                limit,
                timeout=timeout,
                policy=self.policy,
            )
        except TimeoutError as e:
            logger.error(f"Record store timed out after {timeout}s")
            raise StoreError("The record search took too long and was cancelled.") from e
        except CapabilityError as e:
            logger.error(f"Record store failed: {e}")
            raise StoreError("The record search could not be completed.") from e

    @trace_span("router.model_generate")
    async def _invoke_model(self, prompt: str, run: RouteRun) -> str:
        if self.model is None:
            raise ModelError("No language model is configured.")
        timeout = self.config.routing_config.model_timeout_seconds
        try:
            return await call_with_timeout(
                self.model.generate,
                prompt,
                run.options.thinking_mode,
                timeout=timeout,
                policy=self.policy,
            )
        except TimeoutError as e:
            raise ModelError(f"The language model did not answer within {timeout}s.") from e
        except ModelQuotaExceededError as e:
            raise ModelError("The language model provider is over capacity.") from e
        except CapabilityError as e:
            raise ModelError(f"The language model call failed: {e}") from e

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _result_limit(self, run: RouteRun) -> int:
        return run.options.max_results or self.config.routing_config.max_data_results

    def _metadata(self, run: RouteRun, *, records_analyzed: int) -> QueryMetadata:
        return build_metadata(
            run.kind or QueryKind.COMPLEX,
            run.started_at,
            records_analyzed,
            run.confidence,
            run.filters,
            tokens_used=run.tokens_used,
            warnings=run.warnings,
        )

    async def _cache_get(self, query: str, user_id: str | None) -> QueryIntent | None:
        if self.intent_cache is None:
            return None
        try:
            return await self.intent_cache.get(user_id, query)
        except Exception as e:
            logger.warning(f"Intent cache read failed, classifying afresh: {e}")
            return None

    async def _cache_set(self, query: str, user_id: str | None, intent: QueryIntent) -> None:
        if self.intent_cache is None:
            return
        try:
            await self.intent_cache.set(user_id, query, intent)
        except Exception as e:
            logger.warning(f"Intent cache write failed: {e}")


def _require_text(text: str) -> str:
    query = (text or "").strip()
    if not query:
        raise ValidationError(["Query text is empty"])
    return query

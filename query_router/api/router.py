"""Query router HTTP endpoints.

The ``X-User-Id`` header identifies the caller for the daily model quota
and the intent cache.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from query_router.api.dependencies import get_query_router, get_router_manager, get_user_id
from query_router.api.schemas import ClassifyRequest, HealthResponse, QueryRequest
from query_router.models.domain import QueryIntent, QueryKind, QueryResponse
from query_router.services.events import EventEmitter
from query_router.services.exceptions import QueryRouterError
from query_router.services.query_router import QueryRouter
from query_router.services.router_manager import RouterManager

router = APIRouter(prefix="/api/v1", tags=["Query Router"])


@router.post("/query", response_model=QueryResponse, response_model_exclude_none=True)
async def query(
    request: QueryRequest,
    user_id: str | None = Depends(get_user_id),
    query_router: QueryRouter = Depends(get_query_router),
) -> QueryResponse:
    """Classify the question and answer it on the chosen path."""
    return await query_router.route(request.query, request.to_options(user_id))


@router.post("/query/stream")
async def query_stream(
    request: QueryRequest,
    user_id: str | None = Depends(get_user_id),
    query_router: QueryRouter = Depends(get_query_router),
) -> StreamingResponse:
    """Route the question with real-time SSE progress events.

    Event protocol (one JSON per ``data:`` line):

    - ``{"type": "step_start",     "step": "classifying"}``
    - ``{"type": "step_completed", "step": "executing_simple", "data": {…}}``
    - ``{"type": "done",           "data": {…final QueryResponse…}}``
    - ``{"type": "error",          "data": {"code": …, "message": …, "suggestion": …}}``
    """
    options = request.to_options(user_id)

    async def event_generator() -> AsyncIterator[str]:
        emitter = EventEmitter()

        async def run_route() -> None:
            """Execute routing in a background task."""
            try:
                response = await query_router.route(
                    request.query, options, emitter=emitter
                )
            except QueryRouterError as exc:
                # The router reports failures itself; cover errors raised
                # before its state machine started
                if not emitter.closed:
                    await emitter.emit_error(exc.to_dict())
                return
            await emitter.emit_done(response.to_payload())

        # Run routing concurrently, the emitter yields events in real time
        route_task = asyncio.create_task(run_route())

        try:
            async for sse_line in emitter:
                yield sse_line
        finally:
            if not route_task.done():
                route_task.cancel()
                try:
                    await route_task
                except asyncio.CancelledError:
                    pass

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/classify", response_model=QueryIntent)
async def classify(
    request: ClassifyRequest,
    user_id: str | None = Depends(get_user_id),
    query_router: QueryRouter = Depends(get_query_router),
) -> QueryIntent:
    """Return the intent for a question without executing it."""
    return await query_router.classify(request.query, user_id)


@router.post(
    "/query/{kind}", response_model=QueryResponse, response_model_exclude_none=True
)
async def query_as(
    kind: QueryKind,
    request: QueryRequest,
    user_id: str | None = Depends(get_user_id),
    query_router: QueryRouter = Depends(get_query_router),
) -> QueryResponse:
    """Answer the question on *kind*, bypassing classification."""
    return await query_router.execute_as(
        request.query, kind, request.to_options(user_id)
    )


# ------------------------------------------------------------------
# Health & utility endpoints
# ------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health(
    manager: RouterManager = Depends(get_router_manager),
) -> HealthResponse:
    """Health check: names the configured backends."""
    return HealthResponse(status="ok", backends=manager.describe())

"""Query Router API: FastAPI entry point."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from query_router.api.router import router
from query_router.config.loader import load_config
from query_router.core.http_client_pool import HttpClientPool
from query_router.core.telemetry import TelemetryService
from query_router.services.exceptions import (
    QueryRouterError,
    QuotaExceededError,
    StoreError,
    ValidationError,
)
from query_router.services.router_manager import RouterManager

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Request timeout middleware
# ---------------------------------------------------------------------------

REQUEST_TIMEOUT_SECONDS = 120  # 2 min max per request


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Cancel requests that exceed the configured timeout.

    SSE streaming responses are excluded, their lifecycle ends with the
    client disconnect.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if request.url.path.endswith("/stream"):
            return await call_next(request)
        try:
            return await asyncio.wait_for(
                call_next(request),
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except TimeoutError:
            return JSONResponse(
                {
                    "code": "TIMEOUT",
                    "message": "Request timed out",
                    "suggestion": "Try narrowing your question and send it again.",
                },
                status_code=504,
            )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def status_for(error: QueryRouterError) -> int:
    if isinstance(error, StoreError):
        return 503
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, QuotaExceededError):
        return 429
    return 500


async def query_router_error_handler(request: Request, exc: QueryRouterError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=status_for(exc))


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialise and tear down shared resources."""
    # Startup
    config = load_config()
    telemetry = TelemetryService(config.telemetry_config, VERSION)

    http_pool = HttpClientPool()
    app.state.router_manager = RouterManager(config, http_pool)
    app.state.http_pool = http_pool

    logger.info("Query router started, backends: %s", app.state.router_manager.describe())

    yield

    # Shutdown
    await app.state.router_manager.close()
    await http_pool.close_all()
    telemetry.shutdown()
    logger.info("Query router shutdown complete")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    application = FastAPI(
        title="Query Router",
        description="Routes natural-language questions to record lookup, "
        "model analysis, or both",
        version=VERSION,
        lifespan=lifespan,
    )
    application.add_middleware(TimeoutMiddleware)
    application.add_exception_handler(QueryRouterError, query_router_error_handler)
    application.include_router(router)
    return application


app = create_app()

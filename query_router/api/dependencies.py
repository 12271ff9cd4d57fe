"""FastAPI dependency injection: router and caller resolution."""

from __future__ import annotations

from fastapi import Header, Request

from query_router.services.query_router import QueryRouter
from query_router.services.router_manager import RouterManager


def get_router_manager(request: Request) -> RouterManager:
    """Retrieve the :class:`RouterManager` from app state."""
    return request.app.state.router_manager


def get_query_router(request: Request) -> QueryRouter:
    return get_router_manager(request).router


async def get_user_id(
    x_user_id: str | None = Header(
        None, alias="X-User-Id", description="Caller identity set by the gateway"
    ),
) -> str | None:
    """Caller id used for rate limiting and intent caching.

    Blank headers count as anonymous.
    """
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()

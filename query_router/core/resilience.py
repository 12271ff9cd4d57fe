"""Resilience module: retry policies and deadline-bound execution.

Provides standard retry configurations (exponential backoff) and safe execution
wrappers for external capability calls (record store, language model).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from query_router.services.exceptions import (
    ModelUnavailableError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

# Transport-level failures worth another attempt.  Quota and malformed
# responses are deterministic and are never retried.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    httpx.TransportError,
    StoreUnavailableError,
    ModelUnavailableError,
)


def build_retry_policy(
    attempts: int = 3, min_wait: float = 1, max_wait: float = 10
) -> AsyncRetrying:
    """Exponential backoff policy: wait 1s, 2s, 4s... up to *max_wait*."""
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        reraise=True,
    )


# Standard retry policy for external dependencies
RETRY_POLICY = build_retry_policy()


async def execute_with_policy(
    policy: AsyncRetrying,
    func: Callable[P, Awaitable[R]],
    *args: P.args,
    **kwargs: P.kwargs,
) -> R:
    """Execute *func* under *policy*.

    Retries on network errors only.  Does NOT retry on logical errors
    (quota exhaustion, malformed responses, ValueError, ...).
    """
    try:
        # copy() gives each call its own retry state
        async for attempt in policy.copy():
            with attempt:
                return await func(*args, **kwargs)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Operation failed: {getattr(func, '__name__', func)} - {e}")
        raise
    raise RuntimeError("retry policy finished without an attempt")


async def call_with_timeout(
    func: Callable[..., Awaitable[R]],
    *args: object,
    timeout: float,
    policy: AsyncRetrying | None = None,
    **kwargs: object,
) -> R:
    """Run *func* with retries, bounded by a single wall-clock deadline.

    The deadline covers every attempt and backoff sleep.  On expiry the
    in-flight call is cancelled (releasing its connection) and
    :class:`TimeoutError` is raised immediately.
    """
    async with asyncio.timeout(timeout):
        return await execute_with_policy(
            policy or RETRY_POLICY, func, *args, **kwargs
        )

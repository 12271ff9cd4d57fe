"""Per-request routing state passed between router steps."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from query_router.models.domain import (
    ExtractedFilters,
    QueryIntent,
    QueryKind,
    Record,
    RouteOptions,
)
from query_router.services.context_builder import ContextWindow
from query_router.services.events import EventEmitter

logger = logging.getLogger(__name__)


class RouteState(StrEnum):
    START = "start"
    CLASSIFYING = "classifying"
    EXECUTING_SIMPLE = "executing_simple"
    BUILDING_CONTEXT = "building_context"
    INVOKING_MODEL = "invoking_model"
    FORMATTING = "formatting"
    DONE = "done"
    FAILED = "failed"


# FAILED is reachable from every non-terminal state and is not listed.
TRANSITIONS: dict[RouteState, frozenset[RouteState]] = {
    RouteState.START: frozenset({RouteState.CLASSIFYING}),
    RouteState.CLASSIFYING: frozenset(
        {RouteState.EXECUTING_SIMPLE, RouteState.BUILDING_CONTEXT}
    ),
    # Hybrid runs the store query before building context
    RouteState.EXECUTING_SIMPLE: frozenset(
        {RouteState.FORMATTING, RouteState.BUILDING_CONTEXT}
    ),
    # Quota downgrade re-enters the simple path; empty pools skip the model
    RouteState.BUILDING_CONTEXT: frozenset(
        {
            RouteState.INVOKING_MODEL,
            RouteState.EXECUTING_SIMPLE,
            RouteState.FORMATTING,
        }
    ),
    RouteState.INVOKING_MODEL: frozenset({RouteState.FORMATTING}),
    RouteState.FORMATTING: frozenset({RouteState.DONE}),
    RouteState.DONE: frozenset(),
    RouteState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({RouteState.DONE, RouteState.FAILED})


class InvalidTransitionError(RuntimeError):
    def __init__(self, current: RouteState, target: RouteState) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid route transition {current} -> {target}")


@dataclass
class RouteRun:
    """Mutable record of one routing request.

    Each step reads from and writes to fields on this object.  State changes
    go through :meth:`transition`, which validates the edge and emits
    ``step_completed`` / ``step_start`` events when an emitter is attached.
    """

    # Input
    query: str
    options: RouteOptions = field(default_factory=RouteOptions)

    # State machine
    state: RouteState = RouteState.START
    history: list[RouteState] = field(default_factory=lambda: [RouteState.START])
    started_at: float = field(default_factory=time.perf_counter)

    # Populated by router steps
    intent: QueryIntent | None = None
    kind: QueryKind | None = None
    filters: ExtractedFilters = field(default_factory=ExtractedFilters)
    records: list[Record] = field(default_factory=list)
    context: ContextWindow | None = None
    prompt: str | None = None
    answer: str | None = None
    tokens_used: int | None = None
    warnings: list[str] = field(default_factory=list)
    # Set when the daily model quota forced the simple path
    downgraded: bool = False

    # Event emitter for SSE streaming
    emitter: EventEmitter | None = None

    @property
    def user_id(self) -> str | None:
        return self.options.user_id

    @property
    def confidence(self) -> float:
        return self.intent.confidence if self.intent else 0.0

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    async def transition(self, target: RouteState, result: Any = None) -> None:
        """Move to *target*.

        ``result`` is attached to the ``step_completed`` event of the state
        being left.

        Raises:
            InvalidTransitionError: If the edge is not part of the machine.
        """
        current = self.state
        if target is RouteState.FAILED:
            if current in TERMINAL_STATES:
                raise InvalidTransitionError(current, target)
        elif target not in TRANSITIONS[current]:
            raise InvalidTransitionError(current, target)

        self.state = target
        self.history.append(target)
        logger.debug(f"Route {current} -> {target}")

        if self.emitter:
            if current is not RouteState.START:
                await self.emitter.emit_step_completed(current.value, result)
            if target not in TERMINAL_STATES:
                await self.emitter.emit_step_start(target.value)

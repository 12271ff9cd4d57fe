"""SSE (Server-Sent Events) protocol models and event emitter.

Streams routing progress to the client.  Every router state emits
``step_start`` when entered and ``step_completed`` when left.

Event types
-----------

.. list-table::
   :header-rows: 1

   * - type
     - description
   * - ``step_start``
     - A routing state is beginning.
   * - ``step_completed``
     - A routing state has finished, includes a result payload.
   * - ``done``
     - Routing has finished, includes the final response.
   * - ``error``
     - Routing failed, includes ``{code, message, suggestion}``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    """SSE event types."""

    STEP_START = "step_start"
    STEP_COMPLETED = "step_completed"
    DONE = "done"
    ERROR = "error"


@dataclass
class StreamEvent:
    """A single SSE event."""

    type: EventType
    step: str | None = None
    data: Any = None

    def to_sse(self) -> str:
        r"""Serialise to SSE wire format (``data: ...\\n\\n``)."""
        payload = {"type": self.type.value}
        if self.step is not None:
            payload["step"] = self.step
        if self.data is not None:
            payload["data"] = self.data
        return f"data: {json.dumps(payload, default=str)}\n\n"


class EventEmitter:
    """Async event emitter that bridges routing with SSE output.

    The router pushes events via :meth:`emit`; the API layer consumes them
    via ``async for sse_line in emitter``.
    """

    def __init__(self, maxsize: int = 500) -> None:
        self._queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Producer API (called by the router)
    # ------------------------------------------------------------------

    async def emit(self, event: StreamEvent) -> None:
        """Push a single event.  Blocks while the queue is full."""
        if self._closed:
            return
        await self._queue.put(event)

    async def emit_step_start(self, step_name: str) -> None:
        await self.emit(StreamEvent(type=EventType.STEP_START, step=step_name))

    async def emit_step_completed(self, step_name: str, result: Any = None) -> None:
        await self.emit(
            StreamEvent(type=EventType.STEP_COMPLETED, step=step_name, data=result)
        )

    async def emit_done(self, data: Any = None) -> None:
        """Emit the final ``done`` event and close."""
        await self.emit(StreamEvent(type=EventType.DONE, data=data))
        await self.close()

    async def emit_error(self, error: Any) -> None:
        """Emit an ``error`` event and close."""
        await self.emit(StreamEvent(type=EventType.ERROR, data=error))
        await self.close()

    async def close(self) -> None:
        """Signal that no more events will be emitted."""
        if self._closed:
            return
        # Sentinel goes in before the flag flips so emit() cannot race it
        await self._queue.put(None)
        self._closed = True

    # ------------------------------------------------------------------
    # Consumer API (used by the API layer)
    # ------------------------------------------------------------------

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iter_sse()

    async def _iter_sse(self) -> AsyncIterator[str]:
        """Yield SSE-formatted strings until closed."""
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event.to_sse()

"""Async event bus between the process collaborator and the multiplexer.

The collaborator emits events (or plain dicts through the callback);
``SessionMultiplexer.run`` consumes them in arrival order, which keeps
chunk application FIFO per session.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from chorus.adapters.events import MultiplexerEvent, dict_to_event

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue bridging event producers to a single consumer."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[MultiplexerEvent] = asyncio.Queue(
            maxsize=maxsize
        )
        self._closed = False

    async def _callback(self, data: dict[str, Any]) -> None:
        """Callback usable as EngineConfig.event_callback."""
        await self.emit(dict_to_event(data))

    def make_callback(self):
        """Return the async callback for EngineConfig.event_callback."""
        return self._callback

    async def emit(self, event: MultiplexerEvent) -> None:
        """Queue an event. Ignored once the bus is closed."""
        if self._closed:
            return
        try:
            # Backpressure instead of dropping
            await asyncio.wait_for(self._queue.put(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for 30s, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[MultiplexerEvent]:
        """Yield events as they arrive.

        Stops after close(), once events queued before it are drained.
        """
        while not (self._closed and self._queue.empty()):
            try:
                event = await asyncio.wait_for(
                    self._queue.get(), timeout=0.5
                )
            except asyncio.TimeoutError:
                continue
            yield event

    def close(self) -> None:
        """Stop accepting events and end the consumer loop."""
        self._closed = True

    def reset(self) -> None:
        """Drain leftover events and re-open the bus."""
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

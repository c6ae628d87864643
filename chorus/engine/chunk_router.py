"""Chunk router — per-session accumulation of streamed agent output.

Chunks for one session are appended strictly in arrival order. The
router never reorders, never parses per chunk, and keeps each buffer
after the turn finishes until the consumer calls ``clear``. Parsing is
lazy: ``transcript()`` runs the session's bound parser over whatever
has accumulated so far.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

from chorus.shared.transcript import ParsedTranscript, TranscriptParser, parser_for

from .config import EventCallback, fire_event
from .models import AgentKind, StreamChunk
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)

# Oldest terminated ids are forgotten beyond this many
MAX_TOMBSTONES = 4096


@dataclass
class TranscriptView:
    """What a consumer renders for one turn.

    ``parsed`` is None when the bound parser declined the buffer; the
    consumer then shows ``raw`` as-is. ``errors`` are out-of-band error
    messages reported for the turn, never part of ``raw``.
    """
    session_id: str
    parsed: ParsedTranscript | None
    raw: str
    ok: bool
    finished: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class _Turn:
    session_id: str
    agent_kind: AgentKind | None
    parser: TranscriptParser
    parts: list[str] = field(default_factory=list)
    length: int = 0
    finished: bool = False
    errors: list[str] = field(default_factory=list)
    _joined: str = ""
    _joined_parts: int = 0
    _last: tuple[ParsedTranscript, bool] | None = None
    _last_length: int = -1

    def append(self, content: str) -> None:
        if content:
            self.parts.append(content)
            self.length += len(content)

    @property
    def text(self) -> str:
        if self._joined_parts != len(self.parts):
            self._joined = "".join(self.parts)
            self.parts = [self._joined] if self._joined else []
            self._joined_parts = len(self.parts)
        return self._joined


class ChunkRouter:
    """Routes StreamChunks into per-session buffers."""

    def __init__(
        self,
        registry: SessionRegistry,
        event_callback: EventCallback | None = None,
        max_tombstones: int = MAX_TOMBSTONES,
    ) -> None:
        self._registry = registry
        self._event_callback = event_callback
        self._turns: dict[str, _Turn] = {}
        # Terminated ids: later chunks for these are dropped
        self._tombstones: OrderedDict[str, None] = OrderedDict()
        self._max_tombstones = max_tombstones
        self._lock = threading.RLock()

    def bind(self, session_id: str, agent_kind: AgentKind) -> None:
        """Resolve the session's parser once, when the session is created.

        A turn started implicitly by early output keeps its buffer and
        switches to the right parser. A terminated or finished id gets
        a fresh buffer.
        """
        with self._lock:
            turn = self._turns.get(session_id)
            recreated = session_id in self._tombstones
            self._tombstones.pop(session_id, None)
            if turn is None or recreated or (turn.finished and turn.agent_kind is not None):
                self._turns[session_id] = _Turn(
                    session_id=session_id,
                    agent_kind=agent_kind,
                    parser=parser_for(agent_kind),
                )
            elif turn.agent_kind != agent_kind:
                turn.agent_kind = agent_kind
                turn.parser = parser_for(agent_kind)
                turn._last = None
        logger.debug(
            "Bound session %s to %s parser", session_id, agent_kind.value,
        )

    async def route(self, chunk: StreamChunk) -> bool:
        """Append a chunk. Returns False if the chunk was dropped."""
        event: dict[str, Any] | None = None
        with self._lock:
            sid = chunk.session_id
            if sid in self._tombstones:
                logger.debug("Dropping chunk for terminated session %s", sid)
                return False
            turn = self._turns.get(sid)
            if turn is None:
                session, _ = self._registry.get_or_create(sid)
                turn = _Turn(
                    session_id=sid,
                    agent_kind=session.agent_kind,
                    parser=parser_for(session.agent_kind),
                )
                self._turns[sid] = turn
            elif turn.finished:
                logger.debug("Dropping chunk after finish for session %s", sid)
                return False

            turn.append(chunk.content)
            self._registry.touch(sid)

            if chunk.finished:
                turn.finished = True
                self._registry.mark_inactive(sid)
                parsed, ok = self._parse(turn)
                event = {
                    "event": "transcript_finished",
                    "session_id": sid,
                    "ok": ok,
                    "success": parsed.success if ok else None,
                    "length": turn.length,
                }
                logger.info(
                    "Session %s finished: %d chars, parsed=%s", sid, turn.length, ok,
                )

        if event is not None:
            await fire_event(self._event_callback, event)
        return True

    async def record_error(self, session_id: str, message: str) -> None:
        """Attach an out-of-band error message to the session's turn."""
        with self._lock:
            turn = self._turns.get(session_id)
            if turn is None:
                session, _ = self._registry.get_or_create(session_id)
                turn = _Turn(
                    session_id=session_id,
                    agent_kind=session.agent_kind,
                    parser=parser_for(session.agent_kind),
                )
                self._turns[session_id] = turn
            turn.errors.append(message)
        logger.warning("Session %s error: %s", session_id, message)
        await fire_event(self._event_callback, {
            "event": "session_error",
            "session_id": session_id,
            "message": message,
        })

    def terminate(self, session_id: str) -> bool:
        """Stop routing for ``session_id``. Returns False if already stopped."""
        with self._lock:
            if session_id in self._tombstones:
                return False
            self._tombstones[session_id] = None
            while len(self._tombstones) > self._max_tombstones:
                self._tombstones.popitem(last=False)
            return True

    def transcript(self, session_id: str) -> TranscriptView | None:
        """Parse the accumulated buffer. None for an unknown session."""
        with self._lock:
            turn = self._turns.get(session_id)
            if turn is None:
                return None
            parsed, ok = self._parse(turn)
            return TranscriptView(
                session_id=session_id,
                parsed=parsed if ok else None,
                raw=turn.text,
                ok=ok,
                finished=turn.finished,
                errors=list(turn.errors),
            )

    def buffer(self, session_id: str) -> str | None:
        with self._lock:
            turn = self._turns.get(session_id)
            return turn.text if turn is not None else None

    def buffer_length(self, session_id: str) -> int:
        with self._lock:
            turn = self._turns.get(session_id)
            return turn.length if turn is not None else 0

    def clear(self, session_id: str) -> bool:
        """Release a retained buffer.

        Termination state is kept while the registry still knows the
        session, and dropped once the registry has let it go.
        """
        with self._lock:
            released = self._turns.pop(session_id, None) is not None
            if self._registry.get(session_id) is None:
                self._tombstones.pop(session_id, None)
            return released

    @property
    def tombstone_count(self) -> int:
        with self._lock:
            return len(self._tombstones)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._turns)

    def _parse(self, turn: _Turn) -> tuple[ParsedTranscript, bool]:
        if turn._last is not None and turn._last_length == turn.length:
            return turn._last
        try:
            result = turn.parser.parse(turn.text)
        except Exception:
            # Parse failures degrade to raw display
            logger.debug(
                "%s parser failed for %s", turn.parser.name, turn.session_id,
                exc_info=True,
            )
            result = (ParsedTranscript(), False)
        turn._last = result
        turn._last_length = turn.length
        return result

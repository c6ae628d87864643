"""Session multiplexer — single entry point for a host.

Owns one SessionRegistry and one ChunkRouter and keeps them in step:
creating a session binds its parser, terminating it stops routing, and
the idle reaper terminates both sides together.
"""
from __future__ import annotations

import logging

from chorus.adapters.event_bus import EventBus
from chorus.adapters.events import (
    MultiplexerEvent,
    SessionExited,
    SessionFailed,
    SessionStarted,
    StreamChunkEvent,
)

from .chunk_router import ChunkRouter, TranscriptView
from .config import EngineConfig
from .errors import DuplicateSessionError, UnknownAgentError
from .models import AgentKind, Session, SessionStatus, StreamChunk
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionMultiplexer:
    """Tracks concurrent agent sessions and their streamed transcripts."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self.registry = SessionRegistry()
        self.router = ChunkRouter(
            self.registry, event_callback=self.config.event_callback,
        )

    def open_session(
        self,
        session_id: str,
        agent_kind: AgentKind | str,
        working_dir: str | None = None,
    ) -> Session:
        """Register a dispatched turn and bind its transcript parser.

        Raises DuplicateSessionError if ``session_id`` is still live and
        UnknownAgentError for an unrecognized agent name.
        """
        if not isinstance(agent_kind, AgentKind):
            agent_kind = AgentKind.parse(agent_kind)
        session = self.registry.create(session_id, agent_kind, working_dir)
        self.router.bind(session_id, agent_kind)
        live = sum(1 for s in self.registry.list() if s.is_active)
        if live > self.config.max_concurrent_sessions:
            logger.warning(
                "%d live sessions exceeds configured maximum %d",
                live, self.config.max_concurrent_sessions,
            )
        return session

    async def route(self, chunk: StreamChunk) -> bool:
        return await self.router.route(chunk)

    async def record_error(self, session_id: str, message: str) -> None:
        await self.router.record_error(session_id, message)

    def terminate(self, session_id: str) -> bool:
        """Stop a session. Idempotent; the buffer stays readable."""
        existed = self.registry.terminate(session_id)
        self.router.terminate(session_id)
        return existed

    def transcript(self, session_id: str) -> TranscriptView | None:
        return self.router.transcript(session_id)

    def clear(self, session_id: str) -> bool:
        return self.router.clear(session_id)

    def status(self) -> SessionStatus:
        return self.registry.status()

    def cleanup_inactive(self) -> list[str]:
        """Terminate sessions idle longer than the configured timeout."""
        removed = self.registry.cleanup_inactive(self.config.session_timeout_seconds)
        for session_id in removed:
            self.router.terminate(session_id)
        return removed

    async def handle_event(self, event: MultiplexerEvent) -> None:
        """Apply one event from the process collaborator."""
        if isinstance(event, StreamChunkEvent):
            await self.route(event.to_chunk())
        elif isinstance(event, SessionStarted):
            try:
                self.open_session(event.session_id, event.agent, event.working_dir)
            except (DuplicateSessionError, UnknownAgentError) as exc:
                logger.warning("Ignoring session_started for %s: %s", event.session_id, exc)
        elif isinstance(event, SessionFailed):
            await self.record_error(event.session_id, event.error)
        elif isinstance(event, SessionExited):
            view = self.router.transcript(event.session_id)
            if view is not None and not view.finished:
                await self.route(StreamChunk(session_id=event.session_id, finished=True))
            self.terminate(event.session_id)
            logger.info(
                "Session %s process exited (code=%s)", event.session_id, event.exit_code,
            )
        else:
            logger.debug("Ignoring event %s", event.event_type)

    async def run(self, bus: EventBus) -> None:
        """Consume events from ``bus`` until it is closed."""
        async for event in bus.consume():
            await self.handle_event(event)

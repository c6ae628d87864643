"""Session registry — authoritative map of live agent sessions.

Pure bookkeeping: the registry never spawns or kills processes. All
mutations are serialized by one lock so a multi-threaded host can
share a single registry.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from .errors import DuplicateSessionError
from .models import AgentKind, Session, SessionStatus

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TIMEOUT_SECONDS = 1800.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _session_key(agent_kind: AgentKind | None, working_dir: str | None) -> str:
    agent = agent_kind.value if agent_kind else "unknown"
    return f"{agent}:{working_dir}" if working_dir else agent


class SessionRegistry:
    """Tracks which logical turns map to which running agent."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        # agent+working_dir -> most recent session_id
        self._index: dict[str, str] = {}
        self._lock = threading.RLock()

    def create(
        self,
        session_id: str,
        agent_kind: AgentKind,
        working_dir: str | None = None,
    ) -> Session:
        """Register a session for a dispatched turn.

        Adopts an implicit session created by early output for the same
        id, and replaces a finished (inactive) one. Raises
        DuplicateSessionError if an explicit session is still live.
        """
        with self._lock:
            existing = self._sessions.get(session_id)
            if existing is not None and not existing.implicit:
                if existing.is_active:
                    raise DuplicateSessionError(session_id)
                logger.info("Replacing finished session %s", session_id)
                existing = None

            if existing is not None:
                existing.agent_kind = agent_kind
                existing.working_dir = working_dir
                existing.implicit = False
                existing.last_activity = _utcnow()
                session = existing
                logger.info(
                    "Session adopted: %s agent=%s cwd=%s",
                    session_id, agent_kind.value, working_dir,
                )
            else:
                session = Session(
                    session_id=session_id,
                    agent_kind=agent_kind,
                    working_dir=working_dir,
                )
                self._sessions[session_id] = session
                logger.info(
                    "Session created: %s agent=%s cwd=%s",
                    session_id, agent_kind.value, working_dir,
                )
            self._index[_session_key(agent_kind, working_dir)] = session_id
            return session

    def get_or_create(self, session_id: str) -> tuple[Session, bool]:
        """Return (session, created). Unknown ids become implicit sessions."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                return session, False
            session = Session(session_id=session_id, implicit=True)
            self._sessions[session_id] = session
            logger.debug("Implicit session created from early output: %s", session_id)
            return session, True

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def touch(self, session_id: str) -> None:
        """Record activity. Unknown ids are logged, never an error."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.debug("touch() for unknown session %s", session_id)
                return
            session.last_activity = _utcnow()

    def mark_inactive(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            session.is_active = False
            session.last_activity = _utcnow()

    def terminate(self, session_id: str) -> bool:
        """Remove a session. Returns whether it existed. Idempotent."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            key = _session_key(session.agent_kind, session.working_dir)
            if self._index.get(key) == session_id:
                self._index.pop(key, None)
        logger.info("Session terminated: %s", session_id)
        return True

    def find(self, agent_kind: AgentKind, working_dir: str | None = None) -> Session | None:
        """Most recent live session for an agent in a working directory."""
        with self._lock:
            session_id = self._index.get(_session_key(agent_kind, working_dir))
            if session_id is None:
                return None
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return None
            return session

    def list(self) -> list[Session]:
        """Snapshot of all registered sessions. Order is not meaningful."""
        with self._lock:
            return [replace(s) for s in self._sessions.values()]

    def status(self) -> SessionStatus:
        sessions = self.list()
        return SessionStatus(
            active_sessions=[s for s in sessions if s.is_active],
            total_sessions=len(sessions),
        )

    def expired(
        self,
        timeout_seconds: float = DEFAULT_SESSION_TIMEOUT_SECONDS,
        now: datetime | None = None,
    ) -> list[str]:
        """Ids of sessions idle for longer than timeout_seconds."""
        cutoff = (now or _utcnow()) - timedelta(seconds=timeout_seconds)
        with self._lock:
            return [
                sid for sid, s in self._sessions.items()
                if s.last_activity < cutoff
            ]

    def cleanup_inactive(
        self,
        timeout_seconds: float = DEFAULT_SESSION_TIMEOUT_SECONDS,
        now: datetime | None = None,
    ) -> list[str]:
        """Terminate idle sessions and return their ids."""
        removed = [
            sid for sid in self.expired(timeout_seconds, now)
            if self.terminate(sid)
        ]
        if removed:
            logger.info("Reaped %d idle session(s)", len(removed))
        return removed

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

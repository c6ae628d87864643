"""Event types exchanged with the process collaborator.

Inbound events (session started, stream chunk, failure, exit) drive the
multiplexer. Outbound events (transcript finished, session error) are
what the router reports through ``EngineConfig.event_callback``. Both
arrive as plain dicts and are parsed into typed dataclasses here.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from chorus.engine.models import StreamChunk


@dataclass
class MultiplexerEvent:
    """Base event."""
    event_type: str = ""
    session_id: str = ""


@dataclass
class SessionStarted(MultiplexerEvent):
    event_type: str = "session_started"
    agent: str = ""
    working_dir: str | None = None


@dataclass
class StreamChunkEvent(MultiplexerEvent):
    event_type: str = "stream_chunk"
    content: str = ""
    finished: bool = False

    def to_chunk(self) -> StreamChunk:
        return StreamChunk(
            session_id=self.session_id,
            content=self.content,
            finished=self.finished,
        )


@dataclass
class SessionFailed(MultiplexerEvent):
    event_type: str = "session_failed"
    error: str = ""


@dataclass
class SessionExited(MultiplexerEvent):
    event_type: str = "session_exited"
    exit_code: int | None = None


@dataclass
class TranscriptFinished(MultiplexerEvent):
    event_type: str = "transcript_finished"
    ok: bool = False
    success: bool | None = None
    length: int = 0


@dataclass
class SessionError(MultiplexerEvent):
    event_type: str = "session_error"
    message: str = ""


_EVENT_MAP: dict[str, type[MultiplexerEvent]] = {
    "session_started": SessionStarted,
    "stream_chunk": StreamChunkEvent,
    "session_failed": SessionFailed,
    "session_exited": SessionExited,
    "transcript_finished": TranscriptFinished,
    "session_error": SessionError,
}


def dict_to_event(data: dict[str, Any]) -> MultiplexerEvent:
    """Convert a callback dict to a typed event dataclass."""
    event_type = data.get("event", "")
    cls = _EVENT_MAP.get(event_type, MultiplexerEvent)
    # Filter dict keys to only those the dataclass accepts
    valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    # Map "event" key to "event_type" field
    if "event" in data and "event_type" not in filtered:
        filtered["event_type"] = data["event"]
    return cls(**filtered)

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from chorus.adapters.event_bus import EventBus
from chorus.adapters.events import (
    SessionExited,
    SessionFailed,
    SessionStarted,
    StreamChunkEvent,
    TranscriptFinished,
    dict_to_event,
)
from chorus.engine.config import EngineConfig
from chorus.engine.errors import DuplicateSessionError, UnknownAgentError
from chorus.engine.models import AgentKind, StreamChunk
from chorus.engine.multiplexer import SessionMultiplexer

CODEX_TURN = """🔗 Agent: codex | Command: list files

✅ **Command:** `ls`
```
a.py
```

Only one file.

✅ Command completed successfully
"""


def test_open_session_accepts_agent_names() -> None:
    mux = SessionMultiplexer()
    session = mux.open_session("s1", "Claude Code", "/w")
    assert session.agent_kind == AgentKind.CLAUDE
    assert mux.status().total_sessions == 1


def test_open_session_rejects_unknown_agent() -> None:
    mux = SessionMultiplexer()
    with pytest.raises(UnknownAgentError, match="Supported agents"):
        mux.open_session("s1", "cursor")
    assert mux.status().total_sessions == 0


def test_open_session_twice_raises() -> None:
    mux = SessionMultiplexer()
    mux.open_session("s1", AgentKind.CODEX)
    with pytest.raises(DuplicateSessionError):
        mux.open_session("s1", AgentKind.CODEX)


@pytest.mark.asyncio
async def test_codex_turn_end_to_end() -> None:
    mux = SessionMultiplexer()
    mux.open_session("s1", AgentKind.CODEX)
    for i in range(0, len(CODEX_TURN), 11):
        await mux.route(StreamChunk("s1", CODEX_TURN[i:i + 11]))
    await mux.route(StreamChunk("s1", finished=True))

    view = mux.transcript("s1")
    assert view.ok is True
    assert view.parsed.header.command == "list files"
    assert view.parsed.working == ["Command: ls"]
    assert view.parsed.answer == "Only one file."
    assert view.parsed.success is True


@pytest.mark.asyncio
async def test_terminate_keeps_buffer_and_is_idempotent() -> None:
    mux = SessionMultiplexer()
    mux.open_session("s1", AgentKind.TEST)
    await mux.route(StreamChunk("s1", "abc"))

    assert mux.terminate("s1") is True
    assert mux.terminate("s1") is False
    assert await mux.route(StreamChunk("s1", "def")) is False
    assert mux.transcript("s1").raw == "abc"
    assert mux.clear("s1") is True


@pytest.mark.asyncio
async def test_reopen_after_terminate() -> None:
    mux = SessionMultiplexer()
    mux.open_session("s1", AgentKind.TEST)
    await mux.route(StreamChunk("s1", "first"))
    mux.terminate("s1")

    mux.open_session("s1", AgentKind.TEST)
    await mux.route(StreamChunk("s1", "second"))
    assert mux.transcript("s1").raw == "second"


def test_cleanup_inactive_uses_configured_timeout() -> None:
    mux = SessionMultiplexer(EngineConfig(session_timeout_seconds=60))
    session = mux.open_session("s1", AgentKind.TEST)
    session.last_activity -= timedelta(minutes=5)

    assert mux.cleanup_inactive() == ["s1"]
    assert mux.status().total_sessions == 0
    assert mux.terminate("s1") is False


@pytest.mark.asyncio
async def test_handle_event_lifecycle() -> None:
    callback = AsyncMock()
    mux = SessionMultiplexer(EngineConfig(event_callback=callback))

    await mux.handle_event(SessionStarted(session_id="s1", agent="test", working_dir="/w"))
    await mux.handle_event(StreamChunkEvent(session_id="s1", content="hello"))
    await mux.handle_event(SessionFailed(session_id="s1", error="stderr noise"))
    await mux.handle_event(SessionExited(session_id="s1", exit_code=0))

    view = mux.transcript("s1")
    assert view.raw == "hello"
    assert view.finished is True
    assert view.errors == ["stderr noise"]
    assert "s1" not in mux.registry
    events = [call.args[0]["event"] for call in callback.await_args_list]
    assert events == ["session_error", "transcript_finished"]


@pytest.mark.asyncio
async def test_duplicate_session_started_is_ignored() -> None:
    mux = SessionMultiplexer()
    await mux.handle_event(SessionStarted(session_id="s1", agent="codex"))
    await mux.handle_event(SessionStarted(session_id="s1", agent="codex"))
    await mux.handle_event(SessionStarted(session_id="s2", agent="nope"))

    assert mux.status().total_sessions == 1


def test_dict_to_event() -> None:
    event = dict_to_event({
        "event": "transcript_finished", "session_id": "s1",
        "ok": True, "success": None, "length": 3, "extra": "ignored",
    })
    assert isinstance(event, TranscriptFinished)
    assert event.event_type == "transcript_finished"
    assert event.length == 3

    unknown = dict_to_event({"event": "mystery", "session_id": "x"})
    assert unknown.event_type == "mystery"


@pytest.mark.asyncio
async def test_run_consumes_bus_until_closed() -> None:
    bus = EventBus()
    mux = SessionMultiplexer()

    await bus.emit(SessionStarted(session_id="s1", agent="test"))
    for piece in ("a", "b", "c"):
        await bus.emit(StreamChunkEvent(session_id="s1", content=piece))
    await bus.emit(StreamChunkEvent(session_id="s1", finished=True))
    bus.close()

    await asyncio.wait_for(mux.run(bus), timeout=5)
    view = mux.transcript("s1")
    assert view.raw == "abc"
    assert view.finished is True
    assert bus.pending == 0


@pytest.mark.asyncio
async def test_bus_callback_turns_dicts_into_events() -> None:
    bus = EventBus()
    callback = bus.make_callback()
    await callback({"event": "session_error", "session_id": "s1", "message": "boom"})
    bus.close()

    received = [event async for event in bus.consume()]
    assert len(received) == 1
    assert received[0].message == "boom"

    await bus.emit(SessionStarted(session_id="s2", agent="test"))
    assert bus.pending == 0
    bus.reset()
    await bus.emit(SessionStarted(session_id="s2", agent="test"))
    assert bus.pending == 1

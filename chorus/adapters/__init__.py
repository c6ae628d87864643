"""Adapters between the process collaborator and the multiplexer."""
from .event_bus import EventBus
from .events import (
    MultiplexerEvent,
    SessionError,
    SessionExited,
    SessionFailed,
    SessionStarted,
    StreamChunkEvent,
    TranscriptFinished,
    dict_to_event,
)

__all__ = [
    "EventBus",
    "MultiplexerEvent",
    "SessionStarted",
    "StreamChunkEvent",
    "SessionFailed",
    "SessionExited",
    "TranscriptFinished",
    "SessionError",
    "dict_to_event",
]

"""Agent-agnostic transcript structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BlockKind(str, Enum):
    REASONING = "reasoning"
    COMMAND = "command"
    FILE_CHANGES = "file_changes"
    TOOL_CALL = "tool_call"
    WEB_SEARCH = "web_search"
    TODO_LIST = "todo_list"
    TOKEN_USAGE = "token_usage"
    ERROR = "error"
    USER_INSTRUCTIONS = "user_instructions"
    MESSAGE = "message"


@dataclass
class TranscriptHeader:
    """The originating command line of a turn."""
    agent: str
    command: str


@dataclass
class TranscriptBlock:
    """One classified block of a markdown-block transcript.

    ``fields`` holds whatever sub-fields could be extracted; a block
    whose sub-grammar did not match keeps its text and an empty map.
    """
    kind: BlockKind
    text: str
    status: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedTranscript:
    """Structured view of one session's output.

    Every field is optional. ``None`` means the agent's output did not
    carry that section at all.
    """
    working: list[str] = field(default_factory=list)
    header: TranscriptHeader | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    user_instructions: str | None = None
    thinking: str | None = None
    answer: str | None = None
    tokens: int | None = None
    success: bool | None = None
    items: list[TranscriptBlock] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return (
            not self.working
            and self.header is None
            and not self.metadata
            and self.user_instructions is None
            and self.thinking is None
            and self.answer is None
            and self.tokens is None
            and self.success is None
            and not self.items
        )

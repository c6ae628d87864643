"""Static binding of agent kinds to transcript parsers."""
from __future__ import annotations

from chorus.engine.models import AgentKind

from .base import TranscriptParser
from .markdown_blocks import MarkdownBlockParser
from .plain_text import PlainTextParser
from .stream_json import StreamJsonParser

PARSER_BINDING: dict[AgentKind, type[TranscriptParser]] = {
    AgentKind.CLAUDE: StreamJsonParser,
    AgentKind.CODEX: MarkdownBlockParser,
    AgentKind.GEMINI: PlainTextParser,
    AgentKind.TEST: PlainTextParser,
}


def parser_for(kind: AgentKind | None) -> TranscriptParser:
    """Fresh parser instance for ``kind``. Unbound sessions get plain text."""
    if kind is None:
        return PlainTextParser()
    parser_cls = PARSER_BINDING.get(kind, PlainTextParser)
    if parser_cls is StreamJsonParser:
        return StreamJsonParser(agent=kind.value)
    return parser_cls()

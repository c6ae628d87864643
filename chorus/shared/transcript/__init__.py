"""Transcript parsers: one per agent output protocol."""
from .base import TranscriptParser
from .codex_events import CodexEventRenderer, CodexLineAccumulator, sanitize_output_line
from .markdown_blocks import MarkdownBlockParser
from .models import BlockKind, ParsedTranscript, TranscriptBlock, TranscriptHeader
from .plain_text import PlainTextParser
from .registry import PARSER_BINDING, parser_for
from .stream_json import JsonObjectScanner, StreamJsonParser, extract_first_object

__all__ = [
    "TranscriptParser",
    "ParsedTranscript",
    "TranscriptHeader",
    "TranscriptBlock",
    "BlockKind",
    "StreamJsonParser",
    "JsonObjectScanner",
    "extract_first_object",
    "MarkdownBlockParser",
    "PlainTextParser",
    "CodexEventRenderer",
    "CodexLineAccumulator",
    "sanitize_output_line",
    "PARSER_BINDING",
    "parser_for",
]

"""Identity parser for agents with no structured protocol."""
from __future__ import annotations

from .base import TranscriptParser
from .models import ParsedTranscript


class PlainTextParser(TranscriptParser):

    @property
    def name(self) -> str:
        return "plain-text"

    def parse(self, buffer: str) -> tuple[ParsedTranscript, bool]:
        return ParsedTranscript(answer=buffer), True

"""Abstract base for transcript parsers.

Each parser understands exactly one agent output protocol. The router
picks the parser by agent kind when a session is bound, never by
looking at the content.
"""
from __future__ import annotations

import abc

from .models import ParsedTranscript


class TranscriptParser(abc.ABC):
    """Parse an accumulated output buffer into a ParsedTranscript.

    ``parse`` may be called repeatedly on a buffer that only grows.
    Implementations that keep incremental state must tolerate being
    handed the same buffer twice, and must reset if handed a buffer
    that is not an extension of the previous one.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short format name (e.g. 'stream-json')."""

    @abc.abstractmethod
    def parse(self, buffer: str) -> tuple[ParsedTranscript, bool]:
        """Return (transcript, ok). ok=False means "not my format"."""

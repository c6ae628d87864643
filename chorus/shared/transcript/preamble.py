"""Lines the process collaborator wraps around every agent's output.

The first chunk of a turn is ``🔗 Agent: codex | Command: ...`` and the
last one reports the exit status. Both can appear around any format.
"""
from __future__ import annotations

import re

from .models import ParsedTranscript, TranscriptHeader

HEADER_RE = re.compile(
    r"^(?:🔗\s*)?Agent:\s*(?P<agent>[^|]+?)\s*\|\s*Command:\s*(?P<command>.*?)\s*$"
)
# The leading glyph may arrive mis-decoded, so any single token is accepted
COMPLETED_RE = re.compile(r"^(?:\S+\s+)?Command completed successfully\s*$")
FAILED_RE = re.compile(r"^(?:\S+\s+)?Command failed with exit code:?\s*(?P<code>-?\d+)\s*$")


def match_header(line: str) -> TranscriptHeader | None:
    m = HEADER_RE.match(line.strip())
    if m is None:
        return None
    return TranscriptHeader(agent=m.group("agent"), command=m.group("command"))


def match_completion(line: str) -> tuple[bool, str | None] | None:
    """Return (success, exit_code) for a completion line, else None."""
    line = line.strip()
    if COMPLETED_RE.match(line):
        return True, None
    m = FAILED_RE.match(line)
    if m:
        return False, m.group("code")
    return None


def apply_header(transcript: ParsedTranscript, line: str) -> bool:
    if transcript.header is not None:
        return False
    header = match_header(line)
    if header is None:
        return False
    transcript.header = header
    return True


def apply_completion(transcript: ParsedTranscript, line: str) -> bool:
    """Fold a completion line. Never overrides an agent-reported flag."""
    completion = match_completion(line)
    if completion is None:
        return False
    success, code = completion
    if transcript.success is None:
        transcript.success = success
    if code is not None:
        transcript.metadata.setdefault("exit_code", code)
    return True


def apply_wrapper_line(transcript: ParsedTranscript, line: str) -> bool:
    """Fold a header or completion line into ``transcript``.

    Only for text known to come from the collaborator, such as the lines
    between objects of a JSON stream. Returns whether the line was
    recognized.
    """
    return apply_header(transcript, line) or apply_completion(transcript, line)

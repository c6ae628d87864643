"""Parser for the markdown-block transcript format (Codex).

The buffer is a sequence of blank-line separated blocks. Each block is
classified by the literal marker it contains, checked in a fixed order
so the most specific marker wins:

    _text_                          reasoning (whole block in underscores)
    **Tokens:** N total (...)       token usage
    **Todo List:**                  checklist, one item per line
    **File Changes:**               one ``➕ [p](file://p)`` line per file
    **Command:** `cmd`              optional fenced output
    **Tool Call:** server/tool
    **Web Search:** query
    **Error:** / ❌ Error:          error
    anything else                   plain message

Wrapper lines are folded into the transcript and removed before
classification, but only where they can occur: the collaborator's
header as the first line and its completion line as the last, the
banner and ``model: ...`` settings that open Codex's older plain-text
layout, and that layout's timestamped speaker and ``tokens used: N``
lines. Agent text in between is never folded.

Blank lines inside a fenced code section or an open ``_..._`` reasoning
span do not end a block. Extraction
is best effort: a block that carries a marker but not the expected
sub-grammar keeps its kind and text with whatever fields matched.
"""
from __future__ import annotations

import re
from typing import Any

from .base import TranscriptParser
from .models import BlockKind, ParsedTranscript, TranscriptBlock
from .preamble import apply_completion, apply_header

STATUS_GLYPHS = {
    "✅": "completed",
    "❌": "failed",
    "⏳": "in_progress",
}
FILE_CHANGE_GLYPHS = {
    "➕": "add",
    "➖": "delete",
    "✏️": "update",
    "✏": "update",
}

_TIMESTAMP_RE = re.compile(r"^\[\d{4}-\d{2}-\d{2}T[^\]]*\]\s*")
_SEPARATOR_RE = re.compile(r"^-{3,}$")
_TOKENS_USED_RE = re.compile(r"^tokens used:\s*(?P<n>[\d,]+)\s*$", re.IGNORECASE)
_META_RE = re.compile(
    r"^(?P<key>workdir|model|provider|approval|sandbox|reasoning effort|reasoning summaries):\s*(?P<value>.+)$"
)
_USER_INSTRUCTIONS_RE = re.compile(r"^User instructions:[ \t]*", re.IGNORECASE | re.MULTILINE)
_BANNER_RE = re.compile(r"^OpenAI Codex v(?P<version>\S+)")
_SPEAKER_LINES = {"codex", "user"}

_STATUS_RE = re.compile(r"^(✅|❌|⏳)")
_COMMAND_RE = re.compile(r"\*\*Command:\*\* `([^`]+)`")
_FENCE_RE = re.compile(r"```[^\n]*\n([\s\S]*?)\n?```")
_FILE_LINE_RE = re.compile(r"^(➕|➖|✏️|✏)\s+\[([^\]]+)\]\(file://([^)]+)\)")
_TOOL_CALL_RE = re.compile(r"\*\*Tool Call:\*\* ([^/\s]+)/(\S+)")
_WEB_SEARCH_RE = re.compile(r"\*\*Web Search:\*\* (.+)")
_TODO_LINE_RE = re.compile(r"^(?:(✅|⬜)|[-*]\s*\[( |x|X)\])\s+(.+)$")
_TOKENS_RE = re.compile(
    r"\*\*Tokens:\*\* ([\d,]+) total \(([\d,]+) in, ([\d,]+) out(?:, ([\d,]+) cached)?\)"
)
_ERROR_RE = re.compile(r"(?:\*\*Error:\*\*|^❌ Error:)\s*(.*)", re.DOTALL)


def _int(text: str) -> int:
    return int(text.replace(",", ""))


def split_blocks(buffer: str) -> list[str]:
    """Split on blank lines, keeping fenced code sections intact."""
    blocks: list[str] = []
    current: list[str] = []
    in_fence = False
    for line in buffer.splitlines():
        if line.strip().startswith("```"):
            in_fence = not in_fence
        if not line.strip() and not in_fence:
            if current:
                blocks.append("\n".join(current))
                current = []
            continue
        current.append(line)
    if current:
        blocks.append("\n".join(current))
    return _join_reasoning_spans([b.strip() for b in blocks if b.strip()])


def _join_reasoning_spans(blocks: list[str]) -> list[str]:
    """Rejoin a ``_..._`` span whose paragraphs were split apart.

    A span that never closes leaves its blocks as they were.
    """
    joined: list[str] = []
    i = 0
    while i < len(blocks):
        block = blocks[i]
        end = i
        if block.startswith("_") and not (len(block) >= 2 and block.endswith("_")):
            for j in range(i + 1, len(blocks)):
                if blocks[j].endswith("_"):
                    end = j
                    break
        joined.append("\n\n".join(blocks[i:end + 1]))
        i = end + 1
    return joined


def _status(block: str) -> str | None:
    m = _STATUS_RE.match(block)
    return STATUS_GLYPHS[m.group(1)] if m else None


def classify_block(block: str) -> TranscriptBlock:
    """Classify a single block and extract its fields."""
    if len(block) >= 2 and block.startswith("_") and block.endswith("_"):
        return TranscriptBlock(BlockKind.REASONING, block[1:-1].strip())

    if "**Tokens:**" in block:
        fields: dict[str, Any] = {}
        m = _TOKENS_RE.search(block)
        if m:
            fields = {
                "total": _int(m.group(1)),
                "input": _int(m.group(2)),
                "output": _int(m.group(3)),
            }
            if m.group(4):
                fields["cached"] = _int(m.group(4))
        return TranscriptBlock(BlockKind.TOKEN_USAGE, block, fields=fields)

    if "**Todo List:**" in block:
        items = []
        for line in block.splitlines()[1:]:
            m = _TODO_LINE_RE.match(line.strip())
            if m:
                glyph, box, text = m.groups()
                done = glyph == "✅" if glyph else box in ("x", "X")
                items.append({"text": text, "completed": done})
        return TranscriptBlock(BlockKind.TODO_LIST, block, fields={"items": items})

    if "**File Changes:**" in block:
        files = []
        for line in block.splitlines()[1:]:
            m = _FILE_LINE_RE.match(line.strip())
            if m:
                files.append({"kind": FILE_CHANGE_GLYPHS[m.group(1)], "path": m.group(3)})
        return TranscriptBlock(
            BlockKind.FILE_CHANGES, block, status=_status(block), fields={"files": files},
        )

    if "**Command:**" in block:
        fields = {}
        m = _COMMAND_RE.search(block)
        if m:
            fields["command"] = m.group(1)
        out = _FENCE_RE.search(block)
        if out:
            fields["output"] = out.group(1)
        return TranscriptBlock(BlockKind.COMMAND, block, status=_status(block), fields=fields)

    if "**Tool Call:**" in block:
        fields = {}
        m = _TOOL_CALL_RE.search(block)
        if m:
            fields = {"server": m.group(1), "tool": m.group(2)}
        return TranscriptBlock(BlockKind.TOOL_CALL, block, status=_status(block), fields=fields)

    if "**Web Search:**" in block:
        m = _WEB_SEARCH_RE.search(block)
        fields = {"query": m.group(1).strip()} if m else {}
        return TranscriptBlock(BlockKind.WEB_SEARCH, block, fields=fields)

    m = _ERROR_RE.search(block)
    if m:
        return TranscriptBlock(
            BlockKind.ERROR, block, status="failed", fields={"message": m.group(1).strip()},
        )

    return TranscriptBlock(BlockKind.MESSAGE, block)


def _summary(item: TranscriptBlock) -> str | None:
    """One-line 'working' bullet for an action block."""
    f = item.fields
    if item.kind == BlockKind.COMMAND:
        return f"Command: {f['command']}" if "command" in f else None
    if item.kind == BlockKind.FILE_CHANGES:
        paths = [x["path"] for x in f.get("files", [])]
        return f"File Changes: {', '.join(paths)}" if paths else None
    if item.kind == BlockKind.TOOL_CALL:
        return f"Tool Call: {f['server']}/{f['tool']}" if "server" in f else None
    if item.kind == BlockKind.WEB_SEARCH:
        return f"Web Search: {f['query']}" if "query" in f else None
    if item.kind == BlockKind.TODO_LIST:
        todos = f.get("items", [])
        done = sum(1 for t in todos if t["completed"])
        return f"Todo List: {done}/{len(todos)} done"
    if item.kind == BlockKind.ERROR:
        return f"Error: {f.get('message') or item.text}"
    return None


class MarkdownBlockParser(TranscriptParser):
    """Stateless; every call re-reads the whole buffer."""

    @property
    def name(self) -> str:
        return "markdown-blocks"

    def parse(self, buffer: str) -> tuple[ParsedTranscript, bool]:
        transcript = ParsedTranscript()
        body = self._fold_wrapper(transcript, buffer)
        for block in split_blocks(body):
            block = self._strip_structural_lines(transcript, block)
            if not block:
                continue
            m = _USER_INSTRUCTIONS_RE.search(block)
            if m:
                before = block[:m.start()].strip()
                if before:
                    transcript.items.append(classify_block(before))
                text = block[m.end():].strip()
                transcript.items.append(TranscriptBlock(BlockKind.USER_INSTRUCTIONS, text))
                transcript.user_instructions = text
                continue
            transcript.items.append(classify_block(block))

        thinking: list[str] = []
        answer: list[str] = []
        for item in transcript.items:
            if item.kind == BlockKind.REASONING:
                thinking.append(item.text)
            elif item.kind == BlockKind.MESSAGE:
                answer.append(item.text)
            elif item.kind == BlockKind.TOKEN_USAGE and "total" in item.fields:
                transcript.tokens = item.fields["total"]
            else:
                line = _summary(item)
                if line:
                    transcript.working.append(line)
        if thinking:
            transcript.thinking = "\n\n".join(thinking)
        if answer:
            transcript.answer = "\n\n".join(answer)
        return transcript, True

    def _fold_wrapper(self, transcript: ParsedTranscript, buffer: str) -> str:
        """Fold the leading preamble and the trailing completion line.

        The preamble is the header line plus, in the older layout, the
        banner and the settings block between ``--------`` rules.
        Settings lines only count once a banner or rule has been seen.
        Folded lines become blank so block boundaries stay put.
        """
        lines = buffer.splitlines()
        settings = False
        first = True
        for i, line in enumerate(lines):
            bare = _TIMESTAMP_RE.sub("", line.strip())
            if not bare:
                continue
            if first and apply_header(transcript, bare):
                first = False
                lines[i] = ""
                continue
            first = False
            banner = _BANNER_RE.match(bare)
            meta = _META_RE.match(bare)
            if banner:
                transcript.metadata["version"] = banner.group("version")
                settings = True
            elif _SEPARATOR_RE.match(bare):
                settings = True
            elif settings and meta:
                transcript.metadata[meta.group("key").replace(" ", "_")] = meta.group("value").strip()
            else:
                break
            lines[i] = ""

        tail = [i for i, line in enumerate(lines) if line.strip()]
        if tail and apply_completion(transcript, lines[tail[-1]]):
            lines[tail[-1]] = ""
        return "\n".join(lines)

    def _strip_structural_lines(self, transcript: ParsedTranscript, block: str) -> str:
        """Drop the older layout's timestamped speaker and tokens lines.

        Agent text is never timestamped, so untimestamped lines are kept
        as written. A rule directly above the token footer is dropped.
        """
        kept = []
        in_fence = False
        has_footer = "**Tokens:**" in block
        for line in block.splitlines():
            if line.strip().startswith("```"):
                in_fence = not in_fence
            if in_fence:
                kept.append(line)
                continue
            bare = _TIMESTAMP_RE.sub("", line.strip())
            if bare == line.strip():
                if not (has_footer and _SEPARATOR_RE.match(bare)):
                    kept.append(line)
                continue
            if bare.lower() in _SPEAKER_LINES:
                continue
            m = _TOKENS_USED_RE.match(bare)
            if m:
                transcript.tokens = _int(m.group("n"))
                continue
            kept.append(bare)
        return "\n".join(kept).strip()

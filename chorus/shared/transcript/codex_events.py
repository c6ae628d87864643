"""Codex ``--json`` event stream handling.

Codex writes one JSON event per line, sometimes separated by bare
carriage returns, sometimes wrapped as server-sent events. The
accumulator turns raw chunks into clean payload lines, and the renderer
folds the events into the markdown-block transcript that
``MarkdownBlockParser`` reads back.
"""
from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

_NODE_TRACE_HINT = "(Use `node --trace-warnings ...` to show where the warning was created)"
_NODE_PROPERTY_WARNINGS = (
    "Warning: Accessing non-existent property 'lineno'",
    "Warning: Accessing non-existent property 'filename'",
)


def sanitize_output_line(agent: str, line: str) -> str | None:
    """Drop known Node.js warning noise from Codex output.

    Only exact matches are dropped so real output mentioning similar
    words passes through. Other agents are never filtered.
    """
    if agent.lower() != "codex":
        return line
    trimmed = line.strip()
    if trimmed == _NODE_TRACE_HINT:
        return None
    if (
        trimmed.startswith("(node:")
        and trimmed.endswith("inside circular dependency")
        and any(w in trimmed for w in _NODE_PROPERTY_WARNINGS)
    ):
        return None
    return line


def _normalize_segment(segment: str) -> str | None:
    trimmed = segment.strip()
    if not trimmed:
        return None
    if trimmed.startswith("data:"):
        data = trimmed[5:].strip()
        if not data or data.upper() == "[DONE]":
            return None
        return data
    if trimmed.startswith("event:") or trimmed.startswith("id:"):
        return None
    return trimmed


class CodexLineAccumulator:
    """Split raw Codex chunks into payload lines on ``\\r`` or ``\\n``."""

    def __init__(self) -> None:
        self._buffer = ""

    def push(self, chunk: str) -> list[str]:
        if not chunk:
            return []
        self._buffer += chunk
        lines: list[str] = []
        start = 0
        for idx, c in enumerate(self._buffer):
            if c in "\r\n":
                line = _normalize_segment(self._buffer[start:idx])
                if line is not None:
                    lines.append(line)
                start = idx + 1
        self._buffer = self._buffer[start:]
        return lines

    def flush(self) -> str | None:
        """Return the buffered partial line, if any, and clear it."""
        remaining, self._buffer = self._buffer, ""
        return _normalize_segment(remaining)


def _status_glyph(status: str | None) -> str:
    if status == "completed":
        return "✅"
    if status == "failed":
        return "❌"
    return "⏳"


def _response_text(response: Any) -> str | None:
    if not isinstance(response, dict):
        return None
    if isinstance(response.get("text"), str):
        return response["text"]
    output = response.get("output")
    if isinstance(output, list):
        text = "".join(
            part.get("text", "") for part in output
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        return text or None
    return None


def render_item(item: dict[str, Any]) -> str | None:
    """Markdown block for one Codex thread item, or None if unknown."""
    kind = item.get("type")
    if kind == "agent_message":
        return item.get("text") or None
    if kind == "reasoning":
        text = item.get("text")
        return f"_{text}_" if text else None
    if kind == "command_execution":
        block = f"{_status_glyph(item.get('status'))} **Command:** `{item.get('command', '')}`"
        output = item.get("aggregated_output")
        if output:
            block += f"\n```\n{output}\n```"
        return block
    if kind == "file_change":
        glyph = "✅" if item.get("status") == "completed" else "❌"
        lines = [f"{glyph} **File Changes:**"]
        for change in item.get("changes") or []:
            icon = {"add": "➕", "delete": "➖"}.get(change.get("kind"), "✏️")
            path = change.get("path", "")
            lines.append(f"{icon} [{path}](file://{path})")
        return "\n".join(lines)
    if kind == "mcp_tool_call":
        return (
            f"{_status_glyph(item.get('status'))} **Tool Call:** "
            f"{item.get('server', '')}/{item.get('tool', '')}"
        )
    if kind == "web_search":
        return f"🔍 **Web Search:** {item.get('query', '')}"
    if kind == "todo_list":
        lines = ["**Todo List:**"]
        for todo in item.get("items") or []:
            lines.append(f"{'✅' if todo.get('completed') else '⬜'} {todo.get('text', '')}")
        return "\n".join(lines)
    if kind == "error":
        return f"❌ **Error:** {item.get('message', '')}"
    return None


class CodexEventRenderer:
    """Fold Codex JSON events into a markdown-block transcript.

    ``feed`` returns the full rendered transcript after every event that
    changed it, and None otherwise. Items that are reported more than
    once (started, updated, completed) replace their earlier rendering
    in place.
    """

    def __init__(self) -> None:
        self._reasoning: dict[str, str] = {}
        self._messages: dict[str, str] = {}
        self._usage: dict[str, int] | None = None
        self._anon = 0
        self.thread_id: str | None = None

    def _key(self, item: dict[str, Any]) -> str:
        if item.get("id"):
            return str(item["id"])
        self._anon += 1
        return f"_anon-{self._anon}"

    def feed(self, line: str) -> str | None:
        normalized = _normalize_segment(line)
        if normalized is None:
            return None
        try:
            event = json.loads(normalized)
        except ValueError:
            logger.debug("Skipping non-JSON codex line: %.80s", normalized)
            return None
        if not isinstance(event, dict):
            return None
        return self._handle(event)

    def _handle(self, event: dict[str, Any]) -> str | None:
        etype = event.get("type")
        if etype == "thread.started":
            self.thread_id = event.get("thread_id")
            return None
        if etype == "turn.completed":
            usage = event.get("usage")
            if not isinstance(usage, dict):
                return None
            self._usage = {
                k: int(usage.get(k) or 0)
                for k in ("input_tokens", "cached_input_tokens", "output_tokens")
            }
            return self.render()
        # Stream-level errors are retried by codex itself
        if etype in ("turn.started", "error"):
            return None

        item = event.get("item")
        if isinstance(item, dict):
            block = render_item(item)
            if block is None:
                return None
            target = self._reasoning if item.get("type") == "reasoning" else self._messages
            target[self._key(item)] = block
            return self.render()

        if etype == "response.completed":
            text = _response_text(event.get("response"))
            if text:
                self._messages[self._key({})] = text
                return self.render()
            return None
        if etype == "response.error":
            error = event.get("error") if isinstance(event.get("error"), dict) else {}
            message = error.get("message") or "Codex encountered an error."
            self._messages[self._key({})] = f"❌ Error: {message}"
            return self.render()
        return None

    def render(self) -> str:
        parts = list(self._reasoning.values()) + list(self._messages.values())
        if self._usage:
            inp = self._usage["input_tokens"]
            out = self._usage["output_tokens"]
            cached = self._usage["cached_input_tokens"]
            usage = f"**Tokens:** {inp + out:,} total ({inp:,} in, {out:,} out"
            if cached > 0:
                usage += f", {cached:,} cached"
            parts.append(f"\n---\n{usage})")
        return "\n\n".join(parts)

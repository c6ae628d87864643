"""Parser for concatenated JSON-object streams (Claude ``stream-json``).

The buffer is a run of JSON objects with no separator and no enclosing
array, optionally preceded by a plain-text preamble line. Objects are
found by tracking brace depth and string/escape state, so an object
split across chunks is simply left pending until its closing brace
arrives.

Scanning is incremental: the scanner remembers where it stopped and
the offset just past the last complete segment (``committed``). Calling
``parse`` again on a grown buffer only looks at the new characters, and
objects before the committed offset are never decoded twice.
"""
from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from typing import Any

from .base import TranscriptParser
from .models import ParsedTranscript, TranscriptHeader
from .preamble import apply_wrapper_line

logger = logging.getLogger(__name__)


@dataclass
class Segment:
    """A committed slice of the buffer: one JSON object or one text line."""
    kind: str  # "object" or "text"
    text: str
    start: int
    end: int


class JsonObjectScanner:
    """Finds complete top-level JSON objects in a growing buffer.

    Text outside objects is returned line by line. An object opens only
    where a line starts (after blanks) or where the previous object
    closed, so braces inside a prose line such as a header carrying
    ``if (x) {`` stay text. Quotes only count inside an object, so
    ``Command: say "hi"`` does not confuse the scanner either.

    ``objects_anywhere`` lifts the line-start rule for free-form text
    such as an LLM reply that wraps its JSON in prose. In that mode a
    top-level array is not recognized as such; each object inside it
    comes out on its own.
    """

    def __init__(self, objects_anywhere: bool = False) -> None:
        self.objects_anywhere = objects_anywhere
        self.reset()

    def reset(self) -> None:
        self._pos = 0
        self._depth = 0
        self._line_start = True
        self._in_string = False
        self._escaped = False
        self._start = 0
        self.committed = 0

    @property
    def position(self) -> int:
        """Number of buffer characters already examined."""
        return self._pos

    @property
    def depth(self) -> int:
        return self._depth

    def feed(self, buffer: str) -> list[Segment]:
        """Scan ``buffer`` from where the previous call stopped."""
        if len(buffer) < self._pos:
            self.reset()

        segments: list[Segment] = []
        for i in range(self._pos, len(buffer)):
            c = buffer[i]
            if self._depth == 0:
                if c == "{" and (self._line_start or self.objects_anywhere):
                    if i > self._start:
                        segments.append(Segment("text", buffer[self._start:i], self._start, i))
                    self._start = i
                    self._depth = 1
                elif c == "\n":
                    segments.append(Segment("text", buffer[self._start:i + 1], self._start, i + 1))
                    self._start = i + 1
                    self._line_start = True
                elif not c.isspace():
                    self._line_start = False
            elif self._in_string:
                if self._escaped:
                    self._escaped = False
                elif c == "\\":
                    self._escaped = True
                elif c == '"':
                    self._in_string = False
            elif c == '"':
                self._in_string = True
            elif c == "{":
                self._depth += 1
            elif c == "}":
                self._depth -= 1
                if self._depth == 0:
                    segments.append(Segment("object", buffer[self._start:i + 1], self._start, i + 1))
                    self._start = i + 1
                    self._line_start = True

        self._pos = len(buffer)
        self.committed = self._start
        return segments


def iter_json_objects(text: str) -> list[dict[str, Any]]:
    """Decode every complete top-level JSON object in ``text``."""
    objects = []
    for segment in JsonObjectScanner(objects_anywhere=True).feed(text):
        if segment.kind != "object":
            continue
        try:
            obj = json.loads(segment.text)
        except ValueError:
            continue
        if isinstance(obj, dict):
            objects.append(obj)
    return objects


def extract_first_object(text: str) -> dict[str, Any] | None:
    """First decodable top-level JSON object in free-form text, if any."""
    objects = iter_json_objects(text)
    return objects[0] if objects else None


def _content_text(content: Any) -> str:
    """Flatten a tool_result ``content`` (string or list of text parts)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    return ""


def _tool_label(part: dict[str, Any]) -> str:
    name = part.get("name") or "Tool"
    tool_input = part.get("input") if isinstance(part.get("input"), dict) else {}
    cmd = tool_input.get("command") or tool_input.get("file_path") or ""
    desc = tool_input.get("description") or ""
    if cmd and desc:
        label = f"{cmd} — {desc}"
    else:
        label = cmd or desc
    return f"{name}: {label}" if label else name


class StreamJsonParser(TranscriptParser):
    """Incremental parser for one session's ``stream-json`` output.

    Instances hold per-session state and must not be shared between
    sessions.
    """

    def __init__(self, agent: str = "claude") -> None:
        self._agent = agent
        self._reset()

    def _reset(self) -> None:
        self._scanner = JsonObjectScanner()
        self._transcript = ParsedTranscript()
        self._bullets: list[str] = []
        self._thinking: list[str] = []
        self._objects = 0
        # Message id of the bullet that text fragments currently merge into
        self._text_msg_id: str | None = None
        self._thinking_msg_id: str | None = None
        self._stream_msg_id: str | None = None
        # Message ids whose text arrived as stream_event deltas
        self._streamed: set[str] = set()

    @property
    def name(self) -> str:
        return "stream-json"

    @property
    def committed_offset(self) -> int:
        return self._scanner.committed

    @property
    def object_count(self) -> int:
        return self._objects

    def parse(self, buffer: str) -> tuple[ParsedTranscript, bool]:
        if len(buffer) < self._scanner.position:
            logger.debug("Buffer shrank below scan position; resetting parser")
            self._reset()

        for segment in self._scanner.feed(buffer):
            if segment.kind == "text":
                self._apply_text(self._transcript, segment.text)
                continue
            try:
                obj = json.loads(segment.text)
            except ValueError:
                logger.debug("Skipping malformed JSON object at %d", segment.start)
                continue
            if not isinstance(obj, dict):
                continue
            self._objects += 1
            self._handle(obj)

        snapshot = self._snapshot()
        if self._scanner.depth == 0:
            # Partial trailing line: evaluated for the snapshot, not committed
            self._apply_text(snapshot, buffer[self._scanner.committed:])
        return snapshot, self._objects > 0

    # -- folding -------------------------------------------------------------

    def _apply_text(self, transcript: ParsedTranscript, text: str) -> None:
        for line in text.splitlines():
            if line.strip():
                apply_wrapper_line(transcript, line)

    def _snapshot(self) -> ParsedTranscript:
        snapshot = copy.deepcopy(self._transcript)
        snapshot.working = [b.strip() for b in self._bullets if b.strip()]
        thinking = [t.strip() for t in self._thinking if t.strip()]
        snapshot.thinking = "\n\n".join(thinking) if thinking else None
        return snapshot

    def _handle(self, obj: dict[str, Any]) -> None:
        kind = obj.get("type")
        if kind == "system":
            self._handle_system(obj)
        elif kind == "assistant":
            self._handle_assistant(obj.get("message") or {})
        elif kind == "user":
            self._handle_user(obj.get("message") or {})
        elif kind == "stream_event":
            self._handle_stream_event(obj.get("event") or {})
        elif kind == "result":
            self._handle_result(obj)
        else:
            logger.debug("Ignoring stream-json object of type %r", kind)

    def _handle_system(self, obj: dict[str, Any]) -> None:
        t = self._transcript
        if t.header is None:
            t.header = TranscriptHeader(agent=self._agent, command=self.name)
        if obj.get("model"):
            t.metadata["model"] = str(obj["model"])
        tools = obj.get("tools")
        if isinstance(tools, list) and tools:
            t.metadata["tools"] = ", ".join(str(x) for x in tools)
        if obj.get("permissionMode"):
            t.metadata["permission_mode"] = str(obj["permissionMode"])
        if obj.get("cwd"):
            t.metadata["cwd"] = str(obj["cwd"])
        if obj.get("session_id"):
            t.metadata["session_id"] = str(obj["session_id"])

    def _append_text(self, msg_id: str | None, text: str, sep: str) -> None:
        if msg_id is not None and msg_id == self._text_msg_id and self._bullets:
            self._bullets[-1] += sep + text
        else:
            self._bullets.append(text)
            self._text_msg_id = msg_id

    def _append_thinking(self, msg_id: str | None, text: str, sep: str) -> None:
        if msg_id is not None and msg_id == self._thinking_msg_id and self._thinking:
            self._thinking[-1] += sep + text
        else:
            self._thinking.append(text)
            self._thinking_msg_id = msg_id

    def _handle_assistant(self, message: dict[str, Any]) -> None:
        msg_id = message.get("id")
        streamed = msg_id is not None and msg_id in self._streamed
        content = message.get("content")
        if not isinstance(content, list):
            return
        for part in content:
            if not isinstance(part, dict):
                continue
            ptype = part.get("type")
            if ptype == "text" and isinstance(part.get("text"), str):
                if streamed or not part["text"].strip():
                    continue
                self._append_text(msg_id, part["text"].strip(), "\n")
            elif ptype == "thinking" and isinstance(part.get("thinking"), str):
                if not streamed:
                    self._append_thinking(msg_id, part["thinking"], "\n")
            elif ptype == "tool_use":
                self._bullets.append(_tool_label(part))
                self._text_msg_id = None

    def _handle_user(self, message: dict[str, Any]) -> None:
        content = message.get("content")
        if not isinstance(content, list):
            return
        for part in content:
            if isinstance(part, dict) and part.get("type") == "tool_result":
                out = _content_text(part.get("content")).strip()
                if out:
                    self._bullets.append(f"BashOutput: {out}")
                    self._text_msg_id = None

    def _handle_stream_event(self, event: dict[str, Any]) -> None:
        etype = event.get("type")
        if etype == "message_start":
            message = event.get("message") or {}
            self._stream_msg_id = message.get("id")
            return
        if etype != "content_block_delta":
            return
        delta = event.get("delta") or {}
        msg_id = self._stream_msg_id
        if msg_id is not None:
            self._streamed.add(msg_id)
        if delta.get("type") == "text_delta" and isinstance(delta.get("text"), str):
            self._append_text(msg_id, delta["text"], "")
        elif delta.get("type") == "thinking_delta" and isinstance(delta.get("thinking"), str):
            self._append_thinking(msg_id, delta["thinking"], "")

    def _handle_result(self, obj: dict[str, Any]) -> None:
        t = self._transcript
        if isinstance(obj.get("result"), str):
            t.answer = obj["result"]
        t.success = not bool(obj.get("is_error", False))
        usage = obj.get("usage")
        if isinstance(usage, dict):
            total = 0
            for key in ("input_tokens", "output_tokens"):
                value = usage.get(key)
                if isinstance(value, int):
                    total += value
            t.tokens = total
        if obj.get("duration_ms") is not None:
            t.metadata["duration_ms"] = str(obj["duration_ms"])
        if obj.get("total_cost_usd") is not None:
            t.metadata["cost_usd"] = str(obj["total_cost_usd"])

from __future__ import annotations

import json

from chorus.app import render_codex_events
from chorus.shared.transcript import MarkdownBlockParser
from chorus.shared.transcript.codex_events import (
    CodexEventRenderer,
    CodexLineAccumulator,
    render_item,
    sanitize_output_line,
)
from chorus.shared.transcript.models import BlockKind

EVENTS = [
    {"type": "thread.started", "thread_id": "th1"},
    {"type": "turn.started"},
    {"type": "item.started", "item": {"id": "item_0", "type": "reasoning", "text": "**Scanning** files"}},
    {"type": "item.started", "item": {
        "id": "item_1", "type": "command_execution", "command": "ls",
        "status": "in_progress", "aggregated_output": "",
    }},
    {"type": "item.completed", "item": {
        "id": "item_1", "type": "command_execution", "command": "ls",
        "status": "completed", "aggregated_output": "a.py\nb.py",
    }},
    {"type": "item.completed", "item": {"id": "item_2", "type": "agent_message", "text": "Two files."}},
    {"type": "turn.completed", "usage": {
        "input_tokens": 100, "cached_input_tokens": 20, "output_tokens": 50,
    }},
]


def _render(events) -> tuple[CodexEventRenderer, str | None]:
    renderer = CodexEventRenderer()
    out = None
    for event in events:
        rendered = renderer.feed(json.dumps(event))
        if rendered is not None:
            out = rendered
    return renderer, out


def test_sanitize_drops_node_warnings_for_codex_only() -> None:
    hint = "(Use `node --trace-warnings ...` to show where the warning was created)"
    circular = (
        "(node:4242) Warning: Accessing non-existent property 'lineno' of module "
        "exports inside circular dependency"
    )
    assert sanitize_output_line("codex", hint) is None
    assert sanitize_output_line("Codex", circular) is None
    assert sanitize_output_line("gemini", circular) == circular
    assert sanitize_output_line("codex", "Warning: disk almost full") == "Warning: disk almost full"


def test_accumulator_splits_and_unwraps_lines() -> None:
    acc = CodexLineAccumulator()
    lines = acc.push('{"a":1}\r{"b":2}\ndata: {"c":3}\nevent: x\ndata: [DONE]\n{"d"')
    assert lines == ['{"a":1}', '{"b":2}', '{"c":3}']
    assert acc.push(":4}") == []
    assert acc.flush() == '{"d":4}'
    assert acc.flush() is None


def test_renderer_replaces_repeated_items() -> None:
    renderer, out = _render(EVENTS)
    assert renderer.thread_id == "th1"
    assert out is not None
    assert out.count("**Command:**") == 1
    assert "✅ **Command:** `ls`" in out
    assert out.endswith("**Tokens:** 150 total (100 in, 50 out, 20 cached)")


def test_rendered_output_parses_back() -> None:
    _, out = _render(EVENTS)
    transcript, ok = MarkdownBlockParser().parse(out)

    assert ok is True
    assert [item.kind for item in transcript.items] == [
        BlockKind.REASONING, BlockKind.COMMAND, BlockKind.MESSAGE, BlockKind.TOKEN_USAGE,
    ]
    assert transcript.items[1].fields == {"command": "ls", "output": "a.py\nb.py"}
    assert transcript.thinking == "**Scanning** files"
    assert transcript.answer == "Two files."
    assert transcript.working == ["Command: ls"]
    assert transcript.tokens == 150


def test_response_events() -> None:
    _, out = _render([
        {"type": "response.completed", "response": {"output": [{"text": "hi "}, {"text": "there"}]}},
        {"type": "response.error", "error": {"message": "boom"}},
    ])
    assert out == "hi there\n\n❌ Error: boom"


def test_non_json_lines_are_ignored() -> None:
    renderer = CodexEventRenderer()
    assert renderer.feed("Reading prompt from stdin...") is None
    assert renderer.feed("") is None
    assert renderer.feed(json.dumps({"type": "error", "message": "retrying"})) is None


def test_render_item_file_change_icons() -> None:
    block = render_item({
        "type": "file_change", "status": "completed",
        "changes": [{"kind": "add", "path": "a"}, {"kind": "delete", "path": "b"}, {"kind": "update", "path": "c"}],
    })
    assert block == (
        "✅ **File Changes:**\n"
        "➕ [a](file://a)\n"
        "➖ [b](file://b)\n"
        "✏️ [c](file://c)"
    )
    assert render_item({"type": "unknown"}) is None


def test_render_codex_events_from_raw_output() -> None:
    raw = "\r\n".join(json.dumps(e) for e in EVENTS)
    rendered = render_codex_events(raw)
    assert "Two files." in rendered
    assert "**Tokens:** 150 total" in rendered


def test_multi_paragraph_reasoning_parses_back_as_thinking() -> None:
    _, out = _render([
        {"type": "item.completed", "item": {
            "id": "r1", "type": "reasoning", "text": "**Planning**\n\nLook at the tests first",
        }},
        {"type": "item.completed", "item": {"id": "m1", "type": "agent_message", "text": "All fixed."}},
    ])
    transcript, _ = MarkdownBlockParser().parse(out)

    assert transcript.thinking == "**Planning**\n\nLook at the tests first"
    assert transcript.answer == "All fixed."

"""Tests for the concatenated JSON-object stream parser."""
from __future__ import annotations

import json

from chorus.shared.transcript import JsonObjectScanner, StreamJsonParser, extract_first_object
from chorus.shared.transcript.models import TranscriptHeader

SAMPLE = (
    '{"type":"system","subtype":"init","cwd":"/tmp","session_id":"s1","tools":["Bash"],'
    '"mcp_servers":[],"model":"claude-opus-4-1-20250805","permissionMode":"default",'
    '"slash_commands":[],"apiKeySource":"none","output_style":"default","uuid":"u1"}'
    '{"type":"assistant","message":{"id":"m1","type":"message","role":"assistant",'
    '"model":"claude-opus-4-1-20250805","content":[{"type":"text",'
    '"text":"I\'ll check the folders in your current directory."}]},"session_id":"s1","uuid":"a1"}'
    '{"type":"assistant","message":{"id":"m1","type":"message","role":"assistant",'
    '"model":"claude-opus-4-1-20250805","content":[{"type":"tool_use","id":"t1","name":"Bash",'
    '"input":{"command":"echo hello","description":"say hi"}}]},"session_id":"s1","uuid":"a2"}'
    '{"type":"user","message":{"role":"user","content":[{"tool_use_id":"t1","type":"tool_result",'
    '"content":"hello","is_error":false}]},"session_id":"s1","uuid":"u2"}'
    '{"type":"assistant","message":{"id":"m2","type":"message","role":"assistant",'
    '"model":"claude-opus-4-1-20250805","content":[{"type":"text","text":"Done."}]},'
    '"session_id":"s1","uuid":"a3"}'
    '{"type":"result","subtype":"success","is_error":false,"duration_ms":100,'
    '"result":"Done.","session_id":"s1","uuid":"r1"}'
)


def _obj(**kwargs) -> str:
    return json.dumps(kwargs)


def test_parses_sample_stream() -> None:
    transcript, ok = StreamJsonParser().parse(SAMPLE)

    assert ok is True
    assert transcript.working == [
        "I'll check the folders in your current directory.",
        "Bash: echo hello — say hi",
        "BashOutput: hello",
        "Done.",
    ]
    assert transcript.answer == "Done."
    assert transcript.success is True
    assert transcript.header == TranscriptHeader(agent="claude", command="stream-json")
    assert transcript.metadata["model"] == "claude-opus-4-1-20250805"
    assert transcript.metadata["tools"] == "Bash"
    assert transcript.metadata["permission_mode"] == "default"
    assert transcript.metadata["cwd"] == "/tmp"


def test_split_at_every_offset_matches_single_parse() -> None:
    expected, _ = StreamJsonParser().parse(SAMPLE)
    for offset in range(len(SAMPLE) + 1):
        parser = StreamJsonParser()
        parser.parse(SAMPLE[:offset])
        transcript, ok = parser.parse(SAMPLE)
        assert ok is True
        assert transcript == expected, f"mismatch when split at {offset}"
        assert parser.object_count == 6


def test_incremental_parsing_converges() -> None:
    expected, _ = StreamJsonParser().parse(SAMPLE)
    parser = StreamJsonParser()
    buffer = ""
    for i in range(0, len(SAMPLE), 7):
        buffer += SAMPLE[i:i + 7]
        parser.parse(buffer)
    transcript, ok = parser.parse(buffer)
    assert ok is True
    assert transcript == expected


def test_object_count_never_decreases_on_growing_buffer() -> None:
    parser = StreamJsonParser()
    seen = 0
    for end in range(0, len(SAMPLE) + 1, 13):
        parser.parse(SAMPLE[:end])
        assert parser.object_count >= seen
        seen = parser.object_count


def test_reparse_of_unchanged_buffer_does_not_duplicate() -> None:
    parser = StreamJsonParser()
    first, _ = parser.parse(SAMPLE)
    second, _ = parser.parse(SAMPLE)
    assert parser.object_count == 6
    assert second.working == first.working


def test_committed_offset_stops_before_partial_object() -> None:
    parser = StreamJsonParser()
    partial = SAMPLE[:-5]
    parser.parse(partial)
    assert parser.object_count == 5
    assert parser.committed_offset < len(partial)
    assert partial[parser.committed_offset] == "{"

    parser.parse(SAMPLE)
    assert parser.committed_offset == len(SAMPLE)


def test_strings_with_braces_and_escaped_quotes() -> None:
    buffer = r'{"type":"result","is_error":false,"result":"a \"quoted\" {brace} \\"}'
    expected, _ = StreamJsonParser().parse(buffer)
    assert expected.answer == 'a "quoted" {brace} \\'
    for offset in range(len(buffer) + 1):
        parser = StreamJsonParser()
        parser.parse(buffer[:offset])
        transcript, _ = parser.parse(buffer)
        assert transcript.answer == expected.answer


def test_fragments_with_same_message_id_merge_into_one_bullet() -> None:
    buffer = (
        _obj(type="assistant", message={"id": "m1", "content": [{"type": "text", "text": "Hello"}]})
        + _obj(type="assistant", message={"id": "m1", "content": [{"type": "text", "text": "world"}]})
        + _obj(type="assistant", message={"id": "m2", "content": [{"type": "text", "text": "Next"}]})
    )
    transcript, _ = StreamJsonParser().parse(buffer)
    assert len(transcript.working) == 2
    assert "Hello" in transcript.working[0] and "world" in transcript.working[0]
    assert transcript.working[1] == "Next"


def test_stream_event_deltas_are_not_duplicated_by_full_message() -> None:
    buffer = (
        _obj(type="stream_event", event={"type": "message_start", "message": {"id": "m9"}})
        + _obj(type="stream_event", event={
            "type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hel"},
        })
        + _obj(type="stream_event", event={
            "type": "content_block_delta", "delta": {"type": "text_delta", "text": "lo there"},
        })
        + _obj(type="assistant", message={
            "id": "m9", "content": [{"type": "text", "text": "Hello there"}],
        })
    )
    transcript, _ = StreamJsonParser().parse(buffer)
    assert transcript.working == ["Hello there"]


def test_thinking_parts_fill_thinking_block() -> None:
    buffer = _obj(type="assistant", message={
        "id": "m1",
        "content": [
            {"type": "thinking", "thinking": "pondering the tree"},
            {"type": "text", "text": "Answer soon"},
        ],
    })
    transcript, _ = StreamJsonParser().parse(buffer)
    assert transcript.thinking == "pondering the tree"
    assert transcript.working == ["Answer soon"]


def test_error_result_sets_failure_and_tokens() -> None:
    buffer = _obj(
        type="result", is_error=True, result="boom",
        usage={"input_tokens": 10, "output_tokens": 5},
    )
    transcript, ok = StreamJsonParser().parse(buffer)
    assert ok is True
    assert transcript.success is False
    assert transcript.answer == "boom"
    assert transcript.tokens == 15


def test_preamble_line_becomes_header() -> None:
    buffer = "🔗 Agent: claude | Command: list folders\n" + SAMPLE
    transcript, ok = StreamJsonParser().parse(buffer)
    assert ok is True
    assert transcript.header == TranscriptHeader(agent="claude", command="list folders")


def test_preamble_split_safety() -> None:
    buffer = '🔗 Agent: claude | Command: say "hi"\n' + SAMPLE
    expected, _ = StreamJsonParser().parse(buffer)
    for offset in range(0, 60):
        parser = StreamJsonParser()
        parser.parse(buffer[:offset])
        transcript, _ = parser.parse(buffer)
        assert transcript == expected


BRACE_PROMPTS = [
    "fix the `if (x) {` block",
    "rename {old} to {new}",
    "close the stray } here",
]


def test_header_with_braces_in_prompt() -> None:
    for prompt in BRACE_PROMPTS:
        buffer = f"🔗 Agent: claude | Command: {prompt}\n" + SAMPLE
        transcript, ok = StreamJsonParser().parse(buffer)
        assert ok is True, prompt
        assert transcript.header == TranscriptHeader(agent="claude", command=prompt)
        assert transcript.answer == "Done."


def test_header_with_braces_split_safety() -> None:
    for prompt in BRACE_PROMPTS:
        buffer = f"🔗 Agent: claude | Command: {prompt}\n" + SAMPLE
        expected, _ = StreamJsonParser().parse(buffer)
        for offset in range(0, 80):
            parser = StreamJsonParser()
            parser.parse(buffer[:offset])
            transcript, _ = parser.parse(buffer)
            assert transcript == expected, f"{prompt!r} split at {offset}"
            assert parser.object_count == 6


def test_brace_mid_line_is_text() -> None:
    scanner = JsonObjectScanner()
    segments = scanner.feed('see {this\n  {"a": 1}{"b": 2}\n')
    assert [(s.kind, s.text) for s in segments] == [
        ("text", "see {this\n"),
        ("text", "  "),
        ("object", '{"a": 1}'),
        ("object", '{"b": 2}'),
        ("text", "\n"),
    ]
    assert scanner.depth == 0


def test_completion_line_sets_success_when_no_result() -> None:
    buffer = (
        _obj(type="assistant", message={"id": "m1", "content": [{"type": "text", "text": "hi"}]})
        + "\n❌ Command failed with exit code: 2\n"
    )
    transcript, ok = StreamJsonParser().parse(buffer)
    assert ok is True
    assert transcript.success is False
    assert transcript.metadata["exit_code"] == "2"


def test_plain_text_is_not_stream_json() -> None:
    transcript, ok = StreamJsonParser().parse("Error: not logged in\n")
    assert ok is False
    assert transcript.working == []


def test_shrinking_buffer_resets_parser() -> None:
    parser = StreamJsonParser()
    parser.parse(SAMPLE)
    _, ok = parser.parse(SAMPLE[:100])
    assert ok is False
    assert parser.object_count == 0


def test_malformed_object_is_skipped() -> None:
    buffer = "{not json}" + _obj(type="result", is_error=False, result="fine")
    transcript, ok = StreamJsonParser().parse(buffer)
    assert ok is True
    assert transcript.answer == "fine"


def test_scanner_reports_text_and_objects() -> None:
    scanner = JsonObjectScanner()
    segments = scanner.feed('intro\n{"a": {"b": "}"}}tail')
    kinds = [(s.kind, s.text) for s in segments]
    assert kinds == [("text", "intro\n"), ("object", '{"a": {"b": "}"}}')]
    assert scanner.committed == len('intro\n{"a": {"b": "}"}}')


def test_extract_first_object_from_prose() -> None:
    text = 'Here you go: {"a": {"b": 1}} and also {"c": 2}'
    assert extract_first_object(text) == {"a": {"b": 1}}
    assert extract_first_object("no json here") is None

"""Tests for StreamEventExtractor: line reassembly and stream-json classification."""

from __future__ import annotations

import json

from ptystream.parsing.event_extractor import StreamEventExtractor
from ptystream.parsing.models import MessageKind
from tests.parsing.conftest import (
    ASSISTANT_TOOL_LINE,
    RESULT_LINE,
    USER_LINE,
    two_way_splits,
)


def _line(obj) -> bytes:
    return (json.dumps(obj, ensure_ascii=False) + "\n").encode("utf-8")


def _assistant(*blocks) -> bytes:
    return _line({"type": "assistant", "message": {"content": list(blocks)}})


def _tool_use(tool_input, **extra) -> dict:
    block = {"type": "tool_use", "id": "t1", "name": "Tool", "input": tool_input}
    block.update(extra)
    return block


def _result(block) -> bytes:
    return _line({"type": "result", "message": {"content": [block]}})


class TestLineReassembly:
    def test_single_chunk(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(USER_LINE)
        assert len(messages) == 1
        assert messages[0].kind == MessageKind.USER
        assert messages[0].text_content == "hi"

    def test_split_at_every_offset_emits_once(self):
        for head, tail in two_way_splits(USER_LINE):
            ext = StreamEventExtractor()
            assert ext.ingest(head) == []
            messages = ext.ingest(tail)
            assert [m.text_content for m in messages] == ["hi"]

    def test_no_event_without_newline(self):
        ext = StreamEventExtractor()
        assert ext.ingest(USER_LINE.rstrip(b"\n")) == []
        assert ext.state.line_buffer == USER_LINE.rstrip(b"\n").decode()

    def test_multiple_lines_in_order(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(USER_LINE + ASSISTANT_TOOL_LINE + RESULT_LINE)
        assert [m.kind for m in messages] == [
            MessageKind.USER,
            MessageKind.ASSISTANT,
            MessageKind.RESULT,
        ]

    def test_crlf_line_endings(self):
        ext = StreamEventExtractor()
        line = USER_LINE.rstrip(b"\n") + b"\r\n"
        assert len(ext.ingest(line)) == 1
        assert ext.state.line_buffer == ""

    def test_crlf_split_between_cr_and_lf(self):
        ext = StreamEventExtractor()
        line = USER_LINE.rstrip(b"\n")
        assert len(ext.ingest(line + b"\r")) == 1
        assert ext.ingest(b"\n") == []

    def test_buffer_never_holds_line_break(self):
        ext = StreamEventExtractor()
        ext.ingest(b"noise\r\nmore noise\rtail")
        assert ext.state.line_buffer == "tail"

    def test_code_point_split_across_chunks(self):
        line = _line({"type": "user", "message": {"content": "héllo ✓"}})
        cut = line.index("é".encode()) + 1
        ext = StreamEventExtractor()
        assert ext.ingest(line[:cut]) == []
        messages = ext.ingest(line[cut:])
        assert messages[0].text_content == "héllo ✓"

    def test_invalid_utf8_is_not_fatal(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(b"\xff\xfe garbage \xc3\n" + USER_LINE)
        assert [m.text_content for m in messages] == ["hi"]

    def test_empty_chunk(self):
        assert StreamEventExtractor().ingest(b"") == []

    def test_long_line_in_small_chunks(self):
        line = _line({"type": "user", "message": {"content": "x" * 200_000}})
        ext = StreamEventExtractor()
        body, newline = line[:-1], line[-1:]
        for i in range(0, len(body), 64):
            assert ext.ingest(body[i:i + 64]) == []
        assert len(ext.state.fragments) > 1
        assert ext.state.line_buffer == body.decode()
        messages = ext.ingest(newline)
        assert len(messages[0].text_content) == 200_000
        assert ext.state.fragments == []


class TestLineFiltering:
    def test_malformed_line_does_not_block_next(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(b"not json at all\n" + USER_LINE)
        assert len(messages) == 1
        assert messages[0].text_content == "hi"

    def test_broken_json_object_skipped(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(b'{"type":"user","message":\n' + USER_LINE)
        assert len(messages) == 1

    def test_ansi_prefixed_line_skipped(self):
        ext = StreamEventExtractor()
        assert ext.ingest(b"\x1b[2K" + USER_LINE) == []

    def test_surrounding_whitespace_trimmed(self):
        ext = StreamEventExtractor()
        assert len(ext.ingest(b"   " + USER_LINE.rstrip(b"\n") + b"  \t\n")) == 1

    def test_blank_lines_skipped(self):
        assert StreamEventExtractor().ingest(b"\n\n  \n") == []

    def test_non_object_json_skipped(self):
        assert StreamEventExtractor().ingest(b"[1, 2]\n42\n") == []

    def test_missing_or_invalid_type(self):
        ext = StreamEventExtractor()
        assert ext.ingest(b'{"message":{"content":"x"}}\n') == []
        assert ext.ingest(b'{"type":5,"message":{"content":"x"}}\n') == []

    def test_unknown_type_ignored(self):
        ext = StreamEventExtractor()
        assert ext.ingest(_line({"type": "system", "subtype": "init"})) == []
        assert ext.ingest(_line({"type": "stream_event"})) == []

    def test_deeply_nested_json_skipped(self):
        ext = StreamEventExtractor()
        nested = b'{"a":' * 10000 + b"1" + b"}" * 10000 + b"\n"
        assert ext.ingest(nested + USER_LINE)[0].text_content == "hi"


class TestUserEvents:
    def test_first_text_block_wins(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(_line({"type": "user", "message": {"content": [
            {"type": "image", "source": {}},
            {"type": "text", "text": "first"},
            {"type": "text", "text": "second"},
        ]}}))
        assert [m.text_content for m in messages] == ["first"]

    def test_plain_string_content(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(_line({"type": "user", "message": {"content": "typed"}}))
        assert messages[0].text_content == "typed"
        assert messages[0].tool_use is None
        assert messages[0].tool_result is None

    def test_no_text_emits_nothing(self):
        ext = StreamEventExtractor()
        line = _line({"type": "user", "message": {"content": [
            {"type": "tool_result", "tool_use_id": "t1", "content": "ok"},
        ]}})
        assert ext.ingest(line) == []

    def test_missing_message_emits_nothing(self):
        assert StreamEventExtractor().ingest(_line({"type": "user"})) == []


class TestAssistantEvents:
    def test_one_event_per_block_in_order(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(_assistant(
            {"type": "thinking", "thinking": "hmm"},
            {"type": "text", "text": "Listing files"},
            {"type": "image"},
            {"type": "text", "text": ""},
            _tool_use({"command": "ls"}),
        ))
        assert len(messages) == 3
        assert messages[0].is_thinking
        assert messages[1].text_content == "Listing files"
        assert messages[2].tool_use.id == "t1"
        assert all(m.kind == MessageKind.ASSISTANT for m in messages)

    def test_events_from_one_line_share_timestamp(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(_assistant(
            {"type": "text", "text": "a"},
            {"type": "text", "text": "b"},
        ))
        assert messages[0].timestamp == messages[1].timestamp

    def test_tool_use_without_id_skipped(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(_assistant({"type": "tool_use", "name": "Bash", "input": {}}))
        assert messages == []

    def test_content_not_a_list(self):
        assert StreamEventExtractor().ingest(_line(
            {"type": "assistant", "message": {"content": "text"}}
        )) == []


class TestInputPreview:
    def _preview(self, tool_input, **kwargs):
        ext = StreamEventExtractor(**kwargs)
        return ext.ingest(_assistant(_tool_use(tool_input)))[0].tool_use.input_preview

    def test_file_path_basename(self):
        assert self._preview({"file_path": "/home/u/proj/src/main.py"}) == "main.py"

    def test_file_path_beats_command(self):
        assert self._preview({"command": "cat x", "file_path": "/a/b.txt"}) == "b.txt"

    def test_command_truncated(self):
        assert self._preview({"command": "x" * 80}) == "x" * 50

    def test_pattern_not_truncated(self):
        assert self._preview({"pattern": "p" * 80}) == "p" * 80

    def test_query_truncated(self):
        assert self._preview({"query": "q" * 80}) == "q" * 50

    def test_custom_preview_length(self):
        assert self._preview({"command": "abcdef"}, preview_max_chars=3) == "abc"

    def test_non_string_values_skipped(self):
        assert self._preview({"file_path": 3, "command": "ls"}) == "ls"

    def test_no_known_field(self):
        assert self._preview({"todos": []}) is None

    def test_missing_input(self):
        ext = StreamEventExtractor()
        block = {"type": "tool_use", "id": "t9", "name": "Task"}
        assert ext.ingest(_assistant(block))[0].tool_use.input_preview is None


class TestResultEvents:
    def test_explicit_success(self):
        messages = StreamEventExtractor().ingest(RESULT_LINE)
        assert messages[0].kind == MessageKind.RESULT
        assert messages[0].tool_result.tool_use_id == "t1"
        assert messages[0].tool_result.success is True

    def test_explicit_error(self):
        messages = StreamEventExtractor().ingest(_result(
            {"type": "tool_result", "tool_use_id": "t2", "is_error": True, "content": "fine"}
        ))
        assert messages[0].tool_result.success is False

    def test_error_text_heuristic(self):
        messages = StreamEventExtractor().ingest(_result(
            {"type": "tool_result", "tool_use_id": "t3", "content": "ERROR: no such file"}
        ))
        assert messages[0].tool_result.success is False

    def test_clean_text_heuristic(self):
        messages = StreamEventExtractor().ingest(_result(
            {"type": "tool_result", "tool_use_id": "t4", "content": "3 files"}
        ))
        assert messages[0].tool_result.success is True

    def test_missing_tool_use_id(self):
        assert StreamEventExtractor().ingest(_result({"type": "tool_result"})) == []

    def test_no_tool_result_block(self):
        assert StreamEventExtractor().ingest(_result({"type": "text", "text": "x"})) == []

    def test_final_summary_result_ignored(self):
        line = _line({"type": "result", "subtype": "success", "result": "done", "is_error": False})
        assert StreamEventExtractor().ingest(line) == []


class TestToolLifecycle:
    def test_tool_use_then_result(self):
        ext = StreamEventExtractor()
        messages = ext.ingest(ASSISTANT_TOOL_LINE) + ext.ingest(RESULT_LINE)
        assert len(messages) == 2
        use, result = messages
        assert use.kind == MessageKind.ASSISTANT
        assert use.tool_use.id == "t1"
        assert use.tool_use.name == "Bash"
        assert use.tool_use.input_preview == "ls"
        assert result.kind == MessageKind.RESULT
        assert result.tool_result.tool_use_id == "t1"
        assert result.tool_result.success is True


class TestFinish:
    def test_unterminated_last_line(self):
        ext = StreamEventExtractor()
        assert ext.ingest(USER_LINE.rstrip(b"\n")) == []
        messages = ext.finish()
        assert [m.text_content for m in messages] == ["hi"]
        assert ext.state.line_buffer == ""

    def test_nothing_buffered(self):
        ext = StreamEventExtractor()
        ext.ingest(USER_LINE)
        assert ext.finish() == []

    def test_dangling_partial_code_point(self):
        ext = StreamEventExtractor()
        ext.ingest(b"noise \xe2\x9c")
        assert ext.finish() == []

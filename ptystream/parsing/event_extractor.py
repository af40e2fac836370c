"""Incremental reconstruction of agent events from stream-json lines.

The agent CLI, when run with ``--output-format stream-json``, writes one
JSON object per line describing each step of a conversation.  Those lines
share the PTY with ordinary terminal output and reach us in arbitrary
chunks, so the extractor keeps the unterminated tail of the last line and
only classifies complete lines.

Consumed line shapes (fields not listed are ignored)::

    {"type":"user","message":{"content":[{"type":"text","text":"..."}]}}
    {"type":"assistant","message":{"content":[{"type":"tool_use","id":"...","name":"...","input":{...}}]}}
    {"type":"result","message":{"content":[{"type":"tool_result","tool_use_id":"...","is_error":false}]}}
"""

from __future__ import annotations

import codecs
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath

from ptystream.log_setup import TRACE
from ptystream.parsing.models import (
    MessageKind,
    StreamingMessage,
    ToolResultInfo,
    ToolUseInfo,
)

logger = logging.getLogger(__name__)

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

DEFAULT_PREVIEW_MAX_CHARS = 50


def _new_decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


@dataclass
class ExtractorState:
    """Mutable extractor state for one PTY session.

    Attributes:
        fragments: Decoded pieces received after the last line break,
            joined only once a line break arrives. Never contain ``\\n``
            or ``\\r``.
        decoder: Incremental UTF-8 decoder holding any code point split
            across chunks.
    """

    fragments: list[str] = field(default_factory=list)
    decoder: codecs.IncrementalDecoder = field(default_factory=_new_decoder)

    @property
    def line_buffer(self) -> str:
        """Text received after the last line break."""
        return "".join(self.fragments)


class StreamEventExtractor:
    """Turns a stream of (filtered) PTY bytes into StreamingMessage events."""

    def __init__(self, preview_max_chars: int = DEFAULT_PREVIEW_MAX_CHARS) -> None:
        self.state = ExtractorState()
        self._preview_max_chars = preview_max_chars

    def ingest(self, chunk: bytes) -> list[StreamingMessage]:
        """Consume a chunk and classify every line it completes.

        Args:
            chunk: Bytes as forwarded to the renderer. May end mid-line or
                mid-code-point. Invalid UTF-8 is replaced, never fatal.

        Returns:
            Events in stream order; empty if no line was completed.
        """
        if not chunk:
            return []
        state = self.state
        text = state.decoder.decode(bytes(chunk))
        if not text:
            return []

        pieces = _LINE_BREAK_RE.split(text)
        if len(pieces) == 1:
            state.fragments.append(text)
            return []

        state.fragments.append(pieces[0])
        lines = ["".join(state.fragments), *pieces[1:-1]]
        state.fragments = [pieces[-1]] if pieces[-1] else []

        messages: list[StreamingMessage] = []
        for line in lines:
            messages.extend(self.parse_line(line))
        return messages

    def finish(self) -> list[StreamingMessage]:
        """Classify the buffered tail as a final line and reset the state.

        Call once at teardown so a stream that ends without a trailing
        newline still yields its last event.
        """
        tail = self.state.line_buffer + self.state.decoder.decode(b"", final=True)
        self.state = ExtractorState()
        return self.parse_line(tail)

    def parse_line(self, line: str) -> list[StreamingMessage]:
        """Classify one complete line.

        Non-JSON noise, malformed JSON, unknown ``type`` values and missing
        fields all yield an empty list.
        """
        line = line.strip()
        if not line or not line.startswith("{"):
            return []

        try:
            event = json.loads(line)
        except (ValueError, RecursionError) as exc:
            logger.debug("Skipping malformed stream-json line: %s", exc)
            return []

        if not isinstance(event, dict):
            return []
        event_type = event.get("type")
        if not isinstance(event_type, str):
            return []

        timestamp = datetime.now(timezone.utc)
        if event_type == "user":
            messages = self._parse_user(event, timestamp)
        elif event_type == "assistant":
            messages = self._parse_assistant(event, timestamp)
        elif event_type == "result":
            messages = self._parse_result(event, timestamp)
        else:
            logger.debug("Ignoring stream-json type: %s", event_type)
            return []

        for message in messages:
            logger.log(TRACE, "Extracted %s event", message.kind.value)
        return messages

    # --- Per-type parsing ---

    @staticmethod
    def _content(event: dict):
        message = event.get("message")
        if not isinstance(message, dict):
            return None
        return message.get("content")

    def _parse_user(self, event: dict, timestamp: datetime) -> list[StreamingMessage]:
        content = self._content(event)
        text: str | None = None
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "text":
                    value = block.get("text")
                    if isinstance(value, str):
                        text = value
                        break
        elif isinstance(content, str):
            text = content

        if text is None:
            return []
        return [StreamingMessage(kind=MessageKind.USER, timestamp=timestamp, text_content=text)]

    def _parse_assistant(self, event: dict, timestamp: datetime) -> list[StreamingMessage]:
        content = self._content(event)
        if not isinstance(content, list):
            return []

        messages: list[StreamingMessage] = []
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")

            if block_type == "text":
                text = block.get("text")
                if isinstance(text, str) and text:
                    messages.append(StreamingMessage(
                        kind=MessageKind.ASSISTANT,
                        timestamp=timestamp,
                        text_content=text,
                    ))

            elif block_type == "tool_use":
                tool_id = block.get("id")
                name = block.get("name")
                if isinstance(tool_id, str) and isinstance(name, str):
                    messages.append(StreamingMessage(
                        kind=MessageKind.ASSISTANT,
                        timestamp=timestamp,
                        tool_use=ToolUseInfo(
                            id=tool_id,
                            name=name,
                            input_preview=self._input_preview(block.get("input")),
                        ),
                    ))

            elif block_type == "thinking":
                messages.append(StreamingMessage(kind=MessageKind.ASSISTANT, timestamp=timestamp))

        return messages

    def _parse_result(self, event: dict, timestamp: datetime) -> list[StreamingMessage]:
        content = self._content(event)
        if not isinstance(content, list):
            return []

        for block in content:
            if not isinstance(block, dict) or block.get("type") != "tool_result":
                continue
            tool_use_id = block.get("tool_use_id")
            if not isinstance(tool_use_id, str):
                return []
            return [StreamingMessage(
                kind=MessageKind.RESULT,
                timestamp=timestamp,
                tool_result=ToolResultInfo(
                    tool_use_id=tool_use_id,
                    success=self._result_success(block),
                ),
            )]
        return []

    # --- Field helpers ---

    def _input_preview(self, tool_input) -> str | None:
        """Pick a short hint from a tool input: file name, command, pattern or query."""
        if not isinstance(tool_input, dict):
            return None
        file_path = tool_input.get("file_path")
        if isinstance(file_path, str):
            return PurePosixPath(file_path).name
        command = tool_input.get("command")
        if isinstance(command, str):
            return command[:self._preview_max_chars]
        pattern = tool_input.get("pattern")
        if isinstance(pattern, str):
            return pattern
        query = tool_input.get("query")
        if isinstance(query, str):
            return query[:self._preview_max_chars]
        return None

    @staticmethod
    def _result_success(block: dict) -> bool:
        is_error = block.get("is_error")
        if isinstance(is_error, bool):
            return not is_error
        result_content = block.get("content")
        if isinstance(result_content, str):
            # No explicit flag: fall back to a textual heuristic.
            return "error" not in result_content.lower()
        return True

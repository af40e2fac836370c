"""Shared data types for the stream-json event pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class MessageKind(Enum):
    """Discriminator of a stream-json event, mirroring its ``type`` field."""

    USER = "user"
    ASSISTANT = "assistant"
    RESULT = "result"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class ToolUseInfo:
    """A tool invocation announced by the assistant.

    Attributes:
        id: Tool-use identifier, later echoed by the matching result.
        name: Tool name (e.g. ``"Bash"``, ``"Read"``).
        input_preview: Short human-readable hint derived from the tool input,
            or ``None`` when the input carries none of the known fields.
    """

    id: str
    name: str
    input_preview: str | None = None


@dataclass(frozen=True, slots=True)
class ToolResultInfo:
    """Outcome of a previously announced tool invocation."""

    tool_use_id: str
    success: bool


@dataclass(frozen=True, slots=True)
class StreamingMessage:
    """One unit of agent activity reconstructed from a stream-json line.

    At most one of ``text_content``, ``tool_use`` and ``tool_result`` is set.
    An assistant event with none of them marks a thinking block.
    """

    kind: MessageKind
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    text_content: str | None = None
    tool_use: ToolUseInfo | None = None
    tool_result: ToolResultInfo | None = None

    @property
    def is_thinking(self) -> bool:
        return (
            self.kind is MessageKind.ASSISTANT
            and self.text_content is None
            and self.tool_use is None
            and self.tool_result is None
        )

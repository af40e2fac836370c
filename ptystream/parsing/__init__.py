"""PTY output parsing: control_filter → (renderer) → event_extractor → models."""

from ptystream.parsing.control_filter import ControlSequenceFilter, FilterState  # noqa: F401
from ptystream.parsing.event_extractor import ExtractorState, StreamEventExtractor  # noqa: F401
from ptystream.parsing.models import (  # noqa: F401
    MessageKind,
    StreamingMessage,
    ToolResultInfo,
    ToolUseInfo,
)

__all__ = [
    "ControlSequenceFilter",
    "ExtractorState",
    "FilterState",
    "MessageKind",
    "StreamEventExtractor",
    "StreamingMessage",
    "ToolResultInfo",
    "ToolUseInfo",
]

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from ptystream.parsing.control_filter import ControlSequenceFilter
from ptystream.parsing.event_extractor import DEFAULT_PREVIEW_MAX_CHARS, StreamEventExtractor
from ptystream.parsing.models import StreamingMessage

logger = logging.getLogger(__name__)

OutputCallback = Callable[[bytes], None]
MessageCallback = Callable[[StreamingMessage], None]


class MonitorClosedError(Exception):
    """Raised when feeding a monitor that has already been closed."""

    pass


@dataclass
class MonitorResult:
    """What one chunk produced: renderer bytes and extracted events."""

    output: bytes = b""
    messages: list[StreamingMessage] = field(default_factory=list)


class OutputMonitor:
    """Per-session pipeline: filter → renderer → event extractor.

    Each PTY chunk goes through the control sequence filter; the released
    bytes are handed to ``on_output`` (the terminal renderer) and the same
    bytes are scanned for stream-json events, each delivered to
    ``on_message`` in stream order.  Exceptions raised by either callback
    propagate to the caller.

    One monitor per session; calls must not overlap.
    """

    def __init__(
        self,
        on_output: OutputCallback | None = None,
        on_message: MessageCallback | None = None,
        *,
        carry_osc_prefix: bool = True,
        preview_max_chars: int = DEFAULT_PREVIEW_MAX_CHARS,
    ) -> None:
        """Initialize the monitor.

        Args:
            on_output: Receives non-empty filtered bytes ready to render.
            on_message: Receives each extracted StreamingMessage.
            carry_osc_prefix: Passed to ControlSequenceFilter.
            preview_max_chars: Passed to StreamEventExtractor.
        """
        self._on_output = on_output
        self._on_message = on_message
        self.filter = ControlSequenceFilter(carry_osc_prefix=carry_osc_prefix)
        self.extractor = StreamEventExtractor(preview_max_chars=preview_max_chars)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: bytes) -> MonitorResult:
        """Process one PTY chunk.

        Raises:
            MonitorClosedError: If :meth:`close` was already called.
        """
        if self._closed:
            raise MonitorClosedError("Cannot feed a closed OutputMonitor")
        return self._dispatch(self.filter.process(chunk))

    def close(self) -> MonitorResult:
        """Release everything still held and stop accepting input.

        Flushes synchronized-output bytes (and any carried partial prefix)
        to the renderer, then classifies the unterminated last line.
        Calling it again returns an empty result.
        """
        if self._closed:
            return MonitorResult()
        self._closed = True

        result = self._dispatch(self.filter.flush(release_carry=True))
        for message in self.extractor.finish():
            result.messages.append(message)
            self._emit(message)

        if self.filter.state.suppressed_active:
            logger.warning("Session ended inside an unterminated OSC 9 sequence")
        logger.debug(
            "Monitor closed: released %d bytes, %d final events",
            len(result.output), len(result.messages),
        )
        return result

    def _dispatch(self, output: bytes) -> MonitorResult:
        if not output:
            return MonitorResult()
        if self._on_output is not None:
            self._on_output(output)
        messages = self.extractor.ingest(output)
        for message in messages:
            self._emit(message)
        return MonitorResult(output=output, messages=messages)

    def _emit(self, message: StreamingMessage) -> None:
        if self._on_message is not None:
            self._on_message(message)

"""Synchronized-output (DEC mode 2026) and OSC 9 filtering for raw PTY bytes.

The agent CLI brackets each screen repaint with ``ESC[?2026h`` / ``ESC[?2026l``
so a terminal can defer rendering until the batch is complete.  This module
strips those toggles, holds back the bytes written while the mode is active,
and releases them in one piece when it is switched off.  OSC 9 status reports
(``ESC]9;...``) are dropped entirely since renderers either ignore or warn
about them.  Every other byte, including unrelated escape sequences, passes
through untouched and in order.

Chunks arrive with no framing guarantee, so any of these sequences may be
split across reads; incomplete prefixes are carried to the next call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ptystream.log_setup import TRACE

logger = logging.getLogger(__name__)

ESC = 0x1B
BEL = 0x07
BACKSLASH = 0x5C

SYNC_ENABLE = b"\x1b[?2026h"
SYNC_DISABLE = b"\x1b[?2026l"
OSC_SUPPRESSED = b"\x1b]9;"
STRING_TERMINATOR = b"\x1b\\"

# Enable and disable differ only in their final byte.
_SYNC_COMMON_PREFIX = SYNC_ENABLE[:-1]


@dataclass
class FilterState:
    """Mutable filter state for one PTY session.

    Attributes:
        sync_enabled: Whether synchronized output is active.
        pending_output: Bytes held back while ``sync_enabled`` is true.
        carry: Unresolved prefix of a recognized sequence left at the end
            of the previous chunk. Never a complete sequence.
        suppressed_active: Inside an OSC 9 sequence being discarded.
        suppressed_escape: The discarded region ended on a lone ESC, so a
            ``\\`` at the start of the next chunk completes the terminator.
    """

    sync_enabled: bool = False
    pending_output: bytearray = field(default_factory=bytearray)
    carry: bytes = b""
    suppressed_active: bool = False
    suppressed_escape: bool = False


class ControlSequenceFilter:
    """Stateful byte filter placed between the PTY and the terminal renderer.

    ``process`` never blocks and never raises on malformed input; anything it
    does not recognize is forwarded as ordinary data.  Calls on one instance
    must be serialized by the owner.
    """

    def __init__(self, carry_osc_prefix: bool = True) -> None:
        """Initialize the filter.

        Args:
            carry_osc_prefix: Also carry a chunk-final ``ESC ]`` or
                ``ESC ] 9`` so an OSC 9 introducer split at a very small
                boundary is still recognized. When false only mode 2026
                prefixes are carried and a short OSC introducer at the end
                of a chunk is forwarded as data.
        """
        self.state = FilterState()
        self._carry_osc_prefix = carry_osc_prefix

    @property
    def is_sync_enabled(self) -> bool:
        return self.state.sync_enabled

    def process(self, chunk: bytes) -> bytes:
        """Filter one chunk of PTY output.

        Args:
            chunk: Raw bytes exactly as read from the PTY.

        Returns:
            Bytes that may be rendered immediately. Empty while synchronized
            output is active, unless this chunk disables it.
        """
        state = self.state
        data = bytes(chunk)
        if state.carry:
            data = state.carry + data
            state.carry = b""

        output = bytearray()
        index = 0
        end = len(data)

        while index < end:
            if state.suppressed_active:
                index = self._discard_suppressed(data, index)
                continue

            esc = data.find(ESC, index)
            if esc == -1:
                self._route(data[index:], output)
                break
            if esc > index:
                self._route(data[index:esc], output)
                index = esc

            index = self._consume_escape(data, index, output)

        return bytes(output)

    def flush(self, release_carry: bool = False) -> bytes:
        """Return and clear bytes held back by synchronized output.

        Args:
            release_carry: Also release a carried partial prefix as ordinary
                data. Use at session teardown, when no further chunk can
                complete it.

        Returns:
            The pending bytes (followed by the released carry, if requested).
        """
        state = self.state
        released = bytes(state.pending_output)
        state.pending_output.clear()
        if release_carry and state.carry:
            released += state.carry
            state.carry = b""
        if released:
            logger.debug("Flushed %d held-back bytes", len(released))
        return released

    # --- Internals ---

    def _route(self, data: bytes, output: bytearray) -> None:
        if self.state.sync_enabled:
            self.state.pending_output.extend(data)
        else:
            output.extend(data)

    def _consume_escape(self, data: bytes, index: int, output: bytearray) -> int:
        """Classify the sequence starting at ``data[index] == ESC``.

        Returns:
            Index of the first byte after whatever was consumed. Returns
            ``len(data)`` when the tail was saved as carry.
        """
        state = self.state

        if data.startswith(SYNC_ENABLE, index):
            state.sync_enabled = True
            logger.log(TRACE, "Synchronized output enabled")
            return index + len(SYNC_ENABLE)

        if data.startswith(SYNC_DISABLE, index):
            state.sync_enabled = False
            if state.pending_output:
                output.extend(state.pending_output)
                logger.log(TRACE, "Synchronized output disabled, released %d bytes", len(state.pending_output))
                state.pending_output.clear()
            else:
                logger.log(TRACE, "Synchronized output disabled")
            return index + len(SYNC_DISABLE)

        if data.startswith(OSC_SUPPRESSED, index):
            state.suppressed_active = True
            logger.log(TRACE, "Suppressing OSC 9 sequence")
            return index + len(OSC_SUPPRESSED)

        tail = data[index:]
        if self._could_complete(tail):
            state.carry = tail
            logger.log(TRACE, "Carrying %d-byte partial sequence", len(tail))
            return len(data)

        self._route(data[index:index + 1], output)
        return index + 1

    def _could_complete(self, tail: bytes) -> bool:
        """Check whether ``tail`` is a proper prefix of a recognized sequence."""
        if len(tail) <= len(_SYNC_COMMON_PREFIX) and _SYNC_COMMON_PREFIX.startswith(tail):
            return True
        if self._carry_osc_prefix:
            return len(tail) < len(OSC_SUPPRESSED) and OSC_SUPPRESSED.startswith(tail)
        return False

    def _discard_suppressed(self, data: bytes, index: int) -> int:
        """Drop bytes up to and including the OSC terminator (BEL or ST).

        Returns:
            Index just past the terminator, or ``len(data)`` if the sequence
            is still open at the end of the chunk.
        """
        state = self.state
        end = len(data)

        if state.suppressed_escape:
            state.suppressed_escape = False
            if data[index] == BACKSLASH:
                state.suppressed_active = False
                logger.log(TRACE, "OSC 9 sequence terminated")
                return index + 1

        bel = data.find(BEL, index)
        st = data.find(STRING_TERMINATOR, index)

        if bel == -1 and st == -1:
            if data[end - 1] == ESC:
                state.suppressed_escape = True
            return end

        state.suppressed_active = False
        logger.log(TRACE, "OSC 9 sequence terminated")
        if st == -1 or (bel != -1 and bel < st):
            return bel + 1
        return st + len(STRING_TERMINATOR)

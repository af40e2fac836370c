from __future__ import annotations

import re

import pyte


class TerminalEmulator:
    """Virtual terminal that renders filtered PTY bytes with pyte.

    Stands in for the renderer downstream of
    :class:`~ptystream.parsing.control_filter.ControlSequenceFilter`: it only
    ever sees bytes the filter released, so synchronized-output batches land
    in one feed and OSC 9 reports never reach it.
    """

    def __init__(self, rows: int = 40, cols: int = 120, history: int = 1000):
        """Initialize the terminal emulator with a virtual screen.

        Uses ``pyte.HistoryScreen`` so lines scrolled off the top stay
        available, and ``pyte.ByteStream`` so a UTF-8 code point split
        across two feeds is decoded correctly.

        Args:
            rows: Number of rows in the virtual terminal. Defaults to 40.
            cols: Number of columns in the virtual terminal. Defaults to 120.
            history: Scrollback lines kept above the visible area.
        """
        self.rows = rows
        self.cols = cols
        self.screen = pyte.HistoryScreen(cols, rows, history=history)
        self.stream = pyte.ByteStream(self.screen)
        self._prev_display: list[str] = [""] * rows

    def feed(self, data: bytes | str) -> None:
        """Feed filtered PTY output into the emulator.

        Args:
            data: Raw bytes or an already decoded string.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.stream.feed(data)

    def get_display(self) -> list[str]:
        """Return all screen lines, right-stripped of trailing whitespace."""
        return [line.rstrip() for line in self.screen.display]

    def get_full_display(self) -> list[str]:
        """Return scrollback history (oldest first) followed by the screen."""
        history_lines: list[str] = []
        for row in self.screen.history.top:
            rendered = "".join(
                row[col].data for col in range(self.cols)
            ).rstrip()
            history_lines.append(rendered)
        return history_lines + self.get_display()

    def get_text(self) -> str:
        """Return full screen content as text with blank lines collapsed.

        Runs of three or more newlines are reduced to double newlines, and
        leading/trailing whitespace is stripped.
        """
        text = "\n".join(self.get_display())
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    def get_changes(self) -> list[str]:
        """Return non-blank lines that changed since the previous call."""
        current = self.get_display()
        changed = []
        for cur, prev in zip(current, self._prev_display):
            if cur != prev and cur.strip():
                changed.append(cur)
        self._prev_display = list(current)
        return changed

    def reset(self) -> None:
        """Reset the screen, scrollback and change-tracking snapshot."""
        self.screen.reset()
        self.screen.history.top.clear()
        self._prev_display = [""] * self.rows

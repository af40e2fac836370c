"""Logging configuration for the ``ptystream`` package.

Registers a ``TRACE`` level below DEBUG for per-sequence filter and PTY
chunk records. Those are far too chatty for the console, so they normally
only reach the trace file.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

TRACE = 5
TRACE_DIR = "debug"
ROOT_LOGGER = "ptystream"

_CONSOLE_FMT = "%(levelname)s %(name)s: %(message)s"
_FILE_FMT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s:%(funcName)s:%(lineno)d %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

logging.addLevelName(TRACE, "TRACE")


def _trace(self: logging.Logger, message, *args, **kwargs) -> None:
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


logging.Logger.trace = _trace


def _console_level(debug: bool, trace: bool, verbose: bool) -> int:
    if trace and verbose:
        return TRACE
    if debug or trace:
        return logging.DEBUG
    return logging.INFO


def _trace_file_handler(directory: Path) -> logging.FileHandler:
    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    handler = logging.FileHandler(directory / f"trace-{stamp}.log")
    handler.setLevel(TRACE)
    handler.setFormatter(logging.Formatter(_FILE_FMT, datefmt=_FILE_DATEFMT))
    return handler


def setup_logging(
    *, debug: bool, trace: bool, verbose: bool, trace_dir: str | None = None
) -> logging.Logger:
    """Configure the package root logger.

    Console records go to stderr, leaving stdout to the extracted event
    lines. The console is INFO by default, DEBUG with ``debug`` or
    ``trace``, and TRACE when ``trace`` and ``verbose`` are both set. With
    ``trace`` every record also goes to a timestamped file.

    Safe to call repeatedly; handlers from a previous call are closed.

    Args:
        debug: Enable DEBUG on the console.
        trace: Write a trace file and enable DEBUG on the console.
        verbose: With ``trace``, also show TRACE records on the console.
        trace_dir: Directory for the trace file. Defaults to ``TRACE_DIR``.
    """
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(TRACE)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(_console_level(debug, trace, verbose))
    console.setFormatter(logging.Formatter(_CONSOLE_FMT))
    root.addHandler(console)

    if trace:
        file_handler = _trace_file_handler(Path(trace_dir or TRACE_DIR))
        root.addHandler(file_handler)
        root.debug("Writing trace log to %s", file_handler.baseFilename)

    return root

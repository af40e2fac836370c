from __future__ import annotations

import asyncio
import logging
import os
import shlex
from pathlib import Path

import pexpect

from ptystream.log_setup import TRACE

logger = logging.getLogger(__name__)


class AgentProcessError(Exception):
    """Raised when the agent CLI cannot be spawned."""

    pass


class AgentProcess:
    """Async wrapper around a pexpect-managed agent CLI subprocess.

    The PTY is opened in binary mode: the bytes returned by
    :meth:`read_available` are exactly what the child wrote, so escape
    sequences and UTF-8 code points may be split across reads.  Blocking
    pexpect calls run on the default executor.
    """

    def __init__(
        self,
        command: str,
        args: list[str],
        cwd: str,
        env: dict[str, str] | None = None,
        rows: int = 40,
        cols: int = 120,
    ) -> None:
        """Initialize an AgentProcess without spawning it.

        Args:
            command: The CLI command to execute (e.g. "claude").
            args: List of command-line arguments to pass.
            cwd: Working directory in which to spawn the process.
            env: Extra environment variables, merged on top of the current
                environment. Tilde (~) in values is expanded.
            rows: PTY height reported to the child.
            cols: PTY width reported to the child.
        """
        self._command = command
        self._args = args
        self._cwd = cwd
        self._env = self._build_env(env or {})
        self._dimensions = (rows, cols)
        self._process: pexpect.spawn | None = None
        self._buffer = bytearray()

    @staticmethod
    def _build_env(extra: dict[str, str]) -> dict[str, str]:
        """Merge extra env vars into a copy of the current environment."""
        merged = os.environ.copy()
        for key, value in extra.items():
            merged[key] = str(Path(value).expanduser()) if "~" in value else value
        return merged

    async def spawn(self) -> None:
        """Spawn the agent CLI in a PTY.

        Raises:
            AgentProcessError: If pexpect cannot start the command.
        """
        logger.debug("Spawning process: cmd=%s args=%s cwd=%s", self._command, self._args, self._cwd)
        loop = asyncio.get_running_loop()
        try:
            self._process = await loop.run_in_executor(
                None,
                lambda: pexpect.spawn(
                    self._command,
                    args=list(self._args),
                    cwd=self._cwd,
                    env=self._env,
                    dimensions=self._dimensions,
                    timeout=5,
                    maxread=4096,
                ),
            )
        except pexpect.ExceptionPexpect as exc:
            raise AgentProcessError(
                f"Failed to spawn {shlex.join([self._command, *self._args])}: {exc}"
            ) from exc
        logger.debug("Process spawned pid=%d", self._process.pid)

    def is_alive(self) -> bool:
        """Check whether the underlying PTY process is still running."""
        if self._process is None:
            return False
        return self._process.isalive()

    async def write(self, text: str) -> None:
        """Send raw text to the process via the PTY.

        Does nothing if the process is not alive.
        """
        if not self.is_alive():
            return
        logger.debug("PTY write: %r", text[:200])
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._process.send, text.encode("utf-8"))

    async def submit(self, text: str) -> None:
        """Send text and press Enter, mimicking typed user input.

        Interactive agent TUIs interpret text+Enter sent together as a paste,
        so the carriage return is sent separately after a short delay.
        """
        await self.write(text)
        await asyncio.sleep(0.15)
        await self.write("\r")

    def read_available(self) -> bytes:
        """Drain all currently available PTY output without blocking.

        Returns:
            Bytes accumulated since the last read, or ``b""`` if nothing is
            available or the process was never spawned.
        """
        if self._process is None:
            return b""
        try:
            while True:
                try:
                    chunk = self._process.read_nonblocking(size=4096, timeout=0)
                    logger.log(TRACE, "PTY read chunk len=%d", len(chunk))
                    self._buffer.extend(chunk)
                except pexpect.TIMEOUT:
                    break
                except pexpect.EOF:
                    break
        except Exception as exc:
            logger.warning("Unexpected error draining PTY buffer: %s", exc)
        result = bytes(self._buffer)
        self._buffer.clear()
        if result:
            logger.log(TRACE, "PTY read_available total=%d", len(result))
        return result

    async def terminate(self) -> None:
        """Terminate the PTY process if it is still alive."""
        if self._process is None:
            return
        logger.debug("Terminating process pid=%s", self._process.pid)
        loop = asyncio.get_running_loop()
        if self._process.isalive():
            await loop.run_in_executor(None, self._process.close, True)

    def exit_code(self) -> int | None:
        """Return the exit code, or the signal number if killed by a signal."""
        if self._process is None:
            return None
        # pexpect sets signalstatus (not exitstatus) when process is killed by signal
        if self._process.exitstatus is not None:
            return self._process.exitstatus
        return self._process.signalstatus

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from ptystream.agent_process import AgentProcess, AgentProcessError
from ptystream.config import AppConfig, ConfigError, load_config
from ptystream.log_setup import setup_logging
from ptystream.output_monitor import OutputMonitor
from ptystream.parsing.models import MessageKind, StreamingMessage
from ptystream.parsing.terminal_emulator import TerminalEmulator

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096


def format_message(message: StreamingMessage) -> str:
    """Render one event as a single console line."""
    kind = message.kind.value
    if message.tool_use is not None:
        tool = message.tool_use
        preview = f" ({tool.input_preview})" if tool.input_preview else ""
        return f"{kind}: tool {tool.name}{preview} [{tool.id}]"
    if message.tool_result is not None:
        status = "ok" if message.tool_result.success else "failed"
        return f"{kind}: {message.tool_result.tool_use_id} {status}"
    if message.text_content is not None:
        return f"{kind}: {message.text_content}"
    if message.kind is MessageKind.ASSISTANT:
        return f"{kind}: (thinking)"
    return f"{kind}:"


def _print_message(message: StreamingMessage) -> None:
    print(format_message(message), flush=True)


def build_monitor(config: AppConfig, emulator: TerminalEmulator) -> OutputMonitor:
    """Wire a monitor that renders into ``emulator`` and prints each event."""
    return OutputMonitor(
        on_output=emulator.feed,
        on_message=_print_message,
        carry_osc_prefix=config.filter.carry_osc_prefix,
        preview_max_chars=config.extractor.preview_max_chars,
    )


def replay_capture(path: str, monitor: OutputMonitor, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Feed a captured raw PTY byte file through the monitor in fixed-size chunks.

    Returns:
        Number of events extracted, including those released at close.
    """
    count = 0
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            count += len(monitor.feed(chunk).messages)
    count += len(monitor.close().messages)
    logger.debug("Replayed %s: %d events", path, count)
    return count


async def run_live(
    config: AppConfig,
    monitor: OutputMonitor,
    stop_event: asyncio.Event,
    prompt: str | None = None,
) -> int | None:
    """Spawn the agent CLI and pump its PTY output through the monitor.

    Runs until the child exits or ``stop_event`` is set, then terminates
    the child and closes the monitor.

    Returns:
        The child's exit code (or killing signal), if known.
    """
    process = AgentProcess(
        command=config.agent.command,
        args=config.agent.args,
        cwd=config.agent.cwd,
        env=config.agent.env,
        rows=config.terminal.rows,
        cols=config.terminal.cols,
    )
    await process.spawn()
    if prompt:
        await process.submit(prompt)

    interval = config.terminal.poll_interval_ms / 1000
    try:
        while not stop_event.is_set():
            data = process.read_available()
            if data:
                monitor.feed(data)
            elif not process.is_alive():
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    finally:
        data = process.read_available()
        if data:
            monitor.feed(data)
        await process.terminate()
        monitor.close()

    exit_code = process.exit_code()
    logger.info("Agent process exited with code %s", exit_code)
    return exit_code


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Filter agent PTY output and extract stream-json events",
    )
    parser.add_argument("config", nargs="?", default=None,
                        help="Path to YAML config file (default: built-in defaults)")
    parser.add_argument("--replay", metavar="FILE",
                        help="Replay a captured raw PTY byte file instead of spawning the agent")
    parser.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE,
                        help="Replay chunk size in bytes (default: %(default)s)")
    parser.add_argument("--prompt", help="Submit this text to the agent after it starts")
    parser.add_argument("--screen", action="store_true",
                        help="Print the rendered terminal screen at the end")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug mode (verbose logging)")
    parser.add_argument("--trace", action="store_true",
                        help="Enable trace mode (writes trace file to debug/)")
    parser.add_argument("--verbose", action="store_true",
                        help="With --trace, also send trace output to terminal")
    args = parser.parse_args(argv)
    if args.chunk_size <= 0:
        parser.error("--chunk-size must be positive")
    return args


async def main(argv: list[str] | None = None) -> int:
    """Entry point for the ptystream command."""
    args = _parse_args(argv)

    try:
        config = load_config(args.config) if args.config else AppConfig()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.debug:
        config.debug.enabled = True
    if args.trace:
        config.debug.trace = True
    if args.verbose:
        config.debug.verbose = True
    setup_logging(
        debug=config.debug.enabled, trace=config.debug.trace, verbose=config.debug.verbose
    )

    emulator = TerminalEmulator(
        rows=config.terminal.rows, cols=config.terminal.cols, history=config.terminal.history
    )
    monitor = build_monitor(config, emulator)

    exit_code: int | None = 0
    if args.replay:
        try:
            replay_capture(args.replay, monitor, args.chunk_size)
        except OSError as exc:
            logger.error("Cannot read capture %s: %s", args.replay, exc)
            return 1
    else:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            exit_code = await run_live(config, monitor, stop_event, prompt=args.prompt)
        except AgentProcessError as exc:
            logger.error("%s", exc)
            return 1
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    if args.screen:
        print(emulator.get_text())
    return exit_code or 0


def cli() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


@dataclass
class AgentConfig:
    """Agent CLI invocation and environment settings."""

    command: str = "claude"
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: str = "."


@dataclass
class TerminalConfig:
    """Virtual terminal geometry and PTY polling settings."""

    rows: int = 40
    cols: int = 120
    history: int = 1000
    poll_interval_ms: int = 50


@dataclass
class FilterConfig:
    """Control sequence filter settings."""

    carry_osc_prefix: bool = True


@dataclass
class ExtractorConfig:
    """Stream-json event extraction settings."""

    preview_max_chars: int = 50


@dataclass
class DebugConfig:
    """Debug mode settings."""

    enabled: bool = False
    trace: bool = False
    verbose: bool = False


@dataclass
class AppConfig:
    """Top-level application configuration aggregating all subsections."""

    agent: AgentConfig = field(default_factory=AgentConfig)
    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)


def _section(raw: dict, name: str) -> dict:
    # `or {}` fallback handles YAML null values for optional sections
    value = raw.get(name, {}) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{name} must be a mapping")
    return value


def _positive_int(section: dict, key: str, default: int, path: str, minimum: int = 1) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        qualifier = "a non-negative" if minimum == 0 else "a positive"
        raise ConfigError(f"{path}.{key} must be {qualifier} integer, got {value!r}")
    return value


def _flag(section: dict, key: str, default: bool, path: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{path}.{key} must be true or false, got {value!r}")
    return value


def _string_list(section: dict, key: str, path: str) -> list[str]:
    value = section.get(key) or []
    if not isinstance(value, list):
        raise ConfigError(f"{path}.{key} must be a list, got {value!r}")
    return [str(item) for item in value]


def _string_map(section: dict, key: str, path: str) -> dict[str, str]:
    value = section.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{path}.{key} must be a mapping, got {value!r}")
    return {str(k): str(v) for k, v in value.items()}


def load_config(path: str) -> AppConfig:
    """Load and validate application configuration from a YAML file.

    Every section is optional; missing keys take the dataclass defaults.

    Args:
        path: Filesystem path to the YAML configuration file.

    Returns:
        A fully populated AppConfig instance.

    Raises:
        ConfigError: If the file does not exist, is not a YAML mapping, or
            holds invalid values (empty agent.command, args that are not a
            list, env that is not a mapping, non-boolean flags, non-positive
            terminal geometry or preview length, negative poll interval).
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")

    agent_raw = _section(raw, "agent")
    terminal_raw = _section(raw, "terminal")
    filter_raw = _section(raw, "filter")
    extractor_raw = _section(raw, "extractor")
    debug_raw = _section(raw, "debug")

    command = agent_raw.get("command", "claude")
    if not command or not isinstance(command, str):
        raise ConfigError("agent.command must be a non-empty string")

    config = AppConfig(
        agent=AgentConfig(
            command=command,
            args=_string_list(agent_raw, "args", "agent"),
            env=_string_map(agent_raw, "env", "agent"),
            cwd=str(agent_raw.get("cwd", ".")),
        ),
        terminal=TerminalConfig(
            rows=_positive_int(terminal_raw, "rows", 40, "terminal"),
            cols=_positive_int(terminal_raw, "cols", 120, "terminal"),
            history=_positive_int(terminal_raw, "history", 1000, "terminal"),
            poll_interval_ms=_positive_int(terminal_raw, "poll_interval_ms", 50, "terminal", minimum=0),
        ),
        filter=FilterConfig(
            carry_osc_prefix=_flag(filter_raw, "carry_osc_prefix", True, "filter"),
        ),
        extractor=ExtractorConfig(
            preview_max_chars=_positive_int(extractor_raw, "preview_max_chars", 50, "extractor"),
        ),
        debug=DebugConfig(
            enabled=_flag(debug_raw, "enabled", False, "debug"),
            trace=_flag(debug_raw, "trace", False, "debug"),
            verbose=_flag(debug_raw, "verbose", False, "debug"),
        ),
    )

    logger.debug("Loaded config from %s", path)
    logger.debug("Agent command=%s args=%s", config.agent.command, config.agent.args)
    return config

"""Runtime configuration: defaults, ``ralph.yaml`` and ``RALPH_*`` environment."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ralph.supervisor.backend.conventions import resolve_agent_spec
from ralph.supervisor.hooks import HookSet

CONFIG_FILE_CANDIDATES = (Path("ralph.yaml"), Path(".ralph") / "ralph.yaml")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(slots=True)
class AgentSettings:
    """Which coding agent to run and how long one invocation may take."""

    type: str = "claude-code"
    command: str = ""
    flags: tuple[str, ...] = ()
    timeout_seconds: float = 1_800.0


@dataclass(slots=True)
class LoopSettings:
    """Iteration budget and pacing."""

    max_iterations: int = 25
    sleep_between_seconds: float = 2.0
    stop_on_first_failure: bool = False


@dataclass(slots=True)
class PathSettings:
    """Locations of the PRD, progress log and prompt template."""

    prd: Path = Path(".ralph/prd.json")
    progress: Path = Path(".ralph/progress.txt")
    prompt: Path = Path(".ralph/prompt.md")


@dataclass(slots=True)
class HookSettings:
    """Lifecycle hook commands."""

    enabled: bool = True
    on_start: tuple[str, ...] = ()
    on_iteration: tuple[str, ...] = ()
    on_complete: tuple[str, ...] = ()
    on_failure: tuple[str, ...] = ()

    def to_hook_set(self) -> HookSet:
        return HookSet(
            enabled=self.enabled,
            on_start=self.on_start,
            on_iteration=self.on_iteration,
            on_complete=self.on_complete,
            on_failure=self.on_failure,
        )


@dataclass(slots=True)
class StopSettings:
    """Polling bound used by ``ralph stop`` while waiting for the loop to exit."""

    poll_interval_seconds: float = 0.1
    max_polls: int = 30


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    agent: AgentSettings = field(default_factory=AgentSettings)
    loop: LoopSettings = field(default_factory=LoopSettings)
    paths: PathSettings = field(default_factory=PathSettings)
    hooks: HookSettings = field(default_factory=HookSettings)
    stop: StopSettings = field(default_factory=StopSettings)
    config_file: Path | None = None

    @classmethod
    def from_env(cls, config_path: Path | None = None, base_dir: Path | None = None) -> Settings:
        """Load defaults, then the YAML config file, then ``RALPH_*`` overrides."""

        resolved = config_path or find_config_file(base_dir or Path.cwd())
        document = read_config_file(resolved) if resolved is not None else {}
        settings = cls.from_mapping(document)
        settings.config_file = resolved
        _apply_env_overrides(settings)
        return settings

    @classmethod
    def from_mapping(cls, document: Mapping[str, Any]) -> Settings:
        agent = _section(document, "agent")
        loop = _section(document, "loop")
        paths = _section(document, "paths")
        hooks = _section(document, "hooks")
        stop = _section(document, "stop")
        defaults = cls()
        return cls(
            agent=AgentSettings(
                type=str(agent.get("type", defaults.agent.type)),
                command=str(agent.get("command") or ""),
                flags=_string_tuple(agent.get("flags"), "agent.flags"),
                timeout_seconds=parse_duration(
                    agent.get("timeout", defaults.agent.timeout_seconds),
                ),
            ),
            loop=LoopSettings(
                max_iterations=int(loop.get("maxIterations", defaults.loop.max_iterations)),
                sleep_between_seconds=parse_duration(
                    loop.get("sleepBetween", defaults.loop.sleep_between_seconds),
                ),
                stop_on_first_failure=_coerce_bool(
                    loop.get("stopOnFirstFailure", defaults.loop.stop_on_first_failure),
                    "loop.stopOnFirstFailure",
                ),
            ),
            paths=PathSettings(
                prd=Path(paths.get("prd", defaults.paths.prd)),
                progress=Path(paths.get("progress", defaults.paths.progress)),
                prompt=Path(paths.get("prompt", defaults.paths.prompt)),
            ),
            hooks=HookSettings(
                enabled=_coerce_bool(
                    hooks.get("enabled", defaults.hooks.enabled),
                    "hooks.enabled",
                ),
                on_start=_string_tuple(hooks.get("onStart"), "hooks.onStart"),
                on_iteration=_string_tuple(hooks.get("onIteration"), "hooks.onIteration"),
                on_complete=_string_tuple(hooks.get("onComplete"), "hooks.onComplete"),
                on_failure=_string_tuple(hooks.get("onFailure"), "hooks.onFailure"),
            ),
            stop=StopSettings(
                poll_interval_seconds=parse_duration(
                    stop.get("pollInterval", defaults.stop.poll_interval_seconds),
                ),
                max_polls=int(stop.get("maxPolls", defaults.stop.max_polls)),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if loop or agent settings are unusable."""

        if self.loop.max_iterations < 1:
            raise ValueError("loop.maxIterations must be >= 1.")
        if self.loop.sleep_between_seconds < 0:
            raise ValueError("loop.sleepBetween must be >= 0.")
        if self.agent.timeout_seconds < 0:
            raise ValueError("agent.timeout must be >= 0 (0 disables the timeout).")
        if self.stop.poll_interval_seconds <= 0:
            raise ValueError("stop.pollInterval must be > 0.")
        if self.stop.max_polls < 1:
            raise ValueError("stop.maxPolls must be >= 1.")
        resolve_agent_spec(self.agent)

    def ensure_directories(self) -> None:
        for path in (self.paths.prd, self.paths.progress, self.paths.prompt):
            path.parent.mkdir(parents=True, exist_ok=True)


def find_config_file(base_dir: Path) -> Path | None:
    for candidate in CONFIG_FILE_CANDIDATES:
        path = base_dir / candidate
        if path.is_file():
            return path
    return None


def read_config_file(path: Path) -> dict[str, Any]:
    try:
        document = yaml.safe_load(path.read_text("utf-8"))
    except yaml.YAMLError as error:
        raise ValueError(f"Invalid config file {path}: {error}") from error
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level.")
    return document


def parse_duration(value: object) -> float:
    """Parse ``30m``, ``1h30m``, ``2s``, ``500ms`` or a plain number of seconds."""

    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, int | float):
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid duration: {value!r}")
    text = value.strip().lower()
    if not text:
        raise ValueError("Invalid duration: empty string")
    try:
        return float(text)
    except ValueError:
        pass
    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def _section(document: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = document.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Config section {name!r} must be a mapping.")
    return value


def _string_tuple(value: object, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ValueError(f"Config value {name!r} must be a list of strings.")
    return tuple(str(item) for item in value)


def _apply_env_overrides(settings: Settings) -> None:
    agent_type = os.getenv("RALPH_AGENT_TYPE")
    if agent_type:
        settings.agent.type = agent_type
    agent_command = os.getenv("RALPH_AGENT_COMMAND")
    if agent_command:
        settings.agent.command = agent_command
    agent_flags = os.getenv("RALPH_AGENT_FLAGS")
    if agent_flags is not None:
        settings.agent.flags = tuple(
            part.strip() for part in agent_flags.split(",") if part.strip()
        )
    timeout = os.getenv("RALPH_AGENT_TIMEOUT")
    if timeout:
        settings.agent.timeout_seconds = parse_duration(timeout)

    max_iterations = os.getenv("RALPH_LOOP_MAX_ITERATIONS")
    if max_iterations:
        settings.loop.max_iterations = int(max_iterations)
    sleep_between = os.getenv("RALPH_LOOP_SLEEP_BETWEEN")
    if sleep_between:
        settings.loop.sleep_between_seconds = parse_duration(sleep_between)
    settings.loop.stop_on_first_failure = _env_bool(
        "RALPH_LOOP_STOP_ON_FIRST_FAILURE",
        default=settings.loop.stop_on_first_failure,
    )

    for attribute, name in (
        ("prd", "RALPH_PATHS_PRD"),
        ("progress", "RALPH_PATHS_PROGRESS"),
        ("prompt", "RALPH_PATHS_PROMPT"),
    ):
        value = os.getenv(name)
        if value:
            setattr(settings.paths, attribute, Path(value))

    settings.hooks.enabled = _env_bool("RALPH_HOOKS_ENABLED", default=settings.hooks.enabled)

    poll_interval = os.getenv("RALPH_STOP_POLL_INTERVAL")
    if poll_interval:
        settings.stop.poll_interval_seconds = parse_duration(poll_interval)
    max_polls = os.getenv("RALPH_STOP_MAX_POLLS")
    if max_polls:
        settings.stop.max_polls = int(max_polls)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return _coerce_bool(value, name)


def _coerce_bool(value: object, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")


DEFAULT_CONFIG_YAML = """\
# Ralph Configuration

# Agent configuration
agent:
  # Agent type: claude-code, amp, opencode, codex, custom
  type: claude-code
  # Custom command (only if type: custom); may contain {prompt}
  # command: "my-agent --flag"
  # Additional flags to pass to the agent
  flags: []
  # Maximum time per iteration (0 disables the timeout)
  timeout: 30m

# Loop configuration
loop:
  # Maximum number of iterations
  maxIterations: 25
  # Time to sleep between iterations
  sleepBetween: 2s
  # Treat an agent timeout or non-zero exit as fatal
  stopOnFirstFailure: false

# File paths (relative to project root)
paths:
  prd: .ralph/prd.json
  progress: .ralph/progress.txt
  prompt: .ralph/prompt.md

# Lifecycle hooks
hooks:
  enabled: true
  # Commands to run before the loop starts
  onStart: []
  # Commands to run before each iteration
  onIteration: []
  # Commands to run when all stories complete
  onComplete: []
  # Commands to run on failure
  onFailure: []

# How long `ralph stop` waits for the loop to exit
stop:
  pollInterval: 100ms
  maxPolls: 30
"""

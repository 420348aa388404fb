"""Agent invocation specs and execution results."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from ralph.supervisor.environment import ExecutionContext

COMPLETION_MARKER = "<promise>COMPLETE</promise>"


@dataclass(frozen=True, slots=True)
class AgentConvention:
    """How one agent family expects to receive its prompt."""

    tag: str
    executable: str
    base_args: tuple[str, ...] = ()
    prompt_flag: str | None = "-p"
    prompt_via_stdin: bool = False


@dataclass(frozen=True, slots=True)
class BuiltinConvention:
    """Invocation resolved from a registered agent tag."""

    tag: str


@dataclass(frozen=True, slots=True)
class CustomCommand:
    """Invocation resolved from a user supplied command line."""

    argv: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class AgentSpec:
    """Immutable agent configuration resolved once before the loop starts."""

    agent_type: str
    invocation: BuiltinConvention | CustomCommand
    convention: AgentConvention
    executable: str
    args: tuple[str, ...]
    timeout_seconds: float | None

    def command_string(self) -> str:
        return " ".join((self.executable, *self.args))


class ExitKind(str, Enum):
    """Classification of how the agent process ended."""

    EXITED = "exited"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    LAUNCH_FAILED = "launch_failed"


@dataclass(slots=True)
class AgentExecutionResult:
    """Outcome of one agent invocation."""

    output: str
    exit_kind: ExitKind
    exit_code: int
    duration_seconds: float
    is_complete: bool
    error: str | None = None

    @property
    def launch_failed(self) -> bool:
        return self.exit_kind is ExitKind.LAUNCH_FAILED

    @property
    def succeeded(self) -> bool:
        return self.exit_kind is ExitKind.EXITED and self.exit_code == 0


class AgentExecutor(Protocol):
    """Protocol implemented by agent runners."""

    def execute(
        self,
        prompt: str,
        *,
        cancellation: threading.Event | None = None,
        context: ExecutionContext | None = None,
    ) -> AgentExecutionResult:
        """Run the agent once with ``prompt`` and classify the outcome."""

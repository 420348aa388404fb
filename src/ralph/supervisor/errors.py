"""Error taxonomy for the iteration supervisor."""

from __future__ import annotations

from enum import Enum


class LoopPhase(str, Enum):
    """Supervisor phase that produced a fatal error."""

    START_HOOK = "start_hook"
    ITERATION_HOOK = "iteration_hook"
    COMPLETE_HOOK = "complete_hook"
    FAILURE_HOOK = "failure_hook"
    STATE_RELOAD = "state_reload"
    RENDER = "render"
    AGENT_LAUNCH = "agent_launch"
    AGENT_FAILURE = "agent_failure"


class NotRunningError(RuntimeError):
    """No live supervisor is recorded in the PID file."""

    def __init__(self, message: str = "ralph is not running") -> None:
        super().__init__(message)


class AlreadyRunningError(RuntimeError):
    """A live supervisor already owns the PID file."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"ralph is already running: PID {pid}")
        self.pid = pid


class SupervisorError(RuntimeError):
    """Fatal loop error tagged with the phase that raised it."""

    def __init__(self, phase: LoopPhase, message: str) -> None:
        super().__init__(message)
        self.phase = phase


class HookError(SupervisorError):
    """A lifecycle hook command exited non-zero or could not be started."""

    def __init__(
        self,
        message: str,
        *,
        hook_phase: str,
        command: str,
        exit_code: int | None,
        phase: LoopPhase = LoopPhase.ITERATION_HOOK,
    ) -> None:
        super().__init__(phase, message)
        self.hook_phase = hook_phase
        self.command = command
        self.exit_code = exit_code


class StateReloadError(SupervisorError):
    """Task list or progress log could not be read or parsed."""

    def __init__(self, message: str) -> None:
        super().__init__(LoopPhase.STATE_RELOAD, message)


class RenderError(SupervisorError):
    """Prompt template could not be rendered."""

    def __init__(self, message: str) -> None:
        super().__init__(LoopPhase.RENDER, message)


class AgentLaunchError(SupervisorError):
    """Agent process could not be started at all."""

    def __init__(self, message: str) -> None:
        super().__init__(LoopPhase.AGENT_LAUNCH, message)


class AgentFailureError(SupervisorError):
    """Agent timed out or exited non-zero while stop-on-first-failure is enabled."""

    def __init__(self, message: str) -> None:
        super().__init__(LoopPhase.AGENT_FAILURE, message)

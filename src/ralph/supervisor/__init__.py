"""Iteration supervisor: agent runner, hooks, process registry and the loop."""

from ralph.supervisor.errors import (
    AgentFailureError,
    AgentLaunchError,
    AlreadyRunningError,
    HookError,
    LoopPhase,
    NotRunningError,
    RenderError,
    StateReloadError,
    SupervisorError,
)
from ralph.supervisor.hooks import HookDispatcher, HookPhase, HookSet
from ralph.supervisor.loop import IterationOutcome, IterationSupervisor, LoopResult, TerminalReason
from ralph.supervisor.pidfile import ProcessRegistry, StopOutcome, StopReport
from ralph.supervisor.signals import cancel_on_signals

__all__ = [
    "AgentFailureError",
    "AgentLaunchError",
    "AlreadyRunningError",
    "HookDispatcher",
    "HookError",
    "HookPhase",
    "HookSet",
    "IterationOutcome",
    "IterationSupervisor",
    "LoopPhase",
    "LoopResult",
    "NotRunningError",
    "ProcessRegistry",
    "RenderError",
    "StateReloadError",
    "StopOutcome",
    "StopReport",
    "SupervisorError",
    "TerminalReason",
    "cancel_on_signals",
]

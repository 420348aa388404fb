"""Lifecycle hook dispatch around the iteration loop."""

from __future__ import annotations

import logging
import shlex
import subprocess
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TextIO

from ralph.supervisor.environment import (
    ENV_FAILURE_REASON,
    ENV_HOOK,
    ENV_ITERATION,
    ENV_ITERATIONS,
    ENV_STORIES_COMPLETED,
    ENV_STORY_ID,
    child_environment,
)
from ralph.supervisor.errors import HookError, LoopPhase
from ralph.supervisor.process import OutputTee, wait_for_process

logger = logging.getLogger(__name__)


class HookPhase(str, Enum):
    """Lifecycle points at which hook commands run."""

    ON_START = "onStart"
    ON_ITERATION = "onIteration"
    ON_COMPLETE = "onComplete"
    ON_FAILURE = "onFailure"


_LOOP_PHASES = {
    HookPhase.ON_START: LoopPhase.START_HOOK,
    HookPhase.ON_ITERATION: LoopPhase.ITERATION_HOOK,
    HookPhase.ON_COMPLETE: LoopPhase.COMPLETE_HOOK,
    HookPhase.ON_FAILURE: LoopPhase.FAILURE_HOOK,
}


@dataclass(frozen=True, slots=True)
class HookSet:
    """Ordered hook commands per phase plus a global switch."""

    enabled: bool = True
    on_start: tuple[str, ...] = ()
    on_iteration: tuple[str, ...] = ()
    on_complete: tuple[str, ...] = ()
    on_failure: tuple[str, ...] = ()

    def commands(self, phase: HookPhase) -> tuple[str, ...]:
        return {
            HookPhase.ON_START: self.on_start,
            HookPhase.ON_ITERATION: self.on_iteration,
            HookPhase.ON_COMPLETE: self.on_complete,
            HookPhase.ON_FAILURE: self.on_failure,
        }[phase]

    def has_hooks(self) -> bool:
        return any(self.commands(phase) for phase in HookPhase)


@dataclass(slots=True)
class HookDispatcher:
    """Run hook commands sequentially; the first failure aborts the phase."""

    hooks: HookSet = field(default_factory=HookSet)
    stream: TextIO | None = None

    def run(
        self,
        phase: HookPhase,
        env: Mapping[str, str] | None = None,
        *,
        cancellation: threading.Event | None = None,
    ) -> None:
        if not self.hooks.enabled:
            return
        for command in self.hooks.commands(phase):
            if not command.strip():
                continue
            self._run_single(phase, command, env or {}, cancellation)

    def run_on_start(
        self,
        iteration: int,
        story_id: str,
        *,
        cancellation: threading.Event | None = None,
    ) -> None:
        self.run(
            HookPhase.ON_START,
            {
                ENV_ITERATION: str(iteration),
                ENV_STORY_ID: story_id,
                ENV_HOOK: HookPhase.ON_START.value,
            },
            cancellation=cancellation,
        )

    def run_on_iteration(
        self,
        iteration: int,
        story_id: str,
        *,
        cancellation: threading.Event | None = None,
    ) -> None:
        self.run(
            HookPhase.ON_ITERATION,
            {
                ENV_ITERATION: str(iteration),
                ENV_STORY_ID: story_id,
                ENV_HOOK: HookPhase.ON_ITERATION.value,
            },
            cancellation=cancellation,
        )

    def run_on_complete(
        self,
        iterations: int,
        stories_completed: int,
        *,
        cancellation: threading.Event | None = None,
    ) -> None:
        self.run(
            HookPhase.ON_COMPLETE,
            {
                ENV_ITERATIONS: str(iterations),
                ENV_STORIES_COMPLETED: str(stories_completed),
                ENV_HOOK: HookPhase.ON_COMPLETE.value,
            },
            cancellation=cancellation,
        )

    def run_on_failure(
        self,
        iteration: int,
        reason: str,
        *,
        cancellation: threading.Event | None = None,
    ) -> None:
        self.run(
            HookPhase.ON_FAILURE,
            {
                ENV_ITERATION: str(iteration),
                ENV_FAILURE_REASON: reason,
                ENV_HOOK: HookPhase.ON_FAILURE.value,
            },
            cancellation=cancellation,
        )

    def _run_single(
        self,
        phase: HookPhase,
        command: str,
        env: Mapping[str, str],
        cancellation: threading.Event | None,
    ) -> None:
        loop_phase = _LOOP_PHASES[phase]
        try:
            argv = shlex.split(command)
        except ValueError as error:
            raise HookError(
                f"hook {command} failed: {error}",
                hook_phase=phase.value,
                command=command,
                exit_code=None,
                phase=loop_phase,
            ) from error

        logger.debug("Running %s hook: %s", phase.value, command)
        try:
            process = subprocess.Popen(  # noqa: S603
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=child_environment(env),
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as error:
            raise HookError(
                f"hook {command} failed: {error}",
                hook_phase=phase.value,
                command=command,
                exit_code=None,
                phase=loop_phase,
            ) from error

        if process.stdout is None:  # pragma: no cover - stdout is always piped
            raise RuntimeError("Hook stdout pipe is missing.")
        tee = OutputTee(process.stdout, self.stream or sys.stdout).start()
        outcome = wait_for_process(process, timeout_seconds=None, cancellation=cancellation)
        tee.join()

        if outcome.cancelled:
            raise HookError(
                f"hook {command} failed: cancelled",
                hook_phase=phase.value,
                command=command,
                exit_code=outcome.returncode,
                phase=loop_phase,
            )
        if outcome.returncode != 0:
            raise HookError(
                f"hook {command} failed: exit status {outcome.returncode}",
                hook_phase=phase.value,
                command=command,
                exit_code=outcome.returncode,
                phase=loop_phase,
            )

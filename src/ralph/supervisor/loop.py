"""Iteration supervisor: the bounded agent loop and its terminal report."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ralph.prd import Prd, load_prd
from ralph.progress import ProgressLog, load_progress
from ralph.prompt import PromptTemplateError, build_template_data, load_template, render
from ralph.supervisor.backend import (
    AgentExecutionResult,
    AgentExecutor,
    AgentRunner,
    ExitKind,
    resolve_agent_spec,
)
from ralph.supervisor.environment import ExecutionContext
from ralph.supervisor.errors import (
    AgentFailureError,
    AgentLaunchError,
    HookError,
    RenderError,
    StateReloadError,
    SupervisorError,
)
from ralph.supervisor.hooks import HookDispatcher

if TYPE_CHECKING:
    from ralph.config import Settings

logger = logging.getLogger(__name__)

MAX_ITERATIONS_REASON = "max iterations reached"


class TerminalReason(str, Enum):
    """Why the loop stopped."""

    COMPLETE = "complete"
    MAX_ITERATIONS = "max_iterations"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(slots=True)
class LoopResult:
    """Terminal report of one :meth:`IterationSupervisor.run` call."""

    success: bool
    iterations: int
    stories_completed: int
    duration_seconds: float
    reason: TerminalReason
    error: SupervisorError | None = None


@dataclass(slots=True)
class IterationOutcome:
    """Result of one iteration body."""

    iteration: int
    complete: bool = False
    story_id: str = ""
    stories_completed: int = 0
    agent_result: AgentExecutionResult | None = None
    error: SupervisorError | None = None


class IterationSupervisor:
    """Drive one agent invocation per iteration until the PRD is complete.

    The PRD is re-read at the top of every iteration because the agent (or a
    human) edits it between invocations. Start and iteration hook failures,
    state reload failures, render failures and launch failures end the loop
    with :attr:`TerminalReason.ERROR`. A non-zero agent exit only ends it when
    ``loop.stop_on_first_failure`` is set.

    The cancellation event is checked at the top of every iteration and while
    waiting on hook and agent subprocesses. The sleep between iterations is not
    interrupted.
    """

    def __init__(  # noqa: PLR0913
        self,
        settings: Settings,
        *,
        runner: AgentExecutor | None = None,
        hooks: HookDispatcher | None = None,
        sleep: Callable[[float], None] = time.sleep,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self._settings = settings
        self._runner = runner or AgentRunner(resolve_agent_spec(settings.agent))
        self._hooks = hooks or HookDispatcher(settings.hooks.to_hook_set())
        self._sleep = sleep
        self._on_progress = on_progress or (lambda _msg: None)
        self._prd: Prd | None = None
        self._progress: ProgressLog | None = None
        self._template: str | None = None

    @property
    def prd(self) -> Prd:
        if self._prd is None:
            self._prd = self._reload_prd()
        return self._prd

    def load(self) -> None:
        """Read the PRD, progress log and prompt template up front."""

        self._prd = self._reload_prd()
        self._progress = self._reload_progress()
        self._template = self._load_template()

    def run(self, cancellation: threading.Event | None = None) -> LoopResult:
        cancellation = cancellation or threading.Event()
        started = time.monotonic()

        try:
            prd = self._reload_prd()
        except StateReloadError as error:
            self._notify_failure(0, error)
            return self._result(started, TerminalReason.ERROR, 0, 0, error)
        self._prd = prd

        _, completed, _ = prd.stats()
        if prd.is_complete():
            self._emit("All stories already complete")
            return self._result(started, TerminalReason.COMPLETE, 0, completed)

        if cancellation.is_set():
            return self._result(started, TerminalReason.CANCELLED, 0, completed)

        first = prd.next_story()
        try:
            self._hooks.run_on_start(0, first.id if first else "", cancellation=cancellation)
        except HookError as error:
            if cancellation.is_set():
                return self._result(started, TerminalReason.CANCELLED, 0, completed)
            self._notify_failure(0, error)
            return self._result(started, TerminalReason.ERROR, 0, completed, error)

        stories_completed = completed
        max_iterations = self._settings.loop.max_iterations
        for iteration in range(1, max_iterations + 1):
            if cancellation.is_set():
                self._emit(f"Cancelled after {iteration - 1} iteration(s)")
                return self._result(
                    started,
                    TerminalReason.CANCELLED,
                    iteration - 1,
                    stories_completed,
                )

            outcome = self._execute(iteration, cancellation)
            if outcome.error is not None:
                if cancellation.is_set():
                    return self._result(
                        started,
                        TerminalReason.CANCELLED,
                        iteration,
                        stories_completed,
                    )
                self._emit(f"Iteration {iteration} failed: {outcome.error}")
                self._notify_failure(iteration, outcome.error)
                return self._result(
                    started,
                    TerminalReason.ERROR,
                    iteration,
                    stories_completed,
                    outcome.error,
                )

            stories_completed = max(stories_completed, outcome.stories_completed)
            if outcome.complete:
                self._emit(f"All stories complete after {iteration} iteration(s)")
                self._notify_complete(iteration, stories_completed)
                return self._result(
                    started,
                    TerminalReason.COMPLETE,
                    iteration,
                    stories_completed,
                )

            if cancellation.is_set():
                self._emit(f"Cancelled after {iteration} iteration(s)")
                return self._result(
                    started,
                    TerminalReason.CANCELLED,
                    iteration,
                    stories_completed,
                )

            delay = self._settings.loop.sleep_between_seconds
            if iteration < max_iterations and delay > 0:
                self._sleep(delay)

        self._emit(f"Max iterations reached ({max_iterations})")
        try:
            self._hooks.run_on_failure(max_iterations, MAX_ITERATIONS_REASON)
        except HookError as hook_error:
            logger.warning("onFailure hook failed: %s", hook_error)
        return self._result(
            started,
            TerminalReason.MAX_ITERATIONS,
            max_iterations,
            stories_completed,
        )

    def run_once(self, cancellation: threading.Event | None = None) -> IterationOutcome:
        """Execute exactly one iteration body with the iteration counter at 1."""

        return self._execute(1, cancellation or threading.Event())

    def _execute(self, iteration: int, cancellation: threading.Event) -> IterationOutcome:
        try:
            return self._run_iteration(iteration, cancellation)
        except SupervisorError as error:
            return IterationOutcome(iteration=iteration, error=error)

    def _run_iteration(self, iteration: int, cancellation: threading.Event) -> IterationOutcome:
        prd = self._reload_prd()
        self._prd = prd
        total, completed, pending = prd.stats()
        story = prd.next_story()
        if prd.is_complete() or story is None:
            return IterationOutcome(
                iteration=iteration,
                complete=True,
                stories_completed=completed,
            )

        max_iterations = self._settings.loop.max_iterations
        self._emit(
            f"Iteration {iteration}/{max_iterations} | Stories: {completed}/{total} complete"
            f" | Next: {story.id}: {story.title}",
        )
        self._hooks.run_on_iteration(iteration, story.id, cancellation=cancellation)

        progress = self._reload_progress()
        self._progress = progress
        template = self._template if self._template is not None else self._load_template()
        self._template = template
        try:
            prompt = render(template, build_template_data(prd, progress))
        except PromptTemplateError as error:
            raise RenderError(str(error)) from error

        paths = self._settings.paths
        context = ExecutionContext(
            iteration=iteration,
            max_iterations=max_iterations,
            story_id=story.id,
            story_title=story.title,
            branch=prd.branch_name,
            prd_path=str(paths.prd),
            progress_path=str(paths.progress),
            prompt_path=str(paths.prompt),
            total_stories=total,
            done_stories=completed,
            pending_stories=pending,
            agent_type=self._settings.agent.type,
        )
        result = self._runner.execute(prompt, cancellation=cancellation, context=context)

        if result.launch_failed:
            raise AgentLaunchError(result.error or "agent could not be started")
        if result.exit_kind in (ExitKind.TIMED_OUT, ExitKind.EXITED) and not result.succeeded:
            logger.warning("Iteration %d: %s", iteration, result.error)
            if self._settings.loop.stop_on_first_failure:
                raise AgentFailureError(result.error or "agent failed")

        stories_completed = completed + pending if result.is_complete else completed
        try:
            _, refreshed, _ = load_prd(paths.prd).stats()
        except (OSError, ValueError, TypeError) as error:
            logger.debug("Could not re-read PRD after iteration %d: %s", iteration, error)
        else:
            stories_completed = max(stories_completed, refreshed)

        return IterationOutcome(
            iteration=iteration,
            complete=result.is_complete,
            story_id=story.id,
            stories_completed=stories_completed,
            agent_result=result,
        )

    def _reload_prd(self) -> Prd:
        path = self._settings.paths.prd
        try:
            return load_prd(path)
        except (OSError, ValueError, TypeError) as error:
            raise StateReloadError(f"failed to load PRD {path}: {error}") from error

    def _reload_progress(self) -> ProgressLog:
        path = self._settings.paths.progress
        try:
            return load_progress(path)
        except (OSError, ValueError) as error:
            raise StateReloadError(f"failed to load progress {path}: {error}") from error

    def _load_template(self) -> str:
        path = self._settings.paths.prompt
        try:
            return load_template(path)
        except (OSError, ValueError) as error:
            raise RenderError(f"failed to load prompt template {path}: {error}") from error

    def _notify_failure(self, iteration: int, error: SupervisorError) -> None:
        try:
            self._hooks.run_on_failure(iteration, str(error))
        except HookError as hook_error:
            logger.warning("onFailure hook failed: %s", hook_error)

    def _notify_complete(self, iterations: int, stories_completed: int) -> None:
        try:
            self._hooks.run_on_complete(iterations, stories_completed)
        except HookError as hook_error:
            logger.warning("onComplete hook failed: %s", hook_error)

    def _result(
        self,
        started: float,
        reason: TerminalReason,
        iterations: int,
        stories_completed: int,
        error: SupervisorError | None = None,
    ) -> LoopResult:
        return LoopResult(
            success=reason is TerminalReason.COMPLETE,
            iterations=iterations,
            stories_completed=stories_completed,
            duration_seconds=time.monotonic() - started,
            reason=reason,
            error=error,
        )

    def _emit(self, msg: str) -> None:
        """Log and notify progress callback."""
        logger.info(msg)
        self._on_progress(msg)

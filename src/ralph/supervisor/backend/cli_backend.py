"""Subprocess-based runner for CLI coding agents."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import threading
import time
from typing import TextIO

from ralph.supervisor.backend.base import (
    COMPLETION_MARKER,
    AgentExecutionResult,
    AgentSpec,
    CustomCommand,
    ExitKind,
)
from ralph.supervisor.environment import ExecutionContext, child_environment
from ralph.supervisor.process import OutputTee, feed_stdin, wait_for_process

logger = logging.getLogger(__name__)

PROMPT_PLACEHOLDER = "{prompt}"


class AgentRunner:
    """Run one agent invocation per call, streaming and buffering its output.

    Output goes to ``stream`` (``sys.stdout`` at call time when omitted) and is
    scanned for the completion marker afterwards. The runner never retries.
    """

    def __init__(self, spec: AgentSpec, *, stream: TextIO | None = None) -> None:
        self.spec = spec
        self._stream = stream

    def available(self) -> bool:
        return shutil.which(self.spec.executable) is not None

    def build_args(self, prompt: str) -> list[str]:
        args = list(self.spec.args)
        if isinstance(self.spec.invocation, CustomCommand) and any(
            PROMPT_PLACEHOLDER in arg for arg in args
        ):
            return [arg.replace(PROMPT_PLACEHOLDER, prompt) for arg in args]
        if self.spec.convention.prompt_flag is not None:
            args.extend((self.spec.convention.prompt_flag, prompt))
        return args

    def execute(
        self,
        prompt: str,
        *,
        cancellation: threading.Event | None = None,
        context: ExecutionContext | None = None,
    ) -> AgentExecutionResult:
        start_monotonic = time.monotonic()
        if cancellation is not None and cancellation.is_set():
            return AgentExecutionResult(
                output="",
                exit_kind=ExitKind.CANCELLED,
                exit_code=-1,
                duration_seconds=0.0,
                is_complete=False,
                error="agent run cancelled before launch",
            )

        run_args = [self.spec.executable, *self.build_args(prompt)]
        via_stdin = self.spec.convention.prompt_via_stdin
        env = child_environment(context.to_env() if context is not None else None)
        try:
            process = subprocess.Popen(  # noqa: S603
                run_args,
                stdin=subprocess.PIPE if via_stdin else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as error:
            logger.error("Agent %s failed to start: %s", self.spec.executable, error)
            return AgentExecutionResult(
                output="",
                exit_kind=ExitKind.LAUNCH_FAILED,
                exit_code=-1,
                duration_seconds=time.monotonic() - start_monotonic,
                is_complete=False,
                error=f"failed to start agent {self.spec.executable!r}: {error}",
            )

        if process.stdout is None:  # pragma: no cover - stdout is always piped
            raise RuntimeError("Agent stdout pipe is missing.")
        tee = OutputTee(process.stdout, self._stream or sys.stdout).start()
        if via_stdin:
            feed_stdin(process, prompt)

        outcome = wait_for_process(
            process,
            timeout_seconds=self.spec.timeout_seconds,
            cancellation=cancellation,
        )
        output = tee.join()
        duration = time.monotonic() - start_monotonic

        if outcome.timed_out:
            exit_kind = ExitKind.TIMED_OUT
            exit_code = -1
            timeout_text = _format_seconds(self.spec.timeout_seconds)
            error: str | None = f"agent timed out after {timeout_text}"
        elif outcome.cancelled:
            exit_kind = ExitKind.CANCELLED
            exit_code = -1
            error = "agent run cancelled"
        else:
            exit_kind = ExitKind.EXITED
            exit_code = outcome.returncode if outcome.returncode is not None else -1
            error = None if exit_code == 0 else f"agent exited with code {exit_code}"

        logger.info(
            "Agent finished: agent=%s exit_kind=%s exit_code=%s elapsed=%.1fs",
            self.spec.agent_type,
            exit_kind.value,
            exit_code,
            duration,
        )
        return AgentExecutionResult(
            output=output,
            exit_kind=exit_kind,
            exit_code=exit_code,
            duration_seconds=duration,
            is_complete=COMPLETION_MARKER in output,
            error=error,
        )


def _format_seconds(seconds: float | None) -> str:
    if seconds is None:
        return "no timeout"
    whole = int(seconds)
    if whole != seconds:
        return f"{seconds:.1f}s"
    hours, remainder = divmod(whole, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"

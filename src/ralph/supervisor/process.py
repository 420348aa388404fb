"""Subprocess plumbing shared by the agent runner and the hook dispatcher."""

from __future__ import annotations

import subprocess
import threading
import time
from typing import IO, NamedTuple, TextIO

_POLL_SECONDS = 0.1
_TERMINATE_GRACE_SECONDS = 2
_PUMP_JOIN_SECONDS = 2


class WaitOutcome(NamedTuple):
    returncode: int | None
    timed_out: bool
    cancelled: bool


def wait_for_process(
    process: subprocess.Popen[str],
    *,
    timeout_seconds: float | None,
    cancellation: threading.Event | None,
    poll_seconds: float = _POLL_SECONDS,
) -> WaitOutcome:
    """Wait for ``process``, terminating it on deadline or cancellation."""

    start_monotonic = time.monotonic()
    while True:
        returncode = process.poll()
        if returncode is not None:
            return WaitOutcome(returncode=returncode, timed_out=False, cancelled=False)

        if timeout_seconds is not None and time.monotonic() - start_monotonic >= timeout_seconds:
            terminate_process(process)
            return WaitOutcome(returncode=process.returncode, timed_out=True, cancelled=False)

        if cancellation is not None and cancellation.is_set():
            terminate_process(process)
            return WaitOutcome(returncode=process.returncode, timed_out=False, cancelled=True)

        if cancellation is not None:
            cancellation.wait(poll_seconds)
        else:
            time.sleep(poll_seconds)


def terminate_process(process: subprocess.Popen[str] | subprocess.Popen[bytes]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=_TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=_TERMINATE_GRACE_SECONDS)


class OutputTee:
    """Copy a child's combined output to a terminal stream and an in-memory buffer."""

    def __init__(self, source: IO[str], echo: TextIO | None) -> None:
        self._source = source
        self._echo = echo
        self._chunks: list[str] = []
        self._thread = threading.Thread(target=self._pump, daemon=True, name="ralph-output")

    def start(self) -> OutputTee:
        self._thread.start()
        return self

    def join(self) -> str:
        # Grandchildren may keep the pipe open after the agent exits.
        self._thread.join(timeout=_PUMP_JOIN_SECONDS)
        return "".join(self._chunks)

    def _pump(self) -> None:
        for line in iter(self._source.readline, ""):
            self._chunks.append(line)
            if self._echo is not None:
                self._echo.write(line)
                self._echo.flush()
        self._source.close()


def feed_stdin(process: subprocess.Popen[str], text: str) -> threading.Thread:
    """Write ``text`` to the child's stdin from a helper thread and close it."""

    def _feed() -> None:
        stdin = process.stdin
        if stdin is None:
            return
        try:
            stdin.write(text)
            stdin.close()
        except (OSError, ValueError):
            # Child exited or closed stdin without reading the prompt.
            return

    thread = threading.Thread(target=_feed, daemon=True, name="ralph-stdin")
    thread.start()
    return thread

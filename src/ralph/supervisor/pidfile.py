"""PID file controller used to find and stop a running supervisor."""

from __future__ import annotations

import logging
import os
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ralph.supervisor.errors import AlreadyRunningError, NotRunningError

logger = logging.getLogger(__name__)

DEFAULT_PID_FILE_NAME = ".ralph.pid"

SIGNAL_TERMINATE = signal.SIGTERM
SIGNAL_KILL = getattr(signal, "SIGKILL", signal.SIGTERM)


class StopOutcome(str, Enum):
    """Result of a stop request against the recorded supervisor."""

    STOPPED = "stopped"
    STILL_RUNNING = "still_running"
    NOT_RUNNING = "not_running"


@dataclass(slots=True)
class StopReport:
    outcome: StopOutcome
    pid: int


class ProcessRegistry:
    """Advisory single-instance record for a working directory.

    The record is a text file holding one decimal PID. A record naming a dead
    process is stale and treated as absent.
    """

    def __init__(self, directory: Path | None = None, filename: str = DEFAULT_PID_FILE_NAME):
        self.path = (directory or Path.cwd()) / filename

    def write(self, pid: int | None = None) -> None:
        try:
            existing = self.read()
        except NotRunningError:
            existing = None
        if existing is not None:
            if is_process_running(existing):
                raise AlreadyRunningError(existing)
            logger.info("Removing stale PID file %s (PID %d)", self.path, existing)
            self.remove()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(str(os.getpid() if pid is None else pid), "utf-8")

    def read(self) -> int:
        try:
            raw = self.path.read_text("utf-8")
        except FileNotFoundError as error:
            raise NotRunningError() from error
        try:
            pid = int(raw.strip())
        except ValueError as error:
            raise NotRunningError(f"invalid PID file {self.path}: {raw!r}") from error
        if pid <= 0:
            raise NotRunningError(f"invalid PID file {self.path}: {raw!r}")
        return pid

    def is_running(self) -> tuple[bool, int]:
        try:
            pid = self.read()
        except (NotRunningError, OSError):
            return False, 0
        if not is_process_running(pid):
            return False, 0
        return True, pid

    def signal(self, signum: int) -> int:
        """Deliver ``signum`` to the recorded process and return its PID."""

        pid = self.read()
        if not is_process_running(pid):
            self.remove()
            raise NotRunningError()
        os.kill(pid, signum)
        return pid

    def remove(self) -> None:
        self.path.unlink(missing_ok=True)

    def stop(
        self,
        *,
        force: bool = False,
        poll_interval_seconds: float = 0.1,
        max_polls: int = 30,
        sleep: Callable[[float], None] = time.sleep,
    ) -> StopReport:
        """Signal the recorded process and poll until it exits or polling runs out."""

        try:
            pid = self.signal(SIGNAL_KILL if force else SIGNAL_TERMINATE)
        except NotRunningError:
            return StopReport(outcome=StopOutcome.NOT_RUNNING, pid=0)

        for _ in range(max_polls):
            sleep(poll_interval_seconds)
            if not is_process_running(pid):
                self.remove()
                return StopReport(outcome=StopOutcome.STOPPED, pid=pid)
        return StopReport(outcome=StopOutcome.STILL_RUNNING, pid=pid)


def is_process_running(pid: int) -> bool:
    """Probe ``pid`` with signal 0; any delivery failure means not running."""

    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True

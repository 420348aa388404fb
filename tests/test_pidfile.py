from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import allure
import pytest

from ralph.supervisor.errors import AlreadyRunningError, NotRunningError
from ralph.supervisor.pidfile import (
    DEFAULT_PID_FILE_NAME,
    SIGNAL_TERMINATE,
    ProcessRegistry,
    StopOutcome,
    is_process_running,
)

pytestmark = [
    allure.epic("Iteration Supervisor"),
    allure.feature("Process Registry"),
]

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX signal semantics")

SLEEPER = "import time; time.sleep(30)"
STUBBORN = (
    "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); "
    "print('ready', flush=True); time.sleep(30)"
)


def _dead_pid() -> int:
    process = subprocess.Popen([sys.executable, "-c", "pass"])  # noqa: S603
    process.wait()
    return process.pid


@pytest.fixture()
def registry(tmp_path: Path) -> ProcessRegistry:
    return ProcessRegistry(tmp_path)


def test_write_records_current_pid(registry: ProcessRegistry, tmp_path: Path) -> None:
    registry.write()

    assert registry.path == tmp_path / DEFAULT_PID_FILE_NAME
    assert registry.path.read_text("utf-8") == str(os.getpid())
    assert registry.read() == os.getpid()
    assert registry.is_running() == (True, os.getpid())


def test_second_write_while_live_fails_until_removed(registry: ProcessRegistry) -> None:
    registry.write()

    with pytest.raises(AlreadyRunningError) as excinfo:
        registry.write()
    assert excinfo.value.pid == os.getpid()

    registry.remove()
    registry.write()
    assert registry.read() == os.getpid()


def test_write_replaces_stale_record(registry: ProcessRegistry) -> None:
    registry.path.write_text(str(_dead_pid()), "utf-8")

    registry.write()

    assert registry.read() == os.getpid()


def test_is_running_never_raises(registry: ProcessRegistry) -> None:
    assert registry.is_running() == (False, 0)

    registry.path.write_text(str(_dead_pid()), "utf-8")
    assert registry.is_running() == (False, 0)

    registry.path.write_text("not-a-pid", "utf-8")
    assert registry.is_running() == (False, 0)


def test_read_rejects_missing_and_garbage_records(registry: ProcessRegistry) -> None:
    with pytest.raises(NotRunningError):
        registry.read()

    registry.path.write_text("  \n", "utf-8")
    with pytest.raises(NotRunningError, match="invalid PID file"):
        registry.read()

    registry.path.write_text("-5", "utf-8")
    with pytest.raises(NotRunningError, match="invalid PID file"):
        registry.read()


def test_signal_to_dead_process_removes_stale_record(registry: ProcessRegistry) -> None:
    registry.path.write_text(str(_dead_pid()), "utf-8")

    with pytest.raises(NotRunningError):
        registry.signal(SIGNAL_TERMINATE)

    assert not registry.path.exists()


def test_remove_is_idempotent(registry: ProcessRegistry) -> None:
    registry.remove()
    registry.write()
    registry.remove()
    registry.remove()

    assert not registry.path.exists()


def test_stop_without_record_reports_not_running(registry: ProcessRegistry) -> None:
    report = registry.stop(sleep=lambda _seconds: None)

    assert report.outcome is StopOutcome.NOT_RUNNING
    assert report.pid == 0


@posix_only
@pytest.mark.parametrize("force", [False, True])
def test_stop_signals_process_and_cleans_up(registry: ProcessRegistry, force: bool) -> None:
    process = subprocess.Popen([sys.executable, "-c", SLEEPER])  # noqa: S603
    try:
        registry.write(process.pid)

        # Polling reaps the child so the liveness probe sees it exit.
        report = registry.stop(
            force=force,
            poll_interval_seconds=0.05,
            max_polls=100,
            sleep=lambda _seconds: process.poll(),
        )

        assert report.outcome is StopOutcome.STOPPED
        assert report.pid == process.pid
        assert not registry.path.exists()
        assert not is_process_running(process.pid)
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()


@posix_only
def test_stop_reports_still_running_after_poll_bound(registry: ProcessRegistry) -> None:
    process = subprocess.Popen(  # noqa: S603
        [sys.executable, "-c", STUBBORN],
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        assert process.stdout is not None
        assert process.stdout.readline().strip() == "ready"
        registry.write(process.pid)

        report = registry.stop(max_polls=3, sleep=lambda _seconds: None)

        assert report.outcome is StopOutcome.STILL_RUNNING
        assert report.pid == process.pid
        assert registry.path.exists()
    finally:
        process.kill()
        process.wait()
        if process.stdout is not None:
            process.stdout.close()

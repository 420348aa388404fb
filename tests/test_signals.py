from __future__ import annotations

import os
import signal
import sys
import threading

import allure
import pytest

from ralph.supervisor import cancel_on_signals

pytestmark = [
    allure.epic("Iteration Supervisor"),
    allure.feature("Signal Cancellation"),
    pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals"),
]


@pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
def test_signal_sets_cancellation_and_handlers_are_restored(signum: signal.Signals) -> None:
    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)
    cancellation = threading.Event()
    received: list[str] = []

    with cancel_on_signals(cancellation, on_signal=received.append) as token:
        assert token is cancellation
        os.kill(os.getpid(), signum)
        assert cancellation.wait(timeout=2.0)

    assert received == [signum.name]
    assert signal.getsignal(signal.SIGINT) is original_sigint
    assert signal.getsignal(signal.SIGTERM) is original_sigterm


def test_handlers_are_restored_when_block_raises() -> None:
    original_sigint = signal.getsignal(signal.SIGINT)
    cancellation = threading.Event()

    with pytest.raises(RuntimeError, match="boom"):
        with cancel_on_signals(cancellation):
            assert signal.getsignal(signal.SIGINT) is not original_sigint
            raise RuntimeError("boom")

    assert signal.getsignal(signal.SIGINT) is original_sigint
    assert not cancellation.is_set()


def test_outside_main_thread_leaves_handlers_alone() -> None:
    original_sigint = signal.getsignal(signal.SIGINT)
    seen: list[object] = []

    def _worker() -> None:
        with cancel_on_signals(threading.Event()):
            seen.append(signal.getsignal(signal.SIGINT))

    thread = threading.Thread(target=_worker)
    thread.start()
    thread.join()

    assert seen == [original_sigint]

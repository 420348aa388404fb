"""Bridge operating-system interrupts to the loop's cancellation token."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


@contextmanager
def cancel_on_signals(
    cancellation: threading.Event,
    *,
    on_signal: Callable[[str], None] | None = None,
) -> Iterator[threading.Event]:
    """Set ``cancellation`` on SIGINT/SIGTERM while the block runs."""

    if not hasattr(signal, "SIGINT"):
        yield cancellation
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.info("Received %s, cancelling loop", name)
        cancellation.set()
        if on_signal is not None:
            on_signal(name)

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        yield cancellation
        return

    try:
        yield cancellation
    finally:
        try:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
        except ValueError:
            pass

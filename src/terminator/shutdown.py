"""
Cooperative shutdown.

ShutdownCoordinator owns the one-shot cancellation flag. Signal handlers
raise it; the control loop waits on it between scans and checks it between
pods. Once raised it is never cleared.
"""

from __future__ import annotations

import logging
import signal
import threading
from datetime import timedelta
from types import FrameType
from typing import Iterable, Optional, Union

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """
    One-shot, broadcast cancellation for the control loop.

    The flag is raised by the first SIGINT or SIGTERM (or by cancel()) and
    stays raised; any number of waiters observe it. Handlers must be
    installed from the main thread, while wait() and cancelled may be used
    from any thread.
    """

    def __init__(self, logger: logging.Logger, signals: Iterable[int] = DEFAULT_SIGNALS) -> None:
        self.logger = logger
        self.signals = tuple(signals)
        self._event = threading.Event()

    def install(self) -> None:
        """Register the signal handlers. Must be called from the main thread."""
        for sig in self.signals:
            signal.signal(sig, self._handle_signal)

    def _handle_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        if self._event.is_set():
            return
        self.logger.info("Signal received: %s", signal.Signals(signum).name)
        self._event.set()

    def cancel(self) -> None:
        """Raise the flag without a signal."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, duration: Union[timedelta, float]) -> bool:
        """
        Sleep for duration unless shutdown is requested first.

        Returns True if the full duration elapsed, False if woken by shutdown.
        """
        if isinstance(duration, timedelta):
            duration = duration.total_seconds()
        return not self._event.wait(max(duration, 0))

"""
Main control loop.

ControlLoop waits out the startup delay, then alternates between a full
scan of the cluster and the configured interval until shutdown is
requested. Shutdown is checked at every wait and between pods, never in
the middle of one pod's get/update/delete sequence.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import datetime
from typing import Callable, Optional

from .config import ScanConfig, format_duration
from .evaluate import Outcome, evaluate_pod
from .kubectl import PodApi
from .scan import iter_candidate_pods
from .shutdown import ShutdownCoordinator

# Outcomes for pods that were past their grace period.
OVERDUE_OUTCOMES = (
    Outcome.DRY_RUN,
    Outcome.FINALIZERS_KEPT,
    Outcome.FORCE_DELETED,
    Outcome.DELETE_FAILED,
)


class ControlLoop:
    """
    Periodic scanner for pods stuck in Terminating.

    Everything it needs is passed in: the pod API, the scan configuration,
    the logger and the shutdown coordinator.
    """

    def __init__(
        self,
        api: PodApi,
        config: ScanConfig,
        logger: logging.Logger,
        shutdown: ShutdownCoordinator,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.api = api
        self.config = config
        self.logger = logger
        self.shutdown = shutdown
        self.clock = clock

    def _stopping(self) -> bool:
        return self.shutdown.cancelled

    def scan_once(self) -> bool:
        """
        Evaluate every selected pod once.

        Returns False if shutdown was requested part way through.
        """
        outcomes: Counter = Counter()
        pods = iter_candidate_pods(self.api, self.config, self.logger, should_stop=self._stopping)
        for ref in pods:
            if self._stopping():
                break
            outcomes[evaluate_pod(self.api, self.config, ref, self.logger, clock=self.clock)] += 1

        if self._stopping():
            self.logger.info("Scan interrupted after %d pods", sum(outcomes.values()))
            return False

        overdue = sum(outcomes[o] for o in OVERDUE_OUTCOMES)
        self.logger.info(
            "Scan complete: %d pods checked, %d overdue, %d force deleted",
            sum(outcomes.values()),
            overdue,
            outcomes[Outcome.FORCE_DELETED],
        )
        return True

    def run(self) -> None:
        """Run until shutdown is requested."""
        if self.config.startup_delay.total_seconds() > 0:
            self.logger.info("Sleeping for startup delay of %s", format_duration(self.config.startup_delay))
            if not self.shutdown.wait(self.config.startup_delay):
                return

        while True:
            self.logger.info("Checking for terminating pods")
            if not self.scan_once():
                return
            if not self.shutdown.wait(self.config.interval):
                return


class WorkerFailed(Exception):
    """The scan worker stopped because of an unexpected exception."""


def run_until_stopped(loop: ControlLoop, poll_seconds: float = 1.0) -> None:
    """
    Run loop on a worker thread and block until it returns.

    The calling (main) thread joins in short slices so that signal handlers
    installed on it keep running while the worker scans.

    Raises:
        WorkerFailed: If the loop raised instead of returning on shutdown.
            The original exception is chained as __cause__.
    """
    failure: list[BaseException] = []

    def target() -> None:
        try:
            loop.run()
        except Exception as exc:
            failure.append(exc)

    worker = threading.Thread(target=target, name="terminator-scan", daemon=True)
    worker.start()
    while worker.is_alive():
        worker.join(timeout=poll_seconds)
    if failure:
        raise WorkerFailed(f"scan worker failed: {failure[0]!r}") from failure[0]

"""
CLI entry point for terminator.

Parses options, builds the logger and scan configuration, checks cluster
access, then runs the control loop until SIGINT or SIGTERM. Every option can
also be set through a TERMINATOR_* environment variable.
"""

from __future__ import annotations

import sys
from datetime import timedelta
from typing import Optional

import click

from .config import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_INTERVAL,
    DEFAULT_LOG_FORMAT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_LOG_OUTPUT,
    DEFAULT_STARTUP_DELAY,
    ENVVAR_PREFIX,
    LOG_FORMATS,
    LOG_LEVELS,
    LOG_OUTPUTS,
    ScanConfig,
    format_duration,
    parse_duration,
    split_values,
)
from .kubectl import FatalStartupError, resolve_cluster_access
from .logs import get_logger
from .loop import ControlLoop, WorkerFailed, run_until_stopped
from .shutdown import ShutdownCoordinator

# Shown at the bottom of terminator --help / terminator -h
EPILOG = """
Examples:

  terminator                          # Scan all pods every 5m after a 15m startup delay
  terminator -d -s 0                  # Dry run, first scan immediately
  terminator -g 15m -i 1m             # Allow 15m beyond each pod's own grace period
  terminator -n app -n batch          # Only namespaces app and batch
  terminator -p worker-,job-          # Only pods whose names start with worker- or job-
  terminator -r                       # Never remove finalizers; skip pods that have them
  terminator -k ~/.kube/config        # Authenticate with a kubeconfig instead of in-cluster

Durations use Go syntax, e.g. 90s, 15m, 1h30m.
"""


class Duration(click.ParamType):
    """Go-style duration option (e.g. 2m, 1h) converted to a timedelta."""

    name = "duration"

    def convert(self, value, param, ctx) -> timedelta:
        if isinstance(value, timedelta):
            return value
        try:
            return parse_duration(value)
        except ValueError as exc:
            self.fail(str(exc), param, ctx)


DURATION = Duration()


@click.command(
    context_settings={
        "help_option_names": ["-h", "--help"],
        "auto_envvar_prefix": ENVVAR_PREFIX,
    },
    epilog=EPILOG,
)
@click.option(
    "-d",
    "--dry-run",
    is_flag=True,
    help="If set, do not delete anything.",
)
@click.option(
    "-g",
    "--grace-period",
    type=DURATION,
    default=DEFAULT_GRACE_PERIOD,
    show_default=True,
    help="Additional grace period added to that of the pod.",
)
@click.option(
    "-i",
    "--interval",
    type=DURATION,
    default=DEFAULT_INTERVAL,
    show_default=True,
    help="Interval between scans of the cluster.",
)
@click.option(
    "-k",
    "--kubeconfig",
    metavar="PATH",
    help="Kubeconfig for authentication. If not set, in-cluster authentication is attempted.",
)
@click.option(
    "-n",
    "--namespaces",
    "namespaces",
    metavar="NS",
    multiple=True,
    help="Namespace to limit scans to; repeat or comma-separate. If not set, all namespaces are scanned.",
)
@click.option(
    "-p",
    "--pods",
    "pod_prefixes",
    metavar="PREFIX",
    multiple=True,
    help="Only consider pods whose names begin with PREFIX; repeat or comma-separate. If not set, all pods are considered.",
)
@click.option(
    "-r",
    "--no-remove-finalizers",
    is_flag=True,
    help="If set, do not remove any finalizers before attempting delete.",
)
@click.option(
    "-s",
    "--startup-delay",
    type=DURATION,
    default=DEFAULT_STARTUP_DELAY,
    show_default=True,
    help="Time to wait between launching and the first scan of the cluster.",
)
@click.option(
    "-l",
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=DEFAULT_LOG_LEVEL,
    show_default=True,
    help="Log level.",
)
@click.option(
    "-f",
    "--log-format",
    type=click.Choice(LOG_FORMATS, case_sensitive=False),
    default=DEFAULT_LOG_FORMAT,
    show_default=True,
    help="Log format.",
)
@click.option(
    "-o",
    "--log-output",
    type=click.Choice(LOG_OUTPUTS, case_sensitive=False),
    default=DEFAULT_LOG_OUTPUT,
    show_default=True,
    help="Log output.",
)
def main(
    dry_run: bool,
    grace_period: timedelta,
    interval: timedelta,
    kubeconfig: Optional[str],
    namespaces: tuple[str, ...],
    pod_prefixes: tuple[str, ...],
    no_remove_finalizers: bool,
    startup_delay: timedelta,
    log_level: str,
    log_format: str,
    log_output: str,
) -> int:
    """
    Force delete pods that have been stuck in Terminating for too long.

    A pod qualifies once it has been terminating for longer than its own
    terminationGracePeriodSeconds plus --grace-period. Its finalizers are
    cleared and it is deleted with a zero grace period. Static pods are
    never touched.
    """
    logger = get_logger(log_level, log_output, log_format)

    config = ScanConfig(
        grace_period=grace_period,
        interval=interval,
        startup_delay=startup_delay,
        dry_run=dry_run,
        namespaces=frozenset(split_values(namespaces)),
        pod_name_prefixes=tuple(split_values(pod_prefixes)),
        remove_finalizers=not no_remove_finalizers,
    )
    logger.info(
        "Starting: dry_run=%s grace_period=%s interval=%s startup_delay=%s "
        "namespaces=%s pod_prefixes=%s remove_finalizers=%s",
        config.dry_run,
        format_duration(config.grace_period),
        format_duration(config.interval),
        format_duration(config.startup_delay),
        sorted(config.namespaces) or "all",
        list(config.pod_name_prefixes) or "all",
        config.remove_finalizers,
    )

    try:
        api = resolve_cluster_access(kubeconfig, logger)
    except FatalStartupError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    shutdown = ShutdownCoordinator(logger)
    shutdown.install()
    try:
        run_until_stopped(ControlLoop(api, config, logger, shutdown))
    except WorkerFailed as exc:
        logger.error("%s", exc, exc_info=exc.__cause__)
        sys.exit(1)
    logger.info("Shutting down")

    return 0


if __name__ == "__main__":
    sys.exit(main())

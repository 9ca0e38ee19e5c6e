"""
Constants, defaults and the scan configuration for terminator.

Defines the option defaults, the log level/format/output choices, the
in-cluster authentication locations, and the immutable ScanConfig that the
control loop is built with. Durations use Go syntax (e.g. 90s, 15m,
1h30m).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import FrozenSet, Iterable, Tuple

DEFAULT_GRACE_PERIOD = "1h"
DEFAULT_INTERVAL = "5m"
DEFAULT_STARTUP_DELAY = "15m"

DEFAULT_LOG_LEVEL = "info"
DEFAULT_LOG_FORMAT = "logfmt"
DEFAULT_LOG_OUTPUT = "stdout"

LOG_LEVELS = ("debug", "info", "warn", "error")
LOG_FORMATS = ("logfmt", "json")
LOG_OUTPUTS = ("stdout", "stderr")

# Environment prefix for options, e.g. TERMINATOR_GRACE_PERIOD=30m
ENVVAR_PREFIX = "TERMINATOR"

# Pods owned by a Node are static (mirror) pods managed by the kubelet.
STATIC_POD_OWNER_KIND = "Node"

# Kubernetes default when a pod spec omits terminationGracePeriodSeconds.
DEFAULT_TERMINATION_GRACE_SECONDS = 30

# Seconds before a single kubectl invocation is abandoned.
KUBECTL_TIMEOUT = 60

SERVICE_ACCOUNT_TOKEN = "/var/run/secrets/kubernetes.io/serviceaccount/token"
IN_CLUSTER_SERVICE_HOST = "kubernetes.default.svc"
IN_CLUSTER_SERVICE_PORT = "443"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"(?:{_DURATION_PART})+")


def parse_duration(text: str) -> timedelta:
    """
    Parse a Go-style duration string into a timedelta.

    Accepts a sequence of decimal numbers each followed by a unit
    (ns, us, ms, s, m, h), e.g. "300ms", "1.5h" or "2h45m". A bare "0" is
    also accepted. Negative durations are rejected.

    Raises:
        ValueError: If the text is not a valid non-negative duration.
    """
    value = text.strip()
    if value.startswith("+"):
        value = value[1:]
    if value == "0":
        return timedelta(0)
    if not _DURATION_RE.fullmatch(value):
        raise ValueError(f"invalid duration {text!r}")
    seconds = sum(float(number) * _DURATION_UNITS[unit] for number, unit in re.findall(_DURATION_PART, value))
    return timedelta(seconds=seconds)


def format_duration(duration: timedelta) -> str:
    """Render a timedelta the way Go prints a time.Duration (e.g. 1h30m0s)."""
    seconds = int(round(duration.total_seconds()))
    if seconds == 0:
        return "0s"
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


@dataclass(frozen=True)
class ScanConfig:
    """
    Immutable settings for one process lifetime.

    Attributes:
        grace_period: Extra time allowed on top of the pod's own
            terminationGracePeriodSeconds before forced removal.
        interval: Sleep between the end of one scan and the start of the next.
        startup_delay: Sleep before the first scan.
        dry_run: Log what would be removed without changing anything.
        namespaces: Namespaces to scan; empty means all.
        pod_name_prefixes: Pod name prefixes to consider; empty means all.
        remove_finalizers: Clear finalizers before deleting. When False, pods
            with finalizers are left alone.
    """

    grace_period: timedelta = timedelta(hours=1)
    interval: timedelta = timedelta(minutes=5)
    startup_delay: timedelta = timedelta(minutes=15)
    dry_run: bool = False
    namespaces: FrozenSet[str] = frozenset()
    pod_name_prefixes: Tuple[str, ...] = ()
    remove_finalizers: bool = True

    def __post_init__(self) -> None:
        for name in ("grace_period", "interval", "startup_delay"):
            if getattr(self, name) < timedelta(0):
                raise ValueError(f"{name} must not be negative")
        object.__setattr__(self, "namespaces", frozenset(self.namespaces))
        object.__setattr__(self, "pod_name_prefixes", tuple(self.pod_name_prefixes))

    def wants_namespace(self, namespace: str) -> bool:
        return not self.namespaces or namespace in self.namespaces

    def wants_pod(self, name: str) -> bool:
        # Prefix match is case-sensitive.
        return not self.pod_name_prefixes or name.startswith(self.pod_name_prefixes)


def split_values(values: Iterable[str]) -> list[str]:
    """Flatten repeated and comma-separated option values, dropping blanks."""
    result: list[str] = []
    for value in values:
        result.extend(part.strip() for part in value.split(",") if part.strip())
    return result

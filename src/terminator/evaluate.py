"""
Per-pod termination logic.

evaluate_pod() fetches the current state of one pod and decides whether it
has been terminating for longer than allowed. Eligible pods have their
finalizers cleared by remove_finalizers() and are then deleted with a zero
grace period by force_delete(). Failures are logged and leave the pod for
the next scan; nothing here raises for a single pod's problems.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .config import ScanConfig, format_duration
from .kubectl import KubectlError, NotFoundError, PodApi
from .pods import PodRef, PodSnapshot


class Outcome(enum.Enum):
    """What happened to a pod during one evaluation."""

    FETCH_FAILED = "fetch failed"
    NOT_TERMINATING = "not terminating"
    STATIC = "static"
    WITHIN_GRACE = "within grace period"
    DRY_RUN = "dry run"
    FINALIZERS_KEPT = "finalizers kept"
    FORCE_DELETED = "force deleted"
    DELETE_FAILED = "delete failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def synthetic_grace_period(pod: PodSnapshot, config: ScanConfig) -> timedelta:
    """Pod's own termination grace period plus the configured extra grace period."""
    return timedelta(seconds=pod.termination_grace_period_seconds) + config.grace_period


def is_overdue(pod: PodSnapshot, config: ScanConfig, now: datetime) -> bool:
    """True once the pod has been terminating for strictly longer than allowed."""
    if pod.deletion_timestamp is None:
        return False
    return now - pod.deletion_timestamp > synthetic_grace_period(pod, config)


def remove_finalizers(
    api: PodApi, config: ScanConfig, pod: PodSnapshot, logger: logging.Logger
) -> bool:
    """
    Clear the finalizers on pod.

    Returns True when the pod has no finalizers left (including when it had
    none to begin with), False when they were kept, either because the
    operator disabled removal or because the update was rejected.
    """
    if not pod.finalizers:
        return True

    finalizers = list(pod.finalizers)

    if not config.remove_finalizers:
        logger.warning("%s: Cannot delete as pod has finalizers %s", pod, finalizers)
        return False

    pod.finalizers = []
    try:
        api.update_pod(pod)
    except KubectlError as exc:
        pod.finalizers = finalizers
        logger.warning("%s: Cannot remove finalizers: %s", pod, exc)
        return False

    logger.warning("%s: Removed finalizers: %s", pod, finalizers)
    return True


def force_delete(api: PodApi, ref: PodRef, logger: logging.Logger) -> bool:
    """
    Delete the pod with a zero grace period.

    A pod that is already gone counts as deleted: clearing its finalizers
    may have been enough for the API server to remove it.
    """
    try:
        api.delete_pod(ref.namespace, ref.name, grace_period_seconds=0)
    except NotFoundError:
        pass
    except KubectlError as exc:
        logger.error("%s: Cannot force delete: %s", ref, exc)
        return False

    logger.warning("%s has been force deleted", ref)
    return True


def evaluate_pod(
    api: PodApi,
    config: ScanConfig,
    ref: PodRef,
    logger: logging.Logger,
    clock: Optional[Callable[[], datetime]] = None,
) -> Outcome:
    """
    Check whether one pod is stuck in Terminating and force delete it if so.

    Args:
        api: Pod API to read and change the pod through.
        config: Scan configuration (grace period, dry run, finalizer policy).
        ref: Namespace and name from the listing; the pod is re-read here.
        logger: Where decisions and failures are reported.
        clock: Returns the current time; defaults to UTC now.

    Returns:
        The Outcome for this pod in this scan.
    """
    try:
        pod = api.get_pod(ref.namespace, ref.name)
    except KubectlError as exc:
        logger.error("%s: Cannot get pod details: %s", ref, exc)
        return Outcome.FETCH_FAILED

    if not pod.is_terminating:
        return Outcome.NOT_TERMINATING

    # Static pods are recreated by the kubelet and must not be deleted this way.
    if pod.is_static:
        logger.warning("%s: Cannot terminate static pod", pod)
        return Outcome.STATIC

    now = (clock or utcnow)()
    allowed = synthetic_grace_period(pod, config)
    if not is_overdue(pod, config, now):
        logger.debug("%s is terminating within its grace period of %s", pod, format_duration(allowed))
        return Outcome.WITHIN_GRACE

    terminating_for = now - pod.deletion_timestamp
    logger.warning(
        "%s has been terminating for %s, which exceeds grace period of %s. Force deleting...",
        pod,
        format_duration(terminating_for),
        format_duration(allowed),
    )

    if config.dry_run:
        logger.warning("%s with finalizers %s would be force deleted", pod, pod.finalizers)
        return Outcome.DRY_RUN

    if not remove_finalizers(api, config, pod, logger):
        return Outcome.FINALIZERS_KEPT

    if not force_delete(api, pod.ref, logger):
        return Outcome.DELETE_FAILED
    return Outcome.FORCE_DELETED

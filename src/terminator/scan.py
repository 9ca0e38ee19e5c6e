"""
Namespace and pod enumeration.

Yields the identity of every pod the configuration selects. Listing
failures are logged and skipped so one bad namespace never stops a scan.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Optional

from .config import ScanConfig
from .kubectl import KubectlError, PodApi
from .pods import PodRef


def iter_candidate_pods(
    api: PodApi,
    config: ScanConfig,
    logger: logging.Logger,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Iterator[PodRef]:
    """
    Yield PodRefs for pods in the selected namespaces whose names match.

    Pods are listed one namespace at a time, as the generator advances, so
    a caller that stops iterating stops issuing list calls as well.

    Args:
        api: Pod API to list through.
        config: Supplies the namespace set and pod name prefixes.
        logger: Where listing failures are reported.
        should_stop: Checked before each namespace is listed; when it
            returns True the generator ends without listing the rest.
    """
    try:
        namespaces = api.list_namespaces()
    except KubectlError as exc:
        logger.error("Cannot list namespaces: %s", exc)
        return

    for namespace in namespaces:
        if not config.wants_namespace(namespace):
            continue
        if should_stop is not None and should_stop():
            return

        try:
            pods = api.list_pods(namespace)
        except KubectlError as exc:
            logger.error("Cannot list pods in namespace '%s': %s", namespace, exc)
            continue

        for ref in pods:
            if config.wants_pod(ref.name):
                yield ref

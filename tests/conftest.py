"""Shared fixtures: an in-memory pod API and a fixed clock."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from terminator.kubectl import ConflictError, KubectlError, NotFoundError
from terminator.pods import PodRef, PodSnapshot

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def pod_manifest(
    name,
    namespace="default",
    deleted_ago=None,
    grace_seconds=30,
    finalizers=None,
    owner_kind=None,
):
    """Pod object shaped like kubectl get pod -o json."""
    meta = {"name": name, "namespace": namespace, "resourceVersion": "1"}
    if deleted_ago is not None:
        meta["deletionTimestamp"] = (NOW - deleted_ago).strftime("%Y-%m-%dT%H:%M:%SZ")
    if finalizers:
        meta["finalizers"] = list(finalizers)
    if owner_kind:
        meta["ownerReferences"] = [{"kind": owner_kind, "name": "owner-1"}]
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": meta,
        "spec": {"terminationGracePeriodSeconds": grace_seconds},
    }


class FakePodApi:
    """PodApi over a dict of pod manifests, recording every call."""

    def __init__(self, pods=(), namespaces=None):
        self.pods = {}
        for obj in pods:
            meta = obj["metadata"]
            self.pods[(meta["namespace"], meta["name"])] = obj
        self.namespaces = namespaces
        self.calls = []
        self.fail_list_namespaces = False
        self.fail_list_pods = set()
        self.fail_get = set()
        self.conflict_on_update = False
        self.delete_error = None
        # Clearing finalizers on a terminating pod lets the API server remove it.
        self.remove_on_finalizer_clear = False

    def list_namespaces(self):
        self.calls.append(("list_namespaces",))
        if self.fail_list_namespaces:
            raise KubectlError("connection refused")
        if self.namespaces is not None:
            return list(self.namespaces)
        return sorted({ns for ns, _ in self.pods})

    def list_pods(self, namespace):
        self.calls.append(("list_pods", namespace))
        if namespace in self.fail_list_pods:
            raise KubectlError("forbidden")
        return [PodRef(ns, name) for ns, name in self.pods if ns == namespace]

    def get_pod(self, namespace, name):
        self.calls.append(("get_pod", namespace, name))
        if (namespace, name) in self.fail_get or (namespace, name) not in self.pods:
            raise NotFoundError(f'pods "{name}" not found')
        return PodSnapshot.from_manifest(self.pods[(namespace, name)])

    def update_pod(self, pod):
        self.calls.append(("update_pod", pod.namespace, pod.name, list(pod.finalizers)))
        if self.conflict_on_update:
            raise ConflictError("the object has been modified")
        manifest = pod.to_manifest()
        if self.remove_on_finalizer_clear and not pod.finalizers:
            del self.pods[(pod.namespace, pod.name)]
        else:
            self.pods[(pod.namespace, pod.name)] = manifest
        return PodSnapshot.from_manifest(manifest)

    def delete_pod(self, namespace, name, grace_period_seconds):
        self.calls.append(("delete_pod", namespace, name, grace_period_seconds))
        if self.delete_error is not None:
            raise self.delete_error
        if (namespace, name) not in self.pods:
            raise NotFoundError(f'pods "{name}" not found')
        del self.pods[(namespace, name)]

    def calls_to(self, call):
        return [c for c in self.calls if c[0] == call]


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def logger():
    log = logging.getLogger("tests.terminator")
    log.setLevel(logging.DEBUG)
    return log

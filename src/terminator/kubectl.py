"""
Kubectl invocation and the pod API used by the control loop.

All cluster access goes through subprocess kubectl calls. PodApi describes
the five operations the loop needs; KubectlPodApi implements them on top of
run_kubectl, and any other object with the same methods (such as an
in-memory fake in tests) can be used in its place.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from .config import (
    IN_CLUSTER_SERVICE_HOST,
    IN_CLUSTER_SERVICE_PORT,
    KUBECTL_TIMEOUT,
    SERVICE_ACCOUNT_TOKEN,
)
from .pods import PodRef, PodSnapshot


class KubectlError(Exception):
    """A kubectl call failed."""

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class NotFoundError(KubectlError):
    """The object does not exist (any more)."""


class ConflictError(KubectlError):
    """The object changed since it was read; the update was rejected."""


class FatalStartupError(Exception):
    """Cluster access could not be established."""


class PodApi(Protocol):
    def list_namespaces(self) -> list[str]: ...

    def list_pods(self, namespace: str) -> list[PodRef]: ...

    def get_pod(self, namespace: str, name: str) -> PodSnapshot: ...

    def update_pod(self, pod: PodSnapshot) -> PodSnapshot: ...

    def delete_pod(self, namespace: str, name: str, grace_period_seconds: int) -> None: ...


def run_kubectl(
    args: list[str],
    kubeconfig: Optional[str] = None,
    stdin: Optional[str] = None,
    timeout: int = KUBECTL_TIMEOUT,
) -> subprocess.CompletedProcess:
    """
    Run kubectl with the given args.

    Args:
        args: List of arguments (e.g. ["get", "pods", "-n", "default", "-o", "json"]).
        kubeconfig: Optional kubeconfig path, passed as --kubeconfig.
        stdin: Optional text fed to kubectl (e.g. a manifest for "replace -f -").
        timeout: Seconds before the call is abandoned.

    Returns:
        CompletedProcess with returncode, stdout, stderr.

    Raises:
        KubectlError: If kubectl is missing, cannot be started or the call timed out.
    """
    cmd = ["kubectl"]
    if kubeconfig:
        cmd.extend(["--kubeconfig", kubeconfig])
    cmd.extend(args)
    try:
        return subprocess.run(
            cmd,
            input=stdin,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise KubectlError("kubectl not found in PATH") from exc
    except subprocess.TimeoutExpired as exc:
        raise KubectlError(f"kubectl {' '.join(args)} timed out after {timeout}s") from exc
    except OSError as exc:
        raise KubectlError(f"cannot run kubectl: {exc}") from exc


def check_result(result: subprocess.CompletedProcess) -> None:
    """
    Raise the matching KubectlError when kubectl exited non-zero.

    The API server's reason is part of kubectl's error line, e.g.
    "Error from server (NotFound): pods "x" not found".
    """
    if result.returncode == 0:
        return
    stderr = (result.stderr or "").strip()
    message = stderr or f"kubectl exited with status {result.returncode}"
    if "(NotFound)" in stderr:
        raise NotFoundError(message, stderr)
    if "(Conflict)" in stderr or "the object has been modified" in stderr:
        raise ConflictError(message, stderr)
    raise KubectlError(message, stderr)


def parse_json(result: subprocess.CompletedProcess) -> dict:
    """Parse kubectl JSON output, raising KubectlError on empty or invalid output."""
    if not result.stdout:
        raise KubectlError("kubectl returned no output")
    try:
        obj = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise KubectlError(f"kubectl returned invalid JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise KubectlError(f"kubectl returned {type(obj).__name__}, expected an object")
    return obj


@contextmanager
def malformed_object(what: str) -> Iterator[None]:
    """Report an object that parsed as JSON but has unexpected content as a KubectlError."""
    try:
        yield
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise KubectlError(f"malformed {what}: {exc}") from exc


class KubectlPodApi:
    """PodApi backed by the kubectl binary."""

    def __init__(self, kubeconfig: Optional[str] = None, timeout: int = KUBECTL_TIMEOUT) -> None:
        self.kubeconfig = kubeconfig
        self.timeout = timeout

    def _run(self, args: list[str], stdin: Optional[str] = None) -> subprocess.CompletedProcess:
        result = run_kubectl(args, kubeconfig=self.kubeconfig, stdin=stdin, timeout=self.timeout)
        check_result(result)
        return result

    def _get_json(self, args: list[str], stdin: Optional[str] = None) -> dict:
        return parse_json(self._run(args + ["-o", "json"], stdin=stdin))

    def list_namespaces(self) -> list[str]:
        obj = self._get_json(["get", "namespaces"])
        with malformed_object("namespace list"):
            return [
                item["metadata"]["name"]
                for item in obj.get("items") or []
                if item.get("metadata", {}).get("name")
            ]

    def list_pods(self, namespace: str) -> list[PodRef]:
        obj = self._get_json(["get", "pods", "-n", namespace])
        refs = []
        with malformed_object(f"pod list for namespace '{namespace}'"):
            for item in obj.get("items") or []:
                meta = item.get("metadata", {})
                if meta.get("name"):
                    refs.append(PodRef(meta.get("namespace") or namespace, meta["name"]))
        return refs

    def get_pod(self, namespace: str, name: str) -> PodSnapshot:
        obj = self._get_json(["get", "pod", name, "-n", namespace])
        with malformed_object(f"pod '{name}' in namespace '{namespace}'"):
            return PodSnapshot.from_manifest(obj)

    def update_pod(self, pod: PodSnapshot) -> PodSnapshot:
        # replace keeps resourceVersion, so a concurrent change is a Conflict.
        manifest = json.dumps(pod.to_manifest())
        obj = self._get_json(["replace", "-n", pod.namespace, "-f", "-"], stdin=manifest)
        with malformed_object(f"updated {pod}"):
            return PodSnapshot.from_manifest(obj)

    def delete_pod(self, namespace: str, name: str, grace_period_seconds: int) -> None:
        args = [
            "delete",
            "pod",
            name,
            "-n",
            namespace,
            f"--grace-period={grace_period_seconds}",
            "--wait=false",
        ]
        # kubectl only sends a zero grace period when --force is given.
        if grace_period_seconds == 0:
            args.append("--force")
        self._run(args)


def resolve_cluster_access(kubeconfig: Optional[str], logger: logging.Logger) -> KubectlPodApi:
    """
    Check that the cluster can be reached and return the pod API to use.

    With a kubeconfig the file must exist and name a usable context.
    Without one, in-cluster service account authentication is used: the
    token must be mounted, and the API server address defaults to the
    in-cluster service when the environment does not provide it.

    Raises:
        FatalStartupError: If kubectl is missing or no credentials are usable.
    """
    if shutil.which("kubectl") is None:
        raise FatalStartupError("kubectl not found in PATH")

    if kubeconfig:
        logger.info("Loading kubeconfig")
        if not os.path.isfile(kubeconfig):
            raise FatalStartupError(
                f"Failed to authenticate via kubeconfig: {kubeconfig} does not exist"
            )
        try:
            result = run_kubectl(["config", "view", "--minify", "-o", "json"], kubeconfig=kubeconfig)
            check_result(result)
        except KubectlError as exc:
            raise FatalStartupError(f"Failed to authenticate via kubeconfig: {exc}") from exc
        return KubectlPodApi(kubeconfig=kubeconfig)

    logger.info("Checking for service account token")
    if not os.path.isfile(SERVICE_ACCOUNT_TOKEN):
        raise FatalStartupError(
            f"Failed to authenticate in-cluster: no service account token at {SERVICE_ACCOUNT_TOKEN}"
        )
    os.environ.setdefault("KUBERNETES_SERVICE_HOST", IN_CLUSTER_SERVICE_HOST)
    os.environ.setdefault("KUBERNETES_SERVICE_PORT", IN_CLUSTER_SERVICE_PORT)
    return KubectlPodApi()

"""
Pod identity and snapshot types.

The enumerator hands out bare PodRef identities; the evaluator fetches a
fresh PodSnapshot for each one immediately before deciding what to do.
Snapshots are parsed from the pod JSON returned by kubectl and are never
kept between scans.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .config import DEFAULT_TERMINATION_GRACE_SECONDS, STATIC_POD_OWNER_KIND


@dataclass(frozen=True)
class PodRef:
    """Namespace and name of a pod."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"Pod '{self.name}' in namespace '{self.namespace}'"


@dataclass(frozen=True)
class OwnerReference:
    kind: str
    name: str


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp as written by the API server.

    Returns an aware UTC datetime, or None when value is empty.
    """
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class PodSnapshot:
    """
    Current state of one pod, as far as termination is concerned.

    raw holds the full pod object so that an update can be submitted with
    everything else (including resourceVersion) left untouched.
    """

    namespace: str
    name: str
    deletion_timestamp: Optional[datetime] = None
    termination_grace_period_seconds: int = DEFAULT_TERMINATION_GRACE_SECONDS
    finalizers: list[str] = field(default_factory=list)
    owner_references: list[OwnerReference] = field(default_factory=list)
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_manifest(cls, obj: dict) -> "PodSnapshot":
        """Build a snapshot from a pod object (kubectl get pod -o json)."""
        meta = obj.get("metadata", {})
        spec = obj.get("spec", {})
        grace = spec.get("terminationGracePeriodSeconds")
        owners = [
            OwnerReference(kind=o.get("kind", ""), name=o.get("name", ""))
            for o in meta.get("ownerReferences") or []
        ]
        return cls(
            namespace=meta.get("namespace", ""),
            name=meta.get("name", ""),
            deletion_timestamp=parse_timestamp(meta.get("deletionTimestamp")),
            termination_grace_period_seconds=(
                DEFAULT_TERMINATION_GRACE_SECONDS if grace is None else int(grace)
            ),
            finalizers=list(meta.get("finalizers") or []),
            owner_references=owners,
            raw=obj,
        )

    def to_manifest(self) -> dict:
        """Pod object to submit as an update, carrying the current finalizers."""
        obj = copy.deepcopy(self.raw)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("namespace", self.namespace)
        meta.setdefault("name", self.name)
        meta["finalizers"] = list(self.finalizers)
        return obj

    @property
    def ref(self) -> PodRef:
        return PodRef(self.namespace, self.name)

    @property
    def is_terminating(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def is_static(self) -> bool:
        # Static pods are owned by nodes and are recreated by the kubelet.
        return any(o.kind == STATIC_POD_OWNER_KIND for o in self.owner_references)

    def __str__(self) -> str:
        return str(self.ref)

"""PodDiagnosis custom resource data structures.

The resource is served by the API server as camelCase JSON; these
dataclasses are the snake_case in-process view. ``from_dict`` and
``to_dict`` are the only places that know the wire field names.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

GROUP: str = "diagnostic.sre.example.com"
VERSION: str = "v1"
PLURAL: str = "poddiagnoses"
KIND: str = "PodDiagnosis"
API_VERSION: str = f"{GROUP}/{VERSION}"

DEFAULT_TAIL_LINES: int = 100

LABEL_DIAGNOSED_POD: str = "diagnosed-pod"
LABEL_CREATED_BY: str = "created-by"
CREATED_BY_POD_WATCHER: str = "pod-watcher"

_TIME_FORMAT: str = "%Y-%m-%dT%H:%M:%SZ"


class DiagnosisPhase(StrEnum):
    """Lifecycle phase of a PodDiagnosis.

    The empty string is the pending phase: a freshly created resource has no
    status at all.
    """

    PENDING = ""
    COMPLETED = "Completed"
    FAILED = "Failed"


TERMINAL_PHASES: frozenset[str] = frozenset({DiagnosisPhase.COMPLETED, DiagnosisPhase.FAILED})


@dataclass
class PodDiagnosisSpec:
    """Desired state: which pod to diagnose and how much log to read."""

    pod_name: str
    namespace: str
    trigger_reason: str = ""
    tail_lines: int = 0

    @property
    def effective_tail_lines(self) -> int:
        """Tail-line count to request; zero (unset) means the default of 100."""
        return self.tail_lines if self.tail_lines > 0 else DEFAULT_TAIL_LINES

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PodDiagnosisSpec:
        return cls(
            pod_name=str(raw.get("podName", "") or ""),
            namespace=str(raw.get("namespace", "") or ""),
            trigger_reason=str(raw.get("triggerReason", "") or ""),
            tail_lines=_as_int(raw.get("tailLines")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"podName": self.pod_name, "namespace": self.namespace}
        if self.trigger_reason:
            out["triggerReason"] = self.trigger_reason
        if self.tail_lines:
            out["tailLines"] = self.tail_lines
        return out


@dataclass
class PodDiagnosisStatus:
    """Observed state, written only by the lifecycle controller."""

    phase: str = DiagnosisPhase.PENDING
    root_cause: str = ""
    suggestion: str = ""
    diagnosis_time: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> PodDiagnosisStatus:
        if not raw:
            return cls()
        return cls(
            phase=str(raw.get("phase", "") or ""),
            root_cause=str(raw.get("rootCause", "") or ""),
            suggestion=str(raw.get("suggestion", "") or ""),
            diagnosis_time=_parse_time(raw.get("diagnosisTime")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise with ``omitempty`` semantics: unset fields are left out."""
        out: dict[str, Any] = {}
        if self.phase:
            out["phase"] = self.phase
        if self.root_cause:
            out["rootCause"] = self.root_cause
        if self.suggestion:
            out["suggestion"] = self.suggestion
        if self.diagnosis_time is not None:
            out["diagnosisTime"] = format_time(self.diagnosis_time)
        return out


@dataclass
class PodDiagnosis:
    """One diagnosis attempt for one failing pod."""

    name: str
    namespace: str
    spec: PodDiagnosisSpec
    status: PodDiagnosisStatus = field(default_factory=PodDiagnosisStatus)
    generate_name: str = ""
    resource_version: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    owner_references: list[dict[str, Any]] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PodDiagnosis:
        """Build from the JSON object returned by ``CustomObjectsApi``."""
        metadata = raw.get("metadata") or {}
        return cls(
            name=str(metadata.get("name", "") or ""),
            namespace=str(metadata.get("namespace", "") or ""),
            generate_name=str(metadata.get("generateName", "") or ""),
            resource_version=str(metadata.get("resourceVersion", "") or ""),
            uid=str(metadata.get("uid", "") or ""),
            labels=dict(metadata.get("labels") or {}),
            owner_references=list(metadata.get("ownerReferences") or []),
            spec=PodDiagnosisSpec.from_dict(raw.get("spec") or {}),
            status=PodDiagnosisStatus.from_dict(raw.get("status")),
        )

    def to_dict(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {"namespace": self.namespace}
        if self.name:
            metadata["name"] = self.name
        if self.generate_name:
            metadata["generateName"] = self.generate_name
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        if self.uid:
            metadata["uid"] = self.uid
        if self.labels:
            metadata["labels"] = dict(self.labels)
        if self.owner_references:
            metadata["ownerReferences"] = copy.deepcopy(self.owner_references)
        out: dict[str, Any] = {
            "apiVersion": API_VERSION,
            "kind": KIND,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
        }
        status = self.status.to_dict()
        if status:
            out["status"] = status
        return out

    def deep_copy(self) -> PodDiagnosis:
        """Return an independent snapshot, used as the base of a merge-patch."""
        return copy.deepcopy(self)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_time(value: datetime) -> str:
    """Format a timestamp the way the API server serialises ``metav1.Time``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(_TIME_FORMAT)


def _parse_time(raw: object) -> datetime | None:
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=UTC)
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def _as_int(raw: object) -> int:
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return max(raw, 0)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return 0

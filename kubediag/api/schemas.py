"""Pydantic response models for the kubediag HTTP API.

All models use Pydantic v2 syntax. Field descriptions are also used by
FastAPI to generate the OpenAPI spec.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from kubediag.models.diagnosis import PodDiagnosis


class HealthStatus(BaseModel):
    """Response body for ``GET /healthz``."""

    status: str = Field(
        ...,
        description="Always ``ok`` while the process is running.",
        examples=["ok"],
    )
    version: str = Field(
        ...,
        description="kubediag version string.",
        examples=["0.1.0"],
    )


class ReadinessStatus(BaseModel):
    """Response body for ``GET /readyz``."""

    ready: bool = Field(..., description="True when every component reports running.")
    components: dict[str, bool] = Field(
        default_factory=dict,
        description="Per-component running state (watchers and work queues).",
        examples=[{"watcher.pod": True, "queue.poddiagnosis": True}],
    )


class ErrorResponse(BaseModel):
    """Standard error envelope returned for all 4xx and 5xx responses."""

    error: str = Field(
        ...,
        description="Machine-readable error code.",
        examples=["INVALID_NAMESPACE", "STORE_UNAVAILABLE", "INTERNAL_ERROR"],
    )
    detail: str = Field(
        ...,
        description="Human-readable description of the error.",
    )


class DiagnosisResponse(BaseModel):
    """One PodDiagnosis, flattened for API consumers."""

    name: str
    namespace: str
    pod_name: str
    pod_namespace: str
    trigger_reason: str = ""
    tail_lines: int = Field(..., description="Effective tail-line count (a tailLines of 0 means 100).")
    phase: str = Field(..., description="Empty while pending, then ``Completed`` or ``Failed``.")
    root_cause: str = ""
    suggestion: str = ""
    diagnosis_time: datetime | None = None

    @classmethod
    def from_diagnosis(cls, diagnosis: PodDiagnosis) -> DiagnosisResponse:
        return cls(
            name=diagnosis.name,
            namespace=diagnosis.namespace,
            pod_name=diagnosis.spec.pod_name,
            pod_namespace=diagnosis.spec.namespace,
            trigger_reason=diagnosis.spec.trigger_reason,
            tail_lines=diagnosis.spec.effective_tail_lines,
            phase=diagnosis.status.phase,
            root_cause=diagnosis.status.root_cause,
            suggestion=diagnosis.status.suggestion,
            diagnosis_time=diagnosis.status.diagnosis_time,
        )


class DiagnosisListResponse(BaseModel):
    """Response body for ``GET /api/v1/diagnoses``."""

    items: list[DiagnosisResponse] = Field(default_factory=list)
    count: int = 0

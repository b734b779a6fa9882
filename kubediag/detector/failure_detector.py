"""Failure detector: turns failed pods into PodDiagnosis requests.

Runs once per pod key delivered by the work queue. The pod watcher only
enqueues keys on a rising failure edge (see :func:`should_trigger`); this
pass re-reads the pod, re-checks it, and creates a request unless one is
already in flight.

Store errors are not handled here. They propagate to the work queue, which
re-delivers the key with back-off; nothing is written before the create
call, so a failed pass leaves no partial state behind.
"""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio.client import V1Pod

from kubediag.detector.classify import failure_reason, is_pod_failed
from kubediag.models.diagnosis import (
    CREATED_BY_POD_WATCHER,
    DEFAULT_TAIL_LINES,
    LABEL_CREATED_BY,
    LABEL_DIAGNOSED_POD,
    PodDiagnosis,
    PodDiagnosisSpec,
)
from kubediag.observability.logging import get_logger
from kubediag.observability.metrics import (
    diagnoses_created_total,
    diagnoses_skipped_total,
    failures_detected_total,
)
from kubediag.store.accessor import ResourceStore


class FailureDetector:
    """Creates at most one in-flight PodDiagnosis per failing pod.

    Usage::

        detector = FailureDetector(store)
        await detector.reconcile("default", "api-7d9f")
    """

    def __init__(self, store: ResourceStore, tail_lines: int = DEFAULT_TAIL_LINES) -> None:
        self._store = store
        self._tail_lines = tail_lines
        self._log = get_logger("failure_detector")

    async def reconcile(self, namespace: str, name: str) -> PodDiagnosis | None:
        """Run one detection pass for the pod ``namespace/name``.

        Returns the created PodDiagnosis, or None if nothing was created.
        """
        pod = await self._store.get_pod(namespace, name)
        if pod is None:
            diagnoses_skipped_total.labels(reason="pod_gone").inc()
            return None

        if not is_pod_failed(pod):
            diagnoses_skipped_total.labels(reason="not_failed").inc()
            return None

        failures_detected_total.inc()

        existing = await self._store.list_diagnoses_for_pod(namespace, name)
        in_flight = [d for d in existing if not d.status.is_terminal]
        if in_flight:
            self._log.info(
                "diagnosis_already_in_progress",
                pod=name,
                namespace=namespace,
                diagnosis=in_flight[0].name,
            )
            diagnoses_skipped_total.labels(reason="in_progress").inc()
            return None

        diagnosis = build_diagnosis(pod, self._tail_lines)
        created = await self._store.create_diagnosis(diagnosis)
        diagnoses_created_total.inc()
        self._log.info(
            "diagnosis_created",
            pod=name,
            namespace=namespace,
            diagnosis=created.name,
            trigger_reason=diagnosis.spec.trigger_reason,
        )
        return created


def build_diagnosis(pod: V1Pod, tail_lines: int = DEFAULT_TAIL_LINES) -> PodDiagnosis:
    """Build the PodDiagnosis to create for a failed *pod*.

    The request is owned by the pod so that deleting the pod garbage
    collects its diagnoses.
    """
    name = pod.metadata.name
    namespace = pod.metadata.namespace or ""
    return PodDiagnosis(
        name="",
        generate_name=f"{name}-diagnosis-",
        namespace=namespace,
        labels={
            LABEL_DIAGNOSED_POD: name,
            LABEL_CREATED_BY: CREATED_BY_POD_WATCHER,
        },
        owner_references=[owner_reference(pod)],
        spec=PodDiagnosisSpec(
            pod_name=name,
            namespace=namespace,
            trigger_reason=f"Pod entered failed state: {failure_reason(pod)}",
            tail_lines=tail_lines,
        ),
    )


def owner_reference(pod: V1Pod) -> dict[str, Any]:
    """Controller owner reference pointing at *pod*."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "name": pod.metadata.name,
        "uid": pod.metadata.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }

"""Diagnosis lifecycle controller.

Drives a PodDiagnosis from pending to a terminal phase in one pass::

    pending ──logs──▶ reasoning ──▶ event on pod ──▶ Completed
       │                  │
       └── log error ─────┴── reasoning error / timeout ──▶ Failed

Completed and Failed are terminal: a pass that finds either returns
immediately, so re-delivery of finished work never writes or calls out.

Status writes are merge-patches computed against a snapshot taken before
the pass started and pinned to that snapshot's resourceVersion. A
concurrent change makes the write fail with a conflict, which propagates to
the work queue; the next pass re-reads the object.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from kubediag.models.diagnosis import DiagnosisPhase, PodDiagnosis, PodDiagnosisStatus
from kubediag.observability.logging import get_logger
from kubediag.observability.metrics import diagnoses_finished_total, pod_events_emitted_total
from kubediag.reasoning.client import DiagnosisResult, ReasoningError
from kubediag.store.accessor import LogFetchError, ResourceStore, StoreError
from kubediag.store.merge_patch import diagnosis_status_patch

EVENT_TYPE_WARNING: str = "Warning"
EVENT_REASON: str = "AIDiagnosisResult"

_DEFAULT_REASONING_TIMEOUT_S: float = 45.0


class Diagnoser(Protocol):
    """Anything that can explain a pod failure; satisfied by ReasoningClient."""

    async def diagnose(self, pod_name: str, trigger_reason: str, logs: str) -> DiagnosisResult: ...


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class DiagnosisController:
    """Reconciles PodDiagnosis resources to a terminal phase.

    Args:
        store: API server accessor.
        diagnoser: reasoning client used for step 2.
        reasoning_timeout: wall-clock budget in seconds for the reasoning call.
        clock: returns the current time; injectable for tests.
    """

    def __init__(
        self,
        store: ResourceStore,
        diagnoser: Diagnoser,
        reasoning_timeout: float = _DEFAULT_REASONING_TIMEOUT_S,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._diagnoser = diagnoser
        self._reasoning_timeout = reasoning_timeout
        self._clock = clock
        self._log = get_logger("diagnosis_controller")

    async def reconcile(self, namespace: str, name: str) -> PodDiagnosis | None:
        """Run one lifecycle pass for the PodDiagnosis ``namespace/name``.

        Returns the diagnosis as last written (or read), or None if it is gone.
        """
        diagnosis = await self._store.get_diagnosis(namespace, name)
        if diagnosis is None:
            return None

        if diagnosis.status.is_terminal:
            self._log.debug("diagnosis_already_terminal", diagnosis=name, phase=diagnosis.status.phase)
            return diagnosis

        snapshot = diagnosis.deep_copy()
        spec = diagnosis.spec
        pod_namespace = spec.namespace or diagnosis.namespace

        # Step 1: log retrieval
        self._log.info(
            "fetching_pod_logs",
            pod=spec.pod_name,
            pod_namespace=pod_namespace,
            tail_lines=spec.effective_tail_lines,
        )
        try:
            logs = await self._store.read_pod_log(pod_namespace, spec.pod_name, spec.effective_tail_lines)
        except LogFetchError as exc:
            self._log.error("pod_log_fetch_failed", pod=spec.pod_name, error=str(exc))
            return await self._finish_failed(snapshot, diagnosis, f"failed to fetch logs: {exc}")

        # Step 2: reasoning call
        self._log.info("requesting_diagnosis", pod=spec.pod_name, log_length=len(logs))
        try:
            async with asyncio.timeout(self._reasoning_timeout):
                result = await self._diagnoser.diagnose(spec.pod_name, spec.trigger_reason, logs)
        except TimeoutError:
            self._log.error("reasoning_deadline_exceeded", pod=spec.pod_name, timeout_s=self._reasoning_timeout)
            return await self._finish_failed(
                snapshot,
                diagnosis,
                f"diagnosis failed: reasoning call exceeded {self._reasoning_timeout:g}s deadline",
            )
        except ReasoningError as exc:
            self._log.error("reasoning_failed", pod=spec.pod_name, error=str(exc))
            return await self._finish_failed(snapshot, diagnosis, f"diagnosis failed: {exc}")

        self._log.info("diagnosis_received", pod=spec.pod_name, root_cause=result.root_cause)

        # Step 3: event on the pod (best effort)
        await self._emit_event(pod_namespace, spec.pod_name, result)

        # Step 4: commit
        diagnosis.status = PodDiagnosisStatus(
            phase=DiagnosisPhase.COMPLETED,
            root_cause=result.root_cause,
            suggestion=result.suggestion,
            diagnosis_time=self._clock(),
        )
        updated = await self._commit(snapshot, diagnosis)
        diagnoses_finished_total.labels(phase=DiagnosisPhase.COMPLETED.value).inc()
        self._log.info("diagnosis_completed", diagnosis=name)
        return updated

    async def _finish_failed(self, snapshot: PodDiagnosis, diagnosis: PodDiagnosis, root_cause: str) -> PodDiagnosis:
        """Move the diagnosis to Failed with *root_cause* and a timestamp."""
        diagnosis.status = PodDiagnosisStatus(
            phase=DiagnosisPhase.FAILED,
            root_cause=root_cause,
            diagnosis_time=self._clock(),
        )
        try:
            updated = await self._commit(snapshot, diagnosis)
        except StoreError as exc:
            self._log.error("failed_status_write_failed", diagnosis=diagnosis.name, error=str(exc))
            raise
        diagnoses_finished_total.labels(phase=DiagnosisPhase.FAILED.value).inc()
        return updated

    async def _commit(self, snapshot: PodDiagnosis, diagnosis: PodDiagnosis) -> PodDiagnosis:
        patch = diagnosis_status_patch(snapshot, diagnosis)
        if not patch:
            return diagnosis
        return await self._store.patch_diagnosis_status(diagnosis.namespace, diagnosis.name, patch)

    async def _emit_event(self, namespace: str, pod_name: str, result: DiagnosisResult) -> None:
        """Record the diagnosis as a Warning event on the pod, if it still exists.

        A missing pod or a failed event write never blocks the Completed
        transition.
        """
        try:
            pod = await self._store.get_pod(namespace, pod_name)
        except StoreError as exc:
            self._log.warning("event_target_lookup_failed", pod=pod_name, error=str(exc))
            pod_events_emitted_total.labels(result="error").inc()
            return

        if pod is None:
            self._log.info("event_target_pod_gone", pod=pod_name)
            pod_events_emitted_total.labels(result="pod_gone").inc()
            return

        message = format_event_message(result)
        try:
            await self._store.record_pod_event(pod, EVENT_TYPE_WARNING, EVENT_REASON, message)
        except StoreError as exc:
            self._log.warning("event_record_failed", pod=pod_name, error=str(exc))
            pod_events_emitted_total.labels(result="error").inc()
            return

        pod_events_emitted_total.labels(result="recorded").inc()
        self._log.info("event_recorded", pod=pod_name)


def format_event_message(result: DiagnosisResult) -> str:
    return f"AI root cause: {result.root_cause}\nSuggestion: {result.suggestion}"

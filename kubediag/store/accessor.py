"""Resource store accessor over kubernetes_asyncio.

Thin async facade over ``CoreV1Api`` and ``CustomObjectsApi`` exposing
exactly the reads and writes the two controllers need. Both controllers
receive an instance through their constructor; tests substitute a mock.

Error contract:
- ``get_*`` return None when the object does not exist (HTTP 404).
- A 409 from a status patch raises :class:`StoreConflictError`.
- Every other API failure raises :class:`StoreError` and is left for the
  work queue to re-deliver.
- Log reads raise :class:`LogFetchError`, which the lifecycle controller
  turns into a Failed diagnosis rather than a re-delivery.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio.client.exceptions import ApiException

from kubediag.models.diagnosis import (
    GROUP,
    LABEL_DIAGNOSED_POD,
    PLURAL,
    VERSION,
    PodDiagnosis,
)
from kubediag.observability.logging import get_logger

_MERGE_PATCH_CONTENT_TYPE: str = "application/merge-patch+json"
_EVENT_SOURCE_COMPONENT: str = "kubediag"
_DEFAULT_LOG_TIMEOUT_S: float = 30.0

_log = get_logger("store")


class StoreError(Exception):
    """Raised when an API server call fails for infrastructure reasons."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(f"{operation} failed: {_describe(cause)}")
        self.operation = operation
        self.cause = cause
        self.status: int | None = getattr(cause, "status", None)


class StoreConflictError(StoreError):
    """Raised when an optimistic-concurrency write lost against a newer version."""


class LogFetchError(Exception):
    """Raised when a pod's log stream cannot be opened or read."""

    def __init__(self, namespace: str, pod_name: str, cause: Exception) -> None:
        super().__init__(f"reading logs of pod {namespace}/{pod_name}: {_describe(cause)}")
        self.cause = cause


class ResourceStore:
    """Reads and writes pods, pod logs, events, and PodDiagnosis resources.

    Args:
        core_api: a ``CoreV1Api`` instance.
        custom_api: a ``CustomObjectsApi`` instance.
        log_timeout_s: client-side deadline for one log read.
    """

    def __init__(self, core_api: Any, custom_api: Any, log_timeout_s: float = _DEFAULT_LOG_TIMEOUT_S) -> None:
        self._core = core_api
        self._custom = custom_api
        self._log_timeout_s = log_timeout_s

    # ------------------------------------------------------------------
    # Pods
    # ------------------------------------------------------------------

    async def get_pod(self, namespace: str, name: str) -> k8s_client.V1Pod | None:
        """Read a pod, or None if it no longer exists."""
        try:
            return await self._core.read_namespaced_pod(name=name, namespace=namespace)
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise StoreError("get pod", exc) from exc

    async def read_pod_log(self, namespace: str, name: str, tail_lines: int) -> str:
        """Return the last *tail_lines* lines of the pod's log stream."""
        try:
            logs = await self._core.read_namespaced_pod_log(
                name=name,
                namespace=namespace,
                tail_lines=tail_lines,
                _request_timeout=self._log_timeout_s,
            )
        except Exception as exc:
            raise LogFetchError(namespace, name, exc) from exc
        if isinstance(logs, bytes):
            return logs.decode("utf-8", errors="replace")
        return str(logs or "")

    async def record_pod_event(
        self,
        pod: k8s_client.V1Pod,
        event_type: str,
        reason: str,
        message: str,
    ) -> None:
        """Create a core/v1 Event whose involved object is *pod*."""
        metadata = pod.metadata
        now = datetime.now(tz=UTC)
        event = k8s_client.CoreV1Event(
            metadata=k8s_client.V1ObjectMeta(
                generate_name=f"{metadata.name}.",
                namespace=metadata.namespace,
            ),
            involved_object=k8s_client.V1ObjectReference(
                api_version="v1",
                kind="Pod",
                name=metadata.name,
                namespace=metadata.namespace,
                uid=metadata.uid,
                resource_version=metadata.resource_version,
            ),
            type=event_type,
            reason=reason,
            message=message,
            first_timestamp=now,
            last_timestamp=now,
            count=1,
            source=k8s_client.V1EventSource(component=_EVENT_SOURCE_COMPONENT),
            reporting_component=_EVENT_SOURCE_COMPONENT,
        )
        try:
            await self._core.create_namespaced_event(namespace=metadata.namespace, body=event)
        except ApiException as exc:
            raise StoreError("create event", exc) from exc

    # ------------------------------------------------------------------
    # PodDiagnosis
    # ------------------------------------------------------------------

    async def get_diagnosis(self, namespace: str, name: str) -> PodDiagnosis | None:
        """Read a PodDiagnosis, or None if it no longer exists."""
        try:
            raw = await self._custom.get_namespaced_custom_object(
                group=GROUP,
                version=VERSION,
                namespace=namespace,
                plural=PLURAL,
                name=name,
            )
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise StoreError("get poddiagnosis", exc) from exc
        return PodDiagnosis.from_dict(raw)

    async def list_diagnoses_for_pod(self, namespace: str, pod_name: str) -> list[PodDiagnosis]:
        """List the PodDiagnosis resources targeting *pod_name* in *namespace*.

        Custom resources cannot be field-selected on ``spec.podName``, so the
        server-side filter uses the ``diagnosed-pod`` label and ``spec.podName`` is
        checked again client-side.
        """
        items = await self._list(namespace, label_selector=f"{LABEL_DIAGNOSED_POD}={pod_name}")
        return [d for d in items if d.spec.pod_name == pod_name]

    async def list_diagnoses(self, namespace: str = "") -> list[PodDiagnosis]:
        """List every PodDiagnosis in *namespace*, or cluster-wide if empty."""
        return await self._list(namespace)

    async def create_diagnosis(self, diagnosis: PodDiagnosis) -> PodDiagnosis:
        """Create *diagnosis* and return the server's copy (with its name)."""
        try:
            raw = await self._custom.create_namespaced_custom_object(
                group=GROUP,
                version=VERSION,
                namespace=diagnosis.namespace,
                plural=PLURAL,
                body=diagnosis.to_dict(),
            )
        except ApiException as exc:
            raise StoreError("create poddiagnosis", exc) from exc
        return PodDiagnosis.from_dict(raw)

    async def patch_diagnosis_status(self, namespace: str, name: str, patch: dict[str, Any]) -> PodDiagnosis:
        """Apply a merge-patch to the status subresource."""
        try:
            raw = await self._custom.patch_namespaced_custom_object_status(
                group=GROUP,
                version=VERSION,
                namespace=namespace,
                plural=PLURAL,
                name=name,
                body=patch,
                _content_type=_MERGE_PATCH_CONTENT_TYPE,
            )
        except ApiException as exc:
            if exc.status == 409:
                _log.info("status_patch_conflict", namespace=namespace, name=name)
                raise StoreConflictError("patch poddiagnosis status", exc) from exc
            raise StoreError("patch poddiagnosis status", exc) from exc
        return PodDiagnosis.from_dict(raw)

    async def _list(self, namespace: str, label_selector: str = "") -> list[PodDiagnosis]:
        kwargs: dict[str, Any] = {"group": GROUP, "version": VERSION, "plural": PLURAL}
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            if namespace:
                raw = await self._custom.list_namespaced_custom_object(namespace=namespace, **kwargs)
            else:
                raw = await self._custom.list_cluster_custom_object(**kwargs)
        except ApiException as exc:
            raise StoreError("list poddiagnoses", exc) from exc
        items = raw.get("items", []) if isinstance(raw, dict) else []
        return [PodDiagnosis.from_dict(item) for item in items if isinstance(item, dict)]


def _describe(exc: Exception) -> str:
    """Short human-readable description of an API or transport error."""
    if isinstance(exc, ApiException):
        return f"HTTP {exc.status} {exc.reason or ''}".strip()
    text = str(exc)
    return text or type(exc).__name__

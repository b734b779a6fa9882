"""PodDiagnosis watcher.

Streams ``poddiagnoses`` through ``CustomObjectsApi`` and enqueues every
pending diagnosis for the lifecycle controller. Terminal diagnoses are
filtered out here already; the controller checks again on entry.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any

from kubediag.collector.watcher import BaseWatcher
from kubediag.models.diagnosis import GROUP, PLURAL, VERSION, PodDiagnosis
from kubediag.observability.logging import get_logger

Enqueue = Callable[[str, str], object]


class DiagnosisWatcher(BaseWatcher):
    """Feeds pending PodDiagnosis resources to the lifecycle work queue."""

    def __init__(self, api: Any, enqueue: Enqueue, namespace: str = "") -> None:
        """Initialise the diagnosis watcher.

        Args:
            api: A ``CustomObjectsApi`` instance.
            enqueue: Called with ``(namespace, name)`` for every pending diagnosis.
            namespace: Restrict the watch to one namespace; empty for all.
        """
        super().__init__(api, name="poddiagnosis", namespace=namespace)
        self._log = get_logger("watcher.poddiagnosis")
        self._enqueue = enqueue

    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        if self._namespace:
            return self._api.list_namespaced_custom_object  # type: ignore[no-any-return]
        return self._api.list_cluster_custom_object  # type: ignore[no-any-return]

    def _list_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"group": GROUP, "version": VERSION, "plural": PLURAL}
        if self._namespace:
            kwargs["namespace"] = self._namespace
        return kwargs

    async def _handle_event(self, event_type: str, obj: Any) -> None:
        if event_type not in ("ADDED", "MODIFIED") or not isinstance(obj, dict):
            return
        diagnosis = PodDiagnosis.from_dict(obj)
        if not diagnosis.name or diagnosis.status.is_terminal:
            return
        self._log.debug("diagnosis_pending", namespace=diagnosis.namespace, diagnosis=diagnosis.name)
        self._enqueue(*diagnosis.key)

"""Pod watcher.

Watches pods, turns raw watch entries into typed :mod:`kubediag.models.events`
variants, and enqueues the pod key for the failure detector whenever the
trigger predicate fires.

The watch stream only delivers the new state of a pod, so the watcher keeps
the last seen object per pod to build ``PodModified(old, new)``. After a
410 re-list the API server replays every pod as ADDED; a pod that is already
known is then treated as modified, so a failure that happened while the
stream was down still produces exactly one rising edge. Pods missing from
the re-list are dropped from the last-seen map before the replay starts.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any

from kubernetes_asyncio.client import V1Pod

from kubediag.collector.watcher import BaseWatcher
from kubediag.detector.classify import should_trigger
from kubediag.models.events import PodAdded, PodDeleted, PodEvent, PodModified, pod_key
from kubediag.observability.logging import get_logger

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

Enqueue = Callable[[str, str], object]


class PodWatcher(BaseWatcher):
    """Feeds failing pods to the failure detector's work queue.

    Usage::

        v1 = kubernetes_asyncio.client.CoreV1Api()
        watcher = PodWatcher(v1, enqueue=pod_queue.add)
        await watcher.start()
    """

    def __init__(self, api: Any, enqueue: Enqueue, namespace: str = "") -> None:
        """Initialise the pod watcher.

        Args:
            api: A ``CoreV1Api`` instance.
            enqueue: Called with ``(namespace, name)`` for every triggering event.
            namespace: Restrict the watch to one namespace; empty for all.
        """
        super().__init__(api, name="pod", namespace=namespace)
        self._log = get_logger("watcher.pod")
        self._enqueue = enqueue

        # Last seen pod per key: key = (namespace, name)
        self._pods: dict[tuple[str, str], V1Pod] = {}

    # ------------------------------------------------------------------
    # BaseWatcher implementation
    # ------------------------------------------------------------------

    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        if self._namespace:
            return self._api.list_namespaced_pod  # type: ignore[no-any-return]
        return self._api.list_pod_for_all_namespaces  # type: ignore[no-any-return]

    def _list_kwargs(self) -> dict[str, Any]:
        return {"namespace": self._namespace} if self._namespace else {}

    async def _handle_event(self, event_type: str, obj: Any) -> None:
        """Convert a raw watch event to a PodEvent and dispatch it."""
        if not isinstance(obj, V1Pod):
            return
        key = pod_key(obj)
        previous = self._pods.get(key) if key is not None else None
        event = self.to_pod_event(event_type, obj)
        if event is None:
            return
        try:
            self.dispatch(event)
        except Exception:
            # Restore the last-seen state so the replayed event yields the same edge
            if key is not None:
                if previous is None:
                    self._pods.pop(key, None)
                else:
                    self._pods[key] = previous
            raise

    # ------------------------------------------------------------------
    # Event conversion
    # ------------------------------------------------------------------

    def to_pod_event(self, event_type: str, pod: V1Pod) -> PodEvent | None:
        """Build the typed event for *pod* and update the last-seen state."""
        key = pod_key(pod)
        if key is None:
            return None

        if event_type == "DELETED":
            self._pods.pop(key, None)
            return PodDeleted(pod=pod)

        if event_type not in ("ADDED", "MODIFIED"):
            return None

        previous = self._pods.get(key)
        self._pods[key] = pod
        if previous is None or _uid(previous) != _uid(pod):
            # A recreated pod with the same name is a new pod
            return PodAdded(pod=pod)
        return PodModified(old=previous, new=pod)

    async def _on_resync(self) -> None:
        """Forget pods that were deleted while the stream was down."""
        if not self._pods:
            return
        pod_list = await self._list_func()(**self._list_kwargs())
        live = {key for key in (pod_key(p) for p in pod_list.items or []) if key is not None}
        stale = [key for key in self._pods if key not in live]
        for key in stale:
            del self._pods[key]
        if stale:
            self._log.info("pods_pruned_after_relist", watcher=self._name, count=len(stale))

    def dispatch(self, event: PodEvent) -> bool:
        """Enqueue the pod if *event* is a failure edge. Returns True if enqueued."""
        if not should_trigger(event):
            return False
        pod = event.new if isinstance(event, PodModified) else event.pod
        key = pod_key(pod)
        if key is None:
            return False
        self._log.info("pod_failure_detected", namespace=key[0], pod=key[1], event_kind=type(event).__name__)
        self._enqueue(*key)
        return True


def _uid(pod: V1Pod) -> str:
    if pod.metadata is None:
        return ""
    return pod.metadata.uid or ""

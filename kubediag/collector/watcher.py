"""Base watcher with automatic reconnection.

Wraps kubernetes_asyncio's Watch to provide:
- Resumable watches via resourceVersion
- Exponential back-off (1 s – 60 s) on 429, 5xx and unexpected errors
- Re-list on 410 Gone: the resourceVersion is dropped so the next stream
  starts with synthetic ADDED events for every existing object, which lets
  subclasses catch up on anything missed while disconnected
- An :meth:`_on_resync` hook run before the first stream after a 410, so
  subclasses can drop state for objects deleted while disconnected
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any

from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from kubediag.observability.logging import get_logger
from kubediag.observability.metrics import (
    watcher_backoff_seconds,
    watcher_errors_total,
    watcher_events_total,
    watcher_reconnects_total,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BACKOFF_MIN_S: float = 1.0
_BACKOFF_MAX_S: float = 60.0
_BACKOFF_MULTIPLIER: float = 2.0

# Server-side stream timeout; the watch is reopened from the last resourceVersion.
_WATCH_TIMEOUT_S: int = 300


class BaseWatcher(ABC):
    """Async base class for kubediag's resource watchers.

    Subclasses implement :meth:`_list_func` (which API function to stream)
    and :meth:`_handle_event` (what to do with each watch event).

    Lifecycle::

        watcher = MyWatcher(api, name="pod")
        await watcher.start()
        # ... runs until cancelled or stop() is called
        await watcher.stop()
    """

    def __init__(self, api: Any, name: str = "base", namespace: str = "") -> None:
        """Initialise the watcher.

        Args:
            api: A kubernetes_asyncio API instance (CoreV1Api or CustomObjectsApi).
            name: Short identifier used in log/metric labels.
            namespace: Restrict the watch to one namespace; empty for all.
        """
        self._api = api
        self._name = name
        self._namespace = namespace
        self._log = get_logger(f"watcher.{name}")

        self._resource_version: str = ""
        self._resync_pending: bool = False
        self._running: bool = False
        self._task: asyncio.Task[None] | None = None

        # Current back-off delay for the retry loop
        self._backoff_s: float = _BACKOFF_MIN_S

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the watch loop as a background asyncio task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._watch_loop(), name=f"watcher-{self._name}")
        self._log.info("watcher_started", watcher=self._name, namespace=self._namespace or "*")

    async def stop(self) -> None:
        """Signal the watch loop to stop and wait for it to exit cleanly."""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._log.info("watcher_stopped", watcher=self._name)

    # ------------------------------------------------------------------
    # Abstract interface for subclasses
    # ------------------------------------------------------------------

    @abstractmethod
    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        """Return the API list function used by Watch.stream()."""

    def _list_kwargs(self) -> dict[str, Any]:
        """Extra keyword arguments for the list function (namespace, group...)."""
        return {}

    @abstractmethod
    async def _handle_event(self, event_type: str, obj: Any) -> None:
        """Process a single watch event.

        Args:
            event_type: One of "ADDED", "MODIFIED", "DELETED".
            obj: The deserialized object (a model instance for core kinds,
                a dict for custom resources).
        """

    async def _on_resync(self) -> None:
        """Called before re-listing after a 410. Errors propagate to the watch loop."""

    # ------------------------------------------------------------------
    # Internal watch loop
    # ------------------------------------------------------------------

    async def _watch_loop(self) -> None:
        """Main watch loop; runs until :attr:`_running` is False."""
        while self._running:
            try:
                await self._run_watch()
            except asyncio.CancelledError:
                return
            except ApiException as exc:
                await self._handle_api_exception(exc)
            except Exception as exc:
                if not self._running:
                    return
                self._log.error("watch_unexpected_error", watcher=self._name, error=str(exc), exc_info=True)
                watcher_reconnects_total.labels(watcher=self._name, reason="unexpected").inc()
                await self._backoff("unexpected")

    async def _run_watch(self) -> None:
        """Open one watch stream and iterate until it terminates or raises."""
        if self._resync_pending:
            await self._on_resync()
            self._resync_pending = False

        kwargs: dict[str, Any] = dict(self._list_kwargs())
        kwargs["timeout_seconds"] = _WATCH_TIMEOUT_S
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version

        errored = False
        error_status: Any = None
        w = watch.Watch()
        try:
            async for raw_event in w.stream(self._list_func(), **kwargs):
                if not self._running:
                    return
                event_type: str = raw_event.get("type", "")
                obj = raw_event.get("object")

                if event_type == "ERROR":
                    errored = True
                    error_status = raw_event.get("raw_object", obj)
                    break

                watcher_events_total.labels(watcher=self._name, event_type=event_type).inc()
                await self._handle_event(event_type, obj)

                # Advance only after the handler succeeded; a failed event is replayed on resume
                new_rv = _extract_rv(obj)
                if new_rv:
                    self._resource_version = new_rv
                self._backoff_s = _BACKOFF_MIN_S
        finally:
            await w.close()

        # Handled after close so a back-off never holds the stream open
        if errored:
            await self._handle_error_event(error_status)

    async def _handle_error_event(self, status: Any) -> None:
        """Handle an in-stream ERROR event (a metav1.Status object)."""
        code = status.get("code") if isinstance(status, dict) else None
        watcher_errors_total.labels(watcher=self._name, status_code=str(code)).inc()
        if code == 410:
            self._log.warning("watch_gone_410", watcher=self._name)
            watcher_reconnects_total.labels(watcher=self._name, reason="410").inc()
            self._mark_gone()
            return
        self._log.warning("watch_error_event", watcher=self._name, status=status)
        watcher_reconnects_total.labels(watcher=self._name, reason=str(code)).inc()
        await self._backoff(f"error_event_{code}")

    def _mark_gone(self) -> None:
        self._resource_version = ""
        self._resync_pending = True

    async def _handle_api_exception(self, exc: ApiException) -> None:
        """Route an ApiException to the correct recovery path."""
        status = exc.status
        watcher_errors_total.labels(watcher=self._name, status_code=str(status)).inc()

        if status == 410:
            # Gone: resource version too old, restart from a fresh list
            self._log.warning("watch_gone_410", watcher=self._name)
            watcher_reconnects_total.labels(watcher=self._name, reason="410").inc()
            self._mark_gone()
            return

        if status == 429:
            self._log.warning("watch_rate_limited_429", watcher=self._name)
        elif status in (500, 503, 504):
            self._log.warning("watch_server_error", watcher=self._name, status=status)
        else:
            self._log.error("watch_api_error", watcher=self._name, status=status, reason=exc.reason)
        watcher_reconnects_total.labels(watcher=self._name, reason=str(status)).inc()
        await self._backoff(str(status))

    # ------------------------------------------------------------------
    # Back-off
    # ------------------------------------------------------------------

    async def _backoff(self, reason: str) -> None:
        """Sleep for the current back-off duration, then increase it."""
        delay = min(self._backoff_s, _BACKOFF_MAX_S)
        self._log.debug("watcher_backoff", watcher=self._name, reason=reason, delay_s=delay)
        watcher_backoff_seconds.labels(watcher=self._name).observe(delay)
        await asyncio.sleep(delay)
        self._backoff_s = min(self._backoff_s * _BACKOFF_MULTIPLIER, _BACKOFF_MAX_S)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _extract_rv(obj: Any) -> str:
    """Extract resourceVersion from a model instance or a raw dict."""
    if isinstance(obj, dict):
        metadata = obj.get("metadata")
        if isinstance(metadata, dict):
            return str(metadata.get("resourceVersion", "") or "")
        return ""
    metadata = getattr(obj, "metadata", None)
    if metadata is not None:
        rv = getattr(metadata, "resource_version", None)
        if rv:
            return str(rv)
    return ""

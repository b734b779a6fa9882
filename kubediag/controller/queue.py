"""Keyed async work queue that delivers reconciliation passes.

Guarantees the controllers rely on:

- Deduplication: a key that is already waiting is not queued twice.
- Per-key exclusivity: a key is never handled by two workers at once. A key
  re-added while it is being handled is queued again once the pass ends,
  so the change that caused the re-add is not lost.
- At-least-once delivery: a pass that raises is re-queued after an
  exponential back-off (0.5 s doubling up to 60 s), reset on success.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from kubediag.observability.logging import bind_reconcile_context, clear_reconcile_context
from kubediag.observability.metrics import (
    reconcile_errors_total,
    work_queue_depth,
    work_queue_retries_total,
)

_logger = structlog.get_logger(component="work_queue")

_DEFAULT_WORKERS: int = 4
_BACKOFF_BASE_S: float = 0.5
_BACKOFF_MAX_S: float = 60.0

Key = tuple[str, str]
Handler = Callable[[str, str], Awaitable[object]]


class WorkQueue:
    """Deduplicated, per-key exclusive work queue with retry back-off.

    Usage::

        queue = WorkQueue("poddiagnosis", controller.reconcile, workers=4)
        await queue.start()
        queue.add("default", "api-7d9f-diagnosis-x2k4p")
        ...
        await queue.stop()
    """

    def __init__(
        self,
        name: str,
        handler: Handler,
        workers: int = _DEFAULT_WORKERS,
        backoff_base_s: float = _BACKOFF_BASE_S,
        backoff_max_s: float = _BACKOFF_MAX_S,
    ) -> None:
        self._name = name
        self._handler = handler
        self._num_workers = max(1, workers)
        self._backoff_base_s = backoff_base_s
        self._backoff_max_s = backoff_max_s

        # Initialized in start(); not usable before start() is called
        self._queue: asyncio.Queue[Key | None]
        self._workers: list[asyncio.Task[None]] = []
        self._running = False

        self._queued: set[Key] = set()
        self._processing: set[Key] = set()
        self._dirty: set[Key] = set()
        self._failures: dict[Key, int] = {}
        self._retry_handles: dict[Key, asyncio.TimerHandle] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    @property
    def depth(self) -> int:
        return len(self._queued)

    async def start(self) -> None:
        """Start worker tasks. Must be called before add()."""
        if self._running:
            return
        self._queue = asyncio.Queue()
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"{self._name}_worker_{i}") for i in range(self._num_workers)
        ]
        _logger.info("work_queue_started", queue=self._name, workers=self._num_workers)

    async def stop(self) -> None:
        """Stop all worker tasks after their current pass. Safe to call before start()."""
        self._running = False
        for handle in self._retry_handles.values():
            handle.cancel()
        self._retry_handles.clear()
        if not self._workers:
            return
        for _ in self._workers:
            self._queue.put_nowait(None)
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        _logger.info("work_queue_stopped", queue=self._name)

    def add(self, namespace: str, name: str) -> bool:
        """Queue ``namespace/name`` for a pass.

        Returns True if the key was queued now, False if it was already
        waiting, deferred until its running pass ends, or the queue is stopped.
        """
        if not self._running:
            return False
        key = (namespace, name)
        if key in self._queued:
            return False
        if key in self._processing:
            self._dirty.add(key)
            return False
        self._queued.add(key)
        self._queue.put_nowait(key)
        work_queue_depth.labels(queue=self._name).set(len(self._queued))
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _worker(self, worker_id: int) -> None:
        """Worker coroutine: pull keys from the queue and handle them."""
        _logger.debug("worker_started", queue=self._name, worker_id=worker_id)
        while True:
            key = await self._queue.get()
            if key is None:
                self._queue.task_done()
                break

            self._queued.discard(key)
            self._processing.add(key)
            work_queue_depth.labels(queue=self._name).set(len(self._queued))
            bind_reconcile_context(self._name, *key)
            try:
                await self._handler(*key)
                self._failures.pop(key, None)
            except Exception as exc:
                self._schedule_retry(key, exc)
            finally:
                clear_reconcile_context()
                self._processing.discard(key)
                if key in self._dirty:
                    self._dirty.discard(key)
                    self.add(*key)
                self._queue.task_done()

        _logger.debug("worker_stopped", queue=self._name, worker_id=worker_id)

    def _schedule_retry(self, key: Key, exc: Exception) -> None:
        attempts = self._failures.get(key, 0) + 1
        self._failures[key] = attempts
        delay = self.backoff_delay(attempts)
        reconcile_errors_total.labels(queue=self._name).inc()
        _logger.error(
            "reconcile_failed",
            queue=self._name,
            namespace=key[0],
            name=key[1],
            error=str(exc),
            attempts=attempts,
            retry_in_s=delay,
        )
        if not self._running:
            return
        previous = self._retry_handles.pop(key, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._retry_handles[key] = loop.call_later(delay, self._retry, key)

    def _retry(self, key: Key) -> None:
        self._retry_handles.pop(key, None)
        work_queue_retries_total.labels(queue=self._name).inc()
        self.add(*key)

    def backoff_delay(self, attempts: int) -> float:
        """Delay before re-delivery number *attempts* (1-based)."""
        exponent = min(max(attempts, 1) - 1, 32)
        return min(self._backoff_base_s * (2**exponent), self._backoff_max_s)

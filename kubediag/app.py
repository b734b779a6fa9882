"""Application bootstrap for kubediag.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → store → reasoning client
              → controllers → work queues → watchers → HTTP API

Shutdown is graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubediag.config import load_config
from kubediag.models.config import KubeDiagConfig
from kubediag.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from kubernetes_asyncio.client import ApiClient
    from structlog.typing import FilteringBoundLogger

    from kubediag.collector.diagnosis_watcher import DiagnosisWatcher
    from kubediag.collector.pod_watcher import PodWatcher
    from kubediag.controller.queue import WorkQueue
    from kubediag.reasoning.client import ReasoningClient
    from kubediag.store.accessor import ResourceStore

_SHUTDOWN_GRACE_SECONDS = 15

POD_QUEUE_NAME = "pod"
DIAGNOSIS_QUEUE_NAME = "poddiagnosis"


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeDiagApp:
    """Application root. Owns every component and coordinates their lifecycle.

    ``stop()`` is safe on an app that was never started or already stopped.
    """

    def __init__(self, config: KubeDiagConfig | None = None) -> None:
        self.config: KubeDiagConfig | None = config

        self._api_client: ApiClient | None = None
        self._store: ResourceStore | None = None
        self._reasoning: ReasoningClient | None = None
        self._pod_queue: WorkQueue | None = None
        self._diagnosis_queue: WorkQueue | None = None
        self._pod_watcher: PodWatcher | None = None
        self._diagnosis_watcher: DiagnosisWatcher | None = None
        self._http_server: object | None = None

        # Background tasks that must be cancelled on shutdown
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: FilteringBoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("kubediag starting", version=_kubediag_version())
        if not self.config.reasoning.configured:
            self._log.warning(
                "reasoning endpoint not configured; every diagnosis will fail until AI_API_URL and AI_API_KEY are set"
            )

        # --- 3. Kubernetes client + store -------------------------------
        await self._start_k8s_client()

        # --- 4. Reasoning client ----------------------------------------
        self._start_reasoning()

        # --- 5. Controllers and work queues -----------------------------
        await self._start_controllers()

        # --- 6. Watchers ------------------------------------------------
        await self._start_watchers()

        # --- 7. HTTP API ------------------------------------------------
        if self.config.api.enabled:
            await self._start_http()

        self._running = True
        self._log.info("kubediag started", namespace=self.config.controller.namespace or "*")

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Load in-cluster config or kubeconfig and build the resource store."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config
            from kubernetes_asyncio import client as k8s_client

            from kubediag.store.accessor import ResourceStore

            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()  # type: ignore[no-untyped-call]
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                # load_kube_config() is async in kubernetes-asyncio
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
            self._store = ResourceStore(
                core_api=k8s_client.CoreV1Api(self._api_client),
                custom_api=k8s_client.CustomObjectsApi(self._api_client),
                log_timeout_s=float(self.config.reasoning.http_timeout_seconds),
            )
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_reasoning(self) -> None:
        assert self.config is not None
        from kubediag.reasoning.client import ReasoningClient

        self._reasoning = ReasoningClient(self.config.reasoning)

    async def _start_controllers(self) -> None:
        """Build both controllers and start the work queues that drive them."""
        assert self._log is not None
        assert self.config is not None
        assert self._store is not None
        assert self._reasoning is not None
        try:
            from kubediag.controller.lifecycle import DiagnosisController
            from kubediag.controller.queue import WorkQueue
            from kubediag.detector.failure_detector import FailureDetector

            detector = FailureDetector(self._store, tail_lines=self.config.controller.default_tail_lines)
            controller = DiagnosisController(
                self._store,
                self._reasoning,
                reasoning_timeout=float(self.config.reasoning.timeout_seconds),
            )

            workers = self.config.controller.workers
            self._pod_queue = WorkQueue(POD_QUEUE_NAME, detector.reconcile, workers=workers)
            self._diagnosis_queue = WorkQueue(DIAGNOSIS_QUEUE_NAME, controller.reconcile, workers=workers)
            await self._pod_queue.start()
            await self._diagnosis_queue.start()
            self._log.info("controllers started", workers=workers)
        except Exception as exc:
            raise _ComponentError("controllers", exc) from exc

    async def _start_watchers(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._api_client is not None
        assert self._pod_queue is not None
        assert self._diagnosis_queue is not None
        try:
            from kubernetes_asyncio import client as k8s_client

            from kubediag.collector.diagnosis_watcher import DiagnosisWatcher
            from kubediag.collector.pod_watcher import PodWatcher

            namespace = self.config.controller.namespace
            self._pod_watcher = PodWatcher(
                k8s_client.CoreV1Api(self._api_client),
                enqueue=self._pod_queue.add,
                namespace=namespace,
            )
            self._diagnosis_watcher = DiagnosisWatcher(
                k8s_client.CustomObjectsApi(self._api_client),
                enqueue=self._diagnosis_queue.add,
                namespace=namespace,
            )
            await self._diagnosis_watcher.start()
            await self._pod_watcher.start()
            self._log.info("watchers started")
        except Exception as exc:
            raise _ComponentError("watchers", exc) from exc

    async def _start_http(self) -> None:
        """Start the uvicorn server for probes, metrics, and the read API."""
        assert self._log is not None
        assert self.config is not None
        try:
            import uvicorn

            from kubediag.api import create_app

            fastapi_app = create_app(store=self._store, readiness_fn=self.readiness)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="http-server")
            self._background_tasks.append(task)
            self._http_server = server
            self._log.info("http api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("http", exc) from exc

    def readiness(self) -> dict[str, bool]:
        """Per-component running state, reported by ``/readyz``."""
        return {
            "watcher.pod": bool(self._pod_watcher and self._pod_watcher.running),
            "watcher.poddiagnosis": bool(self._diagnosis_watcher and self._diagnosis_watcher.running),
            f"queue.{POD_QUEUE_NAME}": bool(self._pod_queue and self._pod_queue.running),
            f"queue.{DIAGNOSIS_QUEUE_NAME}": bool(self._diagnosis_queue and self._diagnosis_queue.running),
        }

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            # Never started, nothing to do
            return

        log = self._log or get_logger("app")
        log.info("kubediag shutting down")

        self._running = False

        if self._http_server is not None:
            self._http_server.should_exit = True  # type: ignore[attr-defined]

        await self._stop_component("watcher.pod", self._pod_watcher)
        await self._stop_component("watcher.poddiagnosis", self._diagnosis_watcher)
        await self._stop_component("queue.pod", self._pod_queue)
        await self._stop_component("queue.poddiagnosis", self._diagnosis_queue)

        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        if self._reasoning is not None:
            try:
                await self._reasoning.aclose()
            except Exception as exc:
                log.debug("reasoning client close raised (non-fatal)", error=str(exc))

        if self._api_client is not None:
            try:
                await self._api_client.close()
            except Exception as exc:
                log.debug("k8s client close raised (non-fatal)", error=str(exc))
            self._api_client = None

        log.info("kubediag stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))


def _kubediag_version() -> str:
    from kubediag import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeDiagApp()
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_requested.set)

    try:
        await app.start()
        await stop_requested.wait()
    except _ComponentError as exc:
        # A mandatory component failed; log and exit non-zero
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        raise SystemExit(1) from exc
    finally:
        await app.stop()

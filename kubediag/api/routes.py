"""FastAPI route handlers for the kubediag HTTP API.

Probe and metrics routes live at the root so that kubelet and Prometheus
can use their conventional paths; the read API is mounted by ``app.py``
under the ``/api/v1`` prefix.

Error code conventions:
    400 INVALID_NAMESPACE   -- namespace is not a valid DNS-1123 label
    503 STORE_UNAVAILABLE   -- the API server could not be reached
    500 INTERNAL_ERROR      -- unexpected server-side failure
"""

from __future__ import annotations

import re

import structlog
from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

import kubediag.observability.metrics  # noqa: F401  (registers collectors on import)
from kubediag.api.schemas import (
    DiagnosisListResponse,
    DiagnosisResponse,
    ErrorResponse,
    HealthStatus,
    ReadinessStatus,
)
from kubediag.store.accessor import StoreError

_log = structlog.get_logger(component="api.routes")

_NAMESPACE_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

probe_router = APIRouter()
router = APIRouter()


# ---------------------------------------------------------------------------
# Probes and metrics
# ---------------------------------------------------------------------------


@probe_router.get(
    "/healthz",
    response_model=HealthStatus,
    summary="Liveness probe",
    description="Always returns 200 while the process is up.",
)
async def get_healthz() -> HealthStatus:
    """``GET /healthz``"""
    from kubediag import __version__

    return HealthStatus(status="ok", version=__version__)


@probe_router.get(
    "/readyz",
    response_model=ReadinessStatus,
    summary="Readiness probe",
    description="Returns 200 once every watcher and work queue is running, 503 otherwise.",
    responses={503: {"model": ReadinessStatus}},
)
async def get_readyz(request: Request) -> ReadinessStatus:
    """``GET /readyz``"""
    readiness_fn = getattr(request.app.state, "readiness_fn", None)
    components: dict[str, bool] = readiness_fn() if callable(readiness_fn) else {}
    status = ReadinessStatus(ready=bool(components) and all(components.values()), components=components)
    if not status.ready:
        return JSONResponse(status_code=503, content=status.model_dump())  # type: ignore[return-value]
    return status


@probe_router.get("/metrics", summary="Prometheus metrics", include_in_schema=False)
async def get_metrics() -> Response:
    """``GET /metrics``"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ---------------------------------------------------------------------------
# Read API
# ---------------------------------------------------------------------------


@router.get(
    "/diagnoses",
    response_model=DiagnosisListResponse,
    summary="List pod diagnoses",
    description="Lists PodDiagnosis resources in one namespace, or cluster-wide when no namespace is given.",
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def list_diagnoses(request: Request, namespace: str | None = None) -> DiagnosisListResponse:
    """``GET /api/v1/diagnoses?namespace={ns}``"""
    if namespace and not _NAMESPACE_RE.match(namespace):
        return JSONResponse(  # type: ignore[return-value]
            status_code=400,
            content=ErrorResponse(
                error="INVALID_NAMESPACE",
                detail=f"namespace must be a DNS-1123 label, got: {namespace!r}",
            ).model_dump(),
        )

    store = request.app.state.store
    try:
        diagnoses = await store.list_diagnoses(namespace or "")
    except StoreError as exc:
        _log.warning("list_diagnoses_store_error", namespace=namespace, error=str(exc))
        return JSONResponse(  # type: ignore[return-value]
            status_code=503,
            content=ErrorResponse(error="STORE_UNAVAILABLE", detail=str(exc)).model_dump(),
        )
    except Exception as exc:
        _log.error("list_diagnoses_error", namespace=namespace, error=str(exc))
        return JSONResponse(  # type: ignore[return-value]
            status_code=500,
            content=ErrorResponse(error="INTERNAL_ERROR", detail="An unexpected error occurred.").model_dump(),
        )

    items = [DiagnosisResponse.from_diagnosis(d) for d in diagnoses]
    items.sort(key=lambda item: (item.namespace, item.name))
    return DiagnosisListResponse(items=items, count=len(items))

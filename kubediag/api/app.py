"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import FastAPI

from kubediag.api.routes import probe_router, router


def create_app(store: Any, readiness_fn: Callable[[], dict[str, bool]] | None = None) -> FastAPI:
    """Build the HTTP app.

    Args:
        store: the ResourceStore used by the read API.
        readiness_fn: returns per-component running state for ``/readyz``.
    """
    from kubediag import __version__

    app = FastAPI(
        title="kubediag",
        version=__version__,
        description="Automatic root-cause diagnosis of failing Kubernetes pods.",
    )
    app.state.store = store
    app.state.readiness_fn = readiness_fn
    app.include_router(probe_router)
    app.include_router(router, prefix="/api/v1")
    return app

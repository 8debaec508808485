"""FastAPI application factory for the metrics endpoint.

Usage::

    from kube_event_exporter.api.app import create_app

    app = create_app(metrics=metrics, health=lambda: watcher.running)

Serves ``/metrics`` (Prometheus text exposition of the exporter's counters)
and ``/healthz``. Used by the production bootstrap and by tests.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from kube_event_exporter.observability.metrics import CONTENT_TYPE_LATEST, MetricsStore

_log = structlog.get_logger(component="api.app")


def create_app(
    metrics: MetricsStore,
    health: Callable[[], bool] | None = None,
) -> FastAPI:
    """Create the metrics/health FastAPI application.

    Args:
        metrics: MetricsStore whose registry is exposed on ``/metrics``.
        health:  Optional callable; ``/healthz`` answers 503 while it returns False.
    """
    from kube_event_exporter import __version__

    app = FastAPI(
        title="kube-event-exporter",
        summary="Kubernetes event exporter metrics",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.metrics = metrics
    app.state.health = health

    @app.get("/metrics")
    async def metrics_endpoint(request: Request) -> Response:
        store: MetricsStore = request.app.state.metrics
        return Response(content=store.render(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthz(request: Request) -> JSONResponse:
        check = request.app.state.health
        healthy = True if check is None else bool(check())
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "ok" if healthy else "unavailable", "version": __version__},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error("unhandled_exception", path=str(request.url.path), method=request.method, error=str(exc))
        return JSONResponse(status_code=500, content={"error": "INTERNAL_ERROR"})

    return app

"""HTTP API surface for the ethereum exporter."""

from __future__ import annotations

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .context import ApplicationContext
from .health import generate_health_report, generate_synced_report


def _context(request: Request) -> ApplicationContext:
    return request.app.state.context


def register_health_routes(app: FastAPI) -> None:
    """Register the service directory check and the health probes.

    - GET /synced: 200 while connected and synced, 503 otherwise
    - GET /health: connection state, chain and last cycle timestamps
    - GET /health/livez: liveness probe (always 200)
    """

    @app.get("/synced", response_class=JSONResponse)
    async def synced(request: Request) -> JSONResponse:
        status_code, content = generate_synced_report(_context(request).engine)

        return JSONResponse(status_code=status_code, content=content)

    @app.get("/health", response_class=JSONResponse)
    async def health(request: Request) -> JSONResponse:
        overall_status, status_code, details = generate_health_report(_context(request).engine)

        return JSONResponse(
            status_code=status_code,
            content={"status": overall_status, **details},
        )

    @app.get("/health/livez", response_class=JSONResponse)
    async def livez() -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "alive"},
        )


METRICS_FORMAT_JSON = "json"
METRICS_FORMAT_PROMETHEUS = "prometheus"


def register_metrics_routes(app: FastAPI) -> None:
    @app.get("/metrics", response_class=Response)
    async def metrics(request: Request, format: str | None = None) -> Response:
        context = _context(request)

        # Any format other than prometheus (normally json) gets the gauge snapshot.
        if format in (None, METRICS_FORMAT_PROMETHEUS):
            return Response(content=generate_latest(context.registry), media_type=CONTENT_TYPE_LATEST)

        return JSONResponse(content=context.sink.snapshot())


def register_routes(app: FastAPI) -> None:
    register_health_routes(app)
    register_metrics_routes(app)


__all__ = [
    "METRICS_FORMAT_JSON",
    "METRICS_FORMAT_PROMETHEUS",
    "register_health_routes",
    "register_metrics_routes",
    "register_routes",
]

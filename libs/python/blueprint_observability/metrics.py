"""Prometheus metrics helpers and middleware."""

from __future__ import annotations

from time import perf_counter
from typing import Mapping

from fastapi import FastAPI, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


_HTTP_REQUEST_COUNT = Counter(
    "blueprint_http_requests_total",
    "Total HTTP requests processed by service",
    labelnames=("service", "method", "route", "status"),
)

_HTTP_REQUEST_LATENCY = Histogram(
    "blueprint_http_request_duration_seconds",
    "Latency of HTTP requests",
    labelnames=("service", "method", "route"),
)

_OPERATION_DURATION = Histogram(
    "blueprint_engine_operation_duration_seconds",
    "Duration of engine operations including derived-state recalculation",
    labelnames=("service", "operation"),
)

_OPERATION_COUNTER = Counter(
    "blueprint_engine_operations_total",
    "Count of engine operations by outcome",
    labelnames=("service", "operation", "status"),
)

_STRUCTURE_ROWS = Counter(
    "blueprint_structure_rows_total",
    "Rows matched, created, updated or deleted by structure reconciliation",
    labelnames=("service", "level", "action"),
)

_GEM_CHANGES = Counter(
    "blueprint_gem_changes_total",
    "Number of times a project's current gem changed",
    labelnames=("service",),
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect request metrics for FastAPI services."""

    def __init__(self, app: FastAPI, service_name: str) -> None:
        super().__init__(app)
        self.service_name = service_name

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start = perf_counter()
        response = await call_next(request)
        elapsed = perf_counter() - start

        route_template = request.url.path
        route = request.scope.get("route")
        if route and getattr(route, "path", None):
            route_template = route.path  # type: ignore[assignment]

        method = request.method
        status = getattr(response, "status_code", 500)

        _HTTP_REQUEST_COUNT.labels(self.service_name, method, route_template, str(status)).inc()
        _HTTP_REQUEST_LATENCY.labels(self.service_name, method, route_template).observe(elapsed)
        return response


def setup_fastapi_metrics(app: FastAPI, service_name: str, endpoint: str = "/metrics") -> None:
    """Register Prometheus middleware and metrics endpoint for a FastAPI app."""

    if getattr(app.state, "metrics_configured", False):
        return

    app.add_middleware(PrometheusMiddleware, service_name=service_name)

    @app.get(endpoint, include_in_schema=False)
    async def _metrics_endpoint() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.state.metrics_configured = True


def observe_operation(
    operation: str,
    duration_seconds: float,
    *,
    service_name: str,
    status: str = "success",
) -> None:
    """Record duration and outcome of one engine operation."""

    _OPERATION_DURATION.labels(service_name, operation).observe(max(duration_seconds, 0.0))
    _OPERATION_COUNTER.labels(service_name, operation, status).inc()


def observe_structure_counts(
    counts: Mapping[str, Mapping[str, int]],
    *,
    service_name: str,
) -> None:
    """Feed per-level reconciliation counts, e.g. ``{"stage": {"created": 1}}``."""

    for level, actions in counts.items():
        for action, value in actions.items():
            if value > 0:
                _STRUCTURE_ROWS.labels(service_name, level, action).inc(value)


def record_gem_change(service_name: str) -> None:
    _GEM_CHANGES.labels(service_name).inc()

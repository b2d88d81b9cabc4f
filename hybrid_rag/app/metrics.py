from __future__ import annotations

"""Prometheus instruments for HTTP traffic and query outcomes."""

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from hybrid_rag.app.settings import settings

HTTP_REQUESTS = Counter(
    "rag_http_requests_total",
    "HTTP requests by method, route and status",
    ["method", "route", "status"],
)
HTTP_LATENCY = Histogram(
    "rag_http_request_duration_seconds",
    "HTTP request duration by method and route",
    ["method", "route"],
)
QUERY_OUTCOMES = Counter(
    "rag_queries_total",
    "Processed queries by outcome",
    ["outcome"],
)
QUERY_LATENCY = Histogram(
    "rag_query_duration_seconds",
    "End-to-end query pipeline latency by outcome",
    ["outcome"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


def _route_label(request: Request) -> str:
    # templated route keeps label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def metrics_middleware(request: Request, call_next):
    if not settings.metrics_enabled or request.url.path == "/metrics":
        return await call_next(request)
    started = time.monotonic()
    status = "500"
    try:
        response = await call_next(request)
        status = str(response.status_code)
        return response
    finally:
        route = _route_label(request)
        HTTP_REQUESTS.labels(request.method, route, status).inc()
        HTTP_LATENCY.labels(request.method, route).observe(time.monotonic() - started)


def record_query_outcome(outcome: str, duration_ms: float | None = None) -> None:
    """Count a query as ``cache_hit``, ``computed``, ``invalid`` or ``error``."""
    if not settings.metrics_enabled:
        return
    QUERY_OUTCOMES.labels(outcome).inc()
    if duration_ms is not None:
        QUERY_LATENCY.labels(outcome).observe(duration_ms / 1000)


def metrics_response() -> Response:
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

"""Prometheus metrics for dokupay observability."""

import os
import time

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    multiprocess,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

# === Counters ===

HTTP_REQUESTS_TOTAL = Counter(
    "dokupay_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

GATEWAY_REQUESTS_TOTAL = Counter(
    "dokupay_gateway_requests_total",
    "Outbound DOKU API requests",
    ["operation", "outcome"],  # outcome: success, gateway_error, transport_error
)

NOTIFICATIONS_TOTAL = Counter(
    "dokupay_notifications_total",
    "Inbound DOKU notifications",
    ["outcome"],  # outcome: accepted, rejected
)

# === Histograms ===

HTTP_REQUEST_LATENCY = Histogram(
    "dokupay_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

GATEWAY_LATENCY = Histogram(
    "dokupay_gateway_latency_seconds",
    "Outbound DOKU API latency in seconds",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


# === Helper Functions ===


def record_http_request(
    method: str,
    endpoint: str,
    status: int,
    latency: float,
) -> None:
    """Record an HTTP request."""
    HTTP_REQUESTS_TOTAL.labels(
        method=method,
        endpoint=endpoint,
        status=str(status),
    ).inc()
    HTTP_REQUEST_LATENCY.labels(
        method=method,
        endpoint=endpoint,
    ).observe(latency)


def record_gateway_call(operation: str, outcome: str, latency: float) -> None:
    """Record an outbound gateway call."""
    GATEWAY_REQUESTS_TOTAL.labels(operation=operation, outcome=outcome).inc()
    GATEWAY_LATENCY.labels(operation=operation).observe(latency)


def record_notification(outcome: str) -> None:
    """Record a notification verification outcome."""
    NOTIFICATIONS_TOTAL.labels(outcome=outcome).inc()


# === HTTP Endpoint ===


class MetricsMiddleware(BaseHTTPMiddleware):
    """HTTP request metrics middleware."""

    def __init__(self, app: ASGIApp, exclude_paths: list[str] | None = None) -> None:
        super().__init__(app)
        self._exclude_paths = set(exclude_paths or [])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exclude_paths:
            return await call_next(request)

        endpoint = request.url.path

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            record_http_request(
                method=request.method,
                endpoint=endpoint,
                status=500,
                latency=time.perf_counter() - start,
            )
            raise

        # Prefer the route template, when the router exposes it, over the raw path
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or endpoint
        record_http_request(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
            latency=time.perf_counter() - start,
        )
        return response


async def metrics_endpoint(_request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    multiproc_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
    if multiproc_dir:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)  # type: ignore[no-untyped-call]
        return Response(
            generate_latest(registry),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return Response(
        generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

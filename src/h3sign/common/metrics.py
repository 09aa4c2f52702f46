"""Prometheus metrics for the signing client and verifying server."""

import time

from prometheus_client import Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

# === Counters ===

CLIENT_ATTEMPTS_TOTAL = Counter(
    "h3sign_client_attempts_total",
    "Outbound request attempts",
    ["method", "outcome"],  # outcome: success, retryable, terminal
)

CLIENT_REQUESTS_TOTAL = Counter(
    "h3sign_client_requests_total",
    "Outbound execute() calls by final result",
    ["method", "result"],  # result: success, client_error, exhausted, serialization_error
)

VERIFICATIONS_TOTAL = Counter(
    "h3sign_verifications_total",
    "Inbound signature verifications",
    ["result"],  # result: valid, mismatch, missing_headers, unknown_key
)

HTTP_REQUESTS_TOTAL = Counter(
    "h3sign_http_requests_total",
    "Total HTTP requests served",
    ["method", "endpoint", "status"],
)

# === Histograms ===

CLIENT_REQUEST_LATENCY = Histogram(
    "h3sign_client_request_latency_seconds",
    "Latency of execute() calls including retries",
    ["method"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

HTTP_REQUEST_LATENCY = Histogram(
    "h3sign_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


# === Helper Functions ===


def record_attempt(method: str, outcome: str) -> None:
    """Record a single request attempt."""
    CLIENT_ATTEMPTS_TOTAL.labels(method=method, outcome=outcome).inc()


def record_client_request(method: str, result: str, latency: float) -> None:
    """Record the final result of an execute() call."""
    CLIENT_REQUESTS_TOTAL.labels(method=method, result=result).inc()
    CLIENT_REQUEST_LATENCY.labels(method=method).observe(latency)


def record_verification(result: str) -> None:
    """Record a verifier decision."""
    VERIFICATIONS_TOTAL.labels(result=result).inc()


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


# === HTTP Endpoint ===


class MetricsMiddleware(BaseHTTPMiddleware):
    """HTTP request metrics middleware."""

    def __init__(self, app: ASGIApp, exclude_paths: list[str] | None = None) -> None:
        super().__init__(app)
        self._exclude_paths = set(exclude_paths or [])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exclude_paths:
            return await call_next(request)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status=500,
                latency=time.perf_counter() - start,
            )
            raise

        record_http_request(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
            latency=time.perf_counter() - start,
        )
        return response


async def metrics_endpoint(_request: Request) -> Response:
    """Prometheus metrics in text format."""
    return Response(
        generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

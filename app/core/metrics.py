"""Prometheus metrics for the application."""

import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# --- Metrics ---

APP_INFO = Info("app", "TEXAI chat gateway info")
APP_INFO.info({"version": "1.0.0", "name": "texai_gateway"})

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

UPSTREAM_CALLS = Counter(
    "upstream_calls_total",
    "Upstream chat completion calls by outcome",
    ["outcome"],  # success | rate_limited | rejected | unreachable
)

UPSTREAM_RETRIES = Counter(
    "upstream_retries_total",
    "Upstream calls retried after a rate-limit response",
)

UPSTREAM_TOKENS = Counter(
    "upstream_tokens_total",
    "Tokens reported by the upstream on successful calls",
    ["model", "direction"],  # direction: input | output
)

CHAT_FAILURES = Counter(
    "chat_failures_total",
    "Chat requests that ended in a classified error",
    ["kind"],
)

THROTTLE_WAIT = Histogram(
    "upstream_throttle_wait_seconds",
    "Time spent inside the upstream throttle gate",
    buckets=[0, 0.1, 0.5, 1, 2.5, 5, 10, 30, 60],
)


# --- Middleware ---

_KNOWN_PATHS = ("/", "/chat", "/health", "/metrics")


def _normalize_path(path: str) -> str:
    """Collapse unknown paths into one label to avoid high cardinality."""
    return path if path in _KNOWN_PATHS else "other"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=method, path=path).observe(duration)

        return response


def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

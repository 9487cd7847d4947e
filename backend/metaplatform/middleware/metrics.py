# ===================================================
# Meta Platform - Metrics Collection Middleware
# Prometheus HTTP metrics labelled by route template
# ===================================================

import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from metaplatform.utils.metrics import (
    http_requests_total,
    http_request_duration_seconds,
    http_active_connections,
    http_request_size_bytes,
)

SKIPPED_PREFIXES = ("/metrics", "/health", "/docs", "/redoc", "/openapi.json")

# Label for requests no route matched (404s)
UNMATCHED = "unmatched"


def route_label(request: Request) -> str:
    """
    Route template of the handled request, e.g. /api/v1/bots/{bot_id}/tools

    Only available after routing; unmatched paths share one label.
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED


class MetricsMiddleware(BaseHTTPMiddleware):
    """Request count, latency, in-flight requests and body size"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(SKIPPED_PREFIXES):
            return await call_next(request)

        method = request.method
        status_code = "500"
        http_active_connections.inc()
        start = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
            return response
        finally:
            endpoint = route_label(request)
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start
            )
            http_requests_total.labels(method=method, endpoint=endpoint, status_code=status_code).inc()

            size = request.headers.get("content-length")
            if size and size.isdigit():
                http_request_size_bytes.labels(method=method, endpoint=endpoint).observe(int(size))
            http_active_connections.dec()

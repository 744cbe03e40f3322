from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from rank_tracker.core.metrics import http_request_duration_seconds, http_requests_total

logger = logging.getLogger("rank_tracker.api")

REQUEST_ID_HEADER = "X-Request-ID"


def _route_template(request: Request) -> str:
    # Raw paths carry keyword ids; label by template to bound cardinality.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, then logs and counts every HTTP exchange."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        template = _route_template(request)
        http_requests_total.labels(method=request.method, path=template, status=str(response.status_code)).inc()
        http_request_duration_seconds.labels(method=request.method, path=template).observe(elapsed)

        if template != "/metrics":
            logger.info(
                "http.request",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": template,
                    "status_code": response.status_code,
                    "duration_ms": round(elapsed * 1000, 1),
                },
            )
        return response

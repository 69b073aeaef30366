# backend/buildstate/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("buildstate.request")

# noisy and carry no user context
_QUIET_PATHS = ("/api/health",)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One access line per request: method, path, status, latency and, for
    authenticated calls, the caller. `get_principal` leaves the resolved
    principal on request.state; the request id is added by the log filter.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            if request.url.path not in _QUIET_PATHS:
                principal = getattr(request.state, "principal", None)
                log.info(
                    "http_request",
                    extra={
                        "request_id": getattr(request.state, "request_id", None),
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": status_code,
                        "latency_ms": int((time.perf_counter() - t0) * 1000),
                        "user_id": getattr(principal, "user_id", None),
                        "role": getattr(principal, "role", None),
                    },
                )

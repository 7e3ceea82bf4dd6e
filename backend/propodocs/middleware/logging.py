"""
Propodocs Backend — Access Logging Middleware
===============================================

What:  One log line per HTTP request: method, path, status, duration,
       request id and client address.
Why:   Uvicorn's own access log has no request id and no duration.

Log level follows the status code:
    5xx → ERROR, 4xx → WARNING, everything else → INFO

Privacy:
    Request bodies are never logged. Tracking payloads carry visitor IPs and
    user agents; those are stored, not logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from propodocs.middleware.request_id import request_id_var

logger = logging.getLogger("propodocs.access")

# Health probes and view-duration heartbeats fire constantly
QUIET_PATH_SUFFIXES = ("/health", "/duration")


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.perf_counter()
        path = request.url.path

        response = await call_next(request)

        status = response.status_code
        if status < 400 and path.endswith(QUIET_PATH_SUFFIXES):
            return response

        duration_ms = (time.perf_counter() - start_time) * 1000
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response

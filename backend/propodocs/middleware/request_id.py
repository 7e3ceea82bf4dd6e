"""
Propodocs Backend — Request ID Middleware
===========================================

What:  Gives every request a short correlation id and echoes it back in
       the X-Request-ID response header.
How:   Honors an incoming X-Request-ID (the frontend can tag user actions),
       otherwise generates one. The id is stored in a ContextVar, read by
       the access logger and the error handlers.

Why a ContextVar:
    Concurrent requests share a thread under asyncio; a ContextVar is
    coroutine-local where threading.local is not.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # 8 hex chars are plenty for correlating log lines
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

"""
Expense Tracker API — Request ID Middleware
=============================================

What:  Assigns each request a correlation ID and echoes it in the response.
How:   Reuses the client's X-Request-ID header when present, otherwise
       generates a short UUID; stores it in a ContextVar for loggers and error
       handlers and on `request.state` for route handlers.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one loop each see their own value
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def current_request_id(request: Request) -> Optional[str]:
    """
    The request's correlation ID.

    Falls back to `request.state` for code that runs after this middleware
    has reset the ContextVar (the catch-all 500 handler runs outermost).
    """
    return request_id_var.get("") or getattr(request.state, "request_id", None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Take X-Request-ID from the client if it sent one
        2. Otherwise generate 8 hex characters of a UUID4
        3. Store in the ContextVar and request.state
        4. Add to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response

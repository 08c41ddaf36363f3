"""
Expense Tracker API — Request Logging Middleware
==================================================

What:  One access-log line per HTTP request.
How:   Times the downstream call and logs method, path, status, duration,
       request ID, client IP and (on protected routes) the caller's user ID
       on the `expense_tracker.access` logger. The same fields go into
       `extra` for structured handlers.
When:  After RequestIDMiddleware (uses the request ID for correlation).

Not logged: request bodies and the Authorization header.
"""

import logging
import time
from typing import Any, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import current_request_id

logger = logging.getLogger("expense_tracker.access")

# Load balancers poll these every few seconds
HEALTH_PATHS = frozenset({"/health", "/health/ready"})


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Level by status: 5xx → ERROR, 4xx → WARNING, otherwise INFO.
    A request whose handler raises is logged as 500 before the error
    continues to the catch-all handler.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in HEALTH_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._log(request, 500, started)
            raise
        self._log(request, response.status_code, started)
        return response

    def _log(self, request: Request, status: int, started: float) -> None:
        identity = getattr(request.state, "identity", None)
        fields: Dict[str, Any] = {
            "request_id": current_request_id(request),
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "client_ip": request.client.host if request.client else "unknown",
            "user_id": identity.user_id if identity is not None else None,
        }
        logger.log(
            _level_for(status),
            "%(method)s %(path)s %(status)d %(duration_ms).1fms [%(request_id)s] "
            "from %(client_ip)s user=%(user_id)s",
            fields,
            extra=fields,
        )

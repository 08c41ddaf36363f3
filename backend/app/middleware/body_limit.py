"""
Expense Tracker API — Request Body Size Limit
===============================================

What:  Rejects request bodies larger than MAX_BODY_SIZE with 413.
How:   A pure ASGI middleware. A declared Content-Length over the limit is
       refused before the app runs. Bodies without one (chunked uploads) are
       counted as they are received: once the count passes the limit the app
       sees a client disconnect, whatever it tried to answer is dropped, and
       the 413 is sent in its place.
When:  Right after RequestIDMiddleware, so rejections carry the request ID.
"""

import logging

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.exceptions import ExpenseTrackerError, PayloadTooLargeError, ValidationError
from app.middleware.request_id import current_request_id
from app.schemas.errors import error_body

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware:
    def __init__(self, app: ASGIApp, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        declared = request.headers.get("content-length")
        if declared is not None:
            try:
                length = int(declared)
            except ValueError:
                error = ValidationError("Invalid Content-Length header", field="content-length")
                await self._reject(request, error, receive, send)
                return
            if length > self.max_body_size:
                self._log_rejection(request, f"declared body of {length} bytes")
                await self._reject(request, self._too_large(), receive, send)
                return

        received = 0
        exceeded = False
        response_started = False

        async def counting_receive() -> Message:
            nonlocal received, exceeded
            if exceeded:
                return {"type": "http.disconnect"}
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_size:
                    exceeded = True
                    self._log_rejection(request, f"streamed body past {received} bytes")
                    return {"type": "http.disconnect"}
            return message

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            if exceeded and not response_started:
                return
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, counting_receive, guarded_send)
        except Exception:
            # Reading the cut-off body can fail in the app; the 413 replaces it
            if not exceeded or response_started:
                raise
            logger.debug("Error after body limit was hit", exc_info=True)

        if exceeded and not response_started:
            await self._reject(request, self._too_large(), receive, send)

    def _too_large(self) -> PayloadTooLargeError:
        return PayloadTooLargeError(limit=self.max_body_size)

    def _log_rejection(self, request: Request, what: str) -> None:
        logger.warning(
            "Rejected %s %s: %s exceeds %d",
            request.method,
            request.url.path,
            what,
            self.max_body_size,
        )

    @staticmethod
    async def _reject(
        request: Request, error: ExpenseTrackerError, receive: Receive, send: Send
    ) -> None:
        response = JSONResponse(
            status_code=error.status_code,
            content=error_body(error.message, error.code, request_id=current_request_id(request)),
        )
        await response(request.scope, receive, send)

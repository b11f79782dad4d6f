"""
StreamGate Backend - Access Log Middleware
============================================

What:  One access line per request, written when the response body ends.
How:   Wraps the body iterator returned by call_next, counts the bytes that
       actually went out, and logs once the iterator finishes or is closed.

For /stream this describes the relay, not just the headers:

    GET /stream 206 range=bytes=0-1023 sent=1024B ttfb=41.2ms total=380.5ms [3f9c01ab] from 10.0.0.7
                    │                  │          │           │
                    │                  │          │           └─ until last body byte
                    │                  │          └─ until status and headers
                    │                  └─ body bytes delivered downstream
                    └─ client Range forwarded upstream ("-" if none)

    A body that stops before upstream finished (client gone mid-send) is
    tagged "incomplete".

Never logged: the query string (carries the signature) and upstream URLs
(carry the bot token). /health is skipped.
"""

import logging
import time
from typing import AsyncIterator

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from streamgate.middleware.request_id import request_id_var

logger = logging.getLogger("streamgate.access")

UNLOGGED_PATHS = frozenset({"/health"})


class _AccessRecord:
    """Everything the access line needs, filled in as the response progresses."""

    def __init__(self, request: Request):
        self.started = time.perf_counter()
        self.method = request.method
        self.path = request.url.path
        self.range = request.headers.get("range") or "-"
        self.client_ip = request.client.host if request.client else "unknown"
        self.request_id = request_id_var.get("")
        self.status = 0
        self.ttfb_ms = 0.0

    def emit(self, sent: int, complete: bool) -> None:
        total_ms = (time.perf_counter() - self.started) * 1000
        if self.status >= 500:
            level = logging.ERROR
        elif self.status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        logger.log(
            level,
            "%s %s %d range=%s sent=%dB ttfb=%.1fms total=%.1fms%s [%s] from %s",
            self.method,
            self.path,
            self.status,
            self.range,
            sent,
            self.ttfb_ms,
            total_ms,
            "" if complete else " incomplete",
            self.request_id,
            self.client_ip,
        )


async def _counted(body: AsyncIterator[bytes], record: _AccessRecord) -> AsyncIterator[bytes]:
    sent = 0
    complete = False
    try:
        async for chunk in body:
            yield chunk
            sent += len(chunk)
        complete = True
    finally:
        record.emit(sent, complete)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access logging at body completion.

    Level by status: 5xx → ERROR, 4xx → WARNING, otherwise INFO.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in UNLOGGED_PATHS:
            return await call_next(request)

        record = _AccessRecord(request)
        response = await call_next(request)

        record.status = response.status_code
        record.ttfb_ms = (time.perf_counter() - record.started) * 1000
        response.body_iterator = _counted(response.body_iterator, record)
        return response

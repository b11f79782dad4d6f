"""
StreamGate Backend - Request ID Middleware
============================================

What:  Tags every request with a correlation id and returns it in X-Request-ID.
How:   A well-formed client X-Request-ID is reused; anything else is replaced
       by a short UUID. The id lives in a ContextVar so the relay's stream
       lifecycle lines and the access line share it.

Accepted client ids:
    1-64 characters from [A-Za-z0-9._:-]. Ids are written into log lines and
    echoed into a response header, so control characters, spaces and
    oversized values are never passed through.
"""

import re
import uuid
from typing import Optional
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_VALID_REQUEST_ID = re.compile(r"[A-Za-z0-9._:-]{1,64}")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def resolve_request_id(client_value: Optional[str]) -> str:
    """Return the client's id if it is safe to log and echo, else a fresh one."""
    if client_value and _VALID_REQUEST_ID.fullmatch(client_value):
        return client_value
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Sets request_id_var for the request, including the streamed body."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request_id_var.set(rid)

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response

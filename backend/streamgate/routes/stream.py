"""
StreamGate Backend - Stream Route Handler
===========================================

What:  GET /stream?file_id=<id>&expires=<unix>&sig=<hex>, optional Range header.
How:   Collects the capability token and Range header, delegates to
       StreamService, and returns its StreamingResponse as-is.
Who:   Called by media players and download managers following a signed URL.

Error responses (plain text, produced by the global exception handlers):
    400 missing params · 403 url expired / invalid signature ·
    429 too many concurrent streams · 404 file not found ·
    502 upstream failure · 500 server misconfigured / internal error
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from starlette.responses import Response

from streamgate.schemas.stream import StreamParams
from streamgate.services.stream_service import StreamService, stream_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Stream"])


def get_stream_service() -> StreamService:
    """FastAPI dependency returning the process-wide StreamService."""
    return stream_service


@router.get(
    "/stream",
    responses={
        200: {"description": "Full file body relayed from upstream"},
        206: {"description": "Partial content for a Range request"},
        400: {"description": "missing params"},
        403: {"description": "url expired / invalid signature"},
        404: {"description": "file not found"},
        429: {"description": "too many concurrent streams"},
        502: {"description": "upstream metadata or content failure"},
    },
    summary="Relay a file behind a signed, expiring URL",
)
async def stream_file(
    request: Request,
    file_id: Optional[str] = Query(default=None, description="Telegram file identifier"),
    expires: Optional[str] = Query(default=None, description="Expiry, unix seconds"),
    sig: Optional[str] = Query(default=None, description="HMAC-SHA256 hex signature"),
    range_header: Optional[str] = Header(default=None, alias="Range"),
    service: StreamService = Depends(get_stream_service),
) -> Response:
    """
    Stream one file to the client.

    The upstream status (200, 206, 416, ...) is passed through. Only
    allow-listed upstream headers are forwarded.
    """
    params = StreamParams(file_id=file_id, expires=expires, sig=sig)
    return await service.open_stream(
        params,
        range_header=range_header,
        is_disconnected=request.is_disconnected,
    )

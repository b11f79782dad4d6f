"""
StreamGate Backend - Upstream HTTP Client Management
======================================================

What:  The shared httpx.AsyncClient used for Telegram metadata and file downloads.
How:   Created lazily on first use with pooled connections and explicit
       timeouts; closed during application shutdown.
Who:   Used by UpstreamResolver and StreamRelay.
When:  Client is created on the first upstream call; closed in the lifespan.

Connection Pooling Strategy:
    max_connections:           bounded by the stream ceiling plus metadata headroom
    max_keepalive_connections: reused for repeated getFile calls to one host
    read timeout:              applies between chunks, not to the whole stream
"""

import logging
from typing import Optional

import httpx

from streamgate.config import settings

logger = logging.getLogger(__name__)

_client: Optional[httpx.AsyncClient] = None


def create_http_client() -> httpx.AsyncClient:
    """Build an AsyncClient configured for the Telegram Bot API."""
    limits = httpx.Limits(
        max_connections=settings.max_concurrent_streams * 2 + 10,
        max_keepalive_connections=20,
    )
    timeout = httpx.Timeout(
        connect=settings.upstream_connect_timeout,
        read=settings.upstream_read_timeout,
        write=settings.upstream_connect_timeout,
        pool=settings.upstream_connect_timeout,
    )
    return httpx.AsyncClient(limits=limits, timeout=timeout, follow_redirects=True)


def get_http_client() -> httpx.AsyncClient:
    """
    Return the process-wide client, creating it if needed.

    A client closed by a previous shutdown (e.g. between test apps) is
    replaced rather than reused.
    """
    global _client
    if _client is None or _client.is_closed:
        _client = create_http_client()
        logger.debug("Upstream HTTP client created")
    return _client


async def close_http_client() -> None:
    """
    What:  Closes all pooled upstream connections.
    When:  Called during application shutdown (lifespan handler).
    """
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
        logger.debug("Upstream HTTP client closed")
    _client = None

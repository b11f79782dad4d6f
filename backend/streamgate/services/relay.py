"""
StreamGate Backend - Stream Relay
===================================

What:  Fetches a resolved Telegram file and pipes its bytes to the client.
How:   Opens the content request with stream=True, copies status and an
       allow-list of headers, and returns a StreamingResponse whose body is an
       async generator over the upstream chunks.
Who:   Called by StreamService once the admission slot is held and the file
       location is known.

Relay Loop (per chunk):
    ┌──────────────┐    ┌────────────┐    ┌───────────────┐    ┌──────────┐
    │ read upstream│───▶│ yield chunk│───▶│ client gone?  │───▶│ throttle │──┐
    └──────────────┘    └────────────┘    └───────────────┘    └──────────┘  │
           ▲                                   │ yes → stop                  │
           └─────────────────────────────────────────────────────────────────┘

Resource ownership:
    The caller passes in the AsyncExitStack that already holds the admission
    slot release. The relay adds the upstream response close to it and moves
    everything into the response with pop_all(). From then on the response is
    the only owner: the body generator closes the stack when the loop ends,
    and RelayResponse closes it again (no-op if already done) when the ASGI
    call returns, which covers a body that was never iterated.
"""

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

import httpx
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from streamgate import __version__
from streamgate.exceptions import UpstreamContentError
from streamgate.middleware.request_id import request_id_var
from streamgate.schemas.stream import ResolvedFile
from streamgate.upstream import get_http_client

logger = logging.getLogger(__name__)

# ── Header Policy ─────────────────────────────────────────────────────────
# Only these upstream response headers reach the client; anything else
# (server banners, internal tracing, cookies) is dropped.
ALLOWED_RESPONSE_HEADERS = (
    "content-type",
    "content-length",
    "content-range",
    "accept-ranges",
    "content-disposition",
    "cache-control",
    "last-modified",
)

PROXY_MARKER_HEADER = "x-stream-proxy"
PROXY_MARKER_VALUE = "streamgate"

USER_AGENT = f"streamgate/{__version__}"

THROTTLE_WINDOW_SECONDS = 0.5

DisconnectCheck = Callable[[], Awaitable[bool]]


async def _never_disconnected() -> bool:
    return False


def filter_response_headers(upstream_headers: httpx.Headers) -> Dict[str, str]:
    """Keep allow-listed upstream headers and add the proxy marker."""
    headers = {
        name: upstream_headers[name]
        for name in ALLOWED_RESPONSE_HEADERS
        if name in upstream_headers
    }
    headers[PROXY_MARKER_HEADER] = PROXY_MARKER_VALUE
    return headers


# ══════════════════════════════════════════════════════════════════════════
# Throttle
# ══════════════════════════════════════════════════════════════════════════

class Throttle:
    """
    Fixed-window bandwidth limiter.

    Each window of `window` seconds may carry `window_byte_budget` bytes
    (rate * window, at least 1). Once the budget is reached the relay sleeps
    for the rest of the window and a new window starts. The resulting rate is
    coarse: a single chunk larger than the budget still goes out whole.

    A rate of 0 disables throttling entirely.
    """

    def __init__(
        self,
        rate_bps: int,
        window: float = THROTTLE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.rate_bps = max(0, rate_bps)
        self.window = window
        self.window_byte_budget = max(1, int(self.rate_bps * window))
        self.bytes_since_pause = 0
        self._clock = clock
        self._sleep = sleep
        # First window opens with the first chunk, not at construction
        self._window_start: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self.rate_bps > 0

    async def consume(self, nbytes: int) -> None:
        """Account for `nbytes` just sent; sleep if the window's budget is used up."""
        if not self.enabled:
            return

        now = self._clock()
        if self._window_start is None:
            self._window_start = now
        elif now - self._window_start >= self.window:
            self._window_start = now
            self.bytes_since_pause = 0

        self.bytes_since_pause += nbytes
        if self.bytes_since_pause < self.window_byte_budget:
            return

        remaining = self.window - (self._clock() - self._window_start)
        if remaining > 0:
            await self._sleep(remaining)
        self._window_start = self._clock()
        self.bytes_since_pause = 0


# ══════════════════════════════════════════════════════════════════════════
# Response
# ══════════════════════════════════════════════════════════════════════════

class RelayResponse(StreamingResponse):
    """
    StreamingResponse that owns the stream's cleanup stack.

    The stack is closed when the ASGI call finishes for any reason: normal
    completion, client disconnect, cancellation, or an error while sending.
    """

    def __init__(
        self,
        content: AsyncIterator[bytes],
        cleanup: AsyncExitStack,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(content, status_code=status_code, headers=headers)
        self._cleanup = cleanup

    async def aclose(self) -> None:
        await self._cleanup.aclose()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.aclose()


# ══════════════════════════════════════════════════════════════════════════
# Relay
# ══════════════════════════════════════════════════════════════════════════

class StreamRelay:
    """
    Opens the upstream content request and builds the client response.

    Args:
        client: httpx client to use; defaults to the shared upstream client.
        clock/sleep: injected into each Throttle (tests use fakes).
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._clock = clock
        self._sleep = sleep

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    def _request_headers(self, range_header: Optional[str]) -> Dict[str, str]:
        headers = {
            "User-Agent": USER_AGENT,
            # Relayed bytes must match the forwarded Content-Length
            "Accept-Encoding": "identity",
        }
        if range_header:
            headers["Range"] = range_header
        return headers

    async def open(
        self,
        location: ResolvedFile,
        stack: AsyncExitStack,
        range_header: Optional[str] = None,
        is_disconnected: Optional[DisconnectCheck] = None,
        throttle_bps: int = 0,
    ) -> RelayResponse:
        """
        Start the content fetch and hand the stream over to a RelayResponse.

        Args:
            location:        Output of UpstreamResolver.resolve().
            stack:           Exit stack holding the admission slot release.
                             Emptied (pop_all) on success; untouched on error.
            range_header:    Client Range header, forwarded verbatim.
            is_disconnected: Awaitable check polled after every chunk.
            throttle_bps:    Bytes/second ceiling, 0 for unthrottled.

        Raises:
            UpstreamContentError: The request failed before headers arrived (→ 502).
        """
        request = self.client.build_request(
            "GET", location.url, headers=self._request_headers(range_header)
        )
        try:
            upstream = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.warning(
                "Content fetch failed for %s: %s",
                location.file_path,
                type(e).__name__,
            )
            raise UpstreamContentError(context={"error_type": type(e).__name__})

        stack.push_async_callback(upstream.aclose)
        headers = filter_response_headers(upstream.headers)
        throttle = Throttle(throttle_bps, clock=self._clock, sleep=self._sleep)

        logger.info(
            "[%s] Stream opened: %s status=%d range=%s throttle=%s",
            request_id_var.get(""),
            location.file_path,
            upstream.status_code,
            range_header or "-",
            f"{throttle_bps}B/s" if throttle.enabled else "off",
        )

        cleanup = stack.pop_all()
        body = self._iter_body(
            upstream,
            cleanup,
            is_disconnected or _never_disconnected,
            throttle,
            location.file_path,
        )
        return RelayResponse(
            body,
            cleanup=cleanup,
            status_code=upstream.status_code,
            headers=headers,
        )

    async def _iter_body(
        self,
        upstream: httpx.Response,
        cleanup: AsyncExitStack,
        is_disconnected: DisconnectCheck,
        throttle: Throttle,
        label: str,
    ) -> AsyncIterator[bytes]:
        """
        Yield upstream chunks in order until the body ends, the client leaves,
        or upstream fails. Never raises for upstream or client faults: the
        response headers are already sent, so the only option is to end the body.
        """
        sent = 0
        outcome = "completed"
        try:
            async for chunk in upstream.aiter_raw():
                yield chunk
                sent += len(chunk)
                if await is_disconnected():
                    outcome = "client disconnected"
                    break
                await throttle.consume(len(chunk))
        except httpx.HTTPError as e:
            outcome = "upstream error"
            logger.warning(
                "Upstream read failed for %s after %d bytes: %s",
                label,
                sent,
                type(e).__name__,
            )
        except (asyncio.CancelledError, GeneratorExit):
            outcome = "cancelled"
            raise
        except Exception:
            outcome = "internal error"
            logger.error("Unexpected relay error for %s", label, exc_info=True)
        finally:
            await cleanup.aclose()
            logger.info(
                "[%s] Stream %s: %s, %d bytes sent",
                request_id_var.get(""),
                outcome,
                label,
                sent,
            )

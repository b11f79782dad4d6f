"""
StreamGate Backend - Stream Service (Request Orchestrator)
============================================================

What:  Runs one GET /stream request from raw query parameters to a relay response.
How:   Composes the token verifier, admission controller, resolver and relay.
Who:   Called by the /stream route handler.

Orchestration Flow:
    ┌──────────┐   ┌────────┐   ┌─────────┐   ┌───────────┐   ┌─────────┐   ┌─────────┐
    │  params  │──▶│ config │──▶│ expiry  │──▶│ signature │──▶│  admit  │──▶│ resolve │──▶ relay
    └──────────┘   └────────┘   └─────────┘   └───────────┘   └─────────┘   └─────────┘
        400           500           403            403            429         502/404     (upstream status)

    Every step raises a StreamGateError subclass; main.py turns it into a
    plain-text response. Anything else is wrapped in InternalError (500).

Slot discipline:
    The admission slot is acquired inside an AsyncExitStack. Any exception
    between acquisition and the relay taking ownership unwinds the stack and
    releases the slot. On success the relay empties the stack, so leaving the
    `async with` block releases nothing and the response becomes the owner.
"""

import logging
from contextlib import AsyncExitStack
from typing import Optional

from starlette.responses import Response

from streamgate.config import Settings, settings as default_settings
from streamgate.exceptions import (
    ClientInputError,
    ConfigurationError,
    InternalError,
    InvalidSignatureError,
    StreamGateError,
    TokenExpiredError,
)
from streamgate.schemas.stream import StreamParams
from streamgate.services.admission import AdmissionController, admission_controller
from streamgate.services.relay import DisconnectCheck, StreamRelay
from streamgate.services.resolver import UpstreamResolver
from streamgate.services.token_verifier import is_expired, verify

logger = logging.getLogger(__name__)


class StreamService:
    """
    Business logic for the stream endpoint.

    Dependencies are injectable for tests; by default the service uses the
    global settings, the process-wide admission controller, and resolver/relay
    instances bound to the shared upstream HTTP client.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        admission: Optional[AdmissionController] = None,
        resolver: Optional[UpstreamResolver] = None,
        relay: Optional[StreamRelay] = None,
    ):
        self.config = config or default_settings
        self.admission = admission or admission_controller
        self.resolver = resolver or UpstreamResolver(config=self.config)
        self.relay = relay or StreamRelay()

    def authenticate(self, params: StreamParams) -> None:
        """
        Validate the capability token without touching upstream.

        Raises:
            ClientInputError:       a parameter is missing (→ 400)
            ConfigurationError:     a server secret is missing (→ 500)
            TokenExpiredError:      expired or unparseable expiry (→ 403)
            InvalidSignatureError:  signature mismatch (→ 403)
        """
        missing = params.missing()
        if missing:
            raise ClientInputError(missing=missing)

        if not self.config.is_configured:
            logger.error("Rejecting stream: SHARED_SECRET or TELEGRAM_BOT_TOKEN is not set")
            raise ConfigurationError()

        if is_expired(params.expires):
            raise TokenExpiredError(
                context={"file_id": params.file_id, "expires": params.expires}
            )

        if not verify(params.file_id, params.expires, params.sig, self.config.shared_secret):
            raise InvalidSignatureError(context={"file_id": params.file_id})

    async def open_stream(
        self,
        params: StreamParams,
        range_header: Optional[str] = None,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> Response:
        """
        Authenticate, admit, resolve, and start relaying one file.

        Returns:
            RelayResponse mirroring the upstream status with allow-listed headers.

        Raises:
            StreamGateError subclasses for every rejection before streaming starts.
        """
        self.authenticate(params)

        try:
            async with AsyncExitStack() as stack:
                slot = self.admission.acquire()
                stack.callback(slot.release)
                logger.debug(
                    "Admitted file_id=%s (%d/%d active)",
                    params.file_id,
                    self.admission.active,
                    self.admission.max_concurrent,
                )

                location = await self.resolver.resolve(params.file_id)
                return await self.relay.open(
                    location,
                    stack,
                    range_header=range_header,
                    is_disconnected=is_disconnected,
                    throttle_bps=self.config.default_throttle_bps,
                )
        except StreamGateError:
            raise
        except Exception as e:
            logger.error(
                "Unexpected error opening stream for file_id=%s: %s",
                params.file_id,
                str(e),
                exc_info=True,
            )
            raise InternalError(context={"error_type": type(e).__name__})


# ── Singleton Instance ────────────────────────────────────────────────────
stream_service = StreamService()

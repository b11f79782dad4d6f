"""
StreamGate Backend - Pydantic Schemas
=======================================

What:  Typed shapes for the stream request, the resolved upstream location,
       and the health check response.
How:   StreamParams is built from raw query parameters by the route; the
       service validates presence itself so a missing parameter is a 400
       "missing params" rather than FastAPI's automatic 422.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class StreamParams(BaseModel):
    """
    What:  The capability token as received in the query string.
    Why optional fields: presence is checked by StreamService so the error
           body and status match what URL signers expect.
    """
    file_id: Optional[str] = Field(default=None, description="Opaque Telegram file identifier")
    expires: Optional[str] = Field(default=None, description="Expiry as unix seconds")
    sig: Optional[str] = Field(default=None, description="Hex HMAC-SHA256 signature")

    def missing(self) -> List[str]:
        """Names of parameters that are absent or empty."""
        return [name for name in ("file_id", "expires", "sig") if not getattr(self, name)]


# ══════════════════════════════════════════════════════════════════════════
# Internal Models
# ══════════════════════════════════════════════════════════════════════════


class ResolvedFile(BaseModel):
    """
    What:  Result of the getFile metadata call.

    Security:
        `url` embeds the bot token. It is handed straight to the relay and
        must never be logged or serialized into a response.
    """
    file_path: str = Field(description="Telegram file_path from getFile")
    file_size: Optional[int] = Field(default=None, description="Size in bytes when reported")
    url: str = Field(repr=False, description="Direct download URL (contains the bot token)")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class HealthResponse(BaseModel):
    """
    What:  Health check response for monitoring and load balancer probes.
    """
    status: str = Field(description="Overall status: healthy or misconfigured")
    version: str = Field(description="Application version")
    configured: bool = Field(description="Whether SHARED_SECRET and TELEGRAM_BOT_TOKEN are set")
    active_streams: int = Field(description="Streams currently relayed by this process")
    max_concurrent_streams: int = Field(description="Admission ceiling for this process")
    uptime_seconds: float = Field(description="Seconds since service started")

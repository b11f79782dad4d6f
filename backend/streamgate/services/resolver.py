"""
StreamGate Backend - Upstream Resolver
========================================

What:  Maps an opaque Telegram file_id to a downloadable file URL.
How:   One GET {api_base}/bot<token>/getFile?file_id=<id>; the response's
       result.file_path is joined into {api_base}/file/bot<token>/<file_path>.
Who:   Called by StreamService after admission, before the relay.

Failure classification (single attempt, no retries):
    transport error (DNS, connect, timeout)   → MetadataTransportError   (502)
    non-2xx status                            → MetadataRejectedError    (502)
    body is not JSON                          → MetadataParseError       (502)
    JSON without ok=true / result.file_path   → UpstreamFileNotFoundError (404)

The bot token is part of both URLs; log lines only ever mention file ids
and file paths.
"""

import logging
from typing import Any, Optional

import httpx

from streamgate.config import Settings, settings as default_settings
from streamgate.exceptions import (
    MetadataParseError,
    MetadataRejectedError,
    MetadataTransportError,
    UpstreamFileNotFoundError,
)
from streamgate.schemas.stream import ResolvedFile
from streamgate.upstream import get_http_client

logger = logging.getLogger(__name__)


class UpstreamResolver:
    """
    Resolves Telegram file ids through the Bot API.

    Args:
        client: httpx client to use; defaults to the shared upstream client
                looked up at call time.
        config: Settings providing the bot token and API base URL.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
    ):
        self._client = client
        self.config = config or default_settings

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    def _api_url(self, method: str) -> str:
        return f"{self.config.telegram_api_base}/bot{self.config.telegram_bot_token}/{method}"

    def file_url(self, file_path: str) -> str:
        return (
            f"{self.config.telegram_api_base}/file/"
            f"bot{self.config.telegram_bot_token}/{file_path.lstrip('/')}"
        )

    async def resolve(self, file_id: str) -> ResolvedFile:
        """
        Fetch metadata for `file_id` and build its download location.

        Raises:
            MetadataTransportError, MetadataRejectedError, MetadataParseError,
            UpstreamFileNotFoundError
        """
        try:
            response = await self.client.get(
                self._api_url("getFile"),
                params={"file_id": file_id},
            )
        except httpx.HTTPError as e:
            logger.warning(
                "getFile transport failure for file_id=%s: %s",
                file_id,
                type(e).__name__,
            )
            raise MetadataTransportError(context={"error_type": type(e).__name__})

        if not response.is_success:
            logger.warning(
                "getFile rejected for file_id=%s with status %d",
                file_id,
                response.status_code,
            )
            raise MetadataRejectedError(status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            logger.warning("getFile returned a non-JSON body for file_id=%s", file_id)
            raise MetadataParseError(context={"file_id": file_id})

        file_path = _extract_file_path(payload)
        if not file_path:
            logger.info("getFile has no file_path for file_id=%s", file_id)
            raise UpstreamFileNotFoundError(file_id=file_id)

        file_size = payload["result"].get("file_size")
        logger.debug("Resolved file_id=%s to file_path=%s", file_id, file_path)
        return ResolvedFile(
            file_path=file_path,
            file_size=file_size if isinstance(file_size, int) else None,
            url=self.file_url(file_path),
        )


def _extract_file_path(payload: Any) -> Optional[str]:
    """Return result.file_path from a successful getFile payload, else None."""
    if not isinstance(payload, dict) or not payload.get("ok"):
        return None
    result = payload.get("result")
    if not isinstance(result, dict):
        return None
    file_path = result.get("file_path")
    if not isinstance(file_path, str) or not file_path:
        return None
    return file_path

"""
StreamGate Backend - Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   The Telegram Bot API is replaced by FakeTelegram behind
       httpx.MockTransport; the app is exercised through httpx's ASGITransport.

Fixture Hierarchy:
    ├── test_settings: Settings with known secrets and a fake API base
    ├── fake_telegram: scripted getFile / file download upstream
    ├── upstream_client: httpx.AsyncClient routed to fake_telegram
    ├── admission: fresh AdmissionController (ceiling 2)
    ├── stream_service: StreamService wired to all of the above
    └── test_client: HTTPX AsyncClient against the app, using stream_service
"""

import os

# Override settings for testing BEFORE any app imports
os.environ["TELEGRAM_BOT_TOKEN"] = "123456:test-bot-token"
os.environ["SHARED_SECRET"] = "test-shared-secret"
os.environ["MAX_CONCURRENT_STREAMS"] = "2"
os.environ["DEFAULT_THROTTLE_BPS"] = "0"
os.environ["TELEGRAM_API_BASE"] = "https://telegram.test"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from streamgate.config import Settings
from streamgate.services.admission import AdmissionController
from streamgate.services.relay import StreamRelay
from streamgate.services.resolver import UpstreamResolver
from streamgate.services.stream_service import StreamService
from streamgate.services.token_verifier import build_signed_params

TEST_SECRET = "test-shared-secret"
TEST_BOT_TOKEN = "123456:test-bot-token"
TEST_API_BASE = "https://telegram.test"
TEST_FILE_ID = "abc123"
TEST_FILE_PATH = "videos/file_7.mp4"


# ══════════════════════════════════════════════════════════════════════════
# Fake Upstream
# ══════════════════════════════════════════════════════════════════════════

class ChunkStream(httpx.AsyncByteStream):
    """
    Upstream body that records how many chunks were pulled.

    fail_after: raise httpx.ReadError after this many chunks.
    """

    def __init__(self, chunks: List[bytes], fail_after: Optional[int] = None):
        self.chunks = chunks
        self.fail_after = fail_after
        self.reads = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            if self.fail_after is not None and self.reads >= self.fail_after:
                raise httpx.ReadError("upstream connection reset")
            self.reads += 1
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class FakeTelegram:
    """
    Scripted stand-in for api.telegram.org.

    Set the metadata_* / content_* attributes before a request to shape the
    next response; `requests` records everything the proxy sent upstream.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.metadata_status = 200
        self.metadata_body = None
        self.metadata = {
            "ok": True,
            "result": {
                "file_id": TEST_FILE_ID,
                "file_unique_id": "AgADxyz",
                "file_size": 11,
                "file_path": TEST_FILE_PATH,
            },
        }
        self.metadata_error: Optional[Exception] = None
        self.content_status = 200
        self.content_headers = {
            "content-type": "video/mp4",
            "content-length": "11",
            "accept-ranges": "bytes",
        }
        self.content_chunks = [b"hello ", b"world"]
        self.content_fail_after: Optional[int] = None
        self.content_error: Optional[Exception] = None
        self.content_stream: Optional[ChunkStream] = None

    @property
    def metadata_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/getFile")]

    @property
    def content_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/file/")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path.endswith("/getFile"):
            if self.metadata_error is not None:
                raise self.metadata_error
            if self.metadata_body is not None:
                return httpx.Response(self.metadata_status, content=self.metadata_body)
            return httpx.Response(self.metadata_status, json=self.metadata)

        if request.url.path.startswith("/file/"):
            if self.content_error is not None:
                raise self.content_error
            self.content_stream = ChunkStream(self.content_chunks, self.content_fail_after)
            return httpx.Response(
                self.content_status,
                headers=self.content_headers,
                stream=self.content_stream,
            )

        return httpx.Response(404, json={"ok": False, "description": "Not Found"})


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        telegram_bot_token=TEST_BOT_TOKEN,
        shared_secret=TEST_SECRET,
        telegram_api_base=TEST_API_BASE,
        max_concurrent_streams=2,
        default_throttle_bps=0,
    )


@pytest.fixture
def fake_telegram() -> FakeTelegram:
    return FakeTelegram()


@pytest_asyncio.fixture
async def upstream_client(fake_telegram):
    transport = httpx.MockTransport(fake_telegram.handler)
    async with httpx.AsyncClient(transport=transport) as client:
        yield client


@pytest.fixture
def admission() -> AdmissionController:
    return AdmissionController(max_concurrent=2)


@pytest.fixture
def stream_service(test_settings, admission, upstream_client) -> StreamService:
    return StreamService(
        config=test_settings,
        admission=admission,
        resolver=UpstreamResolver(client=upstream_client, config=test_settings),
        relay=StreamRelay(client=upstream_client),
    )


@pytest.fixture
def signed_params():
    """
    Factory for valid query parameters.

    Usage:
        params = signed_params()                  # abc123, valid for 5 minutes
        params = signed_params(ttl_seconds=-60)   # already expired
    """

    def _make(file_id: str = TEST_FILE_ID, ttl_seconds: int = 300, secret: str = TEST_SECRET):
        return build_signed_params(file_id, secret, ttl_seconds=ttl_seconds)

    return _make


@pytest_asyncio.fixture
async def test_client(stream_service):
    """
    HTTPX AsyncClient talking to the FastAPI app in-process.

    The /stream dependency is overridden so requests reach the fake upstream.
    """
    from streamgate.main import app
    from streamgate.routes.stream import get_stream_service

    app.dependency_overrides[get_stream_service] = lambda: stream_service
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_stream_service, None)

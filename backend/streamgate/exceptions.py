"""
StreamGate Backend - Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every way a stream request can fail.
How:   Each exception carries a short public message (sent to the client as a
       plain-text body) and an optional context dict (logged, never returned).
       Global exception handlers in main.py map each type to a status code.
Who:   Raised by services; caught by global handlers.

Exception Hierarchy:
    StreamGateError (base)
    ├── ClientInputError              → 400 Bad Request
    ├── AuthenticationError           → 403 Forbidden
    │   ├── TokenExpiredError         → 403 "url expired"
    │   └── InvalidSignatureError     → 403 "invalid signature"
    ├── ConfigurationError            → 500 "server misconfigured"
    ├── AdmissionRejectedError        → 429 Too Many Requests
    ├── UpstreamMetadataError         → 502 Bad Gateway
    │   ├── MetadataTransportError    → 502
    │   ├── MetadataRejectedError     → 502
    │   ├── MetadataParseError        → 502
    │   └── UpstreamFileNotFoundError → 404 Not Found
    ├── UpstreamContentError          → 502 Bad Gateway
    └── InternalError                 → 500 Internal Server Error

Faults after the response headers have been sent (upstream read errors, client
disconnects) are not represented here: the relay ends the body and logs them,
since no status code can be sent at that point.
"""

from typing import Any, Dict, Optional


class StreamGateError(Exception):
    """
    Base exception for all StreamGate application errors.

    Attributes:
        message:  Client-facing error body (short, no internal details)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "internal error",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ClientInputError(StreamGateError):
    """
    Raised when required query parameters are missing or empty.

    When:    Any of file_id, expires, sig absent from GET /stream.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "missing params",
        missing: Optional[list] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if missing:
            ctx["missing"] = missing
        super().__init__(message=message, context=ctx)
        self.missing = missing or []


class AuthenticationError(StreamGateError):
    """
    Raised when a capability token is rejected.

    HTTP:    403 Forbidden
    The two subclasses keep the reason distinguishable in the response body.
    """

    def __init__(
        self,
        message: str = "forbidden",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class TokenExpiredError(AuthenticationError):
    """The `expires` timestamp is in the past, zero, or not a number."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="url expired", context=context)


class InvalidSignatureError(AuthenticationError):
    """The `sig` parameter does not match HMAC-SHA256(secret, "file_id:expires")."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="invalid signature", context=context)


class ConfigurationError(StreamGateError):
    """
    Raised when the server is missing a secret it needs to serve streams.

    When:    SHARED_SECRET or TELEGRAM_BOT_TOKEN is empty.
    HTTP:    500 Internal Server Error (operator problem, not a client error)
    """

    def __init__(
        self,
        message: str = "server misconfigured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AdmissionRejectedError(StreamGateError):
    """
    Raised when this process is already serving its maximum number of streams.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        max_concurrent: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["max_concurrent"] = max_concurrent
        super().__init__(message="too many concurrent streams", context=ctx)
        self.max_concurrent = max_concurrent


class UpstreamMetadataError(StreamGateError):
    """
    Base for failures of the getFile metadata call.

    HTTP:    502 Bad Gateway unless a subclass says otherwise
    """

    def __init__(
        self,
        message: str = "failed to get file metadata",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class MetadataTransportError(UpstreamMetadataError):
    """The metadata request never produced an HTTP response (DNS, connect, timeout)."""


class MetadataRejectedError(UpstreamMetadataError):
    """The metadata endpoint answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["upstream_status"] = status_code
        super().__init__(context=ctx)
        self.status_code = status_code


class MetadataParseError(UpstreamMetadataError):
    """The metadata body was not valid JSON."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="failed to parse file metadata", context=context)


class UpstreamFileNotFoundError(UpstreamMetadataError):
    """
    The metadata response was well-formed but carried no file_path.

    HTTP:    404 Not Found
    """

    def __init__(
        self,
        file_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if file_id:
            ctx["file_id"] = file_id
        super().__init__(message="file not found", context=ctx)


class UpstreamContentError(StreamGateError):
    """
    Raised when the content request fails before any response headers arrive.

    HTTP:    502 Bad Gateway
    """

    def __init__(
        self,
        message: str = "failed to fetch file content",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InternalError(StreamGateError):
    """
    Wraps any unexpected exception raised before the response started.

    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "internal error",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

"""
StreamGate Backend - Capability Token Verifier
================================================

What:  Validates the (file_id, expires, sig) triple carried in a stream URL.
How:   sig = hex(HMAC-SHA256(SHARED_SECRET, f"{file_id}:{expires}")), compared
       in constant time; expires is a unix timestamp in seconds.
Who:   Called by StreamService before any upstream work is done.

Canonical message:
    "<file_id>:<expires>" with no escaping. A file_id containing ":" can
    collide with a different (file_id, expires) split. Telegram file ids are
    URL-safe base64 and never contain ":", so the format is kept as-is to
    stay compatible with existing signers.

The signing helpers below implement the same algorithm the external URL
signer uses; they are used by tests and operator tooling.
"""

import hashlib
import hmac
import logging
import math
import time
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

Timestamp = Union[str, int, float]


def _canonical_message(resource_id: str, expires_at: Timestamp) -> bytes:
    return f"{resource_id}:{expires_at}".encode("utf-8")


def sign(resource_id: str, expires_at: Timestamp, secret: str) -> str:
    """Return the lowercase hex HMAC-SHA256 signature for a capability token."""
    return hmac.new(
        secret.encode("utf-8"),
        _canonical_message(resource_id, expires_at),
        hashlib.sha256,
    ).hexdigest()


def verify(resource_id: str, expires_at: Timestamp, signature: str, secret: str) -> bool:
    """
    Check a signature against the shared secret.

    Any exception while comparing (non-ASCII signature, wrong types, a secret
    that cannot be encoded) counts as a mismatch and is never propagated.
    """
    try:
        expected = sign(resource_id, expires_at, secret)
        return hmac.compare_digest(expected, signature)
    except Exception as e:
        logger.debug("Signature comparison failed: %s", type(e).__name__)
        return False


def is_expired(expires_at: Optional[Timestamp], now: Optional[float] = None) -> bool:
    """
    True when the token can no longer be used.

    Zero, empty, non-numeric and non-finite values are treated as expired.
    A token is still valid during the second it expires in.
    """
    try:
        ts = float(expires_at)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return True
    if not ts or not math.isfinite(ts):
        return True
    current = time.time() if now is None else now
    return current > ts


def build_signed_params(
    resource_id: str,
    secret: str,
    ttl_seconds: int = 300,
    now: Optional[float] = None,
) -> Dict[str, str]:
    """
    Build the query parameters of a signed stream URL.

    Returns:
        {"file_id": ..., "expires": ..., "sig": ...}, ready for urlencode().
    """
    current = time.time() if now is None else now
    expires = str(int(current) + ttl_seconds)
    return {
        "file_id": resource_id,
        "expires": expires,
        "sig": sign(resource_id, expires, secret),
    }

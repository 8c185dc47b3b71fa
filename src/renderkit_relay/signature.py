"""
HMAC request signing for the relay protocol.

Signed requests carry two headers::

    X-RenderKit-Relay-Timestamp: <unix seconds>
    X-RenderKit-Relay-Signature: sha256=<hex(HMAC-SHA256(secret, "<timestamp>.<raw body>"))>

Verification is a pure check over the raw body bytes and runs before any JSON
parsing, so unauthenticated callers cannot probe the body parser.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import time
from collections.abc import Callable, Mapping

from renderkit_relay.errors import AuthenticationError

TIMESTAMP_HEADER = "X-RenderKit-Relay-Timestamp"
SIGNATURE_HEADER = "X-RenderKit-Relay-Signature"

_SIGNATURE_RE = re.compile(r"sha256=([0-9a-f]{64})")
# Unix seconds; the digit cap keeps int() away from huge header values.
_TIMESTAMP_RE = re.compile(r"-?\d{1,18}")


def compute_signature(secret: str, timestamp: int, raw_body: bytes) -> str:
    """Hex HMAC-SHA256 over ``"<timestamp>.<raw body>"``."""
    message = f"{timestamp}.".encode() + raw_body
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def sign_headers(secret: str, raw_body: bytes, timestamp: int | None = None) -> dict[str, str]:
    """Build the authentication headers for *raw_body*.

    Args:
        secret: Shared HMAC secret
        raw_body: Exact bytes that will be sent as the request body
        timestamp: Unix seconds (defaults to now)

    Returns:
        Dict of headers to include with the request.
    """
    ts = int(time.time()) if timestamp is None else int(timestamp)
    return {
        TIMESTAMP_HEADER: str(ts),
        SIGNATURE_HEADER: f"sha256={compute_signature(secret, ts, raw_body)}",
    }


class SignatureVerifier:
    """Verifies timestamped HMAC signatures on inbound requests.

    Args:
        secret: Shared HMAC secret
        max_skew_seconds: Maximum allowed ``|now - timestamp|``
        clock: Returns the current unix time in seconds
    """

    def __init__(
        self,
        secret: str,
        max_skew_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("secret must not be empty")
        self._secret = secret
        self.max_skew_seconds = max_skew_seconds
        self._clock = clock

    def verify(
        self,
        timestamp_header: str | None,
        signature_header: str | None,
        raw_body: bytes,
    ) -> None:
        """Raise :class:`AuthenticationError` unless the request is authentic and fresh."""
        if timestamp_header is None or not _TIMESTAMP_RE.fullmatch(timestamp_header.strip()):
            raise AuthenticationError("invalid_timestamp")
        timestamp = int(timestamp_header.strip())

        now = int(self._clock())
        if abs(now - timestamp) > self.max_skew_seconds:
            raise AuthenticationError("timestamp_out_of_range")

        if signature_header is None:
            raise AuthenticationError("missing_signature")

        match = _SIGNATURE_RE.fullmatch(signature_header.strip())
        if not match:
            raise AuthenticationError("invalid_signature_format")

        expected = compute_signature(self._secret, timestamp, raw_body)
        if not hmac.compare_digest(match.group(1), expected):
            raise AuthenticationError("signature_mismatch")

    def verify_headers(self, headers: Mapping[str, str], raw_body: bytes) -> None:
        """Verify using a case-insensitive header mapping (e.g. Starlette ``Headers``)."""
        self.verify(headers.get(TIMESTAMP_HEADER), headers.get(SIGNATURE_HEADER), raw_body)

    def sign(self, raw_body: bytes, timestamp: int | None = None) -> dict[str, str]:
        """Sign *raw_body* with this verifier's secret."""
        if timestamp is None:
            timestamp = int(self._clock())
        return sign_headers(self._secret, raw_body, timestamp)

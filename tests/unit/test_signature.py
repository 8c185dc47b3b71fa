"""
Unit tests for relay request signing and verification.
"""

from __future__ import annotations

import hashlib
import hmac

import pytest
from starlette.datastructures import Headers

from renderkit_relay.errors import AuthenticationError
from renderkit_relay.signature import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    SignatureVerifier,
    compute_signature,
    sign_headers,
)

SECRET = "s3cret"
NOW = 1_700_000_000
BODY = b'{"block":"hero","props":{"heading":"Hello"}}'


def _sig(timestamp: int, body: bytes = BODY, secret: str = SECRET) -> str:
    return "sha256=" + compute_signature(secret, timestamp, body)


@pytest.fixture
def verifier() -> SignatureVerifier:
    return SignatureVerifier(SECRET, max_skew_seconds=60, clock=lambda: float(NOW))


def _code(verifier: SignatureVerifier, ts: str | None, sig: str | None, body: bytes = BODY) -> str:
    with pytest.raises(AuthenticationError) as exc_info:
        verifier.verify(ts, sig, body)
    return exc_info.value.code


class TestComputeSignature:
    """Tests for the HMAC construction."""

    def test_hmac_over_timestamp_dot_body(self) -> None:
        """The MAC covers "<timestamp>.<raw body>"."""
        expected = hmac.new(
            SECRET.encode(), f"{NOW}.".encode() + BODY, hashlib.sha256
        ).hexdigest()
        assert compute_signature(SECRET, NOW, BODY) == expected

    def test_sign_headers(self) -> None:
        """sign_headers produces both relay headers."""
        headers = sign_headers(SECRET, BODY, NOW)
        assert headers[TIMESTAMP_HEADER] == str(NOW)
        assert headers[SIGNATURE_HEADER] == _sig(NOW)

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            SignatureVerifier("")


class TestVerify:
    """Tests for SignatureVerifier.verify."""

    def test_valid_request_passes(self, verifier: SignatureVerifier) -> None:
        verifier.verify(str(NOW), _sig(NOW), BODY)

    def test_skew_boundary_is_inclusive(self, verifier: SignatureVerifier) -> None:
        """A timestamp exactly max_skew seconds away is still accepted."""
        verifier.verify(str(NOW - 60), _sig(NOW - 60), BODY)
        verifier.verify(str(NOW + 60), _sig(NOW + 60), BODY)

    @pytest.mark.parametrize("ts", [None, "", "abc", "12.5", "1e9", "9" * 5000])
    def test_invalid_timestamp(self, verifier: SignatureVerifier, ts: str | None) -> None:
        assert _code(verifier, ts, _sig(NOW)) == "invalid_timestamp"

    @pytest.mark.parametrize("offset", [-61, 61, -100_000])
    def test_timestamp_out_of_range(self, verifier: SignatureVerifier, offset: int) -> None:
        ts = NOW + offset
        assert _code(verifier, str(ts), _sig(ts)) == "timestamp_out_of_range"

    def test_missing_signature(self, verifier: SignatureVerifier) -> None:
        assert _code(verifier, str(NOW), None) == "missing_signature"

    @pytest.mark.parametrize(
        "sig",
        [
            "",
            "sha1=" + "a" * 64,
            "sha256=" + "a" * 63,
            "sha256=" + "g" * 64,
            "sha256=" + "A" * 64,
            "a" * 64,
        ],
    )
    def test_invalid_signature_format(self, verifier: SignatureVerifier, sig: str) -> None:
        assert _code(verifier, str(NOW), sig) == "invalid_signature_format"

    def test_signature_mismatch_on_tampered_body(self, verifier: SignatureVerifier) -> None:
        assert _code(verifier, str(NOW), _sig(NOW), BODY + b" ") == "signature_mismatch"

    def test_signature_mismatch_on_wrong_secret(self, verifier: SignatureVerifier) -> None:
        assert _code(verifier, str(NOW), _sig(NOW, secret="other")) == "signature_mismatch"

    def test_signature_bound_to_timestamp(self, verifier: SignatureVerifier) -> None:
        """A signature made for one timestamp does not verify with another."""
        assert _code(verifier, str(NOW - 1), _sig(NOW)) == "signature_mismatch"

    def test_timestamp_checked_before_signature(self, verifier: SignatureVerifier) -> None:
        assert _code(verifier, "nope", None) == "invalid_timestamp"
        assert _code(verifier, str(NOW - 3600), "garbage") == "timestamp_out_of_range"

    def test_verify_headers_is_case_insensitive(self, verifier: SignatureVerifier) -> None:
        """Starlette headers are looked up regardless of case."""
        headers = Headers(
            {
                TIMESTAMP_HEADER.lower(): str(NOW),
                SIGNATURE_HEADER.lower(): _sig(NOW),
            }
        )
        verifier.verify_headers(headers, BODY)

    def test_sign_uses_verifier_clock(self, verifier: SignatureVerifier) -> None:
        headers = verifier.sign(BODY)
        assert headers[TIMESTAMP_HEADER] == str(NOW)
        verifier.verify_headers(headers, BODY)

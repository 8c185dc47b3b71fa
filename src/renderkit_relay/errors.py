"""
Error types for the renderKit relay.

Every relay error carries a short machine-readable ``code`` that is safe to
return to callers. Free-form messages stay in the server log.
"""

from __future__ import annotations

# Codes that describe a problem with the caller's input rather than the relay.
CALLER_ERROR_CODES = frozenset(
    {
        "invalid_json",
        "missing_block",
        "missing_props",
        "missing_blocks",
        "invalid_events",
        "unsupported_block",
        "invalid_props",
    }
)

# Codes a renderer artifact may raise to signal a caller error.
RENDERER_INPUT_CODES = frozenset({"unsupported_block", "invalid_props"})


class RelayError(Exception):
    """Base exception for all relay errors."""

    code: str = "relay_error"

    def __init__(self, code: str | None = None, message: str | None = None):
        if code is not None:
            self.code = code
        self.message = message or self.code
        super().__init__(self.message)


class ConfigError(RelayError):
    """
    Raised when required startup configuration is missing or invalid.

    This is the only error that is fatal for the process.
    """

    code = "config_error"


class AuthenticationError(RelayError):
    """
    Raised when a signed request fails verification.

    Examples:
    - Missing or non-numeric timestamp header
    - Timestamp outside the skew window
    - Missing or malformed signature header
    - HMAC mismatch
    """

    code = "signature_mismatch"


class RendererMissingError(RelayError):
    """Raised when the renderer artifact cannot be found on disk."""

    code = "renderer_missing"


class RendererInvalidError(RelayError):
    """Raised when the renderer artifact fails to load or lacks ``render_relay``."""

    code = "renderer_invalid"


class UnsupportedBlockError(RelayError):
    """Raised by renderer artifacts for block names they do not know."""

    code = "unsupported_block"


class InvalidPropsError(RelayError):
    """Raised by renderer artifacts when props violate the block schema."""

    code = "invalid_props"


class RequestError(RelayError):
    """A request-level failure mapped directly to an HTTP status."""

    def __init__(self, code: str, status_code: int = 400, message: str | None = None):
        super().__init__(code, message)
        self.status_code = status_code


def caller_error_code(exc: BaseException) -> str | None:
    """Return the caller-input code carried by *exc*, if it carries one.

    Renderer artifacts are not required to use :class:`RelayError`; any
    exception with a string ``code`` attribute naming a known caller error
    is honoured.
    """
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code in RENDERER_INPUT_CODES:
        return code
    return None


def status_for_code(code: str) -> int:
    """HTTP status for a failed render outcome."""
    return 400 if code in CALLER_ERROR_CODES else 500

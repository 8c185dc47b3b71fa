"""
Exception handlers for the relay application.

Every error leaves the relay in the same envelope::

    {"ok": false, "error": "<code>"}

Handles:
- AuthenticationError: signature / timestamp failures (401, counted)
- RequestError: body-level problems such as invalid JSON or oversize bodies
- RelayError: anything else carrying a code (500)
- Starlette HTTP errors: unknown routes (404) and wrong methods (405)
- Exception: anything unexpected (500 ``internal_error``, logged and counted)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from renderkit_relay.errors import AuthenticationError, RelayError, RequestError
from renderkit_relay.logging import get_http_logger

if TYPE_CHECKING:
    from renderkit_relay.metrics import RelayMetrics

logger = get_http_logger()

NO_STORE_HEADERS = {"Cache-Control": "no-store"}

_HTTP_ERROR_CODES = {
    404: "not_found",
    405: "method_not_allowed",
}


class RelayJSONResponse(JSONResponse):
    """JSON response that is never cached by intermediaries."""

    def __init__(self, content: Any, status_code: int = 200, **kwargs: Any) -> None:
        headers = {**NO_STORE_HEADERS, **(kwargs.pop("headers", None) or {})}
        super().__init__(content=content, status_code=status_code, headers=headers, **kwargs)


def error_response(code: str, status_code: int) -> RelayJSONResponse:
    return RelayJSONResponse({"ok": False, "error": code}, status_code=status_code)


def register_exception_handlers(app: FastAPI, metrics: RelayMetrics) -> None:
    """
    Register the relay's exception handlers on a FastAPI application.

    Args:
        app: FastAPI application instance
        metrics: Relay metrics (authentication failures are counted)
    """

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> RelayJSONResponse:
        """Reject unauthenticated requests without echoing anything back."""
        metrics.auth_failures_total.inc(exc.code)
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.code)
        return error_response(exc.code, 401)

    @app.exception_handler(RequestError)
    async def request_error_handler(request: Request, exc: RequestError) -> RelayJSONResponse:
        """Caller-side body problems (invalid JSON, missing fields, oversize bodies)."""
        if exc.status_code >= 500:
            logger.error("Request failed on %s: %s", request.url.path, exc.code)
        else:
            logger.debug("Bad request on %s: %s", request.url.path, exc.code)
        return error_response(exc.code, exc.status_code)

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> RelayJSONResponse:
        """Coded relay failures that escaped a route."""
        logger.error("Relay error on %s: %s", request.url.path, exc.message)
        metrics.record_system_error(exc.code)
        return error_response(exc.code, 500)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> RelayJSONResponse:
        """Unknown routes and methods use the relay envelope instead of ``detail``."""
        code = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
        return error_response(code, exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> RelayJSONResponse:
        """Last resort: nothing leaves the relay outside the envelope."""
        logger.error(
            "Unhandled %s on %s %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc_info=exc,
        )
        metrics.record_system_error("internal_error")
        return error_response("internal_error", 500)

"""
Request accounting middleware.

Counts every HTTP request in ``renderkit_relay_requests_total`` labelled by
endpoint and status code. Paths that are not relay routes are folded into a
single ``other`` endpoint to keep label cardinality bounded.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

if TYPE_CHECKING:
    from starlette.types import ASGIApp

    from renderkit_relay.metrics import RelayMetrics

RequestResponseEndpoint = Callable[[Request], Awaitable[Response]]

OTHER_ENDPOINT = "other"


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records request counts per endpoint and status."""

    def __init__(
        self,
        app: ASGIApp,
        metrics: RelayMetrics,
        endpoints: Iterable[str],
    ):
        """
        Initialize the middleware.

        Args:
            app: ASGI application
            metrics: Relay metrics
            endpoints: Known route paths; anything else is counted as ``other``
        """
        super().__init__(app)
        self._metrics = metrics
        self._endpoints = frozenset(endpoints)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        endpoint = path if path in self._endpoints else OTHER_ENDPOINT
        status_code = 500  # Default in case of unhandled exception

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            self._metrics.record_request(endpoint, status_code)

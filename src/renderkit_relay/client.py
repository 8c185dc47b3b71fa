"""
HTTP client for a running relay.

Signs every request with the shared secret and guards the render calls
with an in-process circuit breaker:

- 3 failures within 60 seconds open the circuit for 30 seconds
- transport errors, 5xx and malformed 2xx bodies count as failures
- 4xx responses mean the relay is alive and do not count

Render calls never raise; on any failure they return ``""`` so callers can
fall back to their own markup. Responses are not cached client-side;
every call reaches the relay.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from renderkit_relay.routes import (
    FORGE_EVENTS_PATH,
    FORGE_INSIGHTS_PATH,
    HEALTH_PATH,
    RENDER_BATCH_PATH,
    RENDER_PATH,
)
from renderkit_relay.signature import sign_headers

logger = logging.getLogger(__name__)

MAX_FAILURES = 3
FAILURE_WINDOW_SECONDS = 60.0
OPEN_DURATION_SECONDS = 30.0


@dataclass
class CircuitBreaker:
    """Counts failures in a rolling window and opens after too many."""

    max_failures: int = MAX_FAILURES
    failure_window: float = FAILURE_WINDOW_SECONDS
    open_duration: float = OPEN_DURATION_SECONDS
    clock: Callable[[], float] = time.monotonic
    failures: list[float] = field(default_factory=list)
    opened_at: float | None = None

    def is_open(self) -> bool:
        if self.opened_at is None:
            return False
        if self.clock() - self.opened_at >= self.open_duration:
            # Half-open: allow the next call through.
            self.opened_at = None
            self.failures.clear()
            return False
        return True

    def record_failure(self) -> None:
        now = self.clock()
        self.failures = [t for t in self.failures if now - t < self.failure_window]
        self.failures.append(now)
        if len(self.failures) >= self.max_failures and self.opened_at is None:
            self.opened_at = now
            logger.warning("Relay circuit opened after %d failures", len(self.failures))

    def record_success(self) -> None:
        self.failures.clear()
        self.opened_at = None


class RelayClient:
    """
    Signed client for the relay endpoints.

    Args:
        base_url: Relay base URL, e.g. ``http://127.0.0.1:8787``
        secret: Shared HMAC secret
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        breaker: Circuit breaker instance (a fresh one by default)

    Example:
        with RelayClient("http://127.0.0.1:8787", secret) as client:
            html = client.render("hero", {"heading": "Hello"})
    """

    def __init__(
        self,
        base_url: str,
        secret: str,
        timeout: float = 1.5,
        transport: httpx.BaseTransport | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker()
        self._http = httpx.Client(base_url=self.base_url, transport=transport)

    def __enter__(self) -> RelayClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.secret)

    def _post(self, path: str, payload: Any, timeout: float) -> httpx.Response:
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        headers = {"Content-Type": "application/json", **sign_headers(self.secret, body)}
        return self._http.post(path, content=body, headers=headers, timeout=timeout)

    # =========================================================================
    # Rendering
    # =========================================================================

    def render(self, block: str, props: dict[str, Any]) -> str:
        """Render one block; returns ``""`` on any failure."""
        if not self.configured or self.breaker.is_open():
            return ""

        try:
            response = self._post(RENDER_PATH, {"block": block, "props": props}, self.timeout)
        except httpx.HTTPError as e:
            logger.warning("Relay render of %s failed: %s", block, e)
            self.breaker.record_failure()
            return ""

        if 400 <= response.status_code < 500:
            logger.info("Relay rejected %s: %s", block, _error_code(response))
            return ""
        if not response.is_success:
            self.breaker.record_failure()
            return ""

        data = _json_or_none(response)
        html = data.get("html") if isinstance(data, dict) and data.get("ok") else None
        if not isinstance(html, str):
            self.breaker.record_failure()
            return ""

        self.breaker.record_success()
        return html

    def render_batch(self, items: list[dict[str, Any]]) -> list[str]:
        """Render several blocks in one request; failed items come back as ``""``."""
        if not items:
            return []
        empty = [""] * len(items)
        if not self.configured or self.breaker.is_open():
            return empty

        try:
            response = self._post(
                RENDER_BATCH_PATH, {"blocks": list(items)}, min(3.0, self.timeout * 2)
            )
        except httpx.HTTPError as e:
            logger.warning("Relay batch render failed: %s", e)
            self.breaker.record_failure()
            return empty

        if 400 <= response.status_code < 500:
            return empty
        if not response.is_success:
            self.breaker.record_failure()
            return empty

        data = _json_or_none(response)
        results = data.get("results") if isinstance(data, dict) and data.get("ok") else None
        if not isinstance(results, list):
            self.breaker.record_failure()
            return empty

        self.breaker.record_success()
        rendered: list[str] = []
        for index in range(len(items)):
            result = results[index] if index < len(results) else None
            html = result.get("html") if isinstance(result, dict) and result.get("ok") else None
            rendered.append(html if isinstance(html, str) else "")
        return rendered

    # =========================================================================
    # Forge
    # =========================================================================

    def forge_events(self, events: list[dict[str, Any]]) -> bool:
        """Send telemetry events; returns whether the relay accepted the batch."""
        if not self.configured:
            return False
        try:
            response = self._post(FORGE_EVENTS_PATH, {"events": list(events)}, min(2.0, self.timeout))
        except httpx.HTTPError as e:
            logger.debug("Forge events not delivered: %s", e)
            return False
        return response.is_success

    def forge_insights(self, query: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """Fetch the telemetry snapshot, or ``None`` if it is unavailable."""
        if not self.configured:
            return None
        try:
            response = self._post(FORGE_INSIGHTS_PATH, query or {}, min(2.0, self.timeout))
        except httpx.HTTPError as e:
            logger.debug("Forge insights unavailable: %s", e)
            return None
        if not response.is_success:
            return None
        data = _json_or_none(response)
        return data if isinstance(data, dict) else None

    # =========================================================================
    # System
    # =========================================================================

    def health(self) -> dict[str, Any]:
        """Return the relay's health body; transport errors are reported as ``unreachable``."""
        try:
            response = self._http.get(HEALTH_PATH, timeout=self.timeout)
        except httpx.HTTPError:
            return {"ok": False, "error": "unreachable"}
        data = _json_or_none(response)
        if isinstance(data, dict):
            return data
        return {"ok": False, "error": f"http_{response.status_code}"}


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_code(response: httpx.Response) -> str:
    data = _json_or_none(response)
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return f"http_{response.status_code}"

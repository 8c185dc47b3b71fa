"""
Relay HTTP routes.

Signed endpoints (HMAC over the raw body, see :mod:`renderkit_relay.signature`):

- ``POST /render``          render one block
- ``POST /render-batch``    render a list of blocks, per-item results
- ``POST /forge/events``    ingest telemetry events (only when Forge is enabled)
- ``POST /forge/insights``  telemetry snapshot (only when Forge is enabled)

Unauthenticated endpoints:

- ``GET /health``           renderer availability and version
- ``GET /metrics``          Prometheus text exposition
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from renderkit_relay.errors import RelayError, RequestError, status_for_code
from renderkit_relay.exception_handlers import RelayJSONResponse, error_response
from renderkit_relay.logging import get_http_logger, log_with_context

if TYPE_CHECKING:
    from renderkit_relay.config import RelayConfig
    from renderkit_relay.forge import ForgeCollector
    from renderkit_relay.metrics import RelayMetrics
    from renderkit_relay.render_cache import RenderCache
    from renderkit_relay.render_engine import RenderEngine
    from renderkit_relay.renderer_loader import RendererLoader
    from renderkit_relay.signature import SignatureVerifier

logger = get_http_logger()

SERVICE_NAME = "renderKit-Relay"
PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

RENDER_PATH = "/render"
RENDER_BATCH_PATH = "/render-batch"
FORGE_EVENTS_PATH = "/forge/events"
FORGE_INSIGHTS_PATH = "/forge/insights"
HEALTH_PATH = "/health"
METRICS_PATH = "/metrics"

ROUTE_PATHS = (
    RENDER_PATH,
    RENDER_BATCH_PATH,
    FORGE_EVENTS_PATH,
    FORGE_INSIGHTS_PATH,
    HEALTH_PATH,
    METRICS_PATH,
)


@dataclass
class RelayServices:
    """Process-wide relay components, built once by the app factory."""

    config: RelayConfig
    metrics: RelayMetrics
    cache: RenderCache | None
    loader: RendererLoader
    engine: RenderEngine
    verifier: SignatureVerifier
    forge: ForgeCollector | None


async def read_limited_body(request: Request, max_bytes: int) -> bytes:
    """Read the request body, aborting once it exceeds *max_bytes*.

    Raises:
        RequestError: ``payload_too_large`` (413)
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > max_bytes:
        raise RequestError("payload_too_large", status_code=413)

    received = 0
    chunks: list[bytes] = []
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise RequestError("payload_too_large", status_code=413)
        chunks.append(chunk)
    return b"".join(chunks)


def parse_json_body(raw_body: bytes) -> Any:
    """Decode an authenticated body. Raises ``invalid_json`` (400) on failure."""
    try:
        return json.loads(raw_body)
    except (ValueError, RecursionError) as exc:
        raise RequestError("invalid_json") from exc


def create_relay_routes(services: RelayServices) -> APIRouter:
    """Create the relay router.

    Args:
        services: Relay components the routes operate on.

    Returns:
        FastAPI router with the render, Forge, health and metrics endpoints.
    """
    router = APIRouter()
    config = services.config
    engine = services.engine
    metrics = services.metrics

    async def signed_body(request: Request) -> bytes:
        """Dependency: the raw body, only once its signature has been verified."""
        raw_body = await read_limited_body(request, config.max_body_bytes)
        services.verifier.verify_headers(request.headers, raw_body)
        return raw_body

    @router.post(RENDER_PATH, tags=["Render"])
    async def render(raw_body: bytes = Depends(signed_body)) -> RelayJSONResponse:
        """Render one block to static HTML."""
        payload = parse_json_body(raw_body)
        if not isinstance(payload, dict):
            payload = {}

        block = payload.get("block")
        props = payload.get("props")
        if not isinstance(block, str):
            raise RequestError("missing_block")
        if not isinstance(props, dict):
            raise RequestError("missing_props")

        outcome = engine.render_block(block, props)
        if outcome.ok:
            return RelayJSONResponse(outcome.to_dict())
        return error_response(outcome.error or "render_error", status_for_code(outcome.error or ""))

    @router.post(RENDER_BATCH_PATH, tags=["Render"])
    async def render_batch(raw_body: bytes = Depends(signed_body)) -> RelayJSONResponse:
        """Render several blocks; each item succeeds or fails on its own."""
        payload = parse_json_body(raw_body)
        items = payload.get("blocks") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise RequestError("missing_blocks")

        outcomes = engine.render_batch(items)
        return RelayJSONResponse({"ok": True, "results": [o.to_dict() for o in outcomes]})

    forge = services.forge
    if forge is not None:

        @router.post(FORGE_EVENTS_PATH, tags=["Forge"])
        async def forge_events(raw_body: bytes = Depends(signed_body)) -> RelayJSONResponse:
            """Ingest a batch of telemetry events."""
            payload = parse_json_body(raw_body)
            events = payload.get("events") if isinstance(payload, dict) else None
            if not isinstance(events, list):
                raise RequestError("invalid_events")

            accepted = forge.accept_events(events)
            return RelayJSONResponse({"ok": True, "received": len(accepted)}, status_code=202)

        @router.post(FORGE_INSIGHTS_PATH, tags=["Forge"])
        async def forge_insights(raw_body: bytes = Depends(signed_body)) -> RelayJSONResponse:
            """Aggregated telemetry snapshot."""
            return RelayJSONResponse(forge.build_insights())

    @router.get(HEALTH_PATH, tags=["System"])
    async def health() -> RelayJSONResponse:
        """Report whether the renderer artifact loads."""
        try:
            renderer = services.loader.get()
        except RelayError as exc:
            log_with_context(logger, logging.WARNING, "Health check failed", error=exc.code)
            return RelayJSONResponse(
                {"ok": False, "name": SERVICE_NAME, "error": exc.code}, status_code=503
            )
        return RelayJSONResponse({"ok": True, "name": SERVICE_NAME, "version": renderer.version})

    @router.get(METRICS_PATH, tags=["System"])
    async def prometheus_metrics() -> PlainTextResponse:
        """Prometheus text exposition of every relay metric."""
        return PlainTextResponse(
            metrics.render_prometheus(),
            media_type=PROMETHEUS_CONTENT_TYPE,
            headers={"Cache-Control": "no-store"},
        )

    return router

"""App factory functions for the relay.

Builds every relay component exactly once, wires them together and returns
a FastAPI application. Includes the ASGI factory used for deployment::

    uvicorn renderkit_relay.app_factory:create_app_from_env --factory
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from renderkit_relay._version import get_version
from renderkit_relay.config import RelayConfig, load_config
from renderkit_relay.errors import RelayError
from renderkit_relay.exception_handlers import register_exception_handlers
from renderkit_relay.forge import ForgeCollector
from renderkit_relay.logging import get_relay_logger, setup_logging
from renderkit_relay.metrics import RelayMetrics
from renderkit_relay.middleware import RequestMetricsMiddleware
from renderkit_relay.render_cache import RenderCache
from renderkit_relay.render_engine import RenderEngine
from renderkit_relay.renderer_loader import RendererLoader
from renderkit_relay.routes import ROUTE_PATHS, RelayServices, create_relay_routes
from renderkit_relay.signature import SignatureVerifier

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_relay_logger()


def build_services(
    config: RelayConfig,
    *,
    wall_clock: Callable[[], float] | None = None,
    monotonic_clock: Callable[[], float] | None = None,
) -> RelayServices:
    """
    Construct the relay components for *config*.

    Args:
        config: Relay configuration
        wall_clock: Unix time source (signature freshness, Forge timestamps)
        monotonic_clock: Monotonic time source (cache TTL, reload interval, uptime)

    Returns:
        RelayServices with every component wired together
    """
    wall = wall_clock or time.time
    mono = monotonic_clock or time.monotonic

    metrics = RelayMetrics(clock=mono)
    cache = (
        RenderCache(config.cache_max_entries, config.cache_ttl_seconds, clock=mono)
        if config.cache_active
        else None
    )
    metrics.attach_cache(cache, config.cache_max_entries, config.cache_ttl_ms)

    loader = RendererLoader(
        config.renderer_path,
        check_interval_seconds=config.renderer_check_seconds,
        metrics=metrics,
        cache=cache,
        clock=mono,
    )
    forge = (
        ForgeCollector(metrics, max_events=config.forge_max_events, clock=wall)
        if config.forge_enabled
        else None
    )

    return RelayServices(
        config=config,
        metrics=metrics,
        cache=cache,
        loader=loader,
        engine=RenderEngine(loader, cache, metrics),
        verifier=SignatureVerifier(config.secret, config.max_skew_seconds, clock=wall),
        forge=forge,
    )


def create_app(config: RelayConfig, services: RelayServices | None = None) -> FastAPI:
    """
    Create the relay FastAPI application.

    Args:
        config: Relay configuration
        services: Pre-built components (tests inject fake clocks this way)

    Returns:
        FastAPI application

    Example:
        >>> app = create_app(load_config())
        >>> # Run with uvicorn: uvicorn mymodule:app
    """
    services = services or build_services(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            services.loader.get()
        except RelayError as exc:
            # Not fatal: /health reports 503 until the artifact appears.
            logger.warning("Renderer not available at startup: %s", exc.code)
        logger.info(
            "renderKit-Relay ready (cache=%s, forge=%s)",
            "on" if services.cache is not None else "off",
            "on" if services.forge is not None else "off",
        )
        yield

    app = FastAPI(
        title="renderKit-Relay",
        version=get_version(),
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.relay = services

    register_exception_handlers(app, services.metrics)
    app.include_router(create_relay_routes(services))
    app.add_middleware(
        RequestMetricsMiddleware, metrics=services.metrics, endpoints=ROUTE_PATHS
    )
    return app


def create_app_from_env() -> FastAPI:
    """ASGI factory: read configuration from the environment and build the app.

    Raises:
        ConfigError: If RENDERKIT_RELAY_SECRET is not set.
    """
    config = load_config()
    setup_logging(config.log_level, config.log_dir)
    return create_app(config)


def run_app(config: RelayConfig, reload: bool = False) -> None:
    """
    Run the relay with uvicorn.

    Args:
        config: Relay configuration
        reload: Enable auto-reload of the relay code (for development)
    """
    import uvicorn

    if reload:
        # uvicorn needs an import string to reload; configuration comes from env again.
        uvicorn.run(
            "renderkit_relay.app_factory:create_app_from_env",
            factory=True,
            host=config.host,
            port=config.port,
            reload=True,
        )
        return

    uvicorn.run(create_app(config), host=config.host, port=config.port)

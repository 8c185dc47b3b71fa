"""
Relay metric families.

Declares every counter, gauge and histogram the relay publishes on
``GET /metrics`` and offers small recording helpers used by the render
engine, the renderer loader, the HTTP layer and Forge.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from .registry import MetricsRegistry, MetricType

if TYPE_CHECKING:
    from renderkit_relay.render_cache import RenderCache

# Render latency buckets in seconds
RENDER_DURATION_BUCKETS = (
    0.0001,
    0.00025,
    0.0005,
    0.001,
    0.0025,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
)

PREFIX = "renderkit_relay"
FORGE_PREFIX = "renderkit_forge"


class RelayMetrics:
    """
    Process-wide metrics for the relay.

    Constructed once in the app factory and injected into every component
    that records metrics.

    Example:
        metrics = RelayMetrics()
        metrics.attach_cache(cache, max_entries=500, ttl_ms=60000)
        metrics.cache_hits_total.inc("hero")
        metrics.observe_render("hero", 0.0012)
        text = metrics.render_prometheus()
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.started_at = clock()
        self.started_wall = time.time()
        self._cache: RenderCache | None = None
        self._cache_max_entries = 0
        self._cache_ttl_ms = 0

        r = self.registry = MetricsRegistry()

        r.callback(
            f"{PREFIX}_uptime_seconds",
            "Time since service start",
            MetricType.GAUGE,
            self.uptime_seconds,
            fmt=".3f",
        )
        self.renderer_reloads_total = r.counter(
            f"{PREFIX}_renderer_reloads_total", "Number of renderer hot-reloads"
        )

        # Cache configuration and state
        r.callback(
            f"{PREFIX}_cache_enabled",
            "Whether the SSR response cache is enabled",
            MetricType.GAUGE,
            lambda: 1 if self._cache is not None else 0,
        )
        r.callback(
            f"{PREFIX}_cache_max_entries",
            "Configured max cache entries",
            MetricType.GAUGE,
            lambda: self._cache_max_entries,
        )
        r.callback(
            f"{PREFIX}_cache_ttl_ms",
            "Configured cache TTL in ms (0 disables TTL)",
            MetricType.GAUGE,
            lambda: self._cache_ttl_ms,
        )
        r.callback(
            f"{PREFIX}_cache_entries",
            "Current SSR cache entries",
            MetricType.GAUGE,
            lambda: self._cache.size() if self._cache is not None else 0,
        )
        r.callback(
            f"{PREFIX}_cache_evictions_total",
            "Total SSR cache evictions",
            MetricType.COUNTER,
            lambda: self._cache.evictions if self._cache is not None else 0,
        )
        self.cache_clears_total = r.counter(
            f"{PREFIX}_cache_clears_total", "Total SSR cache clears (e.g. on renderer reload)"
        )
        self.cache_hits_total = r.counter(
            f"{PREFIX}_cache_hits_total", "Total SSR cache hits", ("block",)
        )
        self.cache_misses_total = r.counter(
            f"{PREFIX}_cache_misses_total", "Total SSR cache misses", ("block",)
        )
        self.cache_stores_total = r.counter(
            f"{PREFIX}_cache_stores_total", "Total SSR cache stores", ("block",)
        )

        # HTTP
        self.requests_total = r.counter(
            f"{PREFIX}_requests_total", "Total HTTP requests", ("endpoint", "status")
        )
        self.auth_failures_total = r.counter(
            f"{PREFIX}_auth_failures_total", "Rejected signed requests by reason", ("error",)
        )

        # Rendering
        self.render_errors_total = r.counter(
            f"{PREFIX}_render_errors_total", "Total render errors", ("block", "error")
        )
        self.render_duration = r.histogram(
            f"{PREFIX}_render_duration_seconds",
            "Render latency in seconds",
            RENDER_DURATION_BUCKETS,
            ("block",),
        )
        self.render_duration_last = r.gauge(
            f"{PREFIX}_render_duration_last_seconds",
            "Last render latency in seconds",
            ("block",),
            fmt=".6f",
        )
        self.system_errors_total = r.counter(
            f"{PREFIX}_system_errors_total", "Total system errors by type", ("type",)
        )

        # Batch rendering
        self.batch_requests_total = r.counter(
            f"{PREFIX}_batch_requests_total", "Total batch render requests"
        )
        self.batch_blocks_total = r.counter(
            f"{PREFIX}_batch_blocks_total", "Total blocks rendered via batch"
        )
        self.batch_success_total = r.counter(
            f"{PREFIX}_batch_success_total", "Successful batch block renders"
        )
        self.batch_errors_total = r.counter(
            f"{PREFIX}_batch_errors_total", "Failed batch block renders"
        )

        # Forge telemetry
        self.forge_events_total = r.counter(
            f"{FORGE_PREFIX}_events_total", "Total forge events received"
        )
        self.forge_event_types_total = r.counter(
            f"{FORGE_PREFIX}_event_types_total", "Forge events by type", ("type",)
        )
        self.forge_page_views_total = r.counter(
            f"{FORGE_PREFIX}_page_views_total", "Forge page views by path", ("page",)
        )
        self.forge_block_views_total = r.counter(
            f"{FORGE_PREFIX}_block_views_total", "Forge block views", ("block",)
        )
        self.forge_block_clicks_total = r.counter(
            f"{FORGE_PREFIX}_block_clicks_total", "Forge block clicks", ("block",)
        )
        self.forge_target_clicks_total = r.counter(
            f"{FORGE_PREFIX}_target_clicks_total", "Forge click targets", ("target",)
        )
        self.forge_scroll_depth_total = r.counter(
            f"{FORGE_PREFIX}_scroll_depth_total", "Forge scroll depth buckets", ("depth",)
        )

    # =========================================================================
    # Recording helpers
    # =========================================================================

    def attach_cache(self, cache: RenderCache | None, max_entries: int, ttl_ms: int) -> None:
        """Expose cache configuration and live state through the cache gauges."""
        self._cache = cache
        self._cache_max_entries = max_entries
        self._cache_ttl_ms = ttl_ms

    def uptime_seconds(self) -> float:
        return self._clock() - self.started_at

    def observe_render(self, block: str, duration_seconds: float) -> None:
        """Record a render (or cache-hit) duration for *block*."""
        self.render_duration.observe(duration_seconds, block)
        self.render_duration_last.set(duration_seconds, block)

    def record_request(self, endpoint: str, status: int) -> None:
        self.requests_total.inc(endpoint, str(status))

    def record_system_error(self, error_type: str) -> None:
        self.system_errors_total.inc(error_type)

    def render_prometheus(self) -> str:
        """Export all relay metrics in Prometheus text format."""
        return self.registry.render_prometheus()

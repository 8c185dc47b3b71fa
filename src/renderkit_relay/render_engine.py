"""Render orchestration: validate -> cache lookup -> render -> cache store.

``RenderEngine.render_block`` never raises. Every failure is folded into a
:class:`RenderOutcome` carrying a short error code, so the HTTP layer and the
batch path share the same classification:

- caller errors (``unsupported_block``, ``invalid_props`` or any ``Err`` code
  from the artifact) are returned as-is and never counted as faults;
- renderer artifact problems (``renderer_missing`` / ``renderer_invalid``)
  are counted as system errors;
- anything else is logged with the block name and exception type, counted
  in ``render_errors_total`` and surfaced only as ``render_error``.

There is no single-flight coalescing: two interleaved requests for the same
uncached key both render, and the later store wins.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from renderkit_relay.errors import RelayError, caller_error_code
from renderkit_relay.logging import get_relay_logger, log_with_context
from renderkit_relay.render_cache import make_cache_key
from renderkit_relay.result import Err

if TYPE_CHECKING:
    from renderkit_relay.metrics import RelayMetrics
    from renderkit_relay.render_cache import RenderCache
    from renderkit_relay.renderer_loader import RendererLoader

logger = get_relay_logger()

RENDER_ERROR = "render_error"
INVALID_ITEM = "invalid_item"


@dataclass(frozen=True)
class RenderOutcome:
    """Result of rendering one block."""

    ok: bool
    html: str | None = None
    error: str | None = None
    duration_seconds: float = 0.0
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Wire representation used in render and batch responses."""
        if self.ok:
            return {"ok": True, "html": self.html}
        return {"ok": False, "error": self.error}


@dataclass(frozen=True)
class BatchItem:
    """A well-formed batch entry."""

    block: str
    props: dict[str, Any]


def parse_batch_item(item: Any) -> BatchItem | None:
    """Return a :class:`BatchItem` or ``None`` if *item* is malformed."""
    if not isinstance(item, dict):
        return None
    block = item.get("block")
    props = item.get("props")
    if not isinstance(block, str):
        return None
    if not isinstance(props, dict):
        return None
    return BatchItem(block=block, props=props)


class RenderEngine:
    """Renders blocks through the current renderer artifact.

    Args:
        loader: Source of the current renderer handle
        cache: Render cache, or ``None`` when caching is disabled
        metrics: Relay metrics
    """

    def __init__(
        self,
        loader: RendererLoader,
        cache: RenderCache | None,
        metrics: RelayMetrics,
    ) -> None:
        self.loader = loader
        self.cache = cache
        self.metrics = metrics

    def render_block(self, block: str, props: dict[str, Any]) -> RenderOutcome:
        """Render one block, consulting and populating the cache."""
        start = time.perf_counter()

        def elapsed() -> float:
            return time.perf_counter() - start

        try:
            renderer = self.loader.get()

            validated = renderer.validate(block, props)
            if isinstance(validated, Err):
                return RenderOutcome(ok=False, error=validated.error, duration_seconds=elapsed())
            safe_props = validated.value

            cache_key = make_cache_key(block, safe_props) if self.cache is not None else None
            if self.cache is not None and cache_key is not None:
                cached = self.cache.get(cache_key)
                if cached is not None:
                    self.metrics.cache_hits_total.inc(block)
                    duration = elapsed()
                    self.metrics.observe_render(block, duration)
                    return RenderOutcome(
                        ok=True, html=cached, duration_seconds=duration, cached=True
                    )
                self.metrics.cache_misses_total.inc(block)

            rendered = renderer.render(block, safe_props)
            if isinstance(rendered, Err):
                return RenderOutcome(ok=False, error=rendered.error, duration_seconds=elapsed())

            html = rendered.value
            if not isinstance(html, str):
                raise TypeError(f"renderer returned {type(html).__name__}, expected str")

            if self.cache is not None and cache_key is not None:
                self.cache.set(cache_key, html)
                self.metrics.cache_stores_total.inc(block)

            duration = elapsed()
            self.metrics.observe_render(block, duration)
            return RenderOutcome(ok=True, html=html, duration_seconds=duration)

        except Exception as exc:
            return self._classify_failure(block, exc, elapsed())

    def _classify_failure(self, block: str, exc: Exception, duration: float) -> RenderOutcome:
        code = caller_error_code(exc)
        if code is not None:
            logger.debug("Render rejected for %s: %s", block, code)
            return RenderOutcome(ok=False, error=code, duration_seconds=duration)

        if isinstance(exc, RelayError) and exc.code in ("renderer_missing", "renderer_invalid"):
            self.metrics.record_system_error(exc.code)
            log_with_context(
                logger, logging.ERROR, "Renderer unavailable", block=block, error=exc.code
            )
            return RenderOutcome(ok=False, error=exc.code, duration_seconds=duration)

        error_type = type(exc).__name__
        self.metrics.render_errors_total.inc(block, error_type)
        log_with_context(
            logger,
            logging.ERROR,
            "Render failed",
            exc_info=True,
            block=block,
            error=error_type,
        )
        return RenderOutcome(ok=False, error=RENDER_ERROR, duration_seconds=duration)

    def render_batch(self, items: Iterable[Any]) -> list[RenderOutcome]:
        """Render each item independently; malformed items yield ``invalid_item``."""
        outcomes: list[RenderOutcome] = []
        self.metrics.batch_requests_total.inc()

        for item in items:
            self.metrics.batch_blocks_total.inc()
            parsed = parse_batch_item(item)
            if parsed is None:
                outcome = RenderOutcome(ok=False, error=INVALID_ITEM)
            else:
                outcome = self.render_block(parsed.block, parsed.props)

            if outcome.ok:
                self.metrics.batch_success_total.inc()
            else:
                self.metrics.batch_errors_total.inc()
            outcomes.append(outcome)

        return outcomes

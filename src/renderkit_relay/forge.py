"""
renderKit-Forge: in-memory UX telemetry aggregation.

Front-end scripts post small batches of interaction events (page views,
block views, clicks, scroll depth, form activity). Forge sanitizes each
event, drops anything outside the allow-list, and folds accepted events into
counters. Individual events are never retained.

Insights are a read-only snapshot: totals plus top-N tables sorted by count
(descending, ties keep first-seen order).
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from renderkit_relay.logging import get_forge_logger

if TYPE_CHECKING:
    from renderkit_relay.metrics import RelayMetrics

logger = get_forge_logger()

FORGE_NAME = "renderKit-Forge"

DEFAULT_ALLOWED_TYPES = frozenset(
    {
        "page_view",
        "block_view",
        "click",
        "scroll_depth",
        "form_start",
        "form_submit",
    }
)

# Maximum stored length per field
MAX_TYPE_LENGTH = 32
MAX_BLOCK_LENGTH = 80
MAX_PAGE_LENGTH = 160
MAX_TARGET_LENGTH = 120


class ForgeEvent(BaseModel):
    """A sanitized telemetry event."""

    model_config = ConfigDict(frozen=True)

    type: str
    block: str = ""
    page: str = ""
    target: str = ""
    depth: float | None = None


def normalize_string(value: Any, max_length: int = 120) -> str:
    """Trim a string field and cap its length; non-strings become ``""``."""
    if not isinstance(value, str):
        return ""
    trimmed = value.strip()
    return trimmed[:max_length]


def normalize_depth(value: Any) -> float | None:
    """Scroll depth as a fraction in ``[0, 1]``.

    Values in ``(1, 100]`` are read as percentages. Anything non-numeric or
    outside the range yields ``None``.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    depth = float(value)
    if not math.isfinite(depth):
        return None
    if 1 < depth <= 100:
        depth = depth / 100
    if depth < 0 or depth > 1:
        return None
    return depth


def bucket_depth(depth: float) -> str:
    """Map a depth fraction to one of four fixed bands."""
    if depth <= 0.25:
        return "0.25"
    if depth <= 0.5:
        return "0.5"
    if depth <= 0.75:
        return "0.75"
    return "1.0"


def sanitize_event(item: Any, allowed_types: frozenset[str]) -> ForgeEvent | None:
    """Build a :class:`ForgeEvent` from raw input, or ``None`` if it is rejected."""
    if not isinstance(item, dict):
        return None
    event_type = normalize_string(item.get("type"), MAX_TYPE_LENGTH)
    if not event_type or event_type not in allowed_types:
        return None
    return ForgeEvent(
        type=event_type,
        block=normalize_string(item.get("block"), MAX_BLOCK_LENGTH),
        page=normalize_string(item.get("page"), MAX_PAGE_LENGTH),
        target=normalize_string(item.get("target"), MAX_TARGET_LENGTH),
        depth=normalize_depth(item.get("depth")),
    )


def _inc(counts: dict[str, int], key: str) -> None:
    counts[key] = counts.get(key, 0) + 1


def top_entries(counts: dict[str, int], limit: int = 10) -> list[dict[str, Any]]:
    """Top *limit* keys by count; ``sorted`` is stable so ties keep insertion order."""
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [{"key": key, "count": count} for key, count in ranked[:limit]]


def _iso(timestamp: float) -> str:
    return (
        datetime.fromtimestamp(timestamp, UTC)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class ForgeCollector:
    """
    Aggregates sanitized telemetry events.

    Args:
        metrics: Relay metrics (forge counters are mirrored there)
        max_events: Maximum events processed per batch
        allowed_types: Event type allow-list
        clock: Wall-clock time source in seconds
    """

    def __init__(
        self,
        metrics: RelayMetrics,
        max_events: int = 50,
        allowed_types: Iterable[str] = DEFAULT_ALLOWED_TYPES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.metrics = metrics
        self.max_events = max_events
        self.allowed_types = frozenset(allowed_types)
        self._clock = clock
        self.started_at = clock()

        self.events_total = 0
        self.last_event_at = 0.0
        self.event_types: dict[str, int] = {}
        self.pages: dict[str, int] = {}
        self.block_views: dict[str, int] = {}
        self.block_clicks: dict[str, int] = {}
        self.target_clicks: dict[str, int] = {}
        self.scroll_depth: dict[str, int] = {}

    def accept_events(self, items: list[Any]) -> list[ForgeEvent]:
        """Sanitize and record up to ``max_events`` items; return the accepted events."""
        accepted: list[ForgeEvent] = []
        for item in items[: self.max_events]:
            event = sanitize_event(item, self.allowed_types)
            if event is None:
                continue
            self._record(event)
            accepted.append(event)

        if len(items) > self.max_events:
            logger.debug("Forge batch truncated from %d to %d", len(items), self.max_events)
        return accepted

    def _record(self, event: ForgeEvent) -> None:
        m = self.metrics
        m.forge_events_total.inc()
        m.forge_event_types_total.inc(event.type)

        self.events_total += 1
        self.last_event_at = self._clock()
        _inc(self.event_types, event.type)

        if event.type == "page_view" and event.page:
            _inc(self.pages, event.page)
            m.forge_page_views_total.inc(event.page)
        elif event.type == "block_view" and event.block:
            _inc(self.block_views, event.block)
            m.forge_block_views_total.inc(event.block)
        elif event.type == "click" and event.block:
            _inc(self.block_clicks, event.block)
            m.forge_block_clicks_total.inc(event.block)
            if event.target:
                _inc(self.target_clicks, event.target)
                m.forge_target_clicks_total.inc(event.target)
        elif event.type == "scroll_depth" and event.depth is not None:
            band = bucket_depth(event.depth)
            _inc(self.scroll_depth, band)
            m.forge_scroll_depth_total.inc(band)

    def build_insights(self) -> dict[str, Any]:
        """Read-only snapshot of the aggregates."""
        blocks = []
        for block, views in self.block_views.items():
            clicks = self.block_clicks.get(block, 0)
            ctr = round(clicks / views, 4) if views > 0 else 0
            blocks.append({"block": block, "views": views, "clicks": clicks, "ctr": ctr})
        blocks.sort(key=lambda b: b["views"], reverse=True)

        return {
            "ok": True,
            "forge": FORGE_NAME,
            "startedAt": _iso(self.started_at),
            "lastEventAt": _iso(self.last_event_at) if self.last_event_at else None,
            "totals": {
                "events": self.events_total,
                "eventTypes": dict(self.event_types),
            },
            "top": {
                "pages": top_entries(self.pages, 10),
                "blocks": blocks[:20],
                "targets": top_entries(self.target_clicks, 10),
                "scrollDepth": top_entries(self.scroll_depth, 4),
            },
        }

"""
Unit tests for renderKit-Forge telemetry aggregation.
"""

from __future__ import annotations

import math

import pytest

from renderkit_relay.forge import (
    DEFAULT_ALLOWED_TYPES,
    FORGE_NAME,
    MAX_PAGE_LENGTH,
    ForgeCollector,
    bucket_depth,
    normalize_depth,
    normalize_string,
    sanitize_event,
    top_entries,
)
from renderkit_relay.metrics import RelayMetrics


@pytest.fixture
def collector(clock) -> ForgeCollector:
    return ForgeCollector(RelayMetrics(), max_events=50, clock=clock)


class TestNormalization:
    """Tests for field normalization."""

    def test_normalize_string(self) -> None:
        assert normalize_string("  /shop  ") == "/shop"
        assert normalize_string("x" * 10, max_length=4) == "xxxx"
        assert normalize_string(42) == ""
        assert normalize_string(None) == ""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (0, 0.0),
            (0.5, 0.5),
            (1, 1.0),
            (50, 0.5),
            (75.5, 0.755),
            (100, 1.0),
            (100.5, None),
            (-0.1, None),
            (True, None),
            ("0.5", None),
            (None, None),
            (math.nan, None),
            (math.inf, None),
        ],
    )
    def test_normalize_depth(self, raw: object, expected: float | None) -> None:
        assert normalize_depth(raw) == expected

    @pytest.mark.parametrize(
        ("depth", "band"),
        [(0.0, "0.25"), (0.25, "0.25"), (0.26, "0.5"), (0.5, "0.5"), (0.75, "0.75"), (0.8, "1.0")],
    )
    def test_bucket_depth(self, depth: float, band: str) -> None:
        assert bucket_depth(depth) == band

    def test_sanitize_rejects_unknown_types(self) -> None:
        assert sanitize_event({"type": "hover"}, DEFAULT_ALLOWED_TYPES) is None
        assert sanitize_event({"type": ""}, DEFAULT_ALLOWED_TYPES) is None
        assert sanitize_event("page_view", DEFAULT_ALLOWED_TYPES) is None

    def test_sanitize_truncates_fields(self) -> None:
        event = sanitize_event(
            {"type": " page_view ", "page": "/" + "p" * 300, "extra": "dropped"},
            DEFAULT_ALLOWED_TYPES,
        )
        assert event is not None
        assert event.type == "page_view"
        assert len(event.page) == MAX_PAGE_LENGTH
        assert event.block == ""
        assert event.depth is None

    def test_top_entries_ties_keep_first_seen(self) -> None:
        counts = {"/b": 2, "/a": 3, "/c": 2}
        assert top_entries(counts, 2) == [{"key": "/a", "count": 3}, {"key": "/b", "count": 2}]


class TestForgeCollector:
    """Tests for ForgeCollector."""

    def test_insights_when_empty(self) -> None:
        collector = ForgeCollector(RelayMetrics(), clock=lambda: 0.0)
        insights = collector.build_insights()
        assert insights == {
            "ok": True,
            "forge": FORGE_NAME,
            "startedAt": "1970-01-01T00:00:00.000Z",
            "lastEventAt": None,
            "totals": {"events": 0, "eventTypes": {}},
            "top": {"pages": [], "blocks": [], "targets": [], "scrollDepth": []},
        }

    def test_accepts_only_allowed_events(self, collector: ForgeCollector) -> None:
        accepted = collector.accept_events(
            [{"type": "page_view", "page": "/"}, {"type": "bogus"}, "nope", {"type": "form_start"}]
        )
        assert [e.type for e in accepted] == ["page_view", "form_start"]
        assert collector.events_total == 2
        assert collector.metrics.forge_events_total.get() == 2

    def test_batch_truncated_to_max_events(self, clock) -> None:
        collector = ForgeCollector(RelayMetrics(), max_events=2, clock=clock)
        events = [{"type": "page_view", "page": f"/{i}"} for i in range(5)]
        assert len(collector.accept_events(events)) == 2
        assert collector.pages == {"/0": 1, "/1": 1}

    def test_block_ctr(self, collector: ForgeCollector) -> None:
        collector.accept_events(
            [{"type": "block_view", "block": "hero"}] * 3
            + [{"type": "block_view", "block": "cta"}] * 4
            + [{"type": "click", "block": "hero", "target": "buy"}]
            + [{"type": "click", "block": "cta", "target": "buy"}] * 2
        )
        blocks = collector.build_insights()["top"]["blocks"]
        assert blocks == [
            {"block": "cta", "views": 4, "clicks": 2, "ctr": 0.5},
            {"block": "hero", "views": 3, "clicks": 1, "ctr": 0.3333},
        ]

    def test_clicks_without_views_are_not_listed(self, collector: ForgeCollector) -> None:
        collector.accept_events([{"type": "click", "block": "footer"}])
        insights = collector.build_insights()
        assert insights["top"]["blocks"] == []
        assert insights["totals"]["eventTypes"] == {"click": 1}

    def test_click_without_block_counts_only_type(self, collector: ForgeCollector) -> None:
        collector.accept_events([{"type": "click", "target": "nav"}])
        assert collector.block_clicks == {}
        assert collector.target_clicks == {}
        assert collector.event_types == {"click": 1}

    def test_scroll_depth_bands(self, collector: ForgeCollector) -> None:
        collector.accept_events(
            [
                {"type": "scroll_depth", "depth": 20},
                {"type": "scroll_depth", "depth": 0.9},
                {"type": "scroll_depth", "depth": 95},
                {"type": "scroll_depth", "depth": 250},
            ]
        )
        assert collector.build_insights()["top"]["scrollDepth"] == [
            {"key": "1.0", "count": 2},
            {"key": "0.25", "count": 1},
        ]
        assert collector.metrics.forge_scroll_depth_total.get("1.0") == 2

    def test_metrics_mirror_aggregates(self, collector: ForgeCollector) -> None:
        collector.accept_events(
            [
                {"type": "page_view", "page": "/shop"},
                {"type": "block_view", "block": "hero"},
                {"type": "click", "block": "hero", "target": "buy"},
            ]
        )
        m = collector.metrics
        assert m.forge_page_views_total.get("/shop") == 1
        assert m.forge_block_views_total.get("hero") == 1
        assert m.forge_block_clicks_total.get("hero") == 1
        assert m.forge_target_clicks_total.get("buy") == 1
        assert m.forge_event_types_total.get("click") == 1

    def test_last_event_timestamp(self, collector: ForgeCollector, clock) -> None:
        clock.advance(1.5)
        collector.accept_events([{"type": "page_view", "page": "/"}])
        insights = collector.build_insights()
        assert insights["lastEventAt"] == "2023-11-14T22:13:21.500Z"
        assert insights["startedAt"] == "2023-11-14T22:13:20.000Z"

"""
Metrics infrastructure for the relay.

Provides counters, gauges and fixed-bucket histograms with a Prometheus
text exposition, plus the relay's own metric families.
"""

from .registry import (
    CallbackMetric,
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    MetricType,
)
from .relay_metrics import RENDER_DURATION_BUCKETS, RelayMetrics

__all__ = [
    "CallbackMetric",
    "Counter",
    "Gauge",
    "Histogram",
    "MetricType",
    "MetricsRegistry",
    "RENDER_DURATION_BUCKETS",
    "RelayMetrics",
]

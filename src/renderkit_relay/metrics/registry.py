"""
Metric families and the Prometheus text exposition.

Families are registered in a fixed order and rendered in that order. Every
family emits ``# HELP`` and ``# TYPE`` lines; unlabelled families always emit
one sample, labelled families one sample per label set seen so far.

The relay runs on a single event loop and every mutation here is a plain
non-suspending statement, so no locking is needed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from enum import StrEnum


class MetricType(StrEnum):
    """Prometheus metric types emitted by the relay."""

    COUNTER = "counter"  # Monotonically increasing
    GAUGE = "gauge"  # Point-in-time value
    HISTOGRAM = "histogram"  # Bucketed distribution


LabelValues = tuple[str, ...]


def escape_label_value(value: str) -> str:
    """Escape a label value for the text exposition format."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def format_labels(names: Sequence[str], values: Sequence[str], extra: str = "") -> str:
    parts = [f'{name}="{escape_label_value(value)}"' for name, value in zip(names, values)]
    if extra:
        parts.append(extra)
    return "{" + ",".join(parts) + "}" if parts else ""


def format_bound(bound: float) -> str:
    """Render a bucket bound the way the relay has always published it (``0.00025``)."""
    return repr(float(bound))


class MetricFamily:
    """Common base: name, help text, type and label names."""

    metric_type: MetricType

    def __init__(self, name: str, help_text: str, label_names: Sequence[str] = ()) -> None:
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names)

    def _key(self, labels: Sequence[str]) -> LabelValues:
        if len(labels) != len(self.label_names):
            raise ValueError(
                f"{self.name} expects labels {self.label_names}, got {tuple(labels)}"
            )
        return tuple(str(v) for v in labels)

    def header(self) -> list[str]:
        return [
            f"# HELP {self.name} {self.help_text}",
            f"# TYPE {self.name} {self.metric_type.value}",
        ]

    def sample_lines(self) -> Iterator[str]:
        raise NotImplementedError

    def expose(self) -> list[str]:
        return [*self.header(), *self.sample_lines()]


class Counter(MetricFamily):
    """Integer counter, optionally labelled."""

    metric_type = MetricType.COUNTER

    def __init__(self, name: str, help_text: str, label_names: Sequence[str] = ()) -> None:
        super().__init__(name, help_text, label_names)
        self._values: dict[LabelValues, int] = {}
        if not self.label_names:
            self._values[()] = 0

    def inc(self, *labels: str, amount: int = 1) -> None:
        if amount < 0:
            raise ValueError("counters only increase")
        key = self._key(labels)
        self._values[key] = self._values.get(key, 0) + amount

    def get(self, *labels: str) -> int:
        return self._values.get(self._key(labels), 0)

    def items(self) -> list[tuple[LabelValues, int]]:
        return list(self._values.items())

    def sample_lines(self) -> Iterator[str]:
        for labels, value in self._values.items():
            yield f"{self.name}{format_labels(self.label_names, labels)} {value}"


class Gauge(MetricFamily):
    """Point-in-time value, optionally labelled, with a fixed number format."""

    metric_type = MetricType.GAUGE

    def __init__(
        self,
        name: str,
        help_text: str,
        label_names: Sequence[str] = (),
        fmt: str = "",
    ) -> None:
        super().__init__(name, help_text, label_names)
        self.fmt = fmt
        self._values: dict[LabelValues, float] = {}
        if not self.label_names:
            self._values[()] = 0

    def set(self, value: float, *labels: str) -> None:
        self._values[self._key(labels)] = value

    def get(self, *labels: str) -> float | None:
        return self._values.get(self._key(labels))

    def sample_lines(self) -> Iterator[str]:
        for labels, value in self._values.items():
            yield f"{self.name}{format_labels(self.label_names, labels)} {value:{self.fmt}}"


class CallbackMetric(MetricFamily):
    """Unlabelled metric whose value is read from a callable at scrape time."""

    def __init__(
        self,
        name: str,
        help_text: str,
        metric_type: MetricType,
        read: Callable[[], float],
        fmt: str = "",
    ) -> None:
        super().__init__(name, help_text)
        self.metric_type = metric_type
        self.read = read
        self.fmt = fmt

    def sample_lines(self) -> Iterator[str]:
        yield f"{self.name} {self.read():{self.fmt}}"


@dataclass
class HistogramSeries:
    """Bucket counts for one label set. ``bucket_counts[i]`` is already cumulative."""

    bucket_counts: list[int]
    sum: float = 0.0
    count: int = 0


class Histogram(MetricFamily):
    """Fixed-bucket histogram, one series per label set."""

    metric_type = MetricType.HISTOGRAM

    def __init__(
        self,
        name: str,
        help_text: str,
        buckets: Sequence[float],
        label_names: Sequence[str] = (),
    ) -> None:
        super().__init__(name, help_text, label_names)
        if list(buckets) != sorted(buckets):
            raise ValueError("histogram buckets must be ascending")
        self.buckets = tuple(float(b) for b in buckets)
        self._series: dict[LabelValues, HistogramSeries] = {}

    def observe(self, value: float, *labels: str) -> None:
        key = self._key(labels)
        series = self._series.get(key)
        if series is None:
            series = HistogramSeries(bucket_counts=[0] * len(self.buckets))
            self._series[key] = series
        series.sum += value
        series.count += 1
        for i, bound in enumerate(self.buckets):
            if value <= bound:
                series.bucket_counts[i] += 1

    def series(self, *labels: str) -> HistogramSeries | None:
        return self._series.get(self._key(labels))

    def sample_lines(self) -> Iterator[str]:
        for labels, series in self._series.items():
            for bound, cumulative in zip(self.buckets, series.bucket_counts):
                le = f'le="{format_bound(bound)}"'
                yield f"{self.name}_bucket{format_labels(self.label_names, labels, le)} {cumulative}"
            inf = 'le="+Inf"'
            yield f"{self.name}_bucket{format_labels(self.label_names, labels, inf)} {series.count}"
            yield f"{self.name}_sum{format_labels(self.label_names, labels)} {series.sum:.6f}"
            yield f"{self.name}_count{format_labels(self.label_names, labels)} {series.count}"


class MetricsRegistry:
    """Ordered collection of metric families with a text exposition."""

    def __init__(self) -> None:
        self._families: dict[str, MetricFamily] = {}

    def register(self, family: MetricFamily) -> MetricFamily:
        if family.name in self._families:
            raise ValueError(f"metric {family.name} already registered")
        self._families[family.name] = family
        return family

    def counter(self, name: str, help_text: str, label_names: Sequence[str] = ()) -> Counter:
        family = Counter(name, help_text, label_names)
        self.register(family)
        return family

    def gauge(
        self, name: str, help_text: str, label_names: Sequence[str] = (), fmt: str = ""
    ) -> Gauge:
        family = Gauge(name, help_text, label_names, fmt=fmt)
        self.register(family)
        return family

    def callback(
        self,
        name: str,
        help_text: str,
        metric_type: MetricType,
        read: Callable[[], float],
        fmt: str = "",
    ) -> CallbackMetric:
        family = CallbackMetric(name, help_text, metric_type, read, fmt=fmt)
        self.register(family)
        return family

    def histogram(
        self,
        name: str,
        help_text: str,
        buckets: Sequence[float],
        label_names: Sequence[str] = (),
    ) -> Histogram:
        family = Histogram(name, help_text, buckets, label_names)
        self.register(family)
        return family

    def get(self, name: str) -> MetricFamily | None:
        return self._families.get(name)

    def __iter__(self) -> Iterator[MetricFamily]:
        return iter(self._families.values())

    def render_prometheus(self) -> str:
        """Export every family in Prometheus text format."""
        lines: list[str] = []
        for family in self._families.values():
            lines.extend(family.expose())
        return "\n".join(lines) + "\n"

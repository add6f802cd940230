# dlm_agent/ingestion/monitoring/metrics.py

"""
Metrics collection for the log ingestion system.

Provides an in-process metrics sink with:
- Counter metrics (lines, bytes and chunks ingested, reader errors, drops)
- Gauge metrics (queue size)
- Histogram metrics (downstream processing time)

A collector is passed explicitly to each component at construction; there is
no process-wide registry. An external exporter reads it through
``get_metrics_summary``.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)

# Metric names
LOG_LINES_TOTAL = "log_lines_total"
BYTES_INGESTED_TOTAL = "bytes_ingested_total"
CHUNKS_TOTAL = "chunks_total"
SOURCE_ERRORS_TOTAL = "collector_source_errors_total"
CHUNKS_DROPPED_TOTAL = "chunks_dropped_total"
CIRCUIT_REJECTIONS_TOTAL = "circuit_breaker_rejections_total"
CHUNK_QUEUE_SIZE = "chunk_queue_size"
CHUNK_PROCESSING_SECONDS = "chunk_processing_seconds"


class MetricType(Enum):
    """Types of metrics supported by the system."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class MetricValue:
    """Represents a metric value with metadata."""

    name: str
    value: int | float
    metric_type: MetricType
    timestamp: datetime = field(default_factory=datetime.now)
    labels: dict[str, str] = field(default_factory=dict)


_MetricKey = tuple[str, tuple[tuple[str, str], ...]]

_EMPTY_HISTOGRAM = {
    "count": 0,
    "sum": 0.0,
    "min": 0.0,
    "max": 0.0,
    "avg": 0.0,
    "p50": 0.0,
    "p95": 0.0,
    "p99": 0.0,
}


def _percentile(sorted_values: list[float], fraction: float) -> float:
    index = min(int(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


class MetricsCollector:
    """
    Metrics sink for the ingestion pipeline.

    Series are identified by name plus label set. Histograms keep only the
    last ``histogram_window`` observations per series.
    """

    def __init__(self, histogram_window: int = 1000) -> None:
        self.histogram_window = histogram_window
        self._counters: dict[_MetricKey, float] = defaultdict(float)
        self._gauges: dict[_MetricKey, float] = {}
        self._histograms: dict[_MetricKey, deque[float]] = {}

        # Readers may be driven from worker threads in embedding applications
        self._lock = threading.RLock()

    @staticmethod
    def _key(name: str, labels: dict[str, str] | None) -> _MetricKey:
        return name, tuple(sorted((labels or {}).items()))

    @staticmethod
    def _series_name(key: _MetricKey) -> str:
        name, labels = key
        if not labels:
            return name
        return name + "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"

    def increment_counter(
        self, name: str, value: float = 1.0, labels: dict[str, str] | None = None
    ) -> None:
        with self._lock:
            self._counters[self._key(name, labels)] += value

    def set_gauge(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        with self._lock:
            self._gauges[self._key(name, labels)] = value

    def record_histogram(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        """Add one observation, evicting the oldest once the window is full."""
        key = self._key(name, labels)
        with self._lock:
            window = self._histograms.get(key)
            if window is None:
                window = self._histograms[key] = deque(maxlen=self.histogram_window)
            window.append(value)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._counters.get(self._key(name, labels), 0.0)

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._gauges.get(self._key(name, labels), 0.0)

    def get_histogram_stats(
        self, name: str, labels: dict[str, str] | None = None
    ) -> dict[str, float]:
        """
        Summarize the observation window of one histogram series.

        Returns:
            count, sum, min, max, avg and the p50/p95/p99 percentiles; all zero
            for a series with no observations
        """
        with self._lock:
            values = sorted(self._histograms.get(self._key(name, labels), ()))
        return self._summarize(values)

    @staticmethod
    def _summarize(values: list[float]) -> dict[str, float]:
        if not values:
            return dict(_EMPTY_HISTOGRAM)
        total = sum(values)
        return {
            "count": len(values),
            "sum": total,
            "min": values[0],
            "max": values[-1],
            "avg": total / len(values),
            "p50": _percentile(values, 0.5),
            "p95": _percentile(values, 0.95),
            "p99": _percentile(values, 0.99),
        }

    def get_metrics_summary(self) -> dict[str, Any]:
        """All series as plain dicts keyed by ``name{label=value,...}``."""
        with self._lock:
            counters = {self._series_name(k): v for k, v in self._counters.items()}
            gauges = {self._series_name(k): v for k, v in self._gauges.items()}
            windows = {k: sorted(v) for k, v in self._histograms.items()}
        return {
            "counters": counters,
            "gauges": gauges,
            "histograms": {
                self._series_name(k): self._summarize(v) for k, v in windows.items()
            },
            "timestamp": datetime.now().isoformat(),
        }

    def get_metrics_for_export(self) -> list[MetricValue]:
        """Counters and gauges as MetricValue records for an exporter."""
        with self._lock:
            series = [
                (key, value, MetricType.COUNTER) for key, value in self._counters.items()
            ]
            series.extend(
                (key, value, MetricType.GAUGE) for key, value in self._gauges.items()
            )
        return [
            MetricValue(
                name=name, value=value, metric_type=metric_type, labels=dict(labels)
            )
            for (name, labels), value, metric_type in series
        ]

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


# Convenience functions for the ingestion counters
def record_line_ingested(
    metrics: MetricsCollector, source_type: str, size_bytes: int
) -> None:
    """Record one redacted line and its byte count."""
    labels = {"source_type": source_type}
    metrics.increment_counter(LOG_LINES_TOTAL, labels=labels)
    metrics.increment_counter(BYTES_INGESTED_TOTAL, value=size_bytes, labels=labels)


def record_chunk_emitted(metrics: MetricsCollector, source_type: str) -> None:
    """Record that a chunk was flushed."""
    metrics.increment_counter(CHUNKS_TOTAL, labels={"source_type": source_type})


def record_source_error(metrics: MetricsCollector, source_type: str) -> None:
    """Record a reader-level error."""
    metrics.increment_counter(
        SOURCE_ERRORS_TOTAL, labels={"source_type": source_type}
    )


def record_queue_size(metrics: MetricsCollector, size: int) -> None:
    """Record current chunk queue size."""
    metrics.set_gauge(CHUNK_QUEUE_SIZE, value=size)


def record_processing_time(metrics: MetricsCollector, duration_seconds: float) -> None:
    """Record downstream processing time for one chunk."""
    metrics.record_histogram(CHUNK_PROCESSING_SECONDS, value=duration_seconds)

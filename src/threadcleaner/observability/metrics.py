"""
Cleaner Metrics Collection.

Cleanup tasks run on a background thread long after `register` has returned,
so their outcome can only be observed through logs and these in-process
metrics.

Features:
- Counter metrics for registrations, retirements and failures
- Histogram metric for cleanup task duration
- Gauge metric for handles still waiting on their resource
- Prometheus-compatible export

Usage:
    from threadcleaner.observability.metrics import init_metrics, get_metrics_summary

    init_metrics(enabled=True)
    ...
    summary = get_metrics_summary()
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from threadcleaner.config.environment import Environment
from threadcleaner.config.logging_config import get_logger

log = get_logger(__name__)


# Cleanup tasks are expected to be short; anything near a second stalls the reaper
TASK_DURATION_BUCKETS = [0.0001, 0.001, 0.01, 0.1, 1.0, 10.0]


@dataclass
class CounterMetric:
    """A counter metric that only increments."""

    name: str
    description: str = ""
    _value: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def increment(self, amount: int = 1) -> None:
        """Increment the counter."""
        with self._lock:
            self._value += amount

    def get_value(self) -> int:
        """Get the current counter value."""
        with self._lock:
            return self._value


@dataclass
class HistogramMetric:
    """
    A histogram of observed values.

    Only the cumulative bucket counts, the running sum and the count are kept,
    so a histogram fed by the reaper for the life of the process stays the
    same size.
    """

    name: str
    description: str = ""
    buckets: list[float] = field(
        default_factory=lambda: [0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
    )
    _bucket_counts: dict[float, int] = field(init=False, default_factory=dict)
    _count: int = 0
    _sum: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def __post_init__(self) -> None:
        self.buckets = sorted(self.buckets)
        self._bucket_counts = dict.fromkeys(self.buckets, 0)

    def observe(self, value: float) -> None:
        """Record an observation."""
        with self._lock:
            self._count += 1
            self._sum += value
            for bucket in self.buckets:
                if value <= bucket:
                    self._bucket_counts[bucket] += 1

    def get_count(self) -> int:
        with self._lock:
            return self._count

    def get_sum(self) -> float:
        with self._lock:
            return self._sum

    def get_bucket_counts(self) -> dict[float, int]:
        """Get cumulative histogram bucket counts."""
        with self._lock:
            return dict(self._bucket_counts)


@dataclass
class GaugeMetric:
    """A gauge holding the last value it was set to."""

    name: str
    description: str = ""
    _value: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    def get_value(self) -> float:
        with self._lock:
            return self._value


class MetricsRegistry:
    """Central registry for all metrics."""

    def __init__(self) -> None:
        self._counters: dict[str, CounterMetric] = {}
        self._histograms: dict[str, HistogramMetric] = {}
        self._gauges: dict[str, GaugeMetric] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, description: str = "") -> CounterMetric:
        """Get or create a counter metric."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = CounterMetric(name=name, description=description)
            return self._counters[name]

    def histogram(
        self,
        name: str,
        description: str = "",
        buckets: Optional[list[float]] = None,
    ) -> HistogramMetric:
        """Get or create a histogram metric. ``buckets`` only applies on creation."""
        with self._lock:
            if name not in self._histograms:
                if buckets:
                    self._histograms[name] = HistogramMetric(name=name, description=description, buckets=buckets)
                else:
                    self._histograms[name] = HistogramMetric(name=name, description=description)
            return self._histograms[name]

    def gauge(self, name: str, description: str = "") -> GaugeMetric:
        """Get or create a gauge metric."""
        with self._lock:
            if name not in self._gauges:
                self._gauges[name] = GaugeMetric(name=name, description=description)
            return self._gauges[name]

    def get_all_metrics(self) -> dict[str, dict[str, Any]]:
        """Get all metrics in a format suitable for export."""
        metrics: dict[str, dict[str, Any]] = {}

        with self._lock:
            for key, counter in self._counters.items():
                metrics[key] = {
                    "type": "counter",
                    "value": counter.get_value(),
                    "description": counter.description,
                }

            for key, histogram in self._histograms.items():
                metrics[key] = {
                    "type": "histogram",
                    "count": histogram.get_count(),
                    "sum": histogram.get_sum(),
                    "buckets": histogram.get_bucket_counts(),
                    "description": histogram.description,
                }

            for key, gauge in self._gauges.items():
                metrics[key] = {
                    "type": "gauge",
                    "value": gauge.get_value(),
                    "description": gauge.description,
                }

        return metrics


_global_registry: Optional[MetricsRegistry] = None
_init_lock = threading.Lock()


def init_metrics(enabled: Optional[bool] = None) -> Optional[MetricsRegistry]:
    """
    Initialize the metrics collection system.

    Args:
        enabled: Whether to enable metrics (defaults to THREADCLEANER_METRICS_ENABLED)

    Returns:
        The active registry, or None when metrics are disabled.
    """
    global _global_registry

    if enabled is None:
        enabled = Environment.is_metrics_enabled()

    with _init_lock:
        if _global_registry is not None:
            log.debug("Metrics already initialized")
            return _global_registry

        if not enabled:
            log.info("Metrics disabled by configuration")
            return None

        _global_registry = MetricsRegistry()
    log.info("Metrics initialized for threadcleaner")
    return _global_registry


def shutdown_metrics() -> None:
    """Drop the global registry; later init_metrics() calls start fresh."""
    global _global_registry

    with _init_lock:
        _global_registry = None


def get_registry() -> Optional[MetricsRegistry]:
    """Get the global metrics registry."""
    return _global_registry


def cleaner_counter(name: str, description: str = "") -> CounterMetric:
    """Get or create a cleaner-related counter."""
    registry = get_registry()
    if registry is None:
        raise RuntimeError("Metrics not initialized. Call init_metrics() first.")
    return registry.counter(f"cleaner_{name}", description=description)


def task_duration_histogram(
    name: str = "cleaner_task_duration",
    description: str = "Cleanup task duration in seconds",
) -> HistogramMetric:
    """Get or create the cleanup task duration histogram."""
    registry = get_registry()
    if registry is None:
        raise RuntimeError("Metrics not initialized. Call init_metrics() first.")
    return registry.histogram(name, description=description, buckets=TASK_DURATION_BUCKETS)


def live_handles_gauge() -> GaugeMetric:
    """Get or create a gauge for handles whose cleanup has not run yet."""
    registry = get_registry()
    if registry is None:
        raise RuntimeError("Metrics not initialized. Call init_metrics() first.")
    return registry.gauge("cleaner_live_handles", description="Handles whose cleanup task has not run yet")


def get_metrics_summary() -> dict[str, Any]:
    """Get all metrics as a summary dictionary."""
    registry = get_registry()
    if registry is None:
        return {"error": "Metrics not initialized"}

    return {
        "timestamp": datetime.now().isoformat(),
        "metrics": registry.get_all_metrics(),
    }


def format_prometheus_metrics() -> str:
    """Format all metrics in Prometheus text format."""
    registry = get_registry()
    if registry is None:
        return "# Metrics not initialized\n"

    lines: list[str] = []
    metrics = registry.get_all_metrics()

    for key, data in metrics.items():
        if data.get("description"):
            lines.append(f"# HELP {key} {data['description']}")
        lines.append(f"# TYPE {key} {data['type']}")

        if data["type"] == "histogram":
            for bucket, count in sorted(data["buckets"].items()):
                lines.append(f'{key}_bucket{{le="{bucket}"}} {count}')
            lines.append(f'{key}_bucket{{le="+Inf"}} {data["count"]}')
            lines.append(f"{key}_sum {data['sum']}")
            lines.append(f"{key}_count {data['count']}")
        else:
            lines.append(f"{key} {data['value']}")

    return "\n".join(lines) + "\n"

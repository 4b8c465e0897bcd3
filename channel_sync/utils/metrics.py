"""
Prometheus Metrics

Provides application metrics in Prometheus format:
- Reconciliation metrics (runs, discrepancies, fixes, duration)
- Channel push metrics
"""

from typing import Dict, List
import time
from collections import defaultdict
from threading import Lock


class Counter:
    """Simple counter metric."""

    def __init__(self, name: str, description: str, labels: tuple = ()):
        self.name = name
        self.description = description
        self.labels = labels
        self._values: Dict[tuple, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1, **label_values):
        """Increment counter."""
        key = tuple(label_values.get(l, '') for l in self.labels)
        with self._lock:
            self._values[key] += value

    def get(self, **label_values) -> float:
        key = tuple(label_values.get(l, '') for l in self.labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def get_all(self) -> Dict[tuple, float]:
        """Get all values."""
        with self._lock:
            return dict(self._values)

    def reset(self):
        with self._lock:
            self._values.clear()


class Histogram:
    """Simple histogram metric."""

    DEFAULT_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, float('inf'))

    def __init__(self, name: str, description: str, labels: tuple = (), buckets: tuple = None):
        self.name = name
        self.description = description
        self.labels = labels
        self.buckets = buckets or self.DEFAULT_BUCKETS
        self._counts: Dict[tuple, Dict[float, int]] = defaultdict(lambda: defaultdict(int))
        self._sums: Dict[tuple, float] = defaultdict(float)
        self._totals: Dict[tuple, int] = defaultdict(int)
        self._lock = Lock()

    def observe(self, value: float, **label_values):
        """Record an observation."""
        key = tuple(label_values.get(l, '') for l in self.labels)
        with self._lock:
            self._sums[key] += value
            self._totals[key] += 1
            for bucket in self.buckets:
                if value <= bucket:
                    self._counts[key][bucket] += 1

    def time(self, **label_values):
        """Context manager to time a block of code."""
        return _HistogramTimer(self, label_values)

    def get_all(self) -> Dict:
        """Get all values."""
        with self._lock:
            return {
                'counts': {k: dict(v) for k, v in self._counts.items()},
                'sums': dict(self._sums),
                'totals': dict(self._totals)
            }

    def reset(self):
        with self._lock:
            self._counts.clear()
            self._sums.clear()
            self._totals.clear()


class _HistogramTimer:
    """Context manager for timing code blocks."""

    def __init__(self, histogram: Histogram, label_values: dict):
        self.histogram = histogram
        self.label_values = label_values
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.perf_counter() - self.start_time
        self.histogram.observe(duration, **self.label_values)


# ================================
# APPLICATION METRICS
# ================================

reconciliation_runs_total = Counter(
    "reconciliation_runs_total",
    "Reconciliation runs started",
    labels=("channel",)
)

reconciliation_discrepancies_total = Counter(
    "reconciliation_discrepancies_total",
    "Calendar discrepancies detected between PMS and channels",
    labels=("channel",)
)

reconciliation_fixes_total = Counter(
    "reconciliation_fixes_total",
    "Discrepancies repaired by pushing the PMS state to the channel",
    labels=("channel",)
)

reconciliation_duration_seconds = Histogram(
    "reconciliation_duration_seconds",
    "Duration of a single mapping reconciliation in seconds",
    labels=("channel", "status")
)

channel_push_total = Counter(
    "channel_push_total",
    "Calendar pushes sent to channels",
    labels=("channel", "status")
)

COUNTERS: List[Counter] = [
    reconciliation_runs_total,
    reconciliation_discrepancies_total,
    reconciliation_fixes_total,
    channel_push_total,
]

HISTOGRAMS: List[Histogram] = [
    reconciliation_duration_seconds,
]


def _label_str(labels: tuple, key: tuple, extra: dict = None) -> str:
    pairs = dict(zip(labels, key))
    if extra:
        pairs.update(extra)
    if not pairs:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in pairs.items()) + "}"


def format_prometheus_metrics() -> str:
    """Format all metrics in Prometheus text format."""
    lines = []

    for counter in COUNTERS:
        lines.append(f"# HELP {counter.name} {counter.description}")
        lines.append(f"# TYPE {counter.name} counter")
        for key, value in counter.get_all().items():
            lines.append(f"{counter.name}{_label_str(counter.labels, key)} {value}")

    for histogram in HISTOGRAMS:
        data = histogram.get_all()
        lines.append(f"# HELP {histogram.name} {histogram.description}")
        lines.append(f"# TYPE {histogram.name} histogram")
        for key in data['sums'].keys():
            bucket_counts = data['counts'].get(key, {})
            for bucket in histogram.buckets:
                le = "+Inf" if bucket == float('inf') else str(bucket)
                label_str = _label_str(histogram.labels, key, {"le": le})
                lines.append(f"{histogram.name}_bucket{label_str} {bucket_counts.get(bucket, 0)}")
            label_str = _label_str(histogram.labels, key)
            lines.append(f"{histogram.name}_sum{label_str} {data['sums'][key]}")
            lines.append(f"{histogram.name}_count{label_str} {data['totals'][key]}")

    return "\n".join(lines) + "\n"


def reset_metrics():
    """Clear every metric (tests)."""
    for counter in COUNTERS:
        counter.reset()
    for histogram in HISTOGRAMS:
        histogram.reset()


# ================================
# CONVENIENCE FUNCTIONS
# ================================

class ReconciliationMetrics:
    """Metrics sink used by the reconciliation engine."""

    def increment_runs(self, channel: str = ""):
        reconciliation_runs_total.inc(channel=channel)

    def increment_discrepancies(self, count: int, channel: str = ""):
        reconciliation_discrepancies_total.inc(count, channel=channel)

    def increment_fixes(self, count: int, channel: str = ""):
        reconciliation_fixes_total.inc(count, channel=channel)

    def observe_duration(self, seconds: float, channel: str = "", status: str = ""):
        reconciliation_duration_seconds.observe(seconds, channel=channel, status=status)


def record_channel_push(channel: str, success: bool):
    """Record a calendar push to a channel."""
    status = "success" if success else "error"
    channel_push_total.inc(channel=channel, status=status)

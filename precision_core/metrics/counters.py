"""
Thread-safe counters and histograms for the estimation core.

Producers (position and sensor callbacks) and the consumer (estimation
tick) both report here, so every operation takes the collector lock.

Tracked:
- Sample flow (samples_in, samples_accepted, motion_events)
- Drop reasons (invalid_sample, out_of_order, stale, after_stop, ...)
- Estimation activity (ticks, filter_updates, gap_entries, ...)
- Histograms (innovation, fusion input count, tick duration)
"""

import logging
import threading
import time
from typing import Dict, List, Optional
from dataclasses import dataclass
from collections import defaultdict
import statistics

logger = logging.getLogger(__name__)


@dataclass
class CounterSnapshot:
    """Point-in-time copy of all collected metrics."""

    timestamp: float
    uptime_s: float
    counters: Dict[str, int]
    drop_reasons: Dict[str, int]
    histograms: Dict[str, List[float]]

    def total_dropped(self) -> int:
        """Total samples dropped across all reasons."""
        return sum(self.drop_reasons.values())

    def drop_rate(self, total_samples: int) -> float:
        """Drop rate as a percentage of total_samples."""
        if total_samples == 0:
            return 0.0
        return (self.total_dropped() / total_samples) * 100.0


class MetricsCollector:
    """
    Thread-safe metrics collection.

    Usage:
        collector = MetricsCollector()
        collector.increment('samples_in')
        collector.increment_drop('nan_coordinates')
        collector.record_histogram('tick_duration_ms', 0.8)

        snapshot = collector.snapshot()
        print(f"Total dropped: {snapshot.total_dropped()}")
    """

    # Known drop reason codes
    DROP_REASONS = {
        'invalid_sample': 'Sample failed basic validity checks',
        'nan_coordinates': 'Latitude/longitude not finite or out of range',
        'negative_accuracy': 'Reported horizontal accuracy below zero',
        'out_of_order': 'Timestamp older than previous sample from same source',
        'stale': 'Sample older than the buffer window',
        'queue_full': 'Bounded buffer or output stream overflow',
        'after_stop': 'Callback arrived after session teardown',
        'dr_dt_out_of_bounds': 'Dead-reckoning step outside sane time bounds',
        'dr_gap_exceeded': 'Gap longer than drift-tolerance window',
    }

    STANDARD_COUNTERS = (
        'samples_in',
        'samples_accepted',
        'motion_events',
        'ticks',
        'locations_emitted',
        'filter_updates',
        'gap_entries',
        'gap_exits',
        'dead_reckoning_estimates',
    )

    def __init__(self):
        """Initialize metrics collector."""
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = defaultdict(int)
        self._drop_reasons: Dict[str, int] = defaultdict(int)
        self._histograms: Dict[str, List[float]] = defaultdict(list)
        self._start_time = time.time()

        self._init_standard_counters()

    def _init_standard_counters(self):
        """Zero the standard keys so reports always list them."""
        with self._lock:
            for counter in self.STANDARD_COUNTERS:
                self._counters.setdefault(counter, 0)
            for reason in self.DROP_REASONS:
                self._drop_reasons.setdefault(reason, 0)

    def increment(self, counter_name: str, value: int = 1):
        """
        Increment a counter by value.

        Args:
            counter_name: Name of counter to increment
            value: Amount to increment (default 1)
        """
        with self._lock:
            self._counters[counter_name] += value

    def increment_drop(self, reason: str, value: int = 1):
        """
        Count a dropped sample under a reason code.

        Args:
            reason: Drop reason code (should be in DROP_REASONS)
            value: Amount to increment (default 1)
        """
        if reason not in self.DROP_REASONS:
            logger.warning("Unknown drop reason '%s'", reason)

        with self._lock:
            self._drop_reasons[reason] += value
            self._counters['samples_dropped'] += value

    def get_counter(self, counter_name: str) -> int:
        """Current value of a counter (0 if never touched)."""
        with self._lock:
            return self._counters.get(counter_name, 0)

    def get_drop_count(self, reason: str) -> int:
        """Current count for one drop reason."""
        with self._lock:
            return self._drop_reasons.get(reason, 0)

    def record_histogram(self, histogram_name: str, value: float, max_samples: int = 10000):
        """
        Record a value in a histogram.

        Args:
            histogram_name: Name of histogram
            value: Value to record
            max_samples: Bound on retained samples; the older half is
                discarded when exceeded
        """
        with self._lock:
            samples = self._histograms[histogram_name]
            samples.append(float(value))

            if len(samples) > max_samples:
                self._histograms[histogram_name] = samples[-max_samples // 2:]

    def get_histogram_stats(self, histogram_name: str) -> Optional[Dict[str, float]]:
        """
        Summary statistics for a histogram.

        Returns:
            Dict with count, min, max, mean, median, p95, p99,
            or None if the histogram is empty
        """
        with self._lock:
            samples = list(self._histograms.get(histogram_name, []))

        if not samples:
            return None

        samples.sort()
        count = len(samples)

        def percentile(fraction: float) -> float:
            return samples[min(int(count * fraction), count - 1)]

        return {
            'count': count,
            'min': samples[0],
            'max': samples[-1],
            'mean': statistics.mean(samples),
            'median': statistics.median(samples),
            'p95': percentile(0.95),
            'p99': percentile(0.99),
        }

    def snapshot(self) -> CounterSnapshot:
        """Copy of the current metrics state."""
        with self._lock:
            now = time.time()
            return CounterSnapshot(
                timestamp=now,
                uptime_s=now - self._start_time,
                counters=dict(self._counters),
                drop_reasons=dict(self._drop_reasons),
                histograms={k: list(v) for k, v in self._histograms.items()},
            )

    def reset(self):
        """Clear all metrics."""
        with self._lock:
            self._counters.clear()
            self._drop_reasons.clear()
            self._histograms.clear()
            self._start_time = time.time()
        self._init_standard_counters()

    def get_uptime(self) -> float:
        """Seconds since the collector was created or last reset."""
        return time.time() - self._start_time

    def format_summary(self) -> str:
        """Human-readable multi-line metrics summary."""
        snapshot = self.snapshot()
        lines = [
            "=" * 70,
            f"  METRICS SUMMARY (uptime: {snapshot.uptime_s:.1f}s)",
            "=" * 70,
            "",
            "COUNTERS:",
        ]
        for name, value in sorted(snapshot.counters.items()):
            lines.append(f"  {name:30s}: {value:8d}")

        total_dropped = snapshot.total_dropped()
        if total_dropped > 0:
            lines.append("")
            lines.append("DROP REASONS:")
            for reason, count in sorted(snapshot.drop_reasons.items()):
                if count > 0:
                    pct = (count / total_dropped) * 100
                    lines.append(f"  {reason:30s}: {count:8d} ({pct:5.1f}%)")

        if snapshot.histograms:
            lines.append("")
            lines.append("HISTOGRAMS:")
            for name in sorted(snapshot.histograms):
                stats = self.get_histogram_stats(name)
                if stats:
                    lines.append(f"  {name}:")
                    lines.append(
                        f"    count={stats['count']}, mean={stats['mean']:.3f}, "
                        f"p95={stats['p95']:.3f}, p99={stats['p99']:.3f}"
                    )

        lines.append("=" * 70)
        return "\n".join(lines)

    def print_summary(self):
        """Print the metrics summary to stdout."""
        print("\n" + self.format_summary() + "\n")

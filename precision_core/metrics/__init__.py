"""
Metrics Module: Diagnostics, counters, histograms.

Every sample the estimation core discards is counted under a drop reason
code, so noisy hardware never disappears silently:
- Counters: samples_in, ticks, locations_emitted, gap_entries, ...
- Histograms: filter innovation, fusion input count, tick duration
- Drop reasons: invalid_sample, out_of_order, stale, after_stop, ...

Usage:
    from precision_core.metrics import get_metrics

    metrics = get_metrics()
    metrics.increment('samples_in')
    metrics.increment_drop('out_of_order')
    metrics.record_histogram('tick_duration_ms', 0.42)
"""

from .counters import MetricsCollector, CounterSnapshot

# Process-wide collector shared by all components
_global_metrics = None


def get_metrics() -> MetricsCollector:
    """
    Get the global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def reset_metrics():
    """Replace the global collector with a fresh one (for testing)."""
    global _global_metrics
    _global_metrics = MetricsCollector()


__all__ = ['MetricsCollector', 'CounterSnapshot', 'get_metrics', 'reset_metrics']

"""
Time-windowed Sample Buffer.

Holds recent PositionSamples partitioned by source. Producers (provider
callbacks) push concurrently; the estimation tick reads. The buffer is
the system's backpressure: anything older than the window is evicted
rather than queued, trading completeness for bounded memory and bounded
staleness.

Ordering:
    - Within a source, samples are kept in arrival order and a sample
      whose timestamp goes backwards is rejected (out_of_order).
    - Across sources no ordering is kept; readers compare timestamps.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from precision_core.proto.position_sample import PositionSample, SampleSource
from precision_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class SampleBufferConfig:
    """
    Configuration for the sample buffer.

    Attributes:
        window_s: Samples older than this (relative to the clock) are evicted
        max_samples_per_source: Hard bound per source; oldest dropped on overflow
    """

    window_s: float = 5.0
    max_samples_per_source: int = 256

    def __post_init__(self):
        if self.window_s <= 0:
            raise ValueError(f"window_s must be positive: {self.window_s}")
        if self.max_samples_per_source < 1:
            raise ValueError(f"max_samples_per_source must be >= 1: {self.max_samples_per_source}")


class SampleBuffer:
    """
    Concurrent-safe, time-windowed buffer of position samples.

    Usage:
        buffer = SampleBuffer(SampleBufferConfig(window_s=5.0))

        # Producer side (any thread)
        buffer.push(sample)

        # Consumer side (estimation tick)
        by_source = buffer.recent(t_now=clock())
        satellite = by_source.get(SampleSource.SATELLITE, [])
    """

    def __init__(
        self,
        config: Optional[SampleBufferConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize buffer.

        Args:
            config: Buffer configuration (uses defaults if None)
            clock: Time source shared with sample timestamps
        """
        self.config = config or SampleBufferConfig()
        self.clock = clock
        self.metrics = get_metrics()

        self._lock = threading.Lock()
        self._samples: Dict[SampleSource, Deque[PositionSample]] = {
            source: deque() for source in SampleSource
        }
        # Clock time at which the latest sample of each source was accepted
        self._last_arrival: Dict[SampleSource, float] = {}

    def push(self, sample: PositionSample) -> bool:
        """
        Append a sample in arrival order.

        Args:
            sample: Position sample from any producer

        Returns:
            True if accepted, False if dropped (reason counted in metrics)
        """
        self.metrics.increment('samples_in')

        reason = sample.rejection_reason()
        if reason is not None:
            logger.debug("Dropping %s sample: %s", sample.source.name, reason)
            self.metrics.increment_drop(reason)
            return False

        t_now = self.clock()
        if t_now - sample.timestamp > self.config.window_s:
            self.metrics.increment_drop('stale')
            return False

        with self._lock:
            samples = self._samples[sample.source]

            if samples and sample.timestamp < samples[-1].timestamp:
                self.metrics.increment_drop('out_of_order')
                return False

            if len(samples) >= self.config.max_samples_per_source:
                samples.popleft()
                self.metrics.increment_drop('queue_full')

            samples.append(sample)
            self._last_arrival[sample.source] = t_now

        self.metrics.increment('samples_accepted')
        return True

    def recent(
        self,
        max_age: Optional[float] = None,
        t_now: Optional[float] = None,
    ) -> Dict[SampleSource, List[PositionSample]]:
        """
        Samples no older than max_age, partitioned by source.

        Evicts everything older than the window as a side effect.

        Args:
            max_age: Maximum age in seconds (defaults to the window)
            t_now: Evaluation time (defaults to the clock)

        Returns:
            Dict of source -> samples in insertion order (empty sources omitted)
        """
        if t_now is None:
            t_now = self.clock()
        if max_age is None:
            max_age = self.config.window_s

        self.evict(t_now)

        with self._lock:
            result = {}
            for source, samples in self._samples.items():
                selected = [s for s in samples if t_now - s.timestamp <= max_age]
                if selected:
                    result[source] = selected
            return result

    def evict(self, t_now: Optional[float] = None) -> int:
        """
        Drop samples older than the window.

        Returns:
            Number of samples evicted
        """
        if t_now is None:
            t_now = self.clock()

        evicted = 0
        with self._lock:
            for samples in self._samples.values():
                while samples and t_now - samples[0].timestamp > self.config.window_s:
                    samples.popleft()
                    evicted += 1
        return evicted

    def latest(self, source: SampleSource) -> Optional[PositionSample]:
        """Most recently accepted sample of a source, if any is buffered."""
        with self._lock:
            samples = self._samples[source]
            return samples[-1] if samples else None

    def last_arrival(self, source: SampleSource) -> Optional[float]:
        """Clock time at which the last sample of a source was accepted."""
        with self._lock:
            return self._last_arrival.get(source)

    def clear(self):
        """Release all buffered samples and arrival history."""
        with self._lock:
            for samples in self._samples.values():
                samples.clear()
            self._last_arrival.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(samples) for samples in self._samples.values())

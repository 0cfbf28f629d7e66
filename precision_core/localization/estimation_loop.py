"""
Fixed-Rate Estimation Loop.

The single consumer of the pipeline. Producers only write to the sample
buffer and the motion snapshot; everything else (scoring, fusion,
filtering, outage detection, dead reckoning) runs here, serialized on
one execution context.

Per tick:
    1. Sync satellite arrivals from the buffer into the outage detector
    2. Query the detector (Tracking / Gap)
    3. Tracking: recent() -> score -> fuse -> filter.update -> emit
       Gap:      dead reckon from last known-good with the motion snapshot
    4. Remember the result as last known-good when it is usable

Every emitted location is stamped with the tick time, so the output
sequence is strictly increasing in time even when the same fix is
re-emitted. The provider fix time is kept in fix_timestamp.

Usage:
    loop = EstimationLoop(buffer, motion_snapshot)
    loop.start(clock())

    # Deterministic stepping (tests, replay)
    location = loop.tick(t_now)

    # Real-time (dedicated thread)
    loop.run(stop_event, emit=stream.put)
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from precision_core.proto.position_sample import SampleSource
from precision_core.proto.precision_location import PrecisionLocation
from precision_core.localization.confidence_scorer import ConfidenceScorer
from precision_core.localization.sample_buffer import SampleBuffer
from precision_core.localization.fusion_engine import FusionEngine
from precision_core.localization.recursive_filter import RecursiveFilter
from precision_core.localization.outage_detector import OutageDetector, OutageState
from precision_core.localization.dead_reckoning import DeadReckoningEstimator
from precision_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class EstimationLoopConfig:
    """
    Configuration for the estimation loop.

    Attributes:
        rate_hz: Tick rate of the real-time loop
        window_s: Maximum sample age considered for fusion
        min_usable_confidence: Tracking results at or above this become last known-good
    """

    rate_hz: float = 10.0
    window_s: float = 5.0
    min_usable_confidence: float = 0.3

    def __post_init__(self):
        if self.rate_hz <= 0:
            raise ValueError(f"rate_hz must be positive: {self.rate_hz}")
        if self.window_s <= 0:
            raise ValueError(f"window_s must be positive: {self.window_s}")
        if not 0.0 <= self.min_usable_confidence <= 1.0:
            raise ValueError(
                f"min_usable_confidence must be in [0,1]: {self.min_usable_confidence}"
            )

    @property
    def tick_interval_s(self) -> float:
        return 1.0 / self.rate_hz


class EstimationLoop:
    """
    Tick-driven estimation over the buffer and motion snapshot.

    Components are built from defaults unless injected. Only the buffer
    and the motion snapshot are shared with producer threads; the rest
    is owned by whichever thread calls tick().
    """

    def __init__(
        self,
        buffer: SampleBuffer,
        motion_snapshot=None,
        config: Optional[EstimationLoopConfig] = None,
        scorer: Optional[ConfidenceScorer] = None,
        fusion: Optional[FusionEngine] = None,
        recursive_filter: Optional[RecursiveFilter] = None,
        detector: Optional[OutageDetector] = None,
        dead_reckoning: Optional[DeadReckoningEstimator] = None,
    ):
        """
        Initialize loop.

        Args:
            buffer: Shared sample buffer (written by position producers)
            motion_snapshot: Object with read() -> MotionSample, or None
            config: Loop configuration (uses defaults if None)
            scorer, fusion, recursive_filter, detector, dead_reckoning:
                Pipeline components (defaults if None)
        """
        self.buffer = buffer
        self.motion_snapshot = motion_snapshot
        self.config = config or EstimationLoopConfig()
        self.metrics = get_metrics()

        self.scorer = scorer or ConfidenceScorer()
        self.fusion = fusion or FusionEngine()
        self.filter = recursive_filter or RecursiveFilter()
        self.detector = detector or OutageDetector()
        self.dead_reckoning = dead_reckoning or DeadReckoningEstimator()

        self._started = False
        self._last_tick: Optional[float] = None
        self._last_satellite_arrival: Optional[float] = None
        self._last_known_good: Optional[PrecisionLocation] = None
        self._last_emitted: Optional[PrecisionLocation] = None
        self._filter_reset_in_gap = False

        # Set from producer threads, consumed by the next tick
        self._provider_unavailable = threading.Event()

    @property
    def state(self) -> OutageState:
        return self.detector.state

    @property
    def last_known_good(self) -> Optional[PrecisionLocation]:
        return self._last_known_good

    @property
    def last_emitted(self) -> Optional[PrecisionLocation]:
        return self._last_emitted

    def start(self, t_now: float):
        """
        Begin a session at t_now (the first gap timeout counts from here).

        Clears everything learned in a previous session.
        """
        if self.filter.is_initialized():
            self.filter.reset()
        self.dead_reckoning.reset()
        self.detector.start(t_now)

        self._last_tick = None
        self._last_satellite_arrival = None
        self._last_known_good = None
        self._last_emitted = None
        self._filter_reset_in_gap = False
        self._provider_unavailable.clear()
        self._started = True
        logger.debug("Estimation loop started at t=%.3f", t_now)

    def mark_provider_unavailable(self):
        """Request an immediate switch to gap mode on the next tick. Thread-safe."""
        self._provider_unavailable.set()

    def tick(self, t_now: float) -> Optional[PrecisionLocation]:
        """
        Run one estimation step.

        Args:
            t_now: Tick time on the session clock

        Returns:
            PrecisionLocation stamped at t_now, or None when nothing is
            known yet (or t_now does not advance past the previous tick)
        """
        if self._last_tick is not None and t_now <= self._last_tick:
            logger.debug("Ignoring non-advancing tick t=%.3f", t_now)
            return None

        if not self._started:
            self.start(t_now)

        tick_start = time.perf_counter()
        dt = 0.0 if self._last_tick is None else t_now - self._last_tick
        self._last_tick = t_now
        self.metrics.increment('ticks')

        previous_state = self.detector.state
        self._sync_satellite_arrivals()

        if self._provider_unavailable.is_set():
            self._provider_unavailable.clear()
            self.detector.on_provider_unavailable(t_now)

        state = self.detector.update(t_now)
        if previous_state == OutageState.GAP and state == OutageState.TRACKING:
            self._on_gap_exit()

        self.filter.predict(dt)

        if state == OutageState.TRACKING:
            location = self._track(t_now)
        else:
            location = self._dead_reckon(t_now, dt)

        if location is not None:
            self._last_emitted = location
            self.metrics.increment('locations_emitted')

        self.metrics.record_histogram(
            'tick_duration_ms', (time.perf_counter() - tick_start) * 1000.0
        )
        return location

    def run(
        self,
        stop_event: threading.Event,
        emit: Callable[[PrecisionLocation], None],
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Tick at config.rate_hz until stop_event is set.

        Missed deadlines are skipped rather than replayed in a burst.
        """
        interval = self.config.tick_interval_s
        next_tick = clock()

        while not stop_event.is_set():
            try:
                location = self.tick(clock())
                if location is not None:
                    emit(location)
            except Exception:
                logger.exception("Estimation tick failed")

            next_tick += interval
            delay = next_tick - clock()
            if delay < 0:
                logger.debug("Estimation loop behind schedule by %.3fs", -delay)
                next_tick = clock()
                delay = 0.0
            stop_event.wait(delay)

    def get_statistics(self) -> dict:
        """Snapshot of the loop's view for diagnostics."""
        lkg = self._last_known_good
        return {
            'state': self.detector.state.value,
            'filter_initialized': self.filter.is_initialized(),
            'last_tick': self._last_tick,
            'last_satellite_arrival': self._last_satellite_arrival,
            'last_fusion_strategy': (
                self.fusion.last_strategy.value if self.fusion.last_strategy else None
            ),
            'last_known_good': lkg.to_dict() if lkg is not None else None,
            'dead_reckoning_elapsed_s': self.dead_reckoning.elapsed_s,
            'buffered_samples': len(self.buffer),
        }

    def _sync_satellite_arrivals(self):
        arrival = self.buffer.last_arrival(SampleSource.SATELLITE)
        if arrival is None:
            return
        if self._last_satellite_arrival is None or arrival > self._last_satellite_arrival:
            self._last_satellite_arrival = arrival
            self.detector.on_satellite_sample(arrival)

    def _on_gap_exit(self):
        self.dead_reckoning.reset()

        if (not self._filter_reset_in_gap
                and self.detector.last_gap_duration_s > self.detector.config.max_gap_s):
            self.filter.reset()
        self._filter_reset_in_gap = False

    def _track(self, t_now: float) -> Optional[PrecisionLocation]:
        samples = self.buffer.recent(max_age=self.config.window_s, t_now=t_now)
        scored = self.scorer.score_batch(samples, t_now)

        estimate = self.fusion.fuse(scored, fallback=self._last_known_good)
        if estimate is None:
            return None
        if isinstance(estimate, PrecisionLocation):
            # Nothing buffered: hold the last known-good position
            return estimate.restamped(t_now)

        filtered = self.filter.update(estimate)
        location = PrecisionLocation.from_scored(filtered, timestamp=t_now)

        if location.confidence >= self.config.min_usable_confidence:
            self._last_known_good = location

        logger.debug(
            "Tracking fix (%.7f, %.7f) conf=%.2f via %s",
            location.latitude, location.longitude, location.confidence,
            self.fusion.last_strategy.value,
        )
        return location

    def _dead_reckon(self, t_now: float, dt: float) -> Optional[PrecisionLocation]:
        if self.detector.gap_exceeds_max(t_now) and not self._filter_reset_in_gap:
            # Drift has invalidated the filter prior
            self.filter.reset()
            self._filter_reset_in_gap = True

        if self._last_known_good is None:
            return None

        motion = self.motion_snapshot.read() if self.motion_snapshot is not None else None
        return self.dead_reckoning.estimate(self._last_known_good, motion, dt, t_now)

"""
Precision Location Tracker (session API).

Wires capability sources, the sample buffer, the motion snapshot and the
estimation loop into one tracking session.

Usage:
    tracker = PrecisionLocationTracker(position_source, motion_source)
    stream = tracker.start(TrackingMode.HIGH_ACCURACY)

    for location in stream:
        print(location.latitude, location.longitude, location.confidence)

    tracker.stop()      # from any thread; the for-loop ends

Session lifecycle:
    start()  subscribe sources -> start loop thread -> return stream
    stop()   halt loop -> cancel subscriptions -> close stream ->
             release buffer and motion snapshot

Callbacks that still arrive after stop() are ignored and counted under
the after_stop drop reason.
"""

import logging
import threading
import time
from dataclasses import dataclass, fields
from typing import Callable, List, Optional

from precision_core.errors import PermissionDenied, ProviderUnavailable
from precision_core.proto.motion_sample import MotionSample
from precision_core.proto.position_sample import PositionSample
from precision_core.proto.precision_location import PrecisionLocation
from precision_core.proto.tracking_mode import TrackingMode
from precision_core.localization.confidence_scorer import ConfidenceScorer, ConfidenceScorerConfig
from precision_core.localization.sample_buffer import SampleBuffer, SampleBufferConfig
from precision_core.localization.fusion_engine import FusionEngine, FusionConfig
from precision_core.localization.recursive_filter import RecursiveFilter, RecursiveFilterConfig
from precision_core.localization.outage_detector import OutageDetector, OutageDetectorConfig
from precision_core.localization.dead_reckoning import DeadReckoningEstimator, DeadReckoningConfig
from precision_core.localization.estimation_loop import EstimationLoop, EstimationLoopConfig
from precision_core.io.adapters import MotionSnapshot, fill_missing_kinematics
from precision_core.io.sources import MotionSource, PositionSource, Subscription
from precision_core.io.stream import LocationStream
from precision_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class PrecisionTrackerConfig:
    """
    Configuration for a tracking session.

    Attributes:
        scorer_config: ConfidenceScorer configuration
        buffer_config: SampleBuffer configuration
        fusion_config: FusionEngine configuration
        filter_config: RecursiveFilter configuration
        outage_config: OutageDetector configuration
        dead_reckoning_config: DeadReckoningEstimator configuration
        loop_config: EstimationLoop configuration
        stream_max_size: Output stream bound (oldest dropped beyond it)
        stop_timeout_s: How long stop() waits for the loop thread
    """

    scorer_config: ConfidenceScorerConfig = None
    buffer_config: SampleBufferConfig = None
    fusion_config: FusionConfig = None
    filter_config: RecursiveFilterConfig = None
    outage_config: OutageDetectorConfig = None
    dead_reckoning_config: DeadReckoningConfig = None
    loop_config: EstimationLoopConfig = None
    stream_max_size: int = 256
    stop_timeout_s: float = 2.0

    @classmethod
    def from_dict(cls, data: dict) -> 'PrecisionTrackerConfig':
        """
        Build from a nested dict (see config.py TRACKER_CONFIG).

        Unknown sections are ignored; unknown keys inside a section raise
        TypeError from the section's dataclass.
        """
        return cls(
            scorer_config=_section(ConfidenceScorerConfig, data.get('scorer')),
            buffer_config=_section(SampleBufferConfig, data.get('buffer')),
            fusion_config=_section(FusionConfig, data.get('fusion')),
            filter_config=_section(RecursiveFilterConfig, data.get('filter')),
            outage_config=_section(OutageDetectorConfig, data.get('outage')),
            dead_reckoning_config=_section(DeadReckoningConfig, data.get('dead_reckoning')),
            loop_config=_section(EstimationLoopConfig, data.get('loop')),
            stream_max_size=data.get('stream_max_size', 256),
            stop_timeout_s=data.get('stop_timeout_s', 2.0),
        )


def _section(config_cls, values: Optional[dict]):
    if not values:
        return config_cls()

    # Breakpoint tables arrive as nested lists from JSON-like sources
    kwargs = {}
    for f in fields(config_cls):
        if f.name in values:
            value = values[f.name]
            if isinstance(value, list):
                value = tuple(tuple(v) if isinstance(v, list) else v for v in value)
            kwargs[f.name] = value

    unknown = set(values) - set(kwargs)
    if unknown:
        raise TypeError(f"Unknown {config_cls.__name__} keys: {sorted(unknown)}")
    return config_cls(**kwargs)


class PrecisionLocationTracker:
    """
    One tracking session at a time over a pair of capability sources.

    The estimation loop runs on a dedicated daemon thread started by
    start(). For deterministic replay, start(run_loop=False) and drive
    tick(t_now) from the caller.
    """

    def __init__(
        self,
        position_source: PositionSource,
        motion_source: Optional[MotionSource] = None,
        config: Optional[PrecisionTrackerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize tracker.

        Args:
            position_source: Position capability
            motion_source: Motion capability (None = no inertial data)
            config: Session configuration (uses defaults if None)
            clock: Time source; sample timestamps must use the same clock
        """
        self.position_source = position_source
        self.motion_source = motion_source
        self.config = config or PrecisionTrackerConfig()
        self.clock = clock
        self.metrics = get_metrics()

        self.buffer = SampleBuffer(self.config.buffer_config or SampleBufferConfig(), clock=clock)
        self.motion_snapshot = MotionSnapshot()
        self.loop = EstimationLoop(
            self.buffer,
            self.motion_snapshot,
            config=self.config.loop_config or EstimationLoopConfig(),
            scorer=ConfidenceScorer(self.config.scorer_config or ConfidenceScorerConfig()),
            fusion=FusionEngine(self.config.fusion_config or FusionConfig()),
            recursive_filter=RecursiveFilter(self.config.filter_config or RecursiveFilterConfig()),
            detector=OutageDetector(self.config.outage_config or OutageDetectorConfig()),
            dead_reckoning=DeadReckoningEstimator(
                self.config.dead_reckoning_config or DeadReckoningConfig()
            ),
        )

        self.mode: Optional[TrackingMode] = None
        self.late_callbacks = 0

        self._session_lock = threading.Lock()
        self._active = False
        self._subscriptions: List[Subscription] = []
        self._stream: Optional[LocationStream] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def stream(self) -> Optional[LocationStream]:
        return self._stream

    def start(
        self,
        mode: TrackingMode = TrackingMode.HIGH_ACCURACY,
        run_loop: bool = True,
    ) -> LocationStream:
        """
        Begin a tracking session.

        Args:
            mode: Precision / power trade-off for provider requests
            run_loop: Start the real-time loop thread (False = drive tick())

        Returns:
            LocationStream of estimates. On PermissionDenied the stream is
            returned already closed with that error and nothing is emitted.

        Raises:
            RuntimeError: A session is already active
        """
        if self._active:
            raise RuntimeError("Tracking session already active")

        self.mode = mode
        stream = LocationStream(self.config.stream_max_size)
        self._stream = stream
        self._stop_event.clear()

        with self._session_lock:
            self._active = True

        self.loop.start(self.clock())
        try:
            self._subscribe(mode)
        except PermissionDenied as e:
            logger.error("Cannot start tracking: %s", e)
            self._teardown()
            stream.close(error=e)
            return stream

        if run_loop:
            self._thread = threading.Thread(
                target=self.loop.run,
                args=(self._stop_event, self._emit, self.clock),
                name="precision-estimation-loop",
                daemon=True,
            )
            self._thread.start()

        logger.info("Tracking session started (mode=%s)", mode.value)
        return stream

    def tick(self, t_now: Optional[float] = None) -> Optional[PrecisionLocation]:
        """Run one estimation step and emit its result (manual stepping)."""
        if not self._active:
            return None

        location = self.loop.tick(self.clock() if t_now is None else t_now)
        if location is not None:
            self._emit(location)
        return location

    def stop(self):
        """End the session. Idempotent; safe from any thread but the loop's."""
        if not self._active:
            return

        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.config.stop_timeout_s)
            if self._thread.is_alive():
                logger.warning("Estimation loop did not stop within %.1fs", self.config.stop_timeout_s)
            self._thread = None

        self._teardown()
        if self._stream is not None:
            self._stream.close()

        logger.info("Tracking session stopped")

    def get_statistics(self) -> dict:
        """Session, loop and metrics counters in one dict."""
        snapshot = self.metrics.snapshot()
        stats = self.loop.get_statistics()
        stats.update({
            'active': self._active,
            'mode': self.mode.value if self.mode else None,
            'late_callbacks': self.late_callbacks,
            'counters': snapshot.counters,
            'drop_reasons': snapshot.drop_reasons,
            'uptime_s': snapshot.uptime_s,
        })
        return stats

    def _subscribe(self, mode: TrackingMode):
        try:
            self._subscriptions.append(
                self.position_source.subscribe_position(
                    mode, self._on_position, self._on_availability
                )
            )
        except ProviderUnavailable as e:
            logger.warning("Position provider unavailable at start: %s", e)
            self.loop.mark_provider_unavailable()

        if self.motion_source is not None:
            self._subscriptions.append(self.motion_source.subscribe_motion(self._on_motion))

    def _teardown(self):
        with self._session_lock:
            self._active = False

        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

        self.buffer.clear()
        self.motion_snapshot.release()

    def _emit(self, location: PrecisionLocation):
        if self._stream is not None:
            self._stream.put(location)

    def _on_position(self, sample: PositionSample):
        with self._session_lock:
            if not self._active:
                self._count_late_callback()
                return

            last_known_good = self.loop.last_known_good
            sample = fill_missing_kinematics(
                sample,
                self.motion_snapshot.read(),
                last_known_good.speed_mps if last_known_good else None,
            )
            self.buffer.push(sample)

    def _on_availability(self, available: bool):
        with self._session_lock:
            if not self._active:
                self._count_late_callback()
                return

            if available:
                logger.info("Position provider available again")
            else:
                self.loop.mark_provider_unavailable()

    def _on_motion(self, event):
        with self._session_lock:
            if not self._active:
                self._count_late_callback()
                return

            if isinstance(event, MotionSample):
                self.motion_snapshot.replace(event)
            else:
                self.motion_snapshot.handle(event)

    def _count_late_callback(self):
        self.late_callbacks += 1
        self.metrics.increment_drop('after_stop')

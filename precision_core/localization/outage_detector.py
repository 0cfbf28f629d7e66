"""
Outage Detector (Tracking / Gap state machine).

Declares an estimation gap (tunnel, urban canyon, provider disabled) when
no satellite sample has arrived for longer than gap_timeout_s.

Transitions:
    TRACKING -> GAP      t_now - last_satellite_arrival > gap_timeout_s
    TRACKING -> GAP      provider reported unavailable (immediate)
    GAP -> TRACKING      any new satellite sample, regardless of accuracy

The timeout is a pure elapsed-time check; nothing here blocks.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from precision_core.metrics import get_metrics

logger = logging.getLogger(__name__)


class OutageState(Enum):
    """Estimation mode selected by the detector."""

    TRACKING = "tracking"
    GAP = "gap"


@dataclass
class OutageDetectorConfig:
    """
    Configuration for the outage detector.

    Attributes:
        gap_timeout_s: Silence from satellite provider before declaring a gap
        max_gap_s: Gap length beyond which the filter prior is discarded
    """

    gap_timeout_s: float = 10.0
    max_gap_s: float = 30.0

    def __post_init__(self):
        if self.gap_timeout_s <= 0:
            raise ValueError(f"gap_timeout_s must be positive: {self.gap_timeout_s}")
        if self.max_gap_s <= 0:
            raise ValueError(f"max_gap_s must be positive: {self.max_gap_s}")


class OutageDetector:
    """
    Timeout-based Tracking/Gap detector.

    Usage:
        detector = OutageDetector(OutageDetectorConfig(gap_timeout_s=10.0))
        detector.start(t0)

        detector.on_satellite_sample(t_arrival)
        if detector.update(t_now) == OutageState.GAP:
            ...dead reckon...

    Owned by the estimation tick; not thread-safe.
    """

    def __init__(self, config: Optional[OutageDetectorConfig] = None):
        """
        Initialize detector in TRACKING.

        Args:
            config: Detector configuration (uses defaults if None)
        """
        self.config = config or OutageDetectorConfig()
        self.metrics = get_metrics()

        self._state = OutageState.TRACKING
        self._last_satellite_time: Optional[float] = None
        self._session_start: float = 0.0
        self._gap_started_at: Optional[float] = None
        self._last_gap_duration_s: float = 0.0

    @property
    def state(self) -> OutageState:
        return self._state

    @property
    def last_satellite_time(self) -> Optional[float]:
        return self._last_satellite_time

    @property
    def last_gap_duration_s(self) -> float:
        """Length of the most recently closed gap (0.0 if none yet)."""
        return self._last_gap_duration_s

    def start(self, t_now: float):
        """
        Begin a session in TRACKING.

        The session start counts as the reference for the first timeout,
        so a session without any satellite fix enters GAP after gap_timeout_s.
        """
        self._state = OutageState.TRACKING
        self._session_start = t_now
        self._last_satellite_time = None
        self._gap_started_at = None
        self._last_gap_duration_s = 0.0

    def on_satellite_sample(self, t_arrival: float):
        """
        Record a satellite sample arrival.

        Any arrival ends a gap immediately.
        """
        if self._last_satellite_time is None or t_arrival > self._last_satellite_time:
            self._last_satellite_time = t_arrival

        if self._state == OutageState.GAP:
            self._exit_gap(t_arrival)

    def on_provider_unavailable(self, t_now: float):
        """Platform reports positioning disabled: enter GAP now."""
        if self._state == OutageState.TRACKING:
            logger.warning("Position provider unavailable, switching to dead reckoning")
            self._enter_gap(t_now)

    def update(self, t_now: float) -> OutageState:
        """
        Apply the timeout rule at t_now.

        Returns:
            Current state after the check
        """
        if self._state == OutageState.TRACKING:
            reference = self._last_satellite_time
            if reference is None:
                reference = self._session_start

            if t_now - reference > self.config.gap_timeout_s:
                logger.info(
                    "No satellite fix for %.1fs (> %.1fs), entering gap",
                    t_now - reference, self.config.gap_timeout_s,
                )
                self._enter_gap(t_now)

        return self._state

    def gap_duration(self, t_now: float) -> float:
        """Seconds spent in the current gap (0.0 while tracking)."""
        if self._state != OutageState.GAP or self._gap_started_at is None:
            return 0.0
        return max(0.0, t_now - self._gap_started_at)

    def gap_exceeds_max(self, t_now: float) -> bool:
        """True once the current gap is longer than the drift-tolerance window."""
        return self.gap_duration(t_now) > self.config.max_gap_s

    def _enter_gap(self, t_now: float):
        self._state = OutageState.GAP
        self._gap_started_at = t_now
        self.metrics.increment('gap_entries')

    def _exit_gap(self, t_now: float):
        self._last_gap_duration_s = max(0.0, t_now - (self._gap_started_at or t_now))
        self._state = OutageState.TRACKING
        self._gap_started_at = None
        self.metrics.increment('gap_exits')
        self.metrics.record_histogram('gap_duration_s', self._last_gap_duration_s)
        logger.info("Satellite fix resumed after %.1fs gap", self._last_gap_duration_s)

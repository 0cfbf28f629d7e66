"""
Dead-Reckoning Estimator.

Projects position forward from the last known-good fix while no direct
fix is available, by integrating gravity-compensated linear acceleration.

Per step of dt seconds:
    1. a = planar acceleration rotated into (north, east) by the azimuth
       (device y = north, device x = east when orientation is not valid)
    2. displacement = 0.5 * a * dt²   (constant-acceleration, from rest)
    3. Δlat = north / 111111,  Δlon = east / (111111 * cos(lat))
    4. confidence *= decay (0.9)

Steps chain from the previous projection until reset(), so confidence
decreases strictly with every estimate of the same gap. The integration
is crude by design and only meant for short gaps.

Refusals (dt <= 0, dt > max_dt_s, or a gap longer than
max_extrapolation_s) return the last known-good position with near-zero
confidence. The refusal joins the chain: its confidence is capped at the
decayed chain value, and later steps restart from the last known-good
position, so confidence never rises within a gap.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from precision_core.proto.motion_sample import MotionSample
from precision_core.proto.precision_location import PrecisionLocation, create_stale_location
from precision_core.localization.geodesy import offset_position, MIN_COS_LAT
from precision_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class DeadReckoningConfig:
    """
    Configuration for the dead-reckoning estimator.

    Attributes:
        confidence_decay: Confidence multiplier applied per estimate
        max_dt_s: Largest step accepted before refusing to extrapolate
        max_extrapolation_s: Total projected time before giving up
        stale_confidence: Confidence reported once extrapolation is given up
        min_cos_lat: Floor on cos(latitude) for longitude conversion
    """

    confidence_decay: float = 0.9
    max_dt_s: float = 10.0
    max_extrapolation_s: float = 30.0
    stale_confidence: float = 0.01
    min_cos_lat: float = MIN_COS_LAT

    def __post_init__(self):
        if not 0.0 < self.confidence_decay < 1.0:
            raise ValueError(f"confidence_decay must be in (0,1): {self.confidence_decay}")
        if self.max_dt_s <= 0:
            raise ValueError(f"max_dt_s must be positive: {self.max_dt_s}")
        if not 0.0 <= self.stale_confidence <= 1.0:
            raise ValueError(f"stale_confidence must be in [0,1]: {self.stale_confidence}")


class DeadReckoningEstimator:
    """
    Inertial projection from the last known-good location.

    Usage:
        dr = DeadReckoningEstimator()

        # each gap tick
        projected = dr.estimate(last_known_good, motion_snapshot.read(), dt, t_now)

        # when direct fixes resume
        dr.reset()

    Owned by the estimation tick; not thread-safe.
    """

    def __init__(self, config: Optional[DeadReckoningConfig] = None):
        """
        Initialize estimator.

        Args:
            config: Estimator configuration (uses defaults if None)
        """
        self.config = config or DeadReckoningConfig()
        self.metrics = get_metrics()

        self._previous: Optional[PrecisionLocation] = None
        self._elapsed_s = 0.0

    @property
    def elapsed_s(self) -> float:
        """Total time projected since the last reset."""
        return self._elapsed_s

    def estimate(
        self,
        last_known_good: Optional[PrecisionLocation],
        motion: Optional[MotionSample],
        dt: float,
        t_now: Optional[float] = None,
    ) -> Optional[PrecisionLocation]:
        """
        Project one step forward.

        Args:
            last_known_good: Last trusted location (start of the chain)
            motion: Latest motion snapshot (None = no sensors, zero acceleration)
            dt: Step length in seconds
            t_now: Timestamp for the result (defaults to prior timestamp + dt)

        Returns:
            Projected location with is_interpolated=True, the stale last
            known-good on a refusal, or None without any prior
        """
        if last_known_good is None:
            return None

        prior = self._previous or last_known_good

        if not math.isfinite(dt) or dt <= 0 or dt > self.config.max_dt_s:
            logger.debug("Refusing to extrapolate over dt=%.3fs", dt)
            self.metrics.increment_drop('dr_dt_out_of_bounds')
            if t_now is None:
                t_now = prior.timestamp
            return self._refuse(last_known_good, prior, t_now)

        if t_now is None:
            t_now = prior.timestamp + dt

        if self._elapsed_s + dt > self.config.max_extrapolation_s:
            self.metrics.increment_drop('dr_gap_exceeded')
            self._elapsed_s += dt
            return self._refuse(last_known_good, prior, t_now)

        north_m, east_m = self._displacement(motion, dt)
        latitude, longitude = offset_position(
            prior.latitude, prior.longitude, north_m, east_m, self.config.min_cos_lat
        )

        projected = replace(
            prior,
            latitude=latitude,
            longitude=longitude,
            timestamp=t_now,
            confidence=prior.confidence * self.config.confidence_decay,
            is_interpolated=True,
        )

        self._previous = projected
        self._elapsed_s += dt

        self.metrics.increment('dead_reckoning_estimates')
        self.metrics.record_histogram('dead_reckoning_step_m', math.hypot(north_m, east_m))

        return projected

    def reset(self):
        """Forget the current chain; the next estimate restarts from last known-good."""
        self._previous = None
        self._elapsed_s = 0.0

    def _refuse(
        self,
        last_known_good: PrecisionLocation,
        prior: PrecisionLocation,
        t_now: float,
    ) -> PrecisionLocation:
        """Stale last known-good, never more confident than the decayed chain."""
        confidence = min(
            self.config.stale_confidence,
            prior.confidence * self.config.confidence_decay,
        )
        stale = create_stale_location(last_known_good, t_now, confidence)
        self._previous = stale
        return stale

    @staticmethod
    def _displacement(motion: Optional[MotionSample], dt: float) -> Tuple[float, float]:
        """(north, east) metres moved over dt under constant acceleration."""
        if motion is None:
            return 0.0, 0.0

        north_acc, east_acc = planar_acceleration(motion)
        scale = 0.5 * dt * dt
        return north_acc * scale, east_acc * scale


def planar_acceleration(motion: MotionSample) -> Tuple[float, float]:
    """
    Linear acceleration rotated into the local (north, east) plane.

    Uses the azimuth when orientation is valid, otherwise assumes the
    device y axis points north.
    """
    ax, ay, _ = motion.linear_acceleration
    if not motion.orientation_valid:
        return ay, ax

    azimuth = motion.azimuth_rad
    cos_az = math.cos(azimuth)
    sin_az = math.sin(azimuth)
    north = ay * cos_az - ax * sin_az
    east = ay * sin_az + ax * cos_az
    return north, east

"""
Recursive Position Filter (Constant-Velocity, Diagonal).

Smooths fused observations with a simplified Kalman-style filter.

State: [lat, lon, lat_rate, lon_rate] (degrees, degrees/s)

Predict (every tick, dt seconds):
    position += velocity * dt
    P += Q                       (Q diagonal, fixed per step)
Update (per observation with reported accuracy a):
    innovation = z - position
    K = P / (P + R * a)          (per axis, position terms only)
    position += K * innovation
    P *= (1 - K)

Known limitation: only the covariance diagonal is modelled and the gain
mixes degree-space variance with a metre-scaled measurement term. The
numeric behaviour is relied upon by consumers and is kept as is.
Velocity terms are propagated but never observed, so they stay at their
seeded value of zero and only their variance grows.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from precision_core.proto.position_sample import ScoredSample
from precision_core.metrics import get_metrics

logger = logging.getLogger(__name__)

# Position axes observed by the update step
_POSITION_AXES = (0, 1)


@dataclass
class RecursiveFilterConfig:
    """
    Configuration for the recursive filter.

    Attributes:
        q_pos: Per-step process noise on position terms
        q_vel: Per-step process noise on velocity terms
        r_base: Measurement noise base, scaled by reported accuracy
        initial_variance: Diffuse prior variance on every state term
        confidence_boost: Multiplier applied to observation confidence (capped at 1)
    """

    q_pos: float = 0.1
    q_vel: float = 1.0
    r_base: float = 5.0
    initial_variance: float = 1000.0
    confidence_boost: float = 1.2

    def __post_init__(self):
        if self.r_base <= 0:
            raise ValueError(f"r_base must be positive: {self.r_base}")
        if self.initial_variance <= 0:
            raise ValueError(f"initial_variance must be positive: {self.initial_variance}")
        if self.q_pos < 0 or self.q_vel < 0:
            raise ValueError("Process noise cannot be negative")


@dataclass
class EstimateState:
    """
    Copy of the filter's belief.

    Attributes:
        position: (lat, lon) in degrees
        velocity: (lat_rate, lon_rate) in degrees/s
        covariance: 4x4 covariance matrix (diagonal in practice)
    """

    position: Tuple[float, float]
    velocity: Tuple[float, float]
    covariance: np.ndarray

    @property
    def position_variance(self) -> Tuple[float, float]:
        return (float(self.covariance[0, 0]), float(self.covariance[1, 1]))


class RecursiveFilter:
    """
    Constant-velocity smoother for fused position observations.

    Usage:
        rf = RecursiveFilter(RecursiveFilterConfig())

        # every tick
        rf.predict(dt)

        # when a fused observation is available
        smoothed = rf.update(fused)

    The first observation after construction or reset() seeds the state
    and keeps its position exactly, with the same confidence boost as
    every other update; the covariance stays diffuse until the
    next update. Not thread-safe; owned by the estimation tick.
    """

    def __init__(self, config: Optional[RecursiveFilterConfig] = None):
        """
        Initialize filter with a diffuse prior.

        Args:
            config: Filter configuration (uses defaults if None)
        """
        self.config = config or RecursiveFilterConfig()
        self.metrics = get_metrics()

        self._q = np.diag([
            self.config.q_pos,
            self.config.q_pos,
            self.config.q_vel,
            self.config.q_vel,
        ])

        self._state = np.zeros(4)
        self._covariance = self._diffuse_covariance()
        self._initialized = False

    def is_initialized(self) -> bool:
        """True once an observation has seeded the state."""
        return self._initialized

    @property
    def state(self) -> EstimateState:
        """Copy of the current belief."""
        return EstimateState(
            position=(float(self._state[0]), float(self._state[1])),
            velocity=(float(self._state[2]), float(self._state[3])),
            covariance=self._covariance.copy(),
        )

    def predict(self, dt: float):
        """
        Propagate state forward by dt seconds and inflate covariance by Q.

        Non-positive dt and an unseeded filter leave the state untouched.
        """
        if not self._initialized or dt <= 0:
            return

        self._state[0:2] += self._state[2:4] * dt
        self._covariance = self._covariance + self._q

    def update(self, observation: ScoredSample) -> ScoredSample:
        """
        Correct the state with a fused observation.

        Args:
            observation: Fused (or direct) sample with confidence

        Returns:
            Observation copy carrying the filtered position and the
            boosted confidence; other fields are the observation's.
            The seeding update keeps the observed position exactly.
        """
        if not self._initialized:
            self._seed(observation)
            self.metrics.increment('filter_initialized')
            return observation.with_estimate(
                latitude=observation.latitude,
                longitude=observation.longitude,
                confidence=self._boosted(observation.confidence),
            )

        z = np.array([observation.latitude, observation.longitude])
        innovation = z - self._state[0:2]

        measurement_noise = self.config.r_base * observation.sample.effective_accuracy_m
        for axis in _POSITION_AXES:
            p = self._covariance[axis, axis]
            gain = p / (p + measurement_noise)
            self._state[axis] += gain * innovation[axis]
            self._covariance[axis, axis] = p * (1.0 - gain)

        innovation_deg = float(np.linalg.norm(innovation))
        self.metrics.increment('filter_updates')
        self.metrics.record_histogram('filter_innovation_deg', innovation_deg)

        return observation.with_estimate(
            latitude=float(self._state[0]),
            longitude=float(self._state[1]),
            confidence=self._boosted(observation.confidence),
        )

    def reset(self):
        """Re-diffuse: forget the state so the next observation seeds it again."""
        self._state = np.zeros(4)
        self._covariance = self._diffuse_covariance()
        self._initialized = False
        self.metrics.increment('filter_resets')
        logger.info("Recursive filter reset to diffuse prior")

    def _boosted(self, confidence: float) -> float:
        return min(1.0, confidence * self.config.confidence_boost)

    def _seed(self, observation: ScoredSample):
        self._state = np.array([observation.latitude, observation.longitude, 0.0, 0.0])
        self._covariance = self._diffuse_covariance()
        self._initialized = True
        logger.debug("Filter seeded at (%.7f, %.7f)", observation.latitude, observation.longitude)

    def _diffuse_covariance(self) -> np.ndarray:
        return np.eye(4) * self.config.initial_variance

"""
Raw Sample Ingestion Adapters.

Normalize platform inputs into the two shapes the estimation core uses:
- position_sample_from_event(): provider fix mapping -> PositionSample
- MotionSnapshot: sensor events -> latest MotionSample (thread-safe)

Sensor handling:
    - Accelerometer: gravity tracked with a low-pass filter (alpha 0.8),
      linear acceleration = reading - gravity
    - Linear-acceleration sensor: when present, its readings replace the
      derived linear acceleration
    - Magnetometer + gravity: rotation matrix -> (roll, pitch, yaw), valid
      once both have reported
    - Rotation vector: quaternion -> rotation matrix -> orientation
Any sensor may be missing; the snapshot then keeps zeros / invalid
orientation and dead reckoning degrades instead of failing.
"""

import logging
import math
import threading
from dataclasses import replace
from typing import Mapping, Optional

import numpy as np

from precision_core.proto.motion_sample import MotionSample, SensorEvent, SensorType, Vec3
from precision_core.proto.position_sample import PositionSample, SampleSource, SignalMetadata
from precision_core.metrics import get_metrics

logger = logging.getLogger(__name__)

GRAVITY_ALPHA = 0.8

# Below this |gravity x magnetic| norm the device is in free fall or near a magnetic pole
_MIN_HORIZONTAL_FIELD = 0.1


# =============================================================================
# Position adapters
# =============================================================================


def position_sample_from_event(event: Mapping, source: SampleSource) -> PositionSample:
    """
    Build a PositionSample from a platform location mapping.

    Expected keys: latitude, longitude, accuracy, time; optional altitude,
    bearing, bearing_accuracy, speed, speed_accuracy and an ``extras``
    mapping with satellites / hdop / vdop.

    Missing accuracy maps to the 0 "unknown" sentinel. Non-numeric
    accuracy and missing or non-numeric coordinates or time become NaN,
    so a malformed mapping never raises here and is rejected later by
    the buffer.
    """
    extras = event.get('extras') or {}
    metadata = SignalMetadata(
        satellite_count=_optional_int(extras.get('satellites')),
        hdop=_optional_float(extras.get('hdop')),
        vdop=_optional_float(extras.get('vdop')),
    )

    return PositionSample(
        latitude=_optional_float(event.get('latitude'), math.nan),
        longitude=_optional_float(event.get('longitude'), math.nan),
        horizontal_accuracy_m=_optional_float(event.get('accuracy') or 0.0, math.nan),
        timestamp=_optional_float(event.get('time'), math.nan),
        source=source,
        altitude=_optional_float(event.get('altitude')),
        bearing=_optional_float(event.get('bearing')),
        bearing_accuracy=_optional_float(event.get('bearing_accuracy')),
        speed_mps=_optional_float(event.get('speed')),
        speed_accuracy=_optional_float(event.get('speed_accuracy')),
        metadata=None if metadata.is_empty else metadata,
    )


def fill_missing_kinematics(
    sample: PositionSample,
    motion: Optional[MotionSample],
    fallback_speed_mps: Optional[float] = None,
) -> PositionSample:
    """
    Fill bearing/speed a provider did not report.

    Bearing falls back to the compass azimuth (degrees) when orientation
    is valid; speed falls back to the caller's last known-good speed.
    """
    bearing = sample.bearing
    if bearing is None and motion is not None and motion.orientation_valid:
        bearing = motion.azimuth_deg

    speed = sample.speed_mps
    if speed is None and fallback_speed_mps is not None:
        speed = fallback_speed_mps

    if bearing is sample.bearing and speed is sample.speed_mps:
        return sample
    return replace(sample, bearing=bearing, speed_mps=speed)


def _optional_float(value, default: Optional[float] = None) -> Optional[float]:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _optional_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# =============================================================================
# Motion snapshot
# =============================================================================


class MotionSnapshot:
    """
    Latest inertial/magnetic state, written by sensor callbacks.

    Usage:
        snapshot = MotionSnapshot()

        # sensor callback thread(s)
        snapshot.handle(SensorEvent(SensorType.ACCELEROMETER, (0.1, 9.8, 0.2), t))

        # estimation tick
        motion = snapshot.read()

    read() returns an immutable copy, so the consumer never observes a
    half-applied update.
    """

    def __init__(self, gravity_alpha: float = GRAVITY_ALPHA):
        """
        Initialize an empty snapshot.

        Args:
            gravity_alpha: Low-pass coefficient for gravity tracking
        """
        self.gravity_alpha = gravity_alpha
        self.metrics = get_metrics()

        self._lock = threading.Lock()
        self._sample = MotionSample()
        self._gravity: Optional[np.ndarray] = None
        self._has_accelerometer = False
        self._has_magnetometer = False
        self._has_linear_sensor = False
        self._has_rotation_vector = False

    def handle(self, event: SensorEvent) -> bool:
        """
        Apply one sensor event.

        Returns:
            True if applied, False for malformed events
        """
        if not event.is_valid:
            self.metrics.increment_drop('invalid_sample')
            return False

        self.metrics.increment('motion_events')
        values = tuple(float(v) for v in event.values)

        with self._lock:
            if event.sensor_type == SensorType.ACCELEROMETER:
                self._on_accelerometer(values[:3], event.timestamp)
            elif event.sensor_type == SensorType.LINEAR_ACCELERATION:
                self._has_linear_sensor = True
                self._sample = replace(
                    self._sample,
                    linear_acceleration=values[:3],
                    timestamp=event.timestamp,
                )
            elif event.sensor_type == SensorType.GYROSCOPE:
                self._sample = replace(self._sample, gyroscope=values[:3], timestamp=event.timestamp)
            elif event.sensor_type == SensorType.MAGNETOMETER:
                self._has_magnetometer = True
                self._sample = replace(self._sample, magnetometer=values[:3], timestamp=event.timestamp)
                self._update_orientation_from_field()
            elif event.sensor_type == SensorType.ROTATION_VECTOR:
                self._on_rotation_vector(values, event.timestamp)

        return True

    def read(self) -> MotionSample:
        """Immutable copy of the current motion state."""
        with self._lock:
            return self._sample

    def replace(self, sample: MotionSample):
        """Swap in a complete motion sample (for sources that pre-fuse sensors)."""
        with self._lock:
            self._sample = sample

    def release(self):
        """Clear all state at session teardown."""
        with self._lock:
            self._sample = MotionSample()
            self._gravity = None
            self._has_accelerometer = False
            self._has_magnetometer = False
            self._has_linear_sensor = False
            self._has_rotation_vector = False

    def _on_accelerometer(self, values: Vec3, timestamp: float):
        reading = np.array(values)
        if self._gravity is None:
            self._gravity = reading.copy()
        else:
            alpha = self.gravity_alpha
            self._gravity = alpha * self._gravity + (1.0 - alpha) * reading

        self._has_accelerometer = True
        updates = {'raw_accelerometer': values, 'timestamp': timestamp}
        if not self._has_linear_sensor:
            updates['linear_acceleration'] = tuple(float(v) for v in reading - self._gravity)
        self._sample = replace(self._sample, **updates)

        self._update_orientation_from_field()

    def _update_orientation_from_field(self):
        """Orientation from gravity + magnetic field, once both have reported."""
        if self._has_rotation_vector:
            return
        if not (self._has_accelerometer and self._has_magnetometer):
            return

        rotation = rotation_matrix_from_field(self._gravity, np.array(self._sample.magnetometer))
        if rotation is None:
            return

        self._sample = replace(
            self._sample,
            orientation=orientation_from_rotation(rotation),
            orientation_valid=True,
        )

    def _on_rotation_vector(self, values: tuple, timestamp: float):
        rotation = rotation_matrix_from_vector(values)
        self._has_rotation_vector = True
        self._sample = replace(
            self._sample,
            orientation=orientation_from_rotation(rotation),
            orientation_valid=True,
            timestamp=timestamp,
        )


def rotation_matrix_from_field(gravity: np.ndarray, geomagnetic: np.ndarray) -> Optional[np.ndarray]:
    """
    Device-to-world rotation from gravity and magnetic field vectors.

    Rows are the world East, North and Up axes expressed in device
    coordinates.

    Returns:
        3x3 rotation matrix, or None in free fall / degenerate field
    """
    east = np.cross(geomagnetic, gravity)
    norm_east = np.linalg.norm(east)
    norm_gravity = np.linalg.norm(gravity)
    if norm_east < _MIN_HORIZONTAL_FIELD or norm_gravity == 0:
        return None

    east = east / norm_east
    up = gravity / norm_gravity
    north = np.cross(up, east)
    return np.vstack([east, north, up])


def rotation_matrix_from_vector(values: tuple) -> np.ndarray:
    """
    Rotation matrix from a rotation-vector reading (x, y, z[, w]).

    The scalar part is reconstructed when not supplied.
    """
    q1, q2, q3 = values[0], values[1], values[2]
    if len(values) >= 4:
        q0 = values[3]
    else:
        q0 = math.sqrt(max(0.0, 1.0 - q1 * q1 - q2 * q2 - q3 * q3))

    return np.array([
        [1 - 2 * (q2 * q2 + q3 * q3), 2 * (q1 * q2 - q3 * q0), 2 * (q1 * q3 + q2 * q0)],
        [2 * (q1 * q2 + q3 * q0), 1 - 2 * (q1 * q1 + q3 * q3), 2 * (q2 * q3 - q1 * q0)],
        [2 * (q1 * q3 - q2 * q0), 2 * (q2 * q3 + q1 * q0), 1 - 2 * (q1 * q1 + q2 * q2)],
    ])


def orientation_from_rotation(rotation: np.ndarray) -> Vec3:
    """
    (roll, pitch, yaw) in radians from a rotation matrix.

    yaw is the azimuth of device y from magnetic north, clockwise.
    """
    yaw = math.atan2(rotation[0, 1], rotation[1, 1])
    pitch = math.asin(max(-1.0, min(1.0, -rotation[2, 1])))
    roll = math.atan2(-rotation[2, 0], rotation[2, 2])
    return (roll, pitch, yaw)

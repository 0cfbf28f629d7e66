"""
Motion Sample Message Schema.

Raw inertial/magnetic sensor events as delivered by a motion source, and
the MotionSample snapshot the dead-reckoning estimator consumes.

Frames:
    - Device frame vectors are (x, y, z) with x to the right of the
      screen, y toward the top, z out of the screen.
    - orientation is (roll, pitch, yaw) in radians; yaw is the azimuth
      of device y from magnetic north, clockwise positive.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Tuple
import math

Vec3 = Tuple[float, float, float]

ZERO_VEC3: Vec3 = (0.0, 0.0, 0.0)


class SensorType(IntEnum):
    """Sensor that produced a SensorEvent."""

    ACCELEROMETER = 1       # m/s², gravity included
    GYROSCOPE = 2           # rad/s
    MAGNETOMETER = 3        # µT
    ROTATION_VECTOR = 4     # unit quaternion vector part (x, y, z[, w])
    LINEAR_ACCELERATION = 5  # m/s², gravity removed by the platform


@dataclass
class SensorEvent:
    """
    One reading from a motion sensor.

    Attributes:
        sensor_type: Which sensor reported
        values: Sensor values (3 components, 4 for rotation vector with w)
        timestamp: Event time (seconds, session clock)
    """

    sensor_type: SensorType
    values: tuple
    timestamp: float

    @property
    def is_valid(self) -> bool:
        """True if the event carries at least 3 finite values."""
        if len(self.values) < 3:
            return False
        return all(math.isfinite(v) for v in self.values)


@dataclass(frozen=True)
class MotionSample:
    """
    Snapshot of inertial/magnetic sensor state at a point in time.

    Attributes:
        timestamp: Time of the most recent contributing event
        linear_acceleration: Gravity-compensated acceleration, device frame (m/s²)
        orientation: (roll, pitch, yaw) in radians
        raw_accelerometer: Last accelerometer reading (m/s²)
        gyroscope: Last gyroscope reading (rad/s)
        magnetometer: Last magnetometer reading (µT)
        orientation_valid: True once orientation has been derived from
            accelerometer + magnetometer or from a rotation vector
    """

    timestamp: float = 0.0
    linear_acceleration: Vec3 = ZERO_VEC3
    orientation: Vec3 = ZERO_VEC3
    raw_accelerometer: Vec3 = ZERO_VEC3
    gyroscope: Vec3 = ZERO_VEC3
    magnetometer: Vec3 = ZERO_VEC3
    orientation_valid: bool = False

    @property
    def azimuth_rad(self) -> float:
        """Heading of device y from magnetic north (radians)."""
        return self.orientation[2]

    @property
    def azimuth_deg(self) -> float:
        """Heading in degrees, normalized to [0, 360)."""
        return math.degrees(self.azimuth_rad) % 360.0

    @property
    def planar_acceleration_magnitude(self) -> float:
        ax, ay, _ = self.linear_acceleration
        return math.hypot(ax, ay)

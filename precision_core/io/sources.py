"""
Capability interfaces for position and motion providers.

The estimation core never talks to a platform API directly. A platform
binding implements PositionSource / MotionSource, delivers samples to the
registered callbacks from its own threads, and stops delivering once the
returned Subscription is cancelled.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from precision_core.proto.position_sample import PositionSample
from precision_core.proto.tracking_mode import TrackingMode

logger = logging.getLogger(__name__)

PositionCallback = Callable[[PositionSample], None]
AvailabilityCallback = Callable[[bool], None]
# Receives SensorEvent (raw sensor reading) or MotionSample (pre-fused state)
MotionCallback = Callable[[object], None]


class Subscription:
    """
    Handle for one registered callback.

    cancel() is idempotent and thread-safe; once it returns, the source
    has dropped the callback.
    """

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None, name: str = ""):
        self.name = name
        self._on_cancel = on_cancel
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self):
        with self._lock:
            if not self._active:
                return
            self._active = False
            on_cancel = self._on_cancel
            self._on_cancel = None

        if on_cancel is not None:
            on_cancel()
        logger.debug("Subscription %s cancelled", self.name or id(self))


class PositionSource(ABC):
    """Provider of satellite, network and fused-provider fixes."""

    @abstractmethod
    def subscribe_position(
        self,
        mode: TrackingMode,
        on_sample: PositionCallback,
        on_availability: Optional[AvailabilityCallback] = None,
    ) -> Subscription:
        """
        Register for position samples at the cadence of ``mode``.

        Args:
            mode: Tracking mode selecting provider request cadence
            on_sample: Called with each PositionSample
            on_availability: Called with False when the platform disables
                positioning, True when it is re-enabled

        Returns:
            Subscription used to unregister

        Raises:
            PermissionDenied: No access to location services
            ProviderUnavailable: Location services disabled
        """


class MotionSource(ABC):
    """Provider of inertial and magnetic sensor readings (best effort)."""

    @abstractmethod
    def subscribe_motion(self, on_event: MotionCallback) -> Subscription:
        """
        Register for motion readings.

        Missing sensors are not an error; the source simply never reports
        them.

        Raises:
            PermissionDenied: No access to motion sensors
        """

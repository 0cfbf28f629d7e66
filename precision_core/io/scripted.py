"""
Scripted capability sources and a manual clock.

In-process stand-ins for platform bindings, used for replaying recorded
or synthetic drives (demo, tests). Delivery happens synchronously on the
caller's thread, like a platform callback would on its own thread.
"""

import logging
import threading
from typing import Dict, List, Optional

from precision_core.errors import PermissionDenied, ProviderUnavailable
from precision_core.proto.position_sample import PositionSample
from precision_core.proto.tracking_mode import TrackingMode
from precision_core.io.sources import (
    AvailabilityCallback,
    MotionCallback,
    MotionSource,
    PositionCallback,
    PositionSource,
    Subscription,
)

logger = logging.getLogger(__name__)


class ManualClock:
    """
    Settable time source for deterministic replay.

    Usage:
        clock = ManualClock(100.0)
        buffer = SampleBuffer(clock=clock)
        clock.advance(0.1)
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, dt: float) -> float:
        if dt < 0:
            raise ValueError(f"Cannot move clock backwards by {dt}")
        with self._lock:
            self._now += dt
            return self._now

    def set(self, t: float):
        with self._lock:
            self._now = t


class ScriptedPositionSource(PositionSource):
    """
    Position source driven by explicit emit() calls.

    Attributes:
        permission_granted: If False, subscribe raises PermissionDenied
        available: If False, subscribe raises ProviderUnavailable
        delivered: Samples handed to callbacks so far
        requested_modes: Modes of every subscription made
    """

    def __init__(self, permission_granted: bool = True, available: bool = True):
        self.permission_granted = permission_granted
        self.available = available
        self.delivered = 0
        self.requested_modes: List[TrackingMode] = []

        self._lock = threading.Lock()
        self._next_id = 0
        self._subscribers: Dict[int, tuple] = {}

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe_position(
        self,
        mode: TrackingMode,
        on_sample: PositionCallback,
        on_availability: Optional[AvailabilityCallback] = None,
    ) -> Subscription:
        if not self.permission_granted:
            raise PermissionDenied("Location permission not granted")
        if not self.available:
            raise ProviderUnavailable("Location services disabled")

        with self._lock:
            key = self._next_id
            self._next_id += 1
            self._subscribers[key] = (on_sample, on_availability)
            self.requested_modes.append(mode)

        logger.debug("Position subscriber %d registered (mode=%s)", key, mode.value)
        return Subscription(lambda: self._unsubscribe(key), name=f"position-{key}")

    def emit(self, sample: PositionSample) -> int:
        """
        Deliver a sample to every subscriber.

        Returns:
            Number of callbacks invoked
        """
        with self._lock:
            callbacks = [on_sample for on_sample, _ in self._subscribers.values()]

        for on_sample in callbacks:
            on_sample(sample)

        self.delivered += len(callbacks)
        return len(callbacks)

    def set_available(self, available: bool) -> int:
        """Toggle platform availability and notify subscribers."""
        self.available = available
        with self._lock:
            callbacks = [cb for _, cb in self._subscribers.values() if cb is not None]

        for on_availability in callbacks:
            on_availability(available)
        return len(callbacks)

    def _unsubscribe(self, key: int):
        with self._lock:
            self._subscribers.pop(key, None)


class ScriptedMotionSource(MotionSource):
    """Motion source driven by explicit emit() calls."""

    def __init__(self, permission_granted: bool = True):
        self.permission_granted = permission_granted
        self.delivered = 0

        self._lock = threading.Lock()
        self._next_id = 0
        self._subscribers: Dict[int, MotionCallback] = {}

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe_motion(self, on_event: MotionCallback) -> Subscription:
        if not self.permission_granted:
            raise PermissionDenied("Motion sensor permission not granted")

        with self._lock:
            key = self._next_id
            self._next_id += 1
            self._subscribers[key] = on_event

        return Subscription(lambda: self._unsubscribe(key), name=f"motion-{key}")

    def emit(self, event) -> int:
        """Deliver a SensorEvent or MotionSample to every subscriber."""
        with self._lock:
            callbacks = list(self._subscribers.values())

        for on_event in callbacks:
            on_event(event)

        self.delivered += len(callbacks)
        return len(callbacks)

    def _unsubscribe(self, key: int):
        with self._lock:
            self._subscribers.pop(key, None)

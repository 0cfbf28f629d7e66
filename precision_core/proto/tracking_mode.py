"""
Tracking mode and provider request cadence.

TrackingMode is chosen by the caller at session start and never changed
internally. It selects how often the fused provider is polled and how
much precision is traded for power.
"""

from dataclasses import dataclass
from enum import Enum


class Granularity(Enum):
    """Requested fix granularity."""

    FINE = "fine"
    COARSE = "coarse"


@dataclass(frozen=True)
class ProviderRequest:
    """
    Cadence requested from a positioning provider.

    Attributes:
        interval_ms: Desired update interval
        min_interval_ms: Fastest acceptable interval
        max_delay_ms: Maximum batching delay
        min_distance_m: Minimum displacement between updates
        granularity: Fine or coarse fixes
        wait_for_accurate: Hold the first fix until it is accurate
    """

    interval_ms: int
    min_interval_ms: int
    max_delay_ms: int
    min_distance_m: float
    granularity: Granularity = Granularity.FINE
    wait_for_accurate: bool = False

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000.0


class TrackingMode(Enum):
    """Precision / power trade-off for a tracking session."""

    HIGH_ACCURACY = "high_accuracy"
    BALANCED = "balanced"
    LOW_POWER = "low_power"

    def provider_request(self) -> ProviderRequest:
        """Fused-provider request for this mode."""
        return _MODE_REQUESTS[self]

    @classmethod
    def from_name(cls, name: str) -> 'TrackingMode':
        """
        Parse a mode name ("high_accuracy", "HIGH_ACCURACY", "balanced", ...).

        Raises:
            ValueError: If the name is not a known mode
        """
        key = name.strip().lower().replace('-', '_')
        for mode in cls:
            if mode.value == key:
                return mode
        raise ValueError(f"Unknown tracking mode: {name!r}")


_MODE_REQUESTS = {
    TrackingMode.HIGH_ACCURACY: ProviderRequest(
        interval_ms=1000,
        min_interval_ms=500,
        max_delay_ms=1000,
        min_distance_m=1.0,
        granularity=Granularity.FINE,
        wait_for_accurate=True,
    ),
    TrackingMode.BALANCED: ProviderRequest(
        interval_ms=3000,
        min_interval_ms=1000,
        max_delay_ms=5000,
        min_distance_m=5.0,
        granularity=Granularity.FINE,
    ),
    TrackingMode.LOW_POWER: ProviderRequest(
        interval_ms=10000,
        min_interval_ms=5000,
        max_delay_ms=30000,
        min_distance_m=50.0,
        granularity=Granularity.COARSE,
    ),
}

# Satellite and network providers run at fixed cadences regardless of mode
SATELLITE_REQUEST = ProviderRequest(
    interval_ms=1000,
    min_interval_ms=1000,
    max_delay_ms=1000,
    min_distance_m=1.0,
)

NETWORK_REQUEST = ProviderRequest(
    interval_ms=3000,
    min_interval_ms=3000,
    max_delay_ms=3000,
    min_distance_m=10.0,
)

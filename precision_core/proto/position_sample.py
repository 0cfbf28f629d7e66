"""
Position Sample Message Schema.

Normalized form of a single reported fix from any positioning provider
(satellite, network, or the platform's fused provider), plus the scored
variant used inside the estimation tick.

Accuracy convention:
    horizontal_accuracy_m == 0 is the "unknown accuracy" sentinel. It is
    scored at the confidence floor and mapped to UNKNOWN_ACCURACY_M
    wherever an accuracy is used as a variance, never to zero variance.
"""

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Optional
import math


# Accuracy assumed for samples reporting the zero sentinel (m)
UNKNOWN_ACCURACY_M = 100.0


class SampleSource(IntEnum):
    """Positioning provider that produced a sample."""

    SATELLITE = 0        # GNSS chipset fix
    NETWORK = 1          # Cell / Wi-Fi based fix
    FUSED_PROVIDER = 2   # Platform's own fused location


# Tie-break order when two candidates are otherwise equal (higher wins)
SOURCE_PRIORITY = {
    SampleSource.SATELLITE: 2,
    SampleSource.FUSED_PROVIDER: 1,
    SampleSource.NETWORK: 0,
}


@dataclass
class SignalMetadata:
    """
    Raw-signal quality metadata reported alongside some fixes.

    Attributes:
        satellite_count: Satellites used in the fix
        hdop: Horizontal Dilution of Precision
        vdop: Vertical Dilution of Precision
    """

    satellite_count: Optional[int] = None
    hdop: Optional[float] = None
    vdop: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.satellite_count is None and self.hdop is None and self.vdop is None


@dataclass
class PositionSample:
    """
    One reported fix.

    Attributes:
        latitude: WGS84 latitude (degrees)
        longitude: WGS84 longitude (degrees)
        horizontal_accuracy_m: Reported 68% horizontal radius (m), 0 = unknown
        timestamp: Fix time (seconds, session clock)
        source: Provider that produced the fix
        altitude: Altitude (m), if reported
        bearing: Course over ground (degrees), if reported
        bearing_accuracy: Bearing accuracy (degrees), if reported
        speed_mps: Ground speed (m/s), if reported
        speed_accuracy: Speed accuracy (m/s), if reported
        metadata: Satellite count / DOP values, if reported

    Notes:
        - Samples are never rejected at construction; degenerate values are
          reported through is_valid / rejection_reason and dropped by the
          sample buffer with a counted reason.
    """

    latitude: float
    longitude: float
    horizontal_accuracy_m: float
    timestamp: float
    source: SampleSource

    altitude: Optional[float] = None
    bearing: Optional[float] = None
    bearing_accuracy: Optional[float] = None
    speed_mps: Optional[float] = None
    speed_accuracy: Optional[float] = None
    metadata: Optional[SignalMetadata] = None

    def rejection_reason(self) -> Optional[str]:
        """
        Drop reason code for a degenerate sample.

        Returns:
            Reason code, or None if the sample is usable
        """
        if not (_is_finite(self.latitude) and _is_finite(self.longitude)):
            return 'nan_coordinates'
        if abs(self.latitude) > 90.0 or abs(self.longitude) > 180.0:
            return 'nan_coordinates'
        if not _is_finite(self.horizontal_accuracy_m):
            return 'invalid_sample'
        if self.horizontal_accuracy_m < 0:
            return 'negative_accuracy'
        if not _is_finite(self.timestamp):
            return 'invalid_sample'
        return None

    @property
    def is_valid(self) -> bool:
        """True if the sample passes basic validity checks."""
        return self.rejection_reason() is None

    @property
    def has_unknown_accuracy(self) -> bool:
        """True for the zero-accuracy sentinel."""
        return self.horizontal_accuracy_m == 0

    @property
    def effective_accuracy_m(self) -> float:
        """Accuracy usable as a variance scale (sentinel mapped to UNKNOWN_ACCURACY_M)."""
        if self.has_unknown_accuracy:
            return UNKNOWN_ACCURACY_M
        return self.horizontal_accuracy_m

    @property
    def has_speed(self) -> bool:
        return self.speed_mps is not None and _is_finite(self.speed_mps)

    def age_at(self, t_now: float) -> float:
        """Age of this fix at t_now, clamped to >= 0 for future timestamps."""
        return max(0.0, t_now - self.timestamp)


@dataclass
class ScoredSample:
    """
    PositionSample paired with its confidence.

    Derived inside a single estimation tick, never persisted.
    """

    sample: PositionSample
    confidence: float

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be in [0,1]: {self.confidence}")

    @property
    def source(self) -> SampleSource:
        return self.sample.source

    @property
    def latitude(self) -> float:
        return self.sample.latitude

    @property
    def longitude(self) -> float:
        return self.sample.longitude

    @property
    def horizontal_accuracy_m(self) -> float:
        return self.sample.horizontal_accuracy_m

    @property
    def timestamp(self) -> float:
        return self.sample.timestamp

    def with_estimate(
        self,
        latitude: float,
        longitude: float,
        confidence: float,
        horizontal_accuracy_m: Optional[float] = None,
    ) -> 'ScoredSample':
        """
        Copy with a new position/confidence, keeping the non-averaged fields.

        Args:
            latitude: New latitude
            longitude: New longitude
            confidence: New confidence (clamped to [0,1])
            horizontal_accuracy_m: New accuracy (keeps current if None)
        """
        accuracy = self.sample.horizontal_accuracy_m
        if horizontal_accuracy_m is not None:
            accuracy = horizontal_accuracy_m

        return ScoredSample(
            sample=replace(
                self.sample,
                latitude=latitude,
                longitude=longitude,
                horizontal_accuracy_m=accuracy,
            ),
            confidence=min(1.0, max(0.0, confidence)),
        )


def _is_finite(value) -> bool:
    try:
        return math.isfinite(value)
    except TypeError:
        return False

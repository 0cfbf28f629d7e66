"""
Precision Location Output Schema.

The record emitted on every estimation tick: a flat, immutable value that
callers can display or forward over a network channel.

Confidence semantics:
    - Direct or filtered fixes carry the scorer/filter confidence
    - Dead-reckoned locations decay geometrically with each step
    - Near-zero confidence means "treat as unknown", not an error
"""

from dataclasses import dataclass, replace, asdict
from typing import Optional
import json

from .position_sample import SampleSource, ScoredSample


@dataclass(frozen=True)
class PrecisionLocation:
    """
    Best-estimate position for one tick.

    Attributes:
        latitude: Estimated latitude (degrees)
        longitude: Estimated longitude (degrees)
        accuracy_m: Estimated horizontal accuracy (m)
        bearing: Course (degrees), if known
        speed_mps: Ground speed (m/s), if known
        timestamp: Tick time at which the estimate was produced
        confidence: Heuristic trust in [0,1]
        is_interpolated: True only for dead-reckoned projections
        source: Provider tag of the sample the estimate is based on
        altitude: Altitude (m), if known
        bearing_accuracy: Bearing accuracy (degrees), if known
        speed_accuracy: Speed accuracy (m/s), if known
        fix_timestamp: Timestamp of the underlying provider fix
        satellite_count: Satellites used, if reported by the source
        hdop: Horizontal DOP, if reported
        vdop: Vertical DOP, if reported
    """

    latitude: float
    longitude: float
    accuracy_m: float
    bearing: Optional[float]
    speed_mps: Optional[float]
    timestamp: float
    confidence: float
    is_interpolated: bool = False

    source: Optional[SampleSource] = None
    altitude: Optional[float] = None
    bearing_accuracy: Optional[float] = None
    speed_accuracy: Optional[float] = None
    fix_timestamp: Optional[float] = None
    satellite_count: Optional[int] = None
    hdop: Optional[float] = None
    vdop: Optional[float] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be in [0,1]: {self.confidence}")

    @classmethod
    def from_scored(
        cls,
        scored: ScoredSample,
        timestamp: float,
        is_interpolated: bool = False,
    ) -> 'PrecisionLocation':
        """
        Build an output record from a scored (fused or filtered) sample.

        Args:
            scored: Sample carrying position, accuracy and confidence
            timestamp: Tick time to stamp on the record
            is_interpolated: Whether the position was projected
        """
        sample = scored.sample
        metadata = sample.metadata

        return cls(
            latitude=sample.latitude,
            longitude=sample.longitude,
            accuracy_m=sample.horizontal_accuracy_m,
            bearing=sample.bearing,
            speed_mps=sample.speed_mps,
            timestamp=timestamp,
            confidence=scored.confidence,
            is_interpolated=is_interpolated,
            source=sample.source,
            altitude=sample.altitude,
            bearing_accuracy=sample.bearing_accuracy,
            speed_accuracy=sample.speed_accuracy,
            fix_timestamp=sample.timestamp,
            satellite_count=metadata.satellite_count if metadata else None,
            hdop=metadata.hdop if metadata else None,
            vdop=metadata.vdop if metadata else None,
        )

    def restamped(self, timestamp: float) -> 'PrecisionLocation':
        """Same estimate re-emitted at a later tick."""
        return replace(self, timestamp=timestamp)

    @property
    def is_unknown(self) -> bool:
        """True when confidence is too low to be used as a position."""
        return self.confidence < 0.05

    def to_dict(self) -> dict:
        """Flat dictionary for JSON / logging."""
        data = asdict(self)
        data['source'] = self.source.name if self.source is not None else None
        return data

    def to_json(self) -> str:
        """Serialize to a JSON string."""
        return json.dumps(self.to_dict())


def create_stale_location(
    last_known_good: PrecisionLocation,
    t_now: float,
    confidence: float = 0.01,
) -> PrecisionLocation:
    """
    Re-emit the last known-good position with near-zero confidence.

    Used when extrapolating further would only fabricate a position.

    Args:
        last_known_good: Last trusted location
        t_now: Tick time
        confidence: Confidence to report (capped at the original's)
    """
    return replace(
        last_known_good,
        timestamp=t_now,
        confidence=min(confidence, last_known_good.confidence),
        is_interpolated=True,
    )

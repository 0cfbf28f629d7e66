"""
Protocol Module: Sample and output schemas.

- PositionSample / ScoredSample: normalized provider fixes
- SensorEvent / MotionSample: inertial and magnetic sensor state
- PrecisionLocation: the per-tick output record
- TrackingMode / ProviderRequest: session cadence selection
"""

from .position_sample import (
    PositionSample,
    ScoredSample,
    SampleSource,
    SignalMetadata,
    SOURCE_PRIORITY,
    UNKNOWN_ACCURACY_M,
)
from .motion_sample import (
    MotionSample,
    SensorEvent,
    SensorType,
)
from .precision_location import (
    PrecisionLocation,
    create_stale_location,
)
from .tracking_mode import (
    TrackingMode,
    ProviderRequest,
    Granularity,
    SATELLITE_REQUEST,
    NETWORK_REQUEST,
)

__all__ = [
    'PositionSample',
    'ScoredSample',
    'SampleSource',
    'SignalMetadata',
    'SOURCE_PRIORITY',
    'UNKNOWN_ACCURACY_M',
    'MotionSample',
    'SensorEvent',
    'SensorType',
    'PrecisionLocation',
    'create_stale_location',
    'TrackingMode',
    'ProviderRequest',
    'Granularity',
    'SATELLITE_REQUEST',
    'NETWORK_REQUEST',
]

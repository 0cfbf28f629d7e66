"""
Fix accuracy classification.

Maps a reported horizontal accuracy onto a coarse quality level. The
levels share their breakpoints with the confidence scorer's accuracy
factor and with the "good fix" bypass in the fusion engine.
"""

from enum import Enum
from typing import Optional

from precision_core.proto.position_sample import PositionSample, SampleSource


class AccuracyLevel(Enum):
    """Horizontal accuracy level of a fix."""

    EXCELLENT = 0   # <= 5 m
    GOOD = 1        # <= 10 m
    FAIR = 2        # <= 20 m
    POOR = 3        # <= 50 m
    VERY_POOR = 4   # > 50 m, or unknown


# Upper bound (m) of each level, in order
ACCURACY_LEVEL_BOUNDS_M = (
    (5.0, AccuracyLevel.EXCELLENT),
    (10.0, AccuracyLevel.GOOD),
    (20.0, AccuracyLevel.FAIR),
    (50.0, AccuracyLevel.POOR),
)

GOOD_FIX_ACCURACY_M = 5.0


def accuracy_level(accuracy_m: Optional[float]) -> AccuracyLevel:
    """
    Classify a horizontal accuracy.

    Args:
        accuracy_m: Reported accuracy (m); 0 or None means unknown

    Returns:
        AccuracyLevel (VERY_POOR for unknown or degenerate values)
    """
    if accuracy_m is None or not accuracy_m > 0:
        return AccuracyLevel.VERY_POOR

    for bound_m, level in ACCURACY_LEVEL_BOUNDS_M:
        if accuracy_m <= bound_m:
            return level

    return AccuracyLevel.VERY_POOR


def is_good_satellite_fix(
    sample: PositionSample,
    threshold_m: float = GOOD_FIX_ACCURACY_M,
) -> bool:
    """
    True for a satellite fix precise enough to bypass fusion.

    The zero-accuracy sentinel never qualifies.
    """
    if sample.source != SampleSource.SATELLITE:
        return False
    if sample.has_unknown_accuracy:
        return False
    return sample.horizontal_accuracy_m <= threshold_m

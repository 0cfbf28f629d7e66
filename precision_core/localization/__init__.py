"""
Localization Module: Scoring, buffering, fusion, filtering, dead reckoning.

Key classes:
- ConfidenceScorer: Accuracy x age x plausibility heuristic
- SampleBuffer: Concurrent-safe, time-windowed sample store
- FusionEngine: Direct-fix bypass, weighted centroid, best-confidence
- RecursiveFilter: Diagonal constant-velocity smoother
- OutageDetector: Tracking / Gap timeout state machine
- DeadReckoningEstimator: Inertial projection during gaps
- EstimationLoop: Fixed-rate consumer tying the above together
"""

from .geodesy import (
    METERS_PER_DEGREE_LAT,
    meters_per_degree_lon,
    offset_position,
    distance_m,
    bearing_deg,
)
from .signal_quality import (
    AccuracyLevel,
    accuracy_level,
    is_good_satellite_fix,
    GOOD_FIX_ACCURACY_M,
)
from .confidence_scorer import ConfidenceScorer, ConfidenceScorerConfig
from .sample_buffer import SampleBuffer, SampleBufferConfig
from .fusion_engine import FusionEngine, FusionConfig, FusionStrategy
from .recursive_filter import RecursiveFilter, RecursiveFilterConfig, EstimateState
from .outage_detector import OutageDetector, OutageDetectorConfig, OutageState
from .dead_reckoning import DeadReckoningEstimator, DeadReckoningConfig, planar_acceleration
from .estimation_loop import EstimationLoop, EstimationLoopConfig

__all__ = [
    # Geodesy
    'METERS_PER_DEGREE_LAT',
    'meters_per_degree_lon',
    'offset_position',
    'distance_m',
    'bearing_deg',
    # Signal quality
    'AccuracyLevel',
    'accuracy_level',
    'is_good_satellite_fix',
    'GOOD_FIX_ACCURACY_M',
    # Pipeline stages
    'ConfidenceScorer',
    'ConfidenceScorerConfig',
    'SampleBuffer',
    'SampleBufferConfig',
    'FusionEngine',
    'FusionConfig',
    'FusionStrategy',
    'RecursiveFilter',
    'RecursiveFilterConfig',
    'EstimateState',
    'OutageDetector',
    'OutageDetectorConfig',
    'OutageState',
    'DeadReckoningEstimator',
    'DeadReckoningConfig',
    'planar_acceleration',
    # Loop
    'EstimationLoop',
    'EstimationLoopConfig',
]

"""
Precision Core Package.

Multi-source location estimation: satellite, fused-provider and network
fixes blended at a fixed rate, with inertial dead reckoning through
signal outages.

Package structure:
- io: Capability sources, sensor adapters, output stream
- proto: Sample and location records, tracking modes
- localization: Scoring, fusion, filtering, outage detection, estimation loop
- metrics: Counters, drop reasons, histograms
- tracker: Session API (start / stop)
"""

__version__ = "0.1.0"

from .errors import PermissionDenied, ProviderUnavailable
from .tracker import PrecisionLocationTracker, PrecisionTrackerConfig

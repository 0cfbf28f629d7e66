"""
Pytest configuration and shared fixtures for precision location tests.

Provides sample factories, a manual clock and a fresh metrics collector
for every test, so counters observed in one test never leak into another.
"""

import sys
from pathlib import Path
from typing import Callable

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from precision_core.io import ManualClock
from precision_core.metrics import get_metrics, reset_metrics
from precision_core.proto import PositionSample, SampleSource, ScoredSample


# Reference point used throughout the tests (Bengaluru)
BASE_LAT = 12.9716
BASE_LON = 77.5946

T0 = 1000.0


# =============================================================================
# Metrics
# =============================================================================


@pytest.fixture(autouse=True)
def metrics():
    """
    Fresh global metrics collector for each test.

    Components bind the collector at construction, so build them inside
    the test (after this fixture ran).
    """
    reset_metrics()
    return get_metrics()


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    """Manual session clock starting at T0."""
    return ManualClock(T0)


# =============================================================================
# Sample Factories
# =============================================================================


@pytest.fixture
def make_sample() -> Callable[..., PositionSample]:
    """
    Factory for PositionSample with sensible defaults.

    Defaults: satellite fix at the reference point, 4 m accuracy, t=T0.
    """

    def _make(
        lat: float = BASE_LAT,
        lon: float = BASE_LON,
        accuracy: float = 4.0,
        timestamp: float = T0,
        source: SampleSource = SampleSource.SATELLITE,
        **kwargs,
    ) -> PositionSample:
        return PositionSample(
            latitude=lat,
            longitude=lon,
            horizontal_accuracy_m=accuracy,
            timestamp=timestamp,
            source=source,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_scored(make_sample) -> Callable[..., ScoredSample]:
    """Factory for ScoredSample: make_scored(confidence, **sample_kwargs)."""

    def _make(confidence: float = 1.0, **kwargs) -> ScoredSample:
        return ScoredSample(sample=make_sample(**kwargs), confidence=confidence)

    return _make

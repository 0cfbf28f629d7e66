"""
Confidence Scorer for Position Samples.

Assigns each incoming fix a scalar confidence in [0,1] as the product of
three independent factors:

    confidence = accuracy_factor * age_factor * plausibility_factor

Accuracy factor (reported horizontal accuracy):
    <= 5 m: 1.0, <= 10 m: 0.9, <= 20 m: 0.7, <= 50 m: 0.5, else 0.3
Age factor (evaluation time - fix time):
    <= 1 s: 1.0, <= 3 s: 0.9, <= 5 s: 0.7, else 0.5
Plausibility factor (only when speed is reported):
    <= 150 km/h: 1.0, <= 200 km/h: 0.7, else 0.3

This is an explainable heuristic, not a statistical model. Samples with
unknown accuracy (0) take the accuracy floor; degenerate samples score 0.
"""

from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass

from precision_core.proto.position_sample import PositionSample, ScoredSample, SampleSource
from precision_core.metrics import get_metrics

# (upper bound, factor) pairs, checked in order; the floor applies past the last bound
Breakpoints = Tuple[Tuple[float, float], ...]

MPS_TO_KMH = 3.6


@dataclass
class ConfidenceScorerConfig:
    """
    Breakpoints for the three confidence factors.

    Attributes:
        accuracy_breakpoints: (max accuracy m, factor) pairs
        accuracy_floor: Factor beyond the last accuracy bound, and for unknown accuracy
        age_breakpoints: (max age s, factor) pairs
        age_floor: Factor beyond the last age bound
        speed_breakpoints_kmh: (max speed km/h, factor) pairs
        speed_floor: Factor beyond the last speed bound
    """

    accuracy_breakpoints: Breakpoints = ((5.0, 1.0), (10.0, 0.9), (20.0, 0.7), (50.0, 0.5))
    accuracy_floor: float = 0.3
    age_breakpoints: Breakpoints = ((1.0, 1.0), (3.0, 0.9), (5.0, 0.7))
    age_floor: float = 0.5
    speed_breakpoints_kmh: Breakpoints = ((150.0, 1.0), (200.0, 0.7))
    speed_floor: float = 0.3

    def __post_init__(self):
        for name in ('accuracy_floor', 'age_floor', 'speed_floor'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0,1]: {value}")


class ConfidenceScorer:
    """
    Pure confidence scoring for position samples.

    Usage:
        scorer = ConfidenceScorer()
        confidence = scorer.score(sample, t_now)

        # Whole buffer read, keyed by source
        scored = scorer.score_batch(buffer.recent(t_now=t_now), t_now)
    """

    def __init__(self, config: Optional[ConfidenceScorerConfig] = None):
        """
        Initialize scorer.

        Args:
            config: Factor breakpoints (uses defaults if None)
        """
        self.config = config or ConfidenceScorerConfig()
        self.metrics = get_metrics()

    def score(self, sample: PositionSample, t_now: float) -> float:
        """
        Confidence of a sample evaluated at t_now.

        Args:
            sample: Position sample
            t_now: Evaluation time (same clock as sample.timestamp)

        Returns:
            Confidence in [0,1]; 0.0 for degenerate samples
        """
        if not sample.is_valid:
            return 0.0

        confidence = (
            self.accuracy_factor(sample)
            * self.age_factor(sample.age_at(t_now))
            * self.plausibility_factor(sample)
        )
        return min(1.0, max(0.0, confidence))

    def score_sample(self, sample: PositionSample, t_now: float) -> ScoredSample:
        """Pair a sample with its confidence."""
        return ScoredSample(sample=sample, confidence=self.score(sample, t_now))

    def score_batch(
        self,
        samples_by_source: Dict[SampleSource, Sequence[PositionSample]],
        t_now: float,
    ) -> Dict[SampleSource, List[ScoredSample]]:
        """
        Score every sample of a partitioned buffer read.

        Returns:
            Same partitioning with ScoredSample lists (empty sources omitted)
        """
        scored = {}
        for source, samples in samples_by_source.items():
            if samples:
                scored[source] = [self.score_sample(s, t_now) for s in samples]

        for samples in scored.values():
            for item in samples:
                self.metrics.record_histogram('sample_confidence', item.confidence)

        return scored

    def accuracy_factor(self, sample: PositionSample) -> float:
        """Factor from reported horizontal accuracy."""
        if sample.has_unknown_accuracy:
            return self.config.accuracy_floor
        return _lookup(sample.horizontal_accuracy_m, self.config.accuracy_breakpoints,
                       self.config.accuracy_floor)

    def age_factor(self, age_s: float) -> float:
        """Factor from sample age (seconds)."""
        return _lookup(max(0.0, age_s), self.config.age_breakpoints, self.config.age_floor)

    def plausibility_factor(self, sample: PositionSample) -> float:
        """Factor from reported speed; 1.0 when no speed is reported."""
        if not sample.has_speed:
            return 1.0
        if sample.speed_mps < 0:
            return self.config.speed_floor

        speed_kmh = sample.speed_mps * MPS_TO_KMH
        return _lookup(speed_kmh, self.config.speed_breakpoints_kmh, self.config.speed_floor)


def _lookup(value: float, breakpoints: Breakpoints, floor: float) -> float:
    """First factor whose bound covers value, clamped to [floor, 1]."""
    for bound, factor in breakpoints:
        if value <= bound:
            return min(1.0, max(floor, factor))
    return floor

"""
Multi-Source Fusion Engine.

Combines the scored samples of one buffer read into a single estimate.
Three strategies, tried in order:

1. Direct fix: a satellite sample with accuracy <= 5 m is returned
   untouched, so no fusion noise is injected into an already precise fix.
2. Weighted centroid (only when a fused-provider sample exists): every
   sample gets weight = base_weight[source] * confidence, with base
   weights satellite 0.7, network 0.2, fused provider the remainder.
   Latitude, longitude and accuracy are the normalized weighted means;
   the heaviest sample supplies bearing, speed and provider tag.
3. Best confidence: the highest-confidence sample, unmodified.

The weights are fixed heuristics, not derived from sample covariances.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, TypeVar

from precision_core.proto.position_sample import ScoredSample, SampleSource, SOURCE_PRIORITY
from precision_core.localization.signal_quality import is_good_satellite_fix
from precision_core.metrics import get_metrics

logger = logging.getLogger(__name__)

T = TypeVar('T')


class FusionStrategy(Enum):
    """How the last fused estimate was produced."""

    DIRECT_FIX = "direct_fix"
    WEIGHTED = "weighted"
    BEST_CONFIDENCE = "best_confidence"
    FALLBACK = "fallback"


@dataclass
class FusionConfig:
    """
    Configuration for the fusion engine.

    Attributes:
        good_fix_accuracy_m: Satellite accuracy at or below which fusion is bypassed
        satellite_weight: Base weight of satellite samples
        network_weight: Base weight of network samples
    """

    good_fix_accuracy_m: float = 5.0
    satellite_weight: float = 0.7
    network_weight: float = 0.2

    def __post_init__(self):
        if self.satellite_weight < 0 or self.network_weight < 0:
            raise ValueError("Base weights cannot be negative")
        if self.satellite_weight + self.network_weight > 1.0:
            raise ValueError(
                f"Base weights exceed 1.0: {self.satellite_weight} + {self.network_weight}"
            )

    @property
    def fused_provider_weight(self) -> float:
        """Remainder of the unit weight budget."""
        return 1.0 - self.satellite_weight - self.network_weight

    def base_weight(self, source: SampleSource) -> float:
        if source == SampleSource.SATELLITE:
            return self.satellite_weight
        if source == SampleSource.NETWORK:
            return self.network_weight
        return self.fused_provider_weight


class FusionEngine:
    """
    Fuse scored samples from several providers into one estimate.

    Usage:
        engine = FusionEngine()
        scored = scorer.score_batch(buffer.recent(t_now=t), t)
        fused = engine.fuse(scored, fallback=last_known_good)
        if fused is not None:
            print(engine.last_strategy, fused.latitude, fused.longitude)

    Not thread-safe; called only from the estimation tick.
    """

    def __init__(self, config: Optional[FusionConfig] = None):
        """
        Initialize fusion engine.

        Args:
            config: Fusion configuration (uses defaults if None)
        """
        self.config = config or FusionConfig()
        self.metrics = get_metrics()
        self.last_strategy: Optional[FusionStrategy] = None

    def fuse(
        self,
        scored_by_source: Dict[SampleSource, Sequence[ScoredSample]],
        fallback: Optional[T] = None,
    ):
        """
        Produce one estimate from the current buffer contents.

        Args:
            scored_by_source: Scored samples keyed by source
            fallback: Returned as-is when there are no samples at all
                (the caller's last known-good estimate, may be None)

        Returns:
            ScoredSample, or fallback when no samples exist
        """
        candidates = [s for samples in scored_by_source.values() for s in samples]

        if not candidates:
            self._record(FusionStrategy.FALLBACK)
            return fallback

        self.metrics.record_histogram('fusion_input_count', len(candidates))

        direct = self._direct_fix(scored_by_source.get(SampleSource.SATELLITE, ()))
        if direct is not None:
            self._record(FusionStrategy.DIRECT_FIX)
            return direct

        if scored_by_source.get(SampleSource.FUSED_PROVIDER):
            fused = self._weighted_centroid(candidates)
            if fused is not None:
                self._record(FusionStrategy.WEIGHTED)
                return fused
            logger.debug("All fusion weights zero, using best-confidence sample")

        self._record(FusionStrategy.BEST_CONFIDENCE)
        return self._best_confidence(candidates)

    def _direct_fix(self, satellite: Sequence[ScoredSample]) -> Optional[ScoredSample]:
        """Most recent satellite sample within the good-fix threshold."""
        good = [
            s for s in satellite
            if is_good_satellite_fix(s.sample, self.config.good_fix_accuracy_m)
        ]
        if not good:
            return None
        return max(good, key=lambda s: s.timestamp)

    def _weighted_centroid(self, candidates: List[ScoredSample]) -> Optional[ScoredSample]:
        """Confidence-weighted mean of all candidates, or None if every weight is zero."""
        weights = [self.config.base_weight(s.source) * s.confidence for s in candidates]
        total_weight = sum(weights)
        if total_weight <= 0:
            return None

        latitude = 0.0
        longitude = 0.0
        accuracy = 0.0
        for sample, weight in zip(candidates, weights):
            normalized = weight / total_weight
            latitude += sample.latitude * normalized
            longitude += sample.longitude * normalized
            accuracy += sample.sample.effective_accuracy_m * normalized

        base_index = max(
            range(len(candidates)),
            key=lambda i: (weights[i], SOURCE_PRIORITY[candidates[i].source], candidates[i].timestamp),
        )
        base = candidates[base_index]

        return base.with_estimate(
            latitude=latitude,
            longitude=longitude,
            horizontal_accuracy_m=accuracy,
            confidence=total_weight / len(candidates),
        )

    @staticmethod
    def _best_confidence(candidates: List[ScoredSample]) -> ScoredSample:
        """Highest confidence; ties go to source priority, then recency."""
        return max(
            candidates,
            key=lambda s: (s.confidence, SOURCE_PRIORITY[s.source], s.timestamp),
        )

    def _record(self, strategy: FusionStrategy):
        self.last_strategy = strategy
        self.metrics.increment(f'fusion_{strategy.value}')

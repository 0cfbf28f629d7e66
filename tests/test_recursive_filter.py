"""
Unit tests for the recursive (Kalman-style) position filter.

Tests cover:
- Seeding from the first observation
- Exact per-axis gain and covariance shrink
- Confidence boost with cap
- Convergence of position and covariance under noisy observations
- Predict semantics and reset
"""

import math

import numpy as np
import pytest

from precision_core.localization import RecursiveFilter, RecursiveFilterConfig
from precision_core.proto import SampleSource


# =============================================================================
# Test Seeding
# =============================================================================


class TestSeeding:
    """The first observation after construction or reset seeds the state."""

    def test_first_update_returns_observation(self, make_scored, metrics):
        rf = RecursiveFilter()
        observation = make_scored(0.8, lat=12.9716, lon=77.5946, accuracy=4.0)

        result = rf.update(observation)

        assert (result.latitude, result.longitude) == (12.9716, 77.5946)
        assert result.horizontal_accuracy_m == 4.0
        assert result.sample.source == observation.sample.source
        assert rf.is_initialized()
        assert rf.state.position == (12.9716, 77.5946)
        assert rf.state.velocity == (0.0, 0.0)
        assert metrics.get_counter('filter_initialized') == 1

    @pytest.mark.parametrize("confidence, expected", [
        (0.5, 0.6),
        (0.9, 1.0),
    ])
    def test_seed_gets_confidence_boost(self, make_scored, confidence, expected):
        rf = RecursiveFilter()

        result = rf.update(make_scored(confidence))

        assert result.confidence == pytest.approx(expected)

    def test_seed_after_reset_gets_confidence_boost(self, make_scored):
        rf = RecursiveFilter()
        rf.update(make_scored(0.5))
        rf.reset()

        assert rf.update(make_scored(0.5, lat=11.0)).confidence == pytest.approx(0.6)

    def test_seed_keeps_diffuse_covariance(self, make_scored):
        rf = RecursiveFilter(RecursiveFilterConfig(initial_variance=1000.0))
        rf.update(make_scored())

        np.testing.assert_allclose(np.diag(rf.state.covariance), [1000.0] * 4)

    def test_predict_before_seed_is_noop(self):
        rf = RecursiveFilter()
        rf.predict(0.1)

        assert not rf.is_initialized()
        np.testing.assert_allclose(np.diag(rf.state.covariance), [1000.0] * 4)


# =============================================================================
# Test Update
# =============================================================================


class TestUpdate:
    """Per-axis gain K = P / (P + R * a)."""

    def test_gain_and_covariance_shrink(self, make_scored, metrics):
        rf = RecursiveFilter()
        rf.update(make_scored(lat=10.0, lon=20.0, accuracy=4.0))

        result = rf.update(make_scored(0.5, lat=10.001, lon=19.998, accuracy=4.0))

        gain = 1000.0 / (1000.0 + 5.0 * 4.0)
        assert result.latitude == pytest.approx(10.0 + gain * 0.001, abs=1e-12)
        assert result.longitude == pytest.approx(20.0 - gain * 0.002, abs=1e-12)
        covariance = rf.state.covariance
        assert covariance[0, 0] == pytest.approx(1000.0 * (1.0 - gain))
        assert covariance[1, 1] == pytest.approx(1000.0 * (1.0 - gain))
        # Velocity terms are not observed
        assert covariance[2, 2] == pytest.approx(1000.0)
        assert metrics.get_counter('filter_updates') == 1

    def test_observation_fields_kept(self, make_scored):
        rf = RecursiveFilter()
        rf.update(make_scored(lat=10.0))

        result = rf.update(make_scored(0.5, lat=10.001, accuracy=7.0, bearing=45.0, speed_mps=9.0))

        assert result.horizontal_accuracy_m == 7.0
        assert result.sample.bearing == 45.0
        assert result.sample.speed_mps == 9.0
        assert result.source == SampleSource.SATELLITE

    def test_worse_accuracy_smaller_step(self, make_scored):
        precise = RecursiveFilter()
        coarse = RecursiveFilter()
        for rf in (precise, coarse):
            rf.update(make_scored(lat=10.0))
            rf.predict(1.0)
            for _ in range(5):
                rf.update(make_scored(lat=10.0))

        step_precise = precise.update(make_scored(lat=10.001, accuracy=3.0)).latitude - 10.0
        step_coarse = coarse.update(make_scored(lat=10.001, accuracy=40.0)).latitude - 10.0

        assert 0.0 < step_coarse < step_precise

    def test_unknown_accuracy_uses_fallback_noise(self, make_scored):
        rf = RecursiveFilter()
        rf.update(make_scored(lat=10.0))

        rf.update(make_scored(lat=10.001, accuracy=0.0))

        gain = 1000.0 / (1000.0 + 5.0 * 100.0)
        assert rf.state.position[0] == pytest.approx(10.0 + gain * 0.001, abs=1e-12)

    @pytest.mark.parametrize("confidence, expected", [
        (0.5, 0.6),
        (0.8, 0.96),
        (0.9, 1.0),
        (1.0, 1.0),
    ])
    def test_confidence_boost_capped(self, make_scored, confidence, expected):
        rf = RecursiveFilter()
        rf.update(make_scored())

        result = rf.update(make_scored(confidence))

        assert result.confidence == pytest.approx(expected)

    def test_innovation_histogram(self, make_scored, metrics):
        rf = RecursiveFilter()
        rf.update(make_scored(lat=10.0, lon=20.0))
        rf.update(make_scored(lat=10.0003, lon=20.0004))

        stats = metrics.get_histogram_stats('filter_innovation_deg')
        assert stats['count'] == 1
        assert stats['max'] == pytest.approx(0.0005, rel=1e-6)


# =============================================================================
# Test Convergence
# =============================================================================


class TestConvergence:
    """Constant true position with bounded noise."""

    TRUE_LAT = 12.9716
    TRUE_LON = 77.5946

    def _noisy_run(self, make_scored, ticks: int = 200):
        rng = np.random.default_rng(42)
        rf = RecursiveFilter()
        variances = []
        estimate = None

        for _ in range(ticks):
            rf.predict(0.1)
            noise = rng.uniform(-2e-5, 2e-5, size=2)
            estimate = rf.update(make_scored(
                0.9,
                lat=self.TRUE_LAT + noise[0],
                lon=self.TRUE_LON + noise[1],
                accuracy=4.0,
            ))
            variances.append(rf.state.position_variance)

        return rf, estimate, variances

    def test_covariance_monotonically_shrinks(self, make_scored):
        _, _, variances = self._noisy_run(make_scored)

        lat_var = [v[0] for v in variances]
        lon_var = [v[1] for v in variances]
        assert all(b <= a + 1e-12 for a, b in zip(lat_var, lat_var[1:]))
        assert all(b <= a + 1e-12 for a, b in zip(lon_var, lon_var[1:]))

    def test_covariance_reaches_steady_state(self, make_scored):
        _, _, variances = self._noisy_run(make_scored)

        # Fixed point of P = (P + q) * R / (P + q + R)
        q, r = 0.1, 5.0 * 4.0
        steady = (-q + math.sqrt(q * q + 4 * q * r)) / 2
        assert variances[-1][0] == pytest.approx(steady, rel=1e-6)
        assert variances[-1][1] == pytest.approx(steady, rel=1e-6)

    def test_position_stays_near_truth(self, make_scored):
        _, estimate, _ = self._noisy_run(make_scored)

        assert abs(estimate.latitude - self.TRUE_LAT) < 2e-5
        assert abs(estimate.longitude - self.TRUE_LON) < 2e-5


# =============================================================================
# Test Predict and Reset
# =============================================================================


class TestPredictAndReset:
    """Tests for time propagation and re-diffusion."""

    def test_predict_inflates_by_process_noise(self, make_scored):
        config = RecursiveFilterConfig(q_pos=0.1, q_vel=1.0)
        rf = RecursiveFilter(config)
        rf.update(make_scored())

        rf.predict(0.1)
        rf.predict(0.1)

        np.testing.assert_allclose(np.diag(rf.state.covariance), [1000.2, 1000.2, 1002.0, 1002.0])

    def test_predict_keeps_position_with_zero_velocity(self, make_scored):
        rf = RecursiveFilter()
        rf.update(make_scored(lat=10.0, lon=20.0))

        rf.predict(5.0)

        assert rf.state.position == (10.0, 20.0)

    def test_non_positive_dt_ignored(self, make_scored):
        rf = RecursiveFilter()
        rf.update(make_scored())

        rf.predict(0.0)
        rf.predict(-1.0)

        assert rf.state.covariance[0, 0] == pytest.approx(1000.0)

    def test_reset_rediffuses(self, make_scored, metrics):
        rf = RecursiveFilter()
        rf.update(make_scored(lat=10.0))
        rf.update(make_scored(lat=10.0))

        rf.reset()

        assert not rf.is_initialized()
        assert rf.state.covariance[0, 0] == pytest.approx(1000.0)
        observation = make_scored(lat=11.0)
        assert rf.update(observation) is observation
        assert metrics.get_counter('filter_resets') == 1

    def test_state_is_a_copy(self, make_scored):
        rf = RecursiveFilter()
        rf.update(make_scored())

        state = rf.state
        state.covariance[0, 0] = -1.0

        assert rf.state.covariance[0, 0] == pytest.approx(1000.0)

    @pytest.mark.parametrize("kwargs", [
        {'r_base': 0.0},
        {'initial_variance': -1.0},
        {'q_pos': -0.1},
    ])
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            RecursiveFilterConfig(**kwargs)

"""
Session tests for PrecisionLocationTracker.

Tests cover:
- Start / stop lifecycle with scripted sources
- PermissionDenied closes the stream with the error
- ProviderUnavailable at start and at runtime forces gap mode
- Late callbacks after stop are ignored and counted
- Missing bearing / speed filled before buffering
- Real-time loop thread and configuration from dict
"""

import math
import threading
import time

import pytest

import config
from precision_core.errors import PermissionDenied
from precision_core.io import ManualClock, ScriptedMotionSource, ScriptedPositionSource
from precision_core.localization import ConfidenceScorerConfig, EstimationLoopConfig, OutageState
from precision_core.proto import MotionSample, SampleSource, SensorEvent, SensorType, TrackingMode
from precision_core.tracker import PrecisionLocationTracker, PrecisionTrackerConfig

from conftest import BASE_LAT, T0


class LingeringPositionSource(ScriptedPositionSource):
    """Platform that keeps delivering in-flight callbacks after cancel."""

    def _unsubscribe(self, key: int):
        pass


@pytest.fixture
def sources():
    return ScriptedPositionSource(), ScriptedMotionSource()


@pytest.fixture
def tracker(sources, clock):
    position_source, motion_source = sources
    tracker = PrecisionLocationTracker(position_source, motion_source, clock=clock)
    yield tracker
    tracker.stop()


# =============================================================================
# Test Lifecycle
# =============================================================================


class TestSessionLifecycle:
    """Subscriptions and stream across start / stop."""

    def test_start_subscribes(self, tracker, sources):
        position_source, motion_source = sources

        stream = tracker.start(TrackingMode.BALANCED, run_loop=False)

        assert tracker.active
        assert not stream.closed
        assert position_source.subscriber_count == 1
        assert motion_source.subscriber_count == 1
        assert position_source.requested_modes == [TrackingMode.BALANCED]

    def test_manual_tick_emits_to_stream(self, tracker, sources, clock, make_sample):
        position_source, _ = sources
        stream = tracker.start(run_loop=False)

        position_source.emit(make_sample())
        clock.advance(0.1)
        location = tracker.tick()

        assert location.latitude == BASE_LAT
        assert stream.drain() == [location]

    def test_start_twice_rejected(self, tracker):
        tracker.start(run_loop=False)

        with pytest.raises(RuntimeError):
            tracker.start(run_loop=False)

    def test_stop_tears_down(self, tracker, sources, make_sample):
        position_source, motion_source = sources
        stream = tracker.start(run_loop=False)
        position_source.emit(make_sample())

        tracker.stop()

        assert not tracker.active
        assert stream.closed
        assert list(stream) == []
        assert position_source.subscriber_count == 0
        assert motion_source.subscriber_count == 0
        assert len(tracker.buffer) == 0

    def test_stop_idempotent(self, tracker):
        tracker.start(run_loop=False)
        tracker.stop()
        tracker.stop()

        assert tracker.tick(T0 + 1) is None

    def test_restart_is_a_fresh_session(self, tracker, sources, clock, make_sample):
        position_source, _ = sources
        first = tracker.start(run_loop=False)
        position_source.emit(make_sample())
        clock.advance(0.1)
        tracker.tick()
        tracker.stop()

        second = tracker.start(run_loop=False)

        assert second is not first
        assert tracker.loop.last_known_good is None
        assert position_source.subscriber_count == 1


class TestPermissionDenied:
    """Fatal setup error surfaces through the stream."""

    def test_position_permission(self, clock):
        position_source = ScriptedPositionSource(permission_granted=False)
        motion_source = ScriptedMotionSource()
        tracker = PrecisionLocationTracker(position_source, motion_source, clock=clock)

        stream = tracker.start(run_loop=False)

        assert not tracker.active
        assert stream.closed
        with pytest.raises(PermissionDenied):
            stream.get(timeout=0.1)
        assert motion_source.subscriber_count == 0

    def test_motion_permission_cancels_position(self, clock):
        position_source = ScriptedPositionSource()
        motion_source = ScriptedMotionSource(permission_granted=False)
        tracker = PrecisionLocationTracker(position_source, motion_source, clock=clock)

        stream = tracker.start(run_loop=False)

        assert isinstance(stream.error, PermissionDenied)
        assert position_source.subscriber_count == 0


class TestProviderUnavailable:
    """Disabled positioning is not fatal; it forces gap mode."""

    def test_unavailable_at_start(self, clock):
        tracker = PrecisionLocationTracker(ScriptedPositionSource(available=False), clock=clock)
        stream = tracker.start(run_loop=False)

        clock.advance(0.1)
        tracker.tick()

        assert tracker.active
        assert not stream.closed
        assert tracker.loop.state == OutageState.GAP
        tracker.stop()

    def test_unavailable_at_runtime(self, tracker, sources, clock, make_sample):
        position_source, _ = sources
        tracker.start(run_loop=False)
        position_source.emit(make_sample())
        clock.advance(0.1)
        tracker.tick()

        position_source.set_available(False)
        clock.advance(0.1)
        location = tracker.tick()

        assert tracker.loop.state == OutageState.GAP
        assert location.is_interpolated


class TestLateCallbacks:
    """Callbacks racing teardown are ignored and counted."""

    def test_position_after_stop(self, clock, make_sample, metrics):
        position_source = LingeringPositionSource()
        tracker = PrecisionLocationTracker(position_source, clock=clock)
        tracker.start(run_loop=False)
        tracker.stop()

        position_source.emit(make_sample())
        position_source.set_available(False)

        assert tracker.late_callbacks == 2
        assert metrics.get_drop_count('after_stop') == 2
        assert len(tracker.buffer) == 0


# =============================================================================
# Test Sample Routing
# =============================================================================


class TestSampleRouting:
    """Producers feed the buffer and motion snapshot."""

    def test_bearing_filled_from_azimuth(self, tracker, sources, make_sample):
        position_source, motion_source = sources
        tracker.start(run_loop=False)

        motion_source.emit(MotionSample(orientation=(0.0, 0.0, math.pi / 2), orientation_valid=True))
        position_source.emit(make_sample())

        assert tracker.buffer.latest(SampleSource.SATELLITE).bearing == pytest.approx(90.0)

    def test_speed_filled_from_last_known_good(self, tracker, sources, clock, make_sample):
        position_source, _ = sources
        tracker.start(run_loop=False)
        position_source.emit(make_sample(speed_mps=11.0))
        clock.advance(0.1)
        tracker.tick()

        position_source.emit(make_sample(timestamp=T0 + 0.1, source=SampleSource.NETWORK, accuracy=30.0))

        assert tracker.buffer.latest(SampleSource.NETWORK).speed_mps == 11.0

    def test_sensor_events_reach_snapshot(self, tracker, sources, metrics):
        _, motion_source = sources
        tracker.start(run_loop=False)

        motion_source.emit(SensorEvent(SensorType.GYROSCOPE, (0.1, 0.2, 0.3), T0))

        assert tracker.motion_snapshot.read().gyroscope == (0.1, 0.2, 0.3)
        assert metrics.get_counter('motion_events') == 1

    def test_invalid_sample_dropped(self, tracker, sources, make_sample, metrics):
        position_source, _ = sources
        tracker.start(run_loop=False)

        position_source.emit(make_sample(lat=math.nan))

        assert len(tracker.buffer) == 0
        assert metrics.get_drop_count('nan_coordinates') == 1

    def test_stream_bound(self, sources, clock, make_sample, metrics):
        position_source, motion_source = sources
        tracker = PrecisionLocationTracker(
            position_source, motion_source,
            config=PrecisionTrackerConfig(stream_max_size=2),
            clock=clock,
        )
        stream = tracker.start(run_loop=False)
        position_source.emit(make_sample())

        for _ in range(4):
            clock.advance(0.1)
            tracker.tick()

        assert len(stream) == 2
        assert metrics.get_drop_count('queue_full') == 2
        tracker.stop()

    def test_statistics(self, tracker, sources, clock, make_sample):
        position_source, _ = sources
        tracker.start(TrackingMode.LOW_POWER, run_loop=False)
        position_source.emit(make_sample())
        clock.advance(0.1)
        tracker.tick()

        stats = tracker.get_statistics()

        assert stats['active']
        assert stats['mode'] == 'low_power'
        assert stats['state'] == 'tracking'
        assert stats['counters']['samples_accepted'] == 1
        assert stats['late_callbacks'] == 0


# =============================================================================
# Test Real-Time Session
# =============================================================================


class TestRealTimeSession:
    """Loop thread with the monotonic clock."""

    def test_stream_ends_when_stopped_from_another_thread(self, make_sample):
        position_source = ScriptedPositionSource()
        tracker = PrecisionLocationTracker(
            position_source,
            config=PrecisionTrackerConfig(loop_config=EstimationLoopConfig(rate_hz=50)),
        )
        stream = tracker.start()
        position_source.emit(make_sample(timestamp=time.monotonic()))

        stopper = threading.Timer(0.3, tracker.stop)
        stopper.start()
        locations = list(stream)
        stopper.join()

        assert not tracker.active
        assert len(locations) >= 3
        stamps = [loc.timestamp for loc in locations]
        assert all(b > a for a, b in zip(stamps, stamps[1:]))


# =============================================================================
# Test Configuration
# =============================================================================


class TestTrackerConfig:
    """Nested dict configuration."""

    def test_from_demo_config(self):
        tracker_config = PrecisionTrackerConfig.from_dict(config.TRACKER_CONFIG)

        assert tracker_config.scorer_config.accuracy_breakpoints[0] == (5.0, 1.0)
        assert tracker_config.outage_config.gap_timeout_s == 10.0
        assert tracker_config.loop_config.rate_hz == 10.0
        assert tracker_config.stream_max_size == 256

    def test_missing_sections_default(self):
        tracker_config = PrecisionTrackerConfig.from_dict({'outage': {'gap_timeout_s': 3.0}})

        assert tracker_config.outage_config.gap_timeout_s == 3.0
        assert tracker_config.scorer_config == ConfidenceScorerConfig()

    def test_unknown_key_rejected(self):
        with pytest.raises(TypeError):
            PrecisionTrackerConfig.from_dict({'fusion': {'satellite_wieght': 0.5}})

    def test_invalid_value_rejected(self):
        with pytest.raises(ValueError):
            PrecisionTrackerConfig.from_dict({'loop': {'rate_hz': -1}})

"""
Unit tests for LocationStream (bounded, closable output queue).
"""

import threading

import pytest

from precision_core.errors import PermissionDenied, StreamClosed
from precision_core.io import LocationStream
from precision_core.proto import PrecisionLocation

from conftest import BASE_LAT, BASE_LON, T0


def make_location(timestamp: float = T0) -> PrecisionLocation:
    return PrecisionLocation(
        latitude=BASE_LAT,
        longitude=BASE_LON,
        accuracy_m=4.0,
        bearing=None,
        speed_mps=None,
        timestamp=timestamp,
        confidence=1.0,
    )


class TestStreamFlow:
    """Put / get / drain."""

    def test_fifo(self):
        stream = LocationStream()
        stream.put(make_location(T0))
        stream.put(make_location(T0 + 0.1))

        assert stream.get(timeout=0.1).timestamp == T0
        assert stream.get(timeout=0.1).timestamp == T0 + 0.1

    def test_get_timeout_returns_none(self):
        assert LocationStream().get(timeout=0.01) is None

    def test_drain(self):
        stream = LocationStream()
        for i in range(3):
            stream.put(make_location(T0 + i))

        assert [loc.timestamp for loc in stream.drain()] == [T0, T0 + 1, T0 + 2]
        assert len(stream) == 0

    def test_invalid_maxsize(self):
        with pytest.raises(ValueError):
            LocationStream(maxsize=0)


class TestStreamBound:
    """Slow consumer loses the oldest locations."""

    def test_drops_oldest(self, metrics):
        stream = LocationStream(maxsize=2)
        for i in range(5):
            stream.put(make_location(T0 + i))

        assert len(stream) == 2
        assert [loc.timestamp for loc in stream.drain()] == [T0 + 3, T0 + 4]
        assert metrics.get_drop_count('queue_full') == 3


class TestStreamClose:
    """Closing ends iteration; an error close re-raises to the reader."""

    def test_pending_items_readable_after_close(self):
        stream = LocationStream()
        stream.put(make_location(T0))
        stream.close()

        assert stream.get(timeout=0.1).timestamp == T0
        with pytest.raises(StreamClosed):
            stream.get(timeout=0.1)

    def test_close_marker_seen_by_every_reader(self):
        stream = LocationStream()
        stream.close()

        for _ in range(3):
            with pytest.raises(StreamClosed):
                stream.get(timeout=0.1)

    def test_iteration_ends_on_close(self):
        stream = LocationStream()
        stream.put(make_location(T0))
        stream.put(make_location(T0 + 1))
        stream.close()

        assert len(list(stream)) == 2

    def test_close_with_error_raises_it(self):
        stream = LocationStream()
        stream.close(error=PermissionDenied("no location permission"))

        assert stream.closed
        with pytest.raises(PermissionDenied):
            stream.get(timeout=0.1)
        with pytest.raises(PermissionDenied):
            list(stream)

    def test_put_after_close_counted(self, metrics):
        stream = LocationStream()
        stream.close()

        assert not stream.put(make_location())
        assert metrics.get_drop_count('after_stop') == 1

    def test_close_idempotent(self):
        stream = LocationStream()
        stream.close()
        stream.close(error=PermissionDenied("late"))

        assert stream.error is None

    def test_close_wakes_blocked_reader(self):
        stream = LocationStream()
        result = []

        def consume():
            result.extend(stream)

        reader = threading.Thread(target=consume)
        reader.start()
        stream.put(make_location(T0))
        stream.close()
        reader.join(timeout=2.0)

        assert not reader.is_alive()
        assert len(result) == 1

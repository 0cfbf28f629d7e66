"""
Bounded output stream of PrecisionLocation records.

The estimation loop puts, a caller consumes with get() or iteration.
When the consumer lags, the oldest location is dropped (queue_full):
a stale position is worth less than a fresh one.

close() ends the stream after the queued items are drained. A stream
closed with an error re-raises it to the consumer instead of ending
quietly, so permission failures surface where the locations are read.
"""

import logging
import queue
import threading
from typing import Iterator, Optional

from precision_core.errors import StreamClosed
from precision_core.proto.precision_location import PrecisionLocation
from precision_core.metrics import get_metrics

logger = logging.getLogger(__name__)

_CLOSED = object()


class LocationStream:
    """
    Closable, bounded FIFO of locations.

    Usage:
        stream = tracker.start(TrackingMode.HIGH_ACCURACY)

        for location in stream:       # ends on stop(), raises on failure
            display(location)

        # or with polling
        location = stream.get(timeout=1.0)   # None on timeout
    """

    def __init__(self, maxsize: int = 256):
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1: {maxsize}")

        self.maxsize = maxsize
        self.metrics = get_metrics()

        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._error: Optional[BaseException] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def put(self, location: PrecisionLocation) -> bool:
        """
        Enqueue a location.

        Returns:
            False if the stream is already closed (counted as after_stop)
        """
        with self._lock:
            if self._closed:
                self.metrics.increment_drop('after_stop')
                return False

            if self._queue.qsize() >= self.maxsize:
                try:
                    self._queue.get_nowait()
                    self.metrics.increment_drop('queue_full')
                except queue.Empty:
                    pass

            self._queue.put_nowait(location)
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[PrecisionLocation]:
        """
        Next location.

        Args:
            timeout: Seconds to wait (None blocks until an item or close)

        Returns:
            PrecisionLocation, or None on timeout

        Raises:
            StreamClosed: Stream closed and drained
            PrecisionLocationError: The error the stream was closed with
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

        if item is _CLOSED:
            # Leave the marker for any other reader
            self._queue.put_nowait(_CLOSED)
            if self._error is not None:
                raise self._error
            raise StreamClosed("Location stream closed")

        return item

    def close(self, error: Optional[BaseException] = None):
        """End the stream; pending items remain readable. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._error = error
            self._queue.put_nowait(_CLOSED)

        if error is not None:
            logger.warning("Location stream closed with error: %s", error)
        else:
            logger.debug("Location stream closed")

    def drain(self) -> list:
        """Pop every queued location without blocking."""
        items = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                break
            items.append(item)
        return items

    def __iter__(self) -> Iterator[PrecisionLocation]:
        while True:
            try:
                yield self.get()
            except StreamClosed:
                return

    def __len__(self) -> int:
        with self._queue.mutex:
            return sum(1 for item in self._queue.queue if item is not _CLOSED)

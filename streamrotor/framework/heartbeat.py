"""Detecting when the batch aggregator has run dry.

The batch aggregator touches the :code:`Heartbeat` every time it processed a batch. After the
consumer slots were unsubscribed, the :code:`DrainMonitor` waits until the heartbeat has been
stale for :code:`drain_factor * batch_timeout` seconds. From then on no frame of the unsubscribed
generation can still be in flight and its producers can be destroyed.
"""

import logging
import threading
import time
from typing import Callable, Optional

from streamrotor.abc.exceptions import StreamrotorException

logger = logging.getLogger("DrainMonitor")


class DrainTimeoutError(StreamrotorException):
    """Raise if the aggregator did not drain within the drain timeout."""

    def __init__(self, drain_timeout: float, age: float) -> None:
        super().__init__(
            f"Aggregator did not drain within {drain_timeout} s,"
            f" last batch was processed {age:.3f} s ago"
        )


class Heartbeat:
    """Monotonic timestamp of the last processed batch.

    Written by the aggregator thread, read by the drain monitor.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._last = clock()

    def touch(self) -> None:
        """Record that a batch was processed now"""
        now = self._clock()
        with self._lock:
            self._last = now

    @property
    def last(self) -> float:
        """Timestamp of the last processed batch"""
        with self._lock:
            return self._last

    def age(self) -> float:
        """Seconds since the last processed batch"""
        return self._clock() - self.last


class DrainMonitor:
    """Waits until the heartbeat is stale."""

    def __init__(
        self,
        heartbeat: Heartbeat,
        batch_timeout: float,
        drain_factor: int,
        drain_timeout: Optional[float] = None,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._heartbeat = heartbeat
        self._batch_timeout = batch_timeout
        self._drain_factor = drain_factor
        self._drain_timeout = drain_timeout
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._clock = clock

    @property
    def threshold(self) -> float:
        """Seconds the heartbeat has to be stale"""
        return self._drain_factor * self._batch_timeout

    def wait(self) -> bool:
        """Block until the heartbeat is stale.

        The heartbeat is sampled every :code:`batch_timeout` seconds.

        Returns
        -------
        bool
            :code:`True` if drained, :code:`False` if a stop was requested while waiting.

        Raises
        ------
        DrainTimeoutError
            If a drain timeout is set and was exceeded.
        """
        started = self._clock()
        while True:
            age = self._heartbeat.age()
            if age >= self.threshold:
                logger.debug("Drained, last batch was processed %.3f s ago", age)
                return True
            if self._drain_timeout is not None and self._clock() - started >= self._drain_timeout:
                raise DrainTimeoutError(self._drain_timeout, age)
            if self._stop_event.wait(self._batch_timeout):
                return False

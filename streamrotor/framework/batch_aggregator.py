"""Forms batches from the frames the consumer slots receive.

A batch is complete once every slot delivered a frame. If only some slots delivered, the batch is
pushed anyway :code:`batch_timeout` seconds after its first frame arrived. Idle slots do not
delay anything beyond that. Every processed batch touches the heartbeat.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from attrs import define, field

from streamrotor.abc.component import Component
from streamrotor.abc.transport import Transport
from streamrotor.framework.heartbeat import Heartbeat
from streamrotor.metrics.metrics import CounterMetric, HistogramMetric

logger = logging.getLogger("BatchAggregator")

Batch = Dict[int, Any]


class BatchAggregator:
    """Reads the consumer slots in a daemon thread and forms batches."""

    @define(kw_only=True)
    class Metrics(Component.Metrics):
        """Tracks statistics about the formed batches"""

        number_of_processed_batches: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of batches processed by the aggregator",
                name="number_of_processed_batches",
            )
        )
        """Number of batches processed by the aggregator"""
        number_of_processed_frames: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of frames processed by the aggregator",
                name="number_of_processed_frames",
            )
        )
        """Number of frames processed by the aggregator"""
        number_of_incomplete_batches: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of batches pushed on timeout with missing slots",
                name="number_of_incomplete_batches",
            )
        )
        """Number of batches pushed on timeout with missing slots"""
        batch_formation_time: HistogramMetric = field(
            factory=lambda: HistogramMetric(
                description="Seconds from the first frame of a batch until it was pushed",
                name="batch_formation_time",
            )
        )
        """Seconds from the first frame of a batch until it was pushed"""

    def __init__(
        self,
        transport: Transport,
        heartbeat: Heartbeat,
        batch_size: int,
        batch_timeout: float,
        on_batch: Optional[Callable[[Batch], None]] = None,
        poll_interval: Optional[float] = None,
    ):
        self._transport = transport
        self._heartbeat = heartbeat
        self._batch_size = batch_size
        self._batch_timeout = batch_timeout
        self._on_batch = on_batch
        self._poll_interval = poll_interval if poll_interval is not None else batch_timeout / 8
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.metrics = self.Metrics(labels={"component": "batch_aggregator"})

    @property
    def is_running(self) -> bool:
        """Whether the aggregator thread is alive"""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start forming batches in a daemon thread"""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="BatchAggregator", daemon=True)
        self._thread.start()
        logger.debug("Started batch aggregator with %s inputs", self._batch_size)

    def stop(self) -> None:
        """Stop the aggregator thread and wait for it"""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        logger.debug("Stopped batch aggregator")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            batch = self.form_batch()
            if batch:
                self.process(batch)

    def form_batch(self) -> Batch:
        """Collect one frame per slot until the batch is complete or timed out.

        Returns an empty batch if the aggregator was stopped before any frame arrived.
        """
        batch: Batch = {}
        first_frame_at = None
        while not self._stop_event.is_set():
            for slot_index in range(self._batch_size):
                if slot_index in batch:
                    continue
                frame = self._transport.receive(slot_index)
                if frame is not None:
                    batch[slot_index] = frame
            if batch and first_frame_at is None:
                first_frame_at = time.monotonic()
            if len(batch) == self._batch_size:
                break
            if first_frame_at is not None:
                if time.monotonic() - first_frame_at >= self._batch_timeout:
                    self.metrics.number_of_incomplete_batches += 1
                    break
            self._stop_event.wait(self._poll_interval)
        if first_frame_at is not None:
            self.metrics.batch_formation_time += time.monotonic() - first_frame_at
        return batch

    def process(self, batch: Batch) -> None:
        """Hand the batch on and touch the heartbeat"""
        if self._on_batch is not None:
            self._on_batch(batch)
        else:
            logger.debug("Processed batch from slots %s", sorted(batch))
        self.metrics.number_of_processed_batches += 1
        self.metrics.number_of_processed_frames += len(batch)
        self._heartbeat.touch()

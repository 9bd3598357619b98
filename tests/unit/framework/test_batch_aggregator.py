# pylint: disable=missing-docstring
# pylint: disable=protected-access
# pylint: disable=attribute-defined-outside-init
import time
from collections import deque
from unittest import mock

from streamrotor.framework.batch_aggregator import BatchAggregator
from streamrotor.framework.heartbeat import Heartbeat


class QueueTransport:
    """Delivers queued frames per slot"""

    def __init__(self, batch_size):
        self.frames = {slot: deque() for slot in range(batch_size)}

    def receive(self, slot_index):
        if self.frames[slot_index]:
            return self.frames[slot_index].popleft()
        return None


class TestBatchAggregator:
    def setup_method(self):
        self.transport = QueueTransport(3)
        self.heartbeat = mock.MagicMock(spec=Heartbeat)
        self.on_batch = mock.MagicMock()
        self.aggregator = BatchAggregator(
            transport=self.transport,
            heartbeat=self.heartbeat,
            batch_size=3,
            batch_timeout=0.02,
            on_batch=self.on_batch,
        )
        self.aggregator.metrics.number_of_processed_batches = 0
        self.aggregator.metrics.number_of_processed_frames = 0
        self.aggregator.metrics.number_of_incomplete_batches = 0
        self.aggregator.metrics.batch_formation_time = 0

    def test_form_batch_returns_complete_batch(self):
        for slot in range(3):
            self.transport.frames[slot].append({"slot": slot})
        batch = self.aggregator.form_batch()
        assert batch == {0: {"slot": 0}, 1: {"slot": 1}, 2: {"slot": 2}}
        assert self.aggregator.metrics.number_of_incomplete_batches == 0

    def test_form_batch_takes_one_frame_per_slot(self):
        self.transport.frames[0].extend([{"frame": 1}, {"frame": 2}])
        self.transport.frames[1].append({"frame": 3})
        self.transport.frames[2].append({"frame": 4})
        batch = self.aggregator.form_batch()
        assert batch[0] == {"frame": 1}
        assert list(self.transport.frames[0]) == [{"frame": 2}]

    def test_form_batch_pushes_incomplete_batch_after_timeout(self):
        self.transport.frames[1].append({"slot": 1})
        started = time.monotonic()
        batch = self.aggregator.form_batch()
        assert batch == {1: {"slot": 1}}
        assert time.monotonic() - started >= 0.02
        assert self.aggregator.metrics.number_of_incomplete_batches == 1

    def test_form_batch_returns_empty_batch_when_stopped(self):
        self.aggregator._stop_event.set()
        assert self.aggregator.form_batch() == {}

    def test_process_hands_batch_on_and_touches_heartbeat(self):
        batch = {0: {"frame": 1}, 2: {"frame": 2}}
        self.aggregator.process(batch)
        self.on_batch.assert_called_with(batch)
        self.heartbeat.touch.assert_called_once()
        assert self.aggregator.metrics.number_of_processed_batches == 1
        assert self.aggregator.metrics.number_of_processed_frames == 2

    def test_process_without_callback_logs_batch(self, caplog):
        aggregator = BatchAggregator(
            transport=self.transport, heartbeat=self.heartbeat, batch_size=3, batch_timeout=0.02
        )
        with caplog.at_level("DEBUG"):
            aggregator.process({1: {"frame": 1}})
        assert "Processed batch from slots [1]" in caplog.text
        self.heartbeat.touch.assert_called_once()

    def test_aggregator_thread_processes_frames_and_stops(self):
        heartbeat = Heartbeat()
        before = heartbeat.last
        aggregator = BatchAggregator(
            transport=self.transport,
            heartbeat=heartbeat,
            batch_size=3,
            batch_timeout=0.01,
            on_batch=self.on_batch,
        )
        for slot in range(3):
            self.transport.frames[slot].append({"slot": slot})
        aggregator.start()
        assert aggregator.is_running
        deadline = time.monotonic() + 5
        while not self.on_batch.called and time.monotonic() < deadline:
            time.sleep(0.005)
        aggregator.stop()
        assert not aggregator.is_running
        self.on_batch.assert_called_with({0: {"slot": 0}, 1: {"slot": 1}, 2: {"slot": 2}})
        assert heartbeat.last > before

    def test_idle_slots_do_not_touch_heartbeat(self):
        aggregator = BatchAggregator(
            transport=self.transport,
            heartbeat=self.heartbeat,
            batch_size=3,
            batch_timeout=0.01,
        )
        aggregator.start()
        time.sleep(0.05)
        aggregator.stop()
        self.heartbeat.touch.assert_not_called()

    def test_start_twice_starts_one_thread(self):
        with mock.patch("threading.Thread") as mock_thread:
            mock_thread.return_value.is_alive.return_value = True
            self.aggregator.start()
            self.aggregator.start()
        mock_thread.assert_called_once()

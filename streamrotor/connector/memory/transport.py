"""
MemoryTransport
===============

A transport that keeps one bounded :code:`multiprocessing.Queue` per channel. Producer processes
publish onto the queue, consumer slots read from the queue of the channel they listen to.
Every channel creation yields a fresh queue, so a channel name can be reused without
receiving frames of an earlier producer. Frames published while the queue is full are dropped.

Example
^^^^^^^
..  code-block:: yaml
    :linenos:

    transport:
      memory:
        type: memory_transport
        max_backlog: 30
"""

import logging
import multiprocessing
import queue
import threading
from typing import Any, Dict, Optional

from attrs import define, field, validators

from streamrotor.abc.transport import Channel, ChannelError, Transport
from streamrotor.metrics.metrics import CounterMetric
from streamrotor.util.defaults import DEFAULT_CHANNEL_BACKLOG_SIZE

logger = logging.getLogger("MemoryTransport")


@define(kw_only=True, frozen=True)
class MemoryChannel(Channel):
    """Publishing side of a memory channel"""

    name: str
    queue: Any

    def publish(self, frame: Any) -> bool:
        try:
            self.queue.put_nowait(frame)
        except queue.Full:
            return False
        return True

    def detach(self) -> None:
        # a retired producer must not block on frames nobody reads anymore
        self.queue.cancel_join_thread()


class MemoryTransport(Transport):
    """Transport based on multiprocessing queues"""

    @define(kw_only=True)
    class Config(Transport.Config):
        """MemoryTransport specific configuration"""

        max_backlog: int = field(
            validator=[validators.instance_of(int), validators.gt(0)],
            default=DEFAULT_CHANNEL_BACKLOG_SIZE,
        )
        """Maximum number of frames a channel buffers for its subscriber."""

    @define(kw_only=True)
    class Metrics(Transport.Metrics):
        """Tracks statistics about the memory transport"""

        number_of_received_frames: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of frames received by consumer slots",
                name="number_of_received_frames",
            )
        )
        """Number of frames received by consumer slots"""

    __slots__ = ["_channels", "_subscriptions", "_lock"]

    _channels: Dict[str, MemoryChannel]
    _subscriptions: Dict[int, str]

    def __init__(self, name: str, configuration: "MemoryTransport.Config"):
        super().__init__(name, configuration)
        self._channels = {}
        self._subscriptions = {}
        self._lock = threading.Lock()

    def create_channel(self, name: str) -> MemoryChannel:
        with self._lock:
            if name in self._channels:
                raise ChannelError(self, f"channel '{name}' exists already")
            try:
                channel_queue = multiprocessing.Queue(maxsize=self._config.max_backlog)
            except OSError as error:
                raise ChannelError(self, f"could not create channel '{name}': {error}") from error
            channel = MemoryChannel(name=name, queue=channel_queue)
            self._channels[name] = channel
        logger.debug("Created channel %s", name)
        return channel

    def destroy_channel(self, name: str) -> None:
        with self._lock:
            channel = self._channels.pop(name, None)
            if channel is None:
                return
            channel.queue.close()
        logger.debug("Destroyed channel %s", name)

    def subscribe(self, slot_index: int, name: str) -> None:
        with self._lock:
            self._subscriptions[slot_index] = name

    def unsubscribe(self, slot_index: int) -> None:
        with self._lock:
            self._subscriptions.pop(slot_index, None)

    def receive(self, slot_index: int) -> Optional[Any]:
        with self._lock:
            name = self._subscriptions.get(slot_index)
            channel = self._channels.get(name) if name is not None else None
            if channel is None:
                return None
            try:
                frame = channel.queue.get_nowait()
            except queue.Empty:
                return None
        self.metrics.number_of_received_frames += 1
        return frame

    @property
    def channels(self) -> list:
        """Names of all existing channels"""
        with self._lock:
            return list(self._channels)

    def shut_down(self):
        for name in self.channels:
            self.destroy_channel(name)
        super().shut_down()

"""Lifecycle of producers.

The pool keeps a record for every producer it ever created. Ids are handed out monotonically and
never reused, so a stale id can not address the wrong producer. A record moves through
:code:`CREATED -> ACTIVE -> STOPPING -> DESTROYED` and never goes back.
"""

import itertools
import logging
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from attrs import define, field

from streamrotor.abc.component import Component
from streamrotor.abc.exceptions import StreamrotorException
from streamrotor.abc.launcher import LaunchError, Launcher, SourceConfig
from streamrotor.abc.transport import ChannelError, Transport
from streamrotor.framework.bus_event import BusEvent
from streamrotor.framework.channel_registry import ChannelRegistry
from streamrotor.metrics.metrics import CounterMetric, GaugeMetric

logger = logging.getLogger("ProducerPool")


class SpawnFailedError(StreamrotorException):
    """Raise if a producer could not be created."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Could not spawn producer for channel '{name}': {reason}")


class ProducerState(Enum):
    """Lifecycle of a producer"""

    CREATED = "created"
    ACTIVE = "active"
    STOPPING = "stopping"
    DESTROYED = "destroyed"


@define(kw_only=True)
class ProducerRecord:
    """A producer owned by the pool"""

    producer_id: int
    generation: int
    channel: str
    source: SourceConfig
    state: ProducerState = ProducerState.CREATED
    handle: Any = None
    exited: bool = False

    @property
    def live(self) -> bool:
        """Whether the producer still holds its channel"""
        return self.state is not ProducerState.DESTROYED


class ProducerPool:
    """Creates and destroys producers through a launcher."""

    @define(kw_only=True)
    class Metrics(Component.Metrics):
        """Tracks statistics about the producer lifecycle"""

        number_of_producer_spawns: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of producers spawned",
                name="number_of_producer_spawns",
            )
        )
        """Number of producers spawned"""
        number_of_producer_despawns: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of producers despawned",
                name="number_of_producer_despawns",
            )
        )
        """Number of producers despawned"""
        number_of_failed_spawns: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of producers that could not be spawned",
                name="number_of_failed_spawns",
            )
        )
        """Number of producers that could not be spawned"""
        number_of_exited_producers: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of producers that exited before they were despawned",
                name="number_of_exited_producers",
            )
        )
        """Number of producers that exited before they were despawned"""
        number_of_live_producers: GaugeMetric = field(
            factory=lambda: GaugeMetric(
                description="Number of producers that hold a channel",
                name="number_of_live_producers",
            )
        )
        """Number of producers that hold a channel"""

    _records: Dict[int, ProducerRecord]

    def __init__(self, launcher: Launcher, transport: Transport, registry: ChannelRegistry):
        self._launcher = launcher
        self._transport = transport
        self._registry = registry
        self._records = {}
        self._ids = itertools.count()
        self.metrics = self.Metrics(labels={"component": "producer_pool"})

    def spawn(self, name: str, generation: int, source: SourceConfig) -> int:
        """Create a producer publishing frames from :code:`source` onto channel :code:`name`.

        Parameters
        ----------
        name : str
            The channel name the producer is bound to.
        generation : int
            The generation the producer belongs to.
        source : SourceConfig
            The source the producer pulls frames from.

        Returns
        -------
        int
            The id of the new producer.

        Raises
        ------
        NameInUseError
            If :code:`name` is still bound to another producer.
        SpawnFailedError
            If the channel or the producer instance could not be created.
        """
        producer_id = next(self._ids)
        self._registry.bind(name, producer_id)
        record = ProducerRecord(
            producer_id=producer_id, generation=generation, channel=name, source=source
        )
        self._records[producer_id] = record
        try:
            channel = self._transport.create_channel(name)
            record.handle = self._launcher.start(channel, source)
        except (ChannelError, LaunchError) as error:
            self._release(record)
            self.metrics.number_of_failed_spawns += 1
            raise SpawnFailedError(name, str(error)) from error
        record.state = ProducerState.ACTIVE
        self.metrics.number_of_producer_spawns += 1
        self.metrics.number_of_live_producers += len(self.live())
        logger.info(
            "Spawned producer %s (generation %s) for %s on %s",
            producer_id,
            generation,
            source.location,
            name,
        )
        return producer_id

    def despawn(self, producer_id: int) -> None:
        """Stop the producer and release its channel. Does nothing if it is destroyed already.

        Raises
        ------
        KeyError
            If the pool never created a producer with this id.
        """
        record = self._records[producer_id]
        if record.state is ProducerState.DESTROYED:
            return
        record.state = ProducerState.STOPPING
        try:
            if record.handle is not None:
                self._launcher.stop(record.handle)
        finally:
            self._release(record)
            self.metrics.number_of_producer_despawns += 1
            self.metrics.number_of_live_producers += len(self.live())
        logger.info("Despawned producer %s on %s", producer_id, record.channel)

    def _release(self, record: ProducerRecord) -> None:
        self._transport.destroy_channel(record.channel)
        self._registry.unbind(record.channel)
        record.state = ProducerState.DESTROYED

    def record(self, producer_id: int) -> Optional[ProducerRecord]:
        """The record of :code:`producer_id` or :code:`None`"""
        return self._records.get(producer_id)

    def generation(self, generation: int) -> List[ProducerRecord]:
        """All live records of :code:`generation` in spawn order"""
        return [
            record
            for record in self._records.values()
            if record.generation == generation and record.live
        ]

    def live(self) -> List[ProducerRecord]:
        """All records that still hold a channel in spawn order"""
        return [record for record in self._records.values() if record.live]

    def poll_events(self) -> Iterator[BusEvent]:
        """Report every active producer whose instance exited since the last poll."""
        for record in self.live():
            if record.state is not ProducerState.ACTIVE or record.exited:
                continue
            if record.handle is None or record.handle.is_alive():
                continue
            record.exited = True
            self.metrics.number_of_exited_producers += 1
            yield BusEvent.from_exitcode(record.producer_id, record.channel, record.handle.exitcode)

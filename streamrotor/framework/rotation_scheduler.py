"""This module contains the control loop that rotates producer generations.

One rotation cycle:

#. *Steady*: the current generation is subscribed for :code:`cycle_interval` seconds.
#. *Unsubscribing*: every consumer slot stops listening.
#. *Draining*: wait until the aggregator processed no batch for
   :code:`drain_factor * batch_timeout` seconds.
#. *Swapping*: spawn the next generation on the other half of the channel namespace, then
   despawn the drained generation.
#. *Resubscribing*: after :code:`resubscribe_delay` seconds, slot :code:`i` listens to the
   :code:`i`-th channel of the new generation.

A stop request ends the cycle at the next step boundary.
"""

import logging
import multiprocessing
import threading
import time
from enum import Enum
from typing import Optional

from attrs import define, field

from streamrotor.abc.component import Component
from streamrotor.abc.launcher import Launcher
from streamrotor.abc.transport import Transport
from streamrotor.factory import Factory
from streamrotor.framework.bus_event import BusEvent, BusEventKind
from streamrotor.framework.channel_registry import ChannelNamespace, ChannelRegistry
from streamrotor.framework.heartbeat import DrainMonitor, Heartbeat
from streamrotor.framework.producer_pool import ProducerPool
from streamrotor.framework.slot_pool import ConsumerSlotPool
from streamrotor.metrics.exporter import PrometheusExporter
from streamrotor.metrics.metrics import CounterMetric, GaugeMetric, HistogramMetric
from streamrotor.util.configuration import Configuration
from streamrotor.util.logging import StreamrotorMPQueueListener, logqueue

logger = logging.getLogger("Scheduler")


class RotationState(Enum):
    """States of the rotation control loop"""

    STOPPED = "stopped"
    STEADY = "steady"
    UNSUBSCRIBING = "unsubscribing"
    DRAINING = "draining"
    SWAPPING = "swapping"
    RESUBSCRIBING = "resubscribing"
    TEARDOWN = "teardown"


class RotationScheduler:
    """Rotate generations of producers under the consumer slots."""

    @define(kw_only=True)
    class Metrics(Component.Metrics):
        """Metrics for the RotationScheduler."""

        number_of_rotations: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of completed rotations",
                name="number_of_rotations",
            )
        )
        """Number of completed rotations"""
        number_of_interrupted_rotations: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of rotations ended early by a stop request",
                name="number_of_interrupted_rotations",
            )
        )
        """Number of rotations ended early by a stop request"""
        drain_wait_time: HistogramMetric = field(
            factory=lambda: HistogramMetric(
                description="Seconds waited for the aggregator to drain",
                name="drain_wait_time",
            )
        )
        """Seconds waited for the aggregator to drain"""
        generation: GaugeMetric = field(
            factory=lambda: GaugeMetric(
                description="Number of the currently subscribed generation",
                name="generation",
            )
        )
        """Number of the currently subscribed generation"""

    _handlers: dict

    def __init__(
        self,
        configuration: Configuration,
        transport: Optional[Transport] = None,
        launcher: Optional[Launcher] = None,
        heartbeat: Optional[Heartbeat] = None,
    ):
        self._configuration = configuration
        self.metrics = self.Metrics(labels={"component": "scheduler"})
        self.loghandler: StreamrotorMPQueueListener | None = None
        self.prometheus_exporter: PrometheusExporter | None = None
        self.state = RotationState.STOPPED
        self.generation = 0
        self.base = 0
        self._stop_event = threading.Event()
        self.transport = transport if transport is not None else self._create_transport()
        self.launcher = launcher if launcher is not None else Factory.create(configuration.launcher)
        self.heartbeat = heartbeat if heartbeat is not None else Heartbeat()
        self.namespace = ChannelNamespace(
            prefix=configuration.channel_prefix, batch_size=configuration.batch_size
        )
        self.registry = ChannelRegistry()
        self.producers = ProducerPool(self.launcher, self.transport, self.registry)
        self.slots = ConsumerSlotPool(self.transport, configuration.batch_size)
        self.drain_monitor = DrainMonitor(
            self.heartbeat,
            batch_timeout=configuration.batch_timeout,
            drain_factor=configuration.drain_factor,
            drain_timeout=configuration.drain_timeout,
            stop_event=self._stop_event,
        )
        self._handlers = {
            BusEventKind.END_OF_STREAM: self._on_end_of_stream,
            BusEventKind.ERROR: self._on_error,
            BusEventKind.OTHER: self._on_other,
        }
        if multiprocessing.current_process().name == "MainProcess":
            self._setup_logging()
            self._setup_prometheus_exporter()

    def _create_transport(self) -> Transport:
        transport = Factory.create(self._configuration.transport_config)
        transport.setup()
        return transport

    def _setup_logging(self):
        console_logger = logging.getLogger("console")
        if console_logger.handlers:
            console_handler = console_logger.handlers.pop()  # last handler is console
            self.loghandler = StreamrotorMPQueueListener(logqueue, console_handler)
            self.loghandler.start()

    def _setup_prometheus_exporter(self):
        prometheus_config = self._configuration.metrics
        if prometheus_config.enabled and not self.prometheus_exporter:
            self.prometheus_exporter = PrometheusExporter(prometheus_config)

    @property
    def stop_requested(self) -> bool:
        """Whether a stop was requested"""
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        """Wake every wait and end the current cycle at the next step boundary.

        Safe to call from signal handlers and other threads.
        """
        self._stop_event.set()

    def start(self) -> None:
        """Spawn generation 0 and subscribe the consumer slots to it.

        Raises
        ------
        SpawnFailedError
            If a producer of generation 0 could not be spawned.
        """
        if self.state is not RotationState.STOPPED:
            return
        if self.prometheus_exporter:
            self.prometheus_exporter.run()
        self.generation = 0
        self.base = 0
        self._spawn_generation(self.base, self.generation)
        self._resubscribe()
        self.state = RotationState.STEADY
        logger.info("Started rotation with generation 0 on %s", ", ".join(self.namespace.window(0)))

    def run_cycle(self) -> bool:
        """Run one rotation cycle.

        Returns
        -------
        bool
            :code:`True` if the rotation completed, :code:`False` if it was ended by a stop
            request or the scheduler is not steady.

        Raises
        ------
        SpawnFailedError
            If a producer of the next generation could not be spawned.
        DrainTimeoutError
            If a drain timeout is configured and the aggregator did not drain in time.
        """
        if self.state is not RotationState.STEADY:
            return False
        if not self._wait(self._configuration.cycle_interval):
            return self._interrupted()

        self.state = RotationState.UNSUBSCRIBING
        self.slots.unsubscribe_all()

        self.state = RotationState.DRAINING
        started = time.monotonic()
        drained = self.drain_monitor.wait()
        self.metrics.drain_wait_time += time.monotonic() - started
        if not drained:
            return self._interrupted()

        self.state = RotationState.SWAPPING
        outgoing = self.generation
        next_base = self.namespace.next_base(self.base)
        self._spawn_generation(next_base, outgoing + 1)
        self._despawn_generation(outgoing)
        self.base = next_base
        self.generation = outgoing + 1
        if not self._wait(self._configuration.resubscribe_delay):
            return self._interrupted()

        self.state = RotationState.RESUBSCRIBING
        self._resubscribe()
        self.state = RotationState.STEADY
        self.metrics.number_of_rotations += 1
        logger.info(
            "Rotated to generation %s on %s",
            self.generation,
            ", ".join(self.namespace.window(self.base)),
        )
        return True

    def stop(self) -> None:
        """Despawn every live producer and unsubscribe every slot. Idempotent."""
        self._stop_event.set()
        if self.state is not RotationState.STOPPED or self.producers.live():
            self.state = RotationState.TEARDOWN
            self.slots.unsubscribe_all()
            for record in self.producers.live():
                self.producers.despawn(record.producer_id)
            self.state = RotationState.STOPPED
        if self.prometheus_exporter:
            self.prometheus_exporter.shut_down()
        logger.info("Shutdown complete")
        if self.loghandler is not None:
            self.loghandler.stop()
            self.loghandler = None

    def _spawn_generation(self, base: int, generation: int) -> None:
        names = self.namespace.window(base)
        for name, source in zip(names, self._configuration.sources):
            self.producers.spawn(name, generation, source)
        self.metrics.generation += generation

    def _despawn_generation(self, generation: int) -> None:
        for record in self.producers.generation(generation):
            self.producers.despawn(record.producer_id)

    def _resubscribe(self) -> None:
        self.slots.subscribe_all(self.namespace.window(self.base))

    def _interrupted(self) -> bool:
        logger.info("Rotation interrupted in state %s", self.state.name)
        self.metrics.number_of_interrupted_rotations += 1
        return False

    def _wait(self, seconds: float) -> bool:
        """Wait for :code:`seconds` while reporting exited producers.

        Returns :code:`False` if a stop was requested.
        """
        deadline = time.monotonic() + seconds
        while True:
            self.handle_bus_events()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return not self._stop_event.is_set()
            if self._stop_event.wait(min(remaining, self._configuration.timeout)):
                return False

    def handle_bus_events(self) -> None:
        """Log producers that exited on their own. They are replaced by the next rotation."""
        for event in self.producers.poll_events():
            self._handlers[event.kind](event)

    @staticmethod
    def _on_end_of_stream(event: BusEvent) -> None:
        logger.info("Producer %s on %s reached end of stream", event.producer_id, event.channel)

    @staticmethod
    def _on_error(event: BusEvent) -> None:
        logger.warning(
            "Producer %s on %s exited with code %s", event.producer_id, event.channel, event.exitcode
        )

    @staticmethod
    def _on_other(event: BusEvent) -> None:
        logger.debug("Producer %s on %s exited", event.producer_id, event.channel)

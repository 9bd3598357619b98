"""Wires the rotation scheduler and the batch aggregator together and drives the rotation.

>>> configuration = Configuration.from_sources(["/etc/streamrotor/rotation.yml"])
>>> Runner.get_runner(configuration).start()
"""

import atexit
import logging
import sys
from typing import Generator, Optional

from streamrotor.framework.batch_aggregator import BatchAggregator
from streamrotor.framework.heartbeat import DrainTimeoutError, Heartbeat
from streamrotor.framework.producer_pool import SpawnFailedError
from streamrotor.framework.rotation_scheduler import RotationScheduler
from streamrotor.util.configuration import Configuration
from streamrotor.util.defaults import EXITCODES

FATAL_ERRORS = {
    SpawnFailedError: EXITCODES.SPAWN_ERROR,
    DrainTimeoutError: EXITCODES.DRAIN_TIMEOUT,
}


class Runner:
    """Owns one scheduler and one aggregator sharing a heartbeat.

    There is one runner per process, obtain it with :code:`Runner.get_runner`.
    """

    _runner: Optional["Runner"] = None

    _exit_received: bool = False

    @staticmethod
    def get_runner(configuration: Configuration) -> "Runner":
        """Return the runner of this process, creating it on the first call."""
        if Runner._runner is None:
            Runner._runner = Runner(configuration)
        return Runner._runner

    @staticmethod
    def current() -> Optional["Runner"]:
        """The runner of this process or :code:`None` if none was created yet"""
        return Runner._runner

    def __init__(self, configuration: Configuration) -> None:
        atexit.register(self.stop_and_exit)
        self.exit_code = EXITCODES.SUCCESS
        self._configuration = configuration
        self._logger = logging.getLogger("Runner")
        self._heartbeat = Heartbeat()
        self._scheduler = RotationScheduler(configuration, heartbeat=self._heartbeat)
        self._aggregator = BatchAggregator(
            transport=self._scheduler.transport,
            heartbeat=self._heartbeat,
            batch_size=configuration.batch_size,
            batch_timeout=configuration.batch_timeout,
        )

    def start(self) -> None:
        """Spawn the first generation and rotate until :code:`stop` is called.

        Exits the interpreter with the matching :code:`EXITCODES` member on a fatal error.
        """
        self._aggregator.start()
        self._guarded(self._scheduler.start)
        self._logger.info("Startup complete")
        for _ in self._keep_iterating():
            if self._exit_received:
                break
            self._guarded(self._scheduler.run_cycle)
        self.stop_and_exit()

    def stop(self) -> None:
        """Let the current cycle end at its next step and leave the loop. Called on signals."""
        self._exit_received = True
        self._scheduler.request_stop()

    def stop_and_exit(self) -> None:
        """Tear down the rotation, then stop the aggregator."""
        self._logger.info("Shutting down")
        self._scheduler.stop()
        self._aggregator.stop()

    def _guarded(self, step) -> None:
        try:
            step()
        except tuple(FATAL_ERRORS) as error:
            self.exit_code = FATAL_ERRORS[type(error)]
            self._logger.critical("%s. Exiting.", error)
            self.stop_and_exit()
            sys.exit(self.exit_code.value)

    def _keep_iterating(self) -> Generator:
        while True:  # pragma: no cover
            yield 1

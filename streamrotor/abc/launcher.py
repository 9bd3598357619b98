"""This module provides the abstract base class for launchers.

A launcher starts and stops producer instances. A producer instance pulls frames from one
configured source and publishes them onto the channel it was started for.
"""

import logging
import multiprocessing
from abc import abstractmethod
from logging.handlers import QueueHandler
from typing import Any

from attrs import define, field, validators

from streamrotor.abc.component import Component
from streamrotor.abc.exceptions import StreamrotorException
from streamrotor.abc.transport import Channel
from streamrotor.util.defaults import DEFAULT_STOP_TIMEOUT
from streamrotor.util.logging import logqueue

logger = logging.getLogger("Launcher")


class LaunchError(StreamrotorException):
    """Raise if a producer instance could not be started."""

    def __init__(self, launcher: "Launcher", message: str) -> None:
        super().__init__(f"{self.__class__.__name__} in {launcher.describe()}: {message}")


@define(kw_only=True, frozen=True)
class SourceConfig:
    """Address of one upstream source. Only consumed by launchers."""

    location: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    """Where to pull frames from, e.g. :code:`rtsp://10.0.0.11/stream` or a file path."""
    protocols: str = field(validator=validators.instance_of(str), default="tcp")
    """Transport protocols the source should be pulled with."""
    options: dict = field(validator=validators.instance_of(dict), factory=dict)
    """Launcher specific options for this source."""


@define(kw_only=True)
class ProducerHandle:
    """Handle of a producer instance running in its own process."""

    process: Any
    stop_event: Any

    @property
    def pid(self):
        """Process id of the producer instance"""
        return self.process.pid

    @property
    def exitcode(self):
        """Exit code of the producer instance or :code:`None` while it runs"""
        return self.process.exitcode

    def is_alive(self) -> bool:
        """Whether the producer instance is still running"""
        return self.process.is_alive()


class Launcher(Component):
    """Starts and stops producer instances."""

    @define(kw_only=True, slots=False, frozen=True)
    class Config(Component.Config):
        """Common launcher configurations"""

        stop_timeout: float = field(
            validator=[validators.instance_of((int, float)), validators.gt(0)],
            default=DEFAULT_STOP_TIMEOUT,
        )
        """Seconds to wait for a producer instance to finish before it gets terminated."""

    @abstractmethod
    def start(self, channel: Channel, source: SourceConfig) -> Any:
        """Start a producer instance publishing frames from :code:`source` onto :code:`channel`.

        Returns
        -------
        handle
            An opaque handle to stop the producer instance with.

        Raises
        ------
        LaunchError
            If the producer instance could not be constructed or started.
        """

    @abstractmethod
    def stop(self, handle: Any) -> None:
        """Stop the producer instance behind :code:`handle` and wait for it."""


class ProcessLauncher(Launcher):
    """Runs every producer instance in its own :code:`multiprocessing.Process`.

    Subclasses implement :code:`produce` which is executed in the child process. It must return
    as soon as :code:`stop_event` is set.
    """

    def start(self, channel: Channel, source: SourceConfig) -> ProducerHandle:
        self.validate_source(source)
        stop_event = multiprocessing.Event()
        process = multiprocessing.Process(
            target=self.run_producer,
            args=(
                type(self),
                self._config,
                channel,
                source,
                stop_event,
                logqueue,
                logging.getLogger().level,
            ),
            name=f"Producer-{channel.name}",
            daemon=True,
        )
        try:
            process.start()
        except (OSError, ValueError) as error:
            raise LaunchError(
                self, f"could not start producer for {source.location}: {error}"
            ) from error
        logger.debug("Started producer process %s for %s", process.pid, channel.name)
        return ProducerHandle(process=process, stop_event=stop_event)

    def stop(self, handle: ProducerHandle) -> None:
        handle.stop_event.set()
        handle.process.join(timeout=self._config.stop_timeout)
        if handle.process.is_alive():
            logger.warning(
                "Producer process %s did not stop in time, terminating it", handle.pid
            )
            handle.process.terminate()
            handle.process.join()

    def validate_source(self, source: SourceConfig) -> None:
        """Check the source before a process is started for it.

        Raises
        ------
        LaunchError
            If no producer instance can be started for this source.
        """

    @staticmethod
    def run_producer(
        launcher_class, config, channel: Channel, source: SourceConfig, stop_event, log_queue, level
    ) -> None:
        """Entrypoint of the producer process"""
        root_logger = logging.getLogger()
        if not root_logger.handlers:
            root_logger.addHandler(QueueHandler(log_queue))
            root_logger.setLevel(level)
        try:
            launcher_class.produce(config, channel, source, stop_event)
        finally:
            channel.detach()

    @classmethod
    @abstractmethod
    def produce(cls, config, channel: Channel, source: SourceConfig, stop_event) -> None:
        """Publish frames from :code:`source` onto :code:`channel` until :code:`stop_event` is
        set or the source is exhausted."""

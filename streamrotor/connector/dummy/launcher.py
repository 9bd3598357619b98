"""
DummyLauncher
=============

A launcher whose producer instances publish synthetic frames instead of pulling them from the
configured source. Every frame carries the source location, the channel name and a sequence
number. It can be used to exercise the rotation without any upstream source.

If :code:`frames` is set, the producer instance ends its stream after publishing that many frames.

Example
^^^^^^^
..  code-block:: yaml
    :linenos:

    launcher:
      mydummylauncher:
        type: dummy_launcher
        frame_interval: 0.04
"""

import logging
import time
from typing import Optional

from attrs import define, field, validators

from streamrotor.abc.launcher import ProcessLauncher, SourceConfig
from streamrotor.abc.transport import Channel
from streamrotor.util.defaults import DEFAULT_FRAME_INTERVAL


class DummyLauncher(ProcessLauncher):
    """DummyLauncher Connector"""

    @define(kw_only=True, slots=False, frozen=True)
    class Config(ProcessLauncher.Config):
        """DummyLauncher specific configuration"""

        frame_interval: float = field(
            validator=[validators.instance_of((int, float)), validators.gt(0)],
            default=DEFAULT_FRAME_INTERVAL,
        )
        """Seconds between two published frames."""
        frames: Optional[int] = field(
            validator=validators.optional([validators.instance_of(int), validators.ge(0)]),
            default=None,
        )
        """Number of frames after which the stream ends. Default: :code:`None` (endless)"""

    @staticmethod
    def frame(source: SourceConfig, channel: Channel, sequence: int) -> dict:
        """Create a synthetic frame"""
        return {
            "source": source.location,
            "channel": channel.name,
            "sequence": sequence,
            "timestamp": time.time(),
        }

    @classmethod
    def produce(cls, config, channel: Channel, source: SourceConfig, stop_event) -> None:
        logger = logging.getLogger("DummyProducer")
        logger.debug("Publishing synthetic frames for %s onto %s", source.location, channel.name)
        sequence = 0
        while not stop_event.is_set():
            if config.frames is not None and sequence >= config.frames:
                logger.info("End of stream for %s", source.location)
                return
            channel.publish(cls.frame(source, channel, sequence))
            sequence += 1
            stop_event.wait(config.frame_interval)

"""
JsonlLauncher
=============

A launcher whose producer instances replay a jsonl file as frames. The location of every source
is read with a getter, so it can be a local path or an :code:`http(s)://` url. Each line is one
frame. Lines are replayed in order with :code:`frame_interval` seconds in between.

Example
^^^^^^^
..  code-block:: yaml
    :linenos:

    launcher:
      myjsonllauncher:
        type: jsonl_launcher
        frame_interval: 0.04
        repeat_documents: true
"""

import logging
from pathlib import Path

from attrs import define, field, validators

from streamrotor.abc.launcher import LaunchError, ProcessLauncher, SourceConfig
from streamrotor.abc.transport import Channel
from streamrotor.util.defaults import DEFAULT_FRAME_INTERVAL
from streamrotor.util.getter import FileGetter, GetterFactory, GetterNotFoundError


class JsonlLauncher(ProcessLauncher):
    """JsonlLauncher Connector"""

    @define(kw_only=True, slots=False, frozen=True)
    class Config(ProcessLauncher.Config):
        """JsonlLauncher specific configuration"""

        frame_interval: float = field(
            validator=[validators.instance_of((int, float)), validators.gt(0)],
            default=DEFAULT_FRAME_INTERVAL,
        )
        """Seconds between two published frames."""
        repeat_documents: bool = field(validator=validators.instance_of(bool), default=False)
        """If set to :code:`true`, the file is replayed again after the last line was published.
        Otherwise the stream ends. Default: :code:`False`"""

    def validate_source(self, source: SourceConfig) -> None:
        try:
            getter = GetterFactory.from_string(source.location)
        except GetterNotFoundError as error:
            raise LaunchError(self, str(error)) from error
        if isinstance(getter, FileGetter) and not Path(getter.target).is_file():
            raise LaunchError(self, f"file '{getter.target}' does not exist")

    @classmethod
    def produce(cls, config, channel: Channel, source: SourceConfig, stop_event) -> None:
        logger = logging.getLogger("JsonlProducer")
        documents = GetterFactory.from_string(source.location).get_jsonl()
        if not documents:
            logger.warning("No frames in %s", source.location)
            return
        logger.debug("Replaying %s frames from %s", len(documents), source.location)
        while not stop_event.is_set():
            for document in documents:
                if stop_event.is_set():
                    return
                channel.publish(document)
                stop_event.wait(config.frame_interval)
            if not config.repeat_documents:
                logger.info("End of stream for %s", source.location)
                return

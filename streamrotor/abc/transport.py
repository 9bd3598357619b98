"""This module provides the abstract base class for transports.

A transport is the publish/subscribe bus between producers and consumer slots. Producers publish
frames onto a named channel, consumer slots listen to at most one channel name at a time. A slot
listening to a name without a live publisher simply receives nothing.
"""

from abc import abstractmethod
from typing import Any, Optional

from streamrotor.abc.component import Component
from streamrotor.abc.exceptions import StreamrotorException


class ChannelError(StreamrotorException):
    """Raise if a channel could not be created or released."""

    def __init__(self, transport: "Transport", message: str) -> None:
        super().__init__(f"{self.__class__.__name__} in {transport.describe()}: {message}")


class Channel:
    """Publishing side of a channel that is handed to a producer instance."""

    name: str

    @abstractmethod
    def publish(self, frame: Any) -> bool:
        """Publish a frame. Returns :code:`False` if the frame was dropped."""

    def detach(self) -> None:
        """Called by a producer instance once it stops publishing."""


class Transport(Component):
    """Carries frames from producers to subscribed consumer slots."""

    @abstractmethod
    def create_channel(self, name: str) -> Channel:
        """Create a fresh channel for :code:`name` and return its publishing handle.

        Raises
        ------
        ChannelError
            If the channel exists already or cannot be created.
        """

    @abstractmethod
    def destroy_channel(self, name: str) -> None:
        """Release the channel. Frames that were not received are discarded. Idempotent."""

    @abstractmethod
    def subscribe(self, slot_index: int, name: str) -> None:
        """Let slot :code:`slot_index` receive from channel :code:`name`."""

    @abstractmethod
    def unsubscribe(self, slot_index: int) -> None:
        """Stop delivering frames to slot :code:`slot_index`. Idempotent."""

    @abstractmethod
    def receive(self, slot_index: int) -> Optional[Any]:
        """Return the next frame for slot :code:`slot_index` without blocking or :code:`None`."""

"""Bookkeeping of channel names and the producers bound to them.

Channel names are drawn from a circular namespace of :code:`2 * batch_size` names. Every rotation
moves the window of names used by a generation by :code:`batch_size`, so the names of a new
generation never collide with the names of the generation it replaces.
"""

import logging
from typing import Dict, List, Optional

from attrs import define, field, validators

from streamrotor.abc.exceptions import StreamrotorException

logger = logging.getLogger("ChannelRegistry")


class NameInUseError(StreamrotorException):
    """Raise if a channel name is bound while it still has a live binding."""

    def __init__(self, name: str, producer_id: int) -> None:
        super().__init__(f"Channel '{name}' is still bound to producer {producer_id}")


@define(kw_only=True, frozen=True)
class ChannelNamespace:
    """Renders the channel names of the circular namespace."""

    prefix: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    batch_size: int = field(validator=[validators.instance_of(int), validators.ge(1)])

    @property
    def size(self) -> int:
        """Number of distinct channel names"""
        return 2 * self.batch_size

    def name(self, index: int) -> str:
        """Name of the channel at :code:`index`, wrapping around the namespace."""
        return f"{self.prefix}-{index % self.size:02d}"

    def window(self, base: int) -> List[str]:
        """The :code:`batch_size` consecutive names starting at :code:`base`."""
        return [self.name(base + offset) for offset in range(self.batch_size)]

    def next_base(self, base: int) -> int:
        """Start of the window following the window at :code:`base`."""
        return (base + self.batch_size) % self.size


class ChannelRegistry:
    """Maps channel names to at most one live producer."""

    _bindings: Dict[str, int]

    def __init__(self) -> None:
        self._bindings = {}

    def __len__(self) -> int:
        return len(self._bindings)

    def bind(self, name: str, producer_id: int) -> None:
        """Bind :code:`producer_id` to :code:`name`.

        Raises
        ------
        NameInUseError
            If :code:`name` is still bound to a producer.
        """
        if name in self._bindings:
            raise NameInUseError(name, self._bindings[name])
        self._bindings[name] = producer_id
        logger.debug("Bound channel %s to producer %s", name, producer_id)

    def unbind(self, name: str) -> None:
        """Release the binding of :code:`name` if there is one."""
        if self._bindings.pop(name, None) is not None:
            logger.debug("Released channel %s", name)

    def binding(self, name: str) -> Optional[int]:
        """The producer bound to :code:`name` or :code:`None`"""
        return self._bindings.get(name)

    def is_bound(self, name: str) -> bool:
        """Whether :code:`name` has a live binding"""
        return name in self._bindings

    def bound_names(self) -> List[str]:
        """All names with a live binding"""
        return list(self._bindings)

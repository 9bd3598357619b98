"""The fixed consumer slots feeding the batch aggregator.

Slot :code:`i` feeds aggregator input :code:`i`. A slot listens to at most one channel name. If
that channel has no live producer the slot is simply idle.
"""

import logging
from typing import Iterable, Iterator, List, Optional

from attrs import define, field, validators

from streamrotor.abc.transport import Transport

logger = logging.getLogger("SlotPool")


@define(kw_only=True)
class ConsumerSlot:
    """One input of the batch aggregator"""

    index: int = field(validator=[validators.instance_of(int), validators.ge(0)])
    subscription: Optional[str] = None

    @property
    def name(self) -> str:
        """Display name of the slot"""
        return f"slot-{self.index:02d}"


class ConsumerSlotPool:
    """Subscribes the consumer slots to channel names."""

    _slots: List[ConsumerSlot]

    def __init__(self, transport: Transport, batch_size: int):
        self._transport = transport
        self._slots = [ConsumerSlot(index=index) for index in range(batch_size)]

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[ConsumerSlot]:
        return iter(self._slots)

    def __getitem__(self, slot_index: int) -> ConsumerSlot:
        return self._slots[slot_index]

    def subscribe(self, slot_index: int, name: Optional[str]) -> None:
        """Let the slot listen to :code:`name`. :code:`None` unsubscribes it."""
        if name is None:
            self.unsubscribe(slot_index)
            return
        slot = self._slots[slot_index]
        self._transport.subscribe(slot_index, name)
        slot.subscription = name
        logger.info("%s listens to %s", slot.name, name)

    def unsubscribe(self, slot_index: int) -> None:
        """Stop the slot from listening. Does nothing if it does not listen to anything."""
        slot = self._slots[slot_index]
        if slot.subscription is None:
            return
        self._transport.unsubscribe(slot_index)
        logger.info("%s stopped listening to %s", slot.name, slot.subscription)
        slot.subscription = None

    def subscribe_all(self, names: Iterable[str]) -> None:
        """Subscribe slot :code:`i` to the :code:`i`-th name"""
        names = list(names)
        if len(names) != len(self._slots):
            raise ValueError(f"Expected {len(self._slots)} channel names, got {len(names)}")
        for slot_index, name in enumerate(names):
            self.subscribe(slot_index, name)

    def unsubscribe_all(self) -> None:
        """Unsubscribe every slot"""
        for slot in self._slots:
            self.unsubscribe(slot.index)

    def subscriptions(self) -> List[Optional[str]]:
        """Current subscription of every slot by index"""
        return [slot.subscription for slot in self._slots]

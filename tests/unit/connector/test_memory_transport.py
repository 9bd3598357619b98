# pylint: disable=missing-docstring
# pylint: disable=attribute-defined-outside-init
# pylint: disable=protected-access
import time

import pytest

from streamrotor.abc.transport import ChannelError
from streamrotor.connector.memory.transport import MemoryChannel, MemoryTransport
from streamrotor.factory import Factory


def receive_within(transport, slot_index, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        frame = transport.receive(slot_index)
        if frame is not None:
            return frame
        time.sleep(0.001)
    return None


class TestMemoryTransport:
    CONFIG = {"type": "memory_transport", "max_backlog": 2}

    def setup_method(self):
        self.object = Factory.create({"memory": self.CONFIG})

    def teardown_method(self):
        self.object.shut_down()

    def test_is_created_by_factory(self):
        assert isinstance(self.object, MemoryTransport)
        assert self.object.describe() == "MemoryTransport (memory)"
        assert self.object._config.max_backlog == 2

    def test_create_channel_returns_publisher(self):
        channel = self.object.create_channel("interpipe-00")
        assert isinstance(channel, MemoryChannel)
        assert channel.name == "interpipe-00"
        assert self.object.channels == ["interpipe-00"]

    def test_create_channel_twice_raises(self):
        self.object.create_channel("interpipe-00")
        with pytest.raises(ChannelError, match="exists already"):
            self.object.create_channel("interpipe-00")

    def test_subscribed_slot_receives_published_frames_in_order(self):
        self.object.metrics.number_of_received_frames = 0
        channel = self.object.create_channel("interpipe-00")
        self.object.subscribe(0, "interpipe-00")
        assert channel.publish({"sequence": 0})
        assert channel.publish({"sequence": 1})
        assert receive_within(self.object, 0) == {"sequence": 0}
        assert receive_within(self.object, 0) == {"sequence": 1}
        assert self.object.metrics.number_of_received_frames == 2

    def test_receive_returns_none_without_subscription(self):
        channel = self.object.create_channel("interpipe-00")
        channel.publish({"sequence": 0})
        assert self.object.receive(0) is None

    def test_subscription_to_unbound_name_receives_nothing(self):
        self.object.subscribe(0, "interpipe-03")
        assert self.object.receive(0) is None

    def test_unsubscribed_slot_receives_nothing(self):
        channel = self.object.create_channel("interpipe-00")
        self.object.subscribe(0, "interpipe-00")
        self.object.unsubscribe(0)
        channel.publish({"sequence": 0})
        time.sleep(0.05)
        assert self.object.receive(0) is None

    def test_unsubscribe_is_idempotent(self):
        self.object.unsubscribe(1)
        self.object.unsubscribe(1)
        assert self.object.receive(1) is None

    def test_publish_drops_frames_if_backlog_is_full(self):
        channel = self.object.create_channel("interpipe-00")
        assert channel.publish({"sequence": 0})
        assert channel.publish({"sequence": 1})
        assert not channel.publish({"sequence": 2})

    def test_destroy_channel_discards_frames(self):
        channel = self.object.create_channel("interpipe-00")
        self.object.subscribe(0, "interpipe-00")
        channel.publish({"sequence": 0})
        self.object.destroy_channel("interpipe-00")
        assert self.object.receive(0) is None
        assert not self.object.channels

    def test_destroy_channel_is_idempotent(self):
        self.object.create_channel("interpipe-00")
        self.object.destroy_channel("interpipe-00")
        self.object.destroy_channel("interpipe-00")
        assert not self.object.channels

    def test_recreated_channel_does_not_deliver_old_frames(self):
        old = self.object.create_channel("interpipe-00")
        old.publish({"generation": 0})
        self.object.destroy_channel("interpipe-00")
        new = self.object.create_channel("interpipe-00")
        assert new.queue is not old.queue
        self.object.subscribe(0, "interpipe-00")
        new.publish({"generation": 2})
        assert receive_within(self.object, 0) == {"generation": 2}

    def test_slot_follows_its_subscription(self):
        first = self.object.create_channel("interpipe-00")
        second = self.object.create_channel("interpipe-02")
        self.object.subscribe(0, "interpipe-00")
        first.publish("from first")
        assert receive_within(self.object, 0) == "from first"
        self.object.subscribe(0, "interpipe-02")
        second.publish("from second")
        assert receive_within(self.object, 0) == "from second"

    def test_shut_down_destroys_all_channels(self):
        self.object.create_channel("interpipe-00")
        self.object.create_channel("interpipe-01")
        self.object.shut_down()
        assert not self.object.channels

    def test_invalid_backlog_is_rejected(self):
        with pytest.raises(ValueError, match="max_backlog"):
            Factory.create({"memory": {"type": "memory_transport", "max_backlog": 0}})

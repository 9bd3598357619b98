# pylint: disable=missing-docstring
# pylint: disable=protected-access
# pylint: disable=attribute-defined-outside-init
from unittest import mock

import pytest

from streamrotor.abc.launcher import LaunchError
from streamrotor.abc.transport import ChannelError
from streamrotor.framework.bus_event import BusEventKind
from streamrotor.framework.channel_registry import ChannelRegistry, NameInUseError
from streamrotor.framework.producer_pool import ProducerPool, ProducerState, SpawnFailedError


@pytest.fixture(name="pool")
def fixture_pool(launcher, transport) -> ProducerPool:
    pool = ProducerPool(launcher, transport, ChannelRegistry())
    pool.metrics.number_of_producer_spawns = 0
    pool.metrics.number_of_producer_despawns = 0
    pool.metrics.number_of_failed_spawns = 0
    pool.metrics.number_of_exited_producers = 0
    pool.metrics.number_of_live_producers = 0
    return pool


class TestProducerPool:
    def test_spawn_creates_active_producer(self, pool, launcher, transport, sources):
        producer_id = pool.spawn("interpipe-00", 0, sources[0])
        record = pool.record(producer_id)
        assert record.state is ProducerState.ACTIVE
        assert record.channel == "interpipe-00"
        assert record.generation == 0
        assert record.source == sources[0]
        transport.create_channel.assert_called_with("interpipe-00")
        launcher.start.assert_called_with(transport.create_channel.return_value, sources[0])
        assert record.handle is not None

    def test_spawn_binds_channel(self, pool, sources):
        producer_id = pool.spawn("interpipe-00", 0, sources[0])
        assert pool._registry.binding("interpipe-00") == producer_id

    def test_spawn_hands_out_monotonic_ids(self, pool, sources):
        first = pool.spawn("interpipe-00", 0, sources[0])
        pool.despawn(first)
        second = pool.spawn("interpipe-00", 1, sources[0])
        assert second > first

    def test_spawn_raises_name_in_use_for_bound_name(self, pool, launcher, sources):
        pool.spawn("interpipe-00", 0, sources[0])
        with pytest.raises(NameInUseError):
            pool.spawn("interpipe-00", 1, sources[1])
        assert launcher.start.call_count == 1
        assert len(pool.live()) == 1

    def test_spawn_raises_spawn_failed_if_launcher_fails(self, pool, launcher, transport, sources):
        launcher.start.side_effect = LaunchError(launcher, "no such source")
        with pytest.raises(SpawnFailedError, match=r"interpipe-00.*no such source"):
            pool.spawn("interpipe-00", 0, sources[0])
        record = pool.record(0)
        assert record.state is ProducerState.DESTROYED
        assert not pool._registry.is_bound("interpipe-00")
        transport.destroy_channel.assert_called_with("interpipe-00")
        assert pool.metrics.number_of_failed_spawns == 1

    def test_spawn_raises_spawn_failed_if_channel_can_not_be_created(
        self, pool, launcher, transport, sources
    ):
        transport.create_channel.side_effect = ChannelError(transport, "exists already")
        with pytest.raises(SpawnFailedError):
            pool.spawn("interpipe-00", 0, sources[0])
        launcher.start.assert_not_called()
        assert not pool.live()

    def test_failed_spawn_leaves_no_created_record(self, pool, launcher, sources):
        launcher.start.side_effect = LaunchError(launcher, "broken")
        with pytest.raises(SpawnFailedError):
            pool.spawn("interpipe-00", 0, sources[0])
        assert all(
            record.state is not ProducerState.CREATED for record in pool._records.values()
        )

    def test_despawn_stops_and_releases_producer(self, pool, launcher, transport, sources):
        producer_id = pool.spawn("interpipe-00", 0, sources[0])
        handle = pool.record(producer_id).handle
        pool.despawn(producer_id)
        launcher.stop.assert_called_with(handle)
        transport.destroy_channel.assert_called_with("interpipe-00")
        assert pool.record(producer_id).state is ProducerState.DESTROYED
        assert not pool._registry.is_bound("interpipe-00")

    def test_despawn_stops_before_releasing_channel(self, pool, launcher, transport, sources):
        manager = mock.Mock()
        manager.attach_mock(launcher.stop, "stop")
        manager.attach_mock(transport.destroy_channel, "destroy_channel")
        producer_id = pool.spawn("interpipe-00", 0, sources[0])
        pool.despawn(producer_id)
        assert [call[0] for call in manager.mock_calls] == ["stop", "destroy_channel"]

    def test_despawn_is_idempotent(self, pool, launcher, sources):
        producer_id = pool.spawn("interpipe-00", 0, sources[0])
        pool.despawn(producer_id)
        pool.despawn(producer_id)
        assert launcher.stop.call_count == 1
        assert pool.metrics.number_of_producer_despawns == 1

    def test_despawn_releases_channel_if_launcher_stop_fails(self, pool, launcher, sources):
        producer_id = pool.spawn("interpipe-00", 0, sources[0])
        launcher.stop.side_effect = OSError("gone")
        with pytest.raises(OSError):
            pool.despawn(producer_id)
        assert pool.record(producer_id).state is ProducerState.DESTROYED
        assert not pool._registry.is_bound("interpipe-00")

    def test_despawn_raises_for_unknown_id(self, pool):
        with pytest.raises(KeyError):
            pool.despawn(42)

    def test_generation_returns_live_records_of_generation(self, pool, sources):
        first = pool.spawn("interpipe-00", 0, sources[0])
        second = pool.spawn("interpipe-01", 0, sources[1])
        third = pool.spawn("interpipe-02", 1, sources[0])
        assert [record.producer_id for record in pool.generation(0)] == [first, second]
        assert [record.producer_id for record in pool.generation(1)] == [third]
        pool.despawn(first)
        assert [record.producer_id for record in pool.generation(0)] == [second]

    def test_live_excludes_destroyed_records(self, pool, sources):
        first = pool.spawn("interpipe-00", 0, sources[0])
        second = pool.spawn("interpipe-01", 0, sources[1])
        pool.despawn(first)
        assert [record.producer_id for record in pool.live()] == [second]

    def test_record_of_unknown_id_is_none(self, pool):
        assert pool.record(42) is None

    def test_spawn_and_despawn_count_metrics(self, pool, sources):
        producer_id = pool.spawn("interpipe-00", 0, sources[0])
        pool.spawn("interpipe-01", 0, sources[1])
        pool.despawn(producer_id)
        assert pool.metrics.number_of_producer_spawns == 2
        assert pool.metrics.number_of_producer_despawns == 1

    @pytest.mark.parametrize(
        "exitcode, kind",
        [
            (0, BusEventKind.END_OF_STREAM),
            (1, BusEventKind.ERROR),
            (-15, BusEventKind.ERROR),
            (None, BusEventKind.OTHER),
        ],
    )
    def test_poll_events_reports_exited_producers(self, pool, sources, exitcode, kind):
        producer_id = pool.spawn("interpipe-00", 0, sources[0])
        handle = pool.record(producer_id).handle
        handle.is_alive.return_value = False
        handle.exitcode = exitcode
        events = list(pool.poll_events())
        assert len(events) == 1
        assert events[0].kind is kind
        assert events[0].producer_id == producer_id
        assert events[0].channel == "interpipe-00"
        assert events[0].exitcode == exitcode

    def test_poll_events_reports_every_exit_only_once(self, pool, sources):
        producer_id = pool.spawn("interpipe-00", 0, sources[0])
        pool.record(producer_id).handle.is_alive.return_value = False
        assert len(list(pool.poll_events())) == 1
        assert not list(pool.poll_events())
        assert pool.metrics.number_of_exited_producers == 1

    def test_poll_events_ignores_running_and_despawned_producers(self, pool, sources):
        running = pool.spawn("interpipe-00", 0, sources[0])
        despawned = pool.spawn("interpipe-01", 0, sources[1])
        pool.despawn(despawned)
        pool.record(despawned).handle.is_alive.return_value = False
        assert pool.record(running).handle.is_alive() is True
        assert not list(pool.poll_events())

# pylint: disable=missing-docstring
# pylint: disable=protected-access
# pylint: disable=attribute-defined-outside-init
from unittest import mock

import pytest

from streamrotor.abc.launcher import LaunchError
from streamrotor.framework.heartbeat import DrainTimeoutError
from streamrotor.framework.producer_pool import SpawnFailedError
from streamrotor.runner import Runner
from streamrotor.util.defaults import EXITCODES


@pytest.fixture(name="runner")
def fixture_runner(configuration):
    with mock.patch("streamrotor.runner.atexit"):
        with mock.patch("streamrotor.runner.RotationScheduler") as mock_scheduler:
            with mock.patch("streamrotor.runner.BatchAggregator") as mock_aggregator:
                runner = Runner.get_runner(configuration)
                runner.mock_scheduler_class = mock_scheduler
                runner.mock_aggregator_class = mock_aggregator
                yield runner
    Runner._runner = None


def iterations(count):
    return mock.patch.object(Runner, "_keep_iterating", return_value=iter([1] * count))


class TestRunner:
    def test_get_runner_returns_singleton(self, runner, configuration):
        assert Runner.get_runner(configuration) is runner
        assert Runner.current() is runner

    def test_current_is_none_without_runner(self):
        assert Runner.current() is None

    def test_init_registers_stop_and_exit(self, configuration):
        with mock.patch("streamrotor.runner.atexit") as mock_atexit:
            with mock.patch("streamrotor.runner.RotationScheduler"):
                with mock.patch("streamrotor.runner.BatchAggregator"):
                    runner = Runner(configuration)
        mock_atexit.register.assert_called_once_with(runner.stop_and_exit)

    def test_scheduler_and_aggregator_share_heartbeat(self, runner, configuration):
        scheduler_kwargs = runner.mock_scheduler_class.call_args.kwargs
        aggregator_kwargs = runner.mock_aggregator_class.call_args.kwargs
        assert scheduler_kwargs["heartbeat"] is runner._heartbeat
        assert aggregator_kwargs["heartbeat"] is runner._heartbeat
        assert aggregator_kwargs["transport"] is runner._scheduler.transport
        assert aggregator_kwargs["batch_size"] == configuration.batch_size
        assert aggregator_kwargs["batch_timeout"] == configuration.batch_timeout

    def test_start_runs_cycles_and_stops(self, runner):
        with iterations(3):
            runner.start()
        runner._aggregator.start.assert_called_once()
        runner._scheduler.start.assert_called_once()
        assert runner._scheduler.run_cycle.call_count == 3
        runner._scheduler.stop.assert_called_once()
        runner._aggregator.stop.assert_called_once()
        assert runner.exit_code is EXITCODES.SUCCESS

    def test_start_exits_with_spawn_error_if_first_generation_fails(self, runner):
        error = SpawnFailedError("interpipe-00", "unreachable")
        runner._scheduler.start.side_effect = error
        with pytest.raises(SystemExit) as raised:
            runner.start()
        assert raised.value.code == EXITCODES.SPAWN_ERROR.value
        runner._scheduler.stop.assert_called_once()
        runner._scheduler.run_cycle.assert_not_called()

    def test_iterate_exits_with_spawn_error(self, runner):
        launch_error = LaunchError(mock.MagicMock(), "malformed source")
        runner._scheduler.run_cycle.side_effect = SpawnFailedError("interpipe-02", str(launch_error))
        with iterations(3):
            with pytest.raises(SystemExit) as raised:
                runner.start()
        assert raised.value.code == EXITCODES.SPAWN_ERROR.value
        assert runner.exit_code is EXITCODES.SPAWN_ERROR
        runner._scheduler.stop.assert_called_once()
        runner._aggregator.stop.assert_called_once()

    def test_iterate_exits_with_drain_timeout(self, runner, caplog):
        runner._scheduler.run_cycle.side_effect = DrainTimeoutError(10, 0.5)
        with iterations(3):
            with pytest.raises(SystemExit) as raised:
                runner.start()
        assert raised.value.code == EXITCODES.DRAIN_TIMEOUT.value
        assert "did not drain within" in caplog.text

    def test_stop_requests_scheduler_stop(self, runner):
        runner.stop()
        assert runner._exit_received
        runner._scheduler.request_stop.assert_called_once()

    def test_iterate_ends_after_stop(self, runner):
        runner._scheduler.run_cycle.side_effect = lambda: runner.stop()
        with iterations(5):
            runner.start()
        runner._scheduler.run_cycle.assert_called_once()
        runner._scheduler.stop.assert_called_once()

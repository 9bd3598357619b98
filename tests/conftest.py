"""Global configuration and fixtures for all pytest-based tests"""

from multiprocessing import set_start_method
from unittest import mock

import pytest

from streamrotor.abc.launcher import Launcher, SourceConfig
from streamrotor.abc.transport import Transport
from streamrotor.framework.rotation_scheduler import RotationScheduler
from streamrotor.util.configuration import Configuration
from streamrotor.util.logging import logqueue
from tests.testdata.metadata import path_to_config


@pytest.fixture(scope="session", autouse=True)
def configure_multiprocess_start_method():
    """Sets the start method to 'fork' for all platforms and python versions"""
    set_start_method("fork", force=True)


@pytest.fixture(scope="session", autouse=True)
def release_logqueue():
    """Nothing drains the log queue in tests, so its feeder thread must not block the exit"""
    logqueue.cancel_join_thread()


@pytest.fixture(name="configuration")
def fixture_configuration() -> Configuration:
    return Configuration.from_sources([path_to_config])


@pytest.fixture(name="sources")
def fixture_sources() -> list[SourceConfig]:
    return [SourceConfig(location=f"rtsp://127.0.0.1/cam{index}") for index in range(2)]


@pytest.fixture(name="transport")
def fixture_transport() -> mock.MagicMock:
    transport = mock.MagicMock(spec=Transport)
    transport.describe.return_value = "MockTransport (transport)"
    return transport


@pytest.fixture(name="launcher")
def fixture_launcher() -> mock.MagicMock:
    launcher = mock.MagicMock(spec=Launcher)
    launcher.describe.return_value = "MockLauncher (launcher)"
    launcher.start.side_effect = lambda channel, source: mock.MagicMock(
        **{"is_alive.return_value": True, "exitcode": None}
    )
    return launcher


@pytest.fixture(name="scheduler")
def fixture_scheduler(configuration, transport, launcher) -> RotationScheduler:
    with mock.patch.object(RotationScheduler, "_setup_logging"):
        scheduler = RotationScheduler(configuration, transport=transport, launcher=launcher)
    return scheduler

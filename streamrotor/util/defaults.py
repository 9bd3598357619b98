"""Exit codes and default values"""

from enum import IntEnum


class EXITCODES(IntEnum):
    """Exit codes of the :code:`streamrotor` command"""

    SUCCESS = 0
    ERROR = 1
    """Unexpected error"""
    CONFIGURATION_ERROR = 2
    SPAWN_ERROR = 3
    """A producer of a generation could not be started."""
    DRAIN_TIMEOUT = 4
    """The aggregator kept processing batches longer than :code:`drain_timeout`."""


DEFAULT_CONFIG_LOCATION = "file:///etc/streamrotor/rotation.yml"

DEFAULT_BATCH_SIZE = 4
DEFAULT_BATCH_TIMEOUT = 0.04
DEFAULT_DRAIN_FACTOR = 5
DEFAULT_CYCLE_INTERVAL = 5.0
DEFAULT_RESUBSCRIBE_DELAY = 3.0
DEFAULT_CHANNEL_PREFIX = "interpipe"
DEFAULT_CHANNEL_BACKLOG_SIZE = 30
DEFAULT_FRAME_INTERVAL = 0.04
DEFAULT_STOP_TIMEOUT = 5.0

DEFAULT_LOG_FORMAT = "%(asctime)-15s %(process)-6s %(name)-10s %(levelname)-8s: %(message)s"
DEFAULT_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# records of all processes go to the queue, the queue listener hands them to "console"
DEFAULT_LOG_CONFIG: dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {},
    "formatters": {
        "streamrotor": {
            "class": "streamrotor.util.logging.StreamrotorFormatter",
            "format": DEFAULT_LOG_FORMAT,
            "datefmt": DEFAULT_LOG_DATE_FORMAT,
        }
    },
    "handlers": {
        "queue": {
            "class": "logging.handlers.QueueHandler",
            "queue": "ext://streamrotor.util.logging.logqueue",
        },
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "streamrotor",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "root": {"level": "INFO", "handlers": ["queue"]},
        "console": {"handlers": ["console"]},
    },
}

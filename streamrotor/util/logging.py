"""Logging of streamrotor.

All records go through :code:`logqueue`, so records of producer processes end up at the same
handlers as the records of the scheduler. The queue is drained by
:code:`StreamrotorMPQueueListener` which runs in a process of its own.
"""

import logging
import multiprocessing as mp
from logging.handlers import QueueListener
from socket import gethostname
from typing import Optional

logqueue = mp.Queue(-1)


class StreamrotorFormatter(logging.Formatter):
    """Formatter that additionally knows :code:`%(hostname)s`"""

    def format(self, record):
        record.hostname = gethostname()
        return super().format(record)


class StreamrotorMPQueueListener(QueueListener):
    """Listener that hands the records of the queue to its handlers in a daemon process"""

    _process: Optional[mp.Process] = None

    def start(self):
        self._process = mp.Process(target=self._monitor, daemon=True)
        self._process.start()

    def stop(self):
        self.enqueue_sentinel()
        if self._process is not None:
            self._process.join()
        self._process = None

"""Serves the metrics of the default prometheus registry over http"""

from logging import getLogger

from prometheus_client import REGISTRY, start_http_server

from streamrotor.util.configuration import MetricsConfig

logger = getLogger("Exporter")


class PrometheusExporter:
    """Starts and stops the http endpoint for the configured port"""

    def __init__(self, configuration: MetricsConfig):
        self.configuration = configuration
        self.server = None
        self.thread = None

    @property
    def is_running(self) -> bool:
        """Whether the endpoint serves requests"""
        return self.thread is not None and self.thread.is_alive()

    def run(self) -> None:
        """Start serving unless already running."""
        if self.is_running:
            return
        self.server, self.thread = start_http_server(
            self.configuration.port, addr="0.0.0.0", registry=REGISTRY
        )
        logger.info("Serving metrics on port %s", self.configuration.port)

    def shut_down(self) -> None:
        """Stop serving. Does nothing if the endpoint was never started."""
        if self.server is None:
            return
        self.server.shutdown()
        self.server.server_close()
        self.server, self.thread = None, None
        logger.info("Stopped serving metrics")

"""Base class of the pluggable parts of streamrotor, the transports and the launchers.

A component is created by the :code:`Factory` from a definition like
:code:`{"memory": {"type": "memory_transport", "max_backlog": 30}}`. The key becomes the
component name, the remaining options are validated by the nested :code:`Config` class.
"""

import logging
from abc import ABC
from functools import cached_property

from attrs import define, field, fields, validators

from streamrotor.metrics.metrics import Metric

logger = logging.getLogger("Component")


class Component(ABC):
    """Named, configured part of streamrotor"""

    @define(kw_only=True, slots=False, frozen=True)
    class Config:
        """Options every component has. Configurations can not be changed once created."""

        type: str = field(validator=validators.instance_of(str))
        """Registered type of the component, e.g. :code:`memory_transport`"""

    @define(kw_only=True)
    class Metrics:
        """Collection of metrics. Subclasses declare their metrics as fields with a factory."""

        _labels: dict

        def __attrs_post_init__(self):
            for attribute in fields(type(self)):
                metric = getattr(self, attribute.name)
                if isinstance(metric, Metric):
                    metric.labels = self._labels
                    metric.init_tracker()

    # functools.cached_property needs __dict__
    __slots__ = ["name", "_config", "__dict__"]

    name: str
    _config: Config

    def __init__(self, name: str, configuration: "Component.Config"):
        self.name = name
        self._config = configuration

    @property
    def metric_labels(self) -> dict:
        """Label values identifying this component in its metrics"""
        return {"component": self._config.type, "name": self.name}

    @cached_property
    def metrics(self):
        """Metrics of this component, created on first use"""
        return self.Metrics(labels=self.metric_labels)

    def __repr__(self):
        return self._config.type

    def describe(self) -> str:
        """Class and name of the component, e.g. :code:`MemoryTransport (memory)`"""
        return f"{type(self).__name__} ({self.name})"

    def setup(self):
        """Acquire the resources of the component."""
        logger.debug("Setting up %s", self.describe())

    def shut_down(self):
        """Release the resources of the component."""
        logger.debug("Shutting down %s", self.describe())
        self.__dict__.pop("metrics", None)

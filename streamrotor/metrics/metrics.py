"""
streamrotor exposes prometheus metrics about the rotation cycle, the producer lifecycle and
the batch aggregator, e.g. :code:`streamrotor_number_of_rotations_total` or
:code:`streamrotor_drain_wait_time_sum`.

Configuration
=============

..  code-block:: yaml
    :linenos:

    metrics:
      enabled: true
      port: 8000

enabled
-------

Use :code:`true` or :code:`false` to activate or deactivate the metrics exporter. Defaults to
:code:`false`.

port
----

Specifies the port which should be used for the prometheus exporter endpoint. Defaults to
:code:`8000`.

Metrics Overview
================

.. autoclass:: streamrotor.framework.rotation_scheduler.RotationScheduler.Metrics
   :members:
   :undoc-members:
   :private-members:
   :inherited-members:

.. autoclass:: streamrotor.framework.batch_aggregator.BatchAggregator.Metrics
   :members:
   :undoc-members:
   :private-members:
   :inherited-members:
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Union

from attrs import define, field, validators
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

ROTATION_BUCKETS = (0.01, 0.04, 0.1, 0.2, 0.5, 1, 5, 10, 60)
"""Histogram buckets in seconds, around the batch timeout and the drain threshold."""


@define(kw_only=True, slots=False)
class Metric(ABC):
    """A named prometheus collector with fixed label values.

    The collector is created by :code:`init_tracker`. Components create their metrics through
    their nested :code:`Metrics` class, which injects the component labels first.
    """

    collector: ClassVar[type]

    name: str = field(validator=validators.instance_of(str))
    description: str = field(validator=validators.instance_of(str))
    labels: dict = field(
        validator=validators.deep_mapping(
            key_validator=validators.instance_of(str),
            value_validator=validators.instance_of(str),
            mapping_validator=validators.instance_of(dict),
        ),
        factory=dict,
    )
    _registry: CollectorRegistry = field(default=REGISTRY)
    inject_label_values: bool = field(default=True)
    """Create the labelled child right away, so the metric is exported before its first
    update."""
    tracker: Union[Counter, Gauge, Histogram, None] = field(init=False, default=None)

    @property
    def fullname(self) -> str:
        """Name of the exported metric"""
        return f"streamrotor_{self.name}"

    def _create_collector(self):
        return self.collector(
            self.fullname, self.description, labelnames=tuple(self.labels), registry=self._registry
        )

    def init_tracker(self) -> None:
        """Create the collector or reuse the one registered under the same name"""
        try:
            self.tracker = self._create_collector()
        except ValueError as error:
            # pylint: disable=protected-access
            registered = self._registry._names_to_collectors.get(self.fullname)
            # pylint: enable=protected-access
            if not isinstance(registered, self.collector):
                raise ValueError(
                    f"Metric {self.fullname} already exists with different type"
                ) from error
            self.tracker = registered
        if self.inject_label_values:
            self.tracker.labels(**self.labels)

    def __add__(self, other: Any) -> "Metric":
        return self.add_with_labels(other, {})

    def add_with_labels(self, other: Any, labels: dict) -> "Metric":
        """Record :code:`other` for the metric labels updated by :code:`labels`"""
        self._record(self.tracker.labels(**(self.labels | labels)), other)
        return self

    @staticmethod
    @abstractmethod
    def _record(child, value) -> None:
        """Apply :code:`value` to the labelled child of the collector"""


@define(kw_only=True, slots=False)
class CounterMetric(Metric):
    """Counts up by the added value"""

    collector = Counter

    @staticmethod
    def _record(child, value) -> None:
        child.inc(value)


@define(kw_only=True, slots=False)
class GaugeMetric(Metric):
    """Is set to the added value"""

    collector = Gauge

    @staticmethod
    def _record(child, value) -> None:
        child.set(value)


@define(kw_only=True, slots=False)
class HistogramMetric(Metric):
    """Observes the added value, usually a duration in seconds"""

    collector = Histogram

    def _create_collector(self):
        return self.collector(
            self.fullname,
            self.description,
            labelnames=tuple(self.labels),
            buckets=ROTATION_BUCKETS,
            registry=self._registry,
        )

    @staticmethod
    def _record(child, value) -> None:
        child.observe(value)

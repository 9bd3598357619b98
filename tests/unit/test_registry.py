# pylint: disable=missing-docstring
import pytest

from streamrotor.abc.component import Component
from streamrotor.abc.launcher import Launcher
from streamrotor.abc.transport import Transport
from streamrotor.registry import Registry


@pytest.mark.parametrize("component_type, component_class", Registry.mapping.items())
def test_registered_types_are_components(component_type, component_class):
    assert issubclass(component_class, Component)
    assert issubclass(component_class, (Transport, Launcher))
    assert Registry.get_class(component_type) is component_class


def test_get_class_raises_for_unknown_type():
    with pytest.raises(ValueError, match="Unknown component type: kafka_transport"):
        Registry.get_class("kafka_transport")

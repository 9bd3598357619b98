"""Known component types. A transport or launcher has to be listed in
:code:`Registry.mapping` before it can be used in a configuration."""

from typing import Dict, Type

from streamrotor.abc.component import Component
from streamrotor.connector.dummy.launcher import DummyLauncher
from streamrotor.connector.jsonl.launcher import JsonlLauncher
from streamrotor.connector.memory.transport import MemoryTransport


class Registry:
    """Maps the :code:`type` option of a definition to its class"""

    mapping: Dict[str, Type[Component]] = {
        "memory_transport": MemoryTransport,
        "dummy_launcher": DummyLauncher,
        "jsonl_launcher": JsonlLauncher,
    }

    @classmethod
    def get_class(cls, component_type: str) -> Type[Component]:
        """Return the class registered for :code:`component_type`.

        Raises
        ------
        ValueError
            If nothing is registered for it.
        """
        try:
            return cls.mapping[component_type]
        except KeyError as error:
            raise ValueError(f"Unknown component type: {component_type}") from error

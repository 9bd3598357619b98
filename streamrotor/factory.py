"""Creates transports and launchers from definitions like
:code:`{"memory": {"type": "memory_transport", "max_backlog": 30}}`"""

from typing import Any, Mapping, Type

from streamrotor.abc.component import Component
from streamrotor.factory_error import (
    InvalidConfigSpecificationError,
    InvalidConfigurationError,
    NoTypeSpecifiedError,
    UnknownComponentTypeError,
)
from streamrotor.registry import Registry


class Factory:
    """Turns a single named definition into a configured component."""

    @classmethod
    def create(cls, definition: dict) -> Component:
        """Create the component described by :code:`definition`.

        Raises
        ------
        InvalidConfigurationError
            If the definition is empty, not a mapping, or holds more than one component.
        UnknownComponentTypeError
            If the type of the component is not registered.
        """
        if not definition:
            raise InvalidConfigurationError("The component definition is empty.")
        if not isinstance(definition, dict):
            raise InvalidConfigSpecificationError()
        if len(definition) != 1:
            raise InvalidConfigurationError(
                f"Found multiple component definitions ({', '.join(definition)}),"
                " but there must be exactly one."
            )
        ((name, options),) = definition.items()
        if options is None:
            raise InvalidConfigurationError(f'The definition of component "{name}" is empty.')
        if not isinstance(options, dict):
            raise InvalidConfigSpecificationError(name)
        component_class = cls.get_class(name, options)
        return component_class(name, component_class.Config(**options))

    @staticmethod
    def get_class(name: str, options: Mapping[str, Any]) -> Type[Component]:
        """Look up the registered class for the :code:`type` option of a definition."""
        if "type" not in options:
            raise NoTypeSpecifiedError(name)
        component_type = options["type"]
        if component_type not in Registry.mapping:
            raise UnknownComponentTypeError(name, component_type)
        return Registry.get_class(component_type)

"""Errors of the component factory"""

from typing import Optional

from streamrotor.abc.exceptions import StreamrotorException


class FactoryError(StreamrotorException):
    """A component could not be created from its definition."""


class InvalidConfigurationError(FactoryError):
    """The definition or options of a component are invalid."""


class InvalidConfigSpecificationError(InvalidConfigurationError):
    """A definition is not a mapping."""

    def __init__(self, component: Optional[str] = None) -> None:
        subject = f'component "{component}"' if component else "component definition"
        super().__init__(f"The configuration for {subject} must be specified as an object.")


class NoTypeSpecifiedError(InvalidConfigurationError):
    """A definition has no :code:`type` option."""

    def __init__(self, name: Optional[str] = None) -> None:
        suffix = f" for element with name '{name}'" if name else ""
        super().__init__(f"The type specification is missing{suffix}")


class UnknownComponentTypeError(FactoryError):
    """No component is registered for the :code:`type` of a definition."""

    def __init__(self, component_name: str, component_type: str) -> None:
        super().__init__(f"Unknown type '{component_type}' for '{component_name}'")

"""Events about producer instances that were not triggered by the rotation itself."""

from enum import Enum

from attrs import define


class BusEventKind(Enum):
    """Kind of a producer event"""

    END_OF_STREAM = "end_of_stream"
    """The producer instance finished regularly, e.g. its source was exhausted."""
    ERROR = "error"
    """The producer instance died with a non zero exit code."""
    OTHER = "other"
    """Anything else, e.g. the exit code is unknown."""


@define(kw_only=True, frozen=True)
class BusEvent:
    """A producer instance exited on its own."""

    kind: BusEventKind
    producer_id: int
    channel: str
    exitcode: int | None = None

    @classmethod
    def from_exitcode(cls, producer_id: int, channel: str, exitcode: int | None) -> "BusEvent":
        """Classify the exit of a producer instance"""
        if exitcode is None:
            kind = BusEventKind.OTHER
        elif exitcode == 0:
            kind = BusEventKind.END_OF_STREAM
        else:
            kind = BusEventKind.ERROR
        return cls(kind=kind, producer_id=producer_id, channel=channel, exitcode=exitcode)

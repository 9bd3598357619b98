"""Root of the exception hierarchy of streamrotor"""


class StreamrotorException(Exception):
    """Every error raised on purpose by streamrotor derives from this class.

    Two errors are equal if they are of the same kind with the same arguments, so repeated
    problems can be reported once.
    """

    def __init__(self, message: str, *args) -> None:
        super().__init__(message, *args)
        self.message = message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StreamrotorException):
            return NotImplemented
        return type(self) is type(other) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))

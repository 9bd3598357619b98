"""Concrete getters and the factory choosing one by the protocol of a target string"""

import re
from importlib.metadata import version
from pathlib import Path

import requests
from attrs import define, field, validators

from streamrotor.abc.exceptions import StreamrotorException
from streamrotor.abc.getter import Getter, substitute_env

TARGET_PATTERN = re.compile(r"^(?:(?P<protocol>\S+)://)?(?P<target>.+)$")


class GetterNotFoundError(StreamrotorException):
    """Raise if no getter exists for a protocol."""


@define(kw_only=True)
class FileGetter(Getter):
    """Reads local files, e.g. :code:`/etc/streamrotor/rotation.yml` or
    :code:`file:///etc/streamrotor/rotation.yml`"""

    def get_raw(self) -> bytes:
        return Path(self.target).read_bytes()


@define(kw_only=True)
class HttpGetter(Getter):
    """Requests :code:`http` and :code:`https` urls."""

    timeout: float = field(validator=validators.instance_of((int, float)), default=5)
    """Seconds to wait for the server"""

    def get_raw(self) -> bytes:
        response = requests.get(
            f"{self.protocol}://{self.target}",
            headers={"User-Agent": f"streamrotor/{version('streamrotor')}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.content


class GetterFactory:
    """Creates getters from strings like :code:`<protocol>://<target>`."""

    getters = {"file": FileGetter, "http": HttpGetter, "https": HttpGetter}

    @classmethod
    def from_string(cls, getter_string: str) -> Getter:
        """Return the getter for :code:`getter_string`. A string without protocol is a file.

        Prefixed environment variables in the target are expanded, unset ones become empty
        strings. Other :code:`$` references are kept as they are.

        Raises
        ------
        GetterNotFoundError
            If the string can not be parsed or the protocol is unknown.
        """
        matches = TARGET_PATTERN.match(getter_string)
        if matches is None:
            raise GetterNotFoundError(f"Could not parse '{getter_string}'")
        protocol = matches.group("protocol") or "file"
        getter_class = cls.getters.get(protocol)
        if getter_class is None:
            raise GetterNotFoundError(f"No getter for protocol '{protocol}'")
        target, _ = substitute_env(matches.group("target"))
        return getter_class(protocol=protocol, target=target)

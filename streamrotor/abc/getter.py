"""Getters read the content behind a target like a path or an url and parse it.

Before parsing, references to environment variables are replaced in the content. Only variables
starting with one of :code:`ENV_PREFIXES` are considered, everything else that looks like a
reference stays untouched.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from string import Template
from typing import Dict, List, Tuple, Union

from attrs import define, field, validators
from ruamel.yaml import YAML

yaml = YAML(typ="safe", pure=True)

ENV_PREFIXES = ("STREAMROTOR_", "CI_")

_PREFIX_LOOKAHEAD = "(?=" + "|".join(ENV_PREFIXES) + ")"


class PrefixedEnvTemplate(Template):
    """Template that only knows uppercase variables with one of the :code:`ENV_PREFIXES`"""

    pattern = rf"""
    \$(?:
        (?P<escaped>\$)|
        (?P<named>{_PREFIX_LOOKAHEAD}[_A-Z0-9]+)|
        {{(?P<braced>{_PREFIX_LOOKAHEAD}[_A-Z0-9]+)}}|
        (?P<invalid>)
    )
    """
    flags = re.VERBOSE


def substitute_env(text: str) -> Tuple[str, List[str]]:
    """Replace the prefixed environment variables in :code:`text`. Unset ones become empty.

    Returns the substituted text and the sorted names of the unset variables.
    """
    template = PrefixedEnvTemplate(text)
    referenced = set()
    for match in template.pattern.finditer(text):
        name = match.group("named") or match.group("braced")
        if name:
            referenced.add(name)
    missing = sorted(name for name in referenced if name not in os.environ)
    mapping = {name: os.environ.get(name, "") for name in referenced}
    return template.safe_substitute(mapping), missing


@define(kw_only=True)
class Getter(ABC):
    """Reads a target and parses its content."""

    protocol: str = field(validator=validators.instance_of(str))
    """Protocol the getter was chosen by, e.g. :code:`file` or :code:`https`"""
    target: str = field(validator=validators.instance_of(str))
    """Path or address without the protocol"""
    missing_env_vars: list = field(
        validator=validators.deep_iterable(
            member_validator=validators.instance_of(str),
            iterable_validator=validators.instance_of(list),
        ),
        factory=list,
        repr=False,
    )
    """Variables referenced by the last read content that are not set in the environment.
    They were replaced by an empty string."""

    def get(self) -> str:
        """Read the target and substitute the environment variables in it."""
        content, self.missing_env_vars = substitute_env(self.get_raw().decode("utf8"))
        return content

    def get_yaml(self) -> Union[Dict, List]:
        """Parse the content as yaml. Multiple documents are returned as a list."""
        documents = list(yaml.load_all(self.get()))
        if not documents:
            return {}
        return documents[0] if len(documents) == 1 else documents

    def get_json(self) -> Union[Dict, List]:
        """Parse the content as json."""
        return json.loads(self.get())

    def get_jsonl(self) -> List:
        """Parse every non empty line of the content as json."""
        return [json.loads(line) for line in self.get().splitlines() if line.strip()]

    @abstractmethod
    def get_raw(self) -> bytes:
        """Return the unparsed content of the target."""

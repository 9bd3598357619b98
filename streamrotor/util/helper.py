"""Small utilities for the command line interface"""

import sys
from importlib.metadata import version
from typing import TYPE_CHECKING, Optional

from colorama import Back, Fore

from streamrotor.util.defaults import DEFAULT_CONFIG_LOCATION

if TYPE_CHECKING:  # pragma: no cover
    from streamrotor.util.configuration import Configuration

VERSION_LABEL_WIDTH = 25


def color_print_line(back: Optional[str], fore: Optional[str], message: str) -> None:
    """Print :code:`message` in the given colors. Colors are reset at the end of the line."""
    prefix = (back or "") + (fore or "")
    print(f"{prefix}{message}{Fore.RESET}{Back.RESET}")


def print_fcolor(fore: str, message: str) -> None:
    """Print :code:`message` in the font color :code:`fore`."""
    color_print_line(None, fore, message)


def get_versions_string(config: Optional["Configuration"] = None) -> str:
    """Versions of python, streamrotor and, if given, the configuration with its sources"""
    if config:
        sources = ", ".join(config.config_paths) or "None"
        config_version = f"{config.version}, {sources}"
    else:
        config_version = f"no configuration found in {DEFAULT_CONFIG_LOCATION}"
    rows = (
        ("python version:", sys.version.split()[0]),
        ("streamrotor version:", version("streamrotor")),
        ("configuration version:", config_version),
    )
    return "\n".join(f"{label:<{VERSION_LABEL_WIDTH}}{value}" for label, value in rows)

"""Command line interface of streamrotor"""

import logging
import logging.config
import os
import signal
import sys
import warnings
from typing import Tuple

import click
from colorama import Fore

from streamrotor.runner import Runner
from streamrotor.util.configuration import Configuration, InvalidConfigurationError
from streamrotor.util.defaults import DEFAULT_LOG_CONFIG, EXITCODES
from streamrotor.util.helper import get_versions_string, print_fcolor

warnings.simplefilter("always", DeprecationWarning)
logging.captureWarnings(True)
logging.config.dictConfig(DEFAULT_LOG_CONFIG)
logger = logging.getLogger("streamrotor")

CONFIGS_HELP = "CONFIGS are paths or urls of configuration documents, later ones win."


def _load_configuration(config_paths: Tuple[str, ...]) -> Configuration:
    """Read the configuration and set up logging, exit with a configuration error otherwise."""
    try:
        configuration = Configuration.from_sources(config_paths)
    except InvalidConfigurationError as error:
        print(f"InvalidConfigurationError: {error}", file=sys.stderr)
        sys.exit(EXITCODES.CONFIGURATION_ERROR.value)
    configuration.logger.setup_logging()
    logger.info("Log level set to '%s'", configuration.logger.level)
    return configuration


@click.group(name="streamrotor")
@click.version_option(version=get_versions_string(), message="%(version)s")
def cli() -> None:
    """Rotate generations of source producers under the consumer slots of a batch aggregator."""
    if "pytest" not in sys.modules:
        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)


@cli.command(short_help="Rotate the configured sources", epilog=CONFIGS_HELP)
@click.argument("configs", nargs=-1, required=False)
@click.option("--version", is_flag=True, help="Print the versions including the configuration")
def run(configs: Tuple[str, ...], version: bool = False) -> None:
    """Run the rotation until a signal is received."""
    configuration = _load_configuration(configs)
    versions = get_versions_string(configuration)
    if version:
        print(versions)
        sys.exit(EXITCODES.SUCCESS.value)
    for line in versions.splitlines():
        logger.info(line)
    logger.debug("Metric export enabled: %s", configuration.metrics.enabled)
    runner = None
    try:
        runner = Runner.get_runner(configuration)
        runner.start()
    except SystemExit as error:
        logger.error("Exiting with error code %s", error.code)
        sys.exit(error.code)
    except Exception as error:  # pylint: disable=broad-except
        log = logger.exception if os.environ.get("DEBUG") else logger.critical
        log("A critical error occurred: %s", error)
        if runner:
            runner.stop()
        sys.exit(EXITCODES.ERROR.value)


@cli.group(name="test", short_help="Check a configuration without running it")
def test() -> None:
    """Checks for configurations"""


@test.command(name="config", epilog=CONFIGS_HELP)
@click.argument("configs", nargs=-1)
def test_config(configs: Tuple[str, ...]) -> None:
    """Verify that the configuration is complete and valid."""
    _load_configuration(configs)
    print_fcolor(Fore.GREEN, "The verification of the configuration was successful")


@cli.command(name="print", short_help="Print the merged configuration", epilog=CONFIGS_HELP)
@click.argument("configs", nargs=-1, required=True)
@click.option("--output", type=click.Choice(["json", "yaml"]), default="yaml")
def print_config(configs: Tuple[str, ...], output: str) -> None:
    """Print the configuration with all documents merged and all defaults filled in."""
    configuration = _load_configuration(configs)
    print(configuration.as_json(indent=2) if output == "json" else configuration.as_yaml())


def signal_handler(__: int, _) -> None:
    """Stop the runner, or exit right away if there is none yet."""
    runner = Runner.current()
    if runner is None:
        sys.exit(EXITCODES.SUCCESS.value)
    runner.stop()


if __name__ == "__main__":
    cli()

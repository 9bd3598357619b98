"""
Configuration
=============

streamrotor reads its configuration from YAML or JSON documents. They are fetched with a getter,
so each one can be a local path or an :code:`http(s)://` url. Without an argument
:code:`/etc/streamrotor/rotation.yml` is used.

..  code-block:: bash
    :caption: Valid Run Examples

    streamrotor run /path/to/rotation.yml
    streamrotor run https://config.local/rotation.yml
    streamrotor run /path/to/rotation.yml /path/to/sources.yml

If several documents are given, every option is taken from the last document that sets it to a
non-default value. Problems in any of the documents are collected and reported together, and
nothing is started.

..  code-block:: yaml
    :caption: A complete rotation configuration

    version: config-1.0
    batch_size: 4
    batch_timeout: 0.04
    drain_factor: 5
    cycle_interval: 5
    resubscribe_delay: 3
    channel_prefix: interpipe
    timeout: 0.5
    logger:
        level: INFO
        loggers:
            Scheduler: {"level": "DEBUG"}
    metrics:
        enabled: true
        port: 8000
    sources:
        - location: rtsp://10.0.0.11/stream
          protocols: tcp
        - location: rtsp://10.0.0.12/stream
        - location: rtsp://10.0.0.13/stream
        - location: rtsp://10.0.0.14/stream
    transport:
        memory:
            type: memory_transport
            max_backlog: 30
    launcher:
        producers:
            type: dummy_launcher
            frame_interval: 0.04

Upper case environment variables prefixed with :code:`STREAMROTOR_` (or :code:`CI_`) are
substituted anywhere in the documents, e.g. :code:`channel_prefix: $STREAMROTOR_PREFIX`.
Using a variable that is not set is a configuration error.
"""

import json
from copy import deepcopy
from importlib.metadata import version
from io import StringIO
from logging.config import dictConfig
from typing import Any, Iterable, List, Optional, Tuple

import attrs
from attrs import asdict, define, field, fields, validators
from requests import RequestException
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from streamrotor.abc.component import Component
from streamrotor.abc.getter import Getter
from streamrotor.abc.launcher import Launcher, SourceConfig
from streamrotor.abc.transport import Transport
from streamrotor.factory import Factory
from streamrotor.factory_error import FactoryError, InvalidConfigurationError
from streamrotor.metrics.metrics import GaugeMetric
from streamrotor.util.defaults import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_BATCH_TIMEOUT,
    DEFAULT_CHANNEL_PREFIX,
    DEFAULT_CONFIG_LOCATION,
    DEFAULT_CYCLE_INTERVAL,
    DEFAULT_DRAIN_FACTOR,
    DEFAULT_LOG_CONFIG,
    DEFAULT_LOG_DATE_FORMAT,
    DEFAULT_LOG_FORMAT,
    DEFAULT_RESUBSCRIBE_DELAY,
)
from streamrotor.util.getter import GetterFactory, GetterNotFoundError

LOG_LEVELS = ("NOTSET", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

yaml = YAML(pure=True)


def dump_yaml(data: Any) -> str:
    """Serialize :code:`data` to a yaml string"""
    stream = StringIO()
    yaml.dump(data, stream)
    return stream.getvalue()


class InvalidConfigurationErrors(InvalidConfigurationError):
    """Raise for all problems found in the configuration at once."""

    errors: List[InvalidConfigurationError]

    def __init__(self, errors: Iterable[Exception]) -> None:
        self.errors = []
        for error in errors:
            if not isinstance(error, InvalidConfigurationError):
                error = InvalidConfigurationError(str(error))
            if error not in self.errors:
                self.errors.append(error)
        super().__init__("\n".join(str(error) for error in self.errors))


class ConfigGetterException(InvalidConfigurationError):
    """Raise if a configuration document could not be fetched or parsed."""


class RequiredConfigurationKeyMissingError(InvalidConfigurationError):
    """Raise if a required option is not set in any document."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Required option is missing: {key}")


class SourceCountMismatchError(InvalidConfigurationError):
    """Raise if the number of sources does not match the batch size."""

    def __init__(self, batch_size: int, number_of_sources: int) -> None:
        super().__init__(
            f"Exactly {batch_size} sources are needed for a batch size of {batch_size},"
            f" but {number_of_sources} are configured"
        )


class MissingEnvironmentError(InvalidConfigurationError):
    """Raise if a document uses environment variables that are not set."""

    def __init__(self, variables: Iterable[str]) -> None:
        super().__init__(f"Environment variable(s) used, but not set: {', '.join(variables)}")


@define(kw_only=True, frozen=True)
class MetricsConfig:
    """Prometheus exporter options"""

    enabled: bool = field(validator=validators.instance_of(bool), default=False)
    """Start the exporter. Defaults to :code:`false`."""
    port: int = field(
        validator=[validators.instance_of(int), validators.gt(0), validators.le(65535)],
        default=8000,
    )
    """Port of the metrics endpoint. Defaults to :code:`8000`."""


@define(kw_only=True, frozen=True)
class LoggerConfig:
    """Logging options. They are merged into :code:`DEFAULT_LOG_CONFIG` and applied with
    :code:`logging.config.dictConfig` once the configuration was read.

    .. code-block:: yaml

        logger:
            level: WARNING
            format: "%(asctime)-15s %(hostname)-5s %(name)-10s %(levelname)-8s: %(message)s"
            loggers:
                Scheduler: {"level": "DEBUG"}
    """

    level: str = field(validator=validators.in_(LOG_LEVELS), default="INFO")
    """Level of the root logger. Defaults to :code:`INFO`."""
    format: str = field(validator=validators.instance_of(str), default=DEFAULT_LOG_FORMAT)
    """Record format, :code:`%(hostname)s` is available additionally."""
    datefmt: str = field(validator=validators.instance_of(str), default=DEFAULT_LOG_DATE_FORMAT)
    """Date format of :code:`%(asctime)s`."""
    loggers: dict = field(
        validator=validators.deep_mapping(
            key_validator=validators.instance_of(str),
            value_validator=validators.instance_of(dict),
            mapping_validator=validators.instance_of(dict),
        ),
        factory=dict,
    )
    """Options of single loggers, e.g. :code:`Scheduler`, :code:`ProducerPool` or
    :code:`BatchAggregator`."""

    def dict_config(self) -> dict:
        """The complete :code:`dictConfig` schema"""
        config = deepcopy(DEFAULT_LOG_CONFIG)
        config["formatters"]["streamrotor"].update(format=self.format, datefmt=self.datefmt)
        config["loggers"]["root"]["level"] = self.level
        for name, options in self.loggers.items():
            config["loggers"].setdefault(name, {}).update(options)
        return config

    def setup_logging(self) -> None:
        """Apply the logging options to the running process"""
        dictConfig(self.dict_config())


def _to_sources(value: Any) -> Any:
    if not isinstance(value, list):
        return value
    return [SourceConfig(**source) if isinstance(source, dict) else source for source in value]


def _positive_number(default: float):
    return field(
        validator=[validators.instance_of((int, float)), validators.gt(0)],
        default=default,
    )


@define(kw_only=True)
class Configuration:
    """The rotation configuration"""

    version: str = field(validator=validators.instance_of(str), converter=str, default="unset")
    """Version of the configuration. It is only printed by :code:`streamrotor run --version`.
    Defaults to :code:`unset`."""
    batch_size: int = field(
        validator=[validators.instance_of(int), validators.ge(1)], default=DEFAULT_BATCH_SIZE
    )
    """Number of consumer slots, and of producers per generation. Defaults to :code:`4`."""
    batch_timeout: float = _positive_number(DEFAULT_BATCH_TIMEOUT)
    """Seconds the aggregator waits for a batch to complete after its first frame.
    Defaults to :code:`0.04`."""
    drain_factor: int = field(
        validator=[validators.instance_of(int), validators.ge(1)], default=DEFAULT_DRAIN_FACTOR
    )
    """A generation is drained once no batch was processed for
    :code:`drain_factor * batch_timeout` seconds. Defaults to :code:`5`."""
    cycle_interval: float = _positive_number(DEFAULT_CYCLE_INTERVAL)
    """Seconds a generation stays subscribed. Defaults to :code:`5`."""
    resubscribe_delay: float = field(
        validator=[validators.instance_of((int, float)), validators.ge(0)],
        default=DEFAULT_RESUBSCRIBE_DELAY,
    )
    """Seconds a new generation gets to settle before the slots listen to it.
    Defaults to :code:`3`."""
    drain_timeout: Optional[float] = field(
        validator=validators.optional([validators.instance_of((int, float)), validators.gt(0)]),
        default=None,
    )
    """Upper bound for the drain wait in seconds. If it is exceeded streamrotor exits with
    :code:`EXITCODES.DRAIN_TIMEOUT`. Defaults to :code:`None`, waiting as long as batches
    arrive."""
    channel_prefix: str = field(
        validator=[validators.instance_of(str), validators.min_len(1)],
        default=DEFAULT_CHANNEL_PREFIX,
    )
    """Channel names are :code:`<channel_prefix>-NN`. Defaults to :code:`interpipe`."""
    timeout: float = _positive_number(5.0)
    """Seconds within which stop requests and exited producers are noticed while a generation
    is subscribed. Defaults to :code:`5`."""
    logger: LoggerConfig = field(
        validator=validators.instance_of(LoggerConfig),
        converter=lambda value: LoggerConfig(**value) if isinstance(value, dict) else value,
        factory=LoggerConfig,
    )
    """Logging options, see :code:`LoggerConfig`."""
    metrics: MetricsConfig = field(
        validator=validators.instance_of(MetricsConfig),
        converter=lambda value: MetricsConfig(**value) if isinstance(value, dict) else value,
        factory=MetricsConfig,
    )
    """Prometheus exporter options, see :code:`MetricsConfig`."""
    sources: list = field(
        validator=validators.deep_iterable(
            member_validator=validators.instance_of(SourceConfig),
            iterable_validator=validators.instance_of(list),
        ),
        converter=_to_sources,
        factory=list,
    )
    """One source per consumer slot, each with a :code:`location`, optional
    :code:`protocols` and optional launcher specific :code:`options`. Required."""
    transport: dict = field(validator=validators.instance_of(dict), factory=dict)
    """Transport definition. Defaults to a :code:`memory_transport`."""
    launcher: dict = field(validator=validators.instance_of(dict), factory=dict)
    """Launcher definition. Required."""

    _getter: Optional[Getter] = field(
        validator=validators.optional(validators.instance_of(Getter)), default=None, eq=False
    )
    _configs: Tuple["Configuration", ...] = field(factory=tuple, eq=False)
    _metrics: Optional["Configuration.Metrics"] = field(init=False, default=None, eq=False)

    @define(kw_only=True)
    class Metrics(Component.Metrics):
        """Metrics of the configuration"""

        version_info: GaugeMetric = field(
            factory=lambda: GaugeMetric(
                description="streamrotor and configuration version",
                name="version_info",
                labels={"streamrotor": "unset", "config": "unset"},
                inject_label_values=False,
            )
        )
        """streamrotor and configuration version"""

    @property
    def transport_config(self) -> dict:
        """The transport definition, a memory transport if none is configured"""
        return self.transport or {"memory": {"type": "memory_transport"}}

    @property
    def config_paths(self) -> List[str]:
        """Locations of all documents this configuration was read from"""
        # pylint: disable=protected-access
        getters = [config._getter for config in self._configs if config._getter]
        # pylint: enable=protected-access
        return [f"{getter.protocol}://{getter.target}" for getter in getters]

    @classmethod
    def from_source(cls, config_path: str) -> "Configuration":
        """Read a single configuration document.

        Raises
        ------
        ConfigGetterException
            If the document can not be fetched or is not valid yaml or json.
        InvalidConfigurationError
            If the document contains unknown options or invalid values.
        """
        try:
            getter = GetterFactory.from_string(config_path)
            content = getter.get_yaml()
        except FileNotFoundError as error:
            raise ConfigGetterException(
                f"Configuration file does not exist: {error.filename}"
            ) from error
        except (GetterNotFoundError, RequestException, YAMLError) as error:
            raise ConfigGetterException(f"Could not read {config_path}: {error}") from error
        if not isinstance(content, dict):
            raise InvalidConfigurationError(
                f"Invalid configuration file: {config_path} does not contain a mapping"
            )
        try:
            config = cls(**content, getter=getter)
        except (TypeError, ValueError) as error:
            raise InvalidConfigurationError(
                f"Invalid configuration file: {config_path} {error}"
            ) from error
        config._configs = (config,)
        return config

    @classmethod
    def from_sources(cls, config_paths: Iterable[str] | None = None) -> "Configuration":
        """Read and merge configuration documents.

        Raises
        ------
        ConfigGetterException
            If one of the documents can not be fetched.
        InvalidConfigurationErrors
            With every problem found in the documents or the merged configuration.
        """
        configs: List[Configuration] = []
        errors: List[Exception] = []
        for config_path in config_paths or [DEFAULT_CONFIG_LOCATION]:
            try:
                configs.append(cls.from_source(config_path))
            except ConfigGetterException:
                raise
            except InvalidConfigurationError as error:
                errors.append(error)
        configuration = cls._merge(configs)
        errors.extend(configuration.verify())
        if errors:
            raise InvalidConfigurationErrors(errors)
        configuration._metrics = cls.Metrics(labels={"streamrotor": "unset", "config": "unset"})
        configuration._metrics.version_info.add_with_labels(
            1, {"streamrotor": version("streamrotor"), "config": configuration.version}
        )
        return configuration

    @classmethod
    def _merge(cls, configs: List["Configuration"]) -> "Configuration":
        merged = cls()
        merged._configs = tuple(configs)
        for attribute in fields(cls):
            if attribute.name.startswith("_") or attribute.name == "version":
                continue
            default = attribute.default
            if isinstance(default, attrs.Factory):
                default = default.factory()
            values = [getattr(config, attribute.name) for config in configs]
            overrides = [value for value in values if value != default]
            setattr(merged, attribute.name, overrides[-1] if overrides else default)
        versions = [
            config.version for config in configs if config.version not in ("", merged.version)
        ]
        merged.version = ", ".join(versions) or merged.version
        return merged

    def verify(self) -> List[Exception]:
        """Check the options that depend on each other. Returns the problems found."""
        errors: List[Exception] = []
        # pylint: disable=protected-access
        missing = [
            variable
            for config in self._configs
            if config._getter
            for variable in config._getter.missing_env_vars
        ]
        # pylint: enable=protected-access
        if missing:
            errors.append(MissingEnvironmentError(missing))
        if len(self.sources) != self.batch_size:
            errors.append(SourceCountMismatchError(self.batch_size, len(self.sources)))
        errors.extend(self._verify_component("transport", self.transport_config, Transport))
        if self.launcher:
            errors.extend(self._verify_component("launcher", self.launcher, Launcher))
        else:
            errors.append(RequiredConfigurationKeyMissingError("launcher"))
        return errors

    @staticmethod
    def _verify_component(kind: str, definition: dict, expected: type) -> List[Exception]:
        try:
            component = Factory.create(deepcopy(definition))
        except (FactoryError, TypeError, ValueError) as error:
            return [error]
        if not isinstance(component, expected):
            return [InvalidConfigurationError(f"{component.describe()} is not a {kind}")]
        return []

    def as_dict(self) -> dict:
        """The configuration without internal state"""
        return asdict(self, filter=lambda attribute, _: not attribute.name.startswith("_"))

    def as_json(self, indent=None) -> str:
        """The configuration as json document"""
        return json.dumps(self.as_dict(), indent=indent)

    def as_yaml(self) -> str:
        """The configuration as yaml document"""
        return dump_yaml(self.as_dict())


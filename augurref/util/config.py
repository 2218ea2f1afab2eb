from __future__ import annotations

import copy
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union

import importlib_resources
import yaml

from augurref.persistence.retention import RetentionMode
from augurref.util.path import path_from_root

log = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_FILE_ENV = "AUGUR_CONFIG_FILE"

# environment variable -> (section, key, converter)
ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "AUGUR_SERVER_HOST": ("server", "host", str),
    "AUGUR_SERVER_PORT": ("server", "port", int),
    "BITCOIN_RPC_URL": ("bitcoin_rpc", "url", str),
    "BITCOIN_RPC_USERNAME": ("bitcoin_rpc", "username", str),
    "BITCOIN_RPC_PASSWORD": ("bitcoin_rpc", "password", str),
    "AUGUR_DATA_DIR": ("persistence", "data_directory", str),
    "AUGUR_CLEANUP_DAYS": ("persistence", "retention_days", int),
    "AUGUR_RETENTION_DAYS": ("persistence", "retention_days", int),
    "AUGUR_LOG_LEVEL": ("logging", "log_level", str),
}


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True)
class BitcoinRpcConfig:
    url: str = "http://localhost:8332"
    username: str = ""
    password: str = ""
    timeout_seconds: float = 30

    def __repr__(self) -> str:
        return f"BitcoinRpcConfig(url={self.url!r}, username={self.username!r}, timeout_seconds={self.timeout_seconds})"


@dataclass(frozen=True)
class PersistenceConfig:
    data_directory: str = "mempool_data"
    retention_days: int = 0
    retention_mode: RetentionMode = RetentionMode.SCHEDULED
    retention_interval_seconds: float = 3600

    def data_path(self, root_path: Path) -> Path:
        return path_from_root(root_path, self.data_directory)


@dataclass(frozen=True)
class CollectorConfig:
    interval_seconds: float = 30


@dataclass(frozen=True)
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    bitcoin_rpc: BitcoinRpcConfig = field(default_factory=BitcoinRpcConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    logging: dict[str, Any] = field(default_factory=lambda: {"log_stdout": True, "log_level": "INFO"})


def initial_config_file(filename: Union[str, Path]) -> str:
    initial_config_path = importlib_resources.files(__name__.rpartition(".")[0]).joinpath(f"initial-{filename}")
    contents: str = initial_config_path.read_text(encoding="utf-8")
    return contents


def merge_config(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _parse_yaml(text: str, source: str) -> dict[str, Any]:
    try:
        r = yaml.safe_load(text)
    except yaml.YAMLError as e:
        log.error(f"Error parsing configuration from {source}: {e}")
        return {}
    if r is None:
        log.error(f"yaml.safe_load returned None: {source}")
        return {}
    if not isinstance(r, dict):
        log.error(f"Configuration in {source} is not a mapping, ignoring it")
        return {}
    return r


def load_config_dict(environ: Mapping[str, str] = os.environ) -> dict[str, Any]:
    """
    Raw configuration: the bundled defaults, overlaid by the file named in AUGUR_CONFIG_FILE
    (if any), overlaid by individual environment variables.
    """
    try:
        config = _parse_yaml(initial_config_file("config.yaml"), "bundled initial-config.yaml")
    except (OSError, UnicodeDecodeError) as e:
        log.error(f"Can't read bundled initial-config.yaml, using built-in defaults: {e}")
        config = {}

    external_path = environ.get(CONFIG_FILE_ENV)
    if external_path:
        try:
            text = Path(external_path).expanduser().read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.error(f"Can't read configuration file {external_path}, using defaults: {e}")
        else:
            log.info(f"Loading configuration from {external_path}")
            config = merge_config(config, _parse_yaml(text, external_path))

    for env_name, (section, key, converter) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None:
            continue
        try:
            converted = converter(value)
        except ValueError:
            log.warning(f"Ignoring {env_name}={value!r}: not a valid {converter.__name__}")
            continue
        section_dict = config.get(section)
        if not isinstance(section_dict, dict):
            section_dict = {}
            config[section] = section_dict
        section_dict[key] = converted

    return config


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = config.get(name)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        log.warning(f"Ignoring configuration section {name!r}: not a mapping")
        return {}
    return section


def _value(section: Mapping[str, Any], path: str, key: str, converter: Callable[[Any], T], default: T) -> T:
    if key not in section or section[key] is None:
        return default
    try:
        return converter(section[key])
    except (TypeError, ValueError):
        log.warning(f"Invalid value {section[key]!r} for {path}.{key}, using {default!r}")
        return default


def _int(value: Any) -> int:
    # yaml already yields ints; reject bools and floats with a fraction
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(value)
    return int(value)


def _positive(converter: Callable[[Any], T]) -> Callable[[Any], T]:
    def convert(value: Any) -> T:
        converted = converter(value)
        if not converted > 0:  # type: ignore[operator]
            raise ValueError(value)
        return converted

    return convert


def load_config(environ: Mapping[str, str] = os.environ) -> AppConfig:
    config = load_config_dict(environ)
    defaults = AppConfig()

    server = _section(config, "server")
    rpc = _section(config, "bitcoin_rpc")
    persistence = _section(config, "persistence")
    collector = _section(config, "collector")
    logging_config = _section(config, "logging")

    return AppConfig(
        server=ServerConfig(
            host=_value(server, "server", "host", str, defaults.server.host),
            port=_value(server, "server", "port", _int, defaults.server.port),
        ),
        bitcoin_rpc=BitcoinRpcConfig(
            url=_value(rpc, "bitcoin_rpc", "url", str, defaults.bitcoin_rpc.url),
            username=_value(rpc, "bitcoin_rpc", "username", str, defaults.bitcoin_rpc.username),
            password=_value(rpc, "bitcoin_rpc", "password", str, defaults.bitcoin_rpc.password),
            timeout_seconds=_value(
                rpc, "bitcoin_rpc", "timeout_seconds", _positive(float), defaults.bitcoin_rpc.timeout_seconds
            ),
        ),
        persistence=PersistenceConfig(
            data_directory=_value(
                persistence, "persistence", "data_directory", str, defaults.persistence.data_directory
            ),
            retention_days=_value(
                persistence, "persistence", "retention_days", _int, defaults.persistence.retention_days
            ),
            retention_mode=_value(
                persistence, "persistence", "retention_mode", RetentionMode, defaults.persistence.retention_mode
            ),
            retention_interval_seconds=_value(
                persistence,
                "persistence",
                "retention_interval_seconds",
                _positive(float),
                defaults.persistence.retention_interval_seconds,
            ),
        ),
        collector=CollectorConfig(
            interval_seconds=_value(
                collector, "collector", "interval_seconds", _positive(float), defaults.collector.interval_seconds
            ),
        ),
        logging=merge_config(defaults.logging, logging_config),
    )


def log_config_summary(config: AppConfig, root_path: Optional[Path] = None) -> None:
    log.info(f"Server: {config.server.host}:{config.server.port}")
    log.info(f"Bitcoin RPC: {config.bitcoin_rpc!r}")
    data_directory = (
        config.persistence.data_path(root_path) if root_path is not None else config.persistence.data_directory
    )
    log.info(
        f"Persistence: data_directory={data_directory}, retention_days={config.persistence.retention_days}, "
        f"retention_mode={config.persistence.retention_mode.value}"
    )
    log.info(f"Collector interval: {config.collector.interval_seconds} seconds")

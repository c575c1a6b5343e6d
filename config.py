"""
Configuration file support for fastwifi.

Supports loading configuration from YAML or JSON files. Provides sensible
defaults when no config file is present.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

import yaml

from network_manager import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ('fastwifi.yaml', 'fastwifi.yml', 'fastwifi.json')


@dataclass
class InterfaceConfig:
    """WiFi interface preferences."""

    # Interface to benchmark on. Skips discovery when set.
    interface: Optional[str] = None
    # Preferred interfaces, ordered by priority
    preferred: list[str] = field(default_factory=list)
    # Interfaces to exclude from use
    excluded: list[str] = field(default_factory=list)


@dataclass
class NmcliConfig:
    """NetworkManager command settings."""

    # Use nmcli's colon separated output instead of the aligned table
    terse: bool = False
    # Seconds allowed for each listing command
    timeout: float = 30.0
    # Seconds allowed for joining a network
    connect_timeout: float = 45.0


@dataclass
class ProbeConfig:
    """Throughput probe settings."""

    # Name of the probe module to use ('cli' or 'library')
    backend: str = 'cli'
    # Timeout handed to speedtest itself, in seconds
    timeout: int = 3
    # Hard limit on a whole probe run, in seconds
    deadline: float = 60.0
    secure: bool = True


@dataclass
class BenchmarkConfig:
    """Benchmark loop settings."""

    # Test an SSID once even if several access points broadcast it
    deduplicate: bool = True
    # Rejoin the fastest network once every candidate has been tested
    finish_on_best: bool = True


@dataclass
class LoggingConfig:
    """Logging settings."""

    # Root logger level. Left unset, FASTWIFI_LOG_LEVEL decides.
    level: Optional[str] = None


@dataclass
class FastWifiConfig:
    """Main configuration container."""

    interfaces: InterfaceConfig = field(default_factory=InterfaceConfig)
    nmcli: NmcliConfig = field(default_factory=NmcliConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    benchmark: BenchmarkConfig = field(default_factory=BenchmarkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> 'FastWifiConfig':
        """Create a FastWifiConfig from a dictionary."""
        if not isinstance(data, dict):
            raise ConfigError(f'configuration must be a mapping, got {type(data).__name__}')

        config = cls()

        if 'interfaces' in data:
            iface_data = _section(data, 'interfaces')
            config.interfaces = InterfaceConfig(
                interface=iface_data.get('interface'),
                preferred=iface_data.get('preferred', []),
                excluded=iface_data.get('excluded', []),
            )

        if 'nmcli' in data:
            nmcli_data = _section(data, 'nmcli')
            config.nmcli = NmcliConfig(
                terse=nmcli_data.get('terse', False),
                timeout=nmcli_data.get('timeout', 30.0),
                connect_timeout=nmcli_data.get('connect_timeout', 45.0),
            )

        if 'probe' in data:
            probe_data = _section(data, 'probe')
            config.probe = ProbeConfig(
                backend=probe_data.get('backend', 'cli'),
                timeout=probe_data.get('timeout', 3),
                deadline=probe_data.get('deadline', 60.0),
                secure=probe_data.get('secure', True),
            )

        if 'benchmark' in data:
            bench_data = _section(data, 'benchmark')
            config.benchmark = BenchmarkConfig(
                deduplicate=bench_data.get('deduplicate', True),
                finish_on_best=bench_data.get('finish_on_best', True),
            )

        if 'logging' in data:
            log_data = _section(data, 'logging')
            level = log_data.get('level')
            if level is not None and not isinstance(level, str):
                raise ConfigError(f'logging.level must be a string, got {level!r}')
            config.logging = LoggingConfig(level=level)

        return config


def _section(data: dict, name: str) -> dict:
    section = data[name] or {}
    if not isinstance(section, dict):
        raise ConfigError(f'{name} section must be a mapping, got {type(section).__name__}')
    return section


def default_search_paths() -> list[str]:
    """Config locations tried when no explicit path is given."""
    search_dirs = [os.getcwd(), os.path.expanduser('~/.config/fastwifi')]
    return [
        os.path.join(search_dir, filename)
        for search_dir in search_dirs
        for filename in CONFIG_FILENAMES
    ]


def load_config(config_path: Optional[str] = None) -> FastWifiConfig:
    """
    Load configuration from a file.

    Args:
        config_path: Path to config file. If None, searches for fastwifi.yaml,
                     fastwifi.yml, or fastwifi.json in the current directory
                     and in ~/.config/fastwifi.

    Returns:
        FastWifiConfig with loaded settings, or defaults if no config found.

    Raises:
        ConfigError: if an explicitly given file is missing or unreadable.
    """
    if config_path:
        if not os.path.exists(config_path):
            raise ConfigError(f'config file not found: {config_path}')
        config = _load_config_file(config_path)
        logger.info(f'Loaded configuration from {config_path}')
        return config

    for path in default_search_paths():
        if os.path.exists(path):
            try:
                config = _load_config_file(path)
                logger.info(f'Loaded configuration from {path}')
                return config
            except ConfigError as e:
                logger.warning(f'Failed to load config from {path}: {e}')

    logger.info('No configuration file found, using defaults')
    return FastWifiConfig()


def _load_config_file(path: str) -> FastWifiConfig:
    """Load configuration from a specific file."""
    try:
        with open(path, 'r') as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(f'cannot read {path}: {e}') from e

    _, ext = os.path.splitext(path)
    try:
        if ext.lower() == '.json':
            data = json.loads(content)
        else:
            # YAML is a superset of JSON, so unknown extensions go through it
            data = yaml.safe_load(content)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f'cannot parse {path}: {e}') from e

    # Handle empty files
    if data is None:
        data = {}

    return FastWifiConfig.from_dict(data)


def apply_logging_config(config: FastWifiConfig) -> None:
    """Apply logging configuration. An unset level keeps the current one."""
    if config.logging.level is None:
        return

    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL,
    }

    level = level_map.get(config.logging.level.upper(), logging.INFO)
    logging.getLogger().setLevel(level)
    logger.debug(f'Set logging level to {config.logging.level}')

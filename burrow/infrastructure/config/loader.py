"""
Reading and writing BurrowConfig.

Precedence, lowest first: dataclass defaults, the YAML or JSON file, then
BURROW_* environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, IO, Optional, Tuple

import yaml

from ...core.exceptions import ConfigurationError
from .models import BurrowConfig

Loader = Callable[[IO[str]], Any]
Dumper = Callable[[Any, IO[str]], None]

_FORMATS: Dict[str, Tuple[Loader, Dumper, type]] = {
    'yaml': (yaml.safe_load,
             lambda data, f: yaml.safe_dump(data, f, default_flow_style=False, indent=2),
             yaml.YAMLError),
    'json': (json.load,
             lambda data, f: json.dump(data, f, indent=2),
             json.JSONDecodeError),
}

_SUFFIXES = {'.yaml': 'yaml', '.yml': 'yaml', '.json': 'json'}


def parse_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on', 'enabled')


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge override into a copy of base."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_dicts(current, value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Loads BurrowConfig from a YAML/JSON file plus environment overrides."""

    # Environment suffix -> (section, field, converter)
    ENV_FIELDS: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
        'HOST': ('connection', 'host', str),
        'PORT': ('connection', 'port', int),
        'USER': ('connection', 'user', str),
        'TIMEOUT': ('connection', 'timeout', float),
        'PRIVATE_KEY': ('auth', 'private_key_path', str),
        'USE_AGENT': ('auth', 'use_agent', parse_bool),
        'PASSWORD_RETRIES': ('auth', 'password_retries', int),
        'KEYBOARD_INTERACTIVE': ('auth', 'keyboard_interactive', parse_bool),
        'KNOWN_HOSTS': ('trust', 'known_hosts_path', str),
        'IGNORE_HOST_KEY': ('trust', 'ignore_host_key', parse_bool),
        'TERM': ('session', 'term', str),
        'KEEP_ALIVE': ('session', 'keep_alive', parse_bool),
        'KEEP_ALIVE_INTERVAL': ('session', 'keep_alive_interval', float),
        'BUFFER_SIZE': ('forward', 'buffer_size', int),
        'LOG_LEVEL': ('logging', 'level', str),
        'LOG_DIR': ('logging', 'log_directory', str),
    }

    def __init__(self, env_prefix: str = "BURROW_") -> None:
        self._env_prefix = env_prefix

    def load_config(self, config_file: Optional[str] = None) -> BurrowConfig:
        """
        Build a validated configuration.

        Args:
            config_file: YAML (.yaml/.yml) or JSON (.json) file, optional

        Raises:
            ConfigurationError: unreadable file, bad values or failed validation
        """
        data = self._read_file(config_file) if config_file else {}
        data = merge_dicts(data, self._environment_overrides())

        config = BurrowConfig.from_dict(data)
        config.config_file_path = config_file
        return config

    def save_config(self, config: BurrowConfig, file_path: str, format: str = "yaml") -> None:
        """Write config to file_path as yaml or json."""
        codec = _FORMATS.get(format.lower())
        if codec is None:
            raise ConfigurationError(f"Unsupported format: {format}")

        _, dump, _ = codec
        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                dump(config.to_dict(), f)
        except OSError as e:
            raise ConfigurationError(f"Cannot write {file_path}: {e}") from e

    def _read_file(self, file_path: str) -> Dict[str, Any]:
        path = Path(file_path)
        if not path.is_file():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        format = _SUFFIXES.get(path.suffix.lower())
        if format is None:
            raise ConfigurationError(
                f"Unsupported configuration file format: {path.suffix or '(none)'}")

        load, _, decode_error = _FORMATS[format]
        try:
            with path.open('r', encoding='utf-8') as f:
                data = load(f)
        except decode_error as e:
            raise ConfigurationError(f"Invalid {format.upper()} in {file_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read {file_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping in {file_path}")
        return data

    def _environment_overrides(self) -> Dict[str, Any]:
        overrides: Dict[str, Dict[str, Any]] = {}

        for suffix, (section, name, convert) in self.ENV_FIELDS.items():
            env_var = self._env_prefix + suffix
            raw = os.environ.get(env_var)
            if raw is None:
                continue
            try:
                value = convert(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {raw} ({e})") from e
            overrides.setdefault(section, {})[name] = value

        return overrides

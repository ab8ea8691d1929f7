"""Configuration loader with YAML/JSON support, defaults fallback and environment variable substitution."""

import json
import math
import os
import re
from typing import Any, Dict, List
from urllib.parse import urlparse

import yaml

from models import SourceConfig

# option key -> (SourceConfig attribute, literal default, kind)
SOURCE_OPTIONS = {
    'BASE_URL': ('base_url', None, 'url'),
    'AUTH_HEADER': ('auth_header', None, 'required_str'),
    'CQL_SINGLE': ('cql_single', 'label = "offline-copy"', 'str'),
    'CQL_TREE': ('cql_tree', 'label = "offline-copy-tree"', 'str'),
    'OUTPUT_DIR': ('output_dir', './output', 'str'),
    'RETENTION_DAYS': ('retention_days', 10, 'non_negative'),
    'CONCURRENCY': ('concurrency', 2, 'positive_int'),
    'TASK_TIMEOUT': ('task_timeout', 120, 'positive'),
    'PAGE_SIZE': ('page_size', 25, 'positive_int'),
    'REQUEST_TIMEOUT': ('request_timeout', 30, 'positive'),
    'MAX_RETRIES': ('max_retries', 3, 'non_negative_int'),
    'RETRY_BACKOFF_FACTOR': ('retry_backoff_factor', 2.0, 'non_negative'),
    'VERIFY_SSL': ('verify_ssl', True, 'bool'),
    'PDF_FORMAT': ('pdf_format', 'A2', 'str'),
    'PDF_MARGIN': ('pdf_margin', '10px', 'str'),
    'PROGRESS_BARS': ('progress_bars', True, 'bool'),
}


class ConfigurationError(ValueError):
    """The configuration file is unusable; the run must not start."""
    pass


class ConfigLoader:
    """Handles loading, validation and per-source resolution of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a YAML or JSON file with environment variable substitution.

        ``.json`` files are read with the json module; anything else is YAML.

        Args:
            config_path: Path to configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            json.JSONDecodeError: If a .json file is not valid JSON (a ValueError)
            yaml.YAMLError: If YAML parsing fails
            ConfigurationError: If the document is not a mapping
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        # YAML rejects tab indentation, which is valid JSON
        with open(config_path, 'r', encoding='utf-8') as f:
            if str(config_path).lower().endswith(".json"):
                config_data = json.load(f)
            else:
                config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration file must contain a dictionary")

        return cls._substitute_env_vars_recursive(config_data)

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate the whole configuration by resolving every source.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ConfigurationError: If validation fails
        """
        cls.resolve_sources(config)

    @classmethod
    def resolve_sources(cls, config: Dict[str, Any]) -> List[SourceConfig]:
        """
        Resolve each entry of ``configs`` against ``defaults`` and the literal defaults.

        Args:
            config: Loaded configuration dictionary

        Returns:
            One validated SourceConfig per configured source, in file order

        Raises:
            ConfigurationError: If any source is invalid
        """
        defaults = config.get('defaults') or {}
        if not isinstance(defaults, dict):
            raise ConfigurationError("'defaults' must be a dictionary")

        configs = config.get('configs')
        if not isinstance(configs, list) or not configs:
            raise ConfigurationError("'configs' must be a non-empty list of source configurations")

        sources = []
        for index, source_config in enumerate(configs):
            if not isinstance(source_config, dict):
                raise ConfigurationError(f"configs[{index}] must be a dictionary")
            sources.append(cls._resolve_source(source_config, defaults, f"configs[{index}]"))

        return sources

    @classmethod
    def _resolve_source(cls, source_config: Dict[str, Any], defaults: Dict[str, Any], label: str) -> SourceConfig:
        values = {}

        for key, (attribute, literal_default, kind) in SOURCE_OPTIONS.items():
            value = resolve_option(source_config, defaults, key, literal_default)
            values[attribute] = cls._validate_option(f"{label}.{key}", value, kind)

        # NAME identifies a single source and is never taken from defaults
        name = source_config.get('NAME')
        values['name'] = str(name) if name else urlparse(values['base_url']).netloc

        return SourceConfig(**values)

    @classmethod
    def _validate_option(cls, field: str, value: Any, kind: str) -> Any:
        if kind in ('url', 'required_str'):
            cls._validate_required_field(field, value)
            if not isinstance(value, str):
                raise ConfigurationError(f"{field} must be a string")
            if kind == 'url':
                cls._validate_url(value, field)
                return value.rstrip('/')
            return value

        if kind == 'str':
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"{field} must be a non-empty string")
            return value

        if kind == 'bool':
            if not isinstance(value, bool):
                raise ConfigurationError(f"{field} must be a boolean")
            return value

        # Numeric kinds; bool is an int subclass and is rejected explicitly
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"{field} must be a number")
        if isinstance(value, float) and math.isnan(value):
            raise ConfigurationError(f"{field} must be a number, not NaN")

        if kind in ('positive_int', 'non_negative_int') and not isinstance(value, int):
            raise ConfigurationError(f"{field} must be an integer")
        if kind in ('positive', 'positive_int') and value <= 0:
            raise ConfigurationError(f"{field} must be positive")
        if kind in ('non_negative', 'non_negative_int') and value < 0:
            raise ConfigurationError(f"{field} must not be negative")

        return value

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value."""
        def replace_match(match):
            var_name = match.group(1)
            env_value = os.getenv(var_name)
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @classmethod
    def _validate_required_field(cls, field: str, value: Any) -> None:
        """Validate that a required field has a value and no unsubstituted variables."""
        if value is None or value == '':
            raise ConfigurationError(f"Missing required configuration: {field}")

        if isinstance(value, str) and '${' in value:
            match = cls.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ConfigurationError(
                f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        """Validate URL format."""
        parsed = urlparse(url)
        if not parsed.scheme or parsed.scheme not in ['http', 'https']:
            raise ConfigurationError(f"{field_name} must use http or https scheme: {url}")
        if not parsed.netloc:
            raise ConfigurationError(f"{field_name} missing hostname: {url}")


def resolve_option(source_config: Dict[str, Any], defaults: Dict[str, Any], key: str, literal_default: Any = None) -> Any:
    """
    Resolve one option: the source's own value, then the shared default, then the literal default.

    An explicit ``null`` falls through to the next level.
    """
    value = source_config.get(key)
    if value is None:
        value = defaults.get(key)
    if value is None:
        value = literal_default
    return value


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "logging.level")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    keys = path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['ConfigLoader', 'ConfigurationError', 'SOURCE_OPTIONS', 'get_nested', 'resolve_option']

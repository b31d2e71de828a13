"""Configuration loader with YAML support and environment variable substitution.

Two kinds of configuration exist:

- Settings files (``--settings clay.yaml``) tune the client and default
  options for export, import and logging. They are loaded by ``ConfigLoader``.
- The alias store (``~/.clayconfig``) maps short names to API keys and site
  urls, so ``clay export -u prod`` works without typing a full url. It is
  managed by ``ClayConfig``.
"""

import copy
import logging
import os
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

logger = logging.getLogger('claycli.config_loader')

CONFIG_FILENAME = '.clayconfig'
CONFIG_PATH_ENV = 'CLAYCLI_CONFIG'
DEFAULT_KEY_ENV = 'CLAYCLI_DEFAULT_KEY'
DEFAULT_URL_ENV = 'CLAYCLI_DEFAULT_URL'


class ConfigurationError(ValueError):
    """Raised for invalid settings or unknown alias store sections."""


class ConfigLoader:
    """Handles loading and validation of settings files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    DEFAULTS: Dict[str, Any] = {
        'clay': {
            'concurrency': 10,
            'timeout': 30,
            'max_retries': 3,
            'retry_backoff_factor': 0.5,
            'verify_ssl': True,
            'headers': {},
        },
        'export': {
            'layout': False,
            'yaml': False,
            'size': None,
        },
        'import': {
            'overwrite_layouts': False,
            'publish': False,
        },
        'logging': {
            'level': None,
            'file': None,
        },
    }

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load settings from YAML file with environment variable substitution.

        Args:
            config_path: Path to YAML settings file

        Returns:
            Parsed settings merged over the defaults

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigurationError: If the file does not contain a mapping
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration file must contain a dictionary")

        config_data = cls._substitute_env_vars_recursive(config_data)
        logger.debug(f"Loaded settings from {config_path}")

        return cls.with_defaults(config_data)

    @classmethod
    def with_defaults(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``config`` with every missing default filled in."""
        merged = copy.deepcopy(cls.DEFAULTS)
        for section, values in config.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = values
        return merged

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate settings values.

        Raises:
            ConfigurationError: If validation fails
        """
        concurrency = get_nested(config, 'clay.concurrency', 10)
        if not isinstance(concurrency, int) or isinstance(concurrency, bool) or concurrency < 1:
            raise ConfigurationError("clay.concurrency must be a positive integer")

        timeout = get_nested(config, 'clay.timeout', 30)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigurationError("clay.timeout must be a positive number")

        max_retries = get_nested(config, 'clay.max_retries', 3)
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ConfigurationError("clay.max_retries must be a non-negative integer")

        backoff = get_nested(config, 'clay.retry_backoff_factor', 0.5)
        if not isinstance(backoff, (int, float)) or backoff < 0:
            raise ConfigurationError("clay.retry_backoff_factor must be a non-negative number")

        if not isinstance(get_nested(config, 'clay.verify_ssl', True), bool):
            raise ConfigurationError("clay.verify_ssl must be a boolean")

        headers = get_nested(config, 'clay.headers', {})
        if headers is not None and not isinstance(headers, dict):
            raise ConfigurationError("clay.headers must be a mapping of header names to values")
        for name in headers or {}:
            cls._validate_required_field(config, f'clay.headers.{name}')

        for field in ('export.layout', 'export.yaml', 'import.overwrite_layouts', 'import.publish'):
            if not isinstance(get_nested(config, field, False), bool):
                raise ConfigurationError(f"{field} must be a boolean")

        size = get_nested(config, 'export.size')
        if size is not None and (not isinstance(size, int) or size < 1):
            raise ConfigurationError("export.size must be a positive integer")

        level = get_nested(config, 'logging.level')
        if level is not None and level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigurationError(f"logging.level must be a standard level name, not {level}")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge settings with CLI arguments.
        CLI arguments take precedence over settings file values.

        Args:
            config: Base settings dictionary
            args: Parsed CLI arguments

        Returns:
            Merged settings dictionary
        """
        merged = cls.with_defaults(config)

        if getattr(args, 'concurrency', None):
            merged['clay']['concurrency'] = args.concurrency

        if getattr(args, 'layout', False):
            merged['export']['layout'] = True

        if getattr(args, 'yaml', False):
            merged['export']['yaml'] = True

        if getattr(args, 'size', None):
            merged['export']['size'] = args.size

        if getattr(args, 'overwrite_layouts', False):
            merged['import']['overwrite_layouts'] = True

        if getattr(args, 'publish', False):
            merged['import']['publish'] = True

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        if getattr(args, 'log_level', None):
            merged['logging']['level'] = args.log_level

        return merged

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
            env_value = os.getenv(match.group(1))
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config_section: dict, field: str) -> None:
        """Validate that a field has a value and no unsubstituted variables."""
        value = get_nested(config_section, field)
        if value is None or value == '':
            raise ConfigurationError(f"Missing required configuration: {field}")

        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ConfigurationError(
                f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )


def sanitize_url(url: str) -> str:
    """
    Normalize a site url.

    ``http://`` is assumed unless ``https://`` is given, and a trailing slash
    is removed.
    """
    if not url.startswith('https://'):
        url = 'http://' + re.sub(r'^(?:http://|//)', '', url, flags=re.IGNORECASE)
    return url.rstrip('/')


def validate_url(url: str, field_name: str = 'url') -> None:
    """
    Validate URL format.

    Raises:
        ConfigurationError: If the url has no http(s) scheme or hostname
    """
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https'):
        raise ConfigurationError(f"{field_name} must use http or https scheme: {url}")
    if not parsed.netloc:
        raise ConfigurationError(f"{field_name} missing hostname: {url}")


class ClayConfig:
    """Alias store for API keys and site urls, persisted as YAML."""

    SECTIONS = ('keys', 'urls')

    def __init__(self, path: Optional[str] = None):
        self.path = path or os.getenv(CONFIG_PATH_ENV) or os.path.join(os.path.expanduser('~'), CONFIG_FILENAME)

    def _load(self) -> Dict[str, Dict[str, str]]:
        if not os.path.exists(self.path):
            return {}

        with open(self.path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.path} must contain a dictionary")
        return data

    def _check_section(self, section: str) -> None:
        if section not in self.SECTIONS:
            raise ConfigurationError(f'Unknown config section "{section}"')

    def get(self, section: str, alias: Optional[str] = None) -> Optional[str]:
        """
        Resolve an alias to a key or url.

        Args:
            section: 'key' or 'url' (plural forms accepted)
            alias: Saved alias, or a literal key/url to pass through

        Returns:
            The saved value for ``alias``, else ``alias`` itself, else the
            ``CLAYCLI_DEFAULT_KEY`` / ``CLAYCLI_DEFAULT_URL`` environment
            variable, else None. Urls are sanitized.

        Raises:
            ConfigurationError: For an unknown section
        """
        section = section if section.endswith('s') else f"{section}s"
        self._check_section(section)

        value = None
        if alias:
            value = (self._load().get(section) or {}).get(alias) or alias
        else:
            value = os.getenv(DEFAULT_KEY_ENV if section == 'keys' else DEFAULT_URL_ENV)

        if value and section == 'urls':
            return sanitize_url(value)
        return value or None

    def set(self, section: str, alias: str, value: str) -> None:
        """
        Save an alias.

        Raises:
            ConfigurationError: For an unknown section
        """
        section = section if section.endswith('s') else f"{section}s"
        self._check_section(section)

        data = self._load()
        data.setdefault(section, {})[alias] = sanitize_url(value) if section == 'urls' else value

        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False)
        logger.info(f"Saved {section[:-1]} alias '{alias}' to {self.path}")

    def get_all(self) -> Dict[str, Dict[str, str]]:
        data = self._load()
        return {section: dict(data.get(section) or {}) for section in self.SECTIONS}


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "clay.concurrency")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    value = config

    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = [
    'ConfigLoader',
    'ClayConfig',
    'ConfigurationError',
    'get_nested',
    'sanitize_url',
    'validate_url',
]

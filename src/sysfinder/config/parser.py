"""
YAML configuration parser for the AI System Finder.

This module loads, parses and validates the YAML configuration file and
turns it into the immutable ResolvedConfig snapshot. It handles configuration
file discovery, merging with defaults, command line overrides and values
kept in the persisted configuration store.
"""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List, Union
import logging
from dataclasses import dataclass

from ..errors import ConfigurationError
from ..models.config import DEFAULT_QUERY_FMT, LlmApi, ResolvedConfig, validate_config_dict


logger = logging.getLogger(__name__)


@dataclass
class ConfigParseResult:
    """
    Result of configuration parsing operation.

    Attributes:
        config: The parsed and validated configuration snapshot
        warnings: List of non-fatal warnings
        config_path: Path to the configuration file used
        is_default: Whether default configuration was used
    """
    config: ResolvedConfig
    warnings: List[str]
    config_path: Optional[Path]
    is_default: bool


class ConfigParser:
    """
    YAML configuration parser with validation and error handling.

    Configuration is layered: built-in defaults, then the YAML file, then the
    persisted store values, then explicit overrides (usually command line
    options). The result is frozen into a ResolvedConfig.
    """

    DEFAULT_CONFIG_NAMES = [
        '.sysfinder.yaml',
        '.sysfinder.yml',
        'sysfinder.yaml',
        'sysfinder.yml',
    ]

    def __init__(self, strict_mode: bool = False):
        """
        Initialize the configuration parser.

        Args:
            strict_mode: If True, treat warnings as errors
        """
        self.strict_mode = strict_mode
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def search_paths(self) -> List[Path]:
        """Directories searched for a configuration file, in order."""
        return [
            Path.cwd(),
            Path.home() / '.config' / 'sysfinder',
            Path('/etc') / 'sysfinder',
        ]

    def load_config(
        self,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
        store_values: Optional[Dict[str, str]] = None,
    ) -> ConfigParseResult:
        """
        Load and parse configuration from file or use defaults.

        Args:
            config_path: Path to configuration file. If None, searches for default files.
            overrides: Values taking precedence over the file, using the file's layout
            store_values: Key/value pairs read from the persisted configuration store

        Returns:
            ConfigParseResult containing the configuration snapshot and metadata

        Raises:
            ConfigurationError: If configuration is invalid or file cannot be read
        """
        try:
            if config_path:
                config_path = Path(config_path)
                if not config_path.exists():
                    raise ConfigurationError(f"Configuration file not found: {config_path}")

                config_data = self._load_yaml_file(config_path)
                is_default = False
            else:
                config_path, config_data = self._find_and_load_config()
                is_default = config_data is None
                if is_default:
                    config_data = {}

            # User values take precedence over defaults
            merged = _deep_merge(self._get_default_config(), config_data)
            if store_values:
                selected = _deep_merge(merged, overrides or {})
                merged = _deep_merge(merged, self._store_overlay(selected, store_values))
            if overrides:
                merged = _deep_merge(merged, overrides)

            validated_data = self._validate_config_data(merged)
            config = ResolvedConfig.from_dict(validated_data)

            warnings = self._get_parser_warnings(config, config_path, is_default)
            if self.strict_mode and warnings:
                raise ConfigurationError(f"Configuration warnings in strict mode: {'; '.join(warnings)}")

            self.logger.info(f"Configuration loaded successfully from {config_path or 'defaults'}")

            return ConfigParseResult(
                config=config,
                warnings=warnings,
                config_path=config_path,
                is_default=is_default
            )

        except Exception as e:
            if isinstance(e, ConfigurationError):
                raise
            else:
                raise ConfigurationError(f"Failed to load configuration: {e}") from e

    def _find_and_load_config(self) -> tuple[Optional[Path], Optional[Dict[str, Any]]]:
        """
        Find and load configuration file from default locations.

        Returns:
            Tuple of (config_path, config_data) or (None, None) if not found
        """
        for search_path in self.search_paths():
            for config_name in self.DEFAULT_CONFIG_NAMES:
                config_file = search_path / config_name
                if config_file.exists() and config_file.is_file():
                    try:
                        config_data = self._load_yaml_file(config_file)
                        self.logger.info(f"Found configuration file: {config_file}")
                        return config_file, config_data
                    except ConfigurationError as e:
                        self.logger.warning(f"Failed to load {config_file}: {e}")
                        continue

        self.logger.info("No configuration file found, using defaults")
        return None, None

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """
        Load and parse YAML file.

        Args:
            file_path: Path to YAML file

        Returns:
            Parsed YAML data as dictionary

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                content = f.read()

            if not content.strip():
                self.logger.warning(f"Configuration file is empty: {file_path}")
                return {}

            data = yaml.safe_load(content)
            if data is None:
                return {}

            if not isinstance(data, dict):
                raise ConfigurationError(f"Configuration file must contain a YAML object, got {type(data).__name__}")

            return data

        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {file_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {file_path}: {e}") from e

    def _validate_config_data(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate configuration data structure and values.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        try:
            return validate_config_dict(config_data)
        except ValueError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

    def _store_overlay(self, config_data: Dict[str, Any], store_values: Dict[str, str]) -> Dict[str, Any]:
        """
        Map persisted store keys onto the selected backend's settings.

        Args:
            config_data: Configuration with overrides applied, used to find the selected backend
            store_values: Key/value pairs from the store

        Returns:
            Partial configuration to merge on top
        """
        api = config_data.get('llm', {}).get('api', LlmApi.OLLAMA)
        api = str(getattr(api, 'value', api)).strip().lower()
        backend: Dict[str, Any] = {}
        if store_values.get('llm_model'):
            backend['model'] = store_values['llm_model']
        if store_values.get('llm_base_url'):
            backend['base_url'] = store_values['llm_base_url']
        if not backend:
            return {}
        return {'llm': {api: backend}}

    def _get_default_config(self) -> Dict[str, Any]:
        """
        Get default configuration when no config file is found.

        Returns:
            Default configuration dictionary
        """
        return {
            'double_pass_derive': False,
            'num_derive_tries': 3,
            'llm': {
                'api': 'ollama',
                'query_fmt': DEFAULT_QUERY_FMT,
                'timeout_seconds': 60,
                'ollama': {
                    'base_url': 'http://localhost:11434',
                    'model': 'qwen2.5'
                },
                'open_ai': {
                    'base_url': 'https://api.openai.com/v1',
                    'key': '$OPENAI_API_KEY',
                    'model': 'gpt-4o-mini'
                }
            }
        }

    def _get_parser_warnings(self, config: ResolvedConfig, config_path: Optional[Path], is_default: bool) -> List[str]:
        """
        Get parser-specific warnings.

        Args:
            config: The parsed configuration
            config_path: Path to configuration file (if any)
            is_default: Whether default configuration was used

        Returns:
            List of warning messages
        """
        warnings = []

        if is_default:
            warnings.append("No configuration file found, using default settings")

        if config.llm.api == LlmApi.OPEN_AI and not config.llm.open_ai.resolve_key():
            warnings.append(f"API key not found: {config.llm.open_ai.key} is empty or unset")

        if config.num_derive_tries > 10:
            warnings.append(f"High num_derive_tries ({config.num_derive_tries}) may cause many billed requests")

        if config.llm.timeout_seconds > 600:
            warnings.append("Very high llm.timeout_seconds lets a stuck request block for a long time")

        return warnings

    def _generate_yaml_with_comments(self, config_dict: Dict[str, Any]) -> str:
        """
        Generate YAML content with helpful comments.

        Args:
            config_dict: Configuration dictionary

        Returns:
            YAML content with comments
        """
        lines = [
            "# AI System Finder Configuration",
            "# This file configures how queries are turned into tool calls",
            "",
        ]

        sections = [
            ("double_pass_derive", "Derive tool and parameters in two passes (fewer tokens, one extra request)"),
            ("num_derive_tries", "Number of tries per derivation pass"),
            ("llm", "Language model backend")
        ]

        for section_name, comment in sections:
            if section_name in config_dict:
                lines.append(f"# {comment}")
                section_yaml = yaml.dump({section_name: config_dict[section_name]},
                                         default_flow_style=False,
                                         sort_keys=False)
                lines.append(section_yaml.rstrip())
                lines.append("")

        return "\n".join(lines)

    def validate_config_file(self, config_path: Union[str, Path]) -> List[str]:
        """
        Validate a configuration file without building a snapshot.

        Args:
            config_path: Path to configuration file

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        try:
            config_path = Path(config_path)

            if not config_path.exists():
                errors.append(f"Configuration file not found: {config_path}")
                return errors

            config_data = self._load_yaml_file(config_path)
            self._validate_config_data(_deep_merge(self._get_default_config(), config_data))

        except ConfigurationError as e:
            errors.append(str(e))

        return errors

    def get_config_template(self) -> str:
        """
        Get a template configuration file with all options and comments.

        Returns:
            YAML template as string
        """
        return self._generate_yaml_with_comments(self._get_default_config())


def _deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Merge nested mappings, values from update taking precedence."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    strict_mode: bool = False,
    overrides: Optional[Dict[str, Any]] = None,
    store_values: Optional[Dict[str, str]] = None,
) -> ConfigParseResult:
    """
    Convenience function to load configuration.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    parser = ConfigParser(strict_mode=strict_mode)
    return parser.load_config(config_path, overrides=overrides, store_values=store_values)


def validate_config_file(config_path: Union[str, Path]) -> List[str]:
    """Convenience function to validate a configuration file."""
    parser = ConfigParser()
    return parser.validate_config_file(config_path)


def create_config_template(output_path: Union[str, Path]) -> None:
    """
    Create a template configuration file.

    Args:
        output_path: Where to save the template

    Raises:
        ConfigurationError: If template cannot be created
    """
    parser = ConfigParser()
    template_content = parser.get_config_template()

    try:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(template_content)

    except OSError as e:
        raise ConfigurationError(f"Cannot create template file {output_path}: {e}") from e

"""
Configuration management package for AI System Finder.

This package loads the YAML configuration file and the persisted key/value
store and resolves them into the immutable configuration snapshot.
"""

from ..errors import ConfigurationError
from .parser import (
    ConfigParser,
    ConfigParseResult,
    load_config,
    validate_config_file,
    create_config_template
)
from .store import read_values

__all__ = [
    'ConfigParser',
    'ConfigParseResult',
    'ConfigurationError',
    'load_config',
    'validate_config_file',
    'create_config_template',
    'read_values'
]

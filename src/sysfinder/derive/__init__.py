"""
Tool call derivation for the AI System Finder.

This package turns a natural language query into a validated tool
invocation: the tool catalog, the prompt context, parameter validation and
the retrying derivation engine.
"""

from .catalog import DEFAULT_CATALOG, ToolCatalog
from .context import LocationAliases, QueryContextBuilder, render_prompt
from .engine import DerivationEngine, parse_completion
from .validation import validate_call

__all__ = [
    'ToolCatalog',
    'DEFAULT_CATALOG',
    'LocationAliases',
    'QueryContextBuilder',
    'render_prompt',
    'DerivationEngine',
    'parse_completion',
    'validate_call',
]

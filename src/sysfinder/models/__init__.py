"""
Data models for the AI System Finder.

This module contains all the core data structures used throughout the system.
"""

from .criteria import EntryType, FileCriteria, NameSyntax, PortSpec, ProcessCriteria, Protocol
from .search_results import FileMatch, ProcessDetails, ProcessMatch
from .tools import (
    DerivationAttempt,
    FindFilesInvocation,
    FindProcessesInvocation,
    ParameterKind,
    ParameterSchema,
    ToolDescriptor,
    ToolInvocation,
)

__all__ = [
    'EntryType',
    'FileCriteria',
    'NameSyntax',
    'PortSpec',
    'ProcessCriteria',
    'Protocol',
    'FileMatch',
    'ProcessDetails',
    'ProcessMatch',
    'DerivationAttempt',
    'FindFilesInvocation',
    'FindProcessesInvocation',
    'ParameterKind',
    'ParameterSchema',
    'ToolDescriptor',
    'ToolInvocation',
]

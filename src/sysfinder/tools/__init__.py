"""
Search engines for the AI System Finder.

This package contains the engines that execute a validated tool invocation:
filesystem walking for find_files and process scanning for find_processes.
"""

from .fs_walker import FileSearchEngine
from .process_scanner import DEFAULT_SAMPLE_INTERVAL, ProcessSearchEngine

__all__ = [
    'FileSearchEngine',
    'ProcessSearchEngine',
    'DEFAULT_SAMPLE_INTERVAL',
]

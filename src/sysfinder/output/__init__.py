"""
Result output for the AI System Finder.
"""

from .emitter import emit

__all__ = ['emit']

"""
AI System Finder - Core Package

Finds files and running processes from natural language queries: a language
model turns the query into a structured tool call which is validated and
executed locally, and the matches are written as JSON lines.
"""

__version__ = "0.1.0"
__author__ = "AI System Finder Team"

"""
Language model completion backends for the AI System Finder.

Every backend implements the CompletionClient interface; one is selected at
startup from the configuration snapshot.
"""

from .client import CompletionClient, create_completion_client
from .ollama import OllamaClient
from .open_ai import OpenAiClient

__all__ = ['CompletionClient', 'create_completion_client', 'OllamaClient', 'OpenAiClient']

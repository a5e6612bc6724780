"""
Ollama completion backend.
"""

from typing import Optional

import httpx

from ..models.config import OllamaConfig
from .client import HttpCompletionClient


class OllamaClient(HttpCompletionClient):
    """Completion client for a local Ollama server's generate endpoint."""

    endpoint = "/api/generate"

    def __init__(self, config: OllamaConfig, timeout: float = 60.0, transport: Optional[httpx.BaseTransport] = None):
        super().__init__(config.base_url, timeout, transport)
        self.model = config.model

    def build_request(self, prompt: str) -> dict:
        return {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
        }

    def extract_text(self, body: dict) -> str:
        return body["response"]

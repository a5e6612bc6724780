"""
OpenAI compatible completion backend.
"""

import json
from typing import Optional

import httpx

from ..models.config import OpenAiConfig
from .client import HttpCompletionClient


class OpenAiClient(HttpCompletionClient):
    """Completion client for OpenAI compatible chat completion APIs."""

    endpoint = "/chat/completions"

    def __init__(
        self,
        config: OpenAiConfig,
        key: str,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(config.base_url, timeout, transport)
        self.model = config.model
        self._key = key

    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self._key}"}

    def build_request(self, prompt: str) -> dict:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
            "response_format": {"type": "json_object"},
        }

    def extract_text(self, body: dict) -> str:
        message = body["choices"][0]["message"]
        content = message.get("content")
        if content:
            return content
        # Some compatible servers answer with a native tool call instead
        calls = message.get("tool_calls") or []
        if len(calls) == 1:
            function = calls[0]["function"]
            return json.dumps({"name": function["name"], "arguments": function["arguments"]})
        raise KeyError("content")


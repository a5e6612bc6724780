"""
Completion client interface and backend selection.
"""

import logging
from typing import Optional, Protocol

import httpx

from ..errors import CompletionBackendError, ConfigurationError
from ..models.config import LlmApi, LlmConfig


logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    """Anything that turns a prompt into completion text."""

    def complete(self, prompt: str) -> str:
        """
        Request a single completion.

        Raises:
            CompletionBackendError: On network, timeout or response errors
        """
        ...


class HttpCompletionClient:
    """
    Shared plumbing for HTTP completion backends.

    Subclasses build the request body and extract the completion text; this
    class owns the httpx client, the timeout and the error translation.
    """

    endpoint = ""

    def __init__(self, base_url: str, timeout: float, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def headers(self) -> dict:
        return {}

    def build_request(self, prompt: str) -> dict:
        raise NotImplementedError

    def extract_text(self, body: dict) -> str:
        raise NotImplementedError

    def complete(self, prompt: str) -> str:
        url = f"{self.base_url}{self.endpoint}"
        try:
            response = self._client.post(url, json=self.build_request(prompt), headers=self.headers())
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise CompletionBackendError(f"Completion request to {url} timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise CompletionBackendError(
                f"Completion request to {url} failed with HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise CompletionBackendError(f"Completion request to {url} failed: {e}") from e
        except ValueError as e:
            raise CompletionBackendError(f"Completion response from {url} is not JSON: {e}") from e

        if not isinstance(body, dict):
            raise CompletionBackendError(f"Completion response from {url} is not a JSON object")
        try:
            text = self.extract_text(body)
        except (KeyError, IndexError, TypeError) as e:
            raise CompletionBackendError(f"Unexpected completion response layout from {url}: {e}") from e
        if not isinstance(text, str):
            raise CompletionBackendError(f"Completion text from {url} is not a string")
        logger.debug(f"Completion from {url}: {text}")
        return text


def create_completion_client(config: LlmConfig, transport: Optional[httpx.BaseTransport] = None) -> CompletionClient:
    """
    Build the completion client selected by the configuration.

    Args:
        config: Language model settings
        transport: Optional httpx transport, mainly for tests

    Raises:
        ConfigurationError: If the selected backend cannot be configured
    """
    from .ollama import OllamaClient
    from .open_ai import OpenAiClient

    if config.api == LlmApi.OLLAMA:
        return OllamaClient(config.ollama, timeout=config.timeout_seconds, transport=transport)
    if config.api == LlmApi.OPEN_AI:
        key = config.open_ai.resolve_key()
        if not key:
            raise ConfigurationError(f"OpenAI API key not available from {config.open_ai.key!r}")
        return OpenAiClient(config.open_ai, key=key, timeout=config.timeout_seconds, transport=transport)
    raise ConfigurationError(f"Unsupported llm api: {config.api}")

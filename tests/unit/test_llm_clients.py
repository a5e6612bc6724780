"""
Unit tests for the completion clients.

Requests are answered by an httpx.MockTransport, so no server is needed.
"""

import json

import httpx
import pytest

from sysfinder.errors import CompletionBackendError, ConfigurationError
from sysfinder.llm import OllamaClient, OpenAiClient, create_completion_client
from sysfinder.models.config import LlmConfig, OllamaConfig, OpenAiConfig


class RecordingTransport:
    """Builds a MockTransport that records requests and replies with a handler."""

    def __init__(self, handler):
        self.requests = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request):
        self.requests.append(request)
        return self._handler(request)


class TestOllamaClient:
    """Test cases for OllamaClient class."""

    def test_complete(self):
        recorder = RecordingTransport(lambda request: httpx.Response(200, json={"response": '{"tool": "x"}'}))
        client = OllamaClient(OllamaConfig(base_url="http://ollama:11434/", model="llama3"),
                              transport=recorder.transport)

        assert client.complete("hello") == '{"tool": "x"}'

        request = recorder.requests[0]
        assert str(request.url) == "http://ollama:11434/api/generate"
        body = json.loads(request.content)
        assert body == {"model": "llama3", "prompt": "hello", "stream": False, "format": "json"}

    def test_http_error(self):
        recorder = RecordingTransport(lambda request: httpx.Response(500, text="model not loaded"))
        client = OllamaClient(OllamaConfig(), transport=recorder.transport)

        with pytest.raises(CompletionBackendError) as exc_info:
            client.complete("hello")
        assert "500" in str(exc_info.value)

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = OllamaClient(OllamaConfig(), timeout=1.0, transport=RecordingTransport(handler).transport)
        with pytest.raises(CompletionBackendError) as exc_info:
            client.complete("hello")
        assert "timed out" in str(exc_info.value)

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = OllamaClient(OllamaConfig(), transport=RecordingTransport(handler).transport)
        with pytest.raises(CompletionBackendError):
            client.complete("hello")

    def test_non_json_body(self):
        recorder = RecordingTransport(lambda request: httpx.Response(200, text="<html>"))
        client = OllamaClient(OllamaConfig(), transport=recorder.transport)
        with pytest.raises(CompletionBackendError):
            client.complete("hello")

    def test_unexpected_layout(self):
        recorder = RecordingTransport(lambda request: httpx.Response(200, json={"done": True}))
        client = OllamaClient(OllamaConfig(), transport=recorder.transport)
        with pytest.raises(CompletionBackendError):
            client.complete("hello")


class TestOpenAiClient:
    """Test cases for OpenAiClient class."""

    def _reply(self, message):
        return lambda request: httpx.Response(200, json={"choices": [{"message": message}]})

    def test_complete(self):
        recorder = RecordingTransport(self._reply({"role": "assistant", "content": '{"tool": "find_files"}'}))
        client = OpenAiClient(OpenAiConfig(model="gpt-test"), key="sk-test", transport=recorder.transport)

        assert client.complete("hi") == '{"tool": "find_files"}'

        request = recorder.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-test"
        assert body["messages"] == [{"role": "user", "content": "hi"}]
        assert body["response_format"] == {"type": "json_object"}

    def test_tool_call_reply(self):
        message = {
            "role": "assistant",
            "content": None,
            "tool_calls": [{"function": {"name": "find_files", "arguments": '{"root_dir": "/tmp"}'}}],
        }
        client = OpenAiClient(OpenAiConfig(), key="k", transport=RecordingTransport(self._reply(message)).transport)

        text = client.complete("hi")

        assert json.loads(text) == {"name": "find_files", "arguments": '{"root_dir": "/tmp"}'}

    def test_empty_reply(self):
        client = OpenAiClient(
            OpenAiConfig(), key="k",
            transport=RecordingTransport(self._reply({"role": "assistant", "content": ""})).transport,
        )
        with pytest.raises(CompletionBackendError):
            client.complete("hi")

    def test_unauthorized(self):
        recorder = RecordingTransport(lambda request: httpx.Response(401, json={"error": "bad key"}))
        client = OpenAiClient(OpenAiConfig(), key="k", transport=recorder.transport)
        with pytest.raises(CompletionBackendError) as exc_info:
            client.complete("hi")
        assert "401" in str(exc_info.value)


class TestCreateCompletionClient:
    """Test cases for create_completion_client."""

    def test_ollama(self):
        client = create_completion_client(LlmConfig())
        assert isinstance(client, OllamaClient)
        assert client.model == "qwen2.5"
        client.close()

    def test_open_ai_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("SYSFINDER_TEST_KEY", "sk-env")
        config = LlmConfig(api="open_ai", open_ai=OpenAiConfig(key="$SYSFINDER_TEST_KEY"), timeout_seconds=5)

        client = create_completion_client(config)

        assert isinstance(client, OpenAiClient)
        assert client.headers() == {"Authorization": "Bearer sk-env"}
        assert client.timeout == 5
        client.close()

    def test_open_ai_missing_key(self, monkeypatch):
        monkeypatch.delenv("SYSFINDER_TEST_KEY", raising=False)
        config = LlmConfig(api="open_ai", open_ai=OpenAiConfig(key="${SYSFINDER_TEST_KEY}"))

        with pytest.raises(ConfigurationError):
            create_completion_client(config)

"""
Unit tests for configuration data models.

Tests validation, defaults and serialization of the configuration
snapshot and its language model sections.
"""

import pytest
from pydantic import ValidationError

from sysfinder.models.config import (
    DEFAULT_QUERY_FMT,
    LlmApi,
    LlmConfig,
    OllamaConfig,
    OpenAiConfig,
    ResolvedConfig,
    validate_config_dict,
)


class TestOllamaConfig:
    """Test cases for OllamaConfig."""

    def test_defaults(self):
        config = OllamaConfig()
        assert config.base_url == "http://localhost:11434"
        assert config.model == "qwen2.5"

    def test_trailing_slash_removed(self):
        assert OllamaConfig(base_url="http://box:11434/").base_url == "http://box:11434"

    def test_invalid_url(self):
        with pytest.raises(ValidationError):
            OllamaConfig(base_url="box:11434")


class TestOpenAiConfig:
    """Test cases for OpenAiConfig."""

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("SYSFINDER_KEY", "sk-123")
        assert OpenAiConfig(key="$SYSFINDER_KEY").resolve_key() == "sk-123"
        assert OpenAiConfig(key="${SYSFINDER_KEY}").resolve_key() == "sk-123"

    def test_unset_environment_key(self, monkeypatch):
        monkeypatch.delenv("SYSFINDER_KEY", raising=False)
        assert OpenAiConfig(key="$SYSFINDER_KEY").resolve_key() is None

    def test_literal_key(self):
        config = OpenAiConfig(key="sk-literal")
        assert config.resolve_key() == "sk-literal"
        assert config.to_dict()['key'] == '***'

    def test_reference_not_redacted(self):
        assert OpenAiConfig().to_dict()['key'] == "$OPENAI_API_KEY"


class TestLlmConfig:
    """Test cases for LlmConfig."""

    def test_defaults(self):
        config = LlmConfig()
        assert config.api == LlmApi.OLLAMA
        assert config.query_fmt == DEFAULT_QUERY_FMT
        assert config.timeout_seconds == 60
        assert config.backend_model() == "qwen2.5"

    def test_api_case_insensitive(self):
        config = LlmConfig(api="OPEN_AI", open_ai=OpenAiConfig(model="gpt-x"))
        assert config.api == LlmApi.OPEN_AI
        assert config.backend_model() == "gpt-x"

    def test_unknown_api(self):
        with pytest.raises(ValidationError, match="Invalid llm api"):
            LlmConfig(api="mystery")

    def test_query_fmt_placeholders(self):
        with pytest.raises(ValidationError, match="context"):
            LlmConfig(query_fmt="just {query}")
        with pytest.raises(ValidationError, match="query"):
            LlmConfig(query_fmt="just {context}")
        assert LlmConfig(query_fmt="{context} {query} {feedback}").query_fmt.endswith("{feedback}")

    def test_selected_backend_required(self):
        with pytest.raises(ValidationError, match="llm.open_ai config missing"):
            LlmConfig(api="open_ai")
        with pytest.raises(ValidationError, match="llm.ollama config missing"):
            LlmConfig(ollama=None)

    def test_timeout_positive(self):
        with pytest.raises(ValidationError):
            LlmConfig(timeout_seconds=0)


class TestResolvedConfig:
    """Test cases for ResolvedConfig."""

    def test_defaults(self):
        config = ResolvedConfig()
        assert config.double_pass_derive is False
        assert config.num_derive_tries == 3

    def test_tries_positive(self):
        with pytest.raises(ValidationError):
            ResolvedConfig(num_derive_tries=0)

    def test_round_trip(self):
        config = ResolvedConfig(double_pass_derive=True, num_derive_tries=2)
        assert ResolvedConfig.from_dict(config.to_dict()) == config

    def test_to_dict_redacts_literal_key(self):
        config = ResolvedConfig(llm=LlmConfig(api="open_ai", open_ai=OpenAiConfig(key="sk-secret")))
        data = config.to_dict()
        assert data['llm']['api'] == "open_ai"
        assert data['llm']['open_ai']['key'] == '***'
        assert 'sk-secret' not in str(config)

    def test_str(self):
        text = str(ResolvedConfig(double_pass_derive=True))
        assert "ollama" in text
        assert "double pass" in text


class TestValidateConfigDict:
    """Test cases for validate_config_dict."""

    def test_valid(self):
        data = {'num_derive_tries': 2, 'llm': {'api': 'ollama'}}
        assert validate_config_dict(data) is data

    def test_unknown_keys_collected(self):
        with pytest.raises(ValueError) as exc_info:
            validate_config_dict({'retries': 1, 'llm': {'temperature': 0}})
        message = str(exc_info.value)
        assert "retries" in message
        assert "llm.temperature" in message

    def test_llm_must_be_mapping(self):
        with pytest.raises(ValueError, match="llm must be a mapping"):
            validate_config_dict({'llm': 'ollama'})

    def test_not_a_mapping(self):
        with pytest.raises(ValueError):
            validate_config_dict(['llm'])

"""
Configuration data models for the AI System Finder.

This module defines the immutable configuration snapshot the rest of the
system receives at startup: derivation settings and the language model
backend selection with its per-backend settings.
"""

import os
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


DEFAULT_QUERY_FMT = (
    "Using the context {context} derive a tool call for the following query. {query}"
)

_ENV_REFERENCE = re.compile(r"^\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?$")


class LlmApi(Enum):
    """Supported language model backends."""
    OLLAMA = "ollama"
    OPEN_AI = "open_ai"


class OllamaConfig(BaseModel):
    """
    Settings of a local Ollama server.

    Attributes:
        base_url: Server root URL
        model: Model name
    """

    model_config = {'frozen': True}

    base_url: str = Field("http://localhost:11434", description="Ollama server URL")
    model: str = Field("qwen2.5", min_length=1, description="Model name")

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return _validate_url(v)


class OpenAiConfig(BaseModel):
    """
    Settings of an OpenAI compatible hosted API.

    Attributes:
        base_url: API root URL, including the version segment
        model: Model name
        key: API key, or a ``$VARIABLE`` reference to one
    """

    model_config = {'frozen': True}

    base_url: str = Field("https://api.openai.com/v1", description="API root URL")
    model: str = Field("gpt-4o-mini", min_length=1, description="Model name")
    key: str = Field("$OPENAI_API_KEY", description="API key or environment reference")

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return _validate_url(v)

    def resolve_key(self) -> Optional[str]:
        """Expand an environment variable reference into the actual key."""
        match = _ENV_REFERENCE.match(self.key.strip())
        if match:
            return os.environ.get(match.group(1))
        return self.key or None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation, redacting literal keys."""
        data = self.model_dump()
        if not _ENV_REFERENCE.match(self.key.strip()):
            data['key'] = '***'
        return data


class LlmConfig(BaseModel):
    """
    Language model settings.

    Attributes:
        api: Backend used for completions
        query_fmt: Prompt template with {context} and {query} placeholders
        timeout_seconds: Upper bound for one completion request
        ollama: Ollama backend settings
        open_ai: OpenAI backend settings
    """

    model_config = {'frozen': True}

    api: LlmApi = Field(LlmApi.OLLAMA, description="Completion backend")
    query_fmt: str = Field(DEFAULT_QUERY_FMT, description="Prompt template")
    timeout_seconds: float = Field(60.0, gt=0, description="Completion request timeout")
    ollama: Optional[OllamaConfig] = Field(default_factory=OllamaConfig, description="Ollama settings")
    open_ai: Optional[OpenAiConfig] = Field(None, description="OpenAI settings")

    @field_validator('api', mode='before')
    @classmethod
    def validate_api(cls, v) -> LlmApi:
        """Validate and convert backend name to enum."""
        if isinstance(v, str):
            try:
                return LlmApi(v.strip().lower())
            except ValueError:
                raise ValueError(f"Invalid llm api: {v}")
        return v

    @field_validator('query_fmt')
    @classmethod
    def validate_query_fmt(cls, v: str) -> str:
        """The template must place both the context and the query."""
        for placeholder in ('{context}', '{query}'):
            if placeholder not in v:
                raise ValueError(f"query_fmt must contain {placeholder}")
        return v

    @model_validator(mode='after')
    def validate_backend_settings(self) -> 'LlmConfig':
        """The selected backend must have its settings section."""
        if self.api == LlmApi.OLLAMA and self.ollama is None:
            raise ValueError("llm.ollama config missing")
        if self.api == LlmApi.OPEN_AI and self.open_ai is None:
            raise ValueError("llm.open_ai config missing")
        return self

    def backend_model(self) -> str:
        """Model name of the selected backend."""
        if self.api == LlmApi.OPEN_AI:
            return self.open_ai.model
        return self.ollama.model


class ResolvedConfig(BaseModel):
    """
    Immutable configuration snapshot threaded through a query.

    Attributes:
        double_pass_derive: Derive the tool and its parameters in two requests
        num_derive_tries: Attempts per derivation pass
        llm: Language model settings
    """

    model_config = {'frozen': True}

    double_pass_derive: bool = Field(False, description="Derive in two passes")
    num_derive_tries: int = Field(3, gt=0, description="Attempts per derivation pass")
    llm: LlmConfig = Field(default_factory=LlmConfig, description="Language model settings")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data = self.model_dump(mode='json', exclude={'llm': {'open_ai'}})
        if self.llm.open_ai is not None:
            data['llm']['open_ai'] = self.llm.open_ai.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResolvedConfig':
        return cls.model_validate(data)

    def __str__(self) -> str:
        mode = "double pass" if self.double_pass_derive else "single pass"
        return (
            f"ResolvedConfig(api={self.llm.api.value}, model={self.llm.backend_model()}, "
            f"{mode}, tries={self.num_derive_tries})"
        )


def _validate_url(v: str) -> str:
    v = v.strip()
    if not re.match(r'^https?://', v):
        raise ValueError(f"URL must start with http:// or https://: {v}")
    return v.rstrip('/')


def validate_config_dict(config_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check the structure of a raw configuration mapping.

    Args:
        config_data: Raw configuration data, e.g. loaded from YAML

    Returns:
        The same data, once it is known to build a ResolvedConfig

    Raises:
        ValueError: If a key is unknown or a value is invalid
    """
    if not isinstance(config_data, dict):
        raise ValueError(f"Configuration must be a mapping, got {type(config_data).__name__}")

    errors: List[str] = []
    known_top = set(ResolvedConfig.model_fields)
    for key in config_data:
        if key not in known_top:
            errors.append(f"Unknown configuration key: {key}")

    llm = config_data.get('llm', {})
    if llm is not None and not isinstance(llm, dict):
        errors.append("llm must be a mapping")
    elif llm:
        for key in llm:
            if key not in LlmConfig.model_fields:
                errors.append(f"Unknown configuration key: llm.{key}")

    if errors:
        raise ValueError("; ".join(errors))

    try:
        ResolvedConfig.model_validate(config_data)
    except ValidationError as e:
        raise ValueError(str(e)) from e

    return config_data

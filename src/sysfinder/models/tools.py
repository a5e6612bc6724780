"""
Tool data models for the AI System Finder.

This module defines the descriptors of the searchable tools, the validated
invocations derived from a natural language query, and the bookkeeping
records kept for each derivation attempt.
"""

from typing import Any, Dict, List, Literal, Optional, Union
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from .criteria import FileCriteria, ProcessCriteria


FIND_FILES = "find_files"
FIND_PROCESSES = "find_processes"


class ParameterKind(Enum):
    """Types a tool parameter value is coerced to."""
    STRING = "string"
    REGEX = "regex"
    PATH = "path"
    INT_RANGE = "int_range"
    SIZE_RANGE = "size_range"
    TIME_RANGE = "time_range"
    PORT_SET = "port_set"
    ENUM = "enum"


# JSON shapes shown to the language model for each parameter kind.
_KIND_SCHEMAS: Dict[ParameterKind, Dict[str, Any]] = {
    ParameterKind.STRING: {'type': 'string'},
    ParameterKind.REGEX: {'type': 'string', 'format': 'regex'},
    ParameterKind.PATH: {'type': 'string', 'format': 'path or location name'},
    ParameterKind.INT_RANGE: {
        'type': 'object',
        'properties': {'min': {'type': 'number'}, 'max': {'type': 'number'}},
    },
    ParameterKind.SIZE_RANGE: {
        'type': 'object',
        'properties': {
            'min': {'type': ['integer', 'string'], 'description': 'Bytes or size like "10MB"'},
            'max': {'type': ['integer', 'string'], 'description': 'Bytes or size like "1.5GB"'},
        },
    },
    ParameterKind.TIME_RANGE: {
        'type': 'object',
        'properties': {
            'after': {'type': 'string', 'description': 'ISO 8601 or relative like "7 days"'},
            'before': {'type': 'string', 'description': 'ISO 8601 or relative like "1 week"'},
        },
    },
    ParameterKind.PORT_SET: {
        'type': 'array',
        'items': {
            'type': 'object',
            'properties': {
                'protocol': {'type': 'string', 'enum': ['tcp', 'udp']},
                'port': {'type': 'integer', 'description': 'Zero means any port'},
            },
        },
    },
    ParameterKind.ENUM: {'type': 'string'},
}


class ParameterSchema(BaseModel):
    """
    Declaration of a single tool parameter.

    Attributes:
        name: Parameter name as it appears in a tool call
        kind: Type the raw value is coerced to
        required: Whether the parameter must be present
        description: Human readable description shown to the model
        choices: Allowed values for enum parameters
        default: Value used when an optional parameter is omitted
    """

    model_config = {'frozen': True}

    name: str = Field(..., min_length=1, description="Parameter name")
    kind: ParameterKind = Field(..., description="Parameter kind")
    required: bool = Field(False, description="Whether the parameter is required")
    description: str = Field("", description="Parameter description")
    choices: Optional[List[str]] = Field(None, description="Allowed enum values")
    default: Optional[Any] = Field(None, description="Default for omitted parameters")

    @model_validator(mode='after')
    def validate_choices(self) -> 'ParameterSchema':
        """Enum parameters must declare their choices."""
        if self.kind == ParameterKind.ENUM and not self.choices:
            raise ValueError(f"Enum parameter {self.name!r} requires choices")
        return self

    def to_json_schema(self) -> Dict[str, Any]:
        """Describe the parameter as a JSON schema fragment."""
        schema = dict(_KIND_SCHEMAS[self.kind])
        if self.choices:
            schema['enum'] = list(self.choices)
        if self.description:
            schema['description'] = self.description
        return schema


class ToolDescriptor(BaseModel):
    """
    Static description of a searchable tool.

    Attributes:
        name: Tool name used in tool calls
        description: One-line human readable description
        parameters: Ordered parameter declarations
    """

    model_config = {'frozen': True}

    name: str = Field(..., min_length=1, description="Tool name")
    description: str = Field(..., description="Tool description")
    parameters: List[ParameterSchema] = Field(default_factory=list, description="Parameters")

    def get_parameter(self, name: str) -> Optional[ParameterSchema]:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    def required_parameters(self) -> List[str]:
        return [p.name for p in self.parameters if p.required]

    def summary(self) -> Dict[str, str]:
        """Name and description only, for narrowed prompts."""
        return {'name': self.name, 'description': self.description}

    def parameter_schema(self) -> Dict[str, Any]:
        """JSON schema of the tool parameters."""
        return {
            'type': 'object',
            'required': self.required_parameters(),
            'properties': {p.name: p.to_json_schema() for p in self.parameters},
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full descriptor, for single pass prompts."""
        data = self.summary()
        data['parameters'] = self.parameter_schema()
        return data


class FindFilesInvocation(BaseModel):
    """A validated call of the find_files tool."""

    tool_name: Literal["find_files"] = FIND_FILES
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Coerced parameters")
    criteria: FileCriteria


class FindProcessesInvocation(BaseModel):
    """A validated call of the find_processes tool."""

    tool_name: Literal["find_processes"] = FIND_PROCESSES
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Coerced parameters")
    criteria: ProcessCriteria


ToolInvocation = Union[FindFilesInvocation, FindProcessesInvocation]


class DerivationAttempt(BaseModel):
    """
    Record of one completion request made while deriving a tool call.

    Attributes:
        pass_index: 1 for the tool (or single) pass, 2 for the parameters pass
        attempt_index: 1-based attempt number within the pass
        raw_text: Completion text, None if the backend failed
        payload: Parsed payload when the attempt succeeded
        failure: Failure reason when the attempt failed
    """

    pass_index: int = Field(..., ge=1, le=2)
    attempt_index: int = Field(..., ge=1)
    raw_text: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    failure: Optional[str] = None

    @field_validator('raw_text')
    @classmethod
    def validate_raw_text(cls, v: Optional[str]) -> Optional[str]:
        """Keep diagnostics bounded."""
        if v is not None and len(v) > 4000:
            return v[:4000] + '...'
        return v

    @property
    def succeeded(self) -> bool:
        return self.failure is None

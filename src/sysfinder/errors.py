"""
Exception hierarchy for the AI System Finder.

Errors fall into three groups:

- invocation errors, raised while turning a completion into a tool call; the
  derivation engine treats them as a failed attempt and retries,
- search errors, raised by the search engines when the search cannot start,
- configuration errors, raised while loading the startup configuration.
"""

from typing import Any, List, Optional


class SysFinderError(Exception):
    """Base class for all errors raised by the AI System Finder."""
    pass


class InvocationError(SysFinderError):
    """A derived tool call could not be turned into a valid invocation."""
    pass


class UnknownTool(InvocationError):
    """The requested tool name is not part of the tool catalog."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name!r}")
        self.name = name


class MissingRequiredParameter(InvocationError):
    """A required parameter of the tool was not supplied."""

    def __init__(self, tool_name: str, parameter: str):
        super().__init__(f"Tool {tool_name!r} requires parameter {parameter!r}")
        self.tool_name = tool_name
        self.parameter = parameter


class UnknownParameter(InvocationError):
    """A parameter name is not declared by the tool descriptor."""

    def __init__(self, tool_name: str, parameter: str):
        super().__init__(f"Tool {tool_name!r} has no parameter {parameter!r}")
        self.tool_name = tool_name
        self.parameter = parameter


class ParameterTypeMismatch(InvocationError):
    """A parameter value cannot be coerced to its declared kind."""

    def __init__(self, parameter: str, reason: str, value: Any = None):
        super().__init__(f"Invalid value for {parameter!r}: {reason}")
        self.parameter = parameter
        self.reason = reason
        self.value = value


class InvalidRange(InvocationError):
    """A range criterion has a lower bound greater than its upper bound."""

    def __init__(self, field: str, minimum: Any, maximum: Any):
        super().__init__(f"Invalid range for {field!r}: min {minimum} > max {maximum}")
        self.field = field
        self.minimum = minimum
        self.maximum = maximum


class MalformedCompletionResponse(InvocationError):
    """The completion text does not contain the expected JSON payload."""
    pass


class CompletionBackendError(SysFinderError):
    """The completion backend failed (network, timeout, bad HTTP response)."""
    pass


class DerivationExhausted(SysFinderError):
    """All attempts of a derivation pass failed."""

    def __init__(self, pass_index: int, attempts: int, reason: Optional[str], history: Optional[List[Any]] = None):
        super().__init__(
            f"Failed to derive a tool call (pass {pass_index}) after {attempts} attempt(s): {reason}"
        )
        self.pass_index = pass_index
        self.attempts = attempts
        self.reason = reason
        self.history = history or []


class DerivationCancelled(SysFinderError):
    """Derivation stopped on request before a tool call was found."""

    def __init__(self, pass_index: int, attempts: int):
        super().__init__(f"Derivation cancelled (pass {pass_index}) after {attempts} attempt(s)")
        self.pass_index = pass_index
        self.attempts = attempts


class FilesystemAccessError(SysFinderError):
    """A path could not be accessed; fatal only for the search root."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot access {path}: {reason}")
        self.path = path
        self.reason = reason


class ProcessEnumerationError(SysFinderError):
    """The operating system process table could not be enumerated."""
    pass


class ConfigurationError(SysFinderError):
    """Raised when configuration parsing or validation fails."""
    pass

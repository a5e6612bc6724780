"""
Search criteria data models for the AI System Finder.

This module defines the compound filters executed by the search engines:
FileCriteria for filesystem traversal and ProcessCriteria for process
enumeration. Every field is optional; a field left unset imposes no
constraint. Ranges are checked when the model is built, so an inverted range
never reaches an engine.
"""

import fnmatch
import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Pattern

from pydantic import BaseModel, Field, PrivateAttr, field_validator, model_validator

from ..errors import InvalidRange


class EntryType(Enum):
    """Kinds of filesystem entries a file search can select."""
    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"
    ANY = "any"


class NameSyntax(Enum):
    """How a file name pattern is interpreted."""
    AUTO = "auto"
    GLOB = "glob"
    REGEX = "regex"


class Protocol(Enum):
    """Transport protocols a port criterion can name."""
    TCP = "tcp"
    UDP = "udp"


# Characters that only make sense in a regular expression.
_REGEX_ONLY = re.compile(r"[\\^$()|+{}]|\.\*|\.\+")


def looks_like_glob(pattern: str) -> bool:
    """Return True if an ``auto`` name pattern should be read as a glob."""
    if not any(c in pattern for c in "*?["):
        return False
    return _REGEX_ONLY.search(pattern) is None


def compile_name_pattern(pattern: str, syntax: NameSyntax = NameSyntax.AUTO) -> Pattern[str]:
    """
    Compile a file name pattern to a regex.

    Globs match the whole file name (``*.mkv``); regexes are searched
    anywhere in the name (``mkv$``).

    Raises:
        re.error: If the pattern is not a valid regular expression
    """
    if syntax == NameSyntax.GLOB or (syntax == NameSyntax.AUTO and looks_like_glob(pattern)):
        return re.compile(fnmatch.translate(pattern))
    return re.compile(pattern)


def _check_range(field: str, minimum: Any, maximum: Any) -> None:
    if minimum is not None and maximum is not None and minimum > maximum:
        raise InvalidRange(field, minimum, maximum)


class FileCriteria(BaseModel):
    """
    Compound filter for a filesystem search.

    Attributes:
        root_dir: Absolute directory the traversal starts at
        name_pattern: Glob or regex matched against entry names
        name_syntax: How name_pattern is interpreted
        content_pattern: Regex searched in regular file contents
        entry_type: Kind of entries to report
        size_min: Minimum size in bytes
        size_max: Maximum size in bytes
        mtime_min: Earliest modification time
        mtime_max: Latest modification time
        ctime_min: Earliest creation (or status change) time
        ctime_max: Latest creation (or status change) time
    """

    root_dir: str = Field(default_factory=lambda: str(Path.home()), description="Traversal root")
    name_pattern: Optional[str] = Field(None, description="Glob or regex for entry names")
    name_syntax: NameSyntax = Field(NameSyntax.AUTO, description="Name pattern syntax")
    content_pattern: Optional[str] = Field(None, description="Regex for file contents")
    entry_type: EntryType = Field(EntryType.ANY, description="Kind of entries to report")
    size_min: Optional[int] = Field(None, ge=0, description="Minimum size in bytes")
    size_max: Optional[int] = Field(None, ge=0, description="Maximum size in bytes")
    mtime_min: Optional[datetime] = Field(None, description="Earliest modification time")
    mtime_max: Optional[datetime] = Field(None, description="Latest modification time")
    ctime_min: Optional[datetime] = Field(None, description="Earliest creation time")
    ctime_max: Optional[datetime] = Field(None, description="Latest creation time")

    _name_regex: Optional[Pattern[str]] = PrivateAttr(None)
    _content_regex: Optional[Pattern[str]] = PrivateAttr(None)

    @field_validator('root_dir')
    @classmethod
    def validate_root_dir(cls, v: str) -> str:
        """Normalize the root directory to an absolute path."""
        if not v or not v.strip():
            raise ValueError("Root directory cannot be empty")
        return str(Path(v.strip()).expanduser().absolute())

    @field_validator('entry_type', 'name_syntax', mode='before')
    @classmethod
    def validate_enums(cls, v):
        """Accept enum values given as case-insensitive strings."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator('mtime_min', 'mtime_max', 'ctime_min', 'ctime_max')
    @classmethod
    def validate_times(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Interpret naive datetimes as local time."""
        if v is not None and v.tzinfo is None:
            return v.astimezone()
        return v

    @model_validator(mode='after')
    def validate_criteria(self) -> 'FileCriteria':
        """Compile patterns and reject inverted ranges."""
        self.check_ranges()
        if self.name_pattern is not None:
            try:
                compile_name_pattern(self.name_pattern, self.name_syntax)
            except re.error as e:
                raise ValueError(f"Invalid name pattern '{self.name_pattern}': {e}")
        if self.content_pattern is not None:
            try:
                re.compile(self.content_pattern)
            except re.error as e:
                raise ValueError(f"Invalid content pattern '{self.content_pattern}': {e}")
        return self

    def check_ranges(self) -> None:
        """
        Reject any range whose minimum exceeds its maximum.

        Raises:
            InvalidRange: If a range is inverted
        """
        _check_range('size', self.size_min, self.size_max)
        _check_range('modified', self.mtime_min, self.mtime_max)
        _check_range('created', self.ctime_min, self.ctime_max)

    @property
    def name_regex(self) -> Optional[Pattern[str]]:
        if self._name_regex is None and self.name_pattern is not None:
            self._name_regex = compile_name_pattern(self.name_pattern, self.name_syntax)
        return self._name_regex

    @property
    def content_regex(self) -> Optional[Pattern[str]]:
        if self._content_regex is None and self.content_pattern is not None:
            self._content_regex = re.compile(self.content_pattern)
        return self._content_regex

    def has_time_filters(self) -> bool:
        """Check if any modification or creation time bound is set."""
        return any(t is not None for t in (self.mtime_min, self.mtime_max, self.ctime_min, self.ctime_max))


class PortSpec(BaseModel):
    """A protocol and local port; port 0 matches any port of the protocol."""

    model_config = {'frozen': True}

    protocol: Protocol = Field(..., description="Transport protocol")
    port: int = Field(..., ge=0, le=65535, description="Local port, 0 for any")

    @field_validator('protocol', mode='before')
    @classmethod
    def validate_protocol(cls, v):
        """Accept protocol names in any case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    def matches(self, protocol: Protocol, port: int) -> bool:
        """Check if a bound (protocol, port) socket is covered by this entry."""
        return self.protocol == protocol and (self.port == 0 or self.port == port)

    def __str__(self) -> str:
        return f"{self.protocol.value}:{self.port or '*'}"


class ProcessCriteria(BaseModel):
    """
    Compound filter for a process search.

    Attributes:
        name_pattern: Regex searched in the process name
        cpu_min: Minimum CPU usage in percent over the sampling window
        cpu_max: Maximum CPU usage in percent over the sampling window
        mem_min: Minimum resident memory in bytes
        mem_max: Maximum resident memory in bytes
        disk_read_min: Minimum bytes read during the sampling window
        disk_read_max: Maximum bytes read during the sampling window
        disk_write_min: Minimum bytes written during the sampling window
        disk_write_max: Maximum bytes written during the sampling window
        ports: Local ports; a process matches if any socket matches any spec
        detailed: Whether matches carry the collected metrics
    """

    name_pattern: Optional[str] = Field(None, description="Regex for process names")
    cpu_min: Optional[float] = Field(None, ge=0, description="Minimum CPU percent")
    cpu_max: Optional[float] = Field(None, ge=0, description="Maximum CPU percent")
    mem_min: Optional[int] = Field(None, ge=0, description="Minimum resident memory")
    mem_max: Optional[int] = Field(None, ge=0, description="Maximum resident memory")
    disk_read_min: Optional[int] = Field(None, ge=0, description="Minimum bytes read")
    disk_read_max: Optional[int] = Field(None, ge=0, description="Maximum bytes read")
    disk_write_min: Optional[int] = Field(None, ge=0, description="Minimum bytes written")
    disk_write_max: Optional[int] = Field(None, ge=0, description="Maximum bytes written")
    ports: List[PortSpec] = Field(default_factory=list, description="Local ports")
    detailed: bool = Field(False, description="Include collected metrics in matches")

    _name_regex: Optional[Pattern[str]] = PrivateAttr(None)

    @model_validator(mode='after')
    def validate_criteria(self) -> 'ProcessCriteria':
        """Compile the name pattern and reject inverted ranges."""
        self.check_ranges()
        if self.name_pattern is not None:
            try:
                re.compile(self.name_pattern)
            except re.error as e:
                raise ValueError(f"Invalid name pattern '{self.name_pattern}': {e}")
        return self

    def check_ranges(self) -> None:
        """
        Reject any range whose minimum exceeds its maximum.

        Raises:
            InvalidRange: If a range is inverted
        """
        _check_range('cpu_percent', self.cpu_min, self.cpu_max)
        _check_range('memory', self.mem_min, self.mem_max)
        _check_range('disk_read', self.disk_read_min, self.disk_read_max)
        _check_range('disk_write', self.disk_write_min, self.disk_write_max)

    @property
    def name_regex(self) -> Optional[Pattern[str]]:
        if self._name_regex is None and self.name_pattern is not None:
            self._name_regex = re.compile(self.name_pattern)
        return self._name_regex

    def needs_cpu(self) -> bool:
        return self.cpu_min is not None or self.cpu_max is not None

    def needs_memory(self) -> bool:
        return self.mem_min is not None or self.mem_max is not None

    def needs_disk(self) -> bool:
        return any(v is not None for v in (
            self.disk_read_min, self.disk_read_max, self.disk_write_min, self.disk_write_max
        ))

    def needs_sampling(self) -> bool:
        """Check if matching requires waiting for a sampling window."""
        return self.detailed or self.needs_cpu() or self.needs_disk()

    def needs_ports(self) -> bool:
        return self.detailed or bool(self.ports)

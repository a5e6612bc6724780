"""
Search result data models for the AI System Finder.

Each search engine yields one model per match. ``to_record()`` gives the
JSON-ready mapping written by the output emitter.
"""

from typing import Any, Dict, List, Optional
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class FileMatch(BaseModel):
    """
    A filesystem entry that satisfied every specified file criterion.

    Attributes:
        path: Absolute path of the matching entry
    """

    path: str = Field(..., description="Absolute path of the matching entry")

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate that the path is absolute."""
        if not v or not v.strip():
            raise ValueError("File path cannot be empty")
        if not Path(v).is_absolute():
            raise ValueError(f"File path must be absolute: {v}")
        return v

    def get_filename(self) -> str:
        """Get the filename without directory path."""
        return Path(self.path).name

    def to_record(self) -> Dict[str, Any]:
        return {'path': self.path}

    def __str__(self) -> str:
        return self.path


class ProcessDetails(BaseModel):
    """
    Metrics collected for a process during the sampling window.

    Attributes:
        cmdline: Command line arguments
        exe: Executable path, when readable
        cpu_percent: CPU usage over the sampling window
        memory: Resident set size in bytes
        disk_read: Bytes read during the sampling window
        disk_write: Bytes written during the sampling window
        tcp_ports: Local TCP ports
        udp_ports: Local UDP ports
    """

    cmdline: List[str] = Field(default_factory=list, description="Command line arguments")
    exe: Optional[str] = Field(None, description="Executable path")
    cpu_percent: Optional[float] = Field(None, description="CPU usage in percent")
    memory: Optional[int] = Field(None, description="Resident memory in bytes")
    disk_read: Optional[int] = Field(None, description="Bytes read during the window")
    disk_write: Optional[int] = Field(None, description="Bytes written during the window")
    tcp_ports: List[int] = Field(default_factory=list, description="Local TCP ports")
    udp_ports: List[int] = Field(default_factory=list, description="Local UDP ports")


class ProcessMatch(BaseModel):
    """
    A running process that satisfied every specified process criterion.

    Attributes:
        name: Process name
        pid: Process identifier
        details: Collected metrics, only set for detailed output
    """

    name: str = Field(..., description="Process name")
    pid: int = Field(..., ge=0, description="Process identifier")
    details: Optional[ProcessDetails] = Field(None, description="Collected metrics")

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {'name': self.name, 'pid': self.pid}
        if self.details is not None:
            record.update(self.details.model_dump())
        return record

    def __str__(self) -> str:
        return f"{self.name} ({self.pid})"

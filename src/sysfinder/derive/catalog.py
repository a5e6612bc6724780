"""
Tool catalog for the AI System Finder.

The catalog is a fixed, read-only registry of the two search tools. It is
used both to ground prompts and to validate derived tool calls.
"""

from typing import Dict, Iterator, List, Optional

from ..errors import UnknownTool
from ..models.tools import (
    FIND_FILES,
    FIND_PROCESSES,
    ParameterKind,
    ParameterSchema,
    ToolDescriptor,
)


FIND_FILES_DESCRIPTOR = ToolDescriptor(
    name=FIND_FILES,
    description="Find files, directories and symlinks on the local file system.",
    parameters=[
        ParameterSchema(
            name="root_dir", kind=ParameterKind.PATH, required=True,
            description="Directory to search in; an absolute path or a location name from the context",
        ),
        ParameterSchema(
            name="name_pattern", kind=ParameterKind.STRING,
            description="Glob like *.mkv or regex matched against entry names",
        ),
        ParameterSchema(
            name="name_syntax", kind=ParameterKind.ENUM, choices=["auto", "glob", "regex"], default="auto",
            description="How name_pattern is read; auto treats patterns with only * ? [ as globs",
        ),
        ParameterSchema(
            name="content_pattern", kind=ParameterKind.REGEX,
            description="Regex searched in the contents of regular files",
        ),
        ParameterSchema(
            name="entry_type", kind=ParameterKind.ENUM, choices=["file", "dir", "symlink", "any"], default="any",
            description="Kind of entries to return",
        ),
        ParameterSchema(name="size", kind=ParameterKind.SIZE_RANGE, description="Size bounds"),
        ParameterSchema(name="modified", kind=ParameterKind.TIME_RANGE, description="Modification time bounds"),
        ParameterSchema(name="created", kind=ParameterKind.TIME_RANGE, description="Creation time bounds"),
    ],
)

FIND_PROCESSES_DESCRIPTOR = ToolDescriptor(
    name=FIND_PROCESSES,
    description="Find processes currently running on the system.",
    parameters=[
        ParameterSchema(
            name="name_pattern", kind=ParameterKind.REGEX,
            description="Regex searched in process names",
        ),
        ParameterSchema(name="cpu_percent", kind=ParameterKind.INT_RANGE, description="CPU usage bounds in percent"),
        ParameterSchema(name="memory", kind=ParameterKind.SIZE_RANGE, description="Resident memory bounds"),
        ParameterSchema(name="disk_read", kind=ParameterKind.SIZE_RANGE, description="Bytes read from disk"),
        ParameterSchema(name="disk_write", kind=ParameterKind.SIZE_RANGE, description="Bytes written to disk"),
        ParameterSchema(name="ports", kind=ParameterKind.PORT_SET, description="Local ports the process is bound to"),
        ParameterSchema(
            name="output", kind=ParameterKind.ENUM, choices=["brief", "detailed"], default="brief",
            description="Detailed output adds command line, CPU, memory, disk and ports",
        ),
    ],
)


class ToolCatalog:
    """Read-only registry of tool descriptors, keyed by tool name."""

    def __init__(self, descriptors: Optional[List[ToolDescriptor]] = None):
        if descriptors is None:
            descriptors = [FIND_FILES_DESCRIPTOR, FIND_PROCESSES_DESCRIPTOR]
        self._tools: Dict[str, ToolDescriptor] = {d.name: d for d in descriptors}

    def lookup(self, name: str) -> ToolDescriptor:
        """
        Get the descriptor of a tool.

        Raises:
            UnknownTool: If no tool has this name
        """
        try:
            return self._tools[name]
        except (KeyError, TypeError):
            raise UnknownTool(name) from None

    def names(self) -> List[str]:
        return list(self._tools)

    def descriptors(self) -> List[ToolDescriptor]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._tools

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


DEFAULT_CATALOG = ToolCatalog()

"""
Validation of derived tool calls.

Turns the raw ``{tool, parameters}`` payload produced by the language model
into a typed ToolInvocation: the tool must exist in the catalog, every
required parameter must be present, no undeclared parameter may appear and
every value must coerce to its declared kind.
"""

import logging
import math
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..errors import (
    InvalidRange,
    MissingRequiredParameter,
    ParameterTypeMismatch,
    UnknownParameter,
)
from ..models.criteria import FileCriteria, NameSyntax, PortSpec, ProcessCriteria, Protocol, compile_name_pattern
from ..models.tools import (
    FIND_FILES,
    FIND_PROCESSES,
    FindFilesInvocation,
    FindProcessesInvocation,
    ParameterKind,
    ParameterSchema,
    ToolDescriptor,
    ToolInvocation,
)
from .catalog import DEFAULT_CATALOG, ToolCatalog


logger = logging.getLogger(__name__)

PathResolver = Callable[[str], str]

_SIZE_UNITS = {
    '': 1,
    'b': 1,
    'k': 1000, 'kb': 1000, 'kib': 1024,
    'm': 1000 ** 2, 'mb': 1000 ** 2, 'mib': 1024 ** 2,
    'g': 1000 ** 3, 'gb': 1000 ** 3, 'gib': 1024 ** 3,
    't': 1000 ** 4, 'tb': 1000 ** 4, 'tib': 1024 ** 4,
}

_SIZE_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$')

_RELATIVE_UNITS = {
    'minute': timedelta(minutes=1),
    'hour': timedelta(hours=1),
    'day': timedelta(days=1),
    'week': timedelta(weeks=1),
    'month': timedelta(days=30),
    'year': timedelta(days=365),
}

_RELATIVE_RE = re.compile(r'^(\d+)\s*(minute|hour|day|week|month|year)s?(\s+ago)?$')

_DATE_FORMATS = [
    '%Y-%m-%d',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%Y/%m/%d',
]

_LOWER_KEYS = ('min', 'minimum', 'from', 'after', 'gte')
_UPPER_KEYS = ('max', 'maximum', 'to', 'before', 'lte')


def parse_size(parameter: str, value: Any) -> int:
    """
    Parse a size given in bytes or with a unit suffix (``10MB``, ``1.5GiB``).

    Raises:
        ParameterTypeMismatch: If the value is not a size
    """
    if isinstance(value, bool):
        raise ParameterTypeMismatch(parameter, "size must be a number of bytes", value)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ParameterTypeMismatch(parameter, "size must be finite", value)
        if value < 0:
            raise ParameterTypeMismatch(parameter, "size cannot be negative", value)
        return int(value)
    if isinstance(value, str):
        match = _SIZE_RE.match(value)
        if match:
            unit = match.group(2).lower()
            size = float(match.group(1)) * _SIZE_UNITS.get(unit, math.nan)
            if math.isfinite(size):
                return int(size)
    raise ParameterTypeMismatch(parameter, f"not a size: {value!r}", value)


def parse_number(parameter: str, value: Any) -> float:
    """
    Parse a plain number, allowing numeric strings and a trailing percent sign.

    Raises:
        ParameterTypeMismatch: If the value is not numeric
    """
    if isinstance(value, bool):
        raise ParameterTypeMismatch(parameter, "expected a number", value)
    if isinstance(value, (int, float, str)):
        try:
            number = float(value.strip().rstrip('%') if isinstance(value, str) else value)
        except (ValueError, OverflowError):
            raise ParameterTypeMismatch(parameter, f"not a number: {value!r}", value)
    else:
        raise ParameterTypeMismatch(parameter, f"not a number: {value!r}", value)
    if not math.isfinite(number):
        raise ParameterTypeMismatch(parameter, "number must be finite", value)
    return number


def parse_time(parameter: str, value: Any, now: Optional[datetime] = None) -> datetime:
    """
    Parse an instant given as ISO 8601, a date, a relative phrase or an epoch.

    Relative phrases (``7 days``, ``2 weeks ago``, ``today``, ``yesterday``)
    are measured back from now. Naive values are read as local time.

    Raises:
        ParameterTypeMismatch: If the value is not an instant
    """
    now = now or datetime.now().astimezone()
    if isinstance(value, bool):
        raise ParameterTypeMismatch(parameter, "expected a time", value)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value).astimezone()
        except (ValueError, OSError, OverflowError):
            raise ParameterTypeMismatch(parameter, f"timestamp out of range: {value}", value)
    if not isinstance(value, str):
        raise ParameterTypeMismatch(parameter, f"not a time: {value!r}", value)

    text = value.strip().lower()
    if text == 'now':
        return now
    if text == 'today':
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if text == 'yesterday':
        return now.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=1)

    match = _RELATIVE_RE.match(text)
    if match:
        return now - int(match.group(1)) * _RELATIVE_UNITS[match.group(2)]

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(value.strip(), fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        raise ParameterTypeMismatch(parameter, f"not a time: {value!r}", value)
    return parsed if parsed.tzinfo else parsed.astimezone()


def _split_range(parameter: str, value: Any) -> Tuple[Any, Any]:
    """Read ``{min, max}`` style mappings or ``[min, max]`` pairs."""
    if isinstance(value, dict):
        unknown = [k for k in value if k not in _LOWER_KEYS + _UPPER_KEYS]
        if unknown:
            raise ParameterTypeMismatch(parameter, f"unknown range bound(s): {', '.join(map(str, unknown))}", value)
        lower = next((value[k] for k in _LOWER_KEYS if value.get(k) is not None), None)
        upper = next((value[k] for k in _UPPER_KEYS if value.get(k) is not None), None)
        return lower, upper
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return value[0], value[1]
    raise ParameterTypeMismatch(parameter, "expected an object with min and/or max", value)


def _coerce_range(parameter: str, value: Any, parse: Callable[[str, Any], Any]) -> Tuple[Any, Any]:
    lower, upper = _split_range(parameter, value)
    lower = parse(parameter, lower) if lower is not None else None
    upper = parse(parameter, upper) if upper is not None else None
    if lower is None and upper is None:
        raise ParameterTypeMismatch(parameter, "range has neither min nor max", value)
    if lower is not None and upper is not None and lower > upper:
        raise InvalidRange(parameter, lower, upper)
    return lower, upper


def _parse_port_item(parameter: str, item: Any) -> List[PortSpec]:
    if isinstance(item, bool):
        raise ParameterTypeMismatch(parameter, "expected a port", item)
    if isinstance(item, int):
        return [PortSpec(protocol=Protocol.TCP, port=item), PortSpec(protocol=Protocol.UDP, port=item)]
    if isinstance(item, str):
        match = re.match(r'^\s*(?:(tcp|udp)\s*[:/ ]\s*)?(\d+)(?:\s*/\s*(tcp|udp))?\s*$', item.lower())
        if not match:
            raise ParameterTypeMismatch(parameter, f"not a port: {item!r}", item)
        protocol = match.group(1) or match.group(3)
        port = int(match.group(2))
        if protocol is None:
            return _parse_port_item(parameter, port)
        return [PortSpec(protocol=protocol, port=port)]
    if isinstance(item, dict):
        if item.get('protocol') is None:
            return _parse_port_item(parameter, item.get('port'))
        return [PortSpec(protocol=item.get('protocol'), port=item.get('port'))]
    raise ParameterTypeMismatch(parameter, f"not a port: {item!r}", item)


def coerce_value(schema: ParameterSchema, value: Any, resolve_path: Optional[PathResolver] = None) -> Any:
    """
    Coerce a raw parameter value to the kind declared by its schema.

    Args:
        schema: Parameter declaration
        value: Raw JSON value from the completion
        resolve_path: Maps location names and relative paths to absolute paths

    Returns:
        The typed value

    Raises:
        ParameterTypeMismatch: If the value has the wrong shape or content
        InvalidRange: If a range lower bound exceeds its upper bound
    """
    name = schema.name
    kind = schema.kind

    if kind in (ParameterKind.STRING, ParameterKind.REGEX, ParameterKind.PATH, ParameterKind.ENUM):
        if not isinstance(value, str):
            raise ParameterTypeMismatch(name, f"expected a string, got {type(value).__name__}", value)
        value = value.strip()

    if kind == ParameterKind.STRING:
        return value

    if kind == ParameterKind.REGEX:
        try:
            re.compile(value)
        except re.error as e:
            raise ParameterTypeMismatch(name, f"invalid regex: {e}", value)
        return value

    if kind == ParameterKind.PATH:
        return resolve_path(value) if resolve_path else value

    if kind == ParameterKind.ENUM:
        choice = value.lower()
        if choice not in schema.choices:
            raise ParameterTypeMismatch(name, f"expected one of {', '.join(schema.choices)}", value)
        return choice

    if kind == ParameterKind.INT_RANGE:
        return _coerce_range(name, value, parse_number)

    if kind == ParameterKind.SIZE_RANGE:
        return _coerce_range(name, value, parse_size)

    if kind == ParameterKind.TIME_RANGE:
        return _coerce_range(name, value, parse_time)

    if kind == ParameterKind.PORT_SET:
        items = value if isinstance(value, list) else [value]
        ports: List[PortSpec] = []
        try:
            for item in items:
                for spec in _parse_port_item(name, item):
                    if spec not in ports:
                        ports.append(spec)
        except ValidationError as e:
            raise ParameterTypeMismatch(name, _first_error(e), value)
        if not ports:
            raise ParameterTypeMismatch(name, "port set is empty", value)
        return ports

    raise ParameterTypeMismatch(name, f"unsupported parameter kind {kind}", value)


def coerce_parameters(
    descriptor: ToolDescriptor,
    raw: Dict[str, Any],
    resolve_path: Optional[PathResolver] = None,
) -> Dict[str, Any]:
    """
    Check and coerce every parameter of a tool call.

    Optional parameters given as null or an empty string count as omitted,
    and omitted parameters with a declared default take that default.

    Raises:
        UnknownParameter: If a name is not declared by the tool
        MissingRequiredParameter: If a required parameter is absent
        ParameterTypeMismatch: If a value cannot be coerced
        InvalidRange: If a range is inverted
    """
    if not isinstance(raw, dict):
        raise ParameterTypeMismatch('parameters', "expected an object", raw)

    for name in raw:
        if descriptor.get_parameter(name) is None:
            raise UnknownParameter(descriptor.name, name)

    coerced: Dict[str, Any] = {}
    for schema in descriptor.parameters:
        value = raw.get(schema.name)
        if value is None or (isinstance(value, str) and not value.strip()):
            if schema.required:
                raise MissingRequiredParameter(descriptor.name, schema.name)
            if schema.default is not None:
                coerced[schema.name] = schema.default
            continue
        coerced[schema.name] = coerce_value(schema, value, resolve_path)
    return coerced


def _bounds(parameters: Dict[str, Any], name: str) -> Tuple[Any, Any]:
    return parameters.get(name) or (None, None)


def build_invocation(tool_name: str, parameters: Dict[str, Any]) -> ToolInvocation:
    """
    Build the typed invocation for coerced parameters.

    Raises:
        ParameterTypeMismatch: If the criteria model rejects a value
        InvalidRange: If a range is inverted
    """
    try:
        if tool_name == FIND_FILES:
            size_min, size_max = _bounds(parameters, 'size')
            mtime_min, mtime_max = _bounds(parameters, 'modified')
            ctime_min, ctime_max = _bounds(parameters, 'created')
            criteria = FileCriteria(
                root_dir=parameters['root_dir'],
                name_pattern=parameters.get('name_pattern'),
                name_syntax=parameters.get('name_syntax', 'auto'),
                content_pattern=parameters.get('content_pattern'),
                entry_type=parameters.get('entry_type', 'any'),
                size_min=size_min, size_max=size_max,
                mtime_min=mtime_min, mtime_max=mtime_max,
                ctime_min=ctime_min, ctime_max=ctime_max,
            )
            return FindFilesInvocation(parameters=parameters, criteria=criteria)

        if tool_name == FIND_PROCESSES:
            cpu_min, cpu_max = _bounds(parameters, 'cpu_percent')
            mem_min, mem_max = _bounds(parameters, 'memory')
            read_min, read_max = _bounds(parameters, 'disk_read')
            write_min, write_max = _bounds(parameters, 'disk_write')
            criteria = ProcessCriteria(
                name_pattern=parameters.get('name_pattern'),
                cpu_min=cpu_min, cpu_max=cpu_max,
                mem_min=mem_min, mem_max=mem_max,
                disk_read_min=read_min, disk_read_max=read_max,
                disk_write_min=write_min, disk_write_max=write_max,
                ports=parameters.get('ports', []),
                detailed=parameters.get('output') == 'detailed',
            )
            return FindProcessesInvocation(parameters=parameters, criteria=criteria)
    except ValidationError as e:
        raise ParameterTypeMismatch(tool_name, _first_error(e))

    raise ParameterTypeMismatch('tool', f"no criteria mapping for {tool_name!r}")


def validate_call(
    tool_name: Any,
    raw_parameters: Any,
    catalog: ToolCatalog = DEFAULT_CATALOG,
    resolve_path: Optional[PathResolver] = None,
) -> ToolInvocation:
    """
    Validate a raw tool call against the catalog and build its invocation.

    Raises:
        UnknownTool: If the tool is not in the catalog
        InvocationError: Any other reason the call is invalid
    """
    descriptor = catalog.lookup(tool_name)
    if raw_parameters is None:
        raw_parameters = {}
    parameters = coerce_parameters(descriptor, raw_parameters, resolve_path)
    if 'name_pattern' in parameters and descriptor.name == FIND_FILES:
        try:
            compile_name_pattern(parameters['name_pattern'], NameSyntax(parameters.get('name_syntax', 'auto')))
        except re.error as e:
            raise ParameterTypeMismatch('name_pattern', f"invalid pattern: {e}", parameters['name_pattern'])
    invocation = build_invocation(descriptor.name, parameters)
    logger.debug(f"Validated call {descriptor.name}({parameters})")
    return invocation


def _first_error(error: ValidationError) -> str:
    errors = error.errors()
    if not errors:
        return str(error)
    first = errors[0]
    location = '.'.join(str(part) for part in first.get('loc', ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get('msg'))

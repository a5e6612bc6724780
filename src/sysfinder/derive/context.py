"""
Prompt context construction for the AI System Finder.

The context is a JSON document injected into the prompt template. It tells
the language model what tools exist, what their parameters look like, where
the user's well-known directories are and what reply shape is expected.

Location aliases are a fixed table of informal names ("desktop",
"downloads", ...) resolved against the platform's standard user directories:
the freedesktop ``user-dirs.dirs`` file on Linux and the conventional
``~/<Name>`` folders elsewhere.
"""

import getpass
import json
import locale
import logging
import os
import platform
import re
import shlex
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .catalog import DEFAULT_CATALOG, ToolCatalog


logger = logging.getLogger(__name__)

# alias -> (XDG user-dirs key, conventional folder name)
LOCATION_ALIASES = {
    'desktop': ('XDG_DESKTOP_DIR', 'Desktop'),
    'documents': ('XDG_DOCUMENTS_DIR', 'Documents'),
    'downloads': ('XDG_DOWNLOAD_DIR', 'Downloads'),
    'music': ('XDG_MUSIC_DIR', 'Music'),
    'pictures': ('XDG_PICTURES_DIR', 'Pictures'),
    'videos': ('XDG_VIDEOS_DIR', 'Videos'),
    'public': ('XDG_PUBLICSHARE_DIR', 'Public'),
    'templates': ('XDG_TEMPLATES_DIR', 'Templates'),
}

# Singular spellings the model tends to use
_ALIAS_SYNONYMS = {
    'home': 'home',
    '~': 'home',
    'desktop': 'desktop',
    'document': 'documents',
    'documents': 'documents',
    'download': 'downloads',
    'downloads': 'downloads',
    'music': 'music',
    'picture': 'pictures',
    'pictures': 'pictures',
    'photos': 'pictures',
    'video': 'videos',
    'videos': 'videos',
    'movies': 'videos',
    'public': 'public',
    'templates': 'templates',
}

_USER_DIRS_LINE = re.compile(r'^\s*(XDG_[A-Z]+_DIR)\s*=\s*(.+?)\s*$')

TOOL_REPLY_FORMAT = (
    'Reply with only a JSON object of the form '
    '{"tool": "<tool name>", "parameters": {"<parameter name>": <value>}}. '
    'Omit parameters the query does not constrain.'
)
TOOL_NAME_REPLY_FORMAT = 'Reply with only a JSON object of the form {"tool": "<tool name>"}.'
PARAMETERS_REPLY_FORMAT = (
    'Reply with only a JSON object of the form '
    '{"parameters": {"<parameter name>": <value>}}. '
    'Omit parameters the query does not constrain.'
)


class LocationAliases:
    """
    Fixed table of location names resolved to the user's directories.

    Args:
        home: Home directory, defaults to the current user's
        system: Platform name as returned by platform.system()
        config_home: Directory holding user-dirs.dirs on Linux
    """

    def __init__(self, home: Optional[Path] = None, system: Optional[str] = None, config_home: Optional[Path] = None):
        self.home = Path(home) if home else Path.home()
        self.system = system or platform.system()
        if config_home is None:
            config_home = Path(os.environ.get('XDG_CONFIG_HOME') or self.home / '.config')
        self.config_home = Path(config_home)
        self._table = self._build_table()

    def _read_user_dirs(self) -> Dict[str, str]:
        user_dirs = self.config_home / 'user-dirs.dirs'
        entries: Dict[str, str] = {}
        try:
            with open(user_dirs, 'r', encoding='utf-8') as f:
                lines = f.readlines()
        except OSError:
            return entries

        for line in lines:
            match = _USER_DIRS_LINE.match(line)
            if not match:
                continue
            try:
                value = shlex.split(match.group(2))[0]
            except (ValueError, IndexError):
                logger.debug(f"Ignoring malformed user-dirs line: {line.strip()}")
                continue
            value = value.replace('${HOME}', str(self.home)).replace('$HOME', str(self.home))
            entries[match.group(1)] = value
        return entries

    def _build_table(self) -> Dict[str, Path]:
        table = {'home': self.home}
        user_dirs = self._read_user_dirs() if self.system == 'Linux' else {}
        for alias, (xdg_key, folder) in LOCATION_ALIASES.items():
            if alias == 'videos' and self.system == 'Darwin':
                folder = 'Movies'
            path = user_dirs.get(xdg_key)
            table[alias] = Path(path) if path else self.home / folder
        return table

    def get(self, alias: str) -> Optional[Path]:
        """Get the directory of an alias or one of its synonyms."""
        canonical = _ALIAS_SYNONYMS.get(alias.strip().lower())
        return self._table.get(canonical) if canonical else None

    def existing(self) -> Dict[str, str]:
        """Aliases whose directory exists, as shown to the model."""
        return {alias: str(path) for alias, path in self._table.items() if path.is_dir()}

    def resolve_path(self, value: str, cwd: Optional[Path] = None) -> str:
        """
        Resolve a path parameter to an absolute path.

        Location names are substituted for their directory, also as the
        first component of a longer path ("desktop/videos"). Environment
        variables and ``~`` are expanded; remaining relative paths are taken
        relative to the working directory.
        """
        value = value.strip()
        expanded = os.path.expandvars(value)
        if expanded == "~" or expanded.startswith("~/"):
            expanded = str(self.home) + expanded[1:]
        else:
            expanded = os.path.expanduser(expanded)

        path = Path(expanded)
        if not path.is_absolute():
            parts = path.parts
            alias_dir = self.get(parts[0]) if parts else None
            if alias_dir is not None:
                path = alias_dir.joinpath(*parts[1:])
            else:
                path = (cwd or Path.cwd()) / path
        return os.path.normpath(str(path))


class QueryContextBuilder:
    """
    Builds the JSON context strings injected into the prompt template.

    Environment facts (OS, locale, user, time, working directory and the
    location table) are captured once when the builder is created.
    """

    def __init__(
        self,
        catalog: ToolCatalog = DEFAULT_CATALOG,
        aliases: Optional[LocationAliases] = None,
        now: Optional[datetime] = None,
        cwd: Optional[Path] = None,
    ):
        self.catalog = catalog
        self.aliases = aliases or LocationAliases()
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self._environment = {
            'os_name': _os_name(),
            'system_locale': _system_locale(),
            'time_now': (now or datetime.now().astimezone()).isoformat(timespec='seconds'),
            'username': _username(),
            'current_directory': str(self.cwd),
        }

    def resolve_path(self, value: str) -> str:
        return self.aliases.resolve_path(value, cwd=self.cwd)

    def full_context(self) -> str:
        """Single pass context: every tool with its full parameter schema."""
        return self._render({
            'locations': self.aliases.existing(),
            'tools': [d.to_dict() for d in self.catalog],
            'reply_format': TOOL_REPLY_FORMAT,
        })

    def tool_selection_context(self) -> str:
        """First pass of double pass mode: tool names and descriptions only."""
        return self._render({
            'tools': [d.summary() for d in self.catalog],
            'reply_format': TOOL_NAME_REPLY_FORMAT,
        })

    def parameters_context(self, tool_name: str) -> str:
        """
        Second pass of double pass mode: the chosen tool's schema only.

        Raises:
            UnknownTool: If the tool is not in the catalog
        """
        descriptor = self.catalog.lookup(tool_name)
        return self._render({
            'locations': self.aliases.existing(),
            'tool': descriptor.to_dict(),
            'reply_format': PARAMETERS_REPLY_FORMAT,
        })

    def _render(self, sections: Dict[str, Any]) -> str:
        document = dict(self._environment)
        document.update(sections)
        return json.dumps(document, ensure_ascii=False)


def render_prompt(template: str, context: str, query: str, feedback: Optional[str] = None) -> str:
    """
    Fill the prompt template.

    The template must contain ``{context}`` and ``{query}``; a ``{feedback}``
    placeholder, when present, receives the failure of the previous attempt.
    Other braces are left untouched, so templates may contain literal JSON.
    """
    values = {
        '{context}': context,
        '{query}': query,
        '{feedback}': feedback or '',
    }
    pattern = re.compile('|'.join(re.escape(k) for k in values))
    return pattern.sub(lambda m: values[m.group(0)], template)


def _os_name() -> str:
    system = platform.system()
    return {'Darwin': 'macos'}.get(system, system.lower() or 'unknown')


def _system_locale() -> str:
    try:
        language = locale.getlocale()[0]
    except ValueError:
        language = None
    return language.replace('_', '-') if language else 'en-US'


def _username() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return 'unknown'

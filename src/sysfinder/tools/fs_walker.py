"""
Filesystem walker for the AI System Finder.

This module traverses a directory tree and yields the entries matching a
FileCriteria. Every specified criterion must hold for an entry to match;
unset criteria impose no constraint. Traversal is lazy and best-effort:
entries that cannot be read are logged and skipped, only an unreadable root
fails the search.
"""

import os
import stat
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple
import logging

from ..errors import FilesystemAccessError
from ..models.criteria import EntryType, FileCriteria
from ..models.search_results import FileMatch


logger = logging.getLogger(__name__)

# Longest line read at once while searching file contents
MAX_LINE_CHARS = 64 * 1024


class FileSearchEngine:
    """
    Filesystem walker that traverses directories and matches entries.

    This class provides lazy depth-first traversal with support for:
    - Glob or regex matching of entry names
    - Entry type, size and time filtering from filesystem metadata
    - Regex matching of regular file contents, stopping at the first match
    - Cooperative cancellation between entries
    """

    def __init__(self):
        self._stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            'entries_scanned': 0,
            'entries_matched': 0,
            'directories_traversed': 0,
            'files_read': 0,
            'errors': 0
        }

    def search(self, criteria: FileCriteria, cancel: Optional[threading.Event] = None) -> Iterator[FileMatch]:
        """
        Start a search and return the lazy sequence of matches.

        Criteria are checked and the root is opened before this method
        returns, so invalid ranges and an inaccessible root fail immediately
        rather than on first iteration.

        Args:
            criteria: Compound filter to apply
            cancel: Event that stops the traversal when set

        Returns:
            Iterator of FileMatch objects, in traversal order

        Raises:
            InvalidRange: If a range criterion is inverted
            FilesystemAccessError: If the root cannot be read as a directory
        """
        criteria.check_ranges()
        root_path = Path(criteria.root_dir)

        try:
            root_stat = root_path.stat()
        except OSError as e:
            raise FilesystemAccessError(str(root_path), e.strerror or str(e)) from e
        if not stat.S_ISDIR(root_stat.st_mode):
            raise FilesystemAccessError(str(root_path), "not a directory")
        try:
            entries = os.scandir(root_path)
        except OSError as e:
            raise FilesystemAccessError(str(root_path), e.strerror or str(e)) from e

        logger.info(f"Walking directory tree: {root_path}")
        return self._walk(entries, root_stat, criteria, cancel)

    def _walk(
        self,
        root_entries,
        root_stat: os.stat_result,
        criteria: FileCriteria,
        cancel: Optional[threading.Event],
    ) -> Iterator[FileMatch]:
        """
        Depth-first traversal over a stack of open directory iterators.

        Symlinked directories are descended only when symlinks are selected;
        the visited set of (device, inode) pairs keeps that from looping.
        """
        follow_links = criteria.entry_type == EntryType.SYMLINK
        visited: Set[Tuple[int, int]] = {(root_stat.st_dev, root_stat.st_ino)}
        stack: List = [root_entries]
        self._stats['directories_traversed'] += 1

        try:
            while stack:
                if cancel is not None and cancel.is_set():
                    logger.info("File search cancelled")
                    return

                try:
                    entry = next(stack[-1])
                except StopIteration:
                    stack.pop().close()
                    continue
                except OSError as e:
                    logger.warning(f"Error reading directory entry: {e}")
                    self._stats['errors'] += 1
                    stack.pop().close()
                    continue

                self._stats['entries_scanned'] += 1
                try:
                    entry_stat = entry.stat(follow_symlinks=False)
                except OSError as e:
                    logger.debug(f"Skipping {entry.path}: {e}")
                    self._stats['errors'] += 1
                    continue

                is_link = stat.S_ISLNK(entry_stat.st_mode)
                child = self._open_child(entry, entry_stat, is_link, follow_links, visited)
                if child is not None:
                    stack.append(child)

                if self._matches(entry, entry_stat, is_link, criteria):
                    self._stats['entries_matched'] += 1
                    yield FileMatch(path=os.path.abspath(entry.path))
        finally:
            for entries in stack:
                entries.close()

    def _open_child(self, entry: os.DirEntry, entry_stat: os.stat_result, is_link: bool,
                    follow_links: bool, visited: Set[Tuple[int, int]]):
        """Open a subdirectory for descent, or return None."""
        if is_link:
            if not follow_links:
                return None
            try:
                target_stat = os.stat(entry.path)
            except OSError as e:
                logger.debug(f"Dangling or unreadable symlink {entry.path}: {e}")
                return None
            if not stat.S_ISDIR(target_stat.st_mode):
                return None
            key = (target_stat.st_dev, target_stat.st_ino)
        elif stat.S_ISDIR(entry_stat.st_mode):
            key = (entry_stat.st_dev, entry_stat.st_ino)
        else:
            return None

        if key in visited:
            logger.debug(f"Not revisiting {entry.path}")
            return None
        visited.add(key)

        try:
            child = os.scandir(entry.path)
        except OSError as e:
            logger.warning(f"Error reading directory {entry.path}: {e}")
            self._stats['errors'] += 1
            return None
        self._stats['directories_traversed'] += 1
        return child

    def _matches(self, entry: os.DirEntry, entry_stat: os.stat_result, is_link: bool, criteria: FileCriteria) -> bool:
        """
        Check an entry against every specified criterion.

        Cheap metadata checks run first; file contents are read last and
        only for regular files.
        """
        is_dir = stat.S_ISDIR(entry_stat.st_mode)
        is_file = stat.S_ISREG(entry_stat.st_mode)

        if criteria.entry_type == EntryType.FILE and not is_file:
            return False
        if criteria.entry_type == EntryType.DIR and not is_dir:
            return False
        if criteria.entry_type == EntryType.SYMLINK and not is_link:
            return False

        name_regex = criteria.name_regex
        if name_regex is not None and not name_regex.search(entry.name):
            return False

        if criteria.size_min is not None and entry_stat.st_size < criteria.size_min:
            return False
        if criteria.size_max is not None and entry_stat.st_size > criteria.size_max:
            return False

        if criteria.has_time_filters():
            modified_time = datetime.fromtimestamp(entry_stat.st_mtime).astimezone()
            if criteria.mtime_min is not None and modified_time < criteria.mtime_min:
                return False
            if criteria.mtime_max is not None and modified_time > criteria.mtime_max:
                return False

            created_time = datetime.fromtimestamp(_created_timestamp(entry_stat)).astimezone()
            if criteria.ctime_min is not None and created_time < criteria.ctime_min:
                return False
            if criteria.ctime_max is not None and created_time > criteria.ctime_max:
                return False

        if criteria.content_regex is not None:
            if not is_file:
                return False
            return self._content_matches(entry.path, criteria)

        return True

    def _content_matches(self, path: str, criteria: FileCriteria) -> bool:
        """
        Search a file line by line, stopping at the first match.

        Undecodable bytes are replaced rather than failing the read, so
        binary files are searched as well.
        """
        regex = criteria.content_regex
        self._stats['files_read'] += 1
        try:
            with open(path, 'r', encoding='utf-8', errors='replace') as f:
                while True:
                    line = f.readline(MAX_LINE_CHARS)
                    if not line:
                        return False
                    if regex.search(line):
                        return True
        except OSError as e:
            logger.debug(f"Cannot read {path}: {e}")
            self._stats['errors'] += 1
            return False

    def get_stats(self) -> Dict[str, int]:
        """
        Get statistics about the filesystem walking operation.

        Returns:
            Dictionary containing operation statistics
        """
        return self._stats.copy()

    def reset_stats(self) -> None:
        """Reset the statistics counters."""
        self._stats = self._empty_stats()


def _created_timestamp(entry_stat: os.stat_result) -> float:
    """Creation time where the platform records it, status change time otherwise."""
    birthtime = getattr(entry_stat, 'st_birthtime', None)
    if birthtime:
        return birthtime
    return entry_stat.st_ctime

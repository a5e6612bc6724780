"""
JSON lines emitter for search results.

Every match is written as one JSON object on its own line and flushed
immediately, so results appear while the search is still running and the
result set is never held in memory.
"""

import json
import logging
import sys
import threading
from typing import Iterable, Optional, TextIO, Union

from ..models.search_results import FileMatch, ProcessMatch


logger = logging.getLogger(__name__)


def emit(
    matches: Iterable[Union[FileMatch, ProcessMatch]],
    stream: Optional[TextIO] = None,
    cancel: Optional[threading.Event] = None,
) -> int:
    """
    Write matches to a stream as JSON lines.

    Each record is serialized completely before it is written, so a
    cancelled run never leaves a partial line behind.

    Args:
        matches: Lazy sequence of matches; closed when the output stops
        stream: Output stream, defaults to standard output
        cancel: Event that stops the output when set

    Returns:
        Number of records written
    """
    if stream is None:
        stream = sys.stdout

    count = 0
    try:
        for match in matches:
            if cancel is not None and cancel.is_set():
                break
            line = json.dumps(match.to_record(), ensure_ascii=False) + "\n"
            stream.write(line)
            stream.flush()
            count += 1
    finally:
        # Release the search engine's open handles when stopping early
        close = getattr(matches, 'close', None)
        if close is not None:
            close()

    logger.debug(f"Emitted {count} record(s)")
    return count

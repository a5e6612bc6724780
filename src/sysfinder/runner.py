"""
Query execution for the AI System Finder.

Wires one query end to end: derive the tool invocation, dispatch it to the
matching search engine and emit the matches.
"""

import logging
import threading
from typing import Iterator, Optional, TextIO, Union

from .derive.context import QueryContextBuilder
from .derive.engine import DerivationEngine
from .llm.client import CompletionClient, create_completion_client
from .models.config import ResolvedConfig
from .models.search_results import FileMatch, ProcessMatch
from .models.tools import FindFilesInvocation, FindProcessesInvocation, ToolInvocation
from .output.emitter import emit
from .tools.fs_walker import FileSearchEngine
from .tools.process_scanner import ProcessSearchEngine


logger = logging.getLogger(__name__)


def execute(
    invocation: ToolInvocation,
    cancel: Optional[threading.Event] = None,
    file_engine: Optional[FileSearchEngine] = None,
    process_engine: Optional[ProcessSearchEngine] = None,
) -> Iterator[Union[FileMatch, ProcessMatch]]:
    """
    Run a validated invocation on its search engine.

    Args:
        invocation: Validated tool invocation
        cancel: Event that stops the search when set
        file_engine: Engine for find_files, a new one if omitted
        process_engine: Engine for find_processes, a new one if omitted

    Returns:
        Lazy sequence of matches

    Raises:
        InvalidRange: If the criteria contain an inverted range
        FilesystemAccessError: If the search root cannot be read
        ProcessEnumerationError: If the process table cannot be read
    """
    if isinstance(invocation, FindFilesInvocation):
        logger.info(f"Searching files under {invocation.criteria.root_dir}")
        return (file_engine or FileSearchEngine()).search(invocation.criteria, cancel)
    if isinstance(invocation, FindProcessesInvocation):
        logger.info("Searching processes")
        return (process_engine or ProcessSearchEngine()).search(invocation.criteria, cancel)
    raise TypeError(f"Unsupported invocation: {type(invocation).__name__}")


def run_query(
    query: str,
    config: ResolvedConfig,
    client: Optional[CompletionClient] = None,
    stream: Optional[TextIO] = None,
    cancel: Optional[threading.Event] = None,
    context_builder: Optional[QueryContextBuilder] = None,
    file_engine: Optional[FileSearchEngine] = None,
    process_engine: Optional[ProcessSearchEngine] = None,
) -> int:
    """
    Answer a natural language query.

    Args:
        query: Natural language query
        config: Configuration snapshot
        client: Completion backend, built from the configuration if omitted
        stream: Output stream for the JSON lines, standard output if omitted
        cancel: Event that stops derivation, search and output when set
        context_builder: Prompt context builder
        file_engine: Engine for find_files
        process_engine: Engine for find_processes

    Returns:
        Number of matches written

    Raises:
        DerivationExhausted: If no valid tool call could be derived
        DerivationCancelled: If the cancel event was set during derivation
        ConfigurationError: If the completion backend cannot be configured
        FilesystemAccessError: If the search root cannot be read
        ProcessEnumerationError: If the process table cannot be read
    """
    owns_client = client is None
    if client is None:
        client = create_completion_client(config.llm)

    try:
        engine = DerivationEngine(client, config, context_builder=context_builder, cancel=cancel)
        invocation = engine.derive(query)
    finally:
        if owns_client:
            client.close()

    matches = execute(invocation, cancel, file_engine, process_engine)
    count = emit(matches, stream, cancel)
    logger.info(f"{invocation.tool_name} produced {count} match(es)")
    return count

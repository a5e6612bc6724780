"""
Command line interface for the AI System Finder.

Usage:
    sysfinder "find all mkv files on my desktop"

Matches are written to standard output as JSON lines; diagnostics go to
standard error. Exit status is 0 on success (also with zero matches), 1 when
no tool call could be derived or the search failed, 2 on configuration
errors and 130 when interrupted.
"""

import logging
import signal
import sys
import threading
from typing import Any, Dict, Optional

import typer

from .config.parser import load_config
from .config.store import read_values
from .errors import ConfigurationError, DerivationCancelled, DerivationExhausted, SysFinderError
from .models.config import LlmApi
from .runner import run_query


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="sysfinder",
    help="Find files and processes with natural language queries",
    add_completion=False,
)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


def build_overrides(
    llm_api: Optional[LlmApi],
    num_derive_tries: Optional[int],
    double_pass: Optional[bool],
) -> Dict[str, Any]:
    """Turn command line options into configuration overrides."""
    overrides: Dict[str, Any] = {}
    if llm_api is not None:
        overrides['llm'] = {'api': llm_api.value}
    if num_derive_tries is not None:
        overrides['num_derive_tries'] = num_derive_tries
    if double_pass is not None:
        overrides['double_pass_derive'] = double_pass
    return overrides


@app.command()
def find(
    query: str = typer.Argument(..., help="What to look for, in plain language"),
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to configuration file"
    ),
    store: Optional[str] = typer.Option(
        None, "--store", "-s", help="Path to the persisted configuration store"
    ),
    llm_api: Optional[LlmApi] = typer.Option(
        None, "--llm-api", help="Completion backend", case_sensitive=False
    ),
    num_derive_tries: Optional[int] = typer.Option(
        None, "--num-derive-tries", "-n", min=1, help="Attempts per derivation pass"
    ),
    double_pass: Optional[bool] = typer.Option(
        None, "--double-pass/--single-pass", help="Derive the tool and its parameters separately"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output"
    ),
) -> None:
    """Answer a natural language query with JSON lines of matching files or processes."""
    setup_logging(verbose)
    if not query.strip():
        raise typer.BadParameter("Query cannot be empty", param_hint="QUERY")

    try:
        store_values = read_values(store) if store else None
        result = load_config(
            config_file,
            overrides=build_overrides(llm_api, num_derive_tries, double_pass),
            store_values=store_values,
        )
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_CONFIG)

    for warning in result.warnings:
        logger.warning(warning)
    logger.debug(f"Using configuration:\n{result.config}")

    cancel = threading.Event()
    previous_handler = signal.getsignal(signal.SIGINT)

    def on_interrupt(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()

    signal.signal(signal.SIGINT, on_interrupt)
    try:
        run_query(query, result.config, cancel=cancel)
    except KeyboardInterrupt:
        cancel.set()
    except DerivationCancelled as e:
        logger.debug(str(e))
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_CONFIG)
    except DerivationExhausted as e:
        for attempt in e.history:
            logger.debug(f"Attempt {attempt.pass_index}.{attempt.attempt_index}: {attempt.failure or 'ok'}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_FAILURE)
    except SysFinderError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_FAILURE)
    except OSError as e:
        typer.echo(f"Error: cannot write results: {e}", err=True)
        raise typer.Exit(code=EXIT_FAILURE)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if cancel.is_set():
        typer.echo("Interrupted", err=True)
        raise typer.Exit(code=EXIT_INTERRUPTED)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

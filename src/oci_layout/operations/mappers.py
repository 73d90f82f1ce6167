"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

T = TypeVar('T')

EXIT_CODES = {
    "NotFound": 1,
    "ValidationError": 2,
    "ValueError": 2,
    "Conflict": 2,
    "Ambiguous": 2,
    "IOFailure": 3,
    "DigestMismatch": 4,
    "Cancelled": 130,
}

FALLBACK_EXIT_CODE = 3


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Exit codes:
    - 0: Success
    - 1: Image or blob not found (NotFound)
    - 2: Invalid input or index policy violation (ValueError, Conflict, Ambiguous)
    - 3: I/O failure (IOFailure, IndexCorrupt) or unknown error
    - 4: Content does not match its digest (DigestMismatch)
    - 130: Cancelled

    Subclasses map like their nearest mapped base class.

    Args:
        exc: Exception to map

    Returns:
        Exit code (3 as fallback for unknown exceptions)
    """
    for cls in type(exc).__mro__:
        code = EXIT_CODES.get(cls.__name__)
        if code is not None:
            return code
    return FALLBACK_EXIT_CODE


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit. This centralizes error handling so
    CLI commands don't need individual try/except blocks.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except (typer.Exit, typer.Abort):
        raise
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=exit_code_for(e)) from e

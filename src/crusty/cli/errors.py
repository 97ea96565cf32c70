"""
CLI Error Handling
==================

Maps errors raised while compiling to messages and exit codes.
"""

import traceback
from enum import IntEnum
from typing import Optional

import click

from crusty.errors import CompilerError, CompilerErrorKind, CrustyError


class ExitCode(IntEnum):
    """Standard exit codes for crustyc."""
    SUCCESS = 0
    BUILD_ERROR = 1      # Lex, parse, semantic, I/O or rustc error
    INVALID_ARGS = 2     # Invalid arguments or missing files
    INTERNAL_ERROR = 3   # Code generation defect or unexpected exception


def exit_code_for(error: BaseException) -> ExitCode:
    """
    Pick the exit code for an error.

    Args:
        error: The exception that was raised

    Returns:
        The matching ExitCode
    """
    if isinstance(error, CompilerError):
        if error.kind is CompilerErrorKind.CODEGEN:
            return ExitCode.INTERNAL_ERROR
        return ExitCode.BUILD_ERROR
    if isinstance(error, CrustyError):
        return ExitCode.BUILD_ERROR
    if isinstance(error, (click.BadParameter, click.UsageError)):
        return ExitCode.INVALID_ARGS
    if isinstance(error, (FileNotFoundError, PermissionError)):
        return ExitCode.INVALID_ARGS
    return ExitCode.INTERNAL_ERROR


def report_error(
    error: Exception,
    source: Optional[str] = None,
    verbose: bool = False,
) -> ExitCode:
    """
    Print an error to stderr and return its exit code.

    Crusty errors print their display form, followed by the offending
    source line when the source text is available.

    Args:
        error: The exception that was raised
        source: Source text of the unit that failed, if known
        verbose: If True, print full traceback for internal errors

    Returns:
        The exit code this error calls for
    """
    code = exit_code_for(error)

    if isinstance(error, CrustyError):
        if code is ExitCode.INTERNAL_ERROR:
            click.echo(f"Internal error: {error}", err=True)
        elif source is not None and error.span is not None:
            click.echo(error.format_with_source(source), err=True)
        elif source is not None and isinstance(error, CompilerError) and error.semantic_errors:
            click.echo("Semantic errors:", err=True)
            click.echo(error.format_with_source(source), err=True)
        else:
            click.echo(str(error), err=True)

    elif code is ExitCode.INVALID_ARGS:
        click.echo(f"Error: {error}", err=True)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()

    return code

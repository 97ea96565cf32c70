"""
crustyc - Crusty to Rust Compiler Command-Line Interface
========================================================

This module implements the command-line interface for the Crusty
transpiler. It turns Crusty source files into Rust source, and can hand
the result to rustc to build a native binary.

Usage Examples
--------------
Basic translation:
    $ crustyc hello.crst                 # writes hello.rs

With output file:
    $ crustyc hello.crst -o out.rs

Several files into one directory:
    $ crustyc a.crst b.crst --out-dir build/

Native binary:
    $ crustyc --emit binary hello.crst   # writes hello.rs and hello

AST dump (for debugging):
    $ crustyc --emit ast hello.crst      # writes hello.ast

Verbose mode:
    $ crustyc -v hello.crst
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from crusty import __version__
from crusty.cli.errors import ExitCode, report_error
from crusty.compiler import CompilerOptions, CompilerResult, CrustyCompiler, EmitMode
from crusty.errors import CompilerError, CrustyIOError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )


def default_output_path(input_file: Path, emit: EmitMode, out_dir: Optional[Path] = None) -> Path:
    """
    Output path used when ``-o`` is not given.

    ``<stem>.rs`` for rust, ``<stem>`` for binary, ``<stem>.ast`` for ast,
    next to the input file or inside ``out_dir``.
    """
    directory = out_dir if out_dir is not None else input_file.parent
    return directory / (input_file.stem + emit.default_suffix)


def _write_text(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise CompilerError.from_io(CrustyIOError.from_os_error(e, str(path))) from e


def _emit_result(
    compiler: CrustyCompiler,
    result: CompilerResult,
    output: Path,
) -> None:
    """Write the artifact for one successfully compiled unit."""
    emit = compiler.options.emit

    if emit is EmitMode.AST:
        _write_text(output, result.ast_dump)
    elif emit is EmitMode.RUST:
        _write_text(output, result.rust_source)
    else:
        rust_file = output.with_suffix(".rs")
        _write_text(rust_file, result.rust_source)
        if compiler.options.run_rustc:
            logger.debug("Building %s from %s", output, rust_file)
            compiler.build_binary(rust_file, output)
        else:
            output = rust_file

    result.output_path = output


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output file (single input only; default: input.rs)",
)
@click.option(
    "--out-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for output files (default: next to each input)",
)
@click.option(
    "--emit",
    type=click.Choice(["rust", "binary", "ast"], case_sensitive=False),
    default="rust",
    show_default=True,
    help="What to produce: Rust source, a native binary via rustc, or an AST dump",
)
@click.option(
    "--no-compile",
    is_flag=True,
    help="With --emit binary, stop after writing the Rust source",
)
@click.option(
    "--no-check",
    is_flag=True,
    help="Skip semantic analysis",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="crustyc")
def main(
    input_files: tuple[Path, ...],
    output: Optional[Path],
    out_dir: Optional[Path],
    emit: str,
    no_compile: bool,
    no_check: bool,
    verbose: bool,
) -> None:
    """
    Translate Crusty source files to Rust.

    INPUT_FILES are the Crusty source files (.crst) to compile. Each file
    is compiled independently; a failing file does not stop the others.

    \b
    Examples:
        crustyc hello.crst                  # Outputs hello.rs
        crustyc hello.crst -o out.rs        # Specify output file
        crustyc *.crst --out-dir build/     # Batch into a directory
        crustyc --emit binary hello.crst    # Build with rustc
        crustyc --emit ast hello.crst       # Dump the AST
        crustyc -v hello.crst               # Verbose output
    """
    setup_logging(verbose)

    if output is not None and len(input_files) > 1:
        raise click.UsageError("-o/--output can only be used with a single input file")

    options = CompilerOptions(
        emit=EmitMode(emit.lower()),
        analyze=not no_check,
        run_rustc=not no_compile,
    )
    compiler = CrustyCompiler(options)

    exit_code = ExitCode.SUCCESS
    for result in compiler.compile_files(input_files):
        input_file = Path(result.filename)
        try:
            if result.error is not None:
                raise result.error
            target = output if output is not None else default_output_path(
                input_file, options.emit, out_dir
            )
            _emit_result(compiler, result, target)

            if verbose:
                click.echo(f"Tokenized: {result.token_count} tokens")
                if result.ast is not None:
                    click.echo(f"Parsed: {len(result.ast.items)} items")
            click.echo(f"Compiled {input_file} -> {result.output_path}")

        except Exception as e:
            code = report_error(e, source=result.source, verbose=verbose)
            exit_code = max(exit_code, code)

    if exit_code != ExitCode.SUCCESS:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()

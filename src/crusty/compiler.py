"""
Crusty Compiler Main Module
===========================

This module provides the main compiler interface for Crusty.
It orchestrates the complete transpilation process:

    Source → Lex → Parse → Analyze → Generate → Rust source

Usage
-----
Command line:
    $ crustyc hello.crst -o hello.rs

Programmatic:
    >>> from crusty import compile_crusty
    >>> rust = compile_crusty('void greet() { }')

Compilation Pipeline
--------------------
1. **Lexical Analysis**: Convert source to tokens (fails fast)
2. **Parsing**: Build the Abstract Syntax Tree (fails fast)
3. **Semantic Analysis**: Collect every semantic fault in the unit
4. **Code Generation**: Convert the AST to Rust source text
5. **Native build** (optional): hand the Rust file to rustc

Error Handling
--------------
Each phase raises its own error type. CrustyCompiler wraps it into a
CompilerError at the phase boundary with the matching explicit
constructor, so callers only ever have to catch CompilerError.

Every compilation is independent: no state survives between calls,
and ``compile_files`` keeps going when one file in a batch fails.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from crusty.ast import ASTPrinter, Program
from crusty.codegen import CodeGenerator
from crusty.errors import (
    CodeGenError,
    CompilerError,
    CrustyIOError,
    DownstreamCompilerError,
    LexError,
    ParseError,
    SemanticErrors,
)
from crusty.lexer import Lexer, Token
from crusty.parser import Parser
from crusty.rustc import invoke_rustc
from crusty.semantic import SemanticAnalyzer

logger = logging.getLogger(__name__)


class EmitMode(Enum):
    """What the compiler writes for each input file."""
    RUST = "rust"
    BINARY = "binary"
    AST = "ast"

    @property
    def default_suffix(self) -> str:
        """File suffix of the default output path for this mode."""
        return {EmitMode.RUST: ".rs", EmitMode.BINARY: "", EmitMode.AST: ".ast"}[self]


def _default_rustc() -> str:
    return os.environ.get("RUSTC", "rustc")


@dataclass
class CompilerOptions:
    """
    Compiler configuration options.

    Attributes:
        emit: RUST writes the target text, BINARY additionally runs the
              downstream compiler, AST writes the AST dump
        analyze: Run the semantic phase. False goes straight from the
                 parser to the generator.
        header_comment: Prefix generated text with a
                        ``// Generated by crustyc from <file>`` line
        rustc: Downstream compiler executable ($RUSTC or "rustc")
        rustc_flags: Extra flags passed to the downstream compiler
        rustc_timeout: Seconds before a downstream compile is abandoned
        run_rustc: With BINARY, invoke the downstream compiler. False stops
                   after writing the Rust source.
    """
    emit: EmitMode = EmitMode.RUST
    analyze: bool = True
    header_comment: bool = True
    rustc: str = field(default_factory=_default_rustc)
    rustc_flags: list[str] = field(default_factory=list)
    rustc_timeout: float = 120.0
    run_rustc: bool = True


@dataclass
class CompilerResult:
    """
    Result of compiling one unit.

    Attributes:
        filename: Source name the unit was compiled as
        success: True when every requested phase completed
        rust_source: Generated Rust text (empty on failure)
        ast: The (analyzed) Program, when parsing got that far
        token_count: Number of tokens produced by the lexer
        semantic_error_count: Number of semantic errors found
        error: The CompilerError for a failed unit (batch mode only)
        output_path: Where the emitted artifact was written, if anywhere
        source: The source text, when it could be read
    """
    filename: str
    success: bool = False
    rust_source: str = ""
    ast: Optional[Program] = None
    token_count: int = 0
    semantic_error_count: int = 0
    error: Optional[CompilerError] = None
    output_path: Optional[Path] = None
    source: Optional[str] = None

    def __post_init__(self):
        if self.rust_source is None:
            self.rust_source = ""

    @property
    def ast_dump(self) -> str:
        """Indented AST listing, as written by ``--emit ast``."""
        if self.ast is None:
            return ""
        return ASTPrinter().print(self.ast) + "\n"


class CrustyCompiler:
    """
    Main Crusty compiler class.

    Orchestrates lexing, parsing, semantic analysis and code generation.
    One instance may compile any number of units; each call starts from
    scratch.

    Example:
        >>> compiler = CrustyCompiler()
        >>> result = compiler.compile_source(source, "main.crst")
        >>> print(result.rust_source)
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        """
        Initialize the compiler.

        Args:
            options: Compiler configuration (uses defaults if None)
        """
        self.options = options or CompilerOptions()

    def compile_source(self, source: str, filename: str = "<input>") -> CompilerResult:
        """
        Compile Crusty source text to Rust source text.

        Args:
            source: Crusty source text
            filename: Name used in the header comment and in results

        Returns:
            CompilerResult holding the generated text and the AST

        Raises:
            CompilerError: If any phase fails
        """
        result = CompilerResult(filename=filename, source=source)

        try:
            tokens = self._lex(source)
        except LexError as e:
            raise CompilerError.from_lex(e) from e
        result.token_count = len(tokens)

        try:
            program = self._parse(tokens)
        except ParseError as e:
            raise CompilerError.from_parse(e) from e
        result.ast = program

        if self.options.analyze:
            try:
                self._analyze(program)
            except SemanticErrors as e:
                raise CompilerError.from_semantic(e) from e

        if self.options.emit is EmitMode.AST:
            result.success = True
            return result

        try:
            rust_source = self._generate(program)
        except CodeGenError as e:
            raise CompilerError.from_codegen(e) from e

        if self.options.header_comment:
            rust_source = f"// Generated by crustyc from {filename}\n\n" + rust_source

        result.rust_source = rust_source
        result.success = True
        logger.debug("%s: generated %d bytes of Rust", filename, len(rust_source))
        return result

    def compile_file(self, filepath) -> CompilerResult:
        """
        Compile a Crusty source file.

        Args:
            filepath: Path to the source file

        Returns:
            CompilerResult for the file

        Raises:
            CompilerError: IO kind when the file cannot be read, otherwise
                           whatever phase failed
        """
        path = Path(filepath)
        source = self._read_source(path)
        return self.compile_source(source, str(path))

    def compile_files(self, filepaths) -> list[CompilerResult]:
        """
        Compile a batch of files, one independent compilation per file.

        A failing file does not stop the batch: its result has
        ``success=False`` and carries the CompilerError in ``error``
        (and the source text, when it could be read).

        Args:
            filepaths: Iterable of source paths

        Returns:
            One CompilerResult per input, in input order
        """
        results = []
        for filepath in filepaths:
            path = Path(filepath)
            source = None
            try:
                source = self._read_source(path)
                result = self.compile_source(source, str(path))
            except CompilerError as e:
                result = CompilerResult(
                    filename=str(path),
                    success=False,
                    error=e,
                    semantic_error_count=len(e.semantic_errors),
                    source=source,
                )
                logger.debug("%s: failed with %s error", path, e.kind.name)
            results.append(result)
        return results

    def build_binary(self, rust_file, output_binary) -> None:
        """
        Compile a generated Rust file to a native binary with rustc.

        Args:
            rust_file: Path of the generated Rust source
            output_binary: Path of the executable to produce

        Raises:
            CompilerError: DOWNSTREAM kind if rustc cannot be run or fails
        """
        try:
            rustc_result = invoke_rustc(
                rust_file,
                output_binary,
                rustc=self.options.rustc,
                flags=self.options.rustc_flags,
                timeout=self.options.rustc_timeout,
            )
        except DownstreamCompilerError as e:
            raise CompilerError.from_downstream(e) from e

        if not rustc_result.success:
            error = DownstreamCompilerError(
                rustc_result.error_message(), compiler=Path(self.options.rustc).name
            )
            raise CompilerError.from_downstream(error)

    def _read_source(self, path: Path) -> str:
        """Read a source file, wrapping failures as IO CompilerErrors."""
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            raise CompilerError.from_io(CrustyIOError.from_os_error(e, str(path))) from e
        except UnicodeDecodeError as e:
            raise CompilerError.from_io(CrustyIOError(f"{path}: {e.reason}")) from e
        logger.debug("Read %d bytes from %s", len(source), path)
        return source

    def _lex(self, source: str) -> list[Token]:
        """Tokenize source."""
        tokens = Lexer(source).tokenize()
        logger.debug("Lexed %d tokens", len(tokens))
        return tokens

    def _parse(self, tokens: list[Token]) -> Program:
        """Parse tokens into AST."""
        program = Parser(tokens).parse()
        logger.debug("Parsed %d top-level items", len(program.items))
        return program

    def _analyze(self, program: Program) -> Program:
        """Run semantic analysis, annotating the AST in place."""
        SemanticAnalyzer().analyze(program)
        logger.debug("Semantic analysis passed")
        return program

    def _generate(self, program: Program) -> str:
        """Generate Rust source from the AST."""
        return CodeGenerator().generate(program)


# =============================================================================
# Convenience Functions
# =============================================================================

def compile_crusty(source: str, filename: str = "<input>") -> str:
    """
    Compile Crusty source to Rust source text.

    Convenience wrapper around CrustyCompiler with default options
    except that no header comment is added.

    Args:
        source: Crusty source text
        filename: Source name (for results and diagnostics)

    Returns:
        Generated Rust source text

    Raises:
        CompilerError: If compilation fails
    """
    compiler = CrustyCompiler(CompilerOptions(header_comment=False))
    return compiler.compile_source(source, filename).rust_source


def compile_file(filepath, options: Optional[CompilerOptions] = None) -> CompilerResult:
    """
    Compile a Crusty source file.

    Args:
        filepath: Path to the source file
        options: Compiler options (defaults if None)

    Returns:
        CompilerResult for the file

    Raises:
        CompilerError: If compilation fails
    """
    return CrustyCompiler(options).compile_file(filepath)

"""
Crusty Error Hierarchy and Source Positions
===========================================

This module holds the diagnostics substrate shared by every phase of the
transpiler: source positions and spans, the exception hierarchy, and the
accumulator used by the semantic analyzer.

Exception Hierarchy
-------------------
CrustyError (base)
├── LexError - malformed token text
├── ParseError - token stream violates the grammar
├── SemanticError - well-formed but invalid program (one fault)
├── SemanticErrors - every fault found in one compilation unit
├── CodeGenError - AST node with no target mapping (internal defect)
├── CrustyIOError - reading or writing a file failed
├── DownstreamCompilerError - the native compiler could not be run or failed
└── CompilerError - tagged union over all of the above

Display Formats
---------------
``str(error)`` is the exact, tool-parseable display form:

    Lexical error at 3:5-3:6: unexpected character: '$'
    Parse error at 4:1-4:1: expected '}' (expected: '}') (found: end of input)
    Semantic error at 3:5-3:6 (undefined variable): undefined variable 'x'
    Code generation error: no target mapping for GotoStatement
    I/O error: hello.crst: No such file or directory
    rustc invocation error: rustc not found

``format_with_source()`` adds the offending source line, a caret marker
and the hint (if any) for human readers:

    Semantic error at 3:5-3:6 (undefined variable): undefined variable 'x'
        y = x + 1;
            ^
    hint: declare 'x' with let or var before using it

Design Notes
------------
- Position and Span are frozen dataclasses: cheap immutable values that
  can be shared freely between tokens, AST nodes and errors.
- CompilerError is never created implicitly. The compiler pipeline wraps
  each phase failure with one of the explicit ``CompilerError.from_*``
  constructors at the phase boundary.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


# =============================================================================
# Source Positions
# =============================================================================

@dataclass(frozen=True, order=True)
class Position:
    """
    A point in the source text.

    Positions order lexicographically by (line, column), so ``min()`` and
    ``max()`` work when merging spans.

    Attributes:
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'line:column'."""
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class Span:
    """
    A contiguous range of source text.

    ``end`` points one column past the last character, so a one-character
    token at line 3 column 5 has the span ``3:5-3:6``.

    Attributes:
        start: First position covered
        end: Position just after the last character covered
    """
    start: Position
    end: Position

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"span end {self.end} precedes start {self.start}")

    def __str__(self) -> str:
        """Format as 'start-end', e.g. '3:5-3:6'."""
        return f"{self.start}-{self.end}"

    @classmethod
    def at(cls, line: int, column: int, length: int = 1) -> "Span":
        """Build a single-line span of ``length`` characters."""
        return cls(Position(line, column), Position(line, column + length))

    def to(self, other: "Span") -> "Span":
        """Return the smallest span enclosing both this span and ``other``."""
        return Span(min(self.start, other.start), max(self.end, other.end))

    def contains(self, other: "Span") -> bool:
        """Return True if ``other`` lies entirely within this span."""
        return self.start <= other.start and other.end <= self.end


# =============================================================================
# Base Exception
# =============================================================================

class CrustyError(Exception):
    """
    Base exception for all transpiler errors.

    Subclasses override ``_format_message()`` to produce their display
    form; ``str(error)`` always returns that form.

    Attributes:
        message: The error description
        span: Where in the source the error occurred (optional)
        hint: A suggestion for fixing the error (optional)
    """

    def __init__(
        self,
        message: str,
        span: Optional[Span] = None,
        hint: Optional[str] = None,
    ):
        self.message = message
        self.span = span
        self.hint = hint
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        return self.message

    def __str__(self) -> str:
        return self._format_message()

    def format_with_source(self, source: str) -> str:
        """
        Format the error followed by the source line it points at.

        Args:
            source: The complete source text of the compilation unit

        Returns:
            The display form, the offending line, a caret marker under
            the span and the hint, each on its own line
        """
        parts = [self._format_message()]

        if self.span is not None:
            lines = source.splitlines()
            line_no = self.span.start.line
            if 1 <= line_no <= len(lines):
                parts.append(f"    {lines[line_no - 1]}")
                # Caret under the span; multi-line spans mark the first column only
                if self.span.end.line == line_no:
                    width = max(1, self.span.end.column - self.span.start.column)
                else:
                    width = 1
                padding = " " * (4 + self.span.start.column - 1)
                parts.append(f"{padding}{'^' * width}")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


# =============================================================================
# Phase Errors
# =============================================================================

class LexError(CrustyError):
    """
    Malformed token text.

    Raised by the lexer for unterminated literals, invalid escape
    sequences, unterminated block comments and unexpected characters.
    Lexing stops at the first one.
    """

    def _format_message(self) -> str:
        return f"Lexical error at {self.span}: {self.message}"


class ParseError(CrustyError):
    """
    Token stream that violates the grammar.

    Attributes:
        expected: Every alternative the grammar allowed at this point,
                  in grammar order
        found: Description of the token actually seen
    """

    def __init__(
        self,
        message: str,
        span: Span,
        expected: Optional[list[str]] = None,
        found: str = "",
        hint: Optional[str] = None,
    ):
        self.expected = list(expected or [])
        self.found = found
        super().__init__(message, span, hint)

    def _format_message(self) -> str:
        text = f"Parse error at {self.span}: {self.message}"
        if self.expected:
            text += f" (expected: {', '.join(self.expected)})"
        return text + f" (found: {self.found})"


class SemanticErrorKind(Enum):
    """The five classes of semantic fault, valued by their display label."""
    UNDEFINED_VARIABLE = "undefined variable"
    TYPE_MISMATCH = "type mismatch"
    DUPLICATE_DEFINITION = "duplicate definition"
    INVALID_OPERATION = "invalid operation"
    UNSUPPORTED_FEATURE = "unsupported feature"

    @property
    def label(self) -> str:
        return self.value


class SemanticError(CrustyError):
    """
    One semantic fault.

    Semantic errors are collected, not raised one by one: the analyzer
    records each of them in a SemanticErrorCollector and raises a single
    SemanticErrors at the end of the unit.

    Attributes:
        kind: Which of the five fault classes this is
    """

    def __init__(
        self,
        kind: SemanticErrorKind,
        message: str,
        span: Span,
        hint: Optional[str] = None,
    ):
        self.kind = kind
        super().__init__(message, span, hint)

    def _format_message(self) -> str:
        return f"Semantic error at {self.span} ({self.kind.label}): {self.message}"


class SemanticErrors(CrustyError):
    """
    Every semantic fault found in one compilation unit.

    Displayed as one ``Semantic error at ...`` line per error, in the
    order the analyzer found them.

    Attributes:
        errors: The collected errors (never empty)
    """

    def __init__(self, errors: list[SemanticError]):
        self.errors = list(errors)
        count = len(self.errors)
        noun = "error" if count == 1 else "errors"
        super().__init__(f"{count} semantic {noun}")

    def _format_message(self) -> str:
        return "\n".join(str(error) for error in self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self):
        return iter(self.errors)

    def format_with_source(self, source: str) -> str:
        return "\n".join(error.format_with_source(source) for error in self.errors)


class CodeGenError(CrustyError):
    """
    An AST node the generator has no mapping for.

    This signals a compiler defect (the analyzer should have rejected the
    construct), so it carries no span and is reported as an internal error.
    """

    def __init__(self, message: str):
        super().__init__(message)

    def _format_message(self) -> str:
        return f"Code generation error: {self.message}"


class CrustyIOError(CrustyError):
    """Reading a source file or writing an output file failed."""

    def __init__(self, message: str):
        super().__init__(message)

    @classmethod
    def from_os_error(cls, error: OSError, path: Optional[str] = None) -> "CrustyIOError":
        """Build from an OSError, naming the file involved when known."""
        reason = error.strerror or str(error)
        filename = path if path is not None else error.filename
        if filename:
            return cls(f"{filename}: {reason}")
        return cls(reason)

    def _format_message(self) -> str:
        return f"I/O error: {self.message}"


class DownstreamCompilerError(CrustyError):
    """
    The native target compiler could not be run, or rejected the output.

    Attributes:
        compiler: Name of the downstream compiler (for the display prefix)
    """

    def __init__(self, message: str, compiler: str = "rustc"):
        self.compiler = compiler
        super().__init__(message)

    def _format_message(self) -> str:
        return f"{self.compiler} invocation error: {self.message}"


# =============================================================================
# Tagged Compiler Error
# =============================================================================

class CompilerErrorKind(Enum):
    """Which phase (or environment) a CompilerError came from."""
    LEX = auto()
    PARSE = auto()
    SEMANTIC = auto()
    CODEGEN = auto()
    IO = auto()
    DOWNSTREAM = auto()


class CompilerError(CrustyError):
    """
    Tagged union over every way a compilation unit can fail.

    Build instances with the ``from_*`` constructors; there is no
    implicit conversion from the phase errors.

    Attributes:
        kind: Which variant this is
        cause: The wrapped phase error (SemanticErrors for SEMANTIC)
    """

    def __init__(self, kind: CompilerErrorKind, cause: CrustyError):
        self.kind = kind
        self.cause = cause
        super().__init__(cause.message, cause.span, cause.hint)

    @classmethod
    def from_lex(cls, error: LexError) -> "CompilerError":
        return cls(CompilerErrorKind.LEX, error)

    @classmethod
    def from_parse(cls, error: ParseError) -> "CompilerError":
        return cls(CompilerErrorKind.PARSE, error)

    @classmethod
    def from_semantic(cls, errors: SemanticErrors) -> "CompilerError":
        return cls(CompilerErrorKind.SEMANTIC, errors)

    @classmethod
    def from_codegen(cls, error: CodeGenError) -> "CompilerError":
        return cls(CompilerErrorKind.CODEGEN, error)

    @classmethod
    def from_io(cls, error: CrustyIOError) -> "CompilerError":
        return cls(CompilerErrorKind.IO, error)

    @classmethod
    def from_downstream(cls, error: DownstreamCompilerError) -> "CompilerError":
        return cls(CompilerErrorKind.DOWNSTREAM, error)

    @property
    def semantic_errors(self) -> list[SemanticError]:
        """The collected semantic errors (empty for other kinds)."""
        if self.kind is CompilerErrorKind.SEMANTIC:
            return list(self.cause.errors)
        return []

    @property
    def is_internal(self) -> bool:
        """True for compiler defects rather than faults in the user's source."""
        return self.kind is CompilerErrorKind.CODEGEN

    def _format_message(self) -> str:
        if self.kind is CompilerErrorKind.SEMANTIC:
            lines = ["Semantic errors:"]
            lines.extend(f"  {error}" for error in self.cause.errors)
            return "\n".join(lines)
        return str(self.cause)

    def format_with_source(self, source: str) -> str:
        return self.cause.format_with_source(source)


# =============================================================================
# Semantic Error Accumulator
# =============================================================================

class SemanticErrorCollector:
    """
    Collects semantic errors for one compilation unit.

    The analyzer owns one collector per ``analyze()`` call and passes it
    down explicitly; nothing is kept between units.

    Example:
        collector = SemanticErrorCollector()
        collector.add(SemanticErrorKind.UNDEFINED_VARIABLE,
                      "undefined variable 'x'", span)
        collector.raise_if_errors()   # raises SemanticErrors
    """

    def __init__(self):
        self.errors: list[SemanticError] = []

    def add(
        self,
        kind: SemanticErrorKind,
        message: str,
        span: Span,
        hint: Optional[str] = None,
    ) -> SemanticError:
        """Record a new error and return it."""
        error = SemanticError(kind, message, span, hint)
        self.errors.append(error)
        return error

    def has_errors(self) -> bool:
        """Return True if any errors have been collected."""
        return len(self.errors) > 0

    def error_count(self) -> int:
        """Return the number of collected errors."""
        return len(self.errors)

    def clear(self) -> None:
        """Forget all collected errors."""
        self.errors.clear()

    def raise_if_errors(self) -> None:
        """Raise SemanticErrors holding everything collected, if anything was."""
        if self.errors:
            raise SemanticErrors(self.errors)

"""
Crusty - A C-like Dialect That Compiles to Rust
===============================================

This package translates Crusty, a C-flavoured surface syntax for Rust,
into Rust source text, and can hand the result to rustc.

Main Components
---------------
- **lexer**: Crusty source text to tokens
- **parser**: Tokens to an abstract syntax tree
- **semantic**: Scope and type checking over the tree
- **codegen**: Tree to Rust source text
- **compiler**: The whole pipeline, with options and results
- **cli**: The ``crustyc`` command-line tool

Quick Start
-----------
Translate a snippet:
    >>> from crusty import compile_crusty
    >>> print(compile_crusty('static int add(int a, int b) { return a + b; }'))
    fn add(a: i32, b: i32) -> i32 {
        return a + b;
    }

Run the phases one at a time:
    >>> from crusty import tokenize, parse, analyze, generate
    >>> program = analyze(parse(tokenize(source)))
    >>> rust = generate(program)

Or use the command-line tool:
    $ crustyc hello.crst -o hello.rs
    $ crustyc --emit binary hello.crst
"""

__version__ = "0.1.0"

# =============================================================================
# Public API Exports
# =============================================================================

from crusty.errors import (
    Position,
    Span,
    CrustyError,
    LexError,
    ParseError,
    SemanticError,
    SemanticErrorKind,
    SemanticErrors,
    CodeGenError,
    CrustyIOError,
    DownstreamCompilerError,
    CompilerError,
    CompilerErrorKind,
)
from crusty.lexer import Token, TokenType, tokenize
from crusty.parser import parse
from crusty.semantic import analyze
from crusty.codegen import generate
from crusty.compiler import (
    CompilerOptions,
    CompilerResult,
    CrustyCompiler,
    EmitMode,
    compile_crusty,
    compile_file,
)

__all__ = [
    # Version info
    "__version__",
    # Phases
    "tokenize",
    "parse",
    "analyze",
    "generate",
    # Pipeline
    "CompilerOptions",
    "CompilerResult",
    "CrustyCompiler",
    "EmitMode",
    "compile_crusty",
    "compile_file",
    # Tokens
    "Token",
    "TokenType",
    # Errors
    "Position",
    "Span",
    "CrustyError",
    "LexError",
    "ParseError",
    "SemanticError",
    "SemanticErrorKind",
    "SemanticErrors",
    "CodeGenError",
    "CrustyIOError",
    "DownstreamCompilerError",
    "CompilerError",
    "CompilerErrorKind",
]

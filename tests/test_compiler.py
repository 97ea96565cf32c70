# =============================================================================
# test_compiler.py - Compiler Pipeline Tests
# =============================================================================
# Tests for the CrustyCompiler orchestration layer.
#
# Test coverage includes:
#   - compile_crusty and compile_source output
#   - Phase errors wrapped as tagged CompilerErrors
#   - Batch compilation with independent units
#   - AST emission and the unchecked (no analysis) path
# =============================================================================

import pytest

from crusty import compile_crusty
from crusty.compiler import (
    CompilerOptions,
    CompilerResult,
    CrustyCompiler,
    EmitMode,
    compile_file,
)
from crusty.errors import CompilerError, CompilerErrorKind, SemanticErrors


ADD_SOURCE = "static int add(int a, int b) { return a + b; }"
ADD_RUST = "fn add(a: i32, b: i32) -> i32 {\n    return a + b;\n}\n"


# =============================================================================
# Single Unit Compilation
# =============================================================================

class TestCompileSource:
    """Tests for compiling one unit from text."""

    def test_compile_crusty(self):
        assert compile_crusty(ADD_SOURCE) == ADD_RUST

    def test_header_comment(self):
        result = CrustyCompiler().compile_source(ADD_SOURCE, "add.crst")
        assert result.success
        assert result.rust_source == "// Generated by crustyc from add.crst\n\n" + ADD_RUST

    def test_header_comment_disabled(self):
        compiler = CrustyCompiler(CompilerOptions(header_comment=False))
        assert compiler.compile_source(ADD_SOURCE).rust_source == ADD_RUST

    def test_result_statistics(self):
        result = CrustyCompiler().compile_source("void f() { }")
        assert result.filename == "<input>"
        assert result.token_count == 7
        assert len(result.ast.items) == 1
        assert result.error is None

    def test_compiler_is_reusable(self):
        compiler = CrustyCompiler(CompilerOptions(header_comment=False))
        with pytest.raises(CompilerError):
            compiler.compile_source("void f() { x = 1; }")
        assert compiler.compile_source(ADD_SOURCE).rust_source == ADD_RUST

    def test_empty_source(self):
        assert compile_crusty("") == ""

    @pytest.mark.parametrize("source,expected", [
        ("static int counter = 0;", "static mut counter: i32 = 0;\n"),
        ("struct P { int x; } void f() { P p = { .x = 1 }; }",
         "pub struct P {\n    pub x: i32,\n}\n\n"
         "pub fn f() {\n    let mut p: P = P { x: 1 };\n}\n"),
        ("void outer() { int inner(int a) { return a; } }",
         "pub fn outer() {\n    fn inner(a: i32) -> i32 {\n        return a;\n    }\n}\n"),
    ])
    def test_item_and_body_forms(self, source, expected):
        assert compile_crusty(source) == expected


class TestPhaseErrors:
    """Each phase failure surfaces as a CompilerError of the matching kind."""

    def test_lex_error(self):
        with pytest.raises(CompilerError) as excinfo:
            compile_crusty("int $x;")
        assert excinfo.value.kind is CompilerErrorKind.LEX
        assert str(excinfo.value) == "Lexical error at 1:5-1:6: unexpected character: '$'"

    def test_parse_error(self):
        with pytest.raises(CompilerError) as excinfo:
            compile_crusty("int main() { return 0 }")
        assert excinfo.value.kind is CompilerErrorKind.PARSE
        assert excinfo.value.span.start.column == 23

    def test_semantic_errors_collected(self):
        with pytest.raises(CompilerError) as excinfo:
            compile_crusty("int f() { return a + b; }")
        error = excinfo.value
        assert error.kind is CompilerErrorKind.SEMANTIC
        assert isinstance(error.cause, SemanticErrors)
        assert len(error.semantic_errors) == 2
        assert str(error).splitlines()[0] == "Semantic errors:"

    def test_error_chains_cause(self):
        with pytest.raises(CompilerError) as excinfo:
            compile_crusty("int $x;")
        assert excinfo.value.__cause__ is excinfo.value.cause

    def test_unchecked_goto_is_codegen_error(self):
        compiler = CrustyCompiler(CompilerOptions(analyze=False))
        with pytest.raises(CompilerError) as excinfo:
            compiler.compile_source("void f() { goto done; }")
        assert excinfo.value.kind is CompilerErrorKind.CODEGEN
        assert excinfo.value.is_internal

    def test_checked_goto_is_semantic_error(self):
        with pytest.raises(CompilerError) as excinfo:
            compile_crusty("void f() { goto done; }")
        assert excinfo.value.kind is CompilerErrorKind.SEMANTIC


# =============================================================================
# AST Emission
# =============================================================================

class TestEmitAst:
    """Tests for the AST dump mode."""

    def test_ast_mode_skips_generation(self):
        compiler = CrustyCompiler(CompilerOptions(emit=EmitMode.AST))
        result = compiler.compile_source("void f() { }")
        assert result.success
        assert result.rust_source == ""
        assert result.ast_dump.startswith("Program")
        assert result.ast_dump.endswith("\n")

    def test_ast_mode_still_analyzes(self):
        compiler = CrustyCompiler(CompilerOptions(emit=EmitMode.AST))
        with pytest.raises(CompilerError) as excinfo:
            compiler.compile_source("void f() { x = 1; }")
        assert excinfo.value.kind is CompilerErrorKind.SEMANTIC

    def test_no_ast_no_dump(self):
        assert CompilerResult(filename="x.crst").ast_dump == ""

    def test_default_suffixes(self):
        assert EmitMode.RUST.default_suffix == ".rs"
        assert EmitMode.BINARY.default_suffix == ""
        assert EmitMode.AST.default_suffix == ".ast"


# =============================================================================
# Files and Batches
# =============================================================================

class TestFiles:
    """Tests for compiling files from disk."""

    def test_compile_file(self, tmp_path):
        source_file = tmp_path / "add.crst"
        source_file.write_text(ADD_SOURCE)
        result = compile_file(source_file)
        assert result.success
        assert result.filename == str(source_file)
        assert result.rust_source.endswith(ADD_RUST)

    def test_missing_file_is_io_error(self, tmp_path):
        missing = tmp_path / "missing.crst"
        with pytest.raises(CompilerError) as excinfo:
            compile_file(missing)
        assert excinfo.value.kind is CompilerErrorKind.IO
        assert str(missing) in str(excinfo.value)

    def test_batch_units_are_independent(self, tmp_path):
        good = tmp_path / "good.crst"
        good.write_text(ADD_SOURCE)
        bad = tmp_path / "bad.crst"
        bad.write_text("void f() { x = 1; }")
        other = tmp_path / "other.crst"
        other.write_text("void g() { }")

        results = CrustyCompiler().compile_files([good, bad, other])

        assert [r.success for r in results] == [True, False, True]
        assert results[1].error.kind is CompilerErrorKind.SEMANTIC
        assert results[1].semantic_error_count == 1
        assert results[1].source == "void f() { x = 1; }"
        assert results[2].rust_source.endswith("pub fn g() {\n}\n")

    def test_batch_reports_missing_file(self, tmp_path):
        results = CrustyCompiler().compile_files([tmp_path / "nope.crst"])
        assert not results[0].success
        assert results[0].error.kind is CompilerErrorKind.IO
        assert results[0].source is None

    def test_batch_matches_single_compilation(self, tmp_path):
        source_file = tmp_path / "add.crst"
        source_file.write_text(ADD_SOURCE)
        compiler = CrustyCompiler()
        batch = compiler.compile_files([source_file, source_file])
        single = compiler.compile_file(source_file)
        assert batch[0].rust_source == batch[1].rust_source == single.rust_source


class TestOptions:
    """Tests for CompilerOptions defaults."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("RUSTC", raising=False)
        options = CompilerOptions()
        assert options.emit is EmitMode.RUST
        assert options.analyze
        assert options.header_comment
        assert options.rustc == "rustc"
        assert options.rustc_flags == []
        assert options.run_rustc

    def test_rustc_from_environment(self, monkeypatch):
        monkeypatch.setenv("RUSTC", "/opt/rust/bin/rustc")
        assert CompilerOptions().rustc == "/opt/rust/bin/rustc"

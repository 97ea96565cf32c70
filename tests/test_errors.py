"""
Error Hierarchy Test Suite
==========================

Tests for source positions, spans, the display forms of every error
class, the CompilerError tagged union and the semantic error collector.
"""

import pytest

from crusty.errors import (
    CodeGenError,
    CompilerError,
    CompilerErrorKind,
    CrustyError,
    CrustyIOError,
    DownstreamCompilerError,
    LexError,
    ParseError,
    Position,
    SemanticError,
    SemanticErrorCollector,
    SemanticErrorKind,
    SemanticErrors,
    Span,
)


# =============================================================================
# Positions and Spans
# =============================================================================

class TestPositions:
    """Tests for Position and Span values."""

    def test_position_display(self):
        assert str(Position(3, 5)) == "3:5"

    def test_positions_order_by_line_then_column(self):
        assert Position(1, 9) < Position(2, 1)
        assert Position(2, 1) < Position(2, 3)

    def test_span_display(self):
        assert str(Span.at(3, 5)) == "3:5-3:6"

    def test_span_at_length(self):
        span = Span.at(1, 4, length=3)
        assert span.end == Position(1, 7)

    def test_span_end_before_start_rejected(self):
        with pytest.raises(ValueError):
            Span(Position(2, 1), Position(1, 1))

    def test_span_to_encloses_both(self):
        merged = Span.at(1, 5).to(Span.at(3, 2))
        assert merged.start == Position(1, 5)
        assert merged.end == Position(3, 3)

    def test_span_contains(self):
        outer = Span(Position(1, 1), Position(4, 1))
        assert outer.contains(Span.at(2, 7))
        assert not Span.at(2, 7).contains(outer)


# =============================================================================
# Display Forms
# =============================================================================

class TestDisplayForms:
    """Every error class renders its exact, parseable display form."""

    def test_lex_error(self):
        error = LexError("unexpected character: '$'", Span.at(3, 5))
        assert str(error) == "Lexical error at 3:5-3:6: unexpected character: '$'"

    def test_parse_error_with_expected(self):
        error = ParseError("expected '}' to close block", Span.at(4, 1, 0),
                           expected=["statement", "'}'"], found="end of input")
        assert str(error) == (
            "Parse error at 4:1-4:1: expected '}' to close block "
            "(expected: statement, '}') (found: end of input)"
        )

    def test_parse_error_without_expected(self):
        error = ParseError("bad", Span.at(1, 1), found="';'")
        assert str(error) == "Parse error at 1:1-1:2: bad (found: ';')"

    def test_semantic_error(self):
        error = SemanticError(SemanticErrorKind.UNDEFINED_VARIABLE,
                              "undefined variable 'x'", Span.at(3, 5))
        assert str(error) == (
            "Semantic error at 3:5-3:6 (undefined variable): undefined variable 'x'"
        )

    def test_semantic_kind_labels(self):
        labels = [kind.label for kind in SemanticErrorKind]
        assert labels == [
            "undefined variable", "type mismatch", "duplicate definition",
            "invalid operation", "unsupported feature",
        ]

    def test_codegen_error_has_no_span(self):
        error = CodeGenError("no target mapping for GotoStatement")
        assert error.span is None
        assert str(error) == "Code generation error: no target mapping for GotoStatement"

    def test_io_error_from_os_error(self):
        os_error = FileNotFoundError(2, "No such file or directory")
        error = CrustyIOError.from_os_error(os_error, "hello.crst")
        assert str(error) == "I/O error: hello.crst: No such file or directory"

    def test_downstream_error(self):
        error = DownstreamCompilerError("rustc not found")
        assert str(error) == "rustc invocation error: rustc not found"

    def test_all_errors_share_base(self):
        for error in (LexError("x", Span.at(1, 1)), CodeGenError("x"),
                      CrustyIOError("x"), DownstreamCompilerError("x")):
            assert isinstance(error, CrustyError)


class TestFormatWithSource:
    """Tests for the human-readable form with the offending source line."""

    def test_caret_under_span(self):
        source = "void f() {\n    var y = 0;\n    x = y;\n}\n"
        error = SemanticError(SemanticErrorKind.UNDEFINED_VARIABLE,
                              "undefined variable 'x'", Span.at(3, 5),
                              hint="declare 'x' with let or var before using it")
        lines = error.format_with_source(source).splitlines()
        assert lines[0] == str(error)
        assert lines[1] == "        x = y;"
        assert lines[2] == "        ^"
        assert lines[3] == "hint: declare 'x' with let or var before using it"

    def test_caret_width_matches_span(self):
        error = LexError("bad", Span.at(1, 3, length=4))
        lines = error.format_with_source("a bcde f").splitlines()
        assert lines[2] == "      ^^^^"

    def test_span_past_end_of_source(self):
        error = LexError("bad", Span.at(9, 1))
        assert error.format_with_source("one line") == str(error)


# =============================================================================
# Aggregated and Tagged Errors
# =============================================================================

class TestSemanticErrors:
    """Tests for the aggregate raised by the analyzer."""

    def _errors(self):
        return [
            SemanticError(SemanticErrorKind.UNDEFINED_VARIABLE, "undefined variable 'a'",
                          Span.at(2, 5)),
            SemanticError(SemanticErrorKind.TYPE_MISMATCH, "if condition must be bool, found i32",
                          Span.at(3, 9)),
        ]

    def test_one_line_per_error(self):
        aggregate = SemanticErrors(self._errors())
        assert len(aggregate) == 2
        assert str(aggregate).splitlines() == [str(e) for e in self._errors()]

    def test_iteration_keeps_order(self):
        aggregate = SemanticErrors(self._errors())
        assert [e.message for e in aggregate] == [
            "undefined variable 'a'", "if condition must be bool, found i32",
        ]


class TestCompilerError:
    """Tests for the CompilerError tagged union."""

    def test_constructors_set_kind(self):
        span = Span.at(1, 1)
        cases = [
            (CompilerError.from_lex(LexError("x", span)), CompilerErrorKind.LEX),
            (CompilerError.from_parse(ParseError("x", span)), CompilerErrorKind.PARSE),
            (CompilerError.from_codegen(CodeGenError("x")), CompilerErrorKind.CODEGEN),
            (CompilerError.from_io(CrustyIOError("x")), CompilerErrorKind.IO),
            (CompilerError.from_downstream(DownstreamCompilerError("x")),
             CompilerErrorKind.DOWNSTREAM),
        ]
        for error, kind in cases:
            assert error.kind is kind

    def test_non_semantic_display_is_cause_display(self):
        cause = LexError("unterminated string literal", Span.at(2, 7))
        error = CompilerError.from_lex(cause)
        assert str(error) == str(cause)
        assert error.span == cause.span
        assert error.cause is cause

    def test_semantic_display(self):
        errors = [
            SemanticError(SemanticErrorKind.UNDEFINED_VARIABLE, "undefined variable 'a'",
                          Span.at(2, 5)),
            SemanticError(SemanticErrorKind.UNDEFINED_VARIABLE, "undefined variable 'b'",
                          Span.at(3, 5)),
        ]
        error = CompilerError.from_semantic(SemanticErrors(errors))
        assert str(error).splitlines() == [
            "Semantic errors:",
            "  Semantic error at 2:5-2:6 (undefined variable): undefined variable 'a'",
            "  Semantic error at 3:5-3:6 (undefined variable): undefined variable 'b'",
        ]
        assert error.semantic_errors == errors

    def test_semantic_errors_empty_for_other_kinds(self):
        error = CompilerError.from_io(CrustyIOError("x"))
        assert error.semantic_errors == []

    def test_only_codegen_is_internal(self):
        assert CompilerError.from_codegen(CodeGenError("x")).is_internal
        assert not CompilerError.from_io(CrustyIOError("x")).is_internal


class TestSemanticErrorCollector:
    """Tests for the semantic error accumulator."""

    def test_starts_empty(self):
        collector = SemanticErrorCollector()
        assert not collector.has_errors()
        assert collector.error_count() == 0
        collector.raise_if_errors()

    def test_add_and_count(self):
        collector = SemanticErrorCollector()
        error = collector.add(SemanticErrorKind.DUPLICATE_DEFINITION,
                              "'f' is already defined in this scope", Span.at(4, 1))
        assert collector.has_errors()
        assert collector.error_count() == 1
        assert collector.errors == [error]

    def test_raise_if_errors(self):
        collector = SemanticErrorCollector()
        collector.add(SemanticErrorKind.UNSUPPORTED_FEATURE, "goto is not supported",
                      Span.at(1, 1))
        collector.add(SemanticErrorKind.INVALID_OPERATION, "'x' is not a function",
                      Span.at(2, 1))
        with pytest.raises(SemanticErrors) as excinfo:
            collector.raise_if_errors()
        assert len(excinfo.value) == 2

    def test_clear(self):
        collector = SemanticErrorCollector()
        collector.add(SemanticErrorKind.TYPE_MISMATCH, "x", Span.at(1, 1))
        collector.clear()
        assert not collector.has_errors()

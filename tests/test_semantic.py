# =============================================================================
# test_semantic.py - Semantic Analyzer Unit Tests
# =============================================================================
# Tests for name resolution, type checking and the unsupported-construct
# checks of the Crusty semantic analyzer.
#
# Test coverage includes:
#   - Scopes, shadowing and duplicate definitions
#   - Type checking of declarations, returns, calls and operators
#   - Mutability of let bindings and parameters
#   - Loop and switch control flow rules
#   - goto, union and #include rejection
#   - Statics, constants, extern blocks and struct methods
#   - Struct initializers, nested functions and error propagation
#   - Error collection (every fault reported, in source order)
# =============================================================================

import pytest

from crusty.ast import ReturnStatement
from crusty.errors import SemanticErrorKind, SemanticErrors, Span
from crusty.lexer import tokenize
from crusty.parser import parse
from crusty.semantic import (
    DuplicateSymbolError,
    SemanticAnalyzer,
    Symbol,
    SymbolKind,
    SymbolTable,
    analyze,
)
from crusty.types import TYPE_INT


# =============================================================================
# Helper Functions
# =============================================================================

def analyze_source(source: str):
    """Helper to lex, parse and analyze source, returning the program."""
    return analyze(parse(tokenize(source)))


def errors_of(source: str) -> list:
    """Analyze source that must fail, returning the collected errors."""
    with pytest.raises(SemanticErrors) as excinfo:
        analyze_source(source)
    return excinfo.value.errors


def single_error(source: str):
    errors = errors_of(source)
    assert len(errors) == 1, [str(e) for e in errors]
    return errors[0]


# =============================================================================
# Valid Programs
# =============================================================================

class TestValidPrograms:
    """Programs that must analyze without errors."""

    def test_add_function(self):
        analyze_source("static int add(int a, int b) { return a + b; }")

    def test_use_before_definition(self):
        analyze_source("int main() { return helper(); }\nint helper() { return 1; }")

    def test_shadowing_in_nested_block(self):
        analyze_source("void f() { let x = 1; { let x = true; } }")

    def test_typedef_alias_resolves(self):
        analyze_source("typedef int Meters;\nvoid f() { Meters m = 5; let n: int = m; }")

    def test_deferred_let_initialisation(self):
        analyze_source("void f() { let x: int; x = 2; }")

    def test_deferred_let_assigned_on_each_branch(self):
        analyze_source(
            "void f(bool c) { let x: int; if (c) { x = 1; } else { x = 2; } }"
        )

    def test_deferred_let_assigned_in_each_case(self):
        analyze_source(
            "void f(int n) { let x: int; "
            "switch (n) { case 1: x = 1; break; case 2: x = 2; break; default: x = 3; } }"
        )

    def test_deferred_let_declared_inside_loop(self):
        analyze_source("void f() { while (true) { let x: int; x = 1; break; } }")

    def test_var_is_mutable(self):
        analyze_source("void f() { var x = 1; x = 2; x += 3; x++; }")

    def test_c_declaration_is_mutable(self):
        analyze_source("void f() { int x = 1; x = 2; }")

    def test_null_pointer(self):
        analyze_source("void f() { int* p = NULL; }")

    def test_struct_fields(self):
        analyze_source("struct P { int x; int y; }\nint f(P p) { return p.x + p.y; }")

    def test_pointer_field_access(self):
        analyze_source("struct P { int x; }\nint f(*P p) { return p->x; }")

    def test_enum_variant_path(self):
        analyze_source("enum Color { Red, Green }\nvoid f() { let c = Color::Green; }")

    def test_namespace_member_call(self):
        analyze_source(
            "namespace geo { int zero() { return 0; } }\n"
            "int main() { return geo::zero(); }"
        )

    def test_for_in_over_range(self):
        analyze_source("void f() { for (i in 0..10) { let j: int = i; } }")

    def test_c_for_loop(self):
        analyze_source("int f() { var s = 0; for (int i = 0; i < 10; i++) { s += i; } return s; }")

    def test_labeled_loops(self):
        analyze_source(
            "void f() { .outer: loop { while (true) { continue .outer; } break .outer; } }"
        )

    def test_switch_with_trailing_breaks(self):
        analyze_source(
            "void f(int x) { switch (x) { case 1: case 2: break; default: break; } }"
        )

    def test_loop_inside_switch_may_break(self):
        analyze_source(
            "void f(int x) { switch (x) { case 1: while (true) { break; } break; } }"
        )

    def test_defined_macro(self):
        analyze_source("#define __MAX__(a, b) a\nvoid f() { __MAX__(1, 2); }")

    def test_library_calls_are_unchecked(self):
        analyze_source(
            "#use std.collections.HashMap\n"
            "void f() { var m = @HashMap->new(); m.insert(1, 2); println!(\"{}\", 1); }"
        )

    def test_casts(self):
        analyze_source("void f() { let x = 3; let y = (float)x; let z = (i64)y; }")

    def test_suffixed_literal(self):
        analyze_source("void f() { let x: i64 = 5i64; let y: i64 = 5; }")

    def test_map_lookup(self):
        analyze_source(
            "#use std.collections.HashMap\n"
            "bool f(HashMap<int, bool> m, int k) { return m[k]; }\n"
            "int g(&HashMap<String, int> m) { return m[\"total\"]; }"
        )

    def test_vec_index_yields_element_type(self):
        analyze_source("bool f(Vec<bool> v) { return v[0]; }")


class TestAnnotations:
    """The analyzer annotates but never reshapes the tree."""

    def test_returns_same_program(self):
        program = parse(tokenize("int f(int a) { return a; }"))
        assert analyze(program) is program

    def test_resolved_types(self):
        program = analyze_source("int f(int a) { return a; }")
        ret = program.items[0].body.statements[0]
        assert isinstance(ret, ReturnStatement)
        assert ret.value.resolved_type == TYPE_INT
        assert ret.value.symbol.kind == SymbolKind.PARAMETER

    def test_annotated_tree_equals_parsed_tree(self):
        source = "int f(int a) { let b = a * 2; return b; }"
        assert analyze_source(source) == parse(tokenize(source))

    def test_analyzer_is_reusable(self):
        analyzer = SemanticAnalyzer()
        with pytest.raises(SemanticErrors):
            analyzer.analyze(parse(tokenize("void f() { x; }")))
        analyzer.analyze(parse(tokenize("void f() { let x = 1; }")))


# =============================================================================
# Undefined Names
# =============================================================================

class TestUndefinedNames:
    """Tests for undefined variables, types and macros."""

    def test_undefined_variable_location(self):
        """Undefined 'x' is reported at its exact span with a hint."""
        error = single_error("void f() {\n    var y = 0;\n    x = y;\n}")
        assert error.kind == SemanticErrorKind.UNDEFINED_VARIABLE
        assert error.message == "undefined variable 'x'"
        assert error.span == Span.at(3, 5)
        assert error.hint == "declare 'x' with let or var before using it"

    def test_every_undefined_variable_reported(self):
        errors = errors_of("int f() { return a + b + c; }")
        assert [e.message for e in errors] == [
            "undefined variable 'a'",
            "undefined variable 'b'",
            "undefined variable 'c'",
        ]

    def test_scope_ends_with_block(self):
        error = single_error("void f() { { let x = 1; } x; }")
        assert error.message == "undefined variable 'x'"

    def test_undefined_type(self):
        error = single_error("void f(Foo x) { }")
        assert error.message == "undefined type 'Foo'"

    def test_undefined_macro(self):
        error = single_error("void f() { __MAX__(1, 2); }")
        assert error.message == "undefined macro '__MAX__'"

    def test_unknown_enum_variant(self):
        error = single_error("enum Color { Red }\nvoid f() { let c = Color::Blue; }")
        assert error.kind == SemanticErrorKind.INVALID_OPERATION
        assert error.message == "enum 'Color' has no variant 'Blue'"


# =============================================================================
# Type Checking
# =============================================================================

class TestTypeMismatches:
    """Tests for type mismatch errors."""

    def test_non_bool_if_condition(self):
        error = single_error("void f() { if (1) { } }")
        assert error.kind == SemanticErrorKind.TYPE_MISMATCH
        assert error.message == "if condition must be bool, found integer literal"

    def test_non_bool_while_condition(self):
        error = single_error("void f(int x) { while (x) { } }")
        assert error.message == "while condition must be bool, found int"

    def test_declaration_mismatch(self):
        error = single_error("void f() { let x: int = true; }")
        assert error.message == "type mismatch in declaration of 'x': expected int, found bool"

    def test_width_mismatch(self):
        error = single_error("void f() { let x: i64 = 5i32; }")
        assert error.message == "type mismatch in declaration of 'x': expected i64, found i32"

    def test_return_mismatch(self):
        error = single_error("int f() { return true; }")
        assert error.message == "return type mismatch: expected int, found bool"

    def test_missing_return_value(self):
        error = single_error("int f() { return; }")
        assert error.message == "missing return value: function 'f' returns int"

    def test_void_function_returning_value(self):
        error = single_error("void f() { return 1; }")
        assert error.message == "void function 'f' cannot return a value of type integer literal"

    def test_argument_count(self):
        error = single_error("int add(int a, int b) { return a + b; }\nvoid g() { add(1); }")
        assert error.message == "function 'add' expects 2 argument(s), found 1"

    def test_argument_type(self):
        error = single_error("int add(int a, int b) { return a + b; }\nvoid g() { add(1, true); }")
        assert error.message == "argument 2 of 'add': expected int, found bool"

    def test_logical_operands(self):
        error = single_error("void f() { let b = 1 && true; }")
        assert error.message == (
            "operator '&&' requires bool operands, found integer literal and bool"
        )

    def test_array_index_type(self):
        error = single_error("void f() { int a[3]; let v = a[true]; }")
        assert error.message == "array index must be an integer, found bool"

    def test_map_index_yields_value_type(self):
        error = single_error(
            "#use std.collections.HashMap\n"
            "int f(HashMap<int, bool> m) { return m[1]; }"
        )
        assert error.message == "return type mismatch: expected int, found bool"

    def test_map_key_type(self):
        error = single_error(
            "#use std.collections.HashMap\n"
            "bool f(HashMap<int, bool> m) { return m[true]; }"
        )
        assert error.message == "map key must be int, found bool"


# =============================================================================
# Invalid Operations
# =============================================================================

class TestInvalidOperations:
    """Tests for invalid-operation errors."""

    def test_call_non_function(self):
        error = single_error("void f() { let x = 1; x(); }")
        assert error.kind == SemanticErrorKind.INVALID_OPERATION
        assert error.message == "'x' is not a function"

    def test_dereference_non_pointer(self):
        error = single_error("void f() { let x = 1; let y = *x; }")
        assert error.message == "cannot dereference non-pointer type int"

    def test_assign_immutable_let(self):
        error = single_error("void f() { let x = 1; x = 2; }")
        assert error.kind == SemanticErrorKind.INVALID_OPERATION
        assert error.message == "cannot assign to immutable variable 'x'"

    def test_deferred_let_assigned_twice(self):
        error = single_error("void f() { let x: int; x = 1; x = 2; }")
        assert error.message == "cannot assign to immutable variable 'x'"

    def test_deferred_let_assigned_after_one_branch(self):
        error = single_error("void f(bool c) { let x: int; if (c) { x = 1; } x = 2; }")
        assert error.message == "cannot assign to immutable variable 'x'"
        assert error.span.start.column == 48

    def test_deferred_let_assigned_twice_in_one_branch(self):
        error = single_error(
            "void f(bool c) { let x: int; if (c) { x = 1; x = 2; } else { x = 3; } }"
        )
        assert error.span.start.column == 46

    def test_deferred_let_assigned_inside_loop(self):
        error = single_error("void f() { let x: int; while (true) { x = 1; } }")
        assert error.message == "cannot assign to immutable variable 'x' inside a loop"
        assert error.hint == "declare 'x' with var"

    def test_assign_parameter(self):
        error = single_error("void f(int a) { a = 1; }")
        assert error.message == "cannot assign to parameter 'a'"

    def test_missing_struct_field(self):
        error = single_error("struct P { int x; }\nvoid f() { P p; let z = p.z; }")
        assert error.message == "struct 'P' has no field 'z'"

    def test_invalid_cast(self):
        error = single_error("struct S { int x; }\nvoid f() { S s; let y = (int)s; }")
        assert error.message == "cannot cast S to int"

    def test_break_outside_loop(self):
        error = single_error("void f() { break; }")
        assert error.message == "'break' outside of a loop"

    def test_continue_outside_loop(self):
        error = single_error("void f() { continue; }")
        assert error.message == "'continue' outside of a loop"

    def test_unknown_loop_label(self):
        error = single_error("void f() { while (true) { break .outer; } }")
        assert error.message == "unknown loop label '.outer'"


# =============================================================================
# Duplicate Definitions
# =============================================================================

class TestDuplicates:
    """Tests for duplicate definition errors."""

    def test_duplicate_local(self):
        error = single_error("void f() { let x = 1; let x = 2; }")
        assert error.kind == SemanticErrorKind.DUPLICATE_DEFINITION
        assert error.message == "'x' is already defined in this scope"

    def test_duplicate_function(self):
        error = single_error("void f() { }\nvoid f() { }")
        assert error.kind == SemanticErrorKind.DUPLICATE_DEFINITION
        assert error.span.start.line == 2

    def test_duplicate_parameter(self):
        error = single_error("void f(int a, int a) { }")
        assert error.message == "'a' is already defined in this scope"

    def test_duplicate_struct_field(self):
        error = single_error("struct P { int x; int x; }")
        assert error.message == "duplicate field 'x' in struct 'P'"


# =============================================================================
# Unsupported Constructs
# =============================================================================

class TestUnsupported:
    """Constructs with no target mapping are rejected here."""

    def test_goto(self):
        error = single_error("void f() { goto done; }")
        assert error.kind == SemanticErrorKind.UNSUPPORTED_FEATURE
        assert error.message == "goto is not supported (goto done)"

    def test_union(self):
        error = single_error("union U { int i; float f; }")
        assert error.kind == SemanticErrorKind.UNSUPPORTED_FEATURE
        assert error.message == "union 'U' is not supported"

    def test_include(self):
        error = single_error("#include <stdio.h>")
        assert error.message == "#include \"stdio.h\" is not supported"

    def test_non_trailing_switch_break(self):
        error = single_error(
            "void f(int x) { switch (x) { case 1: if (x > 0) { break; } default: return; } }"
        )
        assert error.kind == SemanticErrorKind.UNSUPPORTED_FEATURE
        assert error.message == "'break' inside a switch case must be its last statement"

    def test_mixed_faults_all_reported(self):
        errors = errors_of("void f() {\n    goto out;\n    y = 1;\n}\nunion U { int i; }")
        kinds = [e.kind for e in errors]
        assert SemanticErrorKind.UNSUPPORTED_FEATURE in kinds
        assert SemanticErrorKind.UNDEFINED_VARIABLE in kinds
        assert len(errors) == 3


# =============================================================================
# Items: Statics, Constants and Extern Blocks
# =============================================================================

class TestItems:
    """Tests for item-level constants, statics and foreign functions."""

    def test_static_read_and_written(self):
        analyze_source("static int counter = 0;\nvoid tick() { counter += 1; counter++; }")

    def test_const_in_expression(self):
        analyze_source("const MAX: int = 10;\nbool f(int n) { return n < MAX; }")

    def test_static_symbol_kind(self):
        program = analyze_source("static int counter = 0;\nint f() { return counter; }")
        ret = program.items[1].body.statements[0]
        assert ret.value.symbol.kind == SymbolKind.STATIC
        assert ret.value.resolved_type == TYPE_INT

    def test_const_type_mismatch(self):
        error = single_error("const MAX: int = true;")
        assert error.kind == SemanticErrorKind.TYPE_MISMATCH
        assert error.message == "type mismatch in declaration of 'MAX': expected int, found bool"

    def test_assign_immutable_static(self):
        error = single_error("let origin: int = 0;\nvoid f() { origin = 1; }")
        assert error.kind == SemanticErrorKind.INVALID_OPERATION
        assert error.message == "cannot assign to immutable static 'origin'"
        assert error.hint == "declare 'origin' with var"

    def test_assign_into_immutable_static_field(self):
        error = single_error("struct P { int x; }\nlet origin: P = { .x = 0 };\n"
                             "void f() { origin.x = 5; }")
        assert error.message == "cannot assign to a part of immutable static 'origin'"

    def test_borrow_mutable_static(self):
        error = single_error("static int counter = 0;\nvoid f() { let p = &counter; }")
        assert error.message == "cannot borrow mutable static 'counter'"
        assert error.hint == "read it into a local first"

    def test_borrow_immutable_static(self):
        analyze_source("let origin: int = 0;\nvoid f() { let p = &origin; }")

    def test_extern_call(self):
        program = analyze_source('extern "C" { int abs(int x); }\nint f() { return abs(-3); }')
        ret = program.items[1].body.statements[0]
        assert ret.value.callee.symbol.foreign

    def test_extern_argument_type(self):
        error = single_error('extern "C" { int abs(int x); }\nvoid f() { abs(true); }')
        assert error.message == "argument 1 of 'abs': expected int, found bool"

    def test_extern_undefined_type(self):
        error = single_error("extern { Handle open(int fd); }")
        assert error.message == "undefined type 'Handle'"


# =============================================================================
# Struct Methods and Initializers
# =============================================================================

class TestStructMethods:
    """Tests for methods declared inside struct bodies."""

    COUNTER = """
    struct Counter {
        int count;
        int get(&self) { return self.count; }
        void bump(&var self) { self.count += 1; }
        Counter consume(self) { return self; }
        static Counter start() { return (Counter){ .count = 0 }; }
    }
    """

    def test_methods_check_cleanly(self):
        analyze_source(self.COUNTER)

    def test_calls(self):
        analyze_source(
            self.COUNTER
            + "int f() { var c = @Counter->start(); c.bump(); let n: int = c.get(); return n; }"
        )

    def test_call_through_reference(self):
        analyze_source(self.COUNTER + "int f(&Counter c) { return c.get(); }")

    def test_method_result_type(self):
        error = single_error(self.COUNTER + "bool f(Counter c) { return c.get(); }")
        assert error.message == "return type mismatch: expected bool, found int"

    def test_method_argument_count(self):
        error = single_error(self.COUNTER + "void f(Counter c) { c.bump(1); }")
        assert error.message == "method 'Counter.bump' expects 0 argument(s), found 1"

    def test_unknown_method(self):
        error = single_error(self.COUNTER + "void f(Counter c) { c.reset(); }")
        assert error.kind == SemanticErrorKind.INVALID_OPERATION
        assert error.message == "struct 'Counter' has no method 'reset'"

    def test_unknown_associated_function(self):
        error = single_error(self.COUNTER + "void f() { @Counter->make(); }")
        assert error.message == "struct 'Counter' has no method 'make'"

    def test_associated_function_on_value(self):
        error = single_error(self.COUNTER + "void f(Counter c) { c.start(); }")
        assert error.message == "'Counter.start' takes no self and cannot be called on a value"
        assert error.hint == "call it as @Counter->start(...)"

    def test_field_write_through_shared_self(self):
        error = single_error("struct P { int x; void set(&self, int v) { self.x = v; } }")
        assert error.message == "cannot assign to a field of 'self' taken as &Self"
        assert error.hint == "take '&var self' instead"

    def test_duplicate_method(self):
        error = single_error("struct P { int x; void f(&self) { } void f(&self) { } }")
        assert error.kind == SemanticErrorKind.DUPLICATE_DEFINITION
        assert error.message == "duplicate method 'f' in struct 'P'"


class TestStructInitializers:
    """Tests for ``{ .field = value }`` initializers."""

    POINT = "struct P { int x; int y; }\n"

    def test_declared_type(self):
        analyze_source(self.POINT + "void f() { P p = { .x = 1, .y = 2 }; }")

    def test_type_from_return(self):
        analyze_source(self.POINT + "P f() { return { .y = 2, .x = 1 }; }")

    def test_type_from_argument(self):
        analyze_source(self.POINT + "int g(P p) { return p.x; }\n"
                       "int f() { return g({ .x = 1, .y = 2 }); }")

    def test_compound_literal_field_access(self):
        program = analyze_source(self.POINT + "int f() { return (P){ .x = 1, .y = 2 }.x; }")
        ret = program.items[1].body.statements[0]
        assert ret.value.resolved_type == TYPE_INT

    def test_missing_field(self):
        error = single_error(self.POINT + "void f() { P p = { .x = 1 }; }")
        assert error.kind == SemanticErrorKind.INVALID_OPERATION
        assert error.message == "missing field 'y' in initializer of struct 'P'"

    def test_missing_fields(self):
        error = single_error(self.POINT + "void f() { P p = (P){}; }")
        assert error.message == "missing fields 'x', 'y' in initializer of struct 'P'"

    def test_unknown_field(self):
        error = single_error(self.POINT + "void f() { P p = { .x = 1, .y = 2, .z = 3 }; }")
        assert error.message == "struct 'P' has no field 'z'"

    def test_field_initialized_twice(self):
        error = single_error(self.POINT + "void f() { P p = { .x = 1, .y = 2, .x = 3 }; }")
        assert error.kind == SemanticErrorKind.DUPLICATE_DEFINITION
        assert error.message == "field 'x' is initialized more than once"

    def test_field_type(self):
        error = single_error(self.POINT + "void f() { P p = { .x = 1, .y = true }; }")
        assert error.kind == SemanticErrorKind.TYPE_MISMATCH
        assert error.message == "type mismatch in field 'y' of 'P': expected int, found bool"

    def test_cannot_infer_type(self):
        error = single_error(self.POINT + "void f() { let p = { .x = 1, .y = 2 }; }")
        assert error.message == "cannot infer the struct type of this initializer"
        assert error.hint == "write the type as a cast, e.g. (Point){ .x = 1 }"

    def test_literal_type_not_a_struct(self):
        error = single_error("void f() { let n = (int){ .x = 1 }; }")
        assert error.message == "'int' is not a struct"

    def test_expected_type_not_a_struct(self):
        error = single_error("int f() { return { .x = 1 }; }")
        assert error.kind == SemanticErrorKind.TYPE_MISMATCH
        assert error.message == "struct initializer used where int is expected"


# =============================================================================
# Nested Functions
# =============================================================================

class TestNestedFunctions:
    """Tests for functions defined inside function bodies."""

    def test_plain_nested_function(self):
        program = analyze_source(
            "int outer() { int twice(int a) { return a * 2; } return twice(4); }"
        )
        nested = program.items[0].body.statements[0]
        assert nested.captures == []
        assert not nested.mutates_captures

    def test_captures_outer_local(self):
        program = analyze_source(
            "int outer(int step) { int base = 10; "
            "int add(int a) { return a + base + step; } return add(1); }"
        )
        nested = program.items[0].body.statements[1]
        assert [c.name for c in nested.captures] == ["base", "step"]
        assert not nested.mutates_captures

    def test_globals_are_not_captured(self):
        program = analyze_source(
            "static int total = 0;\nvoid f() { void add(int n) { total += n; } add(1); }"
        )
        assert program.items[1].body.statements[0].captures == []

    def test_mutable_capture(self):
        program = analyze_source(
            "int f() { var total = 0; void add(int n) { total += n; } "
            "add(1); add(2); return total; }"
        )
        assert program.items[0].body.statements[1].mutates_captures

    def test_calling_a_mutating_closure_mutates(self):
        program = analyze_source(
            "void f() { var total = 0; void add(int n) { total += n; } "
            "void twice() { add(1); add(1); } twice(); }"
        )
        statements = program.items[0].body.statements
        assert [c.name for c in statements[2].captures] == ["add"]
        assert statements[2].mutates_captures

    def test_nested_argument_type(self):
        error = single_error("void f() { int g(int a) { return a; } g(true); }")
        assert error.message == "argument 1 of 'g': expected int, found bool"

    def test_nested_return_type(self):
        error = single_error("void f() { int g() { return true; } }")
        assert error.message == "return type mismatch: expected int, found bool"

    def test_outer_return_type_restored(self):
        analyze_source("int f() { void g() { return; } return 1; }")

    def test_assign_captured_immutable(self):
        error = single_error("void f() { let x = 1; void g() { x = 2; } }")
        assert error.kind == SemanticErrorKind.INVALID_OPERATION
        assert error.message == "cannot assign to immutable variable 'x' from nested function 'g'"
        assert error.hint == "declare 'x' with var"

    def test_recursive_nested_function(self):
        analyze_source("int f() { int fact(int n) { return n < 2 ? 1 : n * fact(n - 1); } "
                       "return fact(5); }")

    def test_recursive_capturing_function(self):
        error = single_error(
            "int f() { int limit = 3; int count(int n) { return n < limit ? count(n + 1) : n; } "
            "return count(0); }"
        )
        assert error.message == (
            "nested function 'count' cannot call itself because it captures 'limit'"
        )
        assert error.hint == "pass the captured values as parameters"

    def test_nested_name_is_local(self):
        error = single_error("void f() { void g() { } }\nvoid h() { g(); }")
        assert error.message == "undefined variable 'g'"


# =============================================================================
# Error Propagation and Type Arguments
# =============================================================================

class TestErrorPropagation:
    """Tests for the ``?`` and ``!`` propagation operators."""

    def test_question_mark(self):
        program = analyze_source(
            "Result<int, String> f(Result<int, String> r) { let v: int = r?; return r; }"
        )
        let = program.items[0].body.statements[0]
        assert let.initializer.resolved_type == TYPE_INT

    def test_bang(self):
        analyze_source("Option<int> f(Option<int> o) { let v: int = o!; return o; }")

    def test_through_reference(self):
        analyze_source("Option<int> f(&Option<int> o) { let v = o?; return NULL; }")

    def test_not_a_result(self):
        error = single_error("Option<int> f(int x) { let v = x?; return NULL; }")
        assert error.kind == SemanticErrorKind.TYPE_MISMATCH
        assert error.message == "error propagation requires a Result or Option, found int"

    def test_from_void_function(self):
        error = single_error("void f(Result<int, String> r) { let v = r?; }")
        assert error.kind == SemanticErrorKind.INVALID_OPERATION
        assert error.message == "cannot propagate errors from function 'f' returning void"
        assert error.hint == "declare the return type as Result or Option"

    def test_from_int_function(self):
        error = single_error("int f(Result<int, String> r) { return r?; }")
        assert error.message == "cannot propagate errors from function 'f' returning int"

    def test_option_into_result(self):
        error = single_error(
            "Result<int, String> f(Option<int> o, Result<int, String> r) "
            "{ let v = o?; return r; }"
        )
        assert error.message == (
            "cannot propagate Option from function 'f' returning Result<int, String>"
        )


class TestTypeArguments:
    """Tests for explicit type arguments on type-scoped calls."""

    def test_known_type_argument(self):
        analyze_source("void f() { var v = @Vec<int>->new(); }")

    def test_unknown_type_argument(self):
        error = single_error("void f() { var v = @Vec<Widget>->new(); }")
        assert error.message == "undefined type 'Widget'"


# =============================================================================
# Symbol Table Tests
# =============================================================================

class TestSymbolTable:
    """Tests for the scope stack."""

    def _symbol(self, name: str) -> Symbol:
        return Symbol(name, SymbolKind.VARIABLE, TYPE_INT, Span.at(1, 1))

    def test_lookup_searches_outwards(self):
        table = SymbolTable()
        table.insert(self._symbol("x"))
        table.enter_scope()
        assert table.lookup("x") is not None
        assert table.lookup_in_current_scope("x") is None

    def test_exit_scope_forgets_names(self):
        table = SymbolTable()
        table.enter_scope()
        table.insert(self._symbol("y"))
        table.exit_scope()
        assert table.lookup("y") is None

    def test_global_scope_is_never_closed(self):
        table = SymbolTable()
        table.exit_scope()
        assert table.depth == 1

    def test_duplicate_insert(self):
        table = SymbolTable()
        first = table.insert(self._symbol("x"))
        with pytest.raises(DuplicateSymbolError) as excinfo:
            table.insert(self._symbol("x"))
        assert excinfo.value.existing is first

    def test_lookup_with_depth(self):
        table = SymbolTable()
        table.insert(self._symbol("x"))
        table.enter_scope()
        table.insert(self._symbol("y"))
        assert table.lookup_with_depth("x")[1] == 1
        assert table.lookup_with_depth("y")[1] == 2
        assert table.lookup_with_depth("z") == (None, 0)

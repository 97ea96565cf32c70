# =============================================================================
# test_parser.py - Parser Unit Tests
# =============================================================================
# Tests for the Crusty recursive descent parser.
#
# Test coverage includes:
#   - Items: functions, structs and methods, enums, typedefs, namespaces,
#     constants, statics, extern blocks, directives
#   - Statements: declarations, nested functions, control flow, switch,
#     labeled loops
#   - Expressions: precedence, casts, ranges, dialect call forms, struct
#     initializers, error propagation
#   - Error reporting with expected/found descriptions
# =============================================================================

import pytest

from crusty.ast import (
    ASTPrinter,
    ASTVisitor,
    BinaryExpression,
    BinaryOp,
    BreakStatement,
    CallExpression,
    CastExpression,
    ConstItem,
    ConstStatement,
    EnumDef,
    ErrorPropagation,
    ExpressionStatement,
    ExternBlock,
    FieldAccess,
    ForInStatement,
    ForStatement,
    FunctionDef,
    GotoStatement,
    Identifier,
    IfStatement,
    ImportItem,
    IncludeDirective,
    IndexExpression,
    LetStatement,
    Literal,
    LiteralKind,
    LoopStatement,
    MacroDefinition,
    MacroInvocation,
    MethodCallExpression,
    NamespaceDef,
    NestedFunction,
    RangeExpression,
    ReturnStatement,
    SizeOfExpression,
    StaticItem,
    StructDef,
    StructInit,
    SwitchStatement,
    TernaryExpression,
    TupleLiteral,
    TypedefDef,
    TypeScopedCall,
    UnaryExpression,
    UnaryOp,
    UnionDef,
    VarStatement,
    Visibility,
    WhileStatement,
)
from crusty.errors import ParseError, Position, Span
from crusty.lexer import Token, TokenType, tokenize
from crusty.parser import Parser, is_macro_name, parse
from crusty.types import (
    PRIMITIVE_TYPES,
    ArrayType,
    GenericType,
    NamedType,
    PointerType,
    ReferenceType,
)


# =============================================================================
# Helper Functions
# =============================================================================

def parse_source(source: str):
    """Helper to lex and parse a complete compilation unit."""
    return parse(tokenize(source))


def parse_body(statements: str) -> list:
    """Parse statements inside a throwaway function and return them."""
    program = parse_source(f"void f() {{\n{statements}\n}}")
    return program.items[0].body.statements


def parse_expr(expression: str):
    """Parse a single expression statement and return its expression."""
    statement = parse_body(f"{expression};")[0]
    assert isinstance(statement, ExpressionStatement)
    return statement.expression


INT = PRIMITIVE_TYPES["int"]


# =============================================================================
# Item Tests
# =============================================================================

class TestFunctions:
    """Tests for function definitions."""

    def test_simple_function(self):
        program = parse_source("int add(int a, int b) { return a + b; }")
        assert len(program.items) == 1
        func = program.items[0]
        assert isinstance(func, FunctionDef)
        assert func.name == "add"
        assert func.visibility == Visibility.PUBLIC
        assert [p.name for p in func.params] == ["a", "b"]
        assert func.params[0].param_type == INT
        assert func.return_type == INT

    def test_void_return_type_is_none(self):
        func = parse_source("void greet() { }").items[0]
        assert func.return_type is None
        assert func.body.statements == []

    def test_void_parameter_list(self):
        func = parse_source("int main(void) { return 0; }").items[0]
        assert func.params == []

    def test_static_is_private(self):
        func = parse_source("static int helper() { return 1; }").items[0]
        assert func.visibility == Visibility.PRIVATE

    def test_doc_comments(self):
        source = "/// Adds two numbers.\nint add(int a, int b) { return a + b; }"
        func = parse_source(source).items[0]
        assert func.doc_comments == ["Adds two numbers."]

    def test_pointer_and_reference_params(self):
        func = parse_source("void f(int* p, &var Point q, &int r) { }").items[0]
        assert func.params[0].param_type == PointerType(INT)
        assert func.params[1].param_type == ReferenceType(NamedType("Point"), mutable=True)
        assert func.params[2].param_type == ReferenceType(INT)

    def test_function_span(self):
        func = parse_source("int f() {}").items[0]
        assert func.span == Span(Position(1, 1), Position(1, 11))

    def test_empty_program(self):
        program = parse_source("")
        assert program.items == []


class TestTypeItems:
    """Tests for struct, enum, union and typedef items."""

    def test_struct(self):
        struct = parse_source("struct Point { int x; int y; };").items[0]
        assert isinstance(struct, StructDef)
        assert struct.name == "Point"
        assert [(f.name, f.field_type) for f in struct.fields] == [("x", INT), ("y", INT)]

    def test_struct_array_field(self):
        struct = parse_source("struct Buf { char data[16]; }").items[0]
        assert struct.fields[0].field_type == ArrayType(PRIMITIVE_TYPES["char"], 16)

    def test_static_struct(self):
        struct = parse_source("static struct Hidden { int x; }").items[0]
        assert struct.visibility == Visibility.PRIVATE

    def test_enum_with_discriminants(self):
        enum = parse_source("enum Color { Red, Green = 5, Blue = -1, }").items[0]
        assert isinstance(enum, EnumDef)
        assert [(v.name, v.value) for v in enum.variants] == [
            ("Red", None), ("Green", 5), ("Blue", -1),
        ]

    def test_union_is_parsed(self):
        union = parse_source("union U { int i; float f; };").items[0]
        assert isinstance(union, UnionDef)
        assert len(union.fields) == 2

    def test_typedef(self):
        typedef = parse_source("typedef int Meters;").items[0]
        assert isinstance(typedef, TypedefDef)
        assert typedef.name == "Meters"
        assert typedef.target == INT

    def test_namespace(self):
        namespace = parse_source("namespace geo { int zero() { return 0; } }").items[0]
        assert isinstance(namespace, NamespaceDef)
        assert namespace.name == "geo"
        assert isinstance(namespace.items[0], FunctionDef)


class TestItemDeclarations:
    """Tests for item-level constants, statics and extern blocks."""

    def test_static_counter(self):
        item = parse_source("static int counter = 0;").items[0]
        assert isinstance(item, StaticItem)
        assert item.name == "counter"
        assert item.visibility == Visibility.PRIVATE
        assert item.declared_type == INT
        assert item.mutable
        assert item.value.value == 0

    def test_c_style_global_is_public_and_mutable(self):
        item = parse_source("int total = 1 + 2;").items[0]
        assert isinstance(item, StaticItem)
        assert item.visibility == Visibility.PUBLIC
        assert item.mutable
        assert isinstance(item.value, BinaryExpression)

    def test_global_array(self):
        item = parse_source("int table[3] = [1, 2, 3];").items[0]
        assert item.declared_type == ArrayType(INT, 3)

    def test_let_global_is_immutable(self):
        item = parse_source("let origin: int = 0;").items[0]
        assert isinstance(item, StaticItem)
        assert not item.mutable

    def test_var_global_with_leading_type(self):
        item = parse_source("var float scale = 1.5;").items[0]
        assert item.mutable
        assert item.declared_type == PRIMITIVE_TYPES["float"]

    def test_const_item(self):
        item = parse_source("const MAX: int = 10;").items[0]
        assert isinstance(item, ConstItem)
        assert item.name == "MAX"
        assert item.declared_type == INT
        assert item.visibility == Visibility.PUBLIC

    def test_const_item_with_leading_type(self):
        item = parse_source("static const int LIMIT = 3;").items[0]
        assert isinstance(item, ConstItem)
        assert item.visibility == Visibility.PRIVATE
        assert item.declared_type == INT

    def test_global_struct_initializer_takes_declared_type(self):
        program = parse_source("struct P { int x; } P origin = { .x = 0 };")
        assert program.items[1].value.struct_type == NamedType("P")

    def test_extern_block(self):
        block = parse_source('extern "C" { int abs(int x); void exit(int code); }').items[0]
        assert isinstance(block, ExternBlock)
        assert block.abi == "C"
        assert [f.name for f in block.functions] == ["abs", "exit"]
        assert block.functions[0].return_type == INT
        assert block.functions[1].return_type is None
        assert block.functions[0].params[0].param_type == INT

    def test_extern_block_default_abi(self):
        block = parse_source("extern { float sqrt(float x); }").items[0]
        assert block.abi == "C"
        assert block.visibility == Visibility.PUBLIC

    def test_global_without_value(self):
        with pytest.raises(ParseError) as excinfo:
            parse_source("int x;")
        assert excinfo.value.message == "expected '(' or '=' after 'x'"
        assert excinfo.value.expected == ["'('", "'['", "'='"]
        assert excinfo.value.hint == "item-level variables need an initial value"

    def test_sized_global_without_value(self):
        with pytest.raises(ParseError) as excinfo:
            parse_source("int x[3];")
        assert excinfo.value.expected == ["'='"]

    def test_untyped_let_global(self):
        with pytest.raises(ParseError) as excinfo:
            parse_source("let x = 1;")
        assert excinfo.value.message == "expected ':' and a type after variable name"
        assert excinfo.value.expected == ["':'"]

    def test_extern_prototype_needs_semicolon(self):
        with pytest.raises(ParseError, match="expected ';' after function prototype"):
            parse_source("extern { int abs(int x) }")

    def test_extern_needs_brace(self):
        with pytest.raises(ParseError) as excinfo:
            parse_source("extern int abs(int x);")
        assert excinfo.value.expected == ["'{'", "string literal"]


class TestStructMethods:
    """Tests for functions defined inside struct bodies."""

    SOURCE = """
    struct Counter {
        int count;
        int get(&self) { return self.count; }
        void bump(&var self) { self.count += 1; }
        Counter consume(self) { return self; }
        static Counter start() { return (Counter){ .count = 0 }; }
    }
    """

    def test_fields_and_methods_are_separate(self):
        struct = parse_source(self.SOURCE).items[0]
        assert [f.name for f in struct.fields] == ["count"]
        assert [m.name for m in struct.methods] == ["get", "bump", "consume", "start"]

    def test_receivers(self):
        get, bump, consume, start = parse_source(self.SOURCE).items[0].methods
        assert get.params[0].name == "self"
        assert get.params[0].param_type == ReferenceType(NamedType("Self"))
        assert bump.params[0].param_type == ReferenceType(NamedType("Self"), mutable=True)
        assert consume.params[0].param_type == NamedType("Self")
        assert start.params == []

    def test_method_visibility(self):
        methods = parse_source(self.SOURCE).items[0].methods
        assert [m.visibility for m in methods] == [Visibility.PUBLIC] * 3 + [Visibility.PRIVATE]

    def test_receiver_then_params(self):
        struct = parse_source("struct P { int x; void set(&mut self, int v) { } }").items[0]
        params = struct.methods[0].params
        assert [p.name for p in params] == ["self", "v"]
        assert params[0].param_type.mutable

    def test_self_only_first(self):
        with pytest.raises(ParseError):
            parse_source("struct P { void f(int a, &self) { } }")


class TestDirectives:
    """Tests for # directives."""

    def test_define_with_params(self):
        macro = parse_source("#define __MAX__(a, b) ((a) > (b) ? (a) : (b))").items[0]
        assert isinstance(macro, MacroDefinition)
        assert macro.name == "__MAX__"
        assert macro.params == ["a", "b"]
        assert macro.body[0].type == TokenType.LPAREN
        assert macro.body[-1].type == TokenType.RPAREN

    def test_define_body_ends_at_line_end(self):
        program = parse_source("#define __LIMIT__ 100\nint f() { return 0; }")
        assert [t.text for t in program.items[0].body] == ["100"]
        assert isinstance(program.items[1], FunctionDef)

    def test_define_braced_body(self):
        macro = parse_source("#define __TWICE__(x) { x * 2 }").items[0]
        assert [t.text for t in macro.body] == ["x", "*", "2"]

    def test_define_requires_macro_name(self):
        with pytest.raises(ParseError) as excinfo:
            parse_source("#define MAX 10")
        assert excinfo.value.message == (
            "macro name 'MAX' must have double-underscore prefix and suffix "
            "(e.g., __MACRO_NAME__)"
        )

    def test_use_dotted_path(self):
        item = parse_source("#use std.collections.HashMap;").items[0]
        assert isinstance(item, ImportItem)
        assert item.path == ["std", "collections", "HashMap"]
        assert item.alias is None

    def test_use_with_alias(self):
        item = parse_source("#use std::io as sio").items[0]
        assert item.path == ["std", "io"]
        assert item.alias == "sio"

    def test_include(self):
        assert parse_source("#include <stdio.h>").items[0].path == "stdio.h"
        item = parse_source('#include "local.h"').items[0]
        assert isinstance(item, IncludeDirective)
        assert item.path == "local.h"

    def test_is_macro_name(self):
        assert is_macro_name("__MAX__")
        assert not is_macro_name("MAX")
        assert not is_macro_name("____")


# =============================================================================
# Statement Tests
# =============================================================================

class TestDeclarations:
    """Tests for let, var, const and C-style declarations."""

    def test_let_inferred(self):
        stmt = parse_body("let x = 5;")[0]
        assert isinstance(stmt, LetStatement)
        assert stmt.name == "x"
        assert stmt.declared_type is None
        assert stmt.initializer == Literal(span=stmt.initializer.span,
                                           kind=LiteralKind.INT, value=5)

    def test_let_with_type_annotation(self):
        stmt = parse_body("let x: int = 5;")[0]
        assert stmt.declared_type == INT

    def test_let_with_leading_type(self):
        stmt = parse_body("let int x = 5;")[0]
        assert isinstance(stmt, LetStatement)
        assert stmt.declared_type == INT

    def test_var(self):
        stmt = parse_body("var count = 0;")[0]
        assert isinstance(stmt, VarStatement)

    def test_deferred_let(self):
        stmt = parse_body("let x: int;")[0]
        assert stmt.initializer is None

    def test_const(self):
        stmt = parse_body("const MAX: int = 10;")[0]
        assert isinstance(stmt, ConstStatement)
        assert stmt.declared_type == INT

    def test_c_declaration_is_mutable(self):
        stmt = parse_body("int x = 5;")[0]
        assert isinstance(stmt, VarStatement)
        assert stmt.declared_type == INT

    def test_c_array_declaration(self):
        stmt = parse_body("int values[4];")[0]
        assert stmt.declared_type == ArrayType(INT, 4)

    def test_named_type_declaration(self):
        stmt = parse_body("Point p;")[0]
        assert isinstance(stmt, VarStatement)
        assert stmt.declared_type == NamedType("Point")

    def test_nested_generic_splits_shift(self):
        stmt = parse_body("Vec<Vec<int>> grid = @Vec->new();")[0]
        assert stmt.declared_type == GenericType("Vec", (GenericType("Vec", (INT,)),))

    def test_pointer_declaration(self):
        stmt = parse_body("int* p = NULL;")[0]
        assert stmt.declared_type == PointerType(INT)
        assert stmt.initializer.kind == LiteralKind.NULL


class TestNestedFunctions:
    """Tests for functions defined inside function bodies."""

    def test_nested_function(self):
        program = parse_source("void outer() { int inner(int a) { return a; } }")
        inner = program.items[0].body.statements[0]
        assert isinstance(inner, NestedFunction)
        assert inner.name == "inner"
        assert [p.name for p in inner.params] == ["a"]
        assert inner.return_type == INT
        assert isinstance(inner.body.statements[0], ReturnStatement)

    def test_void_nested_function_then_call(self):
        statements = parse_body("void log() { } log();")
        assert isinstance(statements[0], NestedFunction)
        assert statements[0].return_type is None
        assert isinstance(statements[1].expression, CallExpression)

    def test_named_return_type(self):
        statement = parse_body("Point make(int x) { return (Point){ .x = x }; }")[0]
        assert isinstance(statement, NestedFunction)
        assert statement.return_type == NamedType("Point")

    def test_declaration_is_not_a_function(self):
        statement = parse_body("int inner = 3;")[0]
        assert isinstance(statement, VarStatement)

    def test_prototype_in_body_is_rejected(self):
        with pytest.raises(ParseError, match="expected ';' after declaration"):
            parse_body("int inner(int a);")


class TestStructInitializers:
    """Tests for ``{ .field = value }`` and ``(Type){ ... }``."""

    def test_declaration_with_initializer(self):
        program = parse_source("struct P { int x; } void f() { P p = { .x = 1 }; }")
        declaration = program.items[1].body.statements[0]
        assert isinstance(declaration, VarStatement)
        init = declaration.initializer
        assert isinstance(init, StructInit)
        assert init.struct_type == NamedType("P")
        assert [(f.name, f.value.value) for f in init.fields] == [("x", 1)]

    def test_let_with_type_annotation(self):
        init = parse_body("let p: Point = { .x = 1, .y = 2, };")[0].initializer
        assert init.struct_type == NamedType("Point")
        assert [f.name for f in init.fields] == ["x", "y"]

    def test_untyped_initializer_in_return(self):
        value = parse_body("return { .x = 1 };")[0].value
        assert isinstance(value, StructInit)
        assert value.struct_type is None

    def test_compound_literal(self):
        expr = parse_expr("(Point){ .x = 1, .y = 2 }")
        assert isinstance(expr, StructInit)
        assert expr.struct_type == NamedType("Point")
        assert len(expr.fields) == 2

    def test_empty_compound_literal(self):
        expr = parse_expr("(Unit){}")
        assert isinstance(expr, StructInit)
        assert expr.fields == []

    def test_compound_literal_takes_postfix(self):
        expr = parse_expr("(Point){ .x = 1 }.x")
        assert isinstance(expr, FieldAccess)
        assert isinstance(expr.target, StructInit)

    def test_parenthesised_name_is_still_a_cast(self):
        assert isinstance(parse_expr("(Meters)x"), CastExpression)

    def test_field_needs_dot(self):
        with pytest.raises(ParseError) as excinfo:
            parse_body("let p: Point = { x = 1 };")
        assert excinfo.value.message == "expected '.field = value' in struct initializer"
        assert excinfo.value.expected == ["'.'", "'}'"]

    def test_unclosed_initializer(self):
        with pytest.raises(ParseError) as excinfo:
            parse_body("let p: Point = { .x = 1 ;")
        assert excinfo.value.expected == ["'}'", "','", "operator"]


class TestControlFlow:
    """Tests for control flow statements."""

    def test_if_else_if_chain(self):
        stmt = parse_body("if (a) { } else if (b) { } else { }")[0]
        assert isinstance(stmt, IfStatement)
        assert isinstance(stmt.else_branch, IfStatement)
        assert stmt.else_branch.else_branch is not None

    def test_if_single_statement_body(self):
        stmt = parse_body("if (a) return;")[0]
        assert isinstance(stmt.then_block.statements[0], ReturnStatement)

    def test_while(self):
        stmt = parse_body("while (x < 10) { x++; }")[0]
        assert isinstance(stmt, WhileStatement)
        assert stmt.label is None

    def test_loop(self):
        stmt = parse_body("loop { break; }")[0]
        assert isinstance(stmt, LoopStatement)
        assert isinstance(stmt.body.statements[0], BreakStatement)

    def test_c_for(self):
        stmt = parse_body("for (int i = 0; i < 10; i++) { }")[0]
        assert isinstance(stmt, ForStatement)
        assert isinstance(stmt.init, VarStatement)
        assert stmt.condition.operator == BinaryOp.LT
        assert stmt.step.operator == UnaryOp.POST_INC

    def test_c_for_empty_clauses(self):
        stmt = parse_body("for (;;) { break; }")[0]
        assert stmt.init is None
        assert stmt.condition is None
        assert stmt.step is None

    def test_for_in(self):
        stmt = parse_body("for (x in 0..10) { }")[0]
        assert isinstance(stmt, ForInStatement)
        assert stmt.variable == "x"
        assert isinstance(stmt.iterable, RangeExpression)

    def test_labeled_loop_and_break(self):
        stmt = parse_body(".outer: while (true) { break .outer; }")[0]
        assert isinstance(stmt, WhileStatement)
        assert stmt.label == "outer"
        assert stmt.body.statements[0].label == "outer"

    def test_goto(self):
        stmt = parse_body("goto done;")[0]
        assert isinstance(stmt, GotoStatement)
        assert stmt.label == "done"


class TestSwitch:
    """Tests for switch statements."""

    def test_consecutive_labels_share_a_clause(self):
        stmt = parse_body(
            "switch (x) { case 1: case 2: y = 1; break; case 3: y = 2; break; default: y = 0; }"
        )[0]
        assert isinstance(stmt, SwitchStatement)
        assert len(stmt.cases) == 2
        assert [v.value for v in stmt.cases[0].values] == [1, 2]
        assert len(stmt.cases[0].body.statements) == 2
        assert len(stmt.default.statements) == 1

    def test_range_label(self):
        stmt = parse_body("switch (x) { case 1..=5: break; }")[0]
        label = stmt.cases[0].values[0]
        assert isinstance(label, RangeExpression)
        assert label.inclusive

    def test_duplicate_default(self):
        with pytest.raises(ParseError, match="duplicate default clause"):
            parse_body("switch (x) { default: break; default: break; }")


# =============================================================================
# Expression Tests
# =============================================================================

class TestExpressions:
    """Tests for expression parsing and precedence."""

    def test_multiplication_binds_tighter(self):
        expr = parse_expr("1 + 2 * 3")
        assert expr.operator == BinaryOp.ADD
        assert expr.right.operator == BinaryOp.MUL

    def test_left_associative(self):
        expr = parse_expr("a - b - c")
        assert expr.operator == BinaryOp.SUB
        assert isinstance(expr.left, BinaryExpression)

    def test_logical_precedence(self):
        expr = parse_expr("a || b && c")
        assert expr.operator == BinaryOp.OR
        assert expr.right.operator == BinaryOp.AND

    def test_assignment_is_right_associative(self):
        expr = parse_expr("a = b = 1")
        assert expr.operator == "="
        assert expr.value.operator == "="

    def test_compound_assignment(self):
        assert parse_expr("x += 2").operator == "+="

    def test_ternary(self):
        expr = parse_expr("c ? 1 : 2")
        assert isinstance(expr, TernaryExpression)

    def test_unary_operators(self):
        assert parse_expr("!done").operator == UnaryOp.NOT
        assert parse_expr("-x").operator == UnaryOp.NEG
        assert parse_expr("*p").operator == UnaryOp.DEREF
        assert parse_expr("&x").operator == UnaryOp.REF
        assert parse_expr("&var x").operator == UnaryOp.REF_MUT
        assert parse_expr("++x").operator == UnaryOp.PRE_INC

    def test_cast(self):
        expr = parse_expr("(float)x")
        assert isinstance(expr, CastExpression)
        assert expr.target_type == PRIMITIVE_TYPES["float"]

    def test_parenthesized_name_before_operator_is_not_cast(self):
        expr = parse_expr("(a) - b")
        assert isinstance(expr, BinaryExpression)
        assert isinstance(expr.left, Identifier)

    def test_sizeof(self):
        expr = parse_expr("sizeof(int)")
        assert isinstance(expr, SizeOfExpression)
        assert expr.target_type == INT

    def test_tuple_and_unit(self):
        assert len(parse_expr("(1, 2)").elements) == 2
        assert isinstance(parse_expr("()"), TupleLiteral)

    def test_array_literal(self):
        assert len(parse_expr("[1, 2, 3]").elements) == 3

    def test_open_range(self):
        expr = parse_expr("..5")
        assert expr.start is None
        assert expr.end.value == 5


class TestPostfixAndCalls:
    """Tests for postfix operators and the dialect call forms."""

    def test_call(self):
        expr = parse_expr("add(1, 2)")
        assert isinstance(expr, CallExpression)
        assert expr.callee.name == "add"
        assert len(expr.arguments) == 2

    def test_index(self):
        expr = parse_expr("values[i]")
        assert isinstance(expr, IndexExpression)

    def test_field_access(self):
        expr = parse_expr("p.x")
        assert isinstance(expr, FieldAccess)
        assert not expr.via_pointer

    def test_arrow_field_access(self):
        expr = parse_expr("p->x")
        assert isinstance(expr, FieldAccess)
        assert expr.via_pointer

    def test_method_call(self):
        expr = parse_expr("v.push(1)")
        assert isinstance(expr, MethodCallExpression)
        assert expr.method == "push"

    def test_arrow_method_call_dereferences(self):
        expr = parse_expr("p->area()")
        assert isinstance(expr.receiver, UnaryExpression)
        assert expr.receiver.operator == UnaryOp.DEREF

    def test_type_scoped_arrow(self):
        expr = parse_expr("@Vec->new()")
        assert isinstance(expr, TypeScopedCall)
        assert expr.type_path == ["Vec"]
        assert expr.method == "new"
        assert expr.separator == "->"

    def test_type_scoped_dotted_path(self):
        expr = parse_expr("@Outer.Inner.make(1)")
        assert expr.type_path == ["Outer", "Inner"]
        assert expr.method == "make"
        assert expr.separator == "."
        assert len(expr.arguments) == 1

    def test_bang_macro(self):
        expr = parse_expr('println!("hi {}", x)')
        assert isinstance(expr, MacroInvocation)
        assert expr.name == "println"
        assert expr.delimiter == "("
        assert len(expr.arguments) == 2

    def test_bracket_macro(self):
        expr = parse_expr("vec![1, 2]")
        assert expr.delimiter == "["

    def test_double_underscore_call_is_macro(self):
        expr = parse_expr("__MAX__(a, b)")
        assert isinstance(expr, MacroInvocation)
        assert expr.name == "__MAX__"

    def test_path_identifier(self):
        expr = parse_expr("geo::zero()")
        assert expr.callee.name == "geo::zero"

    def test_type_scoped_angle_type_args(self):
        expr = parse_expr("@Vec<int>->new()")
        assert expr.type_path == ["Vec"]
        assert expr.type_args == [INT]
        assert expr.method == "new"

    def test_type_scoped_paren_type_args(self):
        expr = parse_expr("@HashMap(String, int)->new()")
        assert expr.type_args == [NamedType("String"), INT]

    def test_type_scoped_nested_type_args_split_shift(self):
        expr = parse_expr("@Vec<Vec<int>>->new()")
        assert expr.type_args == [GenericType("Vec", (INT,))]

    def test_type_args_need_method_next(self):
        with pytest.raises(ParseError) as excinfo:
            parse_expr("@Vec<int>.inner.new()")
        assert excinfo.value.message == "type arguments must be followed by the method name"

    def test_type_scoped_needs_separator(self):
        with pytest.raises(ParseError) as excinfo:
            parse_expr("@Vec x")
        assert excinfo.value.expected == ["'->'", "'.'", "'::'", "'<'", "'('"]


class TestErrorPropagation:
    """Tests for postfix ``?`` and ``!``."""

    def test_question_mark(self):
        expr = parse_expr("read()?")
        assert isinstance(expr, ErrorPropagation)
        assert isinstance(expr.operand, CallExpression)

    def test_bang(self):
        expr = parse_expr("read()!")
        assert isinstance(expr, ErrorPropagation)

    def test_chained_after_propagation(self):
        expr = parse_expr("parse(s)?.value")
        assert isinstance(expr, FieldAccess)
        assert isinstance(expr.target, ErrorPropagation)

    def test_inside_arguments(self):
        expr = parse_expr("use_it(a?, b)")
        assert isinstance(expr.arguments[0], ErrorPropagation)

    def test_ternary_is_unaffected(self):
        assert isinstance(parse_expr("a ? b : c"), TernaryExpression)

    def test_parenthesised_name_then_bang(self):
        expr = parse_expr("(result)!")
        assert isinstance(expr, ErrorPropagation)
        assert isinstance(expr.operand, Identifier)

    def test_macro_is_unaffected(self):
        assert isinstance(parse_expr("vec![1]"), MacroInvocation)

    def test_printer_shows_type_args(self):
        output = ASTPrinter().print(parse_source("void f() { @Vec<int>->new(); }"))
        assert "type_args='[int]'" in output


# =============================================================================
# Error Tests
# =============================================================================

class TestParseErrors:
    """Tests for parse error reporting."""

    def test_missing_closing_brace(self):
        """Missing '}' reports what was expected and that input ended."""
        with pytest.raises(ParseError) as excinfo:
            parse_source("int main() {\n    return 0;\n")
        error = excinfo.value
        assert "'}'" in error.expected
        assert error.found == "end of input"
        assert error.message == "expected '}' to close block"

    def test_missing_semicolon(self):
        with pytest.raises(ParseError) as excinfo:
            parse_source("int main() { return 0 }")
        assert excinfo.value.expected == ["';'", "operator"]
        assert excinfo.value.found == "'}'"
        assert excinfo.value.span == Span.at(1, 23)

    def test_stray_top_level_token(self):
        with pytest.raises(ParseError) as excinfo:
            parse_source("42;")
        error = excinfo.value
        assert error.message == "expected item declaration"
        assert error.expected[0] == "function"
        assert error.found == "integer literal 42"

    def test_missing_expression(self):
        with pytest.raises(ParseError) as excinfo:
            parse_body("x = ;")
        assert excinfo.value.message == "expected expression"
        assert "identifier" in excinfo.value.expected

    @pytest.mark.parametrize("source, expected", [
        ("int f(int a { }", ["')'", "','"]),
        ("void f(Vec<int x) { }", ["'>'", "','"]),
        ("void f() { int x 5; }", ["';'", "'['", "'='", "'('"]),
        ("void f() { int x[2] 5; }", ["';'", "'='"]),
        ("void f() { int x = 1 2; }", ["';'", "operator"]),
        ("struct P { int x 5; }", ["';'", "'['", "'('"]),
        ("union U { int x 5; }", ["';'", "'['"]),
        ("void f(int n) { switch (n) { case 1 2: } }",
         ["':'", "','", "'..'", "'..='"]),
        ("void f() { let n = sizeof(int x); }", ["')'", "'*'", "'['"]),
        ("void f() { let t = (1, 2; }", ["')'", "','"]),
    ])
    def test_expected_lists_every_alternative(self, source, expected):
        with pytest.raises(ParseError) as excinfo:
            parse_source(source)
        assert excinfo.value.expected == expected

    def test_inclusive_range_needs_end(self):
        with pytest.raises(ParseError, match="inclusive range requires an end"):
            parse_body("let r = 1..=;")

    def test_display_form(self):
        with pytest.raises(ParseError) as excinfo:
            parse_source("int main() {")
        assert str(excinfo.value) == (
            "Parse error at 1:13-1:13: expected '}' to close block "
            "(expected: statement, '}') (found: end of input)"
        )


# =============================================================================
# Parser Plumbing Tests
# =============================================================================

class TestParserPlumbing:
    """Tests for the Parser class itself and AST utilities."""

    def test_missing_eof_is_supplied(self):
        tokens = [t for t in tokenize("int f() { }") if t.type != TokenType.EOF]
        program = Parser(tokens).parse()
        assert program.items[0].name == "f"

    def test_parse_is_deterministic(self):
        source = "int f(int a) { if (a > 1) { return a; } return 0; }"
        assert parse_source(source) == parse_source(source)

    def test_visitor_dispatch(self):
        class NameCollector(ASTVisitor):
            def __init__(self):
                self.names = []

            def visit_Identifier(self, node):
                self.names.append(node.name)

        collector = NameCollector()
        collector.visit(parse_source("int f(int a, int b) { return a + b; }"))
        assert collector.names == ["a", "b"]

    def test_ast_printer(self):
        output = ASTPrinter().print(parse_source("int main() { return 0; }"))
        lines = output.splitlines()
        assert lines[0].startswith("Program [1:1-")
        assert "FunctionDef" in lines[1]
        assert "name='main'" in lines[1]
        assert lines[2].startswith("    Block")

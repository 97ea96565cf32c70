"""
Rust Code Generator for Crusty
==============================

This module turns a (normally analyzed) Crusty AST into Rust source
text. Generation is a pure function of the tree: the same Program always
produces the same text, and the generator never needs the original
source.

Translation Table
-----------------
| Crusty                              | Rust                                  |
|-------------------------------------|---------------------------------------|
| int add(int a, int b) { ... }       | pub fn add(a: i32, b: i32) -> i32 {}  |
| static void f() { ... }             | fn f() { ... }                        |
| let x = 1; / var x = 1; / int x = 1;| let x = 1; / let mut x = 1;           |
| const N: int = 3;                   | const N: i32 = 3;                     |
| for (init; cond; step) body         | { init; loop { if !(cond) { break; }  |
|                                     |   body; step; } }                     |
| for (x in 0..n) body                | for x in 0..n { ... }                 |
| switch (v) { case 1: case 2: ... }  | match v { 1 | 2 => { ... } _ => {} }  |
| .outer: while (c) / break .outer;   | 'outer: while c / break 'outer;       |
| x++; (statement)                    | x += 1;                               |
| c ? a : b                           | if c { a } else { b }                 |
| (float)x                            | (x as f64)                            |
| sizeof(int)                         | std::mem::size_of::<i32>()            |
| NULL                                | None                                  |
| p->field                            | (*p).field                            |
| @Vec->new() / @Vec<int>->new()      | Vec::new() / Vec::<i32>::new()        |
| #define __MAX__(a, b) ...           | macro_rules! max { ... }              |
| #use std.collections.HashMap        | use std::collections::HashMap;        |
| int counter = 0; (item level)       | pub static mut counter: i32 = 0;      |
| extern "C" { int abs(int x); }      | extern "C" { pub fn abs(x: i32) ...; }|
| struct P { int x; int get(&self) }  | pub struct P { ... } impl P { ... }   |
| (P){ .x = 1 } / P p = { .x = 1 };   | P { x: 1 }                            |
| f()? / f()!                         | f()?                                  |

Statics and Foreign Calls
-------------------------
Reads and writes of a ``static mut`` and calls of extern functions are
wrapped in ``unsafe { ... }``, as small as the enclosing place allows:
``COUNT += 1`` becomes ``unsafe { COUNT += 1 }``.

Nested Functions
----------------
A nested function that captures no locals stays an inner ``fn``. One
that does becomes a closure bound with ``let``, or ``let mut`` when it
may write a captured variable.

Type Mapping
------------
int/i32 -> i32, float/f64 -> f64, void -> (), *T -> *mut T,
&T -> &T, &var T -> &mut T, T[N] -> [T; N], T[] -> [T].

Design Notes
------------
- Statements are emitted line by line with four-space indentation.
  Expressions are rendered to strings, parenthesised only where Rust's
  precedence would otherwise change the meaning.
- ``int main()`` becomes ``fn main()``, since Rust's entry point cannot
  return an integer; its ``return v;`` statements become
  ``std::process::exit(v);``.
- A ``continue`` aimed at a C-style for loop emits the loop's step first,
  so the step is never skipped.
- Constructs with no Rust counterpart (goto, union, #include) raise
  CodeGenError. The analyzer rejects them first, so reaching one here
  means analysis was skipped.
"""

from typing import Optional

from crusty.errors import CodeGenError
from crusty.lexer import Token, TokenType
from crusty.parser import is_macro_name
from crusty.semantic import SymbolKind
from crusty.types import (
    ArrayType,
    FunctionType,
    GenericType,
    NamedType,
    PointerType,
    PrimitiveKind,
    PrimitiveType,
    ReferenceType,
    SliceType,
    TupleType,
    Type,
    UntypedNumber,
    is_integer,
    is_keyed,
    is_void,
)
from crusty.ast import (
    ArrayLiteral,
    AssignmentExpression,
    ASTNode,
    ASTVisitor,
    BinaryExpression,
    BinaryOp,
    Block,
    BreakStatement,
    CallExpression,
    CastExpression,
    ConstItem,
    ConstStatement,
    ContinueStatement,
    EnumDef,
    ErrorPropagation,
    Expression,
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
    Param,
    Program,
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


# =============================================================================
# Names
# =============================================================================

# Rust keywords, strict and reserved
RUST_KEYWORDS = frozenset({
    "as", "async", "await", "break", "const", "continue", "crate", "dyn",
    "else", "enum", "extern", "false", "fn", "for", "if", "impl", "in",
    "let", "loop", "match", "mod", "move", "mut", "pub", "ref", "return",
    "self", "Self", "static", "struct", "super", "trait", "true", "type",
    "unsafe", "use", "where", "while",
    "abstract", "become", "box", "do", "final", "macro", "override", "priv",
    "try", "typeof", "unsized", "virtual", "yield",
})

# Keywords that cannot be written as raw identifiers
_NOT_RAW = frozenset({"crate", "self", "Self", "super"})

INDENT = "    "


def rust_identifier(name: str) -> str:
    """Escape a name that is a Rust keyword as ``r#name``."""
    if name in RUST_KEYWORDS and name not in _NOT_RAW:
        return f"r#{name}"
    return name


def rust_path(name: str) -> str:
    """Escape each segment of an ``a::b`` path."""
    return "::".join(rust_identifier(segment) for segment in name.split("::"))


def rust_macro_name(name: str) -> str:
    """
    Name of the Rust macro for a ``__NAME__`` macro.

    The underscores are stripped and the name lowered; a result that is a
    Rust keyword gets a ``_macro`` suffix.
    """
    if is_macro_name(name):
        name = name[2:-2].lower()
    if name in RUST_KEYWORDS:
        name = f"{name}_macro"
    return name


# =============================================================================
# Types
# =============================================================================

_PRIMITIVE_NAMES = {
    PrimitiveKind.INT: "i32",
    PrimitiveKind.FLOAT: "f64",
    PrimitiveKind.VOID: "()",
}


def rust_type(ty: Optional[Type]) -> str:
    """
    Spell a type in Rust.

    Args:
        ty: The type; None means void

    Returns:
        The Rust spelling, e.g. ``*mut i32`` or ``[f64; 4]``
    """
    if ty is None:
        return "()"
    if isinstance(ty, PrimitiveType):
        return _PRIMITIVE_NAMES.get(ty.kind, str(ty.kind))
    if isinstance(ty, NamedType):
        return rust_path(ty.name)
    if isinstance(ty, PointerType):
        return f"*mut {rust_type(ty.target)}"
    if isinstance(ty, ReferenceType):
        return f"&mut {rust_type(ty.target)}" if ty.mutable else f"&{rust_type(ty.target)}"
    if isinstance(ty, ArrayType):
        return f"[{rust_type(ty.element)}; {ty.size}]"
    if isinstance(ty, SliceType):
        return f"[{rust_type(ty.element)}]"
    if isinstance(ty, TupleType):
        if len(ty.elements) == 1:
            return f"({rust_type(ty.elements[0])},)"
        return "(" + ", ".join(rust_type(t) for t in ty.elements) + ")"
    if isinstance(ty, GenericType):
        return f"{rust_path(ty.base)}<" + ", ".join(rust_type(t) for t in ty.args) + ">"
    if isinstance(ty, FunctionType):
        text = "fn(" + ", ".join(rust_type(t) for t in ty.params) + ")"
        if not is_void(ty.return_type):
            text += f" -> {rust_type(ty.return_type)}"
        return text
    return "_"


# =============================================================================
# Literals
# =============================================================================

_ESCAPES = {
    "\\": "\\\\",
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
    "\0": "\\0",
}


def _escape(text: str, quote: str) -> str:
    out = []
    for char in text:
        if char == quote:
            out.append("\\" + quote)
        else:
            out.append(_ESCAPES.get(char, char))
    return "".join(out)


def rust_literal(node: Literal) -> str:
    """Spell a literal in Rust."""
    suffix = node.suffix or ""
    if node.kind == LiteralKind.INT:
        return f"{node.value}{suffix}"
    if node.kind == LiteralKind.FLOAT:
        return f"{node.value!r}{suffix}"
    if node.kind == LiteralKind.STRING:
        return '"' + _escape(node.value, '"') + '"'
    if node.kind == LiteralKind.CHAR:
        return "'" + _escape(node.value, "'") + "'"
    if node.kind == LiteralKind.BOOL:
        return "true" if node.value else "false"
    return "None"


# =============================================================================
# Precedence
# =============================================================================

# Rust binding strength, higher binds tighter
PREC_ASSIGN = 1
PREC_RANGE = 2
PREC_OR = 3
PREC_AND = 4
PREC_COMPARE = 5
PREC_BIT_OR = 6
PREC_BIT_XOR = 7
PREC_BIT_AND = 8
PREC_SHIFT = 9
PREC_ADD = 10
PREC_MUL = 11
PREC_CAST = 12
PREC_UNARY = 13
PREC_POSTFIX = 14
PREC_ATOM = 15

_BINARY_PRECEDENCE = {
    BinaryOp.OR: PREC_OR,
    BinaryOp.AND: PREC_AND,
    BinaryOp.EQ: PREC_COMPARE,
    BinaryOp.NE: PREC_COMPARE,
    BinaryOp.LT: PREC_COMPARE,
    BinaryOp.GT: PREC_COMPARE,
    BinaryOp.LE: PREC_COMPARE,
    BinaryOp.GE: PREC_COMPARE,
    BinaryOp.BIT_OR: PREC_BIT_OR,
    BinaryOp.BIT_XOR: PREC_BIT_XOR,
    BinaryOp.BIT_AND: PREC_BIT_AND,
    BinaryOp.SHL: PREC_SHIFT,
    BinaryOp.SHR: PREC_SHIFT,
    BinaryOp.ADD: PREC_ADD,
    BinaryOp.SUB: PREC_ADD,
    BinaryOp.MUL: PREC_MUL,
    BinaryOp.DIV: PREC_MUL,
    BinaryOp.MOD: PREC_MUL,
}

# Dialect spellings inside raw macro bodies that Rust spells differently
_MACRO_TOKEN_SPELLINGS = {
    TokenType.NULL: "None",
    TokenType.INT: "i32",
    TokenType.FLOAT: "f64",
}


# =============================================================================
# Code Generator Class
# =============================================================================

class CodeGenerator(ASTVisitor):
    """
    Generates Rust source from a Crusty AST.

    Item and statement visitors append lines to the output; expression
    visitors return the expression's text.

    Usage:
        generator = CodeGenerator()
        rust_source = generator.generate(program)
    """

    def __init__(self):
        self._output: list[str] = []
        self._indent_level = 0

        # True while generating the body of an integer-returning main
        self._in_exit_main = False

        # Enclosing loops: (label, step of a C-style for or None)
        self._loops: list[tuple[Optional[str], Optional[Expression]]] = []

        # True while rendering inside an ``unsafe { }`` block
        self._unsafe = False

    def generate(self, program: Program) -> str:
        """
        Generate Rust source for a whole program.

        Args:
            program: The root AST node

        Returns:
            Rust source text, ending with a newline

        Raises:
            CodeGenError: If the tree holds a node with no Rust mapping
        """
        self._output = []
        self._indent_level = 0
        self._loops = []
        self._unsafe = False

        self._generate_items(program.items)
        return "\n".join(self._output) + "\n" if self._output else ""

    # =========================================================================
    # Output Methods
    # =========================================================================

    def _emit(self, line: str = "") -> None:
        """Emit a line at the current indentation."""
        if line:
            self._output.append(INDENT * self._indent_level + line)
        else:
            self._output.append("")

    def _indent(self) -> None:
        self._indent_level += 1

    def _dedent(self) -> None:
        self._indent_level -= 1

    def generic_visit(self, node: ASTNode):
        raise CodeGenError(f"no target mapping for {node.__class__.__name__}")

    # =========================================================================
    # Items
    # =========================================================================

    def _generate_items(self, items: list) -> None:
        """Generate items separated by blank lines."""
        for index, item in enumerate(items):
            if index > 0 and not (isinstance(item, ImportItem)
                                  and isinstance(items[index - 1], ImportItem)):
                self._emit()
            self.visit(item)

    @staticmethod
    def _pub(visibility: Visibility) -> str:
        return "pub " if visibility == Visibility.PUBLIC else ""

    @staticmethod
    def _param(param: Param) -> str:
        """Spell one parameter; a self receiver is ``self``, ``&self`` or ``&mut self``."""
        if param.name == "self":
            if isinstance(param.param_type, ReferenceType):
                return "&mut self" if param.param_type.mutable else "&self"
            return "self"
        return f"{rust_identifier(param.name)}: {rust_type(param.param_type)}"

    def _signature(self, name: str, params: list[Param], return_type: Optional[Type]) -> str:
        """``fn name(params) -> T`` without visibility or body."""
        text = f"fn {rust_identifier(name)}({', '.join(self._param(p) for p in params)})"
        if not is_void(return_type):
            text += f" -> {rust_type(return_type)}"
        return text

    def visit_FunctionDef(self, node: FunctionDef) -> None:
        self._generate_function(node, entry_point=node.name == "main")

    def _generate_function(self, node: FunctionDef, entry_point: bool) -> None:
        for doc in node.doc_comments:
            self._emit(f"/// {doc}" if doc else "///")

        exit_main = (entry_point and not node.params
                     and node.return_type is not None and is_integer(node.return_type))
        return_type = None if exit_main else node.return_type
        signature = self._pub(node.visibility) + self._signature(node.name, node.params,
                                                                 return_type)

        self._in_exit_main = exit_main
        self._emit(signature + " {")
        self._generate_body(node.body)
        self._emit("}")
        self._in_exit_main = False

    def visit_StructDef(self, node: StructDef) -> None:
        pub = self._pub(node.visibility)
        if not node.fields:
            self._emit(f"{pub}struct {rust_identifier(node.name)};")
        else:
            self._emit(f"{pub}struct {rust_identifier(node.name)} {{")
            self._indent()
            for struct_field in node.fields:
                self._emit(f"{pub}{rust_identifier(struct_field.name)}: "
                           f"{rust_type(struct_field.field_type)},")
            self._dedent()
            self._emit("}")

        if not node.methods:
            return
        self._emit()
        self._emit(f"impl {rust_identifier(node.name)} {{")
        self._indent()
        for index, method in enumerate(node.methods):
            if index > 0:
                self._emit()
            self._generate_function(method, entry_point=False)
        self._dedent()
        self._emit("}")

    def visit_ConstItem(self, node: ConstItem) -> None:
        self._emit(f"{self._pub(node.visibility)}const {rust_identifier(node.name)}: "
                   f"{rust_type(node.declared_type)} = {self._expr(node.value)};")

    def visit_StaticItem(self, node: StaticItem) -> None:
        keyword = "static mut" if node.mutable else "static"
        self._emit(f"{self._pub(node.visibility)}{keyword} {rust_identifier(node.name)}: "
                   f"{rust_type(node.declared_type)} = {self._expr(node.value)};")

    def visit_ExternBlock(self, node: ExternBlock) -> None:
        abi = _escape(node.abi, '"')
        self._emit(f'extern "{abi}" {{')
        self._indent()
        for function in node.functions:
            self._emit(self._pub(node.visibility)
                       + self._signature(function.name, function.params, function.return_type)
                       + ";")
        self._dedent()
        self._emit("}")

    def visit_EnumDef(self, node: EnumDef) -> None:
        self._emit("#[derive(Debug, Clone, Copy, PartialEq, Eq)]")
        self._emit(f"{self._pub(node.visibility)}enum {rust_identifier(node.name)} {{")
        self._indent()
        for variant in node.variants:
            if variant.value is not None:
                self._emit(f"{rust_identifier(variant.name)} = {variant.value},")
            else:
                self._emit(f"{rust_identifier(variant.name)},")
        self._dedent()
        self._emit("}")

    def visit_TypedefDef(self, node: TypedefDef) -> None:
        self._emit(f"{self._pub(node.visibility)}type {rust_identifier(node.name)} = "
                   f"{rust_type(node.target)};")

    def visit_NamespaceDef(self, node: NamespaceDef) -> None:
        self._emit(f"{self._pub(node.visibility)}mod {rust_identifier(node.name)} {{")
        self._indent()
        self._emit("use super::*;")
        if node.items:
            self._emit()
        self._generate_items(node.items)
        self._dedent()
        self._emit("}")

    def visit_MacroDefinition(self, node: MacroDefinition) -> None:
        pattern = ", ".join(f"${param}:expr" for param in node.params)
        self._emit(f"macro_rules! {rust_macro_name(node.name)} {{")
        self._indent()
        self._emit(f"({pattern}) => {{")
        self._indent()
        body = self._macro_body(node)
        if body:
            self._emit(body)
        self._dedent()
        self._emit("};")
        self._dedent()
        self._emit("}")

    def _macro_body(self, node: MacroDefinition) -> str:
        """
        Render raw macro body tokens.

        Parameters become ``$param`` and ``__m__(...)`` calls become
        ``m!(...)``. Tokens keep the spacing they had in the source.
        """
        parts: list[str] = []
        previous: Optional[Token] = None
        tokens = node.body
        for index, token in enumerate(tokens):
            if previous is not None and previous.span.end != token.span.start:
                parts.append(" ")

            following = tokens[index + 1] if index + 1 < len(tokens) else None
            if token.type == TokenType.IDENTIFIER and token.text in node.params:
                text = f"${token.text}"
            elif token.type == TokenType.IDENTIFIER and is_macro_name(token.text):
                text = rust_macro_name(token.text)
                if following is not None and following.type == TokenType.LPAREN:
                    text += "!"
            else:
                text = _MACRO_TOKEN_SPELLINGS.get(token.type, token.text)
            parts.append(text)
            previous = token
        return "".join(parts)

    def visit_ImportItem(self, node: ImportItem) -> None:
        path = "::".join(rust_identifier(segment) for segment in node.path)
        if node.alias:
            self._emit(f"use {path} as {rust_identifier(node.alias)};")
        else:
            self._emit(f"use {path};")

    def visit_UnionDef(self, node: UnionDef) -> None:
        raise CodeGenError(f"no target mapping for UnionDef '{node.name}'")

    def visit_IncludeDirective(self, node: IncludeDirective) -> None:
        raise CodeGenError(f"no target mapping for IncludeDirective \"{node.path}\"")

    # =========================================================================
    # Statements
    # =========================================================================

    def _generate_body(self, block: Block) -> None:
        """Emit a block's statements one level deeper (braces are the caller's)."""
        self._indent()
        for statement in block.statements:
            self.visit(statement)
        self._dedent()

    @staticmethod
    def _label(label: Optional[str]) -> str:
        return f"'{label}: " if label else ""

    def visit_Block(self, node: Block) -> None:
        self._emit("{")
        self._generate_body(node)
        self._emit("}")

    def _binding(self, keyword: str, name: str, declared_type: Optional[Type],
                 initializer: Optional[Expression]) -> None:
        line = f"{keyword} {rust_identifier(name)}"
        if declared_type is not None:
            line += f": {rust_type(declared_type)}"
        if initializer is not None:
            line += f" = {self._expr(initializer)}"
        self._emit(line + ";")

    def visit_LetStatement(self, node: LetStatement) -> None:
        self._binding("let", node.name, node.declared_type, node.initializer)

    def visit_VarStatement(self, node: VarStatement) -> None:
        self._binding("let mut", node.name, node.declared_type, node.initializer)

    def visit_ConstStatement(self, node: ConstStatement) -> None:
        self._binding("const", node.name, node.declared_type, node.value)

    def visit_NestedFunction(self, node: NestedFunction) -> None:
        """An inner ``fn``, or a closure when the function captures locals."""
        if not node.captures:
            self._emit(self._signature(node.name, node.params, node.return_type) + " {")
        else:
            keyword = "let mut" if node.mutates_captures else "let"
            params = ", ".join(self._param(p) for p in node.params)
            header = f"{keyword} {rust_identifier(node.name)} = |{params}|"
            if not is_void(node.return_type):
                header += f" -> {rust_type(node.return_type)}"
            self._emit(header + " {")

        saved = (self._in_exit_main, self._loops)
        self._in_exit_main, self._loops = False, []
        self._generate_body(node.body)
        self._in_exit_main, self._loops = saved
        self._emit("}" if not node.captures else "};")

    def visit_ReturnStatement(self, node: ReturnStatement) -> None:
        if self._in_exit_main:
            value = self._expr(node.value) if node.value is not None else "0"
            self._emit(f"std::process::exit({value});")
        elif node.value is None:
            self._emit("return;")
        else:
            self._emit(f"return {self._expr(node.value)};")

    def visit_IfStatement(self, node: IfStatement) -> None:
        self._emit(f"if {self._expr(node.condition)} {{")
        self._generate_body(node.then_block)

        branch = node.else_branch
        while isinstance(branch, IfStatement):
            self._emit(f"}} else if {self._expr(branch.condition)} {{")
            self._generate_body(branch.then_block)
            branch = branch.else_branch
        if branch is not None:
            self._emit("} else {")
            self._generate_body(branch)
        self._emit("}")

    def _loop_body(self, label: Optional[str], step: Optional[Expression], body: Block) -> None:
        self._loops.append((label, step))
        self._generate_body(body)
        self._loops.pop()

    def visit_WhileStatement(self, node: WhileStatement) -> None:
        self._emit(f"{self._label(node.label)}while {self._expr(node.condition)} {{")
        self._loop_body(node.label, None, node.body)
        self._emit("}")

    def visit_LoopStatement(self, node: LoopStatement) -> None:
        self._emit(f"{self._label(node.label)}loop {{")
        self._loop_body(node.label, None, node.body)
        self._emit("}")

    def visit_ForStatement(self, node: ForStatement) -> None:
        self._emit("{")
        self._indent()
        if node.init is not None:
            self.visit(node.init)

        self._emit(f"{self._label(node.label)}loop {{")
        self._indent()
        if node.condition is not None:
            self._emit(f"if !({self._expr(node.condition)}) {{")
            self._emit(INDENT + "break;")
            self._emit("}")

        self._loops.append((node.label, node.step))
        for statement in node.body.statements:
            self.visit(statement)
        self._loops.pop()

        if node.step is not None:
            self._emit_step(node.step)
        self._dedent()
        self._emit("}")
        self._dedent()
        self._emit("}")

    def _emit_step(self, step: Expression) -> None:
        self._emit(self._statement_expr(step) + ";")

    def visit_ForInStatement(self, node: ForInStatement) -> None:
        self._emit(f"{self._label(node.label)}for {rust_identifier(node.variable)} in "
                   f"{self._expr(node.iterable)} {{")
        self._loop_body(node.label, None, node.body)
        self._emit("}")

    def visit_SwitchStatement(self, node: SwitchStatement) -> None:
        self._emit(f"match {self._expr(node.scrutinee)} {{")
        self._indent()
        for clause in node.cases:
            patterns = " | ".join(self._expr(value) for value in clause.values)
            self._case_arm(patterns, clause.body)
        if node.default is not None:
            self._case_arm("_", node.default)
        else:
            self._emit("_ => {}")
        self._dedent()
        self._emit("}")

    def _case_arm(self, pattern: str, body: Block) -> None:
        """Emit one match arm; a trailing unlabeled break only ends the case."""
        statements = body.statements
        if statements and isinstance(statements[-1], BreakStatement) and statements[-1].label is None:
            statements = statements[:-1]

        if not statements:
            self._emit(f"{pattern} => {{}}")
            return
        self._emit(f"{pattern} => {{")
        self._indent()
        for statement in statements:
            self.visit(statement)
        self._dedent()
        self._emit("}")

    def visit_BreakStatement(self, node: BreakStatement) -> None:
        self._emit(f"break '{node.label};" if node.label else "break;")

    def visit_ContinueStatement(self, node: ContinueStatement) -> None:
        # Find the loop this continue resumes, to run a C-style for step first
        step = None
        for label, loop_step in reversed(self._loops):
            if node.label is None or label == node.label:
                step = loop_step
                break
        if step is not None:
            self._emit_step(step)
        self._emit(f"continue '{node.label};" if node.label else "continue;")

    def visit_GotoStatement(self, node: GotoStatement) -> None:
        raise CodeGenError(f"no target mapping for GotoStatement (goto {node.label})")

    def visit_ExpressionStatement(self, node: ExpressionStatement) -> None:
        self._emit(self._statement_expr(node.expression) + ";")

    def _statement_expr(self, expr: Expression) -> str:
        """Render an expression whose value is discarded."""
        if isinstance(expr, UnaryExpression) and expr.operator in (
            UnaryOp.PRE_INC, UnaryOp.POST_INC, UnaryOp.PRE_DEC, UnaryOp.POST_DEC,
        ):
            op = "+=" if expr.operator in (UnaryOp.PRE_INC, UnaryOp.POST_INC) else "-="
            if not self._needs_unsafe(expr.operand):
                return f"{self._expr(expr.operand, PREC_UNARY)} {op} 1"
            self._unsafe = True
            text = f"{self._expr(expr.operand, PREC_UNARY)} {op} 1"
            self._unsafe = False
            return f"unsafe {{ {text} }}"
        return self._expr(expr)

    # =========================================================================
    # Unsafe Access
    # =========================================================================

    def _needs_unsafe(self, place: Expression) -> bool:
        """True if ``place`` is, or is part of, a mutable static outside an unsafe block."""
        if self._unsafe:
            return False
        while isinstance(place, (FieldAccess, IndexExpression)):
            if isinstance(place, FieldAccess) and place.via_pointer:
                return False
            place = place.target
        symbol = place.symbol if isinstance(place, Identifier) else None
        return symbol is not None and symbol.kind == SymbolKind.STATIC and symbol.mutable

    def _unsafe_block(self, node: Expression):
        """Render ``node`` inside ``unsafe { }``."""
        self._unsafe = True
        text, _ = self.visit(node)
        self._unsafe = False
        return f"unsafe {{ {text} }}", PREC_ATOM

    # =========================================================================
    # Expressions
    # =========================================================================

    def _expr(self, expr: Expression, min_prec: int = 0) -> str:
        """
        Render an expression, parenthesised if it binds looser than
        ``min_prec``.
        """
        text, prec = self.visit(expr)
        if prec < min_prec:
            return f"({text})"
        return text

    def visit_Literal(self, node: Literal):
        return rust_literal(node), PREC_ATOM

    def visit_Identifier(self, node: Identifier):
        if self._needs_unsafe(node):
            return self._unsafe_block(node)
        return rust_path(node.name), PREC_ATOM

    def visit_BinaryExpression(self, node: BinaryExpression):
        prec = _BINARY_PRECEDENCE[node.operator]
        # Rust comparisons do not chain
        left_prec = prec + 1 if prec == PREC_COMPARE else prec
        left = self._expr(node.left, left_prec)
        right = self._expr(node.right, prec + 1)
        return f"{left} {node.operator.value} {right}", prec

    def visit_UnaryExpression(self, node: UnaryExpression):
        op = node.operator
        if op in (UnaryOp.PRE_INC, UnaryOp.PRE_DEC, UnaryOp.POST_INC, UnaryOp.POST_DEC) \
                and self._needs_unsafe(node.operand):
            return self._unsafe_block(node)
        if op in (UnaryOp.PRE_INC, UnaryOp.PRE_DEC):
            target = self._expr(node.operand, PREC_UNARY)
            sign = "+=" if op == UnaryOp.PRE_INC else "-="
            return f"{{ {target} {sign} 1; {target} }}", PREC_ATOM
        if op in (UnaryOp.POST_INC, UnaryOp.POST_DEC):
            target = self._expr(node.operand, PREC_UNARY)
            sign = "+=" if op == UnaryOp.POST_INC else "-="
            return f"{{ let _tmp = {target}; {target} {sign} 1; _tmp }}", PREC_ATOM

        prefix = {
            UnaryOp.NOT: "!",
            UnaryOp.NEG: "-",
            UnaryOp.REF: "&",
            UnaryOp.REF_MUT: "&mut ",
            UnaryOp.DEREF: "*",
        }[op]
        return f"{prefix}{self._expr(node.operand, PREC_UNARY)}", PREC_UNARY

    def visit_AssignmentExpression(self, node: AssignmentExpression):
        if self._needs_unsafe(node.target):
            return self._unsafe_block(node)
        target = self._expr(node.target, PREC_ASSIGN + 1)
        value = self._expr(node.value, PREC_ASSIGN)
        return f"{target} {node.operator} {value}", PREC_ASSIGN

    def visit_TernaryExpression(self, node: TernaryExpression):
        return (f"if {self._expr(node.condition)} {{ {self._expr(node.then_expr)} }} "
                f"else {{ {self._expr(node.else_expr)} }}"), PREC_ASSIGN

    def visit_RangeExpression(self, node: RangeExpression):
        start = self._expr(node.start, PREC_RANGE + 1) if node.start is not None else ""
        end = self._expr(node.end, PREC_RANGE + 1) if node.end is not None else ""
        operator = "..=" if node.inclusive else ".."
        return f"{start}{operator}{end}", PREC_RANGE

    def _arguments(self, arguments: list[Expression]) -> str:
        return ", ".join(self._expr(arg) for arg in arguments)

    def visit_CallExpression(self, node: CallExpression):
        symbol = node.callee.symbol if isinstance(node.callee, Identifier) else None
        if symbol is not None and symbol.foreign and not self._unsafe:
            return self._unsafe_block(node)
        callee = self._expr(node.callee, PREC_POSTFIX)
        return f"{callee}({self._arguments(node.arguments)})", PREC_POSTFIX

    def visit_MethodCallExpression(self, node: MethodCallExpression):
        if self._needs_unsafe(node.receiver):
            return self._unsafe_block(node)
        receiver = self._expr(node.receiver, PREC_POSTFIX)
        return (f"{receiver}.{rust_identifier(node.method)}"
                f"({self._arguments(node.arguments)})"), PREC_POSTFIX

    def visit_TypeScopedCall(self, node: TypeScopedCall):
        path = "::".join(rust_identifier(segment) for segment in node.type_path)
        if node.type_args:
            path += "::<" + ", ".join(rust_type(t) for t in node.type_args) + ">"
        return (f"{path}::{rust_identifier(node.method)}"
                f"({self._arguments(node.arguments)})"), PREC_POSTFIX

    def visit_MacroInvocation(self, node: MacroInvocation):
        closer = {"(": ")", "[": "]", "{": "}"}[node.delimiter]
        return (f"{rust_macro_name(node.name)}!{node.delimiter}"
                f"{self._arguments(node.arguments)}{closer}"), PREC_POSTFIX

    def visit_CastExpression(self, node: CastExpression):
        operand = self._expr(node.operand, PREC_CAST)
        return f"({operand} as {rust_type(node.target_type)})", PREC_ATOM

    def visit_SizeOfExpression(self, node: SizeOfExpression):
        return f"std::mem::size_of::<{rust_type(node.target_type)}>()", PREC_POSTFIX

    def visit_FieldAccess(self, node: FieldAccess):
        if self._needs_unsafe(node):
            return self._unsafe_block(node)
        if node.via_pointer:
            target = f"(*{self._expr(node.target, PREC_UNARY)})"
        else:
            target = self._expr(node.target, PREC_POSTFIX)
        return f"{target}.{rust_identifier(node.field_name)}", PREC_POSTFIX

    def visit_IndexExpression(self, node: IndexExpression):
        if self._needs_unsafe(node):
            return self._unsafe_block(node)
        target = self._expr(node.target, PREC_POSTFIX)
        index = self._expr(node.index)
        index_type = node.index.resolved_type
        target_type = node.target.resolved_type
        while isinstance(target_type, ReferenceType):
            target_type = target_type.target
        if target_type is not None and is_keyed(target_type):
            # Map lookups take the key by reference
            if isinstance(index_type, ReferenceType):
                return f"{target}[{index}]", PREC_POSTFIX
            return f"{target}[&{self._expr(node.index, PREC_UNARY)}]", PREC_POSTFIX
        # Rust indexes with usize only
        if (index_type is not None and is_integer(index_type)
                and not isinstance(index_type, UntypedNumber)
                and index_type != NamedType("usize")):
            index = f"{self._expr(node.index, PREC_CAST)} as usize"
        return f"{target}[{index}]", PREC_POSTFIX

    def visit_StructInit(self, node: StructInit):
        struct_type = node.struct_type or node.resolved_type
        if not isinstance(struct_type, NamedType):
            raise CodeGenError("no struct type for initializer; run the analyzer first")
        fields = ", ".join(f"{rust_identifier(f.name)}: {self._expr(f.value)}"
                           for f in node.fields)
        if not fields:
            return f"{rust_type(struct_type)} {{}}", PREC_ATOM
        return f"{rust_type(struct_type)} {{ {fields} }}", PREC_ATOM

    def visit_ErrorPropagation(self, node: ErrorPropagation):
        return f"{self._expr(node.operand, PREC_POSTFIX)}?", PREC_POSTFIX

    def visit_ArrayLiteral(self, node: ArrayLiteral):
        return f"[{self._arguments(node.elements)}]", PREC_ATOM

    def visit_TupleLiteral(self, node: TupleLiteral):
        if len(node.elements) == 1:
            return f"({self._expr(node.elements[0])},)", PREC_ATOM
        return f"({self._arguments(node.elements)})", PREC_ATOM


# =============================================================================
# Convenience Function
# =============================================================================

def generate(program: Program) -> str:
    """
    Generate Rust source for a program.

    Args:
        program: The root AST node (normally already analyzed)

    Returns:
        Rust source text

    Raises:
        CodeGenError: If the tree holds a node with no Rust mapping
    """
    return CodeGenerator().generate(program)

"""
Crusty Abstract Syntax Tree (AST) Definitions
=============================================

This module defines the AST node types built by the parser, annotated by
the semantic analyzer and read by the code generator.

Node Hierarchy
--------------
ASTNode (base)
├── Program - root node holding every top-level item
├── Items
│   ├── FunctionDef - ``[static] ReturnType name(params) { ... }``
│   ├── Param - one function parameter
│   ├── StructDef / StructField - ``struct Name { Type field; methods }``
│   ├── EnumDef / EnumVariant - ``enum Name { A, B = 2 }``
│   ├── TypedefDef - ``typedef Type Name;``
│   ├── NamespaceDef - ``namespace name { items }``
│   ├── ConstItem - ``const NAME: Type = value;``
│   ├── StaticItem - ``Type name = value;`` at item level
│   ├── ExternBlock / ExternFunction - ``extern "C" { int abs(int x); }``
│   ├── MacroDefinition - ``#define __NAME__(params) body``
│   ├── ImportItem - ``#use path``
│   ├── UnionDef - ``union Name { ... }`` (recognised, unsupported)
│   └── IncludeDirective - ``#include <file>`` (recognised, unsupported)
├── Statements
│   ├── Block - ``{ ... }``
│   ├── LetStatement / VarStatement / ConstStatement
│   ├── NestedFunction - a function defined inside a function body
│   ├── ReturnStatement, IfStatement
│   ├── WhileStatement, LoopStatement, ForStatement, ForInStatement
│   ├── SwitchStatement / CaseClause
│   ├── BreakStatement, ContinueStatement
│   ├── GotoStatement (recognised, unsupported)
│   └── ExpressionStatement
└── Expressions
    ├── Literal - integer, float, string, char, bool or NULL
    ├── Identifier
    ├── BinaryExpression, UnaryExpression, AssignmentExpression
    ├── TernaryExpression, RangeExpression
    ├── CallExpression, MethodCallExpression
    ├── TypeScopedCall - ``@Type->method(args)`` / ``@Vec<int>->new()``
    ├── MacroInvocation - ``name!(args)`` / ``__name__(args)``
    ├── CastExpression - ``(Type)expr``
    ├── SizeOfExpression - ``sizeof(Type)``
    ├── FieldAccess - ``a.b`` and ``p->b``
    ├── IndexExpression - ``a[i]``
    ├── StructInit / FieldInit - ``{ .x = 1, .y = 2 }``
    ├── ErrorPropagation - ``expr?`` / ``expr!``
    └── ArrayLiteral, TupleLiteral

Design Notes
------------
- All nodes are dataclasses; ``span`` is always the first field and every
  other field has a default, so nodes can be built by keyword.
- The node set is closed: NODE_TYPES lists every concrete node class, and
  ASTVisitor has one ``visit_*`` method per entry.
- The semantic analyzer only fills in annotation fields
  (``resolved_type``, ``symbol``), which are excluded from equality, so an
  annotated tree compares equal to the tree the parser built.
"""

from dataclasses import dataclass, field, fields
from enum import Enum, auto
from typing import Any, Optional, Union

from crusty.errors import Span
from crusty.lexer import Token
from crusty.types import Type


# =============================================================================
# AST Node Base Classes
# =============================================================================

@dataclass
class ASTNode:
    """
    Base class for all AST nodes.

    Attributes:
        span: Source range covered by this node (encloses its children)
    """
    span: Span

    def __repr__(self) -> str:
        """Default representation showing node type."""
        return f"{self.__class__.__name__}@{self.span}"


@dataclass
class Item(ASTNode):
    """Base class for top-level items."""
    pass


@dataclass
class Statement(ASTNode):
    """Base class for statements."""
    pass


@dataclass
class Expression(ASTNode):
    """
    Base class for all expression nodes.

    Attributes:
        resolved_type: The expression's type, set by the semantic analyzer
    """
    resolved_type: Optional[Type] = field(default=None, compare=False, repr=False)


class Visibility(Enum):
    """Item visibility: ``static`` makes an item private."""
    PUBLIC = auto()
    PRIVATE = auto()


# =============================================================================
# Program Root Node
# =============================================================================

@dataclass
class Program(ASTNode):
    """
    Root node of the AST: one compilation unit.

    Attributes:
        items: Top-level items in source order
    """
    items: list[Item] = field(default_factory=list)


# =============================================================================
# Item Nodes
# =============================================================================

@dataclass
class Param(ASTNode):
    """
    Function parameter.

    Attributes:
        name: Parameter name
        param_type: Declared type
    """
    name: str = ""
    param_type: Type = None


@dataclass
class FunctionDef(Item):
    """
    Function definition.

    Attributes:
        visibility: PRIVATE when declared ``static``, PUBLIC otherwise
        name: Function name
        params: Parameters in declaration order
        return_type: Declared return type; None if and only if ``void``
        body: Function body
        doc_comments: Text of the /// comments preceding the function
    """
    visibility: Visibility = Visibility.PUBLIC
    name: str = ""
    params: list[Param] = field(default_factory=list)
    return_type: Optional[Type] = None
    body: "Block" = None
    doc_comments: list[str] = field(default_factory=list)


@dataclass
class StructField(ASTNode):
    """One field of a struct."""
    name: str = ""
    field_type: Type = None


@dataclass
class StructDef(Item):
    """
    Struct definition.

    Attributes:
        visibility: Item visibility (fields share it)
        name: Struct name
        fields: Fields in declaration order
        methods: Functions defined in the struct body; a leading ``self``,
                 ``&self`` or ``&var self`` parameter makes one a method
    """
    visibility: Visibility = Visibility.PUBLIC
    name: str = ""
    fields: list[StructField] = field(default_factory=list)
    methods: list[FunctionDef] = field(default_factory=list)


@dataclass
class EnumVariant(ASTNode):
    """One enum variant with an optional explicit discriminant."""
    name: str = ""
    value: Optional[int] = None


@dataclass
class EnumDef(Item):
    """Enum definition."""
    visibility: Visibility = Visibility.PUBLIC
    name: str = ""
    variants: list[EnumVariant] = field(default_factory=list)


@dataclass
class TypedefDef(Item):
    """
    Type alias.

    Attributes:
        name: The new type name
        target: The aliased type
    """
    visibility: Visibility = Visibility.PUBLIC
    name: str = ""
    target: Type = None


@dataclass
class NamespaceDef(Item):
    """Namespace grouping nested items."""
    visibility: Visibility = Visibility.PUBLIC
    name: str = ""
    items: list[Item] = field(default_factory=list)


@dataclass
class ConstItem(Item):
    """Item-level constant: ``const MAX: int = 10;`` or ``const int MAX = 10;``."""
    visibility: Visibility = Visibility.PUBLIC
    name: str = ""
    declared_type: Type = None
    value: Expression = None


@dataclass
class StaticItem(Item):
    """
    Item-level variable.

    C-style ``int counter = 0;`` and ``var counter: int = 0;`` are
    mutable; ``let limit: int = 5;`` is not.

    Attributes:
        visibility: PRIVATE when declared ``static``, PUBLIC otherwise
        name: Variable name
        declared_type: Declared type (always present)
        value: Initial value (always present)
        mutable: True unless declared with ``let``
    """
    visibility: Visibility = Visibility.PUBLIC
    name: str = ""
    declared_type: Type = None
    value: Expression = None
    mutable: bool = True


@dataclass
class ExternFunction(ASTNode):
    """Foreign function prototype inside an extern block."""
    name: str = ""
    params: list[Param] = field(default_factory=list)
    return_type: Optional[Type] = None


@dataclass
class ExternBlock(Item):
    """
    ``extern "C" { prototypes }``.

    Attributes:
        visibility: Visibility given to every prototype
        abi: Calling convention string; ``extern { }`` means "C"
        functions: Declared foreign functions
    """
    visibility: Visibility = Visibility.PUBLIC
    abi: str = "C"
    functions: list[ExternFunction] = field(default_factory=list)


@dataclass
class MacroDefinition(Item):
    """
    ``#define`` macro definition.

    Attributes:
        name: Macro name, including its ``__`` wrapper
        params: Parameter names
        body: Raw body tokens, kept unparsed
    """
    name: str = ""
    params: list[str] = field(default_factory=list)
    body: list[Token] = field(default_factory=list)


@dataclass
class ImportItem(Item):
    """
    ``#use`` import.

    Attributes:
        path: Path segments, e.g. ['std', 'collections', 'HashMap']
        alias: Optional ``as`` name
    """
    path: list[str] = field(default_factory=list)
    alias: Optional[str] = None


@dataclass
class UnionDef(Item):
    """``union`` definition; parsed so the analyzer can reject it."""
    name: str = ""
    fields: list[StructField] = field(default_factory=list)


@dataclass
class IncludeDirective(Item):
    """``#include``; parsed so the analyzer can reject it."""
    path: str = ""


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Block(Statement):
    """Braced statement list; opens a new scope."""
    statements: list[Statement] = field(default_factory=list)


@dataclass
class LetStatement(Statement):
    """
    Immutable local binding: ``let x: int = 5;`` or C-style ``int x = 5;``.

    Attributes:
        name: Bound name
        declared_type: Explicit type, or None to infer from the initializer
        initializer: Initial value, if any
    """
    name: str = ""
    declared_type: Optional[Type] = None
    initializer: Optional[Expression] = None


@dataclass
class VarStatement(Statement):
    """Mutable local binding: ``var x = 5;``."""
    name: str = ""
    declared_type: Optional[Type] = None
    initializer: Optional[Expression] = None


@dataclass
class ConstStatement(Statement):
    """Local constant: ``const MAX: int = 10;``."""
    name: str = ""
    declared_type: Type = None
    value: Expression = None


@dataclass
class NestedFunction(Statement):
    """
    Function defined inside another function's body.

    Attributes:
        name: Function name, visible in the enclosing block
        params: Parameters in declaration order
        return_type: Declared return type; None if and only if ``void``
        body: Function body
        captures: Enclosing locals the body uses (set by the analyzer)
        mutates_captures: True when the body assigns a captured local
    """
    name: str = ""
    params: list[Param] = field(default_factory=list)
    return_type: Optional[Type] = None
    body: Block = None
    captures: list[Any] = field(default_factory=list, compare=False, repr=False)
    mutates_captures: bool = field(default=False, compare=False, repr=False)


@dataclass
class ReturnStatement(Statement):
    """Return with optional value."""
    value: Optional[Expression] = None


@dataclass
class IfStatement(Statement):
    """
    If statement.

    Attributes:
        condition: Must be bool
        then_block: Taken when the condition holds
        else_branch: A Block, a nested IfStatement (else if), or None
    """
    condition: Expression = None
    then_block: Block = None
    else_branch: Optional[Union[Block, "IfStatement"]] = None


@dataclass
class WhileStatement(Statement):
    """While loop with optional ``.label:``."""
    label: Optional[str] = None
    condition: Expression = None
    body: Block = None


@dataclass
class LoopStatement(Statement):
    """Infinite ``loop { }`` with optional label."""
    label: Optional[str] = None
    body: Block = None


@dataclass
class ForStatement(Statement):
    """
    C-style three-clause for loop.

    Attributes:
        label: Optional loop label
        init: Initialising statement (a binding or expression statement)
        condition: Loop condition
        step: Expression evaluated after each iteration
        body: Loop body
    """
    label: Optional[str] = None
    init: Optional[Statement] = None
    condition: Optional[Expression] = None
    step: Optional[Expression] = None
    body: Block = None


@dataclass
class ForInStatement(Statement):
    """Iteration loop: ``for (x in expr) { }``."""
    label: Optional[str] = None
    variable: str = ""
    iterable: Expression = None
    body: Block = None


@dataclass
class CaseClause(ASTNode):
    """
    One ``case`` arm of a switch; consecutive labels share a body.

    Attributes:
        values: Case label expressions (literals or ranges)
        body: Statements of the arm
    """
    values: list[Expression] = field(default_factory=list)
    body: Block = None


@dataclass
class SwitchStatement(Statement):
    """
    Switch statement.

    Attributes:
        scrutinee: The value being switched on
        cases: Case arms in source order
        default: Body of the ``default:`` arm, if present
    """
    scrutinee: Expression = None
    cases: list[CaseClause] = field(default_factory=list)
    default: Optional[Block] = None


@dataclass
class BreakStatement(Statement):
    """``break`` with optional loop label."""
    label: Optional[str] = None


@dataclass
class ContinueStatement(Statement):
    """``continue`` with optional loop label."""
    label: Optional[str] = None


@dataclass
class GotoStatement(Statement):
    """``goto label;``; parsed so the analyzer can reject it."""
    label: str = ""


@dataclass
class ExpressionStatement(Statement):
    """Expression evaluated for its effect."""
    expression: Expression = None


# =============================================================================
# Expression Nodes
# =============================================================================

class LiteralKind(Enum):
    """Which kind of literal a Literal node holds."""
    INT = auto()
    FLOAT = auto()
    STRING = auto()
    CHAR = auto()
    BOOL = auto()
    NULL = auto()


class BinaryOp(Enum):
    """Binary operators, valued by their spelling (shared with the target)."""
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    EQ = "=="
    NE = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    AND = "&&"
    OR = "||"
    BIT_AND = "&"
    BIT_OR = "|"
    BIT_XOR = "^"
    SHL = "<<"
    SHR = ">>"

    @property
    def is_comparison(self) -> bool:
        return self in (BinaryOp.EQ, BinaryOp.NE, BinaryOp.LT,
                        BinaryOp.GT, BinaryOp.LE, BinaryOp.GE)

    @property
    def is_logical(self) -> bool:
        return self in (BinaryOp.AND, BinaryOp.OR)

    @property
    def is_bitwise(self) -> bool:
        return self in (BinaryOp.BIT_AND, BinaryOp.BIT_OR, BinaryOp.BIT_XOR,
                        BinaryOp.SHL, BinaryOp.SHR)


class UnaryOp(Enum):
    """Prefix and postfix unary operators."""
    NOT = "!"
    NEG = "-"
    REF = "&"
    REF_MUT = "&var"
    DEREF = "*"
    PRE_INC = "++x"
    PRE_DEC = "--x"
    POST_INC = "x++"
    POST_DEC = "x--"


@dataclass
class Literal(Expression):
    """
    A literal value.

    Attributes:
        kind: Literal category
        value: Decoded value (None for NULL)
        suffix: Numeric type suffix, if written (e.g. 'i64')
    """
    kind: LiteralKind = LiteralKind.INT
    value: Any = None
    suffix: Optional[str] = None


@dataclass
class Identifier(Expression):
    """
    Name reference.

    Attributes:
        name: The referenced name
        symbol: The declaration it resolves to (set by the analyzer)
    """
    name: str = ""
    symbol: Any = field(default=None, compare=False, repr=False)


@dataclass
class BinaryExpression(Expression):
    """Binary operation."""
    operator: BinaryOp = BinaryOp.ADD
    left: Expression = None
    right: Expression = None


@dataclass
class UnaryExpression(Expression):
    """Unary operation (prefix or postfix)."""
    operator: UnaryOp = UnaryOp.NEG
    operand: Expression = None


@dataclass
class AssignmentExpression(Expression):
    """
    Assignment or compound assignment.

    Attributes:
        operator: '=', '+=', '-=', '*=', '/=' or '%='
        target: The assigned place
        value: The assigned value
    """
    operator: str = "="
    target: Expression = None
    value: Expression = None


@dataclass
class TernaryExpression(Expression):
    """``cond ? a : b``."""
    condition: Expression = None
    then_expr: Expression = None
    else_expr: Expression = None


@dataclass
class RangeExpression(Expression):
    """``a..b`` or ``a..=b``; either end may be omitted."""
    start: Optional[Expression] = None
    end: Optional[Expression] = None
    inclusive: bool = False


@dataclass
class CallExpression(Expression):
    """Call of a function value."""
    callee: Expression = None
    arguments: list[Expression] = field(default_factory=list)


@dataclass
class MethodCallExpression(Expression):
    """``receiver.method(args)``."""
    receiver: Expression = None
    method: str = ""
    arguments: list[Expression] = field(default_factory=list)


@dataclass
class TypeScopedCall(Expression):
    """
    Call qualified by a type: ``@Vec->new()`` or ``@Outer.Inner.make(x)``.

    Explicit type arguments may follow a single type name, written
    ``@Vec<int>->new()`` or ``@Vec(int)->new()``.

    Attributes:
        type_path: Type path segments before the method name
        method: Called associated function
        arguments: Call arguments
        separator: '->' or '.', as written
        type_args: Explicit type arguments, empty if none were written
    """
    type_path: list[str] = field(default_factory=list)
    method: str = ""
    arguments: list[Expression] = field(default_factory=list)
    separator: str = "->"
    type_args: list[Type] = field(default_factory=list)


@dataclass
class MacroInvocation(Expression):
    """
    Macro invocation: ``println!("..")``, ``__max__!(a, b)`` or ``__max__(a, b)``.

    Attributes:
        name: Macro name as written (``__`` wrapper kept)
        arguments: Arguments, parsed as expressions
        delimiter: '(', '[' or '{'
    """
    name: str = ""
    arguments: list[Expression] = field(default_factory=list)
    delimiter: str = "("


@dataclass
class CastExpression(Expression):
    """C-style cast ``(Type)expr``."""
    target_type: Type = None
    operand: Expression = None


@dataclass
class SizeOfExpression(Expression):
    """``sizeof(Type)``."""
    target_type: Type = None


@dataclass
class FieldAccess(Expression):
    """
    Field access.

    Attributes:
        target: The struct value (or pointer, when via_pointer)
        field_name: The accessed field
        via_pointer: True for ``p->field``
    """
    target: Expression = None
    field_name: str = ""
    via_pointer: bool = False


@dataclass
class IndexExpression(Expression):
    """``target[index]``."""
    target: Expression = None
    index: Expression = None


@dataclass
class FieldInit(ASTNode):
    """One ``.name = value`` entry of a struct initializer."""
    name: str = ""
    value: Expression = None


@dataclass
class StructInit(Expression):
    """
    Designated struct initializer ``{ .x = 1, .y = 2 }``.

    Attributes:
        struct_type: The struct being built, when the source names it
                     (``(Point){ ... }`` or ``Point p = { ... }``); the
                     analyzer infers it from context otherwise
        fields: Field values in source order
    """
    struct_type: Optional[Type] = None
    fields: list[FieldInit] = field(default_factory=list)


@dataclass
class ErrorPropagation(Expression):
    """``expr?`` (or ``expr!``): return early on an Err or None."""
    operand: Expression = None


@dataclass
class ArrayLiteral(Expression):
    """``[a, b, c]``."""
    elements: list[Expression] = field(default_factory=list)


@dataclass
class TupleLiteral(Expression):
    """``(a, b)``."""
    elements: list[Expression] = field(default_factory=list)


# Every concrete node class; visitors must handle each of these
NODE_TYPES: tuple[type, ...] = (
    Program,
    Param, FunctionDef, StructField, StructDef, EnumVariant, EnumDef,
    TypedefDef, NamespaceDef, ConstItem, StaticItem, ExternFunction,
    ExternBlock, MacroDefinition, ImportItem, UnionDef, IncludeDirective,
    Block, LetStatement, VarStatement, ConstStatement, NestedFunction,
    ReturnStatement, IfStatement, WhileStatement, LoopStatement, ForStatement,
    ForInStatement, CaseClause, SwitchStatement, BreakStatement,
    ContinueStatement, GotoStatement, ExpressionStatement,
    Literal, Identifier, BinaryExpression, UnaryExpression,
    AssignmentExpression, TernaryExpression, RangeExpression, CallExpression,
    MethodCallExpression, TypeScopedCall, MacroInvocation, CastExpression,
    SizeOfExpression, FieldAccess, IndexExpression, FieldInit, StructInit,
    ErrorPropagation, ArrayLiteral, TupleLiteral,
)


def iter_children(node: ASTNode):
    """Yield the direct child nodes of ``node`` in field order."""
    for f in fields(node):
        value = getattr(node, f.name)
        if isinstance(value, ASTNode):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, ASTNode):
                    yield item


# =============================================================================
# Visitor Pattern Support
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    Dispatches on the node's class name to ``visit_<ClassName>``. Every
    class in NODE_TYPES has a method here that falls back to
    ``generic_visit``; subclasses override the ones they care about.

    Usage:
        class NameCollector(ASTVisitor):
            def __init__(self):
                self.names = []

            def visit_Identifier(self, node):
                self.names.append(node.name)

        collector = NameCollector()
        collector.visit(program)
    """

    def visit(self, node: ASTNode) -> Any:
        """
        Visit a node by dispatching to the appropriate method.

        Args:
            node: The AST node to visit

        Returns:
            The result of the visit method (varies by node type)
        """
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: ASTNode) -> None:
        """Default visit method: visit all children."""
        for child in iter_children(node):
            self.visit(child)

    def visit_Program(self, node: Program): return self.generic_visit(node)
    def visit_Param(self, node: Param): return self.generic_visit(node)
    def visit_FunctionDef(self, node: FunctionDef): return self.generic_visit(node)
    def visit_StructField(self, node: StructField): return self.generic_visit(node)
    def visit_StructDef(self, node: StructDef): return self.generic_visit(node)
    def visit_EnumVariant(self, node: EnumVariant): return self.generic_visit(node)
    def visit_EnumDef(self, node: EnumDef): return self.generic_visit(node)
    def visit_TypedefDef(self, node: TypedefDef): return self.generic_visit(node)
    def visit_NamespaceDef(self, node: NamespaceDef): return self.generic_visit(node)
    def visit_ConstItem(self, node: ConstItem): return self.generic_visit(node)
    def visit_StaticItem(self, node: StaticItem): return self.generic_visit(node)
    def visit_ExternFunction(self, node: ExternFunction): return self.generic_visit(node)
    def visit_ExternBlock(self, node: ExternBlock): return self.generic_visit(node)
    def visit_MacroDefinition(self, node: MacroDefinition): return self.generic_visit(node)
    def visit_ImportItem(self, node: ImportItem): return self.generic_visit(node)
    def visit_UnionDef(self, node: UnionDef): return self.generic_visit(node)
    def visit_IncludeDirective(self, node: IncludeDirective): return self.generic_visit(node)
    def visit_Block(self, node: Block): return self.generic_visit(node)
    def visit_LetStatement(self, node: LetStatement): return self.generic_visit(node)
    def visit_VarStatement(self, node: VarStatement): return self.generic_visit(node)
    def visit_ConstStatement(self, node: ConstStatement): return self.generic_visit(node)
    def visit_NestedFunction(self, node: NestedFunction): return self.generic_visit(node)
    def visit_ReturnStatement(self, node: ReturnStatement): return self.generic_visit(node)
    def visit_IfStatement(self, node: IfStatement): return self.generic_visit(node)
    def visit_WhileStatement(self, node: WhileStatement): return self.generic_visit(node)
    def visit_LoopStatement(self, node: LoopStatement): return self.generic_visit(node)
    def visit_ForStatement(self, node: ForStatement): return self.generic_visit(node)
    def visit_ForInStatement(self, node: ForInStatement): return self.generic_visit(node)
    def visit_CaseClause(self, node: CaseClause): return self.generic_visit(node)
    def visit_SwitchStatement(self, node: SwitchStatement): return self.generic_visit(node)
    def visit_BreakStatement(self, node: BreakStatement): return self.generic_visit(node)
    def visit_ContinueStatement(self, node: ContinueStatement): return self.generic_visit(node)
    def visit_GotoStatement(self, node: GotoStatement): return self.generic_visit(node)
    def visit_ExpressionStatement(self, node: ExpressionStatement): return self.generic_visit(node)
    def visit_Literal(self, node: Literal): return self.generic_visit(node)
    def visit_Identifier(self, node: Identifier): return self.generic_visit(node)
    def visit_BinaryExpression(self, node: BinaryExpression): return self.generic_visit(node)
    def visit_UnaryExpression(self, node: UnaryExpression): return self.generic_visit(node)
    def visit_AssignmentExpression(self, node: AssignmentExpression): return self.generic_visit(node)
    def visit_TernaryExpression(self, node: TernaryExpression): return self.generic_visit(node)
    def visit_RangeExpression(self, node: RangeExpression): return self.generic_visit(node)
    def visit_CallExpression(self, node: CallExpression): return self.generic_visit(node)
    def visit_MethodCallExpression(self, node: MethodCallExpression): return self.generic_visit(node)
    def visit_TypeScopedCall(self, node: TypeScopedCall): return self.generic_visit(node)
    def visit_MacroInvocation(self, node: MacroInvocation): return self.generic_visit(node)
    def visit_CastExpression(self, node: CastExpression): return self.generic_visit(node)
    def visit_SizeOfExpression(self, node: SizeOfExpression): return self.generic_visit(node)
    def visit_FieldAccess(self, node: FieldAccess): return self.generic_visit(node)
    def visit_IndexExpression(self, node: IndexExpression): return self.generic_visit(node)
    def visit_FieldInit(self, node: FieldInit): return self.generic_visit(node)
    def visit_StructInit(self, node: StructInit): return self.generic_visit(node)
    def visit_ErrorPropagation(self, node: ErrorPropagation): return self.generic_visit(node)
    def visit_ArrayLiteral(self, node: ArrayLiteral): return self.generic_visit(node)
    def visit_TupleLiteral(self, node: TupleLiteral): return self.generic_visit(node)


# =============================================================================
# AST Pretty Printer
# =============================================================================

class ASTPrinter(ASTVisitor):
    """
    Pretty printer for AST debugging (``crustyc --emit ast``).

    Prints one line per node: its class, its span and its scalar fields,
    with child nodes indented underneath.

    Usage:
        printer = ASTPrinter()
        output = printer.print(ast)
        print(output)
    """

    def __init__(self):
        self.output: list[str] = []
        self.indent_level = 0

    def print(self, node: ASTNode) -> str:
        """Print the AST and return as string."""
        self.output = []
        self.indent_level = 0
        self.visit(node)
        return "\n".join(self.output)

    def _emit(self, text: str) -> None:
        """Emit a line with current indentation."""
        indent = "  " * self.indent_level
        self.output.append(f"{indent}{text}")

    def generic_visit(self, node: ASTNode) -> None:
        details = []
        for f in fields(node):
            if f.name == "span" or not f.repr:
                continue
            value = getattr(node, f.name)
            if isinstance(value, ASTNode):
                continue
            if isinstance(value, list) and (not value or isinstance(value[0], ASTNode)):
                continue
            if isinstance(value, list) and isinstance(value[0], Token):
                value = " ".join(token.text for token in value)
            elif isinstance(value, list) and isinstance(value[0], Type):
                value = "[" + ", ".join(str(t) for t in value) + "]"
            elif isinstance(value, Enum):
                value = value.name
            elif isinstance(value, Type):
                value = str(value)
            details.append(f"{f.name}={value!r}" if isinstance(value, str) else f"{f.name}={value}")

        suffix = f" {' '.join(details)}" if details else ""
        self._emit(f"{node.__class__.__name__} [{node.span}]{suffix}")

        self.indent_level += 1
        for child in iter_children(node):
            self.visit(child)
        self.indent_level -= 1

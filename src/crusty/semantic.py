"""
Crusty Semantic Analyzer
========================

This module checks a parsed Program for faults the grammar cannot catch:
undefined names, type mismatches, duplicate definitions, invalid
operations and constructs the transpiler does not support. It never
changes the shape of the tree; it only fills in the annotation fields
(``resolved_type`` on expressions, ``symbol`` on identifiers).

Analysis Passes
---------------
1. Declaration pass: every item is entered in the global scope (functions
   with their signatures, structs with their fields and methods, enums
   with their variants, typedefs, namespaces, constants, statics, extern
   functions, macros and imports) so that items may be used before they
   are defined.
2. Checking pass: every function body is checked in a fresh scope that
   holds its parameters. Blocks and loops open nested scopes.

Errors are collected rather than raised one at a time, so one run
reports every fault in the unit.

Error Classes
-------------
| Kind                 | Raised for                                          |
|----------------------|-----------------------------------------------------|
| undefined variable   | unknown identifiers, type names and macros          |
| type mismatch        | non-bool conditions, bad initialisers, operands,    |
|                      | arguments, returns, indices and case labels         |
| duplicate definition | a second declaration of a name in the same scope    |
| invalid operation    | calling a non-function, dereferencing a non-pointer,|
|                      | bad field access, indexing a non-array, bad casts,  |
|                      | writes to immutable statics, bad initializers       |
| unsupported feature  | goto, union, #include                               |

Nested Functions
----------------
A nested function that uses locals of an enclosing function captures
them; the captures are stored on the node so the generator can emit a
closure instead of an inner ``fn``. Capturing functions may not call
themselves.

Example Usage
-------------
>>> from crusty.lexer import tokenize
>>> from crusty.parser import parse
>>> from crusty.semantic import analyze
>>> program = analyze(parse(tokenize('int main() { return 0; }')))
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Optional

from crusty.errors import SemanticErrorCollector, SemanticErrorKind, Span
from crusty.parser import is_macro_name
from crusty.types import (
    PRIMITIVE_TYPES,
    TARGET_INTEGER_NAMES,
    TYPE_BOOL,
    TYPE_CHAR,
    TYPE_FLOAT,
    TYPE_FLOAT_LITERAL,
    TYPE_INT,
    TYPE_INT_LITERAL,
    TYPE_NULL,
    TYPE_STR,
    TYPE_UNKNOWN,
    TYPE_VOID,
    ArrayType,
    FunctionType,
    GenericType,
    NamedType,
    PointerType,
    ReferenceType,
    SliceType,
    TupleType,
    Type,
    UntypedNumber,
    common_type,
    element_type,
    is_bool,
    is_compatible,
    is_integer,
    is_keyed,
    is_numeric,
    is_scalar,
    is_unknown,
    is_void,
)
from crusty.ast import (
    ArrayLiteral,
    AssignmentExpression,
    ASTVisitor,
    BinaryExpression,
    BinaryOp,
    Block,
    BreakStatement,
    CallExpression,
    CaseClause,
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
    Item,
    LetStatement,
    Literal,
    LiteralKind,
    LoopStatement,
    MacroDefinition,
    MacroInvocation,
    MethodCallExpression,
    NamespaceDef,
    NestedFunction,
    Program,
    RangeExpression,
    ReturnStatement,
    SizeOfExpression,
    Statement,
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
    WhileStatement,
)


# Library type names usable without an import
PRELUDE_TYPES = frozenset({
    "str", "String", "Vec", "Option", "Result", "Box", "Self",
}) | TARGET_INTEGER_NAMES


# =============================================================================
# Symbols
# =============================================================================

class SymbolKind(Enum):
    """What a name refers to."""
    VARIABLE = auto()
    PARAMETER = auto()
    CONSTANT = auto()
    STATIC = auto()
    FUNCTION = auto()
    STRUCT = auto()
    ENUM = auto()
    TYPEDEF = auto()
    NAMESPACE = auto()
    MACRO = auto()
    IMPORT = auto()


@dataclass
class Symbol:
    """
    A declared name.

    Attributes:
        name: The declared name
        kind: What the name refers to
        symbol_type: Value type for variables and constants, FunctionType
                     for functions, alias target for typedefs
        span: Where the name was declared
        mutable: True for ``var`` and C-style locals and statics; for a
                 nested function, True when it writes a captured variable
        initialized: False for ``let x;`` until a path assigns it
        loop_depth: Loops enclosing the declaration (deferred lets only)
        fields: Struct field types by name
        methods: Struct methods by name
        variants: Enum variant names, in declaration order
        members: Namespace members by name
        param_count: Parameter count for macros
        foreign: Function declared in an extern block
        closure: Nested function that captures locals
    """
    name: str
    kind: SymbolKind
    symbol_type: Optional[Type]
    span: Span
    mutable: bool = False
    initialized: bool = True
    loop_depth: int = 0
    fields: dict[str, Type] = field(default_factory=dict)
    methods: dict[str, FunctionDef] = field(default_factory=dict)
    variants: list[str] = field(default_factory=list)
    members: dict[str, "Symbol"] = field(default_factory=dict)
    param_count: int = 0
    foreign: bool = False
    closure: bool = False


class DuplicateSymbolError(Exception):
    """A name was declared twice in one scope."""

    def __init__(self, existing: Symbol):
        self.existing = existing
        super().__init__(f"'{existing.name}' is already defined in this scope")


class SymbolTable:
    """
    Stack of lexical scopes, innermost last.

    The global scope is created with the table and can never be exited.

    Usage:
        table = SymbolTable()
        table.insert(symbol)
        table.enter_scope()
        table.lookup("x")      # searches innermost scope first
        table.exit_scope()
    """

    def __init__(self):
        self._scopes: list[dict[str, Symbol]] = [{}]

    @property
    def depth(self) -> int:
        """Number of open scopes (1 = global only)."""
        return len(self._scopes)

    def enter_scope(self) -> None:
        self._scopes.append({})

    def exit_scope(self) -> None:
        """Close the innermost scope; the global scope is never closed."""
        if len(self._scopes) > 1:
            self._scopes.pop()

    def insert(self, symbol: Symbol) -> Symbol:
        """
        Declare a symbol in the innermost scope.

        Raises:
            DuplicateSymbolError: If the name already exists in that scope
        """
        scope = self._scopes[-1]
        if symbol.name in scope:
            raise DuplicateSymbolError(scope[symbol.name])
        scope[symbol.name] = symbol
        return symbol

    def lookup(self, name: str) -> Optional[Symbol]:
        """Find a name, searching from the innermost scope outwards."""
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    def lookup_in_current_scope(self, name: str) -> Optional[Symbol]:
        return self._scopes[-1].get(name)

    def lookup_with_depth(self, name: str) -> tuple[Optional[Symbol], int]:
        """Like lookup, also returning the depth of the scope holding the name (0 if none)."""
        for depth in range(len(self._scopes), 0, -1):
            scope = self._scopes[depth - 1]
            if name in scope:
                return scope[name], depth
        return None, 0


# =============================================================================
# Type Environment
# =============================================================================

class TypeEnvironment:
    """
    Knows which type names exist and expands typedef aliases.

    Attributes:
        symbols: The table the user-defined type names live in
        self_type: The struct ``Self`` stands for inside its methods
    """

    def __init__(self, symbols: SymbolTable):
        self.symbols = symbols
        self.self_type: Optional[Type] = None

    def is_known(self, name: str) -> bool:
        """True if ``name`` names a struct, enum, typedef, import or library type."""
        if name in PRELUDE_TYPES or "::" in name:
            return True
        symbol = self.symbols.lookup(name)
        return symbol is not None and symbol.kind in (
            SymbolKind.STRUCT, SymbolKind.ENUM, SymbolKind.TYPEDEF, SymbolKind.IMPORT,
        )

    def unknown_names(self, ty: Optional[Type]) -> list[str]:
        """Every type name used inside ``ty`` that is not known."""
        if ty is None:
            return []
        if isinstance(ty, NamedType):
            return [] if self.is_known(ty.name) else [ty.name]
        if isinstance(ty, GenericType):
            names = [] if self.is_known(ty.base) else [ty.base]
            for arg in ty.args:
                names.extend(self.unknown_names(arg))
            return names
        if isinstance(ty, (PointerType, ReferenceType)):
            return self.unknown_names(ty.target)
        if isinstance(ty, (ArrayType, SliceType)):
            return self.unknown_names(ty.element)
        if isinstance(ty, TupleType):
            return [name for element in ty.elements for name in self.unknown_names(element)]
        return []

    def resolve(self, ty: Optional[Type], _seen: frozenset = frozenset()) -> Optional[Type]:
        """Expand typedef aliases everywhere inside ``ty``."""
        if ty is None:
            return None
        if isinstance(ty, NamedType):
            if ty.name == "Self" and self.self_type is not None:
                return self.self_type
            symbol = self.symbols.lookup(ty.name)
            if symbol is not None and symbol.kind == SymbolKind.TYPEDEF and ty.name not in _seen:
                return self.resolve(symbol.symbol_type, _seen | {ty.name})
            return ty
        if isinstance(ty, PointerType):
            return PointerType(self.resolve(ty.target, _seen), ty.mutable)
        if isinstance(ty, ReferenceType):
            return ReferenceType(self.resolve(ty.target, _seen), ty.mutable)
        if isinstance(ty, ArrayType):
            return ArrayType(self.resolve(ty.element, _seen), ty.size)
        if isinstance(ty, SliceType):
            return SliceType(self.resolve(ty.element, _seen))
        if isinstance(ty, TupleType):
            return TupleType(tuple(self.resolve(t, _seen) for t in ty.elements))
        if isinstance(ty, GenericType):
            return GenericType(ty.base, tuple(self.resolve(t, _seen) for t in ty.args))
        return ty

    def struct_symbol(self, ty: Type) -> Optional[Symbol]:
        """The struct symbol a (resolved) type names, if any."""
        if isinstance(ty, NamedType):
            symbol = self.symbols.lookup(ty.name)
            if symbol is not None and symbol.kind == SymbolKind.STRUCT:
                return symbol
        return None

    def is_enum(self, ty: Type) -> bool:
        if isinstance(ty, NamedType):
            symbol = self.symbols.lookup(ty.name)
            return symbol is not None and symbol.kind == SymbolKind.ENUM
        return False


def _concrete(ty: Type) -> Type:
    """Give unsuffixed literals their default width."""
    if isinstance(ty, UntypedNumber):
        return TYPE_FLOAT if ty.is_float else TYPE_INT
    return ty


def _strip_references(ty: Type) -> Type:
    while isinstance(ty, ReferenceType):
        ty = ty.target
    return ty


def _key_matches(key: Type, index: Type) -> bool:
    """Map lookups borrow the key; a String-keyed map also accepts &str."""
    key, index = _strip_references(key), _strip_references(index)
    if key == NamedType("String") and index == NamedType("str"):
        return True
    return is_compatible(key, index)


def _place_root(place: Expression) -> Optional[Identifier]:
    """The variable a field or element place belongs to, if it is a plain name."""
    while isinstance(place, (FieldAccess, IndexExpression)):
        if isinstance(place, FieldAccess) and place.via_pointer:
            return None
        place = place.target
    return place if isinstance(place, Identifier) else None


def has_receiver(method: FunctionDef) -> bool:
    """True for methods taking ``self``; the rest are associated functions."""
    return bool(method.params) and method.params[0].name == "self"


# Library types that '?' can propagate
_PROPAGATING = ("Result", "Option")

# Marker pushed on the breakable stack while checking switch clauses
_SWITCH = object()


@dataclass
class _NestedFrame:
    """A nested function being checked, with the outer locals it uses."""
    node: NestedFunction
    symbol: Symbol
    boundary: int
    captures: dict[str, Symbol] = field(default_factory=dict)
    recursive: bool = False


# =============================================================================
# Semantic Analyzer
# =============================================================================

class SemanticAnalyzer(ASTVisitor):
    """
    Checks a Program and annotates it.

    Statement visitors return nothing; expression visitors return the
    expression's type, which ``_check_expression`` also stores on the
    node.

    Usage:
        analyzer = SemanticAnalyzer()
        program = analyzer.analyze(program)   # raises SemanticErrors

    Attributes:
        symbols: Scope stack for the unit being analyzed
        errors: Collector for every fault found
    """

    def __init__(self):
        self.symbols = SymbolTable()
        self.types = TypeEnvironment(self.symbols)
        self.errors = SemanticErrorCollector()

        # Function context
        self._return_type: Optional[Type] = None
        self._function_name: Optional[str] = None

        # Loop labels (None for unlabeled loops) and switch markers
        self._breakables: list[object] = []

        # Immutable locals declared without a value, in declaration order
        self._deferred: list[Symbol] = []

        # Nested functions being checked, innermost last
        self._frames: list[_NestedFrame] = []

        # Type the enclosing context wants from the expression being checked
        self._expected: Optional[Type] = None

    def analyze(self, program: Program) -> Program:
        """
        Analyze a complete program.

        Args:
            program: Root node from the parser

        Returns:
            The same program, annotated

        Raises:
            SemanticErrors: If any fault was found
        """
        self.symbols = SymbolTable()
        self.types = TypeEnvironment(self.symbols)
        self.errors.clear()
        self._frames = []

        self._declare_items(program.items, None)
        self._check_items(program.items)

        self.errors.raise_if_errors()
        return program

    # =========================================================================
    # Error Helpers
    # =========================================================================

    def _undefined(self, message: str, span: Span, hint: Optional[str] = None) -> None:
        self.errors.add(SemanticErrorKind.UNDEFINED_VARIABLE, message, span, hint)

    def _mismatch(self, message: str, span: Span, hint: Optional[str] = None) -> None:
        self.errors.add(SemanticErrorKind.TYPE_MISMATCH, message, span, hint)

    def _duplicate(self, message: str, span: Span) -> None:
        self.errors.add(SemanticErrorKind.DUPLICATE_DEFINITION, message, span)

    def _invalid(self, message: str, span: Span, hint: Optional[str] = None) -> None:
        self.errors.add(SemanticErrorKind.INVALID_OPERATION, message, span, hint)

    def _unsupported(self, message: str, span: Span, hint: Optional[str] = None) -> None:
        self.errors.add(SemanticErrorKind.UNSUPPORTED_FEATURE, message, span, hint)

    def _declare(self, symbol: Symbol) -> None:
        """Insert a symbol, reporting a duplicate instead of raising."""
        try:
            self.symbols.insert(symbol)
        except DuplicateSymbolError as e:
            self._duplicate(str(e), symbol.span)

    def _check_type_names(self, ty: Optional[Type], span: Span) -> None:
        for name in self.types.unknown_names(ty):
            self._undefined(f"undefined type '{name}'", span)

    # =========================================================================
    # Pass 1: Declarations
    # =========================================================================

    def _declare_items(self, items: list[Item], namespace: Optional[Symbol]) -> None:
        """
        Enter every item in the global scope, or in a namespace's members.
        """
        for item in items:
            if isinstance(item, ExternBlock):
                symbols = [
                    Symbol(function.name, SymbolKind.FUNCTION,
                           FunctionType(tuple(p.param_type for p in function.params),
                                        function.return_type),
                           function.span, foreign=True)
                    for function in item.functions
                ]
            else:
                symbols = [self._item_symbol(item)]

            for symbol in symbols:
                if symbol is None:
                    continue
                if namespace is None:
                    self._declare(symbol)
                elif symbol.name in namespace.members:
                    self._duplicate(f"'{symbol.name}' is already defined in namespace "
                                    f"'{namespace.name}'", symbol.span)
                else:
                    namespace.members[symbol.name] = symbol

                if isinstance(item, NamespaceDef):
                    self._declare_items(item.items, symbol)

    def _item_symbol(self, item: Item) -> Optional[Symbol]:
        """Build the symbol an item declares (None for items that declare nothing)."""
        if isinstance(item, FunctionDef):
            if is_macro_name(item.name):
                self._invalid(
                    f"function name '{item.name}' uses the macro naming convention",
                    item.span,
                    hint="names wrapped in double underscores are reserved for #define macros",
                )
            signature = FunctionType(tuple(p.param_type for p in item.params), item.return_type)
            return Symbol(item.name, SymbolKind.FUNCTION, signature, item.span)

        if isinstance(item, StructDef):
            fields: dict[str, Type] = {}
            for struct_field in item.fields:
                if struct_field.name in fields:
                    self._duplicate(f"duplicate field '{struct_field.name}' in struct "
                                    f"'{item.name}'", struct_field.span)
                fields[struct_field.name] = struct_field.field_type
            methods: dict[str, FunctionDef] = {}
            for method in item.methods:
                if method.name in methods:
                    self._duplicate(f"duplicate method '{method.name}' in struct "
                                    f"'{item.name}'", method.span)
                else:
                    methods[method.name] = method
            return Symbol(item.name, SymbolKind.STRUCT, NamedType(item.name), item.span,
                          fields=fields, methods=methods)

        if isinstance(item, ConstItem):
            return Symbol(item.name, SymbolKind.CONSTANT, item.declared_type, item.span)

        if isinstance(item, StaticItem):
            return Symbol(item.name, SymbolKind.STATIC, item.declared_type, item.span,
                          mutable=item.mutable)

        if isinstance(item, EnumDef):
            variants: list[str] = []
            for variant in item.variants:
                if variant.name in variants:
                    self._duplicate(f"duplicate variant '{variant.name}' in enum "
                                    f"'{item.name}'", variant.span)
                else:
                    variants.append(variant.name)
            return Symbol(item.name, SymbolKind.ENUM, NamedType(item.name), item.span,
                          variants=variants)

        if isinstance(item, TypedefDef):
            return Symbol(item.name, SymbolKind.TYPEDEF, item.target, item.span)

        if isinstance(item, NamespaceDef):
            return Symbol(item.name, SymbolKind.NAMESPACE, None, item.span)

        if isinstance(item, MacroDefinition):
            return Symbol(item.name, SymbolKind.MACRO, TYPE_UNKNOWN, item.span,
                          param_count=len(item.params))

        if isinstance(item, ImportItem):
            name = item.alias or item.path[-1]
            return Symbol(name, SymbolKind.IMPORT, TYPE_UNKNOWN, item.span)

        if isinstance(item, UnionDef):
            self._unsupported(f"union '{item.name}' is not supported", item.span,
                              hint="use a struct or an enum instead")
            return None

        if isinstance(item, IncludeDirective):
            self._unsupported(f"#include \"{item.path}\" is not supported", item.span,
                              hint="use #use to import modules")
            return None

        return None

    # =========================================================================
    # Pass 2: Checking
    # =========================================================================

    def _check_items(self, items: list[Item]) -> None:
        for item in items:
            self.visit(item)

    def visit_FunctionDef(self, node: FunctionDef) -> None:
        self._check_function(node)

    def _check_function(self, node) -> None:
        """Check a function, method or nested function body in a fresh scope."""
        self._check_type_names(node.return_type, node.span)

        self.symbols.enter_scope()
        for param in node.params:
            self._check_type_names(param.param_type, param.span)
            self._declare(Symbol(param.name, SymbolKind.PARAMETER, param.param_type,
                                 param.span))

        self._return_type = node.return_type
        self._function_name = node.name
        self._breakables = []
        self._deferred = []
        self.visit(node.body)
        self._return_type = None
        self._function_name = None

        self.symbols.exit_scope()

    def visit_StructDef(self, node: StructDef) -> None:
        for struct_field in node.fields:
            self._check_type_names(struct_field.field_type, struct_field.span)

        self.types.self_type = NamedType(node.name)
        for method in node.methods:
            self._check_function(method)
        self.types.self_type = None

    def visit_ConstItem(self, node: ConstItem) -> None:
        self._check_type_names(node.declared_type, node.span)
        self._check_initializer(node.name, node.declared_type, node.value)

    def visit_StaticItem(self, node: StaticItem) -> None:
        self._check_type_names(node.declared_type, node.span)
        self._check_initializer(node.name, node.declared_type, node.value)

    def visit_ExternBlock(self, node: ExternBlock) -> None:
        for function in node.functions:
            self._check_type_names(function.return_type, function.span)
            for param in function.params:
                self._check_type_names(param.param_type, param.span)

    def visit_EnumDef(self, node: EnumDef) -> None:
        pass

    def visit_TypedefDef(self, node: TypedefDef) -> None:
        self._check_type_names(node.target, node.span)

    def visit_NamespaceDef(self, node: NamespaceDef) -> None:
        namespace = self.symbols.lookup(node.name)
        self.symbols.enter_scope()
        if namespace is not None and namespace.kind == SymbolKind.NAMESPACE:
            for member in namespace.members.values():
                self._declare(member)
        self._check_items(node.items)
        self.symbols.exit_scope()

    def visit_MacroDefinition(self, node: MacroDefinition) -> None:
        pass

    def visit_ImportItem(self, node: ImportItem) -> None:
        pass

    def visit_UnionDef(self, node: UnionDef) -> None:
        pass

    def visit_IncludeDirective(self, node: IncludeDirective) -> None:
        pass

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def visit_Block(self, node: Block) -> None:
        self.symbols.enter_scope()
        for statement in node.statements:
            self.visit(statement)
        self.symbols.exit_scope()

    def _check_binding(
        self,
        node: Statement,
        name: str,
        declared_type: Optional[Type],
        initializer: Optional[Expression],
        kind: SymbolKind,
        mutable: bool,
    ) -> None:
        """Check a let/var/const declaration and declare its name."""
        self._check_type_names(declared_type, node.span)

        value_type = None
        if initializer is not None:
            value_type = self._check_initializer(name, declared_type, initializer)

        if declared_type is not None:
            symbol_type = declared_type
        elif value_type is not None:
            symbol_type = _concrete(value_type)
        else:
            symbol_type = TYPE_UNKNOWN

        symbol = Symbol(name, kind, symbol_type, node.span, mutable=mutable,
                        initialized=initializer is not None,
                        loop_depth=self._loop_depth())
        self._declare(symbol)
        if not symbol.initialized and not mutable:
            self._deferred.append(symbol)

    def _check_initializer(self, name: str, declared_type: Optional[Type],
                           value: Expression) -> Type:
        value_type = self._check_expression(value, declared_type)
        if declared_type is not None:
            expected = self.types.resolve(declared_type)
            if not is_compatible(expected, self.types.resolve(value_type)):
                self._mismatch(
                    f"type mismatch in declaration of '{name}': expected "
                    f"{declared_type}, found {value_type}",
                    value.span,
                )
        return value_type

    def visit_NestedFunction(self, node: NestedFunction) -> None:
        signature = FunctionType(tuple(p.param_type for p in node.params), node.return_type)
        symbol = Symbol(node.name, SymbolKind.FUNCTION, signature, node.span)
        self._declare(symbol)

        frame = _NestedFrame(node, symbol, self.symbols.depth)
        saved = (self._return_type, self._function_name, self._breakables, self._deferred)
        self._frames.append(frame)
        self._check_function(node)
        self._frames.pop()
        self._return_type, self._function_name, self._breakables, self._deferred = saved

        captures = list(frame.captures.values())
        node.captures = captures
        symbol.closure = bool(captures)
        node.mutates_captures = symbol.mutable = any(c.mutable for c in captures)
        if frame.recursive and captures:
            self._invalid(f"nested function '{node.name}' cannot call itself because it "
                          f"captures '{captures[0].name}'", node.span,
                          hint="pass the captured values as parameters")

    def _note_use(self, symbol: Symbol, depth: int) -> None:
        """Record a name used inside nested functions as a capture or a recursive call."""
        for frame in self._frames:
            if symbol is frame.symbol:
                frame.recursive = True
            elif 1 < depth <= frame.boundary and (
                symbol.kind in (SymbolKind.VARIABLE, SymbolKind.PARAMETER) or symbol.closure
            ):
                frame.captures.setdefault(symbol.name, symbol)

    def _capturing_function(self, symbol: Symbol) -> Optional[str]:
        """Name of the innermost nested function that captures ``symbol``."""
        for frame in reversed(self._frames):
            if frame.captures.get(symbol.name) is symbol:
                return frame.node.name
        return None

    def visit_LetStatement(self, node: LetStatement) -> None:
        self._check_binding(node, node.name, node.declared_type, node.initializer,
                            SymbolKind.VARIABLE, mutable=False)

    def visit_VarStatement(self, node: VarStatement) -> None:
        self._check_binding(node, node.name, node.declared_type, node.initializer,
                            SymbolKind.VARIABLE, mutable=True)

    def visit_ConstStatement(self, node: ConstStatement) -> None:
        self._check_binding(node, node.name, node.declared_type, node.value,
                            SymbolKind.CONSTANT, mutable=False)

    def visit_ReturnStatement(self, node: ReturnStatement) -> None:
        expected = self._return_type
        if node.value is None:
            if not is_void(expected):
                self._mismatch(f"missing return value: function '{self._function_name}' "
                               f"returns {expected}", node.span)
            return

        actual = self._check_expression(node.value, expected)
        if is_void(expected):
            if not is_void(actual) and not is_unknown(actual):
                self._mismatch(f"void function '{self._function_name}' cannot return "
                               f"a value of type {actual}", node.value.span)
        elif not is_compatible(self.types.resolve(expected), self.types.resolve(actual)):
            self._mismatch(f"return type mismatch: expected {expected}, found {actual}",
                           node.value.span)

    def _check_condition(self, condition: Expression, context: str) -> None:
        condition_type = self._check_expression(condition)
        if not is_bool(condition_type) and not is_unknown(condition_type):
            self._mismatch(f"{context} condition must be bool, found {condition_type}",
                           condition.span,
                           hint="compare explicitly, e.g. 'x != 0'")

    def visit_IfStatement(self, node: IfStatement) -> None:
        self._check_condition(node.condition, "if")
        branches = [lambda: self.visit(node.then_block)]
        if node.else_branch is not None:
            branches.append(lambda: self.visit(node.else_branch))
        self._check_paths(branches)

    def _check_paths(self, paths: list[Callable[[], None]]) -> None:
        """
        Check alternative paths, each starting from the same set of
        initialized deferred lets.

        After the join a deferred let counts as initialized when any path
        assigned it, so assigning it again on any later path is an error.
        """
        start = [symbol.initialized for symbol in self._deferred]
        assigned = list(start)
        for path in paths:
            for symbol, state in zip(self._deferred, start):
                symbol.initialized = state
            path()
            assigned = [done or symbol.initialized
                        for done, symbol in zip(assigned, self._deferred)]
        for symbol, state in zip(self._deferred, assigned):
            symbol.initialized = state

    def _loop_depth(self) -> int:
        return sum(1 for entry in self._breakables if entry is not _SWITCH)

    def _check_loop_body(self, label: Optional[str], body: Block) -> None:
        self._breakables.append(label)
        self.visit(body)
        self._breakables.pop()

    def visit_WhileStatement(self, node: WhileStatement) -> None:
        self._check_condition(node.condition, "while")
        self._check_loop_body(node.label, node.body)

    def visit_LoopStatement(self, node: LoopStatement) -> None:
        self._check_loop_body(node.label, node.body)

    def visit_ForStatement(self, node: ForStatement) -> None:
        self.symbols.enter_scope()
        if node.init is not None:
            self.visit(node.init)
        if node.condition is not None:
            self._check_condition(node.condition, "for")
        if node.step is not None:
            self._check_expression(node.step)
        self._check_loop_body(node.label, node.body)
        self.symbols.exit_scope()

    def visit_ForInStatement(self, node: ForInStatement) -> None:
        iterable_type = _strip_references(self._check_expression(node.iterable))
        if isinstance(iterable_type, GenericType) and iterable_type.args:
            element_type = _concrete(iterable_type.args[0])
        elif isinstance(iterable_type, (ArrayType, SliceType)):
            element_type = iterable_type.element
        else:
            element_type = TYPE_UNKNOWN

        self.symbols.enter_scope()
        self._declare(Symbol(node.variable, SymbolKind.VARIABLE, element_type, node.span))
        self._check_loop_body(node.label, node.body)
        self.symbols.exit_scope()

    def visit_SwitchStatement(self, node: SwitchStatement) -> None:
        scrutinee_type = self.types.resolve(self._check_expression(node.scrutinee))

        paths = [lambda clause=clause: self._check_case(clause, scrutinee_type)
                 for clause in node.cases]
        if node.default is not None:
            paths.append(lambda: self._check_case_body(node.default))
        self._check_paths(paths)

    def _check_case(self, clause: CaseClause, scrutinee_type: Type) -> None:
        for value in clause.values:
            value_type = self._check_expression(value)
            if isinstance(value, RangeExpression) and isinstance(value_type, GenericType):
                value_type = value_type.args[0]
            if not is_compatible(scrutinee_type, self.types.resolve(value_type)):
                self._mismatch(f"case label type mismatch: expected {scrutinee_type}, "
                               f"found {value_type}", value.span)
        self._check_case_body(clause.body)

    def _check_case_body(self, body: Block) -> None:
        """A trailing unlabeled break just ends the case and is allowed."""
        statements = body.statements
        if statements and isinstance(statements[-1], BreakStatement) and statements[-1].label is None:
            statements = statements[:-1]

        self._breakables.append(_SWITCH)
        self.symbols.enter_scope()
        for statement in statements:
            self.visit(statement)
        self.symbols.exit_scope()
        self._breakables.pop()

    def _check_jump(self, node: Statement, keyword: str, label: Optional[str]) -> None:
        if keyword == "break" and label is None and self._breakables \
                and self._breakables[-1] is _SWITCH:
            self._unsupported("'break' inside a switch case must be its last statement",
                              node.span, hint="use a labeled loop and 'break .label;'")
            return

        loops = [entry for entry in self._breakables if entry is not _SWITCH]
        if not loops:
            self._invalid(f"'{keyword}' outside of a loop", node.span)
        elif label is not None and label not in loops:
            self._invalid(f"unknown loop label '.{label}'", node.span)

    def visit_BreakStatement(self, node: BreakStatement) -> None:
        self._check_jump(node, "break", node.label)

    def visit_ContinueStatement(self, node: ContinueStatement) -> None:
        self._check_jump(node, "continue", node.label)

    def visit_GotoStatement(self, node: GotoStatement) -> None:
        self._unsupported(f"goto is not supported (goto {node.label})", node.span,
                          hint="use loops with break and continue")

    def visit_ExpressionStatement(self, node: ExpressionStatement) -> None:
        self._check_expression(node.expression)

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def _check_expression(self, expr: Expression, expected: Optional[Type] = None) -> Type:
        """
        Visit an expression, annotate it and return its type.

        Args:
            expr: The expression to check
            expected: The type the context requires, if known; lets an
                      untyped struct initializer pick its struct
        """
        saved = self._expected
        self._expected = expected
        expr_type = self.visit(expr)
        self._expected = saved
        if expr_type is None:
            expr_type = TYPE_UNKNOWN
        expr.resolved_type = expr_type
        return expr_type

    def visit_Literal(self, node: Literal) -> Type:
        if node.kind in (LiteralKind.INT, LiteralKind.FLOAT):
            if node.suffix is not None:
                return PRIMITIVE_TYPES.get(node.suffix, NamedType(node.suffix))
            return TYPE_INT_LITERAL if node.kind == LiteralKind.INT else TYPE_FLOAT_LITERAL
        if node.kind == LiteralKind.STRING:
            return TYPE_STR
        if node.kind == LiteralKind.CHAR:
            return TYPE_CHAR
        if node.kind == LiteralKind.BOOL:
            return TYPE_BOOL
        return TYPE_NULL

    def visit_Identifier(self, node: Identifier) -> Type:
        if "::" in node.name:
            return self._check_path(node)

        symbol, depth = self.symbols.lookup_with_depth(node.name)
        if symbol is None:
            self._undefined(f"undefined variable '{node.name}'", node.span,
                            hint=f"declare '{node.name}' with let or var before using it")
            return TYPE_UNKNOWN

        node.symbol = symbol
        self._note_use(symbol, depth)
        if symbol.kind in (SymbolKind.VARIABLE, SymbolKind.PARAMETER, SymbolKind.CONSTANT,
                           SymbolKind.STATIC, SymbolKind.FUNCTION):
            return symbol.symbol_type
        return TYPE_UNKNOWN

    def _check_path(self, node: Identifier) -> Type:
        """Check ``Enum::Variant`` and ``namespace::member`` paths."""
        head, *rest = node.name.split("::")
        symbol = self.symbols.lookup(head)
        if symbol is None:
            self._undefined(f"undefined name '{head}'", node.span)
            return TYPE_UNKNOWN

        node.symbol = symbol
        if symbol.kind == SymbolKind.ENUM and len(rest) == 1:
            if rest[0] not in symbol.variants:
                self._invalid(f"enum '{head}' has no variant '{rest[0]}'", node.span)
            return NamedType(head)

        if symbol.kind == SymbolKind.NAMESPACE:
            member = symbol
            for segment in rest:
                member = member.members.get(segment)
                if member is None:
                    self._undefined(f"undefined name '{node.name}'", node.span)
                    return TYPE_UNKNOWN
            node.symbol = member
            if member.kind in (SymbolKind.FUNCTION, SymbolKind.VARIABLE, SymbolKind.CONSTANT,
                               SymbolKind.STATIC):
                return member.symbol_type
        return TYPE_UNKNOWN

    def visit_BinaryExpression(self, node: BinaryExpression) -> Type:
        left = self.types.resolve(self._check_expression(node.left))
        right = self.types.resolve(self._check_expression(node.right))
        op = node.operator.value

        if is_unknown(left) or is_unknown(right):
            return TYPE_BOOL if node.operator.is_comparison or node.operator.is_logical else TYPE_UNKNOWN

        if node.operator.is_logical:
            if not (is_bool(left) and is_bool(right)):
                self._mismatch(f"operator '{op}' requires bool operands, found {left} "
                               f"and {right}", node.span)
            return TYPE_BOOL

        if node.operator.is_comparison:
            if not (is_compatible(left, right) or is_compatible(right, left)):
                self._mismatch(f"cannot compare {left} with {right}", node.span)
            return TYPE_BOOL

        compatible = is_compatible(left, right) or is_compatible(right, left)
        if node.operator.is_bitwise:
            bool_ok = node.operator not in (BinaryOp.SHL, BinaryOp.SHR) and is_bool(left) and is_bool(right)
            shift_ok = node.operator in (BinaryOp.SHL, BinaryOp.SHR) and is_integer(left) and is_integer(right)
            if not (bool_ok or shift_ok or (is_integer(left) and is_integer(right) and compatible)):
                self._mismatch(f"operator '{op}' cannot be applied to {left} and {right}",
                               node.span)
            return left if shift_ok else common_type(left, right)

        if not (is_numeric(left) and is_numeric(right) and compatible):
            self._mismatch(f"operator '{op}' cannot be applied to {left} and {right}", node.span)
            return TYPE_UNKNOWN
        return common_type(left, right)

    def visit_UnaryExpression(self, node: UnaryExpression) -> Type:
        operand = self.types.resolve(self._check_expression(node.operand))
        op = node.operator

        if op in (UnaryOp.REF, UnaryOp.REF_MUT):
            root = _place_root(node.operand)
            static = root.symbol if root is not None else None
            if static is not None and static.kind == SymbolKind.STATIC and static.mutable:
                self._invalid(f"cannot borrow mutable static '{static.name}'", node.span,
                              hint="read it into a local first")
            elif op == UnaryOp.REF_MUT:
                self._check_assignable(node.operand, "borrow mutably")
            return ReferenceType(_concrete(operand), mutable=op == UnaryOp.REF_MUT)

        if is_unknown(operand):
            return TYPE_UNKNOWN

        if op == UnaryOp.NOT:
            if not (is_bool(operand) or is_integer(operand)):
                self._mismatch(f"operator '!' cannot be applied to {operand}", node.span)
            return operand

        if op == UnaryOp.NEG:
            if not is_numeric(operand):
                self._mismatch(f"operator '-' cannot be applied to {operand}", node.span)
            return operand

        if op == UnaryOp.DEREF:
            if isinstance(operand, (PointerType, ReferenceType)):
                return operand.target
            self._invalid(f"cannot dereference non-pointer type {operand}", node.span)
            return TYPE_UNKNOWN

        # ++ and --
        if not is_numeric(operand):
            self._mismatch(f"cannot increment or decrement a value of type {operand}", node.span)
        self._check_assignable(node.operand, "modify")
        return operand

    def _check_assignable(self, target: Expression, action: str) -> None:
        """Report targets that cannot be written to."""
        if isinstance(target, Identifier):
            symbol = target.symbol
            if symbol is None:
                return
            nested = self._capturing_function(symbol)
            if symbol.kind == SymbolKind.VARIABLE and not symbol.mutable and nested:
                self._invalid(f"cannot {action} immutable variable '{symbol.name}' from "
                              f"nested function '{nested}'", target.span,
                              hint=f"declare '{symbol.name}' with var")
            elif symbol.kind == SymbolKind.STATIC:
                if not symbol.mutable:
                    self._invalid(f"cannot {action} immutable static '{symbol.name}'",
                                  target.span, hint=f"declare '{symbol.name}' with var")
            elif symbol.kind == SymbolKind.VARIABLE and not symbol.mutable:
                if symbol.initialized:
                    self._invalid(f"cannot {action} immutable variable '{symbol.name}'",
                                  target.span, hint=f"declare '{symbol.name}' with var")
                elif self._loop_depth() > symbol.loop_depth:
                    self._invalid(f"cannot {action} immutable variable '{symbol.name}' "
                                  f"inside a loop", target.span,
                                  hint=f"declare '{symbol.name}' with var")
                    symbol.initialized = True
                else:
                    symbol.initialized = True
            elif symbol.kind == SymbolKind.PARAMETER:
                self._invalid(f"cannot {action} parameter '{symbol.name}'", target.span,
                              hint="copy it into a var local first")
            elif symbol.kind not in (SymbolKind.VARIABLE, SymbolKind.IMPORT):
                self._invalid(f"cannot {action} '{symbol.name}'", target.span)
        elif isinstance(target, (FieldAccess, IndexExpression)):
            root = _place_root(target)
            symbol = root.symbol if root is not None else None
            if symbol is None:
                return
            if symbol.kind == SymbolKind.STATIC and not symbol.mutable:
                self._invalid(f"cannot {action} a part of immutable static '{symbol.name}'",
                              target.span, hint=f"declare '{symbol.name}' with var")
            elif symbol.kind == SymbolKind.PARAMETER and symbol.name == "self" and not (
                isinstance(symbol.symbol_type, ReferenceType) and symbol.symbol_type.mutable
            ):
                self._invalid(f"cannot {action} a field of 'self' taken as "
                              f"{symbol.symbol_type}", target.span,
                              hint="take '&var self' instead")
        elif isinstance(target, UnaryExpression) and target.operator == UnaryOp.DEREF:
            return
        else:
            self._invalid(f"cannot {action} this expression", target.span)

    def visit_AssignmentExpression(self, node: AssignmentExpression) -> Type:
        target_type = self._check_expression(node.target)
        target = self.types.resolve(target_type)
        value = self.types.resolve(self._check_expression(node.value, target_type))
        self._check_assignable(node.target, "assign to")

        if node.operator == "=":
            if not is_compatible(target, value):
                self._mismatch(f"cannot assign {value} to {target}", node.span)
        elif not (is_unknown(target) or is_unknown(value)):
            if not (is_numeric(target) and is_numeric(value) and is_compatible(target, value)):
                self._mismatch(f"operator '{node.operator}' cannot be applied to {target} "
                               f"and {value}", node.span)
        return target

    def visit_TernaryExpression(self, node: TernaryExpression) -> Type:
        self._check_condition(node.condition, "ternary")
        then_type = self.types.resolve(self._check_expression(node.then_expr))
        else_type = self.types.resolve(self._check_expression(node.else_expr))
        if not (is_compatible(then_type, else_type) or is_compatible(else_type, then_type)):
            self._mismatch(f"ternary branches have different types: {then_type} and "
                           f"{else_type}", node.span)
            return TYPE_UNKNOWN
        return common_type(then_type, else_type)

    def visit_RangeExpression(self, node: RangeExpression) -> Type:
        bounds = []
        for bound in (node.start, node.end):
            if bound is None:
                continue
            bound_type = self.types.resolve(self._check_expression(bound))
            if not is_integer(bound_type) and not is_unknown(bound_type):
                self._mismatch(f"range bounds must be integers, found {bound_type}", bound.span)
            bounds.append(bound_type)

        if len(bounds) == 2 and not (is_compatible(bounds[0], bounds[1])
                                     or is_compatible(bounds[1], bounds[0])):
            self._mismatch(f"range bounds have different types: {bounds[0]} and {bounds[1]}",
                           node.span)
        element = TYPE_INT_LITERAL
        for bound_type in bounds:
            element = common_type(element, bound_type)
        return GenericType("Range", (element,))

    def visit_CallExpression(self, node: CallExpression) -> Type:
        callee_type = self._check_expression(node.callee)

        symbol = node.callee.symbol if isinstance(node.callee, Identifier) else None
        name = node.callee.name if isinstance(node.callee, Identifier) else "expression"

        if not isinstance(callee_type, FunctionType):
            for arg in node.arguments:
                self._check_expression(arg)
            if not is_unknown(callee_type) or (symbol is not None and symbol.kind not in (
                SymbolKind.VARIABLE, SymbolKind.PARAMETER, SymbolKind.CONSTANT, SymbolKind.IMPORT,
            )):
                self._invalid(f"'{name}' is not a function", node.callee.span)
            return TYPE_UNKNOWN

        self._check_arguments(f"function '{name}'", name, callee_type.params,
                              node.arguments, node.span)
        return callee_type.return_type if callee_type.return_type is not None else TYPE_VOID

    def _check_arguments(self, callee: str, name: str, params: tuple[Type, ...],
                         arguments: list[Expression], span: Span) -> None:
        """
        Check call arguments against parameter types.

        Args:
            callee: How the count error names the callee, e.g. "function 'f'"
            name: How argument errors name the callee
            params: Parameter types, receiver excluded
            arguments: The argument expressions
            span: Span of the whole call
        """
        if len(arguments) != len(params):
            for arg in arguments:
                self._check_expression(arg)
            self._mismatch(f"{callee} expects {len(params)} argument(s), found "
                           f"{len(arguments)}", span)
            return

        for index, (expected, arg) in enumerate(zip(params, arguments), 1):
            actual = self._check_expression(arg, expected)
            if not is_compatible(self.types.resolve(expected), self.types.resolve(actual)):
                self._mismatch(f"argument {index} of '{name}': expected {expected}, "
                               f"found {actual}", arg.span)

    def _check_method(self, struct: Symbol, method: FunctionDef, params: list,
                      arguments: list[Expression], span: Span) -> Type:
        """Check a call of a struct's method and return its result type."""
        saved = self.types.self_type
        self.types.self_type = NamedType(struct.name)
        param_types = tuple(self.types.resolve(p.param_type) for p in params)
        result = self.types.resolve(method.return_type)
        self.types.self_type = saved

        name = f"{struct.name}.{method.name}"
        self._check_arguments(f"method '{name}'", name, param_types, arguments, span)
        return result if result is not None else TYPE_VOID

    def visit_MethodCallExpression(self, node: MethodCallExpression) -> Type:
        receiver = _strip_references(self.types.resolve(self._check_expression(node.receiver)))
        if isinstance(receiver, PointerType):
            receiver = self.types.resolve(receiver.target)

        struct = self.types.struct_symbol(receiver)
        if struct is None or (node.method not in struct.methods and not struct.methods):
            for arg in node.arguments:
                self._check_expression(arg)
            return TYPE_UNKNOWN

        method = struct.methods.get(node.method)
        if method is None:
            self._invalid(f"struct '{struct.name}' has no method '{node.method}'", node.span)
        elif not has_receiver(method):
            self._invalid(f"'{struct.name}.{node.method}' takes no self and cannot be called "
                          f"on a value", node.span,
                          hint=f"call it as @{struct.name}->{node.method}(...)")
        else:
            return self._check_method(struct, method, method.params[1:], node.arguments,
                                      node.span)

        for arg in node.arguments:
            self._check_expression(arg)
        return TYPE_UNKNOWN

    def visit_TypeScopedCall(self, node: TypeScopedCall) -> Type:
        head = node.type_path[0]
        symbol = self.symbols.lookup(head)
        if not self.types.is_known(head) and (symbol is None or symbol.kind != SymbolKind.NAMESPACE):
            self._undefined(f"undefined type '{head}'", node.span)
        for type_arg in node.type_args:
            self._check_type_names(type_arg, node.span)

        struct = None
        if len(node.type_path) == 1:
            struct = self.types.struct_symbol(self.types.resolve(NamedType(head)))
        if struct is None or not struct.methods:
            for arg in node.arguments:
                self._check_expression(arg)
            return TYPE_UNKNOWN

        method = struct.methods.get(node.method)
        if method is None:
            self._invalid(f"struct '{struct.name}' has no method '{node.method}'", node.span)
            for arg in node.arguments:
                self._check_expression(arg)
            return TYPE_UNKNOWN
        return self._check_method(struct, method, method.params, node.arguments, node.span)

    def visit_MacroInvocation(self, node: MacroInvocation) -> Type:
        for arg in node.arguments:
            self._check_expression(arg)

        if is_macro_name(node.name):
            symbol = self.symbols.lookup(node.name)
            if symbol is None or symbol.kind != SymbolKind.MACRO:
                self._undefined(f"undefined macro '{node.name}'", node.span,
                                hint=f"define it with #define {node.name}")
            elif symbol.param_count != len(node.arguments):
                self._mismatch(f"macro '{node.name}' expects {symbol.param_count} "
                               f"argument(s), found {len(node.arguments)}", node.span)
        return TYPE_UNKNOWN

    def visit_CastExpression(self, node: CastExpression) -> Type:
        self._check_type_names(node.target_type, node.span)
        source = self.types.resolve(self._check_expression(node.operand))
        target = self.types.resolve(node.target_type)

        source_ok = is_scalar(source) or self.types.is_enum(source)
        if not source_ok or not is_scalar(target):
            self._invalid(f"cannot cast {source} to {node.target_type}", node.span)
        return node.target_type

    def visit_SizeOfExpression(self, node: SizeOfExpression) -> Type:
        self._check_type_names(node.target_type, node.span)
        return NamedType("usize")

    def visit_FieldAccess(self, node: FieldAccess) -> Type:
        target = self.types.resolve(self._check_expression(node.target))
        if is_unknown(target):
            return TYPE_UNKNOWN

        if node.via_pointer:
            if not isinstance(target, (PointerType, ReferenceType)):
                self._invalid(f"'->' requires a pointer, found {target}", node.span)
                return TYPE_UNKNOWN
            target = self.types.resolve(target.target)
        target = _strip_references(target)

        if isinstance(target, TupleType) and node.field_name.isdigit():
            index = int(node.field_name)
            if index < len(target.elements):
                return target.elements[index]
            self._invalid(f"tuple {target} has no element {index}", node.span)
            return TYPE_UNKNOWN

        struct = self.types.struct_symbol(target)
        if struct is not None:
            if node.field_name not in struct.fields:
                self._invalid(f"struct '{struct.name}' has no field '{node.field_name}'",
                              node.span)
                return TYPE_UNKNOWN
            return struct.fields[node.field_name]

        if isinstance(target, (NamedType, GenericType)) and not self.types.is_enum(target) \
                and not is_integer(target):
            # Library type: fields are not known here
            return TYPE_UNKNOWN

        self._invalid(f"cannot access field '{node.field_name}' on non-struct type {target}",
                      node.span)
        return TYPE_UNKNOWN

    def visit_IndexExpression(self, node: IndexExpression) -> Type:
        target = _strip_references(self.types.resolve(self._check_expression(node.target)))
        index = self.types.resolve(self._check_expression(node.index))

        is_range = isinstance(node.index, RangeExpression)
        if is_keyed(target):
            key, value = target.args
            if not _key_matches(self.types.resolve(key), index):
                self._mismatch(f"map key must be {key}, found {index}", node.index.span)
            return value

        if not is_range and not is_integer(index) and not is_unknown(index):
            self._mismatch(f"array index must be an integer, found {index}", node.index.span)

        if is_unknown(target):
            return TYPE_UNKNOWN
        if isinstance(target, (ArrayType, SliceType)):
            return SliceType(target.element) if is_range else target.element
        if isinstance(target, GenericType):
            element = element_type(target)
            return element if element is not None and not is_range else TYPE_UNKNOWN
        if isinstance(target, NamedType) and target == TYPE_STR.target:
            return TYPE_UNKNOWN
        if isinstance(target, NamedType) and self.types.struct_symbol(target) is None \
                and not self.types.is_enum(target) and not is_integer(target):
            return TYPE_UNKNOWN

        self._invalid(f"cannot index into a value of type {target}", node.span)
        return TYPE_UNKNOWN

    def visit_StructInit(self, node: StructInit) -> Type:
        struct_type = node.struct_type
        if struct_type is not None:
            self._check_type_names(struct_type, node.span)
        else:
            struct_type = self._expected

        struct = None
        if struct_type is None:
            self._invalid("cannot infer the struct type of this initializer", node.span,
                          hint="write the type as a cast, e.g. (Point){ .x = 1 }")
        else:
            resolved = self.types.resolve(struct_type)
            struct = self.types.struct_symbol(resolved)
            if struct is None and not is_unknown(resolved) and node.struct_type is None:
                self._mismatch(f"struct initializer used where {struct_type} is expected",
                               node.span)
            elif struct is None and not is_unknown(resolved):
                self._invalid(f"'{struct_type}' is not a struct", node.span)

        if struct is None:
            for field_init in node.fields:
                self._check_expression(field_init.value)
            return TYPE_UNKNOWN

        seen: set[str] = set()
        for field_init in node.fields:
            field_type = struct.fields.get(field_init.name)
            if field_init.name in seen:
                self._duplicate(f"field '{field_init.name}' is initialized more than once",
                                field_init.span)
            seen.add(field_init.name)
            if field_type is None:
                self._invalid(f"struct '{struct.name}' has no field '{field_init.name}'",
                              field_init.span)
                self._check_expression(field_init.value)
                continue
            actual = self._check_expression(field_init.value, field_type)
            if not is_compatible(self.types.resolve(field_type), self.types.resolve(actual)):
                self._mismatch(f"type mismatch in field '{field_init.name}' of "
                               f"'{struct.name}': expected {field_type}, found {actual}",
                               field_init.value.span)

        missing = [name for name in struct.fields if name not in seen]
        if missing:
            names = ", ".join(f"'{name}'" for name in missing)
            self._invalid(f"missing field{'s' if len(missing) > 1 else ''} {names} in "
                          f"initializer of struct '{struct.name}'", node.span)
        return struct_type

    def visit_ErrorPropagation(self, node: ErrorPropagation) -> Type:
        operand = _strip_references(self.types.resolve(self._check_expression(node.operand)))
        if is_unknown(operand):
            return TYPE_UNKNOWN
        if not (isinstance(operand, GenericType) and operand.base in _PROPAGATING
                and operand.args):
            self._mismatch(f"error propagation requires a Result or Option, found {operand}",
                           node.span)
            return TYPE_UNKNOWN

        returns = self.types.resolve(self._return_type)
        if not (isinstance(returns, GenericType) and returns.base in _PROPAGATING):
            found = "void" if is_void(returns) else str(returns)
            self._invalid(f"cannot propagate errors from function '{self._function_name}' "
                          f"returning {found}", node.span,
                          hint="declare the return type as Result or Option")
        elif returns.base != operand.base:
            self._mismatch(f"cannot propagate {operand.base} from function "
                           f"'{self._function_name}' returning {returns}", node.span)
        return operand.args[0]

    def visit_ArrayLiteral(self, node: ArrayLiteral) -> Type:
        element: Type = TYPE_UNKNOWN
        for index, value in enumerate(node.elements):
            value_type = self.types.resolve(self._check_expression(value))
            if index == 0:
                element = value_type
            elif is_compatible(element, value_type) or is_compatible(value_type, element):
                element = common_type(element, value_type)
            else:
                self._mismatch(f"array elements have different types: {element} and "
                               f"{value_type}", value.span)
        return ArrayType(element, len(node.elements))

    def visit_TupleLiteral(self, node: TupleLiteral) -> Type:
        return TupleType(tuple(self._check_expression(e) for e in node.elements))


# =============================================================================
# Convenience Function
# =============================================================================

def analyze(program: Program) -> Program:
    """
    Analyze a parsed program.

    Args:
        program: Root node from the parser

    Returns:
        The same program, with annotations filled in

    Raises:
        SemanticErrors: Holding every fault found, in source order
    """
    return SemanticAnalyzer().analyze(program)

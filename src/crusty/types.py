"""
Crusty Type System
==================

This module defines how types are represented once parsed, and the
compatibility rules the semantic analyzer checks expressions against.

Supported Types
---------------
| Dialect spelling | Representation                     | Target spelling |
|------------------|------------------------------------|-----------------|
| int, i32         | PrimitiveType(INT / I32)           | i32             |
| i64, u32, u64    | PrimitiveType(...)                 | same            |
| float, f64       | PrimitiveType(FLOAT / F64)         | f64             |
| f32, bool, char  | PrimitiveType(...)                 | same            |
| void             | PrimitiveType(VOID)                | ()              |
| Point            | NamedType("Point")                 | Point           |
| *int, int*       | PointerType(int)                   | *mut i32        |
| &int, &var int   | ReferenceType(int, mutable)        | &i32, &mut i32  |
| int[4]           | ArrayType(int, 4)                  | [i32; 4]        |
| int[]            | SliceType(int)                     | [i32]           |
| (int, bool)      | TupleType((int, bool))             | (i32, bool)     |
| Vec<int>         | GenericType("Vec", (int,))         | Vec<i32>        |

The analyzer also uses a few types that are never written in source:
FunctionType for function symbols, UntypedNumber for unsuffixed numeric
literals, NullType for NULL, and UnknownType for values whose type cannot
be known without the target's library (macro results, type-scoped calls).

Compatibility Lattice
---------------------
1. Identical types are compatible.
2. int is the same type as i32, float the same as f64.
3. An unsuffixed integer literal fits any integer width; an unsuffixed
   float literal fits any float width.
4. NULL fits any pointer and any Option<...>.
5. UnknownType is compatible with everything.
6. Composite types compare structurally; a void pointer accepts any
   pointer, and a mutable reference may be used where a shared one is
   expected.

Design Notes
------------
- All types are frozen dataclasses: values that can be compared,
  hashed and shared between AST nodes without copying.
- Types carry no span. The AST node that mentions a type carries it.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


# =============================================================================
# Primitive Kinds
# =============================================================================

class PrimitiveKind(Enum):
    """The dialect's primitive types."""
    INT = auto()
    I32 = auto()
    I64 = auto()
    U32 = auto()
    U64 = auto()
    FLOAT = auto()
    F32 = auto()
    F64 = auto()
    BOOL = auto()
    CHAR = auto()
    VOID = auto()

    def __str__(self) -> str:
        """Return the dialect type name."""
        return self.name.lower()

    @property
    def is_integer(self) -> bool:
        return self in _INTEGER_KINDS

    @property
    def is_float(self) -> bool:
        return self in _FLOAT_KINDS


_INTEGER_KINDS = frozenset({
    PrimitiveKind.INT, PrimitiveKind.I32, PrimitiveKind.I64,
    PrimitiveKind.U32, PrimitiveKind.U64,
})
_FLOAT_KINDS = frozenset({PrimitiveKind.FLOAT, PrimitiveKind.F32, PrimitiveKind.F64})

# int and float are spellings of the same types as i32 and f64
_CANONICAL_KINDS = {
    PrimitiveKind.INT: PrimitiveKind.I32,
    PrimitiveKind.FLOAT: PrimitiveKind.F64,
}


# =============================================================================
# Type Representation
# =============================================================================

@dataclass(frozen=True)
class Type:
    """Base class for all types."""

    def __str__(self) -> str:
        return self.__class__.__name__


@dataclass(frozen=True)
class PrimitiveType(Type):
    """A built-in scalar type (or void)."""
    kind: PrimitiveKind

    def __str__(self) -> str:
        return str(self.kind)


@dataclass(frozen=True)
class NamedType(Type):
    """A user-defined type: struct, enum, typedef alias or library type."""
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class PointerType(Type):
    """A raw pointer."""
    target: Type
    mutable: bool = True

    def __str__(self) -> str:
        return f"*{self.target}"


@dataclass(frozen=True)
class ReferenceType(Type):
    """A borrowed reference; ``&var T`` is mutable."""
    target: Type
    mutable: bool = False

    def __str__(self) -> str:
        return f"&var {self.target}" if self.mutable else f"&{self.target}"


@dataclass(frozen=True)
class ArrayType(Type):
    """A fixed-size array."""
    element: Type
    size: int

    def __str__(self) -> str:
        return f"{self.element}[{self.size}]"


@dataclass(frozen=True)
class SliceType(Type):
    """An array of unknown size."""
    element: Type

    def __str__(self) -> str:
        return f"{self.element}[]"


@dataclass(frozen=True)
class TupleType(Type):
    """A tuple of element types."""
    elements: tuple[Type, ...] = ()

    def __str__(self) -> str:
        return "(" + ", ".join(str(t) for t in self.elements) + ")"


@dataclass(frozen=True)
class GenericType(Type):
    """A generic instantiation such as ``Vec<int>``."""
    base: str
    args: tuple[Type, ...] = ()

    def __str__(self) -> str:
        return f"{self.base}<" + ", ".join(str(t) for t in self.args) + ">"


# -----------------------------------------------------------------------------
# Analyzer-only types
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class FunctionType(Type):
    """Signature of a function symbol. ``return_type`` None means void."""
    params: tuple[Type, ...] = ()
    return_type: Optional[Type] = None

    def __str__(self) -> str:
        ret = str(self.return_type) if self.return_type is not None else "void"
        return f"{ret}(" + ", ".join(str(t) for t in self.params) + ")"


@dataclass(frozen=True)
class UntypedNumber(Type):
    """An unsuffixed numeric literal that adapts to the width it meets."""
    is_float: bool = False

    def __str__(self) -> str:
        return "float literal" if self.is_float else "integer literal"


@dataclass(frozen=True)
class NullType(Type):
    """The type of NULL."""

    def __str__(self) -> str:
        return "NULL"


@dataclass(frozen=True)
class UnknownType(Type):
    """A value whose type cannot be determined; compatible with anything."""

    def __str__(self) -> str:
        return "<unknown>"


# =============================================================================
# Predefined Types (for convenience)
# =============================================================================

TYPE_INT = PrimitiveType(PrimitiveKind.INT)
TYPE_I32 = PrimitiveType(PrimitiveKind.I32)
TYPE_I64 = PrimitiveType(PrimitiveKind.I64)
TYPE_U32 = PrimitiveType(PrimitiveKind.U32)
TYPE_U64 = PrimitiveType(PrimitiveKind.U64)
TYPE_FLOAT = PrimitiveType(PrimitiveKind.FLOAT)
TYPE_F32 = PrimitiveType(PrimitiveKind.F32)
TYPE_F64 = PrimitiveType(PrimitiveKind.F64)
TYPE_BOOL = PrimitiveType(PrimitiveKind.BOOL)
TYPE_CHAR = PrimitiveType(PrimitiveKind.CHAR)
TYPE_VOID = PrimitiveType(PrimitiveKind.VOID)
TYPE_STR = ReferenceType(NamedType("str"))

TYPE_UNKNOWN = UnknownType()
TYPE_NULL = NullType()
TYPE_INT_LITERAL = UntypedNumber(is_float=False)
TYPE_FLOAT_LITERAL = UntypedNumber(is_float=True)

# Primitive types by their source spelling
PRIMITIVE_TYPES: dict[str, PrimitiveType] = {
    str(kind): PrimitiveType(kind) for kind in PrimitiveKind
}

# Target integer widths with no dialect keyword; written as plain names
# (``usize n = 0;``) or as literal suffixes (``0usize``)
TARGET_INTEGER_NAMES = frozenset({
    "i8", "i16", "i128", "isize", "u8", "u16", "u128", "usize",
})

# Library maps, indexed by key rather than by position
KEYED_CONTAINERS = frozenset({"HashMap", "BTreeMap"})


# =============================================================================
# Type Queries
# =============================================================================

def canonical(ty: Type) -> Type:
    """Map the int/float spellings onto i32/f64; other types are unchanged."""
    if isinstance(ty, PrimitiveType) and ty.kind in _CANONICAL_KINDS:
        return PrimitiveType(_CANONICAL_KINDS[ty.kind])
    return ty


def is_integer(ty: Type) -> bool:
    """True for integer primitives and unsuffixed integer literals."""
    if isinstance(ty, UntypedNumber):
        return not ty.is_float
    if isinstance(ty, NamedType):
        return ty.name in TARGET_INTEGER_NAMES
    return isinstance(ty, PrimitiveType) and ty.kind.is_integer


def is_float(ty: Type) -> bool:
    """True for float primitives and unsuffixed float literals."""
    if isinstance(ty, UntypedNumber):
        return ty.is_float
    return isinstance(ty, PrimitiveType) and ty.kind.is_float


def is_numeric(ty: Type) -> bool:
    return is_integer(ty) or is_float(ty)


def is_bool(ty: Type) -> bool:
    return isinstance(ty, PrimitiveType) and ty.kind == PrimitiveKind.BOOL


def is_void(ty: Optional[Type]) -> bool:
    """True for void; None (an absent return type) also counts as void."""
    return ty is None or (isinstance(ty, PrimitiveType) and ty.kind == PrimitiveKind.VOID)


def is_keyed(ty: Type) -> bool:
    """True for map instantiations such as ``HashMap<String, int>``."""
    return (isinstance(ty, GenericType) and ty.base in KEYED_CONTAINERS
            and len(ty.args) == 2)


def element_type(ty: GenericType) -> Optional[Type]:
    """
    The type produced by indexing a generic container.

    The last type argument is the element: ``T`` for ``Vec<T>`` and the
    value type ``V`` for ``HashMap<K, V>``.
    """
    return ty.args[-1] if ty.args else None


def is_unknown(ty: Type) -> bool:
    return isinstance(ty, UnknownType)


def is_scalar(ty: Type) -> bool:
    """
    True for types that may appear on either side of a cast.

    Numbers, bool, char, pointers and NULL are scalars. Strings, arrays,
    tuples and structs are not.
    """
    if isinstance(ty, (PrimitiveType, UntypedNumber)):
        return not is_void(ty)
    return is_integer(ty) or isinstance(ty, (PointerType, NullType, UnknownType))


def is_compatible(expected: Type, actual: Type) -> bool:
    """
    Check whether a value of type ``actual`` may be used where ``expected``
    is required.

    Named types must already have typedef aliases resolved by the caller.

    Args:
        expected: The type the context requires
        actual: The type of the value supplied

    Returns:
        True if the value is acceptable
    """
    if isinstance(expected, UnknownType) or isinstance(actual, UnknownType):
        return True

    expected = canonical(expected)
    actual = canonical(actual)

    if expected == actual:
        return True

    # Unsuffixed literals adapt to any width of their family
    if isinstance(actual, UntypedNumber):
        return is_float(expected) if actual.is_float else is_integer(expected)
    if isinstance(expected, UntypedNumber):
        return is_float(actual) if expected.is_float else is_integer(actual)

    if isinstance(actual, NullType):
        return isinstance(expected, (PointerType, NullType)) or (
            isinstance(expected, GenericType) and expected.base == "Option"
        )

    if isinstance(expected, PointerType) and isinstance(actual, PointerType):
        if is_void(expected.target) or is_void(actual.target):
            return True
        return is_compatible(expected.target, actual.target)

    if isinstance(expected, ReferenceType) and isinstance(actual, ReferenceType):
        if expected.mutable and not actual.mutable:
            return False
        return is_compatible(expected.target, actual.target)

    if isinstance(expected, ArrayType) and isinstance(actual, ArrayType):
        return expected.size == actual.size and is_compatible(expected.element, actual.element)

    if isinstance(expected, SliceType) and isinstance(actual, (SliceType, ArrayType)):
        return is_compatible(expected.element, actual.element)

    if isinstance(expected, TupleType) and isinstance(actual, TupleType):
        return len(expected.elements) == len(actual.elements) and all(
            is_compatible(e, a) for e, a in zip(expected.elements, actual.elements)
        )

    if isinstance(expected, GenericType) and isinstance(actual, GenericType):
        return (
            expected.base == actual.base
            and len(expected.args) == len(actual.args)
            and all(is_compatible(e, a) for e, a in zip(expected.args, actual.args))
        )

    if isinstance(expected, FunctionType) and isinstance(actual, FunctionType):
        if len(expected.params) != len(actual.params):
            return False
        if is_void(expected.return_type) != is_void(actual.return_type):
            return False
        if not is_void(expected.return_type) and not is_compatible(
            expected.return_type, actual.return_type
        ):
            return False
        return all(is_compatible(e, a) for e, a in zip(expected.params, actual.params))

    return False


def common_type(left: Type, right: Type) -> Type:
    """
    Pick the type of a binary arithmetic result.

    A concrete width beats an unsuffixed literal; otherwise the left
    operand's type is used.
    """
    if isinstance(left, UnknownType) or isinstance(right, UnknownType):
        return TYPE_UNKNOWN
    if isinstance(left, UntypedNumber) and not isinstance(right, UntypedNumber):
        return right
    return left

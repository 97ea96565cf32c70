"""
Crusty Recursive Descent Parser
===============================

This module implements a recursive descent parser for the Crusty
dialect. It takes the token list from the lexer and builds an Abstract
Syntax Tree (AST). Parsing is fail-fast: the first grammar violation
raises a ParseError and no partial tree is returned.

Grammar (Simplified EBNF)
-------------------------
program         ::= item*
item            ::= 'static'? (function | struct | enum | union | typedef
                               | namespace | const_item | static_item
                               | extern_block) | directive
function        ::= type IDENTIFIER '(' params? ')' block
struct          ::= 'struct' IDENTIFIER '{' (field | 'static'? method)* '}' ';'?
field           ::= type IDENTIFIER ('[' INT? ']')? ';'
method          ::= type IDENTIFIER '(' (self_param (',' params)? | params)? ')' block
self_param      ::= 'self' | '&' 'var'? 'self'
enum            ::= 'enum' IDENTIFIER '{' variant (',' variant)* ','? '}' ';'?
typedef         ::= 'typedef' type IDENTIFIER ';'
namespace       ::= 'namespace' IDENTIFIER '{' item* '}'
const_item      ::= 'const' (IDENTIFIER ':' type | type IDENTIFIER) '=' expr ';'
static_item     ::= (type IDENTIFIER | ('let' | 'var') IDENTIFIER ':' type)
                    ('[' INT ']')? '=' expr ';'
extern_block    ::= 'extern' STRING? '{' (type IDENTIFIER '(' params? ')' ';')* '}'
directive       ::= '#' ('define' macro | ('use' | 'import') path | 'include' file)

type            ::= ('&' 'var'? | '*') type
                  | (primitive | IDENTIFIER generic_args? | tuple_type)
                    ('*' | '[' INT? ']')*

statement       ::= block | let_stmt | var_stmt | const_stmt | c_decl
                  | function | if_stmt | while_stmt | loop_stmt | for_stmt
                  | switch_stmt | return_stmt | break_stmt | continue_stmt
                  | goto_stmt | label loop_statement | expr ';'
let_stmt        ::= 'let' (IDENTIFIER (':' type)? | type IDENTIFIER) ('=' expr)? ';'
const_stmt      ::= 'const' IDENTIFIER ':' type '=' expr ';'
c_decl          ::= type IDENTIFIER ('[' INT ']')? ('=' expr)? ';'
if_stmt         ::= 'if' '(' expr ')' body ('else' (if_stmt | body))?
for_stmt        ::= 'for' '(' (IDENTIFIER 'in' expr | init? ';' expr? ';' expr?) ')' body
switch_stmt     ::= 'switch' '(' expr ')' '{' case_clause* default_clause? '}'
label           ::= '.' IDENTIFIER ':'

Expression Precedence (lowest to highest)
-----------------------------------------
1.  assignment     = += -= *= /= %=   (right associative)
2.  ternary        ?:
3.  range          .. ..=
4.  logical_or     ||
5.  logical_and    &&
6.  bitwise_or     |
7.  bitwise_xor    ^
8.  bitwise_and    &
9.  equality       == !=
10. relational     < > <= >=
11. shift          << >>
12. additive       + -
13. multiplicative * / %
14. unary          ! - & &var * ++ -- (Type) sizeof
15. postfix        ++ -- () [] .field .method() ->field ? !
16. primary        literals, NULL, IDENTIFIER, '(' expr ')', tuples,
                   arrays, name!(...), __name__(...), @Type->method(...),
                   { .field = expr, ... }

A postfix '?' is error propagation only when the token after it cannot
continue a ternary (';', ')', ',', ']', '}', '.', '->', '?' or the end
of input). A postfix '!' is error propagation unless it follows a name
and opens macro arguments.

Error Reporting
---------------
Every ParseError carries the span of the offending token, an ``expected``
list naming every alternative the grammar allowed at that point, and a
``found`` description of the token actually seen.

Example Usage
-------------
>>> from crusty.lexer import tokenize
>>> from crusty.parser import Parser
>>> program = Parser(tokenize('int main() { return 42; }')).parse()
>>> program.items[0].name
'main'
"""

from typing import Callable, Optional

from crusty.errors import ParseError, Position, Span
from crusty.lexer import KEYWORDS, Lexer, Token, TokenType
from crusty.types import (
    PRIMITIVE_TYPES,
    ArrayType,
    GenericType,
    NamedType,
    PointerType,
    ReferenceType,
    SliceType,
    TupleType,
    Type,
)
from crusty.ast import (
    ArrayLiteral,
    AssignmentExpression,
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
    EnumVariant,
    ErrorPropagation,
    Expression,
    ExpressionStatement,
    ExternBlock,
    ExternFunction,
    FieldAccess,
    FieldInit,
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
    Param,
    Program,
    RangeExpression,
    ReturnStatement,
    SizeOfExpression,
    Statement,
    StaticItem,
    StructDef,
    StructField,
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
# Token Descriptions
# =============================================================================

# How each token type is named in an 'expected' list
_TOKEN_SPELLINGS: dict[TokenType, str] = {
    token_type: f"'{text}'" for text, token_type in Lexer.OPERATORS
}
_TOKEN_SPELLINGS.update({
    token_type: f"'{text}'" for text, token_type in KEYWORDS.items()
    if token_type not in (TokenType.BOOL_LITERAL, TokenType.NULL)
})
_TOKEN_SPELLINGS.update({
    TokenType.IDENTIFIER: "identifier",
    TokenType.INT_LITERAL: "integer literal",
    TokenType.FLOAT_LITERAL: "float literal",
    TokenType.STRING_LITERAL: "string literal",
    TokenType.CHAR_LITERAL: "character literal",
    TokenType.BOOL_LITERAL: "boolean literal",
    TokenType.NULL: "NULL",
    TokenType.EOF: "end of input",
})

_LITERAL_KINDS = {
    TokenType.INT_LITERAL: LiteralKind.INT,
    TokenType.FLOAT_LITERAL: LiteralKind.FLOAT,
    TokenType.STRING_LITERAL: LiteralKind.STRING,
    TokenType.CHAR_LITERAL: LiteralKind.CHAR,
    TokenType.BOOL_LITERAL: LiteralKind.BOOL,
}

# Tokens that may begin an expression
_EXPRESSION_STARTS = frozenset({
    TokenType.IDENTIFIER, TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL,
    TokenType.STRING_LITERAL, TokenType.CHAR_LITERAL, TokenType.BOOL_LITERAL,
    TokenType.NULL, TokenType.LPAREN, TokenType.LBRACKET, TokenType.AT,
    TokenType.BANG, TokenType.MINUS, TokenType.AMPERSAND, TokenType.STAR,
    TokenType.INCREMENT, TokenType.DECREMENT, TokenType.SIZEOF,
    TokenType.DOT_DOT, TokenType.DOT_DOT_EQ,
})

# Tokens that may follow '(Name)' for it to be read as a cast; a leading
# operator such as '-' or '*' keeps '(a) - b' an ordinary expression
_CAST_OPERAND_STARTS = frozenset({
    TokenType.IDENTIFIER, TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL,
    TokenType.STRING_LITERAL, TokenType.CHAR_LITERAL, TokenType.BOOL_LITERAL,
    TokenType.NULL, TokenType.LPAREN, TokenType.AT, TokenType.BANG,
    TokenType.SIZEOF,
})

# Tokens after which a postfix '?' is error propagation, not a ternary
_PROPAGATION_FOLLOWERS = frozenset({
    TokenType.SEMICOLON, TokenType.RPAREN, TokenType.COMMA, TokenType.RBRACKET,
    TokenType.RBRACE, TokenType.DOT, TokenType.ARROW, TokenType.QUESTION,
    TokenType.EOF,
})

_PRIMARY_EXPECTED = [
    "integer literal", "float literal", "string literal", "character literal",
    "boolean literal", "NULL", "identifier", "'('", "'['", "'{'", "'@'",
]

_TYPE_EXPECTED = ["'&'", "'*'", "primitive type", "identifier", "'('"]

_ITEM_EXPECTED = [
    "function", "variable", "'struct'", "'enum'", "'union'", "'typedef'",
    "'namespace'", "'const'", "'let'", "'var'", "'extern'", "'#'",
]

_MACRO_DELIMITERS = {
    TokenType.LPAREN: TokenType.RPAREN,
    TokenType.LBRACKET: TokenType.RBRACKET,
    TokenType.LBRACE: TokenType.RBRACE,
}


def is_macro_name(name: str) -> bool:
    """True for names written in the ``__NAME__`` macro convention."""
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


# =============================================================================
# Parser Class
# =============================================================================

class Parser:
    """
    Recursive descent parser for Crusty.

    Usage:
        parser = Parser(tokens)
        program = parser.parse()

    Attributes:
        tokens: The token list from the lexer (ends with EOF)
    """

    def __init__(self, tokens: list[Token]):
        """
        Initialize the parser.

        Args:
            tokens: Token list produced by the lexer, ending with EOF
        """
        self.tokens = list(tokens)
        if not self.tokens or self.tokens[-1].type != TokenType.EOF:
            here = self.tokens[-1].span.end if self.tokens else Position(1, 1)
            self.tokens.append(Token(TokenType.EOF, "", Span(here, here)))
        self._pos = 0

        # '>>' tokens split into two '>' while closing generic arguments,
        # recorded so a failed speculative parse can undo the split
        self._splits: list[tuple[int, Token]] = []

    def parse(self) -> Program:
        """
        Parse the complete token list.

        Returns:
            The Program root node

        Raises:
            ParseError: On the first grammar violation
        """
        first = self._peek()
        items: list[Item] = []
        while not self._at_end():
            items.append(self._parse_item())

        eof = self._peek()
        return Program(span=Span(first.span.start, eof.span.end), items=items)

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _at_end(self) -> bool:
        """Check if we've reached the end of tokens."""
        return self._peek().type == TokenType.EOF

    def _peek(self, offset: int = 0) -> Token:
        """Look at token at current position + offset."""
        pos = self._pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def _previous(self) -> Token:
        """Return the most recently consumed token."""
        return self.tokens[max(self._pos - 1, 0)]

    def _advance(self) -> Token:
        """Consume and return the current token."""
        if not self._at_end():
            token = self.tokens[self._pos]
            self._pos += 1
            return token
        return self.tokens[-1]

    def _check(self, *types: TokenType) -> bool:
        """Check if current token is one of the given types."""
        return self._peek().type in types

    def _match(self, *types: TokenType) -> Optional[Token]:
        """
        Consume current token if it matches one of the types.

        Returns:
            The consumed token, or None if no match
        """
        if self._check(*types):
            return self._advance()
        return None

    def _expect(
        self,
        token_type: TokenType,
        message: Optional[str] = None,
        alternatives: tuple[str, ...] = (),
    ) -> Token:
        """
        Expect and consume a specific token type.

        Args:
            token_type: The expected token type
            message: Error message if not found
            alternatives: Other spellings the grammar would also accept
                          here, listed after the expected token in the error

        Returns:
            The consumed token

        Raises:
            ParseError: If the current token is of another type
        """
        if self._check(token_type):
            return self._advance()

        spelling = _TOKEN_SPELLINGS[token_type]
        raise self._error(message or f"expected {spelling}", [spelling, *alternatives])

    def _expect_identifier(self, what: str) -> Token:
        """Expect an identifier, reporting ``what`` it was meant to name."""
        if self._check(TokenType.IDENTIFIER):
            return self._advance()
        raise self._error(f"expected {what}", ["identifier"])

    def _error(self, message: str, expected: list[str], hint: Optional[str] = None) -> ParseError:
        """Build a ParseError located at the current token."""
        token = self._peek()
        return ParseError(message, token.span, expected=expected,
                          found=token.describe(), hint=hint)

    def _span_from(self, start: Token) -> Span:
        """Span from ``start`` to the end of the last consumed token."""
        end = self._previous().span.end
        if end < start.span.start:
            end = start.span.end
        return Span(start.span.start, end)

    def _speculate(self, attempt: Callable[[], bool]) -> bool:
        """
        Run a lookahead parse and rewind afterwards.

        Args:
            attempt: Parsing callable returning True if the lookahead matched

        Returns:
            The callable's result, or False if it raised a ParseError
        """
        saved_pos = self._pos
        saved_splits = len(self._splits)
        try:
            return attempt()
        except ParseError:
            return False
        finally:
            self._pos = saved_pos
            while len(self._splits) > saved_splits:
                index, token = self._splits.pop()
                self.tokens[index:index + 2] = [token]

    # =========================================================================
    # Items
    # =========================================================================

    def _parse_item(self) -> Item:
        """Parse one top-level (or namespace-level) item."""
        if self._check(TokenType.HASH):
            return self._parse_directive()

        start = self._peek()
        visibility = Visibility.PRIVATE if self._match(TokenType.STATIC) else Visibility.PUBLIC

        if self._check(TokenType.STRUCT):
            return self._parse_struct(start, visibility)
        if self._check(TokenType.ENUM):
            return self._parse_enum(start, visibility)
        if self._check(TokenType.UNION):
            return self._parse_union(start)
        if self._check(TokenType.TYPEDEF):
            return self._parse_typedef(start, visibility)
        if self._check(TokenType.NAMESPACE):
            return self._parse_namespace(start, visibility)
        if self._check(TokenType.CONST):
            return self._parse_const_item(start, visibility)
        if self._check(TokenType.LET, TokenType.VAR):
            keyword = self._advance()
            declared_type, name = self._parse_typed_name("variable name")
            return self._parse_static(start, visibility, declared_type, name,
                                      mutable=keyword.type == TokenType.VAR)
        if self._check(TokenType.EXTERN):
            return self._parse_extern(start, visibility)
        if self._is_type_start():
            declared_type = self._parse_type()
            name = self._expect_identifier("function or variable name")
            if self._check(TokenType.LPAREN):
                return self._parse_function(start, visibility, declared_type, name)

            sized = self._check(TokenType.LBRACKET)
            declared_type = self._parse_array_suffix(declared_type)
            if not self._check(TokenType.ASSIGN):
                if sized:
                    raise self._error(f"expected '=' after '{name.text}'", ["'='"],
                                      hint="item-level variables need an initial value")
                raise self._error(f"expected '(' or '=' after '{name.text}'",
                                  ["'('", "'['", "'='"],
                                  hint="item-level variables need an initial value")
            return self._parse_static(start, visibility, declared_type, name, mutable=True)

        raise self._error("expected item declaration", _ITEM_EXPECTED)

    def _parse_function(
        self,
        start: Token,
        visibility: Visibility,
        return_type: Type,
        name: Token,
        allow_self: bool = False,
    ) -> FunctionDef:
        """
        Parse ``(params) { body }`` after a function's return type and name.

        Args:
            start: First token of the definition
            visibility: Visibility from a leading ``static``
            return_type: Parsed return type (``void`` becomes None)
            name: The function name token
            allow_self: Accept a leading self parameter (struct methods)
        """
        if return_type == PRIMITIVE_TYPES["void"]:
            return_type = None
        self._expect(TokenType.LPAREN, "expected '(' after function name")
        params = self._parse_params(allow_self)
        self._expect(TokenType.RPAREN, "expected ')' after parameters", ("','",))
        body = self._parse_block()

        return FunctionDef(
            span=self._span_from(start),
            visibility=visibility,
            name=name.text,
            params=params,
            return_type=return_type,
            body=body,
            doc_comments=list(start.doc_comments),
        )

    def _parse_params(self, allow_self: bool = False) -> list[Param]:
        """Parse a parameter list; ``(void)`` and ``()`` are both empty."""
        params: list[Param] = []
        if self._check(TokenType.RPAREN):
            return params
        if self._check(TokenType.VOID) and self._peek(1).type == TokenType.RPAREN:
            self._advance()
            return params

        if allow_self:
            receiver = self._parse_self_param()
            if receiver is not None:
                params.append(receiver)
                if not self._match(TokenType.COMMA):
                    return params

        while True:
            start = self._peek()
            param_type = self._parse_type()
            name = self._expect_identifier("parameter name")
            param_type = self._parse_array_suffix(param_type)
            params.append(Param(span=self._span_from(start), name=name.text,
                                param_type=param_type))
            if not self._match(TokenType.COMMA):
                break
        return params

    def _parse_self_param(self) -> Optional[Param]:
        """Parse ``self``, ``&self`` or ``&var self`` if one comes next."""
        start = self._peek()
        offset = 0
        if start.type == TokenType.AMPERSAND:
            offset = 2 if self._peek(1).type in (TokenType.VAR, TokenType.MUT) else 1
        receiver = self._peek(offset)
        if receiver.type != TokenType.IDENTIFIER or receiver.text != "self":
            return None

        for _ in range(offset + 1):
            self._advance()
        self_type: Type = NamedType("Self")
        if offset:
            self_type = ReferenceType(self_type, mutable=offset == 2)
        return Param(span=self._span_from(start), name="self", param_type=self_type)

    def _parse_fields(self, methods: Optional[list[FunctionDef]] = None) -> list[StructField]:
        """
        Parse ``{ Type name; ... }`` for structs and unions.

        Args:
            methods: For struct bodies, the list that functions defined in
                     the body are appended to; None where functions are
                     not allowed
        """
        self._expect(TokenType.LBRACE)
        fields: list[StructField] = []
        while not self._check(TokenType.RBRACE):
            if self._at_end():
                raise self._error("expected '}' to close field list", ["type", "'}'"])
            start = self._peek()
            if methods is not None and self._match(TokenType.STATIC):
                return_type = self._parse_type()
                name = self._expect_identifier("method name")
                methods.append(self._parse_function(start, Visibility.PRIVATE, return_type,
                                                    name, allow_self=True))
                continue

            field_type = self._parse_type()
            name = self._expect_identifier("field name")
            if methods is not None and self._check(TokenType.LPAREN):
                methods.append(self._parse_function(start, Visibility.PUBLIC, field_type,
                                                    name, allow_self=True))
                continue

            sized = self._check(TokenType.LBRACKET)
            field_type = self._parse_array_suffix(field_type)
            if sized:
                alternatives: tuple[str, ...] = ()
            elif methods is not None:
                alternatives = ("'['", "'('")
            else:
                alternatives = ("'['",)
            self._expect(TokenType.SEMICOLON, "expected ';' after field", alternatives)
            fields.append(StructField(span=self._span_from(start), name=name.text,
                                      field_type=field_type))
        self._expect(TokenType.RBRACE)
        return fields

    def _parse_struct(self, start: Token, visibility: Visibility) -> StructDef:
        """Parse ``struct Name { Type field; ... ReturnType method(...) { } }``."""
        self._expect(TokenType.STRUCT)
        name = self._expect_identifier("struct name")
        methods: list[FunctionDef] = []
        fields = self._parse_fields(methods)
        self._match(TokenType.SEMICOLON)
        return StructDef(span=self._span_from(start), visibility=visibility,
                         name=name.text, fields=fields, methods=methods)

    def _parse_union(self, start: Token) -> UnionDef:
        """Parse ``union Name { ... }`` so the analyzer can reject it."""
        self._expect(TokenType.UNION)
        name = self._expect_identifier("union name")
        fields = self._parse_fields()
        self._match(TokenType.SEMICOLON)
        return UnionDef(span=self._span_from(start), name=name.text, fields=fields)

    def _parse_enum(self, start: Token, visibility: Visibility) -> EnumDef:
        """Parse ``enum Name { A, B = 3, ... }``."""
        self._expect(TokenType.ENUM)
        name = self._expect_identifier("enum name")
        self._expect(TokenType.LBRACE)

        variants: list[EnumVariant] = []
        while not self._check(TokenType.RBRACE):
            variant_start = self._peek()
            variant = self._expect_identifier("enum variant name")
            value = None
            if self._match(TokenType.ASSIGN):
                negative = self._match(TokenType.MINUS) is not None
                literal = self._expect(TokenType.INT_LITERAL, "expected integer discriminant")
                value = -literal.value if negative else literal.value
            variants.append(EnumVariant(span=self._span_from(variant_start),
                                        name=variant.text, value=value))
            if not self._match(TokenType.COMMA):
                break

        if not self._check(TokenType.RBRACE):
            raise self._error("expected ',' or '}' after enum variant", ["','", "'}'"])
        self._advance()
        self._match(TokenType.SEMICOLON)
        return EnumDef(span=self._span_from(start), visibility=visibility,
                       name=name.text, variants=variants)

    def _parse_typedef(self, start: Token, visibility: Visibility) -> TypedefDef:
        """Parse ``typedef Type Name;``."""
        self._expect(TokenType.TYPEDEF)
        target = self._parse_type()
        name = self._expect_identifier("typedef name")
        self._expect(TokenType.SEMICOLON, "expected ';' after typedef")
        return TypedefDef(span=self._span_from(start), visibility=visibility,
                          name=name.text, target=target)

    def _parse_namespace(self, start: Token, visibility: Visibility) -> NamespaceDef:
        """Parse ``namespace name { items }``."""
        self._expect(TokenType.NAMESPACE)
        name = self._expect_identifier("namespace name")
        self._expect(TokenType.LBRACE)
        items: list[Item] = []
        while not self._check(TokenType.RBRACE):
            if self._at_end():
                raise self._error("expected '}' to close namespace", ["item", "'}'"])
            items.append(self._parse_item())
        self._expect(TokenType.RBRACE)
        return NamespaceDef(span=self._span_from(start), visibility=visibility,
                            name=name.text, items=items)

    def _parse_typed_name(self, what: str) -> tuple[Type, Token]:
        """Parse ``name: Type`` or ``Type name[N]``; the type is required."""
        if self._check(TokenType.IDENTIFIER) and self._peek(1).type == TokenType.COLON:
            name = self._advance()
            self._advance()
            return self._parse_type(), name
        if self._check(TokenType.IDENTIFIER) and self._peek(1).type == TokenType.ASSIGN:
            self._advance()
            raise self._error(f"expected ':' and a type after {what}", ["':'"],
                              hint="item-level declarations need an explicit type")
        declared_type = self._parse_type()
        name = self._expect_identifier(what)
        return self._parse_array_suffix(declared_type), name

    def _parse_const_item(self, start: Token, visibility: Visibility) -> ConstItem:
        """Parse ``const NAME: Type = expr;`` or ``const Type NAME = expr;``."""
        self._expect(TokenType.CONST)
        declared_type, name = self._parse_typed_name("constant name")
        self._expect(TokenType.ASSIGN, "expected '=' in constant declaration")
        value = self._typed_initializer(self._parse_expression(), declared_type)
        self._expect(TokenType.SEMICOLON, "expected ';' after constant declaration",
                     ("operator",))
        return ConstItem(span=self._span_from(start), visibility=visibility,
                         name=name.text, declared_type=declared_type, value=value)

    def _parse_static(
        self,
        start: Token,
        visibility: Visibility,
        declared_type: Type,
        name: Token,
        mutable: bool,
    ) -> StaticItem:
        """Parse ``= expr;`` after an item-level variable's type and name."""
        self._expect(TokenType.ASSIGN, f"expected '=' after '{name.text}'")
        value = self._typed_initializer(self._parse_expression(), declared_type)
        self._expect(TokenType.SEMICOLON, "expected ';' after declaration", ("operator",))
        return StaticItem(span=self._span_from(start), visibility=visibility,
                          name=name.text, declared_type=declared_type, value=value,
                          mutable=mutable)

    def _parse_extern(self, start: Token, visibility: Visibility) -> ExternBlock:
        """Parse ``extern ["ABI"] { ReturnType name(params); ... }``."""
        self._expect(TokenType.EXTERN)
        abi = self._match(TokenType.STRING_LITERAL)
        self._expect(TokenType.LBRACE, "expected '{' after extern",
                     () if abi else ("string literal",))

        functions: list[ExternFunction] = []
        while not self._check(TokenType.RBRACE):
            if self._at_end():
                raise self._error("expected '}' to close extern block",
                                  ["function prototype", "'}'"])
            prototype_start = self._peek()
            return_type = self._parse_type()
            if return_type == PRIMITIVE_TYPES["void"]:
                return_type = None
            name = self._expect_identifier("function name")
            self._expect(TokenType.LPAREN, "expected '(' after function name")
            params = self._parse_params()
            self._expect(TokenType.RPAREN, "expected ')' after parameters", ("','",))
            self._expect(TokenType.SEMICOLON, "expected ';' after function prototype")
            functions.append(ExternFunction(span=self._span_from(prototype_start),
                                            name=name.text, params=params,
                                            return_type=return_type))
        self._expect(TokenType.RBRACE)
        return ExternBlock(span=self._span_from(start), visibility=visibility,
                           abi=abi.value if abi else "C", functions=functions)

    @staticmethod
    def _typed_initializer(value: Expression, declared_type: Optional[Type]) -> Expression:
        """Give an untyped ``{ .x = ... }`` initializer the declared struct type."""
        if (isinstance(value, StructInit) and value.struct_type is None
                and isinstance(declared_type, NamedType)):
            value.struct_type = declared_type
        return value

    # -------------------------------------------------------------------------
    # Directives
    # -------------------------------------------------------------------------

    def _parse_directive(self) -> Item:
        """Parse ``#define``, ``#use`` / ``#import`` or ``#include``."""
        hash_token = self._expect(TokenType.HASH)
        if self._match(TokenType.DEFINE):
            return self._parse_define(hash_token)

        directive = self._peek()
        if directive.type == TokenType.IDENTIFIER:
            if directive.text in ("use", "import"):
                self._advance()
                return self._parse_use(hash_token)
            if directive.text == "include":
                self._advance()
                return self._parse_include(hash_token)

        raise self._error("expected directive", ["'define'", "'use'", "'import'", "'include'"])

    def _parse_define(self, hash_token: Token) -> MacroDefinition:
        """
        Parse a macro definition after ``#define``.

        The body is kept as raw tokens: either a balanced ``{ ... }`` block
        or everything up to the end of the directive's line (or a ``;``).
        """
        name = self._peek()
        if name.type != TokenType.IDENTIFIER or not is_macro_name(name.text):
            label = name.text if name.type == TokenType.IDENTIFIER else name.describe()
            raise self._error(
                f"macro name '{label}' must have double-underscore prefix and suffix "
                f"(e.g., __MACRO_NAME__)",
                ["__MACRO_NAME__"],
            )
        self._advance()

        # Parameters only when '(' directly touches the name
        params: list[str] = []
        if self._check(TokenType.LPAREN) and self._peek().span.start == name.span.end:
            self._advance()
            if not self._check(TokenType.RPAREN):
                while True:
                    params.append(self._expect_identifier("macro parameter name").text)
                    if not self._match(TokenType.COMMA):
                        break
            self._expect(TokenType.RPAREN, "expected ')' after macro parameters", ("','",))

        body: list[Token] = []
        if self._check(TokenType.LBRACE):
            self._advance()
            depth = 1
            while True:
                if self._at_end():
                    raise self._error("expected '}' to close macro body", ["'}'"])
                token = self._advance()
                if token.type == TokenType.LBRACE:
                    depth += 1
                elif token.type == TokenType.RBRACE:
                    depth -= 1
                    if depth == 0:
                        break
                body.append(token)
        else:
            line = hash_token.span.start.line
            while (not self._at_end()
                   and self._peek().span.start.line == line
                   and not self._check(TokenType.SEMICOLON)):
                body.append(self._advance())
        self._match(TokenType.SEMICOLON)

        return MacroDefinition(span=self._span_from(hash_token), name=name.text,
                               params=params, body=body)

    def _parse_use(self, hash_token: Token) -> ImportItem:
        """Parse ``#use a.b.c`` or ``#use a::b::c``, with optional ``as alias``."""
        path = [self._expect_identifier("module path").text]
        while self._match(TokenType.DOT, TokenType.COLON_COLON):
            path.append(self._expect_identifier("path segment").text)

        alias = None
        if self._check(TokenType.IDENTIFIER) and self._peek().text == "as":
            self._advance()
            alias = self._expect_identifier("import alias").text
        self._match(TokenType.SEMICOLON)
        return ImportItem(span=self._span_from(hash_token), path=path, alias=alias)

    def _parse_include(self, hash_token: Token) -> IncludeDirective:
        """Parse ``#include "file"`` or ``#include <file>``."""
        string_token = self._match(TokenType.STRING_LITERAL)
        if string_token:
            return IncludeDirective(span=self._span_from(hash_token), path=string_token.value)

        if not self._check(TokenType.LT):
            raise self._error("expected include path", ["string literal", "'<'"])
        self._advance()
        parts = []
        while not self._check(TokenType.GT):
            if self._at_end() or self._peek().span.start.line != hash_token.span.start.line:
                raise self._error("expected '>' to close include path", ["'>'"])
            parts.append(self._advance().text)
        self._advance()
        return IncludeDirective(span=self._span_from(hash_token), path="".join(parts))

    # =========================================================================
    # Types
    # =========================================================================

    def _is_type_start(self) -> bool:
        """Check whether the current token can begin a type."""
        token = self._peek()
        return token.is_primitive_type() or token.type in (
            TokenType.IDENTIFIER, TokenType.AMPERSAND, TokenType.STAR, TokenType.LPAREN,
        )

    def _parse_type(self) -> Type:
        """
        Parse a type.

        Prefix ``&``/``&var`` make references and ``*`` a pointer; ``*`` and
        ``[N]``/``[]`` suffixes apply to the base type in turn.
        """
        if self._match(TokenType.AMPERSAND):
            mutable = self._match(TokenType.VAR, TokenType.MUT) is not None
            return ReferenceType(self._parse_type(), mutable)
        if self._match(TokenType.STAR):
            return PointerType(self._parse_type())

        token = self._peek()
        if token.is_primitive_type():
            self._advance()
            base: Type = PRIMITIVE_TYPES[token.text]
        elif token.type == TokenType.LPAREN:
            self._advance()
            elements = []
            if not self._check(TokenType.RPAREN):
                while True:
                    elements.append(self._parse_type())
                    if not self._match(TokenType.COMMA) or self._check(TokenType.RPAREN):
                        break
            self._expect(TokenType.RPAREN, "expected ')' to close tuple type", ("','",))
            base = TupleType(tuple(elements))
        elif token.type == TokenType.IDENTIFIER:
            self._advance()
            name = token.text
            while self._check(TokenType.COLON_COLON) and self._peek(1).type == TokenType.IDENTIFIER:
                self._advance()
                name += "::" + self._advance().text
            if self._match(TokenType.LT):
                args = [self._parse_type()]
                while self._match(TokenType.COMMA):
                    args.append(self._parse_type())
                self._expect_closing_angle()
                base = GenericType(name, tuple(args))
            else:
                base = NamedType(name)
        else:
            raise self._error("expected type", _TYPE_EXPECTED)

        while True:
            if self._match(TokenType.STAR):
                base = PointerType(base)
            elif self._check(TokenType.LBRACKET) and self._peek(1).type in (
                TokenType.RBRACKET, TokenType.INT_LITERAL
            ):
                base = self._parse_array_suffix(base)
            else:
                return base

    def _parse_array_suffix(self, element: Type) -> Type:
        """Parse an optional ``[N]`` or ``[]`` after a type or declarator."""
        if not self._match(TokenType.LBRACKET):
            return element
        if self._match(TokenType.RBRACKET):
            return SliceType(element)
        size = self._expect(TokenType.INT_LITERAL, "expected array size", ("']'",))
        self._expect(TokenType.RBRACKET, "expected ']' after array size")
        return ArrayType(element, size.value)

    def _expect_closing_angle(self) -> Token:
        """Expect '>' closing generic arguments, splitting a '>>' token."""
        token = self._peek()
        if token.type == TokenType.RSHIFT:
            middle = Position(token.span.start.line, token.span.start.column + 1)
            first = Token(TokenType.GT, ">", Span(token.span.start, middle))
            second = Token(TokenType.GT, ">", Span(middle, token.span.end))
            self._splits.append((self._pos, token))
            self.tokens[self._pos:self._pos + 1] = [first, second]
        return self._expect(TokenType.GT, "expected '>' to close generic arguments",
                            ("','",))

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_block(self) -> Block:
        """Parse ``{ statement* }``."""
        start = self._expect(TokenType.LBRACE, "expected '{' to open block")
        statements: list[Statement] = []
        while not self._check(TokenType.RBRACE):
            if self._at_end():
                raise self._error("expected '}' to close block", ["statement", "'}'"])
            statements.append(self._parse_statement())
        self._advance()
        return Block(span=self._span_from(start), statements=statements)

    def _parse_body(self) -> Block:
        """Parse a block, or a single statement wrapped as one."""
        if self._check(TokenType.LBRACE):
            return self._parse_block()
        statement = self._parse_statement()
        return Block(span=statement.span, statements=[statement])

    def _parse_statement(self) -> Statement:
        """Parse a statement."""
        token = self._peek()

        if token.type == TokenType.LBRACE:
            return self._parse_block()
        if token.type in (TokenType.LET, TokenType.VAR):
            return self._parse_binding()
        if token.type == TokenType.CONST:
            return self._parse_const()
        if token.type == TokenType.IF:
            return self._parse_if()
        if token.type == TokenType.WHILE:
            return self._parse_while(token, None)
        if token.type == TokenType.LOOP:
            return self._parse_loop(token, None)
        if token.type == TokenType.FOR:
            return self._parse_for(token, None)
        if token.type == TokenType.SWITCH:
            return self._parse_switch()
        if token.type == TokenType.RETURN:
            return self._parse_return()
        if token.type in (TokenType.BREAK, TokenType.CONTINUE):
            return self._parse_jump()
        if token.type == TokenType.GOTO:
            return self._parse_goto()
        if (token.type == TokenType.DOT
                and self._peek(1).type == TokenType.IDENTIFIER
                and self._peek(2).type == TokenType.COLON):
            return self._parse_labeled_loop()
        if self._is_nested_function_start():
            return self._parse_nested_function()
        if self._is_declaration_start():
            return self._parse_c_declaration(allow_function=True)

        expression = self._parse_expression()
        self._expect(TokenType.SEMICOLON, "expected ';' after expression", ("operator",))
        return ExpressionStatement(span=self._span_from(token), expression=expression)

    def _is_declaration_start(self) -> bool:
        """
        Check for a C-style declaration ``Type name ...``.

        A primitive type always starts one. Anything else is tried as a
        type followed by a name and then '=', ';' or '['.
        """
        if self._peek().is_primitive_type():
            return True
        if not self._check(TokenType.IDENTIFIER, TokenType.AMPERSAND, TokenType.LPAREN):
            return False

        def attempt() -> bool:
            declared = self._parse_type()
            # '(Type)name' is a cast, not a one-element tuple declaration
            if isinstance(declared, TupleType) and len(declared.elements) == 1:
                return False
            if not self._match(TokenType.IDENTIFIER):
                return False
            return self._check(TokenType.ASSIGN, TokenType.SEMICOLON, TokenType.LBRACKET)

        return self._speculate(attempt)

    def _is_nested_function_start(self) -> bool:
        """Check for ``Type name(params) {``: a function defined in a body."""
        if not (self._peek().is_primitive_type() or self._check(
            TokenType.IDENTIFIER, TokenType.AMPERSAND, TokenType.LPAREN
        )):
            return False

        def attempt() -> bool:
            self._parse_type()
            if not self._match(TokenType.IDENTIFIER) or not self._match(TokenType.LPAREN):
                return False
            self._parse_params()
            return self._match(TokenType.RPAREN) is not None and self._check(TokenType.LBRACE)

        return self._speculate(attempt)

    def _parse_nested_function(self) -> NestedFunction:
        """Parse ``ReturnType name(params) { body }`` inside a body."""
        start = self._peek()
        return_type = self._parse_type()
        name = self._expect_identifier("function name")
        func = self._parse_function(start, Visibility.PUBLIC, return_type, name)
        return NestedFunction(span=func.span, name=func.name, params=func.params,
                              return_type=func.return_type, body=func.body)

    def _parse_c_declaration(self, allow_function: bool = False) -> VarStatement:
        """
        Parse ``Type name [= expr];``; C locals are mutable.

        Args:
            allow_function: True where ``Type name(`` could also have
                            started a nested function
        """
        start = self._peek()
        declared_type = self._parse_type()
        name = self._expect_identifier("variable name")
        sized = self._check(TokenType.LBRACKET)
        declared_type = self._parse_array_suffix(declared_type)
        initializer = None
        if self._match(TokenType.ASSIGN):
            initializer = self._typed_initializer(self._parse_expression(), declared_type)
        if initializer is not None:
            alternatives: tuple[str, ...] = ("operator",)
        elif sized:
            alternatives = ("'='",)
        elif allow_function:
            alternatives = ("'['", "'='", "'('")
        else:
            alternatives = ("'['", "'='")
        self._expect(TokenType.SEMICOLON, "expected ';' after declaration", alternatives)
        return VarStatement(span=self._span_from(start), name=name.text,
                            declared_type=declared_type, initializer=initializer)

    def _parse_binding(self) -> Statement:
        """
        Parse ``let``/``var`` declarations.

        Both ``let name: Type = expr;`` and ``let Type name = expr;`` are
        accepted; the type and the initializer are each optional.
        """
        keyword = self._advance()
        declared_type = None

        if not (self._check(TokenType.IDENTIFIER) and self._peek(1).type in (
            TokenType.COLON, TokenType.ASSIGN, TokenType.SEMICOLON
        )):
            if not self._is_type_start():
                raise self._error("expected variable name", ["identifier", "type"])
            declared_type = self._parse_type()

        name = self._expect_identifier("variable name")
        if declared_type is None and self._match(TokenType.COLON):
            declared_type = self._parse_type()

        initializer = None
        if self._match(TokenType.ASSIGN):
            initializer = self._typed_initializer(self._parse_expression(), declared_type)
        if initializer is None and not self._check(TokenType.SEMICOLON):
            raise self._error("expected '=' or ';' after variable name", ["':'", "'='", "';'"])
        self._expect(TokenType.SEMICOLON, "expected ';' after declaration", ("operator",))

        node_class = LetStatement if keyword.type == TokenType.LET else VarStatement
        return node_class(span=self._span_from(keyword), name=name.text,
                          declared_type=declared_type, initializer=initializer)

    def _parse_const(self) -> ConstStatement:
        """Parse ``const name: Type = expr;``."""
        keyword = self._expect(TokenType.CONST)
        name = self._expect_identifier("constant name")
        self._expect(TokenType.COLON, "expected ':' and a type after constant name")
        declared_type = self._parse_type()
        self._expect(TokenType.ASSIGN, "expected '=' in constant declaration")
        value = self._typed_initializer(self._parse_expression(), declared_type)
        self._expect(TokenType.SEMICOLON, "expected ';' after constant declaration",
                     ("operator",))
        return ConstStatement(span=self._span_from(keyword), name=name.text,
                              declared_type=declared_type, value=value)

    def _parse_condition(self, keyword: str) -> Expression:
        """Parse a parenthesised condition after if/while/switch."""
        self._expect(TokenType.LPAREN, f"expected '(' after '{keyword}'")
        condition = self._parse_expression()
        self._expect(TokenType.RPAREN, f"expected ')' after {keyword} condition", ("operator",))
        return condition

    def _parse_if(self) -> IfStatement:
        """Parse ``if (cond) body [else if ... | else body]``."""
        keyword = self._expect(TokenType.IF)
        condition = self._parse_condition("if")
        then_block = self._parse_body()

        else_branch = None
        if self._match(TokenType.ELSE):
            if self._check(TokenType.IF):
                else_branch = self._parse_if()
            else:
                else_branch = self._parse_body()

        return IfStatement(span=self._span_from(keyword), condition=condition,
                           then_block=then_block, else_branch=else_branch)

    def _parse_labeled_loop(self) -> Statement:
        """Parse ``.label:`` followed by while, for or loop."""
        start = self._expect(TokenType.DOT)
        label = self._advance().text
        self._expect(TokenType.COLON)

        if self._check(TokenType.WHILE):
            return self._parse_while(start, label)
        if self._check(TokenType.FOR):
            return self._parse_for(start, label)
        if self._check(TokenType.LOOP):
            return self._parse_loop(start, label)
        raise self._error("expected loop after label", ["'while'", "'for'", "'loop'"])

    def _parse_while(self, start: Token, label: Optional[str]) -> WhileStatement:
        """Parse ``while (cond) body``."""
        self._expect(TokenType.WHILE)
        condition = self._parse_condition("while")
        body = self._parse_body()
        return WhileStatement(span=self._span_from(start), label=label,
                              condition=condition, body=body)

    def _parse_loop(self, start: Token, label: Optional[str]) -> LoopStatement:
        """Parse ``loop { ... }``."""
        self._expect(TokenType.LOOP)
        body = self._parse_block()
        return LoopStatement(span=self._span_from(start), label=label, body=body)

    def _parse_for(self, start: Token, label: Optional[str]) -> Statement:
        """Parse ``for (x in expr) body`` or ``for (init; cond; step) body``."""
        self._expect(TokenType.FOR)
        self._expect(TokenType.LPAREN, "expected '(' after 'for'")

        if self._check(TokenType.IDENTIFIER) and self._peek(1).type == TokenType.IN:
            variable = self._advance().text
            self._advance()
            iterable = self._parse_expression()
            self._expect(TokenType.RPAREN, "expected ')' after for-in iterable", ("operator",))
            body = self._parse_body()
            return ForInStatement(span=self._span_from(start), label=label,
                                  variable=variable, iterable=iterable, body=body)

        init: Optional[Statement] = None
        if not self._match(TokenType.SEMICOLON):
            if self._check(TokenType.LET, TokenType.VAR):
                init = self._parse_binding()
            elif self._is_declaration_start():
                init = self._parse_c_declaration()
            else:
                init_start = self._peek()
                expression = self._parse_expression()
                self._expect(TokenType.SEMICOLON, "expected ';' after for initializer",
                             ("operator",))
                init = ExpressionStatement(span=self._span_from(init_start),
                                           expression=expression)

        condition = None
        if not self._check(TokenType.SEMICOLON):
            condition = self._parse_expression()
        self._expect(TokenType.SEMICOLON, "expected ';' after for condition", ("operator",))

        step = None
        if not self._check(TokenType.RPAREN):
            step = self._parse_expression()
        self._expect(TokenType.RPAREN, "expected ')' after for clauses", ("operator",))

        body = self._parse_body()
        return ForStatement(span=self._span_from(start), label=label, init=init,
                            condition=condition, step=step, body=body)

    def _parse_switch(self) -> SwitchStatement:
        """
        Parse ``switch (expr) { case A: case B: ... default: ... }``.

        Consecutive labels with no statements between them share one
        clause.
        """
        keyword = self._expect(TokenType.SWITCH)
        scrutinee = self._parse_condition("switch")
        self._expect(TokenType.LBRACE, "expected '{' after switch expression")

        cases: list[CaseClause] = []
        default: Optional[Block] = None
        while not self._check(TokenType.RBRACE):
            if self._check(TokenType.CASE):
                case_start = self._peek()
                values: list[Expression] = []
                while self._match(TokenType.CASE):
                    values.append(self._parse_range())
                    while self._match(TokenType.COMMA):
                        values.append(self._parse_range())
                    self._expect(TokenType.COLON, "expected ':' after case value",
                                 ("','", "'..'", "'..='"))
                body = self._parse_case_body()
                cases.append(CaseClause(span=self._span_from(case_start),
                                        values=values, body=body))
            elif self._check(TokenType.DEFAULT):
                if default is not None:
                    raise self._error("duplicate default clause", ["'case'", "'}'"])
                self._advance()
                self._expect(TokenType.COLON, "expected ':' after 'default'")
                default = self._parse_case_body()
            else:
                raise self._error("expected case clause", ["'case'", "'default'", "'}'"])

        self._expect(TokenType.RBRACE)
        return SwitchStatement(span=self._span_from(keyword), scrutinee=scrutinee,
                               cases=cases, default=default)

    def _parse_case_body(self) -> Block:
        """Parse statements up to the next case, default or closing brace."""
        colon = self._previous()
        statements: list[Statement] = []
        while not self._check(TokenType.CASE, TokenType.DEFAULT, TokenType.RBRACE):
            if self._at_end():
                raise self._error("expected '}' to close switch",
                                  ["statement", "'case'", "'default'", "'}'"])
            statements.append(self._parse_statement())

        if statements:
            span = statements[0].span.to(statements[-1].span)
        else:
            span = colon.span
        return Block(span=span, statements=statements)

    def _parse_return(self) -> ReturnStatement:
        """Parse ``return [expr];``."""
        keyword = self._expect(TokenType.RETURN)
        value = None
        if not self._check(TokenType.SEMICOLON):
            value = self._parse_expression()
        self._expect(TokenType.SEMICOLON, "expected ';' after return", ("operator",))
        return ReturnStatement(span=self._span_from(keyword), value=value)

    def _parse_jump(self) -> Statement:
        """Parse ``break [.label];`` or ``continue [.label];``."""
        keyword = self._advance()
        label = None
        if self._match(TokenType.DOT):
            label = self._expect_identifier("loop label").text

        if not self._check(TokenType.SEMICOLON):
            expected = ["';'"] if label else ["'.'", "';'"]
            raise self._error(f"expected ';' after '{keyword.text}'", expected)
        self._advance()

        node_class = BreakStatement if keyword.type == TokenType.BREAK else ContinueStatement
        return node_class(span=self._span_from(keyword), label=label)

    def _parse_goto(self) -> GotoStatement:
        """Parse ``goto label;`` so the analyzer can reject it."""
        keyword = self._expect(TokenType.GOTO)
        label = self._expect_identifier("goto label")
        self._expect(TokenType.SEMICOLON, "expected ';' after goto")
        return GotoStatement(span=self._span_from(keyword), label=label.text)

    # =========================================================================
    # Expressions
    # =========================================================================

    def _starts_expression(self) -> bool:
        return self._peek().type in _EXPRESSION_STARTS

    def _parse_expression(self) -> Expression:
        """Parse a full expression."""
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        """Parse assignment expression (right associative)."""
        target = self._parse_ternary()

        if self._peek().is_assignment_operator():
            operator = self._advance()
            value = self._parse_assignment()
            return AssignmentExpression(span=target.span.to(value.span),
                                        operator=operator.text, target=target, value=value)

        return target

    def _parse_ternary(self) -> Expression:
        """Parse ternary conditional expression."""
        condition = self._parse_range()

        if self._match(TokenType.QUESTION):
            then_expr = self._parse_expression()
            self._expect(TokenType.COLON, "expected ':' in ternary expression")
            else_expr = self._parse_ternary()
            return TernaryExpression(span=condition.span.to(else_expr.span),
                                     condition=condition, then_expr=then_expr,
                                     else_expr=else_expr)

        return condition

    def _parse_range(self) -> Expression:
        """Parse ``a..b``, ``a..=b`` and the open forms ``..b`` / ``a..``."""
        start_token = self._peek()
        start = None
        if not self._check(TokenType.DOT_DOT, TokenType.DOT_DOT_EQ):
            start = self._parse_logical_or()
            if not self._check(TokenType.DOT_DOT, TokenType.DOT_DOT_EQ):
                return start

        operator = self._advance()
        inclusive = operator.type == TokenType.DOT_DOT_EQ
        end = None
        if self._starts_expression():
            end = self._parse_logical_or()
        elif inclusive:
            raise self._error("inclusive range requires an end", ["expression"])

        return RangeExpression(span=self._span_from(start_token), start=start,
                               end=end, inclusive=inclusive)

    def _parse_logical_or(self) -> Expression:
        """Parse logical OR expression."""
        return self._parse_binary(self._parse_logical_and, {TokenType.OR: BinaryOp.OR})

    def _parse_logical_and(self) -> Expression:
        """Parse logical AND expression."""
        return self._parse_binary(self._parse_bitwise_or, {TokenType.AND: BinaryOp.AND})

    def _parse_bitwise_or(self) -> Expression:
        """Parse bitwise OR expression."""
        return self._parse_binary(self._parse_bitwise_xor, {TokenType.PIPE: BinaryOp.BIT_OR})

    def _parse_bitwise_xor(self) -> Expression:
        """Parse bitwise XOR expression."""
        return self._parse_binary(self._parse_bitwise_and, {TokenType.CARET: BinaryOp.BIT_XOR})

    def _parse_bitwise_and(self) -> Expression:
        """Parse bitwise AND expression."""
        return self._parse_binary(self._parse_equality, {TokenType.AMPERSAND: BinaryOp.BIT_AND})

    def _parse_equality(self) -> Expression:
        """Parse equality expression (== !=)."""
        return self._parse_binary(
            self._parse_relational,
            {
                TokenType.EQ: BinaryOp.EQ,
                TokenType.NE: BinaryOp.NE,
            },
        )

    def _parse_relational(self) -> Expression:
        """Parse relational expression (< > <= >=)."""
        return self._parse_binary(
            self._parse_shift,
            {
                TokenType.LT: BinaryOp.LT,
                TokenType.GT: BinaryOp.GT,
                TokenType.LE: BinaryOp.LE,
                TokenType.GE: BinaryOp.GE,
            },
        )

    def _parse_shift(self) -> Expression:
        """Parse shift expression (<< >>)."""
        return self._parse_binary(
            self._parse_additive,
            {
                TokenType.LSHIFT: BinaryOp.SHL,
                TokenType.RSHIFT: BinaryOp.SHR,
            },
        )

    def _parse_additive(self) -> Expression:
        """Parse additive expression (+ -)."""
        return self._parse_binary(
            self._parse_multiplicative,
            {
                TokenType.PLUS: BinaryOp.ADD,
                TokenType.MINUS: BinaryOp.SUB,
            },
        )

    def _parse_multiplicative(self) -> Expression:
        """Parse multiplicative expression (* / %)."""
        return self._parse_binary(
            self._parse_unary,
            {
                TokenType.STAR: BinaryOp.MUL,
                TokenType.SLASH: BinaryOp.DIV,
                TokenType.PERCENT: BinaryOp.MOD,
            },
        )

    def _parse_binary(
        self,
        operand_parser: Callable[[], Expression],
        operators: dict[TokenType, BinaryOp],
    ) -> Expression:
        """
        Generic left-associative binary expression parser.

        Args:
            operand_parser: Function to parse operands
            operators: Map of token types to binary operators
        """
        expr = operand_parser()

        while self._peek().type in operators:
            op_token = self._advance()
            right = operand_parser()
            expr = BinaryExpression(
                span=expr.span.to(right.span),
                operator=operators[op_token.type],
                left=expr,
                right=right,
            )

        return expr

    def _parse_unary(self) -> Expression:
        """Parse unary expression (! - & &var * ++ -- cast sizeof)."""
        token = self._peek()

        unary_ops = {
            TokenType.BANG: UnaryOp.NOT,
            TokenType.MINUS: UnaryOp.NEG,
            TokenType.STAR: UnaryOp.DEREF,
            TokenType.INCREMENT: UnaryOp.PRE_INC,
            TokenType.DECREMENT: UnaryOp.PRE_DEC,
        }

        if token.type in unary_ops:
            self._advance()
            operand = self._parse_unary()  # Right-associative
            return UnaryExpression(span=token.span.to(operand.span),
                                   operator=unary_ops[token.type], operand=operand)

        if token.type == TokenType.AMPERSAND:
            self._advance()
            mutable = self._match(TokenType.VAR, TokenType.MUT) is not None
            operand = self._parse_unary()
            return UnaryExpression(span=token.span.to(operand.span),
                                   operator=UnaryOp.REF_MUT if mutable else UnaryOp.REF,
                                   operand=operand)

        if token.type == TokenType.SIZEOF:
            return self._parse_sizeof()

        if token.type == TokenType.LPAREN and self._is_cast():
            return self._parse_cast()

        return self._parse_postfix()

    def _is_cast(self) -> bool:
        """
        Check whether '(' starts a cast rather than a parenthesised
        expression: a type, ')' and then the start of an operand. A
        struct initializer after the ')' makes a compound literal.
        """
        primitive = self._peek(1).is_primitive_type()
        if not primitive and self._peek(1).type not in (
            TokenType.IDENTIFIER, TokenType.STAR, TokenType.AMPERSAND,
        ):
            return False

        def attempt() -> bool:
            self._advance()
            self._parse_type()
            if not self._match(TokenType.RPAREN):
                return False
            if self._check(TokenType.LBRACE):
                return self._peek(1).type in (TokenType.DOT, TokenType.RBRACE)
            if self._check(TokenType.BANG) and self._peek(1).type in _PROPAGATION_FOLLOWERS:
                return False
            if primitive:
                return self._starts_expression()
            return self._peek().type in _CAST_OPERAND_STARTS

        return self._speculate(attempt)

    def _parse_cast(self) -> Expression:
        """Parse ``(Type)expr``, or the compound literal ``(Type){ .x = 1 }``."""
        start = self._expect(TokenType.LPAREN)
        target_type = self._parse_type()
        self._expect(TokenType.RPAREN, "expected ')' after cast type")
        if self._check(TokenType.LBRACE):
            return self._parse_postfix(self._parse_struct_init(target_type, start))
        operand = self._parse_unary()
        return CastExpression(span=start.span.to(operand.span),
                              target_type=target_type, operand=operand)

    def _parse_sizeof(self) -> SizeOfExpression:
        """Parse ``sizeof(Type)``."""
        keyword = self._expect(TokenType.SIZEOF)
        self._expect(TokenType.LPAREN, "expected '(' after 'sizeof'")
        target_type = self._parse_type()
        self._expect(TokenType.RPAREN, "expected ')' after sizeof type", ("'*'", "'['"))
        return SizeOfExpression(span=self._span_from(keyword), target_type=target_type)

    def _parse_postfix(self, expr: Optional[Expression] = None) -> Expression:
        """
        Parse postfix operators: ++ -- () [] .field .method() ->field ? !

        Args:
            expr: An already parsed operand; a primary expression is
                  parsed when omitted
        """
        if expr is None:
            expr = self._parse_primary()

        while True:
            token = self._peek()

            if token.type == TokenType.BANG or (
                token.type == TokenType.QUESTION
                and self._peek(1).type in _PROPAGATION_FOLLOWERS
            ):
                self._advance()
                expr = ErrorPropagation(span=expr.span.to(token.span), operand=expr)

            elif token.type in (TokenType.INCREMENT, TokenType.DECREMENT):
                self._advance()
                operator = UnaryOp.POST_INC if token.type == TokenType.INCREMENT else UnaryOp.POST_DEC
                expr = UnaryExpression(span=expr.span.to(token.span),
                                       operator=operator, operand=expr)

            elif token.type == TokenType.LPAREN:
                self._advance()
                arguments, closing = self._parse_arguments(TokenType.RPAREN)
                span = expr.span.to(closing.span)
                if isinstance(expr, Identifier) and is_macro_name(expr.name):
                    expr = MacroInvocation(span=span, name=expr.name,
                                           arguments=arguments, delimiter="(")
                else:
                    expr = CallExpression(span=span, callee=expr, arguments=arguments)

            elif token.type == TokenType.LBRACKET:
                self._advance()
                index = self._parse_expression()
                closing = self._expect(TokenType.RBRACKET, "expected ']' after index",
                                      ("operator",))
                expr = IndexExpression(span=expr.span.to(closing.span),
                                       target=expr, index=index)

            elif token.type in (TokenType.DOT, TokenType.ARROW):
                self._advance()
                via_pointer = token.type == TokenType.ARROW
                member = self._peek()
                if member.type == TokenType.INT_LITERAL and not via_pointer:
                    self._advance()
                elif member.type == TokenType.IDENTIFIER:
                    self._advance()
                else:
                    raise self._error("expected field or method name", ["identifier"])

                if member.type == TokenType.IDENTIFIER and self._match(TokenType.LPAREN):
                    arguments, closing = self._parse_arguments(TokenType.RPAREN)
                    receiver = expr
                    if via_pointer:
                        receiver = UnaryExpression(span=expr.span, operator=UnaryOp.DEREF,
                                                   operand=expr)
                    expr = MethodCallExpression(span=expr.span.to(closing.span),
                                                receiver=receiver, method=member.text,
                                                arguments=arguments)
                else:
                    expr = FieldAccess(span=expr.span.to(member.span), target=expr,
                                       field_name=member.text, via_pointer=via_pointer)
            else:
                return expr

    def _parse_arguments(self, closer: TokenType) -> tuple[list[Expression], Token]:
        """
        Parse comma-separated expressions up to ``closer``.

        Returns:
            The expressions and the closing token
        """
        arguments: list[Expression] = []
        if not self._check(closer):
            while True:
                arguments.append(self._parse_expression())
                if not self._match(TokenType.COMMA) or self._check(closer):
                    break

        if not self._check(closer):
            raise self._error(f"expected ',' or {_TOKEN_SPELLINGS[closer]}",
                              ["','", _TOKEN_SPELLINGS[closer]])
        return arguments, self._advance()

    def _parse_primary(self) -> Expression:
        """Parse primary expression."""
        token = self._peek()

        if token.type in _LITERAL_KINDS:
            self._advance()
            return Literal(span=token.span, kind=_LITERAL_KINDS[token.type],
                           value=token.value, suffix=token.suffix)

        if token.type == TokenType.NULL:
            self._advance()
            return Literal(span=token.span, kind=LiteralKind.NULL)

        if token.type == TokenType.IDENTIFIER:
            if (self._peek(1).type == TokenType.BANG
                    and self._peek(2).type in _MACRO_DELIMITERS):
                return self._parse_macro_invocation()
            self._advance()
            name = token.text
            while self._check(TokenType.COLON_COLON) and self._peek(1).type == TokenType.IDENTIFIER:
                self._advance()
                name += "::" + self._advance().text
            return Identifier(span=self._span_from(token), name=name)

        if token.type == TokenType.LPAREN:
            return self._parse_parenthesized()

        if token.type == TokenType.LBRACKET:
            self._advance()
            elements, closing = self._parse_arguments(TokenType.RBRACKET)
            return ArrayLiteral(span=token.span.to(closing.span), elements=elements)

        if token.type == TokenType.AT:
            return self._parse_type_scoped_call()

        if token.type == TokenType.LBRACE:
            return self._parse_struct_init()

        raise self._error("expected expression", _PRIMARY_EXPECTED)

    def _parse_struct_init(
        self,
        struct_type: Optional[Type] = None,
        start: Optional[Token] = None,
    ) -> StructInit:
        """
        Parse ``{ .field = expr, ... }``.

        Args:
            struct_type: The type named by a compound literal's cast
            start: First token of the compound literal, if any
        """
        brace = self._expect(TokenType.LBRACE)
        fields: list[FieldInit] = []
        while not self._check(TokenType.RBRACE):
            field_start = self._expect(TokenType.DOT, "expected '.field = value' in struct "
                                       "initializer", ("'}'",))
            name = self._expect_identifier("field name")
            self._expect(TokenType.ASSIGN, "expected '=' after field name")
            value = self._parse_expression()
            fields.append(FieldInit(span=self._span_from(field_start), name=name.text,
                                    value=value))
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACE, "expected '}' to close struct initializer",
                     ("','", "operator"))
        return StructInit(span=self._span_from(start or brace), struct_type=struct_type,
                          fields=fields)

    def _parse_parenthesized(self) -> Expression:
        """Parse ``()``, ``(expr)`` or a tuple ``(a, b, ...)``."""
        start = self._expect(TokenType.LPAREN)
        if self._match(TokenType.RPAREN):
            return TupleLiteral(span=self._span_from(start), elements=[])

        first = self._parse_expression()
        if not self._match(TokenType.COMMA):
            self._expect(TokenType.RPAREN, "expected ')' after expression", ("','", "operator"))
            return first

        elements = [first]
        while not self._check(TokenType.RPAREN):
            elements.append(self._parse_expression())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RPAREN, "expected ')' to close tuple", ("','",))
        return TupleLiteral(span=self._span_from(start), elements=elements)

    def _parse_macro_invocation(self) -> MacroInvocation:
        """Parse ``name!(args)``, ``name![args]`` or ``name!{args}``."""
        name = self._advance()
        self._expect(TokenType.BANG)
        opener = self._advance()
        arguments, closing = self._parse_arguments(_MACRO_DELIMITERS[opener.type])
        return MacroInvocation(span=name.span.to(closing.span), name=name.text,
                               arguments=arguments, delimiter=opener.text)

    def _parse_type_scoped_call(self) -> TypeScopedCall:
        """
        Parse a type-scoped call.

        ``@Type->method(args)`` names a method on a single type;
        ``@A.B.method(args)`` walks a dotted type path. The last name
        before the arguments is always the method; '->' may only appear
        directly before it. Explicit type arguments, ``<T>`` or ``(T)``,
        may follow a single type name.
        """
        at = self._expect(TokenType.AT)
        segments = [self._expect_identifier("type name after '@'").text]
        type_args = self._parse_explicit_type_args()
        separators: list[Token] = []

        while self._check(TokenType.DOT, TokenType.ARROW, TokenType.COLON_COLON):
            if separators and separators[-1].type == TokenType.ARROW:
                raise self._error("'->' may only precede the method name", ["'('"])
            if separators and type_args:
                raise self._error("type arguments must be followed by the method name",
                                  ["'('"])
            separators.append(self._advance())
            segments.append(self._expect_identifier("method name").text)

        if not separators:
            expected = ["'->'", "'.'", "'::'"]
            if not type_args:
                expected += ["'<'", "'('"]
            raise self._error("expected '->' or '.' after type name", expected)

        arguments: list[Expression] = []
        if self._match(TokenType.LPAREN):
            arguments, _ = self._parse_arguments(TokenType.RPAREN)

        return TypeScopedCall(
            span=self._span_from(at),
            type_path=segments[:-1],
            method=segments[-1],
            arguments=arguments,
            separator=separators[-1].text,
            type_args=type_args,
        )

    def _parse_explicit_type_args(self) -> list[Type]:
        """Parse ``<T, U>`` or ``(T, U)`` after a type-scoped call's type name."""
        if self._match(TokenType.LT):
            args = [self._parse_type()]
            while self._match(TokenType.COMMA):
                args.append(self._parse_type())
            self._expect_closing_angle()
            return args
        if self._match(TokenType.LPAREN):
            args = [self._parse_type()]
            while self._match(TokenType.COMMA):
                args.append(self._parse_type())
            self._expect(TokenType.RPAREN, "expected ')' after type arguments", ("','",))
            return args
        return []


# =============================================================================
# Convenience Function
# =============================================================================

def parse(tokens: list[Token]) -> Program:
    """
    Parse a token list into a Program.

    Args:
        tokens: Token list from the lexer

    Returns:
        The Program root node

    Raises:
        ParseError: On the first grammar violation
    """
    return Parser(tokens).parse()

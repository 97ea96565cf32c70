"""
Crusty Lexer (Tokenizer)
========================

This module converts Crusty source text into a list of tokens for the
parser. It runs strictly left to right, never backtracks, and either
produces a complete token list ending in EOF or raises the first
LexError it meets. No input character is ever silently skipped.

Token Categories
----------------
- Keywords: let, var, const, static, if, while, for, return, struct, ...
- Primitive types: int, i32, i64, u32, u64, float, f32, f64, bool, char, void
- Identifiers: variable, function, type and macro names
- Literals: integers, floats, strings, characters, true/false, NULL
- Operators: arithmetic, comparison, logical, bitwise, assignment
- Dialect punctuation: @ (type-scoped call), ! (macro invocation),
  # (directives), -> and :: (scoped access), .. and ..= (ranges)

There is deliberately no function keyword: functions are declared
C-style as ``ReturnType name(params)``.

Number Formats
--------------
| Format      | Example     | Value   |
|-------------|-------------|---------|
| Decimal     | 1_000       | 1000    |
| Hexadecimal | 0xFF        | 255     |
| Binary      | 0b1010      | 10      |
| Suffixed    | 42i64       | 42      |
| Float       | 2.5e3f32    | 2500.0  |

A float needs a digit after the dot, so ``1..5`` lexes as
INT_LITERAL, DOT_DOT, INT_LITERAL.

Comments
--------
- Line: // comment
- Block: /* comment */ (must be closed)
- Doc: /// comment, discarded from the token stream but attached to
  the next token as ``doc_comments`` so the parser can keep them

Escape Sequences
----------------
\\n (newline), \\t (tab), \\r (return), \\0 (null), \\\\ (backslash),
\\" (double quote), \\' (single quote). Anything else is an error.

Example Usage
-------------
>>> from crusty.lexer import tokenize
>>> for token in tokenize('int main() { return 42; }'):
...     print(token)
Token(INT, 'int', 1:1-1:4)
Token(IDENTIFIER, 'main', 1:5-1:9)
Token(LPAREN, '(', 1:9-1:10)
Token(RPAREN, ')', 1:10-1:11)
Token(LBRACE, '{', 1:12-1:13)
Token(RETURN, 'return', 1:14-1:20)
Token(INT_LITERAL, '42', 1:21-1:23)
Token(SEMICOLON, ';', 1:23-1:24)
Token(RBRACE, '}', 1:25-1:26)
Token(EOF, '', 1:26-1:26)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Union
import math
import string

from crusty.errors import LexError, Position, Span


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """
    Token types for the Crusty dialect.

    Keywords get their own types so the parser can dispatch on them
    directly instead of comparing identifier text.
    """
    # Literals and names
    IDENTIFIER = auto()
    INT_LITERAL = auto()
    FLOAT_LITERAL = auto()
    STRING_LITERAL = auto()
    CHAR_LITERAL = auto()
    BOOL_LITERAL = auto()
    NULL = auto()

    # Declaration keywords
    LET = auto()
    VAR = auto()
    CONST = auto()
    STATIC = auto()
    MUT = auto()
    DEFINE = auto()
    STRUCT = auto()
    ENUM = auto()
    UNION = auto()
    TYPEDEF = auto()
    NAMESPACE = auto()
    EXTERN = auto()
    UNSAFE = auto()
    AUTO = auto()

    # Control flow keywords
    IF = auto()
    ELSE = auto()
    WHILE = auto()
    FOR = auto()
    IN = auto()
    LOOP = auto()
    MATCH = auto()
    SWITCH = auto()
    CASE = auto()
    DEFAULT = auto()
    RETURN = auto()
    BREAK = auto()
    CONTINUE = auto()
    GOTO = auto()
    SIZEOF = auto()

    # Primitive type keywords
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

    # Arithmetic operators
    PLUS = auto()           # +
    MINUS = auto()          # -
    STAR = auto()           # *
    SLASH = auto()          # /
    PERCENT = auto()        # %
    INCREMENT = auto()      # ++
    DECREMENT = auto()      # --

    # Comparison operators
    EQ = auto()             # ==
    NE = auto()             # !=
    LT = auto()             # <
    GT = auto()             # >
    LE = auto()             # <=
    GE = auto()             # >=

    # Logical and bitwise operators
    AND = auto()            # &&
    OR = auto()             # ||
    BANG = auto()           # !
    AMPERSAND = auto()      # &
    PIPE = auto()           # |
    CARET = auto()          # ^
    LSHIFT = auto()         # <<
    RSHIFT = auto()         # >>

    # Assignment operators
    ASSIGN = auto()         # =
    PLUS_ASSIGN = auto()    # +=
    MINUS_ASSIGN = auto()   # -=
    STAR_ASSIGN = auto()    # *=
    SLASH_ASSIGN = auto()   # /=
    PERCENT_ASSIGN = auto() # %=

    # Access and range punctuation
    ARROW = auto()          # ->
    DOT = auto()            # .
    DOT_DOT = auto()        # ..
    DOT_DOT_EQ = auto()     # ..=
    COLON_COLON = auto()    # ::
    AT = auto()             # @
    HASH = auto()           # #
    QUESTION = auto()       # ?

    # Delimiters
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    SEMICOLON = auto()
    COMMA = auto()
    COLON = auto()

    EOF = auto()


# Map keyword strings to their token types
KEYWORDS: dict[str, TokenType] = {
    # Declarations
    "let": TokenType.LET,
    "var": TokenType.VAR,
    "const": TokenType.CONST,
    "static": TokenType.STATIC,
    "mut": TokenType.MUT,
    "define": TokenType.DEFINE,
    "struct": TokenType.STRUCT,
    "enum": TokenType.ENUM,
    "union": TokenType.UNION,
    "typedef": TokenType.TYPEDEF,
    "namespace": TokenType.NAMESPACE,
    "extern": TokenType.EXTERN,
    "unsafe": TokenType.UNSAFE,
    "auto": TokenType.AUTO,

    # Control flow
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "for": TokenType.FOR,
    "in": TokenType.IN,
    "loop": TokenType.LOOP,
    "match": TokenType.MATCH,
    "switch": TokenType.SWITCH,
    "case": TokenType.CASE,
    "default": TokenType.DEFAULT,
    "return": TokenType.RETURN,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
    "goto": TokenType.GOTO,
    "sizeof": TokenType.SIZEOF,

    # Primitive types
    "int": TokenType.INT,
    "i32": TokenType.I32,
    "i64": TokenType.I64,
    "u32": TokenType.U32,
    "u64": TokenType.U64,
    "float": TokenType.FLOAT,
    "f32": TokenType.F32,
    "f64": TokenType.F64,
    "bool": TokenType.BOOL,
    "char": TokenType.CHAR,
    "void": TokenType.VOID,

    # Literal keywords
    "true": TokenType.BOOL_LITERAL,
    "false": TokenType.BOOL_LITERAL,
    "NULL": TokenType.NULL,
}

# Token types that name a primitive type
PRIMITIVE_TYPE_TOKENS = frozenset({
    TokenType.INT, TokenType.I32, TokenType.I64, TokenType.U32, TokenType.U64,
    TokenType.FLOAT, TokenType.F32, TokenType.F64, TokenType.BOOL,
    TokenType.CHAR, TokenType.VOID,
})

# Suffixes accepted on numeric literals
INT_SUFFIXES = ("i8", "i16", "i32", "i64", "i128", "isize",
                "u8", "u16", "u32", "u64", "u128", "usize")
FLOAT_SUFFIXES = ("f32", "f64")

# Largest finite f32 value
F32_MAX = 3.4028234663852886e38


def _is_digit(char: str) -> bool:
    """ASCII decimal digit test; str.isdigit() also accepts '²' and '٣'."""
    return char != "" and char in string.digits


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token of Crusty source.

    Attributes:
        type: The TokenType classification
        text: The exact source text of the token
        span: Where the token appears
        value: Decoded literal value (int, float, str, bool) or None
        suffix: Numeric type suffix such as 'i64', if one was written
        doc_comments: Text of any /// comments directly preceding the token
    """
    type: TokenType
    text: str
    span: Span
    value: Union[int, float, str, bool, None] = None
    suffix: Optional[str] = None
    doc_comments: tuple[str, ...] = ()

    def __repr__(self) -> str:
        """Format token for debugging output."""
        return f"Token({self.type.name}, {self.text!r}, {self.span})"

    def describe(self) -> str:
        """
        Describe the token for 'found' clauses in parse errors.

        Returns strings such as "identifier 'x'", "integer literal 42",
        "'}'" and "end of input".
        """
        if self.type == TokenType.EOF:
            return "end of input"
        if self.type == TokenType.IDENTIFIER:
            return f"identifier '{self.text}'"
        if self.type == TokenType.INT_LITERAL:
            return f"integer literal {self.text}"
        if self.type == TokenType.FLOAT_LITERAL:
            return f"float literal {self.text}"
        if self.type == TokenType.STRING_LITERAL:
            return f"string literal {self.text}"
        if self.type == TokenType.CHAR_LITERAL:
            return f"character literal {self.text}"
        if self.text in KEYWORDS:
            return f"keyword '{self.text}'"
        return f"'{self.text}'"

    def is_primitive_type(self) -> bool:
        """Return True if this token names a primitive type."""
        return self.type in PRIMITIVE_TYPE_TOKENS

    def is_assignment_operator(self) -> bool:
        """Return True if this token is an assignment operator."""
        return self.type in (
            TokenType.ASSIGN,
            TokenType.PLUS_ASSIGN,
            TokenType.MINUS_ASSIGN,
            TokenType.STAR_ASSIGN,
            TokenType.SLASH_ASSIGN,
            TokenType.PERCENT_ASSIGN,
        )


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes Crusty source code.

    Usage:
        lexer = Lexer(source_text)
        tokens = lexer.tokenize()

    Attributes:
        source: The source code being tokenized
    """

    # Characters that can start an identifier
    IDENT_START = string.ascii_letters + "_"

    # Characters that can continue an identifier
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    # Escape sequences in strings and characters
    ESCAPE_SEQUENCES = {
        "n": "\n",      # Newline
        "t": "\t",      # Tab
        "r": "\r",      # Carriage return
        "0": "\0",      # Null
        "\\": "\\",     # Backslash
        '"': '"',       # Double quote
        "'": "'",       # Single quote
    }

    # Operators, longest first so that '..=' wins over '..' and '.'
    OPERATORS: tuple[tuple[str, TokenType], ...] = (
        ("..=", TokenType.DOT_DOT_EQ),
        ("->", TokenType.ARROW),
        ("..", TokenType.DOT_DOT),
        ("::", TokenType.COLON_COLON),
        ("++", TokenType.INCREMENT),
        ("--", TokenType.DECREMENT),
        ("==", TokenType.EQ),
        ("!=", TokenType.NE),
        ("<=", TokenType.LE),
        (">=", TokenType.GE),
        ("&&", TokenType.AND),
        ("||", TokenType.OR),
        ("<<", TokenType.LSHIFT),
        (">>", TokenType.RSHIFT),
        ("+=", TokenType.PLUS_ASSIGN),
        ("-=", TokenType.MINUS_ASSIGN),
        ("*=", TokenType.STAR_ASSIGN),
        ("/=", TokenType.SLASH_ASSIGN),
        ("%=", TokenType.PERCENT_ASSIGN),
        ("+", TokenType.PLUS),
        ("-", TokenType.MINUS),
        ("*", TokenType.STAR),
        ("/", TokenType.SLASH),
        ("%", TokenType.PERCENT),
        ("=", TokenType.ASSIGN),
        ("<", TokenType.LT),
        (">", TokenType.GT),
        ("!", TokenType.BANG),
        ("&", TokenType.AMPERSAND),
        ("|", TokenType.PIPE),
        ("^", TokenType.CARET),
        (".", TokenType.DOT),
        ("@", TokenType.AT),
        ("#", TokenType.HASH),
        ("?", TokenType.QUESTION),
        ("(", TokenType.LPAREN),
        (")", TokenType.RPAREN),
        ("{", TokenType.LBRACE),
        ("}", TokenType.RBRACE),
        ("[", TokenType.LBRACKET),
        ("]", TokenType.RBRACKET),
        (";", TokenType.SEMICOLON),
        (",", TokenType.COMMA),
        (":", TokenType.COLON),
    )

    def __init__(self, source: str):
        """
        Initialize the lexer with source code.

        Args:
            source: The Crusty source code to tokenize
        """
        self.source = source

        # Current position in source
        self._pos = 0
        self._line = 1
        self._column = 1

        # /// comments waiting to be attached to the next token
        self._pending_docs: list[str] = []

    def tokenize(self) -> list[Token]:
        """
        Tokenize the whole source.

        Returns:
            Every token in source order, always ending with an EOF token

        Raises:
            LexError: On the first malformed token
        """
        tokens: list[Token] = []
        while True:
            self._skip_whitespace_and_comments()
            if self._at_end():
                break
            tokens.append(self._scan_token())

        here = self._position()
        tokens.append(Token(TokenType.EOF, "", Span(here, here),
                            doc_comments=self._take_docs()))
        return tokens

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        """Check if we've reached the end of source."""
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """
        Look at character at current position + offset without advancing.

        Returns empty string if past end of source.
        """
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """
        Consume and return the current character, advancing position.

        Updates line and column tracking for spans.
        """
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
        else:
            self._column += 1

        return char

    def _match(self, expected: str) -> bool:
        """Consume next character if it matches expected."""
        if self._peek() == expected:
            self._advance()
            return True
        return False

    def _position(self) -> Position:
        return Position(self._line, self._column)

    # =========================================================================
    # Token Creation
    # =========================================================================

    def _make_token(
        self,
        token_type: TokenType,
        start: Position,
        start_pos: int,
        value: Union[int, float, str, bool, None] = None,
        suffix: Optional[str] = None,
    ) -> Token:
        """
        Create a token covering source from ``start`` to the current position.

        Args:
            token_type: The type of token
            start: Position of the token's first character
            start_pos: Offset of the token's first character in the source
            value: Decoded literal value, if any
            suffix: Numeric suffix, if any
        """
        return Token(
            type=token_type,
            text=self.source[start_pos:self._pos],
            span=Span(start, self._position()),
            value=value,
            suffix=suffix,
            doc_comments=self._take_docs(),
        )

    def _take_docs(self) -> tuple[str, ...]:
        docs = tuple(self._pending_docs)
        self._pending_docs.clear()
        return docs

    def _error(
        self,
        message: str,
        start: Position,
        hint: Optional[str] = None,
    ) -> LexError:
        """
        Create a LexError spanning from ``start`` to the current position.

        The span always covers at least one column so it is never empty.
        """
        end = self._position()
        if end <= start:
            end = Position(start.line, start.column + 1)
        return LexError(message, Span(start, end), hint=hint)

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_whitespace_and_comments(self) -> None:
        """Skip all whitespace and comments, remembering doc comments."""
        while not self._at_end():
            char = self._peek()

            if char in " \t\n\r":
                self._advance()
                continue

            # Doc comment: /// (but not ////, which is a plain comment)
            if char == "/" and self._peek(1) == "/" and self._peek(2) == "/" \
                    and self._peek(3) != "/":
                self._skip_doc_comment()
                continue

            if char == "/" and self._peek(1) == "/":
                self._skip_line_comment()
                continue

            if char == "/" and self._peek(1) == "*":
                self._skip_block_comment()
                continue

            break

    def _skip_line_comment(self) -> None:
        """Skip a line comment (// ...)."""
        while not self._at_end() and self._peek() != "\n":
            self._advance()

    def _skip_doc_comment(self) -> None:
        """Consume a /// comment and queue its text for the next token."""
        for _ in range(3):
            self._advance()
        chars = []
        while not self._at_end() and self._peek() != "\n":
            chars.append(self._advance())
        self._pending_docs.append("".join(chars).strip())

    def _skip_block_comment(self) -> None:
        """
        Skip a block comment (/* ... */).

        Raises:
            LexError: If the comment is never closed
        """
        start = self._position()
        self._advance()
        self._advance()

        while not self._at_end():
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()

        raise self._error(
            "unterminated block comment",
            start,
            hint="add closing */ to terminate the comment",
        )

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> Token:
        """Scan the next token from source."""
        start = self._position()
        start_pos = self._pos
        char = self._peek()

        if char in self.IDENT_START:
            return self._scan_identifier(start, start_pos)

        if _is_digit(char):
            return self._scan_number(start, start_pos)

        if char == '"':
            return self._scan_string(start, start_pos)

        if char == "'":
            return self._scan_char(start, start_pos)

        return self._scan_operator(start, start_pos)

    def _scan_identifier(self, start: Position, start_pos: int) -> Token:
        """
        Scan an identifier or keyword.

        ``true``/``false`` become BOOL_LITERAL and ``NULL`` becomes NULL.
        """
        while self._peek() and self._peek() in self.IDENT_CHARS:
            self._advance()

        name = self.source[start_pos:self._pos]
        token_type = KEYWORDS.get(name, TokenType.IDENTIFIER)

        if token_type == TokenType.BOOL_LITERAL:
            return self._make_token(token_type, start, start_pos, value=(name == "true"))
        if token_type == TokenType.IDENTIFIER:
            return self._make_token(token_type, start, start_pos, value=name)
        return self._make_token(token_type, start, start_pos)

    def _scan_number(self, start: Position, start_pos: int) -> Token:
        """
        Scan a numeric literal.

        Handles decimal, 0x hexadecimal and 0b binary integers with '_'
        separators and an optional type suffix, and decimal floats with an
        optional exponent and f32/f64 suffix.
        """
        if self._peek() == "0" and self._peek(1).lower() in ("x", "b"):
            base = 16 if self._peek(1).lower() == "x" else 2
            digits_allowed = string.hexdigits if base == 16 else "01"
            self._advance()
            self._advance()
            digits = self._scan_digits(digits_allowed)
            if not digits:
                kind = "hexadecimal" if base == 16 else "binary"
                raise self._error(f"expected {kind} digits after '0{'x' if base == 16 else 'b'}'", start)
            suffix = self._scan_suffix(INT_SUFFIXES)
            return self._make_token(TokenType.INT_LITERAL, start, start_pos,
                                    value=int(digits, base), suffix=suffix)

        digits = self._scan_digits(string.digits)
        is_float = False

        # Fraction: only if a digit follows the dot ('1..5' is a range)
        if self._peek() == "." and _is_digit(self._peek(1)):
            is_float = True
            self._advance()
            digits += "." + self._scan_digits(string.digits)

        # Exponent
        if self._peek() in ("e", "E") and (
            _is_digit(self._peek(1))
            or (self._peek(1) in ("+", "-") and _is_digit(self._peek(2)))
        ):
            is_float = True
            digits += self._advance()
            if self._peek() in ("+", "-"):
                digits += self._advance()
            digits += self._scan_digits(string.digits)

        if is_float:
            suffix = self._scan_suffix(FLOAT_SUFFIXES)
            return self._make_token(TokenType.FLOAT_LITERAL, start, start_pos,
                                    value=self._float_value(digits, suffix, start), suffix=suffix)

        suffix = self._scan_suffix(INT_SUFFIXES + FLOAT_SUFFIXES)
        if suffix in FLOAT_SUFFIXES:
            return self._make_token(TokenType.FLOAT_LITERAL, start, start_pos,
                                    value=self._float_value(digits, suffix, start), suffix=suffix)
        return self._make_token(TokenType.INT_LITERAL, start, start_pos,
                                value=int(digits), suffix=suffix)

    def _float_value(self, digits: str, suffix: Optional[str], start: Position) -> float:
        """
        Convert the text of a float literal to its value.

        Raises:
            LexError: If the literal does not fit its type (f64 unless
                      suffixed f32)
        """
        value = float(digits)
        if math.isinf(value):
            raise self._error(
                "float literal out of range",
                start,
                hint="the largest finite f64 is about 1.8e308",
            )
        if suffix == "f32" and value > F32_MAX:
            raise self._error(
                "float literal out of range for f32",
                start,
                hint="the largest finite f32 is about 3.4e38",
            )
        return value

    def _scan_digits(self, allowed: str) -> str:
        """Consume digits from ``allowed`` (and '_' separators), returning the digits."""
        chars = []
        while self._peek() and (self._peek() in allowed or self._peek() == "_"):
            char = self._advance()
            if char != "_":
                chars.append(char)
        return "".join(chars)

    def _scan_suffix(self, suffixes: tuple[str, ...]) -> Optional[str]:
        """
        Consume a numeric type suffix if one follows.

        A suffix only counts when it is not itself the start of a longer
        identifier (so '2if' is not split into '2i' + 'f').
        """
        for suffix in sorted(suffixes, key=len, reverse=True):
            end = self._pos + len(suffix)
            if self.source.startswith(suffix, self._pos) and (
                end >= len(self.source) or self.source[end] not in self.IDENT_CHARS
            ):
                for _ in suffix:
                    self._advance()
                return suffix
        return None

    def _scan_string(self, start: Position, start_pos: int) -> Token:
        """
        Scan a double-quoted string literal, decoding escapes.

        Raises:
            LexError: On a newline or end of input before the closing quote,
                      or on an invalid escape sequence
        """
        self._advance()  # consume opening "

        chars = []
        while not self._at_end():
            char = self._peek()

            if char == '"':
                self._advance()
                return self._make_token(TokenType.STRING_LITERAL, start, start_pos,
                                        value="".join(chars))

            if char == "\n":
                break

            if char == "\\":
                chars.append(self._scan_escape_sequence())
            else:
                chars.append(self._advance())

        raise self._error(
            "unterminated string literal",
            start,
            hint='add a closing " before the end of the line',
        )

    def _scan_char(self, start: Position, start_pos: int) -> Token:
        """
        Scan a single-quoted character literal.

        Raises:
            LexError: If the literal is empty, unterminated or longer
                      than one character
        """
        self._advance()  # consume opening '

        if self._at_end() or self._peek() in ("\n", "'"):
            raise self._error(
                "unterminated character literal",
                start,
                hint="character literals hold exactly one character, e.g. 'a'",
            )

        if self._peek() == "\\":
            char = self._scan_escape_sequence()
        else:
            char = self._advance()

        if self._peek() != "'":
            raise self._error(
                "unterminated character literal",
                start,
                hint="character literals hold exactly one character, e.g. 'a'",
            )
        self._advance()  # consume closing '

        return self._make_token(TokenType.CHAR_LITERAL, start, start_pos, value=char)

    def _scan_escape_sequence(self) -> str:
        """
        Scan an escape sequence starting at the backslash.

        Returns:
            The character represented by the escape sequence
        """
        start = self._position()
        self._advance()  # consume backslash

        if self._at_end() or self._peek() == "\n":
            raise self._error("unterminated string literal", start)

        char = self._advance()
        if char in self.ESCAPE_SEQUENCES:
            return self.ESCAPE_SEQUENCES[char]

        raise self._error(
            "invalid escape sequence",
            start,
            hint=f"'\\{char}' is not recognised; use one of \\n \\t \\r \\0 \\\\ \\\" \\'",
        )

    def _scan_operator(self, start: Position, start_pos: int) -> Token:
        """
        Scan an operator or delimiter.

        Raises:
            LexError: If the character starts no known token
        """
        for text, token_type in self.OPERATORS:
            if self.source.startswith(text, self._pos):
                for _ in text:
                    self._advance()
                return self._make_token(token_type, start, start_pos)

        char = self._advance()
        raise self._error(f"unexpected character: '{char}'", start)


# =============================================================================
# Convenience Function
# =============================================================================

def tokenize(source: str) -> list[Token]:
    """
    Tokenize Crusty source text.

    Args:
        source: The complete source text

    Returns:
        The token list, ending with EOF

    Raises:
        LexError: On the first malformed token
    """
    return Lexer(source).tokenize()

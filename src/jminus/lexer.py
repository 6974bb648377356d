"""
j-- Lexer (Scanner)
===================

This module implements the scanner for j--, a subset of Java. It
converts the characters supplied by a CharReader into Token records on
demand; the parser pulls one token at a time through a LookaheadScanner.

Token Categories
----------------
- Keywords: the full Java reserved-word table plus the j-- `until`
- Identifiers: letters, digits, `_` and `$`, not starting with a digit
- Numbers: decimal, hexadecimal (0x), octal (0), binary (0b),
  long (L suffix), float (F suffix) and double (fraction, exponent or D)
- Characters: 'c' with escapes \\b \\t \\n \\f \\r \\" \\' \\\\
- Strings: "text" with the same escapes
- Operators and separators, resolved by longest match (`>>>=` is one token)

Number Formats
--------------
| Format      | Example  | Token kind     |
|-------------|----------|----------------|
| Decimal     | 123      | INT_LITERAL    |
| Hexadecimal | 0x7F     | HEX_LITERAL    |
| Octal       | 0177     | OCTAL_LITERAL  |
| Binary      | 0b1010   | BINARY_LITERAL |
| Long        | 10L      | LONG_LITERAL   |
| Float       | 3.14f    | FLOAT_LITERAL  |
| Double      | 3.14, 1e9| DOUBLE_LITERAL |

Error Handling
--------------
The scanner never stops at a bad character. Malformed literals,
unterminated strings, characters and block comments, and unrecognized
characters are reported to the ErrorReporter as LexicalError
diagnostics; scanning then continues with the next character.

Example Usage
-------------
>>> from jminus.lexer import Scanner
>>> for token in Scanner("int x = 0x1F;", "X.java").tokenize():
...     print(token)
Token(INT, 'int', 1)
Token(IDENTIFIER, 'x', 1)
Token(ASSIGN, '=', 1)
Token(HEX_LITERAL, '0x1F', 1)
Token(SEMICOLON, ';', 1)
Token(EOF, '<EOF>', 1)
"""

import logging
import string
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Union

from jminus.errors import ErrorReporter, LexicalError, SourceReadError
from jminus.source import EOF_CHAR, CharReader, ReaderState

logger = logging.getLogger(__name__)


# =============================================================================
# Token Kind Enumeration
# =============================================================================

class TokenKind(Enum):
    """
    Token kinds for the j-- language.

    The value of each member is its canonical image: the exact spelling
    for keywords, operators and separators, and a bracketed category
    name for identifiers, literals and end of input.
    """

    # === Structural Tokens ===
    EOF = "<EOF>"

    # === Identifiers and Literals ===
    IDENTIFIER = "<IDENTIFIER>"
    INT_LITERAL = "<INT_LITERAL>"
    HEX_LITERAL = "<HEX_LITERAL>"
    OCTAL_LITERAL = "<OCTAL_LITERAL>"
    BINARY_LITERAL = "<BINARY_LITERAL>"
    LONG_LITERAL = "<LONG_LITERAL>"
    FLOAT_LITERAL = "<FLOAT_LITERAL>"
    DOUBLE_LITERAL = "<DOUBLE_LITERAL>"
    CHAR_LITERAL = "<CHAR_LITERAL>"
    STRING_LITERAL = "<STRING_LITERAL>"

    # === Keywords - Types ===
    BOOLEAN = "boolean"
    BYTE = "byte"
    CHAR = "char"
    DOUBLE = "double"
    FLOAT = "float"
    INT = "int"
    LONG = "long"
    SHORT = "short"
    VOID = "void"

    # === Keywords - Declarations and Modifiers ===
    ABSTRACT = "abstract"
    CLASS = "class"
    ENUM = "enum"
    EXTENDS = "extends"
    FINAL = "final"
    IMPLEMENTS = "implements"
    IMPORT = "import"
    INTERFACE = "interface"
    NATIVE = "native"
    PACKAGE = "package"
    PRIVATE = "private"
    PROTECTED = "protected"
    PUBLIC = "public"
    STATIC = "static"
    STRICTFP = "strictfp"
    SYNCHRONIZED = "synchronized"
    THROWS = "throws"
    TRANSIENT = "transient"
    VOLATILE = "volatile"

    # === Keywords - Statements ===
    ASSERT = "assert"
    BREAK = "break"
    CASE = "case"
    CATCH = "catch"
    CONTINUE = "continue"
    DEFAULT = "default"
    DO = "do"
    ELSE = "else"
    FINALLY = "finally"
    FOR = "for"
    IF = "if"
    RETURN = "return"
    SWITCH = "switch"
    THROW = "throw"
    TRY = "try"
    UNTIL = "until"         # j-- extension: do ... until (cond);
    WHILE = "while"

    # === Keywords - Expressions ===
    FALSE = "false"
    INSTANCEOF = "instanceof"
    NEW = "new"
    NULL = "null"
    SUPER = "super"
    THIS = "this"
    TRUE = "true"

    # === Reserved, never used ===
    CONST = "const"
    GOTO = "goto"

    # === Arithmetic Operators ===
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    PERCENT = "%"
    INCREMENT = "++"
    DECREMENT = "--"

    # === Comparison Operators ===
    EQ = "=="
    NE = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="

    # === Logical Operators ===
    AND = "&&"
    OR = "||"
    NOT = "!"

    # === Bitwise Operators ===
    AMPERSAND = "&"
    PIPE = "|"
    CARET = "^"
    TILDE = "~"
    LSHIFT = "<<"
    RSHIFT = ">>"
    ZSHIFT = ">>>"          # unsigned right shift

    # === Assignment Operators ===
    ASSIGN = "="
    PLUS_ASSIGN = "+="
    MINUS_ASSIGN = "-="
    STAR_ASSIGN = "*="
    SLASH_ASSIGN = "/="
    PERCENT_ASSIGN = "%="
    AND_ASSIGN = "&="
    OR_ASSIGN = "|="
    XOR_ASSIGN = "^="
    LSHIFT_ASSIGN = "<<="
    RSHIFT_ASSIGN = ">>="
    ZSHIFT_ASSIGN = ">>>="

    # === Separators ===
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    SEMICOLON = ";"
    COMMA = ","
    DOT = "."
    ELLIPSIS = "..."
    COLON = ":"
    QUESTION = "?"
    ARROW = "->"
    DOUBLE_COLON = "::"
    AT = "@"

    @property
    def image(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


# =============================================================================
# Keyword Mapping
# =============================================================================

_FIRST_KEYWORD = list(TokenKind).index(TokenKind.BOOLEAN)
_LAST_KEYWORD = list(TokenKind).index(TokenKind.GOTO)

# Map keyword strings to their token kinds
KEYWORDS: dict[str, TokenKind] = {
    kind.value: kind for kind in list(TokenKind)[_FIRST_KEYWORD:_LAST_KEYWORD + 1]
}

INTEGRAL_LITERALS = frozenset({
    TokenKind.INT_LITERAL,
    TokenKind.HEX_LITERAL,
    TokenKind.OCTAL_LITERAL,
    TokenKind.BINARY_LITERAL,
    TokenKind.LONG_LITERAL,
})

LITERAL_KINDS = INTEGRAL_LITERALS | {
    TokenKind.FLOAT_LITERAL,
    TokenKind.DOUBLE_LITERAL,
    TokenKind.CHAR_LITERAL,
    TokenKind.STRING_LITERAL,
    TokenKind.TRUE,
    TokenKind.FALSE,
    TokenKind.NULL,
}

# Token kinds whose image is fixed text (everything but identifiers and literals)
FIXED_TEXT_KINDS = frozenset(
    kind for kind in TokenKind
    if not kind.value.startswith("<")
)

# Escape sequences in strings and characters
ESCAPE_SEQUENCES = {
    "b": "\b",      # Backspace
    "t": "\t",      # Tab
    "n": "\n",      # Newline
    "f": "\f",      # Form feed
    "r": "\r",      # Carriage return
    '"': '"',       # Double quote
    "'": "'",       # Single quote
    "\\": "\\",     # Backslash
}


def decode_escapes(text: str) -> str:
    """Decode the escape sequences of a literal body; unknown escapes are kept."""
    chars = []
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text):
            escaped = text[i + 1]
            chars.append(ESCAPE_SEQUENCES.get(escaped, escaped))
            i += 2
        else:
            chars.append(char)
            i += 1
    return "".join(chars)


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token of j-- source.

    Attributes:
        kind: The TokenKind classification
        image: Exact source text for identifiers and literals, the
            canonical spelling for every other kind
        line: Line number in source (1-indexed); the EOF token repeats
            the line of the last real token
    """
    kind: TokenKind
    image: str
    line: int

    def __repr__(self) -> str:
        return f"Token({self.kind.name}, {self.image!r}, {self.line})"

    @property
    def is_literal(self) -> bool:
        return self.kind in LITERAL_KINDS

    @property
    def is_keyword(self) -> bool:
        return self.image in KEYWORDS and KEYWORDS[self.image] is self.kind

    @property
    def value(self) -> Union[int, float, str, bool, None]:
        """
        The value denoted by a literal token.

        Integral literals give an int, floating literals a float, char
        and string literals the decoded text. Malformed numeric literals
        (already reported by the scanner) give 0.
        """
        kind = self.kind
        if kind in INTEGRAL_LITERALS:
            return _integral_value(self.image)
        if kind in (TokenKind.FLOAT_LITERAL, TokenKind.DOUBLE_LITERAL):
            text = self.image.rstrip("fFdDlL")
            if not text or text[-1] in "eE+-":
                return 0.0
            return float(text)
        if kind in (TokenKind.CHAR_LITERAL, TokenKind.STRING_LITERAL):
            quote = self.image[0]
            body = self.image[1:]
            if body.endswith(quote):
                # The closing quote is real only if not itself escaped
                stripped = body[:-1]
                backslashes = len(stripped) - len(stripped.rstrip("\\"))
                if backslashes % 2 == 0:
                    body = stripped
            return decode_escapes(body)
        if kind is TokenKind.TRUE:
            return True
        if kind is TokenKind.FALSE:
            return False
        if kind is TokenKind.NULL:
            return None
        return self.image


def _integral_value(image: str) -> int:
    text = image.rstrip("lL")
    lowered = text.lower()
    if lowered.startswith("0x"):
        digits, base = text[2:], 16
    elif lowered.startswith("0b"):
        digits, base = text[2:], 2
    elif len(text) > 1 and text.startswith("0"):
        digits, base = text[1:], 8
        if digits.strip("01234567"):
            return 0
    else:
        digits, base = text, 10
    if not digits:
        return 0
    return int(digits, base)


# =============================================================================
# Scanner State (for checkpoints)
# =============================================================================

@dataclass(frozen=True)
class ScannerState:
    """Immutable snapshot of the scanner's read position."""
    reader: ReaderState
    last_line: int


# =============================================================================
# Scanner Implementation
# =============================================================================

class Scanner:
    """
    Tokenizes j-- source code on demand.

    The scanner is fault tolerant: every lexical problem is reported to
    the ErrorReporter and scanning carries on, so one bad character never
    stalls the rest of the file.

    Usage:
        scanner = Scanner(source_text, "Hello.java")
        token = scanner.next_token()

    Attributes:
        filename: Name of the source file (for diagnostics)
        reporter: Sink receiving LexicalError diagnostics
    """

    # Characters that can start an identifier
    IDENT_START = string.ascii_letters + "_$"

    # Characters that can continue an identifier
    IDENT_CHARS = IDENT_START + string.digits

    OCTAL_DIGITS = "01234567"
    BINARY_DIGITS = "01"

    def __init__(
        self,
        source: Union[str, CharReader],
        filename: str = "<input>",
        reporter: Optional[ErrorReporter] = None,
    ):
        """
        Initialize the scanner.

        Args:
            source: The source text, or a CharReader over it
            filename: Name of the source file (for diagnostics)
            reporter: Diagnostic sink (a private one is created if omitted)
        """
        if isinstance(source, CharReader):
            self._reader = source
            filename = source.filename
        else:
            self._reader = CharReader(source, filename)
        self.filename = filename
        self.reporter = reporter if reporter is not None else ErrorReporter()

        self._error_occurred = False
        self._last_line = 1

        # Depth of active speculative checkpoints; diagnostics are muted
        # while positive because the same text is rescanned after restore
        self._speculation_depth = 0

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        reporter: Optional[ErrorReporter] = None,
        encoding: str = "utf-8",
    ) -> "Scanner":
        """
        Create a scanner over a source file.

        A file that cannot be read is reported as a lexical error and
        scanned as empty input.
        """
        try:
            reader = CharReader.from_path(path, encoding=encoding)
        except SourceReadError as e:
            scanner = cls("", str(path), reporter)
            scanner._error(1, f"Unable to read characters from input: {e.reason}")
            return scanner
        return cls(reader, reporter=reporter)

    @property
    def error_has_occurred(self) -> bool:
        """True once any lexical error has been reported."""
        return self._error_occurred

    def tokenize(self) -> Iterator[Token]:
        """
        Generate the remaining tokens, ending with (and including) EOF.
        """
        while True:
            token = self.next_token()
            yield token
            if token.kind is TokenKind.EOF:
                return

    def next_token(self) -> Token:
        """Scan and return the next token."""
        while True:
            self._skip_whitespace_and_comments()

            if self._peek() == EOF_CHAR:
                return Token(TokenKind.EOF, TokenKind.EOF.value, self._last_line)

            token = self._scan_token(self._reader.line)
            if token is not None:
                self._last_line = token.line
                return token

    # =========================================================================
    # Checkpoint Support
    # =========================================================================

    def snapshot(self) -> ScannerState:
        """Capture the current read position."""
        return ScannerState(self._reader.mark(), self._last_line)

    def restore(self, state: ScannerState) -> None:
        """Replace the current read position with a snapshot."""
        self._reader.reset(state.reader)
        self._last_line = state.last_line

    def begin_speculation(self) -> None:
        self._speculation_depth += 1

    def end_speculation(self) -> None:
        self._speculation_depth = max(0, self._speculation_depth - 1)

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _peek(self, offset: int = 0) -> str:
        return self._reader.peek(offset)

    def _peek_in(self, chars: str, offset: int = 0) -> bool:
        """Check if the character at offset is one of chars (never true at EOF)."""
        char = self._reader.peek(offset)
        return char != EOF_CHAR and char in chars

    def _advance(self) -> str:
        return self._reader.next()

    def _match(self, expected: str) -> bool:
        """Consume next character if it matches expected."""
        if self._peek() == expected:
            self._advance()
            return True
        return False

    def _error(self, line: int, message: str) -> None:
        """Report a lexical error unless scanning speculatively."""
        if self._speculation_depth > 0:
            return
        self._error_occurred = True
        self.reporter.report(self.filename, line, message, LexicalError)

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_whitespace_and_comments(self) -> None:
        """Skip all whitespace and comments."""
        while True:
            char = self._peek()

            if char != EOF_CHAR and char in " \t\n\f":
                self._advance()
                continue

            # Single-line comment: //
            if char == "/" and self._peek(1) == "/":
                while self._peek() not in ("\n", EOF_CHAR):
                    self._advance()
                continue

            # Block comment: /* */ (no nesting)
            if char == "/" and self._peek(1) == "*":
                self._skip_block_comment()
                continue

            return

    def _skip_block_comment(self) -> None:
        start_line = self._reader.line
        self._advance()  # consume /
        self._advance()  # consume *

        while self._peek() != EOF_CHAR:
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()

        self._error(start_line, "Unterminated comment")

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self, line: int) -> Optional[Token]:
        """
        Scan the token starting at the current character.

        Returns:
            The token, or None after reporting an unrecognized character
        """
        char = self._peek()

        # Identifiers and keywords
        if char in self.IDENT_START:
            return self._scan_identifier(line)

        # Numbers, including a leading-dot fraction like .5
        if char in string.digits or (char == "." and self._peek_in(string.digits, 1)):
            return self._scan_number(line)

        # String literal
        if char == '"':
            return self._scan_string(line)

        # Character literal
        if char == "'":
            return self._scan_char(line)

        # Operators and separators
        return self._scan_operator(line)

    def _scan_identifier(self, line: int) -> Token:
        """
        Scan an identifier or keyword.

        Keywords are distinguished by checking against the keyword table.
        """
        chars = []
        while self._peek_in(self.IDENT_CHARS):
            chars.append(self._advance())

        name = "".join(chars)
        if name in KEYWORDS:
            return Token(KEYWORDS[name], name, line)
        return Token(TokenKind.IDENTIFIER, name, line)

    def _scan_number(self, line: int) -> Token:
        """
        Scan a numeric literal.

        A leading 0 selects binary (0b) or hexadecimal (0x). Everything else
        is scanned as decimal, optionally with a fraction, exponent and type
        suffix; an integer with a leading 0 is then read as octal.
        """
        if self._peek() == "0":
            if self._peek_in("xX", 1):
                return self._scan_radix_number(line, TokenKind.HEX_LITERAL, string.hexdigits, "hexadecimal")
            if self._peek_in("bB", 1):
                return self._scan_radix_number(line, TokenKind.BINARY_LITERAL, self.BINARY_DIGITS, "binary")

        return self._scan_decimal_number(line)

    def _scan_radix_number(self, line: int, kind: TokenKind, digits: str, name: str) -> Token:
        """Scan the digits after a 0x or 0b prefix."""
        chars = [self._advance(), self._advance()]

        while self._peek_in(digits):
            chars.append(self._advance())

        if len(chars) == 2:
            self._error(line, f"Invalid {name} literal: no digits after {''.join(chars)}")

        if self._peek_in("lL"):
            chars.append(self._advance())
            kind = TokenKind.LONG_LITERAL
        return self._checked_integer(Token(kind, "".join(chars), line))

    def _scan_decimal_number(self, line: int) -> Token:
        """Scan a decimal integer or floating-point number."""
        chars = []
        is_double = False

        while self._peek_in(string.digits):
            chars.append(self._advance())

        # Fractional part
        if self._peek() == "." and not self._peek_in(".", 1):
            is_double = True
            chars.append(self._advance())
            while self._peek_in(string.digits):
                chars.append(self._advance())

        # Exponent
        if self._peek_in("eE"):
            is_double = True
            chars.append(self._advance())
            if self._peek_in("+-"):
                chars.append(self._advance())
            if not self._peek_in(string.digits):
                self._error(line, f"Malformed exponent in literal: {''.join(chars)}")
            while self._peek_in(string.digits):
                chars.append(self._advance())

        # Type suffix
        if self._peek_in("fF"):
            chars.append(self._advance())
            return Token(TokenKind.FLOAT_LITERAL, "".join(chars), line)
        if self._peek_in("dD"):
            chars.append(self._advance())
            return Token(TokenKind.DOUBLE_LITERAL, "".join(chars), line)
        if self._peek_in("lL"):
            chars.append(self._advance())
            if is_double:
                self._error(line, f"Invalid long literal: {''.join(chars)}")
                return Token(TokenKind.DOUBLE_LITERAL, "".join(chars), line)
            return self._integer_token(line, "".join(chars), TokenKind.LONG_LITERAL)

        if is_double:
            return Token(TokenKind.DOUBLE_LITERAL, "".join(chars), line)
        return self._integer_token(line, "".join(chars), TokenKind.INT_LITERAL)

    def _integer_token(self, line: int, text: str, kind: TokenKind) -> Token:
        """Classify a decimal-looking integer; a leading 0 makes it octal."""
        digits = text.rstrip("lL")
        if len(digits) > 1 and digits.startswith("0"):
            if digits.strip(self.OCTAL_DIGITS):
                self._error(line, f"Invalid octal literal: {text}")
                return Token(kind, text, line)
            if kind is TokenKind.INT_LITERAL:
                kind = TokenKind.OCTAL_LITERAL
        return self._checked_integer(Token(kind, text, line))

    def _checked_integer(self, token: Token) -> Token:
        """
        Report an integral literal too large for its type.

        A decimal literal may reach 2**31 (2**63 for long) since it may be
        the operand of unary minus; analysis rejects it anywhere else.
        Hexadecimal, octal and binary literals may use every bit.
        """
        bits = 64 if token.kind is TokenKind.LONG_LITERAL else 32
        limit = (1 << (bits - 1)) if not token.image.startswith("0") else (1 << bits) - 1
        if token.value > limit:
            self._error(token.line, f"Integer number too large: {token.image}")
        return token

    def _scan_escape_sequence(self, line: int) -> str:
        """
        Scan an escape sequence starting at the backslash.

        Returns:
            The raw source text of the escape (decoded later by Token.value)
        """
        backslash = self._advance()
        char = self._peek()

        if char in ("\n", EOF_CHAR):
            self._error(line, "Badly formed escape sequence at end of line")
            return backslash

        self._advance()
        if char not in ESCAPE_SEQUENCES:
            self._error(line, f"Badly formed escape sequence: \\{char}")
        return backslash + char

    def _scan_char(self, line: int) -> Token:
        """
        Scan a single-quoted character literal.

        A missing closing quote is reported; input is then skipped up to
        a closing quote, a semicolon or the end of the line, and the token
        is still returned with the text scanned so far.
        """
        chars = [self._advance()]  # opening '

        char = self._peek()
        if char == "'":
            chars.append(self._advance())
            self._error(line, "Empty character literal")
            return Token(TokenKind.CHAR_LITERAL, "".join(chars), line)

        if char in ("\n", EOF_CHAR):
            self._error(line, "Unterminated character literal")
            return Token(TokenKind.CHAR_LITERAL, "".join(chars), line)

        if char == "\\":
            chars.append(self._scan_escape_sequence(line))
        else:
            chars.append(self._advance())

        if self._match("'"):
            chars.append("'")
            return Token(TokenKind.CHAR_LITERAL, "".join(chars), line)

        found = self._peek() if self._peek() != EOF_CHAR else "<EOF>"
        self._error(line, f"{found!r} found by scanner where closing ' was expected")
        while self._peek() not in ("'", ";", "\n", EOF_CHAR):
            self._advance()
        self._match("'")
        return Token(TokenKind.CHAR_LITERAL, "".join(chars), line)

    def _scan_string(self, line: int) -> Token:
        """
        Scan a double-quoted string literal.

        A raw newline or end of input before the closing quote is
        reported and the token is returned with the text scanned so far.
        """
        chars = [self._advance()]  # opening "

        while True:
            char = self._peek()

            if char == '"':
                chars.append(self._advance())
                return Token(TokenKind.STRING_LITERAL, "".join(chars), line)

            if char == "\n":
                self._error(line, "Unexpected end of line found in string")
                return Token(TokenKind.STRING_LITERAL, "".join(chars), line)

            if char == EOF_CHAR:
                self._error(line, "Unexpected end of file found in string")
                return Token(TokenKind.STRING_LITERAL, "".join(chars), line)

            if char == "\\":
                chars.append(self._scan_escape_sequence(line))
            else:
                chars.append(self._advance())

    def _scan_operator(self, line: int) -> Optional[Token]:
        """
        Scan an operator or separator by longest match.

        Each leading character has a fixed chain of at most three further
        characters to try.
        """
        char = self._advance()

        if char == "+":
            if self._match("+"):
                return Token(TokenKind.INCREMENT, "++", line)
            if self._match("="):
                return Token(TokenKind.PLUS_ASSIGN, "+=", line)
            return Token(TokenKind.PLUS, "+", line)

        if char == "-":
            if self._match("-"):
                return Token(TokenKind.DECREMENT, "--", line)
            if self._match("="):
                return Token(TokenKind.MINUS_ASSIGN, "-=", line)
            if self._match(">"):
                return Token(TokenKind.ARROW, "->", line)
            return Token(TokenKind.MINUS, "-", line)

        if char == "&":
            if self._match("&"):
                return Token(TokenKind.AND, "&&", line)
            if self._match("="):
                return Token(TokenKind.AND_ASSIGN, "&=", line)
            return Token(TokenKind.AMPERSAND, "&", line)

        if char == "|":
            if self._match("|"):
                return Token(TokenKind.OR, "||", line)
            if self._match("="):
                return Token(TokenKind.OR_ASSIGN, "|=", line)
            return Token(TokenKind.PIPE, "|", line)

        if char == "<":
            if self._match("<"):
                if self._match("="):
                    return Token(TokenKind.LSHIFT_ASSIGN, "<<=", line)
                return Token(TokenKind.LSHIFT, "<<", line)
            if self._match("="):
                return Token(TokenKind.LE, "<=", line)
            return Token(TokenKind.LT, "<", line)

        if char == ">":
            if self._match(">"):
                if self._match(">"):
                    if self._match("="):
                        return Token(TokenKind.ZSHIFT_ASSIGN, ">>>=", line)
                    return Token(TokenKind.ZSHIFT, ">>>", line)
                if self._match("="):
                    return Token(TokenKind.RSHIFT_ASSIGN, ">>=", line)
                return Token(TokenKind.RSHIFT, ">>", line)
            if self._match("="):
                return Token(TokenKind.GE, ">=", line)
            return Token(TokenKind.GT, ">", line)

        if char == ".":
            if self._peek() == "." and self._peek(1) == ".":
                self._advance()
                self._advance()
                return Token(TokenKind.ELLIPSIS, "...", line)
            return Token(TokenKind.DOT, ".", line)

        if char == ":":
            if self._match(":"):
                return Token(TokenKind.DOUBLE_COLON, "::", line)
            return Token(TokenKind.COLON, ":", line)

        # Operators whose only extension is a trailing =
        with_assign = {
            "=": (TokenKind.ASSIGN, TokenKind.EQ),
            "!": (TokenKind.NOT, TokenKind.NE),
            "*": (TokenKind.STAR, TokenKind.STAR_ASSIGN),
            "/": (TokenKind.SLASH, TokenKind.SLASH_ASSIGN),
            "%": (TokenKind.PERCENT, TokenKind.PERCENT_ASSIGN),
            "^": (TokenKind.CARET, TokenKind.XOR_ASSIGN),
        }

        if char in with_assign:
            plain, extended = with_assign[char]
            if self._match("="):
                return Token(extended, extended.value, line)
            return Token(plain, plain.value, line)

        # Single character tokens
        single_tokens = {
            "(": TokenKind.LPAREN,
            ")": TokenKind.RPAREN,
            "{": TokenKind.LBRACE,
            "}": TokenKind.RBRACE,
            "[": TokenKind.LBRACKET,
            "]": TokenKind.RBRACKET,
            ";": TokenKind.SEMICOLON,
            ",": TokenKind.COMMA,
            "?": TokenKind.QUESTION,
            "~": TokenKind.TILDE,
            "@": TokenKind.AT,
        }

        if char in single_tokens:
            return Token(single_tokens[char], char, line)

        # Unknown character: report, skip it and let next_token() go on
        self._error(line, f"Unrecognized input character: {char!r}")
        logger.debug(f"{self.filename}:{line}: skipped character {char!r}")
        return None

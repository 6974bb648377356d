# =============================================================================
# test_lexer.py - Scanner Unit Tests
# =============================================================================
# Tests for the j-- character source and scanner.
#
# Test coverage includes:
#   - Keywords, identifiers, operators and separators
#   - Longest-match operator scanning (>>>=, >> =)
#   - Numeric literal classification and values
#   - Character and string literals with escapes
#   - Comments, line tracking and line-ending normalization
#   - Lexical error reporting and recovery
# =============================================================================

import pytest

from jminus.errors import ErrorReporter, LexicalError
from jminus.lexer import FIXED_TEXT_KINDS, KEYWORDS, Scanner, Token, TokenKind
from jminus.source import EOF_CHAR, CharReader


# =============================================================================
# Helper Functions
# =============================================================================

def tokenize(source: str) -> list:
    """Scan source and return every token except the final EOF."""
    scanner = Scanner(source, "<test>")
    return [t for t in scanner.tokenize() if t.kind is not TokenKind.EOF]


def kinds(source: str) -> list:
    return [t.kind for t in tokenize(source)]


def scan_with_errors(source: str):
    """Scan source and return (tokens, reporter, scanner)."""
    reporter = ErrorReporter()
    scanner = Scanner(source, "<test>", reporter)
    tokens = [t for t in scanner.tokenize() if t.kind is not TokenKind.EOF]
    return tokens, reporter, scanner


# =============================================================================
# Character Source Tests
# =============================================================================

class TestCharReader:
    """Test the line-tracked character source."""

    def test_next_and_eof(self):
        reader = CharReader("ab")
        assert reader.next() == "a"
        assert reader.next() == "b"
        assert reader.next() == EOF_CHAR
        assert reader.next() == EOF_CHAR

    def test_line_counting(self):
        reader = CharReader("a\nb")
        assert reader.line == 1
        reader.next()
        reader.next()
        assert reader.line == 2

    @pytest.mark.parametrize("text", ["a\r\nb", "a\rb", "a\nb"])
    def test_line_endings_normalized(self, text):
        reader = CharReader(text)
        assert [reader.next() for _ in range(3)] == ["a", "\n", "b"]
        assert reader.line == 2

    def test_mark_and_reset(self):
        reader = CharReader("x\ny")
        state = reader.mark()
        reader.next()
        reader.next()
        reader.reset(state)
        assert reader.line == 1
        assert reader.next() == "x"

    def test_missing_file(self, tmp_path):
        from jminus.errors import SourceReadError
        with pytest.raises(SourceReadError):
            CharReader.from_path(tmp_path / "Missing.java")


# =============================================================================
# Basic Token Recognition Tests
# =============================================================================

class TestBasicTokens:
    """Test basic token recognition for simple inputs."""

    def test_empty_input(self):
        scanner = Scanner("", "<test>")
        token = scanner.next_token()
        assert token.kind is TokenKind.EOF
        assert token.line == 1

    def test_eof_repeats_last_line(self):
        scanner = Scanner("x\n\n\n", "<test>")
        tokens = list(scanner.tokenize())
        assert tokens[-1].kind is TokenKind.EOF
        assert tokens[-1].line == 1

    def test_eof_is_sticky(self):
        scanner = Scanner("x", "<test>")
        scanner.next_token()
        assert scanner.next_token().kind is TokenKind.EOF
        assert scanner.next_token().kind is TokenKind.EOF

    def test_identifier(self):
        tokens = tokenize("counter _tmp $x a1")
        assert [t.kind for t in tokens] == [TokenKind.IDENTIFIER] * 4
        assert [t.image for t in tokens] == ["counter", "_tmp", "$x", "a1"]

    def test_keywords(self):
        assert kinds("class while until") == [TokenKind.CLASS, TokenKind.WHILE, TokenKind.UNTIL]

    def test_keyword_prefix_is_identifier(self):
        assert kinds("classy iffy") == [TokenKind.IDENTIFIER, TokenKind.IDENTIFIER]

    def test_every_keyword_recognized(self):
        for image, kind in KEYWORDS.items():
            token = tokenize(image)[0]
            assert token.kind is kind
            assert token.is_keyword

    def test_separators(self):
        assert kinds("( ) { } [ ] ; , . ...") == [
            TokenKind.LPAREN, TokenKind.RPAREN,
            TokenKind.LBRACE, TokenKind.RBRACE,
            TokenKind.LBRACKET, TokenKind.RBRACKET,
            TokenKind.SEMICOLON, TokenKind.COMMA,
            TokenKind.DOT, TokenKind.ELLIPSIS,
        ]

    def test_line_numbers(self):
        tokens = tokenize("a\nb\n\nc")
        assert [t.line for t in tokens] == [1, 2, 4]


# =============================================================================
# Operator Tests
# =============================================================================

class TestOperators:
    """Longest-match operator scanning."""

    def test_unsigned_shift_assign_is_one_token(self):
        assert kinds(">>>=") == [TokenKind.ZSHIFT_ASSIGN]

    def test_shift_then_assign_across_whitespace(self):
        assert kinds(">> =") == [TokenKind.RSHIFT, TokenKind.ASSIGN]

    @pytest.mark.parametrize("text,expected", [
        (">", TokenKind.GT),
        (">=", TokenKind.GE),
        (">>", TokenKind.RSHIFT),
        (">>=", TokenKind.RSHIFT_ASSIGN),
        (">>>", TokenKind.ZSHIFT),
        ("<", TokenKind.LT),
        ("<=", TokenKind.LE),
        ("<<", TokenKind.LSHIFT),
        ("<<=", TokenKind.LSHIFT_ASSIGN),
        ("++", TokenKind.INCREMENT),
        ("+=", TokenKind.PLUS_ASSIGN),
        ("--", TokenKind.DECREMENT),
        ("->", TokenKind.ARROW),
        ("&&", TokenKind.AND),
        ("&=", TokenKind.AND_ASSIGN),
        ("||", TokenKind.OR),
        ("|=", TokenKind.OR_ASSIGN),
        ("==", TokenKind.EQ),
        ("!=", TokenKind.NE),
        ("^=", TokenKind.XOR_ASSIGN),
        ("%=", TokenKind.PERCENT_ASSIGN),
        ("::", TokenKind.DOUBLE_COLON),
    ])
    def test_operator(self, text, expected):
        assert kinds(text) == [expected]

    def test_greedy_plus(self):
        assert kinds("a+++b") == [
            TokenKind.IDENTIFIER, TokenKind.INCREMENT, TokenKind.PLUS, TokenKind.IDENTIFIER,
        ]

    def test_fixed_text_images_are_canonical(self):
        for token in tokenize("x >>>= y ; if ( ) { }"):
            if token.kind in FIXED_TEXT_KINDS:
                assert token.image == token.kind.value


# =============================================================================
# Numeric Literal Tests
# =============================================================================

class TestNumericLiterals:
    """Numeric literal classification and values."""

    @pytest.mark.parametrize("text,expected", [
        ("0", TokenKind.INT_LITERAL),
        ("42", TokenKind.INT_LITERAL),
        ("0x1F", TokenKind.HEX_LITERAL),
        ("017", TokenKind.OCTAL_LITERAL),
        ("0b101", TokenKind.BINARY_LITERAL),
        ("42L", TokenKind.LONG_LITERAL),
        ("0x1FL", TokenKind.LONG_LITERAL),
        ("3.14", TokenKind.DOUBLE_LITERAL),
        ("1e10", TokenKind.DOUBLE_LITERAL),
        ("2.5d", TokenKind.DOUBLE_LITERAL),
        (".5", TokenKind.DOUBLE_LITERAL),
        ("3.14f", TokenKind.FLOAT_LITERAL),
        ("1F", TokenKind.FLOAT_LITERAL),
    ])
    def test_classification(self, text, expected):
        tokens = tokenize(text)
        assert len(tokens) == 1
        assert tokens[0].kind is expected
        assert tokens[0].image == text

    @pytest.mark.parametrize("text,value", [
        ("42", 42),
        ("0x1F", 31),
        ("017", 15),
        ("0b101", 5),
        ("10L", 10),
        ("1.5", 1.5),
        ("2.5f", 2.5),
        ("1e2", 100.0),
    ])
    def test_values(self, text, value):
        assert tokenize(text)[0].value == value

    def test_range_is_not_a_fraction(self):
        assert kinds("1...") == [TokenKind.INT_LITERAL, TokenKind.ELLIPSIS]

    def test_member_access_after_integer(self):
        assert kinds("a.length") == [TokenKind.IDENTIFIER, TokenKind.DOT, TokenKind.IDENTIFIER]

    def test_hex_without_digits_is_error(self):
        tokens, reporter, scanner = scan_with_errors("0x;")
        assert scanner.error_has_occurred
        assert tokens[0].kind is TokenKind.HEX_LITERAL
        assert tokens[1].kind is TokenKind.SEMICOLON

    def test_malformed_exponent(self):
        tokens, reporter, scanner = scan_with_errors("1e+;")
        assert scanner.error_has_occurred
        assert "exponent" in reporter.messages()[0]
        assert tokens[0].value == 0.0

    @pytest.mark.parametrize("text,kind,value", [
        ("0", TokenKind.INT_LITERAL, 0),
        ("07", TokenKind.OCTAL_LITERAL, 7),
        ("0777L", TokenKind.LONG_LITERAL, 511),
        ("2147483648", TokenKind.INT_LITERAL, 2147483648),
        ("0xFFFFFFFF", TokenKind.HEX_LITERAL, 0xFFFFFFFF),
        ("9223372036854775808L", TokenKind.LONG_LITERAL, 1 << 63),
        ("09.5", TokenKind.DOUBLE_LITERAL, 9.5),
    ])
    def test_leading_zero_and_range_accepted(self, text, kind, value):
        tokens, reporter, scanner = scan_with_errors(text)
        assert not scanner.error_has_occurred
        assert [(t.kind, t.image, t.value) for t in tokens] == [(kind, text, value)]

    @pytest.mark.parametrize("text,kind,message", [
        ("08", TokenKind.INT_LITERAL, "Invalid octal literal: 08"),
        ("09", TokenKind.INT_LITERAL, "Invalid octal literal: 09"),
        ("0779", TokenKind.INT_LITERAL, "Invalid octal literal: 0779"),
        ("09L", TokenKind.LONG_LITERAL, "Invalid octal literal: 09L"),
        ("2147483649", TokenKind.INT_LITERAL, "Integer number too large: 2147483649"),
        ("0x100000000", TokenKind.HEX_LITERAL, "Integer number too large: 0x100000000"),
        ("9223372036854775809L", TokenKind.LONG_LITERAL, "Integer number too large: 9223372036854775809L"),
    ])
    def test_bad_integer_literal(self, text, kind, message):
        tokens, reporter, scanner = scan_with_errors(text + ";")
        assert scanner.error_has_occurred
        assert reporter.messages() == [f"<test>:1: {message}"]
        assert [t.kind for t in tokens] == [kind, TokenKind.SEMICOLON]
        assert tokens[0].image == text
        assert isinstance(tokens[0].value, int)


# =============================================================================
# Character and String Literal Tests
# =============================================================================

class TestTextLiterals:
    """Character and string literals."""

    def test_char_literal(self):
        token = tokenize("'a'")[0]
        assert token.kind is TokenKind.CHAR_LITERAL
        assert token.image == "'a'"
        assert token.value == "a"

    def test_escaped_char(self):
        assert tokenize(r"'\n'")[0].value == "\n"
        assert tokenize(r"'\''")[0].value == "'"

    def test_string_literal(self):
        token = tokenize('"hello world"')[0]
        assert token.kind is TokenKind.STRING_LITERAL
        assert token.value == "hello world"

    def test_string_escapes(self):
        assert tokenize(r'"a\tb\"c\\"')[0].value == 'a\tb"c\\'

    def test_empty_char_literal(self):
        tokens, reporter, scanner = scan_with_errors("'' x")
        assert scanner.error_has_occurred
        assert tokens[-1].kind is TokenKind.IDENTIFIER

    def test_bad_escape(self):
        _, reporter, scanner = scan_with_errors(r'"\q"')
        assert scanner.error_has_occurred
        assert reporter.count(LexicalError) == 1

    def test_unclosed_char_recovers(self):
        tokens, reporter, _ = scan_with_errors("'ab; x")
        assert reporter.count(LexicalError) == 1
        assert tokens[-1].image == "x"

    def test_unterminated_string_at_end_of_line(self):
        tokens, reporter, _ = scan_with_errors('"abc\nx')
        assert "end of line" in reporter.messages()[0]
        assert tokens[-1].image == "x"
        assert tokens[-1].line == 2

    def test_unterminated_string_at_end_of_file(self):
        _, reporter, _ = scan_with_errors('"abc')
        assert "end of file" in reporter.messages()[0]


# =============================================================================
# Comment and Error Recovery Tests
# =============================================================================

class TestComments:
    """Comment skipping."""

    def test_line_comment(self):
        assert kinds("a // ignored\nb") == [TokenKind.IDENTIFIER, TokenKind.IDENTIFIER]

    def test_block_comment_counts_lines(self):
        tokens = tokenize("/* one\ntwo\n */ x")
        assert tokens[0].line == 3

    def test_unterminated_block_comment(self):
        tokens, reporter, _ = scan_with_errors("x /* never closed")
        assert [t.image for t in tokens] == ["x"]
        assert reporter.messages() == ["<test>:1: Unterminated comment"]


class TestErrorRecovery:
    """Lexical errors are reported and scanning continues."""

    def test_unrecognized_character_skipped(self):
        tokens, reporter, scanner = scan_with_errors("a # b")
        assert [t.image for t in tokens] == ["a", "b"]
        assert scanner.error_has_occurred
        assert reporter.count(LexicalError) == 1

    def test_every_bad_character_reported(self):
        _, reporter, _ = scan_with_errors("# `")
        assert reporter.count(LexicalError) == 2

    def test_error_carries_line(self):
        _, reporter, _ = scan_with_errors("a\n\n#")
        assert reporter.errors[0].line == 3

    def test_clean_input_has_no_error(self):
        _, reporter, scanner = scan_with_errors("int x = 1;")
        assert not scanner.error_has_occurred
        assert not reporter.has_errors()

    def test_unreadable_file_is_lexical_error(self, tmp_path):
        reporter = ErrorReporter()
        scanner = Scanner.from_file(tmp_path / "Missing.java", reporter)
        assert scanner.next_token().kind is TokenKind.EOF
        assert scanner.error_has_occurred
        assert "Unable to read" in reporter.messages()[0]


# =============================================================================
# Round Trip Tests
# =============================================================================

class TestRoundTrip:
    """Re-scanning the joined images gives the same token stream."""

    SOURCE = """
    public class Point extends Object {
        private int x, y;
        double norm() { return Math.sqrt(x * x + y * y); }
        void shift(int d) { x >>>= d; y <<= 2; char c = '\\n'; }
        String s = "a\\tb" + 0x1FL + 017 + 2.5f;
    }
    """

    @pytest.mark.parametrize("kind", sorted(FIXED_TEXT_KINDS, key=lambda k: k.name))
    def test_fixed_text_kind_scans_alone(self, kind):
        tokens, reporter, _ = scan_with_errors(kind.value)
        assert [(t.kind, t.image) for t in tokens] == [(kind, kind.value)]
        assert not reporter.has_errors()

    def test_images_rescan_to_same_stream(self):
        tokens = tokenize(self.SOURCE)
        rescanned = tokenize(" ".join(t.image for t in tokens))
        assert [(t.kind, t.image) for t in rescanned] == [(t.kind, t.image) for t in tokens]

    def test_token_repr(self):
        assert repr(Token(TokenKind.IDENTIFIER, "x", 3)) == "Token(IDENTIFIER, 'x', 3)"

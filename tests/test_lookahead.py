# =============================================================================
# test_lookahead.py - Lookahead Scanner Tests
# =============================================================================
# Tests for the token buffer used by the parser: current and previous
# tokens, nested checkpoints, and muted diagnostics while speculating.
# =============================================================================

from jminus.errors import ErrorReporter, LexicalError
from jminus.lexer import Scanner, TokenKind
from jminus.lookahead import LookaheadScanner


def make_scanner(source: str, reporter: ErrorReporter = None) -> LookaheadScanner:
    return LookaheadScanner(Scanner(source, "<test>", reporter))


class TestTokenAdvance:
    """Current and previous token bookkeeping."""

    def test_first_token_ready(self):
        scanner = make_scanner("int x")
        assert scanner.token.kind is TokenKind.INT
        assert scanner.previous_token is None

    def test_next_shifts_tokens(self):
        scanner = make_scanner("int x")
        scanner.next()
        assert scanner.previous_token.kind is TokenKind.INT
        assert scanner.token.image == "x"

    def test_stays_at_eof(self):
        scanner = make_scanner("x")
        scanner.next()
        scanner.next()
        assert scanner.token.kind is TokenKind.EOF

    def test_filename(self):
        assert make_scanner("").filename == "<test>"


class TestCheckpoints:
    """record_position / return_to_position."""

    def test_restore_after_scanning_ahead(self):
        scanner = make_scanner("(int) x")
        scanner.record_position()
        scanner.next()
        scanner.next()
        scanner.next()
        assert scanner.token.image == "x"
        scanner.return_to_position()
        assert scanner.token.kind is TokenKind.LPAREN
        assert scanner.previous_token is None

    def test_restored_stream_is_identical(self):
        scanner = make_scanner("a\nb\nc")
        scanner.next()
        scanner.record_position()
        scanner.next()
        scanner.next()
        scanner.return_to_position()
        rest = []
        while scanner.token.kind is not TokenKind.EOF:
            rest.append((scanner.token.image, scanner.token.line))
            scanner.next()
        assert rest == [("b", 2), ("c", 3)]

    def test_nested_checkpoints(self):
        scanner = make_scanner("a b c d")
        scanner.record_position()
        scanner.next()
        scanner.record_position()
        scanner.next()
        scanner.next()
        scanner.return_to_position()
        assert scanner.token.image == "b"
        scanner.return_to_position()
        assert scanner.token.image == "a"

    def test_diagnostics_muted_while_speculating(self):
        reporter = ErrorReporter()
        scanner = make_scanner("a # b", reporter)
        scanner.record_position()
        scanner.next()
        assert scanner.token.image == "b"
        scanner.return_to_position()
        assert not reporter.has_errors()
        assert not scanner.error_has_occurred()

        scanner.next()
        assert reporter.count(LexicalError) == 1
        assert scanner.error_has_occurred()

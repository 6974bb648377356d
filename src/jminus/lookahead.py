"""
Lookahead Scanner
=================

Wraps a Scanner with the token-level state the parser needs:

- the current token (one-token lookahead) and the previous token, and
- checkpoint/restore of the whole scanning position, used by the
  parser's speculative predicates (cast vs. parenthesized expression,
  local declaration vs. expression statement, call head vs. name).

A checkpoint is an immutable Checkpoint value holding the scanner's
read position together with the current and previous tokens. Restoring
replaces the live state with the snapshot, so after a restore the
parser cannot tell that it ever scanned ahead. Diagnostics are muted
while a checkpoint is active; the skipped-over text is always rescanned
for real afterwards.

Example
-------
>>> scanner = LookaheadScanner(Scanner("(int) x", "<test>"))
>>> scanner.record_position()
>>> scanner.next()
>>> scanner.token.kind
<TokenKind.INT: 'int'>
>>> scanner.return_to_position()
>>> scanner.token.kind
<TokenKind.LPAREN: '('>
"""

from dataclasses import dataclass
from typing import List, Optional

from jminus.lexer import Scanner, ScannerState, Token


@dataclass(frozen=True)
class Checkpoint:
    """Saved lookahead state: scanner position plus pending tokens."""
    scanner_state: ScannerState
    token: Token
    previous_token: Optional[Token]


class LookaheadScanner:
    """
    Token source for the parser.

    On construction the first token is scanned, so `token` is always
    valid.

    Attributes:
        token: The current (not yet consumed) token
        previous_token: The most recently consumed token
    """

    def __init__(self, scanner: Scanner):
        self.scanner = scanner
        self.previous_token: Optional[Token] = None
        self.token: Token = scanner.next_token()
        self._checkpoints: List[Checkpoint] = []

    @property
    def filename(self) -> str:
        return self.scanner.filename

    def next(self) -> None:
        """Consume the current token and scan the following one."""
        self.previous_token = self.token
        self.token = self.scanner.next_token()

    def record_position(self) -> None:
        """Push a checkpoint of the current state."""
        self._checkpoints.append(
            Checkpoint(self.scanner.snapshot(), self.token, self.previous_token)
        )
        self.scanner.begin_speculation()

    def return_to_position(self) -> None:
        """Pop the latest checkpoint and make it the current state."""
        checkpoint = self._checkpoints.pop()
        self.scanner.restore(checkpoint.scanner_state)
        self.token = checkpoint.token
        self.previous_token = checkpoint.previous_token
        self.scanner.end_speculation()

    def error_has_occurred(self) -> bool:
        """True once the underlying scanner has reported a lexical error."""
        return self.scanner.error_has_occurred

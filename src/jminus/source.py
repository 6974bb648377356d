"""
Character Source
================

Sequential, line-tracked character supplier for the scanner.

All platform line endings (\\r\\n, \\r, \\n) are mapped to a single \\n
before any character is handed out, so the line counter only has to
count one character. Past the end of the input, next() keeps returning
the EOF_CHAR sentinel.

The read position can be captured with mark() and restored with
reset(); the snapshot is an immutable ReaderState value so that a
restore is indistinguishable from never having advanced.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from jminus.errors import SourceReadError

# Returned by next() and peek() at end of input
EOF_CHAR = ""


@dataclass(frozen=True)
class ReaderState:
    """Saved read position of a CharReader."""
    offset: int
    line: int


class CharReader:
    """
    Supplies the characters of one source unit.

    Attributes:
        filename: Name of the source (for diagnostics)
        line: Line of the next character to be returned (1-indexed)
    """

    def __init__(self, text: str, filename: str = "<input>"):
        self.filename = filename
        self._text = text.replace("\r\n", "\n").replace("\r", "\n")
        self._pos = 0
        self.line = 1

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        filename: Optional[str] = None,
        encoding: str = "utf-8",
    ) -> "CharReader":
        """
        Create a reader over the contents of a file.

        Raises:
            SourceReadError: If the file cannot be read or decoded
        """
        path = Path(path)
        try:
            text = path.read_text(encoding=encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise SourceReadError(filename or str(path), str(e)) from e
        return cls(text, filename or str(path))

    def at_end(self) -> bool:
        return self._pos >= len(self._text)

    def peek(self, offset: int = 0) -> str:
        """Look at the character offset positions ahead without consuming."""
        pos = self._pos + offset
        if pos >= len(self._text):
            return EOF_CHAR
        return self._text[pos]

    def next(self) -> str:
        """Consume and return the next character, or EOF_CHAR."""
        if self._pos >= len(self._text):
            return EOF_CHAR
        char = self._text[self._pos]
        self._pos += 1
        if char == "\n":
            self.line += 1
        return char

    def mark(self) -> ReaderState:
        return ReaderState(self._pos, self.line)

    def reset(self, state: ReaderState) -> None:
        self._pos = state.offset
        self.line = state.line

"""
j-- Compiler Error Hierarchy
============================

This module defines the error hierarchy and the diagnostic sink used by
every stage of the j-- front end.

The front end is error tolerant: the scanner, the parser and the
analyzer never raise to abort a compilation unit. Each problem found in
the source is recorded as a CompileError instance through an
ErrorReporter, and each stage keeps its own "error has occurred" flag
that the driver consults before running later stages.

Exception Hierarchy
-------------------
JMinusError (base)
├── CompileError - a diagnostic tied to a source line
│   ├── LexicalError - malformed literal, unterminated comment, bad character
│   ├── ParseError - token mismatch, invalid statement expression, ...
│   └── SemanticError - operand type mismatch, unknown name, ...
├── SourceReadError - the source file could not be read
├── CodeGenError - internal emitter misuse (label placed twice, ...)
└── CompilationFailed - raised on request once all diagnostics are in

Diagnostic Format
-----------------
Every diagnostic is a single line:

    filename:line: message

Example:
    Hello.java:5: ; sought where int found
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, TextIO, Type

logger = logging.getLogger(__name__)


# =============================================================================
# Base Exception Class
# =============================================================================

class JMinusError(Exception):
    """
    Base exception for all j-- compiler errors.

    Callers can catch every compiler error with a single except clause:

        try:
            compiler.compile_file("Hello.java").raise_if_errors()
        except JMinusError as e:
            print(e)
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    A position in a source file, at line granularity.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
    """
    filename: str
    line: int

    def __str__(self) -> str:
        """Format as 'filename:line' for diagnostics."""
        return f"{self.filename}:{self.line}"


# =============================================================================
# Compile Errors (diagnostics)
# =============================================================================

class CompileError(JMinusError):
    """
    A problem found in the source being compiled.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
    """

    kind = "error"

    def __init__(self, message: str, location: Optional[SourceLocation] = None):
        self.message = message
        self.location = location
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.location is not None:
            return f"{self.location}: {self.message}"
        return self.message

    @property
    def line(self) -> int:
        return self.location.line if self.location is not None else 0


class LexicalError(CompileError):
    """
    Error found while scanning characters into tokens.

    Examples:
        - Unterminated string, character literal or block comment
        - Malformed numeric literal (0x with no digits, 1e+ ...)
        - Unrecognized input character
    """
    kind = "lexical"


class ParseError(CompileError):
    """
    Error found while parsing tokens into an AST.

    Examples:
        - Missing token (; sought where } found)
        - Expression used as a statement without a side-effect
        - Repeated or conflicting modifiers
        - Duplicate switch case labels
    """
    kind = "syntax"


class SemanticError(CompileError):
    """
    Error found while analyzing the AST.

    Examples:
        - Operand type mismatch
        - Reference to an undeclared local variable
        - break outside a loop or switch
    """
    kind = "semantic"


# =============================================================================
# Other Errors
# =============================================================================

class SourceReadError(JMinusError):
    """The source file could not be read."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"{filename}: {reason}")


class CodeGenError(JMinusError):
    """
    The code generator misused the emitter.

    This indicates a bug in the compiler rather than in the program
    being compiled, so unlike CompileError it is raised.
    """
    pass


class CompilationFailed(JMinusError):
    """
    Aggregate error carrying a formatted diagnostic report.

    The message is already a complete report from ErrorReporter.
    """

    def __init__(self, report: str, errors: List[CompileError]):
        self.errors = errors
        super().__init__(report)


# =============================================================================
# Diagnostic Sink
# =============================================================================

class ErrorReporter:
    """
    Collects diagnostics reported by the scanner, parser and analyzer.

    Diagnostics are recorded in order. When a stream is given each
    diagnostic is also written to it as soon as it is reported, which is
    how the command line tool prints errors to stderr.

    Example:
        reporter = ErrorReporter()
        reporter.report("Hello.java", 3, "; sought where int found")
        print(reporter.report_text())

    Attributes:
        errors: All diagnostics recorded so far
        max_errors: Diagnostics beyond this count are counted but not stored
        suppressed: Number of diagnostics dropped after max_errors was hit
    """

    def __init__(self, max_errors: int = 100, stream: Optional[TextIO] = None):
        self.errors: List[CompileError] = []
        self.max_errors = max_errors
        self.stream = stream
        self.suppressed = 0

    def report(
        self,
        filename: str,
        line: int,
        message: str,
        kind: Type[CompileError] = ParseError,
    ) -> CompileError:
        """
        Record a diagnostic.

        Args:
            filename: Name of the source file
            line: Source line the diagnostic refers to
            message: Description of the problem
            kind: CompileError subclass for the error domain

        Returns:
            The recorded error
        """
        error = kind(message, SourceLocation(filename, line))
        logger.debug(f"{error.kind} error: {error}")

        if len(self.errors) >= self.max_errors:
            self.suppressed += 1
            return error

        self.errors.append(error)
        if self.stream is not None:
            self.stream.write(f"{error}\n")
        return error

    def has_errors(self) -> bool:
        """Return True if any diagnostic has been recorded."""
        return len(self.errors) > 0

    def count(self, kind: Type[CompileError] = CompileError) -> int:
        """Return the number of recorded diagnostics of the given kind."""
        return sum(1 for error in self.errors if isinstance(error, kind))

    def messages(self) -> List[str]:
        """Return the formatted diagnostic lines."""
        return [str(error) for error in self.errors]

    def report_text(self) -> str:
        """Format all diagnostics followed by a summary line."""
        lines = self.messages()
        total = len(self.errors) + self.suppressed
        error_word = "error" if total == 1 else "errors"
        lines.append(f"{total} {error_word}")
        return "\n".join(lines)

    def clear(self) -> None:
        """Forget all recorded diagnostics."""
        self.errors.clear()
        self.suppressed = 0

    def raise_if_errors(self) -> None:
        """Raise CompilationFailed if any diagnostic was recorded."""
        if self.has_errors():
            raise CompilationFailed(self.report_text(), list(self.errors))

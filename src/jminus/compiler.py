"""
j-- Compiler Driver
===================

This module provides the main compiler interface for j--. It
orchestrates the compilation of one source unit:

    Source → Scan → Parse → Analyze → Generate → Instructions

Usage
-----
Command line:
    $ jmc Hello.java --listing

Programmatic:
    >>> from jminus.compiler import compile_source
    >>> result = compile_source("class A { }", "A.java")
    >>> result.success
    True

Error Handling
--------------
Source errors never raise. Each stage reports diagnostics to a shared
ErrorReporter and sets its own error flag; the driver consults the
flags to decide whether to run the next stage:

- analysis is skipped after any lexical or syntax error
- code generation is skipped after any lexical, syntax or semantic error

Configuration
-------------
CompilerOptions can be built from the environment:

| Variable           | Option      | Example |
|--------------------|-------------|---------|
| JMINUS_TRACE       | trace       | 1       |
| JMINUS_MAX_ERRORS  | max_errors  | 20      |
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, TextIO, Union

from jminus.analyzer import Context
from jminus.ast import CompilationUnit
from jminus.codegen import CodeGenerator
from jminus.emitter import Emitter
from jminus.errors import CompileError, ErrorReporter
from jminus.lexer import Scanner
from jminus.lookahead import LookaheadScanner
from jminus.parser import Parser

logger = logging.getLogger(__name__)

TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class CompilerOptions:
    """
    Compiler configuration options.

    Attributes:
        analyze: Run semantic analysis after a clean parse
        generate_code: Run code generation after a clean analysis
        trace: Log every parser production at DEBUG level
        max_errors: Diagnostics kept before further ones are only counted
        encoding: Encoding of source files
    """
    analyze: bool = True
    generate_code: bool = True
    trace: bool = False
    max_errors: int = 100
    encoding: str = "utf-8"

    @classmethod
    def from_env(cls) -> "CompilerOptions":
        """
        Create CompilerOptions from environment variables.

        Environment variables (all optional):
            JMINUS_TRACE: Enable parser tracing (1/true/yes/on)
            JMINUS_MAX_ERRORS: Maximum stored diagnostics (integer)
        """
        options = cls()

        if trace := os.environ.get("JMINUS_TRACE"):
            options.trace = trace.strip().lower() in TRUE_VALUES

        if max_errors := os.environ.get("JMINUS_MAX_ERRORS"):
            try:
                options.max_errors = int(max_errors)
            except ValueError:
                logger.debug(f"Ignoring invalid JMINUS_MAX_ERRORS={max_errors!r}")

        return options


@dataclass
class CompilationResult:
    """
    Result of compiling one unit.

    Attributes:
        filename: Source filename
        ast: Tree returned by the parser (always present)
        analyzed_ast: Tree returned by analysis, if analysis ran
        emitter: Generated instructions, if code generation ran
        diagnostics: Formatted diagnostics in report order
        errors: The diagnostics as CompileError values
        lexical_errors: A lexical error occurred
        syntax_errors: A syntax error occurred
        semantic_errors: A semantic error occurred
        reporter: The ErrorReporter that collected the diagnostics
    """
    filename: str
    ast: Optional[CompilationUnit] = None
    analyzed_ast: Optional[CompilationUnit] = None
    emitter: Optional[Emitter] = None
    diagnostics: List[str] = field(default_factory=list)
    errors: List[CompileError] = field(default_factory=list)
    lexical_errors: bool = False
    syntax_errors: bool = False
    semantic_errors: bool = False
    reporter: Optional[ErrorReporter] = field(default=None, repr=False)

    @property
    def success(self) -> bool:
        """True when no stage reported an error."""
        return not (self.lexical_errors or self.syntax_errors or self.semantic_errors)

    def raise_if_errors(self) -> None:
        """Raise CompilationFailed carrying the diagnostics of a failed compile."""
        if not self.success:
            self.reporter.raise_if_errors()


class Compiler:
    """
    j-- compiler front end.

    Example:
        compiler = Compiler(CompilerOptions(trace=True))
        result = compiler.compile_file("Hello.java")
        print(result.emitter.listing())

    Attributes:
        options: Compiler configuration options
        stream: Where diagnostics are echoed as they are reported
    """

    def __init__(self, options: Optional[CompilerOptions] = None, stream: Optional[TextIO] = None):
        self.options = options or CompilerOptions()
        self.stream = stream

    def _reporter(self) -> ErrorReporter:
        return ErrorReporter(self.options.max_errors, self.stream)

    def compile_source(self, source: str, filename: str = "<input>") -> CompilationResult:
        """
        Compile j-- source text.

        Args:
            source: j-- source code
            filename: Source filename for diagnostics

        Returns:
            CompilationResult with the trees, instructions and diagnostics
        """
        reporter = self._reporter()
        return self._compile(Scanner(source, filename, reporter), reporter)

    def compile_file(self, path: Union[str, Path]) -> CompilationResult:
        """
        Compile a j-- source file.

        A file that cannot be read is reported as a lexical error.
        """
        reporter = self._reporter()
        scanner = Scanner.from_file(path, reporter, encoding=self.options.encoding)
        return self._compile(scanner, reporter)

    def _compile(self, scanner: Scanner, reporter: ErrorReporter) -> CompilationResult:
        filename = scanner.filename
        logger.debug(f"Compiling {filename}")

        lookahead = LookaheadScanner(scanner)
        parser = Parser(lookahead, reporter, trace=self.options.trace)
        unit = parser.parse_compilation_unit()

        result = CompilationResult(filename=filename, ast=unit, reporter=reporter)
        result.lexical_errors = lookahead.error_has_occurred()
        result.syntax_errors = parser.error_has_occurred()

        if self.options.analyze and not (result.lexical_errors or result.syntax_errors):
            context = Context(reporter, filename)
            result.analyzed_ast = context.analyze(unit)
            result.semantic_errors = context.error_has_occurred()

            if self.options.generate_code and not result.semantic_errors:
                emitter = Emitter()
                CodeGenerator(emitter).generate(result.analyzed_ast)
                result.emitter = emitter
        else:
            logger.debug(f"Skipping analysis of {filename}")

        result.errors = list(reporter.errors)
        result.diagnostics = reporter.messages()
        logger.debug(f"Compiled {filename}: {len(result.errors)} diagnostics")
        return result


def compile_source(
    source: str,
    filename: str = "<input>",
    options: Optional[CompilerOptions] = None,
) -> CompilationResult:
    """
    Compile j-- source text with default (or given) options.

    Example:
        >>> result = compile_source("class A { int f() { return 1; } }")
        >>> print(result.emitter.listing())
    """
    return Compiler(options).compile_source(source, filename)


def compile_file(
    path: Union[str, Path],
    options: Optional[CompilerOptions] = None,
) -> CompilationResult:
    """Compile a j-- source file with default (or given) options."""
    return Compiler(options).compile_file(path)

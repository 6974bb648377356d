"""
jminus - Compiler Front End for j--
===================================

This package compiles j--, a teaching subset of Java, into a listing of
JVM-style stack instructions.

Main Components
---------------
- **source / lexer**: character source and scanner producing tokens
- **lookahead**: token buffer with checkpoints for speculative parsing
- **parser**: recursive descent parser with panic-mode error recovery
- **ast**: node family with the analyze, codegen and dump operations
- **analyzer**: name resolution, type checking and tree rewriting
- **emitter / codegen**: stack instruction model and code generation
- **compiler**: driver tying the stages together

Quick Start
-----------
Compile source text:
    >>> from jminus import compile_source
    >>> result = compile_source("class A { int one() { return 1; } }")
    >>> print(result.emitter.listing())

Dump the parse tree:
    >>> from jminus import ASTPrinter, parse_source
    >>> unit = parse_source("class A { }").parse_compilation_unit()
    >>> print(ASTPrinter().print(unit))

Or use the command-line tool:
    $ jmc Hello.java --listing
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from jminus.errors import (
    JMinusError,
    CompileError,
    LexicalError,
    ParseError,
    SemanticError,
    CodeGenError,
    SourceReadError,
    CompilationFailed,
    SourceLocation,
    ErrorReporter,
)
from jminus.source import CharReader
from jminus.lexer import Scanner, Token, TokenKind
from jminus.lookahead import LookaheadScanner
from jminus.parser import Parser, parse_source
from jminus.ast import ASTPrinter, PrettyPrinter
from jminus.analyzer import Context
from jminus.emitter import Emitter, Opcode
from jminus.codegen import CodeGenerator
from jminus.compiler import (
    Compiler,
    CompilerOptions,
    CompilationResult,
    compile_source,
    compile_file,
)

__all__ = [
    # Version info
    "__version__",
    # Exception hierarchy
    "JMinusError",
    "CompileError",
    "LexicalError",
    "ParseError",
    "SemanticError",
    "CodeGenError",
    "SourceReadError",
    "CompilationFailed",
    "SourceLocation",
    "ErrorReporter",
    # Front end stages
    "CharReader",
    "Scanner",
    "Token",
    "TokenKind",
    "LookaheadScanner",
    "Parser",
    "parse_source",
    "ASTPrinter",
    "PrettyPrinter",
    "Context",
    "Emitter",
    "Opcode",
    "CodeGenerator",
    # Driver
    "Compiler",
    "CompilerOptions",
    "CompilationResult",
    "compile_source",
    "compile_file",
]

"""
jmc - j-- Compiler Command-Line Interface
=========================================

This module implements the command-line interface for the j-- compiler
front end. It scans, parses, analyzes and generates code for one source
file and prints whichever intermediate form is asked for.

Usage Examples
--------------
Check a file:
    $ jmc Hello.java

Show the token stream:
    $ jmc --tokens Hello.java

Dump the tree before and after analysis:
    $ jmc --ast --analyzed-ast Hello.java

Show the generated instructions:
    $ jmc --listing Hello.java

Verbose mode (DEBUG logging):
    $ jmc -v Hello.java

Diagnostics go to stderr as "file:line: message". The exit status is 1
when any error was reported.
"""

import logging
import sys
from pathlib import Path

import click

from jminus import __version__
from jminus.ast import ASTPrinter
from jminus.compiler import Compiler, CompilerOptions
from jminus.errors import ErrorReporter, JMinusError
from jminus.lexer import Scanner


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--tokens",
    is_flag=True,
    help="Print the token stream and exit",
)
@click.option(
    "--ast",
    is_flag=True,
    help="Print the tree produced by the parser",
)
@click.option(
    "--analyzed-ast",
    is_flag=True,
    help="Print the tree produced by analysis",
)
@click.option(
    "--listing",
    is_flag=True,
    help="Print the generated instructions",
)
@click.option(
    "--no-analyze",
    is_flag=True,
    help="Stop after parsing",
)
@click.option(
    "--trace",
    is_flag=True,
    help="Log every parser production (implies DEBUG logging)",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="jmc")
def main(
    input_file: Path,
    tokens: bool,
    ast: bool,
    analyzed_ast: bool,
    listing: bool,
    no_analyze: bool,
    trace: bool,
    verbose: bool,
) -> None:
    """
    Compile a j-- source file.

    INPUT_FILE is the j-- source file (.java) to compile.

    \b
    Examples:
        jmc Hello.java                # Check for errors
        jmc --tokens Hello.java       # Token stream
        jmc --ast Hello.java          # Parse tree
        jmc --listing Hello.java      # Generated instructions
    """
    if verbose or trace:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    options = CompilerOptions.from_env()
    options.analyze = not no_analyze
    options.trace = options.trace or trace

    stderr = click.get_text_stream("stderr")

    try:
        if tokens:
            reporter = ErrorReporter(options.max_errors, stderr)
            scanner = Scanner.from_file(input_file, reporter, encoding=options.encoding)
            for token in scanner.tokenize():
                click.echo(f"{token.line}\t{token.kind.name}\t{token.image}")
            if scanner.error_has_occurred:
                sys.exit(1)
            return

        result = Compiler(options, stream=stderr).compile_file(input_file)

        if ast and result.ast is not None:
            click.echo(ASTPrinter().print(result.ast), nl=False)

        if analyzed_ast and result.analyzed_ast is not None:
            click.echo(ASTPrinter().print(result.analyzed_ast), nl=False)

        if listing and result.emitter is not None:
            click.echo(result.emitter.listing())

        if not result.success:
            total = len(result.errors) + result.reporter.suppressed
            click.echo(f"{total} {'error' if total == 1 else 'errors'}", err=True)
            sys.exit(1)

        if verbose:
            click.echo(f"Compiled {input_file}")

    except JMinusError as e:
        click.echo(str(e), err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Internal error: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()

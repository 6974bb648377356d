"""
j-- Recursive Descent Parser
============================

This module implements the recursive descent parser for j--. It pulls
tokens from a LookaheadScanner and builds the AST defined in
jminus.ast, one method per grammar production.

Grammar (Simplified EBNF)
-------------------------
compilation_unit ::= ['package' qualified_id ';']
                     {'import' qualified_id ['.' '*'] ';'}
                     {modifiers class_decl} EOF
class_decl      ::= 'class' IDENTIFIER ['extends' qualified_id]
                    ['implements' qualified_id {',' qualified_id}] class_body
class_body      ::= '{' {modifiers member_decl | ';'} '}'
member_decl     ::= IDENTIFIER formal_params [throws] block          (constructor)
                  | ('void' | type) IDENTIFIER formal_params
                    [throws] (block | ';')                           (method)
                  | type var_declarators ';'                         (field)
                  | block                                            (initializer)
formal_param    ::= ['final'] type ['...'] IDENTIFIER

block           ::= '{' {block_statement} '}'
block_statement ::= local_var_decl | statement
statement       ::= block | if_stmt | while_stmt | do_stmt | for_stmt
                  | 'return' [expr] ';' | 'break' ';' | 'continue' ';' | ';'
                  | 'throw' primary ';' | try_stmt | switch_stmt
                  | statement_expr ';'
do_stmt         ::= 'do' statement ('while' | 'until') par_expr ';'
for_stmt        ::= 'for' '(' [for_init] ';' [expr] ';' [for_update] ')' statement
                  | 'for' '(' ['final'] type IDENTIFIER ':' expr ')' statement
try_stmt        ::= 'try' block {'catch' '(' formal_param ')' block} ['finally' block]
switch_stmt     ::= 'switch' par_expr '{' {switch_label {switch_label}
                    {block_statement}} '}'
switch_label    ::= 'case' expr ':' | 'default' ':'

Expression Precedence (lowest to highest)
-----------------------------------------
1.  assignment     = += -= *= /= %= <<= >>= >>>= &= |= ^=   (right)
2.  ternary        ?:                                     (right)
3.  logical_or     ||
4.  logical_and    &&
5.  bitwise_or     |
6.  bitwise_xor    ^
7.  bitwise_and    &
8.  equality       == !=
9.  relational     < > <= >= instanceof
10. shift          << >> >>>
11. additive       + -
12. multiplicative * / %
13. unary          + - ++ --
14. simple unary   ! ~ (cast)
15. postfix        primary {selector} {++ | --}
16. primary        literal, this, super, (expr), new, qualified name [arguments]

Ambiguities
-----------
Three constructs cannot be told apart with one token of lookahead.
Each is decided by a predicate that records the scanner position,
scans ahead and returns to the recorded position:

- IDENTIFIER '(' starts a constructor rather than a field or method type
- '(' type ')' operand is a cast rather than a parenthesized expression
- type IDENTIFIER starts a local variable declaration

Error Recovery
--------------
Panic mode: the first mismatch in _must_be() reports one error and
leaves the parser unrecovered. While unrecovered, the next _must_be()
skips tokens up to the one it seeks (or EOF) instead of reporting
again, so one missing token yields one diagnostic and every loop makes
progress towards EOF.

Example Usage
-------------
>>> from jminus.parser import parse_source
>>> parser = parse_source("class A { int x; }", "A.java")
>>> unit = parser.parse_compilation_unit()
>>> unit.type_declarations[0].name
'A'
"""

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Union

from jminus import types
from jminus.ast import (
    ArrayExpression,
    ArrayInitializer,
    AssignmentExpression,
    AssignmentOperator,
    BinaryExpression,
    BinaryOperator,
    Block,
    BreakStatement,
    CastExpression,
    CatchClause,
    ClassDeclaration,
    CompilationUnit,
    ConstructorDeclaration,
    ContinueStatement,
    Declaration,
    DoUntilStatement,
    DoWhileStatement,
    EmptyStatement,
    Expression,
    FieldDeclaration,
    FieldSelection,
    ForEachStatement,
    ForStatement,
    FormalParameter,
    IfStatement,
    ImportDeclaration,
    InitializerBlock,
    InstanceOfExpression,
    LiteralExpression,
    MessageExpression,
    MethodDeclaration,
    NewArray,
    NewObject,
    ReturnStatement,
    Statement,
    StatementExpression,
    SuperConstruction,
    SuperExpression,
    SwitchStatement,
    TernaryExpression,
    ThisConstruction,
    ThisExpression,
    ThrowStatement,
    TryStatement,
    UnaryExpression,
    UnaryOperator,
    VariableDeclaration,
    VariableDeclarator,
    VariableExpression,
    WhileStatement,
    WildExpression,
)
from jminus.errors import ErrorReporter, ParseError
from jminus.lexer import LITERAL_KINDS, Scanner, TokenKind
from jminus.lookahead import LookaheadScanner
from jminus.types import Type

logger = logging.getLogger(__name__)

K = TokenKind

# Keywords naming primitive types
BASIC_TYPES = {
    K.BOOLEAN: types.BOOLEAN,
    K.BYTE: types.BYTE,
    K.CHAR: types.CHAR,
    K.SHORT: types.SHORT,
    K.INT: types.INT,
    K.LONG: types.LONG,
    K.FLOAT: types.FLOAT,
    K.DOUBLE: types.DOUBLE,
}

MODIFIERS = (
    K.PUBLIC,
    K.PROTECTED,
    K.PRIVATE,
    K.STATIC,
    K.ABSTRACT,
    K.FINAL,
    K.NATIVE,
    K.SYNCHRONIZED,
    K.TRANSIENT,
    K.VOLATILE,
    K.STRICTFP,
)

ACCESS_MODIFIERS = frozenset({"public", "protected", "private"})

# Tokens that may follow ')' in a cast to a reference type. A leading
# + - ++ or -- is excluded so that (x) - y stays a subtraction.
CAST_OPERAND_START = LITERAL_KINDS | {
    K.IDENTIFIER,
    K.LPAREN,
    K.NOT,
    K.TILDE,
    K.THIS,
    K.SUPER,
    K.NEW,
}

# Expression node types allowed as a standalone statement
STATEMENT_EXPRESSION_TYPES = (
    AssignmentExpression,
    MessageExpression,
    ThisConstruction,
    SuperConstruction,
    NewObject,
    NewArray,
)


class Parser:
    """
    Recursive descent parser for j--.

    The parser never raises on bad input. Syntax errors are reported to
    the ErrorReporter and recorded in is_in_error; every parse method
    returns a (possibly partial) tree so the whole unit is checked in
    one pass.

    Attributes:
        scanner: Token source with lookahead and checkpoints
        reporter: Diagnostic sink shared with the scanner
        is_in_error: True once any syntax error has been reported
        is_recovered: False between a reported error and the next
            successful _must_be()
        trace: Log each production entered (DEBUG, jminus.parser)
    """

    def __init__(
        self,
        scanner: Union[LookaheadScanner, Scanner],
        reporter: Optional[ErrorReporter] = None,
        trace: bool = False,
    ):
        if isinstance(scanner, Scanner):
            scanner = LookaheadScanner(scanner)
        self.scanner = scanner
        self.reporter = reporter if reporter is not None else scanner.scanner.reporter
        self.is_in_error = False
        self.is_recovered = True
        self.trace = trace

    # =========================================================================
    # Public Entry Points
    # =========================================================================

    def parse_compilation_unit(self) -> CompilationUnit:
        """
        Parse a whole source file.

        compilation_unit ::= [package] {import} {type_declaration} EOF
        """
        self._trace("compilation unit")
        line = self.scanner.token.line

        package_name = None
        if self._have(K.PACKAGE):
            package_name = self._parse_qualified_identifier()
            self._must_be(K.SEMICOLON)

        imports = []
        while self._see(K.IMPORT):
            imports.append(self._parse_import())

        type_declarations = []
        while not self._see(K.EOF):
            if self._have(K.SEMICOLON):
                continue
            type_declarations.append(self._parse_type_declaration())
        self._must_be(K.EOF)

        logger.debug(
            f"Parsed {self.scanner.filename}: {len(type_declarations)} "
            f"type declaration(s), errors={self.is_in_error}"
        )
        return CompilationUnit(
            line=line,
            filename=self.scanner.filename,
            package_name=package_name,
            imports=imports,
            type_declarations=type_declarations,
        )

    def parse_statement(self) -> Statement:
        """Parse one block statement (declaration or statement)."""
        return self._parse_block_statement()

    def parse_expression(self) -> Expression:
        """Parse one expression."""
        return self._parse_expression()

    def error_has_occurred(self) -> bool:
        """True once any syntax error has been reported."""
        return self.is_in_error

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _see(self, kind: TokenKind) -> bool:
        """Check whether the current token is of the given kind."""
        return self.scanner.token.kind is kind

    def _have(self, kind: TokenKind) -> bool:
        """Consume the current token if it is of the given kind."""
        if self._see(kind):
            self.scanner.next()
            return True
        return False

    def _must_be(self, sought: TokenKind) -> bool:
        """
        Consume a token of the sought kind, recovering if it is absent.

        A mismatch while recovered reports one error. A mismatch while
        already unrecovered skips to the sought token (consuming it) or
        to EOF without reporting.

        Returns:
            True if the sought token was consumed
        """
        if self._see(sought):
            self.scanner.next()
            self.is_recovered = True
            return True

        if self.is_recovered:
            self._report_parser_error(
                f"{sought.image} sought where {self.scanner.token.image} found"
            )
            return False

        while not self._see(sought) and not self._see(K.EOF):
            self.scanner.next()
        if self._have(sought):
            self.is_recovered = True
            return True
        return False

    def _report_parser_error(self, message: str) -> None:
        """Report a syntax error at the current token."""
        self.is_in_error = True
        self.is_recovered = False
        self.reporter.report(
            self.scanner.filename,
            self.scanner.token.line,
            message,
            ParseError,
        )

    def _identifier(self) -> str:
        """Consume an identifier and return its text ("" after an error)."""
        if self._must_be(K.IDENTIFIER):
            return self.scanner.previous_token.image
        return ""

    def _trace(self, production: str) -> None:
        if self.trace:
            token = self.scanner.token
            logger.debug(
                f"[{token.line}: {production}, looking at a: "
                f"{token.kind.name} = {token.image}]"
            )

    # =========================================================================
    # Lookahead Predicates
    # =========================================================================

    def _see_basic_type(self) -> bool:
        return self.scanner.token.kind in BASIC_TYPES

    def _see_reference_type(self) -> bool:
        """An identifier, or a basic type followed by []."""
        if self._see(K.IDENTIFIER):
            return True
        if not self._see_basic_type():
            return False
        self.scanner.record_position()
        self.scanner.next()
        result = self._have(K.LBRACKET) and self._see(K.RBRACKET)
        self.scanner.return_to_position()
        return result

    def _see_dims(self) -> bool:
        """Check for [] (as opposed to [expression])."""
        self.scanner.record_position()
        result = self._have(K.LBRACKET) and self._see(K.RBRACKET)
        self.scanner.return_to_position()
        return result

    def _see_ident_lparen(self) -> bool:
        """Check for IDENTIFIER followed by '('."""
        self.scanner.record_position()
        result = self._have(K.IDENTIFIER) and self._see(K.LPAREN)
        self.scanner.return_to_position()
        return result

    def _skip_type(self) -> bool:
        """Scan over a type while speculating; False if none is there."""
        if self._have(K.IDENTIFIER):
            while self._have(K.DOT):
                if not self._have(K.IDENTIFIER):
                    return False
        elif self._see_basic_type():
            self.scanner.next()
        else:
            return False
        while self._have(K.LBRACKET):
            if not self._have(K.RBRACKET):
                return False
        return True

    def _see_local_variable_declaration(self) -> bool:
        """Check for [final] type IDENTIFIER."""
        self.scanner.record_position()
        self._have(K.FINAL)
        result = self._skip_type() and self._see(K.IDENTIFIER)
        self.scanner.return_to_position()
        return result

    def _see_for_each_header(self) -> bool:
        """Check for [final] type IDENTIFIER ':' just inside for (."""
        self.scanner.record_position()
        self._have(K.FINAL)
        result = self._skip_type() and self._have(K.IDENTIFIER) and self._see(K.COLON)
        self.scanner.return_to_position()
        return result

    def _see_cast(self) -> bool:
        """
        Check for a cast: '(' type ')' followed by an operand.

        A parenthesized basic type is always a cast. A parenthesized
        reference type is a cast when it has dimensions, or when the
        token after ')' can start a simple unary expression.
        """
        self.scanner.record_position()
        try:
            if not self._have(K.LPAREN):
                return False
            if self._see_basic_type():
                self.scanner.next()
                if self._have(K.RPAREN):
                    return True
                if not self._see_dims():
                    return False
            elif not self._see(K.IDENTIFIER):
                return False
            else:
                if not self._skip_type():
                    return False
                if self.scanner.previous_token.kind is K.RBRACKET:
                    return self._see(K.RPAREN)
                if not self._have(K.RPAREN):
                    return False
                return self.scanner.token.kind in CAST_OPERAND_START
            while self._have(K.LBRACKET):
                if not self._have(K.RBRACKET):
                    return False
            return self._see(K.RPAREN)
        finally:
            self.scanner.return_to_position()

    # =========================================================================
    # Declarations
    # =========================================================================

    def _parse_qualified_identifier(self) -> str:
        """qualified_id ::= IDENTIFIER {'.' IDENTIFIER}"""
        parts = [self._identifier()]
        while self._have(K.DOT):
            parts.append(self._identifier())
        return ".".join(parts)

    def _parse_import(self) -> ImportDeclaration:
        """import_decl ::= 'import' qualified_id ['.' '*'] ';'"""
        line = self.scanner.token.line
        self._must_be(K.IMPORT)
        parts = [self._identifier()]
        is_wildcard = False
        while self._have(K.DOT):
            if self._have(K.STAR):
                is_wildcard = True
                break
            parts.append(self._identifier())
        self._must_be(K.SEMICOLON)
        return ImportDeclaration(line=line, name=".".join(parts), is_wildcard=is_wildcard)

    def _parse_modifiers(self) -> List[str]:
        """
        Parse a (possibly empty) modifier list.

        Repeated modifiers and more than one access modifier are
        reported, but every modifier is kept.
        """
        modifiers: List[str] = []
        while self.scanner.token.kind in MODIFIERS:
            modifier = self.scanner.token.image
            self.scanner.next()
            if modifier in modifiers:
                self._report_parser_error(f"Repeated modifier: {modifier}")
            elif modifier in ACCESS_MODIFIERS and ACCESS_MODIFIERS.intersection(modifiers):
                self._report_parser_error("Access conflict in modifiers")
            modifiers.append(modifier)
        return modifiers

    def _parse_type_declaration(self) -> ClassDeclaration:
        self._trace("type declaration")
        return self._parse_class_declaration(self._parse_modifiers())

    def _parse_class_declaration(self, modifiers: List[str]) -> ClassDeclaration:
        """class_decl ::= 'class' IDENTIFIER [extends] [implements] class_body"""
        line = self.scanner.token.line
        self._must_be(K.CLASS)
        name = self._identifier()

        superclass = types.OBJECT
        if self._have(K.EXTENDS):
            superclass = Type.reference(self._parse_qualified_identifier())

        interfaces = []
        if self._have(K.IMPLEMENTS):
            interfaces.append(Type.reference(self._parse_qualified_identifier()))
            while self._have(K.COMMA):
                interfaces.append(Type.reference(self._parse_qualified_identifier()))

        return ClassDeclaration(
            line=line,
            modifiers=modifiers,
            name=name,
            superclass=superclass,
            interfaces=interfaces,
            members=self._parse_class_body(),
        )

    def _parse_class_body(self) -> List[Declaration]:
        members: List[Declaration] = []
        self._must_be(K.LBRACE)
        while not self._see(K.RBRACE) and not self._see(K.EOF):
            if self._have(K.SEMICOLON):
                continue
            members.append(self._parse_member_declaration(self._parse_modifiers()))
        self._must_be(K.RBRACE)
        return members

    def _parse_member_declaration(self, modifiers: List[str]) -> Declaration:
        """Parse a constructor, method, field or initializer block."""
        self._trace("member declaration")
        line = self.scanner.token.line

        if self._see(K.LBRACE):
            return InitializerBlock(
                line=line,
                is_static="static" in modifiers,
                body=self._parse_block(),
            )

        if self._see_ident_lparen():
            name = self._identifier()
            parameters = self._parse_formal_parameters()
            exceptions = self._parse_throws()
            return ConstructorDeclaration(
                line=line,
                modifiers=modifiers,
                name=name,
                parameters=parameters,
                exceptions=exceptions,
                body=self._parse_block(),
            )

        if self._have(K.VOID):
            return_type = types.VOID
        else:
            return_type = self._parse_type()
            if not self._see_ident_lparen():
                declarators = self._parse_variable_declarators(return_type)
                self._must_be(K.SEMICOLON)
                return FieldDeclaration(line=line, modifiers=modifiers, declarators=declarators)

        name = self._identifier()
        parameters = self._parse_formal_parameters()
        exceptions = self._parse_throws()
        body = None if self._have(K.SEMICOLON) else self._parse_block()
        return MethodDeclaration(
            line=line,
            modifiers=modifiers,
            name=name,
            return_type=return_type,
            parameters=parameters,
            exceptions=exceptions,
            body=body,
        )

    def _parse_throws(self) -> List[Type]:
        """throws ::= 'throws' qualified_id {',' qualified_id}"""
        exceptions: List[Type] = []
        if self._have(K.THROWS):
            exceptions.append(Type.reference(self._parse_qualified_identifier()))
            while self._have(K.COMMA):
                exceptions.append(Type.reference(self._parse_qualified_identifier()))
        return exceptions

    def _parse_formal_parameters(self) -> List[FormalParameter]:
        """formal_params ::= '(' [formal_param {',' formal_param}] ')'"""
        parameters: List[FormalParameter] = []
        self._must_be(K.LPAREN)
        if self._have(K.RPAREN):
            return parameters
        while True:
            if parameters and parameters[-1].is_vararg:
                self._report_parser_error("Variable arity parameter must be the last parameter")
            parameters.append(self._parse_formal_parameter())
            if not self._have(K.COMMA):
                break
        self._must_be(K.RPAREN)
        return parameters

    def _parse_formal_parameter(self) -> FormalParameter:
        """
        formal_param ::= ['final'] type ['...'] IDENTIFIER

        A variable arity parameter T... x is given the array type T[].
        """
        line = self.scanner.token.line
        is_final = self._have(K.FINAL)
        param_type = self._parse_type()
        is_vararg = self._have(K.ELLIPSIS)
        if is_vararg:
            param_type = Type.array_of(param_type)
        name = self._identifier()
        return FormalParameter(
            line=line,
            name=name,
            type=param_type,
            is_vararg=is_vararg,
            is_final=is_final,
        )

    # =========================================================================
    # Types
    # =========================================================================

    def _parse_type(self) -> Type:
        """type ::= reference_type | basic_type"""
        if self._see_reference_type():
            return self._parse_reference_type()
        return self._parse_basic_type()

    def _parse_basic_type(self) -> Type:
        basic = BASIC_TYPES.get(self.scanner.token.kind)
        if basic is None:
            self._report_parser_error(f"Type sought where {self.scanner.token.image} found")
            return types.ANY
        self.scanner.next()
        return basic

    def _parse_reference_type(self) -> Type:
        """reference_type ::= basic_type '[' ']' {'[' ']'} | qualified_id {'[' ']'}"""
        if not self._see(K.IDENTIFIER):
            result = self._parse_basic_type()
            self._must_be(K.LBRACKET)
            self._must_be(K.RBRACKET)
            result = Type.array_of(result)
        else:
            result = Type.reference(self._parse_qualified_identifier())
        while self._see_dims():
            self._must_be(K.LBRACKET)
            self._must_be(K.RBRACKET)
            result = Type.array_of(result)
        return result

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_block(self) -> Block:
        """block ::= '{' {block_statement} '}'"""
        line = self.scanner.token.line
        statements: List[Statement] = []
        self._must_be(K.LBRACE)
        while not self._see(K.RBRACE) and not self._see(K.EOF):
            statements.append(self._parse_block_statement())
        self._must_be(K.RBRACE)
        return Block(line=line, statements=statements)

    def _parse_block_statement(self) -> Statement:
        if self._see_local_variable_declaration():
            return self._parse_local_variable_declaration()
        return self._parse_statement()

    def _parse_local_variable_declaration(self, terminated: bool = True) -> VariableDeclaration:
        """local_var_decl ::= ['final'] type var_declarators [';']"""
        line = self.scanner.token.line
        modifiers = ["final"] if self._have(K.FINAL) else []
        declarators = self._parse_variable_declarators(self._parse_type())
        if terminated:
            self._must_be(K.SEMICOLON)
        return VariableDeclaration(line=line, modifiers=modifiers, declarators=declarators)

    def _parse_variable_declarators(self, var_type: Type) -> List[VariableDeclarator]:
        declarators = [self._parse_variable_declarator(var_type)]
        while self._have(K.COMMA):
            declarators.append(self._parse_variable_declarator(var_type))
        return declarators

    def _parse_variable_declarator(self, var_type: Type) -> VariableDeclarator:
        """var_declarator ::= IDENTIFIER ['=' var_initializer]"""
        line = self.scanner.token.line
        name = self._identifier()
        initializer = None
        if self._have(K.ASSIGN):
            initializer = self._parse_variable_initializer(var_type)
        return VariableDeclarator(line=line, name=name, type=var_type, initializer=initializer)

    def _parse_variable_initializer(self, var_type: Type) -> Expression:
        if self._see(K.LBRACE):
            return self._parse_array_initializer(var_type)
        return self._parse_expression()

    def _parse_array_initializer(self, array_type: Type) -> ArrayInitializer:
        """array_initializer ::= '{' [var_initializer {',' var_initializer} [',']] '}'"""
        line = self.scanner.token.line
        component = array_type.component_type or types.ANY
        initials: List[Expression] = []
        self._must_be(K.LBRACE)
        if self._have(K.RBRACE):
            return ArrayInitializer(line=line, type=array_type, initials=initials)
        initials.append(self._parse_variable_initializer(component))
        while self._have(K.COMMA):
            if self._see(K.RBRACE):
                break
            initials.append(self._parse_variable_initializer(component))
        self._must_be(K.RBRACE)
        return ArrayInitializer(line=line, type=array_type, initials=initials)

    def _parse_statement(self) -> Statement:
        """Parse a statement, dispatching on its first token."""
        self._trace("statement")
        line = self.scanner.token.line

        if self._see(K.LBRACE):
            return self._parse_block()
        if self._have(K.IF):
            condition = self._parse_par_expression()
            then_part = self._parse_statement()
            else_part = self._parse_statement() if self._have(K.ELSE) else None
            return IfStatement(line=line, condition=condition, then_part=then_part, else_part=else_part)
        if self._have(K.WHILE):
            condition = self._parse_par_expression()
            return WhileStatement(line=line, condition=condition, body=self._parse_statement())
        if self._have(K.DO):
            return self._parse_do_statement(line)
        if self._have(K.FOR):
            return self._parse_for_statement(line)
        if self._have(K.RETURN):
            if self._have(K.SEMICOLON):
                return ReturnStatement(line=line)
            expression = self._parse_expression()
            self._must_be(K.SEMICOLON)
            return ReturnStatement(line=line, expression=expression)
        if self._have(K.BREAK):
            self._must_be(K.SEMICOLON)
            return BreakStatement(line=line)
        if self._have(K.CONTINUE):
            self._must_be(K.SEMICOLON)
            return ContinueStatement(line=line)
        if self._have(K.SEMICOLON):
            return EmptyStatement(line=line)
        if self._have(K.THROW):
            is_new = self._see(K.NEW)
            expression = self._parse_primary()
            self._must_be(K.SEMICOLON)
            return ThrowStatement(line=line, expression=expression, is_new=is_new)
        if self._have(K.TRY):
            return self._parse_try_statement(line)
        if self._have(K.SWITCH):
            return self._parse_switch_statement(line)

        statement = self._parse_statement_expression()
        self._must_be(K.SEMICOLON)
        return statement

    def _parse_par_expression(self) -> Expression:
        """par_expr ::= '(' expr ')'"""
        self._must_be(K.LPAREN)
        expression = self._parse_expression()
        self._must_be(K.RPAREN)
        return expression

    def _parse_do_statement(self, line: int) -> Statement:
        body = self._parse_statement()
        if self._have(K.UNTIL):
            condition = self._parse_par_expression()
            self._must_be(K.SEMICOLON)
            return DoUntilStatement(line=line, body=body, condition=condition)
        self._must_be(K.WHILE)
        condition = self._parse_par_expression()
        self._must_be(K.SEMICOLON)
        return DoWhileStatement(line=line, body=body, condition=condition)

    def _parse_for_statement(self, line: int) -> Statement:
        """Parse a classic or for-each loop after the 'for' keyword."""
        self._must_be(K.LPAREN)

        if self._see_for_each_header():
            param_line = self.scanner.token.line
            is_final = self._have(K.FINAL)
            var_type = self._parse_type()
            name = self._identifier()
            self._must_be(K.COLON)
            collection = self._parse_expression()
            self._must_be(K.RPAREN)
            variable = FormalParameter(line=param_line, name=name, type=var_type, is_final=is_final)
            return ForEachStatement(
                line=line,
                variable=variable,
                collection=collection,
                body=self._parse_statement(),
            )

        init: List[Statement] = []
        if self._see_local_variable_declaration():
            init.append(self._parse_local_variable_declaration(terminated=False))
        elif not self._see(K.SEMICOLON):
            init.extend(self._parse_statement_expression_list())
        self._must_be(K.SEMICOLON)

        condition = None if self._see(K.SEMICOLON) else self._parse_expression()
        self._must_be(K.SEMICOLON)

        update = [] if self._see(K.RPAREN) else self._parse_statement_expression_list()
        self._must_be(K.RPAREN)

        return ForStatement(
            line=line,
            init=init,
            condition=condition,
            update=update,
            body=self._parse_statement(),
        )

    def _parse_statement_expression_list(self) -> List[StatementExpression]:
        statements = [self._parse_statement_expression()]
        while self._have(K.COMMA):
            statements.append(self._parse_statement_expression())
        return statements

    def _parse_try_statement(self, line: int) -> TryStatement:
        """try_stmt ::= 'try' block {catch_clause} ['finally' block]"""
        body = self._parse_block()

        catches = []
        while self._see(K.CATCH):
            catch_line = self.scanner.token.line
            self.scanner.next()
            self._must_be(K.LPAREN)
            parameter = self._parse_formal_parameter()
            self._must_be(K.RPAREN)
            catches.append(CatchClause(line=catch_line, parameter=parameter, body=self._parse_block()))

        finally_block = self._parse_block() if self._have(K.FINALLY) else None
        if not catches and finally_block is None:
            self._report_parser_error("try requires at least one catch or a finally clause")

        return TryStatement(line=line, body=body, catches=catches, finally_block=finally_block)

    def _parse_switch_statement(self, line: int) -> SwitchStatement:
        """
        Parse a switch after the 'switch' keyword.

        Consecutive labels form one case group with the statements that
        follow them. A group repeating a label already seen in this
        switch is reported and left out.
        """
        switch = SwitchStatement(line=line, condition=self._parse_par_expression())
        self._must_be(K.LBRACE)

        labels: List[Optional[Expression]] = []
        group_line = line
        while self._see(K.CASE) or self._see(K.DEFAULT):
            if not labels:
                group_line = self.scanner.token.line
            if self._have(K.DEFAULT):
                labels.append(None)
            else:
                self.scanner.next()
                labels.append(self._parse_expression())
            self._must_be(K.COLON)

            if self._see(K.CASE) or self._see(K.DEFAULT):
                continue

            statements: List[Statement] = []
            while not (
                self._see(K.CASE)
                or self._see(K.DEFAULT)
                or self._see(K.RBRACE)
                or self._see(K.EOF)
            ):
                statements.append(self._parse_block_statement())

            if not switch.add_case_group(labels, statements, group_line):
                self._report_parser_error("No duplicate cases are allowed")
            labels = []

        self._must_be(K.RBRACE)
        return switch

    def _parse_statement_expression(self) -> StatementExpression:
        """
        Parse an expression used as a statement.

        Only expressions with a side effect are allowed: assignments,
        increments and decrements, method calls, this/super constructor
        calls and object or array creation.
        """
        line = self.scanner.token.line
        expression = self._parse_expression()
        is_increment = (
            isinstance(expression, UnaryExpression) and expression.operator.is_increment
        )
        if isinstance(expression, STATEMENT_EXPRESSION_TYPES) or is_increment:
            expression = replace(expression, is_statement_expression=True)
        elif not isinstance(expression, WildExpression):
            self._report_parser_error("Invalid statement expression; it does not have a side-effect")
        return StatementExpression(line=line, expression=expression)

    # =========================================================================
    # Expressions
    # =========================================================================

    def _parse_expression(self) -> Expression:
        self._trace("expression")
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        """Parse assignment expression (right-associative)."""
        line = self.scanner.token.line
        lhs = self._parse_ternary()

        assign_ops = {
            K.ASSIGN: AssignmentOperator.ASSIGN,
            K.PLUS_ASSIGN: AssignmentOperator.ADD_ASSIGN,
            K.MINUS_ASSIGN: AssignmentOperator.SUBTRACT_ASSIGN,
            K.STAR_ASSIGN: AssignmentOperator.MULTIPLY_ASSIGN,
            K.SLASH_ASSIGN: AssignmentOperator.DIVIDE_ASSIGN,
            K.PERCENT_ASSIGN: AssignmentOperator.REMAINDER_ASSIGN,
            K.AND_ASSIGN: AssignmentOperator.AND_ASSIGN,
            K.OR_ASSIGN: AssignmentOperator.OR_ASSIGN,
            K.XOR_ASSIGN: AssignmentOperator.XOR_ASSIGN,
            K.LSHIFT_ASSIGN: AssignmentOperator.LEFT_SHIFT_ASSIGN,
            K.RSHIFT_ASSIGN: AssignmentOperator.RIGHT_SHIFT_ASSIGN,
            K.ZSHIFT_ASSIGN: AssignmentOperator.UNSIGNED_RIGHT_SHIFT_ASSIGN,
        }

        operator = assign_ops.get(self.scanner.token.kind)
        if operator is None:
            return lhs
        self.scanner.next()
        return AssignmentExpression(
            line=line,
            operator=operator,
            lhs=lhs,
            rhs=self._parse_assignment(),
        )

    def _parse_ternary(self) -> Expression:
        """Parse ternary conditional expression (right-associative)."""
        line = self.scanner.token.line
        condition = self._parse_logical_or()
        if not self._have(K.QUESTION):
            return condition
        then_part = self._parse_assignment()
        self._must_be(K.COLON)
        return TernaryExpression(
            line=line,
            condition=condition,
            then_part=then_part,
            else_part=self._parse_ternary(),
        )

    def _parse_logical_or(self) -> Expression:
        return self._parse_binary(
            self._parse_logical_and,
            {K.OR: BinaryOperator.LOGICAL_OR},
        )

    def _parse_logical_and(self) -> Expression:
        return self._parse_binary(
            self._parse_bitwise_or,
            {K.AND: BinaryOperator.LOGICAL_AND},
        )

    def _parse_bitwise_or(self) -> Expression:
        return self._parse_binary(
            self._parse_bitwise_xor,
            {K.PIPE: BinaryOperator.BITWISE_OR},
        )

    def _parse_bitwise_xor(self) -> Expression:
        return self._parse_binary(
            self._parse_bitwise_and,
            {K.CARET: BinaryOperator.BITWISE_XOR},
        )

    def _parse_bitwise_and(self) -> Expression:
        return self._parse_binary(
            self._parse_equality,
            {K.AMPERSAND: BinaryOperator.BITWISE_AND},
        )

    def _parse_equality(self) -> Expression:
        """Parse equality expression (== !=)."""
        return self._parse_binary(
            self._parse_relational,
            {
                K.EQ: BinaryOperator.EQUAL,
                K.NE: BinaryOperator.NOT_EQUAL,
            },
        )

    def _parse_relational(self) -> Expression:
        """Parse relational expression (< > <= >= instanceof)."""
        relational_ops = {
            K.LT: BinaryOperator.LESS,
            K.GT: BinaryOperator.GREATER,
            K.LE: BinaryOperator.LESS_EQUAL,
            K.GE: BinaryOperator.GREATER_EQUAL,
        }

        expr = self._parse_shift()
        while True:
            line = self.scanner.token.line
            if self._have(K.INSTANCEOF):
                expr = InstanceOfExpression(
                    line=line,
                    expression=expr,
                    target_type=self._parse_reference_type(),
                )
            elif self.scanner.token.kind in relational_ops:
                operator = relational_ops[self.scanner.token.kind]
                self.scanner.next()
                expr = BinaryExpression(line=line, operator=operator, lhs=expr, rhs=self._parse_shift())
            else:
                return expr

    def _parse_shift(self) -> Expression:
        """Parse shift expression (<< >> >>>)."""
        return self._parse_binary(
            self._parse_additive,
            {
                K.LSHIFT: BinaryOperator.LEFT_SHIFT,
                K.RSHIFT: BinaryOperator.RIGHT_SHIFT,
                K.ZSHIFT: BinaryOperator.UNSIGNED_RIGHT_SHIFT,
            },
        )

    def _parse_additive(self) -> Expression:
        """Parse additive expression (+ -)."""
        return self._parse_binary(
            self._parse_multiplicative,
            {
                K.PLUS: BinaryOperator.ADD,
                K.MINUS: BinaryOperator.SUBTRACT,
            },
        )

    def _parse_multiplicative(self) -> Expression:
        """Parse multiplicative expression (* / %)."""
        return self._parse_binary(
            self._parse_unary,
            {
                K.STAR: BinaryOperator.MULTIPLY,
                K.SLASH: BinaryOperator.DIVIDE,
                K.PERCENT: BinaryOperator.REMAINDER,
            },
        )

    def _parse_binary(
        self,
        operand_parser: Callable[[], Expression],
        operators: dict,
    ) -> Expression:
        """
        Generic left-associative binary expression parser.

        Args:
            operand_parser: Function to parse operands
            operators: Map of token kinds to binary operators
        """
        expr = operand_parser()

        while self.scanner.token.kind in operators:
            line = self.scanner.token.line
            operator = operators[self.scanner.token.kind]
            self.scanner.next()
            expr = BinaryExpression(
                line=line,
                operator=operator,
                lhs=expr,
                rhs=operand_parser(),
            )

        return expr

    def _parse_unary(self) -> Expression:
        """Parse prefix expression (+ - ++ --)."""
        line = self.scanner.token.line

        unary_ops = {
            K.INCREMENT: UnaryOperator.PRE_INCREMENT,
            K.DECREMENT: UnaryOperator.PRE_DECREMENT,
            K.PLUS: UnaryOperator.POSITIVE,
            K.MINUS: UnaryOperator.NEGATE,
        }

        operator = unary_ops.get(self.scanner.token.kind)
        if operator is None:
            return self._parse_simple_unary()
        self.scanner.next()
        return UnaryExpression(line=line, operator=operator, operand=self._parse_unary())

    def _parse_simple_unary(self) -> Expression:
        """Parse ! ~ and casts, falling through to postfix."""
        line = self.scanner.token.line

        if self._have(K.NOT):
            return UnaryExpression(line=line, operator=UnaryOperator.LOGICAL_NOT, operand=self._parse_unary())
        if self._have(K.TILDE):
            return UnaryExpression(line=line, operator=UnaryOperator.BITWISE_NOT, operand=self._parse_unary())
        if self._see_cast():
            self._must_be(K.LPAREN)
            target_type = self._parse_type()
            self._must_be(K.RPAREN)
            if target_type.is_primitive:
                operand = self._parse_unary()
            else:
                operand = self._parse_simple_unary()
            return CastExpression(line=line, target_type=target_type, expression=operand)
        return self._parse_postfix()

    def _parse_postfix(self) -> Expression:
        """postfix ::= primary {selector} {'++' | '--'}"""
        expr = self._parse_primary()
        while self._see(K.DOT) or self._see(K.LBRACKET):
            expr = self._parse_selector(expr)
        while True:
            line = self.scanner.token.line
            if self._have(K.INCREMENT):
                expr = UnaryExpression(line=line, operator=UnaryOperator.POST_INCREMENT, operand=expr)
            elif self._have(K.DECREMENT):
                expr = UnaryExpression(line=line, operator=UnaryOperator.POST_DECREMENT, operand=expr)
            else:
                return expr

    def _parse_selector(self, target: Expression) -> Expression:
        """selector ::= '.' IDENTIFIER [arguments] | '[' expr ']'"""
        line = self.scanner.token.line
        if self._have(K.DOT):
            name = self._identifier()
            if self._see(K.LPAREN):
                return MessageExpression(
                    line=line,
                    target=target,
                    name=name,
                    arguments=self._parse_arguments(),
                )
            return FieldSelection(line=line, target=target, name=name)

        self._must_be(K.LBRACKET)
        index = self._parse_expression()
        self._must_be(K.RBRACKET)
        return ArrayExpression(line=line, array=target, index=index)

    def _parse_primary(self) -> Expression:
        """Parse primary expression."""
        self._trace("primary")
        line = self.scanner.token.line

        if self._see(K.LPAREN):
            return self._parse_par_expression()

        if self._have(K.THIS):
            if self._see(K.LPAREN):
                return ThisConstruction(line=line, arguments=self._parse_arguments())
            return ThisExpression(line=line)

        if self._have(K.SUPER):
            if not self._have(K.DOT):
                return SuperConstruction(line=line, arguments=self._parse_arguments())
            name = self._identifier()
            target = SuperExpression(line=line)
            if self._see(K.LPAREN):
                return MessageExpression(
                    line=line,
                    target=target,
                    name=name,
                    arguments=self._parse_arguments(),
                )
            return FieldSelection(line=line, target=target, name=name)

        if self._have(K.NEW):
            return self._parse_creator()

        if self._see(K.IDENTIFIER):
            # a.b.c is split into the ambiguous part a.b and the name c
            prefix, _, name = self._parse_qualified_identifier().rpartition(".")
            ambiguous_part = prefix or None
            if self._see(K.LPAREN):
                return MessageExpression(
                    line=line,
                    ambiguous_part=ambiguous_part,
                    name=name,
                    arguments=self._parse_arguments(),
                )
            if ambiguous_part is None:
                return VariableExpression(line=line, name=name)
            return FieldSelection(line=line, ambiguous_part=ambiguous_part, name=name)

        return self._parse_literal()

    def _parse_arguments(self) -> List[Expression]:
        """arguments ::= '(' [expr {',' expr}] ')'"""
        arguments: List[Expression] = []
        self._must_be(K.LPAREN)
        if self._have(K.RPAREN):
            return arguments
        arguments.append(self._parse_expression())
        while self._have(K.COMMA):
            arguments.append(self._parse_expression())
        self._must_be(K.RPAREN)
        return arguments

    def _parse_creator(self) -> Expression:
        """
        Parse what follows 'new'.

        creator ::= (basic_type | qualified_id)
                    (arguments | '[' ']' {'[' ']'} array_initializer
                     | new_array_declarator)
        """
        line = self.scanner.token.line
        if self._see_basic_type():
            created = self._parse_basic_type()
        else:
            created = Type.reference(self._parse_qualified_identifier())

        if self._see(K.LPAREN):
            return NewObject(line=line, type=created, arguments=self._parse_arguments())

        if self._see(K.LBRACKET):
            if not self._see_dims():
                return self._parse_new_array_declarator(line, created)
            while self._have(K.LBRACKET):
                self._must_be(K.RBRACKET)
                created = Type.array_of(created)
            initializer = self._parse_array_initializer(created)
            return NewArray(line=line, type=created, initializer=initializer)

        self._report_parser_error(f"( or [ sought where {self.scanner.token.image} found")
        return WildExpression(line=line)

    def _parse_new_array_declarator(self, line: int, element_type: Type) -> NewArray:
        """
        new_array_declarator ::= '[' expr ']' {'[' expr ']'} {'[' ']'}

        Once an empty [] is seen only further empty dimensions may follow.
        """
        dimensions: List[Expression] = []
        self._must_be(K.LBRACKET)
        dimensions.append(self._parse_expression())
        self._must_be(K.RBRACKET)
        created = Type.array_of(element_type)

        while self._have(K.LBRACKET):
            if self._have(K.RBRACKET):
                created = Type.array_of(created)
                while self._have(K.LBRACKET):
                    self._must_be(K.RBRACKET)
                    created = Type.array_of(created)
                break
            dimensions.append(self._parse_expression())
            self._must_be(K.RBRACKET)
            created = Type.array_of(created)

        return NewArray(line=line, type=created, dimensions=dimensions)

    def _parse_literal(self) -> Expression:
        """Parse a literal, reporting anything else."""
        line = self.scanner.token.line
        token = self.scanner.token
        if token.kind in LITERAL_KINDS:
            self.scanner.next()
            return LiteralExpression(line=line, kind=token.kind, image=token.image)
        self._report_parser_error(f"Literal sought where {token.image} found")
        return WildExpression(line=line)


# =============================================================================
# Convenience Function
# =============================================================================

def parse_source(
    source: str,
    filename: str = "<input>",
    reporter: Optional[ErrorReporter] = None,
    trace: bool = False,
) -> Parser:
    """
    Build the scanner chain for source text and return a ready parser.

    Args:
        source: j-- source text
        filename: Name used in diagnostics
        reporter: Diagnostic sink shared by scanner and parser
        trace: Log productions as they are entered

    Returns:
        A Parser positioned at the first token
    """
    reporter = reporter if reporter is not None else ErrorReporter()
    scanner = Scanner(source, filename, reporter)
    return Parser(LookaheadScanner(scanner), reporter, trace=trace)

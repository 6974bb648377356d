"""
j-- Abstract Syntax Tree (AST) Definitions
==========================================

This module defines the AST node types built by the j-- parser, the
visitor base class that dispatches one operation over the closed node
family, and the structured dump printer.

Node Hierarchy
--------------
ASTNode (base)
├── Declarations
│   ├── CompilationUnit - root: package, imports, classes
│   ├── ImportDeclaration - import a.b.C; / import a.b.*;
│   ├── ClassDeclaration - class with its members
│   ├── MethodDeclaration / ConstructorDeclaration
│   ├── FieldDeclaration - field declarators of one type
│   ├── InitializerBlock - static or instance initializer
│   ├── FormalParameter - method/catch/for-each parameter
│   └── VariableDeclarator - name [= initializer]
├── Statements
│   ├── Block, VariableDeclaration, EmptyStatement, StatementExpression
│   ├── IfStatement, WhileStatement, DoWhileStatement, DoUntilStatement
│   ├── ForStatement, ForEachStatement
│   ├── ReturnStatement, BreakStatement, ContinueStatement
│   ├── ThrowStatement, TryStatement, CatchClause
│   └── SwitchStatement, CaseGroup
└── Expressions
    ├── BinaryExpression - lhs op rhs for every binary operator
    ├── AssignmentExpression - = and every compound assignment
    ├── StringConcatenation - + with a string operand (built by analysis)
    ├── UnaryExpression - prefix and postfix operators
    ├── TernaryExpression, InstanceOfExpression, CastExpression
    ├── LiteralExpression, VariableExpression, FieldSelection
    ├── MessageExpression, ArrayExpression
    ├── ThisExpression, SuperExpression, ThisConstruction, SuperConstruction
    ├── NewObject, NewArray, ArrayInitializer
    └── WildExpression - placeholder after a syntax error

Operations
----------
Every node supports three operations, each implemented by a visitor
class so that one operation is dispatched once over the whole family:

- analyze(context) -> node   (jminus.analyzer.Analyzer)
- codegen(emitter)           (jminus.codegen.CodeGenerator)
- dump(printer)              (ASTPrinter, below)

Design Notes
------------
- All nodes are dataclasses; `line` and `resolved_type` are excluded
  from equality, so == compares structure (used for switch labels).
- Analysis never mutates a node: it returns a rebuilt node
  (dataclasses.replace) that the caller substitutes for its own child.
"""

import io
from dataclasses import dataclass, field, fields
from enum import Enum, auto
from typing import Any, List, Optional, TextIO, Union
from xml.sax.saxutils import escape

from jminus.lexer import INTEGRAL_LITERALS, Token, TokenKind
from jminus.types import Type


# =============================================================================
# AST Node Base Classes
# =============================================================================

@dataclass
class ASTNode:
    """
    Base class for all AST nodes.

    Attributes:
        line: Source line where this node starts
    """
    line: int = field(compare=False)

    def analyze(self, context: Any) -> "ASTNode":
        """Analyze this subtree and return the (possibly rewritten) node."""
        return context.analyze(self)

    def codegen(self, emitter: Any) -> None:
        """Emit the instructions for this subtree."""
        from jminus.codegen import CodeGenerator
        CodeGenerator(emitter).generate(self)

    def dump(self, printer: "PrettyPrinter") -> None:
        """Write the structured dump of this subtree."""
        ASTPrinter(printer).visit(self)


@dataclass
class Expression(ASTNode):
    """
    Base class for all expression nodes.

    Attributes:
        resolved_type: The type of this expression (set by analysis)
        is_statement_expression: True when used as a standalone statement
    """
    resolved_type: Optional[Type] = field(default=None, compare=False)
    is_statement_expression: bool = field(default=False, compare=False)


@dataclass
class Statement(ASTNode):
    """Base class for all statement nodes."""
    pass


@dataclass
class Declaration(ASTNode):
    """Base class for declarations that introduce names."""
    pass


# =============================================================================
# Declarations
# =============================================================================

@dataclass
class ImportDeclaration(Declaration):
    name: str = ""
    is_wildcard: bool = False


@dataclass
class CompilationUnit(Declaration):
    """
    Root node: one source file.

    Attributes:
        filename: Name of the source file
        package_name: Qualified package name, if declared
        imports: Import declarations in source order
        type_declarations: Class declarations in source order
    """
    filename: str = "<input>"
    package_name: Optional[str] = None
    imports: List[ImportDeclaration] = field(default_factory=list)
    type_declarations: List["ClassDeclaration"] = field(default_factory=list)


@dataclass
class ClassDeclaration(Declaration):
    modifiers: List[str] = field(default_factory=list)
    name: str = ""
    superclass: Optional[Type] = None
    interfaces: List[Type] = field(default_factory=list)
    members: List[Declaration] = field(default_factory=list)


@dataclass
class FormalParameter(Declaration):
    """
    A declared parameter (method, constructor, catch clause, for-each).

    Attributes:
        slot: Local variable slot (set by analysis)
    """
    name: str = ""
    type: Optional[Type] = None
    is_vararg: bool = False
    is_final: bool = False
    slot: Optional[int] = field(default=None, compare=False)


@dataclass
class MethodDeclaration(Declaration):
    """
    A method.

    Attributes:
        body: None for abstract and native methods
        local_count: Local variable slots used (set by analysis)
    """
    modifiers: List[str] = field(default_factory=list)
    name: str = ""
    return_type: Optional[Type] = None
    parameters: List[FormalParameter] = field(default_factory=list)
    exceptions: List[Type] = field(default_factory=list)
    body: Optional["Block"] = None
    local_count: int = field(default=0, compare=False)

    @property
    def is_static(self) -> bool:
        return "static" in self.modifiers


@dataclass
class ConstructorDeclaration(Declaration):
    modifiers: List[str] = field(default_factory=list)
    name: str = ""
    parameters: List[FormalParameter] = field(default_factory=list)
    exceptions: List[Type] = field(default_factory=list)
    body: Optional["Block"] = None
    local_count: int = field(default=0, compare=False)


@dataclass
class VariableDeclarator(Declaration):
    name: str = ""
    type: Optional[Type] = None
    initializer: Optional["Expression"] = None
    slot: Optional[int] = field(default=None, compare=False)


@dataclass
class FieldDeclaration(Declaration):
    modifiers: List[str] = field(default_factory=list)
    declarators: List[VariableDeclarator] = field(default_factory=list)

    @property
    def is_static(self) -> bool:
        return "static" in self.modifiers


@dataclass
class InitializerBlock(Declaration):
    is_static: bool = False
    body: Optional["Block"] = None
    local_count: int = field(default=0, compare=False)


# =============================================================================
# Statements
# =============================================================================

@dataclass
class Block(Statement):
    statements: List[Statement] = field(default_factory=list)


@dataclass
class VariableDeclaration(Statement):
    """Local variable declaration statement: [final] type a = 1, b;"""
    modifiers: List[str] = field(default_factory=list)
    declarators: List[VariableDeclarator] = field(default_factory=list)


@dataclass
class EmptyStatement(Statement):
    pass


@dataclass
class StatementExpression(Statement):
    expression: Optional[Expression] = None


@dataclass
class IfStatement(Statement):
    condition: Optional[Expression] = None
    then_part: Optional[Statement] = None
    else_part: Optional[Statement] = None


@dataclass
class WhileStatement(Statement):
    condition: Optional[Expression] = None
    body: Optional[Statement] = None


@dataclass
class DoWhileStatement(Statement):
    body: Optional[Statement] = None
    condition: Optional[Expression] = None


@dataclass
class DoUntilStatement(Statement):
    """do body until (condition); -- loops while the condition is false."""
    body: Optional[Statement] = None
    condition: Optional[Expression] = None


@dataclass
class ForStatement(Statement):
    """
    Classic three-clause for loop.

    Attributes:
        init: VariableDeclaration or StatementExpression nodes
        condition: None means loop forever
        update: Statement expressions run after each iteration
    """
    init: List[Statement] = field(default_factory=list)
    condition: Optional[Expression] = None
    update: List[StatementExpression] = field(default_factory=list)
    body: Optional[Statement] = None


@dataclass
class ForEachStatement(Statement):
    variable: Optional[FormalParameter] = None
    collection: Optional[Expression] = None
    body: Optional[Statement] = None


@dataclass
class ReturnStatement(Statement):
    expression: Optional[Expression] = None


@dataclass
class BreakStatement(Statement):
    pass


@dataclass
class ContinueStatement(Statement):
    pass


@dataclass
class ThrowStatement(Statement):
    """
    throw primary;

    Attributes:
        is_new: True when the operand is a fresh `new` object rather
            than a named value
    """
    expression: Optional[Expression] = None
    is_new: bool = False


@dataclass
class CatchClause(Statement):
    parameter: Optional[FormalParameter] = None
    body: Optional[Block] = None


@dataclass
class TryStatement(Statement):
    body: Optional[Block] = None
    catches: List[CatchClause] = field(default_factory=list)
    finally_block: Optional[Block] = None


@dataclass
class CaseGroup(Statement):
    """
    Switch labels sharing one fallthrough statement list.

    A None label stands for `default`.
    """
    labels: List[Optional[Expression]] = field(default_factory=list)
    statements: List[Statement] = field(default_factory=list)


def _label_key(label: Optional[Expression]) -> tuple:
    """Equality key for a case label: literal value, or the node itself."""
    if label is None:
        return ("default",)
    if isinstance(label, LiteralExpression):
        value = label.value
        if label.kind is TokenKind.CHAR_LITERAL and isinstance(value, str) and len(value) == 1:
            return ("number", ord(value))
        if label.kind in INTEGRAL_LITERALS:
            return ("number", value)
        return ("literal", label.kind, value)
    return ("expression", label)


@dataclass
class SwitchStatement(Statement):
    """
    switch (condition) { case-groups }

    Attributes:
        condition: The clause expression being switched on
        groups: Case groups in source order; no label value (including
            default) appears twice across all groups
    """
    condition: Optional[Expression] = None
    groups: List[CaseGroup] = field(default_factory=list)

    def add_case_group(
        self,
        labels: List[Optional[Expression]],
        statements: List[Statement],
        line: Optional[int] = None,
    ) -> bool:
        """
        Append a case group unless one of its labels is a duplicate.

        A group is rejected when two of its own labels are equal or when
        any label equals a label of a group already added.

        Returns:
            True if the group was added
        """
        keys = [_label_key(label) for label in labels]
        for i, key in enumerate(keys):
            if key in keys[:i]:
                return False

        existing = [_label_key(label) for group in self.groups for label in group.labels]
        if any(key in existing for key in keys):
            return False

        self.groups.append(CaseGroup(
            line=line if line is not None else self.line,
            labels=list(labels),
            statements=list(statements),
        ))
        return True


# =============================================================================
# Operator Enumerations
# =============================================================================

class BinaryOperator(Enum):
    """Binary operators; the value is the source symbol."""
    # Arithmetic
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    REMAINDER = "%"

    # Comparison
    EQUAL = "=="
    NOT_EQUAL = "!="
    LESS = "<"
    GREATER = ">"
    LESS_EQUAL = "<="
    GREATER_EQUAL = ">="

    # Logical
    LOGICAL_AND = "&&"
    LOGICAL_OR = "||"

    # Bitwise
    BITWISE_AND = "&"
    BITWISE_OR = "|"
    BITWISE_XOR = "^"
    LEFT_SHIFT = "<<"
    RIGHT_SHIFT = ">>"
    UNSIGNED_RIGHT_SHIFT = ">>>"

    @property
    def symbol(self) -> str:
        return self.value


class AssignmentOperator(Enum):
    """Assignment operators; the value is the source symbol."""
    ASSIGN = "="
    ADD_ASSIGN = "+="
    SUBTRACT_ASSIGN = "-="
    MULTIPLY_ASSIGN = "*="
    DIVIDE_ASSIGN = "/="
    REMAINDER_ASSIGN = "%="
    AND_ASSIGN = "&="
    OR_ASSIGN = "|="
    XOR_ASSIGN = "^="
    LEFT_SHIFT_ASSIGN = "<<="
    RIGHT_SHIFT_ASSIGN = ">>="
    UNSIGNED_RIGHT_SHIFT_ASSIGN = ">>>="

    @property
    def symbol(self) -> str:
        return self.value

    @property
    def binary_operator(self) -> Optional[BinaryOperator]:
        """The operator a compound assignment applies (None for plain =)."""
        if self is AssignmentOperator.ASSIGN:
            return None
        return BinaryOperator(self.value[:-1])


class UnaryOperator(Enum):
    """Unary operator types."""
    NEGATE = auto()          # -x
    POSITIVE = auto()        # +x
    LOGICAL_NOT = auto()     # !x
    BITWISE_NOT = auto()     # ~x
    PRE_INCREMENT = auto()   # ++x
    PRE_DECREMENT = auto()   # --x
    POST_INCREMENT = auto()  # x++
    POST_DECREMENT = auto()  # x--

    @property
    def symbol(self) -> str:
        return _UNARY_SYMBOLS[self]

    @property
    def is_increment(self) -> bool:
        return self in (
            UnaryOperator.PRE_INCREMENT,
            UnaryOperator.PRE_DECREMENT,
            UnaryOperator.POST_INCREMENT,
            UnaryOperator.POST_DECREMENT,
        )


_UNARY_SYMBOLS = {
    UnaryOperator.NEGATE: "-",
    UnaryOperator.POSITIVE: "+",
    UnaryOperator.LOGICAL_NOT: "!",
    UnaryOperator.BITWISE_NOT: "~",
    UnaryOperator.PRE_INCREMENT: "++",
    UnaryOperator.PRE_DECREMENT: "--",
    UnaryOperator.POST_INCREMENT: "++",
    UnaryOperator.POST_DECREMENT: "--",
}


# =============================================================================
# Expressions
# =============================================================================

@dataclass
class BinaryExpression(Expression):
    """
    Binary operation (lhs op rhs).

    Attributes:
        operator: The binary operator
        lhs: Left operand
        rhs: Right operand
    """
    operator: Optional[BinaryOperator] = None
    lhs: Optional[Expression] = None
    rhs: Optional[Expression] = None


@dataclass
class AssignmentExpression(Expression):
    """Assignment (lhs = rhs) or compound assignment (lhs op= rhs)."""
    operator: AssignmentOperator = AssignmentOperator.ASSIGN
    lhs: Optional[Expression] = None
    rhs: Optional[Expression] = None


@dataclass
class StringConcatenation(Expression):
    """String + anything, produced by analysis from a BinaryExpression."""
    lhs: Optional[Expression] = None
    rhs: Optional[Expression] = None

    @property
    def operator(self) -> BinaryOperator:
        return BinaryOperator.ADD


@dataclass
class UnaryExpression(Expression):
    operator: Optional[UnaryOperator] = None
    operand: Optional[Expression] = None


@dataclass
class TernaryExpression(Expression):
    condition: Optional[Expression] = None
    then_part: Optional[Expression] = None
    else_part: Optional[Expression] = None


@dataclass
class InstanceOfExpression(Expression):
    expression: Optional[Expression] = None
    target_type: Optional[Type] = None


@dataclass
class CastExpression(Expression):
    target_type: Optional[Type] = None
    expression: Optional[Expression] = None


@dataclass
class LiteralExpression(Expression):
    """
    A literal.

    Attributes:
        kind: The literal's token kind (INT_LITERAL, HEX_LITERAL, TRUE, ...)
        image: The literal's source text
    """
    kind: TokenKind = TokenKind.INT_LITERAL
    image: str = ""

    @property
    def value(self) -> Union[int, float, str, bool, None]:
        return Token(self.kind, self.image, self.line).value


@dataclass
class VariableExpression(Expression):
    """
    A simple name.

    Attributes:
        slot: Local variable slot when the name is a local (set by analysis)
        field_owner: Declaring class when the name is a field (set by analysis)
        is_static: True for a static field (set by analysis)
    """
    name: str = ""
    slot: Optional[int] = field(default=None, compare=False)
    field_owner: Optional[str] = field(default=None, compare=False)
    is_static: bool = field(default=False, compare=False)


@dataclass
class FieldSelection(Expression):
    """
    target.name, or ambiguous_part.name for a qualified name whose
    prefix could not be classified by the parser (a.b.c).
    """
    target: Optional[Expression] = None
    ambiguous_part: Optional[str] = None
    name: str = ""
    owner: Optional[str] = field(default=None, compare=False)
    is_static: bool = field(default=False, compare=False)


@dataclass
class MessageExpression(Expression):
    """
    Method invocation: [target.]name(arguments).

    Attributes:
        owner: Class declaring the method (set by analysis)
        descriptor: Method descriptor (set by analysis)
        is_static: True for a static call (set by analysis)
    """
    target: Optional[Expression] = None
    ambiguous_part: Optional[str] = None
    name: str = ""
    arguments: List[Expression] = field(default_factory=list)
    owner: Optional[str] = field(default=None, compare=False)
    descriptor: Optional[str] = field(default=None, compare=False)
    is_static: bool = field(default=False, compare=False)


@dataclass
class ArrayExpression(Expression):
    array: Optional[Expression] = None
    index: Optional[Expression] = None


@dataclass
class ThisExpression(Expression):
    pass


@dataclass
class SuperExpression(Expression):
    pass


@dataclass
class ThisConstruction(Expression):
    """this(arguments) as the first statement of a constructor."""
    arguments: List[Expression] = field(default_factory=list)
    descriptor: Optional[str] = field(default=None, compare=False)


@dataclass
class SuperConstruction(Expression):
    """super(arguments) as the first statement of a constructor."""
    arguments: List[Expression] = field(default_factory=list)
    descriptor: Optional[str] = field(default=None, compare=False)


@dataclass
class NewObject(Expression):
    type: Optional[Type] = None
    arguments: List[Expression] = field(default_factory=list)
    descriptor: Optional[str] = field(default=None, compare=False)


@dataclass
class ArrayInitializer(Expression):
    """{a, b, c} for an array of the given type."""
    type: Optional[Type] = None
    initials: List[Expression] = field(default_factory=list)


@dataclass
class NewArray(Expression):
    """
    new T[d1][d2]...[] or new T[]{...}.

    Attributes:
        type: The full array type being created
        dimensions: Explicit dimension expressions (empty with an initializer)
        initializer: Initial elements, if given
    """
    type: Optional[Type] = None
    dimensions: List[Expression] = field(default_factory=list)
    initializer: Optional[ArrayInitializer] = None


@dataclass
class WildExpression(Expression):
    """Stands in for an expression that could not be parsed."""
    pass


# =============================================================================
# AST Visitor Pattern
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    Subclasses implement visit_<ClassName> methods for the node types they
    handle; anything else goes to generic_visit.

    Usage:
        class MyVisitor(ASTVisitor):
            def visit_MethodDeclaration(self, node):
                ...

        MyVisitor().visit(unit)
    """

    def visit(self, node: ASTNode) -> Any:
        """
        Visit a node by dispatching to the appropriate method.

        Returns:
            The result of the visit method (varies by visitor)
        """
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: ASTNode) -> Any:
        """Visit all child nodes."""
        for child in iter_child_nodes(node):
            self.visit(child)


def iter_child_nodes(node: ASTNode):
    """Yield the direct child nodes of node in field order."""
    for f in fields(node):
        value = getattr(node, f.name)
        if isinstance(value, ASTNode):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, ASTNode):
                    yield item


# =============================================================================
# Structured Dump
# =============================================================================

class PrettyPrinter:
    """
    Indentation-aware text sink.

    printf() writes the current indentation followed by the formatted
    text; callers end lines with "\\n" themselves.

    Usage:
        printer = PrettyPrinter()
        unit.dump(printer)
        print(printer.getvalue())
    """

    def __init__(self, stream: Optional[TextIO] = None, indent_width: int = 2):
        self.stream = stream if stream is not None else io.StringIO()
        self.indent_width = indent_width
        self.indent_level = 0

    def printf(self, fmt: str, *args: Any) -> None:
        text = fmt % args if args else fmt
        self.stream.write(" " * (self.indent_level * self.indent_width) + text)

    def indent_right(self) -> None:
        self.indent_level += 1

    def indent_left(self) -> None:
        self.indent_level = max(0, self.indent_level - 1)

    def getvalue(self) -> str:
        """Return everything written so far (StringIO streams only)."""
        return self.stream.getvalue()


class ASTPrinter(ASTVisitor):
    """
    Writes the nested, line-tagged dump of a subtree.

    Each node becomes an element named after its class with a line
    attribute, a type attribute once analysis has resolved one, an
    operator attribute for operator nodes, and one attribute per scalar
    field. Child nodes are wrapped in role elements named after the
    field holding them:

        <BinaryExpression line="3" type="int" operator="+">
          <Lhs>
            <VariableExpression line="3" name="x"/>
          </Lhs>
          <Rhs>
            <LiteralExpression line="3" kind="INT_LITERAL" image="1"/>
          </Rhs>
        </BinaryExpression>
    """

    def __init__(self, printer: Optional[PrettyPrinter] = None):
        self.printer = printer if printer is not None else PrettyPrinter()

    def print(self, node: ASTNode) -> str:
        """Dump node into a fresh buffer and return the text."""
        self.printer = PrettyPrinter()
        self.visit(node)
        return self.printer.getvalue()

    def generic_visit(self, node: ASTNode) -> None:
        name = node.__class__.__name__
        attributes = self._attributes(node)
        roles = self._roles(node)

        if not roles:
            self.printer.printf("<%s%s/>\n", name, attributes)
            return

        self.printer.printf("<%s%s>\n", name, attributes)
        self.printer.indent_right()
        for role, value in roles:
            self._dump_role(role, value)
        self.printer.indent_left()
        self.printer.printf("</%s>\n", name)

    def _dump_role(self, role: str, value: Any) -> None:
        self.printer.printf("<%s>\n", role)
        self.printer.indent_right()
        if isinstance(value, list):
            for item in value:
                if item is None:
                    self.printer.printf("<Default/>\n")
                else:
                    self.visit(item)
        else:
            self.visit(value)
        self.printer.indent_left()
        self.printer.printf("</%s>\n", role)

    def _attributes(self, node: ASTNode) -> str:
        parts = [("line", str(node.line))]

        resolved_type = getattr(node, "resolved_type", None)
        if resolved_type is not None:
            parts.append(("type", str(resolved_type)))

        operator = getattr(node, "operator", None)
        if operator is not None:
            parts.append(("operator", operator.symbol))

        for f in fields(node):
            # compare=False marks fields filled in by analysis
            if not f.compare or f.name == "operator":
                continue
            # the resolved type already supplies type=
            if f.name == "type" and resolved_type is not None:
                continue
            value = getattr(node, f.name)
            text = self._scalar_text(value)
            if text is not None:
                parts.append((f.name, text))

        return "".join(f' {key}="{_quote(text)}"' for key, text in parts)

    @staticmethod
    def _scalar_text(value: Any) -> Optional[str]:
        """Render a non-node field value, or None if it is a child or absent."""
        if value is None or isinstance(value, ASTNode):
            return None
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, TokenKind):
            return value.name
        if isinstance(value, (str, int, Type)):
            return str(value)
        if isinstance(value, list):
            if not value or any(isinstance(item, ASTNode) or item is None for item in value):
                return None
            return ", ".join(str(item) for item in value)
        return None

    @staticmethod
    def _roles(node: ASTNode) -> List[tuple]:
        roles = []
        for f in fields(node):
            value = getattr(node, f.name)
            if isinstance(value, ASTNode):
                roles.append((_role_name(f.name), value))
            elif isinstance(value, list) and value and any(
                isinstance(item, ASTNode) or item is None for item in value
            ):
                roles.append((_role_name(f.name), value))
        return roles


def _quote(text: str) -> str:
    return escape(text, {'"': "&quot;"})


def _role_name(field_name: str) -> str:
    """then_part -> ThenPart"""
    return "".join(part.capitalize() for part in field_name.split("_"))

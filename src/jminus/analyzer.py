"""
j-- Semantic Analysis
=====================

This module implements the analyze phase. Analysis walks the parsed
tree, resolves names to local variable slots, fields and methods,
computes the resolved type of every expression and reports semantic
errors. It returns a rebuilt tree; the parsed tree is never modified.

Rewrites
--------
Analysis may hand back a node of a different shape:

- `a + b` with a String operand becomes a StringConcatenation
- an operand that needs a widening conversion (int to long, int to
  double, ...) is wrapped in a CastExpression to the wider type
- a qualified name `a.b.c` whose prefix names a local variable or
  field is rebuilt as an explicit FieldSelection chain

Errors
------
Type mismatches and unknown names are reported as SemanticError
diagnostics at the line recorded by the parser. The offending
expression gets the `any` type, which matches everything, so one bad
expression does not produce a cascade of follow-on errors.

Names the unit does not declare (library classes, inherited members of
an external superclass) resolve to `any` without a diagnostic.

Example Usage
-------------
>>> from jminus.parser import parse_source
>>> from jminus.analyzer import Context
>>> parser = parse_source("class A { int f() { return 1 + 2; } }")
>>> unit = parser.parse_compilation_unit()
>>> analyzed = Context(parser.reporter).analyze(unit)
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from jminus import types
from jminus.ast import (
    ArrayExpression,
    ArrayInitializer,
    AssignmentExpression,
    AssignmentOperator,
    ASTNode,
    ASTVisitor,
    BinaryExpression,
    BinaryOperator,
    Block,
    CastExpression,
    ClassDeclaration,
    CompilationUnit,
    ConstructorDeclaration,
    Expression,
    FieldDeclaration,
    FieldSelection,
    FormalParameter,
    LiteralExpression,
    MessageExpression,
    MethodDeclaration,
    NewArray,
    StringConcatenation,
    UnaryExpression,
    UnaryOperator,
    VariableDeclarator,
    VariableExpression,
)
from jminus.errors import ErrorReporter, SemanticError
from jminus.lexer import INTEGRAL_LITERALS, TokenKind
from jminus.types import Type, TypeKind, method_descriptor, promote, widens_to

logger = logging.getLogger(__name__)


# Resolved type of each literal kind
LITERAL_TYPES = {kind: types.INT for kind in INTEGRAL_LITERALS - {TokenKind.LONG_LITERAL}}
LITERAL_TYPES.update({
    TokenKind.LONG_LITERAL: types.LONG,
    TokenKind.FLOAT_LITERAL: types.FLOAT,
    TokenKind.DOUBLE_LITERAL: types.DOUBLE,
    TokenKind.CHAR_LITERAL: types.CHAR,
    TokenKind.STRING_LITERAL: types.STRING,
    TokenKind.TRUE: types.BOOLEAN,
    TokenKind.FALSE: types.BOOLEAN,
    TokenKind.NULL: types.NULL,
})

ARITHMETIC_OPERATORS = frozenset({
    BinaryOperator.ADD,
    BinaryOperator.SUBTRACT,
    BinaryOperator.MULTIPLY,
    BinaryOperator.DIVIDE,
    BinaryOperator.REMAINDER,
})

RELATIONAL_OPERATORS = frozenset({
    BinaryOperator.LESS,
    BinaryOperator.GREATER,
    BinaryOperator.LESS_EQUAL,
    BinaryOperator.GREATER_EQUAL,
})

BITWISE_OPERATORS = frozenset({
    BinaryOperator.BITWISE_AND,
    BinaryOperator.BITWISE_OR,
    BinaryOperator.BITWISE_XOR,
})

SHIFT_OPERATORS = frozenset({
    BinaryOperator.LEFT_SHIFT,
    BinaryOperator.RIGHT_SHIFT,
    BinaryOperator.UNSIGNED_RIGHT_SHIFT,
})

SWITCH_TYPES = (types.INT, types.CHAR, types.BYTE, types.SHORT, types.STRING)


# =============================================================================
# Symbol Information
# =============================================================================

@dataclass
class LocalVariable:
    """A local variable or parameter and its slot."""
    name: str
    type: Type
    slot: int


@dataclass
class FieldInfo:
    name: str
    type: Type
    is_static: bool
    owner: str


@dataclass
class MethodInfo:
    """
    A method or constructor declared in the unit.

    Attributes:
        owner: Name of the declaring class
        is_vararg: True when the last parameter is variable arity
    """
    name: str
    parameter_types: List[Type]
    return_type: Type
    is_static: bool
    owner: str
    is_vararg: bool = False

    @property
    def descriptor(self) -> str:
        return method_descriptor(self.parameter_types, self.return_type)

    def accepts(self, argument_types: List[Type]) -> bool:
        """Check whether arguments of these types can be passed."""
        return self.expanded_parameters(argument_types) is not None

    def passes_array(self, argument_types: List[Type]) -> bool:
        """True when a vararg method is called with the array itself."""
        parameters = self.parameter_types
        return (
            len(argument_types) == len(parameters)
            and _assignable(argument_types[-1], parameters[-1])
        )

    def expanded_parameters(self, argument_types: List[Type]) -> Optional[List[Type]]:
        """
        Parameter types lined up with the arguments, or None if the
        arguments cannot be passed. The variable arity parameter is
        repeated once per trailing argument.
        """
        parameters = list(self.parameter_types)
        if self.is_vararg and not self.passes_array(argument_types):
            if len(argument_types) < len(parameters) - 1:
                return None
            component = parameters.pop().component_type
            parameters += [component] * (len(argument_types) - len(parameters))
        if len(parameters) != len(argument_types):
            return None
        if not all(_assignable(a, p) for a, p in zip(argument_types, parameters)):
            return None
        return parameters


def _assignable(actual: Type, expected: Type) -> bool:
    return actual.matches_expected(expected) or widens_to(actual, expected)


def _is_int_constant(expr: Expression) -> bool:
    """An int literal, optionally negated (-1)."""
    if isinstance(expr, UnaryExpression) and expr.operator is UnaryOperator.NEGATE:
        expr = expr.operand
    return isinstance(expr, LiteralExpression) and expr.kind in INTEGRAL_LITERALS


@dataclass
class ClassInfo:
    """Members of a class declared in the unit being compiled."""
    name: str
    superclass: Optional[Type]
    fields: Dict[str, FieldInfo] = field(default_factory=dict)
    methods: List[MethodInfo] = field(default_factory=list)
    constructors: List[MethodInfo] = field(default_factory=list)

    @property
    def type(self) -> Type:
        return Type.reference(self.name)


@dataclass
class MethodContext:
    """
    State of the method body being analyzed.

    Attributes:
        return_type: Declared result type (void for constructors)
        is_static: True in static methods and static initializers
        next_slot: Next free local variable slot
    """
    return_type: Type
    is_static: bool
    next_slot: int = 0


# =============================================================================
# Analysis Context
# =============================================================================

class Context:
    """
    Analysis state for one compilation unit.

    Holds the classes declared in the unit, the method being analyzed
    and its nested block scopes, and the enclosing loops and switches.
    analyze() is the entry point used by ASTNode.analyze().

    Attributes:
        reporter: Diagnostic sink for semantic errors
        filename: Source file name used in diagnostics
        classes: Classes declared in the unit, by name
    """

    def __init__(self, reporter: Optional[ErrorReporter] = None, filename: str = "<input>"):
        self.reporter = reporter if reporter is not None else ErrorReporter()
        self.filename = filename
        self.classes: Dict[str, ClassInfo] = {}
        self.current_class: Optional[ClassInfo] = None
        self.method: Optional[MethodContext] = None
        self.loop_depth = 0
        self.breakable_depth = 0
        self._scopes: List[Dict[str, LocalVariable]] = []
        self._error_baseline = self.reporter.count(SemanticError)
        self._analyzer = Analyzer(self)

    def analyze(self, node: ASTNode) -> ASTNode:
        """Analyze a subtree and return the rebuilt node."""
        return self._analyzer.visit(node)

    def error_has_occurred(self) -> bool:
        """True once this context has reported a semantic error."""
        return self.reporter.count(SemanticError) > self._error_baseline

    def semantic_error(self, line: int, message: str) -> None:
        self.reporter.report(self.filename, line, message, SemanticError)

    # =========================================================================
    # Scopes and Local Variables
    # =========================================================================

    def enter_method(self, return_type: Type, is_static: bool) -> None:
        """Start a method body; slot 0 holds `this` in instance methods."""
        self.method = MethodContext(return_type, is_static, 0 if is_static else 1)
        self._scopes = [{}]

    def exit_method(self) -> int:
        """Finish a method body and return the number of slots used."""
        local_count = self.method.next_slot if self.method is not None else 0
        self.method = None
        self._scopes = []
        return local_count

    def push_scope(self) -> None:
        self._scopes.append({})

    def pop_scope(self) -> None:
        self._scopes.pop()

    def define_local(self, line: int, name: str, var_type: Type) -> int:
        """
        Declare a local variable in the innermost scope.

        Redeclaring a name that is visible in the method is reported;
        the new declaration still gets its own slot.

        Returns:
            The slot assigned to the variable
        """
        if self.lookup(name) is not None:
            self.semantic_error(line, f"Redefining name: {name}")
        if self.method is None:
            self.enter_method(types.VOID, True)
        if not self._scopes:
            self._scopes.append({})
        slot = self.method.next_slot
        self.method.next_slot += max(1, var_type.word_size)
        self._scopes[-1][name] = LocalVariable(name, var_type, slot)
        return slot

    def lookup(self, name: str) -> Optional[LocalVariable]:
        """Find a local variable, innermost scope first."""
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    @property
    def is_static(self) -> bool:
        return self.method is not None and self.method.is_static

    # =========================================================================
    # Classes and Members
    # =========================================================================

    def declare_class(self, declaration: ClassDeclaration) -> ClassInfo:
        """Record the member signatures of a class declared in the unit."""
        info = ClassInfo(
            name=declaration.name,
            superclass=self.resolve_type(declaration.superclass) if declaration.superclass else None,
        )
        for member in declaration.members:
            if isinstance(member, FieldDeclaration):
                for declarator in member.declarators:
                    info.fields[declarator.name] = FieldInfo(
                        declarator.name,
                        self.resolve_type(declarator.type),
                        member.is_static,
                        declaration.name,
                    )
            elif isinstance(member, MethodDeclaration):
                info.methods.append(MethodInfo(
                    member.name,
                    [self.resolve_type(p.type) for p in member.parameters],
                    self.resolve_type(member.return_type),
                    member.is_static,
                    declaration.name,
                    bool(member.parameters) and member.parameters[-1].is_vararg,
                ))
            elif isinstance(member, ConstructorDeclaration):
                info.constructors.append(MethodInfo(
                    "<init>",
                    [self.resolve_type(p.type) for p in member.parameters],
                    types.VOID,
                    False,
                    declaration.name,
                    bool(member.parameters) and member.parameters[-1].is_vararg,
                ))
        if declaration.name in self.classes:
            self.semantic_error(declaration.line, f"Redefining class: {declaration.name}")
        self.classes[declaration.name] = info
        return info

    def resolve_type(self, var_type: Optional[Type]) -> Type:
        if var_type is None:
            return types.ANY
        return var_type.resolve()

    def _class_chain(self, class_name: str):
        """Yield the unit's classes from class_name up its superclasses."""
        seen = set()
        info = self.classes.get(class_name)
        while info is not None and info.name not in seen:
            seen.add(info.name)
            yield info
            if info.superclass is None:
                return
            info = self.classes.get(info.superclass.name)

    def is_fully_known(self, class_name: str) -> bool:
        """True when every superclass of class_name up to Object is in the unit."""
        chain = list(self._class_chain(class_name))
        if not chain:
            return False
        top = chain[-1].superclass
        return top is None or top == types.OBJECT

    def find_field(self, class_name: str, name: str) -> Optional[FieldInfo]:
        for info in self._class_chain(class_name):
            if name in info.fields:
                return info.fields[name]
        return None

    def find_method(self, class_name: str, name: str, argument_types: List[Type]) -> Optional[MethodInfo]:
        for info in self._class_chain(class_name):
            for method in info.methods:
                if method.name == name and method.accepts(argument_types):
                    return method
        return None

    def find_constructor(self, class_name: str, argument_types: List[Type]) -> Optional[MethodInfo]:
        info = self.classes.get(class_name)
        if info is None:
            return None
        for constructor in info.constructors:
            if constructor.accepts(argument_types):
                return constructor
        return None


# =============================================================================
# Analyzer
# =============================================================================

class Analyzer(ASTVisitor):
    """
    Implements analyze() for every node type.

    Each visit method analyzes the node's children, checks the node and
    returns a rebuilt node (dataclasses.replace) carrying the results.
    """

    def __init__(self, context: Context):
        self.context = context

    def generic_visit(self, node: ASTNode) -> ASTNode:
        return node

    def _error(self, line: int, message: str) -> None:
        self.context.semantic_error(line, message)

    def _analyze(self, node: Optional[ASTNode]) -> Optional[ASTNode]:
        if node is None:
            return None
        return self.visit(node)

    def _analyze_all(self, nodes: list) -> list:
        return [self._analyze(node) for node in nodes]

    def _expect(self, expr: Expression, expected: Type) -> None:
        """Report unless expr's type matches expected."""
        expr.resolved_type.must_match_expected(
            expr.line, expected, self.context.reporter, self.context.filename
        )

    def _coerce(self, expr: Expression, target: Type) -> Expression:
        """
        Wrap expr in a widening cast when its representation differs
        from target (int to long, float to double, ...).
        """
        actual = expr.resolved_type
        if (
            actual is None
            or target == types.ANY
            or actual == types.ANY
            or not (actual.is_numeric and target.is_numeric)
            or actual.opcode_prefix == target.opcode_prefix
        ):
            return expr
        return CastExpression(
            line=expr.line,
            resolved_type=target,
            target_type=target,
            expression=expr,
        )

    def _assign_value(self, line: int, value: Expression, target_type: Type) -> Expression:
        """
        Check that value may be stored into target_type and convert it.

        An int constant may initialize a byte, short or char.
        """
        actual = value.resolved_type
        if actual.matches_expected(target_type):
            return value
        if widens_to(actual, target_type):
            return self._coerce(value, target_type)
        if (
            _is_int_constant(value)
            and actual == types.INT
            and target_type in (types.BYTE, types.SHORT, types.CHAR)
        ):
            return value
        self._error(line, f"Type {actual} doesn't match type {target_type}")
        return value

    # =========================================================================
    # Declarations
    # =========================================================================

    def visit_CompilationUnit(self, node: CompilationUnit) -> CompilationUnit:
        logger.debug(f"Analyzing {node.filename}")
        for declaration in node.type_declarations:
            self.context.declare_class(declaration)
        return replace(node, type_declarations=self._analyze_all(node.type_declarations))

    def visit_ClassDeclaration(self, node: ClassDeclaration) -> ClassDeclaration:
        context = self.context
        outer = context.current_class
        context.current_class = context.classes.get(node.name) or context.declare_class(node)
        try:
            members = [self._analyze(member) for member in node.members]
        finally:
            context.current_class = outer
        return replace(
            node,
            superclass=context.resolve_type(node.superclass) if node.superclass else None,
            interfaces=[context.resolve_type(i) for i in node.interfaces],
            members=members,
        )

    def _analyze_parameters(self, parameters: List[FormalParameter]) -> List[FormalParameter]:
        analyzed = []
        for parameter in parameters:
            param_type = self.context.resolve_type(parameter.type)
            slot = self.context.define_local(parameter.line, parameter.name, param_type)
            analyzed.append(replace(parameter, type=param_type, slot=slot))
        return analyzed

    def visit_MethodDeclaration(self, node: MethodDeclaration) -> MethodDeclaration:
        context = self.context
        return_type = context.resolve_type(node.return_type)
        context.enter_method(return_type, node.is_static)
        parameters = self._analyze_parameters(node.parameters)
        body = self._analyze(node.body)
        local_count = context.exit_method()

        if body is None and not ({"abstract", "native"} & set(node.modifiers)):
            self._error(node.line, f"Method {node.name} must have a body or be abstract")
        if body is not None and "abstract" in node.modifiers:
            self._error(node.line, f"Abstract method {node.name} cannot have a body")

        return replace(
            node,
            return_type=return_type,
            parameters=parameters,
            exceptions=[context.resolve_type(e) for e in node.exceptions],
            body=body,
            local_count=local_count,
        )

    def visit_ConstructorDeclaration(self, node: ConstructorDeclaration) -> ConstructorDeclaration:
        context = self.context
        if context.current_class is not None and node.name != context.current_class.name:
            self._error(node.line, f"Invalid method declaration; return type required for {node.name}")
        context.enter_method(types.VOID, False)
        parameters = self._analyze_parameters(node.parameters)
        body = self._analyze(node.body)
        local_count = context.exit_method()
        return replace(
            node,
            parameters=parameters,
            exceptions=[context.resolve_type(e) for e in node.exceptions],
            body=body,
            local_count=local_count,
        )

    def visit_FieldDeclaration(self, node: FieldDeclaration):
        # Initializers run in <init> or <clinit>, which declare no locals
        context = self.context
        context.enter_method(types.VOID, node.is_static)
        declarators = []
        for declarator in node.declarators:
            field_type = context.resolve_type(declarator.type)
            initializer = self._analyze_initializer(declarator.initializer, field_type)
            declarators.append(replace(declarator, type=field_type, initializer=initializer))
        context.exit_method()
        return replace(node, declarators=declarators)

    def visit_InitializerBlock(self, node):
        self.context.enter_method(types.VOID, node.is_static)
        body = self._analyze(node.body)
        return replace(node, body=body, local_count=self.context.exit_method())

    def _analyze_initializer(self, initializer: Optional[Expression], var_type: Type) -> Optional[Expression]:
        if initializer is None:
            return None
        if isinstance(initializer, ArrayInitializer):
            return self._analyze(replace(initializer, type=var_type))
        initializer = self._analyze(initializer)
        return self._assign_value(initializer.line, initializer, var_type)

    # =========================================================================
    # Statements
    # =========================================================================

    def visit_Block(self, node: Block) -> Block:
        self.context.push_scope()
        statements = self._analyze_all(node.statements)
        self.context.pop_scope()
        return replace(node, statements=statements)

    def visit_VariableDeclaration(self, node):
        declarators = []
        for declarator in node.declarators:
            declarators.append(self._analyze_declarator(declarator))
        return replace(node, declarators=declarators)

    def _analyze_declarator(self, declarator: VariableDeclarator) -> VariableDeclarator:
        var_type = self.context.resolve_type(declarator.type)
        # The initializer cannot see the variable it initializes
        initializer = self._analyze_initializer(declarator.initializer, var_type)
        slot = self.context.define_local(declarator.line, declarator.name, var_type)
        return replace(declarator, type=var_type, initializer=initializer, slot=slot)

    def visit_StatementExpression(self, node):
        return replace(node, expression=self._analyze(node.expression))

    def _condition(self, condition: Expression) -> Expression:
        condition = self._analyze(condition)
        self._expect(condition, types.BOOLEAN)
        return condition

    def _loop_body(self, body):
        self.context.loop_depth += 1
        self.context.breakable_depth += 1
        try:
            return self._analyze(body)
        finally:
            self.context.loop_depth -= 1
            self.context.breakable_depth -= 1

    def visit_IfStatement(self, node):
        return replace(
            node,
            condition=self._condition(node.condition),
            then_part=self._analyze(node.then_part),
            else_part=self._analyze(node.else_part),
        )

    def visit_WhileStatement(self, node):
        condition = self._condition(node.condition)
        return replace(node, condition=condition, body=self._loop_body(node.body))

    def visit_DoWhileStatement(self, node):
        body = self._loop_body(node.body)
        return replace(node, body=body, condition=self._condition(node.condition))

    def visit_DoUntilStatement(self, node):
        body = self._loop_body(node.body)
        return replace(node, body=body, condition=self._condition(node.condition))

    def visit_ForStatement(self, node):
        self.context.push_scope()
        init = self._analyze_all(node.init)
        condition = self._condition(node.condition) if node.condition is not None else None
        update = self._analyze_all(node.update)
        body = self._loop_body(node.body)
        self.context.pop_scope()
        return replace(node, init=init, condition=condition, update=update, body=body)

    def visit_ForEachStatement(self, node):
        context = self.context
        context.push_scope()
        collection = self._analyze(node.collection)
        var_type = context.resolve_type(node.variable.type)

        collection_type = collection.resolved_type
        if collection_type.is_array:
            element = collection_type.component_type
            if not (element.matches_expected(var_type) or widens_to(element, var_type)):
                self._error(node.line, f"Type {element} doesn't match type {var_type}")
        elif collection_type != types.ANY:
            self._error(node.line, f"for-each requires an array; found {collection_type}")

        slot = context.define_local(node.variable.line, node.variable.name, var_type)
        variable = replace(node.variable, type=var_type, slot=slot)
        body = self._loop_body(node.body)
        context.pop_scope()
        return replace(node, variable=variable, collection=collection, body=body)

    def visit_ReturnStatement(self, node):
        method = self.context.method
        return_type = method.return_type if method is not None else types.VOID
        if node.expression is None:
            if return_type != types.VOID:
                self._error(node.line, "Missing return value")
            return node

        expression = self._analyze(node.expression)
        if return_type == types.VOID:
            self._error(node.line, "Cannot return a value from a void method")
            return replace(node, expression=expression)
        return replace(node, expression=self._assign_value(node.line, expression, return_type))

    def visit_BreakStatement(self, node):
        if self.context.breakable_depth == 0:
            self._error(node.line, "break outside switch or loop")
        return node

    def visit_ContinueStatement(self, node):
        if self.context.loop_depth == 0:
            self._error(node.line, "continue outside of loop")
        return node

    def visit_ThrowStatement(self, node):
        expression = self._analyze(node.expression)
        thrown = expression.resolved_type
        if not (thrown.is_reference or thrown == types.ANY):
            self._error(node.line, f"Type {thrown} cannot be thrown")
        return replace(node, expression=expression)

    def visit_TryStatement(self, node):
        body = self._analyze(node.body)
        catches = []
        for clause in node.catches:
            self.context.push_scope()
            parameter = self._analyze_parameters([clause.parameter])[0]
            if not (parameter.type.is_reference or parameter.type == types.ANY):
                self._error(clause.line, f"Type {parameter.type} cannot be caught")
            catches.append(replace(clause, parameter=parameter, body=self._analyze(clause.body)))
            self.context.pop_scope()
        return replace(node, body=body, catches=catches, finally_block=self._analyze(node.finally_block))

    def visit_SwitchStatement(self, node):
        context = self.context
        condition = self._analyze(node.condition)
        clause_type = condition.resolved_type
        clause_type.must_match_one_of(condition.line, context.reporter, context.filename, *SWITCH_TYPES)

        context.breakable_depth += 1
        context.push_scope()
        groups = []
        for group in node.groups:
            labels = []
            for label in group.labels:
                if label is not None:
                    label = self._analyze(label)
                    self._check_case_label(label, clause_type)
                labels.append(label)
            groups.append(replace(group, labels=labels, statements=self._analyze_all(group.statements)))
        context.pop_scope()
        context.breakable_depth -= 1
        return replace(node, condition=condition, groups=groups)

    def _check_case_label(self, label: Expression, clause_type: Type) -> None:
        label_type = label.resolved_type
        if label_type.is_integral and clause_type.is_integral:
            return
        self._expect(label, clause_type)

    # =========================================================================
    # Expressions: Operators
    # =========================================================================

    def visit_BinaryExpression(self, node: BinaryExpression) -> Expression:
        lhs = self._analyze(node.lhs)
        rhs = self._analyze(node.rhs)
        operator = node.operator
        left, right = lhs.resolved_type, rhs.resolved_type

        if operator is BinaryOperator.ADD and types.STRING in (left, right):
            return StringConcatenation(line=node.line, lhs=lhs, rhs=rhs, resolved_type=types.STRING)

        if operator in ARITHMETIC_OPERATORS or operator in RELATIONAL_OPERATORS:
            common = promote(left, right)
            if common is None:
                self._error(node.line, f"Invalid operand types for {operator.symbol}")
                common = types.ANY
            result = common if operator in ARITHMETIC_OPERATORS else types.BOOLEAN
            return replace(
                node,
                lhs=self._coerce(lhs, common),
                rhs=self._coerce(rhs, common),
                resolved_type=result,
            )

        if operator in (BinaryOperator.LOGICAL_AND, BinaryOperator.LOGICAL_OR):
            self._expect(lhs, types.BOOLEAN)
            self._expect(rhs, types.BOOLEAN)
            return replace(node, lhs=lhs, rhs=rhs, resolved_type=types.BOOLEAN)

        if operator in (BinaryOperator.EQUAL, BinaryOperator.NOT_EQUAL):
            common = promote(left, right)
            if common is not None:
                lhs, rhs = self._coerce(lhs, common), self._coerce(rhs, common)
            elif not (left.matches_expected(right) or right.matches_expected(left)):
                self._error(node.line, f"Type {right} doesn't match type {left}")
            return replace(node, lhs=lhs, rhs=rhs, resolved_type=types.BOOLEAN)

        if operator in BITWISE_OPERATORS:
            if types.BOOLEAN in (left, right) and {left, right} <= {types.BOOLEAN, types.ANY}:
                return replace(node, lhs=lhs, rhs=rhs, resolved_type=types.BOOLEAN)
            common = promote(left, right)
            if common is None or not (common.is_integral or common == types.ANY):
                self._error(node.line, f"Invalid operand types for {operator.symbol}")
                common = types.ANY
            return replace(
                node,
                lhs=self._coerce(lhs, common),
                rhs=self._coerce(rhs, common),
                resolved_type=common,
            )

        # Shifts: the result has the (promoted) type of the left operand
        result = self._integral_operand(lhs, operator)
        self._integral_operand(rhs, operator)
        return replace(
            node,
            lhs=self._coerce(lhs, result),
            rhs=self._coerce(rhs, types.INT),
            resolved_type=result,
        )

    def _integral_operand(self, expr: Expression, operator) -> Type:
        """Check an operand of a shift and return its promoted type."""
        operand_type = expr.resolved_type
        if operand_type == types.ANY:
            return types.ANY
        if not operand_type.is_integral:
            self._error(expr.line, f"Invalid operand types for {operator.symbol}")
            return types.ANY
        return promote(operand_type, types.INT)

    def visit_StringConcatenation(self, node):
        return replace(
            node,
            lhs=self._analyze(node.lhs),
            rhs=self._analyze(node.rhs),
            resolved_type=types.STRING,
        )

    @staticmethod
    def _is_lvalue(expr: Expression) -> bool:
        if isinstance(expr, FieldSelection):
            return not (
                expr.name == "length"
                and expr.target is not None
                and expr.target.resolved_type is not None
                and expr.target.resolved_type.is_array
            )
        return isinstance(expr, (VariableExpression, ArrayExpression))

    def visit_AssignmentExpression(self, node: AssignmentExpression) -> Expression:
        lhs = self._analyze(node.lhs)
        rhs = self._analyze(node.rhs)
        if not self._is_lvalue(lhs):
            self._error(node.line, "Illegal lhs for assignment")
            return replace(node, lhs=lhs, rhs=rhs, resolved_type=types.ANY)

        target = lhs.resolved_type
        operator = node.operator
        if operator is AssignmentOperator.ASSIGN:
            rhs = self._assign_value(node.line, rhs, target)
        elif operator is AssignmentOperator.ADD_ASSIGN and target == types.STRING:
            pass
        elif operator.binary_operator in SHIFT_OPERATORS:
            self._integral_operand(lhs, operator)
            self._integral_operand(rhs, operator)
            rhs = self._coerce(rhs, types.INT)
        elif operator.binary_operator in BITWISE_OPERATORS and target == types.BOOLEAN:
            self._expect(rhs, types.BOOLEAN)
        else:
            if target != types.ANY and not target.is_numeric:
                self._error(node.line, f"Invalid operand types for {operator.symbol}")
            elif operator.binary_operator in BITWISE_OPERATORS and not (target.is_integral or target == types.ANY):
                self._error(node.line, f"Invalid operand types for {operator.symbol}")
            else:
                rhs = self._assign_value(node.line, rhs, target)

        return replace(node, lhs=lhs, rhs=rhs, resolved_type=target)

    def visit_UnaryExpression(self, node):
        operator = node.operator
        if operator is UnaryOperator.NEGATE and isinstance(node.operand, LiteralExpression):
            operand = self._literal(node.operand, negated=True)
        else:
            operand = self._analyze(node.operand)
        operand_type = operand.resolved_type

        if operator is UnaryOperator.LOGICAL_NOT:
            self._expect(operand, types.BOOLEAN)
            result = types.BOOLEAN
        elif operator is UnaryOperator.BITWISE_NOT:
            result = self._integral_operand(operand, operator)
        elif operator.is_increment:
            if not self._is_lvalue(operand):
                self._error(node.line, f"Operand of {operator.symbol} must be a variable")
            elif not (operand_type.is_numeric or operand_type == types.ANY):
                self._error(node.line, f"Invalid operand types for {operator.symbol}")
            result = operand_type
        else:
            result = promote(operand_type, types.INT)
            if result is None:
                self._error(node.line, f"Invalid operand types for {operator.symbol}")
                result = types.ANY
            operand = self._coerce(operand, result)

        return replace(node, operand=operand, resolved_type=result)

    def visit_TernaryExpression(self, node):
        condition = self._condition(node.condition)
        then_part = self._analyze(node.then_part)
        else_part = self._analyze(node.else_part)
        then_type, else_type = then_part.resolved_type, else_part.resolved_type

        if then_type == else_type:
            common = then_type
        elif then_type.is_numeric and else_type.is_numeric:
            common = promote(then_type, else_type)
            then_part, else_part = self._coerce(then_part, common), self._coerce(else_part, common)
        elif then_type.matches_expected(else_type):
            common = else_type
        elif else_type.matches_expected(then_type):
            common = then_type
        else:
            self._error(node.line, f"Type {else_type} doesn't match type {then_type}")
            common = types.ANY

        return replace(
            node,
            condition=condition,
            then_part=then_part,
            else_part=else_part,
            resolved_type=common,
        )

    def visit_InstanceOfExpression(self, node):
        expression = self._analyze(node.expression)
        target_type = self.context.resolve_type(node.target_type)
        operand_type = expression.resolved_type
        if not (operand_type.is_reference or operand_type == types.ANY):
            self._error(node.line, f"Type {operand_type} is not a reference type")
        return replace(node, expression=expression, target_type=target_type, resolved_type=types.BOOLEAN)

    def visit_CastExpression(self, node):
        expression = self._analyze(node.expression)
        target = self.context.resolve_type(node.target_type)
        actual = expression.resolved_type
        allowed = (
            actual == target
            or types.ANY in (actual, target)
            or (actual.is_numeric and target.is_numeric)
            or (actual.is_reference and target.is_reference)
        )
        if not allowed:
            self._error(node.line, f"Cannot cast {actual} to {target}")
        return replace(node, target_type=target, expression=expression, resolved_type=target)

    # =========================================================================
    # Expressions: Names and Members
    # =========================================================================

    def visit_LiteralExpression(self, node):
        return self._literal(node, negated=False)

    def _literal(self, node: LiteralExpression, negated: bool) -> LiteralExpression:
        # 2147483648 and 9223372036854775808L only exist as -MIN_VALUE
        decimal = not node.image.startswith("0")
        if node.kind in (TokenKind.INT_LITERAL, TokenKind.LONG_LITERAL) and decimal and not negated:
            bits = 64 if node.kind is TokenKind.LONG_LITERAL else 32
            if node.value == 1 << (bits - 1):
                self._error(node.line, f"Integer number too large: {node.image}")
        return replace(node, resolved_type=LITERAL_TYPES.get(node.kind, types.ANY))

    def visit_WildExpression(self, node):
        return replace(node, resolved_type=types.ANY)

    def visit_VariableExpression(self, node: VariableExpression) -> Expression:
        context = self.context
        local = context.lookup(node.name)
        if local is not None:
            return replace(node, slot=local.slot, resolved_type=local.type)

        current = context.current_class
        info = context.find_field(current.name, node.name) if current is not None else None
        if info is not None:
            if context.is_static and not info.is_static:
                self._error(node.line, f"Non-static field {node.name} cannot be referenced from a static context")
            return replace(node, field_owner=info.owner, is_static=info.is_static, resolved_type=info.type)

        if current is not None and not context.is_fully_known(current.name):
            # May be inherited from a superclass outside this unit
            return replace(node, field_owner=current.name, resolved_type=types.ANY)

        self._error(node.line, f"Cannot find name: {node.name}")
        return replace(node, resolved_type=types.ANY)

    def _reclassify(self, line: int, ambiguous_part: str) -> Optional[Expression]:
        """
        Turn the prefix of a qualified name into an expression.

        Returns None when the first component is not a local variable or
        field, in which case the prefix names a class.
        """
        context = self.context
        first, *rest = ambiguous_part.split(".")
        current = context.current_class
        is_name = context.lookup(first) is not None or (
            current is not None and context.find_field(current.name, first) is not None
        )
        if not is_name:
            return None
        target: Expression = VariableExpression(line=line, name=first)
        for name in rest:
            target = FieldSelection(line=line, target=target, name=name)
        return target

    def visit_FieldSelection(self, node: FieldSelection) -> Expression:
        context = self.context
        target = node.target
        if node.ambiguous_part is not None:
            target = self._reclassify(node.line, node.ambiguous_part)

        if target is None:
            # ClassName.field
            info = context.find_field(node.ambiguous_part, node.name)
            if info is not None:
                if not info.is_static:
                    self._error(node.line, f"Non-static field {node.name} cannot be referenced from a static context")
                return replace(node, owner=info.owner, is_static=True, resolved_type=info.type)
            if node.ambiguous_part in context.classes and context.is_fully_known(node.ambiguous_part):
                self._error(node.line, f"Cannot find field: {node.ambiguous_part}.{node.name}")
            return replace(node, owner=node.ambiguous_part, is_static=True, resolved_type=types.ANY)

        target = self._analyze(target)
        target_type = target.resolved_type
        rebuilt = replace(node, target=target, ambiguous_part=None)

        if target_type.is_array:
            if node.name != "length":
                self._error(node.line, f"Cannot find field: {node.name} in {target_type}")
                return replace(rebuilt, resolved_type=types.ANY)
            return replace(rebuilt, resolved_type=types.INT)

        if target_type.is_primitive:
            self._error(node.line, f"Type {target_type} has no fields")
            return replace(rebuilt, resolved_type=types.ANY)

        info = context.find_field(target_type.name, node.name)
        if info is not None:
            return replace(rebuilt, owner=info.owner, is_static=info.is_static, resolved_type=info.type)
        if target_type.name in context.classes and context.is_fully_known(target_type.name):
            self._error(node.line, f"Cannot find field: {node.name} in {target_type}")
        return replace(rebuilt, owner=target_type.name, resolved_type=types.ANY)

    def _call_owner(self, target: Expression) -> str:
        target_type = target.resolved_type
        if target_type.kind is TypeKind.REFERENCE:
            return target_type.name
        return types.OBJECT.name

    def visit_MessageExpression(self, node: MessageExpression) -> Expression:
        context = self.context
        arguments = self._analyze_all(node.arguments)
        argument_types = [argument.resolved_type for argument in arguments]

        target = node.target
        owner: Optional[str] = None
        static_call = False
        if node.ambiguous_part is not None:
            target = self._reclassify(node.line, node.ambiguous_part)
            prefix, _, last = node.ambiguous_part.rpartition(".")
            if target is None and prefix and last[:1].islower():
                # System.out.println: a static field of a library class
                target = FieldSelection(line=node.line, ambiguous_part=prefix, name=last)
            elif target is None:
                owner, static_call = Type.reference(node.ambiguous_part).resolve().name, True
        if target is not None:
            target = self._analyze(target)
            owner = self._call_owner(target)
        elif owner is None and context.current_class is not None:
            owner = context.current_class.name

        rebuilt = replace(node, target=target, ambiguous_part=None if target is not None else node.ambiguous_part)
        method = context.find_method(owner, node.name, argument_types) if owner else None

        if method is None:
            if owner in context.classes and context.is_fully_known(owner):
                signature = ", ".join(str(t) for t in argument_types)
                self._error(node.line, f"Cannot find method for: {node.name}({signature})")
            return replace(
                rebuilt,
                arguments=arguments,
                owner=owner or types.OBJECT.name,
                descriptor=method_descriptor(argument_types, types.ANY),
                is_static=static_call or (target is None and context.is_static),
                resolved_type=types.ANY,
            )

        if not method.is_static and (static_call or (target is None and context.is_static)):
            self._error(node.line, f"Non-static method {node.name} cannot be referenced from a static context")
        return replace(
            rebuilt,
            arguments=self._pass_arguments(node.line, arguments, method),
            owner=method.owner,
            descriptor=method.descriptor,
            is_static=method.is_static,
            resolved_type=method.return_type,
        )

    def _pass_arguments(self, line: int, arguments: List[Expression], method: MethodInfo) -> List[Expression]:
        """
        Convert arguments to the parameter types of method.

        Trailing arguments of a variable arity call are packed into a
        new array, as if the caller had written new T[]{...}.
        """
        argument_types = [argument.resolved_type for argument in arguments]
        parameters = method.expanded_parameters(argument_types) or method.parameter_types
        converted = [
            self._coerce(argument, parameter)
            for argument, parameter in zip(arguments, parameters)
        ] + arguments[len(parameters):]
        if not method.is_vararg or method.passes_array(argument_types):
            return converted

        fixed = len(method.parameter_types) - 1
        array_type = method.parameter_types[-1]
        packed = NewArray(
            line=line,
            type=array_type,
            initializer=ArrayInitializer(
                line=line,
                type=array_type,
                initials=converted[fixed:],
                resolved_type=array_type,
            ),
            resolved_type=array_type,
        )
        return converted[:fixed] + [packed]

    def visit_ArrayExpression(self, node):
        array = self._analyze(node.array)
        index = self._analyze(node.index)
        if not (index.resolved_type.is_integral or index.resolved_type == types.ANY) or index.resolved_type == types.LONG:
            self._error(index.line, f"Type {index.resolved_type} doesn't match type int")

        array_type = array.resolved_type
        if array_type.is_array:
            element = array_type.component_type
        else:
            if array_type != types.ANY:
                self._error(node.line, f"Type {array_type} is not an array")
            element = types.ANY
        return replace(node, array=array, index=index, resolved_type=element)

    def visit_ThisExpression(self, node):
        context = self.context
        if context.is_static:
            self._error(node.line, "Cannot use this in a static context")
        current = context.current_class
        return replace(node, resolved_type=current.type if current is not None else types.ANY)

    def visit_SuperExpression(self, node):
        context = self.context
        if context.is_static:
            self._error(node.line, "Cannot use super in a static context")
        current = context.current_class
        superclass = current.superclass if current is not None else None
        return replace(node, resolved_type=superclass or types.OBJECT)

    def _resolve_constructor(self, line: int, class_name: Optional[str], arguments: List[Expression]):
        """Return the constructor descriptor and the converted arguments."""
        argument_types = [argument.resolved_type for argument in arguments]
        constructor = self.context.find_constructor(class_name, argument_types) if class_name else None
        if constructor is None:
            return method_descriptor(argument_types, types.VOID), arguments
        return constructor.descriptor, self._pass_arguments(line, arguments, constructor)

    def visit_ThisConstruction(self, node):
        current = self.context.current_class
        descriptor, arguments = self._resolve_constructor(
            node.line, current.name if current else None, self._analyze_all(node.arguments)
        )
        return replace(node, arguments=arguments, descriptor=descriptor, resolved_type=types.VOID)

    def visit_SuperConstruction(self, node):
        current = self.context.current_class
        superclass = current.superclass if current is not None else None
        descriptor, arguments = self._resolve_constructor(
            node.line, superclass.name if superclass else None, self._analyze_all(node.arguments)
        )
        return replace(node, arguments=arguments, descriptor=descriptor, resolved_type=types.VOID)

    def visit_NewObject(self, node):
        context = self.context
        created = context.resolve_type(node.type)
        arguments = self._analyze_all(node.arguments)
        if created.is_primitive:
            self._error(node.line, f"Cannot instantiate primitive type {created}")
            return replace(node, type=created, arguments=arguments, resolved_type=types.ANY)

        argument_types = [argument.resolved_type for argument in arguments]
        info = context.classes.get(created.name)
        if info is not None and (info.constructors or argument_types):
            if context.find_constructor(created.name, argument_types) is None:
                signature = ", ".join(str(t) for t in argument_types)
                self._error(node.line, f"Cannot find constructor: {created}({signature})")
        descriptor, arguments = self._resolve_constructor(node.line, created.name, arguments)
        return replace(
            node,
            type=created,
            arguments=arguments,
            descriptor=descriptor,
            resolved_type=created,
        )

    def visit_NewArray(self, node):
        created = self.context.resolve_type(node.type)
        dimensions = []
        for dimension in self._analyze_all(node.dimensions):
            if not (dimension.resolved_type.is_integral or dimension.resolved_type == types.ANY):
                self._error(dimension.line, f"Type {dimension.resolved_type} doesn't match type int")
            dimensions.append(dimension)
        initializer = None
        if node.initializer is not None:
            initializer = self._analyze(replace(node.initializer, type=created))
        return replace(node, type=created, dimensions=dimensions, initializer=initializer, resolved_type=created)

    def visit_ArrayInitializer(self, node):
        array_type = self.context.resolve_type(node.type)
        if not array_type.is_array:
            if array_type != types.ANY:
                self._error(node.line, f"Type {array_type} is not an array")
            component = types.ANY
        else:
            component = array_type.component_type

        initials = []
        for initial in node.initials:
            initials.append(self._analyze_initializer(initial, component))
        return replace(node, type=array_type, initials=initials, resolved_type=array_type)

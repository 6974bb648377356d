# =============================================================================
# test_parser.py - Parser Tests
# =============================================================================
# Tests for the recursive descent parser.
#
# Test coverage includes:
#   - Compilation units, classes and members
#   - Statements, including do-until, for-each, try and switch
#   - Operator precedence and associativity
#   - Cast / parenthesized expression disambiguation
#   - Panic-mode recovery (one diagnostic per failure region)
#   - Duplicate switch labels and modifier checks
# =============================================================================

import logging

import pytest

from jminus import types
from jminus.ast import (
    ArrayExpression,
    AssignmentExpression,
    AssignmentOperator,
    BinaryExpression,
    BinaryOperator,
    CastExpression,
    ClassDeclaration,
    ConstructorDeclaration,
    DoUntilStatement,
    DoWhileStatement,
    FieldDeclaration,
    FieldSelection,
    ForEachStatement,
    ForStatement,
    InitializerBlock,
    InstanceOfExpression,
    LiteralExpression,
    MessageExpression,
    MethodDeclaration,
    NewArray,
    NewObject,
    StatementExpression,
    SwitchStatement,
    TernaryExpression,
    ThrowStatement,
    TryStatement,
    UnaryExpression,
    UnaryOperator,
    VariableDeclaration,
    VariableExpression,
    WildExpression,
)
from jminus.errors import ErrorReporter, ParseError
from jminus.lexer import TokenKind
from jminus.parser import parse_source
from jminus.types import Type


# =============================================================================
# Helper Functions
# =============================================================================

def parse_unit(source: str):
    """Parse a compilation unit and return (unit, parser)."""
    parser = parse_source(source, "<test>")
    return parser.parse_compilation_unit(), parser


def parse_expr(source: str):
    parser = parse_source(source, "<test>")
    expression = parser.parse_expression()
    assert not parser.error_has_occurred(), parser.reporter.messages()
    return expression


def parse_body(statements: str):
    """Parse statements inside a method body and return them."""
    unit, parser = parse_unit(f"class A {{ void f() {{ {statements} }} }}")
    assert not parser.error_has_occurred(), parser.reporter.messages()
    return unit.type_declarations[0].members[0].body.statements


def var(name: str) -> VariableExpression:
    return VariableExpression(line=0, name=name)


def lit(image: str) -> LiteralExpression:
    return LiteralExpression(line=0, kind=TokenKind.INT_LITERAL, image=image)


def binary(operator: BinaryOperator, lhs, rhs) -> BinaryExpression:
    return BinaryExpression(line=0, operator=operator, lhs=lhs, rhs=rhs)


# =============================================================================
# Declaration Tests
# =============================================================================

class TestDeclarations:
    """Compilation units, classes and class members."""

    def test_empty_class(self):
        unit, parser = parse_unit("class A { }")
        assert not parser.error_has_occurred()
        [cls] = unit.type_declarations
        assert isinstance(cls, ClassDeclaration)
        assert cls.name == "A"
        assert cls.superclass == types.OBJECT

    def test_package_and_imports(self):
        unit, _ = parse_unit("package a.b; import java.util.*; import x.Y; class A { }")
        assert unit.package_name == "a.b"
        assert [(i.name, i.is_wildcard) for i in unit.imports] == [
            ("java.util", True),
            ("x.Y", False),
        ]

    def test_extends_and_implements(self):
        unit, _ = parse_unit("public class B extends A implements I, J { }")
        cls = unit.type_declarations[0]
        assert cls.modifiers == ["public"]
        assert cls.superclass == Type.reference("A")
        assert cls.interfaces == [Type.reference("I"), Type.reference("J")]

    def test_members(self):
        unit, parser = parse_unit("""
            class A {
                private int x, y = 2;
                A(int x) { }
                static int twice(int v) { return v * 2; }
                abstract void hook();
                static { }
                { }
            }
        """)
        assert not parser.error_has_occurred()
        field, constructor, method, hook, static_block, instance_block = unit.type_declarations[0].members
        assert isinstance(field, FieldDeclaration)
        assert [d.name for d in field.declarators] == ["x", "y"]
        assert isinstance(constructor, ConstructorDeclaration)
        assert constructor.parameters[0].type == types.INT
        assert isinstance(method, MethodDeclaration)
        assert method.is_static and method.return_type == types.INT
        assert hook.body is None
        assert isinstance(static_block, InitializerBlock) and static_block.is_static
        assert isinstance(instance_block, InitializerBlock) and not instance_block.is_static

    def test_array_types(self):
        unit, _ = parse_unit("class A { int[][] grid; String[] names; }")
        grid, names = unit.type_declarations[0].members
        assert grid.declarators[0].type == Type.array_of(Type.array_of(types.INT))
        assert names.declarators[0].type == Type.array_of(Type.reference("String"))

    def test_vararg_parameter(self):
        unit, _ = parse_unit("class A { void f(int n, String... rest) { } }")
        rest = unit.type_declarations[0].members[0].parameters[1]
        assert rest.is_vararg
        assert rest.type == Type.array_of(Type.reference("String"))

    def test_vararg_must_be_last(self):
        _, parser = parse_unit("class A { void f(int... a, int b) { } }")
        assert parser.reporter.messages() == [
            "<test>:1: Variable arity parameter must be the last parameter"
        ]

    def test_throws_clause(self):
        unit, _ = parse_unit("class A { void f() throws E1, E2 { } }")
        assert unit.type_declarations[0].members[0].exceptions == [
            Type.reference("E1"), Type.reference("E2"),
        ]

    def test_access_conflict(self):
        _, parser = parse_unit("public private class A { }")
        assert "Access conflict in modifiers" in parser.reporter.messages()[0]

    def test_repeated_modifier(self):
        _, parser = parse_unit("class A { static static int x; }")
        assert "Repeated modifier: static" in parser.reporter.messages()[0]


# =============================================================================
# Statement Tests
# =============================================================================

class TestStatements:
    """Statement parsing."""

    def test_local_declaration_vs_expression(self):
        declaration, assignment = parse_body("int x = 1; x = 2;")
        assert isinstance(declaration, VariableDeclaration)
        assert isinstance(assignment, StatementExpression)
        assert assignment.expression.is_statement_expression

    def test_qualified_type_declaration(self):
        [declaration] = parse_body("java.lang.String s = null;")
        assert declaration.declarators[0].type == Type.reference("java.lang.String")

    def test_do_until(self):
        [loop] = parse_body("do x++; until (x > 3);")
        assert isinstance(loop, DoUntilStatement)

    def test_do_while(self):
        [loop] = parse_body("do { x--; } while (x > 0);")
        assert isinstance(loop, DoWhileStatement)

    def test_classic_for(self):
        [loop] = parse_body("for (int i = 0, j = 1; i < 10; i++, j++) { }")
        assert isinstance(loop, ForStatement)
        assert len(loop.init) == 1 and len(loop.init[0].declarators) == 2
        assert len(loop.update) == 2

    def test_empty_for(self):
        [loop] = parse_body("for (;;) break;")
        assert loop.init == [] and loop.condition is None and loop.update == []

    def test_for_each(self):
        [loop] = parse_body("for (final int v : values) sum += v;")
        assert isinstance(loop, ForEachStatement)
        assert loop.variable.name == "v" and loop.variable.is_final
        assert loop.collection == var("values")

    def test_try_catch_finally(self):
        [statement] = parse_body("try { f(); } catch (E e) { } catch (F g) { } finally { }")
        assert isinstance(statement, TryStatement)
        assert [c.parameter.name for c in statement.catches] == ["e", "g"]
        assert statement.finally_block is not None

    def test_try_alone_is_error(self):
        _, parser = parse_unit("class A { void f() { try { } } }")
        assert parser.reporter.messages() == [
            "<test>:1: try requires at least one catch or a finally clause"
        ]

    def test_throw_new(self):
        [statement] = parse_body("throw new E();")
        assert isinstance(statement, ThrowStatement) and statement.is_new
        assert isinstance(statement.expression, NewObject)

    def test_switch_groups(self):
        [switch] = parse_body("switch (x) { case 1: case 2: a(); break; default: b(); }")
        assert isinstance(switch, SwitchStatement)
        assert [len(g.labels) for g in switch.groups] == [2, 1]
        assert switch.groups[1].labels == [None]
        assert len(switch.groups[0].statements) == 2

    def test_invalid_statement_expression(self):
        _, parser = parse_unit("class A { void f() { x + 1; } }")
        assert parser.reporter.messages() == [
            "<test>:1: Invalid statement expression; it does not have a side-effect"
        ]


class TestSwitchDuplicates:
    """Duplicate case labels are rejected."""

    @pytest.mark.parametrize("labels", [
        "case 1: a(); case 1: b();",
        "case 1: case 1: a();",
        "case 'a': a(); case 97: b();",
        "case 0x10: a(); case 16: b();",
        "default: a(); default: b();",
        "case \"x\": a(); case \"x\": b();",
    ])
    def test_duplicate_reported(self, labels):
        unit, parser = parse_unit(f"class A {{ void f() {{ switch (x) {{ {labels} }} }} }}")
        assert parser.reporter.messages() == ["<test>:1: No duplicate cases are allowed"]
        switch = unit.type_declarations[0].members[0].body.statements[0]
        assert len(switch.groups) <= 1

    def test_distinct_labels_accepted(self):
        [switch] = parse_body("switch (c) { case 'a': a(); case 'b': b(); case 1: c(); }")
        assert len(switch.groups) == 3


# =============================================================================
# Expression Tests
# =============================================================================

class TestPrecedence:
    """Operator precedence and associativity."""

    def test_multiplication_binds_tighter(self):
        assert parse_expr("a + b * c") == binary(
            BinaryOperator.ADD, var("a"), binary(BinaryOperator.MULTIPLY, var("b"), var("c")),
        )

    def test_subtraction_left_associative(self):
        assert parse_expr("a - b - c") == binary(
            BinaryOperator.SUBTRACT, binary(BinaryOperator.SUBTRACT, var("a"), var("b")), var("c"),
        )

    def test_assignment_right_associative(self):
        expression = parse_expr("a = b += c")
        assert isinstance(expression, AssignmentExpression)
        assert expression.lhs == var("a")
        assert expression.rhs.operator is AssignmentOperator.ADD_ASSIGN

    def test_ternary_right_associative(self):
        expression = parse_expr("a ? b : c ? d : e")
        assert isinstance(expression, TernaryExpression)
        assert isinstance(expression.else_part, TernaryExpression)

    def test_ternary_nested_in_assignment(self):
        expression = parse_expr("a = b ? c : d ? e : f")
        assert expression.lhs == var("a")
        outer = expression.rhs
        assert outer.then_part == var("c")
        assert outer.else_part == TernaryExpression(
            line=0, condition=var("d"), then_part=var("e"), else_part=var("f"),
        )

    def test_assignment_chain(self):
        expression = parse_expr("a = b = c")
        assert expression.rhs == AssignmentExpression(
            line=0, operator=AssignmentOperator.ASSIGN, lhs=var("b"), rhs=var("c"),
        )

    def test_logical_and_above_or(self):
        expression = parse_expr("a || b && c")
        assert expression.operator is BinaryOperator.LOGICAL_OR
        assert expression.rhs.operator is BinaryOperator.LOGICAL_AND

    def test_bitwise_ladder(self):
        expression = parse_expr("a | b ^ c & d")
        assert expression.operator is BinaryOperator.BITWISE_OR
        assert expression.rhs.operator is BinaryOperator.BITWISE_XOR
        assert expression.rhs.rhs.operator is BinaryOperator.BITWISE_AND

    def test_equality_below_relational(self):
        expression = parse_expr("a < b == c > d")
        assert expression.operator is BinaryOperator.EQUAL
        assert expression.lhs.operator is BinaryOperator.LESS

    def test_shift_below_additive(self):
        expression = parse_expr("a << b + 1")
        assert expression.operator is BinaryOperator.LEFT_SHIFT
        assert expression.rhs.operator is BinaryOperator.ADD

    def test_unsigned_shift(self):
        assert parse_expr("a >>> 2").operator is BinaryOperator.UNSIGNED_RIGHT_SHIFT

    def test_instanceof(self):
        expression = parse_expr("o instanceof String && ok")
        assert isinstance(expression.lhs, InstanceOfExpression)
        assert expression.lhs.target_type == Type.reference("String")

    def test_parentheses_override(self):
        assert parse_expr("(a + b) * c") == binary(
            BinaryOperator.MULTIPLY, binary(BinaryOperator.ADD, var("a"), var("b")), var("c"),
        )

    def test_prefix_and_postfix(self):
        expression = parse_expr("-x++")
        assert expression.operator is UnaryOperator.NEGATE
        assert expression.operand.operator is UnaryOperator.POST_INCREMENT

    def test_not_and_complement(self):
        assert parse_expr("!done").operator is UnaryOperator.LOGICAL_NOT
        assert parse_expr("~mask").operator is UnaryOperator.BITWISE_NOT


class TestCasts:
    """Cast versus parenthesized expression."""

    def test_primitive_cast(self):
        expression = parse_expr("(int) x + y")
        assert expression.operator is BinaryOperator.ADD
        assert isinstance(expression.lhs, CastExpression)
        assert expression.lhs.target_type == types.INT

    def test_primitive_cast_of_negation(self):
        expression = parse_expr("(long) -1")
        assert isinstance(expression, CastExpression)
        assert isinstance(expression.expression, UnaryExpression)

    def test_reference_cast(self):
        expression = parse_expr("(String) o")
        assert isinstance(expression, CastExpression)
        assert expression.target_type == Type.reference("String")

    def test_array_cast(self):
        expression = parse_expr("(int[]) o")
        assert expression.target_type == Type.array_of(types.INT)

    def test_parenthesized_name_minus(self):
        assert parse_expr("(x) - y") == binary(BinaryOperator.SUBTRACT, var("x"), var("y"))


class TestPrimaries:
    """Names, selectors, calls and creation."""

    def test_ambiguous_qualified_name(self):
        expression = parse_expr("a.b.c")
        assert isinstance(expression, FieldSelection)
        assert expression.ambiguous_part == "a.b" and expression.name == "c"

    def test_qualified_call(self):
        expression = parse_expr("System.out.println(1, 2)")
        assert isinstance(expression, MessageExpression)
        assert expression.ambiguous_part == "System.out"
        assert expression.arguments == [lit("1"), lit("2")]

    def test_selectors(self):
        expression = parse_expr("a[i].f")
        assert isinstance(expression, FieldSelection)
        assert isinstance(expression.target, ArrayExpression)

    def test_call_on_result(self):
        expression = parse_expr("f().g()")
        assert isinstance(expression, MessageExpression)
        assert isinstance(expression.target, MessageExpression)

    def test_new_object(self):
        expression = parse_expr("new Point(1, 2)")
        assert isinstance(expression, NewObject)
        assert expression.type == Type.reference("Point")

    def test_new_array_dimensions(self):
        expression = parse_expr("new int[3][]")
        assert isinstance(expression, NewArray)
        assert expression.dimensions == [lit("3")]
        assert expression.type == Type.array_of(Type.array_of(types.INT))

    def test_new_array_initializer(self):
        expression = parse_expr("new int[] {1, 2,}")
        assert expression.initializer.initials == [lit("1"), lit("2")]

    def test_literals(self):
        for image, kind in [
            ("'c'", TokenKind.CHAR_LITERAL),
            ('"s"', TokenKind.STRING_LITERAL),
            ("true", TokenKind.TRUE),
            ("null", TokenKind.NULL),
            ("1.5f", TokenKind.FLOAT_LITERAL),
        ]:
            expression = parse_expr(image)
            assert isinstance(expression, LiteralExpression)
            assert expression.kind is kind


# =============================================================================
# Error Recovery Tests
# =============================================================================

class TestErrorRecovery:
    """Panic-mode recovery."""

    def test_missing_semicolon_reports_once(self):
        unit, parser = parse_unit("class A { void f() { int x = 1 int y = 2; } }")
        assert parser.reporter.messages() == ["<test>:1: ; sought where int found"]
        statements = unit.type_declarations[0].members[0].body.statements
        assert [s.declarators[0].name for s in statements] == ["x", "y"]

    def test_missing_paren_reports_once(self):
        _, parser = parse_unit("class A { void f() { if (x { y = 1; } } }")
        assert parser.reporter.count(ParseError) == 1

    def test_separate_regions_report_separately(self):
        _, parser = parse_unit("class A {\n void f() { int x = 1 }\n void g() { int y = 2 }\n}")
        assert parser.reporter.count(ParseError) == 2

    def test_garbage_member_terminates(self):
        unit, parser = parse_unit("class A { ) ) ) }")
        assert parser.error_has_occurred()
        assert parser.reporter.count(ParseError) == 1
        assert unit.type_declarations[0].name == "A"

    def test_error_line(self):
        _, parser = parse_unit("class A {\n\n void f() {\n x = ;\n }\n}")
        assert parser.reporter.errors[0].line == 4

    def test_wild_expression_after_error(self):
        parser = parse_source("+", "<test>")
        expression = parser.parse_expression()
        assert parser.error_has_occurred()
        assert isinstance(expression.operand, WildExpression)

    def test_truncated_input(self):
        unit, parser = parse_unit("class A { void f() { while (true) {")
        assert parser.error_has_occurred()
        assert len(unit.type_declarations) == 1

    def test_shared_reporter(self):
        reporter = ErrorReporter()
        parser = parse_source("class A { int # x; }", "<test>", reporter)
        parser.parse_compilation_unit()
        assert parser.reporter is reporter
        assert reporter.has_errors()


class TestTrace:
    """Production tracing."""

    def test_trace_logs_productions(self, caplog):
        parser = parse_source("class A { }", "<test>", trace=True)
        with caplog.at_level(logging.DEBUG, logger="jminus.parser"):
            parser.parse_compilation_unit()
        assert any("compilation unit" in message for message in caplog.messages)

    def test_no_trace_by_default(self, caplog):
        parser = parse_source("class A { }", "<test>")
        with caplog.at_level(logging.DEBUG, logger="jminus.parser"):
            parser.parse_compilation_unit()
        assert not any("looking at" in message for message in caplog.messages)

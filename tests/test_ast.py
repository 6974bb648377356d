# =============================================================================
# test_ast.py - AST Node Tests
# =============================================================================
# Tests for the node family itself: structural equality, operator
# enums, switch case groups, the visitor, and the structured dump.
# =============================================================================

import io

from jminus.analyzer import Context
from jminus.ast import (
    ASTPrinter,
    ASTVisitor,
    AssignmentOperator,
    BinaryExpression,
    BinaryOperator,
    LiteralExpression,
    PrettyPrinter,
    StringConcatenation,
    SwitchStatement,
    UnaryOperator,
    VariableExpression,
    iter_child_nodes,
)
from jminus.emitter import Emitter
from jminus.lexer import TokenKind
from jminus.parser import parse_source


def int_literal(image: str, line: int = 1) -> LiteralExpression:
    return LiteralExpression(line=line, kind=TokenKind.INT_LITERAL, image=image)


def parse(source: str):
    parser = parse_source(source, "<test>")
    unit = parser.parse_compilation_unit()
    assert not parser.error_has_occurred(), parser.reporter.messages()
    return unit


# =============================================================================
# Node Tests
# =============================================================================

class TestNodes:
    """Node equality and small helpers."""

    def test_equality_ignores_line(self):
        assert int_literal("1", line=3) == int_literal("1", line=9)

    def test_equality_ignores_resolved_type(self):
        from jminus import types
        plain = VariableExpression(line=1, name="x")
        typed = VariableExpression(line=1, name="x", resolved_type=types.INT)
        assert plain == typed

    def test_literal_value(self):
        assert LiteralExpression(line=1, kind=TokenKind.HEX_LITERAL, image="0xff").value == 255
        assert LiteralExpression(line=1, kind=TokenKind.TRUE, image="true").value is True

    def test_compound_assignment_operator(self):
        assert AssignmentOperator.ADD_ASSIGN.binary_operator is BinaryOperator.ADD
        assert AssignmentOperator.UNSIGNED_RIGHT_SHIFT_ASSIGN.binary_operator is BinaryOperator.UNSIGNED_RIGHT_SHIFT
        assert AssignmentOperator.ASSIGN.binary_operator is None

    def test_unary_symbols(self):
        assert UnaryOperator.POST_DECREMENT.symbol == "--"
        assert UnaryOperator.BITWISE_NOT.symbol == "~"
        assert not UnaryOperator.NEGATE.is_increment

    def test_string_concatenation_operator(self):
        node = StringConcatenation(line=1)
        assert node.operator is BinaryOperator.ADD

    def test_iter_child_nodes(self):
        node = BinaryExpression(line=1, operator=BinaryOperator.ADD, lhs=int_literal("1"), rhs=int_literal("2"))
        assert list(iter_child_nodes(node)) == [int_literal("1"), int_literal("2")]


class TestCaseGroups:
    """SwitchStatement.add_case_group."""

    def make_switch(self) -> SwitchStatement:
        return SwitchStatement(line=1, condition=VariableExpression(line=1, name="x"))

    def test_overlapping_group_rejected(self):
        switch = self.make_switch()
        assert switch.add_case_group([int_literal("1"), int_literal("2")], [])
        assert not switch.add_case_group([int_literal("2"), int_literal("3")], [])
        assert len(switch.groups) == 1

    def test_second_default_rejected(self):
        switch = self.make_switch()
        assert switch.add_case_group([None], [])
        assert not switch.add_case_group([None], [])
        assert len(switch.groups) == 1

    def test_duplicate_within_group_rejected(self):
        switch = self.make_switch()
        assert not switch.add_case_group([int_literal("4"), int_literal("4")], [])
        assert switch.groups == []

    def test_octal_and_decimal_compare_by_value(self):
        switch = self.make_switch()
        switch.add_case_group([LiteralExpression(line=1, kind=TokenKind.OCTAL_LITERAL, image="010")], [])
        assert not switch.add_case_group([int_literal("8")], [])

    def test_structural_labels(self):
        switch = self.make_switch()
        label = BinaryExpression(line=1, operator=BinaryOperator.ADD, lhs=int_literal("1"), rhs=int_literal("1"))
        assert switch.add_case_group([label], [])
        same = BinaryExpression(line=5, operator=BinaryOperator.ADD, lhs=int_literal("1"), rhs=int_literal("1"))
        assert not switch.add_case_group([same], [])
        assert switch.add_case_group([int_literal("2")], [])

    def test_group_line(self):
        switch = self.make_switch()
        switch.add_case_group([int_literal("1")], [], line=7)
        assert switch.groups[0].line == 7


# =============================================================================
# Visitor Tests
# =============================================================================

class TestVisitor:
    """ASTVisitor dispatch."""

    def test_dispatch_and_generic_walk(self):
        class NameCollector(ASTVisitor):
            def __init__(self):
                self.names = []

            def visit_VariableExpression(self, node):
                self.names.append(node.name)

        unit = parse("class A { void f() { a = b + c(d); } }")
        collector = NameCollector()
        collector.visit(unit)
        assert collector.names == ["a", "b", "d"]


# =============================================================================
# Dump Tests
# =============================================================================

class TestDump:
    """Structured dump through PrettyPrinter."""

    SOURCE = """
    class Counter extends Object {
        private int count;
        int next(int step) {
            count += step;
            if (count > 10 && step != 0) { count = 0; }
            return count;
        }
    }
    """

    def test_dump_twice_is_identical(self):
        unit = parse(self.SOURCE)
        first = ASTPrinter().print(unit)
        second = ASTPrinter().print(unit)
        assert first == second

    def test_dump_method_matches_printer(self):
        unit = parse(self.SOURCE)
        printer = PrettyPrinter()
        unit.dump(printer)
        assert printer.getvalue() == ASTPrinter().print(unit)

    def test_dump_to_stream(self):
        stream = io.StringIO()
        parse("class A { }").dump(PrettyPrinter(stream))
        assert stream.getvalue().startswith('<CompilationUnit line="1" filename="&lt;test&gt;">')

    def test_leaf_format(self):
        text = ASTPrinter().print(int_literal("42", line=3))
        assert text == '<LiteralExpression line="3" kind="INT_LITERAL" image="42"/>\n'

    def test_operator_and_roles(self):
        node = BinaryExpression(
            line=2,
            operator=BinaryOperator.LESS,
            lhs=VariableExpression(line=2, name="x"),
            rhs=int_literal("1", line=2),
        )
        assert ASTPrinter().print(node) == (
            '<BinaryExpression line="2" operator="&lt;">\n'
            "  <Lhs>\n"
            '    <VariableExpression line="2" name="x"/>\n'
            "  </Lhs>\n"
            "  <Rhs>\n"
            '    <LiteralExpression line="2" kind="INT_LITERAL" image="1"/>\n'
            "  </Rhs>\n"
            "</BinaryExpression>\n"
        )

    def test_dump_includes_lines(self):
        text = ASTPrinter().print(parse(self.SOURCE))
        assert '<MethodDeclaration line="4"' in text
        assert '<IfStatement line="6">' in text

    def test_analyzed_dump_shows_types(self):
        unit = parse(self.SOURCE)
        analyzed = unit.analyze(Context())
        text = ASTPrinter().print(analyzed)
        assert 'type="boolean"' in text
        assert 'type="int"' in text
        assert 'type="boolean"' not in ASTPrinter().print(unit)

    def test_indentation_width(self):
        printer = PrettyPrinter(indent_width=4)
        printer.indent_right()
        printer.printf("<%s/>\n", "X")
        printer.indent_left()
        printer.indent_left()
        printer.printf("end\n")
        assert printer.getvalue() == "    <X/>\nend\n"


class TestOperations:
    """The analyze and codegen operations exposed on every node."""

    def test_analyze_returns_new_tree(self):
        unit = parse("class A { int f() { return 1 + 2; } }")
        analyzed = unit.analyze(Context())
        assert analyzed is not unit
        ret = unit.type_declarations[0].members[0].body.statements[0]
        assert ret.expression.resolved_type is None

    def test_codegen_fills_emitter(self):
        unit = parse("class A { int f() { return 1; } }")
        emitter = Emitter()
        unit.analyze(Context()).codegen(emitter)
        assert [m.name for m in emitter.methods] == ["f", "<init>"]

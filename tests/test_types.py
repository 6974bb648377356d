# =============================================================================
# test_types.py - Type System Tests
# =============================================================================
# Tests for type descriptors, matching, promotion and widening.
# =============================================================================

import pytest

from jminus import types
from jminus.errors import ErrorReporter, SemanticError
from jminus.types import Type, TypeKind, method_descriptor, promote, widens_to


class TestDescriptors:
    """Descriptor and instruction-prefix queries."""

    @pytest.mark.parametrize("var_type,descriptor", [
        (types.INT, "I"),
        (types.BOOLEAN, "Z"),
        (types.LONG, "J"),
        (types.VOID, "V"),
        (types.STRING, "Ljava/lang/String;"),
        (Type.array_of(types.INT), "[I"),
        (Type.array_of(Type.array_of(types.STRING)), "[[Ljava/lang/String;"),
        (Type.reference("Point"), "LPoint;"),
    ])
    def test_descriptor(self, var_type, descriptor):
        assert var_type.descriptor == descriptor

    def test_method_descriptor(self):
        assert method_descriptor([types.INT, Type.array_of(types.STRING)], types.VOID) == "(I[Ljava/lang/String;)V"

    @pytest.mark.parametrize("var_type,prefix", [
        (types.INT, "I"),
        (types.CHAR, "I"),
        (types.BOOLEAN, "I"),
        (types.LONG, "L"),
        (types.FLOAT, "F"),
        (types.DOUBLE, "D"),
        (types.STRING, "A"),
        (Type.array_of(types.INT), "A"),
    ])
    def test_opcode_prefix(self, var_type, prefix):
        assert var_type.opcode_prefix == prefix

    def test_word_sizes(self):
        assert types.LONG.word_size == 2
        assert types.DOUBLE.word_size == 2
        assert types.INT.word_size == 1
        assert types.VOID.word_size == 0

    def test_array_type(self):
        array = Type.array_of(types.CHAR)
        assert array.name == "char[]"
        assert array.kind is TypeKind.ARRAY
        assert array.component_type == types.CHAR


class TestMatching:
    """matches_expected and the error-reporting wrappers."""

    def test_well_known_names_resolve(self):
        assert Type.reference("String").resolve() == types.STRING
        assert Type.array_of(Type.reference("Object")).resolve() == Type.array_of(types.OBJECT)

    def test_identical_types_match(self):
        assert types.INT.matches_expected(types.INT)
        assert Type.reference("String").matches_expected(types.STRING)

    def test_any_matches_everything(self):
        assert types.ANY.matches_expected(types.INT)
        assert types.BOOLEAN.matches_expected(types.ANY)

    def test_null_matches_references(self):
        assert types.NULL.matches_expected(types.STRING)
        assert types.NULL.matches_expected(Type.array_of(types.INT))
        assert not types.NULL.matches_expected(types.INT)

    def test_object_accepts_references(self):
        assert Type.reference("Point").matches_expected(types.OBJECT)
        assert not types.INT.matches_expected(types.OBJECT)

    def test_primitives_do_not_match(self):
        assert not types.INT.matches_expected(types.BOOLEAN)
        assert not types.LONG.matches_expected(types.INT)

    def test_must_match_reports(self):
        reporter = ErrorReporter()
        assert not types.BOOLEAN.must_match_expected(7, types.INT, reporter, "A.java")
        assert reporter.messages() == ["A.java:7: Type boolean doesn't match type int"]
        assert reporter.count(SemanticError) == 1

    def test_must_match_one_of(self):
        reporter = ErrorReporter()
        assert types.CHAR.must_match_one_of(1, reporter, "A.java", types.INT, types.CHAR)
        assert not types.DOUBLE.must_match_one_of(2, reporter, "A.java", types.INT, types.CHAR)
        assert reporter.messages() == [
            "A.java:2: Type double doesn't match any of the expected types [int, char]"
        ]


class TestPromotion:
    """Binary numeric promotion and widening."""

    @pytest.mark.parametrize("left,right,result", [
        (types.INT, types.INT, types.INT),
        (types.BYTE, types.SHORT, types.INT),
        (types.CHAR, types.CHAR, types.INT),
        (types.INT, types.LONG, types.LONG),
        (types.LONG, types.FLOAT, types.FLOAT),
        (types.FLOAT, types.DOUBLE, types.DOUBLE),
        (types.ANY, types.INT, types.ANY),
    ])
    def test_promote(self, left, right, result):
        assert promote(left, right) == result

    def test_promote_non_numeric(self):
        assert promote(types.BOOLEAN, types.INT) is None
        assert promote(types.STRING, types.INT) is None

    @pytest.mark.parametrize("actual,expected,widens", [
        (types.INT, types.LONG, True),
        (types.INT, types.DOUBLE, True),
        (types.CHAR, types.INT, True),
        (types.BYTE, types.SHORT, True),
        (types.BYTE, types.CHAR, False),
        (types.CHAR, types.SHORT, False),
        (types.LONG, types.INT, False),
        (types.BOOLEAN, types.INT, False),
    ])
    def test_widens_to(self, actual, expected, widens):
        assert widens_to(actual, expected) is widens

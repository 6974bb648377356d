"""
j-- Type System
===============

This module implements the types used by analysis and code generation.

Supported Types
---------------
- Primitives: boolean, byte, short, char, int, long, float, double
- void (method results only)
- References: java.lang.String, java.lang.Object and any named class
- Arrays of any of the above
- null (the type of the null literal)
- any (the error/placeholder type; matches everything so that one bad
  expression does not cascade into more diagnostics)

Type Representation
-------------------
Types are immutable Type values compared by value. Names parsed from
source are unresolved references until resolve() maps the well-known
ones (String, Object) onto their singletons.

| Type     | Descriptor           | Words |
|----------|----------------------|-------|
| int      | I                    | 1     |
| long     | J                    | 2     |
| double   | D                    | 2     |
| String   | Ljava/lang/String;   | 1     |
| int[]    | [I                   | 1     |
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Optional

from jminus.errors import SemanticError

if TYPE_CHECKING:
    from jminus.errors import ErrorReporter


# =============================================================================
# Type Kind Enumeration
# =============================================================================

class TypeKind(Enum):
    """Broad category of a type."""
    PRIMITIVE = auto()
    REFERENCE = auto()
    ARRAY = auto()
    VOID = auto()
    NULL = auto()
    ANY = auto()

    def __str__(self) -> str:
        return self.name.lower()


# =============================================================================
# Type Representation
# =============================================================================

@dataclass(frozen=True)
class Type:
    """
    A j-- type.

    Attributes:
        name: Source-level name ("int", "java.lang.String", "Point")
        kind: The TypeKind category
        component: Element type for arrays, None otherwise

    Examples:
        - int       : Type("int", PRIMITIVE)
        - String    : Type("java.lang.String", REFERENCE)
        - int[][]   : Type("int[][]", ARRAY, component=Type("int[]", ...))
    """
    name: str
    kind: TypeKind
    component: Optional["Type"] = None

    def __str__(self) -> str:
        return self.name

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def reference(cls, name: str) -> "Type":
        """An (unresolved) reference type named in source."""
        return cls(name, TypeKind.REFERENCE)

    @classmethod
    def array_of(cls, component: "Type") -> "Type":
        return cls(f"{component.name}[]", TypeKind.ARRAY, component)

    def resolve(self) -> "Type":
        """Map well-known reference names onto their singletons."""
        if self.kind is TypeKind.ARRAY:
            return Type.array_of(self.component.resolve())
        if self.kind is TypeKind.REFERENCE:
            return _WELL_KNOWN.get(self.name, self)
        return self

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def component_type(self) -> Optional["Type"]:
        return self.component

    @property
    def is_primitive(self) -> bool:
        return self.kind is TypeKind.PRIMITIVE

    @property
    def is_reference(self) -> bool:
        return self.kind in (TypeKind.REFERENCE, TypeKind.ARRAY, TypeKind.NULL)

    @property
    def is_array(self) -> bool:
        return self.kind is TypeKind.ARRAY

    @property
    def is_numeric(self) -> bool:
        return self in _NUMERIC_RANK

    @property
    def is_integral(self) -> bool:
        return self in (BYTE, SHORT, CHAR, INT, LONG)

    @property
    def word_size(self) -> int:
        """Number of operand-stack words a value of this type occupies."""
        if self in (LONG, DOUBLE):
            return 2
        if self.kind is TypeKind.VOID:
            return 0
        return 1

    @property
    def internal_name(self) -> str:
        """Slash-separated class name ("java/lang/String")."""
        return self.name.replace(".", "/")

    @property
    def descriptor(self) -> str:
        """JVM-style field descriptor."""
        if self.kind is TypeKind.ARRAY:
            return "[" + self.component.descriptor
        if self.kind in (TypeKind.PRIMITIVE, TypeKind.VOID):
            return _PRIMITIVE_DESCRIPTORS[self.name]
        if self.kind is TypeKind.REFERENCE:
            return f"L{self.internal_name};"
        return "Ljava/lang/Object;"

    @property
    def opcode_prefix(self) -> str:
        """Letter used by typed instructions (I, L, F, D or A)."""
        if self == LONG:
            return "L"
        if self == FLOAT:
            return "F"
        if self == DOUBLE:
            return "D"
        if self.kind is TypeKind.PRIMITIVE:
            return "I"
        return "A"

    # =========================================================================
    # Matching
    # =========================================================================

    def matches_expected(self, expected: "Type") -> bool:
        """
        Check if a value of this type may be used where expected is required.

        The any type matches in both directions; null matches every
        reference type; everything matches Object except primitives.
        """
        if self.kind is TypeKind.ANY or expected.kind is TypeKind.ANY:
            return True
        actual, expected = self.resolve(), expected.resolve()
        if actual == expected:
            return True
        if actual.kind is TypeKind.NULL:
            return expected.is_reference
        if expected == OBJECT:
            return actual.is_reference
        if actual.is_array and expected.is_array:
            return actual.component.matches_expected(expected.component)
        return False

    def must_match_expected(
        self,
        line: int,
        expected: "Type",
        reporter: "ErrorReporter",
        filename: str,
    ) -> bool:
        """
        Report a semantic error unless this type matches expected.

        Returns:
            True if the types match
        """
        if self.matches_expected(expected):
            return True
        reporter.report(
            filename,
            line,
            f"Type {self} doesn't match type {expected}",
            SemanticError,
        )
        return False

    def must_match_one_of(
        self,
        line: int,
        reporter: "ErrorReporter",
        filename: str,
        *expected: "Type",
    ) -> bool:
        """Report a semantic error unless this type matches one of expected."""
        if any(self.matches_expected(candidate) for candidate in expected):
            return True
        names = ", ".join(str(candidate) for candidate in expected)
        reporter.report(
            filename,
            line,
            f"Type {self} doesn't match any of the expected types [{names}]",
            SemanticError,
        )
        return False


# =============================================================================
# Well-Known Types
# =============================================================================

BOOLEAN = Type("boolean", TypeKind.PRIMITIVE)
BYTE = Type("byte", TypeKind.PRIMITIVE)
SHORT = Type("short", TypeKind.PRIMITIVE)
CHAR = Type("char", TypeKind.PRIMITIVE)
INT = Type("int", TypeKind.PRIMITIVE)
LONG = Type("long", TypeKind.PRIMITIVE)
FLOAT = Type("float", TypeKind.PRIMITIVE)
DOUBLE = Type("double", TypeKind.PRIMITIVE)
VOID = Type("void", TypeKind.VOID)
NULL = Type("null", TypeKind.NULL)
ANY = Type("any", TypeKind.ANY)
STRING = Type("java.lang.String", TypeKind.REFERENCE)
OBJECT = Type("java.lang.Object", TypeKind.REFERENCE)

_WELL_KNOWN = {
    "String": STRING,
    "java.lang.String": STRING,
    "Object": OBJECT,
    "java.lang.Object": OBJECT,
}

_PRIMITIVE_DESCRIPTORS = {
    "boolean": "Z",
    "byte": "B",
    "short": "S",
    "char": "C",
    "int": "I",
    "long": "J",
    "float": "F",
    "double": "D",
    "void": "V",
}

# Widening order used by binary numeric promotion
_NUMERIC_RANK = {
    BYTE: 0,
    SHORT: 1,
    CHAR: 1,
    INT: 2,
    LONG: 3,
    FLOAT: 4,
    DOUBLE: 5,
}


def promote(left: Type, right: Type) -> Optional[Type]:
    """
    Binary numeric promotion.

    Returns:
        The common arithmetic type (never narrower than int), or None if
        either operand is not numeric. An any operand promotes to any.
    """
    if ANY in (left, right):
        return ANY
    if not (left.is_numeric and right.is_numeric):
        return None
    wider = left if _NUMERIC_RANK[left] >= _NUMERIC_RANK[right] else right
    if _NUMERIC_RANK[wider] < _NUMERIC_RANK[INT]:
        return INT
    return wider


def widens_to(actual: Type, expected: Type) -> bool:
    """
    Check for a widening primitive conversion (int -> long, char -> int, ...).

    byte and short never widen to char, and char never widens to byte
    or short.
    """
    if actual == expected:
        return actual.is_numeric
    if not (actual.is_numeric and expected.is_numeric):
        return False
    if CHAR in (actual, expected) and _NUMERIC_RANK[actual] <= 1 and _NUMERIC_RANK[expected] <= 1:
        return False
    return _NUMERIC_RANK[actual] <= _NUMERIC_RANK[expected]


def method_descriptor(parameters: list, result: Type) -> str:
    """Build a method descriptor such as (I[Ljava/lang/String;)V."""
    return "(" + "".join(p.descriptor for p in parameters) + ")" + result.descriptor

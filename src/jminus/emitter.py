"""
JVM-Style Instruction Emitter
=============================

This module implements the abstract instruction stream that code
generation writes into. It records, per class and method, a flat list
of stack-machine instructions together with label positions and
exception handler ranges. No binary class file is produced; listing()
renders the collected code as text.

Instruction Categories
----------------------
Each add_* method accepts only the opcodes of its category:

| Method                            | Opcodes                          |
|-----------------------------------|----------------------------------|
| add_no_arg_instruction            | IADD, DUP, IRETURN, I2L, ...     |
| add_one_arg_instruction           | ILOAD, ASTORE, BIPUSH, NEWARRAY  |
| add_branch_instruction            | IFEQ, IF_ICMPLT, GOTO, ...       |
| add_reference_instruction         | NEW, ANEWARRAY, CHECKCAST, ...   |
| add_member_access_instruction     | GETFIELD, INVOKEVIRTUAL, ...     |
| add_ldc_instruction               | LDC / LDC2_W                     |
| add_iinc_instruction              | IINC                             |
| add_multianewarray_instruction    | MULTIANEWARRAY                   |

Passing an opcode to the wrong method, placing a label twice, or
emitting outside a method raises CodeGenError: these are compiler bugs,
not errors in the program being compiled.

Labels
------
A Label is created unplaced by create_label() and bound to the next
instruction position by add_label(). A label may be placed exactly
once. Branches and exception handlers mark the labels they target as
referenced; unplaced_labels() lists referenced labels that were never
placed, which would be dangling jumps.

Example Usage
-------------
>>> emitter = Emitter()
>>> emitter.add_class(["public"], "A", "java/lang/Object")
>>> emitter.add_method("f", "()I", is_static=True)
>>> emitter.add_no_arg_instruction(Opcode.ICONST_1)
>>> emitter.add_no_arg_instruction(Opcode.IRETURN)
>>> print(emitter.listing())
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from jminus.errors import CodeGenError

logger = logging.getLogger(__name__)


# =============================================================================
# Opcodes
# =============================================================================

class Opcode(Enum):
    """JVM opcodes used by the code generator; the value is the opcode byte."""
    NOP = 0x00
    ACONST_NULL = 0x01
    ICONST_M1 = 0x02
    ICONST_0 = 0x03
    ICONST_1 = 0x04
    ICONST_2 = 0x05
    ICONST_3 = 0x06
    ICONST_4 = 0x07
    ICONST_5 = 0x08
    LCONST_0 = 0x09
    LCONST_1 = 0x0A
    FCONST_0 = 0x0B
    FCONST_1 = 0x0C
    FCONST_2 = 0x0D
    DCONST_0 = 0x0E
    DCONST_1 = 0x0F
    BIPUSH = 0x10
    SIPUSH = 0x11
    LDC = 0x12
    LDC2_W = 0x14

    # Local variables
    ILOAD = 0x15
    LLOAD = 0x16
    FLOAD = 0x17
    DLOAD = 0x18
    ALOAD = 0x19
    ISTORE = 0x36
    LSTORE = 0x37
    FSTORE = 0x38
    DSTORE = 0x39
    ASTORE = 0x3A
    IINC = 0x84

    # Arrays
    IALOAD = 0x2E
    LALOAD = 0x2F
    FALOAD = 0x30
    DALOAD = 0x31
    AALOAD = 0x32
    BALOAD = 0x33
    CALOAD = 0x34
    SALOAD = 0x35
    IASTORE = 0x4F
    LASTORE = 0x50
    FASTORE = 0x51
    DASTORE = 0x52
    AASTORE = 0x53
    BASTORE = 0x54
    CASTORE = 0x55
    SASTORE = 0x56

    # Stack
    POP = 0x57
    POP2 = 0x58
    DUP = 0x59
    DUP_X1 = 0x5A
    DUP_X2 = 0x5B
    DUP2 = 0x5C
    DUP2_X1 = 0x5D
    DUP2_X2 = 0x5E
    SWAP = 0x5F

    # Arithmetic
    IADD = 0x60
    LADD = 0x61
    FADD = 0x62
    DADD = 0x63
    ISUB = 0x64
    LSUB = 0x65
    FSUB = 0x66
    DSUB = 0x67
    IMUL = 0x68
    LMUL = 0x69
    FMUL = 0x6A
    DMUL = 0x6B
    IDIV = 0x6C
    LDIV = 0x6D
    FDIV = 0x6E
    DDIV = 0x6F
    IREM = 0x70
    LREM = 0x71
    FREM = 0x72
    DREM = 0x73
    INEG = 0x74
    LNEG = 0x75
    FNEG = 0x76
    DNEG = 0x77
    ISHL = 0x78
    LSHL = 0x79
    ISHR = 0x7A
    LSHR = 0x7B
    IUSHR = 0x7C
    LUSHR = 0x7D
    IAND = 0x7E
    LAND = 0x7F
    IOR = 0x80
    LOR = 0x81
    IXOR = 0x82
    LXOR = 0x83

    # Conversions
    I2L = 0x85
    I2F = 0x86
    I2D = 0x87
    L2I = 0x88
    L2F = 0x89
    L2D = 0x8A
    F2I = 0x8B
    F2L = 0x8C
    F2D = 0x8D
    D2I = 0x8E
    D2L = 0x8F
    D2F = 0x90
    I2B = 0x91
    I2C = 0x92
    I2S = 0x93

    # Comparisons and branches
    LCMP = 0x94
    FCMPL = 0x95
    FCMPG = 0x96
    DCMPL = 0x97
    DCMPG = 0x98
    IFEQ = 0x99
    IFNE = 0x9A
    IFLT = 0x9B
    IFGE = 0x9C
    IFGT = 0x9D
    IFLE = 0x9E
    IF_ICMPEQ = 0x9F
    IF_ICMPNE = 0xA0
    IF_ICMPLT = 0xA1
    IF_ICMPGE = 0xA2
    IF_ICMPGT = 0xA3
    IF_ICMPLE = 0xA4
    IF_ACMPEQ = 0xA5
    IF_ACMPNE = 0xA6
    GOTO = 0xA7
    IFNULL = 0xC6
    IFNONNULL = 0xC7

    # Returns
    IRETURN = 0xAC
    LRETURN = 0xAD
    FRETURN = 0xAE
    DRETURN = 0xAF
    ARETURN = 0xB0
    RETURN = 0xB1

    # Members
    GETSTATIC = 0xB2
    PUTSTATIC = 0xB3
    GETFIELD = 0xB4
    PUTFIELD = 0xB5
    INVOKEVIRTUAL = 0xB6
    INVOKESPECIAL = 0xB7
    INVOKESTATIC = 0xB8
    INVOKEINTERFACE = 0xB9

    # Objects
    NEW = 0xBB
    NEWARRAY = 0xBC
    ANEWARRAY = 0xBD
    ARRAYLENGTH = 0xBE
    ATHROW = 0xBF
    CHECKCAST = 0xC0
    INSTANCEOF = 0xC1
    MULTIANEWARRAY = 0xC5

    @property
    def mnemonic(self) -> str:
        return self.name.lower()


O = Opcode

ONE_ARG_OPCODES = frozenset({
    O.ILOAD, O.LLOAD, O.FLOAD, O.DLOAD, O.ALOAD,
    O.ISTORE, O.LSTORE, O.FSTORE, O.DSTORE, O.ASTORE,
    O.BIPUSH, O.SIPUSH, O.NEWARRAY,
})

BRANCH_OPCODES = frozenset({
    O.IFEQ, O.IFNE, O.IFLT, O.IFGE, O.IFGT, O.IFLE,
    O.IF_ICMPEQ, O.IF_ICMPNE, O.IF_ICMPLT, O.IF_ICMPGE, O.IF_ICMPGT, O.IF_ICMPLE,
    O.IF_ACMPEQ, O.IF_ACMPNE, O.GOTO, O.IFNULL, O.IFNONNULL,
})

REFERENCE_OPCODES = frozenset({O.NEW, O.ANEWARRAY, O.CHECKCAST, O.INSTANCEOF})

MEMBER_OPCODES = frozenset({
    O.GETSTATIC, O.PUTSTATIC, O.GETFIELD, O.PUTFIELD,
    O.INVOKEVIRTUAL, O.INVOKESPECIAL, O.INVOKESTATIC, O.INVOKEINTERFACE,
})

NO_ARG_OPCODES = frozenset(
    set(Opcode)
    - ONE_ARG_OPCODES
    - BRANCH_OPCODES
    - REFERENCE_OPCODES
    - MEMBER_OPCODES
    - {O.LDC, O.LDC2_W, O.IINC, O.MULTIANEWARRAY}
)

# Negated form of each conditional branch
INVERSE_BRANCHES: Dict[Opcode, Opcode] = {
    O.IFEQ: O.IFNE, O.IFNE: O.IFEQ,
    O.IFLT: O.IFGE, O.IFGE: O.IFLT,
    O.IFGT: O.IFLE, O.IFLE: O.IFGT,
    O.IF_ICMPEQ: O.IF_ICMPNE, O.IF_ICMPNE: O.IF_ICMPEQ,
    O.IF_ICMPLT: O.IF_ICMPGE, O.IF_ICMPGE: O.IF_ICMPLT,
    O.IF_ICMPGT: O.IF_ICMPLE, O.IF_ICMPLE: O.IF_ICMPGT,
    O.IF_ACMPEQ: O.IF_ACMPNE, O.IF_ACMPNE: O.IF_ACMPEQ,
    O.IFNULL: O.IFNONNULL, O.IFNONNULL: O.IFNULL,
}

# NEWARRAY operand for each primitive element descriptor
ARRAY_TYPE_CODES = {
    "Z": 4,
    "C": 5,
    "F": 6,
    "D": 7,
    "B": 8,
    "S": 9,
    "I": 10,
    "J": 11,
}


# =============================================================================
# Code Representation
# =============================================================================

@dataclass(eq=False)
class Label:
    """
    A branch target.

    Attributes:
        number: Sequence number, unique within the emitter
        position: Index of the instruction the label precedes, or None
            while the label is unplaced
        referenced: True once a branch or exception handler targets it
    """
    number: int
    position: Optional[int] = None
    referenced: bool = False

    @property
    def name(self) -> str:
        return f"L{self.number}"

    @property
    def is_placed(self) -> bool:
        return self.position is not None

    def __str__(self) -> str:
        return self.name


Operand = Union[int, float, str, Label, None]


@dataclass
class Instruction:
    """One emitted instruction and its operands."""
    opcode: Opcode
    operands: tuple = ()

    @property
    def mnemonic(self) -> str:
        return self.opcode.mnemonic

    def __str__(self) -> str:
        if not self.operands:
            return self.mnemonic
        return self.mnemonic + " " + " ".join(str(operand) for operand in self.operands)


@dataclass
class ExceptionHandler:
    """
    An exception table entry: code in [start, end) jumps to handler.

    A type_name of None catches everything (used for finally).
    """
    start: Label
    end: Label
    handler: Label
    type_name: Optional[str] = None


@dataclass
class MethodCode:
    """Instructions and metadata of one method."""
    name: str
    descriptor: str
    is_static: bool = False
    modifiers: List[str] = field(default_factory=list)
    local_count: int = 0
    instructions: List[Instruction] = field(default_factory=list)
    labels: List[Label] = field(default_factory=list)
    handlers: List[ExceptionHandler] = field(default_factory=list)


@dataclass
class FieldCode:
    name: str
    descriptor: str
    modifiers: List[str] = field(default_factory=list)


@dataclass
class ClassCode:
    """Collected members of one class."""
    name: str
    superclass: str = "java/lang/Object"
    modifiers: List[str] = field(default_factory=list)
    fields: List[FieldCode] = field(default_factory=list)
    methods: List[MethodCode] = field(default_factory=list)


# =============================================================================
# Emitter
# =============================================================================

class Emitter:
    """
    Collects the instructions generated for a compilation unit.

    Attributes:
        classes: Classes added so far, in order
        current_class: Class receiving fields and methods
        current_method: Method receiving instructions
    """

    def __init__(self):
        self.classes: List[ClassCode] = []
        self.current_class: Optional[ClassCode] = None
        self.current_method: Optional[MethodCode] = None
        self._labels: List[Label] = []

    # =========================================================================
    # Classes and Members
    # =========================================================================

    def add_class(self, modifiers: List[str], name: str, superclass: str = "java/lang/Object") -> ClassCode:
        """Start a new class; later fields and methods belong to it."""
        code = ClassCode(name, superclass, list(modifiers))
        self.classes.append(code)
        self.current_class = code
        self.current_method = None
        logger.debug(f"Emitting class {name}")
        return code

    def add_field(self, modifiers: List[str], name: str, descriptor: str) -> None:
        self._class().fields.append(FieldCode(name, descriptor, list(modifiers)))

    def add_method(
        self,
        name: str,
        descriptor: str,
        is_static: bool = False,
        modifiers: Optional[List[str]] = None,
        local_count: int = 0,
    ) -> MethodCode:
        """
        Start a new method; later instructions belong to it.

        Methods added before any class go into an unnamed class.
        """
        method = MethodCode(name, descriptor, is_static, list(modifiers or []), local_count)
        self._class().methods.append(method)
        self.current_method = method
        logger.debug(f"Emitting method {name}{descriptor}")
        return method

    def _class(self) -> ClassCode:
        if self.current_class is None:
            self.add_class([], "")
        return self.current_class

    def _method(self) -> MethodCode:
        if self.current_method is None:
            raise CodeGenError("No method to add instructions to")
        return self.current_method

    @property
    def methods(self) -> List[MethodCode]:
        return [method for code in self.classes for method in code.methods]

    @property
    def instructions(self) -> List[Instruction]:
        """Instructions of the current method."""
        return self._method().instructions

    # =========================================================================
    # Labels
    # =========================================================================

    def create_label(self) -> Label:
        label = Label(len(self._labels))
        self._labels.append(label)
        return label

    def add_label(self, label: Label) -> None:
        """Bind label to the position of the next instruction."""
        method = self._method()
        if label.is_placed:
            raise CodeGenError(f"Label {label} placed twice")
        label.position = len(method.instructions)
        method.labels.append(label)

    def unplaced_labels(self) -> List[Label]:
        return [label for label in self._labels if label.referenced and not label.is_placed]

    # =========================================================================
    # Instructions
    # =========================================================================

    def _add(self, opcode: Opcode, allowed: frozenset, *operands: Operand) -> None:
        if opcode not in allowed:
            raise CodeGenError(f"Opcode {opcode.mnemonic} cannot be added this way")
        self._method().instructions.append(Instruction(opcode, operands))

    def add_no_arg_instruction(self, opcode: Opcode) -> None:
        self._add(opcode, NO_ARG_OPCODES)

    def add_one_arg_instruction(self, opcode: Opcode, argument: int) -> None:
        self._add(opcode, ONE_ARG_OPCODES, argument)

    def add_iinc_instruction(self, slot: int, delta: int) -> None:
        self._add(O.IINC, frozenset({O.IINC}), slot, delta)

    def add_branch_instruction(self, opcode: Opcode, label: Label) -> None:
        self._add(opcode, BRANCH_OPCODES, label)
        label.referenced = True

    def add_ldc_instruction(self, value: Union[int, float, str], wide: bool = False) -> None:
        """Push a constant pool value; wide selects LDC2_W for long and double."""
        opcode = O.LDC2_W if wide else O.LDC
        self._add(opcode, frozenset({O.LDC, O.LDC2_W}), _constant_text(value))

    def add_reference_instruction(self, opcode: Opcode, type_name: str) -> None:
        self._add(opcode, REFERENCE_OPCODES, type_name)

    def add_member_access_instruction(self, opcode: Opcode, target: str, name: str, descriptor: str) -> None:
        self._add(opcode, MEMBER_OPCODES, f"{target}.{name}", descriptor)

    def add_multianewarray_instruction(self, descriptor: str, dimensions: int) -> None:
        self._add(O.MULTIANEWARRAY, frozenset({O.MULTIANEWARRAY}), descriptor, dimensions)

    def add_exception_handler(
        self,
        start: Label,
        end: Label,
        handler: Label,
        type_name: Optional[str] = None,
    ) -> None:
        for label in (start, end, handler):
            label.referenced = True
        self._method().handlers.append(ExceptionHandler(start, end, handler, type_name))

    # =========================================================================
    # Listing
    # =========================================================================

    def listing(self) -> str:
        """
        Render every class as text.

        Returns:
            One line per class, field, method, label and instruction,
            followed by each method's exception table
        """
        lines = []
        for code in self.classes:
            modifiers = " ".join(code.modifiers)
            header = f"{modifiers} class {code.name}" if modifiers else f"class {code.name}"
            lines.append(f"{header} extends {code.superclass}")
            for member in code.fields:
                lines.append(f"  field {' '.join(member.modifiers + [member.name])} {member.descriptor}")
            for method in code.methods:
                lines.extend(self._method_listing(method))
            lines.append("")
        return "\n".join(lines)

    @staticmethod
    def _method_listing(method: MethodCode) -> List[str]:
        modifiers = " ".join(method.modifiers)
        prefix = f"{modifiers} " if modifiers else ""
        lines = [f"  method {prefix}{method.name}{method.descriptor} locals={method.local_count}"]

        by_position: Dict[int, List[Label]] = {}
        for label in method.labels:
            by_position.setdefault(label.position, []).append(label)

        for index, instruction in enumerate(method.instructions):
            for label in by_position.get(index, []):
                lines.append(f"  {label}:")
            lines.append(f"    {index:4d}: {instruction}")
        for label in by_position.get(len(method.instructions), []):
            lines.append(f"  {label}:")

        if method.handlers:
            lines.append("    handlers:")
            for entry in method.handlers:
                caught = entry.type_name or "any"
                lines.append(f"      {entry.start} {entry.end} {entry.handler} {caught}")
        return lines


def _constant_text(value: Union[int, float, str]) -> Union[int, float, str]:
    """Quote string constants so they read unambiguously in listings."""
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
        return f'"{escaped}"'
    return value

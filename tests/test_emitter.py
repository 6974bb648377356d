# =============================================================================
# test_emitter.py - Instruction Emitter Tests
# =============================================================================
# Tests for the abstract instruction stream: classes and methods,
# opcode categories, labels, exception handlers and the text listing.
# =============================================================================

import pytest

from jminus.emitter import (
    INVERSE_BRANCHES,
    NO_ARG_OPCODES,
    Emitter,
    Instruction,
    Opcode,
)
from jminus.errors import CodeGenError


@pytest.fixture
def emitter():
    """An emitter with class A and static method f()V started."""
    emitter = Emitter()
    emitter.add_class(["public"], "A")
    emitter.add_method("f", "()V", is_static=True, modifiers=["public", "static"], local_count=2)
    return emitter


# =============================================================================
# Structure Tests
# =============================================================================

class TestStructure:
    """Classes, fields and methods."""

    def test_methods_across_classes(self):
        emitter = Emitter()
        emitter.add_class([], "A")
        emitter.add_method("f", "()V")
        emitter.add_class([], "B", "A")
        emitter.add_method("g", "()V")
        emitter.add_method("h", "(I)I")
        assert [m.name for m in emitter.methods] == ["f", "g", "h"]
        assert emitter.classes[1].superclass == "A"

    def test_new_class_ends_method(self):
        emitter = Emitter()
        emitter.add_class([], "A")
        emitter.add_method("f", "()V")
        emitter.add_class([], "B")
        with pytest.raises(CodeGenError):
            emitter.add_no_arg_instruction(Opcode.RETURN)

    def test_method_without_class(self):
        emitter = Emitter()
        emitter.add_method("f", "()V")
        assert emitter.classes[0].name == ""
        assert emitter.current_method.name == "f"

    def test_instruction_outside_method(self):
        with pytest.raises(CodeGenError, match="No method"):
            Emitter().add_no_arg_instruction(Opcode.NOP)

    def test_fields(self, emitter):
        emitter.add_field(["private"], "count", "I")
        field = emitter.current_class.fields[0]
        assert (field.name, field.descriptor, field.modifiers) == ("count", "I", ["private"])


# =============================================================================
# Instruction Category Tests
# =============================================================================

class TestInstructions:
    """Each add_* method accepts only its own opcodes."""

    def test_no_arg(self, emitter):
        emitter.add_no_arg_instruction(Opcode.ICONST_1)
        emitter.add_no_arg_instruction(Opcode.IRETURN)
        assert emitter.instructions == [Instruction(Opcode.ICONST_1), Instruction(Opcode.IRETURN)]

    @pytest.mark.parametrize("method,arguments", [
        ("add_no_arg_instruction", (Opcode.ILOAD,)),
        ("add_one_arg_instruction", (Opcode.IADD, 1)),
        ("add_branch_instruction", (Opcode.NEW, None)),
        ("add_reference_instruction", (Opcode.GOTO, "A")),
        ("add_member_access_instruction", (Opcode.CHECKCAST, "A", "x", "I")),
    ])
    def test_wrong_category_rejected(self, emitter, method, arguments):
        with pytest.raises(CodeGenError, match="cannot be added this way"):
            getattr(emitter, method)(*arguments)

    def test_no_arg_set_excludes_operand_opcodes(self):
        assert Opcode.LDC not in NO_ARG_OPCODES
        assert Opcode.IINC not in NO_ARG_OPCODES
        assert Opcode.MULTIANEWARRAY not in NO_ARG_OPCODES
        assert Opcode.DUP_X2 in NO_ARG_OPCODES

    def test_operands(self, emitter):
        emitter.add_one_arg_instruction(Opcode.BIPUSH, 100)
        emitter.add_iinc_instruction(1, -1)
        emitter.add_reference_instruction(Opcode.NEW, "java/lang/StringBuilder")
        emitter.add_member_access_instruction(
            Opcode.INVOKESPECIAL, "java/lang/StringBuilder", "<init>", "()V"
        )
        emitter.add_multianewarray_instruction("[[I", 2)
        assert [str(i) for i in emitter.instructions] == [
            "bipush 100",
            "iinc 1 -1",
            "new java/lang/StringBuilder",
            "invokespecial java/lang/StringBuilder.<init> ()V",
            "multianewarray [[I 2",
        ]

    def test_ldc_quotes_strings(self, emitter):
        emitter.add_ldc_instruction('say "hi"\n')
        emitter.add_ldc_instruction(70000)
        emitter.add_ldc_instruction(2.5, wide=True)
        assert [str(i) for i in emitter.instructions] == [
            'ldc "say \\"hi\\"\\n"',
            "ldc 70000",
            "ldc2_w 2.5",
        ]

    def test_inverse_branches_are_symmetric(self):
        for opcode, inverse in INVERSE_BRANCHES.items():
            assert INVERSE_BRANCHES[inverse] is opcode


# =============================================================================
# Label Tests
# =============================================================================

class TestLabels:
    """Label creation and placement."""

    def test_label_bound_to_next_instruction(self, emitter):
        emitter.add_no_arg_instruction(Opcode.NOP)
        label = emitter.create_label()
        emitter.add_label(label)
        emitter.add_no_arg_instruction(Opcode.RETURN)
        assert label.position == 1
        assert label.is_placed

    def test_label_names_are_unique(self, emitter):
        first, second = emitter.create_label(), emitter.create_label()
        assert first.name != second.name
        assert str(first) == "L0"

    def test_placing_twice_raises(self, emitter):
        label = emitter.create_label()
        emitter.add_label(label)
        with pytest.raises(CodeGenError, match="placed twice"):
            emitter.add_label(label)

    def test_unplaced_labels(self, emitter):
        placed, dangling, unused = (emitter.create_label() for _ in range(3))
        emitter.add_label(placed)
        emitter.add_branch_instruction(Opcode.GOTO, placed)
        emitter.add_branch_instruction(Opcode.GOTO, dangling)
        assert emitter.unplaced_labels() == [dangling]
        assert not unused.referenced

    def test_handler_references_labels(self, emitter):
        start, end, handler = (emitter.create_label() for _ in range(3))
        emitter.add_exception_handler(start, end, handler, "java/lang/Exception")
        assert start.referenced and end.referenced and handler.referenced
        assert emitter.unplaced_labels() == [start, end, handler]

    def test_labels_compare_by_identity(self, emitter):
        assert emitter.create_label() != emitter.create_label()


# =============================================================================
# Listing Tests
# =============================================================================

class TestListing:
    """Text rendering of the collected code."""

    def test_method_listing(self, emitter):
        top = emitter.create_label()
        emitter.add_label(top)
        emitter.add_one_arg_instruction(Opcode.ILOAD, 0)
        emitter.add_branch_instruction(Opcode.IFNE, top)
        emitter.add_no_arg_instruction(Opcode.RETURN)
        assert emitter.listing() == "\n".join([
            "public class A extends java/lang/Object",
            "  method public static f()V locals=2",
            "  L0:",
            "       0: iload 0",
            "       1: ifne L0",
            "       2: return",
            "",
        ])

    def test_label_at_end_of_method(self, emitter):
        end = emitter.create_label()
        emitter.add_no_arg_instruction(Opcode.RETURN)
        emitter.add_label(end)
        assert emitter.listing().splitlines()[-1] == "  L0:"

    def test_fields_and_handlers(self, emitter):
        emitter.add_field(["static"], "total", "J")
        start, end, handler = (emitter.create_label() for _ in range(3))
        emitter.add_label(start)
        emitter.add_no_arg_instruction(Opcode.NOP)
        emitter.add_label(end)
        emitter.add_no_arg_instruction(Opcode.RETURN)
        emitter.add_label(handler)
        emitter.add_no_arg_instruction(Opcode.ATHROW)
        emitter.add_exception_handler(start, end, handler, "java/lang/Exception")
        emitter.add_exception_handler(start, end, handler)

        lines = emitter.listing().splitlines()
        assert "  field static total J" in lines
        assert lines[-3:] == [
            "    handlers:",
            "      L0 L1 L2 java/lang/Exception",
            "      L0 L1 L2 any",
        ]

    def test_class_without_modifiers(self):
        emitter = Emitter()
        emitter.add_class([], "B", "A")
        assert emitter.listing() == "class B extends A\n"

"""
j-- Code Generator
==================

This module implements the codegen phase: it walks an analyzed tree and
writes JVM-style stack-machine instructions into an Emitter.

Code Generation Strategy
------------------------
Expressions leave their value on the operand stack; statements leave
the stack as they found it. A statement expression (`x = 1;`, `f();`)
is generated without its value, or with the value popped afterwards.

Boolean expressions used as conditions are generated in branch form by
codegen_branch(expr, label, on_true): jump to label when the value
equals on_true, otherwise fall through. `&&`, `||` and `!` compose
branch forms, so they short-circuit without materializing 0/1 values.
Only where a boolean value is actually needed (assigned, returned,
passed) is it pushed as ICONST_1 / ICONST_0.

Local Variables
---------------
Slots are assigned by analysis. Temporaries needed by generated code
(for-each array and index, switch value, pending exception in finally)
are allocated above the analyzed slots and never reused.

Control Flow Lowering
---------------------
| Construct        | Lowering                                           |
|------------------|----------------------------------------------------|
| if / else        | branch-if-false over then part, GOTO over else     |
| while / for      | test at top, GOTO back to the test                 |
| do / until       | test at bottom, branch back while true / false     |
| for-each         | index loop over the array held in temporaries      |
| switch           | compare chain on a temporary, then case bodies     |
| try / finally    | finally body inlined on every exit, plus a         |
|                  | catch-all handler that rethrows                    |
| String +         | StringBuilder append chain                         |

Labels are created only when an instruction refers to them, and code
after an unconditional transfer (return, throw, break) is not followed
by a GOTO that could never run.

Class Initialization
--------------------
Static field initializers and static blocks form <clinit>. Instance
field initializers and instance blocks form a private method
`$init$`, which every constructor not delegating to this(...) calls
right after the superclass constructor.

Example Usage
-------------
>>> from jminus.compiler import compile_source
>>> result = compile_source("class A { int f() { return 1; } }")
>>> print(result.emitter.listing())
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

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
    BreakStatement,
    ClassDeclaration,
    ConstructorDeclaration,
    ContinueStatement,
    Expression,
    FieldDeclaration,
    FieldSelection,
    IfStatement,
    InitializerBlock,
    LiteralExpression,
    MessageExpression,
    MethodDeclaration,
    ReturnStatement,
    StatementExpression,
    StringConcatenation,
    SuperConstruction,
    SuperExpression,
    ThisConstruction,
    ThrowStatement,
    UnaryExpression,
    UnaryOperator,
    VariableExpression,
)
from jminus.emitter import ARRAY_TYPE_CODES, INVERSE_BRANCHES, Emitter, Label, Opcode
from jminus.errors import CodeGenError
from jminus.lexer import INTEGRAL_LITERALS, TokenKind
from jminus.types import Type, method_descriptor, widens_to

logger = logging.getLogger(__name__)

O = Opcode

STRING_BUILDER = "java/lang/StringBuilder"
INSTANCE_INITIALIZER = "$init$"

ARITHMETIC_NAMES = {
    BinaryOperator.ADD: "ADD",
    BinaryOperator.SUBTRACT: "SUB",
    BinaryOperator.MULTIPLY: "MUL",
    BinaryOperator.DIVIDE: "DIV",
    BinaryOperator.REMAINDER: "REM",
    BinaryOperator.BITWISE_AND: "AND",
    BinaryOperator.BITWISE_OR: "OR",
    BinaryOperator.BITWISE_XOR: "XOR",
    BinaryOperator.LEFT_SHIFT: "SHL",
    BinaryOperator.RIGHT_SHIFT: "SHR",
    BinaryOperator.UNSIGNED_RIGHT_SHIFT: "USHR",
}

# (two-operand int compare, compare-against-zero) branch for each operator
COMPARE_BRANCHES = {
    BinaryOperator.EQUAL: (O.IF_ICMPEQ, O.IFEQ),
    BinaryOperator.NOT_EQUAL: (O.IF_ICMPNE, O.IFNE),
    BinaryOperator.LESS: (O.IF_ICMPLT, O.IFLT),
    BinaryOperator.GREATER: (O.IF_ICMPGT, O.IFGT),
    BinaryOperator.LESS_EQUAL: (O.IF_ICMPLE, O.IFLE),
    BinaryOperator.GREATER_EQUAL: (O.IF_ICMPGE, O.IFGE),
}

CONVERSIONS = {
    ("I", "L"): O.I2L,
    ("I", "F"): O.I2F,
    ("I", "D"): O.I2D,
    ("L", "I"): O.L2I,
    ("L", "F"): O.L2F,
    ("L", "D"): O.L2D,
    ("F", "I"): O.F2I,
    ("F", "L"): O.F2L,
    ("F", "D"): O.F2D,
    ("D", "I"): O.D2I,
    ("D", "L"): O.D2L,
    ("D", "F"): O.D2F,
}

NARROWING = {
    types.BYTE: O.I2B,
    types.CHAR: O.I2C,
    types.SHORT: O.I2S,
}

# Operand-stack duplication below 0, 1 or 2 words, for 1- and 2-word values
DUP_BELOW = {
    1: (O.DUP, O.DUP_X1, O.DUP_X2),
    2: (O.DUP2, O.DUP2_X1, O.DUP2_X2),
}


# =============================================================================
# Helper Data Classes
# =============================================================================

@dataclass
class FinallyContext:
    """
    A finally block enclosing the code being generated.

    Attributes:
        block: The finally body, inlined on each exit through it
        break_depth: Breakable constructs open when the try began
        loop_depth: Loops open when the try began
    """
    block: Block
    break_depth: int
    loop_depth: int


def _internal_name(name: str) -> str:
    """Slash-separated class name for a dotted or simple name."""
    return Type.reference(name).resolve().internal_name


def _class_operand(var_type: Type) -> str:
    """Operand of NEW/ANEWARRAY/CHECKCAST/INSTANCEOF for a type."""
    if var_type.is_array:
        return var_type.descriptor
    if var_type == types.ANY:
        return types.OBJECT.internal_name
    return var_type.internal_name


def _prefix(var_type: Optional[Type]) -> str:
    """Typed-instruction letter; booleans and chars use the int forms."""
    if var_type is None:
        return "A"
    return var_type.opcode_prefix


def _array_prefix(element: Type) -> str:
    if element in (types.BOOLEAN, types.BYTE):
        return "B"
    if element == types.CHAR:
        return "C"
    if element == types.SHORT:
        return "S"
    return _prefix(element)


def _word_size(var_type: Optional[Type]) -> int:
    return 1 if var_type is None else var_type.word_size


def _to_signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    return value - (1 << bits) if value >= 1 << (bits - 1) else value


def can_complete_normally(statement: Optional[ASTNode]) -> bool:
    """
    Conservative check whether control can reach the end of statement.

    Only jumps (return, throw, break, continue), possibly at the end of
    a block or in both arms of an if, are treated as never completing.
    """
    if isinstance(statement, (ReturnStatement, ThrowStatement, BreakStatement, ContinueStatement)):
        return False
    if isinstance(statement, Block):
        return not statement.statements or can_complete_normally(statement.statements[-1])
    if isinstance(statement, IfStatement):
        if statement.else_part is None:
            return True
        return can_complete_normally(statement.then_part) or can_complete_normally(statement.else_part)
    return True


# =============================================================================
# Code Generator
# =============================================================================

class CodeGenerator(ASTVisitor):
    """
    Generates instructions for analyzed j-- trees.

    Attributes:
        emitter: Instruction sink
    """

    def __init__(self, emitter: Emitter):
        self.emitter = emitter
        self._class_name = ""
        self._superclass = types.OBJECT.internal_name
        self._has_instance_initializer = False
        self._return_type: Type = types.VOID
        self._next_slot = 0
        self._break_stack: List[Label] = []
        self._continue_stack: List[Label] = []
        self._finally_stack: List[FinallyContext] = []

    def generate(self, node: ASTNode) -> None:
        """Generate code for node (a whole unit, a class, or a fragment)."""
        self.visit(node)

    def generic_visit(self, node: ASTNode) -> None:
        raise CodeGenError(f"Cannot generate code for {node.__class__.__name__} at line {node.line}")

    # =========================================================================
    # Emission Helpers
    # =========================================================================

    def _emit(self, opcode: Opcode) -> None:
        self.emitter.add_no_arg_instruction(opcode)

    def _branch(self, opcode: Opcode, label: Label) -> None:
        self.emitter.add_branch_instruction(opcode, label)

    def _typed(self, prefix: str, name: str) -> Opcode:
        """Typed opcode such as ILOAD, DADD, AALOAD from its parts."""
        return Opcode[prefix + name]

    def _push_int(self, value: int) -> None:
        value = _to_signed(value, 32)
        if -1 <= value <= 5:
            self._emit(Opcode[f"ICONST_{value}" if value >= 0 else "ICONST_M1"])
        elif -128 <= value <= 127:
            self.emitter.add_one_arg_instruction(O.BIPUSH, value)
        elif -32768 <= value <= 32767:
            self.emitter.add_one_arg_instruction(O.SIPUSH, value)
        else:
            self.emitter.add_ldc_instruction(value)

    def _push_one(self, var_type: Type) -> None:
        """Push the constant 1 of a numeric type."""
        prefix = _prefix(var_type)
        if prefix == "L":
            self._emit(O.LCONST_1)
        elif prefix == "F":
            self._emit(O.FCONST_1)
        elif prefix == "D":
            self._emit(O.DCONST_1)
        else:
            self._emit(O.ICONST_1)

    def _pop(self, var_type: Optional[Type]) -> None:
        size = _word_size(var_type)
        if size == 2:
            self._emit(O.POP2)
        elif size == 1:
            self._emit(O.POP)

    def _load_local(self, var_type: Type, slot: int) -> None:
        self.emitter.add_one_arg_instruction(self._typed(_prefix(var_type), "LOAD"), slot)

    def _store_local(self, var_type: Type, slot: int) -> None:
        self.emitter.add_one_arg_instruction(self._typed(_prefix(var_type), "STORE"), slot)

    def _load_this(self) -> None:
        self.emitter.add_one_arg_instruction(O.ALOAD, 0)

    def _allocate_temp(self, var_type: Type) -> int:
        """Reserve a fresh local slot for generated code."""
        slot = self._next_slot
        self._next_slot += max(1, var_type.word_size)
        method = self.emitter.current_method
        if method is not None:
            method.local_count = max(method.local_count, self._next_slot)
        return slot

    def _convert(self, source: Optional[Type], target: Type) -> None:
        """Emit the conversion of a value from source to target type."""
        if source is None or source == target:
            return
        if source.is_numeric and target.is_numeric:
            from_prefix, to_prefix = source.opcode_prefix, target.opcode_prefix
            if from_prefix != to_prefix:
                self._emit(CONVERSIONS[(from_prefix, to_prefix)])
            if target in NARROWING and not widens_to(source, target):
                self._emit(NARROWING[target])
            return
        if not target.is_reference or target == types.OBJECT:
            return
        if source == types.ANY or not source.matches_expected(target):
            self.emitter.add_reference_instruction(O.CHECKCAST, _class_operand(target))

    def _return(self, var_type: Type) -> None:
        if var_type == types.VOID:
            self._emit(O.RETURN)
        else:
            self._emit(self._typed(_prefix(var_type), "RETURN"))

    # =========================================================================
    # Declarations
    # =========================================================================

    def visit_CompilationUnit(self, node) -> None:
        logger.debug(f"Generating code for {node.filename}")
        for declaration in node.type_declarations:
            self.visit(declaration)

    def visit_ClassDeclaration(self, node: ClassDeclaration) -> None:
        superclass = node.superclass or types.OBJECT
        self._class_name = _internal_name(node.name)
        self._superclass = superclass.internal_name
        self.emitter.add_class(node.modifiers, self._class_name, self._superclass)

        static_inits: List[ASTNode] = []
        instance_inits: List[ASTNode] = []
        for member in node.members:
            if isinstance(member, FieldDeclaration):
                for declarator in member.declarators:
                    self.emitter.add_field(member.modifiers, declarator.name, declarator.type.descriptor)
                    if declarator.initializer is not None:
                        (static_inits if member.is_static else instance_inits).append(
                            (member.is_static, declarator)
                        )
            elif isinstance(member, InitializerBlock):
                (static_inits if member.is_static else instance_inits).append(member)
        self._has_instance_initializer = bool(instance_inits)

        has_constructor = False
        for member in node.members:
            if isinstance(member, ConstructorDeclaration):
                has_constructor = True
                self.visit(member)
            elif isinstance(member, MethodDeclaration):
                self.visit(member)

        if not has_constructor:
            self._generate_default_constructor()
        if instance_inits:
            self._generate_initializer_method(INSTANCE_INITIALIZER, False, instance_inits)
        if static_inits:
            self._generate_initializer_method("<clinit>", True, static_inits)

    def _begin_method(self, name: str, descriptor: str, is_static: bool, modifiers, local_count: int, return_type: Type):
        logger.debug(f"Generating code for method {self._class_name}.{name}{descriptor}")
        self.emitter.add_method(name, descriptor, is_static, modifiers, local_count)
        self._next_slot = local_count
        self._return_type = return_type
        self._break_stack, self._continue_stack, self._finally_stack = [], [], []

    def _generate_default_constructor(self) -> None:
        self._begin_method("<init>", "()V", False, ["public"], 1, types.VOID)
        self._generate_super_prologue(None)
        self._emit(O.RETURN)

    def _generate_super_prologue(self, first: Optional[Expression]) -> None:
        """Superclass constructor call (explicit or implicit) and instance initialization."""
        if isinstance(first, ThisConstruction):
            self.visit(first)
            return
        if isinstance(first, SuperConstruction):
            self.visit(first)
        else:
            self._load_this()
            self.emitter.add_member_access_instruction(O.INVOKESPECIAL, self._superclass, "<init>", "()V")
        if self._has_instance_initializer:
            self._load_this()
            self.emitter.add_member_access_instruction(O.INVOKESPECIAL, self._class_name, INSTANCE_INITIALIZER, "()V")

    def _generate_initializer_method(self, name: str, is_static: bool, initializers: list) -> None:
        first_slot = 0 if is_static else 1
        local_count = max(
            [first_slot] + [i.local_count for i in initializers if isinstance(i, InitializerBlock)]
        )
        modifiers = ["static"] if is_static else ["private"]
        self._begin_method(name, "()V", is_static, modifiers, local_count, types.VOID)
        for initializer in initializers:
            if isinstance(initializer, InitializerBlock):
                self.visit(initializer.body)
                continue
            field_is_static, declarator = initializer
            if not field_is_static:
                self._load_this()
            self.visit(declarator.initializer)
            opcode = O.PUTSTATIC if field_is_static else O.PUTFIELD
            self.emitter.add_member_access_instruction(
                opcode, self._class_name, declarator.name, declarator.type.descriptor
            )
        self._emit(O.RETURN)

    def visit_MethodDeclaration(self, node: MethodDeclaration) -> None:
        parameter_types = [p.type for p in node.parameters]
        descriptor = method_descriptor(parameter_types, node.return_type)
        self._begin_method(node.name, descriptor, node.is_static, node.modifiers, node.local_count, node.return_type)
        if node.body is None:
            return
        self.visit(node.body)
        if can_complete_normally(node.body):
            self._return(node.return_type)

    def visit_ConstructorDeclaration(self, node: ConstructorDeclaration) -> None:
        descriptor = method_descriptor([p.type for p in node.parameters], types.VOID)
        self._begin_method("<init>", descriptor, False, node.modifiers, node.local_count, types.VOID)

        statements = list(node.body.statements) if node.body is not None else []
        first = None
        if statements and isinstance(statements[0], StatementExpression):
            candidate = statements[0].expression
            if isinstance(candidate, (ThisConstruction, SuperConstruction)):
                first = candidate
                statements = statements[1:]
        self._generate_super_prologue(first)

        for statement in statements:
            self.visit(statement)
        if not statements or can_complete_normally(statements[-1]):
            self._emit(O.RETURN)

    # =========================================================================
    # Statements
    # =========================================================================

    def visit_Block(self, node: Block) -> None:
        for statement in node.statements:
            self.visit(statement)

    def visit_EmptyStatement(self, node) -> None:
        pass

    def visit_VariableDeclaration(self, node) -> None:
        for declarator in node.declarators:
            if declarator.initializer is None:
                continue
            self.visit(declarator.initializer)
            self._store_local(declarator.type, declarator.slot)

    def visit_StatementExpression(self, node: StatementExpression) -> None:
        expression = node.expression
        if isinstance(expression, AssignmentExpression):
            self._generate_assignment(expression, want_value=False)
        elif isinstance(expression, UnaryExpression) and expression.operator.is_increment:
            self._generate_increment(expression, want_value=False)
        else:
            self.visit(expression)
            self._pop(expression.resolved_type)

    def visit_IfStatement(self, node: IfStatement) -> None:
        else_label = self.emitter.create_label()
        self.codegen_branch(node.condition, else_label, False)
        self.visit(node.then_part)
        if node.else_part is None:
            self._place_if_referenced(else_label)
            return

        end_label = None
        if can_complete_normally(node.then_part):
            end_label = self.emitter.create_label()
            self._branch(O.GOTO, end_label)
        self._place_if_referenced(else_label)
        self.visit(node.else_part)
        if end_label is not None:
            self.emitter.add_label(end_label)

    def _place_if_referenced(self, label: Label) -> None:
        """Place label unless nothing jumps to it (a constant condition)."""
        if label.referenced:
            self.emitter.add_label(label)

    def _loop_body(self, body, continue_label: Label, break_label: Label) -> None:
        self._continue_stack.append(continue_label)
        self._break_stack.append(break_label)
        try:
            self.visit(body)
        finally:
            self._continue_stack.pop()
            self._break_stack.pop()

    def visit_WhileStatement(self, node) -> None:
        test_label = self.emitter.create_label()
        end_label = self.emitter.create_label()

        self.emitter.add_label(test_label)
        self.codegen_branch(node.condition, end_label, False)
        self._loop_body(node.body, test_label, end_label)
        if can_complete_normally(node.body):
            self._branch(O.GOTO, test_label)
        self._place_if_referenced(end_label)

    def _generate_bottom_tested_loop(self, node, loop_while: bool) -> None:
        top_label = self.emitter.create_label()
        test_label = self.emitter.create_label()
        end_label = self.emitter.create_label()

        self.emitter.add_label(top_label)
        self._loop_body(node.body, test_label, end_label)
        self.emitter.add_label(test_label)
        self.codegen_branch(node.condition, top_label, loop_while)
        self.emitter.add_label(end_label)

    def visit_DoWhileStatement(self, node) -> None:
        self._generate_bottom_tested_loop(node, True)

    def visit_DoUntilStatement(self, node) -> None:
        self._generate_bottom_tested_loop(node, False)

    def visit_ForStatement(self, node) -> None:
        for statement in node.init:
            self.visit(statement)

        test_label = self.emitter.create_label()
        update_label = self.emitter.create_label()
        end_label = self.emitter.create_label()

        self.emitter.add_label(test_label)
        if node.condition is not None:
            self.codegen_branch(node.condition, end_label, False)
        self._loop_body(node.body, update_label, end_label)
        self.emitter.add_label(update_label)
        for statement in node.update:
            self.visit(statement)
        self._branch(O.GOTO, test_label)
        self.emitter.add_label(end_label)

    def visit_ForEachStatement(self, node) -> None:
        collection_type = node.collection.resolved_type
        element = collection_type.component_type if collection_type.is_array else types.ANY
        array_slot = self._allocate_temp(collection_type)
        index_slot = self._allocate_temp(types.INT)

        self.visit(node.collection)
        self._store_local(collection_type, array_slot)
        self._emit(O.ICONST_0)
        self._store_local(types.INT, index_slot)

        test_label = self.emitter.create_label()
        update_label = self.emitter.create_label()
        end_label = self.emitter.create_label()

        self.emitter.add_label(test_label)
        self._load_local(types.INT, index_slot)
        self._load_local(collection_type, array_slot)
        self._emit(O.ARRAYLENGTH)
        self._branch(O.IF_ICMPGE, end_label)

        self._load_local(collection_type, array_slot)
        self._load_local(types.INT, index_slot)
        self._emit(self._typed(_array_prefix(element), "ALOAD"))
        self._convert(element, node.variable.type)
        self._store_local(node.variable.type, node.variable.slot)

        self._loop_body(node.body, update_label, end_label)
        self.emitter.add_label(update_label)
        self.emitter.add_iinc_instruction(index_slot, 1)
        self._branch(O.GOTO, test_label)
        self.emitter.add_label(end_label)

    def visit_ReturnStatement(self, node: ReturnStatement) -> None:
        if node.expression is None:
            self._inline_finally_blocks(0, 0)
            self._emit(O.RETURN)
            return

        self.visit(node.expression)
        if self._finally_stack:
            slot = self._allocate_temp(self._return_type)
            self._store_local(self._return_type, slot)
            self._inline_finally_blocks(0, 0)
            self._load_local(self._return_type, slot)
        self._return(self._return_type)

    def visit_BreakStatement(self, node) -> None:
        if not self._break_stack:
            raise CodeGenError(f"break outside switch or loop at line {node.line}")
        self._inline_finally_blocks(len(self._break_stack), None)
        self._branch(O.GOTO, self._break_stack[-1])

    def visit_ContinueStatement(self, node) -> None:
        if not self._continue_stack:
            raise CodeGenError(f"continue outside of loop at line {node.line}")
        self._inline_finally_blocks(None, len(self._continue_stack))
        self._branch(O.GOTO, self._continue_stack[-1])

    def visit_ThrowStatement(self, node) -> None:
        self.visit(node.expression)
        self._emit(O.ATHROW)

    def _inline_finally_blocks(self, break_depth: Optional[int], loop_depth: Optional[int]) -> None:
        """
        Inline the finally bodies being exited, innermost first.

        A finally is exited when its try lies inside the construct being
        left: break_depth/loop_depth give that construct's nesting level,
        None means the jump does not leave that kind of construct.
        """
        saved = self._finally_stack
        try:
            for index in range(len(saved) - 1, -1, -1):
                context = saved[index]
                exits = (
                    (break_depth is not None and context.break_depth >= break_depth)
                    or (loop_depth is not None and context.loop_depth >= loop_depth)
                )
                if not exits:
                    break
                self._finally_stack = saved[:index]
                self.visit(context.block)
        finally:
            self._finally_stack = saved

    def _guarded(self, body, finally_block: Optional[Block]) -> None:
        """Generate body with finally_block pending on every exit."""
        if finally_block is None:
            self.visit(body)
            return
        self._finally_stack.append(
            FinallyContext(finally_block, len(self._break_stack), len(self._continue_stack))
        )
        try:
            self.visit(body)
        finally:
            self._finally_stack.pop()

    def visit_TryStatement(self, node) -> None:
        emitter = self.emitter
        finally_block = node.finally_block
        start_label = emitter.create_label()
        end_label = emitter.create_label()
        after_label: Optional[Label] = None
        protected = []

        emitter.add_label(start_label)
        self._guarded(node.body, finally_block)
        emitter.add_label(end_label)
        if can_complete_normally(node.body):
            if finally_block is not None:
                self.visit(finally_block)
            after_label = emitter.create_label()
            self._branch(O.GOTO, after_label)

        for clause in node.catches:
            handler_label = emitter.create_label()
            emitter.add_label(handler_label)
            caught = clause.parameter.type
            emitter.add_exception_handler(start_label, end_label, handler_label, _class_operand(caught))
            self._store_local(caught, clause.parameter.slot)
            self._guarded(clause.body, finally_block)
            if finally_block is not None:
                clause_end = emitter.create_label()
                emitter.add_label(clause_end)
                protected.append((handler_label, clause_end))
            if can_complete_normally(clause.body):
                if finally_block is not None:
                    self.visit(finally_block)
                if after_label is None:
                    after_label = emitter.create_label()
                self._branch(O.GOTO, after_label)

        if finally_block is not None:
            any_label = emitter.create_label()
            emitter.add_label(any_label)
            emitter.add_exception_handler(start_label, end_label, any_label, None)
            for clause_start, clause_end in protected:
                emitter.add_exception_handler(clause_start, clause_end, any_label, None)
            slot = self._allocate_temp(types.OBJECT)
            self._store_local(types.OBJECT, slot)
            self.visit(finally_block)
            self._load_local(types.OBJECT, slot)
            self._emit(O.ATHROW)

        if after_label is not None:
            emitter.add_label(after_label)

    def visit_SwitchStatement(self, node) -> None:
        emitter = self.emitter
        clause_type = node.condition.resolved_type
        is_string = clause_type == types.STRING
        slot = self._allocate_temp(clause_type)
        end_label = emitter.create_label()

        self.visit(node.condition)
        self._store_local(clause_type, slot)

        group_labels = []
        default_label = None
        for group in node.groups:
            group_label = emitter.create_label()
            group_labels.append(group_label)
            for label in group.labels:
                if label is None:
                    default_label = group_label
                    continue
                self._load_local(clause_type, slot)
                self.visit(label)
                if is_string:
                    emitter.add_member_access_instruction(
                        O.INVOKEVIRTUAL, types.STRING.internal_name, "equals", "(Ljava/lang/Object;)Z"
                    )
                    self._branch(O.IFNE, group_label)
                else:
                    self._branch(O.IF_ICMPEQ, group_label)
        self._branch(O.GOTO, default_label or end_label)

        self._break_stack.append(end_label)
        try:
            for group, group_label in zip(node.groups, group_labels):
                emitter.add_label(group_label)
                for statement in group.statements:
                    self.visit(statement)
        finally:
            self._break_stack.pop()
        emitter.add_label(end_label)

    # =========================================================================
    # Branch Code
    # =========================================================================

    def codegen_branch(self, expr: Expression, label: Label, on_true: bool) -> None:
        """
        Generate a boolean expression as a conditional jump.

        Jumps to label when the expression's value equals on_true and
        falls through otherwise.
        """
        if isinstance(expr, LiteralExpression) and expr.kind in (TokenKind.TRUE, TokenKind.FALSE):
            if (expr.kind is TokenKind.TRUE) == on_true:
                self._branch(O.GOTO, label)
            return

        if isinstance(expr, UnaryExpression) and expr.operator is UnaryOperator.LOGICAL_NOT:
            self.codegen_branch(expr.operand, label, not on_true)
            return

        if isinstance(expr, BinaryExpression):
            operator = expr.operator
            if operator is BinaryOperator.LOGICAL_AND:
                self._branch_and(expr, label, on_true)
                return
            if operator is BinaryOperator.LOGICAL_OR:
                self._branch_or(expr, label, on_true)
                return
            if operator in COMPARE_BRANCHES:
                self._branch_compare(expr, label, on_true)
                return

        self.visit(expr)
        self._branch(O.IFNE if on_true else O.IFEQ, label)

    def _branch_and(self, expr: BinaryExpression, label: Label, on_true: bool) -> None:
        if on_true:
            skip = self.emitter.create_label()
            self.codegen_branch(expr.lhs, skip, False)
            self.codegen_branch(expr.rhs, label, True)
            self.emitter.add_label(skip)
        else:
            self.codegen_branch(expr.lhs, label, False)
            self.codegen_branch(expr.rhs, label, False)

    def _branch_or(self, expr: BinaryExpression, label: Label, on_true: bool) -> None:
        if on_true:
            self.codegen_branch(expr.lhs, label, True)
            self.codegen_branch(expr.rhs, label, True)
        else:
            skip = self.emitter.create_label()
            self.codegen_branch(expr.lhs, skip, True)
            self.codegen_branch(expr.rhs, label, False)
            self.emitter.add_label(skip)

    def _branch_compare(self, expr: BinaryExpression, label: Label, on_true: bool) -> None:
        operator = expr.operator
        two_operand, against_zero = COMPARE_BRANCHES[operator]
        prefix = _prefix(expr.lhs.resolved_type)
        if prefix == "A" and _prefix(expr.rhs.resolved_type) != "A":
            prefix = _prefix(expr.rhs.resolved_type)

        if prefix == "A":
            self._branch_reference_compare(expr, label, on_true)
            return

        self.visit(expr.lhs)
        self.visit(expr.rhs)
        if prefix == "I":
            opcode = two_operand
        else:
            if prefix == "L":
                self._emit(O.LCMP)
            else:
                uses_g = operator in (BinaryOperator.LESS, BinaryOperator.LESS_EQUAL)
                self._emit(self._typed(prefix, "CMPG" if uses_g else "CMPL"))
            opcode = against_zero
        self._branch(opcode if on_true else INVERSE_BRANCHES[opcode], label)

    def _branch_reference_compare(self, expr: BinaryExpression, label: Label, on_true: bool) -> None:
        equal = expr.operator is BinaryOperator.EQUAL
        if equal == on_true:
            null_test, pair_test = O.IFNULL, O.IF_ACMPEQ
        else:
            null_test, pair_test = O.IFNONNULL, O.IF_ACMPNE

        for operand, other in ((expr.rhs, expr.lhs), (expr.lhs, expr.rhs)):
            if isinstance(operand, LiteralExpression) and operand.kind is TokenKind.NULL:
                self.visit(other)
                self._branch(null_test, label)
                return
        self.visit(expr.lhs)
        self.visit(expr.rhs)
        self._branch(pair_test, label)

    def _boolean_value(self, expr: Expression) -> None:
        """Push 1 or 0 for a boolean expression generated in branch form."""
        false_label = self.emitter.create_label()
        end_label = self.emitter.create_label()
        self.codegen_branch(expr, false_label, False)
        self._emit(O.ICONST_1)
        self._branch(O.GOTO, end_label)
        self.emitter.add_label(false_label)
        self._emit(O.ICONST_0)
        self.emitter.add_label(end_label)

    # =========================================================================
    # Expressions: Operators
    # =========================================================================

    def visit_BinaryExpression(self, node: BinaryExpression) -> None:
        operator = node.operator
        if operator in COMPARE_BRANCHES or operator in (BinaryOperator.LOGICAL_AND, BinaryOperator.LOGICAL_OR):
            self._boolean_value(node)
            return

        self.visit(node.lhs)
        self.visit(node.rhs)
        prefix = _prefix(node.resolved_type)
        if node.resolved_type == types.BOOLEAN or prefix == "A":
            prefix = "I"
        self._emit(self._typed(prefix, ARITHMETIC_NAMES[operator]))

    def visit_StringConcatenation(self, node: StringConcatenation) -> None:
        emitter = self.emitter
        emitter.add_reference_instruction(O.NEW, STRING_BUILDER)
        self._emit(O.DUP)
        emitter.add_member_access_instruction(O.INVOKESPECIAL, STRING_BUILDER, "<init>", "()V")
        self._append_parts(node)
        emitter.add_member_access_instruction(O.INVOKEVIRTUAL, STRING_BUILDER, "toString", "()Ljava/lang/String;")

    def _append_parts(self, expr: Expression) -> None:
        if isinstance(expr, StringConcatenation):
            self._append_parts(expr.lhs)
            self._append_parts(expr.rhs)
            return
        self.visit(expr)
        self._append(expr.resolved_type)

    def _append(self, var_type: Type) -> None:
        """StringBuilder.append for a value of var_type on the stack."""
        if var_type in (types.BYTE, types.SHORT):
            parameter = types.INT
        elif var_type.is_primitive or var_type == types.STRING:
            parameter = var_type
        else:
            parameter = types.OBJECT
        self.emitter.add_member_access_instruction(
            O.INVOKEVIRTUAL,
            STRING_BUILDER,
            "append",
            f"({parameter.descriptor})L{STRING_BUILDER};",
        )

    def visit_UnaryExpression(self, node: UnaryExpression) -> None:
        operator = node.operator
        if operator.is_increment:
            self._generate_increment(node, want_value=True)
            return
        if operator is UnaryOperator.LOGICAL_NOT:
            self.visit(node.operand)
            self._emit(O.ICONST_1)
            self._emit(O.IXOR)
            return

        self.visit(node.operand)
        prefix = _prefix(node.resolved_type)
        if operator is UnaryOperator.NEGATE:
            self._emit(self._typed(prefix, "NEG"))
        elif operator is UnaryOperator.BITWISE_NOT:
            if prefix == "L":
                self.emitter.add_ldc_instruction(-1, wide=True)
            else:
                self._emit(O.ICONST_M1)
            self._emit(self._typed(prefix, "XOR"))

    def visit_TernaryExpression(self, node) -> None:
        else_label = self.emitter.create_label()
        end_label = self.emitter.create_label()
        self.codegen_branch(node.condition, else_label, False)
        self.visit(node.then_part)
        self._branch(O.GOTO, end_label)
        self.emitter.add_label(else_label)
        self.visit(node.else_part)
        self.emitter.add_label(end_label)

    def visit_InstanceOfExpression(self, node) -> None:
        self.visit(node.expression)
        self.emitter.add_reference_instruction(O.INSTANCEOF, _class_operand(node.target_type))

    def visit_CastExpression(self, node) -> None:
        self.visit(node.expression)
        self._convert(node.expression.resolved_type, node.target_type)

    # =========================================================================
    # Assignment
    # =========================================================================

    def visit_AssignmentExpression(self, node: AssignmentExpression) -> None:
        self._generate_assignment(node, want_value=True)

    def _generate_assignment(self, node: AssignmentExpression, want_value: bool) -> None:
        lhs, rhs = node.lhs, node.rhs
        target_type = lhs.resolved_type
        operator = node.operator

        if operator is AssignmentOperator.ASSIGN:
            self._update_lvalue(lhs, lambda: self.visit(rhs), want_value, load_old=False)
            return

        binary = operator.binary_operator
        if binary is BinaryOperator.ADD and target_type == types.STRING:
            self._update_lvalue(lhs, lambda: self._concatenate_onto_top(rhs), want_value)
            return

        def compute() -> None:
            self.visit(rhs)
            prefix = _prefix(target_type)
            if target_type == types.BOOLEAN or prefix == "A":
                prefix = "I"
            self._emit(self._typed(prefix, ARITHMETIC_NAMES[binary]))
            if target_type in NARROWING:
                self._emit(NARROWING[target_type])

        self._update_lvalue(lhs, compute, want_value)

    def _concatenate_onto_top(self, rhs: Expression) -> None:
        """Replace the string on top of the stack with string + rhs."""
        emitter = self.emitter
        emitter.add_reference_instruction(O.NEW, STRING_BUILDER)
        self._emit(O.DUP)
        emitter.add_member_access_instruction(O.INVOKESPECIAL, STRING_BUILDER, "<init>", "()V")
        self._emit(O.SWAP)
        self._append(types.STRING)
        self._append_parts(rhs)
        emitter.add_member_access_instruction(O.INVOKEVIRTUAL, STRING_BUILDER, "toString", "()Ljava/lang/String;")

    def _generate_increment(self, node: UnaryExpression, want_value: bool) -> None:
        operand = node.operand
        var_type = operand.resolved_type
        operator = node.operator
        is_post = operator in (UnaryOperator.POST_INCREMENT, UnaryOperator.POST_DECREMENT)
        is_increment = operator in (UnaryOperator.PRE_INCREMENT, UnaryOperator.POST_INCREMENT)

        if isinstance(operand, VariableExpression) and operand.slot is not None and var_type == types.INT:
            if want_value and is_post:
                self._load_local(var_type, operand.slot)
            self.emitter.add_iinc_instruction(operand.slot, 1 if is_increment else -1)
            if want_value and not is_post:
                self._load_local(var_type, operand.slot)
            return

        def compute() -> None:
            self._push_one(var_type)
            self._emit(self._typed(_prefix(var_type), "ADD" if is_increment else "SUB"))
            if var_type in NARROWING:
                self._emit(NARROWING[var_type])

        self._update_lvalue(operand, compute, want_value, keep_old=is_post)

    def _update_lvalue(
        self,
        lhs: Expression,
        compute: Callable[[], None],
        want_value: bool,
        load_old: bool = True,
        keep_old: bool = False,
    ) -> None:
        """
        Store a new value into an assignable expression.

        The target's references (object, array and index) are pushed
        once. With load_old the current value is loaded for compute() to
        combine with; otherwise compute() pushes the value on its own.
        With want_value a copy of the result (or of the old value, for
        keep_old) is left beneath the references so it survives the
        store.
        """
        var_type = lhs.resolved_type
        depth = self._push_lvalue_references(lhs)
        if load_old:
            if depth:
                self._emit(DUP_BELOW[depth][0])
            self._load_lvalue(lhs)
        if want_value and keep_old:
            self._emit(DUP_BELOW[max(1, _word_size(var_type))][depth])
        compute()
        if want_value and not keep_old:
            self._emit(DUP_BELOW[max(1, _word_size(var_type))][depth])
        self._store_lvalue(lhs)

    def _push_lvalue_references(self, lhs: Expression) -> int:
        """Push what a store into lhs needs besides the value; return its word count."""
        if isinstance(lhs, VariableExpression):
            if lhs.slot is not None or lhs.is_static:
                return 0
            self._load_this()
            return 1
        if isinstance(lhs, FieldSelection):
            if lhs.is_static:
                if lhs.target is not None:
                    self.visit(lhs.target)
                    self._emit(O.POP)
                return 0
            self.visit(lhs.target)
            return 1
        if isinstance(lhs, ArrayExpression):
            self.visit(lhs.array)
            self.visit(lhs.index)
            return 2
        raise CodeGenError(f"Cannot assign to {lhs.__class__.__name__} at line {lhs.line}")

    def _field_owner(self, lhs: Expression) -> str:
        owner = lhs.field_owner if isinstance(lhs, VariableExpression) else lhs.owner
        if owner is None:
            raise CodeGenError(f"Unresolved name {lhs.name} at line {lhs.line}")
        return _internal_name(owner)

    def _load_lvalue(self, lhs: Expression) -> None:
        """Load the current value; the references are already on the stack."""
        if isinstance(lhs, VariableExpression) and lhs.slot is not None:
            self._load_local(lhs.resolved_type, lhs.slot)
        elif isinstance(lhs, ArrayExpression):
            self._emit(self._typed(_array_prefix(lhs.resolved_type), "ALOAD"))
        else:
            opcode = O.GETSTATIC if lhs.is_static else O.GETFIELD
            self.emitter.add_member_access_instruction(
                opcode, self._field_owner(lhs), lhs.name, lhs.resolved_type.descriptor
            )

    def _store_lvalue(self, lhs: Expression) -> None:
        if isinstance(lhs, VariableExpression) and lhs.slot is not None:
            self._store_local(lhs.resolved_type, lhs.slot)
        elif isinstance(lhs, ArrayExpression):
            self._emit(self._typed(_array_prefix(lhs.resolved_type), "ASTORE"))
        else:
            opcode = O.PUTSTATIC if lhs.is_static else O.PUTFIELD
            self.emitter.add_member_access_instruction(
                opcode, self._field_owner(lhs), lhs.name, lhs.resolved_type.descriptor
            )

    # =========================================================================
    # Expressions: Primaries
    # =========================================================================

    def visit_LiteralExpression(self, node: LiteralExpression) -> None:
        kind = node.kind
        value = node.value
        if kind is TokenKind.LONG_LITERAL:
            value = _to_signed(value, 64)
            if value in (0, 1):
                self._emit(O.LCONST_0 if value == 0 else O.LCONST_1)
            else:
                self.emitter.add_ldc_instruction(value, wide=True)
        elif kind in INTEGRAL_LITERALS:
            self._push_int(value)
        elif kind is TokenKind.FLOAT_LITERAL:
            if value in (0.0, 1.0, 2.0):
                self._emit(Opcode[f"FCONST_{int(value)}"])
            else:
                self.emitter.add_ldc_instruction(value)
        elif kind is TokenKind.DOUBLE_LITERAL:
            if value in (0.0, 1.0):
                self._emit(Opcode[f"DCONST_{int(value)}"])
            else:
                self.emitter.add_ldc_instruction(value, wide=True)
        elif kind is TokenKind.CHAR_LITERAL:
            self._push_int(ord(value[0]) if value else 0)
        elif kind is TokenKind.STRING_LITERAL:
            self.emitter.add_ldc_instruction(value)
        elif kind is TokenKind.TRUE:
            self._emit(O.ICONST_1)
        elif kind is TokenKind.FALSE:
            self._emit(O.ICONST_0)
        else:
            self._emit(O.ACONST_NULL)

    def visit_VariableExpression(self, node: VariableExpression) -> None:
        if node.slot is not None:
            self._load_local(node.resolved_type, node.slot)
            return
        if not node.is_static:
            self._load_this()
        self._load_lvalue(node)

    def visit_FieldSelection(self, node: FieldSelection) -> None:
        target = node.target
        if target is not None and target.resolved_type is not None and target.resolved_type.is_array:
            self.visit(target)
            self._emit(O.ARRAYLENGTH)
            return
        self._push_lvalue_references(node)
        self._load_lvalue(node)

    def visit_MessageExpression(self, node: MessageExpression) -> None:
        emitter = self.emitter
        target = node.target
        owner = _internal_name(node.owner) if node.owner else self._class_name

        if node.is_static:
            if target is not None:
                self.visit(target)
                self._emit(O.POP)
            opcode = O.INVOKESTATIC
        else:
            if target is None or isinstance(target, SuperExpression):
                self._load_this()
            else:
                self.visit(target)
            opcode = O.INVOKESPECIAL if isinstance(target, SuperExpression) else O.INVOKEVIRTUAL

        for argument in node.arguments:
            self.visit(argument)
        emitter.add_member_access_instruction(opcode, owner, node.name, node.descriptor)

    def visit_ArrayExpression(self, node: ArrayExpression) -> None:
        self.visit(node.array)
        self.visit(node.index)
        self._emit(self._typed(_array_prefix(node.resolved_type), "ALOAD"))

    def visit_ThisExpression(self, node) -> None:
        self._load_this()

    def visit_SuperExpression(self, node) -> None:
        self._load_this()

    def _generate_constructor_call(self, owner: str, node) -> None:
        self._load_this()
        for argument in node.arguments:
            self.visit(argument)
        self.emitter.add_member_access_instruction(O.INVOKESPECIAL, owner, "<init>", node.descriptor)

    def visit_ThisConstruction(self, node: ThisConstruction) -> None:
        self._generate_constructor_call(self._class_name, node)

    def visit_SuperConstruction(self, node: SuperConstruction) -> None:
        self._generate_constructor_call(self._superclass, node)

    def visit_NewObject(self, node) -> None:
        class_name = _class_operand(node.type)
        self.emitter.add_reference_instruction(O.NEW, class_name)
        self._emit(O.DUP)
        for argument in node.arguments:
            self.visit(argument)
        self.emitter.add_member_access_instruction(O.INVOKESPECIAL, class_name, "<init>", node.descriptor)

    def _new_array(self, array_type: Type) -> None:
        """Create a one-dimensional array; the length is on the stack."""
        component = array_type.component_type
        if component.is_primitive:
            self.emitter.add_one_arg_instruction(O.NEWARRAY, ARRAY_TYPE_CODES[component.descriptor])
        else:
            self.emitter.add_reference_instruction(O.ANEWARRAY, _class_operand(component))

    def visit_NewArray(self, node) -> None:
        if node.initializer is not None:
            self.visit(node.initializer)
            return
        for dimension in node.dimensions:
            self.visit(dimension)
        if len(node.dimensions) == 1:
            self._new_array(node.type)
        else:
            self.emitter.add_multianewarray_instruction(node.type.descriptor, len(node.dimensions))

    def visit_ArrayInitializer(self, node: ArrayInitializer) -> None:
        array_type = node.type
        element = array_type.component_type
        self._push_int(len(node.initials))
        self._new_array(array_type)
        for index, initial in enumerate(node.initials):
            self._emit(O.DUP)
            self._push_int(index)
            self.visit(initial)
            self._emit(self._typed(_array_prefix(element), "ASTORE"))

    def visit_WildExpression(self, node) -> None:
        raise CodeGenError(f"Cannot generate code for an erroneous expression at line {node.line}")

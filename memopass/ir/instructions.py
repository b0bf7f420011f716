"""
IR Instructions
===============

Instructions are values with operands. Operand slots are registered in
the used value's user list on assignment and released when the
instruction is erased, so use lists never point at removed code.
"""

from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from ..errors import IRError
from .types import I1, VOID, FunctionType, IRType
from .values import Value

if TYPE_CHECKING:  # pragma: no cover
    from .module import BasicBlock, Function


INT_BINARY_OPS = frozenset({'add', 'sub', 'mul', 'sdiv', 'srem'})
FLOAT_BINARY_OPS = frozenset({'fadd', 'fsub', 'fmul', 'fdiv', 'frem'})

INT_PREDICATES = frozenset({'eq', 'ne', 'slt', 'sle', 'sgt', 'sge'})
FLOAT_PREDICATES = frozenset({'oeq', 'one', 'olt', 'ole', 'ogt', 'oge'})

CAST_OPS = frozenset({
    'sext', 'zext', 'trunc', 'sitofp', 'fptosi', 'fpext', 'fptrunc',
})


class Instruction(Value):
    """Base class of all instructions."""

    opcode = '<instruction>'
    is_terminator = False

    def __init__(self, type: IRType, operands: Sequence[Value], name: str = ''):
        super().__init__(type, name)
        self.parent: Optional['BasicBlock'] = None
        self._operands = []
        for operand in operands:
            self._operands.append(operand)
            operand._add_user(self)

    @property
    def operands(self) -> Tuple[Value, ...]:
        return tuple(self._operands)

    @property
    def function(self) -> Optional['Function']:
        return self.parent.parent if self.parent is not None else None

    def set_operand(self, index: int, value: Value) -> None:
        old = self._operands[index]
        if old is value:
            return
        old._remove_user(self)
        self._operands[index] = value
        value._add_user(self)

    def replace_operand(self, old: Value, new: Value) -> None:
        """Replace every slot holding ``old`` with ``new``."""
        found = False
        for index, operand in enumerate(self._operands):
            if operand is old:
                self.set_operand(index, new)
                found = True
        if not found:
            raise IRError(f"{old!r} is not an operand of {self!r}")

    def drop_operands(self) -> None:
        for operand in self._operands:
            operand._remove_user(self)
        self._operands = []

    def erase_from_parent(self) -> None:
        """Unlink from the block and release operands. Must have no users."""
        if self._users:
            raise IRError(
                f"cannot erase {self.opcode} instruction that still has "
                f"{len(self._users)} user(s)"
            )
        if self.parent is not None:
            self.parent.remove(self)
        self.drop_operands()


class BinaryOperator(Instruction):

    def __init__(self, op: str, lhs: Value, rhs: Value, name: str = ''):
        if op not in INT_BINARY_OPS and op not in FLOAT_BINARY_OPS:
            raise IRError(f"unknown binary operator {op!r}")
        if lhs.type != rhs.type:
            raise IRError(f"{op} operands disagree: {lhs.type} vs {rhs.type}")
        super().__init__(lhs.type, [lhs, rhs], name)
        self.op = op

    @property
    def opcode(self) -> str:
        return self.op


class CompareInst(Instruction):

    def __init__(self, predicate: str, lhs: Value, rhs: Value, name: str = ''):
        if predicate not in INT_PREDICATES and predicate not in FLOAT_PREDICATES:
            raise IRError(f"unknown comparison predicate {predicate!r}")
        if lhs.type != rhs.type:
            raise IRError(
                f"comparison operands disagree: {lhs.type} vs {rhs.type}"
            )
        super().__init__(I1, [lhs, rhs], name)
        self.predicate = predicate

    @property
    def opcode(self) -> str:
        return 'fcmp' if self.predicate in FLOAT_PREDICATES else 'icmp'


class SelectInst(Instruction):
    opcode = 'select'

    def __init__(self, condition: Value, if_true: Value, if_false: Value, name: str = ''):
        if condition.type != I1:
            raise IRError(f"select condition must be i1, got {condition.type}")
        if if_true.type != if_false.type:
            raise IRError(
                f"select arms disagree: {if_true.type} vs {if_false.type}"
            )
        super().__init__(if_true.type, [condition, if_true, if_false], name)


class CastInst(Instruction):

    def __init__(self, op: str, value: Value, dest_type: IRType, name: str = ''):
        if op not in CAST_OPS:
            raise IRError(f"unknown cast {op!r}")
        super().__init__(dest_type, [value], name)
        self.op = op

    @property
    def opcode(self) -> str:
        return self.op


class LoadInst(Instruction):
    opcode = 'load'

    def __init__(self, pointer: Value, name: str = ''):
        if not pointer.type.is_pointer or pointer.type.is_function_pointer:
            raise IRError(f"cannot load through {pointer.type}")
        super().__init__(pointer.type.pointee, [pointer], name)

    @property
    def pointer(self) -> Value:
        return self._operands[0]


class StoreInst(Instruction):
    opcode = 'store'

    def __init__(self, value: Value, pointer: Value):
        if not pointer.type.is_pointer or pointer.type.pointee != value.type:
            raise IRError(f"cannot store {value.type} through {pointer.type}")
        super().__init__(VOID, [value, pointer])

    @property
    def value(self) -> Value:
        return self._operands[0]

    @property
    def pointer(self) -> Value:
        return self._operands[1]


class CallInst(Instruction):
    """
    A call. The callee is the last operand; it is either a ``Function``
    (direct call) or any other function-pointer value (indirect call).
    """
    opcode = 'call'

    def __init__(self, callee: Value, args: Sequence[Value], name: str = ''):
        signature = _callee_signature(callee)
        super().__init__(signature.return_type, list(args) + [callee], name)

    @property
    def callee(self) -> Value:
        return self._operands[-1]

    @property
    def args(self) -> Tuple[Value, ...]:
        return tuple(self._operands[:-1])

    @property
    def callee_type(self) -> FunctionType:
        return _callee_signature(self.callee)


class ReturnInst(Instruction):
    opcode = 'ret'
    is_terminator = True

    def __init__(self, value: Optional[Value] = None):
        super().__init__(VOID, [value] if value is not None else [])

    @property
    def value(self) -> Optional[Value]:
        return self._operands[0] if self._operands else None


def _callee_signature(callee: Value) -> FunctionType:
    if not callee.type.is_function_pointer:
        raise IRError(f"callee {callee!r} is not a function pointer")
    return callee.type.pointee

"""Positioned instruction construction."""

from typing import Optional, Sequence

from ..errors import IRError
from .instructions import (
    BinaryOperator, CallInst, CastInst, CompareInst, Instruction, LoadInst,
    ReturnInst, SelectInst, StoreInst,
)
from .module import BasicBlock
from .types import IRType
from .values import Value


class IRBuilder:
    """
    Creates instructions at an insertion point.

    Usage:
        >>> block = function.append_block()
        >>> b = IRBuilder(block)
        >>> total = b.add(function.arguments[0], function.arguments[1])
        >>> b.ret(total)

    The insertion point is either the end of a block or just before an
    existing instruction (``position_before``).
    """

    def __init__(self, block: Optional[BasicBlock] = None):
        self.block = block
        self._anchor: Optional[Instruction] = None

    def position_at_end(self, block: BasicBlock) -> None:
        self.block = block
        self._anchor = None

    def position_before(self, inst: Instruction) -> None:
        if inst.parent is None:
            raise IRError(f"{inst!r} is not attached to a block")
        self.block = inst.parent
        self._anchor = inst

    def insert(self, inst: Instruction) -> Instruction:
        if self.block is None:
            raise IRError("builder has no insertion point")
        if self._anchor is not None:
            return self.block.insert_before(inst, self._anchor)
        return self.block.append(inst)

    # ── Arithmetic ───────────────────────────────────────────────────

    def binop(self, op: str, lhs: Value, rhs: Value, name: str = '') -> Instruction:
        return self.insert(BinaryOperator(op, lhs, rhs, name))

    def add(self, lhs: Value, rhs: Value, name: str = '') -> Instruction:
        return self.binop('add', lhs, rhs, name)

    def sub(self, lhs: Value, rhs: Value, name: str = '') -> Instruction:
        return self.binop('sub', lhs, rhs, name)

    def mul(self, lhs: Value, rhs: Value, name: str = '') -> Instruction:
        return self.binop('mul', lhs, rhs, name)

    def fadd(self, lhs: Value, rhs: Value, name: str = '') -> Instruction:
        return self.binop('fadd', lhs, rhs, name)

    def fmul(self, lhs: Value, rhs: Value, name: str = '') -> Instruction:
        return self.binop('fmul', lhs, rhs, name)

    def compare(self, predicate: str, lhs: Value, rhs: Value, name: str = '') -> Instruction:
        return self.insert(CompareInst(predicate, lhs, rhs, name))

    def select(self, cond: Value, if_true: Value, if_false: Value, name: str = '') -> Instruction:
        return self.insert(SelectInst(cond, if_true, if_false, name))

    def cast(self, op: str, value: Value, dest_type: IRType, name: str = '') -> Instruction:
        return self.insert(CastInst(op, value, dest_type, name))

    # ── Memory ───────────────────────────────────────────────────────

    def load(self, pointer: Value, name: str = '') -> Instruction:
        return self.insert(LoadInst(pointer, name))

    def store(self, value: Value, pointer: Value) -> Instruction:
        return self.insert(StoreInst(value, pointer))

    # ── Control ──────────────────────────────────────────────────────

    def call(self, callee: Value, args: Sequence[Value], name: str = '') -> Instruction:
        return self.insert(CallInst(callee, args, name))

    def ret(self, value: Optional[Value] = None) -> Instruction:
        return self.insert(ReturnInst(value))

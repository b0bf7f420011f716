"""
IR Printer
==========

LLVM-flavoured text rendering of the IR, used for diagnostics and for the
CLI's ``--print-ir`` output. Unnamed arguments and instructions get
per-function slot numbers (``%0``, ``%1``, ...).
"""

from typing import Dict, List, Optional

from .instructions import (
    BinaryOperator, CallInst, CastInst, CompareInst, Instruction, LoadInst,
    ReturnInst, SelectInst, StoreInst,
)
from .module import Function, Linkage, Module
from .values import Constant, GlobalVariable, Value


class SlotTracker:
    """Assigns numbers to the unnamed values of one function."""

    def __init__(self, function: Optional[Function] = None):
        self._slots: Dict[int, int] = {}
        if function is None:
            return
        counter = 0
        for arg in function.arguments:
            if not arg.name:
                self._slots[id(arg)] = counter
                counter += 1
        for inst in function.instructions():
            if not inst.name and not inst.type.is_void:
                self._slots[id(inst)] = counter
                counter += 1

    def ref(self, value: Value) -> str:
        if isinstance(value, Constant):
            return value.text
        if isinstance(value, (GlobalVariable, Function)):
            return f"@{value.name}"
        if value.name:
            return f"%{value.name}"
        slot = self._slots.get(id(value))
        return f"%{slot}" if slot is not None else '%<badref>'

    def typed(self, value: Value) -> str:
        return f"{value.type} {self.ref(value)}"


def format_instruction(inst: Instruction, slots: Optional[SlotTracker] = None) -> str:
    if slots is None:
        slots = SlotTracker(inst.function)
    body = _format_body(inst, slots)
    if inst.type.is_void:
        return body
    return f"{slots.ref(inst)} = {body}"


def _format_body(inst: Instruction, slots: SlotTracker) -> str:
    ops = inst.operands
    if isinstance(inst, BinaryOperator):
        return f"{inst.op} {inst.type} {slots.ref(ops[0])}, {slots.ref(ops[1])}"
    if isinstance(inst, CompareInst):
        return (f"{inst.opcode} {inst.predicate} {ops[0].type} "
                f"{slots.ref(ops[0])}, {slots.ref(ops[1])}")
    if isinstance(inst, SelectInst):
        return 'select ' + ', '.join(slots.typed(op) for op in ops)
    if isinstance(inst, CastInst):
        return f"{inst.op} {slots.typed(ops[0])} to {inst.type}"
    if isinstance(inst, LoadInst):
        return f"load {inst.type}, {slots.typed(inst.pointer)}"
    if isinstance(inst, StoreInst):
        return f"store {slots.typed(inst.value)}, {slots.typed(inst.pointer)}"
    if isinstance(inst, CallInst):
        args = ', '.join(slots.typed(arg) for arg in inst.args)
        return f"call {inst.type} {slots.ref(inst.callee)}({args})"
    if isinstance(inst, ReturnInst):
        if inst.value is None:
            return 'ret void'
        return f"ret {slots.typed(inst.value)}"
    return f"{inst.opcode} " + ', '.join(slots.typed(op) for op in ops)


def format_function(function: Function) -> str:
    slots = SlotTracker(function)
    params = ', '.join(slots.typed(arg) for arg in function.arguments)
    if function.is_var_arg:
        params = f"{params}, ..." if params else '...'
    linkage = '' if function.linkage == Linkage.EXTERNAL else f"{function.linkage.value} "
    header = f"{linkage}{function.return_type} @{function.name}({params})"
    if function.is_declaration:
        return f"declare {header}"
    lines: List[str] = [f"define {header} {{"]
    for index, block in enumerate(function.blocks):
        if index:
            lines.append('')
        lines.append(f"{block.name}:")
        for inst in block:
            lines.append(f"  {format_instruction(inst, slots)}")
    lines.append('}')
    return '\n'.join(lines)


def format_global(variable: GlobalVariable) -> str:
    kind = 'constant' if variable.is_constant else 'global'
    if variable.initializer is None:
        return f"@{variable.name} = external {kind} {variable.value_type}"
    return f"@{variable.name} = {kind} {variable.value_type} {variable.initializer.text}"


def format_module(module: Module) -> str:
    parts = [f"; ModuleID = '{module.name}'"]
    if module.globals:
        parts.append('\n'.join(format_global(g) for g in module.globals))
    parts.extend(format_function(f) for f in module.functions)
    return '\n\n'.join(parts) + '\n'

"""
Module Verifier
===============

Structural checks run after a transformation to prove it left the module
consistent:

  - use lists agree with operand lists
  - no operand refers to an erased instruction, a foreign argument or a
    symbol outside the module (dangling references)
  - instructions in the same block are used only after their definition
  - direct calls pass exactly the parameter types of their callee
  - loads/stores go through pointers to the accessed type
  - returns match the function's return type and blocks are terminated
"""

from typing import Dict, List

from ..errors import VerificationError
from .instructions import CallInst, Instruction, LoadInst, ReturnInst, StoreInst
from .module import Function, Module
from .printer import SlotTracker, format_instruction
from .values import Argument, Constant, GlobalVariable, Value


class ModuleVerifier:
    """Collects every problem found in a module instead of stopping at the first."""

    def __init__(self, module: Module):
        self.module = module
        self.problems: List[str] = []

    def verify(self) -> List[str]:
        self.problems = []
        for function in self.module.functions:
            if function.module is not self.module:
                self._report(function, None, 'function is not owned by this module')
            self._verify_function(function)
        return self.problems

    def _verify_function(self, function: Function) -> None:
        slots = SlotTracker(function)
        position: Dict[int, tuple] = {}
        for block_index, block in enumerate(function.blocks):
            if block.parent is not function:
                self._report(function, None, f"block {block.name} has wrong parent")
            if block.terminator is None:
                self._report(function, None, f"block {block.name} has no terminator")
            for inst_index, inst in enumerate(block.instructions):
                position[id(inst)] = (block_index, inst_index)
                if inst.parent is not block:
                    self._report(function, inst, 'instruction has wrong parent', slots)
                if inst.is_terminator and inst_index != len(block.instructions) - 1:
                    self._report(function, inst, 'terminator in the middle of a block', slots)

        for inst in function.instructions():
            here = position[id(inst)]
            for operand in inst.operands:
                self._verify_operand(function, inst, operand, here, position, slots)
            self._verify_types(function, inst, slots)

    def _verify_operand(self, function, inst, operand: Value, here, position, slots) -> None:
        if not any(user is inst for user in operand.users):
            self._report(function, inst, f"use list of {slots.ref(operand)} is missing this user", slots)
        if isinstance(operand, Instruction):
            where = position.get(id(operand))
            if where is None:
                self._report(function, inst, f"operand {slots.ref(operand)} is not in this function", slots)
            elif where[0] == here[0] and where[1] >= here[1]:
                self._report(function, inst, f"operand {slots.ref(operand)} used before definition", slots)
        elif isinstance(operand, Argument):
            if operand.parent is not function:
                self._report(function, inst, f"argument {slots.ref(operand)} belongs to @{operand.parent.name}", slots)
        elif isinstance(operand, (GlobalVariable, Function)):
            if operand.module is not self.module:
                self._report(function, inst, f"@{operand.name} is not in this module", slots)
        elif not isinstance(operand, Constant):
            self._report(function, inst, f"unexpected operand {operand!r}", slots)

    def _verify_types(self, function: Function, inst: Instruction, slots: SlotTracker) -> None:
        if isinstance(inst, CallInst):
            signature = inst.callee_type
            args = inst.args
            if inst.type != signature.return_type:
                self._report(function, inst, 'call result type disagrees with callee', slots)
            if len(args) < len(signature.params) or (
                    len(args) > len(signature.params) and not signature.var_arg):
                self._report(function, inst, f"expected {len(signature.params)} argument(s), got {len(args)}", slots)
            for index, (arg, param_type) in enumerate(zip(args, signature.params)):
                if arg.type != param_type:
                    self._report(function, inst, f"argument {index} is {arg.type}, parameter is {param_type}", slots)
        elif isinstance(inst, LoadInst):
            if inst.pointer.type.pointee != inst.type:
                self._report(function, inst, 'load type disagrees with pointer', slots)
        elif isinstance(inst, StoreInst):
            if inst.pointer.type.pointee != inst.value.type:
                self._report(function, inst, 'store type disagrees with pointer', slots)
        elif isinstance(inst, ReturnInst):
            returned = inst.value.type if inst.value is not None else None
            expected = None if function.return_type.is_void else function.return_type
            if returned != expected:
                self._report(function, inst, f"returns {returned}, function returns {function.return_type}", slots)

    def _report(self, function: Function, inst, message: str, slots=None) -> None:
        if inst is None:
            self.problems.append(f"@{function.name}: {message}")
        else:
            self.problems.append(
                f"@{function.name}: `{format_instruction(inst, slots)}`: {message}"
            )


def verify_module(module: Module) -> List[str]:
    """Return the list of problems in ``module`` (empty when valid)."""
    return ModuleVerifier(module).verify()


def assert_valid(module: Module) -> None:
    problems = verify_module(module)
    if problems:
        raise VerificationError(problems)

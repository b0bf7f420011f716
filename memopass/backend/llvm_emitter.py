"""
LLVM Emitter
============

Translates a memopass ``Module`` into an ``llvmlite.ir.Module`` so the
result of the pass can be handed to any LLVM toolchain. Synthesized
variants are emitted as external declarations, and the variant records
are attached as the named metadata ``!memoize.variants``:

    !{!"<variant>", !"<original>", !"<c1,c2,...>", !"<type:origin,...>"}
"""

import logging
from typing import Dict, Optional

from llvmlite import ir

from ..errors import IRError
from ..ir.instructions import (
    FLOAT_PREDICATES, BinaryOperator, CallInst, CastInst, CompareInst,
    Instruction, LoadInst, ReturnInst, SelectInst, StoreInst,
)
from ..ir.module import Function, Linkage, Module
from ..ir.types import FunctionType, TypeKind
from ..ir.values import Constant, ConstantFloat, GlobalVariable, Value
from ..metadata import MemoRecord

logger = logging.getLogger(__name__)

_COMPARE_SYMBOLS = {
    'eq': '==', 'ne': '!=', 'slt': '<', 'sle': '<=', 'sgt': '>', 'sge': '>=',
    'oeq': '==', 'one': '!=', 'olt': '<', 'ole': '<=', 'ogt': '>', 'oge': '>=',
}

VARIANTS_METADATA = 'memoize.variants'


def lower_type(ty) -> ir.Type:
    """Map a memopass type to the equivalent llvmlite type."""
    if isinstance(ty, FunctionType):
        return ir.FunctionType(lower_type(ty.return_type),
                               [lower_type(p) for p in ty.params],
                               var_arg=ty.var_arg)
    kind = ty.kind
    if kind == TypeKind.INTEGER:
        return ir.IntType(ty.bits)
    if kind == TypeKind.FLOAT:
        return ir.FloatType()
    if kind == TypeKind.DOUBLE:
        return ir.DoubleType()
    if kind == TypeKind.VOID:
        return ir.VoidType()
    if kind == TypeKind.POINTER:
        return ir.PointerType(lower_type(ty.pointee))
    if kind == TypeKind.ARRAY:
        return ir.ArrayType(lower_type(ty.element), ty.count)
    if kind == TypeKind.STRUCT:
        return ir.LiteralStructType([lower_type(f) for f in ty.fields])
    raise IRError(f"no LLVM equivalent for {ty}")


class LLVMEmitter:
    """
    One-shot translation of a module.

    Usage:
        llvm_module = LLVMEmitter().emit(module)
        print(llvm_module)
    """

    def __init__(self, triple: Optional[str] = None):
        self.triple = triple
        self._values: Dict[int, ir.Value] = {}

    def emit(self, module: Module) -> ir.Module:
        llvm_module = ir.Module(name=module.name)
        if self.triple:
            llvm_module.triple = self.triple
        self._values = {}

        for variable in module.globals:
            self._values[id(variable)] = self._emit_global(llvm_module, variable)
        for function in module.functions:
            self._values[id(function)] = self._declare(llvm_module, function)
        for function in module.functions:
            if not function.is_declaration:
                self._emit_body(function)

        self._emit_records(llvm_module, module)
        logger.debug("Emitted LLVM module %s (%d functions)",
                     module.name, len(module.functions))
        return llvm_module

    # ───────────────────────────────────────────────────────────────
    #  Symbols
    # ───────────────────────────────────────────────────────────────

    def _emit_global(self, llvm_module: ir.Module, variable: GlobalVariable) -> ir.GlobalVariable:
        value_type = lower_type(variable.value_type)
        emitted = ir.GlobalVariable(llvm_module, value_type, name=variable.name)
        if variable.initializer is not None:
            emitted.initializer = self._constant(variable.initializer)
        else:
            emitted.initializer = ir.Constant(value_type, None)
        emitted.global_constant = variable.is_constant
        return emitted

    def _declare(self, llvm_module: ir.Module, function: Function) -> ir.Function:
        emitted = ir.Function(llvm_module, lower_type(function.function_type),
                              name=function.name)
        if function.linkage is not Linkage.EXTERNAL:
            emitted.linkage = function.linkage.value
        for arg, llvm_arg in zip(function.arguments, emitted.args):
            if arg.name:
                llvm_arg.name = arg.name
            self._values[id(arg)] = llvm_arg
        return emitted

    # ───────────────────────────────────────────────────────────────
    #  Bodies
    # ───────────────────────────────────────────────────────────────

    def _emit_body(self, function: Function) -> None:
        emitted = self._values[id(function)]
        blocks = {id(block): emitted.append_basic_block(block.name)
                  for block in function.blocks}
        builder = ir.IRBuilder()
        for block in function.blocks:
            builder.position_at_end(blocks[id(block)])
            for inst in block:
                self._values[id(inst)] = self._emit_instruction(builder, inst)

    def _emit_instruction(self, builder: ir.IRBuilder, inst: Instruction):
        name = inst.name
        if isinstance(inst, BinaryOperator):
            lhs, rhs = (self._operand(v) for v in inst.operands)
            return getattr(builder, inst.op)(lhs, rhs, name=name)
        if isinstance(inst, CompareInst):
            lhs, rhs = (self._operand(v) for v in inst.operands)
            symbol = _COMPARE_SYMBOLS[inst.predicate]
            if inst.predicate in FLOAT_PREDICATES:
                return builder.fcmp_ordered(symbol, lhs, rhs, name=name)
            return builder.icmp_signed(symbol, lhs, rhs, name=name)
        if isinstance(inst, SelectInst):
            cond, if_true, if_false = (self._operand(v) for v in inst.operands)
            return builder.select(cond, if_true, if_false, name=name)
        if isinstance(inst, CastInst):
            value = self._operand(inst.operands[0])
            return getattr(builder, inst.op)(value, lower_type(inst.type), name=name)
        if isinstance(inst, LoadInst):
            return builder.load(self._operand(inst.pointer), name=name)
        if isinstance(inst, StoreInst):
            return builder.store(self._operand(inst.value), self._operand(inst.pointer))
        if isinstance(inst, CallInst):
            args = [self._operand(arg) for arg in inst.args]
            callee = self._operand(inst.callee)
            return builder.call(callee, args, name='' if inst.type.is_void else name)
        if isinstance(inst, ReturnInst):
            if inst.value is None:
                return builder.ret_void()
            return builder.ret(self._operand(inst.value))
        raise IRError(f"cannot emit {inst.opcode}")

    def _operand(self, value: Value) -> ir.Value:
        if isinstance(value, Constant):
            return self._constant(value)
        emitted = self._values.get(id(value))
        if emitted is None:
            raise IRError(f"{value!r} used before it was emitted")
        return emitted

    @staticmethod
    def _constant(constant: Constant) -> ir.Constant:
        llvm_type = lower_type(constant.type)
        if isinstance(constant, ConstantFloat):
            return ir.Constant(llvm_type, float(constant.value))
        return ir.Constant(llvm_type, int(constant.value))

    # ───────────────────────────────────────────────────────────────
    #  Metadata
    # ───────────────────────────────────────────────────────────────

    def _emit_records(self, llvm_module: ir.Module, module: Module) -> None:
        records = [f.metadata['memoize.record'] for f in module.functions
                   if isinstance(f.metadata.get('memoize.record'), MemoRecord)]
        if not records:
            return
        named = llvm_module.add_named_metadata(VARIANTS_METADATA)
        for record in records:
            signature = ','.join(f"{t}:{origin}" for t, origin in record.canonical_signature)
            fields = [
                record.variant_name,
                record.original_name,
                ','.join(record.constant_suffix),
                signature,
            ]
            named.add(llvm_module.add_metadata(
                [ir.MetaDataString(llvm_module, text) for text in fields]
            ))


def emit_llvm(module: Module, triple: Optional[str] = None) -> str:
    """Textual LLVM IR for ``module``."""
    return str(LLVMEmitter(triple).emit(module))

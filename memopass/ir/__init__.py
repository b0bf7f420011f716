"""
memopass IR
===========

A small LLVM-shaped intermediate representation: typed values with use
lists, functions made of basic blocks, module-level globals, and the
primitives the memoization pass needs (call-target resolution, a purity
oracle for built-ins, value replacement and a verifier).
"""

from memopass.ir.types import (
    DOUBLE, FLOAT, I1, I8, I32, I64, VOID,
    FunctionType, IRType, TypeKind, array_of, int_type, pointer_to, struct_of,
)
from memopass.ir.values import (
    Argument, Constant, ConstantFloat, ConstantInt, GlobalVariable,
    ParamOrigin, Value, const_float, const_int,
)
from memopass.ir.instructions import (
    BinaryOperator, CallInst, CastInst, CompareInst, Instruction, LoadInst,
    ReturnInst, SelectInst, StoreInst,
)
from memopass.ir.module import (
    BasicBlock, CalleeKind, CalleeResolution, Function, Linkage, Module,
    resolve_callee,
)
from memopass.ir.builder import IRBuilder
from memopass.ir.builtins import SpeculatableOracle
from memopass.ir.printer import format_function, format_instruction, format_module
from memopass.ir.verifier import assert_valid, verify_module

__all__ = [
    'DOUBLE', 'FLOAT', 'I1', 'I8', 'I32', 'I64', 'VOID',
    'FunctionType', 'IRType', 'TypeKind',
    'array_of', 'int_type', 'pointer_to', 'struct_of',
    'Argument', 'Constant', 'ConstantFloat', 'ConstantInt', 'GlobalVariable',
    'ParamOrigin', 'Value', 'const_float', 'const_int',
    'BinaryOperator', 'CallInst', 'CastInst', 'CompareInst', 'Instruction',
    'LoadInst', 'ReturnInst', 'SelectInst', 'StoreInst',
    'BasicBlock', 'CalleeKind', 'CalleeResolution', 'Function', 'Linkage',
    'Module', 'resolve_callee',
    'IRBuilder',
    'SpeculatableOracle',
    'format_function', 'format_instruction', 'format_module',
    'assert_valid', 'verify_module',
]

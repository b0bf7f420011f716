"""
Tests for the llvmlite backend.
"""

import textwrap

import pytest

ir = pytest.importorskip('llvmlite.ir')

from memopass.backend import LLVMEmitter, emit_llvm, lower_type  # noqa: E402
from memopass.frontend import lower_source  # noqa: E402
from memopass.ir import DOUBLE, I1, I32, I64, FunctionType  # noqa: E402
from memopass.pass_driver import MemoizePass  # noqa: E402

SOURCE = textwrap.dedent('''
    import math
    from typing import Final

    G: int = 3
    LIMIT: Final[int] = 10

    def add(a: int, b: int) -> int:
        return a + b

    def _helper(x: float) -> float:
        return math.sqrt(x) if x > 0.0 else -x

    def main(n: int) -> int:
        print(n)
        return add(1, n) + add(n, G) // LIMIT
''')


class TestLowerType:
    def test_scalars(self):
        assert lower_type(I64) == ir.IntType(64)
        assert lower_type(I32) == ir.IntType(32)
        assert lower_type(I1) == ir.IntType(1)
        assert lower_type(DOUBLE) == ir.DoubleType()

    def test_function_type(self):
        lowered = lower_type(FunctionType(I64, (DOUBLE, I1)))
        assert lowered == ir.FunctionType(ir.IntType(64), [ir.DoubleType(), ir.IntType(1)])


class TestLLVMEmitter:
    def setup_method(self):
        self.module = lower_source(SOURCE, 'example')

    def test_emits_definitions(self):
        text = emit_llvm(self.module)
        assert 'define i64 @"add"' in text
        assert 'define internal double @"_helper"' in text
        assert 'global i64 3' in text
        assert 'constant i64 10' in text

    def test_emits_intrinsic_declarations(self):
        llvm_module = LLVMEmitter().emit(self.module)
        names = {f.name for f in llvm_module.functions}
        assert {'llvm.sqrt.f64', 'print_i64', 'add', 'main'} <= names
        assert llvm_module.get_global('llvm.sqrt.f64').is_declaration

    def test_no_metadata_without_variants(self):
        assert '!memoize.variants' not in emit_llvm(self.module)

    def test_variant_records(self):
        MemoizePass().run(self.module)
        text = emit_llvm(self.module)
        assert 'declare i64 @"_memoized_add_1"' in text
        assert '!memoize.variants' in text
        assert '!"_memoized_add_1"' in text
        assert '!"i64:original-argument"' in text

    def test_triple(self):
        text = emit_llvm(self.module, triple='x86_64-unknown-linux-gnu')
        assert 'target triple = "x86_64-unknown-linux-gnu"' in text

"""
Tests for the memoization pass driver.

Validates:
  - End-to-end rewriting of a module in declaration order
  - Diagnostics for eligible, trusted and rejected functions
  - Verification after the pass
  - Results that do not depend on function declaration order
  - Concurrent runs over distinct modules
"""

import logging

import pytest

from memopass.analysis.eligibility import IneligibleReason
from memopass.config import PassConfig
from memopass.errors import VerificationError
from memopass.ir import (
    I64, Function, FunctionType, GlobalVariable, IRBuilder, Module, const_int,
    format_function,
)
from memopass.metadata import MemoTable
from memopass.pass_driver import DiagnosticKind, MemoizePass

from test_rewriter import build_add_module


class TestMemoizePass:
    def setup_method(self):
        self.table = MemoTable()
        self.memo = MemoizePass(sink=self.table)

    def test_add_example(self):
        module = build_add_module()
        result = self.memo.run(module)

        assert result.changed
        assert result.summary() == {
            'module': 'add_example',
            'functions': 2,
            'eligible': 2,
            'variants': 2,
            'rewritten_call_sites': 2,
            'failed_call_sites': 0,
        }
        assert [r.variant_name for r in self.table] == ['_memoized_add_1', '_memoized_add_2']
        assert 'call i64 @_memoized_add_1(i64 %n)' in format_function(module.get_function('main'))

    def test_synthesized_variants_are_not_visited(self):
        module = build_add_module()
        result = self.memo.run(module)
        assert set(result.verdicts) == {'add', 'main'}
        assert len(module.functions) == 4

    def test_diagnostics(self):
        module = build_add_module()
        result = self.memo.run(module)
        kinds = [d.kind for d in result.diagnostics]
        assert kinds == [
            DiagnosticKind.ELIGIBLE,
            DiagnosticKind.SYNTHESIZED,
            DiagnosticKind.SYNTHESIZED,
            DiagnosticKind.REWRITTEN,
            DiagnosticKind.REWRITTEN,
            DiagnosticKind.ELIGIBLE,
        ]
        rewritten = result.diagnostics[3]
        assert rewritten.function == 'main'
        assert '->' in rewritten.message

    def test_rejected_functions_are_left_alone(self, ir):
        opaque = ir.declare('opaque')
        fn, call = ir.caller('f', opaque, lambda f: [f.arguments[0]])
        _, call_f = ir.caller('g', fn, lambda f: [const_int(1)])
        result = self.memo.run(ir.module)

        assert not result.changed
        assert result.rejected() == {
            'opaque': IneligibleReason.DECLARATION,
            'f': IneligibleReason.CALLEE_INELIGIBLE,
            'g': IneligibleReason.CALLEE_INELIGIBLE,
        }
        assert call.callee is opaque
        assert call_f.callee is fn
        assert len(self.table) == 0

    def test_diagnostic_text(self, ir):
        ir.declare('opaque')
        result = self.memo.run(ir.module)
        assert str(result.diagnostics[0]) == '[ineligible(Declaration)] @opaque: function has no body'

    def test_memoized_entry_points_are_trusted(self, ir):
        variant, b = ir.define('_memoized_cached', (I64,))
        b.ret(variant.arguments[0])
        _, call = ir.caller('main', variant, lambda f: [const_int(3)])
        result = self.memo.run(ir.module)

        assert result.diagnostics[0].kind == DiagnosticKind.TRUSTED
        assert call.callee is variant
        assert result.records == []

    def test_caller_becomes_eligible_after_rewrite(self, ir):
        leaf = ir.leaf('leaf', (I64,))
        middle, _ = ir.caller('middle', leaf, lambda f: [f.arguments[0]])
        top, _ = ir.caller('top', middle, lambda f: [const_int(4)])
        result = self.memo.run(ir.module)

        assert result.eligible_functions == ['leaf', 'middle', 'top']
        assert 'call i64 @_memoized_leaf(i64 %a)' in format_function(middle)
        assert 'call i64 @_memoized_middle_4()' in format_function(top)

    def test_failed_call_sites_are_reported(self, ir):
        f = ir.leaf('f', (I64,))
        ir.caller('main', f, lambda fn: [fn.arguments[0]], params=(I64,))
        _, b = ir.define('narrow', (I64,))
        b.ret(b.call(f, []))
        result = MemoizePass(PassConfig(verify=False)).run(ir.module)

        assert len(result.failures) == 1
        failed = [d for d in result.diagnostics if d.kind == DiagnosticKind.REWRITE_FAILED]
        assert failed[0].function == 'narrow'
        assert failed[0].reason == IneligibleReason.SIGNATURE_REWRITE_FAILED

    def test_idempotent(self):
        module = build_add_module()
        self.memo.run(module)
        second = MemoizePass().run(module)
        assert not second.changed
        assert second.records == []
        trusted = [d.function for d in second.diagnostics if d.kind == DiagnosticKind.TRUSTED]
        assert trusted == ['_memoized_add_1', '_memoized_add_2']

    def test_logs_progress(self, caplog):
        caplog.set_level(logging.INFO, logger='memopass')
        self.memo.run(build_add_module())
        messages = [record.getMessage() for record in caplog.records]
        assert 'Memoize: add_example' in messages
        assert any(m.startswith('Memoized function: @_memoized_add_1') for m in messages)


def build_layered_module(callee_first, read_k=False):
    """f(y) = y + G; h(x) = f(x) + 1 [+ K]; main() = h(2)."""
    module = Module('layered')
    g = module.add_global(GlobalVariable('G', I64, const_int(3)))
    k = module.add_global(GlobalVariable('K', I64, const_int(4)))
    f = Function('f', FunctionType(I64, (I64,)), param_names=['y'])
    h = Function('h', FunctionType(I64, (I64,)), param_names=['x'])
    for function in ((f, h) if callee_first else (h, f)):
        module.add_function(function)
    main = module.add_function(Function('main', FunctionType(I64, ())))

    b = IRBuilder(f.append_block())
    b.ret(b.add(f.arguments[0], b.load(g)))
    b = IRBuilder(h.append_block())
    result = b.add(b.call(f, [h.arguments[0]]), const_int(1))
    if read_k:
        result = b.add(result, b.load(k))
    b.ret(result)
    b = IRBuilder(main.append_block())
    b.ret(b.call(h, [const_int(2)]))
    return module


class TestDeclarationOrder:
    """Swapping a caller and its callee must not change the outcome."""

    def run_both(self, **kwargs):
        runs = []
        for callee_first in (True, False):
            table = MemoTable()
            module = build_layered_module(callee_first, **kwargs)
            result = MemoizePass(sink=table).run(module)
            runs.append((module, result, table))
        return runs

    def test_callee_global_is_captured(self):
        for module, result, table in self.run_both():
            assert result.eligible_functions and result.rejected() == {}
            record = table.for_function('h')[0]
            assert record.variant_name == '_memoized_h_2'
            assert record.captured_globals == ('G',)
            assert record.canonical_signature == (('i64', 'captured-global'),)
            assert table.for_function('f')[0].captured_globals == ('G',)

    def test_same_records_and_bodies(self):
        (first, result_a, table_a), (second, result_b, table_b) = self.run_both()

        def records(table):
            return sorted((r.variant_name, r.canonical_signature, r.captured_globals)
                          for r in table)

        assert records(table_a) == records(table_b)
        assert {n: v.eligible for n, v in result_a.verdicts.items()} == \
            {n: v.eligible for n, v in result_b.verdicts.items()}
        for name in ('h', 'main'):
            assert (format_function(first.get_function(name))
                    == format_function(second.get_function(name)))

    def test_second_global_through_callee_is_rejected(self):
        for module, result, table in self.run_both(read_k=True):
            assert result.rejected() == {
                'h': IneligibleReason.MULTIPLE_GLOBALS,
                'main': IneligibleReason.CALLEE_INELIGIBLE,
            }
            assert '@G' in result.verdicts['h'].detail
            assert '@K' in result.verdicts['h'].detail
            assert table.for_function('h') == []
            assert [r.variant_name for r in table] == ['_memoized_f']


class TestVerification:
    def test_invalid_module_is_reported(self, ir):
        fn, b = ir.define('broken', (I64,))
        b.add(fn.arguments[0], const_int(1))
        with pytest.raises(VerificationError):
            MemoizePass().run(ir.module)

    def test_verification_can_be_disabled(self, ir):
        fn, b = ir.define('broken', (I64,))
        b.add(fn.arguments[0], const_int(1))
        result = MemoizePass(PassConfig(verify=False)).run(ir.module)
        assert result.verdicts['broken'].eligible


class TestRunMany:
    def test_modules_are_independent(self):
        modules = [build_add_module() for _ in range(4)]
        table = MemoTable()
        results = MemoizePass(sink=table).run_many(modules, workers=4)

        assert [r.module_name for r in results] == ['add_example'] * 4
        assert all(r.changed for r in results)
        assert len(table) == 8
        for module in modules:
            assert module.get_function('_memoized_add_1') is not None

    def test_single_worker(self):
        results = MemoizePass().run_many([build_add_module()], workers=1)
        assert len(results) == 1

"""
Tests for the call-site rewriter.

Validates:
  - Constant folding into variant names and variant sharing
  - Captured globals loaded at the call site
  - Canonical argument order and widening casts
  - Rejected call sites keep calling the original function
  - Preconditions and determinism
"""

import pytest

from memopass.analysis.eligibility import (
    EligibilityAnalyzer, EligibilityVerdict, IneligibleReason,
)
from memopass.config import PassConfig
from memopass.ir import (
    DOUBLE, FLOAT, I1, I32, I64, Function, FunctionType, IRBuilder, Module,
    ParamOrigin, const_int, format_function, format_module, verify_module,
)
from memopass.metadata import MemoTable
from memopass.transform.rewriter import CallSiteRewriter


def build_add_module():
    """add(a, b); main(n) = add(1, n) + add(n, 2)."""
    module = Module('add_example')
    add = module.add_function(Function('add', FunctionType(I64, (I64, I64)),
                                       param_names=['a', 'b']))
    b = IRBuilder(add.append_block())
    b.ret(b.add(*add.arguments))

    main = module.add_function(Function('main', FunctionType(I64, (I64,)),
                                        param_names=['n']))
    b = IRBuilder(main.append_block())
    n = main.arguments[0]
    x = b.call(add, [const_int(1), n], name='x')
    y = b.call(add, [n, const_int(2)], name='y')
    b.ret(b.add(x, y))
    return module


# ═══════════════════════════════════════════════════════════════════
#  Constant folding
# ═══════════════════════════════════════════════════════════════════

class TestConstantFolding:
    def setup_method(self):
        self.table = MemoTable()
        self.rewriter = CallSiteRewriter(sink=self.table)

    def test_add_example(self):
        module = build_add_module()
        outcome = self.rewriter.rewrite(module.get_function('add'))

        assert [r.variant_name for r in outcome.records] == ['_memoized_add_1', '_memoized_add_2']
        assert [r.constant_suffix for r in outcome.records] == [('1',), ('2',)]
        assert len(outcome.rewritten) == 2
        assert outcome.failures == []

        text = format_function(module.get_function('main'))
        assert '%x = call i64 @_memoized_add_1(i64 %n)' in text
        assert '%y = call i64 @_memoized_add_2(i64 %n)' in text
        assert '@add(' not in text
        assert verify_module(module) == []

    def test_variant_declarations(self):
        module = build_add_module()
        self.rewriter.rewrite(module.get_function('add'))
        first = module.get_function('_memoized_add_1')
        second = module.get_function('_memoized_add_2')
        assert first.is_declaration and second.is_declaration
        assert first.function_type == FunctionType(I64, (I64,))
        # the remaining runtime parameter keeps its source name
        assert first.arguments[0].name == 'b'
        assert second.arguments[0].name == 'a'
        assert first.metadata['memoize.original'] == 'add'
        assert first.metadata['memoize.record'].variant_name == '_memoized_add_1'

    def test_original_stays_in_module(self):
        module = build_add_module()
        add = module.get_function('add')
        self.rewriter.rewrite(add)
        assert module.get_function('add') is add
        assert not add.is_declaration
        assert add.call_sites() == []

    def test_records_reach_sink(self):
        module = build_add_module()
        outcome = self.rewriter.rewrite(module.get_function('add'))
        assert self.table.records == outcome.records
        record = self.table.for_function('add')[0]
        assert record.canonical_signature == (('i64', 'original-argument'),)
        assert record.constant_positions == (0,)
        assert record.return_type == 'i64'

    def test_same_constant_shares_variant(self, ir):
        foo = ir.leaf('foo')
        main, b = ir.define('main', (I64, I64), names=['x', 'y'])
        x, y = main.arguments
        r1 = b.call(foo, [const_int(5), x])
        r2 = b.call(foo, [const_int(5), y])
        b.ret(b.add(r1, r2))

        outcome = self.rewriter.rewrite(foo)
        assert len(outcome.records) == 1
        assert {site.variant_name for site in outcome.rewritten} == {'_memoized_foo_5'}
        text = format_function(main)
        assert 'call i64 @_memoized_foo_5(i64 %x)' in text
        assert 'call i64 @_memoized_foo_5(i64 %y)' in text
        assert 'i64 5' not in text

    def test_different_constants_get_different_variants(self, ir):
        foo = ir.leaf('foo')
        main, b = ir.define('main', (I64,), names=['x'])
        r1 = b.call(foo, [const_int(5), main.arguments[0]])
        r2 = b.call(foo, [const_int(6), main.arguments[0]])
        b.ret(b.add(r1, r2))

        outcome = self.rewriter.rewrite(foo)
        assert [r.variant_name for r in outcome.records] == ['_memoized_foo_5', '_memoized_foo_6']

    def test_same_constant_different_position(self, ir):
        foo = ir.leaf('foo')
        main, b = ir.define('main', (I64,), names=['x'])
        r1 = b.call(foo, [const_int(5), main.arguments[0]])
        r2 = b.call(foo, [main.arguments[0], const_int(5)])
        b.ret(b.add(r1, r2))

        outcome = self.rewriter.rewrite(foo)
        names = [r.variant_name for r in outcome.records]
        assert names == ['_memoized_foo_5', '_memoized_foo_5.1']
        assert [r.constant_positions for r in outcome.records] == [(0,), (1,)]

    def test_collision_names_do_not_depend_on_call_order(self, ir):
        foo = ir.leaf('foo')
        main, b = ir.define('main', (I64,), names=['x'])
        r1 = b.call(foo, [main.arguments[0], const_int(5)])
        r2 = b.call(foo, [const_int(5), main.arguments[0]])
        b.ret(b.add(r1, r2))

        outcome = self.rewriter.rewrite(foo)
        assert {r.variant_name: r.constant_positions for r in outcome.records} == {
            '_memoized_foo_5': (0,),
            '_memoized_foo_5.1': (1,),
        }
        assert [site.variant_name for site in outcome.rewritten] == [
            '_memoized_foo_5.1', '_memoized_foo_5',
        ]

    def test_all_constant_arguments(self, ir):
        foo = ir.leaf('foo')
        main, b = ir.define('main', ())
        b.ret(b.call(foo, [const_int(-1), const_int(2)]))
        outcome = self.rewriter.rewrite(foo)
        variant = ir.module.get_function('_memoized_foo_n1_2')
        assert variant is not None
        assert variant.function_type == FunctionType(I64, ())
        assert outcome.records[0].constant_suffix == ('-1', '2')
        assert 'call i64 @_memoized_foo_n1_2()' in format_function(main)

    def test_function_without_constants(self, ir):
        foo = ir.leaf('foo')
        main, b = ir.define('main', (I64, I64), names=['x', 'y'])
        b.ret(b.call(foo, list(main.arguments)))
        self.rewriter.rewrite(foo)
        assert 'call i64 @_memoized_foo(i64 %x, i64 %y)' in format_function(main)


# ═══════════════════════════════════════════════════════════════════
#  Globals and ordering
# ═══════════════════════════════════════════════════════════════════

class TestCapturedGlobals:
    def setup_method(self):
        self.rewriter = CallSiteRewriter()

    def test_read_g_example(self, ir):
        g = ir.global_var('G', value=3)
        read_g, b = ir.define('read_g', (I64,), names=['x'])
        b.ret(b.add(read_g.arguments[0], b.load(g)))
        main, b = ir.define('main', ())
        b.ret(b.call(read_g, [const_int(7)], name='r'))

        outcome = self.rewriter.rewrite(read_g)
        assert str(outcome.signature) == '[i64, i64]'
        record = outcome.records[0]
        assert record.variant_name == '_memoized_read_g_7'
        assert record.canonical_signature == (('i64', 'captured-global'),)
        assert record.captured_globals == ('G',)

        lines = format_function(main).splitlines()
        assert lines[2:5] == [
            '  %0 = load i64, i64* @G',
            '  %r = call i64 @_memoized_read_g_7(i64 %0)',
            '  ret i64 %r',
        ]
        variant = ir.module.get_function('_memoized_read_g_7')
        assert variant.arguments[0].name == 'G'
        assert variant.arguments[0].origin == ParamOrigin.CAPTURED_GLOBAL
        assert verify_module(ir.module) == []

    def test_arguments_reordered_by_type(self, ir):
        f, b = ir.define('f', (DOUBLE, I64), DOUBLE, names=['d', 'i'])
        b.ret(f.arguments[0])
        main, b = ir.define('main', (DOUBLE, I64), DOUBLE, names=['u', 'v'])
        b.ret(b.call(f, list(main.arguments)))

        self.rewriter.rewrite(f)
        variant = ir.module.get_function('_memoized_f')
        assert variant.function_type == FunctionType(DOUBLE, (I64, DOUBLE))
        assert [a.name for a in variant.arguments] == ['i', 'd']
        assert 'call double @_memoized_f(i64 %v, double %u)' in format_function(main)

    def test_verdict_carries_callee_globals(self, ir):
        g = ir.global_var('G', value=3)
        f, b = ir.define('f', (I64,), names=['y'])
        b.ret(b.add(f.arguments[0], b.load(g)))
        h, b = ir.define('h', (I64,), names=['x'])
        b.ret(b.add(b.call(f, [h.arguments[0]]), const_int(1)))
        main, b = ir.define('main', ())
        b.ret(b.call(h, [const_int(2)], name='r'))

        verdict = EligibilityAnalyzer().evaluate(h)
        outcome = self.rewriter.rewrite(h, verdict)
        assert outcome.signature.captured_globals == (g,)
        record = outcome.records[0]
        assert record.variant_name == '_memoized_h_2'
        assert record.captured_globals == ('G',)
        assert 'call i64 @_memoized_h_2(i64 %0)' in format_function(main)
        assert verify_module(ir.module) == []


# ═══════════════════════════════════════════════════════════════════
#  Type conversions and rejected call sites
# ═══════════════════════════════════════════════════════════════════

class TestConversions:
    def test_widening_casts(self, ir):
        f, b = ir.define('f', (I64, DOUBLE), DOUBLE, names=['i', 'd'])
        b.ret(f.arguments[1])
        main, b = ir.define('main', (I32, FLOAT), DOUBLE, names=['n', 'x'])
        b.ret(b.call(f, list(main.arguments)))

        outcome = CallSiteRewriter().rewrite(f)
        assert outcome.failures == []
        text = format_function(main)
        assert 'sext i32 %n to i64' in text
        assert 'fpext float %x to double' in text
        assert verify_module(ir.module) == []

    def test_bool_is_zero_extended(self, ir):
        f = ir.leaf('f', (I64,))
        main, b = ir.define('main', (I1,), names=['flag'])
        b.ret(b.call(f, [main.arguments[0]]))
        CallSiteRewriter().rewrite(f)
        assert 'zext i1 %flag to i64' in format_function(main)

    def test_widening_disabled(self, ir):
        f = ir.leaf('f', (I64,))
        main, b = ir.define('main', (I32,), names=['n'])
        call = b.call(f, [main.arguments[0]])
        b.ret(call)

        outcome = CallSiteRewriter(PassConfig(allow_widening_casts=False)).rewrite(f)
        assert outcome.rewritten == []
        assert outcome.records == []
        failure = outcome.failures[0]
        assert failure.reason == IneligibleReason.SIGNATURE_REWRITE_FAILED
        assert failure.caller == 'main'
        assert 'i32' in failure.detail
        # the call is left untouched
        assert f.call_sites() == [call]
        assert call.parent is main.blocks[0]

    def test_narrowing_is_rejected(self, ir):
        f = ir.leaf('f', (I32,))
        main, b = ir.define('main', (I64,), names=['n'])
        b.ret(b.call(f, [main.arguments[0]]))
        outcome = CallSiteRewriter().rewrite(f)
        assert len(outcome.failures) == 1
        assert outcome.rewritten == []

    def test_wrong_argument_count(self, ir):
        f = ir.leaf('f')
        main, b = ir.define('main', (I64,))
        b.ret(b.call(f, [main.arguments[0]]))
        outcome = CallSiteRewriter().rewrite(f)
        assert outcome.failures[0].reason == IneligibleReason.SIGNATURE_REWRITE_FAILED

    def test_failure_does_not_block_other_sites(self, ir):
        f = ir.leaf('f', (I32,))
        good, b = ir.define('good', (I32,), names=['n'])
        b.ret(b.call(f, [good.arguments[0]]))
        bad, b = ir.define('bad', (I64,), names=['n'])
        b.ret(b.call(f, [bad.arguments[0]]))

        outcome = CallSiteRewriter().rewrite(f)
        assert [site.caller for site in outcome.rewritten] == ['good']
        assert [failure.caller for failure in outcome.failures] == ['bad']
        assert outcome.modified_functions == [good]


# ═══════════════════════════════════════════════════════════════════
#  Preconditions and reuse
# ═══════════════════════════════════════════════════════════════════

class TestRewriterContract:
    def test_rejects_ineligible_verdict(self, ir):
        f = ir.leaf('f')
        verdict = EligibilityVerdict.reject('f', IneligibleReason.CYCLIC)
        with pytest.raises(ValueError):
            CallSiteRewriter().rewrite(f, verdict)

    def test_rejects_declaration(self, ir):
        with pytest.raises(ValueError):
            CallSiteRewriter().rewrite(ir.declare('ext'))

    def test_rejects_memoized_variant(self, ir):
        fn, b = ir.define('_memoized_f', (I64,))
        b.ret(fn.arguments[0])
        with pytest.raises(ValueError):
            CallSiteRewriter().rewrite(fn)

    def test_rejects_detached_function(self):
        fn = Function('loose', FunctionType(I64, (I64,)))
        b = IRBuilder(fn.append_block())
        b.ret(fn.arguments[0])
        with pytest.raises(ValueError):
            CallSiteRewriter().rewrite(fn)

    def test_no_call_sites(self, ir):
        outcome = CallSiteRewriter().rewrite(ir.leaf('f'))
        assert outcome.records == []
        assert outcome.rewritten == []

    def test_fresh_rewriter_reuses_existing_variant(self, ir):
        foo = ir.leaf('foo')
        first, _ = ir.caller('first', foo, lambda f: [const_int(1), f.arguments[0]])
        CallSiteRewriter().rewrite(foo)
        second, _ = ir.caller('second', foo, lambda f: [const_int(1), f.arguments[0]])
        outcome = CallSiteRewriter().rewrite(foo)

        assert outcome.records == []
        variant = ir.module.get_function('_memoized_foo_1')
        assert [site.function.name for site in variant.call_sites()] == ['first', 'second']

    def test_uses_are_replaced(self, ir):
        foo = ir.leaf('foo')
        main, b = ir.define('main', (I64,))
        call = b.call(foo, [const_int(1), main.arguments[0]])
        total = b.add(call, call)
        b.ret(total)
        CallSiteRewriter().rewrite(foo)
        replacement = total.operands[0]
        assert replacement is total.operands[1]
        assert replacement.callee.name == '_memoized_foo_1'
        assert call.parent is None

    def test_deterministic(self):
        first, second = build_add_module(), build_add_module()
        CallSiteRewriter().rewrite(first.get_function('add'))
        CallSiteRewriter().rewrite(second.get_function('add'))
        assert format_module(first) == format_module(second)

"""
Built-in Purity Oracle
======================

Answers one question for the eligibility analysis: is a call to this
function known a priori to be free of side effects and deterministic
("speculatable")? Such calls are accepted without recursing into the
callee.

Sources of truth, in order:
    1. The ``speculatable`` function attribute.
    2. Intrinsics whose base name (overload suffix stripped, e.g.
       ``llvm.sqrt.f64`` -> ``llvm.sqrt``) is in the registry below.
    3. External declarations of C math routines known to be pure.
    4. Names registered by the caller via ``extra``.
"""

from typing import FrozenSet, Iterable, Optional

from .module import Function


# Intrinsics with no memory effects and a deterministic result
_SPECULATABLE_INTRINSICS: FrozenSet[str] = frozenset({
    'llvm.abs', 'llvm.smax', 'llvm.smin', 'llvm.umax', 'llvm.umin',
    'llvm.fabs', 'llvm.sqrt', 'llvm.sin', 'llvm.cos', 'llvm.exp',
    'llvm.exp2', 'llvm.log', 'llvm.log2', 'llvm.log10', 'llvm.pow',
    'llvm.powi', 'llvm.floor', 'llvm.ceil', 'llvm.trunc', 'llvm.round',
    'llvm.rint', 'llvm.nearbyint', 'llvm.minnum', 'llvm.maxnum',
    'llvm.copysign', 'llvm.fma', 'llvm.fmuladd', 'llvm.ctpop',
    'llvm.ctlz', 'llvm.cttz', 'llvm.bswap', 'llvm.bitreverse',
})

# libm entry points; only trusted when they are bodiless declarations
_PURE_LIBM_DECLARATIONS: FrozenSet[str] = frozenset({
    'abs', 'labs', 'llabs', 'fabs', 'fabsf', 'sqrt', 'sqrtf',
    'sin', 'cos', 'tan', 'asin', 'acos', 'atan', 'atan2',
    'sinh', 'cosh', 'tanh', 'exp', 'exp2', 'log', 'log2', 'log10',
    'pow', 'hypot', 'floor', 'ceil', 'trunc', 'round', 'fmod',
    'fmin', 'fmax', 'copysign',
})


def intrinsic_base_name(name: str) -> str:
    """``llvm.smax.i64`` -> ``llvm.smax``."""
    parts = name.split('.')
    return '.'.join(parts[:2])


class SpeculatableOracle:
    """
    Registry of built-ins trusted to be side-effect-free.

    Usage:
        oracle = SpeculatableOracle(extra={'my_pure_helper'})
        oracle.is_speculatable(function)
    """

    def __init__(self, extra: Optional[Iterable[str]] = None):
        self._extra = frozenset(extra or ())

    def is_speculatable(self, function: Function) -> bool:
        if 'speculatable' in function.attributes:
            return True
        if function.name in self._extra:
            return True
        if function.is_intrinsic:
            return intrinsic_base_name(function.name) in _SPECULATABLE_INTRINSICS
        return function.is_declaration and function.name in _PURE_LIBM_DECLARATIONS

"""
Canonical Signatures
====================

The shared data model between the call-site rewriter and the
table-building stage.

A function's canonical parameter list is its declared parameters
followed by every distinct global it reads, sorted by a total order over
types (integer < float < double < pointer < aggregates; narrower
integers first; ties keep the original position). Sorting by type lets
call expressions written in different argument orders collapse onto the
same signature when their types agree.

Per call site, positions holding compile-time constants are dropped from
the runtime signature and moved into the callee's *name*:

    add(1, n)   ->   _memoized_add_1(n)
    add(m, 2)   ->   _memoized_add_2(m)
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, TypeVar

from ..analysis.eligibility import collect_globals
from ..ir.instructions import CallInst
from ..ir.module import Function
from ..ir.types import IRType
from ..ir.values import GlobalVariable, ParamOrigin

T = TypeVar('T')


@dataclass(frozen=True)
class CanonicalParam:
    """One slot of a canonical signature."""
    type: IRType
    origin: ParamOrigin
    position: int   # index in the unsorted parameters-then-globals list
    source: str     # parameter or global name

    def sort_key(self) -> tuple:
        return (self.type.order_key(), self.position)

    def describe(self) -> Tuple[str, str]:
        return (str(self.type), self.origin.value)


@dataclass(frozen=True)
class CanonicalSignature:
    """Type-ordered parameter list shared by every call site of a function."""
    function_name: str
    return_type: IRType
    params: Tuple[CanonicalParam, ...]
    captured_globals: Tuple[GlobalVariable, ...]

    @classmethod
    def for_function(cls, function: Function,
                     captured: Optional[Sequence[GlobalVariable]] = None) -> 'CanonicalSignature':
        """
        ``captured`` lists the globals the result depends on; by default the
        globals ``function`` reads directly. Pass an eligibility verdict's
        ``captured_globals`` to include globals read by callees.
        """
        if captured is None:
            captured = collect_globals(function)
        slots = [
            CanonicalParam(arg.type, ParamOrigin.ORIGINAL_ARGUMENT, index,
                           arg.name or f"arg{index}")
            for index, arg in enumerate(function.arguments)
        ]
        offset = len(slots)
        slots.extend(
            CanonicalParam(variable.value_type, ParamOrigin.CAPTURED_GLOBAL,
                           offset + index, variable.name)
            for index, variable in enumerate(captured)
        )
        ordered = tuple(sorted(slots, key=CanonicalParam.sort_key))
        return cls(function.name, function.return_type, ordered, tuple(captured))

    def arrange(self, actuals: Sequence[T]) -> List[T]:
        """Reorder parameters-then-globals values into canonical order."""
        if len(actuals) != len(self.params):
            raise ValueError(
                f"@{self.function_name} expects {len(self.params)} canonical "
                f"values, got {len(actuals)}"
            )
        return [actuals[param.position] for param in self.params]

    def describe(self) -> List[Tuple[str, str]]:
        return [param.describe() for param in self.params]

    def __str__(self) -> str:
        return '[' + ', '.join(str(p.type) for p in self.params) + ']'


def call_sites_of(function: Function) -> List[CallInst]:
    """Direct calls to ``function`` in module order."""
    sites = function.call_sites()
    module = function.module
    if module is None:
        return sites
    order = {}
    for f_index, caller in enumerate(module.functions):
        for i_index, inst in enumerate(caller.instructions()):
            order[id(inst)] = (f_index, i_index)
    return sorted(sites, key=lambda site: order.get(id(site), (len(order), 0)))


# ═══════════════════════════════════════════════════════════════════════════
# Name mangling
# ═══════════════════════════════════════════════════════════════════════════

_UNSAFE = re.compile(r'[^0-9A-Za-z]')


def encode_constant(text: str) -> str:
    """Make a literal usable inside a symbol name: ``-1.5`` -> ``n1p5``."""
    text = text.replace('-', 'n').replace('.', 'p').replace('+', '')
    return _UNSAFE.sub(lambda m: f"x{ord(m.group()):02x}", text)


def variant_name(prefix: str, original: str, constants: Sequence[str]) -> str:
    """prefix + original name + one ``_<literal>`` per folded constant."""
    return prefix + original + ''.join(f"_{encode_constant(c)}" for c in constants)

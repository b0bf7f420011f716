"""
Memoization Eligibility Analysis
================================

Decides, per function, whether caching its results by argument value is
safe: the result must depend only on its explicit arguments and at most
one scalar global, with no unresolved side effects.

Verdict procedure for a function F:

    0. Escape hatch: F's name carries the memoized-variant prefix
       -> Eligible (hand-authored or previously synthesized variants are
       trusted without re-analysis).
    1. Structural disqualifications, checked before any analysis:
       Declaration, Intrinsic, Variadic, Overridable.
    2. Any call with a statically unresolved target    (IndirectCall)
    3. Argument safety: pointer parameters are only load sources or store
       destinations                                   (PointerEscapes)
    4. Global safety: referenced globals are scalar    (NonScalarGlobal)
       and there is at most one distinct global        (MultipleGlobals)
       (checked again after step 5, counting the globals read by
       eligible callees)
    5. Call safety, for every resolved call in F:
         speculatable built-in                         skipped
         call path deeper than max_depth               (DepthExceeded)
         callee already being evaluated on this path   (Cyclic)
         callee ineligible                             (CalleeIneligible)

The recursion depth is an argument of the recursive walk, so sibling call
chains never share a budget. ``DepthExceeded`` and ``Cyclic`` depend on
the path that reached a function; they propagate unchanged to every
caller on that path and are never cached. Eligible verdicts are cached
together with the height of the call chain below the function, and are
reused only on paths where that chain still fits the budget.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..config import PassConfig
from ..ir.builtins import SpeculatableOracle
from ..ir.instructions import LoadInst, StoreInst
from ..ir.module import CalleeKind, Function, resolve_callee
from ..ir.values import GlobalVariable

logger = logging.getLogger(__name__)


class IneligibleReason(Enum):
    """Why a function or call site is left unmemoized."""
    # structural
    DECLARATION = 'Declaration'
    INTRINSIC = 'Intrinsic'
    VARIADIC = 'Variadic'
    OVERRIDABLE = 'Overridable'
    # arguments and globals
    POINTER_ESCAPES = 'PointerEscapes'
    NON_SCALAR_GLOBAL = 'NonScalarGlobal'
    MULTIPLE_GLOBALS = 'MultipleGlobals'
    # call graph
    INDIRECT_CALL = 'IndirectCall'
    DEPTH_EXCEEDED = 'DepthExceeded'
    CYCLIC = 'Cyclic'
    CALLEE_INELIGIBLE = 'CalleeIneligible'
    # rewriting
    SIGNATURE_REWRITE_FAILED = 'SignatureRewriteFailed'

    def __str__(self) -> str:
        return self.value


# Outcomes that depend on the call path through which a function was reached
PATH_DEPENDENT_REASONS = frozenset({
    IneligibleReason.DEPTH_EXCEEDED, IneligibleReason.CYCLIC,
})


@dataclass(frozen=True)
class EligibilityVerdict:
    """Outcome of evaluating one function."""
    function_name: str
    eligible: bool
    reason: Optional[IneligibleReason] = None
    detail: str = ''
    # globals the result depends on, including those read by eligible callees;
    # None when the verdict was not produced by the analysis
    captured_globals: Optional[Tuple[GlobalVariable, ...]] = field(default=None, compare=False)

    @classmethod
    def accept(cls, function_name: str, detail: str = '',
               captured_globals: Optional[Tuple[GlobalVariable, ...]] = None) -> 'EligibilityVerdict':
        return cls(function_name, True, None, detail, captured_globals)

    @classmethod
    def reject(cls, function_name: str, reason: IneligibleReason,
               detail: str = '') -> 'EligibilityVerdict':
        return cls(function_name, False, reason, detail)

    @property
    def is_path_dependent(self) -> bool:
        return self.reason in PATH_DEPENDENT_REASONS

    def __str__(self) -> str:
        if self.eligible:
            text = f"@{self.function_name}: Eligible"
        else:
            text = f"@{self.function_name}: Ineligible({self.reason})"
        return f"{text} - {self.detail}" if self.detail else text


class EligibilityAnalyzer:
    """
    Memoization eligibility oracle for the functions of one module.

    Usage:
        analyzer = EligibilityAnalyzer()
        verdict = analyzer.evaluate(function)
        if verdict.eligible:
            ...

    Verdicts are cached for the analyzer's lifetime, which should be a
    single pass run over a single module. Call ``invalidate()`` after
    mutating function bodies.
    """

    MAX_DEPTH = 10

    def __init__(
        self,
        config: Optional[PassConfig] = None,
        *,
        oracle: Optional[SpeculatableOracle] = None,
    ):
        self.config = config or PassConfig(max_depth=self.MAX_DEPTH)
        self.max_depth = self.config.max_depth
        self.oracle = oracle or SpeculatableOracle(self.config.extra_speculatable)
        self._verdicts: Dict[Function, EligibilityVerdict] = {}
        # longest call chain (in edges) below each eligible function
        self._heights: Dict[Function, int] = {}
        self._in_progress: Set[Function] = set()

    # ───────────────────────────────────────────────────────────────
    #  Public API
    # ───────────────────────────────────────────────────────────────

    def evaluate(self, function: Function) -> EligibilityVerdict:
        """Eligibility of ``function`` as the root of a call chain."""
        return self._evaluate(function, depth=0)

    def invalidate(self, functions: Optional[Iterable[Function]] = None) -> None:
        """
        Forget cached verdicts.

        A caller's verdict depends on its callees' bodies, so dropping
        individual entries is not enough once anything changed; any
        non-empty (or omitted) ``functions`` clears the whole cache.
        """
        if functions is not None and not list(functions):
            return
        logger.debug("Dropping %d cached eligibility verdict(s)", len(self._verdicts))
        self._verdicts.clear()
        self._heights.clear()

    def is_memoized_variant(self, function: Function) -> bool:
        return function.name.startswith(self.config.variant_prefix)

    # ───────────────────────────────────────────────────────────────
    #  Core analysis
    # ───────────────────────────────────────────────────────────────

    def _evaluate(self, function: Function, depth: int) -> EligibilityVerdict:
        cached = self._verdicts.get(function)
        if cached is not None:
            # an eligible verdict only holds while its whole chain fits
            if not cached.eligible or depth + self._heights.get(function, 0) <= self.max_depth:
                return cached
        if function in self._in_progress:
            return EligibilityVerdict.reject(
                function.name, IneligibleReason.CYCLIC,
                'recursive call chain re-enters the function',
            )

        verdict = self._structural_verdict(function)
        if verdict is None:
            captured = collect_globals(function)
            self._in_progress.add(function)
            try:
                verdict = (
                    self._check_indirect_calls(function)
                    or self._check_arguments(function)
                    or self._check_globals(function, captured)
                    or self._check_calls(function, depth, captured)
                    or self._check_globals(function, captured)
                    or EligibilityVerdict.accept(function.name, captured_globals=tuple(captured))
                )
            finally:
                self._in_progress.discard(function)

        if not verdict.is_path_dependent:
            self._verdicts[function] = verdict
        return verdict

    def _structural_verdict(self, function: Function) -> Optional[EligibilityVerdict]:
        name = function.name
        if self.is_memoized_variant(function):
            return EligibilityVerdict.accept(name, 'memoized entry point')
        if function.is_declaration:
            return EligibilityVerdict.reject(
                name, IneligibleReason.DECLARATION, 'function has no body')
        if function.is_intrinsic:
            return EligibilityVerdict.reject(
                name, IneligibleReason.INTRINSIC, 'compiler intrinsic')
        if function.is_var_arg:
            return EligibilityVerdict.reject(
                name, IneligibleReason.VARIADIC, 'variadic signature')
        if function.linkage.is_interposable:
            return EligibilityVerdict.reject(
                name, IneligibleReason.OVERRIDABLE,
                f"{function.linkage.value} linkage may be overridden at link time")
        if function.has_address_taken():
            return EligibilityVerdict.reject(
                name, IneligibleReason.OVERRIDABLE, 'address is taken')
        return None

    def _check_arguments(self, function: Function) -> Optional[EligibilityVerdict]:
        for arg in function.arguments:
            if not arg.type.is_pointer:
                continue
            for user in arg.users:
                if isinstance(user, LoadInst) and user.pointer is arg:
                    continue
                if (isinstance(user, StoreInst) and user.pointer is arg
                        and user.value is not arg):
                    continue
                label = arg.name or str(arg.index)
                return EligibilityVerdict.reject(
                    function.name, IneligibleReason.POINTER_ESCAPES,
                    f"pointer parameter %{label} used by {user.opcode}",
                )
        return None

    def _check_globals(self, function: Function,
                       captured: List[GlobalVariable]) -> Optional[EligibilityVerdict]:
        for index, variable in enumerate(captured):
            if not variable.is_scalar_numeric:
                return EligibilityVerdict.reject(
                    function.name, IneligibleReason.NON_SCALAR_GLOBAL,
                    f"@{variable.name} has type {variable.value_type}",
                )
            if index > 0:
                names = ', '.join(f"@{g.name}" for g in captured[:index + 1])
                return EligibilityVerdict.reject(
                    function.name, IneligibleReason.MULTIPLE_GLOBALS,
                    f"references {names}",
                )
        return None

    def _check_indirect_calls(self, function: Function) -> Optional[EligibilityVerdict]:
        for inst in function.instructions():
            if resolve_callee(inst).kind == CalleeKind.UNRESOLVED:
                return EligibilityVerdict.reject(
                    function.name, IneligibleReason.INDIRECT_CALL,
                    'call target cannot be determined statically',
                )
        return None

    def _check_calls(self, function: Function, depth: int,
                     captured: List[GlobalVariable]) -> Optional[EligibilityVerdict]:
        """Recurse into callees; globals of eligible callees join ``captured``."""
        height = 0
        for inst in function.instructions():
            resolution = resolve_callee(inst)
            if resolution.kind != CalleeKind.RESOLVED:
                continue

            callee = resolution.function
            if self.oracle.is_speculatable(callee):
                logger.debug("Pure function: %s (called from %s)", callee.name, function.name)
                continue

            if depth + 1 > self.max_depth:
                return EligibilityVerdict.reject(
                    function.name, IneligibleReason.DEPTH_EXCEEDED,
                    f"call to @{callee.name} exceeds maximum depth {self.max_depth}",
                )

            verdict = self._evaluate(callee, depth + 1)
            if verdict.eligible:
                height = max(height, 1 + self._heights.get(callee, 0))
                for variable in verdict.captured_globals or ():
                    if not any(g is variable for g in captured):
                        captured.append(variable)
                continue
            if verdict.is_path_dependent:
                return EligibilityVerdict.reject(
                    function.name, verdict.reason,
                    f"via @{callee.name}: {verdict.detail}",
                )
            return EligibilityVerdict.reject(
                function.name, IneligibleReason.CALLEE_INELIGIBLE,
                f"@{callee.name} is {verdict.reason}",
            )
        self._heights[function] = height
        return None


def collect_globals(function: Function) -> List[GlobalVariable]:
    """Distinct globals used as operands in ``function``, by first occurrence."""
    found: List[GlobalVariable] = []
    for inst in function.instructions():
        for operand in inst.operands:
            if isinstance(operand, GlobalVariable) and not any(g is operand for g in found):
                found.append(operand)
    return found

"""
Call-Site Rewriter
==================

Retargets every call of an eligible function to a synthesized, canonical
variant:

    1. collect the distinct globals the function reads, directly or
       through eligible callees
    2. canonical list = parameters + globals, sorted by type
    3. per call site: append the current value of each global, sort the
       actuals the same way and fold constant literals into the variant's
       identity
    4. name the distinct variants, ranking same-name collisions by where
       their constants sit
    5. synthesize (or reuse) each variant declaration and swap the calls

Rewriting is two-phase. Every call site is planned (and type-checked)
before any instruction is touched; a call site that cannot be rewritten
without an unsafe conversion is rejected and keeps calling the original
function, which stays in the module unchanged. The commit phase only
performs operations that were validated during planning, so no caller
ever observes a half-rewired call.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from ..analysis.eligibility import EligibilityVerdict, IneligibleReason
from ..config import PassConfig
from ..ir.builder import IRBuilder
from ..ir.instructions import CallInst
from ..ir.module import Function, Linkage
from ..ir.printer import format_instruction
from ..ir.types import FunctionType, IRType, TypeKind
from ..ir.values import Constant, GlobalVariable, ParamOrigin, Value
from ..metadata import MemoRecord, MetadataSink
from .signature import CanonicalParam, CanonicalSignature, call_sites_of, variant_name

logger = logging.getLogger(__name__)

VariantKey = Tuple[Tuple[Tuple[IRType, ParamOrigin], ...], Tuple[str, ...], Tuple[int, ...]]


@dataclass
class CallSitePlan:
    """Everything needed to rewrite one call, computed without mutating IR."""
    call: CallInst
    kept_params: Tuple[CanonicalParam, ...]
    kept_values: List[Value]
    casts: List[Optional[str]]
    constants: Tuple[str, ...]
    constant_positions: Tuple[int, ...]

    @property
    def key(self) -> VariantKey:
        return (
            tuple((p.type, p.origin) for p in self.kept_params),
            self.constants,
            self.constant_positions,
        )


@dataclass(frozen=True)
class RewrittenCallSite:
    caller: str
    variant_name: str
    before: str
    after: str


@dataclass(frozen=True)
class CallSiteFailure:
    caller: str
    callee: str
    call: str
    reason: IneligibleReason
    detail: str

    def __str__(self) -> str:
        return f"@{self.caller}: `{self.call}`: {self.reason} - {self.detail}"


@dataclass
class RewriteOutcome:
    """Result of rewriting the call sites of one function."""
    function_name: str
    signature: CanonicalSignature
    records: List[MemoRecord] = field(default_factory=list)
    rewritten: List[RewrittenCallSite] = field(default_factory=list)
    failures: List[CallSiteFailure] = field(default_factory=list)
    modified_functions: List[Function] = field(default_factory=list)


class _SiteRejected(Exception):
    """Internal: a call site cannot be planned."""


class CallSiteRewriter:
    """
    Rewrites the call sites of eligible functions.

    Usage:
        rewriter = CallSiteRewriter(config, sink=MemoTable())
        outcome = rewriter.rewrite(function, verdict)

    Variants synthesized by one rewriter are reused across its calls;
    a fresh rewriter reuses variants already present in the module when
    their name and key match.
    """

    def __init__(self, config: Optional[PassConfig] = None,
                 sink: Optional[MetadataSink] = None):
        self.config = config or PassConfig()
        self.sink = sink
        self._variants: Dict[Tuple[int, VariantKey], Function] = {}

    # ───────────────────────────────────────────────────────────────
    #  Public API
    # ───────────────────────────────────────────────────────────────

    def rewrite(self, function: Function,
                verdict: Optional[EligibilityVerdict] = None) -> RewriteOutcome:
        if verdict is not None and not verdict.eligible:
            raise ValueError(f"cannot rewrite ineligible function: {verdict}")
        if function.is_declaration:
            raise ValueError(f"cannot rewrite declaration @{function.name}")
        if function.name.startswith(self.config.variant_prefix):
            raise ValueError(f"@{function.name} is already a memoized variant")
        if function.module is None:
            raise ValueError(f"@{function.name} does not belong to a module")

        with function.module.lock:
            # the verdict carries globals read by callees as well
            captured = verdict.captured_globals if verdict is not None else None
            signature = CanonicalSignature.for_function(function, captured)
            outcome = RewriteOutcome(function.name, signature)

            plans: List[CallSitePlan] = []
            for call in call_sites_of(function):
                try:
                    plans.append(self._plan(function, signature, call))
                except _SiteRejected as rejected:
                    failure = CallSiteFailure(
                        caller=call.function.name if call.function else '<detached>',
                        callee=function.name,
                        call=format_instruction(call),
                        reason=IneligibleReason.SIGNATURE_REWRITE_FAILED,
                        detail=str(rejected),
                    )
                    logger.info("Call site not rewritten: %s", failure)
                    outcome.failures.append(failure)

            names = self._variant_names(function, plans)
            for plan in plans:
                self._commit(function, signature, plan, names[plan.key], outcome)
        return outcome

    # ───────────────────────────────────────────────────────────────
    #  Planning
    # ───────────────────────────────────────────────────────────────

    def _plan(self, function: Function, signature: CanonicalSignature,
              call: CallInst) -> CallSitePlan:
        if call.function is None:
            raise _SiteRejected('call is not attached to a function')
        args = call.args
        if len(args) != len(function.arguments):
            raise _SiteRejected(
                f"passes {len(args)} argument(s) to a function of {len(function.arguments)}"
            )

        actuals: List[Union[Value, GlobalVariable]] = list(args) + list(signature.captured_globals)
        arranged = signature.arrange(actuals)

        kept_params, kept_values, casts = [], [], []
        constants, positions = [], []
        for slot, (param, actual) in enumerate(zip(signature.params, arranged)):
            if param.origin is ParamOrigin.ORIGINAL_ARGUMENT and isinstance(actual, Constant):
                constants.append(actual.text)
                positions.append(slot)
                continue
            kept_params.append(param)
            kept_values.append(actual)
            if param.origin is ParamOrigin.CAPTURED_GLOBAL:
                casts.append(None)
            else:
                casts.append(self._conversion(actual.type, param.type, param))

        return CallSitePlan(
            call=call,
            kept_params=tuple(kept_params),
            kept_values=kept_values,
            casts=casts,
            constants=tuple(constants),
            constant_positions=tuple(positions),
        )

    def _conversion(self, source: IRType, target: IRType,
                    param: CanonicalParam) -> Optional[str]:
        if source == target:
            return None
        if self.config.allow_widening_casts:
            if source.is_integer and target.is_integer and source.bits < target.bits:
                return 'zext' if source.bits == 1 else 'sext'
            if source.kind == TypeKind.FLOAT and target.kind == TypeKind.DOUBLE:
                return 'fpext'
        raise _SiteRejected(
            f"argument for %{param.source} is {source}, parameter is {target}"
        )

    def _variant_names(self, function: Function,
                       plans: List[CallSitePlan]) -> Dict[VariantKey, str]:
        """
        Name each distinct variant so the result does not depend on call order.

        Keys that mangle to the same name (``sub(1, n)`` and ``sub(n, 1)``)
        are ranked by their constant positions: the first keeps the plain
        name, the rest get ``.1``, ``.2``, ...
        """
        groups: Dict[str, List[VariantKey]] = {}
        for plan in plans:
            base = variant_name(self.config.variant_prefix, function.name, plan.constants)
            keys = groups.setdefault(base, [])
            if plan.key not in keys:
                keys.append(plan.key)

        names: Dict[VariantKey, str] = {}
        for base, keys in groups.items():
            keys.sort(key=lambda k: (k[2], repr(k[0])))
            for rank, key in enumerate(keys):
                names[key] = base if rank == 0 else f"{base}.{rank}"
        return names

    # ───────────────────────────────────────────────────────────────
    #  Commit
    # ───────────────────────────────────────────────────────────────

    def _commit(self, function: Function, signature: CanonicalSignature,
                plan: CallSitePlan, name: str, outcome: RewriteOutcome) -> None:
        call = plan.call
        caller = call.function
        before = format_instruction(call)
        variant = self._variant_for(function, signature, plan, name, outcome)

        builder = IRBuilder()
        builder.position_before(call)
        args: List[Value] = []
        for param, value, cast in zip(plan.kept_params, plan.kept_values, plan.casts):
            if param.origin is ParamOrigin.CAPTURED_GLOBAL:
                value = builder.load(value)
            if cast is not None:
                value = builder.cast(cast, value, param.type)
            args.append(value)

        replacement = builder.call(variant, args, name=call.name)
        if call.has_users:
            call.replace_all_uses_with(replacement)
        call.erase_from_parent()

        after = format_instruction(replacement)
        logger.info("Rewrote call in @%s: %s -> %s", caller.name, before, after)
        outcome.rewritten.append(
            RewrittenCallSite(caller.name, variant.name, before, after)
        )
        if not any(f is caller for f in outcome.modified_functions):
            outcome.modified_functions.append(caller)

    def _variant_for(self, function: Function, signature: CanonicalSignature,
                     plan: CallSitePlan, name: str, outcome: RewriteOutcome) -> Function:
        cache_key = (id(function), plan.key)
        variant = self._variants.get(cache_key)
        if variant is not None:
            return variant

        module = function.module
        function_type = FunctionType(
            function.return_type, tuple(p.type for p in plan.kept_params)
        )
        existing = module.get_function(name)
        if (existing is not None
                and existing.metadata.get('memoize.original') == function.name
                and existing.metadata.get('memoize.key') == plan.key
                and existing.function_type == function_type):
            variant = existing
        else:
            variant = self._synthesize(module.unique_name(name), function, signature,
                                       plan, function_type, outcome)
        self._variants[cache_key] = variant
        return variant

    def _synthesize(self, name: str, function: Function, signature: CanonicalSignature,
                    plan: CallSitePlan, function_type: FunctionType,
                    outcome: RewriteOutcome) -> Function:
        variant = Function(
            name,
            function_type,
            linkage=Linkage.EXTERNAL,
            param_names=[p.source for p in plan.kept_params],
            param_origins=[p.origin for p in plan.kept_params],
        )
        record = MemoRecord(
            original_name=function.name,
            variant_name=name,
            constant_suffix=plan.constants,
            canonical_signature=tuple(p.describe() for p in plan.kept_params),
            return_type=str(function.return_type),
            constant_positions=plan.constant_positions,
            captured_globals=tuple(g.name for g in signature.captured_globals),
        )
        variant.metadata['memoize.original'] = function.name
        variant.metadata['memoize.key'] = plan.key
        variant.metadata['memoize.record'] = record
        function.module.add_function(variant)

        logger.info("Memoized function: @%s %s", name, function_type)
        outcome.records.append(record)
        if self.sink is not None:
            self.sink.emit(record)
        return variant

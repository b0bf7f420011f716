"""
Memoization Pass Driver
=======================

Runs the eligibility analysis and the call-site rewriter over a module:

    for F in module (declaration order, snapshot at pass start):
        verdict = analyzer.evaluate(F)
        if eligible and F has call sites:
            rewriter.rewrite(F)       # new variants + retargeted calls
            sink.emit(record)         # per synthesized variant

The pass never fails on a function: every disqualification is recorded
as a diagnostic and the function is left unmemoized. Each module is
processed under its own lock; ``run_many`` fans distinct modules out to
a thread pool.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .analysis.eligibility import EligibilityAnalyzer, EligibilityVerdict, IneligibleReason
from .config import PassConfig
from .ir.module import Module
from .ir.verifier import assert_valid
from .metadata import MemoRecord, MetadataSink
from .transform.rewriter import (
    CallSiteFailure, CallSiteRewriter, RewriteOutcome, RewrittenCallSite,
)

logger = logging.getLogger(__name__)


class DiagnosticKind(Enum):
    ELIGIBLE = 'eligible'
    TRUSTED = 'trusted'
    INELIGIBLE = 'ineligible'
    SYNTHESIZED = 'synthesized'
    REWRITTEN = 'rewritten'
    REWRITE_FAILED = 'rewrite-failed'


@dataclass(frozen=True)
class Diagnostic:
    """A human-readable notice about one function or call site."""
    kind: DiagnosticKind
    function: str
    message: str
    reason: Optional[IneligibleReason] = None

    def __str__(self) -> str:
        tag = f"{self.kind.value}({self.reason})" if self.reason else self.kind.value
        return f"[{tag}] @{self.function}: {self.message}"


@dataclass
class PassResult:
    """Everything one run of the pass did to one module."""
    module_name: str
    verdicts: Dict[str, EligibilityVerdict] = field(default_factory=dict)
    outcomes: Dict[str, RewriteOutcome] = field(default_factory=dict)
    records: List[MemoRecord] = field(default_factory=list)
    failures: List[CallSiteFailure] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def eligible_functions(self) -> List[str]:
        return [name for name, v in self.verdicts.items() if v.eligible]

    @property
    def rewritten_sites(self) -> List[RewrittenCallSite]:
        return [site for outcome in self.outcomes.values() for site in outcome.rewritten]

    @property
    def changed(self) -> bool:
        return bool(self.rewritten_sites)

    def rejected(self) -> Dict[str, IneligibleReason]:
        return {name: v.reason for name, v in self.verdicts.items() if not v.eligible}

    def summary(self) -> Dict[str, Any]:
        return {
            'module': self.module_name,
            'functions': len(self.verdicts),
            'eligible': len(self.eligible_functions),
            'variants': len(self.records),
            'rewritten_call_sites': len(self.rewritten_sites),
            'failed_call_sites': len(self.failures),
        }


class MemoizePass:
    """
    Compile-time function memoization pass.

    Usage:
        table = MemoTable()
        result = MemoizePass(PassConfig(), sink=table).run(module)
        for diagnostic in result.diagnostics:
            print(diagnostic)
    """

    def __init__(self, config: Optional[PassConfig] = None,
                 sink: Optional[MetadataSink] = None):
        self.config = config or PassConfig()
        self.sink = sink

    def run(self, module: Module) -> PassResult:
        logger.info("Memoize: %s", module.name)
        result = PassResult(module.name)
        with module.lock:
            # verdicts and variants live exactly as long as this run
            analyzer = EligibilityAnalyzer(self.config)
            rewriter = CallSiteRewriter(self.config, sink=self.sink)
            for function in list(module.functions):
                self._visit(function, analyzer, rewriter, result)
            if self.config.verify:
                assert_valid(module)
        logger.info("Memoize: %s done: %s", module.name, result.summary())
        return result

    def run_many(self, modules: Iterable[Module],
                 workers: Optional[int] = None) -> List[PassResult]:
        """Run over several modules concurrently, one module per task."""
        modules = list(modules)
        if workers == 1 or len(modules) <= 1:
            return [self.run(module) for module in modules]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self.run, modules))

    # ───────────────────────────────────────────────────────────────

    def _visit(self, function, analyzer: EligibilityAnalyzer,
               rewriter: CallSiteRewriter, result: PassResult) -> None:
        verdict = analyzer.evaluate(function)
        result.verdicts[function.name] = verdict

        if not verdict.eligible:
            level = logging.DEBUG if function.is_declaration else logging.INFO
            logger.log(level, "Not memoizable: %s", verdict)
            result.diagnostics.append(Diagnostic(
                DiagnosticKind.INELIGIBLE, function.name, verdict.detail, verdict.reason))
            return

        if analyzer.is_memoized_variant(function):
            logger.debug("Trusted memoized entry point: @%s", function.name)
            result.diagnostics.append(Diagnostic(
                DiagnosticKind.TRUSTED, function.name, verdict.detail))
            return

        logger.info("Memoizable: @%s", function.name)
        result.diagnostics.append(Diagnostic(
            DiagnosticKind.ELIGIBLE, function.name, 'eligible for memoization'))
        if not function.call_sites():
            return

        outcome = rewriter.rewrite(function, verdict)
        result.outcomes[function.name] = outcome
        result.records.extend(outcome.records)
        result.failures.extend(outcome.failures)
        for record in outcome.records:
            result.diagnostics.append(Diagnostic(
                DiagnosticKind.SYNTHESIZED, record.variant_name,
                f"variant of @{record.original_name} with constants "
                f"({', '.join(record.constant_suffix)})"))
        for site in outcome.rewritten:
            result.diagnostics.append(Diagnostic(
                DiagnosticKind.REWRITTEN, site.caller, f"{site.before} -> {site.after}"))
        for failure in outcome.failures:
            result.diagnostics.append(Diagnostic(
                DiagnosticKind.REWRITE_FAILED, failure.caller,
                f"{failure.call}: {failure.detail}", failure.reason))

        if outcome.modified_functions:
            analyzer.invalidate(outcome.modified_functions)

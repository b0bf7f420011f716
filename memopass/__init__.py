"""
memopass: Compile-Time Function Memoization
===========================================

memopass finds functions whose result depends only on their inputs and
rewrites every call of such a function into a call to a canonical
memoized variant, ready to be backed by a precomputed lookup table.

Core Components:
    - ir: LLVM-shaped IR (values with use lists, functions, modules)
    - analysis: eligibility analysis (purity, depth, cycles, globals)
    - transform: canonical signatures and the call-site rewriter
    - metadata: variant records handed to the table builder
    - frontend: lowering of annotated Python source to the IR
    - backend: LLVM IR emission through llvmlite

Usage:
    >>> import memopass
    >>> module = memopass.lower_source(source)
    >>> table = memopass.MemoTable()
    >>> result = memopass.MemoizePass(sink=table).run(module)
    >>> print(result.summary())
"""

__version__ = "1.0.0"

from memopass.ir import Module, Function, GlobalVariable, Linkage, format_module
from memopass.errors import FrontendError, IRError, MemopassError, VerificationError
from memopass.config import PassConfig, load_config
from memopass.analysis.eligibility import (
    EligibilityAnalyzer,
    EligibilityVerdict,
    IneligibleReason,
)
from memopass.transform.signature import CanonicalSignature
from memopass.transform.rewriter import CallSiteRewriter, RewriteOutcome
from memopass.metadata import MemoRecord, MemoTable, MetadataSink
from memopass.pass_driver import Diagnostic, DiagnosticKind, MemoizePass, PassResult
from memopass.frontend.python_lowering import lower_file, lower_source

__all__ = [
    'Module', 'Function', 'GlobalVariable', 'Linkage', 'format_module',
    'FrontendError', 'IRError', 'MemopassError', 'VerificationError',
    'PassConfig', 'load_config',
    'EligibilityAnalyzer', 'EligibilityVerdict', 'IneligibleReason',
    'CanonicalSignature',
    'CallSiteRewriter', 'RewriteOutcome',
    'MemoRecord', 'MemoTable', 'MetadataSink',
    'Diagnostic', 'DiagnosticKind', 'MemoizePass', 'PassResult',
    'lower_file', 'lower_source',
]

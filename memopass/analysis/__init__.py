"""Analyses feeding the memoization transform."""

from memopass.analysis.eligibility import (
    EligibilityAnalyzer,
    EligibilityVerdict,
    IneligibleReason,
)

__all__ = [
    'EligibilityAnalyzer',
    'EligibilityVerdict',
    'IneligibleReason',
]

"""Exception hierarchy for memopass.

Analysis outcomes (ineligible functions, rejected call sites) are reported
as values; these exceptions only signal misuse of the IR or bad input.
"""

from typing import Optional


class MemopassError(Exception):
    """Base class for all memopass errors."""


class IRError(MemopassError):
    """Raised when IR is constructed or mutated inconsistently."""


class VerificationError(MemopassError):
    """Raised when a module fails verification."""

    def __init__(self, problems):
        self.problems = list(problems)
        summary = '; '.join(self.problems[:5])
        if len(self.problems) > 5:
            summary += f' (+{len(self.problems) - 5} more)'
        super().__init__(f"Module verification failed: {summary}")


class FrontendError(MemopassError):
    """Raised when Python source uses a construct the lowering cannot handle."""

    def __init__(self, message: str, lineno: Optional[int] = None):
        self.lineno = lineno
        if lineno is not None:
            message = f"line {lineno}: {message}"
        super().__init__(message)

"""Module transformations performed by the memoization pass."""

from memopass.transform.signature import (
    CanonicalParam,
    CanonicalSignature,
    collect_globals,
    encode_constant,
    variant_name,
)
from memopass.transform.rewriter import (
    CallSiteFailure,
    CallSiteRewriter,
    RewriteOutcome,
    RewrittenCallSite,
)

__all__ = [
    'CanonicalParam',
    'CanonicalSignature',
    'collect_globals',
    'encode_constant',
    'variant_name',
    'CallSiteFailure',
    'CallSiteRewriter',
    'RewriteOutcome',
    'RewrittenCallSite',
]

"""
Pass Configuration
==================

Tunables of the memoization pass. Defaults: a recursion depth of
10 call levels and the ``_memoized_`` prefix for synthesized (and hand-authored)
memoized entry points.
"""

import json
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Union

DEFAULT_MAX_DEPTH = 10
DEFAULT_VARIANT_PREFIX = '_memoized_'


@dataclass(frozen=True)
class PassConfig:
    """
    Configuration of one memoization pass instance.

    Attributes:
        max_depth:            Deepest call level the eligibility analysis
                              follows before giving up (DepthExceeded).
        variant_prefix:       Prefix of synthesized variants; functions
                              already carrying it are trusted as memoized.
        allow_widening_casts: Repair an argument/parameter type mismatch
                              with sext/zext/fpext instead of rejecting
                              the call site.
        verify:               Run the module verifier after the pass.
        extra_speculatable:   Additional function names trusted as pure
                              built-ins.
    """
    max_depth: int = DEFAULT_MAX_DEPTH
    variant_prefix: str = DEFAULT_VARIANT_PREFIX
    allow_widening_casts: bool = True
    verify: bool = True
    extra_speculatable: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if not isinstance(self.max_depth, int) or self.max_depth < 1:
            raise ValueError(f"max_depth must be a positive integer, got {self.max_depth!r}")
        if not self.variant_prefix or not self.variant_prefix.replace('_', 'a').isalnum():
            raise ValueError(
                f"variant_prefix must be a non-empty identifier fragment, "
                f"got {self.variant_prefix!r}"
            )
        object.__setattr__(self, 'extra_speculatable', frozenset(self.extra_speculatable))

    def with_overrides(self, **overrides: Any) -> 'PassConfig':
        """Copy with the given fields replaced; ``None`` values are ignored."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PassConfig':
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown configuration keys: {', '.join(unknown)}")
        return cls(**dict(data))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['extra_speculatable'] = sorted(self.extra_speculatable)
        return data


def load_config(path: Union[str, Path]) -> PassConfig:
    """Read a JSON object of ``PassConfig`` fields."""
    with open(path, encoding='utf-8') as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: configuration must be a JSON object")
    return PassConfig.from_dict(data)

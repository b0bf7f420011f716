"""
Memoization Metadata
====================

The contract between the memoization pass and the table-building stage
that constructs the runtime lookup cache. One ``MemoRecord`` is emitted
per synthesized variant:

    original_name        the function being memoized
    constant_suffix      folded literal values, in encounter order
    canonical_signature  (type, origin) per runtime parameter

plus bookkeeping the table builder can use (variant name, positions of
the folded constants in the full canonical list, return type, names of
the globals captured as parameters).
"""

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple, Union


@dataclass(frozen=True)
class MemoRecord:
    original_name: str
    variant_name: str
    constant_suffix: Tuple[str, ...]
    canonical_signature: Tuple[Tuple[str, str], ...]
    return_type: str
    constant_positions: Tuple[int, ...] = ()
    captured_globals: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'original_name': self.original_name,
            'variant_name': self.variant_name,
            'constant_suffix': list(self.constant_suffix),
            'canonical_signature': [
                {'type': type_name, 'origin': origin}
                for type_name, origin in self.canonical_signature
            ],
            'return_type': self.return_type,
            'constant_positions': list(self.constant_positions),
            'captured_globals': list(self.captured_globals),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemoRecord':
        return cls(
            original_name=data['original_name'],
            variant_name=data['variant_name'],
            constant_suffix=tuple(data['constant_suffix']),
            canonical_signature=tuple(
                (entry['type'], entry['origin'])
                for entry in data['canonical_signature']
            ),
            return_type=data['return_type'],
            constant_positions=tuple(data.get('constant_positions', ())),
            captured_globals=tuple(data.get('captured_globals', ())),
        )


class MetadataSink:
    """Receiver of variant records; subclass to feed a table builder."""

    def emit(self, record: MemoRecord) -> None:
        raise NotImplementedError


@dataclass
class MemoTable(MetadataSink):
    """In-memory sink that collects records and round-trips them as JSON."""
    records: List[MemoRecord] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def emit(self, record: MemoRecord) -> None:
        with self._lock:
            self.records.append(record)

    def for_function(self, original_name: str) -> List[MemoRecord]:
        return [r for r in self.records if r.original_name == original_name]

    def __iter__(self) -> Iterator[MemoRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def to_json(self) -> str:
        return json.dumps({'variants': [r.to_dict() for r in self.records]}, indent=2)

    def write(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.write_text(self.to_json() + '\n', encoding='utf-8')
        return path

    @classmethod
    def read(cls, path: Union[str, Path]) -> 'MemoTable':
        data = json.loads(Path(path).read_text(encoding='utf-8'))
        return cls([MemoRecord.from_dict(entry) for entry in data.get('variants', [])])

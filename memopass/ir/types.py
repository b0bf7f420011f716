"""
IR Types
========

Immutable type descriptors for the memopass IR.

Types are value objects: two ``IRType`` instances describing the same
shape compare equal and hash equal, which is what the rewriter relies on
when it checks an actual argument against a canonical parameter.

The ``TypeKind`` ordering doubles as the canonical parameter order used by
the call-site rewriter:

    INTEGER < FLOAT < DOUBLE < POINTER < ARRAY < STRUCT < VOID
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import FrozenSet, Optional, Tuple, Union


class TypeKind(IntEnum):
    """Type families, in canonical signature order."""
    INTEGER = 0
    FLOAT = 1
    DOUBLE = 2
    POINTER = 3
    ARRAY = 4
    STRUCT = 5
    VOID = 6


SCALAR_NUMERIC_KINDS: FrozenSet[TypeKind] = frozenset({
    TypeKind.INTEGER, TypeKind.FLOAT, TypeKind.DOUBLE,
})


@dataclass(frozen=True)
class FunctionType:
    """Signature of a function: return type, parameter types, varargs flag."""
    return_type: 'IRType'
    params: Tuple['IRType', ...] = ()
    var_arg: bool = False

    def __str__(self) -> str:
        parts = [str(p) for p in self.params]
        if self.var_arg:
            parts.append('...')
        return f"{self.return_type} ({', '.join(parts)})"


@dataclass(frozen=True)
class IRType:
    """
    A first-class IR type.

    Only the fields relevant to ``kind`` are populated: ``bits`` for
    integers, ``pointee`` for pointers (an ``IRType`` or a
    ``FunctionType``), ``element``/``count`` for arrays and ``fields``
    for structs.
    """
    kind: TypeKind
    bits: int = 0
    pointee: Optional[Union['IRType', FunctionType]] = None
    element: Optional['IRType'] = None
    count: int = 0
    fields: Tuple['IRType', ...] = ()

    @property
    def is_integer(self) -> bool:
        return self.kind == TypeKind.INTEGER

    @property
    def is_floating(self) -> bool:
        return self.kind in (TypeKind.FLOAT, TypeKind.DOUBLE)

    @property
    def is_pointer(self) -> bool:
        return self.kind == TypeKind.POINTER

    @property
    def is_void(self) -> bool:
        return self.kind == TypeKind.VOID

    @property
    def is_scalar_numeric(self) -> bool:
        """True for integer, float and double types only."""
        return self.kind in SCALAR_NUMERIC_KINDS

    @property
    def is_function_pointer(self) -> bool:
        return self.is_pointer and isinstance(self.pointee, FunctionType)

    def order_key(self) -> tuple:
        """Total order over type identity used for canonical signatures."""
        return (int(self.kind), self.bits, str(self))

    def __str__(self) -> str:
        if self.kind == TypeKind.INTEGER:
            return f"i{self.bits}"
        if self.kind == TypeKind.FLOAT:
            return 'float'
        if self.kind == TypeKind.DOUBLE:
            return 'double'
        if self.kind == TypeKind.VOID:
            return 'void'
        if self.kind == TypeKind.POINTER:
            return f"{self.pointee}*"
        if self.kind == TypeKind.ARRAY:
            return f"[{self.count} x {self.element}]"
        return '{' + ', '.join(str(f) for f in self.fields) + '}'


# ═══════════════════════════════════════════════════════════════════════════
# Constructors and common instances
# ═══════════════════════════════════════════════════════════════════════════

def int_type(bits: int) -> IRType:
    if bits <= 0:
        raise ValueError(f"integer width must be positive, got {bits}")
    return IRType(TypeKind.INTEGER, bits=bits)


def pointer_to(pointee: Union[IRType, FunctionType]) -> IRType:
    return IRType(TypeKind.POINTER, pointee=pointee)


def array_of(element: IRType, count: int) -> IRType:
    return IRType(TypeKind.ARRAY, element=element, count=count)


def struct_of(*fields: IRType) -> IRType:
    return IRType(TypeKind.STRUCT, fields=tuple(fields))


I1 = int_type(1)
I8 = int_type(8)
I32 = int_type(32)
I64 = int_type(64)
FLOAT = IRType(TypeKind.FLOAT)
DOUBLE = IRType(TypeKind.DOUBLE)
VOID = IRType(TypeKind.VOID)

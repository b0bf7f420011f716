"""
IR Values
=========

Every operand in the IR is a ``Value``. Values track their users (the
instructions holding them as operands) so that analyses can walk def-use
chains and transformations can retarget uses with
``replace_all_uses_with``.

Identity matters: two constants with the same number are distinct
objects, and globals/functions are compared by identity, never by name.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Union

from ..errors import IRError
from .types import DOUBLE, I64, IRType, pointer_to

if TYPE_CHECKING:  # pragma: no cover
    from .instructions import Instruction
    from .module import Function, Module


class ParamOrigin(Enum):
    """Where a parameter of a (possibly synthesized) function comes from."""
    ORIGINAL_ARGUMENT = 'original-argument'
    CAPTURED_GLOBAL = 'captured-global'
    FOLDED_CONSTANT = 'folded-constant'


class Value:
    """Base class of everything that can appear as an operand."""

    def __init__(self, type: IRType, name: str = ''):
        self.type = type
        self.name = name
        self._users: List['Instruction'] = []

    @property
    def users(self) -> List['Instruction']:
        """Instructions using this value, one entry per operand slot."""
        return list(self._users)

    @property
    def has_users(self) -> bool:
        return bool(self._users)

    def _add_user(self, user: 'Instruction') -> None:
        self._users.append(user)

    def _remove_user(self, user: 'Instruction') -> None:
        for i, existing in enumerate(self._users):
            if existing is user:
                del self._users[i]
                return
        raise IRError(f"{user!r} is not a user of {self!r}")

    def replace_all_uses_with(self, new: 'Value') -> None:
        """Point every operand slot referring to this value at ``new``."""
        if new is self:
            return
        if new.type != self.type:
            raise IRError(
                f"cannot replace {self.type} value with {new.type} value"
            )
        visited: List['Instruction'] = []
        for user in list(self._users):
            # one user may hold this value in several slots
            if any(seen is user for seen in visited):
                continue
            visited.append(user)
            user.replace_operand(self, new)

    def __repr__(self) -> str:
        label = self.name or '<unnamed>'
        return f"<{type(self).__name__} {label}: {self.type}>"


class Constant(Value):
    """A compile-time literal."""

    def __init__(self, type: IRType, value: Union[int, float]):
        super().__init__(type)
        self.value = value

    @property
    def text(self) -> str:
        """Textual literal used for constant suffixes and printing."""
        return str(self.value)


class ConstantInt(Constant):

    def __init__(self, type: IRType, value: int):
        if not type.is_integer:
            raise IRError(f"ConstantInt needs an integer type, got {type}")
        super().__init__(type, int(value))

    @property
    def text(self) -> str:
        if self.type.bits == 1:
            return 'true' if self.value else 'false'
        return str(self.value)


class ConstantFloat(Constant):

    def __init__(self, type: IRType, value: float):
        if not type.is_floating:
            raise IRError(f"ConstantFloat needs a floating type, got {type}")
        super().__init__(type, float(value))

    @property
    def text(self) -> str:
        return repr(self.value)


def const_int(value: int, type: IRType = I64) -> ConstantInt:
    return ConstantInt(type, value)


def const_float(value: float, type: IRType = DOUBLE) -> ConstantFloat:
    return ConstantFloat(type, value)


class Argument(Value):
    """A formal parameter of a function."""

    def __init__(
        self,
        type: IRType,
        name: str,
        parent: 'Function',
        index: int,
        origin: ParamOrigin = ParamOrigin.ORIGINAL_ARGUMENT,
    ):
        super().__init__(type, name)
        self.parent = parent
        self.index = index
        self.origin = origin


class GlobalVariable(Value):
    """
    A module-level variable.

    As in LLVM, the global itself is an address: its ``type`` is a pointer
    to ``value_type``. Reading it requires a load.
    """

    def __init__(
        self,
        name: str,
        value_type: IRType,
        initializer: Optional[Constant] = None,
        is_constant: bool = False,
    ):
        if not name:
            raise IRError("global variables must be named")
        if initializer is not None and initializer.type != value_type:
            raise IRError(
                f"initializer of @{name} has type {initializer.type}, "
                f"expected {value_type}"
            )
        super().__init__(pointer_to(value_type), name)
        self.value_type = value_type
        self.initializer = initializer
        self.is_constant = is_constant
        self.module: Optional['Module'] = None

    @property
    def is_scalar_numeric(self) -> bool:
        return self.value_type.is_scalar_numeric

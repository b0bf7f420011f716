"""
IR Module Structure
===================

Functions, basic blocks and the module that owns them.

A ``Module`` keeps functions and globals in declaration order (the order
the memoization pass visits them) and carries a re-entrant lock that a
pass holds for the whole of its run over the module.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..errors import IRError
from .instructions import CallInst, Instruction
from .types import FunctionType, IRType, pointer_to
from .values import Argument, GlobalVariable, ParamOrigin, Value


class Linkage(Enum):
    """Symbol linkage, named after the LLVM linkage keywords."""
    EXTERNAL = 'external'
    INTERNAL = 'internal'
    PRIVATE = 'private'
    WEAK = 'weak'
    WEAK_ODR = 'weak_odr'
    LINKONCE = 'linkonce'
    LINKONCE_ODR = 'linkonce_odr'
    COMMON = 'common'
    EXTERN_WEAK = 'extern_weak'
    AVAILABLE_EXTERNALLY = 'available_externally'

    @property
    def is_local(self) -> bool:
        return self in (Linkage.INTERNAL, Linkage.PRIVATE)

    @property
    def is_interposable(self) -> bool:
        """The definition seen here may be replaced at link time."""
        return self in _INTERPOSABLE


_INTERPOSABLE = frozenset({
    Linkage.WEAK, Linkage.LINKONCE, Linkage.COMMON,
    Linkage.EXTERN_WEAK, Linkage.AVAILABLE_EXTERNALLY,
})


class BasicBlock:
    """A straight sequence of instructions ending in a terminator."""

    def __init__(self, name: str = '', parent: Optional['Function'] = None):
        self.name = name
        self.parent = parent
        self.instructions: List[Instruction] = []

    @property
    def terminator(self) -> Optional[Instruction]:
        if self.instructions and self.instructions[-1].is_terminator:
            return self.instructions[-1]
        return None

    def append(self, inst: Instruction) -> Instruction:
        self._adopt(inst)
        self.instructions.append(inst)
        return inst

    def insert_before(self, inst: Instruction, anchor: Instruction) -> Instruction:
        index = self.index_of(anchor)
        self._adopt(inst)
        self.instructions.insert(index, inst)
        return inst

    def remove(self, inst: Instruction) -> None:
        del self.instructions[self.index_of(inst)]
        inst.parent = None

    def index_of(self, inst: Instruction) -> int:
        for i, existing in enumerate(self.instructions):
            if existing is inst:
                return i
        raise IRError(f"{inst!r} is not in block {self.name!r}")

    def _adopt(self, inst: Instruction) -> None:
        if inst.parent is not None:
            raise IRError(f"{inst!r} already belongs to a block")
        inst.parent = self

    def __iter__(self) -> Iterator[Instruction]:
        return iter(list(self.instructions))

    def __len__(self) -> int:
        return len(self.instructions)


class Function(Value):
    """
    A function definition or declaration.

    The signature is fixed at construction; rewriting a function's calling
    convention means creating a new ``Function``.
    """

    def __init__(
        self,
        name: str,
        function_type: FunctionType,
        *,
        linkage: Linkage = Linkage.EXTERNAL,
        param_names: Sequence[str] = (),
        param_origins: Sequence[ParamOrigin] = (),
        attributes: Sequence[str] = (),
    ):
        if not name:
            raise IRError("functions must be named")
        super().__init__(pointer_to(function_type), name)
        self.function_type = function_type
        self.linkage = linkage
        self.attributes = frozenset(attributes)
        self.module: Optional['Module'] = None
        self.blocks: List[BasicBlock] = []
        self.metadata: Dict[str, Any] = {}
        self.arguments: List[Argument] = []
        for index, param_type in enumerate(function_type.params):
            arg_name = param_names[index] if index < len(param_names) else ''
            origin = (param_origins[index] if index < len(param_origins)
                      else ParamOrigin.ORIGINAL_ARGUMENT)
            self.arguments.append(
                Argument(param_type, arg_name, self, index, origin)
            )

    # ── Signature ────────────────────────────────────────────────────

    @property
    def return_type(self) -> IRType:
        return self.function_type.return_type

    @property
    def is_var_arg(self) -> bool:
        return self.function_type.var_arg

    @property
    def is_declaration(self) -> bool:
        return not self.blocks

    @property
    def is_intrinsic(self) -> bool:
        return self.name.startswith('llvm.')

    # ── Body ─────────────────────────────────────────────────────────

    def append_block(self, name: str = '') -> BasicBlock:
        if not name:
            name = 'entry' if not self.blocks else f"bb{len(self.blocks)}"
        block = BasicBlock(name, self)
        self.blocks.append(block)
        return block

    def instructions(self) -> Iterator[Instruction]:
        """All instructions in block order."""
        for block in list(self.blocks):
            yield from block

    # ── Uses ─────────────────────────────────────────────────────────

    def call_sites(self) -> List[CallInst]:
        """Call instructions that call this function directly."""
        sites = []
        for user in self._users:
            if isinstance(user, CallInst) and user.callee is self:
                if not any(site is user for site in sites):
                    sites.append(user)
        return sites

    def has_address_taken(self) -> bool:
        """True if any use is something other than the callee of a call."""
        for user in self._users:
            if not isinstance(user, CallInst):
                return True
            if any(arg is self for arg in user.args):
                return True
        return False

    def may_be_overridden(self) -> bool:
        return self.linkage.is_interposable or self.has_address_taken()

    def __repr__(self) -> str:
        kind = 'declare' if self.is_declaration else 'define'
        return f"<Function {kind} @{self.name}: {self.function_type}>"


class Module:
    """A translation unit: ordered functions and globals."""

    def __init__(self, name: str = 'module'):
        self.name = name
        self.functions: List[Function] = []
        self.globals: List[GlobalVariable] = []
        self._symbols: Dict[str, Value] = {}
        self.lock = threading.RLock()

    def add_function(self, function: Function) -> Function:
        self._claim(function.name, function)
        function.module = self
        self.functions.append(function)
        return function

    def add_global(self, variable: GlobalVariable) -> GlobalVariable:
        self._claim(variable.name, variable)
        variable.module = self
        self.globals.append(variable)
        return variable

    def get_function(self, name: str) -> Optional[Function]:
        symbol = self._symbols.get(name)
        return symbol if isinstance(symbol, Function) else None

    def get_global(self, name: str) -> Optional[GlobalVariable]:
        symbol = self._symbols.get(name)
        return symbol if isinstance(symbol, GlobalVariable) else None

    def get_or_declare(self, name: str, function_type: FunctionType, **kwargs) -> Function:
        """Return the named function, declaring it if absent."""
        existing = self.get_function(name)
        if existing is not None:
            if existing.function_type != function_type:
                raise IRError(
                    f"@{name} already declared as {existing.function_type}"
                )
            return existing
        return self.add_function(Function(name, function_type, **kwargs))

    def unique_name(self, base: str) -> str:
        """``base`` if free, else the first free ``base.N``."""
        if base not in self._symbols:
            return base
        counter = 1
        while f"{base}.{counter}" in self._symbols:
            counter += 1
        return f"{base}.{counter}"

    def _claim(self, name: str, symbol: Value) -> None:
        if name in self._symbols:
            raise IRError(f"symbol @{name} is already defined in {self.name}")
        self._symbols[name] = symbol

    def __iter__(self) -> Iterator[Function]:
        return iter(list(self.functions))

    def __repr__(self) -> str:
        return (f"<Module {self.name}: {len(self.functions)} functions, "
                f"{len(self.globals)} globals>")


# ═══════════════════════════════════════════════════════════════════════════
# Call target resolution
# ═══════════════════════════════════════════════════════════════════════════

class CalleeKind(Enum):
    RESOLVED = 'resolved'
    UNRESOLVED = 'unresolved'
    NOT_A_CALL = 'not-a-call'


@dataclass(frozen=True)
class CalleeResolution:
    kind: CalleeKind
    function: Optional[Function] = None


def resolve_callee(inst: Instruction) -> CalleeResolution:
    """Statically resolve the target of ``inst``."""
    if not isinstance(inst, CallInst):
        return CalleeResolution(CalleeKind.NOT_A_CALL)
    if isinstance(inst.callee, Function):
        return CalleeResolution(CalleeKind.RESOLVED, inst.callee)
    return CalleeResolution(CalleeKind.UNRESOLVED)

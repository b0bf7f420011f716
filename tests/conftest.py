"""Shared IR-building fixtures."""

import pytest

from memopass.ir import (
    I64, FunctionType, GlobalVariable, IRBuilder, Function, Linkage, Module,
    const_int,
)


class IRFactory:
    """Terse construction of small test modules."""

    def __init__(self, module: Module):
        self.module = module

    def define(self, name, params=(I64,), ret=I64, names=None,
               linkage=Linkage.EXTERNAL, attributes=(), var_arg=False):
        """Define a function and return ``(function, builder)`` at its entry."""
        if names is None:
            names = [chr(ord('a') + i) for i in range(len(params))]
        function = Function(
            name, FunctionType(ret, tuple(params), var_arg),
            linkage=linkage, param_names=names, attributes=attributes,
        )
        self.module.add_function(function)
        return function, IRBuilder(function.append_block())

    def declare(self, name, params=(I64,), ret=I64, var_arg=False, attributes=()):
        function = Function(name, FunctionType(ret, tuple(params), var_arg),
                            attributes=attributes)
        return self.module.add_function(function)

    def global_var(self, name, value_type=I64, value=0, constant=False):
        initializer = const_int(value, value_type) if value_type.is_integer else None
        return self.module.add_global(
            GlobalVariable(name, value_type, initializer, is_constant=constant))

    def leaf(self, name, params=(I64, I64)):
        """``ret a + b`` (or ``ret a`` for one parameter)."""
        function, b = self.define(name, params)
        args = function.arguments
        result = args[0]
        for arg in args[1:]:
            result = b.add(result, arg)
        b.ret(result)
        return function

    def caller(self, name, callee, args_factory, params=(I64,)):
        """Function whose body calls ``callee`` with ``args_factory(function)``."""
        function, b = self.define(name, params)
        call = b.call(callee, args_factory(function))
        b.ret(call)
        return function, call

    def chain(self, edges, prefix='f'):
        """f0 -> f1 -> ... -> f<edges>; f<edges> is a leaf. Returns [f0, ...]."""
        functions = [None] * (edges + 1)
        last, b = self.define(f"{prefix}{edges}", (I64,))
        b.ret(b.add(last.arguments[0], const_int(1)))
        functions[edges] = last
        for index in range(edges - 1, -1, -1):
            function, b = self.define(f"{prefix}{index}", (I64,))
            b.ret(b.call(functions[index + 1], [function.arguments[0]]))
            functions[index] = function
        return functions


@pytest.fixture
def module():
    return Module('test')


@pytest.fixture
def ir(module):
    return IRFactory(module)

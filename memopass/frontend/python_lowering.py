"""
Python Lowering
===============

Lowers a module of type-annotated Python functions into memopass IR so
the memoization pass can be run on ordinary source files.

Supported subset:

    G: int = 3                         scalar global (int/float/bool)
    LIMIT: Final[int] = 10             constant global
    import math / from typing import … ignored

    @weak / @linkonce / …              linkage of the function
    @speculatable                      trusted as a pure built-in
    def f(a: int, g: Callable[[int], int]) -> float:
        global G                       enables stores to G
        x = a * 2                      locals are SSA values
        x += G                         reads of G load the global
        G = x
        print(x)                       external, side-effecting
        return math.sqrt(x) if a > 0 else g(a)

Functions whose name starts with a single underscore get internal
linkage. Integers are 64-bit and floats are doubles; ``//`` and ``%``
on integers truncate toward zero like the C operators they lower to.
Anything outside the subset raises ``FrontendError`` with the line.
"""

import ast
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

from ..errors import FrontendError
from ..ir.builder import IRBuilder
from ..ir.instructions import Instruction
from ..ir.module import Function, Linkage, Module
from ..ir.types import DOUBLE, I1, I64, VOID, FunctionType, IRType, pointer_to
from ..ir.values import (
    Constant, ConstantFloat, ConstantInt, GlobalVariable, Value,
)

_SCALAR_ANNOTATIONS: Dict[str, IRType] = {
    'int': I64,
    'float': DOUBLE,
    'bool': I1,
}

_LINKAGE_DECORATORS = {
    linkage.value: linkage for linkage in Linkage
    if linkage not in (Linkage.EXTERNAL, Linkage.INTERNAL, Linkage.PRIVATE)
}

# math.<name> -> (intrinsic, arity)
_MATH_INTRINSICS = {
    'sqrt': ('llvm.sqrt.f64', 1),
    'sin': ('llvm.sin.f64', 1),
    'cos': ('llvm.cos.f64', 1),
    'exp': ('llvm.exp.f64', 1),
    'log': ('llvm.log.f64', 1),
    'floor': ('llvm.floor.f64', 1),
    'ceil': ('llvm.ceil.f64', 1),
    'fabs': ('llvm.fabs.f64', 1),
    'pow': ('llvm.pow.f64', 2),
}

_INT_BINOPS = {ast.Add: 'add', ast.Sub: 'sub', ast.Mult: 'mul',
               ast.FloorDiv: 'sdiv', ast.Mod: 'srem'}
_FLOAT_BINOPS = {ast.Add: 'fadd', ast.Sub: 'fsub', ast.Mult: 'fmul',
                 ast.Div: 'fdiv', ast.Mod: 'frem'}

_INT_PREDICATES = {ast.Eq: 'eq', ast.NotEq: 'ne', ast.Lt: 'slt',
                   ast.LtE: 'sle', ast.Gt: 'sgt', ast.GtE: 'sge'}
_FLOAT_PREDICATES = {ast.Eq: 'oeq', ast.NotEq: 'one', ast.Lt: 'olt',
                     ast.LtE: 'ole', ast.Gt: 'ogt', ast.GtE: 'oge'}


def lower_source(source: str, module_name: str = 'module') -> Module:
    """Lower Python source text to a new ``Module``."""
    return PythonLowering(module_name).lower(source)


def lower_file(path: Union[str, Path]) -> Module:
    path = Path(path)
    return PythonLowering(path.stem).lower(path.read_text(encoding='utf-8'))


class PythonLowering:
    """Module-level lowering: globals, signatures, then bodies."""

    def __init__(self, module_name: str = 'module'):
        self.module = Module(module_name)
        self._bodies: List[ast.FunctionDef] = []

    def lower(self, source: str) -> Module:
        try:
            tree = ast.parse(source)
        except SyntaxError as exc:
            raise FrontendError(f"invalid Python: {exc.msg}", exc.lineno) from exc

        for stmt in tree.body:
            self._lower_toplevel(stmt)
        for node in self._bodies:
            function = self.module.get_function(node.name)
            _FunctionLowering(self, function, node).lower()
        return self.module

    # ───────────────────────────────────────────────────────────────
    #  Top level
    # ───────────────────────────────────────────────────────────────

    def _lower_toplevel(self, stmt: ast.stmt) -> None:
        if isinstance(stmt, (ast.Import, ast.ImportFrom)):
            return
        if _is_docstring(stmt):
            return
        if isinstance(stmt, ast.FunctionDef):
            self._declare_function(stmt)
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            value_type, is_constant = self._global_annotation(stmt.annotation)
            if stmt.value is None:
                raise FrontendError(f"global {stmt.target.id} needs a value", stmt.lineno)
            self._declare_global(stmt.target.id, value_type, stmt.value, is_constant)
        elif (isinstance(stmt, ast.Assign) and len(stmt.targets) == 1
              and isinstance(stmt.targets[0], ast.Name)):
            literal = _literal(stmt.value)
            if literal is None:
                raise FrontendError('module-level values must be literals', stmt.lineno)
            self._declare_global(stmt.targets[0].id, literal.type, stmt.value, False)
        else:
            raise FrontendError(
                f"unsupported module-level statement {type(stmt).__name__}",
                stmt.lineno,
            )

    def _declare_global(self, name: str, value_type: IRType,
                        value: ast.expr, is_constant: bool) -> None:
        literal = _literal(value)
        if literal is None:
            raise FrontendError(f"global {name} must be initialized with a literal",
                                value.lineno)
        if not value_type.is_scalar_numeric:
            raise FrontendError(f"global {name} must be int, float or bool", value.lineno)
        initializer = _convert_constant(literal, value_type, value.lineno)
        self._check_free(name, value.lineno)
        self.module.add_global(GlobalVariable(name, value_type, initializer, is_constant))

    def _declare_function(self, node: ast.FunctionDef) -> None:
        args = node.args
        if args.vararg or args.kwarg or args.kwonlyargs or args.posonlyargs or args.defaults:
            raise FrontendError(
                f"{node.name}: only plain positional parameters are supported",
                node.lineno,
            )
        params, names = [], []
        for arg in args.args:
            if arg.annotation is None:
                raise FrontendError(f"{node.name}: parameter {arg.arg} needs an annotation",
                                    node.lineno)
            params.append(self.value_type(arg.annotation))
            names.append(arg.arg)
        if node.returns is None or _is_none(node.returns):
            return_type = VOID
        else:
            return_type = self.value_type(node.returns)

        linkage = Linkage.INTERNAL if _is_private(node.name) else Linkage.EXTERNAL
        attributes = []
        for decorator in node.decorator_list:
            label = decorator.id if isinstance(decorator, ast.Name) else None
            if label in _LINKAGE_DECORATORS:
                linkage = _LINKAGE_DECORATORS[label]
            elif label == 'speculatable':
                attributes.append('speculatable')
            else:
                raise FrontendError(f"{node.name}: unsupported decorator", decorator.lineno)

        self._check_free(node.name, node.lineno)
        self.module.add_function(Function(
            node.name, FunctionType(return_type, tuple(params)),
            linkage=linkage, param_names=names, attributes=attributes,
        ))
        self._bodies.append(node)

    def _check_free(self, name: str, lineno: int) -> None:
        if self.module.get_function(name) or self.module.get_global(name):
            raise FrontendError(f"{name} is defined twice", lineno)

    # ───────────────────────────────────────────────────────────────
    #  Annotations
    # ───────────────────────────────────────────────────────────────

    def value_type(self, node: ast.expr) -> IRType:
        if isinstance(node, ast.Name) and node.id in _SCALAR_ANNOTATIONS:
            return _SCALAR_ANNOTATIONS[node.id]
        if isinstance(node, ast.Subscript) and _subscript_base(node) == 'Callable':
            spec = node.slice
            if (isinstance(spec, ast.Tuple) and len(spec.elts) == 2
                    and isinstance(spec.elts[0], ast.List)):
                params = tuple(self.value_type(p) for p in spec.elts[0].elts)
                ret = spec.elts[1]
                return_type = VOID if _is_none(ret) else self.value_type(ret)
                return pointer_to(FunctionType(return_type, params))
        raise FrontendError(f"unsupported type annotation {ast.unparse(node)}",
                            getattr(node, 'lineno', None))

    def _global_annotation(self, node: ast.expr):
        if isinstance(node, ast.Subscript) and _subscript_base(node) == 'Final':
            return self.value_type(node.slice), True
        return self.value_type(node), False


class _FunctionLowering:
    """Lowers one function body into its entry block."""

    def __init__(self, owner: PythonLowering, function: Function, node: ast.FunctionDef):
        self.owner = owner
        self.module = owner.module
        self.function = function
        self.node = node
        self.builder = IRBuilder(function.append_block('entry'))
        self.env: Dict[str, Value] = {arg.name: arg for arg in function.arguments}
        self.declared_globals: Set[str] = set()
        self._name_counts: Dict[str, int] = {name: 1 for name in self.env}
        self._returned = False

    def lower(self) -> None:
        body = self.node.body
        if body and _is_docstring(body[0]):
            body = body[1:]
        for stmt in body:
            if self._returned:
                raise FrontendError('code after return is unreachable', stmt.lineno)
            self._statement(stmt)
        if not self._returned:
            if not self.function.return_type.is_void:
                raise FrontendError(f"{self.function.name}: missing return",
                                    self.node.lineno)
            self.builder.ret()

    # ───────────────────────────────────────────────────────────────
    #  Statements
    # ───────────────────────────────────────────────────────────────

    def _statement(self, stmt: ast.stmt) -> None:
        if isinstance(stmt, ast.Return):
            self._return(stmt)
        elif isinstance(stmt, ast.Global):
            for name in stmt.names:
                if self.module.get_global(name) is None:
                    raise FrontendError(f"unknown global {name}", stmt.lineno)
                self.declared_globals.add(name)
        elif isinstance(stmt, ast.Assign):
            if len(stmt.targets) != 1 or not isinstance(stmt.targets[0], ast.Name):
                raise FrontendError('only single-name assignment is supported', stmt.lineno)
            self._assign(stmt.targets[0].id, self._value(stmt.value), stmt.lineno)
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            if stmt.value is None:
                raise FrontendError('declaration without a value', stmt.lineno)
            target_type = self.owner.value_type(stmt.annotation)
            value = self._coerce(self._value(stmt.value), target_type, stmt.lineno)
            self._assign(stmt.target.id, value, stmt.lineno)
        elif isinstance(stmt, ast.AugAssign) and isinstance(stmt.target, ast.Name):
            current = self._name(stmt.target)
            value = self._arith(type(stmt.op), current, self._value(stmt.value), stmt.lineno)
            self._assign(stmt.target.id, value, stmt.lineno)
        elif isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Call):
            self._expr(stmt.value)
        elif isinstance(stmt, ast.Pass):
            return
        else:
            raise FrontendError(f"unsupported statement {type(stmt).__name__}", stmt.lineno)

    def _return(self, stmt: ast.Return) -> None:
        return_type = self.function.return_type
        if stmt.value is None:
            if not return_type.is_void:
                raise FrontendError('missing return value', stmt.lineno)
            self.builder.ret()
        else:
            if return_type.is_void:
                raise FrontendError('function annotated -> None returns a value', stmt.lineno)
            self.builder.ret(self._coerce(self._value(stmt.value), return_type, stmt.lineno))
        self._returned = True

    def _assign(self, name: str, value: Value, lineno: int) -> None:
        if name in self.declared_globals:
            variable = self.module.get_global(name)
            if variable.is_constant:
                raise FrontendError(f"cannot assign to constant {name}", lineno)
            self.builder.store(self._coerce(value, variable.value_type, lineno), variable)
            return
        if name in self.env and self.env[name].type != value.type:
            raise FrontendError(
                f"{name} changes type from {self.env[name].type} to {value.type}", lineno)
        if isinstance(value, Instruction) and not value.name:
            value.name = self._fresh(name)
        self.env[name] = value

    def _fresh(self, base: str) -> str:
        count = self._name_counts.get(base, 0)
        self._name_counts[base] = count + 1
        return base if count == 0 else f"{base}.{count}"

    # ───────────────────────────────────────────────────────────────
    #  Expressions
    # ───────────────────────────────────────────────────────────────

    def _value(self, node: ast.expr) -> Value:
        """Lower an expression that must produce a value."""
        value = self._expr(node)
        if value.type.is_void:
            raise FrontendError('void call used as a value', node.lineno)
        return value

    def _expr(self, node: ast.expr) -> Value:
        literal = _literal(node)
        if literal is not None:
            return literal
        if isinstance(node, ast.Name):
            return self._name(node)
        if isinstance(node, ast.UnaryOp):
            return self._unary(node)
        if isinstance(node, ast.BinOp):
            return self._arith(type(node.op), self._value(node.left),
                               self._value(node.right), node.lineno)
        if isinstance(node, ast.Compare):
            return self._compare(node)
        if isinstance(node, ast.IfExp):
            cond = self._truth(self._value(node.test), node.lineno)
            lhs, rhs = self._unify(self._value(node.body), self._value(node.orelse), node.lineno)
            return self.builder.select(cond, lhs, rhs)
        if isinstance(node, ast.Call):
            return self._call(node)
        raise FrontendError(f"unsupported expression {type(node).__name__}", node.lineno)

    def _name(self, node: ast.Name) -> Value:
        name = node.id
        if name in self.env and name not in self.declared_globals:
            return self.env[name]
        variable = self.module.get_global(name)
        if variable is not None:
            return self.builder.load(variable)
        function = self.module.get_function(name)
        if function is not None:
            return function
        raise FrontendError(f"undefined name {name}", node.lineno)

    def _unary(self, node: ast.UnaryOp) -> Value:
        operand = self._value(node.operand)
        if isinstance(node.op, ast.UAdd):
            return operand
        if isinstance(node.op, ast.USub):
            if operand.type.is_floating:
                return self.builder.binop('fsub', ConstantFloat(operand.type, -0.0), operand)
            operand = self._coerce(operand, I64, node.lineno)
            return self.builder.sub(ConstantInt(I64, 0), operand)
        if isinstance(node.op, ast.Not):
            truth = self._truth(operand, node.lineno)
            return self.builder.compare('eq', truth, ConstantInt(I1, 0))
        raise FrontendError(f"unsupported unary operator {type(node.op).__name__}",
                            node.lineno)

    def _arith(self, op: type, lhs: Value, rhs: Value, lineno: int) -> Value:
        if op is ast.Div:
            lhs, rhs = self._coerce(lhs, DOUBLE, lineno), self._coerce(rhs, DOUBLE, lineno)
        else:
            lhs, rhs = self._unify(lhs, rhs, lineno, promote_bool=True)
        table = _FLOAT_BINOPS if lhs.type.is_floating else _INT_BINOPS
        if op not in table:
            raise FrontendError(f"unsupported operator {op.__name__} for {lhs.type}", lineno)
        return self.builder.binop(table[op], lhs, rhs)

    def _compare(self, node: ast.Compare) -> Value:
        if len(node.ops) != 1:
            raise FrontendError('chained comparisons are not supported', node.lineno)
        lhs, rhs = self._unify(self._value(node.left), self._value(node.comparators[0]),
                               node.lineno)
        table = _FLOAT_PREDICATES if lhs.type.is_floating else _INT_PREDICATES
        op = type(node.ops[0])
        if op not in table:
            raise FrontendError(f"unsupported comparison {op.__name__}", node.lineno)
        return self.builder.compare(table[op], lhs, rhs)

    def _truth(self, value: Value, lineno: int) -> Value:
        if value.type == I1:
            return value
        if value.type.is_floating:
            return self.builder.compare('one', value, ConstantFloat(value.type, 0.0))
        if value.type.is_integer:
            return self.builder.compare('ne', value, ConstantInt(value.type, 0))
        raise FrontendError(f"{value.type} has no truth value", lineno)

    # ───────────────────────────────────────────────────────────────
    #  Calls
    # ───────────────────────────────────────────────────────────────

    def _call(self, node: ast.Call) -> Value:
        if node.keywords:
            raise FrontendError('keyword arguments are not supported', node.lineno)
        func = node.func
        if isinstance(func, ast.Attribute) and isinstance(func.value, ast.Name) \
                and func.value.id == 'math':
            return self._math_call(func.attr, node)
        if not isinstance(func, ast.Name):
            raise FrontendError('only calls through names are supported', node.lineno)

        name = func.id
        if name in self.env:
            callee = self.env[name]
        elif self.module.get_function(name) is not None:
            callee = self.module.get_function(name)
        elif name in ('abs', 'min', 'max', 'print', 'float', 'int'):
            return self._builtin_call(name, node)
        else:
            raise FrontendError(f"call to unknown function {name}", node.lineno)

        if not callee.type.is_function_pointer:
            raise FrontendError(f"{name} is not callable", node.lineno)
        signature = callee.type.pointee
        if len(node.args) != len(signature.params):
            raise FrontendError(
                f"{name} takes {len(signature.params)} argument(s), got {len(node.args)}",
                node.lineno)
        args = [self._coerce(self._value(arg), param, node.lineno)
                for arg, param in zip(node.args, signature.params)]
        return self.builder.call(callee, args)

    def _math_call(self, attr: str, node: ast.Call) -> Value:
        if attr not in _MATH_INTRINSICS:
            raise FrontendError(f"math.{attr} is not supported", node.lineno)
        intrinsic, arity = _MATH_INTRINSICS[attr]
        if len(node.args) != arity:
            raise FrontendError(f"math.{attr} takes {arity} argument(s)", node.lineno)
        args = [self._coerce(self._value(arg), DOUBLE, node.lineno) for arg in node.args]
        return self._intrinsic(intrinsic, DOUBLE, args)

    def _builtin_call(self, name: str, node: ast.Call) -> Value:
        args = [self._value(arg) for arg in node.args]
        lineno = node.lineno
        if name in ('min', 'max'):
            if len(args) != 2:
                raise FrontendError(f"{name} takes exactly 2 arguments here", lineno)
            lhs, rhs = self._unify(args[0], args[1], lineno, promote_bool=True)
            if lhs.type.is_floating:
                intrinsic = 'llvm.minnum.f64' if name == 'min' else 'llvm.maxnum.f64'
            else:
                intrinsic = 'llvm.smin.i64' if name == 'min' else 'llvm.smax.i64'
            return self._intrinsic(intrinsic, lhs.type, [lhs, rhs])

        if len(args) != 1:
            raise FrontendError(f"{name} takes exactly 1 argument", lineno)
        value = args[0]
        if name == 'abs':
            if value.type.is_floating:
                return self._intrinsic('llvm.fabs.f64', DOUBLE, [value])
            value = self._coerce(value, I64, lineno)
            return self._intrinsic('llvm.abs.i64', I64, [value, ConstantInt(I1, 0)])
        if name == 'float':
            return self._coerce(value, DOUBLE, lineno)
        if name == 'int':
            if value.type.is_floating:
                return self.builder.cast('fptosi', value, I64)
            return self._coerce(value, I64, lineno)
        # print
        if value.type.is_floating:
            printer = self.module.get_or_declare('print_f64', FunctionType(VOID, (DOUBLE,)))
        else:
            value = self._coerce(value, I64, lineno)
            printer = self.module.get_or_declare('print_i64', FunctionType(VOID, (I64,)))
        return self.builder.call(printer, [value])

    def _intrinsic(self, name: str, return_type: IRType, args: List[Value]) -> Value:
        signature = FunctionType(return_type, tuple(arg.type for arg in args))
        callee = self.module.get_or_declare(name, signature)
        return self.builder.call(callee, args)

    # ───────────────────────────────────────────────────────────────
    #  Conversions
    # ───────────────────────────────────────────────────────────────

    def _unify(self, lhs: Value, rhs: Value, lineno: int, promote_bool: bool = False):
        if lhs.type == rhs.type and not (promote_bool and lhs.type == I1):
            return lhs, rhs
        if lhs.type.is_floating or rhs.type.is_floating:
            return self._coerce(lhs, DOUBLE, lineno), self._coerce(rhs, DOUBLE, lineno)
        return self._coerce(lhs, I64, lineno), self._coerce(rhs, I64, lineno)

    def _coerce(self, value: Value, target: IRType, lineno: int) -> Value:
        if value.type == target:
            return value
        if isinstance(value, Constant):
            return _convert_constant(value, target, lineno)
        if value.type == I1 and target.is_integer:
            return self.builder.cast('zext', value, target)
        if value.type == I1 and target == DOUBLE:
            return self.builder.cast('sitofp', self.builder.cast('zext', value, I64), DOUBLE)
        if value.type.is_integer and target == DOUBLE:
            return self.builder.cast('sitofp', value, DOUBLE)
        raise FrontendError(f"cannot convert {value.type} to {target}", lineno)


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _literal(node: ast.expr) -> Optional[Constant]:
    """Constant for a literal (or negated literal) node, else None."""
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub):
        inner = _literal(node.operand)
        if inner is None or inner.type == I1:
            return None
        if isinstance(inner, ConstantFloat):
            return ConstantFloat(inner.type, -inner.value)
        return ConstantInt(inner.type, -inner.value)
    if not isinstance(node, ast.Constant):
        return None
    value = node.value
    if isinstance(value, bool):
        return ConstantInt(I1, int(value))
    if isinstance(value, int):
        return ConstantInt(I64, value)
    if isinstance(value, float):
        return ConstantFloat(DOUBLE, value)
    return None


def _convert_constant(constant: Constant, target: IRType, lineno: int) -> Constant:
    if constant.type == target:
        return constant
    if constant.type.is_integer and target.is_integer and constant.type.bits < target.bits:
        return ConstantInt(target, constant.value)
    if constant.type.is_integer and target.is_floating:
        return ConstantFloat(target, float(constant.value))
    raise FrontendError(f"cannot convert {constant.type} literal to {target}", lineno)


def _is_docstring(stmt: ast.stmt) -> bool:
    return (isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant)
            and isinstance(stmt.value.value, str))


def _is_none(node: ast.expr) -> bool:
    return isinstance(node, ast.Constant) and node.value is None


def _is_private(name: str) -> bool:
    return name.startswith('_') and not name.startswith('__')


def _subscript_base(node: ast.Subscript) -> Optional[str]:
    base = node.value
    if isinstance(base, ast.Name):
        return base.id
    if isinstance(base, ast.Attribute):
        return base.attr
    return None

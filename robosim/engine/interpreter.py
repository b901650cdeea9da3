"""Resumable interpreter for robot scripts.

Robot scripts are a small Python subset. The tree is validated up front, then walked by
nested generators: every statement yields once before it runs, so the caller can meter
execution in steps, and a host call that needs to wait yields its suspension value. The
Python generator stack *is* the script call stack, which is why a script can park
inside a loop inside a function and later continue from exactly that point.
"""
from __future__ import annotations

import ast
import math
import operator
import re
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Callable, Generator

from .errors import RuntimeFault, ValidationError
from .host_api import HostApi, HostFunction
from .types import ButtonWait, DelayWait

Eval = Generator[object, None, Any]

PROGRAM_END = object()

MAX_REPEAT = 100_000
MAX_EXPONENT = 10_000
MAX_INT_BITS = 100_000

_ALLOWED_NODES = (
    ast.Module,
    ast.Expr,
    ast.Assign,
    ast.AugAssign,
    ast.If,
    ast.While,
    ast.For,
    ast.Break,
    ast.Continue,
    ast.Pass,
    ast.FunctionDef,
    ast.Return,
    ast.Global,
    ast.Raise,
    ast.Assert,
    ast.arguments,
    ast.arg,
    ast.keyword,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Store,
    ast.BinOp,
    ast.UnaryOp,
    ast.BoolOp,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    ast.Subscript,
    ast.Slice,
    ast.List,
    ast.Tuple,
    ast.Dict,
    ast.JoinedStr,
    ast.FormattedValue,
    ast.Attribute,
    ast.operator,
    ast.unaryop,
    ast.boolop,
    ast.cmpop,
)


# Every builtin, operator and method a script can reach finishes in bounded time: no
# single step may build a sequence longer than MAX_REPEAT or an int wider than
# MAX_INT_BITS.

SEQUENCES = (str, bytes, list, tuple)


def _check_size(n: int, what: str) -> None:
    if n > MAX_REPEAT:
        raise ValueError(f"{what} too large")


def _is_int(v: object) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _check_bits(n: int) -> None:
    if n > MAX_INT_BITS:
        raise ValueError("integer result too large")


def _checked_pow(a, b):
    if _is_int(a) and _is_int(b):
        if abs(b) > MAX_EXPONENT:
            raise ValueError("exponent too large")
        if b > 0:
            _check_bits(a.bit_length() * b)
    return operator.pow(a, b)


def _checked_mul(a, b):
    for seq, n in ((a, b), (b, a)):
        if isinstance(seq, SEQUENCES) and isinstance(n, int) and n * len(seq) > MAX_REPEAT:
            raise ValueError("sequence repetition too large")
    if _is_int(a) and _is_int(b):
        _check_bits(a.bit_length() + b.bit_length())
    return operator.mul(a, b)


def _checked_add(a, b):
    if isinstance(a, SEQUENCES) and isinstance(b, SEQUENCES):
        _check_size(len(a) + len(b), "sequence")
    return operator.add(a, b)


def _checked_lshift(a, b):
    if isinstance(b, int) and b > MAX_EXPONENT:
        raise ValueError("shift count too large")
    if _is_int(a) and _is_int(b) and b > 0:
        _check_bits(a.bit_length() + b)
    return operator.lshift(a, b)


def _checked_mod(a, b):
    if isinstance(a, str):
        raise TypeError("%-formatting is not supported, use an f-string")
    return operator.mod(a, b)


_SPEC_NUMBER = re.compile(r"\d+")


def _checked_format(value: object, spec: str) -> str:
    for digits in _SPEC_NUMBER.findall(spec):
        _check_size(int(digits), "format width")
    return format(value, spec)


def _checked_range(*args):
    r = range(*args)
    _check_size(len(r), "range")
    return r


def _checked_sum(iterable, start=0):
    if isinstance(start, SEQUENCES):
        raise TypeError("sum() can only add numbers")
    return sum(iterable, start)


def _checked_method(obj: object, name: str) -> Any:
    """Wrap the str/list methods whose result size depends on an argument."""
    method = getattr(obj, name)
    if name in ("ljust", "rjust", "center", "zfill"):

        def padded(width, *rest):
            if isinstance(width, int):
                _check_size(width, "padding width")
            return method(width, *rest)

        return padded
    if name == "join" and isinstance(obj, str):

        def join(items):
            items = list(items)
            size = len(obj) * len(items)
            size += sum(len(item) for item in items if isinstance(item, str))
            _check_size(size, "joined string")
            return method(items)

        return join
    if name == "replace" and isinstance(obj, str):

        def replace(old, new, *rest):
            if isinstance(old, str) and isinstance(new, str):
                hits = obj.count(old) if old else len(obj) + 1
                _check_size(len(obj) + hits * max(0, len(new) - len(old)), "replaced string")
            return method(old, new, *rest)

        return replace
    if name == "extend" and isinstance(obj, list):

        def extend(items):
            items = list(items)
            _check_size(len(obj) + len(items), "list")
            return method(items)

        return extend
    return method


BINOPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: _checked_add,
    ast.Sub: operator.sub,
    ast.Mult: _checked_mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: _checked_mod,
    ast.Pow: _checked_pow,
    ast.LShift: _checked_lshift,
    ast.RShift: operator.rshift,
    ast.BitOr: operator.or_,
    ast.BitXor: operator.xor,
    ast.BitAnd: operator.and_,
}

UNARYOPS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
    ast.Invert: operator.invert,
}

CMPOPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


class MathModule(SimpleNamespace):
    pass


MATH = MathModule(
    pi=math.pi,
    e=math.e,
    inf=math.inf,
    sqrt=math.sqrt,
    sin=math.sin,
    cos=math.cos,
    tan=math.tan,
    asin=math.asin,
    acos=math.acos,
    atan=math.atan,
    atan2=math.atan2,
    hypot=math.hypot,
    floor=math.floor,
    ceil=math.ceil,
    fabs=math.fabs,
    exp=math.exp,
    log=math.log,
    degrees=math.degrees,
    radians=math.radians,
    isclose=math.isclose,
)

SAFE_BUILTINS: dict[str, object] = {
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
    "len": len,
    "range": _checked_range,
    "list": list,
    "tuple": tuple,
    "dict": dict,
    "sum": _checked_sum,
    "math": MATH,
    "Exception": Exception,
    "ValueError": ValueError,
    "RuntimeError": RuntimeError,
}

SAFE_ATTR_TYPES = (str, list, dict, tuple, int, float, bool)
BLOCKED_ATTRS = frozenset({"format", "format_map", "expandtabs"})


def _reject(message: str, node: ast.AST | None = None) -> ValidationError:
    return ValidationError(message, getattr(node, "lineno", None))


def validate_script(source: str, filename: str = "<script>") -> ast.Module:
    """Parse and check a script without running any of it."""
    try:
        tree = ast.parse(source, filename=filename, mode="exec")
        # Compiling catches what the parser lets through ('return' outside a function,
        # 'break' outside a loop, ...). The code object is discarded.
        compile(tree, filename, "exec", dont_inherit=True)
    except SyntaxError as exc:
        raise ValidationError(exc.msg, exc.lineno) from None

    top_level_defs = {id(n) for n in tree.body if isinstance(n, ast.FunctionDef)}

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise _reject(f"{type(node).__name__} is not supported in robot scripts", node)

        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise _reject(f"name {node.id!r} is not allowed", node)
        elif isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise _reject(f"attribute {node.attr!r} is not allowed", node)
            if not isinstance(node.ctx, ast.Load):
                raise _reject("assigning to attributes is not supported", node)
        elif isinstance(node, ast.FunctionDef):
            if id(node) not in top_level_defs:
                raise _reject("functions must be defined at the top level", node)
            if node.decorator_list:
                raise _reject("decorators are not supported", node)
            if node.name.startswith("__"):
                raise _reject(f"name {node.name!r} is not allowed", node)
            args = node.args
            if args.vararg or args.kwarg or args.kwonlyargs or args.posonlyargs:
                raise _reject("only plain positional parameters are supported", node)
            for a in args.args:
                if a.arg.startswith("__"):
                    raise _reject(f"name {a.arg!r} is not allowed", node)
        elif isinstance(node, ast.Dict) and any(k is None for k in node.keys):
            raise _reject("dict unpacking is not supported", node)
        elif isinstance(node, ast.keyword) and node.arg is None:
            raise _reject("keyword unpacking is not supported", node.value)
        elif isinstance(node, ast.Raise) and (node.exc is None or node.cause is not None):
            raise _reject("raise needs a single value", node)

    return tree


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class _Return(Exception):
    def __init__(self, value: object):
        super().__init__()
        self.value = value


@dataclass
class UserFunction:
    name: str
    node: ast.FunctionDef
    defaults: list[object]
    global_names: frozenset[str]

    def __repr__(self) -> str:
        return f"<function {self.name}>"


@dataclass
class Frame:
    function: UserFunction
    locals: dict[str, object] = field(default_factory=dict)


def _describe(exc: BaseException) -> str:
    text = str(exc)
    name = type(exc).__name__
    return f"{name}: {text}" if text else name


class Interpreter:
    def __init__(
        self,
        source: str,
        host: HostApi,
        max_call_depth: int = 100,
        filename: str = "<script>",
    ):
        self.source = source
        self.tree = validate_script(source, filename)
        self.host = host
        self.max_call_depth = max_call_depth
        self.globals: dict[str, object] = {}
        self.builtins: dict[str, object] = {**SAFE_BUILTINS, **host.functions()}
        self.line: int | None = None
        self.steps = 0
        self._depth = 0
        self._program = self._exec_body(self.tree.body, None)

        self._statements: dict[type, Callable[[Any, Frame | None], Eval]] = {
            ast.Expr: self._stmt_expr,
            ast.Assign: self._stmt_assign,
            ast.AugAssign: self._stmt_augassign,
            ast.If: self._stmt_if,
            ast.While: self._stmt_while,
            ast.For: self._stmt_for,
            ast.FunctionDef: self._stmt_functiondef,
            ast.Return: self._stmt_return,
            ast.Raise: self._stmt_raise,
            ast.Assert: self._stmt_assert,
        }
        self._expressions: dict[type, Callable[[Any, Frame | None], Eval]] = {
            ast.BinOp: self._expr_binop,
            ast.UnaryOp: self._expr_unaryop,
            ast.BoolOp: self._expr_boolop,
            ast.Compare: self._expr_compare,
            ast.IfExp: self._expr_ifexp,
            ast.Call: self._expr_call,
            ast.Subscript: self._expr_subscript,
            ast.Slice: self._expr_slice,
            ast.List: self._expr_list,
            ast.Tuple: self._expr_tuple,
            ast.Dict: self._expr_dict,
            ast.JoinedStr: self._expr_joinedstr,
            ast.FormattedValue: self._expr_formatted,
            ast.Attribute: self._expr_attribute,
        }

    def step(self) -> object:
        """Run one step.

        Returns ``None`` after an ordinary step, a ``DelayWait``/``ButtonWait`` when the
        script asked to wait, or ``PROGRAM_END``. Script faults raise ``RuntimeFault``;
        after that the program cannot be stepped again.
        """
        try:
            out = next(self._program)
        except StopIteration:
            return PROGRAM_END
        except RuntimeFault:
            raise
        except RecursionError:
            raise RuntimeFault("maximum recursion depth exceeded", self.line) from None
        except Exception as exc:
            raise RuntimeFault(_describe(exc), self.line) from exc
        self.steps += 1
        return out

    def close(self) -> None:
        self._program.close()

    # --- statements ---

    def _exec_body(self, body: list[ast.stmt], frame: Frame | None) -> Eval:
        for stmt in body:
            yield from self._exec_stmt(stmt, frame)

    def _exec_stmt(self, node: ast.stmt, frame: Frame | None) -> Eval:
        self.line = node.lineno
        yield None
        kind = type(node)
        if kind is ast.Pass or kind is ast.Global:
            return
        if kind is ast.Break:
            raise _Break()
        if kind is ast.Continue:
            raise _Continue()
        yield from self._statements[kind](node, frame)

    def _stmt_expr(self, node: ast.Expr, frame: Frame | None) -> Eval:
        yield from self._eval(node.value, frame)

    def _stmt_assign(self, node: ast.Assign, frame: Frame | None) -> Eval:
        value = yield from self._eval(node.value, frame)
        for target in node.targets:
            yield from self._assign(target, value, frame)

    def _stmt_augassign(self, node: ast.AugAssign, frame: Frame | None) -> Eval:
        op = BINOPS[type(node.op)]
        value = yield from self._eval(node.value, frame)
        target = node.target
        if isinstance(target, ast.Name):
            current = self._lookup(target.id, frame)
            self._store(target.id, op(current, value), frame)
        else:
            obj = yield from self._eval(target.value, frame)
            key = yield from self._eval(target.slice, frame)
            obj[key] = op(obj[key], value)

    def _stmt_if(self, node: ast.If, frame: Frame | None) -> Eval:
        test = yield from self._eval(node.test, frame)
        if test:
            yield from self._exec_body(node.body, frame)
        else:
            yield from self._exec_body(node.orelse, frame)

    def _stmt_while(self, node: ast.While, frame: Frame | None) -> Eval:
        while True:
            test = yield from self._eval(node.test, frame)
            if not test:
                break
            try:
                yield from self._exec_body(node.body, frame)
            except _Break:
                return
            except _Continue:
                pass
            self.line = node.lineno
        yield from self._exec_body(node.orelse, frame)

    def _stmt_for(self, node: ast.For, frame: Frame | None) -> Eval:
        iterable = yield from self._eval(node.iter, frame)
        for item in iter(iterable):
            yield from self._assign(node.target, item, frame)
            try:
                yield from self._exec_body(node.body, frame)
            except _Break:
                return
            except _Continue:
                pass
            self.line = node.lineno
        yield from self._exec_body(node.orelse, frame)

    def _stmt_functiondef(self, node: ast.FunctionDef, frame: Frame | None) -> Eval:
        defaults = []
        for d in node.args.defaults:
            defaults.append((yield from self._eval(d, frame)))
        global_names = frozenset(
            name
            for stmt in ast.walk(node)
            if isinstance(stmt, ast.Global)
            for name in stmt.names
        )
        self._store(node.name, UserFunction(node.name, node, defaults, global_names), frame)

    def _stmt_return(self, node: ast.Return, frame: Frame | None) -> Eval:
        value = None
        if node.value is not None:
            value = yield from self._eval(node.value, frame)
        raise _Return(value)

    def _stmt_raise(self, node: ast.Raise, frame: Frame | None) -> Eval:
        value = yield from self._eval(node.exc, frame)
        if isinstance(value, type) and issubclass(value, Exception):
            value = value()
        if isinstance(value, Exception):
            raise RuntimeFault(_describe(value), node.lineno)
        raise RuntimeFault(str(value), node.lineno)

    def _stmt_assert(self, node: ast.Assert, frame: Frame | None) -> Eval:
        test = yield from self._eval(node.test, frame)
        if test:
            return
        if node.msg is None:
            raise RuntimeFault("AssertionError", node.lineno)
        msg = yield from self._eval(node.msg, frame)
        raise RuntimeFault(f"AssertionError: {msg}", node.lineno)

    # --- names ---

    def _lookup(self, name: str, frame: Frame | None) -> object:
        if frame is not None and name in frame.locals:
            return frame.locals[name]
        if name in self.globals:
            return self.globals[name]
        if name in self.builtins:
            return self.builtins[name]
        raise NameError(f"name {name!r} is not defined")

    def _store(self, name: str, value: object, frame: Frame | None) -> None:
        if frame is None or name in frame.function.global_names:
            self.globals[name] = value
        else:
            frame.locals[name] = value

    def _assign(self, target: ast.expr, value: object, frame: Frame | None) -> Eval:
        if isinstance(target, ast.Name):
            self._store(target.id, value, frame)
        elif isinstance(target, (ast.Tuple, ast.List)):
            items = list(value)
            if len(items) != len(target.elts):
                raise ValueError(
                    f"expected {len(target.elts)} values to unpack, got {len(items)}"
                )
            for sub, item in zip(target.elts, items):
                yield from self._assign(sub, item, frame)
        elif isinstance(target, ast.Subscript):
            obj = yield from self._eval(target.value, frame)
            key = yield from self._eval(target.slice, frame)
            obj[key] = value
        else:
            raise TypeError(f"cannot assign to {type(target).__name__}")

    # --- expressions ---

    def _eval(self, node: ast.expr, frame: Frame | None) -> Eval:
        kind = type(node)
        if kind is ast.Constant:
            return node.value
        if kind is ast.Name:
            return self._lookup(node.id, frame)
        return (yield from self._expressions[kind](node, frame))

    def _expr_binop(self, node: ast.BinOp, frame: Frame | None) -> Eval:
        left = yield from self._eval(node.left, frame)
        right = yield from self._eval(node.right, frame)
        return BINOPS[type(node.op)](left, right)

    def _expr_unaryop(self, node: ast.UnaryOp, frame: Frame | None) -> Eval:
        operand = yield from self._eval(node.operand, frame)
        return UNARYOPS[type(node.op)](operand)

    def _expr_boolop(self, node: ast.BoolOp, frame: Frame | None) -> Eval:
        is_and = isinstance(node.op, ast.And)
        value: object = None
        for sub in node.values:
            value = yield from self._eval(sub, frame)
            if is_and and not value:
                return value
            if not is_and and value:
                return value
        return value

    def _expr_compare(self, node: ast.Compare, frame: Frame | None) -> Eval:
        left = yield from self._eval(node.left, frame)
        for op, comparator in zip(node.ops, node.comparators):
            right = yield from self._eval(comparator, frame)
            if not CMPOPS[type(op)](left, right):
                return False
            left = right
        return True

    def _expr_ifexp(self, node: ast.IfExp, frame: Frame | None) -> Eval:
        test = yield from self._eval(node.test, frame)
        if test:
            return (yield from self._eval(node.body, frame))
        return (yield from self._eval(node.orelse, frame))

    def _expr_call(self, node: ast.Call, frame: Frame | None) -> Eval:
        func = yield from self._eval(node.func, frame)
        args = []
        for a in node.args:
            args.append((yield from self._eval(a, frame)))
        kwargs = {}
        for kw in node.keywords:
            kwargs[kw.arg] = yield from self._eval(kw.value, frame)

        if isinstance(func, HostFunction):
            result = self.host.call(func.name, tuple(args), kwargs)
            if isinstance(result, (DelayWait, ButtonWait)):
                yield result
                return None
            return result
        if isinstance(func, UserFunction):
            return (yield from self._call_user(func, args, kwargs, node))
        if callable(func):
            return func(*args, **kwargs)
        raise TypeError(f"{type(func).__name__!r} object is not callable")

    def _call_user(
        self,
        func: UserFunction,
        args: list[object],
        kwargs: dict[str, object],
        node: ast.Call,
    ) -> Eval:
        if self._depth >= self.max_call_depth:
            raise RuntimeFault("maximum call depth exceeded", node.lineno)

        frame = Frame(function=func, locals=self._bind(func, args, kwargs))
        caller_line = self.line
        self._depth += 1
        value = None
        try:
            yield None
            yield from self._exec_body(func.node.body, frame)
        except _Return as ret:
            value = ret.value
        finally:
            self._depth -= 1
        # Faults keep the callee's line; only a normal return goes back to the caller's.
        self.line = caller_line
        return value

    @staticmethod
    def _bind(func: UserFunction, args: list[object], kwargs: dict[str, object]) -> dict[str, object]:
        names = [a.arg for a in func.node.args.args]
        if len(args) > len(names):
            raise TypeError(
                f"{func.name}() takes {len(names)} positional arguments but {len(args)} were given"
            )
        bound = dict(zip(names, args))
        for key, value in kwargs.items():
            if key not in names:
                raise TypeError(f"{func.name}() got an unexpected keyword argument {key!r}")
            if key in bound:
                raise TypeError(f"{func.name}() got multiple values for argument {key!r}")
            bound[key] = value

        first_default = len(names) - len(func.defaults)
        for i, name in enumerate(names):
            if name in bound:
                continue
            if i >= first_default:
                bound[name] = func.defaults[i - first_default]
            else:
                raise TypeError(f"{func.name}() missing required argument {name!r}")
        return bound

    def _expr_subscript(self, node: ast.Subscript, frame: Frame | None) -> Eval:
        obj = yield from self._eval(node.value, frame)
        key = yield from self._eval(node.slice, frame)
        return obj[key]

    def _expr_slice(self, node: ast.Slice, frame: Frame | None) -> Eval:
        lower = upper = step = None
        if node.lower is not None:
            lower = yield from self._eval(node.lower, frame)
        if node.upper is not None:
            upper = yield from self._eval(node.upper, frame)
        if node.step is not None:
            step = yield from self._eval(node.step, frame)
        return slice(lower, upper, step)

    def _expr_list(self, node: ast.List, frame: Frame | None) -> Eval:
        items = []
        for e in node.elts:
            items.append((yield from self._eval(e, frame)))
        return items

    def _expr_tuple(self, node: ast.Tuple, frame: Frame | None) -> Eval:
        items = yield from self._expr_list(node, frame)
        return tuple(items)

    def _expr_dict(self, node: ast.Dict, frame: Frame | None) -> Eval:
        out = {}
        for k, v in zip(node.keys, node.values):
            key = yield from self._eval(k, frame)
            out[key] = yield from self._eval(v, frame)
        return out

    def _expr_joinedstr(self, node: ast.JoinedStr, frame: Frame | None) -> Eval:
        parts = []
        for v in node.values:
            parts.append(str((yield from self._eval(v, frame))))
        return "".join(parts)

    def _expr_formatted(self, node: ast.FormattedValue, frame: Frame | None) -> Eval:
        value = yield from self._eval(node.value, frame)
        if node.conversion == ord("r"):
            value = repr(value)
        elif node.conversion == ord("s"):
            value = str(value)
        elif node.conversion == ord("a"):
            value = ascii(value)
        spec = ""
        if node.format_spec is not None:
            spec = yield from self._eval(node.format_spec, frame)
        return _checked_format(value, spec)

    def _expr_attribute(self, node: ast.Attribute, frame: Frame | None) -> Eval:
        obj = yield from self._eval(node.value, frame)
        if node.attr in BLOCKED_ATTRS or not isinstance(obj, (MathModule, *SAFE_ATTR_TYPES)):
            raise AttributeError(f"{type(obj).__name__!r} object has no attribute {node.attr!r}")
        return _checked_method(obj, node.attr)

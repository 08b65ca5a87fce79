"""Formulas: constants, safe string expressions, and Python callables.

A formula knows which names it depends on and evaluates against an explicit
mapping of already-resolved values. String expressions are parsed once with
`ast`; only arithmetic, comparisons, conditional expressions and a fixed set
of functions are accepted, so evaluation never reaches Python builtins.

Example expressions:
    "age_init + cycle"
    "lookup('life_table', age, 'p_death')"
    "combine_probs(p_death_all, p_death_disease)"
    "cost_drug if cycle < 5 else 0"
"""
from __future__ import annotations

import ast
import math
from typing import Any, Callable, Mapping, Sequence

from markov_cea.exceptions import InvalidExpression, KeyNotFound, ModelDefinitionError, UnknownParameter

CYCLE = "cycle"


def combine_probs(*probs: float) -> float:
    """P(A or B or ...) for independent events: 1 - prod(1 - p)."""
    survival = 1.0
    for p in probs:
        survival *= 1.0 - p
    return 1.0 - survival


def rate_to_prob(rate: float, per: float = 1.0, to: float = 1.0) -> float:
    """Convert an event rate per `per` years into a probability over `to` years."""
    return 1.0 - math.exp(-rate / per * to)


def rescale_prob(p: float, from_: float = 1.0, to: float = 1.0) -> float:
    """Rescale a probability defined over `from_` years to `to` years."""
    if p >= 1.0:
        return 1.0
    return 1.0 - (1.0 - p) ** (to / from_)


def _as_float(func: Callable[..., Any]) -> Callable[..., float]:
    def wrapped(*args):
        return float(func(*args))
    wrapped.__name__ = func.__name__
    return wrapped


# Integer-valued helpers return floats so `**` never runs in unbounded integer arithmetic
_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "exp": math.exp,
    "log": math.log,
    "sqrt": math.sqrt,
    "floor": _as_float(math.floor),
    "ceil": _as_float(math.ceil),
    "abs": abs,
    "min": min,
    "max": max,
    "round": _as_float(round),
    "combine_probs": combine_probs,
    "rate_to_prob": rate_to_prob,
    "rescale_prob": rescale_prob,
}

_LOOKUP = "lookup"

_ALLOWED_NODES = (
    ast.Expression, ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp,
    ast.Call, ast.Name, ast.Load, ast.Constant,
    ast.Add, ast.Sub, ast.Mult, ast.Div, ast.Pow, ast.Mod, ast.FloorDiv,
    ast.UAdd, ast.USub, ast.Not, ast.And, ast.Or,
    ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
)


class Formula:
    """Base class: `dependencies` and `evaluate(values, tables)`."""

    dependencies: frozenset[str] = frozenset()

    def evaluate(self, values: Mapping[str, Any], tables: Mapping[str, Any] | None = None) -> float:
        raise NotImplementedError


class Constant(Formula):
    def __init__(self, value: float):
        self.value = float(value)

    def evaluate(self, values, tables=None) -> float:
        return self.value

    def __repr__(self) -> str:
        return f"Constant({self.value!r})"


class Expression(Formula):
    """A validated string expression over named values."""

    def __init__(self, source: str):
        self.source = source.strip()
        if not self.source:
            raise InvalidExpression("Empty expression")
        try:
            tree = ast.parse(self.source, mode="eval")
        except SyntaxError as e:
            raise InvalidExpression(f"Cannot parse expression '{source}': {e.msg}") from None
        self.dependencies = frozenset(_validate(tree, self.source))
        tree = ast.fix_missing_locations(_FloatLiterals().visit(tree))
        self._code = compile(tree, f"<formula {self.source}>", "eval")

    def evaluate(self, values, tables=None) -> float:
        namespace: dict[str, Any] = {"__builtins__": {}}
        namespace.update(_FUNCTIONS)
        namespace[_LOOKUP] = _bind_lookup(tables or {})
        for name in self.dependencies:
            try:
                value = values[name]
            except KeyError:
                raise UnknownParameter(
                    f"Expression '{self.source}' references undefined name '{name}'"
                ) from None
            namespace[name] = float(value) if type(value) is int else value
        try:
            result = eval(self._code, namespace)
            return float(result)
        except ModelDefinitionError:
            raise
        except (ArithmeticError, TypeError, ValueError) as e:
            raise InvalidExpression(f"Cannot evaluate '{self.source}': {e}") from None

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"


class FunctionFormula(Formula):
    """A Python callable taking the resolved-values mapping.

    `depends_on` must list every name the callable reads so evaluation order
    can be derived from the dependency graph.
    """

    def __init__(self, func: Callable[[Mapping[str, Any]], float], depends_on: Sequence[str] = ()):
        self.func = func
        self.dependencies = frozenset(depends_on)

    def evaluate(self, values, tables=None) -> float:
        visible = {name: values[name] for name in self.dependencies if name in values}
        missing = self.dependencies - visible.keys()
        if missing:
            raise UnknownParameter(f"Undefined dependencies: {sorted(missing)}")
        name = getattr(self.func, "__name__", self.func)
        try:
            return float(self.func(visible))
        except ModelDefinitionError:
            raise
        except KeyError as e:
            raise UnknownParameter(f"Formula {name!r} read undeclared name {e}") from None
        except (ArithmeticError, ValueError) as e:
            raise InvalidExpression(f"Formula {name!r} failed: {e}") from None

    def __repr__(self) -> str:
        return f"FunctionFormula({getattr(self.func, '__name__', self.func)!r}, {sorted(self.dependencies)})"


def as_formula(value: Any) -> Formula:
    """Coerce a number, expression string, callable or Formula into a Formula."""
    if isinstance(value, Formula):
        return value
    if isinstance(value, bool):
        raise InvalidExpression(f"Boolean {value!r} is not a valid formula")
    if isinstance(value, (int, float)):
        return Constant(value)
    if isinstance(value, str):
        try:
            return Constant(float(value))
        except ValueError:
            return Expression(value)
    if callable(value):
        return FunctionFormula(value, getattr(value, "depends_on", ()))
    raise InvalidExpression(f"Unsupported formula type: {type(value).__name__}")


def depends_on(*names: str):
    """Decorator declaring the names a formula callable reads."""
    def decorate(func):
        func.depends_on = tuple(names)
        return func
    return decorate


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _validate(tree: ast.AST, source: str) -> set[str]:
    """Reject forbidden syntax and return the free variable names."""
    names: set[str] = set()
    # Strings only name a table or column inside lookup(...)
    lookup_args = {
        id(arg)
        for node in ast.walk(tree)
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id == _LOOKUP
        for arg in node.args
    }
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise InvalidExpression(
                f"Forbidden syntax {type(node).__name__} in expression '{source}'"
            )
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or (
                node.func.id not in _FUNCTIONS and node.func.id != _LOOKUP
            ):
                raise InvalidExpression(f"Unknown function in expression '{source}'")
            if node.keywords:
                raise InvalidExpression(f"Keyword arguments not supported in '{source}'")
        elif isinstance(node, ast.Constant):
            if isinstance(node.value, str) and id(node) not in lookup_args:
                raise InvalidExpression(
                    f"String {node.value!r} is only allowed as a lookup argument in '{source}'"
                )
            if not isinstance(node.value, (int, float, str)):
                raise InvalidExpression(f"Unsupported constant {node.value!r} in '{source}'")

    function_names = {
        node.func.id for node in ast.walk(tree) if isinstance(node, ast.Call)
    }
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and node.id not in function_names:
            names.add(node.id)
    return names


class _FloatLiterals(ast.NodeTransformer):
    """Rewrite integer literals as floats; huge powers then overflow instead of growing."""

    def visit_Constant(self, node: ast.Constant) -> ast.Constant:
        if type(node.value) is int:
            try:
                value = float(node.value)
            except OverflowError:
                raise InvalidExpression(f"Integer literal {node.value} is too large") from None
            return ast.copy_location(ast.Constant(value), node)
        return node


def _bind_lookup(tables: Mapping[str, Any]) -> Callable[[str, Any, str], float]:
    def _lookup(table_name: str, key: Any, column: str) -> float:
        table = tables.get(table_name)
        if table is None:
            raise KeyNotFound(f"Lookup table '{table_name}' is not loaded")
        return table.lookup(key, column)
    return _lookup

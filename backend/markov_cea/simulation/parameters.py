"""Parameter sets: named, cycle-dependent, interdependent scalar formulas.

Parameters form a dependency graph. The graph is checked for cycles and
sorted topologically once, when the set is built; `resolve(cycle)` then
evaluates every parameter in that order and returns an immutable snapshot.
Nothing carries over between cycles except the explicit cycle index.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterator, Mapping

from markov_cea.exceptions import CyclicParameterDependency, UnknownParameter
from markov_cea.simulation.formulas import CYCLE, Constant, Formula, as_formula
from markov_cea.simulation.lookup import LookupTable


class ResolvedParameters(Mapping[str, float]):
    """Read-only parameter values for one cycle, plus the lookup tables."""

    def __init__(self, cycle: int, values: Mapping[str, float], tables: Mapping[str, LookupTable]):
        self.cycle = cycle
        self._values = MappingProxyType(dict(values))
        self.tables = tables

    def __getitem__(self, key: str) -> float:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def evaluate(self, formula: Formula) -> float:
        return formula.evaluate(self._values, self.tables)

    def __repr__(self) -> str:
        return f"ResolvedParameters(cycle={self.cycle}, values={dict(self._values)})"


class ParameterSet:
    """An ordered, validated collection of parameter formulas."""

    def __init__(
        self,
        parameters: Mapping[str, Any] | None = None,
        tables: Mapping[str, LookupTable] | None = None,
    ):
        self._formulas: dict[str, Formula] = {}
        for name, value in (parameters or {}).items():
            if name == CYCLE:
                raise UnknownParameter(f"'{CYCLE}' is reserved for the cycle index")
            self._formulas[name] = as_formula(value)
        self.tables: Mapping[str, LookupTable] = MappingProxyType(dict(tables or {}))
        self._order = _topological_order(self._formulas)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._formulas)

    @property
    def evaluation_order(self) -> tuple[str, ...]:
        return self._order

    def formula(self, name: str) -> Formula:
        try:
            return self._formulas[name]
        except KeyError:
            raise UnknownParameter(f"Parameter '{name}' is not defined") from None

    def resolve(self, cycle_index: int) -> ResolvedParameters:
        """Evaluate every parameter for `cycle_index` in dependency order."""
        values: dict[str, float] = {CYCLE: float(cycle_index)}
        for name in self._order:
            values[name] = self._formulas[name].evaluate(values, self.tables)
        return ResolvedParameters(cycle_index, values, self.tables)

    def with_overrides(self, overrides: Mapping[str, float]) -> "ParameterSet":
        """Return a copy where the named parameters become constants."""
        unknown = [name for name in overrides if name not in self._formulas]
        if unknown:
            raise UnknownParameter(f"Cannot override undefined parameters: {sorted(unknown)}")
        formulas: dict[str, Formula] = dict(self._formulas)
        for name, value in overrides.items():
            formulas[name] = Constant(value)
        return ParameterSet(formulas, self.tables)

    def with_tables(self, tables: Mapping[str, LookupTable]) -> "ParameterSet":
        merged = dict(self.tables)
        merged.update(tables)
        return ParameterSet(self._formulas, merged)

    def __contains__(self, name: object) -> bool:
        return name in self._formulas

    def __repr__(self) -> str:
        return f"ParameterSet({list(self._formulas)})"


def _topological_order(formulas: Mapping[str, Formula]) -> tuple[str, ...]:
    """Depth-first topological sort; raises on unknown names or cycles.

    Definition order is kept wherever the graph allows it.
    """
    for name, formula in formulas.items():
        unknown = sorted(d for d in formula.dependencies if d != CYCLE and d not in formulas)
        if unknown:
            raise UnknownParameter(f"Parameter '{name}' references undefined names {unknown}")

    order: list[str] = []
    done: set[str] = set()
    in_progress: list[str] = []

    def visit(name: str) -> None:
        if name in done:
            return
        if name in in_progress:
            start = in_progress.index(name)
            raise CyclicParameterDependency(in_progress[start:] + [name])
        in_progress.append(name)
        for dep in sorted(formulas[name].dependencies):
            if dep != CYCLE:
                visit(dep)
        in_progress.pop()
        done.add(name)
        order.append(name)

    for name in formulas:
        visit(name)
    return tuple(order)

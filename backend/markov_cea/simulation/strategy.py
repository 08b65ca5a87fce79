"""States and strategies: per-state values bound to a transition matrix."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from markov_cea.exceptions import StateNotInMatrix, UnknownParameter
from markov_cea.simulation.formulas import CYCLE, Formula, as_formula
from markov_cea.simulation.parameters import ParameterSet, ResolvedParameters
from markov_cea.simulation.transitions import TransitionMatrixSpec


@dataclass(frozen=True)
class State:
    """A health state with per-cycle cost and effect (utility) formulas."""
    name: str
    cost: Formula = field(default_factory=lambda: as_formula(0.0))
    effect: Formula = field(default_factory=lambda: as_formula(0.0))

    @classmethod
    def define(cls, name: str, cost: Any = 0.0, effect: Any = 0.0) -> "State":
        return cls(name=name, cost=as_formula(cost), effect=as_formula(effect))

    @property
    def dependencies(self) -> frozenset[str]:
        return self.cost.dependencies | self.effect.dependencies

    def evaluate(self, params: ResolvedParameters) -> tuple[float, float]:
        return params.evaluate(self.cost), params.evaluate(self.effect)


class Strategy:
    """One treatment policy: a transition matrix plus a State per matrix state."""

    def __init__(self, name: str, transition: TransitionMatrixSpec, states: Mapping[str, State] | list[State]):
        self.name = name
        self.transition = transition
        if not isinstance(states, Mapping):
            states = {s.name: s for s in states}
        for key, state in states.items():
            if key != state.name:
                raise ValueError(f"State registered as '{key}' is named '{state.name}'")

        missing_rows = [s for s in states if s not in transition.states]
        if missing_rows:
            raise StateNotInMatrix(
                f"Strategy '{name}': states {missing_rows} have no row/column in the transition matrix"
            )
        undefined = [s for s in transition.states if s not in states]
        if undefined:
            raise StateNotInMatrix(
                f"Strategy '{name}': matrix states {undefined} have no state definition"
            )
        # Keep matrix order so counts and matrix rows line up
        self.states: Mapping[str, State] = MappingProxyType(
            {s: states[s] for s in transition.states}
        )

    @property
    def state_names(self) -> tuple[str, ...]:
        return self.transition.states

    @property
    def dependencies(self) -> frozenset[str]:
        deps = set(self.transition.dependencies)
        for state in self.states.values():
            deps |= state.dependencies
        return frozenset(deps)

    def check_parameters(self, parameters: ParameterSet) -> None:
        """Fail early if any formula references an undefined parameter."""
        unknown = sorted(d for d in self.dependencies if d != CYCLE and d not in parameters)
        if unknown:
            raise UnknownParameter(
                f"Strategy '{self.name}' references undefined parameters {unknown}"
            )

    def __repr__(self) -> str:
        return f"Strategy(name={self.name!r}, states={list(self.state_names)})"

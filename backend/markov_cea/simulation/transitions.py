"""Transition matrices: declarative rows resolved once per cycle.

Each row holds explicit probability formulas plus at most one complement
slot (`C`) that receives whatever probability the row still needs to sum
to 1. Resolution validates row sums and probability bounds eagerly.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from markov_cea.exceptions import (
    InvalidComplementCount,
    InvalidProbability,
    RowSumMismatch,
    StateNotInMatrix,
)
from markov_cea.simulation.formulas import Formula, as_formula
from markov_cea.simulation.parameters import ResolvedParameters

COMPLEMENT = "C"
EPSILON = 1e-9


class _Complement:
    """Marker for the fill-remainder slot of a row."""

    def __repr__(self) -> str:
        return COMPLEMENT


C = _Complement()


class TransitionMatrixSpec:
    """Square matrix of formulas indexed by state name."""

    def __init__(self, states: Sequence[str], rows: Sequence[Sequence[Any]]):
        self.states: tuple[str, ...] = tuple(states)
        if len(set(self.states)) != len(self.states):
            raise ValueError(f"Duplicate state names in transition matrix: {self.states}")
        if len(rows) != len(self.states):
            raise ValueError(
                f"Transition matrix has {len(rows)} rows for {len(self.states)} states"
            )
        self._rows: list[tuple[Formula | None, ...]] = []
        self._complement_at: list[int | None] = []
        for state, row in zip(self.states, rows):
            if len(row) != len(self.states):
                raise ValueError(
                    f"Row '{state}' has {len(row)} entries for {len(self.states)} states"
                )
            marks = [j for j, entry in enumerate(row) if _is_complement(entry)]
            if len(marks) > 1:
                raise InvalidComplementCount(
                    f"Row '{state}' has {len(marks)} complement entries; at most one is allowed"
                )
            self._complement_at.append(marks[0] if marks else None)
            self._rows.append(tuple(
                None if _is_complement(entry) else as_formula(entry) for entry in row
            ))

    @classmethod
    def from_mapping(cls, states: Sequence[str], transitions: dict[str, dict[str, Any]]) -> "TransitionMatrixSpec":
        """Build from {from_state: {to_state: formula}}; absent entries are 0."""
        for origin, targets in transitions.items():
            for name in [origin, *targets]:
                if name not in states:
                    raise StateNotInMatrix(f"State '{name}' is not one of {list(states)}")
        rows = [
            [transitions.get(origin, {}).get(target, 0.0) for target in states]
            for origin in states
        ]
        return cls(states, rows)

    @property
    def dependencies(self) -> frozenset[str]:
        deps: set[str] = set()
        for row in self._rows:
            for entry in row:
                if entry is not None:
                    deps |= entry.dependencies
        return frozenset(deps)

    def index(self, state: str) -> int:
        try:
            return self.states.index(state)
        except ValueError:
            raise StateNotInMatrix(f"State '{state}' has no row in the transition matrix") from None

    def resolve(self, params: ResolvedParameters) -> "TransitionMatrix":
        return resolve(self, params)


@dataclass(frozen=True, eq=False)
class TransitionMatrix:
    """A resolved, validated row-stochastic matrix."""
    states: tuple[str, ...]
    values: np.ndarray

    def row(self, state: str) -> dict[str, float]:
        i = self.states.index(state)
        return dict(zip(self.states, self.values[i].tolist()))

    def probability(self, origin: str, target: str) -> float:
        return float(self.values[self.states.index(origin), self.states.index(target)])


def resolve(spec: TransitionMatrixSpec, params: ResolvedParameters) -> TransitionMatrix:
    """Evaluate every entry for this cycle and fill complement slots."""
    n = len(spec.states)
    values = np.zeros((n, n), dtype=float)
    for i, (state, row) in enumerate(zip(spec.states, spec._rows)):
        for j, entry in enumerate(row):
            if entry is not None:
                values[i, j] = params.evaluate(entry)

        explicit_sum = float(values[i].sum())
        complement_at = spec._complement_at[i]
        if complement_at is not None:
            values[i, complement_at] = 1.0 - explicit_sum

        for j in range(n):
            p = values[i, j]
            if not np.isfinite(p) or p < -EPSILON or p > 1.0 + EPSILON:
                kind = "complement" if j == complement_at else "probability"
                raise InvalidProbability(
                    f"Transition {state} -> {spec.states[j]} resolved to {kind} {p:.6g} "
                    f"at cycle {params.cycle}; must lie in [0, 1]"
                )
        # Clamp rounding noise just outside the bounds
        np.clip(values[i], 0.0, 1.0, out=values[i])

        if complement_at is None and abs(float(values[i].sum()) - 1.0) > EPSILON:
            raise RowSumMismatch(
                f"Row '{state}' sums to {values[i].sum():.12g} at cycle {params.cycle} "
                "and has no complement entry"
            )
    values.setflags(write=False)
    return TransitionMatrix(spec.states, values)


def _is_complement(entry: Any) -> bool:
    if entry is C:
        return True
    return isinstance(entry, str) and entry.strip() == COMPLEMENT

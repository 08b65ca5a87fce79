"""Cohort simulator: propagates state occupancy and accumulates values.

For each cycle t in 0..C-1:
  1. resolve parameters for t
  2. resolve the transition matrix for t
  3. evaluate each state's cost and effect, discount them
  4. weight by state counts and add to the cycle totals
  5. next_counts = counts @ matrix

With method "end" the cycle-t values are weighted by the counts at the start
of cycle t and cycle 0 is undiscounted. With method "beginning" they are
weighted by the counts after the transition and discounting starts at the
first cycle.
"""
from __future__ import annotations

import logging
from typing import Mapping

import numpy as np

from markov_cea.exceptions import InvalidInitialPopulation, StateNotInMatrix
from markov_cea.models.results import CycleValues, SimulationResult
from markov_cea.models.simulation import SimulationConfig, TransitionMethod
from markov_cea.simulation.discounting import discount
from markov_cea.simulation.parameters import ParameterSet
from markov_cea.simulation.strategy import Strategy

logger = logging.getLogger(__name__)


def initial_vector(strategy: Strategy, init: Mapping[str, float]) -> np.ndarray:
    """Order an initial population by the strategy's states; absent states are 0."""
    unknown = [name for name in init if name not in strategy.state_names]
    if unknown:
        raise StateNotInMatrix(
            f"Initial population names states {unknown} not in strategy '{strategy.name}'"
        )
    vector = np.array([float(init.get(s, 0.0)) for s in strategy.state_names], dtype=float)
    negative = [s for s, v in zip(strategy.state_names, vector) if not v >= 0.0]
    if negative:
        raise InvalidInitialPopulation(f"Initial population is negative (or NaN) for states {negative}")
    return vector


def simulate(
    strategy: Strategy,
    parameters: ParameterSet,
    init: Mapping[str, float],
    config: SimulationConfig,
) -> SimulationResult:
    """Run one strategy for `config.cycles` cycles."""
    strategy.check_parameters(parameters)
    current = initial_vector(strategy, init)
    states = strategy.state_names
    first_cycle = config.method == TransitionMethod.beginning

    counts: list[dict[str, float]] = [dict(zip(states, current.tolist()))]
    values: list[CycleValues] = []
    total_cost = 0.0
    total_effect = 0.0

    for t in range(config.cycles):
        params = parameters.resolve(t)
        matrix = strategy.transition.resolve(params)

        costs = np.empty(len(states))
        effects = np.empty(len(states))
        for i, state in enumerate(strategy.states.values()):
            raw_cost, raw_effect = state.evaluate(params)
            costs[i] = discount(raw_cost, config.discount_rate, t, first_cycle)
            effects[i] = discount(raw_effect, config.effect_rate, t, first_cycle)

        following = current @ matrix.values
        weights = following if first_cycle else current

        cycle_cost = float(weights @ costs)
        cycle_effect = float(weights @ effects)
        values.append(CycleValues(cycle=t, cost=cycle_cost, effect=cycle_effect))
        total_cost += cycle_cost
        total_effect += cycle_effect

        counts.append(dict(zip(states, following.tolist())))
        current = following

    logger.debug(
        "Strategy %s: %d cycles, cost=%.4f, effect=%.4f",
        strategy.name, config.cycles, total_cost, total_effect,
    )
    return SimulationResult(
        strategy=strategy.name,
        method=config.method,
        states=states,
        counts=tuple(counts),
        values=tuple(values),
        total_cost=total_cost,
        total_effect=total_effect,
    )

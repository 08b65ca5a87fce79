"""Model builder: turns declarative definitions into engine objects.

All validation (expressions, dependency cycles, complement counts, state
names, distribution parameters) happens here, before any cycle runs.
"""
from __future__ import annotations

from markov_cea.data.registry import TableRegistry
from markov_cea.models.definition import DistributionDefinition, ModelDefinition, StrategyDefinition
from markov_cea.simulation.parameters import ParameterSet
from markov_cea.simulation.samplers import Sampler, make_sampler
from markov_cea.simulation.strategy import State, Strategy
from markov_cea.simulation.transitions import TransitionMatrixSpec


def build_parameters(definition: ModelDefinition) -> ParameterSet:
    tables = TableRegistry.get().select(definition.tables)
    return ParameterSet(definition.parameters, tables=tables)


def build_strategy(name: str, definition: StrategyDefinition) -> Strategy:
    matrix = TransitionMatrixSpec(definition.transition.states, definition.transition.rows)
    states = [
        State.define(state_name, cost=values.cost, effect=values.effect)
        for state_name, values in definition.states.items()
    ]
    return Strategy(name, matrix, states)


def build_strategies(definition: ModelDefinition) -> list[Strategy]:
    if not definition.strategies:
        raise ValueError("Model defines no strategies")
    return [build_strategy(name, s) for name, s in definition.strategies.items()]


def build_samplers(distributions: dict[str, DistributionDefinition]) -> dict[str, Sampler]:
    return {
        name: make_sampler(dist.family, **dist.sampler_kwargs())
        for name, dist in distributions.items()
    }

"""Simulation orchestration service.

Runs every strategy of a model with the same parameters and initial cohort,
then compares them:
- efficiency frontier (strongly and extendedly dominated strategies removed)
- incremental cost/effect and ICER of each frontier strategy vs the previous one
- net monetary benefit (effect * wtp - cost) at each configured threshold
"""
from __future__ import annotations

import logging
from typing import Mapping, Sequence

import pandas as pd

from markov_cea.models.definition import ModelDefinition
from markov_cea.models.results import ModelRunResult, SimulationResult, StrategyComparison
from markov_cea.models.simulation import SimulationConfig
from markov_cea.services.model_builder import build_parameters, build_strategies
from markov_cea.simulation.cohort import simulate
from markov_cea.simulation.parameters import ParameterSet
from markov_cea.simulation.psa import EFFECT_TOLERANCE
from markov_cea.simulation.strategy import Strategy

logger = logging.getLogger(__name__)


def run_model(
    strategies: Sequence[Strategy],
    parameters: ParameterSet,
    init: Mapping[str, float],
    config: SimulationConfig,
) -> ModelRunResult:
    """Simulate each strategy and attach the cost-effectiveness comparison."""
    names = [s.name for s in strategies]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate strategy names: {names}")
    # Validate everything before the first cycle runs
    for strategy in strategies:
        strategy.check_parameters(parameters)

    results = {s.name: simulate(s, parameters, init, config) for s in strategies}
    frontier = efficiency_frontier(results.values())
    comparison = compare_strategies(results, frontier, config.wtp_thresholds)
    logger.info(
        "Model run: %d strategies, %d cycles, frontier %s",
        len(results), config.cycles, " -> ".join(frontier),
    )
    return ModelRunResult(results=results, comparison=comparison, frontier=frontier, config=config)


def run_model_definition(definition: ModelDefinition) -> ModelRunResult:
    parameters = build_parameters(definition)
    strategies = build_strategies(definition)
    return run_model(strategies, parameters, definition.init, definition.config)


def efficiency_frontier(results) -> list[str]:
    """Names of non-dominated strategies, ordered by increasing cost."""
    ordered = sorted(results, key=lambda r: (r.total_cost, -r.total_effect))
    frontier: list[SimulationResult] = []
    for result in ordered:
        # Strong dominance: costs at least as much for no more effect
        if not frontier or result.total_effect > frontier[-1].total_effect:
            frontier.append(result)

    # Extended dominance: ICERs along the frontier must be increasing
    changed = True
    while changed and len(frontier) > 2:
        changed = False
        icers = [_icer(frontier[i], frontier[i - 1]) for i in range(1, len(frontier))]
        for i in range(len(icers) - 1):
            if icers[i] > icers[i + 1]:
                del frontier[i + 1]
                changed = True
                break
    return [r.strategy for r in frontier]


def compare_strategies(
    results: Mapping[str, SimulationResult],
    frontier: Sequence[str],
    wtp_thresholds: Sequence[float] = (),
) -> list[StrategyComparison]:
    rows: list[StrategyComparison] = []
    ordered = sorted(results.values(), key=lambda r: (r.total_cost, -r.total_effect))
    for result in ordered:
        on_frontier = result.strategy in frontier
        reference = _reference_for(result, frontier, results)
        row = StrategyComparison(
            strategy=result.strategy,
            total_cost=result.total_cost,
            total_effect=result.total_effect,
            on_frontier=on_frontier,
            net_monetary_benefit={
                wtp_key(wtp): result.total_effect * wtp - result.total_cost for wtp in wtp_thresholds
            },
        )
        if reference is not None:
            ref = results[reference]
            row.reference = reference
            row.incremental_cost = result.total_cost - ref.total_cost
            row.incremental_effect = result.total_effect - ref.total_effect
            if on_frontier and abs(row.incremental_effect) >= EFFECT_TOLERANCE:
                row.icer = row.incremental_cost / row.incremental_effect
        rows.append(row)
    return rows


def concat_frames(results: Mapping[str, SimulationResult]) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Concatenate counts and values across runs keyed by run id.

    Used when one strategy is run once per initial-population draw.
    """
    if not results:
        return pd.DataFrame(), pd.DataFrame()
    counts = pd.concat([r.counts_frame(run_id) for run_id, r in results.items()], ignore_index=True)
    values = pd.concat([r.values_frame(run_id) for run_id, r in results.items()], ignore_index=True)
    return counts, values


def _reference_for(
    result: SimulationResult,
    frontier: Sequence[str],
    results: Mapping[str, SimulationResult],
) -> str | None:
    """Previous frontier strategy for frontier members, cheapest frontier one otherwise."""
    if result.strategy in frontier:
        i = frontier.index(result.strategy)
        return frontier[i - 1] if i > 0 else None
    cheaper = [name for name in frontier if results[name].total_cost <= result.total_cost]
    return cheaper[-1] if cheaper else frontier[0]


def _icer(result: SimulationResult, reference: SimulationResult) -> float:
    d_effect = result.total_effect - reference.total_effect
    if abs(d_effect) < EFFECT_TOLERANCE:
        return float("inf")
    return (result.total_cost - reference.total_cost) / d_effect


def wtp_key(wtp: float) -> str:
    """Exact, stable key for a willingness-to-pay threshold: 100000, 100000.4."""
    value = float(wtp)
    return str(int(value)) if value.is_integer() else repr(value)

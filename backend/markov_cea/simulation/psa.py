"""Probabilistic sensitivity analysis: paired Monte Carlo over parameters.

Draw i samples every declared distribution from its own generator seeded by
SeedSequence([seed, i]) and re-runs *every* strategy with the same sample,
so strategies stay comparable within a draw. Because seeding is per draw
index, results do not depend on how many worker threads execute the draws.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from markov_cea.exceptions import InvalidDistributionParameters, ModelDefinitionError
from markov_cea.models.results import (
    AcceptabilityPoint,
    EVPIPoint,
    OutcomeSummary,
    SimulationResult,
)
from markov_cea.models.simulation import SimulationConfig
from markov_cea.simulation.cohort import initial_vector, simulate
from markov_cea.simulation.parameters import ParameterSet
from markov_cea.simulation.samplers import Sampler, make_sampler
from markov_cea.simulation.strategy import Strategy

logger = logging.getLogger(__name__)

_PERCENTILES = [("p5", 5), ("p25", 25), ("p50", 50), ("p75", 75), ("p95", 95)]
EFFECT_TOLERANCE = 1e-12


@dataclass(frozen=True)
class PSADraw:
    """One realization of the sampled parameters and its per-strategy results."""
    index: int
    parameters: Mapping[str, float]
    results: Mapping[str, SimulationResult] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class PSARun:
    """Ordered PSA draws (index order) with aggregation helpers."""

    def __init__(
        self,
        strategies: Sequence[str],
        draws: Iterable[PSADraw],
        n_requested: int,
        seed: int,
    ):
        self.strategies: tuple[str, ...] = tuple(strategies)
        self.draws: tuple[PSADraw, ...] = tuple(sorted(draws, key=lambda d: d.index))
        self.n_requested = n_requested
        self.seed = seed
        self._completed = [d for d in self.draws if not d.failed]

    @property
    def completed(self) -> list[PSADraw]:
        return list(self._completed)

    @property
    def n_completed(self) -> int:
        return len(self._completed)

    @property
    def n_failed(self) -> int:
        return sum(1 for d in self.draws if d.failed)

    @property
    def stopped(self) -> bool:
        return len(self.draws) < self.n_requested

    # ------------------------------------------------------------------
    # Raw distributions
    # ------------------------------------------------------------------
    def costs(self, strategy: str) -> np.ndarray:
        self._check_strategy(strategy)
        return np.array([d.results[strategy].total_cost for d in self._completed], dtype=float)

    def effects(self, strategy: str) -> np.ndarray:
        self._check_strategy(strategy)
        return np.array([d.results[strategy].total_effect for d in self._completed], dtype=float)

    def pairs(self, strategy: str) -> list[tuple[float, float]]:
        """(cost, effect) per completed draw."""
        return list(zip(self.costs(strategy).tolist(), self.effects(strategy).tolist()))

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------
    def summary(self) -> list[OutcomeSummary]:
        out = []
        for name in self.strategies:
            costs = self.costs(name)
            effects = self.effects(name)
            out.append(OutcomeSummary(
                strategy=name,
                mean_cost=_mean(costs),
                sd_cost=_sd(costs),
                mean_effect=_mean(effects),
                sd_effect=_sd(effects),
                cost_percentiles=_percentiles(costs),
                effect_percentiles=_percentiles(effects),
            ))
        return out

    def icer(self, strategy: str, reference: str) -> Optional[float]:
        """Mean incremental cost over mean incremental effect vs `reference`.

        None when the mean effects differ by less than `EFFECT_TOLERANCE`.
        """
        if not self._completed:
            return None
        d_cost = float(np.mean(self.costs(strategy) - self.costs(reference)))
        d_effect = float(np.mean(self.effects(strategy) - self.effects(reference)))
        if abs(d_effect) < EFFECT_TOLERANCE:
            return None
        return d_cost / d_effect

    def net_benefit(self, wtp: float, strategies: Optional[Sequence[str]] = None) -> np.ndarray:
        """Draws x strategies matrix of effect * wtp - cost."""
        names = list(strategies or self.strategies)
        if not names:
            return np.empty((self.n_completed, 0))
        return np.column_stack([self.effects(s) * wtp - self.costs(s) for s in names])

    def acceptability_curve(
        self,
        wtp_values: Iterable[float],
        strategies: Optional[Sequence[str]] = None,
    ) -> list[AcceptabilityPoint]:
        """Share of draws in which each strategy has the highest net benefit."""
        names = list(strategies or self.strategies)
        points: list[AcceptabilityPoint] = []
        for wtp in wtp_values:
            if not self._completed:
                shares = np.zeros(len(names))
            else:
                best = np.argmax(self.net_benefit(wtp, names), axis=1)
                shares = np.bincount(best, minlength=len(names)) / len(best)
            for name, share in zip(names, shares):
                points.append(AcceptabilityPoint(wtp=float(wtp), strategy=name, probability=float(share)))
        return points

    def evpi(self, wtp_values: Iterable[float]) -> list[EVPIPoint]:
        """Expected value of perfect information per willingness-to-pay."""
        points = []
        for wtp in wtp_values:
            if not self._completed:
                points.append(EVPIPoint(wtp=float(wtp), evpi=0.0))
                continue
            nb = self.net_benefit(wtp)
            value = float(np.mean(nb.max(axis=1)) - nb.mean(axis=0).max())
            points.append(EVPIPoint(wtp=float(wtp), evpi=max(value, 0.0)))
        return points

    def to_frame(self) -> pd.DataFrame:
        """One row per (draw, strategy) with the sampled parameter values."""
        rows = []
        for draw in self._completed:
            for name in self.strategies:
                result = draw.results[name]
                row: dict[str, Any] = {
                    "draw": draw.index,
                    "strategy": name,
                    "cost": result.total_cost,
                    "effect": result.total_effect,
                }
                row.update(draw.parameters)
                rows.append(row)
        return pd.DataFrame(rows)

    def _check_strategy(self, strategy: str) -> None:
        if strategy not in self.strategies:
            raise KeyError(f"Strategy '{strategy}' is not part of this PSA run")


class PSAEngine:
    """Samples declared distributions and re-runs every strategy per draw."""

    def __init__(self, config: SimulationConfig, init: Mapping[str, float]):
        self.config = config
        self.init = MappingProxyType(dict(init))
        self._samplers: dict[str, Sampler] = {}
        self._stop = threading.Event()

    @property
    def distributions(self) -> Mapping[str, Sampler]:
        return MappingProxyType(self._samplers)

    def define(self, distributions: Mapping[str, Sampler | Mapping[str, Any]]) -> "PSAEngine":
        """Bind parameter names to samplers; invalid parameters fail here."""
        for name, spec in distributions.items():
            if isinstance(spec, Sampler):
                sampler = spec
            elif isinstance(spec, Mapping):
                params = dict(spec)
                family = params.pop("family", None)
                if family is None:
                    raise InvalidDistributionParameters(f"Distribution for '{name}' has no family")
                sampler = make_sampler(family, **params)
            else:
                raise InvalidDistributionParameters(
                    f"Distribution for '{name}' must be a Sampler or a mapping"
                )
            self._samplers[name] = sampler
        return self

    def stop(self) -> None:
        """Stop issuing new draws; draws not yet started are discarded."""
        self._stop.set()

    def sample(self, draw_index: int, seed: int) -> dict[str, float]:
        rng = np.random.default_rng(np.random.SeedSequence([seed, draw_index]))
        return {name: sampler.draw(rng) for name, sampler in self._samplers.items()}

    def run(
        self,
        strategies: Sequence[Strategy],
        base_params: ParameterSet,
        n: int,
        seed: Optional[int] = None,
        max_workers: int = 1,
        fail_fast: bool = True,
    ) -> PSARun:
        if n < 1:
            raise ValueError(f"Number of PSA draws must be positive, got {n}")
        if seed is not None and seed < 0:
            raise ValueError(f"PSA seed must be non-negative, got {seed}")
        if not strategies:
            raise ValueError("PSA needs at least one strategy")

        # Fail on configuration errors before spending any simulation budget
        base_params.with_overrides({name: s.mean for name, s in self._samplers.items()})
        for strategy in strategies:
            strategy.check_parameters(base_params)
            initial_vector(strategy, self.init)

        if seed is None:
            seed = int(np.random.SeedSequence().entropy)
        self._stop.clear()

        logger.info(
            "PSA: %d draws x %d strategies, %d sampled parameters, %d worker(s)",
            n, len(strategies), len(self._samplers), max_workers,
        )

        draws: list[PSADraw] = []
        if max_workers <= 1:
            for i in range(n):
                draw = self._run_draw(i, strategies, base_params, seed, fail_fast)
                if draw is None:
                    break
                draws.append(draw)
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = [
                    executor.submit(self._run_draw, i, strategies, base_params, seed, fail_fast)
                    for i in range(n)
                ]
                try:
                    for future in as_completed(futures):
                        draw = future.result()
                        if draw is not None:
                            draws.append(draw)
                except BaseException:
                    self._stop.set()
                    for f in futures:
                        f.cancel()
                    raise

        run = PSARun([s.name for s in strategies], draws, n, seed)
        if run.n_failed:
            logger.warning("PSA: %d of %d draws failed", run.n_failed, len(run.draws))
        if run.stopped:
            logger.info("PSA stopped after %d of %d draws", len(run.draws), n)
        logger.info("PSA complete: %d draws", run.n_completed)
        return run

    def _run_draw(
        self,
        index: int,
        strategies: Sequence[Strategy],
        base_params: ParameterSet,
        seed: int,
        fail_fast: bool,
    ) -> Optional[PSADraw]:
        if self._stop.is_set():
            return None
        values = self.sample(index, seed)
        try:
            params = base_params.with_overrides(values)
            results = {s.name: simulate(s, params, self.init, self.config) for s in strategies}
        except ModelDefinitionError as e:
            if fail_fast:
                raise
            logger.warning("PSA draw %d failed: %s", index, e)
            return PSADraw(index=index, parameters=MappingProxyType(values), error=str(e))
        return PSADraw(index=index, parameters=MappingProxyType(values), results=MappingProxyType(results))


def wtp_grid(start: float, stop: float, n: int = 20, scale: str = "linear") -> list[float]:
    """Willingness-to-pay thresholds on a linear or log scale."""
    if n < 1:
        raise ValueError(f"Grid size must be positive, got {n}")
    if scale == "linear":
        return np.linspace(start, stop, n).tolist()
    if scale == "log":
        if start <= 0 or stop <= 0:
            raise ValueError("A log-scale grid needs positive bounds")
        return np.geomspace(start, stop, n).tolist()
    raise ValueError(f"Unknown grid scale '{scale}'; expected 'linear' or 'log'")


def _mean(values: np.ndarray) -> Optional[float]:
    return float(np.mean(values)) if len(values) else None


def _sd(values: np.ndarray) -> float:
    return float(np.std(values, ddof=1)) if len(values) > 1 else 0.0


def _percentiles(values: np.ndarray) -> dict[str, float]:
    if not len(values):
        return {}
    return {label: float(np.percentile(values, p)) for label, p in _PERCENTILES}

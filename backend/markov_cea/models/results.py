from types import MappingProxyType
from typing import Mapping, Optional

import pandas as pd
from pydantic import BaseModel, ConfigDict, field_serializer, field_validator

from markov_cea.models.simulation import SimulationConfig, TransitionMethod


class CycleValues(BaseModel):
    """Discounted cost and effect accumulated over the cohort for one cycle."""
    model_config = ConfigDict(frozen=True)

    cycle: int
    cost: float
    effect: float


class SimulationResult(BaseModel):
    """Outcome of one strategy run: state counts and discounted values."""
    model_config = ConfigDict(frozen=True)

    strategy: str
    method: TransitionMethod
    states: tuple[str, ...]
    counts: tuple[Mapping[str, float], ...]   # cycles 0..C, read-only
    values: tuple[CycleValues, ...]        # cycles 0..C-1
    total_cost: float
    total_effect: float

    @field_validator("counts", mode="after")
    @classmethod
    def _freeze_counts(cls, counts):
        return tuple(MappingProxyType(dict(c)) for c in counts)

    @field_serializer("counts")
    def _dump_counts(self, counts):
        return [dict(c) for c in counts]

    @property
    def n_cycles(self) -> int:
        return len(self.values)

    def counts_frame(self, run_id: Optional[str] = None) -> pd.DataFrame:
        """State counts, one row per (run_id, cycle), one column per state."""
        frame = pd.DataFrame([dict(c) for c in self.counts], columns=list(self.states))
        frame.insert(0, "cycle", range(len(self.counts)))
        frame.insert(0, "strategy", self.strategy)
        if run_id is not None:
            frame.insert(0, "run_id", run_id)
        return frame

    def values_frame(self, run_id: Optional[str] = None) -> pd.DataFrame:
        """Discounted cost/effect, one row per (run_id, cycle)."""
        frame = pd.DataFrame([v.model_dump() for v in self.values], columns=["cycle", "cost", "effect"])
        frame.insert(0, "strategy", self.strategy)
        if run_id is not None:
            frame.insert(0, "run_id", run_id)
        return frame


class StrategyComparison(BaseModel):
    """One row of the cost-effectiveness summary."""
    strategy: str
    total_cost: float
    total_effect: float
    on_frontier: bool
    reference: Optional[str] = None
    incremental_cost: Optional[float] = None
    incremental_effect: Optional[float] = None
    icer: Optional[float] = None
    net_monetary_benefit: dict[str, float] = {}


class ModelRunResult(BaseModel):
    """All strategies of one deterministic run, with the comparison."""
    results: dict[str, SimulationResult]
    comparison: list[StrategyComparison]
    frontier: list[str]
    config: SimulationConfig


class OutcomeSummary(BaseModel):
    """Distribution summary of one strategy's PSA outcomes."""
    strategy: str
    mean_cost: Optional[float]
    sd_cost: float
    mean_effect: Optional[float]
    sd_effect: float
    cost_percentiles: dict[str, float]
    effect_percentiles: dict[str, float]


class AcceptabilityPoint(BaseModel):
    """CEAC point: probability a strategy has the highest net benefit at wtp."""
    wtp: float
    strategy: str
    probability: float


class EVPIPoint(BaseModel):
    wtp: float
    evpi: float


class PSAResponse(BaseModel):
    """Serialized PSA run for API consumption."""
    n_requested: int
    n_completed: int
    n_failed: int
    strategies: list[str]
    summary: list[OutcomeSummary]
    icers: dict[str, Optional[float]]
    acceptability: list[AcceptabilityPoint]
    evpi: list[EVPIPoint]
    draws: list[dict[str, float | int | str]]

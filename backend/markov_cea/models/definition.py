from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from markov_cea.models.simulation import PSAConfig, SimulationConfig

# A formula is a number or an expression string such as "age_init + cycle"
FormulaValue = Union[float, str]


class MatrixDefinition(BaseModel):
    """Transition matrix as rows of formulas; "C" marks the complement."""
    states: list[str]
    rows: list[list[FormulaValue]]


class StateValues(BaseModel):
    """Per-cycle cost and effect formulas for one state."""
    cost: FormulaValue = 0.0
    effect: FormulaValue = 0.0


class StrategyDefinition(BaseModel):
    transition: MatrixDefinition
    states: dict[str, StateValues]


class ModelDefinition(BaseModel):
    """A complete declarative cohort model."""
    parameters: dict[str, FormulaValue] = {}
    tables: Optional[list[str]] = None   # registry tables to expose; None = all loaded
    strategies: dict[str, StrategyDefinition]
    init: dict[str, float]
    config: SimulationConfig = SimulationConfig()


class DistributionDefinition(BaseModel):
    """Sampling distribution for one PSA parameter."""
    family: Literal["gamma", "binomial", "normal", "lognormal", "beta", "poisson"]
    mean: Optional[float] = None
    sd: Optional[float] = None
    prob: Optional[float] = None
    size: Optional[int] = None
    shape1: Optional[float] = None
    shape2: Optional[float] = None

    def sampler_kwargs(self) -> dict:
        return self.model_dump(exclude={"family"}, exclude_none=True)


class WTPGrid(BaseModel):
    """Willingness-to-pay thresholds for the acceptability curve."""
    start: float = 0.0
    stop: float = 100_000.0
    n: int = Field(21, ge=1)
    scale: Literal["linear", "log"] = "linear"


class PSARequest(BaseModel):
    model: ModelDefinition
    distributions: dict[str, DistributionDefinition]
    psa: PSAConfig = PSAConfig()
    wtp: WTPGrid = WTPGrid()
    reference: Optional[str] = None
    include_draws: bool = False

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TransitionMethod(str, Enum):
    """When, within a cycle, the cohort is assumed to transition."""
    end = "end"              # values use counts at the start of the cycle
    beginning = "beginning"  # values use counts after the transition, discounted from cycle 0


class SimulationConfig(BaseModel):
    """Configuration for a deterministic cohort run."""
    cycles: int = Field(10, ge=1)
    discount_rate: float = Field(0.0, ge=0.0)
    effect_discount_rate: Optional[float] = Field(None, ge=0.0)
    method: TransitionMethod = TransitionMethod.end
    wtp_thresholds: list[float] = []

    @property
    def effect_rate(self) -> float:
        if self.effect_discount_rate is None:
            return self.discount_rate
        return self.effect_discount_rate


class PSAConfig(BaseModel):
    """Configuration for probabilistic sensitivity analysis runs."""
    n_draws: int = Field(100, ge=1)
    seed: Optional[int] = 42
    max_workers: int = Field(1, ge=1)
    fail_fast: bool = True

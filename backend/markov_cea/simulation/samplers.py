"""PSA samplers: one class per distribution family, all exposing draw(rng).

Parameters are validated when the sampler is built, so a bad distribution
fails at definition time rather than midway through a PSA run.
"""
from __future__ import annotations

import math
from typing import Any

import numpy as np

from markov_cea.exceptions import InvalidDistributionParameters


class Sampler:
    """Base class: `draw(rng)` returns one float from a numpy Generator."""

    family: str = ""

    def draw(self, rng: np.random.Generator) -> float:
        raise NotImplementedError

    @property
    def mean(self) -> float:
        raise NotImplementedError


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidDistributionParameters(message)


def _finite(*values: float) -> bool:
    return all(isinstance(v, (int, float)) and math.isfinite(v) for v in values)


class Gamma(Sampler):
    """Gamma parameterized by mean and standard deviation.

    shape = (mean / sd)^2, scale = sd^2 / mean.
    """
    family = "gamma"

    def __init__(self, mean: float, sd: float):
        _require(_finite(mean, sd), f"gamma parameters must be finite (mean={mean}, sd={sd})")
        _require(mean > 0, f"gamma mean must be positive, got {mean}")
        _require(sd > 0, f"gamma sd must be positive, got {sd}")
        self._mean = float(mean)
        self.sd = float(sd)
        self.shape = (mean / sd) ** 2
        self.scale = sd ** 2 / mean

    @property
    def mean(self) -> float:
        return self._mean

    def draw(self, rng):
        return float(rng.gamma(self.shape, self.scale))

    def __repr__(self) -> str:
        return f"Gamma(mean={self._mean}, sd={self.sd})"


class Binomial(Sampler):
    """Proportion of successes k/size with k ~ Binomial(size, prob)."""
    family = "binomial"

    def __init__(self, prob: float, size: int):
        _require(_finite(prob), f"binomial prob must be finite, got {prob}")
        _require(0 < prob < 1, f"binomial prob must lie in (0, 1), got {prob}")
        _require(
            isinstance(size, int) and not isinstance(size, bool) and size > 0,
            f"binomial size must be a positive integer, got {size!r}",
        )
        self.prob = float(prob)
        self.size = size

    @property
    def mean(self) -> float:
        return self.prob

    def draw(self, rng):
        return float(rng.binomial(self.size, self.prob)) / self.size

    def __repr__(self) -> str:
        return f"Binomial(prob={self.prob}, size={self.size})"


class Normal(Sampler):
    family = "normal"

    def __init__(self, mean: float, sd: float):
        _require(_finite(mean, sd), f"normal parameters must be finite (mean={mean}, sd={sd})")
        _require(sd > 0, f"normal sd must be positive, got {sd}")
        self._mean = float(mean)
        self.sd = float(sd)

    @property
    def mean(self) -> float:
        return self._mean

    def draw(self, rng):
        return float(rng.normal(self._mean, self.sd))

    def __repr__(self) -> str:
        return f"Normal(mean={self._mean}, sd={self.sd})"


class LogNormal(Sampler):
    """Log-normal given its natural-scale mean and standard deviation."""
    family = "lognormal"

    def __init__(self, mean: float, sd: float):
        _require(_finite(mean, sd), f"lognormal parameters must be finite (mean={mean}, sd={sd})")
        _require(mean > 0, f"lognormal mean must be positive, got {mean}")
        _require(sd > 0, f"lognormal sd must be positive, got {sd}")
        self._mean = float(mean)
        self.sd = float(sd)
        self.sdlog = math.sqrt(math.log(1.0 + sd ** 2 / mean ** 2))
        self.meanlog = math.log(mean) - self.sdlog ** 2 / 2.0

    @property
    def mean(self) -> float:
        return self._mean

    def draw(self, rng):
        return float(rng.lognormal(self.meanlog, self.sdlog))

    def __repr__(self) -> str:
        return f"LogNormal(mean={self._mean}, sd={self.sd})"


class Beta(Sampler):
    family = "beta"

    def __init__(self, shape1: float, shape2: float):
        _require(_finite(shape1, shape2), f"beta shapes must be finite ({shape1}, {shape2})")
        _require(shape1 > 0 and shape2 > 0, f"beta shapes must be positive ({shape1}, {shape2})")
        self.shape1 = float(shape1)
        self.shape2 = float(shape2)

    @property
    def mean(self) -> float:
        return self.shape1 / (self.shape1 + self.shape2)

    def draw(self, rng):
        return float(rng.beta(self.shape1, self.shape2))

    def __repr__(self) -> str:
        return f"Beta(shape1={self.shape1}, shape2={self.shape2})"


class Poisson(Sampler):
    family = "poisson"

    def __init__(self, mean: float):
        _require(_finite(mean), f"poisson mean must be finite, got {mean}")
        _require(mean > 0, f"poisson mean must be positive, got {mean}")
        self._mean = float(mean)

    @property
    def mean(self) -> float:
        return self._mean

    def draw(self, rng):
        return float(rng.poisson(self._mean))

    def __repr__(self) -> str:
        return f"Poisson(mean={self._mean})"


SAMPLERS: dict[str, type[Sampler]] = {
    cls.family: cls for cls in (Gamma, Binomial, Normal, LogNormal, Beta, Poisson)
}


def make_sampler(family: str, **params: Any) -> Sampler:
    """Build a sampler by family name, e.g. make_sampler("gamma", mean=1, sd=1)."""
    cls = SAMPLERS.get(family)
    if cls is None:
        raise InvalidDistributionParameters(
            f"Unknown distribution '{family}'; expected one of {sorted(SAMPLERS)}"
        )
    try:
        return cls(**params)
    except TypeError as e:
        raise InvalidDistributionParameters(f"Invalid arguments for {family}: {e}") from None

"""Validation errors raised while defining or resolving a cohort model.

Every error subclasses ModelDefinitionError (itself a ValueError) so callers
can reject a bad configuration with a single except clause before any
simulation budget is spent.
"""
from __future__ import annotations


class ModelDefinitionError(ValueError):
    """Base class for configuration and resolution failures."""


class KeyNotFound(ModelDefinitionError, KeyError):
    """Lookup key (or column) is absent from a lookup table."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message instead
        return str(self.args[0]) if self.args else ""


class CyclicParameterDependency(ModelDefinitionError):
    """A parameter transitively depends on itself."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__("Cyclic parameter dependency: " + " -> ".join(cycle))


class UnknownParameter(ModelDefinitionError):
    """A formula or override references a name that is not defined."""


class InvalidExpression(ModelDefinitionError):
    """A formula string cannot be parsed or uses a forbidden construct."""


class InvalidComplementCount(ModelDefinitionError):
    """A transition matrix row carries more than one complement marker."""


class RowSumMismatch(ModelDefinitionError):
    """A row without complement marker does not sum to 1."""


class InvalidProbability(ModelDefinitionError):
    """A resolved transition probability lies outside [0, 1]."""


class InvalidInitialPopulation(ModelDefinitionError):
    """The initial cohort vector has a negative entry."""


class StateNotInMatrix(ModelDefinitionError):
    """A state name has no matching row/column in the transition matrix."""


class InvalidDistributionParameters(ModelDefinitionError):
    """A PSA sampling distribution was declared with invalid parameters."""

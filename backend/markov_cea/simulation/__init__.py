"""Cohort Markov engine: parameters, transitions, discounting, simulation and PSA."""
from markov_cea.simulation.lookup import LookupTable, lookup
from markov_cea.simulation.formulas import Expression, as_formula, depends_on
from markov_cea.simulation.parameters import ParameterSet, ResolvedParameters
from markov_cea.simulation.transitions import C, TransitionMatrix, TransitionMatrixSpec, resolve
from markov_cea.simulation.discounting import discount, discount_factor
from markov_cea.simulation.strategy import State, Strategy
from markov_cea.simulation.cohort import simulate
from markov_cea.simulation.samplers import Beta, Binomial, Gamma, LogNormal, Normal, Poisson, make_sampler
from markov_cea.simulation.psa import PSADraw, PSAEngine, PSARun, wtp_grid

__all__ = [
    "LookupTable",
    "lookup",
    "Expression",
    "as_formula",
    "depends_on",
    "ParameterSet",
    "ResolvedParameters",
    "C",
    "TransitionMatrix",
    "TransitionMatrixSpec",
    "resolve",
    "discount",
    "discount_factor",
    "State",
    "Strategy",
    "simulate",
    "Beta",
    "Binomial",
    "Gamma",
    "LogNormal",
    "Normal",
    "Poisson",
    "make_sampler",
    "PSADraw",
    "PSAEngine",
    "PSARun",
    "wtp_grid",
]

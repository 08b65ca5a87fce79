"""PSA orchestration service.

Builds the model and samplers from a request, runs the PSA engine, and
serializes summaries, ICERs vs the reference strategy, the acceptability
curve and EVPI over the requested willingness-to-pay grid.
"""
from __future__ import annotations

import logging

from markov_cea.config import settings
from markov_cea.models.definition import PSARequest
from markov_cea.models.results import PSAResponse
from markov_cea.services.model_builder import build_parameters, build_samplers, build_strategies
from markov_cea.simulation.psa import PSAEngine, PSARun, wtp_grid

logger = logging.getLogger(__name__)


def run_psa(request: PSARequest) -> PSARun:
    if request.psa.n_draws > settings.PSA_MAX_DRAWS:
        raise ValueError(
            f"n_draws={request.psa.n_draws} exceeds the limit of {settings.PSA_MAX_DRAWS}"
        )
    definition = request.model
    parameters = build_parameters(definition)
    strategies = build_strategies(definition)
    engine = PSAEngine(definition.config, definition.init).define(build_samplers(request.distributions))
    return engine.run(
        strategies,
        parameters,
        request.psa.n_draws,
        seed=request.psa.seed,
        max_workers=min(request.psa.max_workers, settings.PSA_MAX_WORKERS),
        fail_fast=request.psa.fail_fast,
    )


def build_psa_response(request: PSARequest, run: PSARun) -> PSAResponse:
    reference = request.reference or run.strategies[0]
    if reference not in run.strategies:
        raise ValueError(f"Reference strategy '{reference}' is not defined")
    grid = wtp_grid(request.wtp.start, request.wtp.stop, request.wtp.n, request.wtp.scale)
    draws = run.to_frame().to_dict(orient="records") if request.include_draws else []
    return PSAResponse(
        n_requested=run.n_requested,
        n_completed=run.n_completed,
        n_failed=run.n_failed,
        strategies=list(run.strategies),
        summary=run.summary(),
        icers={name: run.icer(name, reference) for name in run.strategies if name != reference},
        acceptability=run.acceptability_curve(grid),
        evpi=run.evpi(grid),
        draws=draws,
    )


def run_psa_request(request: PSARequest) -> PSAResponse:
    run = run_psa(request)
    return build_psa_response(request, run)

from fastapi import APIRouter, HTTPException

from markov_cea.models.definition import ModelDefinition, PSARequest
from markov_cea.models.results import ModelRunResult, PSAResponse
from markov_cea.services.psa_service import run_psa_request
from markov_cea.services.simulation_service import run_model_definition

router = APIRouter(tags=["simulations"])


@router.post("/models/run", response_model=ModelRunResult)
def run_model_endpoint(definition: ModelDefinition):
    """Run every strategy of an inline model definition.

    Returns per-cycle counts and discounted values per strategy, plus the
    efficiency frontier, ICERs and net monetary benefit.
    """
    try:
        return run_model_definition(definition)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/psa/run", response_model=PSAResponse)
def run_psa_endpoint(request: PSARequest):
    """Run a probabilistic sensitivity analysis on an inline model.

    Returns per-strategy outcome distributions, ICERs vs the reference
    strategy, the acceptability curve and EVPI over the WTP grid.
    """
    try:
        return run_psa_request(request)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

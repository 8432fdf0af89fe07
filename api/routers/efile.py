"""
E-Filing API Router.

Handles 1099-NEC e-filing through TaxBandits:
- Validate a filing (structural + semantic review)
- Create a single filing or a batch
- Transmit a submission to the IRS
- Check submission status
"""

import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from tax_agent.models import FilingRequest
from tax_agent.orchestrator import FilingAgent, FilingOutcome

from ..dependencies import get_agent
from ..schemas import BatchFilingRequest, FilingResponse, ValidationResponse

logger = logging.getLogger(__name__)

router = APIRouter()

# HTTP status for each failed outcome kind
ERROR_STATUS_CODES: Dict[str, int] = {
    "validation": 422,
    "business_rejection": 422,
    "auth_failure": 502,
    "transient_failure": 503,
}


def _respond(outcome: FilingOutcome) -> JSONResponse:
    body = FilingResponse(**outcome.to_dict()).model_dump()
    if outcome.success:
        return JSONResponse(status_code=200, content=body)
    return JSONResponse(status_code=ERROR_STATUS_CODES.get(outcome.error_kind, 500), content=body)


@router.post("/validate", response_model=ValidationResponse)
async def validate_filing(request: FilingRequest, agent: FilingAgent = Depends(get_agent)):
    """Run structural checks and, if they pass, semantic review."""
    result = await agent.validate(request)
    return result.to_dict()


@router.post("/file", response_model=FilingResponse)
async def file_form(request: FilingRequest, agent: FilingAgent = Depends(get_agent)):
    """
    Validate and create one 1099-NEC at the provider.

    The submission is created but not transmitted; call /transmit to send it
    to the IRS.
    """
    outcome = await agent.file(request)
    return _respond(outcome)


@router.post("/file/batch", response_model=FilingResponse)
async def file_batch(request: BatchFilingRequest, agent: FilingAgent = Depends(get_agent)):
    """Validate and create up to 100 forms sharing one payer as a single submission."""
    try:
        outcome = await agent.file_batch(request.forms)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _respond(outcome)


@router.post("/transmit/{submission_id}", response_model=FilingResponse)
async def transmit_submission(submission_id: str, agent: FilingAgent = Depends(get_agent)):
    """Transmit a created submission to the IRS."""
    outcome = await agent.transmit(submission_id)
    return _respond(outcome)


@router.get("/status/{submission_id}", response_model=FilingResponse)
async def submission_status(submission_id: str, agent: FilingAgent = Depends(get_agent)):
    """Check the provider's current status for a submission."""
    outcome = await agent.status(submission_id)
    return _respond(outcome)

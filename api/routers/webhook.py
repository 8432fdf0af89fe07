"""
TaxBandits webhook router.

Receives signed status callbacks and exposes the tracked submissions.
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from tax_agent.errors import WebhookPayloadError, WebhookSignatureError
from tax_agent.submission_tracker import SubmissionTracker
from tax_agent.webhook import CallbackHandler

from ..dependencies import get_callback_handler, get_tracker
from ..schemas import CallbackResponse, SubmissionResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/taxbandits", response_model=CallbackResponse)
async def taxbandits_callback(
    request: Request,
    handler: CallbackHandler = Depends(get_callback_handler),
):
    """
    Apply a TaxBandits status callback.

    401 if the signature is missing or wrong, 400 if a signed body is
    malformed. Nothing is written in either case.
    """
    body = await request.body()
    try:
        submission = await asyncio.to_thread(handler.handle, request.headers, body)
    except WebhookSignatureError:
        raise HTTPException(status_code=401, detail="Invalid signature")
    except WebhookPayloadError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if submission is None:
        return CallbackResponse()
    return CallbackResponse(submission_id=submission.submission_id, status=submission.status.value)


@router.get("/submissions", response_model=List[SubmissionResponse])
async def list_submissions(
    limit: int = Query(50, ge=1, le=500),
    tracker: SubmissionTracker = Depends(get_tracker),
):
    """List tracked submissions, most recently updated first."""
    submissions = await asyncio.to_thread(tracker.list_submissions, limit)
    return [s.to_dict() for s in submissions]


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
async def get_submission(submission_id: str, tracker: SubmissionTracker = Depends(get_tracker)):
    """Get one tracked submission."""
    submission = await asyncio.to_thread(tracker.get_submission, submission_id)
    if submission is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return submission.to_dict()

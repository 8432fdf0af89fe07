"""
Filing agent: validate -> create -> track, plus transmit and status.

The agent holds no business rules of its own. It sequences the structural
validator, the semantic reviewer, the filing client and the submission
tracker, and turns classified filing errors into a ``FilingOutcome``.

The filing client and tracker are synchronous; provider work runs in a
worker thread. Create and track run together in that thread and are
shielded from cancellation, so a created filing is always tracked.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from .errors import FilingError
from .models import FilingRequest, SubmissionResult, SubmissionStatus, ValidationIssue, ValidationResult
from .pii import normalize_tin
from .semantic_reviewer import SemanticReviewer
from .structural_validator import has_errors, validate_structure
from .submission_tracker import SubmissionTracker
from .taxbandits_client import MAX_BATCH_SIZE, TaxBanditsClient

logger = logging.getLogger(__name__)

STRUCTURAL_REVIEWER = "none (structural checks only)"


@dataclass
class FilingOutcome:
    """Result of a filing agent operation."""
    success: bool
    validation: Optional[ValidationResult] = None
    submission: Optional[SubmissionResult] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    batch_validation: List[ValidationResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.validation is not None:
            data["validation"] = self.validation.to_dict()
        if self.batch_validation:
            data["batch_validation"] = [v.to_dict() for v in self.batch_validation]
        if self.submission is not None:
            data["submission_id"] = self.submission.submission_id
            data["status"] = self.submission.status.value
            data["records"] = self.submission.records
        if self.error is not None:
            data["error"] = self.error
            data["error_kind"] = self.error_kind
        return data


def _failure(error: FilingError, **kwargs) -> FilingOutcome:
    return FilingOutcome(success=False, error=str(error), error_kind=error.kind, **kwargs)


def _check_shared_payer(
    requests: List[FilingRequest], validations: List[ValidationResult],
) -> List[ValidationResult]:
    """Flag members whose payer differs from the first; a submission carries one payer."""
    payer_tin = normalize_tin(requests[0].payer.tin)
    checked = []
    for request, validation in zip(requests, validations):
        if normalize_tin(request.payer.tin) != payer_tin:
            issue = ValidationIssue("payer.tin", "All forms in a batch must have the same payer as the first form")
            validation = ValidationResult.from_issues(
                list(validation.issues) + [issue], validation.summary, validation.reviewer,
            )
        checked.append(validation)
    return checked


class FilingAgent:
    """
    Thin coordinator over validation, filing and tracking.

    Usage:
        agent = FilingAgent(client, reviewer, tracker)
        outcome = await agent.file(request)
    """

    def __init__(
        self,
        client: TaxBanditsClient,
        reviewer: SemanticReviewer,
        tracker: SubmissionTracker,
        today: Optional[Callable[[], date]] = None,
    ):
        self.client = client
        self.reviewer = reviewer
        self.tracker = tracker
        self._today = today or date.today

    async def validate(self, request: FilingRequest) -> ValidationResult:
        """
        Structural checks first; semantic review only if they pass.

        A request with structural errors never reaches the reviewer.
        """
        issues = validate_structure(request, today=self._today())
        if has_errors(issues):
            return ValidationResult.from_issues(
                issues,
                summary=f"Found {len(issues)} structural issue(s); fix these before semantic review",
                reviewer=STRUCTURAL_REVIEWER,
            )
        return await self.reviewer.review(request, issues)

    async def validate_batch(self, requests: List[FilingRequest]) -> List[ValidationResult]:
        """Validate every request concurrently; results keep input order."""
        return list(await asyncio.gather(*(self.validate(r) for r in requests)))

    def _create_and_track(self, create: Callable[[], SubmissionResult]) -> SubmissionResult:
        result = create()
        try:
            self.tracker.track_submission(result.submission_id, result.form_type)
        except Exception:
            logger.error(f"Submission {result.submission_id} was created but could not be tracked")
            raise
        return result

    async def _run_create(self, create: Callable[[], SubmissionResult]) -> SubmissionResult:
        # Shielded so the worker finishes (and tracks) even if the caller is cancelled
        return await asyncio.shield(asyncio.to_thread(self._create_and_track, create))

    async def file(self, request: FilingRequest) -> FilingOutcome:
        """Validate one request and, if valid, create and track it at the provider."""
        validation = await self.validate(request)
        if not validation.valid:
            logger.info(f"Filing blocked by validation ({len(validation.errors)} error(s))")
            return FilingOutcome(
                success=False,
                validation=validation,
                error="Validation failed",
                error_kind="validation",
            )

        try:
            submission = await self._run_create(lambda: self.client.create_filing(request))
        except FilingError as e:
            logger.warning(f"Filing failed ({e.kind}): {e}")
            return _failure(e, validation=validation)

        return FilingOutcome(success=True, validation=validation, submission=submission)

    async def file_batch(self, requests: List[FilingRequest]) -> FilingOutcome:
        """
        Validate all members, then file them as one submission.

        Any invalid member blocks the whole batch; nothing is filed.

        Raises:
            ValueError: If the batch is empty or exceeds the provider limit
        """
        if not requests:
            raise ValueError("At least one form is required")
        if len(requests) > MAX_BATCH_SIZE:
            raise ValueError(f"A batch can contain at most {MAX_BATCH_SIZE} forms")

        validations = await self.validate_batch(requests)
        validations = _check_shared_payer(requests, validations)
        invalid = [i for i, v in enumerate(validations) if not v.valid]
        if invalid:
            logger.info(f"Batch blocked: {len(invalid)} of {len(requests)} form(s) invalid")
            return FilingOutcome(
                success=False,
                batch_validation=validations,
                error=f"Validation failed for form(s) at index {', '.join(str(i) for i in invalid)}",
                error_kind="validation",
            )

        try:
            submission = await self._run_create(lambda: self.client.create_batch(requests))
        except FilingError as e:
            logger.warning(f"Batch filing failed ({e.kind}): {e}")
            return _failure(e, batch_validation=validations)

        return FilingOutcome(success=True, batch_validation=validations, submission=submission)

    def _transmit_and_track(self, submission_id: str) -> SubmissionResult:
        result = self.client.transmit(submission_id)
        self.tracker.update_status(submission_id, SubmissionStatus.TRANSMITTED, result.records)
        return result

    async def transmit(self, submission_id: str) -> FilingOutcome:
        """Transmit a created submission to the IRS and record the transition."""
        try:
            submission = await asyncio.shield(asyncio.to_thread(self._transmit_and_track, submission_id))
        except FilingError as e:
            logger.warning(f"Transmit failed for {submission_id} ({e.kind}): {e}")
            return _failure(e)
        return FilingOutcome(success=True, submission=submission)

    async def status(self, submission_id: str) -> FilingOutcome:
        """Query the provider for the current status of a submission."""
        try:
            submission = await asyncio.to_thread(self.client.get_status, submission_id)
        except FilingError as e:
            logger.warning(f"Status check failed for {submission_id} ({e.kind}): {e}")
            return _failure(e)
        return FilingOutcome(success=True, submission=submission)

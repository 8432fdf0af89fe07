"""
Submission lifecycle tracking.

Lifecycle: CREATED -> TRANSMITTED -> ACCEPTED | REJECTED | PARTIAL

Rows live in the ``efile_submissions`` table and are never deleted. Status
writes are unconditional; the caller (orchestrator or an authenticated
callback) decides what the new status is.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from supabase import Client

from .models import Submission, SubmissionStatus
from .submission_store import SUBMISSIONS_TABLE, get_supabase_client

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 500


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_submission(row: Dict[str, Any]) -> Submission:
    return Submission(
        submission_id=row["submission_id"],
        form_type=row.get("form_type") or "FORM1099NEC",
        status=SubmissionStatus(row["status"]),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
        records=row.get("records") or [],
    )


class SubmissionTracker:
    """
    Persists submissions and their status transitions.

    Usage:
        tracker = SubmissionTracker()
        tracker.track_submission(result.submission_id, "FORM1099NEC")
        tracker.update_status(result.submission_id, SubmissionStatus.TRANSMITTED, [])
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        clock: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            client: Supabase client (defaults to the service-role client)
            clock: Returns the current time as an ISO-8601 string
        """
        self._client = client
        self._clock = clock or _utc_now

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def _table(self):
        return self.client.table(SUBMISSIONS_TABLE)

    def track_submission(self, submission_id: str, form_type: str = "FORM1099NEC") -> None:
        """
        Register a newly created submission with status CREATED.

        Idempotent: tracking an id that already exists leaves the stored row
        untouched.
        """
        now = self._clock()
        self._table().upsert(
            {
                "submission_id": submission_id,
                "form_type": form_type,
                "status": SubmissionStatus.CREATED.value,
                "created_at": now,
                "updated_at": now,
                "records": [],
            },
            on_conflict="submission_id",
            ignore_duplicates=True,
        ).execute()
        logger.info(f"Tracking submission {submission_id} ({form_type})")

    def update_status(
        self,
        submission_id: str,
        status: SubmissionStatus,
        records: List[Dict[str, Any]],
        form_type: Optional[str] = None,
    ) -> None:
        """Overwrite the status and raw records of a submission."""
        existing = self.get_submission(submission_id)
        if existing and existing.status.is_terminal and existing.status != status:
            logger.warning(
                f"Submission {submission_id} moving from terminal status "
                f"{existing.status.value} to {status.value}"
            )

        now = self._clock()
        row: Dict[str, Any] = {
            "submission_id": submission_id,
            "status": status.value,
            "records": records,
            "updated_at": now,
        }
        if existing is None:
            row["created_at"] = now
            row["form_type"] = form_type or "FORM1099NEC"
        elif form_type:
            row["form_type"] = form_type

        self._table().upsert(row, on_conflict="submission_id").execute()
        logger.info(f"Submission {submission_id} status -> {status.value}")

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        """Fetch one submission, or None if it is not tracked."""
        result = (
            self._table()
            .select("*")
            .eq("submission_id", submission_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return _row_to_submission(result.data[0])

    def list_submissions(self, limit: int = DEFAULT_LIST_LIMIT) -> List[Submission]:
        """Most recently updated submissions first."""
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        result = (
            self._table()
            .select("*")
            .order("updated_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_row_to_submission(row) for row in result.data or []]

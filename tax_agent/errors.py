"""
Exception hierarchy for the filing pipeline.

Filing errors are classified by retry policy:

    AuthFailure        credential problem, never retried, needs an operator
    TransientFailure   429 / 5xx / network trouble, retried with backoff
    BusinessRejection  provider rejected the payload, never retried

Every message is scrubbed of taxpayer identifiers at construction time, so
``str(error)`` is always safe to log or return to a caller.
"""

from typing import Any, Dict, List, Optional

from .pii import scrub_tins


class TaxAgentError(Exception):
    """Base exception for all tax agent errors."""

    def __init__(self, message: str):
        self.message = scrub_tins(message)
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class FilingError(TaxAgentError):
    """Raised when a call to the filing provider fails."""

    kind = "filing_error"
    retryable = False


class AuthFailure(FilingError):
    """Authentication with the filing provider was rejected."""

    kind = "auth_failure"


class TransientFailure(FilingError):
    """A temporary failure (rate limit, server error, network) worth retrying."""

    kind = "transient_failure"
    retryable = True

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status

    def __repr__(self) -> str:
        return f"TransientFailure(status={self.status}, message={self.message!r})"


class BusinessRejection(FilingError):
    """The provider accepted the request but rejected its content."""

    kind = "business_rejection"

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = [
            {k: scrub_tins(v) if isinstance(v, str) else v for k, v in e.items()}
            for e in (errors or [])
            if isinstance(e, dict)
        ]


class SemanticReviewError(TaxAgentError):
    """The semantic reviewer could not be reached or returned an unusable envelope."""


class WebhookSignatureError(TaxAgentError):
    """A callback failed signature verification."""


class WebhookPayloadError(TaxAgentError):
    """A correctly signed callback carried a malformed body."""

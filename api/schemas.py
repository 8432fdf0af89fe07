"""
Pydantic models for API request/response validation.

Filing requests reuse ``tax_agent.models.FilingRequest`` directly.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from tax_agent.models import FilingRequest


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationIssueSchema(BaseModel):
    field: str
    message: str
    severity: str = Field(..., pattern="^(error|warning|info)$")


class ValidationResponse(BaseModel):
    valid: bool
    issues: List[ValidationIssueSchema] = []
    summary: str
    reviewer: str


# =============================================================================
# FILING
# =============================================================================

class BatchFilingRequest(BaseModel):
    forms: List[FilingRequest] = Field(..., min_length=1)


class FilingResponse(BaseModel):
    success: bool
    validation: Optional[ValidationResponse] = None
    batch_validation: List[ValidationResponse] = []
    submission_id: Optional[str] = None
    status: Optional[str] = None
    records: List[Dict[str, Any]] = []
    error: Optional[str] = None
    error_kind: Optional[str] = None


# =============================================================================
# SUBMISSIONS
# =============================================================================

class SubmissionResponse(BaseModel):
    submission_id: str
    form_type: str
    status: str
    created_at: str
    updated_at: str
    records: List[Dict[str, Any]] = []


class CallbackResponse(BaseModel):
    received: bool = True
    submission_id: Optional[str] = None
    status: Optional[str] = None

"""
Data model for 1099-NEC filing requests, validation results and submissions.

Inbound requests are pydantic models: they enforce shape (types and enumerated
codes) only. Value rules such as "compensation must be positive" belong to the
structural validator so that every problem is reported as a ValidationIssue
instead of a parse failure.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple

from pydantic import BaseModel, Field, ConfigDict


# =============================================================================
# FILING REQUEST
# =============================================================================

class PartyIdentity(BaseModel):
    """Fields shared by payer and recipient."""
    model_config = ConfigDict(str_strip_whitespace=True)

    tin: str = Field(..., min_length=1, max_length=11)
    tin_type: str = Field(default="EIN", pattern="^(EIN|SSN)$")
    address: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., max_length=20)
    zip_code: str = Field(..., max_length=20)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=254)


class Payer(PartyIdentity):
    """The business issuing the 1099."""
    name: str = Field(..., min_length=1, max_length=200)
    business_type: str = Field(
        default="LLC", pattern="^(CORP|SCORP|PART|TRUST|LLC|EXEMPT|ESTE)$"
    )


class Recipient(PartyIdentity):
    """The payee receiving nonemployee compensation."""
    tin_type: str = Field(..., pattern="^(EIN|SSN)$")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class FilingRequest(BaseModel):
    """A single 1099-NEC filing request."""
    payer: Payer
    recipient: Recipient
    nonemployee_compensation: Decimal
    is_federal_tax_withheld: bool = False
    federal_tax_withheld: Optional[Decimal] = None
    is_state_filing: bool = False
    state: Optional[str] = Field(None, max_length=20)
    state_income: Optional[Decimal] = None
    state_tax_withheld: Optional[Decimal] = None
    tax_year: Optional[str] = Field(None, pattern=r"^\d{4}$")
    kind_of_employer: str = Field(
        default="NONEAPPLY",
        pattern="^(FEDERALGOVT|STATEGOVT|TRIBALGOVT|TAX_EXEMPT|NONEAPPLY)$",
    )
    kind_of_payer: str = Field(
        default="REGULAR941",
        pattern="^(REGULAR941|REGULAR944|AGRICULTURAL943|HOUSEHOLD|MILITARY|MEDICARE)$",
    )

    def effective_tax_year(self, today: Optional[datetime] = None) -> str:
        """Tax year as filed, defaulting to the current year."""
        if self.tax_year:
            return self.tax_year
        return str((today or datetime.now()).year)


# =============================================================================
# VALIDATION
# =============================================================================

SEVERITIES = ("error", "warning", "info")


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found in a filing request."""
    field: str
    message: str
    severity: str = "error"  # error, warning, info

    def __post_init__(self):
        if self.severity not in SEVERITIES:
            raise ValueError(f"Invalid severity: {self.severity!r}")

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message, "severity": self.severity}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one filing request. Never mutated after construction."""
    valid: bool
    issues: Tuple[ValidationIssue, ...]
    summary: str
    reviewer: str

    @classmethod
    def from_issues(cls, issues, summary: str, reviewer: str) -> "ValidationResult":
        issues = tuple(issues)
        valid = not any(i.severity == "error" for i in issues)
        return cls(valid=valid, issues=issues, summary=summary, reviewer=reviewer)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "issues": [i.to_dict() for i in self.issues],
            "summary": self.summary,
            "reviewer": self.reviewer,
        }


# =============================================================================
# SUBMISSIONS
# =============================================================================

class SubmissionStatus(Enum):
    """Lifecycle states of a submission."""
    CREATED = "CREATED"
    TRANSMITTED = "TRANSMITTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    PARTIAL = "PARTIAL"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionStatus.ACCEPTED, SubmissionStatus.REJECTED)


@dataclass
class SubmissionResult:
    """Result of a create / transmit / status call against the provider."""
    submission_id: str
    status: SubmissionStatus
    form_type: str = "FORM1099NEC"
    records: List[Dict[str, Any]] = field(default_factory=list)
    raw_response: Optional[Dict[str, Any]] = None

    def __repr__(self) -> str:
        return (
            f"<SubmissionResult submission={self.submission_id} "
            f"status={self.status.value} records={len(self.records)}>"
        )


@dataclass
class Submission:
    """A tracked submission as persisted by the submission tracker."""
    submission_id: str
    form_type: str
    status: SubmissionStatus
    created_at: str
    updated_at: str
    records: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "form_type": self.form_type,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "records": self.records,
        }

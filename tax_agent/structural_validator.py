"""
Structural validation for 1099-NEC filing requests.

Pure, synchronous format checks that run before any semantic review. Every
rule runs on every request so the caller sees all problems at once. Any
error-severity issue in the result means the request must not proceed to
semantic review; callers enforce that gate with ``has_errors``.

Messages never repeat a taxpayer identifier.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from .models import FilingRequest, PartyIdentity, ValidationIssue

# Valid US state codes (includes DC and territories)
VALID_STATE_CODES = {
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL",
    "GA", "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME",
    "MD", "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH",
    "NJ", "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI",
    "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI",
    "WY", "AS", "GU", "MP", "PR", "VI", "FM", "MH", "PW",
}

EIN_RE = re.compile(r"^\d{2}-\d{7}$")
SSN_RE = re.compile(r"^\d{9}$")
ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")

# IRS reporting threshold for nonemployee compensation
REPORTING_THRESHOLD = Decimal("600")

INVALID_STATE_MESSAGE = "State must be a two-letter US state or territory code"


def validate_tin(tin: str, tin_type: str) -> Optional[str]:
    """Return an error message if the TIN does not match its declared kind."""
    if tin_type == "EIN":
        if not EIN_RE.match(tin or ""):
            return "EIN must be in XX-XXXXXXX format"
    elif not SSN_RE.match(tin or ""):
        return "SSN must be exactly 9 digits with no dashes"
    return None


def _check_party(prefix: str, party: PartyIdentity, issues: List[ValidationIssue]) -> None:
    tin_error = validate_tin(party.tin, party.tin_type)
    if tin_error:
        issues.append(ValidationIssue(f"{prefix}.tin", tin_error))

    if party.state not in VALID_STATE_CODES:
        issues.append(ValidationIssue(
            f"{prefix}.state", INVALID_STATE_MESSAGE,
        ))

    if not ZIP_RE.match(party.zip_code or ""):
        issues.append(ValidationIssue(
            f"{prefix}.zip_code", "ZIP code must be 5 digits or ZIP+4 (NNNNN-NNNN)",
        ))

    if party.phone:
        digits = re.sub(r"\D", "", party.phone)
        if len(digits) != 10:
            issues.append(ValidationIssue(
                f"{prefix}.phone", f"Phone must have 10 digits (got {len(digits)})",
            ))


def _is_positive(amount: Optional[Decimal]) -> bool:
    return amount is not None and amount.is_finite() and amount > 0


def _is_negative(amount: Optional[Decimal]) -> bool:
    return amount is not None and amount.is_finite() and amount < 0


def validate_structure(request: FilingRequest, today: Optional[date] = None) -> List[ValidationIssue]:
    """
    Run every structural rule against a filing request.

    Args:
        request: The filing request to check
        today: Reference date for the tax-year rule (defaults to today)

    Returns:
        Ordered list of issues; empty when the request is clean
    """
    today = today or date.today()
    issues: List[ValidationIssue] = []

    _check_party("payer", request.payer, issues)
    _check_party("recipient", request.recipient, issues)

    compensation = request.nonemployee_compensation
    if not _is_positive(compensation):
        issues.append(ValidationIssue(
            "nonemployee_compensation", "Nonemployee compensation must be a positive amount",
        ))
    elif compensation < REPORTING_THRESHOLD:
        issues.append(ValidationIssue(
            "nonemployee_compensation",
            f"Compensation is below the ${REPORTING_THRESHOLD} reporting threshold; "
            "filing is optional",
            severity="info",
        ))

    if request.is_federal_tax_withheld and not _is_positive(request.federal_tax_withheld):
        issues.append(ValidationIssue(
            "federal_tax_withheld",
            "Federal tax withheld must be a positive amount when withholding is indicated",
        ))
    elif _is_negative(request.federal_tax_withheld):
        issues.append(ValidationIssue("federal_tax_withheld", "Federal tax withheld cannot be negative"))

    for name in ("state_income", "state_tax_withheld"):
        if _is_negative(getattr(request, name)):
            label = name.replace("_", " ").capitalize()
            issues.append(ValidationIssue(name, f"{label} cannot be negative"))

    if request.is_state_filing:
        if not request.state:
            issues.append(ValidationIssue("state", "State is required when state filing is enabled"))
        elif request.state not in VALID_STATE_CODES:
            issues.append(ValidationIssue("state", INVALID_STATE_MESSAGE))
        if request.state_income is None:
            issues.append(ValidationIssue(
                "state_income",
                "State income not provided; nonemployee compensation will be reported",
                severity="warning",
            ))

    current_year = today.year
    tax_year = request.tax_year or str(current_year)
    if tax_year not in (str(current_year), str(current_year - 1)):
        issues.append(ValidationIssue(
            "tax_year",
            f"Tax year should be {current_year - 1} or {current_year}",
            severity="warning",
        ))

    return issues


def has_errors(issues: Iterable[ValidationIssue]) -> bool:
    """True if any issue blocks the request."""
    return any(i.severity == "error" for i in issues)

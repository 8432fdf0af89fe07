"""
TaxBandits API client for 1099-NEC filing.

Provides a high-level interface to the TaxBandits REST API:
- Create a 1099-NEC submission (single recipient or batch)
- Transmit a submission to the IRS
- Check submission status

Every failure is classified before it leaves this module:
- HTTP 401/403, or an authentication rejection in the body  -> AuthFailure
- HTTP 429/5xx, connection errors, timeouts                  -> TransientFailure
- HTTP 200 with a body StatusCode >= 400, other HTTP 4xx     -> BusinessRejection
Only TransientFailure is retried.

Security notes:
- Never log request/response bodies (they contain TINs)
- Error messages are scrubbed of anything that looks like a TIN
"""

import logging
import time
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional

import requests

from .config import TaxBanditsConfig
from .errors import AuthFailure, BusinessRejection, TransientFailure
from .models import FilingRequest, SubmissionResult, SubmissionStatus
from .pii import normalize_tin
from .retry import RetryPolicy, call_with_retry
from .taxbandits_auth import TaxBanditsAuthenticator

# Configure logger - be careful about what gets logged
logger = logging.getLogger(__name__)

FORM_TYPE = "FORM1099NEC"
CREATE_PATH = "/Form1099NEC/Create"
TRANSMIT_PATH = "/Form1099NEC/Transmit"
STATUS_PATH = "/Form1099NEC/Status"

MAX_BATCH_SIZE = 100

# Record-level statuses reported by TaxBandits, mapped to our lifecycle
RECORD_STATUS_MAP = {
    "CREATED": SubmissionStatus.CREATED,
    "TRANSMITTED": SubmissionStatus.TRANSMITTED,
    "SENT": SubmissionStatus.TRANSMITTED,
    "ACCEPTED": SubmissionStatus.ACCEPTED,
    "REJECTED": SubmissionStatus.REJECTED,
}


# =============================================================================
# WIRE FORMAT
# =============================================================================

def to_wire_amount(amount: Decimal) -> str:
    """Convert an amount to the provider's two-decimal string format."""
    return f"{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):f}"


def _digits(value: Optional[str]) -> str:
    return "".join(c for c in (value or "") if c.isdigit())


def _build_business(first: FilingRequest) -> Dict[str, Any]:
    payer = first.payer
    return {
        "BusinessNm": payer.name,
        "EINorSSN": normalize_tin(payer.tin),
        "IsEIN": payer.tin_type == "EIN",
        "BusinessType": payer.business_type,
        "Phone": _digits(payer.phone),
        "Email": payer.email or "",
        "KindOfEmployer": first.kind_of_employer,
        "KindOfPayer": first.kind_of_payer,
        "IsBusinessTerminated": False,
        "IsForeignAddress": False,
        "USAddress": {
            "Address1": payer.address,
            "City": payer.city,
            "State": payer.state,
            "ZipCd": payer.zip_code,
        },
    }


def _build_return_data(data: FilingRequest) -> Dict[str, Any]:
    recipient = data.recipient
    form_data: Dict[str, Any] = {
        "B1NEC": to_wire_amount(data.nonemployee_compensation),
        "Is2ndTINnot": False,
        "IsDirectSales": False,
    }
    if data.is_federal_tax_withheld:
        form_data["B4FedTaxWH"] = to_wire_amount(data.federal_tax_withheld or Decimal("0"))
    if data.is_state_filing and data.state:
        state_income = data.state_income if data.state_income is not None else data.nonemployee_compensation
        form_data["States"] = [{
            "StateCd": data.state,
            "StateIncome": to_wire_amount(state_income),
            "StateTaxWithheld": to_wire_amount(data.state_tax_withheld or Decimal("0")),
        }]

    return {
        "SequenceId": f"seq-{uuid.uuid4().hex[:8]}",
        "Recipient": {
            "TINType": recipient.tin_type,
            "TIN": normalize_tin(recipient.tin),
            "FirstPayeeNm": recipient.full_name,
            "IsForeignAddress": False,
            "USAddress": {
                "Address1": recipient.address,
                "City": recipient.city,
                "State": recipient.state,
                "ZipCd": recipient.zip_code,
            },
        },
        "NECFormData": form_data,
    }


def build_batch_create_request(forms: List[FilingRequest]) -> Dict[str, Any]:
    """
    Build a TaxBandits create request for one or more recipients.

    All recipients share the payer of the first form; its tax year and
    employer/payer kinds are authoritative. State filing is enabled for
    the submission if any member files with a state.
    """
    if not forms:
        raise ValueError("At least one form is required")
    if len(forms) > MAX_BATCH_SIZE:
        raise ValueError(f"A batch can contain at most {MAX_BATCH_SIZE} forms")

    first = forms[0]
    return {
        "SubmissionManifest": {
            "TaxYear": first.effective_tax_year(),
            "IsFederalFiling": True,
            "IsStateFiling": any(f.is_state_filing for f in forms),
            "IsPostal": False,
            "IsOnlineAccess": False,
        },
        "ReturnHeader": {"Business": _build_business(first)},
        "ReturnData": [_build_return_data(f) for f in forms],
    }


def build_create_request(data: FilingRequest) -> Dict[str, Any]:
    """Build a TaxBandits create request for a single recipient."""
    return build_batch_create_request([data])


# =============================================================================
# RESPONSE HANDLING
# =============================================================================

def _summarize_errors(errors: List[Dict[str, Any]]) -> str:
    parts = []
    for error in errors[:5]:
        if not isinstance(error, dict):
            continue
        code = error.get("Code") or error.get("Id") or ""
        message = error.get("Message") or error.get("Name") or ""
        parts.append(f"{code} {message}".strip())
    return "; ".join(p for p in parts if p)


def _status_detail(response: requests.Response) -> str:
    """HTTP status plus any structured provider errors; the raw body is never echoed."""
    detail = f"HTTP {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        return detail
    if isinstance(data, dict):
        summary = _summarize_errors(data.get("Errors") or [])
        if summary:
            detail = f"{detail}: {summary}"
    return detail


def classify_response(response: requests.Response) -> Dict[str, Any]:
    """
    Turn a provider response into its JSON body or a classified error.

    Callers must not infer success from the HTTP status alone: TaxBandits
    reports business rejections inside a 200 response.
    """
    status = response.status_code
    if status in (401, 403):
        raise AuthFailure(f"Auth failed ({_status_detail(response)})")
    if status == 429 or status >= 500:
        raise TransientFailure(_status_detail(response), status=status)

    try:
        data = response.json()
    except ValueError:
        if status >= 400:
            raise BusinessRejection(f"HTTP {status}: response was not JSON", status_code=status)
        raise TransientFailure("Failed to parse API JSON", status=status)

    if not isinstance(data, dict):
        raise TransientFailure("Unexpected API response shape", status=status)

    errors = data.get("Errors") or []
    body_code = data.get("StatusCode")
    if isinstance(body_code, int) and body_code in (401, 403):
        raise AuthFailure(f"Auth rejected by provider ({body_code}): {_summarize_errors(errors)}")
    if isinstance(body_code, int) and body_code >= 400:
        raise BusinessRejection(
            f"Provider rejected request ({body_code}): "
            f"{_summarize_errors(errors) or data.get('StatusMessage') or 'no details'}",
            status_code=body_code,
            errors=errors,
        )
    if status >= 400:
        raise BusinessRejection(
            f"HTTP {status}: {_summarize_errors(errors) or data.get('StatusMessage') or 'no details'}",
            status_code=status,
            errors=errors,
        )
    return data


def _collect_records(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten the record list(s) in a create/transmit/status response."""
    records = data.get("Form1099Records")
    if isinstance(records, list):
        return [r for r in records if isinstance(r, dict)]
    if isinstance(records, dict):
        collected = []
        for key in ("SuccessRecords", "ErrorRecords"):
            collected.extend(r for r in records.get(key) or [] if isinstance(r, dict))
        return collected
    return []


def derive_status(records: List[Dict[str, Any]]) -> Optional[SubmissionStatus]:
    """
    Aggregate record outcomes into a submission status.

    Every record accepted -> ACCEPTED, every record rejected -> REJECTED,
    a mix of accepted and rejected (or decided and pending) -> PARTIAL.
    Returns None when no record has a decided outcome.
    """
    statuses = [RECORD_STATUS_MAP.get(str(r.get("Status", "")).upper()) for r in records]
    accepted = statuses.count(SubmissionStatus.ACCEPTED)
    rejected = statuses.count(SubmissionStatus.REJECTED)

    if accepted == 0 and rejected == 0:
        return None
    if accepted == len(statuses):
        return SubmissionStatus.ACCEPTED
    if rejected == len(statuses):
        return SubmissionStatus.REJECTED
    return SubmissionStatus.PARTIAL


# =============================================================================
# CLIENT
# =============================================================================

class TaxBanditsClient:
    """
    Client for TaxBandits 1099-NEC operations.

    Usage:
        config = load_taxbandits_config()
        client = TaxBanditsClient(config)

        created = client.create_filing(request)
        client.transmit(created.submission_id)
        status = client.get_status(created.submission_id)
    """

    def __init__(
        self,
        config: TaxBanditsConfig,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Optional[Callable[[], float]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize TaxBandits client.

        Args:
            config: TaxBanditsConfig instance with credentials and endpoints
            session: HTTP session (shared with the authenticator)
            sleep: Backoff sleep function
            jitter: Jitter draw in [0.5, 1.0] (random by default)
            clock: Source of the current Unix time for token expiry
        """
        self.config = config
        self._session = session or requests.Session()
        self._auth = TaxBanditsAuthenticator(config, session=self._session, clock=clock)
        self._sleep = sleep
        self._jitter = jitter
        self._policy = RetryPolicy(
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
        )

    def _request_once(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Make one authenticated request and classify the outcome."""
        token = self._auth.get_access_token()
        headers = {
            "Authorization": f"{token.token_type} {token.token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            logger.info(f"Making {method} request to {path}")
            response = self._session.request(
                method=method,
                url=f"{self.config.api_base_url}{path}",
                headers=headers,
                json=body,
                params=params,
                timeout=self.config.timeout,
            )
        except requests.exceptions.Timeout:
            logger.error("Request timed out")
            raise TransientFailure("TaxBandits API request timed out")
        except requests.exceptions.ConnectionError:
            logger.error("Connection error")
            raise TransientFailure("Failed to connect to TaxBandits API")
        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {type(e).__name__}")
            raise TransientFailure(f"TaxBandits API request failed: {type(e).__name__}")

        # Log status but NOT response body
        logger.debug(f"Response status: {response.status_code}")
        return classify_response(response)

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Make an authenticated request, retrying transient failures."""
        try:
            return call_with_retry(
                lambda: self._request_once(method, path, body, params),
                self._policy,
                sleep=self._sleep,
                jitter=self._jitter,
                description=f"{method} {path}",
            )
        except AuthFailure as e:
            logger.error(f"TaxBandits authentication failure, operator attention needed: {e}")
            raise

    def test_connection(self) -> bool:
        """Test API connectivity by forcing a token exchange."""
        logger.info(f"Testing connection to TaxBandits ({self.config.environment})...")
        return self._auth.test_authentication()

    def _create(self, body: Dict[str, Any], record_count: int) -> SubmissionResult:
        data = self._request("POST", CREATE_PATH, body=body)
        submission_id = data.get("SubmissionId")
        if not submission_id:
            raise BusinessRejection("Create response did not include a SubmissionId")

        records = _collect_records(data)
        logger.info(f"Created submission {submission_id} with {record_count} record(s)")
        return SubmissionResult(
            submission_id=submission_id,
            status=SubmissionStatus.CREATED,
            form_type=FORM_TYPE,
            records=records,
            raw_response=data,
        )

    def create_filing(self, request: FilingRequest) -> SubmissionResult:
        """
        Create a 1099-NEC form in TaxBandits.

        Returns:
            SubmissionResult with the provider-assigned SubmissionId

        Raises:
            FilingError: classified failure
        """
        return self._create(build_create_request(request), record_count=1)

    def create_batch(self, requests_: List[FilingRequest]) -> SubmissionResult:
        """
        Create multiple 1099-NEC forms in a single submission.

        All forms must share the same payer. Max 100 per batch.
        """
        return self._create(build_batch_create_request(requests_), record_count=len(requests_))

    def transmit(self, submission_id: str) -> SubmissionResult:
        """Transmit a submission to the IRS."""
        logger.info(f"Transmitting submission {submission_id}")
        data = self._request("POST", TRANSMIT_PATH, body={"SubmissionId": submission_id})
        return SubmissionResult(
            submission_id=data.get("SubmissionId") or submission_id,
            status=SubmissionStatus.TRANSMITTED,
            form_type=FORM_TYPE,
            records=_collect_records(data),
            raw_response=data,
        )

    def get_status(self, submission_id: str) -> SubmissionResult:
        """
        Check the filing status of a submission.

        The status is derived from the per-record outcomes; with no decided
        record the submission is reported as TRANSMITTED.
        """
        logger.info(f"Checking status for: {submission_id}")
        data = self._request("GET", STATUS_PATH, params={"SubmissionId": submission_id})
        records = _collect_records(data)
        return SubmissionResult(
            submission_id=data.get("SubmissionId") or submission_id,
            status=derive_status(records) or SubmissionStatus.TRANSMITTED,
            form_type=data.get("FormType") or FORM_TYPE,
            records=records,
            raw_response=data,
        )


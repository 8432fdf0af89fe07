"""
TaxBandits status callback handling.

TaxBandits signs each callback with HMAC-SHA256 over
``"{client_id}\\n{timestamp}"`` using the client secret, base64-encoded into
the ``Signature`` header alongside a ``Timestamp`` header.

The signature is verified before the body is parsed and before anything is
written; a callback that fails verification never changes stored state.
"""

import base64
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import WebhookPayloadError, WebhookSignatureError
from .models import Submission, SubmissionStatus
from .submission_tracker import SubmissionTracker
from .taxbandits_client import derive_status

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Signature"
TIMESTAMP_HEADER = "Timestamp"


def compute_signature(client_id: str, secret: str, timestamp: str) -> str:
    """base64(HMAC-SHA256(secret, client_id + "\\n" + timestamp))"""
    message = f"{client_id}\n{timestamp}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(client_id: str, secret: str, signature: Optional[str], timestamp: Optional[str]) -> bool:
    """Constant-time check of a callback signature."""
    if not signature or not timestamp:
        return False
    expected = compute_signature(client_id, secret, timestamp)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8", "replace"))


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def parse_callback_payload(body: Union[bytes, str, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Decode and shape-check a callback body.

    Raises:
        WebhookPayloadError: If the body is not JSON or lacks
            SubmissionId, FormType or a Records array
    """
    if isinstance(body, (bytes, str)):
        try:
            payload = json.loads(body)
        except ValueError:
            raise WebhookPayloadError("Callback body is not valid JSON")
    else:
        payload = body

    if not isinstance(payload, dict):
        raise WebhookPayloadError("Callback body must be a JSON object")
    if not isinstance(payload.get("SubmissionId"), str) or not payload["SubmissionId"]:
        raise WebhookPayloadError("Callback is missing SubmissionId")
    if not isinstance(payload.get("FormType"), str):
        raise WebhookPayloadError("Callback is missing FormType")
    if not isinstance(payload.get("Records"), list):
        raise WebhookPayloadError("Callback is missing a Records array")
    return payload


class CallbackHandler:
    """
    Verifies and applies TaxBandits status callbacks.

    Usage:
        handler = CallbackHandler(config.client_id, config.client_secret, tracker)
        submission = handler.handle(request.headers, await request.body())
    """

    def __init__(self, client_id: str, secret: str, tracker: SubmissionTracker):
        self._client_id = client_id
        self._secret = secret
        self._tracker = tracker

    def handle(self, headers: Mapping[str, str], body: Union[bytes, str]) -> Optional[Submission]:
        """
        Verify, parse and record one callback.

        Returns:
            The stored submission after the update

        Raises:
            WebhookSignatureError: Signature missing or wrong (nothing written)
            WebhookPayloadError: Signed body is malformed (nothing written)
        """
        signature = _header(headers, SIGNATURE_HEADER)
        timestamp = _header(headers, TIMESTAMP_HEADER)
        if not verify_signature(self._client_id, self._secret, signature, timestamp):
            logger.warning("Rejected callback with missing or invalid signature")
            raise WebhookSignatureError("Invalid callback signature")

        payload = parse_callback_payload(body)
        submission_id = payload["SubmissionId"]
        records: List[Dict[str, Any]] = [r for r in payload["Records"] if isinstance(r, dict)]

        status = derive_status(records)
        if status is None:
            current = self._tracker.get_submission(submission_id)
            status = current.status if current else SubmissionStatus.TRANSMITTED
            logger.info(f"Callback for {submission_id} has no decided records; keeping {status.value}")

        self._tracker.update_status(submission_id, status, records, form_type=payload["FormType"])
        logger.info(f"Callback applied: {submission_id} -> {status.value} ({len(records)} record(s))")
        return self._tracker.get_submission(submission_id)

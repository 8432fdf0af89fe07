"""
1099-NEC Filing Agent

Validates 1099-NEC filing requests and files them through TaxBandits.

Modules:
    config: Configuration management via environment variables
    structural_validator: Format checks that gate everything else
    semantic_reviewer: Advisory LLM review (fails closed)
    taxbandits_client: Filing client with classified errors and retry
    submission_tracker: Submission lifecycle persistence
    webhook: Signed status callback handling
    orchestrator: Validate, file, track

Usage:
    from tax_agent.config import load_taxbandits_config, load_reviewer_config
    from tax_agent.orchestrator import FilingAgent

    agent = FilingAgent(
        TaxBanditsClient(load_taxbandits_config()),
        SemanticReviewer(load_reviewer_config()),
        SubmissionTracker(),
    )
    outcome = await agent.file(request)
"""

from .config import TaxBanditsConfig, ReviewerConfig, load_taxbandits_config, load_reviewer_config
from .errors import AuthFailure, BusinessRejection, FilingError, TransientFailure
from .models import FilingRequest, Payer, Recipient, SubmissionStatus, ValidationIssue, ValidationResult
from .orchestrator import FilingAgent, FilingOutcome
from .semantic_reviewer import SemanticReviewer
from .submission_tracker import SubmissionTracker
from .taxbandits_client import TaxBanditsClient

__all__ = [
    # Config
    "TaxBanditsConfig",
    "ReviewerConfig",
    "load_taxbandits_config",
    "load_reviewer_config",
    # Errors
    "FilingError",
    "AuthFailure",
    "TransientFailure",
    "BusinessRejection",
    # Models
    "FilingRequest",
    "Payer",
    "Recipient",
    "SubmissionStatus",
    "ValidationIssue",
    "ValidationResult",
    # Services
    "FilingAgent",
    "FilingOutcome",
    "SemanticReviewer",
    "SubmissionTracker",
    "TaxBanditsClient",
]

__version__ = "0.1.0"

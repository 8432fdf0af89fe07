"""
FastAPI dependencies for the filing routes.

Services are built lazily from the environment on first use and reused for
the life of the process. Tests replace them with ``app.dependency_overrides``.
"""

import logging
from typing import Optional

from fastapi import HTTPException

from tax_agent.config import load_reviewer_config, load_taxbandits_config
from tax_agent.orchestrator import FilingAgent
from tax_agent.semantic_reviewer import SemanticReviewer
from tax_agent.submission_tracker import SubmissionTracker
from tax_agent.taxbandits_client import TaxBanditsClient
from tax_agent.webhook import CallbackHandler

logger = logging.getLogger(__name__)

# Global instances (lazy initialization)
_client: Optional[TaxBanditsClient] = None
_reviewer: Optional[SemanticReviewer] = None
_agent: Optional[FilingAgent] = None
_tracker: Optional[SubmissionTracker] = None
_callback_handler: Optional[CallbackHandler] = None


def get_tracker() -> SubmissionTracker:
    """Shared submission tracker backed by the service-role Supabase client."""
    global _tracker

    if _tracker is None:
        _tracker = SubmissionTracker()
    return _tracker


def get_taxbandits_client() -> Optional[TaxBanditsClient]:
    """Shared TaxBandits client, or None when credentials are not configured."""
    global _client

    if _client is None:
        try:
            _client = TaxBanditsClient(load_taxbandits_config())
        except ValueError as e:
            logger.error(f"TaxBandits is not configured: {e}")
            return None
    return _client


def get_reviewer() -> Optional[SemanticReviewer]:
    """Shared semantic reviewer, or None when the reviewer is not configured."""
    global _reviewer

    if _reviewer is None:
        try:
            _reviewer = SemanticReviewer(load_reviewer_config())
        except ValueError as e:
            logger.error(f"Semantic reviewer is not configured: {e}")
            return None
    return _reviewer


def get_agent() -> FilingAgent:
    """Shared filing agent; 503 if the service is not configured."""
    global _agent

    if _agent is None:
        client = get_taxbandits_client()
        reviewer = get_reviewer()
        if client is None or reviewer is None:
            raise HTTPException(status_code=503, detail="Filing service is not configured")
        _agent = FilingAgent(client, reviewer, get_tracker())
    return _agent


def get_callback_handler() -> CallbackHandler:
    """Shared callback handler using the TaxBandits client credentials."""
    global _callback_handler

    if _callback_handler is None:
        try:
            config = load_taxbandits_config()
        except ValueError as e:
            logger.error(f"Callback verification is not configured: {e}")
            raise HTTPException(status_code=503, detail="Callback verification is not configured")
        _callback_handler = CallbackHandler(config.client_id, config.client_secret, get_tracker())
    return _callback_handler


def reset_dependencies() -> None:
    """Drop cached services (useful for testing)."""
    global _client, _reviewer, _agent, _tracker, _callback_handler
    _client = None
    _reviewer = None
    _agent = None
    _tracker = None
    _callback_handler = None

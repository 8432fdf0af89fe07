"""
Tax Agent FastAPI Backend.

Main application entry point.
Run with: uvicorn api.main:app --reload --port 8002
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tax_agent.config import configure_logging, load_dotenv_file, load_taxbandits_config
from tax_agent.errors import FilingError
from tax_agent.semantic_reviewer import SemanticReviewer
from tax_agent.taxbandits_client import TaxBanditsClient

from .dependencies import get_reviewer, get_taxbandits_client
from .routers import efile, webhook

load_dotenv_file()
configure_logging()

# Logger for startup info
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    # === STARTUP ===
    logger.info("=" * 60)
    logger.info("Tax Agent starting up...")

    # Log TaxBandits configuration (for debugging auth issues)
    try:
        config = load_taxbandits_config()
        logger.info(f"TaxBandits Environment: {config.environment}")
        logger.info(f"TaxBandits API: {config.api_base_url}")
        logger.info(f"TaxBandits OAuth: {config.oauth_url}")
        logger.info(f"TaxBandits Client ID: {config.client_id[:8]}...")
    except ValueError as e:
        logger.warning(f"Could not load TaxBandits config on startup: {e}")

    logger.info("=" * 60)

    yield

    # === SHUTDOWN ===
    logger.info("Tax Agent shutting down...")


app = FastAPI(
    title="Tax Agent API",
    description="1099-NEC validation and e-filing through TaxBandits",
    version="0.1.0",
    lifespan=lifespan,
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


app.add_middleware(SecurityHeadersMiddleware)

# Include API routers
app.include_router(efile.router, tags=["E-Filing"])
app.include_router(webhook.router, prefix="/webhook", tags=["Webhooks"])


@app.get("/health")
async def health(
    client: Optional[TaxBanditsClient] = Depends(get_taxbandits_client),
    reviewer: Optional[SemanticReviewer] = Depends(get_reviewer),
):
    """
    Health check for monitoring.

    Reports which services are configured and whether TaxBandits accepts our
    credentials. Returns 503 when any check fails.
    """
    checks = {
        "taxbandits_configured": client is not None,
        "reviewer_configured": reviewer is not None,
        "taxbandits_auth": False,
    }
    if client is not None:
        try:
            checks["taxbandits_auth"] = await asyncio.to_thread(client.test_connection)
        except FilingError as e:
            logger.warning(f"Health check: TaxBandits authentication failed ({e.kind}): {e}")

    healthy = all(checks.values())
    body = {"status": "healthy" if healthy else "unhealthy", "checks": checks}
    if client is not None:
        body["environment"] = client.config.environment
    return JSONResponse(content=body, status_code=200 if healthy else 503)

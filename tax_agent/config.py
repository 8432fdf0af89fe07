"""
Configuration module for the tax agent.

Loads settings from environment variables with sensible defaults for the
TaxBandits sandbox environment.
Never logs or exposes sensitive values like client secrets or API keys.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

# TaxBandits endpoints
TAXBANDITS_API_VERSION = "v1.7.3"
SANDBOX_API_URL = f"https://testapi.taxbandits.com/{TAXBANDITS_API_VERSION}"
SANDBOX_OAUTH_URL = "https://testoauth.expressauth.net/v2/tbsauth"
PROD_API_URL = f"https://api.taxbandits.com/{TAXBANDITS_API_VERSION}"
PROD_OAUTH_URL = "https://oauth.expressauth.net/v2/tbsauth"

DEFAULT_REVIEWER_MODEL = "gpt-4o-mini"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass(frozen=True)
class TaxBanditsConfig:
    """Immutable configuration for TaxBandits API integration."""

    client_id: str
    client_secret: str
    user_token: str

    # API endpoints
    api_base_url: str
    oauth_url: str

    # Environment identifier
    environment: str = "sandbox"

    # Per-request timeout in seconds
    timeout: float = 30.0

    # Retry policy for transient failures
    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0

    def __post_init__(self):
        """Validate configuration on creation."""
        if not self.client_id:
            raise ValueError("TAXBANDITS_CLIENT_ID environment variable is required")
        if not self.client_secret:
            raise ValueError("TAXBANDITS_CLIENT_SECRET environment variable is required")
        if not self.user_token:
            raise ValueError("TAXBANDITS_USER_TOKEN environment variable is required")
        if self.environment not in ("sandbox", "production"):
            raise ValueError(
                f"Invalid TAXBANDITS_ENV: {self.environment}. Must be 'sandbox' or 'production'."
            )
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")

    def __repr__(self) -> str:
        """Safe repr that doesn't expose credentials."""
        return (
            f"<TaxBanditsConfig env={self.environment} "
            f"client_id={self.client_id[:4]}... api={self.api_base_url}>"
        )


@dataclass(frozen=True)
class ReviewerConfig:
    """Configuration for the semantic review (chat completion) service."""

    endpoint: str
    api_key: str
    model: str = DEFAULT_REVIEWER_MODEL
    timeout: float = 30.0
    temperature: float = 0.1
    max_tokens: int = 1024

    def __post_init__(self):
        if not self.endpoint:
            raise ValueError("REVIEWER_ENDPOINT environment variable is required")
        if not self.api_key:
            raise ValueError("REVIEWER_API_KEY environment variable is required")

    def __repr__(self) -> str:
        return f"<ReviewerConfig model={self.model} endpoint={self.endpoint}>"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_taxbandits_config() -> TaxBanditsConfig:
    """
    Load TaxBandits configuration from environment variables.

    Required environment variables:
        TAXBANDITS_CLIENT_ID: Client ID from the TaxBandits developer console
        TAXBANDITS_CLIENT_SECRET: Client secret (also signs webhook callbacks)
        TAXBANDITS_USER_TOKEN: User token used as the JWS audience

    Optional environment variables:
        TAXBANDITS_ENV: "sandbox" or "production" (default: sandbox)
        TAXBANDITS_API_URL: Override the API base URL
        TAXBANDITS_OAUTH_URL: Override the OAuth endpoint
        TAXBANDITS_TIMEOUT: Request timeout in seconds (default: 30)

    Returns:
        TaxBanditsConfig: Validated configuration object

    Raises:
        ValueError: If required environment variables are missing
    """
    environment = os.environ.get("TAXBANDITS_ENV", "sandbox").lower()

    if environment == "production":
        default_api_url, default_oauth_url = PROD_API_URL, PROD_OAUTH_URL
    else:
        default_api_url, default_oauth_url = SANDBOX_API_URL, SANDBOX_OAUTH_URL

    return TaxBanditsConfig(
        client_id=os.environ.get("TAXBANDITS_CLIENT_ID", ""),
        client_secret=os.environ.get("TAXBANDITS_CLIENT_SECRET", ""),
        user_token=os.environ.get("TAXBANDITS_USER_TOKEN", ""),
        api_base_url=os.environ.get("TAXBANDITS_API_URL", default_api_url),
        oauth_url=os.environ.get("TAXBANDITS_OAUTH_URL", default_oauth_url),
        environment=environment,
        timeout=_env_float("TAXBANDITS_TIMEOUT", 30.0),
    )


def load_reviewer_config() -> ReviewerConfig:
    """
    Load semantic reviewer configuration from environment variables.

    Required environment variables:
        REVIEWER_ENDPOINT: Chat completions URL (OpenAI-compatible)
        REVIEWER_API_KEY: API key for the endpoint

    Optional environment variables:
        REVIEWER_MODEL: Model name (default: gpt-4o-mini)
        REVIEWER_TIMEOUT: Request timeout in seconds (default: 30)
    """
    return ReviewerConfig(
        endpoint=os.environ.get("REVIEWER_ENDPOINT", ""),
        api_key=os.environ.get("REVIEWER_API_KEY", ""),
        model=os.environ.get("REVIEWER_MODEL", DEFAULT_REVIEWER_MODEL),
        timeout=_env_float("REVIEWER_TIMEOUT", 30.0),
    )


def load_dotenv_file(dotenv_path: Optional[Path] = None) -> None:
    """
    Read a .env file into the process environment.

    Args:
        dotenv_path: Path to .env file. Defaults to project root/.env
    """
    from dotenv import load_dotenv

    if dotenv_path is None:
        dotenv_path = Path(__file__).parent.parent / ".env"

    load_dotenv(dotenv_path)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging for scripts and the API server."""
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")

"""
TaxBandits authentication module.

Implements the TaxBandits JWS client-assertion flow:
1. Client creates a JWT (HS256) signed with its client secret
2. JWT is sent to the OAuth endpoint in the "Authentication" header (GET)
3. TaxBandits returns a bearer token valid for about an hour

Tokens are cached process-wide and refreshed proactively a fixed margin
before they expire, not reactively after a 401.

Security notes:
- Never log tokens, assertions or the client secret
"""

import time
import logging
import threading
from typing import Callable, Dict, Optional
from dataclasses import dataclass

import jwt
import requests

from .config import TaxBanditsConfig
from .errors import AuthFailure, TransientFailure

# Configure logger - NEVER log tokens or secrets
logger = logging.getLogger(__name__)

# Refresh this many seconds before the provider's hard expiry
TOKEN_REFRESH_BUFFER = 300

# Process-wide token cache, keyed by client ID
_token_cache: Dict[str, "AccessToken"] = {}
_token_lock = threading.Lock()


@dataclass
class AccessToken:
    """Represents a TaxBandits API access token."""
    token: str
    expires_at: float  # Unix timestamp of hard expiry
    token_type: str = "Bearer"

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if token is expired (with refresh buffer)."""
        now = time.time() if now is None else now
        return now >= (self.expires_at - TOKEN_REFRESH_BUFFER)

    def __repr__(self) -> str:
        """Safe repr that doesn't expose token value."""
        status = "expired" if self.is_expired() else "valid"
        return f"<AccessToken type={self.token_type} status={status}>"


def reset_token_cache() -> None:
    """Drop all cached tokens (useful for testing)."""
    with _token_lock:
        _token_cache.clear()


class TaxBanditsAuthenticator:
    """
    Handles TaxBandits authentication using JWS client assertions.

    Usage:
        config = load_taxbandits_config()
        auth = TaxBanditsAuthenticator(config)
        token = auth.get_access_token()
        # Use token.token in Authorization header
    """

    def __init__(
        self,
        config: TaxBanditsConfig,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize authenticator with configuration.

        Args:
            config: TaxBanditsConfig instance with credentials and endpoints
            session: HTTP session to use (defaults to a new requests.Session)
            clock: Source of the current Unix time
        """
        self.config = config
        self._session = session or requests.Session()
        self._clock = clock

    def create_client_assertion(self) -> str:
        """
        Create a signed JWS for the OAuth request.

        Claims:
        - iss / sub: Client ID
        - aud: User token
        - iat: Current time

        Returns:
            str: Signed JWT assertion

        Raises:
            AuthFailure: If JWT creation fails
        """
        claims = {
            "iss": self.config.client_id,
            "sub": self.config.client_id,
            "aud": self.config.user_token,
            "iat": int(self._clock()),
        }

        try:
            return jwt.encode(claims, self.config.client_secret, algorithm="HS256")
        except jwt.PyJWTError as e:
            # Don't log JWT or key details
            raise AuthFailure(f"Failed to create client assertion: {type(e).__name__}")

    def _request_token(self, assertion: str) -> AccessToken:
        """
        Exchange client assertion for access token.

        Raises:
            AuthFailure: If the credentials are rejected
            TransientFailure: On network errors, 429 or 5xx
        """
        try:
            logger.info(f"Requesting token from {self.config.oauth_url}")
            response = self._session.get(
                self.config.oauth_url,
                headers={"Authentication": assertion, "Accept": "application/json"},
                timeout=self.config.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error during token request: {type(e).__name__}")
            raise TransientFailure(f"Token request failed: {type(e).__name__}")

        if response.status_code in (401, 403):
            # Log status but NOT response body
            logger.error(f"Token request rejected: HTTP {response.status_code}")
            raise AuthFailure(f"Token request rejected with status {response.status_code}")
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(f"Token request failed: HTTP {response.status_code}")
            raise TransientFailure(
                f"Token request failed with status {response.status_code}",
                status=response.status_code,
            )
        if response.status_code != 200:
            logger.error(f"Token request failed: HTTP {response.status_code}")
            raise AuthFailure(f"Token request failed with status {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise TransientFailure("Token response was not valid JSON", status=response.status_code)

        if data.get("StatusCode") != 200 or not data.get("AccessToken"):
            raise AuthFailure(
                f"OAuth error: {data.get('StatusMessage') or 'no access token in response'}"
            )

        expires_in = int(data.get("ExpiresIn") or 3600)
        token = AccessToken(
            token=data["AccessToken"],
            expires_at=self._clock() + expires_in,
            token_type=data.get("TokenType") or "Bearer",
        )
        logger.info(f"Token obtained successfully, expires in {expires_in}s")
        return token

    def get_access_token(self, force_refresh: bool = False) -> AccessToken:
        """
        Get a valid access token, refreshing if necessary.

        The refresh runs under a process-wide lock so concurrent callers
        share a single exchange.

        Args:
            force_refresh: If True, always request new token

        Raises:
            AuthFailure: If authentication fails
            TransientFailure: If the OAuth endpoint is temporarily unavailable
        """
        key = self.config.client_id
        with _token_lock:
            cached = _token_cache.get(key)
            if not force_refresh and cached and not cached.is_expired(self._clock()):
                logger.debug("Using cached access token")
                return cached

            logger.info("Obtaining new access token...")
            token = self._request_token(self.create_client_assertion())
            _token_cache[key] = token
            return token

    def test_authentication(self) -> bool:
        """
        Test authentication by requesting a fresh token.

        Raises:
            AuthFailure: If authentication fails
        """
        logger.info("Testing TaxBandits authentication...")
        try:
            token = self.get_access_token(force_refresh=True)
            logger.info(f"Authentication test passed: {token}")
            return True
        except AuthFailure:
            logger.error("Authentication test failed")
            raise

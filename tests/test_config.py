"""Tests for environment configuration."""

import logging

import pytest

from tax_agent.config import (
    DEFAULT_REVIEWER_MODEL,
    PROD_API_URL,
    PROD_OAUTH_URL,
    SANDBOX_API_URL,
    SANDBOX_OAUTH_URL,
    TaxBanditsConfig,
    configure_logging,
    load_reviewer_config,
    load_taxbandits_config,
)

TAXBANDITS_VARS = (
    "TAXBANDITS_CLIENT_ID", "TAXBANDITS_CLIENT_SECRET", "TAXBANDITS_USER_TOKEN", "TAXBANDITS_ENV",
    "TAXBANDITS_API_URL", "TAXBANDITS_OAUTH_URL", "TAXBANDITS_TIMEOUT",
)
REVIEWER_VARS = ("REVIEWER_ENDPOINT", "REVIEWER_API_KEY", "REVIEWER_MODEL", "REVIEWER_TIMEOUT")


@pytest.fixture
def clean_env(monkeypatch):
    for name in TAXBANDITS_VARS + REVIEWER_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def credentials(clean_env):
    clean_env.setenv("TAXBANDITS_CLIENT_ID", "cid")
    clean_env.setenv("TAXBANDITS_CLIENT_SECRET", "csecret")
    clean_env.setenv("TAXBANDITS_USER_TOKEN", "utoken")
    return clean_env


class TestTaxBanditsConfig:
    def test_sandbox_defaults(self, credentials):
        config = load_taxbandits_config()

        assert config.environment == "sandbox"
        assert config.api_base_url == SANDBOX_API_URL
        assert config.oauth_url == SANDBOX_OAUTH_URL
        assert config.timeout == 30.0
        assert config.max_retries == 3

    def test_production(self, credentials):
        credentials.setenv("TAXBANDITS_ENV", "production")
        config = load_taxbandits_config()

        assert config.api_base_url == PROD_API_URL
        assert config.oauth_url == PROD_OAUTH_URL

    def test_overrides(self, credentials):
        credentials.setenv("TAXBANDITS_API_URL", "https://api.local")
        credentials.setenv("TAXBANDITS_OAUTH_URL", "https://oauth.local")
        credentials.setenv("TAXBANDITS_TIMEOUT", "12.5")
        config = load_taxbandits_config()

        assert config.api_base_url == "https://api.local"
        assert config.oauth_url == "https://oauth.local"
        assert config.timeout == 12.5

    @pytest.mark.parametrize("missing", ["TAXBANDITS_CLIENT_ID", "TAXBANDITS_CLIENT_SECRET", "TAXBANDITS_USER_TOKEN"])
    def test_required(self, credentials, missing):
        credentials.delenv(missing)
        with pytest.raises(ValueError, match=missing):
            load_taxbandits_config()

    def test_invalid_environment(self, credentials):
        credentials.setenv("TAXBANDITS_ENV", "staging")
        with pytest.raises(ValueError):
            load_taxbandits_config()

    def test_invalid_timeout(self, credentials):
        credentials.setenv("TAXBANDITS_TIMEOUT", "soon")
        with pytest.raises(ValueError):
            load_taxbandits_config()

    def test_repr_hides_secrets(self):
        config = TaxBanditsConfig(
            client_id="client-id-123", client_secret="very-secret", user_token="user-token",
            api_base_url="https://api", oauth_url="https://oauth",
        )
        assert "very-secret" not in repr(config)
        assert "user-token" not in repr(config)


class TestReviewerConfig:
    def test_load(self, clean_env):
        clean_env.setenv("REVIEWER_ENDPOINT", "https://llm/v1/chat/completions")
        clean_env.setenv("REVIEWER_API_KEY", "sk-123")
        config = load_reviewer_config()

        assert config.model == DEFAULT_REVIEWER_MODEL
        assert "sk-123" not in repr(config)

    def test_required(self, clean_env):
        clean_env.setenv("REVIEWER_ENDPOINT", "https://llm/v1/chat/completions")
        with pytest.raises(ValueError):
            load_reviewer_config()


def test_configure_logging_is_safe_to_call():
    configure_logging(logging.DEBUG)
    logging.getLogger("tax_agent").debug("configured")

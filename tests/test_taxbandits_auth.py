"""Tests for TaxBandits JWS authentication and the token cache."""

import jwt
import pytest
import requests

from tax_agent.errors import AuthFailure, TransientFailure
from tax_agent.taxbandits_auth import TOKEN_REFRESH_BUFFER, AccessToken, TaxBanditsAuthenticator

from conftest import FakeSession, make_response, token_response


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestClientAssertion:
    def test_claims_and_signature(self, tb_config):
        auth = TaxBanditsAuthenticator(tb_config, session=FakeSession(), clock=FakeClock())
        assertion = auth.create_client_assertion()

        claims = jwt.decode(
            assertion, tb_config.client_secret, algorithms=["HS256"], audience=tb_config.user_token,
        )
        assert claims["iss"] == tb_config.client_id
        assert claims["sub"] == tb_config.client_id
        assert claims["iat"] == 1_700_000_000


class TestAccessToken:
    def test_expires_within_buffer(self):
        token = AccessToken(token="t", expires_at=1000.0)

        assert not token.is_expired(now=1000.0 - TOKEN_REFRESH_BUFFER - 1)
        assert token.is_expired(now=1000.0 - TOKEN_REFRESH_BUFFER)

    def test_repr_hides_token(self):
        assert "secret-token" not in repr(AccessToken(token="secret-token", expires_at=0))


class TestGetAccessToken:
    def test_token_exchange_uses_authentication_header(self, tb_config):
        session = FakeSession()
        token = TaxBanditsAuthenticator(tb_config, session=session, clock=FakeClock()).get_access_token()

        assert token.token == "access-token-value"
        assert session.token_calls[0]["url"] == tb_config.oauth_url
        assert "Authentication" in session.token_calls[0]["headers"]

    def test_cached_until_refresh_window(self, tb_config):
        session = FakeSession()
        clock = FakeClock()
        auth = TaxBanditsAuthenticator(tb_config, session=session, clock=clock)

        auth.get_access_token()
        clock.now += 3600 - TOKEN_REFRESH_BUFFER - 1
        auth.get_access_token()
        assert len(session.token_calls) == 1

        clock.now += 1
        auth.get_access_token()
        assert len(session.token_calls) == 2

    def test_cache_shared_across_instances(self, tb_config):
        session = FakeSession()
        clock = FakeClock()

        TaxBanditsAuthenticator(tb_config, session=session, clock=clock).get_access_token()
        TaxBanditsAuthenticator(tb_config, session=session, clock=clock).get_access_token()

        assert len(session.token_calls) == 1

    def test_force_refresh(self, tb_config):
        session = FakeSession()
        auth = TaxBanditsAuthenticator(tb_config, session=session, clock=FakeClock())

        auth.get_access_token()
        auth.get_access_token(force_refresh=True)
        assert len(session.token_calls) == 2

    @pytest.mark.parametrize("status", [401, 403])
    def test_http_auth_rejection(self, tb_config, status):
        session = FakeSession(token_responses=[make_response(status, {"Message": "nope"})])
        with pytest.raises(AuthFailure):
            TaxBanditsAuthenticator(tb_config, session=session).get_access_token()

    def test_body_status_code_rejection(self, tb_config):
        session = FakeSession(token_responses=[
            make_response(200, {"StatusCode": 401, "StatusMessage": "Invalid credentials"}),
        ])
        with pytest.raises(AuthFailure):
            TaxBanditsAuthenticator(tb_config, session=session).get_access_token()

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_server_errors_are_transient(self, tb_config, status):
        session = FakeSession(token_responses=[make_response(status, text="busy")])
        with pytest.raises(TransientFailure):
            TaxBanditsAuthenticator(tb_config, session=session).get_access_token()

    def test_network_error_is_transient(self, tb_config):
        session = FakeSession(token_responses=[requests.exceptions.ConnectionError("down")])
        with pytest.raises(TransientFailure):
            TaxBanditsAuthenticator(tb_config, session=session).get_access_token()

    def test_test_authentication(self, tb_config):
        session = FakeSession(token_responses=[token_response()])
        assert TaxBanditsAuthenticator(tb_config, session=session).test_authentication() is True

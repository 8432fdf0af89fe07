"""Tests for the HTTP adapter."""

from datetime import date
from decimal import Decimal

import httpx
import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from api.dependencies import (
    get_agent,
    get_callback_handler,
    get_reviewer,
    get_taxbandits_client,
    get_tracker,
    reset_dependencies,
)
from api.main import app
from tax_agent.orchestrator import FilingAgent
from tax_agent.semantic_reviewer import SemanticReviewer
from tax_agent.taxbandits_client import TaxBanditsClient
from tax_agent.webhook import CallbackHandler, compute_signature

from conftest import FakeSession, make_request, make_response

CLEAN_REVIEW = {"choices": [{"message": {"content": '{"issues": [], "summary": "No problems found"}'}}]}
CREATED = {"StatusCode": 200, "SubmissionId": "sub-0001", "Form1099Records": {"SuccessRecords": []}}


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def api(tb_config, reviewer_config, tracker, session):
    client = TaxBanditsClient(tb_config, session=session, sleep=lambda s: None, jitter=lambda: 1.0)
    reviewer = SemanticReviewer(
        reviewer_config, transport=httpx.MockTransport(lambda r: httpx.Response(200, json=CLEAN_REVIEW)),
    )
    agent = FilingAgent(client, reviewer, tracker, today=lambda: date(2025, 3, 1))
    handler = CallbackHandler(tb_config.client_id, tb_config.client_secret, tracker)

    app.dependency_overrides[get_agent] = lambda: agent
    app.dependency_overrides[get_tracker] = lambda: tracker
    app.dependency_overrides[get_callback_handler] = lambda: handler
    app.dependency_overrides[get_taxbandits_client] = lambda: client
    app.dependency_overrides[get_reviewer] = lambda: reviewer
    yield TestClient(app)
    app.dependency_overrides.clear()
    reset_dependencies()


def payload(**overrides):
    return make_request(**overrides).model_dump(mode="json")


class TestEfileRoutes:
    def test_health(self, api, session):
        response = api.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "checks": {"taxbandits_configured": True, "reviewer_configured": True, "taxbandits_auth": True},
            "environment": "sandbox",
        }
        assert len(session.token_calls) == 1

    def test_health_rejected_credentials(self, api, session):
        session.token_responses.append(make_response(401, {"Message": "invalid"}))
        response = api.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["checks"]["taxbandits_auth"] is False

    def test_health_missing_configuration(self, api):
        app.dependency_overrides[get_taxbandits_client] = lambda: None
        app.dependency_overrides[get_reviewer] = lambda: None
        response = api.get("/health")

        assert response.status_code == 503
        assert response.json() == {
            "status": "unhealthy",
            "checks": {"taxbandits_configured": False, "reviewer_configured": False, "taxbandits_auth": False},
        }

    def test_validate(self, api):
        response = api.post("/validate", json=payload())

        assert response.status_code == 200
        assert response.json()["valid"] is True

    def test_validate_reports_structural_errors(self, api):
        response = api.post("/validate", json=payload(nonemployee_compensation=Decimal("-100")))

        body = response.json()
        assert body["valid"] is False
        assert body["reviewer"] == "none (structural checks only)"

    def test_malformed_request_is_422(self, api):
        assert api.post("/validate", json={"payer": {}}).status_code == 422

    def test_file(self, api, session, tracker):
        session.responses.append(make_response(200, CREATED))
        response = api.post("/file", json=payload())

        assert response.status_code == 200
        assert response.json()["submission_id"] == "sub-0001"
        assert tracker.get_submission("sub-0001") is not None

    def test_file_validation_failure(self, api, session):
        response = api.post("/file", json=payload(nonemployee_compensation=Decimal("-100")))

        assert response.status_code == 422
        assert response.json()["error_kind"] == "validation"
        assert session.calls == []

    def test_file_transient_failure(self, api, session):
        session.responses.extend([make_response(503, text="busy")] * 4)
        response = api.post("/file", json=payload())

        assert response.status_code == 503
        assert response.json()["error_kind"] == "transient_failure"

    def test_batch(self, api, session):
        session.responses.append(make_response(200, CREATED))
        response = api.post("/file/batch", json={"forms": [payload(), payload()]})

        assert response.status_code == 200
        assert len(response.json()["batch_validation"]) == 2

    def test_batch_too_large(self, api):
        response = api.post("/file/batch", json={"forms": [payload()] * 101})
        assert response.status_code == 400

    def test_transmit_and_status(self, api, session, tracker):
        tracker.track_submission("sub-0001")
        session.responses.append(make_response(200, {"StatusCode": 200, "SubmissionId": "sub-0001"}))
        session.responses.append(make_response(
            200, {"StatusCode": 200, "SubmissionId": "sub-0001", "Form1099Records": [{"Status": "REJECTED"}]},
        ))

        assert api.post("/transmit/sub-0001").json()["status"] == "TRANSMITTED"
        assert api.get("/status/sub-0001").json()["status"] == "REJECTED"


class TestWebhookRoutes:
    def _headers(self, tb_config, timestamp="2025-01-15T10:30:00Z"):
        return {
            "Signature": compute_signature(tb_config.client_id, tb_config.client_secret, timestamp),
            "Timestamp": timestamp,
        }

    def test_signed_callback(self, api, tb_config, tracker):
        tracker.track_submission("sub-0001")
        body = {"SubmissionId": "sub-0001", "FormType": "FORM1099NEC", "Records": [{"Status": "ACCEPTED"}]}
        response = api.post("/webhook/taxbandits", json=body, headers=self._headers(tb_config))

        assert response.status_code == 200
        assert response.json()["status"] == "ACCEPTED"

    def test_bad_signature_is_401(self, api, tracker):
        tracker.track_submission("sub-0001")
        body = {"SubmissionId": "sub-0001", "FormType": "FORM1099NEC", "Records": [{"Status": "ACCEPTED"}]}
        response = api.post(
            "/webhook/taxbandits", json=body, headers={"Signature": "bogus", "Timestamp": "1"},
        )

        assert response.status_code == 401
        assert tracker.get_submission("sub-0001").status.value == "CREATED"

    def test_signed_malformed_body_is_400(self, api, tb_config):
        response = api.post("/webhook/taxbandits", content=b"not json", headers=self._headers(tb_config))
        assert response.status_code == 400

    def test_list_and_get_submissions(self, api, tracker):
        tracker.track_submission("a")
        tracker.track_submission("b")

        assert [s["submission_id"] for s in api.get("/webhook/submissions").json()] == ["b", "a"]
        assert api.get("/webhook/submissions/a").json()["status"] == "CREATED"
        assert api.get("/webhook/submissions/missing").status_code == 404


class TestDependencies:
    @pytest.fixture
    def env(self, monkeypatch):
        for name in (
            "TAXBANDITS_CLIENT_ID", "TAXBANDITS_CLIENT_SECRET", "TAXBANDITS_USER_TOKEN",
            "TAXBANDITS_ENV", "REVIEWER_ENDPOINT", "REVIEWER_API_KEY",
        ):
            monkeypatch.delenv(name, raising=False)
        reset_dependencies()
        yield monkeypatch
        reset_dependencies()

    def test_unconfigured_agent_is_503(self, env):
        assert get_taxbandits_client() is None
        assert get_reviewer() is None
        with pytest.raises(HTTPException) as exc:
            get_agent()
        assert exc.value.status_code == 503

    def test_clients_are_cached_until_reset(self, env):
        env.setenv("TAXBANDITS_CLIENT_ID", "cid")
        env.setenv("TAXBANDITS_CLIENT_SECRET", "csecret")
        env.setenv("TAXBANDITS_USER_TOKEN", "utoken")

        client = get_taxbandits_client()
        assert client is not None
        assert get_taxbandits_client() is client

        reset_dependencies()
        assert get_taxbandits_client() is not client

"""Shared fixtures: in-memory Supabase, fake HTTP session, sample requests."""

import json
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
import requests

from tax_agent.config import ReviewerConfig, TaxBanditsConfig
from tax_agent.models import FilingRequest
from tax_agent.taxbandits_auth import reset_token_cache


# =============================================================================
# SUPABASE
# =============================================================================

class FakeQuery:
    """Just enough of the postgrest query builder for the tracker."""

    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._op = None
        self._row: Dict[str, Any] = {}
        self._ignore_duplicates = False
        self._filters: List[tuple] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None

    def upsert(self, row, on_conflict="", ignore_duplicates=False):
        self._op = "upsert"
        self._row = dict(row)
        self._ignore_duplicates = ignore_duplicates
        return self

    def select(self, columns="*"):
        self._op = "select"
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self):
        rows = self._db.tables.setdefault(self._table, {})
        if self._op == "upsert":
            key = self._row["submission_id"]
            self._db.writes += 1
            if key in rows:
                if not self._ignore_duplicates:
                    rows[key].update(self._row)
            else:
                rows[key] = dict(self._row)
            return SimpleNamespace(data=[dict(rows[key])])

        data = [dict(r) for r in rows.values()]
        for column, value in self._filters:
            data = [r for r in data if r.get(column) == value]
        if self._order:
            column, desc = self._order
            data.sort(key=lambda r: r.get(column) or "", reverse=desc)
        if self._limit is not None:
            data = data[: self._limit]
        return SimpleNamespace(data=data)


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.writes = 0

    def table(self, name):
        return FakeQuery(self, name)


class Clock:
    """Monotonic ISO timestamps for deterministic ordering."""

    def __init__(self):
        self.tick = 0

    def __call__(self) -> str:
        self.tick += 1
        return f"2025-01-01T00:00:{self.tick:02d}+00:00"


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def tracker(fake_db):
    from tax_agent.submission_tracker import SubmissionTracker
    return SubmissionTracker(client=fake_db, clock=Clock())


# =============================================================================
# HTTP
# =============================================================================

def make_response(status: int, body: Any = None, text: Optional[str] = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    if text is not None:
        response._content = text.encode("utf-8")
    else:
        response._content = json.dumps(body if body is not None else {}).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    response.encoding = "utf-8"
    return response


def token_response(expires_in: int = 3600) -> requests.Response:
    return make_response(200, {
        "StatusCode": 200,
        "AccessToken": "access-token-value",
        "TokenType": "Bearer",
        "ExpiresIn": expires_in,
    })


class FakeSession:
    """
    Stands in for requests.Session.

    ``get`` serves OAuth exchanges from ``token_responses`` (a fresh token by
    default); ``request`` serves API calls from ``responses`` in order. An
    exception instance in either queue is raised instead of returned.
    """

    def __init__(self, responses=None, token_responses=None):
        self.responses = list(responses or [])
        self.token_responses = list(token_responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.token_calls: List[Dict[str, Any]] = []

    def get(self, url, headers=None, timeout=None):
        self.token_calls.append({"url": url, "headers": headers})
        item = self.token_responses.pop(0) if self.token_responses else token_response()
        if isinstance(item, Exception):
            raise item
        return item

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        self.calls.append({
            "method": method, "url": url, "headers": headers, "json": json, "params": params,
        })
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture(autouse=True)
def _clear_token_cache():
    reset_token_cache()
    yield
    reset_token_cache()


@pytest.fixture
def tb_config():
    return TaxBanditsConfig(
        client_id="client-id-123",
        client_secret="client-secret-0123456789abcdef0123456789",
        user_token="user-token-abc",
        api_base_url="https://testapi.example.com/v1.7.3",
        oauth_url="https://testoauth.example.com/v2/tbsauth",
    )


@pytest.fixture
def reviewer_config():
    return ReviewerConfig(endpoint="https://llm.example.com/v1/chat/completions", api_key="sk-test")


# =============================================================================
# REQUESTS
# =============================================================================

def make_request(**overrides) -> FilingRequest:
    """EIN payer, SSN recipient, $5000 compensation, no withholding, no state filing."""
    data: Dict[str, Any] = {
        "payer": {
            "name": "Acme Consulting LLC",
            "tin": "27-1234567",
            "tin_type": "EIN",
            "address": "100 Main St",
            "city": "Austin",
            "state": "TX",
            "zip_code": "78701",
            "phone": "(512) 555-0100",
            "email": "billing@acme.example",
        },
        "recipient": {
            "first_name": "Jane",
            "last_name": "Doe",
            "tin": "412789654",
            "tin_type": "SSN",
            "address": "200 Oak Ave",
            "city": "Denver",
            "state": "CO",
            "zip_code": "80202",
        },
        "nonemployee_compensation": Decimal("5000.00"),
        "tax_year": "2024",
    }
    data.update(overrides)
    return FilingRequest.model_validate(data)


@pytest.fixture
def scenario_a():
    return make_request()

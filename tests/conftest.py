"""
Pytest fixtures for the studio test suite.

Provides:
- FakeConn: an in-memory stand-in for asyncpg.Connection that answers
  queries by SQL substring and records every call
- api / client_api / orphan_client_api: TestClients with get_conn and
  require_user overridden

No database is needed; the app's startup hook (pool creation) never runs
because the TestClient is not used as a context manager.
"""

from __future__ import annotations

from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from studio.main import app
from studio.portal.auth import get_conn, require_user

STAFF_USER = {
    "user_id": "11111111-1111-1111-1111-111111111111",
    "email": "owner@studio.example",
    "full_name": "Owner",
    "role": "business_owner",
    "client_id": None,
}

CLIENT_USER = {
    "user_id": "22222222-2222-2222-2222-222222222222",
    "email": "client@example.com",
    "full_name": "Client",
    "role": "client",
    "client_id": "cccccccc-cccc-cccc-cccc-cccccccccccc",
}


class _FakeTransaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeConn:
    """
    Answers fetch/fetchrow/fetchval by the first registered SQL substring
    found in the query. Several values registered for one substring are
    handed out in order, the last one repeating. Unmatched queries return
    None (or [] for fetch).
    """

    def __init__(self):
        self.responses: dict[str, list[tuple[str, list[Any]]]] = {
            "fetch": [],
            "fetchrow": [],
            "fetchval": [],
        }
        self.calls: list[tuple[str, str, tuple]] = []

    def on(self, method: str, sql_fragment: str, *values: Any) -> "FakeConn":
        self.responses[method].append((sql_fragment, list(values)))
        return self

    def _answer(self, method: str, sql: str, default: Any) -> Any:
        for fragment, values in self.responses[method]:
            if fragment in sql:
                return values.pop(0) if len(values) > 1 else values[0]
        return default

    def executed(self, sql_fragment: str) -> list[tuple]:
        return [args for method, sql, args in self.calls if method == "execute" and sql_fragment in sql]

    async def fetch(self, sql: str, *args):
        self.calls.append(("fetch", sql, args))
        return self._answer("fetch", sql, [])

    async def fetchrow(self, sql: str, *args):
        self.calls.append(("fetchrow", sql, args))
        return self._answer("fetchrow", sql, None)

    async def fetchval(self, sql: str, *args):
        self.calls.append(("fetchval", sql, args))
        return self._answer("fetchval", sql, None)

    async def execute(self, sql: str, *args):
        self.calls.append(("execute", sql, args))
        return "OK"

    def transaction(self):
        return _FakeTransaction()


@pytest.fixture
def fake_conn() -> FakeConn:
    return FakeConn()


def _client_for(conn: FakeConn, user: Optional[dict]) -> TestClient:
    async def _get_conn():
        yield conn

    app.dependency_overrides[get_conn] = _get_conn
    if user is not None:
        app.dependency_overrides[require_user] = lambda: user
    return TestClient(app)


@pytest.fixture
def api(fake_conn):
    """TestClient authenticated as the business owner."""
    client = _client_for(fake_conn, STAFF_USER)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def client_api(fake_conn):
    """TestClient authenticated as a client user."""
    client = _client_for(fake_conn, CLIENT_USER)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def anon_api(fake_conn):
    """TestClient with a fake connection but the real auth dependency."""
    client = _client_for(fake_conn, None)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def orphan_client_api(fake_conn):
    """TestClient for a client user whose client record is gone (client_id NULL)."""
    client = _client_for(fake_conn, {**CLIENT_USER, "client_id": None})
    yield client
    app.dependency_overrides.clear()

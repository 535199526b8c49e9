"""
HTTP tests for contracts, returns, project files, the dashboard, sign-up,
password reset and client scoping of the list endpoints.

Same setup as test_api.py: FakeConn answers queries by SQL substring and the
object-storage helpers are monkeypatched at the router module.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from studio.portal import contract_routes, file_routes
from studio.portal.auth import COOKIE_NAME

from conftest import CLIENT_USER

PROJECT_ID = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
CONTRACT_ID = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"
RETURN_ID = "eeeeeeee-eeee-eeee-eeee-eeeeeeeeeeee"
FILE_ID = "ffffffff-ffff-ffff-ffff-ffffffffffff"
OTHER_CLIENT = "dddddddd-dddd-dddd-dddd-dddddddddddd"


def contract_row(status="sent", client_id=CLIENT_USER["client_id"], **extra):
    row = {
        "id": CONTRACT_ID,
        "client_id": client_id,
        "project_id": PROJECT_ID,
        "title": "Design agreement",
        "type": "design_contract",
        "status": status,
        "storage_key": None,
        "file_name": None,
        "created_at": None,
        "sent_at": None,
        "viewed_at": None,
        "signed_at": None,
        "signed_by": None,
        "value": None,
        "description": "",
        "version": 1,
    }
    row.update(extra)
    return row


def return_row(status="pending", processed_date=None):
    return {
        "id": RETURN_ID,
        "project_id": PROJECT_ID,
        "client_id": CLIENT_USER["client_id"],
        "items": [],
        "reason": "Wrong size",
        "status": status,
        "amount": None,
        "return_date": date(2026, 3, 1),
        "processed_date": processed_date,
        "notes": "",
        "created_at": None,
    }


def fetchrow_calls(conn, fragment):
    return [args for method, sql, args in conn.calls if method == "fetchrow" and fragment in sql]


# ---------------------------------------------------------------------------
# Client scoping of list endpoints
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("path,key", [
    ("/api/projects", "projects"),
    ("/api/tasks", "tasks"),
    ("/api/returns", "returns"),
    ("/api/contracts", "contracts"),
])
def test_orphaned_client_sees_empty_lists(orphan_client_api, fake_conn, path, key):
    leaked = [{"id": "x", "client_id": OTHER_CLIENT, "status": "ordering"}]
    for table in ("studio.projects", "studio.tasks", "studio.returns", "studio.contracts"):
        fake_conn.on("fetch", f"FROM {table}", leaked)

    resp = orphan_client_api.get(path)
    assert resp.status_code == 200
    assert resp.json() == {key: []}
    assert fake_conn.calls == []


def test_client_project_list_is_scoped(client_api, fake_conn):
    resp = client_api.get("/api/projects", params={"client_id": OTHER_CLIENT})
    assert resp.status_code == 200
    fetch = [c for c in fake_conn.calls if c[0] == "fetch"][0]
    assert fetch[2] == (None, CLIENT_USER["client_id"])


# ---------------------------------------------------------------------------
# PATCH bodies with explicit nulls
# ---------------------------------------------------------------------------

def test_null_for_required_project_field_is_422(api, fake_conn):
    resp = api.patch(f"/api/projects/{PROJECT_ID}", json={"status": None})
    assert resp.status_code == 422
    assert "status cannot be null" in resp.text
    assert fake_conn.calls == []


def test_null_for_required_task_field_is_422(api, fake_conn):
    resp = api.patch("/api/tasks/t1", json={"title": None})
    assert resp.status_code == 422
    assert fake_conn.calls == []


def test_null_clears_nullable_task_field(api, fake_conn):
    fake_conn.on("fetchrow", "UPDATE studio.tasks", {"id": "t1", "project_id": PROJECT_ID})
    resp = api.patch("/api/tasks/t1", json={"due_date": None})
    assert resp.status_code == 200
    update = fetchrow_calls(fake_conn, "UPDATE studio.tasks")[0]
    assert update == ("t1", None)


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------

class TestContracts:

    def test_client_opening_sent_contract_marks_it_viewed(self, client_api, fake_conn):
        fake_conn.on("fetchrow", "UPDATE studio.contracts", contract_row(status="viewed"))
        fake_conn.on("fetchrow", "FROM studio.contracts", contract_row(status="sent"))

        resp = client_api.get(f"/api/contracts/{CONTRACT_ID}")
        assert resp.status_code == 200
        assert resp.json()["contract"]["status"] == "viewed"
        assert fetchrow_calls(fake_conn, "SET status = 'viewed'") == [(CONTRACT_ID,)]
        assert fake_conn.executed("INSERT INTO studio.activity_events")

    def test_staff_opening_sent_contract_leaves_status(self, api, fake_conn):
        fake_conn.on("fetchrow", "FROM studio.contracts", contract_row(status="sent"))
        resp = api.get(f"/api/contracts/{CONTRACT_ID}")
        assert resp.status_code == 200
        assert resp.json()["contract"]["status"] == "sent"
        assert not fetchrow_calls(fake_conn, "UPDATE studio.contracts")

    def test_client_cannot_open_draft(self, client_api, fake_conn):
        fake_conn.on("fetchrow", "FROM studio.contracts", contract_row(status="draft"))
        resp = client_api.get(f"/api/contracts/{CONTRACT_ID}")
        assert resp.status_code == 404
        assert not fetchrow_calls(fake_conn, "UPDATE studio.contracts")

    def test_client_cannot_open_other_clients_contract(self, client_api, fake_conn):
        fake_conn.on("fetchrow", "FROM studio.contracts", contract_row(client_id=OTHER_CLIENT))
        resp = client_api.get(f"/api/contracts/{CONTRACT_ID}")
        assert resp.status_code == 404

    def test_backward_move_is_400(self, api, fake_conn):
        fake_conn.on("fetchrow", "FOR UPDATE", {"status": "signed"})
        resp = api.patch(f"/api/contracts/{CONTRACT_ID}", json={"status": "draft"})
        assert resp.status_code == 400
        assert not fetchrow_calls(fake_conn, "UPDATE studio.contracts")

    @pytest.mark.parametrize("current,target,column", [
        ("draft", "sent", "sent_at"),
        ("viewed", "signed", "signed_at"),
    ])
    def test_status_move_stamps_timestamp(self, api, fake_conn, current, target, column):
        fake_conn.on("fetchrow", "FOR UPDATE", {"status": current})
        fake_conn.on("fetchrow", "UPDATE studio.contracts", contract_row(status=target))

        resp = api.patch(f"/api/contracts/{CONTRACT_ID}", json={"status": target})
        assert resp.status_code == 200
        assert fetchrow_calls(fake_conn, f"SET {column} = COALESCE({column}, now())") == [(CONTRACT_ID,)]

    def test_unchanged_status_is_not_restamped(self, api, fake_conn):
        fake_conn.on("fetchrow", "FOR UPDATE", {"status": "sent"})
        fake_conn.on("fetchrow", "UPDATE studio.contracts", contract_row(status="sent"))

        resp = api.patch(f"/api/contracts/{CONTRACT_ID}", json={"status": "sent", "title": "v2"})
        assert resp.status_code == 200
        assert not fetchrow_calls(fake_conn, "COALESCE(sent_at")

    def test_reupload_bumps_version(self, api, fake_conn, monkeypatch):
        monkeypatch.setattr(contract_routes, "presign_put", lambda key, content_type: f"https://put/{key}")
        fake_conn.on("fetchrow", "FOR UPDATE", {
            "client_id": CLIENT_USER["client_id"],
            "storage_key": "clients/c/contracts/x/v2/old.pdf",
            "version": 2,
        })

        resp = api.post(f"/api/contracts/{CONTRACT_ID}/upload-url", json={"filename": "agreement.pdf"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["version"] == 3
        assert "/v3/agreement.pdf" in body["storage_key"]
        assert fake_conn.executed("SET storage_key") == [
            (CONTRACT_ID, body["storage_key"], "agreement.pdf", 3),
        ]

    def test_first_upload_keeps_version(self, api, fake_conn, monkeypatch):
        monkeypatch.setattr(contract_routes, "presign_put", lambda key, content_type: "https://put")
        fake_conn.on("fetchrow", "FOR UPDATE", {
            "client_id": CLIENT_USER["client_id"],
            "storage_key": None,
            "version": 1,
        })
        resp = api.post(f"/api/contracts/{CONTRACT_ID}/upload-url", json={"filename": "agreement.pdf"})
        assert resp.json()["version"] == 1


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------

class TestReturnUpdates:

    def test_refund_stamps_processed_date(self, api, fake_conn):
        fake_conn.on("fetchrow", "SELECT status, processed_date", {"status": "pending", "processed_date": None})
        fake_conn.on("fetchrow", "UPDATE studio.returns", return_row(status="refunded"))

        resp = api.patch(f"/api/returns/{RETURN_ID}", json={"status": "refunded"})
        assert resp.status_code == 200
        assert fetchrow_calls(fake_conn, "UPDATE studio.returns") == [
            (RETURN_ID, "refunded", date.today()),
        ]

    def test_existing_processed_date_is_kept(self, api, fake_conn):
        fake_conn.on("fetchrow", "SELECT status, processed_date", {
            "status": "processed",
            "processed_date": date(2026, 3, 10),
        })
        fake_conn.on("fetchrow", "UPDATE studio.returns", return_row(status="refunded"))

        resp = api.patch(f"/api/returns/{RETURN_ID}", json={"status": "refunded"})
        assert resp.status_code == 200
        assert fetchrow_calls(fake_conn, "UPDATE studio.returns") == [(RETURN_ID, "refunded")]

    def test_missing_return_is_404(self, api):
        resp = api.patch(f"/api/returns/{RETURN_ID}", json={"status": "refunded"})
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Project files
# ---------------------------------------------------------------------------

class TestProjectFiles:

    def test_upload_url_registers_pending_file(self, api, fake_conn, monkeypatch):
        monkeypatch.setattr(file_routes, "presign_put", lambda key, content_type: f"https://put/{key}")
        fake_conn.on("fetchrow", "FROM studio.projects", {
            "id": PROJECT_ID,
            "client_id": CLIENT_USER["client_id"],
            "status": "vision_board",
            "progress": 30,
        })

        resp = api.post(f"/api/projects/{PROJECT_ID}/files/upload-url", json={
            "filename": "moodboard.jpg",
            "content_type": "image/jpeg",
            "is_visionboard": True,
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["storage_key"].startswith(f"clients/{CLIENT_USER['client_id']}/projects/{PROJECT_ID}/")
        insert = fake_conn.executed("INSERT INTO studio.project_files")[0]
        assert insert[0] == body["file_id"]
        assert insert[8] is True

    def test_confirm_requires_object_in_storage(self, api, fake_conn, monkeypatch):
        monkeypatch.setattr(file_routes, "head_object", lambda key: None)
        fake_conn.on("fetchrow", "FROM studio.project_files", {
            "id": FILE_ID, "storage_key": "k", "file_name": "a.jpg", "is_visionboard": False,
        })
        resp = api.post(f"/api/projects/{PROJECT_ID}/files/{FILE_ID}/confirm")
        assert resp.status_code == 400
        assert not fake_conn.executed("SET size_bytes")

    def test_confirm_marks_file_clean(self, api, fake_conn, monkeypatch):
        monkeypatch.setattr(file_routes, "head_object", lambda key: {"size_bytes": 2048, "content_type": "image/jpeg"})
        fake_conn.on("fetchrow", "FROM studio.project_files", {
            "id": FILE_ID, "storage_key": "k", "file_name": "a.jpg", "is_visionboard": True,
        })
        resp = api.post(f"/api/projects/{PROJECT_ID}/files/{FILE_ID}/confirm")
        assert resp.status_code == 200
        assert resp.json()["scan_status"] == "clean"
        assert fake_conn.executed("SET size_bytes") == [(2048, FILE_ID)]

    def test_client_cannot_download_other_clients_file(self, client_api, fake_conn, monkeypatch):
        monkeypatch.setattr(file_routes, "presign_get", lambda key: "https://get")
        fake_conn.on("fetchrow", "FROM studio.project_files", {
            "storage_key": "k", "file_name": "a.jpg", "client_id": OTHER_CLIENT,
        })
        resp = client_api.get(f"/api/projects/{PROJECT_ID}/files/{FILE_ID}/download")
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

def test_dashboard_counts_projects_by_stage(api, fake_conn):
    fake_conn.on("fetch", "FROM studio.projects GROUP BY", [
        {"status": "ordering", "n": 2},
        {"status": "complete", "n": 1},
    ])
    resp = api.get("/api/dashboard")
    assert resp.status_code == 200
    by_stage = {s["stage"]: s["count"] for s in resp.json()["projects_by_stage"]}
    assert len(by_stage) == 6
    assert by_stage["ordering"] == 2
    assert by_stage["complete"] == 1
    assert by_stage["consultation"] == 0


def test_dashboard_is_staff_only(client_api):
    assert client_api.get("/api/dashboard").status_code == 403


# ---------------------------------------------------------------------------
# Sign-up and password reset
# ---------------------------------------------------------------------------

class TestSignup:

    BODY = {"email": "New@Example.com", "password": "long-enough", "full_name": "New Client"}

    def test_duplicate_email_is_400(self, anon_api, fake_conn):
        fake_conn.on("fetchval", "FROM studio.users", 1)
        resp = anon_api.post("/api/auth/signup", json=self.BODY)
        assert resp.status_code == 400
        assert not [c for c in fake_conn.calls if "INSERT INTO studio.clients" in c[1]]

    def test_creates_client_and_user(self, anon_api, fake_conn):
        fake_conn.on("fetchval", "INSERT INTO studio.clients", "c-new")
        fake_conn.on("fetchval", "INSERT INTO studio.users", "u-new")
        resp = anon_api.post("/api/auth/signup", json=self.BODY)
        assert resp.status_code == 201
        assert resp.json() == {"user_id": "u-new", "role": "client", "client_id": "c-new"}
        assert COOKIE_NAME in resp.cookies
        insert_user = [c for c in fake_conn.calls if "INSERT INTO studio.users" in c[1]][0]
        assert insert_user[2][0] == "new@example.com"
        assert insert_user[2][-1] == "c-new"


class TestPasswordReset:

    def _token(self, expires_in=timedelta(minutes=30), used_at=None):
        return {
            "id": 7,
            "user_id": "u-1",
            "expires_at": datetime.now(timezone.utc) + expires_in,
            "used_at": used_at,
        }

    def test_unknown_token_is_404(self, anon_api):
        resp = anon_api.post("/api/auth/reset", json={"token": "nope", "password": "new-password"})
        assert resp.status_code == 404

    def test_used_token_is_403(self, anon_api, fake_conn):
        fake_conn.on("fetchrow", "FROM studio.password_resets", self._token(used_at=datetime.now(timezone.utc)))
        resp = anon_api.post("/api/auth/reset", json={"token": "t", "password": "new-password"})
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Reset link already used"
        assert not fake_conn.executed("UPDATE studio.users")

    def test_expired_token_is_403(self, anon_api, fake_conn):
        fake_conn.on("fetchrow", "FROM studio.password_resets", self._token(expires_in=timedelta(minutes=-1)))
        resp = anon_api.post("/api/auth/reset", json={"token": "t", "password": "new-password"})
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Reset link expired"

    def test_valid_token_sets_password_once(self, anon_api, fake_conn):
        fake_conn.on("fetchrow", "FROM studio.password_resets", self._token())
        resp = anon_api.post("/api/auth/reset", json={"token": "t", "password": "new-password"})
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "session": "anonymous"}
        assert fake_conn.executed("SET password_hash")[0][1] == "u-1"
        assert fake_conn.executed("SET used_at = now()") == [(7,)]

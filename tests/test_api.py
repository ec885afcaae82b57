"""
API tests — TestClient against an app pinned to a temp database.

Covers:
- Auth: register/login/me, 401 without token, 403 while pending
- Scan flow: confirm batch, members/guests listing and search, snapshot edits
- Error mapping: 404 / 422 / 502 / 503 with error_code and request_id
- Admin endpoints
- Live feed bridge (without a streaming HTTP client)
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from api.server import create_app, status_for
from api.services import Services
from api.sse_router import Event, FeedBridge, _event_stream, serialize_collection
from roster.errors import (
    ExtractionError,
    InvalidCredentialsError,
    PermissionDeniedError,
    ReconciliationError,
)
from roster.models import ExtractedEntry

DATE = "2024-05-01"

BATCH = {
    "date": DATE,
    "entries": [
        {"name": "Ana Gómez", "company": "Acme", "sector": "Contabilidad",
         "handwrittenRequest": "Abogado", "isGuest": False},
        {"name": "Beto Ruiz", "company": None, "sector": "Legal", "handwrittenRequest": ""},
        {"name": "Luis", "isGuest": True, "invitedByName": "Ana"},
        {"name": "   ", "sector": "?"},
    ],
}


class FakeExtractor:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def extract(self, image, mime_type="image/jpeg"):
        self.calls.append((image, mime_type))
        if self.error:
            raise self.error
        return [
            ExtractedEntry(name="Ana Gómez", handwritten_request="Abogado", row_number=1),
            ExtractedEntry(name="Luis", is_guest=True, invited_by_name="Ana", row_number=2),
        ]


@pytest.fixture
def services(db_path):
    return Services(db_path, extractor=FakeExtractor(), password_iterations=1000)


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def _signup(client, name, email, password="secret1"):
    response = client.post(
        "/api/auth/register", json={"name": name, "email": email, "password": password}
    )
    assert response.status_code == 201, response.text
    return response.json()


def _login(client, email, password="secret1"):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def admin_headers(client):
    _signup(client, "Admin", "admin@example.com")
    return _login(client, "admin@example.com")


@pytest.fixture
def user_headers(client, admin_headers):
    """A second, approved account."""
    user = _signup(client, "Ana", "ana@example.com")
    client.post(f"/api/admin/accounts/{user['id']}/approve", headers=admin_headers)
    return _login(client, "ana@example.com")


@pytest.fixture
def scanned(client, admin_headers):
    response = client.post("/api/scans", json=BATCH, headers=admin_headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestAuth:
    def test_first_account_is_admin(self, client):
        account = _signup(client, "Admin", "admin@example.com")

        assert account["role"] == "admin"
        assert account["isApproved"] is True
        assert "password" not in str(account).lower()

    def test_me(self, client, admin_headers):
        response = client.get("/api/auth/me", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["email"] == "admin@example.com"

    def test_missing_token(self, client):
        response = client.get("/api/members")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_invalid_token(self, client):
        response = client.get("/api/members", headers={"Authorization": "Bearer rst_bogus"})
        assert response.status_code == 401

    def test_token_via_header_and_query(self, client, admin_headers):
        token = admin_headers["Authorization"].split(" ", 1)[1]

        assert client.get("/api/members", headers={"X-API-Token": token}).status_code == 200
        assert client.get(f"/api/members?api_token={token}").status_code == 200

    def test_pending_account_login_forbidden(self, client, admin_headers):
        _signup(client, "Ana", "ana@example.com")

        response = client.post(
            "/api/auth/login", json={"email": "ana@example.com", "password": "secret1"}
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "PendingApprovalError"

    def test_wrong_password(self, client, admin_headers):
        response = client.post(
            "/api/auth/login", json={"email": "admin@example.com", "password": "nope!!"}
        )

        assert response.status_code == 401
        assert response.json()["error_code"] == "InvalidCredentialsError"

    def test_duplicate_registration(self, client, admin_headers):
        response = client.post(
            "/api/auth/register",
            json={"name": "X", "email": "admin@example.com", "password": "secret1"},
        )
        assert response.status_code == 422

    def test_logout(self, client, admin_headers):
        assert client.post("/api/auth/logout", headers=admin_headers).json()["success"] is True
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401


class TestScans:
    def test_confirm_batch_reports_outcomes(self, scanned):
        assert scanned["ok"] is True
        assert scanned["snapshotSaved"] is True
        assert len(scanned["membersCreated"]) == 2
        assert len(scanned["guestsCreated"]) == 1
        assert [s["reason"] for s in scanned["skipped"]] == ["empty name"]

    def test_members_listing(self, client, admin_headers, scanned):
        body = client.get("/api/members", headers=admin_headers).json()

        assert body["total"] == 2
        ana = body["items"][0]
        assert ana["name"] == "Ana Gómez"
        assert ana["references"][0]["date"] == DATE
        assert ana["references"][0]["text"] == "Abogado"
        assert body["items"][1]["company"] == ""

    def test_member_search(self, client, admin_headers, scanned):
        body = client.get("/api/members", params={"q": "legal"}, headers=admin_headers).json()
        assert [m["name"] for m in body["items"]] == ["Beto Ruiz"]

    def test_guests_linked_to_inviter(self, client, admin_headers, scanned):
        guests = client.get("/api/guests", headers=admin_headers).json()["items"]
        ana_id = scanned["membersCreated"][0]

        assert guests[0]["invitedByMemberId"] == ana_id
        assert guests[0]["invitedByMemberName"] == "Ana Gómez"
        invited = client.get(f"/api/members/{ana_id}/guests", headers=admin_headers).json()
        assert invited["total"] == 1

    def test_rescan_same_day_is_idempotent(self, client, admin_headers, scanned):
        again = client.post("/api/scans", json=BATCH, headers=admin_headers).json()

        assert again["membersCreated"] == []
        members = client.get("/api/members", headers=admin_headers).json()["items"]
        assert len(members[0]["references"]) == 1

    def test_invalid_date(self, client, admin_headers):
        response = client.post(
            "/api/scans", json={"date": "01/05/2024", "entries": []}, headers=admin_headers
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "InputQualityError"

    def test_last_scan(self, client, admin_headers, scanned):
        body = client.get("/api/scans/last", headers=admin_headers).json()

        assert body["date"] == DATE
        assert len(body["entries"]) == 4
        assert body["entries"][1]["company"] == ""

    def test_last_scan_requests_split(self, client, admin_headers, scanned):
        body = client.get("/api/scans/last/requests", headers=admin_headers).json()

        assert [e["name"] for e in body["withRequests"]] == ["Ana Gómez"]
        assert len(body["withoutRequests"]) == 3

    def test_no_last_scan(self, client, admin_headers):
        response = client.get("/api/scans/last", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "NotFoundError"

    def test_edit_snapshot_entry(self, client, admin_headers, scanned):
        response = client.patch(
            "/api/scans/last/entries/0",
            json={"field": "handwrittenRequest", "value": "Notario"},
            headers=admin_headers,
        )

        body = response.json()
        assert response.status_code == 200
        assert body["action"] == "updated"
        assert body["entry"]["handwrittenRequest"] == "Notario"
        assert body["member"]["references"][0]["text"] == "Notario"

    def test_edit_guest_entry_is_view_only(self, client, admin_headers, scanned):
        body = client.patch(
            "/api/scans/last/entries/2", json={"field": "name", "value": "Luisa"},
            headers=admin_headers,
        ).json()

        assert body["action"] == "view_only"
        assert body["member"] is None

    def test_edit_unknown_field(self, client, admin_headers, scanned):
        response = client.patch(
            "/api/scans/last/entries/0", json={"field": "isGuest", "value": "1"},
            headers=admin_headers,
        )
        assert response.status_code == 422

    def test_edit_out_of_range(self, client, admin_headers, scanned):
        response = client.patch(
            "/api/scans/last/entries/9", json={"field": "name", "value": "X"},
            headers=admin_headers,
        )
        assert response.status_code == 404


class TestMemberEdits:
    def test_patch_profile(self, client, admin_headers, scanned):
        ana_id = scanned["membersCreated"][0]

        body = client.patch(
            f"/api/members/{ana_id}", json={"phone": "555", "company": ""}, headers=admin_headers
        ).json()

        assert body["id"] == ana_id
        assert body["phone"] == "555"
        assert body["company"] == ""
        assert body["sector"] == "Contabilidad"

    def test_patch_empty_name(self, client, admin_headers, scanned):
        ana_id = scanned["membersCreated"][0]

        response = client.patch(f"/api/members/{ana_id}", json={"name": " "}, headers=admin_headers)

        assert response.status_code == 422
        assert response.json()["error_code"] == "EmptyNameError"

    def test_patch_reference(self, client, admin_headers, scanned):
        ana_id = scanned["membersCreated"][0]
        member = client.get(f"/api/members/{ana_id}", headers=admin_headers).json()
        ref_id = member["references"][0]["id"]

        body = client.patch(
            f"/api/members/{ana_id}/references/{ref_id}", json={"text": "Fiscalista"},
            headers=admin_headers,
        ).json()

        assert body["references"][0] == {"id": ref_id, "date": DATE, "text": "Fiscalista"}

    def test_delete_member(self, client, admin_headers, scanned):
        ana_id = scanned["membersCreated"][0]

        assert client.delete(f"/api/members/{ana_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/members/{ana_id}", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/members/{ana_id}", headers=admin_headers).status_code == 404
        assert client.get("/api/guests", headers=admin_headers).json()["total"] == 1

    def test_clear_directory(self, client, admin_headers, scanned):
        body = client.delete("/api/members", headers=admin_headers).json()

        assert body["success"] is True
        assert body["deleted"]["members"] == 2
        assert client.get("/api/members", headers=admin_headers).json()["total"] == 0


class TestIsolation:
    def test_accounts_see_only_their_directory(self, client, admin_headers, user_headers, scanned):
        ana_id = scanned["membersCreated"][0]

        assert client.get("/api/members", headers=user_headers).json()["total"] == 0
        assert client.get(f"/api/members/{ana_id}", headers=user_headers).status_code == 404


class TestExtract:
    def test_extract_returns_rows_without_storing(self, client, services, admin_headers):
        response = client.post(
            "/api/scans/extract",
            files={"file": ("sheet.png", b"\x89PNG...", "image/png")},
            headers=admin_headers,
        )

        body = response.json()
        assert response.status_code == 200
        assert body["total"] == 2
        assert body["items"][1]["isGuest"] is True
        assert services.extractor.calls == [(b"\x89PNG...", "image/png")]
        assert client.get("/api/members", headers=admin_headers).json()["total"] == 0

    def test_extraction_failure_is_502(self, db_path):
        services = Services(
            db_path, extractor=FakeExtractor(ExtractionError("bad")), password_iterations=1000
        )
        client = TestClient(create_app(services))
        _signup(client, "Admin", "admin@example.com")
        headers = _login(client, "admin@example.com")

        response = client.post(
            "/api/scans/extract", files={"file": ("s.jpg", b"x", "image/jpeg")}, headers=headers
        )

        assert response.status_code == 502
        assert response.json()["error_code"] == "ExtractionError"


class TestAdmin:
    def test_list_pending_first(self, client, admin_headers):
        _signup(client, "Ana", "ana@example.com")

        body = client.get("/api/admin/accounts", headers=admin_headers).json()

        assert [a["email"] for a in body["items"]] == ["ana@example.com", "admin@example.com"]

    def test_non_admin_forbidden(self, client, user_headers):
        assert client.get("/api/admin/accounts", headers=user_headers).status_code == 403

    def test_suspend_then_requests_fail(self, client, admin_headers, user_headers):
        me = client.get("/api/auth/me", headers=user_headers).json()

        client.post(f"/api/admin/accounts/{me['id']}/suspend", headers=admin_headers)

        assert client.get("/api/members", headers=user_headers).status_code == 403

    def test_delete_account(self, client, admin_headers, user_headers):
        me = client.get("/api/auth/me", headers=user_headers).json()

        response = client.delete(f"/api/admin/accounts/{me['id']}", headers=admin_headers)

        assert response.json() == {"success": True, "id": me["id"]}
        assert client.get("/api/auth/me", headers=user_headers).status_code == 401

    def test_unknown_account(self, client, admin_headers):
        response = client.post("/api/admin/accounts/missing/approve", headers=admin_headers)
        assert response.status_code == 404


class TestPlumbing:
    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "healthy"

    def test_request_id_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-test-1"})
        assert response.headers["x-request-id"] == "req-test-1"

    def test_request_id_generated_and_in_errors(self, client, admin_headers):
        response = client.get("/api/members/nope", headers=admin_headers)

        assert response.headers["x-request-id"].startswith("req-")
        assert response.json()["request_id"] == response.headers["x-request-id"]

    @pytest.mark.parametrize(
        "exc,status",
        [
            (ReconciliationError("x"), 503),
            (InvalidCredentialsError("x"), 401),
            (PermissionDeniedError("x"), 403),
            (ExtractionError("x"), 502),
        ],
    )
    def test_status_mapping(self, exc, status):
        assert status_for(exc) == status


class TestFeedBridge:
    def test_initial_state_then_changes(self, directory):
        async def run():
            bridge = FeedBridge(directory)
            bridge.start()
            await asyncio.sleep(0)
            initial = bridge.drain()

            directory.add_or_update_members([ExtractedEntry(name="Ana")], DATE)
            await asyncio.sleep(0)
            changes = bridge.drain()
            bridge.close()
            return initial, changes

        initial, changes = asyncio.run(run())

        assert [e.event_type for e in initial] == ["members", "guests", "last_scan"]
        assert initial[0].data == []
        assert initial[2].data is None
        assert [e.event_type for e in changes] == ["members", "last_scan"]
        assert changes[0].data[0]["name"] == "Ana"
        assert changes[1].data["date"] == DATE

    def test_stream_formats_sse_and_unsubscribes(self, directory):
        async def run():
            bridge = FeedBridge(directory)
            bridge.start()
            stream = _event_stream(bridge)
            first = await stream.__anext__()
            await stream.aclose()
            return first

        first = asyncio.run(run())

        assert first.startswith("id: ")
        assert "event: members\n" in first
        assert first.endswith("\n\n")
        assert not directory.backend.feed.has_subscribers("u1", "members")

    def test_burst_keeps_final_state_of_every_collection(self, directory):
        """A large reconciliation with nothing consumed still ends on the final states."""

        async def run():
            bridge = FeedBridge(directory)
            bridge.start()
            await asyncio.sleep(0)
            bridge.drain()

            rows = [ExtractedEntry(name="Luis", is_guest=True)]
            rows += [ExtractedEntry(name=f"Miembro {i:03d}") for i in range(120)]
            directory.add_or_update_members(rows, DATE)
            await asyncio.sleep(0)
            pending = bridge.drain()
            bridge.close()
            return pending

        pending = asyncio.run(run())
        by_type = {e.event_type: e for e in pending}

        assert len(pending) == len(by_type) == 3
        assert [g["name"] for g in by_type["guests"].data] == ["Luis"]
        assert len(by_type["members"].data) == 120
        assert by_type["last_scan"].data["date"] == DATE

    def test_heartbeat_not_queued_twice(self, directory):
        async def run():
            bridge = FeedBridge(directory)
            first = Event(id="1", event_type="system_status", data={}, timestamp="t")
            bridge.put(first)
            bridge.put(Event(id="2", event_type="system_status", data={}, timestamp="t"))
            return first, bridge.drain()

        first, pending = asyncio.run(run())

        assert pending == [first]

    def test_serialize_collection(self):
        assert serialize_collection("last_scan", None) is None
        assert serialize_collection("members", []) == []

"""Tests for the /session endpoints."""

from fastapi.testclient import TestClient

from tests.fixtures.api_fixtures import API_KEY_HEADERS

DEVICE = {"device_type": "desktop", "device_name": "MacBook", "platform": "macOS"}


def issue(client: TestClient, owner_id: str = "owner-1", device: dict | None = None) -> str:
    resp = client.post(
        "/api/v1/internal/sessions",
        json={"owner_id": owner_id, "device": device or DEVICE},
        headers=API_KEY_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    # Drop the issued cookie so each request names its token explicitly
    client.cookies.clear()
    return resp.json()["results"]["token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestCheck:
    """GET /api/v1/session/check"""

    def test_missing_token_is_unauthorized(self, api_client):
        resp = api_client.get("/api/v1/session/check")

        assert resp.status_code == 401
        body = resp.json()
        assert body["success"] is False
        assert body["errcode"] == "E_UNAUTHORIZED"

    def test_unknown_token_is_unauthorized(self, api_client):
        resp = api_client.get("/api/v1/session/check", headers=bearer("nope"))

        assert resp.status_code == 401

    def test_valid_token(self, api_client):
        token = issue(api_client)

        resp = api_client.get("/api/v1/session/check", headers=bearer(token))

        assert resp.status_code == 200
        results = resp.json()["results"]
        assert results["owner_id"] == "owner-1"
        assert results["snapshot"]["email"] == "ana@example.com"
        assert results["session"]["current"] is True
        assert "token" not in results["session"]
        # Rolling cookie is re-issued
        assert resp.cookies.get("sessionToken") == token

    def test_cookie_token(self, api_client):
        token = issue(api_client)
        resp = api_client.get("/api/v1/session/check", headers={"Cookie": f"sessionToken={token}"})

        assert resp.status_code == 200
        assert resp.json()["results"]["owner_id"] == "owner-1"


class TestWhoAmI:
    """GET /api/v1/session/whoami"""

    def test_anonymous(self, api_client):
        resp = api_client.get("/api/v1/session/whoami")

        assert resp.status_code == 200
        assert resp.json()["results"] == {"authenticated": False, "owner_id": None}

    def test_authenticated(self, api_client):
        token = issue(api_client)

        resp = api_client.get("/api/v1/session/whoami", headers=bearer(token))

        assert resp.json()["results"] == {"authenticated": True, "owner_id": "owner-1"}

    def test_invalid_token_is_still_rejected(self, api_client):
        resp = api_client.get("/api/v1/session/whoami", headers=bearer("nope"))

        assert resp.status_code == 401


class TestLogout:
    """POST /api/v1/session/logout and /logout_all"""

    def test_logout_invalidates_only_the_current_session(self, api_client):
        first = issue(api_client)
        second = issue(api_client)

        resp = api_client.post("/api/v1/session/logout", headers=bearer(first))

        assert resp.status_code == 200
        assert resp.json()["results"]["sessions_removed"] == 1
        assert api_client.get("/api/v1/session/check", headers=bearer(first)).status_code == 401
        assert api_client.get("/api/v1/session/check", headers=bearer(second)).status_code == 200

    def test_logout_all(self, api_client):
        laptop = issue(api_client)
        phone = issue(api_client, device={"device_type": "mobile", "device_name": "Pixel"})

        resp = api_client.post("/api/v1/session/logout_all", headers=bearer(laptop))

        assert resp.json()["results"]["sessions_removed"] == 2
        assert api_client.get("/api/v1/session/check", headers=bearer(phone)).status_code == 401

    def test_logout_response_only_deletes_the_cookie(self, api_client):
        first = issue(api_client)
        second = issue(api_client)

        resp = api_client.post("/api/v1/session/logout", headers={"Cookie": f"sessionToken={first}"})

        set_cookies = resp.headers.get_list("set-cookie")
        assert len(set_cookies) == 1
        assert set_cookies[0].startswith("sessionToken=")
        assert first not in set_cookies[0]
        assert "Max-Age=0" in set_cookies[0]
        assert api_client.cookies.get("sessionToken") is None
        # Nothing stale left in the jar to shadow another session's bearer token
        assert api_client.get("/api/v1/session/check", headers=bearer(second)).status_code == 200

    def test_logout_all_response_only_deletes_the_cookie(self, api_client):
        token = issue(api_client)

        resp = api_client.post("/api/v1/session/logout_all", headers=bearer(token))

        set_cookies = resp.headers.get_list("set-cookie")
        assert len(set_cookies) == 1
        assert token not in set_cookies[0]
        assert "Max-Age=0" in set_cookies[0]


class TestListSessions:
    """GET /api/v1/session/list_sessions"""

    def test_marks_the_current_session(self, api_client):
        first = issue(api_client)
        issue(api_client, device={"device_type": "mobile", "device_name": "Pixel"})

        resp = api_client.get("/api/v1/session/list_sessions", headers=bearer(first))

        sessions = resp.json()["results"]["sessions"]
        assert len(sessions) == 2
        assert sum(1 for s in sessions if s["current"]) == 1
        assert all("token" not in s for s in sessions)


class TestDeletedOwner:
    """Sessions presented after their owner was deleted."""

    def test_token_is_rejected(self, api_client, api_owner_repo):
        token = issue(api_client)
        api_owner_repo.delete_owner("owner-1")

        resp = api_client.get("/api/v1/session/check", headers=bearer(token))

        assert resp.status_code == 401
        assert resp.json()["errcode"] == "E_UNAUTHORIZED"
